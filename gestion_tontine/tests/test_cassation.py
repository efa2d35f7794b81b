from decimal import Decimal

from django.test import SimpleTestCase, TestCase

from gestion_tontine import operations
from gestion_tontine.cassation import PositionMembre, calculer_repartition, choisir_pas_arrondi
from gestion_tontine.events import cassation_appliquee
from gestion_tontine.models import Cassation, Credit, Membre, Mouvement, Session
from gestion_tontine.services import (
    CassationService, CreditService, MouvementService, SessionService, SoldeService,
)
from gestion_tontine.tests import echouer_a_l_ecriture


def position(membre_id, epargne, credit=0):
    return PositionMembre(
        membre_id=membre_id,
        nom=f'Membre {membre_id}',
        epargne_actuelle=Decimal(epargne),
        credit_restant=Decimal(credit),
    )


class RepartitionTestCase(SimpleTestCase):
    """Tests du calcul de répartition (sans base de données)"""

    def test_pas_arrondi(self):
        self.assertEqual(choisir_pas_arrondi(Decimal('1000000')), Decimal('100'))
        self.assertEqual(choisir_pas_arrondi(Decimal('999999.99')), Decimal('50'))
        self.assertEqual(choisir_pas_arrondi(Decimal('100000')), Decimal('50'))
        self.assertEqual(choisir_pas_arrondi(Decimal('99999')), Decimal('25'))

    def test_repartition_proportionnelle(self):
        """Test: Alice 80 000, Bob 20 000, fonds 100 000"""
        repartition = calculer_repartition([position(1, 80000), position(2, 20000)], Decimal('100000'))

        alice, bob = repartition.parts
        self.assertEqual(repartition.total_contributions_nettes, Decimal('100000'))
        self.assertEqual(alice.pourcentage, Decimal('80.00'))
        self.assertEqual(alice.part_cassation, Decimal('80000'))
        self.assertEqual(bob.part_cassation, Decimal('20000'))
        self.assertEqual(repartition.total_distribue, Decimal('100000'))
        self.assertEqual(repartition.reliquat, Decimal('0'))

    def test_contribution_negative_exclue(self):
        """Test: un membre dont le crédit dépasse l'épargne ne reçoit rien"""
        repartition = calculer_repartition([position(1, 80000), position(2, 20000, 60000)], Decimal('50000'))

        alice, bob = repartition.parts
        self.assertEqual(bob.contribution_nette, Decimal('-40000'))
        self.assertEqual(bob.part_cassation, Decimal('0'))
        self.assertEqual(alice.part_cassation, Decimal('50000'))
        self.assertEqual(len(repartition.beneficiaires), 1)

    def test_arrondi_plus_grands_restes(self):
        """Test: parts au même pas, somme exactement égale au fonds"""
        positions = [position(1, 10000), position(2, 10000), position(3, 10000)]
        repartition = calculer_repartition(positions, Decimal('100000'))

        parts = [p.part_cassation for p in repartition.parts]
        self.assertEqual(parts, [Decimal('33350'), Decimal('33350'), Decimal('33300')])
        self.assertEqual(sum(parts), Decimal('100000'))

    def test_reliquat_au_plus_gros_contributeur(self):
        """Test: le reliquat inférieur au pas va au plus gros contributeur"""
        repartition = calculer_repartition([position(1, 40000), position(2, 60000)], Decimal('100010'))

        premier, second = repartition.parts
        self.assertEqual(repartition.reliquat, Decimal('10'))
        self.assertEqual(repartition.beneficiaire_reliquat_id, 2)
        self.assertEqual(second.part_cassation, Decimal('60010'))
        self.assertEqual(premier.part_cassation, Decimal('40000'))
        self.assertEqual(second.part_epargne, Decimal('60000'))
        self.assertEqual(second.part_interets, Decimal('10'))

    def test_fonds_non_distribuable(self):
        repartition = calculer_repartition([position(1, 0, 5000)], Decimal('20000'))

        self.assertFalse(repartition.distribuable)
        self.assertEqual(repartition.total_distribue, Decimal('0'))
        self.assertEqual(repartition.reliquat, Decimal('20000'))

    def test_fonds_vide(self):
        repartition = calculer_repartition([position(1, 10000)], Decimal('0'))
        self.assertFalse(repartition.distribuable)


class CassationTestCase(TestCase):
    """Tests pour l'application de la cassation"""

    def setUp(self):
        """Configuration initiale pour les tests"""
        self.session, _ = SessionService.creer_session()
        self.alice = Membre.objects.create(nom='Alice', caution=0)
        self.bob = Membre.objects.create(nom='Bob', caution=0)
        MouvementService.ajouter_mouvement(self.alice.id, 'epargne', 80000)
        MouvementService.ajouter_mouvement(self.bob.id, 'epargne', 20000)

    def test_simulation_sans_ecriture(self):
        nombre = Mouvement.objects.count()

        resultat = operations.simuler_cassation()

        self.assertTrue(resultat['success'])
        self.assertEqual(resultat['total_distribue'], Decimal('100000'))
        self.assertEqual([m['part_cassation'] for m in resultat['membres']], [Decimal('80000'), Decimal('20000')])
        self.assertEqual(Mouvement.objects.count(), nombre)
        self.assertFalse(Cassation.objects.exists())

    def test_appliquer_cassation(self):
        """Test: le fonds est vidé et l'épargne repart de zéro"""
        resultat = operations.appliquer_cassation()

        self.assertTrue(resultat['success'])
        self.assertEqual(SoldeService.calculer_solde(), Decimal('0'))
        self.assertEqual(SoldeService.projeter_epargne_membre(self.alice), Decimal('0'))
        self.assertEqual(SoldeService.projeter_epargne_membre(self.bob), Decimal('0'))
        self.alice.refresh_from_db()
        self.assertEqual(self.alice.solde_epargne, Decimal('0'))

        cassation = Cassation.objects.get(pk=resultat['cassation_id'])
        self.assertEqual(cassation.fonds_distribue, Decimal('100000'))
        self.assertEqual(cassation.nombre_beneficiaires, 2)
        self.assertEqual(cassation.session, self.session)
        parts = cassation.mouvements.filter(membre=self.alice)
        self.assertEqual(parts.get().montant, Decimal('-80000'))

    def test_etat_apres_cassation(self):
        operations.appliquer_cassation()

        etat = operations.get_etat_apres_cassation()

        self.assertTrue(etat['success'])
        alice = etat['membres'][0]
        self.assertEqual(alice['ancien_solde'], Decimal('80000'))
        self.assertEqual(alice['part_recue'], Decimal('80000'))
        self.assertEqual(alice['nouveau_solde'], Decimal('160000'))
        self.assertEqual(etat['membres'][1]['nouveau_solde'], Decimal('40000'))
        self.assertEqual(etat['solde_fonds'], Decimal('0'))

    def test_etat_sans_cassation(self):
        self.assertEqual(operations.get_etat_apres_cassation()['erreur'], 'NoCassationYet')

    def test_double_application_refusee(self):
        """Test: sans nouveau mouvement, une seconde application est refusée"""
        operations.appliquer_cassation()
        nombre = Mouvement.objects.count()

        resultat = operations.appliquer_cassation()

        self.assertEqual(resultat['erreur'], 'CassationAlreadyApplied')
        self.assertEqual(Mouvement.objects.count(), nombre)
        self.assertEqual(Cassation.objects.count(), 1)

    def test_nouveau_cycle_apres_cassation(self):
        """Test: seule l'épargne postérieure à la cassation compte"""
        operations.appliquer_cassation()
        MouvementService.ajouter_mouvement(self.alice.id, 'epargne', 3000)

        self.assertEqual(SoldeService.projeter_epargne_membre(self.alice), Decimal('3000'))
        resultat = operations.appliquer_cassation()

        self.assertTrue(resultat['success'])
        self.assertEqual(resultat['total_distribue'], Decimal('3000'))
        self.assertEqual(Cassation.objects.count(), 2)

    def test_fonds_vide_non_distribuable(self):
        MouvementService.ajouter_mouvement(self.alice.id, 'epargne', -80000)
        MouvementService.ajouter_mouvement(self.bob.id, 'epargne', -20000)

        resultat = operations.appliquer_cassation()

        self.assertEqual(resultat['erreur'], 'FundNotDistributable')
        self.assertFalse(Cassation.objects.exists())

    def test_membre_debiteur_garde_son_credit(self):
        """Test: le crédit restant n'est pas touché par la cassation"""
        credit = CreditService.accorder_credit(self.bob.id, 50000)

        operations.appliquer_cassation()

        credit.refresh_from_db()
        self.assertEqual(credit.montant_restant, Decimal('60000'))
        self.assertEqual(credit.statut, Credit.STATUT_ACTIF)
        self.assertFalse(Mouvement.objects.filter(membre=self.bob, type_mouvement=Mouvement.CASSATION).exists())
        self.assertEqual(SoldeService.calculer_solde(), Decimal('0'))

    def test_sessions_terminees_consolidees(self):
        SessionService.creer_session()

        operations.appliquer_cassation()

        self.session.refresh_from_db()
        self.assertEqual(self.session.statut, Session.STATUT_CASSATION)
        self.assertEqual(Session.objects.filter(statut=Session.STATUT_ACTIVE).count(), 1)

    def test_evenement_cassation(self):
        recus = []

        def recepteur(sender, **kwargs):
            recus.append(kwargs['total_distribue'])

        cassation_appliquee.connect(recepteur)
        self.addCleanup(cassation_appliquee.disconnect, recepteur)

        with self.captureOnCommitCallbacks(execute=True):
            operations.appliquer_cassation()

        self.assertEqual(recus, [Decimal('100000')])

    def test_echec_pendant_l_application(self):
        """Test: une erreur de stockage sur la seconde part ne laisse aucune trace"""
        nombre = Mouvement.objects.count()

        with echouer_a_l_ecriture(2), self.captureOnCommitCallbacks() as rappels:
            resultat = operations.appliquer_cassation()

        self.assertFalse(resultat['success'])
        self.assertEqual(resultat['erreur'], 'StorageError')
        self.assertFalse(Cassation.objects.exists())
        self.assertFalse(Mouvement.objects.filter(type_mouvement=Mouvement.CASSATION).exists())
        self.assertEqual(Mouvement.objects.count(), nombre)
        self.assertEqual(SoldeService.calculer_solde(), Decimal('100000'))
        self.alice.refresh_from_db()
        self.assertEqual(self.alice.solde_epargne, Decimal('80000'))
        self.assertEqual(rappels, [])

        self.assertTrue(operations.appliquer_cassation()['success'])


class NouveauCycleTestCase(TestCase):
    """Tests pour la préparation du cycle suivant"""

    def setUp(self):
        """Configuration initiale pour les tests"""
        SessionService.creer_session()
        self.alice = Membre.objects.create(nom='Alice', caution=0)
        self.bob = Membre.objects.create(nom='Bob', caution=0)
        MouvementService.ajouter_mouvement(self.alice.id, 'epargne', 80000)
        MouvementService.ajouter_mouvement(self.bob.id, 'epargne', 20000)
        CreditService.accorder_credit(self.bob.id, 50000)

    def test_preparer_nouveau_cycle(self):
        operations.appliquer_cassation()

        resultat = operations.preparer_nouveau_cycle()

        self.assertTrue(resultat['success'])
        self.assertTrue(resultat['cycle_pret'])
        self.assertEqual(resultat['nombre_membres'], 2)
        self.assertEqual(resultat['membres_en_excedent'], 1)
        self.assertEqual(resultat['membres_debiteurs'], 1)
        self.assertEqual(resultat['total_credits_restants'], Decimal('60000'))
        self.assertEqual(resultat['total_epargnes'], Decimal('0'))
        self.assertEqual(resultat['solde_fonds'], Decimal('0'))
        self.assertEqual(resultat['debiteurs'][0]['membre_id'], self.bob.id)
        self.assertTrue(CassationService.derniere_cassation().cycle_prepare)

    def test_preparer_sans_cassation(self):
        resultat = operations.preparer_nouveau_cycle()

        self.assertTrue(resultat['success'])
        self.assertFalse(resultat['cycle_pret'])
        self.assertIsNone(resultat['cassation_id'])
