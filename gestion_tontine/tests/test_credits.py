from datetime import date, timedelta
from decimal import Decimal

from django.test import TestCase
from django.utils import timezone

from gestion_tontine import operations
from gestion_tontine.exceptions import RemboursementExcessif
from gestion_tontine.models import Credit, Membre, Mouvement, Remboursement, prochain_31_aout
from gestion_tontine.services import CreditService, MouvementService, SessionService, SoldeService


class EcheanceTestCase(TestCase):
    """Tests pour le calcul de l'échéance par défaut"""

    def test_avant_le_31_aout(self):
        self.assertEqual(prochain_31_aout(date(2024, 3, 15)), date(2024, 8, 31))

    def test_le_31_aout(self):
        """Test: le 31 août lui-même renvoie à l'année suivante"""
        self.assertEqual(prochain_31_aout(date(2024, 8, 31)), date(2025, 8, 31))

    def test_apres_le_31_aout(self):
        self.assertEqual(prochain_31_aout(date(2024, 11, 2)), date(2025, 8, 31))


class OctroiCreditTestCase(TestCase):
    """Tests pour l'octroi des crédits"""

    def setUp(self):
        """Configuration initiale pour les tests"""
        SessionService.creer_session()
        self.membre = Membre.objects.create(nom='Alice', caution=0)
        MouvementService.ajouter_mouvement(self.membre.id, 'epargne', 2000000)

    def test_accorder_credit(self):
        """Test d'octroi: total dû = principal x 1,20, décaissement dans le fonds"""
        resultat = operations.accorder_credit(self.membre.id, 1000000)

        self.assertTrue(resultat['success'])
        credit = Credit.objects.get(pk=resultat['credit_id'])
        self.assertEqual(credit.montant_total_du, Decimal('1200000'))
        self.assertEqual(credit.montant_restant, Decimal('1200000'))
        self.assertEqual(credit.statut, Credit.STATUT_ACTIF)
        self.assertEqual(credit.date_echeance, prochain_31_aout(timezone.localdate()))

        decaissement = credit.mouvements.get()
        self.assertEqual(decaissement.type_mouvement, Mouvement.CREDIT)
        self.assertEqual(decaissement.montant, Decimal('-1000000'))

        fonds = operations.get_solde_fonds()
        self.assertEqual(fonds['solde'], Decimal('1000000'))
        self.assertEqual(fonds['solde_fictif'], Decimal('2200000'))
        self.assertEqual(fonds['total_credits_accordes'], Decimal('1000000'))
        self.assertEqual(fonds['total_credits_restants'], Decimal('1200000'))

    def test_total_du_arrondi(self):
        """Test de l'arrondi du total dû à l'unité"""
        credit = CreditService.accorder_credit(self.membre.id, '1000.50')
        self.assertEqual(credit.montant_total_du, Decimal('1201'))

    def test_echeance_explicite(self):
        resultat = operations.accorder_credit(self.membre.id, 5000, '2031-01-15')
        self.assertEqual(resultat['date_echeance'], date(2031, 1, 15))

    def test_echeance_invalide(self):
        resultat = operations.accorder_credit(self.membre.id, 5000, '2031-13-45')
        self.assertEqual(resultat['erreur'], 'InvalidDueDate')
        self.assertEqual(operations.accorder_credit(self.membre.id, 5000, '2031-02-30')['erreur'], 'InvalidDueDate')
        self.assertEqual(operations.accorder_credit(self.membre.id, 5000, 'demain')['erreur'], 'InvalidDueDate')
        self.assertEqual(operations.accorder_credit(self.membre.id, 5000, 20310115)['erreur'], 'InvalidDueDate')
        self.assertFalse(Credit.objects.exists())

    def test_principal_invalide(self):
        """Test de rejet des principaux nuls, négatifs ou non numériques"""
        for principal in [0, -5000, 'abc', 'NaN']:
            resultat = operations.accorder_credit(self.membre.id, principal)
            self.assertEqual(resultat['erreur'], 'InvalidPrincipal', principal)
        self.assertFalse(Credit.objects.exists())

    def test_membre_inconnu(self):
        resultat = operations.accorder_credit(9999, 5000)
        self.assertEqual(resultat['erreur'], 'UnknownMember')


class RemboursementCreditTestCase(TestCase):
    """Tests pour le remboursement des crédits"""

    def setUp(self):
        """Configuration initiale pour les tests"""
        SessionService.creer_session()
        self.membre = Membre.objects.create(nom='Alice', caution=0)
        MouvementService.ajouter_mouvement(self.membre.id, 'epargne', 2000000)
        self.credit = CreditService.accorder_credit(self.membre.id, 1000000)

    def test_remboursement_partiel(self):
        """Test d'un remboursement partiel"""
        resultat = operations.rembourser_credit(self.credit.id, 200000)

        self.assertTrue(resultat['success'])
        self.assertEqual(resultat['montant_restant'], Decimal('1000000'))
        self.assertEqual(resultat['statut'], Credit.STATUT_ACTIF)
        self.assertEqual(self.credit.remboursements.count(), 1)
        self.assertTrue(self.credit.mouvements.filter(
            type_mouvement=Mouvement.REMBOURSEMENT, montant=200000
        ).exists())
        self.assertEqual(SoldeService.calculer_solde(), Decimal('1200000'))

    def test_remboursement_total(self):
        """Test du passage au statut remboursé"""
        resultat = operations.rembourser_credit(self.credit.id, '1200000')

        self.assertEqual(resultat['statut'], Credit.STATUT_REMBOURSE)
        self.assertEqual(resultat['montant_restant'], Decimal('0'))
        self.assertEqual(operations.get_solde_fonds()['total_credits_restants'], Decimal('0'))

        resultat = operations.rembourser_credit(self.credit.id, 1)
        self.assertEqual(resultat['erreur'], 'ExcessRepayment')

    def test_remboursement_excessif(self):
        """Test: un dépassement est refusé et le reste dû est inchangé"""
        with self.assertRaises(RemboursementExcessif):
            CreditService.rembourser_credit(self.credit.id, 1200001)

        self.credit.refresh_from_db()
        self.assertEqual(self.credit.montant_restant, Decimal('1200000'))
        self.assertFalse(Remboursement.objects.exists())
        self.assertFalse(Mouvement.objects.filter(type_mouvement=Mouvement.REMBOURSEMENT).exists())

    def test_montant_invalide(self):
        for montant in [0, -100, 'abc']:
            resultat = operations.rembourser_credit(self.credit.id, montant)
            self.assertEqual(resultat['erreur'], 'InvalidAmount', montant)

    def test_credit_inconnu(self):
        self.assertEqual(operations.rembourser_credit(9999, 100)['erreur'], 'CreditNotFound')

    def test_supprimer_credit(self):
        """Test de suppression: l'impact sur le fonds est annulé"""
        operations.rembourser_credit(self.credit.id, 100000)

        resultat = operations.supprimer_credit(self.credit.id)

        self.assertTrue(resultat['success'])
        self.assertFalse(Credit.objects.exists())
        self.assertFalse(Mouvement.objects.filter(credit__isnull=False).exists())
        self.assertEqual(SoldeService.calculer_solde(), Decimal('2000000'))
        self.assertEqual(operations.supprimer_credit(self.credit.id)['erreur'], 'CreditNotFound')

    def test_controler_restes_credits(self):
        """Test du signalement d'un reste dû divergent (sans correction)"""
        operations.rembourser_credit(self.credit.id, 100000)
        self.assertEqual(CreditService.controler_restes_credits(), [])

        Credit.objects.filter(pk=self.credit.pk).update(montant_restant=5)
        ecarts = CreditService.controler_restes_credits()

        self.assertEqual(len(ecarts), 1)
        self.assertEqual(ecarts[0]['attendu'], Decimal('1100000'))
        self.credit.refresh_from_db()
        self.assertEqual(self.credit.montant_restant, Decimal('5'))


class PenaliteCreditTestCase(TestCase):
    """Tests pour les pénalités appliquées à l'ouverture des sessions"""

    def setUp(self):
        """Configuration initiale pour les tests"""
        SessionService.creer_session()
        self.membre = Membre.objects.create(nom='Alice', caution=0)
        MouvementService.ajouter_mouvement(self.membre.id, 'epargne', 2000000)
        hier = timezone.localdate() - timedelta(days=1)
        self.credit = CreditService.accorder_credit(self.membre.id, 1000000, date_echeance=hier)

    def test_penalite_a_l_ouverture(self):
        """Test: 1 000 000 accordé -> 1 200 000 dû -> 1 440 000 après une session impayée"""
        solde_avant = SoldeService.calculer_solde()

        resultat = operations.creer_session()

        self.assertEqual(resultat['credits_penalises'], 1)
        self.credit.refresh_from_db()
        self.assertEqual(self.credit.montant_restant, Decimal('1440000'))
        self.assertEqual(self.credit.statut, Credit.STATUT_EN_RETARD)
        self.assertEqual(self.credit.penalites_cumulees, Decimal('240000'))
        self.assertEqual(self.credit.penalite_due, Decimal('240000'))
        self.assertEqual(self.credit.derniere_session_penalisee_id, resultat['session_id'])
        self.assertEqual(SoldeService.calculer_solde(), solde_avant)

        fonds = operations.get_solde_fonds()
        self.assertEqual(fonds['total_interets'], Decimal('240000'))
        self.assertEqual(fonds['total_credits_restants'], Decimal('1440000'))

    def test_penalite_une_seule_fois_par_session(self):
        """Test: un crédit n'est pénalisé qu'une fois pour une même session"""
        session, _ = SessionService.creer_session()

        self.assertEqual(CreditService.appliquer_penalites(session), 0)
        self.credit.refresh_from_db()
        self.assertEqual(self.credit.montant_restant, Decimal('1440000'))

    def test_penalites_successives(self):
        SessionService.creer_session()
        SessionService.creer_session()

        self.credit.refresh_from_db()
        self.assertEqual(self.credit.montant_restant, Decimal('1728000'))
        self.assertEqual(self.credit.penalites_cumulees, Decimal('528000'))

    def test_credit_non_echu_non_penalise(self):
        credit = CreditService.accorder_credit(self.membre.id, 10000)

        SessionService.creer_session()

        credit.refresh_from_db()
        self.assertEqual(credit.montant_restant, Decimal('12000'))
        self.assertEqual(credit.statut, Credit.STATUT_ACTIF)

    def test_remboursement_penalite(self):
        """Test: payer la pénalité due remet le crédit à l'état actif"""
        SessionService.creer_session()

        resultat = operations.rembourser_credit(self.credit.id, 240000, 'penalite')

        self.assertTrue(resultat['success'])
        self.assertEqual(resultat['statut'], Credit.STATUT_ACTIF)
        self.assertEqual(resultat['montant_restant'], Decimal('1200000'))
        self.credit.refresh_from_db()
        self.assertEqual(self.credit.penalite_due, Decimal('0'))

    def test_remboursement_penalite_excessif(self):
        SessionService.creer_session()

        resultat = operations.rembourser_credit(self.credit.id, 240001, 'penalite')

        self.assertEqual(resultat['erreur'], 'ExcessRepayment')

    def test_remboursement_principal_garde_le_retard(self):
        SessionService.creer_session()

        resultat = operations.rembourser_credit(self.credit.id, 100000)

        self.assertEqual(resultat['statut'], Credit.STATUT_EN_RETARD)
        self.assertEqual(resultat['montant_restant'], Decimal('1340000'))
