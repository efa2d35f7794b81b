import logging
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation, ROUND_DOWN, ROUND_HALF_UP

from django.db import IntegrityError, transaction
from django.db.models import Max, Q, Sum
from django.utils import timezone
from django.utils.dateparse import parse_date

from .cassation import PositionMembre, calculer_repartition
from .conf import parametre
from .events import (
    cassation_appliquee, credit_mis_a_jour, credit_supprime, emettre_apres_commit,
    fonds_mis_a_jour, mouvements_mis_a_jour, session_mise_a_jour,
)
from .exceptions import (
    AucuneCassation, CassationDejaAppliquee, CategorieDepenseInvalide, CreditIntrouvable,
    DateEcheanceInvalide, DateInvalide, DepenseIntrouvable, EpargneInsuffisante,
    FondsNonDistribuable, MembreInconnu, MontantInvalide, MouvementIntrouvable,
    MouvementVerrouille, PrincipalInvalide, RemboursementExcessif, SessionDejaActive,
    SessionIntrouvable, SessionNonActive, SuppressionSessionActive, TypeMouvementInvalide,
)
from .models import (
    Cassation, Credit, DepenseCommune, Membre, Mouvement, Remboursement, Session,
    SessionMembre, prochain_31_aout,
)

logger = logging.getLogger(__name__)

ZERO = Decimal('0')
CENTIME = Decimal('0.01')
UNITE = Decimal('1')
MONTANT_MAXIMUM = Decimal('10000000000000')


def normaliser_montant(valeur, erreur=MontantInvalide):
    """Convertit `valeur` en Decimal fini à deux décimales au plus, sans arrondi."""
    if isinstance(valeur, bool) or valeur is None:
        raise erreur()
    try:
        montant = Decimal(str(valeur).strip())
    except (InvalidOperation, TypeError, ValueError):
        raise erreur()
    if not montant.is_finite() or abs(montant) >= MONTANT_MAXIMUM:
        raise erreur()
    if montant != montant.quantize(CENTIME):
        raise erreur("Le montant ne peut pas comporter plus de deux décimales.")
    return montant


def lire_date(valeur, erreur=DateInvalide):
    """Accepte une date ou une chaîne AAAA-MM-JJ; une valeur vide donne None."""
    if valeur is None or valeur == '':
        return None
    if isinstance(valeur, datetime):
        return valeur.date()
    if isinstance(valeur, date):
        return valeur
    if not isinstance(valeur, str):
        raise erreur()
    try:
        jour = parse_date(valeur)
    except ValueError:
        jour = None
    if jour is None:
        raise erreur()
    return jour


def _somme(queryset, champ='montant'):
    return queryset.aggregate(total=Sum(champ))['total'] or ZERO


def _notifier_mouvements(membre_ids):
    emettre_apres_commit(mouvements_mis_a_jour, membre_ids=sorted(set(membre_ids)))
    emettre_apres_commit(fonds_mis_a_jour, solde=SoldeService.calculer_solde())


class SoldeService:
    """Projections du grand livre: épargne des membres et situation du fonds"""

    @staticmethod
    def borne_derniere_cassation():
        """Identifiant du dernier mouvement consolidé par une cassation (0 si aucune)"""
        derniere = Cassation.objects.order_by('-id').first()
        return derniere.borne_mouvement_id if derniere else 0

    @staticmethod
    def calculer_solde():
        """Solde réel du fonds: somme de tous les mouvements signés"""
        return _somme(Mouvement.objects.all())

    @staticmethod
    def projeter_epargne_membre(membre):
        """Épargne d'un membre depuis la dernière cassation (définition de référence)"""
        membre_id = getattr(membre, 'pk', membre)
        return _somme(Mouvement.objects.filter(
            membre_id=membre_id,
            type_mouvement__in=Mouvement.TYPES_EPARGNE,
            id__gt=SoldeService.borne_derniere_cassation(),
        ))

    @staticmethod
    def synchroniser_solde_membre(membre):
        """Aligne le cache `solde_epargne` sur la projection"""
        solde = SoldeService.projeter_epargne_membre(membre)
        if membre.solde_epargne != solde:
            Membre.objects.filter(pk=membre.pk).update(solde_epargne=solde)
            membre.solde_epargne = solde
        return solde

    @staticmethod
    def projeter_solde_fonds():
        """Situation complète du fonds (aucun effet de bord)"""
        borne = SoldeService.borne_derniere_cassation()
        totaux = Mouvement.objects.aggregate(
            solde=Sum('montant'),
            epargnes=Sum('montant', filter=Q(type_mouvement__in=Mouvement.TYPES_EPARGNE, id__gt=borne)),
            remboursements=Sum('montant', filter=Q(type_mouvement=Mouvement.REMBOURSEMENT)),
            interets=Sum('montant', filter=Q(type_mouvement__in=Mouvement.TYPES_INTERETS)),
            depenses=Sum('montant', filter=Q(type_mouvement__in=Mouvement.TYPES_DEPENSES_COMMUNES)),
            cassations=Sum('montant', filter=Q(type_mouvement=Mouvement.CASSATION)),
        )
        credits = Credit.objects.aggregate(
            accordes=Sum('montant_principal'),
            restants=Sum('montant_restant', filter=~Q(statut=Credit.STATUT_REMBOURSE)),
        )
        solde = totaux['solde'] or ZERO
        restants = credits['restants'] or ZERO
        return {
            'solde': solde,
            'solde_fictif': solde + restants,
            'total_epargnes_nettes': totaux['epargnes'] or ZERO,
            'total_credits_accordes': credits['accordes'] or ZERO,
            'total_credits_restants': restants,
            'total_remboursements': totaux['remboursements'] or ZERO,
            'total_interets': totaux['interets'] or ZERO,
            'total_depenses_communes': ZERO - (totaux['depenses'] or ZERO),
            'total_cassation_distribuee': ZERO - (totaux['cassations'] or ZERO),
        }

    @staticmethod
    def resynchroniser_soldes_epargne():
        """Réparation idempotente: recalcule le cache d'épargne de chaque membre.

        Retourne la liste des corrections effectuées.
        """
        corrections = []
        with transaction.atomic():
            for membre in Membre.objects.select_for_update().order_by('id'):
                ancien = membre.solde_epargne
                nouveau = SoldeService.synchroniser_solde_membre(membre)
                if ancien != nouveau:
                    corrections.append({'membre_id': membre.id, 'ancien': ancien, 'nouveau': nouveau})
        for correction in corrections:
            logger.warning(
                f"Cache d'épargne corrigé pour le membre {correction['membre_id']}: "
                f"{correction['ancien']} -> {correction['nouveau']}"
            )
        return corrections


class MouvementService:
    """Grand livre: enregistrement et correction des mouvements"""

    @staticmethod
    def verifier_sens(type_mouvement, montant):
        if montant == 0:
            raise MontantInvalide()
        sens = Mouvement.SENS_PAR_TYPE[type_mouvement]
        if sens is not None and (montant > 0) != (sens > 0):
            attendu = 'positif' if sens > 0 else 'négatif'
            raise MontantInvalide(f"Le montant d'un mouvement '{type_mouvement}' doit être {attendu}.")

    @staticmethod
    def enregistrer(membre, type_mouvement, montant, motif='', session=None, credit=None,
                    cassation=None, depense=None, date=None):
        """Écrit une ligne du grand livre (usage interne des services)"""
        MouvementService.verifier_sens(type_mouvement, montant)
        if session is None:
            session = SessionService.session_active()
        mouvement = Mouvement.objects.create(
            membre=membre,
            type_mouvement=type_mouvement,
            montant=montant,
            motif=motif or '',
            date=date or timezone.now(),
            session=session,
            credit=credit,
            cassation=cassation,
            depense=depense,
        )
        if type_mouvement in Mouvement.TYPES_EPARGNE:
            SoldeService.synchroniser_solde_membre(membre)
        titulaire = f"le membre {membre.id}" if membre else "le fonds commun"
        logger.info(
            f"Mouvement {mouvement.id} enregistré: {type_mouvement} {montant} FCFA "
            f"pour {titulaire} (session {session.numero if session else '-'})"
        )
        return mouvement

    @staticmethod
    def ajouter_mouvement(membre_id, type_mouvement, montant, motif='', session_id=None):
        """Ajoute un mouvement saisi par l'utilisateur"""
        membre = MembreService.obtenir(membre_id)
        if type_mouvement not in Mouvement.SENS_PAR_TYPE:
            raise TypeMouvementInvalide(f"Type de mouvement inconnu: {type_mouvement!r}.")
        if type_mouvement in Mouvement.TYPES_RESERVES:
            raise TypeMouvementInvalide(
                f"Le type '{type_mouvement}' est réservé aux opérations de crédit, de prélèvement et de cassation."
            )
        montant = normaliser_montant(montant)

        with transaction.atomic():
            session = None
            if session_id is not None:
                session = SessionService.obtenir(session_id)
                if not session.est_active:
                    raise SessionNonActive()
            mouvement = MouvementService.enregistrer(membre, type_mouvement, montant, motif, session=session)
            _notifier_mouvements([membre.id])
        return mouvement

    @staticmethod
    def est_verrouille(mouvement):
        """Un mouvement consolidé par une cassation ne peut plus changer"""
        return mouvement.id <= SoldeService.borne_derniere_cassation()

    @staticmethod
    def _obtenir_modifiable(mouvement_id):
        try:
            mouvement = (
                Mouvement.objects.select_for_update(of=('self',))
                .select_related('membre', 'session')
                .get(pk=mouvement_id)
            )
        except (Mouvement.DoesNotExist, ValueError, TypeError):
            raise MouvementIntrouvable()
        if mouvement.type_mouvement in Mouvement.TYPES_RESERVES:
            raise MouvementVerrouille(
                "Ce mouvement est géré par les opérations de crédit, de prélèvement ou de cassation."
            )
        if mouvement.depense_id:
            raise MouvementVerrouille(
                "Ce mouvement appartient à une dépense commune: corrigez la dépense."
            )
        if MouvementService.est_verrouille(mouvement):
            raise MouvementVerrouille()
        return mouvement

    @staticmethod
    def modifier_mouvement(mouvement_id, montant=None, motif=None):
        """Corrige le montant et/ou le motif d'un mouvement non consolidé"""
        with transaction.atomic():
            mouvement = MouvementService._obtenir_modifiable(mouvement_id)
            if montant is not None:
                montant = normaliser_montant(montant)
                MouvementService.verifier_sens(mouvement.type_mouvement, montant)
                mouvement.montant = montant
            if motif is not None:
                mouvement.motif = motif
            mouvement.save(update_fields=['montant', 'motif'])
            SoldeService.synchroniser_solde_membre(mouvement.membre)
            SessionService.reprojeter_sessions([mouvement.session])
            _notifier_mouvements([mouvement.membre_id])
        logger.info(f"Mouvement {mouvement.id} modifié: {mouvement.montant} FCFA")
        return mouvement

    @staticmethod
    def supprimer_mouvement(mouvement_id):
        """Supprime un mouvement non consolidé et re-projette les soldes"""
        with transaction.atomic():
            mouvement = MouvementService._obtenir_modifiable(mouvement_id)
            membre = mouvement.membre
            session = mouvement.session
            mouvement.delete()
            SoldeService.synchroniser_solde_membre(membre)
            SessionService.reprojeter_sessions([session])
            _notifier_mouvements([membre.id])
        logger.info(f"Mouvement {mouvement_id} supprimé")

    @staticmethod
    def prelever_cotisation(montant, type_cotisation='annuelle', motif='', date=None):
        """Prélève une cotisation identique sur l'épargne de chaque membre.

        Toutes les épargnes sont vérifiées avant la moindre écriture; la
        cotisation entre dans le fonds commun et le prélèvement sort de
        l'épargne, le solde du fonds est donc inchangé. Les mouvements sont
        datés du jour `date` (AAAA-MM-JJ) quand il est fourni.
        """
        types = {
            'annuelle': Mouvement.COTISATION_ANNUELLE,
            'ponctuel': Mouvement.VERSEMENT_PONCTUEL,
        }
        if type_cotisation not in types:
            raise TypeMouvementInvalide(f"Type de cotisation inconnu: {type_cotisation!r}.")
        montant = normaliser_montant(montant)
        if montant <= 0:
            raise MontantInvalide("Le montant de la cotisation doit être positif.")
        type_mouvement = types[type_cotisation]
        jour = lire_date(date)
        horodatage = timezone.make_aware(datetime.combine(jour, time.min)) if jour else None
        if not motif:
            libelle = dict(Mouvement.TYPE_CHOICES)[type_mouvement]
            motif = f"{libelle} - {jour:%d/%m/%Y}" if jour else f"{libelle} prélevée sur l'épargne"

        with transaction.atomic():
            membres = list(Membre.objects.select_for_update().order_by('id'))
            insuffisants = [
                m for m in membres if SoldeService.projeter_epargne_membre(m) < montant
            ]
            if insuffisants:
                noms = ', '.join(m.nom for m in insuffisants)
                raise EpargneInsuffisante(
                    f"Épargne insuffisante pour: {noms}.",
                    membre_ids=[m.id for m in insuffisants],
                )
            for membre in membres:
                MouvementService.enregistrer(membre, type_mouvement, montant, motif, date=horodatage)
                MouvementService.enregistrer(membre, Mouvement.PRELEVEMENT_EPARGNE, -montant, motif,
                                             date=horodatage)
            if membres:
                _notifier_mouvements([m.id for m in membres])
        logger.info(f"Cotisation {type_cotisation} de {montant} FCFA prélevée sur {len(membres)} membre(s)")
        return len(membres)


class DepenseService:
    """Dépenses communes: payées par le fonds ou réparties sur l'épargne des membres.

    Chaque dépense est conservée avec sa catégorie; ses mouvements du grand
    livre lui sont rattachés et ne se corrigent qu'à travers elle.
    """

    @staticmethod
    def verifier_categorie(categorie):
        if categorie not in dict(DepenseCommune.CATEGORIE_CHOICES):
            raise CategorieDepenseInvalide(f"Catégorie de dépense inconnue: {categorie!r}.")

    @staticmethod
    def normaliser(montant):
        montant = normaliser_montant(montant)
        if montant <= 0:
            raise MontantInvalide("Le montant de la dépense doit être positif.")
        return montant

    @staticmethod
    def obtenir(depense_id):
        try:
            return DepenseCommune.objects.select_for_update().get(pk=depense_id)
        except (DepenseCommune.DoesNotExist, ValueError, TypeError):
            raise DepenseIntrouvable(f"Dépense commune introuvable: {depense_id}.")

    @staticmethod
    def calculer_parts(montant, membres):
        """Parts égales au centime inférieur, le reste sur le dernier membre"""
        part = (montant / len(membres)).quantize(CENTIME, rounding=ROUND_DOWN)
        if part <= 0:
            raise MontantInvalide("Le montant est trop faible pour être réparti.")
        derniere_part = montant - part * (len(membres) - 1)
        return [
            (membre, derniere_part if index == len(membres) - 1 else part)
            for index, membre in enumerate(membres)
        ]

    @staticmethod
    def _ecrire_mouvements(depense):
        motif = depense.get_categorie_display()
        if depense.description:
            motif = f"{motif}: {depense.description}"
        if not depense.sur_epargne:
            MouvementService.enregistrer(
                None, Mouvement.DEPENSE_COMMUNE_FONDS, -depense.montant, motif,
                session=depense.session, depense=depense, date=depense.date,
            )
            return []
        membres = list(Membre.objects.select_for_update().order_by('id'))
        if not membres:
            raise MembreInconnu("Aucun membre sur qui répartir la dépense.")
        parts = DepenseService.calculer_parts(depense.montant, membres)
        for membre, part in parts:
            MouvementService.enregistrer(
                membre, Mouvement.DEPENSE_COMMUNE_EPARGNE, -part, motif,
                session=depense.session, depense=depense, date=depense.date,
            )
        return parts

    @staticmethod
    def _effacer_mouvements(depense):
        """Supprime les mouvements d'une dépense non consolidée; retourne les membres touchés"""
        mouvements = list(depense.mouvements.select_for_update(of=('self',)).select_related('membre'))
        if any(MouvementService.est_verrouille(m) for m in mouvements):
            raise MouvementVerrouille("Cette dépense a été consolidée par une cassation.")
        membres = {m.membre_id: m.membre for m in mouvements if m.membre_id}
        depense.mouvements.all().delete()
        return list(membres.values())

    @staticmethod
    def ajouter_depense_commune(montant, categorie=DepenseCommune.CATEGORIE_AUTRES, description='',
                                sur_epargne=True):
        """Enregistre une dépense commune prise sur le fonds ou répartie sur l'épargne"""
        DepenseService.verifier_categorie(categorie)
        montant = DepenseService.normaliser(montant)

        with transaction.atomic():
            depense = DepenseCommune.objects.create(
                description=description or '',
                montant=montant,
                categorie=categorie,
                sur_epargne=sur_epargne,
                session=SessionService.session_active(),
            )
            parts = DepenseService._ecrire_mouvements(depense)
            _notifier_mouvements([membre.id for membre, _ in parts])
        mode = f"répartie sur {len(parts)} membre(s)" if sur_epargne else "prise sur le fonds commun"
        logger.info(f"Dépense commune {depense.id} ({categorie}) de {montant} FCFA {mode}")
        return depense, parts

    @staticmethod
    def modifier_depense_commune(depense_id, montant=None, categorie=None, description=None):
        """Corrige une dépense non consolidée et réécrit ses mouvements"""
        if categorie is not None:
            DepenseService.verifier_categorie(categorie)
        if montant is not None:
            montant = DepenseService.normaliser(montant)

        with transaction.atomic():
            depense = DepenseService.obtenir(depense_id)
            anciens = DepenseService._effacer_mouvements(depense)
            if montant is not None:
                depense.montant = montant
            if categorie is not None:
                depense.categorie = categorie
            if description is not None:
                depense.description = description
            depense.save(update_fields=['montant', 'categorie', 'description'])
            parts = DepenseService._ecrire_mouvements(depense)
            for membre in anciens:
                SoldeService.synchroniser_solde_membre(membre)
            SessionService.reprojeter_sessions([depense.session])
            _notifier_mouvements([m.id for m in anciens] + [membre.id for membre, _ in parts])
        logger.info(f"Dépense commune {depense.id} modifiée: {depense.montant} FCFA")
        return depense

    @staticmethod
    def supprimer_depense_commune(depense_id):
        """Supprime une dépense non consolidée et ses mouvements"""
        with transaction.atomic():
            depense = DepenseService.obtenir(depense_id)
            anciens = DepenseService._effacer_mouvements(depense)
            session = depense.session
            depense.delete()
            for membre in anciens:
                SoldeService.synchroniser_solde_membre(membre)
            SessionService.reprojeter_sessions([session])
            _notifier_mouvements([m.id for m in anciens])
        logger.info(f"Dépense commune {depense_id} supprimée")

    @staticmethod
    def lister_depenses_communes(categorie=None):
        depenses = DepenseCommune.objects.order_by('date', 'id')
        if categorie:
            depenses = depenses.filter(categorie=categorie)
        return [
            {
                'id': d.id,
                'description': d.description,
                'montant': d.montant,
                'categorie': d.categorie,
                'sur_epargne': d.sur_epargne,
                'date': d.date,
                'session_id': d.session_id,
            }
            for d in depenses
        ]


class MembreService:
    """Opérations financières liées aux membres"""

    @staticmethod
    def obtenir(membre_id):
        try:
            return Membre.objects.get(pk=membre_id)
        except (Membre.DoesNotExist, ValueError, TypeError):
            raise MembreInconnu(f"Membre introuvable: {membre_id}.")

    @staticmethod
    def inscrire_membre(nom, caution=None, telephone='', profession='', ville=''):
        """Inscrit un membre et enregistre le dépôt de sa caution"""
        caution = parametre('CAUTION_PAR_DEFAUT') if caution is None else normaliser_montant(caution)
        if caution < 0:
            raise MontantInvalide("La caution ne peut pas être négative.")
        with transaction.atomic():
            membre = Membre.objects.create(
                nom=nom, caution=caution, telephone=telephone, profession=profession, ville=ville,
            )
            if caution > 0:
                MouvementService.enregistrer(membre, Mouvement.DEPOT_CAUTION, caution, "Dépôt de caution")
            _notifier_mouvements([membre.id])
        logger.info(f"Membre {membre.id} inscrit ({membre.nom}), caution {caution} FCFA")
        return membre

    @staticmethod
    def supprimer_membre(membre_id):
        """Supprime un membre avec ses remboursements, crédits, cumuls et mouvements.

        Refusé si un de ses mouvements a déjà été consolidé par une cassation.
        """
        with transaction.atomic():
            membre = MembreService.obtenir(membre_id)
            mouvements = Mouvement.objects.filter(membre=membre)
            if mouvements.filter(id__lte=SoldeService.borne_derniere_cassation()).exists():
                raise MouvementVerrouille(
                    "Ce membre a des mouvements consolidés par une cassation et ne peut pas être supprimé."
                )
            sessions = list(Session.objects.filter(mouvements__membre=membre).distinct())
            credit_ids = list(membre.credits.values_list('id', flat=True))

            nb_mouvements = mouvements.count()
            mouvements.delete()
            Remboursement.objects.filter(credit_id__in=credit_ids).delete()
            Credit.objects.filter(id__in=credit_ids).delete()
            SessionMembre.objects.filter(membre=membre).delete()
            membre.delete()

            SessionService.reprojeter_sessions(sessions)
            _notifier_mouvements([membre_id])
            for credit_id in credit_ids:
                emettre_apres_commit(credit_supprime, credit_id=credit_id)
        logger.info(
            f"Membre {membre_id} supprimé avec {len(credit_ids)} crédit(s) et {nb_mouvements} mouvement(s)"
        )

    @staticmethod
    def details_membre(membre_id):
        membre = MembreService.obtenir(membre_id)
        credits = membre.credits.order_by('-date_accord', '-id')
        return {
            'id': membre.id,
            'nom': membre.nom,
            'telephone': membre.telephone,
            'profession': membre.profession,
            'ville': membre.ville,
            'date_adhesion': membre.date_adhesion,
            'caution': membre.caution,
            'solde_epargne': SoldeService.projeter_epargne_membre(membre),
            'credit_restant': membre.credit_restant,
            'credits': [
                {
                    'id': c.id,
                    'montant_principal': c.montant_principal,
                    'montant_total_du': c.montant_total_du,
                    'montant_restant': c.montant_restant,
                    'penalite_due': c.penalite_due,
                    'date_accord': c.date_accord,
                    'date_echeance': c.date_echeance,
                    'statut': c.statut,
                }
                for c in credits
            ],
        }

    @staticmethod
    def historique_membre(membre_id):
        membre = MembreService.obtenir(membre_id)
        return [
            {
                'id': m.id,
                'type_mouvement': m.type_mouvement,
                'montant': m.montant,
                'motif': m.motif,
                'date': m.date,
                'session_id': m.session_id,
                'credit_id': m.credit_id,
            }
            for m in membre.mouvements.order_by('date', 'id')
        ]


class CreditService:
    """Cycle de vie des crédits: octroi, remboursement, pénalités, suppression"""

    @staticmethod
    def calculer_total_du(principal):
        return (principal * parametre('TAUX_INTERET_CREDIT')).quantize(UNITE, rounding=ROUND_HALF_UP)

    @staticmethod
    def obtenir(credit_id, verrouiller=False):
        queryset = Credit.objects.select_related('membre')
        if verrouiller:
            queryset = queryset.select_for_update()
        try:
            return queryset.get(pk=credit_id)
        except (Credit.DoesNotExist, ValueError, TypeError):
            raise CreditIntrouvable(f"Crédit introuvable: {credit_id}.")

    @staticmethod
    def accorder_credit(membre_id, montant_principal, date_echeance=None, date_accord=None):
        """Accorde un crédit: total dû = principal x 1,20, échéance au prochain 31 août par défaut"""
        principal = normaliser_montant(montant_principal, erreur=PrincipalInvalide)
        if principal <= 0:
            raise PrincipalInvalide()
        membre = MembreService.obtenir(membre_id)
        date_echeance = lire_date(date_echeance, erreur=DateEcheanceInvalide)
        date_accord = date_accord or timezone.localdate()

        with transaction.atomic():
            total_du = CreditService.calculer_total_du(principal)
            credit = Credit.objects.create(
                membre=membre,
                montant_principal=principal,
                montant_total_du=total_du,
                montant_restant=total_du,
                date_accord=date_accord,
                date_echeance=date_echeance or prochain_31_aout(date_accord),
            )
            MouvementService.enregistrer(
                membre, Mouvement.CREDIT, -principal,
                f"Décaissement du crédit {credit.id}", credit=credit,
            )
            emettre_apres_commit(credit_mis_a_jour, credit_id=credit.id,
                                 montant_restant=credit.montant_restant, statut=credit.statut)
            _notifier_mouvements([membre.id])
        logger.info(
            f"Crédit {credit.id} accordé au membre {membre.id}: {principal} FCFA, "
            f"{total_du} FCFA à rembourser avant le {credit.date_echeance}"
        )
        return credit

    @staticmethod
    def rembourser_credit(credit_id, montant, type_remboursement=Remboursement.TYPE_PRINCIPAL):
        """Enregistre un remboursement; tout dépassement du reste dû est refusé"""
        if type_remboursement not in dict(Remboursement.TYPE_CHOICES):
            raise TypeMouvementInvalide(f"Type de remboursement inconnu: {type_remboursement!r}.")

        with transaction.atomic():
            credit = CreditService.obtenir(credit_id, verrouiller=True)
            montant = normaliser_montant(montant)
            if montant <= 0:
                raise MontantInvalide("Le montant de remboursement doit être positif.")
            if montant > credit.montant_restant:
                raise RemboursementExcessif(
                    f"Le montant dépasse le reste à payer ({credit.montant_restant} FCFA)."
                )
            if type_remboursement == Remboursement.TYPE_PENALITE and montant > credit.penalite_due:
                raise RemboursementExcessif(
                    f"Le montant dépasse la pénalité due ({credit.penalite_due} FCFA)."
                )

            credit.montant_restant -= montant
            if type_remboursement == Remboursement.TYPE_PENALITE:
                credit.penalite_due -= montant
            else:
                credit.penalite_due = min(credit.penalite_due, credit.montant_restant)

            if credit.montant_restant == 0:
                credit.statut = Credit.STATUT_REMBOURSE
                credit.penalite_due = ZERO
            elif credit.statut == Credit.STATUT_EN_RETARD and credit.penalite_due == 0:
                credit.statut = Credit.STATUT_ACTIF
            credit.save(update_fields=['montant_restant', 'penalite_due', 'statut'])

            Remboursement.objects.create(credit=credit, montant=montant, type_remboursement=type_remboursement)
            MouvementService.enregistrer(
                credit.membre, Mouvement.REMBOURSEMENT, montant,
                f"Remboursement du crédit {credit.id}", credit=credit,
            )
            emettre_apres_commit(credit_mis_a_jour, credit_id=credit.id,
                                 montant_restant=credit.montant_restant, statut=credit.statut)
            _notifier_mouvements([credit.membre_id])
        logger.info(f"Remboursement de {montant} FCFA sur le crédit {credit.id}, reste {credit.montant_restant} FCFA")
        return credit

    @staticmethod
    def appliquer_penalites(session):
        """Reconduit avec 20 % de pénalité les crédits échus non remboursés.

        Appelée une seule fois à l'ouverture de `session`; un crédit déjà
        pénalisé pour cette session est ignoré. Retourne le nombre de crédits
        pénalisés.
        """
        taux = parametre('TAUX_PENALITE')
        credits = (
            Credit.objects.select_for_update()
            .select_related('membre')
            .exclude(statut=Credit.STATUT_REMBOURSE)
            .exclude(derniere_session_penalisee=session)
            .filter(date_echeance__lt=timezone.localdate())
            .order_by('id')
        )
        penalises = 0
        for credit in credits:
            ancien_restant = credit.montant_restant
            nouveau_restant = (ancien_restant * taux).quantize(UNITE, rounding=ROUND_HALF_UP)
            penalite = nouveau_restant - ancien_restant
            credit.derniere_session_penalisee = session
            if penalite <= 0:
                credit.save(update_fields=['derniere_session_penalisee'])
                continue
            credit.montant_restant = nouveau_restant
            credit.penalites_cumulees += penalite
            credit.penalite_due += penalite
            credit.statut = Credit.STATUT_EN_RETARD
            credit.save(update_fields=[
                'montant_restant', 'penalites_cumulees', 'penalite_due', 'statut', 'derniere_session_penalisee',
            ])
            motif = f"Pénalité de retard sur le crédit {credit.id} ({session})"
            MouvementService.enregistrer(credit.membre, Mouvement.PENALITE, penalite, motif,
                                         session=session, credit=credit)
            MouvementService.enregistrer(credit.membre, Mouvement.RECONDUCTION, -penalite, motif,
                                         session=session, credit=credit)
            emettre_apres_commit(credit_mis_a_jour, credit_id=credit.id,
                                 montant_restant=credit.montant_restant, statut=credit.statut)
            penalises += 1
            logger.info(
                f"Crédit {credit.id} pénalisé: {ancien_restant} -> {nouveau_restant} FCFA"
            )
        return penalises

    @staticmethod
    def supprimer_credit(credit_id):
        """Supprime un crédit, ses remboursements et ses mouvements"""
        with transaction.atomic():
            credit = CreditService.obtenir(credit_id, verrouiller=True)
            mouvements = credit.mouvements.all()
            if mouvements.filter(id__lte=SoldeService.borne_derniere_cassation()).exists():
                raise MouvementVerrouille(
                    "Ce crédit a des mouvements consolidés par une cassation et ne peut pas être supprimé."
                )
            sessions = list(Session.objects.filter(mouvements__credit=credit).distinct())
            membre_id = credit.membre_id
            mouvements.delete()
            credit.remboursements.all().delete()
            credit.delete()
            SessionService.reprojeter_sessions(sessions)
            emettre_apres_commit(credit_supprime, credit_id=credit_id)
            _notifier_mouvements([membre_id])
        logger.info(f"Crédit {credit_id} supprimé")

    @staticmethod
    def controler_restes_credits():
        """Compare le reste dû de chaque crédit au total dû moins les remboursements.

        Le reste n'est jamais réécrit ici: les écarts sont seulement signalés.
        """
        ecarts = []
        for credit in Credit.objects.order_by('id'):
            attendu = credit.montant_total_du + credit.penalites_cumulees - credit.total_rembourse
            if attendu != credit.montant_restant:
                ecarts.append({
                    'credit_id': credit.id,
                    'montant_restant': credit.montant_restant,
                    'attendu': attendu,
                })
                logger.warning(
                    f"Écart sur le crédit {credit.id}: reste {credit.montant_restant}, attendu {attendu}"
                )
        return ecarts


class SessionService:
    """Ouverture, clôture et chaînage des sessions"""

    @staticmethod
    def session_active():
        return Session.objects.filter(statut=Session.STATUT_ACTIVE).first()

    @staticmethod
    def obtenir(session_id):
        try:
            return Session.objects.get(pk=session_id)
        except (Session.DoesNotExist, ValueError, TypeError):
            raise SessionIntrouvable(f"Session introuvable: {session_id}.")

    @staticmethod
    def creer_session(nom=''):
        """Clôture la session active, ouvre la suivante et applique les pénalités.

        Le tout dans une seule transaction. Retourne (session, nombre de crédits pénalisés).
        """
        with transaction.atomic():
            active = Session.objects.select_for_update().filter(statut=Session.STATUT_ACTIVE).first()
            if active:
                SessionService._cloturer(active)
            numero = (Session.objects.aggregate(dernier=Max('numero'))['dernier'] or 0) + 1
            try:
                with transaction.atomic():
                    session = Session.objects.create(numero=numero, nom=nom or '')
            except IntegrityError as exc:
                raise SessionDejaActive() from exc
            penalites = CreditService.appliquer_penalites(session)
            emettre_apres_commit(session_mise_a_jour, session_id=session.id, statut=session.statut)
            if penalites:
                emettre_apres_commit(fonds_mis_a_jour, solde=SoldeService.calculer_solde())
        logger.info(f"Session {session.numero} ouverte, {penalites} crédit(s) pénalisé(s)")
        return session, penalites

    @staticmethod
    def terminer_session(session_id):
        with transaction.atomic():
            try:
                session = Session.objects.select_for_update().get(pk=session_id)
            except (Session.DoesNotExist, ValueError, TypeError):
                raise SessionIntrouvable(f"Session introuvable: {session_id}.")
            if not session.est_active:
                raise SessionNonActive()
            SessionService._cloturer(session)
        logger.info(f"Session {session.numero} terminée")
        return session

    @staticmethod
    def _cloturer(session):
        session.date_fin = timezone.now()
        session.statut = Session.STATUT_TERMINEE
        SessionService.figer_totaux(session)
        session.save()
        SessionService.recalculer_session_membres(session)
        emettre_apres_commit(session_mise_a_jour, session_id=session.id, statut=session.statut)

    @staticmethod
    def renommer_session(session_id, nom):
        session = SessionService.obtenir(session_id)
        session.nom = nom or ''
        session.save(update_fields=['nom'])
        emettre_apres_commit(session_mise_a_jour, session_id=session.id, statut=session.statut)
        return session

    @staticmethod
    def supprimer_session(session_id):
        """Suppression logique: le numéro et le rattachement des mouvements sont conservés"""
        with transaction.atomic():
            session = SessionService.obtenir(session_id)
            if session.est_active:
                raise SuppressionSessionActive()
            if session.statut != Session.STATUT_SUPPRIMEE:
                session.statut = Session.STATUT_SUPPRIMEE
                session.save(update_fields=['statut'])
                emettre_apres_commit(session_mise_a_jour, session_id=session.id, statut=session.statut)
        logger.info(f"Session {session.numero} supprimée")
        return session

    @staticmethod
    def figer_totaux(session):
        """Calcule les totaux de la session et les cumuls chaînés depuis la précédente"""
        mouvements = Mouvement.objects.filter(session=session)
        session.total_epargne = _somme(mouvements.filter(type_mouvement__in=Mouvement.TYPES_EPARGNE))
        session.total_interets = _somme(mouvements.filter(type_mouvement__in=Mouvement.TYPES_INTERETS))
        session.fonds_disponible = _somme(Mouvement.objects.filter(session__numero__lte=session.numero))
        precedente = Session.objects.filter(numero__lt=session.numero).order_by('-numero').first()
        session.total_epargne_cumule = session.total_epargne + (
            precedente.total_epargne_cumule if precedente else ZERO
        )
        session.total_interets_cumule = session.total_interets + (
            precedente.total_interets_cumule if precedente else ZERO
        )

    @staticmethod
    def cumuls_membres(session):
        """Cumuls (session, membre) calculés depuis le grand livre, sans écriture"""
        lignes = (
            Mouvement.objects.filter(session=session, membre__isnull=False)
            .order_by()
            .values('membre_id', 'membre__nom')
            .annotate(
                epargne=Sum('montant', filter=Q(type_mouvement__in=Mouvement.TYPES_EPARGNE)),
                interets=Sum('montant', filter=Q(type_mouvement__in=Mouvement.TYPES_INTERETS)),
                part=Sum('montant', filter=Q(type_mouvement=Mouvement.CASSATION)),
            )
        )
        return [
            {
                'membre_id': ligne['membre_id'],
                'nom': ligne['membre__nom'],
                'epargne_session': ligne['epargne'] or ZERO,
                'interets_session': ligne['interets'] or ZERO,
                'part_session': ZERO - (ligne['part'] or ZERO),
            }
            for ligne in sorted(lignes, key=lambda l: l['membre_id'])
        ]

    @staticmethod
    def recalculer_session_membres(session):
        """Reconstruit les lignes SessionMembre depuis le grand livre"""
        cumuls = SessionService.cumuls_membres(session)
        for cumul in cumuls:
            SessionMembre.objects.update_or_create(
                session=session,
                membre_id=cumul['membre_id'],
                defaults={
                    'epargne_session': cumul['epargne_session'],
                    'interets_session': cumul['interets_session'],
                    'part_session': cumul['part_session'],
                },
            )
        SessionMembre.objects.filter(session=session).exclude(
            membre_id__in=[c['membre_id'] for c in cumuls]
        ).delete()

    @staticmethod
    def reprojeter_sessions(sessions):
        """Recalcule les sessions touchées par une correction, puis les cumuls suivants"""
        sessions = [s for s in sessions if s is not None]
        if not sessions:
            return
        for session in sessions:
            SessionService.recalculer_session_membres(session)
        depuis = min(s.numero for s in sessions)
        for session in (Session.objects.filter(numero__gte=depuis)
                        .exclude(statut=Session.STATUT_ACTIVE).order_by('numero')):
            SessionService.figer_totaux(session)
            session.save(update_fields=[
                'total_epargne', 'total_interets', 'fonds_disponible',
                'total_epargne_cumule', 'total_interets_cumule',
            ])

    @staticmethod
    def rattacher_mouvements_sans_session():
        """Réparation idempotente: rattache les mouvements sans session.

        Chaque mouvement va à la dernière session (non supprimée) ouverte avant
        sa date, à défaut à la première session; s'il n'existe aucune session,
        une session initiale est créée.
        """
        with transaction.atomic():
            orphelins = list(Mouvement.objects.select_for_update().filter(session__isnull=True).order_by('date', 'id'))
            if not orphelins:
                return 0
            sessions = list(Session.objects.exclude(statut=Session.STATUT_SUPPRIMEE).order_by('numero'))
            if not sessions:
                numero = (Session.objects.aggregate(dernier=Max('numero'))['dernier'] or 0) + 1
                sessions = [Session.objects.create(
                    numero=numero, nom='Session initiale', date_debut=orphelins[0].date,
                )]
            touchees = {}
            for mouvement in orphelins:
                cible = sessions[0]
                for session in sessions:
                    if session.date_debut <= mouvement.date:
                        cible = session
                mouvement.session = cible
                mouvement.save(update_fields=['session'])
                touchees[cible.id] = cible
            SessionService.reprojeter_sessions(list(touchees.values()))
        logger.warning(f"{len(orphelins)} mouvement(s) rattaché(s) à une session")
        return len(orphelins)

    @staticmethod
    def lister_sessions(inclure_supprimees=False):
        sessions = Session.objects.prefetch_related('session_membres__membre').order_by('numero')
        if not inclure_supprimees:
            sessions = sessions.exclude(statut=Session.STATUT_SUPPRIMEE)
        resultat = []
        for session in sessions:
            if session.est_active:
                cumuls = SessionService.cumuls_membres(session)
            else:
                cumuls = [
                    {
                        'membre_id': sm.membre_id,
                        'nom': sm.membre.nom,
                        'epargne_session': sm.epargne_session,
                        'interets_session': sm.interets_session,
                        'part_session': sm.part_session,
                    }
                    for sm in session.session_membres.all()
                ]
            resultat.append({
                'id': session.id,
                'numero': session.numero,
                'nom': str(session),
                'date_debut': session.date_debut,
                'date_fin': session.date_fin,
                'statut': session.statut,
                'total_epargne': session.total_epargne,
                'total_interets': session.total_interets,
                'fonds_disponible': session.fonds_disponible,
                'total_epargne_cumule': session.total_epargne_cumule,
                'total_interets_cumule': session.total_interets_cumule,
                'membres': cumuls,
            })
        return resultat

    @staticmethod
    def mouvements_session(session_id):
        session = SessionService.obtenir(session_id)
        return [
            {
                'id': m.id,
                'membre_id': m.membre_id,
                'nom': m.membre.nom if m.membre else '',
                'type_mouvement': m.type_mouvement,
                'montant': m.montant,
                'motif': m.motif,
                'date': m.date,
                'credit_id': m.credit_id,
            }
            for m in session.mouvements.select_related('membre').order_by('date', 'id')
        ]


class CassationService:
    """Simulation et application de la cassation"""

    @staticmethod
    def positions_membres():
        borne = SoldeService.borne_derniere_cassation()
        epargnes = dict(
            Mouvement.objects.filter(type_mouvement__in=Mouvement.TYPES_EPARGNE, id__gt=borne)
            .order_by()
            .values('membre_id')
            .annotate(total=Sum('montant'))
            .values_list('membre_id', 'total')
        )
        credits = dict(
            Credit.objects.exclude(statut=Credit.STATUT_REMBOURSE)
            .order_by()
            .values('membre_id')
            .annotate(total=Sum('montant_restant'))
            .values_list('membre_id', 'total')
        )
        return [
            PositionMembre(
                membre_id=membre.id,
                nom=membre.nom,
                epargne_actuelle=epargnes.get(membre.id) or ZERO,
                credit_restant=credits.get(membre.id) or ZERO,
            )
            for membre in Membre.objects.order_by('id')
        ]

    @staticmethod
    def simuler_cassation():
        """Répartition calculée sur l'état courant, sans écriture"""
        return calculer_repartition(CassationService.positions_membres(), SoldeService.calculer_solde())

    @staticmethod
    def appliquer_cassation():
        """Applique la cassation en une transaction.

        La simulation est refaite sur l'état courant. Une nouvelle application
        sans mouvement enregistré depuis la précédente est refusée.
        """
        with transaction.atomic():
            derniere = Cassation.objects.select_for_update().order_by('-id').first()
            dernier_mouvement = Mouvement.objects.aggregate(dernier=Max('id'))['dernier'] or 0
            if derniere and dernier_mouvement <= derniere.borne_mouvement_id:
                raise CassationDejaAppliquee()

            repartition = CassationService.simuler_cassation()
            if not repartition.distribuable:
                raise FondsNonDistribuable()

            session = SessionService.session_active() or (
                Session.objects.exclude(statut=Session.STATUT_SUPPRIMEE).order_by('-numero').first()
            )
            cassation = Cassation.objects.create(
                session=session,
                fonds_distribue=repartition.total_distribue,
                nombre_beneficiaires=len(repartition.beneficiaires),
                pas_arrondi=repartition.pas_arrondi,
                details={
                    'fonds_disponible': str(repartition.fonds_disponible),
                    'total_contributions_nettes': str(repartition.total_contributions_nettes),
                    'reliquat': str(repartition.reliquat),
                    'beneficiaire_reliquat_id': repartition.beneficiaire_reliquat_id,
                    'membres': [
                        {
                            'membre_id': part.membre_id,
                            'nom': part.nom,
                            'epargne_avant': str(part.epargne_actuelle),
                            'credit_restant': str(part.credit_restant),
                            'contribution_nette': str(part.contribution_nette),
                            'part_epargne': str(part.part_epargne),
                            'part_interets': str(part.part_interets),
                            'part_cassation': str(part.part_cassation),
                        }
                        for part in repartition.parts
                    ],
                },
            )

            membres = Membre.objects.in_bulk([p.membre_id for p in repartition.beneficiaires])
            for part in repartition.beneficiaires:
                MouvementService.enregistrer(
                    membres[part.membre_id], Mouvement.CASSATION, -part.part_cassation,
                    f"Part de cassation ({part.pourcentage} %)", session=session, cassation=cassation,
                )

            cassation.borne_mouvement_id = Mouvement.objects.aggregate(dernier=Max('id'))['dernier'] or 0
            cassation.save(update_fields=['borne_mouvement_id'])

            # L'épargne antérieure ne compte plus pour le cycle suivant
            for membre in Membre.objects.order_by('id'):
                SoldeService.synchroniser_solde_membre(membre)
            Session.objects.filter(statut=Session.STATUT_TERMINEE).update(statut=Session.STATUT_CASSATION)
            if session is not None:
                session.refresh_from_db()
                SessionService.reprojeter_sessions([session])

            emettre_apres_commit(cassation_appliquee, cassation_id=cassation.id,
                                 total_distribue=cassation.fonds_distribue)
            _notifier_mouvements([p.membre_id for p in repartition.beneficiaires])
        logger.info(
            f"Cassation {cassation.id} appliquée: {cassation.fonds_distribue} FCFA répartis "
            f"entre {cassation.nombre_beneficiaires} membre(s), pas d'arrondi {cassation.pas_arrondi}"
        )
        return cassation, repartition

    @staticmethod
    def derniere_cassation():
        return Cassation.objects.order_by('-id').first()

    @staticmethod
    def etat_apres_cassation():
        """Situation de chaque membre après la dernière cassation"""
        cassation = CassationService.derniere_cassation()
        if cassation is None:
            raise AucuneCassation()
        positions = {p.membre_id: p for p in CassationService.positions_membres()}
        membres = []
        for ligne in cassation.details.get('membres', []):
            position = positions.get(ligne['membre_id'])
            if position is None:
                continue
            ancien_solde = Decimal(ligne['epargne_avant'])
            part_recue = Decimal(ligne['part_cassation'])
            membres.append({
                'membre_id': position.membre_id,
                'nom': position.nom,
                'ancien_solde': ancien_solde,
                'part_recue': part_recue,
                'nouveau_solde': ancien_solde + part_recue,
                'epargne_actuelle': position.epargne_actuelle,
                'credit_restant': position.credit_restant,
            })
        return {
            'cassation_id': cassation.id,
            'date_application': cassation.date_application,
            'total_distribue': cassation.fonds_distribue,
            'pas_arrondi': cassation.pas_arrondi,
            'solde_fonds': SoldeService.calculer_solde(),
            'membres': membres,
        }

    @staticmethod
    def preparer_nouveau_cycle():
        """Confirme l'état remis à zéro et retourne les statistiques de démarrage.

        Aucun mouvement n'est écrit.
        """
        with transaction.atomic():
            corrections = SoldeService.resynchroniser_soldes_epargne()
            cassation = CassationService.derniere_cassation()
            if cassation is not None and not cassation.cycle_prepare:
                cassation.cycle_prepare = True
                cassation.date_preparation = timezone.now()
                cassation.save(update_fields=['cycle_prepare', 'date_preparation'])
        positions = CassationService.positions_membres()
        en_excedent = [p for p in positions if p.contribution_nette >= 0]
        debiteurs = [p for p in positions if p.contribution_nette < 0]
        return {
            'cassation_id': cassation.id if cassation else None,
            'cycle_pret': cassation is not None,
            'nombre_membres': len(positions),
            'membres_en_excedent': len(en_excedent),
            'membres_debiteurs': len(debiteurs),
            'total_epargnes': sum((p.epargne_actuelle for p in positions), ZERO),
            'total_credits_restants': sum((p.credit_restant for p in positions), ZERO),
            'solde_fonds': SoldeService.calculer_solde(),
            'corrections_epargne': len(corrections),
            'debiteurs': [
                {'membre_id': p.membre_id, 'nom': p.nom, 'credit_restant': p.credit_restant}
                for p in debiteurs
            ],
        }
