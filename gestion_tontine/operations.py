"""
Surface d'opérations du noyau de la tontine.

Chaque opération retourne un résultat discriminé (voir
decorators.resultat_operation); les erreurs métier ne traversent jamais
cette frontière sous forme d'exception.
"""
from .decorators import resultat_operation
from .services import (
    CassationService, CreditService, DepenseService, MembreService, MouvementService,
    SessionService, SoldeService,
)


# Fonds

@resultat_operation('getSoldeFonds')
def get_solde_fonds():
    return SoldeService.projeter_solde_fonds()


# Mouvements

@resultat_operation('ajouterMouvement')
def ajouter_mouvement(membre_id, type_mouvement, montant, motif='', session_id=None):
    mouvement = MouvementService.ajouter_mouvement(membre_id, type_mouvement, montant, motif, session_id)
    return {'mouvement_id': mouvement.id, 'session_id': mouvement.session_id}


@resultat_operation('modifierMouvement')
def modifier_mouvement(mouvement_id, montant=None, motif=None):
    mouvement = MouvementService.modifier_mouvement(mouvement_id, montant, motif)
    return {'mouvement_id': mouvement.id, 'montant': mouvement.montant}


@resultat_operation('supprimerMouvement')
def supprimer_mouvement(mouvement_id):
    MouvementService.supprimer_mouvement(mouvement_id)
    return {'mouvement_id': mouvement_id}


@resultat_operation('preleverCotisation')
def prelever_cotisation(montant, type_cotisation='annuelle', motif='', date=None):
    return {'nombre_membres': MouvementService.prelever_cotisation(montant, type_cotisation, motif, date)}


# Dépenses communes

@resultat_operation('ajouterDepenseCommune')
def ajouter_depense_commune(montant, categorie='autres', description='', sur_epargne=True):
    depense, parts = DepenseService.ajouter_depense_commune(montant, categorie, description, sur_epargne)
    return {
        'depense_id': depense.id,
        'sur_epargne': depense.sur_epargne,
        'parts': [{'membre_id': membre.id, 'part': part} for membre, part in parts],
    }


@resultat_operation('modifierDepenseCommune')
def modifier_depense_commune(depense_id, montant=None, categorie=None, description=None):
    depense = DepenseService.modifier_depense_commune(depense_id, montant, categorie, description)
    return {'depense_id': depense.id, 'montant': depense.montant, 'categorie': depense.categorie}


@resultat_operation('supprimerDepenseCommune')
def supprimer_depense_commune(depense_id):
    DepenseService.supprimer_depense_commune(depense_id)
    return {'depense_id': depense_id}


@resultat_operation('getDepensesCommunes')
def get_depenses_communes(categorie=None):
    return {'depenses': DepenseService.lister_depenses_communes(categorie)}


# Membres

@resultat_operation('inscrireMembre')
def inscrire_membre(nom, caution=None, telephone='', profession='', ville=''):
    membre = MembreService.inscrire_membre(nom, caution, telephone, profession, ville)
    return {'membre_id': membre.id}


@resultat_operation('supprimerMembre')
def supprimer_membre(membre_id):
    MembreService.supprimer_membre(membre_id)
    return {'membre_id': membre_id}


@resultat_operation('getDetailsMembre')
def get_details_membre(membre_id):
    return {'membre': MembreService.details_membre(membre_id)}


@resultat_operation('getHistoriqueMembre')
def get_historique_membre(membre_id):
    return {'mouvements': MembreService.historique_membre(membre_id)}


# Crédits

@resultat_operation('accorderCredit')
def accorder_credit(membre_id, montant_principal, date_echeance=None):
    credit = CreditService.accorder_credit(membre_id, montant_principal, date_echeance)
    return {
        'credit_id': credit.id,
        'montant_total_du': credit.montant_total_du,
        'date_echeance': credit.date_echeance,
    }


@resultat_operation('rembourserCredit')
def rembourser_credit(credit_id, montant, type_remboursement='principal'):
    credit = CreditService.rembourser_credit(credit_id, montant, type_remboursement)
    return {
        'credit_id': credit.id,
        'montant_restant': credit.montant_restant,
        'statut': credit.statut,
    }


@resultat_operation('supprimerCredit')
def supprimer_credit(credit_id):
    CreditService.supprimer_credit(credit_id)
    return {'credit_id': credit_id}


# Sessions

@resultat_operation('creerSession')
def creer_session(nom=''):
    session, penalites = SessionService.creer_session(nom)
    return {
        'session_id': session.id,
        'numero': session.numero,
        'credits_penalises': penalites,
    }


@resultat_operation('terminerSession')
def terminer_session(session_id):
    session = SessionService.terminer_session(session_id)
    return {
        'session_id': session.id,
        'total_epargne': session.total_epargne,
        'total_interets': session.total_interets,
        'fonds_disponible': session.fonds_disponible,
    }


@resultat_operation('renommerSession')
def renommer_session(session_id, nom):
    session = SessionService.renommer_session(session_id, nom)
    return {'session_id': session.id, 'nom': str(session)}


@resultat_operation('supprimerSession')
def supprimer_session(session_id):
    session = SessionService.supprimer_session(session_id)
    return {'session_id': session.id}


@resultat_operation('getSessions')
def get_sessions(inclure_supprimees=False):
    return {'sessions': SessionService.lister_sessions(inclure_supprimees)}


@resultat_operation('getMouvementsSession')
def get_mouvements_session(session_id):
    return {'mouvements': SessionService.mouvements_session(session_id)}


# Cassation

@resultat_operation('simulerCassation')
def simuler_cassation():
    repartition = CassationService.simuler_cassation()
    resultat = repartition.details()
    resultat['membres'] = [part.en_dict() for part in repartition.parts]
    return resultat


@resultat_operation('appliquerCassation')
def appliquer_cassation():
    cassation, repartition = CassationService.appliquer_cassation()
    resultat = repartition.details()
    resultat['cassation_id'] = cassation.id
    resultat['membres'] = [part.en_dict() for part in repartition.parts]
    return resultat


@resultat_operation('getEtatApresCassation')
def get_etat_apres_cassation():
    return CassationService.etat_apres_cassation()


@resultat_operation('preparerNouveauCycle')
def preparer_nouveau_cycle():
    return CassationService.preparer_nouveau_cycle()


# Maintenance

@resultat_operation('reparerCoherence')
def reparer_coherence():
    corrections = SoldeService.resynchroniser_soldes_epargne()
    rattaches = SessionService.rattacher_mouvements_sans_session()
    ecarts = CreditService.controler_restes_credits()
    return {
        'soldes_corriges': len(corrections),
        'mouvements_rattaches': rattaches,
        'credits_divergents': ecarts,
    }
