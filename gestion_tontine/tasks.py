import logging

from celery import shared_task

from .services import CreditService, SessionService, SoldeService

logger = logging.getLogger(__name__)


@shared_task
def resynchroniser_soldes_epargne():
    """Recalculer le cache d'épargne de chaque membre depuis le grand livre"""
    corrections = SoldeService.resynchroniser_soldes_epargne()
    logger.info(f"{len(corrections)} solde(s) d'épargne corrigé(s)")
    return len(corrections)


@shared_task
def rattacher_mouvements_sans_session():
    """Rattacher les mouvements orphelins à une session"""
    rattaches = SessionService.rattacher_mouvements_sans_session()
    logger.info(f"{rattaches} mouvement(s) rattaché(s)")
    return rattaches


@shared_task
def verifier_coherence():
    """Contrôle nocturne: caches d'épargne, mouvements orphelins, restes des crédits"""
    resultat = {
        'soldes_corriges': resynchroniser_soldes_epargne(),
        'mouvements_rattaches': rattacher_mouvements_sans_session(),
        'credits_divergents': len(CreditService.controler_restes_credits()),
    }
    logger.info(f"Vérification de cohérence terminée: {resultat}")
    return resultat
