import logging

from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from .events import (
    cassation_appliquee, credit_mis_a_jour, credit_supprime, fonds_mis_a_jour, session_mise_a_jour,
)
from .models import Credit, Membre

logger = logging.getLogger(__name__)


@receiver(post_save, sender=Membre)
def membre_post_save(sender, instance, created, **kwargs):
    """Journalise l'inscription d'un membre"""
    if created:
        logger.info(f"Nouveau membre {instance.id}: {instance.nom}")


@receiver(post_delete, sender=Credit)
def credit_post_delete(sender, instance, **kwargs):
    logger.info(f"Crédit {instance.id} du membre {instance.membre_id} supprimé de la base")


@receiver(fonds_mis_a_jour)
def journaliser_fonds(sender, solde, **kwargs):
    logger.debug(f"Solde du fonds: {solde} FCFA")


@receiver(credit_mis_a_jour)
def journaliser_credit(sender, credit_id, montant_restant, statut, **kwargs):
    logger.debug(f"Crédit {credit_id}: {montant_restant} FCFA restants ({statut})")


@receiver(credit_supprime)
def journaliser_suppression_credit(sender, credit_id, **kwargs):
    logger.debug(f"Crédit {credit_id} supprimé")


@receiver(session_mise_a_jour)
def journaliser_session(sender, session_id, statut, **kwargs):
    logger.debug(f"Session {session_id}: {statut}")


@receiver(cassation_appliquee)
def journaliser_cassation(sender, cassation_id, total_distribue, **kwargs):
    logger.info(f"Cassation {cassation_id} validée: {total_distribue} FCFA distribués")
