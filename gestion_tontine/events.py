"""
Flux d'événements émis par le noyau après validation de la transaction.

L'interface s'abonne à ces signaux (ou interroge les projections) pour se
rafraîchir; aucun événement n'est envoyé pour une transaction annulée.
"""
import django.dispatch
from django.db import transaction

EMETTEUR = 'gestion_tontine'

# Solde du fonds modifié (kwargs: solde)
fonds_mis_a_jour = django.dispatch.Signal()

# Mouvements ajoutés, modifiés ou supprimés (kwargs: membre_ids)
mouvements_mis_a_jour = django.dispatch.Signal()

# Crédit accordé, remboursé ou pénalisé (kwargs: credit_id, montant_restant, statut)
credit_mis_a_jour = django.dispatch.Signal()

# Crédit supprimé (kwargs: credit_id)
credit_supprime = django.dispatch.Signal()

# Session ouverte, clôturée, renommée ou supprimée (kwargs: session_id, statut)
session_mise_a_jour = django.dispatch.Signal()

# Cassation appliquée (kwargs: cassation_id, total_distribue)
cassation_appliquee = django.dispatch.Signal()


def emettre_apres_commit(signal, **kwargs):
    """Programme l'envoi du signal à la validation de la transaction courante."""
    transaction.on_commit(lambda: signal.send(sender=EMETTEUR, **kwargs))
