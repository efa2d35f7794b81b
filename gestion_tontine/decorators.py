"""
Décorateurs des opérations exposées à l'interface
"""
import logging
from functools import wraps

from django.db import DatabaseError

from .exceptions import ConflitEtat, ErreurTontine

logger = logging.getLogger(__name__)

CATEGORIE_VALIDATION = 'validation'
CATEGORIE_CONFLIT = 'conflit'
CATEGORIE_STOCKAGE = 'stockage'


def resultat_operation(nom_operation):
    """
    Transforme une opération en résultat discriminé.

    Succès: {'success': True, ...données retournées par l'opération}
    Échec:  {'success': False, 'erreur': <code>, 'message': ..., 'categorie': ...}

    Args:
        nom_operation (str): nom de l'opération, utilisé dans les journaux
    """
    def decorator(operation):
        @wraps(operation)
        def wrapper(*args, **kwargs):
            try:
                donnees = operation(*args, **kwargs)
            except ErreurTontine as e:
                logger.info(f"{nom_operation} refusée: {e.code} - {e.message}")
                resultat = {
                    'success': False,
                    'erreur': e.code,
                    'message': e.message,
                    'categorie': CATEGORIE_CONFLIT if isinstance(e, ConflitEtat) else CATEGORIE_VALIDATION,
                }
                if e.details:
                    resultat['details'] = e.details
                return resultat
            except DatabaseError as e:
                logger.exception(f"{nom_operation}: erreur de stockage")
                return {
                    'success': False,
                    'erreur': 'StorageError',
                    'message': str(e),
                    'categorie': CATEGORIE_STOCKAGE,
                }

            resultat = {'success': True}
            resultat.update(donnees or {})
            return resultat
        return wrapper
    return decorator
