"""Lecture des paramètres métier (settings.TONTINE) avec leurs valeurs par défaut."""
from decimal import Decimal

from django.conf import settings

DEFAUTS = {
    'TAUX_INTERET_CREDIT': Decimal('1.20'),
    'TAUX_PENALITE': Decimal('1.20'),
    'CAUTION_PAR_DEFAUT': Decimal('30000'),
    'PAS_ARRONDI_CASSATION': [
        (Decimal('1000000'), Decimal('100')),
        (Decimal('100000'), Decimal('50')),
    ],
    'PAS_ARRONDI_MINIMAL': Decimal('25'),
}


def parametre(nom):
    """Retourne le paramètre `nom` de settings.TONTINE, ou sa valeur par défaut."""
    valeurs = getattr(settings, 'TONTINE', {}) or {}
    if nom in valeurs:
        return valeurs[nom]
    return DEFAUTS[nom]
