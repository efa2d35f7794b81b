"""
Calcul de la répartition d'une cassation.

Le fonds disponible est partagé entre les membres au prorata de leur
contribution nette (épargne moins crédit restant). Les membres dont la
contribution nette est nulle ou négative ne reçoivent rien et gardent leur
dette.

Arrondi: toutes les parts d'une même cassation sont arrondies au même pas
(100 FCFA au-delà de 1 000 000, 50 au-delà de 100 000, 25 en dessous; voir
settings.TONTINE). Les parts sont d'abord tronquées au pas, puis les pas
restants sont attribués aux plus grands restes (à égalité: plus grande
contribution, puis plus petit identifiant). Le reliquat inférieur au pas va
au membre de plus grande contribution. La somme des parts est donc exactement
égale au fonds disponible.

Ce module ne touche pas à la base de données.
"""
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_FLOOR, ROUND_HALF_UP
from typing import List, Optional

from .conf import parametre

ZERO = Decimal('0')
CENTIME = Decimal('0.01')


@dataclass
class PositionMembre:
    """Situation d'un membre au moment de la simulation"""
    membre_id: int
    nom: str
    epargne_actuelle: Decimal
    credit_restant: Decimal

    @property
    def contribution_nette(self) -> Decimal:
        return self.epargne_actuelle - self.credit_restant


@dataclass
class PartMembre:
    membre_id: int
    nom: str
    epargne_actuelle: Decimal
    credit_restant: Decimal
    contribution_nette: Decimal
    pourcentage: Decimal = ZERO
    part_brute: Decimal = ZERO
    part_epargne: Decimal = ZERO
    part_interets: Decimal = ZERO
    part_cassation: Decimal = ZERO

    def en_dict(self):
        return {
            'membre_id': self.membre_id,
            'nom': self.nom,
            'epargne_actuelle': self.epargne_actuelle,
            'credit_restant': self.credit_restant,
            'contribution_nette': self.contribution_nette,
            'pourcentage': self.pourcentage,
            'part_brute': self.part_brute,
            'part_epargne': self.part_epargne,
            'part_interets': self.part_interets,
            'part_cassation': self.part_cassation,
        }


@dataclass
class Repartition:
    fonds_disponible: Decimal
    total_contributions_nettes: Decimal
    pas_arrondi: Decimal
    parts: List[PartMembre] = field(default_factory=list)
    reliquat: Decimal = ZERO
    beneficiaire_reliquat_id: Optional[int] = None

    @property
    def total_distribue(self) -> Decimal:
        return sum((p.part_cassation for p in self.parts), ZERO)

    @property
    def beneficiaires(self) -> List[PartMembre]:
        return [p for p in self.parts if p.part_cassation > 0]

    @property
    def distribuable(self) -> bool:
        return self.fonds_disponible > 0 and self.total_contributions_nettes > 0

    def details(self):
        return {
            'fonds_disponible': self.fonds_disponible,
            'total_contributions_nettes': self.total_contributions_nettes,
            'pas_arrondi': self.pas_arrondi,
            'total_distribue': self.total_distribue,
            'nombre_beneficiaires': len(self.beneficiaires),
            'reliquat': self.reliquat,
            'beneficiaire_reliquat_id': self.beneficiaire_reliquat_id,
            'distribuable': self.distribuable,
        }


def choisir_pas_arrondi(fonds_disponible: Decimal) -> Decimal:
    """Pas d'arrondi uniforme selon l'ampleur du fonds"""
    for seuil, pas in parametre('PAS_ARRONDI_CASSATION'):
        if fonds_disponible >= seuil:
            return pas
    return parametre('PAS_ARRONDI_MINIMAL')


def calculer_repartition(positions, fonds_disponible) -> Repartition:
    """Répartit `fonds_disponible` entre les `positions` (liste de PositionMembre)."""
    fonds_disponible = Decimal(fonds_disponible)
    pas = choisir_pas_arrondi(fonds_disponible)

    parts = [
        PartMembre(
            membre_id=p.membre_id,
            nom=p.nom,
            epargne_actuelle=p.epargne_actuelle,
            credit_restant=p.credit_restant,
            contribution_nette=p.contribution_nette,
        )
        for p in positions
    ]
    eligibles = [p for p in parts if p.contribution_nette > 0]
    total = sum((p.contribution_nette for p in eligibles), ZERO)

    repartition = Repartition(
        fonds_disponible=fonds_disponible,
        total_contributions_nettes=total,
        pas_arrondi=pas,
        parts=parts,
    )
    if not repartition.distribuable:
        repartition.reliquat = fonds_disponible
        return repartition

    # Parts exactes puis troncature au pas
    unites = {}
    restes = {}
    for part in eligibles:
        exacte = fonds_disponible * part.contribution_nette / total
        part.pourcentage = (part.contribution_nette * 100 / total).quantize(CENTIME, rounding=ROUND_HALF_UP)
        part.part_brute = exacte.quantize(CENTIME, rounding=ROUND_HALF_UP)
        quotient = exacte / pas
        unites[part.membre_id] = quotient.to_integral_value(rounding=ROUND_FLOOR)
        restes[part.membre_id] = quotient - unites[part.membre_id]

    # Pas restants aux plus grands restes
    unites_totales = (fonds_disponible / pas).to_integral_value(rounding=ROUND_FLOOR)
    a_attribuer = max(int(unites_totales - sum(unites.values(), ZERO)), 0)
    par_reste = sorted(
        eligibles,
        key=lambda p: (-restes[p.membre_id], -p.contribution_nette, p.membre_id),
    )
    for part in par_reste[:a_attribuer]:
        unites[part.membre_id] += 1

    for part in eligibles:
        part.part_cassation = unites[part.membre_id] * pas

    # Reliquat inférieur au pas au plus gros contributeur
    principal = min(eligibles, key=lambda p: (-p.contribution_nette, p.membre_id))
    reliquat = fonds_disponible - unites_totales * pas
    principal.part_cassation += reliquat
    repartition.reliquat = reliquat
    repartition.beneficiaire_reliquat_id = principal.membre_id

    for part in eligibles:
        part.part_epargne = min(part.part_cassation, part.contribution_nette)
        part.part_interets = part.part_cassation - part.part_epargne

    return repartition
