"""
Erreurs métier du noyau de la tontine.

Chaque erreur porte un `code` stable (le type d'échec renvoyé à l'interface)
et appartient à l'une des deux familles:

- ErreurValidation: la requête est rejetée avant toute écriture;
- ConflitEtat: l'état courant interdit l'opération, rien n'a été modifié.
"""
from django.core.exceptions import ValidationError


class ErreurTontine(ValidationError):
    """Erreur métier de base"""
    code_erreur = 'ErreurTontine'
    message_defaut = "Opération refusée."

    def __init__(self, message=None, **details):
        super().__init__(message or self.message_defaut, code=self.code_erreur)
        self.details = details

    def __str__(self):
        return self.message


class ErreurValidation(ErreurTontine):
    code_erreur = 'ValidationError'


class ConflitEtat(ErreurTontine):
    code_erreur = 'StateConflict'


# Erreurs de validation

class MembreInconnu(ErreurValidation):
    code_erreur = 'UnknownMember'
    message_defaut = "Membre introuvable."


class TypeMouvementInvalide(ErreurValidation):
    code_erreur = 'InvalidType'
    message_defaut = "Type de mouvement invalide."


class MontantInvalide(ErreurValidation):
    code_erreur = 'InvalidAmount'
    message_defaut = "Le montant doit être un nombre fini et non nul."


class PrincipalInvalide(ErreurValidation):
    code_erreur = 'InvalidPrincipal'
    message_defaut = "Le montant du crédit doit être strictement positif."


class DateInvalide(ErreurValidation):
    code_erreur = 'InvalidDate'
    message_defaut = "Date invalide (format attendu: AAAA-MM-JJ)."


class DateEcheanceInvalide(DateInvalide):
    code_erreur = 'InvalidDueDate'
    message_defaut = "Date d'échéance invalide (format attendu: AAAA-MM-JJ)."


class CreditIntrouvable(ErreurValidation):
    code_erreur = 'CreditNotFound'
    message_defaut = "Crédit introuvable."


class SessionIntrouvable(ErreurValidation):
    code_erreur = 'SessionNotFound'
    message_defaut = "Session introuvable."


class MouvementIntrouvable(ErreurValidation):
    code_erreur = 'MovementNotFound'
    message_defaut = "Mouvement introuvable."


class DepenseIntrouvable(ErreurValidation):
    code_erreur = 'ExpenseNotFound'
    message_defaut = "Dépense commune introuvable."


class CategorieDepenseInvalide(ErreurValidation):
    code_erreur = 'InvalidCategory'
    message_defaut = "Catégorie de dépense invalide."


# Conflits d'état

class SessionDejaActive(ConflitEtat):
    code_erreur = 'SessionAlreadyActive'
    message_defaut = "Une session est déjà active."


class SessionNonActive(ConflitEtat):
    code_erreur = 'SessionNotActive'
    message_defaut = "La session n'est pas active."


class SuppressionSessionActive(ConflitEtat):
    code_erreur = 'CannotDeleteActiveSession'
    message_defaut = "Impossible de supprimer la session active."


class RemboursementExcessif(ConflitEtat):
    code_erreur = 'ExcessRepayment'
    message_defaut = "Le montant dépasse le reste à payer."


class CassationDejaAppliquee(ConflitEtat):
    code_erreur = 'CassationAlreadyApplied'
    message_defaut = "La cassation a déjà été appliquée et aucun mouvement n'a été enregistré depuis."


class FondsNonDistribuable(ConflitEtat):
    code_erreur = 'FundNotDistributable'
    message_defaut = "Aucun fonds distribuable ou aucun membre avec une contribution nette positive."


class AucuneCassation(ConflitEtat):
    code_erreur = 'NoCassationYet'
    message_defaut = "Aucune cassation n'a encore été appliquée."


class MouvementVerrouille(ConflitEtat):
    code_erreur = 'MovementLocked'
    message_defaut = "Ce mouvement a déjà été consolidé et ne peut plus être modifié."


class EpargneInsuffisante(ConflitEtat):
    code_erreur = 'InsufficientSavings'
    message_defaut = "Épargne insuffisante pour certains membres."
