from datetime import date

from django.db import models
from django.db.models import F, Q, Sum
from django.utils import timezone

from .conf import parametre


def prochain_31_aout(reference):
    """Retourne le 31 août strictement postérieur à la date `reference`."""
    echeance = date(reference.year, 8, 31)
    if reference >= echeance:
        echeance = date(reference.year + 1, 8, 31)
    return echeance


def caution_par_defaut():
    return parametre('CAUTION_PAR_DEFAUT')


class Membre(models.Model):
    """Membre de la tontine familiale"""
    nom = models.CharField(max_length=200)
    telephone = models.CharField(max_length=30, blank=True)
    profession = models.CharField(max_length=100, blank=True)
    ville = models.CharField(max_length=100, blank=True)
    date_adhesion = models.DateField(default=timezone.localdate)
    caution = models.DecimalField(max_digits=15, decimal_places=2, default=caution_par_defaut)

    # Projection dénormalisée du grand livre: doit toujours être égale à
    # SoldeService.projeter_epargne_membre(membre)
    solde_epargne = models.DecimalField(max_digits=15, decimal_places=2, default=0)

    date_creation = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'membres'
        verbose_name = "Membre"
        verbose_name_plural = "Membres"
        ordering = ['nom', 'id']

    def __str__(self):
        return self.nom

    @property
    def credit_restant(self):
        """Reste dû sur les crédits non remboursés (pénalités comprises)"""
        return self.credits.exclude(statut=Credit.STATUT_REMBOURSE).aggregate(
            total=Sum('montant_restant')
        )['total'] or 0


class Session(models.Model):
    """Période comptable chaînée (une seule session active à la fois)"""
    STATUT_ACTIVE = 'active'
    STATUT_TERMINEE = 'terminee'
    STATUT_CASSATION = 'cassation'
    STATUT_SUPPRIMEE = 'supprimee'
    STATUT_CHOICES = [
        (STATUT_ACTIVE, 'Active'),
        (STATUT_TERMINEE, 'Terminée'),
        (STATUT_CASSATION, 'Consolidée par une cassation'),
        (STATUT_SUPPRIMEE, 'Supprimée'),
    ]

    numero = models.PositiveIntegerField(unique=True, editable=False)
    nom = models.CharField(max_length=200, blank=True)
    date_debut = models.DateTimeField(default=timezone.now)
    date_fin = models.DateTimeField(null=True, blank=True)
    statut = models.CharField(max_length=20, choices=STATUT_CHOICES, default=STATUT_ACTIVE)

    # Totaux figés à la clôture
    total_epargne = models.DecimalField(max_digits=15, decimal_places=2, default=0)
    total_interets = models.DecimalField(max_digits=15, decimal_places=2, default=0)
    fonds_disponible = models.DecimalField(max_digits=15, decimal_places=2, default=0)

    # Cumuls chaînés depuis la session précédente
    total_epargne_cumule = models.DecimalField(max_digits=15, decimal_places=2, default=0)
    total_interets_cumule = models.DecimalField(max_digits=15, decimal_places=2, default=0)

    class Meta:
        db_table = 'sessions'
        verbose_name = "Session"
        verbose_name_plural = "Sessions"
        ordering = ['-numero']
        constraints = [
            models.UniqueConstraint(
                fields=['statut'],
                condition=Q(statut='active'),
                name='une_seule_session_active',
            ),
            models.CheckConstraint(
                condition=Q(statut__in=['active', 'terminee', 'cassation', 'supprimee']),
                name='session_statut_valide',
            ),
        ]

    def __str__(self):
        return self.nom or f"Session {self.numero}"

    @property
    def est_active(self):
        return self.statut == self.STATUT_ACTIVE


class Cassation(models.Model):
    """Cassation appliquée: répartition totale du fonds entre les membres.

    `borne_mouvement_id` est l'identifiant du dernier mouvement consolidé par
    la cassation; l'épargne des membres ne compte que les mouvements
    postérieurs à cette borne.
    """
    date_application = models.DateTimeField(default=timezone.now)
    session = models.ForeignKey(Session, on_delete=models.PROTECT, null=True, blank=True,
                                related_name='cassations')
    fonds_distribue = models.DecimalField(max_digits=15, decimal_places=2)
    nombre_beneficiaires = models.PositiveIntegerField(default=0)
    pas_arrondi = models.DecimalField(max_digits=15, decimal_places=2)
    borne_mouvement_id = models.PositiveBigIntegerField(default=0)
    details = models.JSONField(default=dict, blank=True)
    cycle_prepare = models.BooleanField(default=False)
    date_preparation = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'cassations'
        verbose_name = "Cassation"
        verbose_name_plural = "Cassations"
        ordering = ['-date_application', '-id']

    def __str__(self):
        return f"Cassation du {self.date_application:%d/%m/%Y} - {self.fonds_distribue} FCFA"


class Credit(models.Model):
    """Crédit accordé à un membre (intérêt fixe de 20 %)"""
    STATUT_ACTIF = 'actif'
    STATUT_REMBOURSE = 'rembourse'
    STATUT_EN_RETARD = 'en_retard'
    STATUT_CHOICES = [
        (STATUT_ACTIF, 'Actif'),
        (STATUT_REMBOURSE, 'Remboursé'),
        (STATUT_EN_RETARD, 'En retard'),
    ]

    membre = models.ForeignKey(Membre, on_delete=models.PROTECT, related_name='credits')
    montant_principal = models.DecimalField(max_digits=15, decimal_places=2)
    montant_total_du = models.DecimalField(max_digits=15, decimal_places=2)
    montant_restant = models.DecimalField(max_digits=15, decimal_places=2)
    penalites_cumulees = models.DecimalField(max_digits=15, decimal_places=2, default=0)
    penalite_due = models.DecimalField(max_digits=15, decimal_places=2, default=0)
    date_accord = models.DateField(default=timezone.localdate)
    date_echeance = models.DateField()
    statut = models.CharField(max_length=20, choices=STATUT_CHOICES, default=STATUT_ACTIF)
    derniere_session_penalisee = models.ForeignKey(Session, on_delete=models.PROTECT, null=True, blank=True,
                                                   related_name='credits_penalises')
    date_creation = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'credits'
        verbose_name = "Crédit"
        verbose_name_plural = "Crédits"
        ordering = ['-date_accord', '-id']
        constraints = [
            models.CheckConstraint(
                condition=Q(statut__in=['actif', 'rembourse', 'en_retard']),
                name='credit_statut_valide',
            ),
            models.CheckConstraint(
                condition=Q(montant_restant__gte=0)
                & Q(montant_restant__lte=F('montant_total_du') + F('penalites_cumulees')),
                name='credit_restant_borne',
            ),
        ]

    def __str__(self):
        return f"Crédit {self.id} - {self.membre.nom} ({self.montant_restant} FCFA restants)"

    def save(self, *args, **kwargs):
        if not self.date_echeance:
            self.date_echeance = prochain_31_aout(self.date_accord or timezone.localdate())
        super().save(*args, **kwargs)

    @property
    def est_echu(self):
        return self.date_echeance < timezone.localdate()

    @property
    def total_rembourse(self):
        return self.remboursements.aggregate(total=Sum('montant'))['total'] or 0


class Remboursement(models.Model):
    """Paiement reçu sur un crédit"""
    TYPE_PRINCIPAL = 'principal'
    TYPE_PENALITE = 'penalite'
    TYPE_CHOICES = [
        (TYPE_PRINCIPAL, 'Principal'),
        (TYPE_PENALITE, 'Pénalité'),
    ]

    credit = models.ForeignKey(Credit, on_delete=models.PROTECT, related_name='remboursements')
    montant = models.DecimalField(max_digits=15, decimal_places=2)
    type_remboursement = models.CharField(max_length=20, choices=TYPE_CHOICES, default=TYPE_PRINCIPAL)
    date = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'remboursements'
        verbose_name = "Remboursement"
        verbose_name_plural = "Remboursements"
        ordering = ['-date', '-id']
        constraints = [
            models.CheckConstraint(condition=Q(montant__gt=0), name='remboursement_montant_positif'),
            models.CheckConstraint(
                condition=Q(type_remboursement__in=['principal', 'penalite']),
                name='remboursement_type_valide',
            ),
        ]

    def __str__(self):
        return f"{self.get_type_remboursement_display()} {self.montant} FCFA - crédit {self.credit_id}"


class DepenseCommune(models.Model):
    """Dépense engagée pour la famille, payée par le fonds ou répartie sur l'épargne"""
    CATEGORIE_BOISSON = 'boisson'
    CATEGORIE_DEUIL = 'deuil'
    CATEGORIE_EVENEMENT = 'evenement'
    CATEGORIE_TRANSPORT = 'transport'
    CATEGORIE_MATERIEL = 'materiel'
    CATEGORIE_COMMUNICATION = 'communication'
    CATEGORIE_AUTRES = 'autres'
    CATEGORIE_CHOICES = [
        (CATEGORIE_BOISSON, 'Boisson'),
        (CATEGORIE_DEUIL, 'Deuil'),
        (CATEGORIE_EVENEMENT, 'Évènement'),
        (CATEGORIE_TRANSPORT, 'Transport'),
        (CATEGORIE_MATERIEL, 'Matériel'),
        (CATEGORIE_COMMUNICATION, 'Communication'),
        (CATEGORIE_AUTRES, 'Autres'),
    ]

    description = models.CharField(max_length=255, blank=True)
    montant = models.DecimalField(max_digits=15, decimal_places=2)
    categorie = models.CharField(max_length=20, choices=CATEGORIE_CHOICES, default=CATEGORIE_AUTRES)
    sur_epargne = models.BooleanField(default=True)
    date = models.DateTimeField(default=timezone.now)
    session = models.ForeignKey(Session, on_delete=models.PROTECT, null=True, blank=True,
                                related_name='depenses_communes')

    class Meta:
        db_table = 'depenses_communes'
        verbose_name = "Dépense commune"
        verbose_name_plural = "Dépenses communes"
        ordering = ['-date', '-id']
        constraints = [
            models.CheckConstraint(condition=Q(montant__gt=0), name='depense_montant_positif'),
            models.CheckConstraint(
                condition=Q(categorie__in=[
                    'boisson', 'deuil', 'evenement', 'transport', 'materiel', 'communication', 'autres',
                ]),
                name='depense_categorie_valide',
            ),
        ]

    def __str__(self):
        return f"{self.get_categorie_display()} {self.montant} FCFA - {self.description or 'Dépense commune'}"


class Mouvement(models.Model):
    """Ligne du grand livre: un événement monétaire rattaché à un membre.

    Le montant est signé: positif quand l'argent entre dans le fonds, négatif
    quand il en sort. Le solde réel du fonds est la somme de tous les montants.
    """
    EPARGNE = 'epargne'
    COTISATION_ANNUELLE = 'cotisation_annuelle'
    VERSEMENT_PONCTUEL = 'versement_ponctuel'
    DEPOT_CAUTION = 'depot_caution'
    RESTITUTION_CAUTION = 'restitution_caution'
    CREDIT = 'credit'
    REMBOURSEMENT = 'remboursement'
    INTERET = 'interet'
    PENALITE = 'penalite'
    RECONDUCTION = 'reconduction'
    DEPENSE_COMMUNE_FONDS = 'depense_commune_fonds'
    DEPENSE_COMMUNE_EPARGNE = 'depense_commune_epargne'
    PRELEVEMENT_EPARGNE = 'prelevement_epargne'
    CASSATION = 'cassation'

    TYPE_CHOICES = [
        (EPARGNE, 'Épargne'),
        (COTISATION_ANNUELLE, 'Cotisation annuelle'),
        (VERSEMENT_PONCTUEL, 'Versement ponctuel'),
        (DEPOT_CAUTION, 'Dépôt de caution'),
        (RESTITUTION_CAUTION, 'Restitution de caution'),
        (CREDIT, 'Décaissement de crédit'),
        (REMBOURSEMENT, 'Remboursement de crédit'),
        (INTERET, 'Intérêt'),
        (PENALITE, 'Pénalité de retard'),
        (RECONDUCTION, 'Reconduction de crédit'),
        (DEPENSE_COMMUNE_FONDS, 'Dépense commune (fonds)'),
        (DEPENSE_COMMUNE_EPARGNE, 'Dépense commune (épargne)'),
        (PRELEVEMENT_EPARGNE, 'Prélèvement sur épargne'),
        (CASSATION, 'Part de cassation'),
    ]

    # Types dont la somme constitue l'épargne d'un membre
    TYPES_EPARGNE = (EPARGNE, DEPENSE_COMMUNE_EPARGNE, PRELEVEMENT_EPARGNE)

    # Types comptés comme produits (intérêts et pénalités)
    TYPES_INTERETS = (INTERET, PENALITE)

    TYPES_DEPENSES_COMMUNES = (DEPENSE_COMMUNE_FONDS, DEPENSE_COMMUNE_EPARGNE)

    # Sens imposé du montant (+1 entrée, -1 sortie, None: les deux)
    SENS_PAR_TYPE = {
        EPARGNE: None,
        COTISATION_ANNUELLE: 1,
        VERSEMENT_PONCTUEL: 1,
        DEPOT_CAUTION: 1,
        RESTITUTION_CAUTION: -1,
        CREDIT: -1,
        REMBOURSEMENT: 1,
        INTERET: 1,
        PENALITE: 1,
        RECONDUCTION: -1,
        DEPENSE_COMMUNE_FONDS: -1,
        DEPENSE_COMMUNE_EPARGNE: -1,
        PRELEVEMENT_EPARGNE: -1,
        CASSATION: -1,
    }

    # Types écrits uniquement par les moteurs (crédit, prélèvement, cassation)
    TYPES_RESERVES = (CREDIT, REMBOURSEMENT, PENALITE, RECONDUCTION, PRELEVEMENT_EPARGNE, CASSATION)

    # Seules les dépenses payées par le fonds ne sont rattachées à aucun membre
    membre = models.ForeignKey(Membre, on_delete=models.PROTECT, null=True, blank=True,
                               related_name='mouvements')
    type_mouvement = models.CharField(max_length=30, choices=TYPE_CHOICES)
    montant = models.DecimalField(max_digits=15, decimal_places=2)
    motif = models.TextField(blank=True)
    date = models.DateTimeField(default=timezone.now)
    session = models.ForeignKey(Session, on_delete=models.PROTECT, null=True, blank=True,
                                related_name='mouvements')
    credit = models.ForeignKey(Credit, on_delete=models.PROTECT, null=True, blank=True,
                               related_name='mouvements')
    cassation = models.ForeignKey(Cassation, on_delete=models.PROTECT, null=True, blank=True,
                                  related_name='mouvements')
    depense = models.ForeignKey(DepenseCommune, on_delete=models.PROTECT, null=True, blank=True,
                                related_name='mouvements')

    class Meta:
        db_table = 'mouvements'
        verbose_name = "Mouvement"
        verbose_name_plural = "Mouvements"
        ordering = ['-date', '-id']
        indexes = [
            models.Index(fields=['membre', 'type_mouvement'], name='mouvement_membre_type_idx'),
            models.Index(fields=['session'], name='mouvement_session_idx'),
            models.Index(fields=['date'], name='mouvement_date_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(type_mouvement__in=[
                    'epargne', 'cotisation_annuelle', 'versement_ponctuel', 'depot_caution',
                    'restitution_caution', 'credit', 'remboursement', 'interet', 'penalite',
                    'reconduction', 'depense_commune_fonds', 'depense_commune_epargne',
                    'prelevement_epargne', 'cassation',
                ]),
                name='mouvement_type_valide',
            ),
            models.CheckConstraint(condition=~Q(montant=0), name='mouvement_montant_non_nul'),
            models.CheckConstraint(
                condition=Q(membre__isnull=False) | Q(type_mouvement='depense_commune_fonds'),
                name='mouvement_membre_requis',
            ),
        ]

    def __str__(self):
        nom = self.membre.nom if self.membre else 'Fonds commun'
        return f"{self.get_type_mouvement_display()} {self.montant} FCFA - {nom}"

    @property
    def compte_dans_epargne(self):
        return self.type_mouvement in self.TYPES_EPARGNE


class SessionMembre(models.Model):
    """Cumul par (session, membre), recalculable à tout moment depuis le grand livre"""
    session = models.ForeignKey(Session, on_delete=models.PROTECT, related_name='session_membres')
    membre = models.ForeignKey(Membre, on_delete=models.PROTECT, related_name='session_membres')
    epargne_session = models.DecimalField(max_digits=15, decimal_places=2, default=0)
    interets_session = models.DecimalField(max_digits=15, decimal_places=2, default=0)
    part_session = models.DecimalField(max_digits=15, decimal_places=2, default=0)

    class Meta:
        db_table = 'session_membres'
        verbose_name = "Membre de session"
        verbose_name_plural = "Membres de session"
        unique_together = ['session', 'membre']
        ordering = ['session', 'membre']

    def __str__(self):
        return f"{self.session} - {self.membre}"
