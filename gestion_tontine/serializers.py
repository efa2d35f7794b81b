from rest_framework import serializers

from .models import (
    Cassation, Credit, DepenseCommune, Membre, Mouvement, Remboursement, Session, SessionMembre,
)


class MembreSerializer(serializers.ModelSerializer):
    """Sérialiseur pour les membres"""
    credit_restant = serializers.SerializerMethodField()

    class Meta:
        model = Membre
        fields = [
            'id', 'nom', 'telephone', 'profession', 'ville', 'date_adhesion', 'caution',
            'solde_epargne', 'credit_restant', 'date_creation',
        ]
        read_only_fields = fields

    def get_credit_restant(self, obj):
        return obj.credit_restant


class MouvementSerializer(serializers.ModelSerializer):
    membre_nom = serializers.CharField(source='membre.nom', read_only=True, allow_null=True)
    type_mouvement_display = serializers.CharField(source='get_type_mouvement_display', read_only=True)

    class Meta:
        model = Mouvement
        fields = [
            'id', 'membre', 'membre_nom', 'type_mouvement', 'type_mouvement_display', 'montant',
            'motif', 'date', 'session', 'credit', 'cassation', 'depense',
        ]
        read_only_fields = fields


class DepenseCommuneSerializer(serializers.ModelSerializer):
    categorie_display = serializers.CharField(source='get_categorie_display', read_only=True)

    class Meta:
        model = DepenseCommune
        fields = [
            'id', 'description', 'montant', 'categorie', 'categorie_display', 'sur_epargne', 'date',
            'session',
        ]
        read_only_fields = fields


class RemboursementSerializer(serializers.ModelSerializer):
    class Meta:
        model = Remboursement
        fields = ['id', 'montant', 'type_remboursement', 'date']
        read_only_fields = fields


class CreditSerializer(serializers.ModelSerializer):
    """Sérialiseur pour les crédits, avec l'historique des remboursements"""
    membre_nom = serializers.CharField(source='membre.nom', read_only=True)
    remboursements = RemboursementSerializer(many=True, read_only=True)

    class Meta:
        model = Credit
        fields = [
            'id', 'membre', 'membre_nom', 'montant_principal', 'montant_total_du', 'montant_restant',
            'penalites_cumulees', 'penalite_due', 'date_accord', 'date_echeance', 'statut',
            'derniere_session_penalisee', 'remboursements',
        ]
        read_only_fields = fields


class SessionMembreSerializer(serializers.ModelSerializer):
    membre_nom = serializers.CharField(source='membre.nom', read_only=True)

    class Meta:
        model = SessionMembre
        fields = ['membre', 'membre_nom', 'epargne_session', 'interets_session', 'part_session']
        read_only_fields = fields


class SessionSerializer(serializers.ModelSerializer):
    libelle = serializers.CharField(source='__str__', read_only=True)
    session_membres = SessionMembreSerializer(many=True, read_only=True)

    class Meta:
        model = Session
        fields = [
            'id', 'numero', 'nom', 'libelle', 'date_debut', 'date_fin', 'statut',
            'total_epargne', 'total_interets', 'fonds_disponible',
            'total_epargne_cumule', 'total_interets_cumule', 'session_membres',
        ]
        read_only_fields = fields


class CassationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Cassation
        fields = [
            'id', 'date_application', 'session', 'fonds_distribue', 'nombre_beneficiaires',
            'pas_arrondi', 'details', 'cycle_prepare', 'date_preparation',
        ]
        read_only_fields = fields


# Sérialiseurs d'entrée: les montants restent des chaînes, leur validation
# (montant fini, non nul, deux décimales) est faite par les services.

class MembreInscriptionSerializer(serializers.Serializer):
    nom = serializers.CharField(max_length=200)
    caution = serializers.CharField(required=False, allow_null=True)
    telephone = serializers.CharField(max_length=30, required=False, allow_blank=True, default='')
    profession = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    ville = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')


class MouvementCreationSerializer(serializers.Serializer):
    membre_id = serializers.IntegerField()
    type_mouvement = serializers.CharField(max_length=30)
    montant = serializers.CharField()
    motif = serializers.CharField(required=False, allow_blank=True, default='')
    session_id = serializers.IntegerField(required=False, allow_null=True, default=None)


class MouvementModificationSerializer(serializers.Serializer):
    montant = serializers.CharField(required=False)
    motif = serializers.CharField(required=False, allow_blank=True)


class CotisationSerializer(serializers.Serializer):
    montant = serializers.CharField()
    type_cotisation = serializers.ChoiceField(choices=['annuelle', 'ponctuel'], default='annuelle')
    motif = serializers.CharField(required=False, allow_blank=True, default='')
    date = serializers.DateField(required=False, allow_null=True, default=None)


class DepenseCommuneCreationSerializer(serializers.Serializer):
    montant = serializers.CharField()
    categorie = serializers.ChoiceField(
        choices=DepenseCommune.CATEGORIE_CHOICES, default=DepenseCommune.CATEGORIE_AUTRES
    )
    description = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    sur_epargne = serializers.BooleanField(default=True)


class DepenseCommuneModificationSerializer(serializers.Serializer):
    montant = serializers.CharField(required=False)
    categorie = serializers.ChoiceField(choices=DepenseCommune.CATEGORIE_CHOICES, required=False)
    description = serializers.CharField(max_length=255, required=False, allow_blank=True)


class CreditCreationSerializer(serializers.Serializer):
    membre_id = serializers.IntegerField()
    montant_principal = serializers.CharField()
    date_echeance = serializers.DateField(required=False, allow_null=True, default=None)


class RemboursementCreationSerializer(serializers.Serializer):
    montant = serializers.CharField()
    type_remboursement = serializers.ChoiceField(
        choices=Remboursement.TYPE_CHOICES, default=Remboursement.TYPE_PRINCIPAL
    )


class SessionNomSerializer(serializers.Serializer):
    nom = serializers.CharField(max_length=200, required=False, allow_blank=True, default='')
