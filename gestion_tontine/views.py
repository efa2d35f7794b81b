from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import filters, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from . import operations
from .decorators import CATEGORIE_CONFLIT, CATEGORIE_STOCKAGE
from .models import Cassation, Credit, DepenseCommune, Membre, Mouvement, Session
from .serializers import (
    CassationSerializer, CotisationSerializer, CreditCreationSerializer, CreditSerializer,
    DepenseCommuneCreationSerializer, DepenseCommuneModificationSerializer,
    DepenseCommuneSerializer, MembreInscriptionSerializer, MembreSerializer,
    MouvementCreationSerializer, MouvementModificationSerializer, MouvementSerializer,
    RemboursementCreationSerializer, SessionNomSerializer, SessionSerializer,
)

ERREURS_INTROUVABLE = {
    'UnknownMember', 'CreditNotFound', 'SessionNotFound', 'MovementNotFound', 'ExpenseNotFound',
}


def reponse_operation(resultat, statut_succes=status.HTTP_200_OK):
    """Traduit un résultat d'opération en réponse HTTP"""
    if resultat['success']:
        return Response(resultat, status=statut_succes)
    if resultat['erreur'] in ERREURS_INTROUVABLE:
        return Response(resultat, status=status.HTTP_404_NOT_FOUND)
    if resultat['categorie'] == CATEGORIE_CONFLIT:
        return Response(resultat, status=status.HTTP_409_CONFLICT)
    if resultat['categorie'] == CATEGORIE_STOCKAGE:
        return Response(resultat, status=status.HTTP_503_SERVICE_UNAVAILABLE)
    return Response(resultat, status=status.HTTP_400_BAD_REQUEST)


def requete_invalide(serializer):
    return Response({
        'success': False,
        'erreur': 'InvalidRequest',
        'message': "Requête invalide.",
        'details': serializer.errors,
    }, status=status.HTTP_400_BAD_REQUEST)


# API: Membres
class MembreViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Membre.objects.all()
    serializer_class = MembreSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['ville']
    search_fields = ['nom', 'telephone', 'profession']
    ordering_fields = ['nom', 'date_adhesion', 'solde_epargne']

    def create(self, request):
        serializer = MembreInscriptionSerializer(data=request.data)
        if not serializer.is_valid():
            return requete_invalide(serializer)
        resultat = operations.inscrire_membre(**serializer.validated_data)
        return reponse_operation(resultat, status.HTTP_201_CREATED)

    def destroy(self, request, pk=None):
        return reponse_operation(operations.supprimer_membre(pk))

    @action(detail=True, methods=['get'])
    def details(self, request, pk=None):
        return reponse_operation(operations.get_details_membre(pk))

    @action(detail=True, methods=['get'])
    def historique(self, request, pk=None):
        return reponse_operation(operations.get_historique_membre(pk))


# API: Grand livre
class MouvementViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Mouvement.objects.select_related('membre').all()
    serializer_class = MouvementSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['membre', 'type_mouvement', 'session', 'credit']
    search_fields = ['motif', 'membre__nom']
    ordering_fields = ['date', 'montant']

    def create(self, request):
        serializer = MouvementCreationSerializer(data=request.data)
        if not serializer.is_valid():
            return requete_invalide(serializer)
        resultat = operations.ajouter_mouvement(**serializer.validated_data)
        return reponse_operation(resultat, status.HTTP_201_CREATED)

    def partial_update(self, request, pk=None):
        serializer = MouvementModificationSerializer(data=request.data)
        if not serializer.is_valid():
            return requete_invalide(serializer)
        return reponse_operation(operations.modifier_mouvement(pk, **serializer.validated_data))

    def destroy(self, request, pk=None):
        return reponse_operation(operations.supprimer_mouvement(pk))

    @action(detail=False, methods=['post'], url_path='prelever-cotisation')
    def prelever_cotisation(self, request):
        """Prélève une cotisation sur l'épargne de tous les membres"""
        serializer = CotisationSerializer(data=request.data)
        if not serializer.is_valid():
            return requete_invalide(serializer)
        return reponse_operation(operations.prelever_cotisation(**serializer.validated_data))


# API: Dépenses communes
class DepenseCommuneViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = DepenseCommune.objects.all()
    serializer_class = DepenseCommuneSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['categorie', 'sur_epargne', 'session']
    search_fields = ['description']
    ordering_fields = ['date', 'montant']

    def create(self, request):
        """Enregistre une dépense prise sur le fonds ou répartie sur l'épargne"""
        serializer = DepenseCommuneCreationSerializer(data=request.data)
        if not serializer.is_valid():
            return requete_invalide(serializer)
        resultat = operations.ajouter_depense_commune(**serializer.validated_data)
        return reponse_operation(resultat, status.HTTP_201_CREATED)

    def partial_update(self, request, pk=None):
        serializer = DepenseCommuneModificationSerializer(data=request.data)
        if not serializer.is_valid():
            return requete_invalide(serializer)
        return reponse_operation(operations.modifier_depense_commune(pk, **serializer.validated_data))

    def destroy(self, request, pk=None):
        return reponse_operation(operations.supprimer_depense_commune(pk))


# API: Crédits
class CreditViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Credit.objects.select_related('membre').prefetch_related('remboursements').all()
    serializer_class = CreditSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['membre', 'statut']
    search_fields = ['membre__nom']
    ordering_fields = ['date_accord', 'date_echeance', 'montant_restant']

    def create(self, request):
        serializer = CreditCreationSerializer(data=request.data)
        if not serializer.is_valid():
            return requete_invalide(serializer)
        resultat = operations.accorder_credit(**serializer.validated_data)
        return reponse_operation(resultat, status.HTTP_201_CREATED)

    def destroy(self, request, pk=None):
        return reponse_operation(operations.supprimer_credit(pk))

    @action(detail=True, methods=['post'])
    def rembourser(self, request, pk=None):
        serializer = RemboursementCreationSerializer(data=request.data)
        if not serializer.is_valid():
            return requete_invalide(serializer)
        return reponse_operation(operations.rembourser_credit(pk, **serializer.validated_data))


# API: Sessions
class SessionViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Session.objects.exclude(statut=Session.STATUT_SUPPRIMEE).prefetch_related('session_membres__membre')
    serializer_class = SessionSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_fields = ['statut']
    ordering_fields = ['numero', 'date_debut']

    def create(self, request):
        """Clôture la session active et ouvre la suivante"""
        serializer = SessionNomSerializer(data=request.data)
        if not serializer.is_valid():
            return requete_invalide(serializer)
        return reponse_operation(operations.creer_session(**serializer.validated_data), status.HTTP_201_CREATED)

    def destroy(self, request, pk=None):
        return reponse_operation(operations.supprimer_session(pk))

    @action(detail=True, methods=['post'])
    def terminer(self, request, pk=None):
        return reponse_operation(operations.terminer_session(pk))

    @action(detail=True, methods=['post'])
    def renommer(self, request, pk=None):
        serializer = SessionNomSerializer(data=request.data)
        if not serializer.is_valid():
            return requete_invalide(serializer)
        return reponse_operation(operations.renommer_session(pk, serializer.validated_data['nom']))

    @action(detail=True, methods=['get'])
    def mouvements(self, request, pk=None):
        return reponse_operation(operations.get_mouvements_session(pk))

    @action(detail=False, methods=['get'])
    def recapitulatif(self, request):
        """Sessions avec leurs cumuls par membre (celle en cours est calculée à la volée)"""
        return reponse_operation(operations.get_sessions())


# API: Fonds
class FondsViewSet(viewsets.ViewSet):
    permission_classes = [IsAuthenticated]

    def list(self, request):
        return reponse_operation(operations.get_solde_fonds())

    @action(detail=False, methods=['post'], url_path='reparer-coherence')
    def reparer_coherence(self, request):
        return reponse_operation(operations.reparer_coherence())


# API: Cassation
class CassationViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Cassation.objects.all()
    serializer_class = CassationSerializer
    permission_classes = [IsAuthenticated]

    @action(detail=False, methods=['get'])
    def simulation(self, request):
        """Prévisualisation de la répartition, sans écriture"""
        return reponse_operation(operations.simuler_cassation())

    @action(detail=False, methods=['post'])
    def appliquer(self, request):
        return reponse_operation(operations.appliquer_cassation(), status.HTTP_201_CREATED)

    @action(detail=False, methods=['get'])
    def etat(self, request):
        return reponse_operation(operations.get_etat_apres_cassation())

    @action(detail=False, methods=['post'], url_path='nouveau-cycle')
    def nouveau_cycle(self, request):
        return reponse_operation(operations.preparer_nouveau_cycle())
