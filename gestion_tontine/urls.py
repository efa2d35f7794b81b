from django.urls import include, path
from rest_framework.routers import DefaultRouter

from . import views

app_name = 'gestion_tontine'

router = DefaultRouter()
router.register(r'membres', views.MembreViewSet)
router.register(r'mouvements', views.MouvementViewSet)
router.register(r'depenses-communes', views.DepenseCommuneViewSet)
router.register(r'credits', views.CreditViewSet)
router.register(r'sessions', views.SessionViewSet)
router.register(r'cassations', views.CassationViewSet)
router.register(r'fonds', views.FondsViewSet, basename='fonds')

urlpatterns = [
    path('', include(router.urls)),
]
