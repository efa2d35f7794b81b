"""
URL configuration for tontine_familiale project.

Le noyau est exposé sous /api/ par l'application gestion_tontine.
"""
from django.urls import path, include

urlpatterns = [
    path('api/', include('gestion_tontine.urls', namespace='gestion_tontine')),
]
