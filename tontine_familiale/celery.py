import os
from celery import Celery

# Définir le module de paramètres Django par défaut
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'tontine_familiale.settings')

# Créer l'instance Celery
app = Celery('tontine_familiale')

# Charger la configuration depuis les paramètres Django
app.config_from_object('django.conf:settings', namespace='CELERY')

# Charger automatiquement les tâches depuis tous les fichiers tasks.py
app.autodiscover_tasks()
