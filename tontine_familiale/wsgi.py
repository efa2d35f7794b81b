"""
WSGI config for tontine_familiale project.
"""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'tontine_familiale.settings')

application = get_wsgi_application()
