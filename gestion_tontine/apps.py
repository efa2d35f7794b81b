from django.apps import AppConfig


class GestionTontineConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'gestion_tontine'
    verbose_name = 'Gestion de la tontine familiale'

    def ready(self):
        # Brancher les récepteurs des événements métier
        import gestion_tontine.signals
