from django.core.management.base import BaseCommand

from gestion_tontine.services import CreditService, SessionService, SoldeService


class Command(BaseCommand):
    help = (
        "Recalcule les soldes d'épargne depuis le grand livre, rattache les mouvements "
        "sans session et signale les crédits dont le reste dû ne correspond pas aux remboursements."
    )

    def add_arguments(self, parser):
        parser.add_argument(
            '--controle-seulement',
            action='store_true',
            help="Contrôler les restes des crédits sans rien réparer.",
        )

    def handle(self, *args, **options):
        if not options['controle_seulement']:
            corrections = SoldeService.resynchroniser_soldes_epargne()
            self.stdout.write(self.style.SUCCESS(f"{len(corrections)} solde(s) d'épargne corrigé(s)."))

            rattaches = SessionService.rattacher_mouvements_sans_session()
            self.stdout.write(self.style.SUCCESS(f"{rattaches} mouvement(s) rattaché(s) à une session."))

        ecarts = CreditService.controler_restes_credits()
        if not ecarts:
            self.stdout.write(self.style.SUCCESS("Aucun écart sur les restes des crédits."))
        for ecart in ecarts:
            self.stdout.write(self.style.WARNING(
                f"Crédit {ecart['credit_id']}: reste {ecart['montant_restant']} FCFA, "
                f"attendu {ecart['attendu']} FCFA."
            ))
