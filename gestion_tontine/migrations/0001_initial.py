import django.db.models.deletion
import django.utils.timezone
import gestion_tontine.models
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        migrations.CreateModel(
            name='Membre',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('nom', models.CharField(max_length=200)),
                ('telephone', models.CharField(blank=True, max_length=30)),
                ('profession', models.CharField(blank=True, max_length=100)),
                ('ville', models.CharField(blank=True, max_length=100)),
                ('date_adhesion', models.DateField(default=django.utils.timezone.localdate)),
                ('caution', models.DecimalField(decimal_places=2, default=gestion_tontine.models.caution_par_defaut, max_digits=15)),
                ('solde_epargne', models.DecimalField(decimal_places=2, default=0, max_digits=15)),
                ('date_creation', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'verbose_name': 'Membre',
                'verbose_name_plural': 'Membres',
                'db_table': 'membres',
                'ordering': ['nom', 'id'],
            },
        ),
        migrations.CreateModel(
            name='Session',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('numero', models.PositiveIntegerField(editable=False, unique=True)),
                ('nom', models.CharField(blank=True, max_length=200)),
                ('date_debut', models.DateTimeField(default=django.utils.timezone.now)),
                ('date_fin', models.DateTimeField(blank=True, null=True)),
                ('statut', models.CharField(choices=[('active', 'Active'), ('terminee', 'Terminée'), ('cassation', 'Consolidée par une cassation'), ('supprimee', 'Supprimée')], default='active', max_length=20)),
                ('total_epargne', models.DecimalField(decimal_places=2, default=0, max_digits=15)),
                ('total_interets', models.DecimalField(decimal_places=2, default=0, max_digits=15)),
                ('fonds_disponible', models.DecimalField(decimal_places=2, default=0, max_digits=15)),
                ('total_epargne_cumule', models.DecimalField(decimal_places=2, default=0, max_digits=15)),
                ('total_interets_cumule', models.DecimalField(decimal_places=2, default=0, max_digits=15)),
            ],
            options={
                'verbose_name': 'Session',
                'verbose_name_plural': 'Sessions',
                'db_table': 'sessions',
                'ordering': ['-numero'],
            },
        ),
        migrations.CreateModel(
            name='Cassation',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('date_application', models.DateTimeField(default=django.utils.timezone.now)),
                ('fonds_distribue', models.DecimalField(decimal_places=2, max_digits=15)),
                ('nombre_beneficiaires', models.PositiveIntegerField(default=0)),
                ('pas_arrondi', models.DecimalField(decimal_places=2, max_digits=15)),
                ('borne_mouvement_id', models.PositiveBigIntegerField(default=0)),
                ('details', models.JSONField(blank=True, default=dict)),
                ('cycle_prepare', models.BooleanField(default=False)),
                ('date_preparation', models.DateTimeField(blank=True, null=True)),
                ('session', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='cassations', to='gestion_tontine.session')),
            ],
            options={
                'verbose_name': 'Cassation',
                'verbose_name_plural': 'Cassations',
                'db_table': 'cassations',
                'ordering': ['-date_application', '-id'],
            },
        ),
        migrations.CreateModel(
            name='Credit',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('montant_principal', models.DecimalField(decimal_places=2, max_digits=15)),
                ('montant_total_du', models.DecimalField(decimal_places=2, max_digits=15)),
                ('montant_restant', models.DecimalField(decimal_places=2, max_digits=15)),
                ('penalites_cumulees', models.DecimalField(decimal_places=2, default=0, max_digits=15)),
                ('penalite_due', models.DecimalField(decimal_places=2, default=0, max_digits=15)),
                ('date_accord', models.DateField(default=django.utils.timezone.localdate)),
                ('date_echeance', models.DateField()),
                ('statut', models.CharField(choices=[('actif', 'Actif'), ('rembourse', 'Remboursé'), ('en_retard', 'En retard')], default='actif', max_length=20)),
                ('date_creation', models.DateTimeField(auto_now_add=True)),
                ('derniere_session_penalisee', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='credits_penalises', to='gestion_tontine.session')),
                ('membre', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='credits', to='gestion_tontine.membre')),
            ],
            options={
                'verbose_name': 'Crédit',
                'verbose_name_plural': 'Crédits',
                'db_table': 'credits',
                'ordering': ['-date_accord', '-id'],
            },
        ),
        migrations.CreateModel(
            name='Remboursement',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('montant', models.DecimalField(decimal_places=2, max_digits=15)),
                ('type_remboursement', models.CharField(choices=[('principal', 'Principal'), ('penalite', 'Pénalité')], default='principal', max_length=20)),
                ('date', models.DateTimeField(default=django.utils.timezone.now)),
                ('credit', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='remboursements', to='gestion_tontine.credit')),
            ],
            options={
                'verbose_name': 'Remboursement',
                'verbose_name_plural': 'Remboursements',
                'db_table': 'remboursements',
                'ordering': ['-date', '-id'],
            },
        ),
        migrations.CreateModel(
            name='Mouvement',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('type_mouvement', models.CharField(choices=[('epargne', 'Épargne'), ('cotisation_annuelle', 'Cotisation annuelle'), ('versement_ponctuel', 'Versement ponctuel'), ('depot_caution', 'Dépôt de caution'), ('restitution_caution', 'Restitution de caution'), ('credit', 'Décaissement de crédit'), ('remboursement', 'Remboursement de crédit'), ('interet', 'Intérêt'), ('penalite', 'Pénalité de retard'), ('reconduction', 'Reconduction de crédit'), ('depense_commune_fonds', 'Dépense commune (fonds)'), ('depense_commune_epargne', 'Dépense commune (épargne)'), ('prelevement_epargne', 'Prélèvement sur épargne'), ('cassation', 'Part de cassation')], max_length=30)),
                ('montant', models.DecimalField(decimal_places=2, max_digits=15)),
                ('motif', models.TextField(blank=True)),
                ('date', models.DateTimeField(default=django.utils.timezone.now)),
                ('cassation', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='mouvements', to='gestion_tontine.cassation')),
                ('credit', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='mouvements', to='gestion_tontine.credit')),
                ('membre', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='mouvements', to='gestion_tontine.membre')),
                ('session', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='mouvements', to='gestion_tontine.session')),
            ],
            options={
                'verbose_name': 'Mouvement',
                'verbose_name_plural': 'Mouvements',
                'db_table': 'mouvements',
                'ordering': ['-date', '-id'],
            },
        ),
        migrations.CreateModel(
            name='SessionMembre',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('epargne_session', models.DecimalField(decimal_places=2, default=0, max_digits=15)),
                ('interets_session', models.DecimalField(decimal_places=2, default=0, max_digits=15)),
                ('part_session', models.DecimalField(decimal_places=2, default=0, max_digits=15)),
                ('membre', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='session_membres', to='gestion_tontine.membre')),
                ('session', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='session_membres', to='gestion_tontine.session')),
            ],
            options={
                'verbose_name': 'Membre de session',
                'verbose_name_plural': 'Membres de session',
                'db_table': 'session_membres',
                'ordering': ['session', 'membre'],
                'unique_together': {('session', 'membre')},
            },
        ),
        migrations.AddConstraint(
            model_name='session',
            constraint=models.UniqueConstraint(condition=models.Q(('statut', 'active')), fields=('statut',), name='une_seule_session_active'),
        ),
        migrations.AddConstraint(
            model_name='session',
            constraint=models.CheckConstraint(condition=models.Q(('statut__in', ['active', 'terminee', 'cassation', 'supprimee'])), name='session_statut_valide'),
        ),
        migrations.AddConstraint(
            model_name='credit',
            constraint=models.CheckConstraint(condition=models.Q(('statut__in', ['actif', 'rembourse', 'en_retard'])), name='credit_statut_valide'),
        ),
        migrations.AddConstraint(
            model_name='credit',
            constraint=models.CheckConstraint(condition=models.Q(('montant_restant__gte', 0), ('montant_restant__lte', models.F('montant_total_du') + models.F('penalites_cumulees'))), name='credit_restant_borne'),
        ),
        migrations.AddConstraint(
            model_name='remboursement',
            constraint=models.CheckConstraint(condition=models.Q(('montant__gt', 0)), name='remboursement_montant_positif'),
        ),
        migrations.AddConstraint(
            model_name='remboursement',
            constraint=models.CheckConstraint(condition=models.Q(('type_remboursement__in', ['principal', 'penalite'])), name='remboursement_type_valide'),
        ),
        migrations.AddIndex(
            model_name='mouvement',
            index=models.Index(fields=['membre', 'type_mouvement'], name='mouvement_membre_type_idx'),
        ),
        migrations.AddIndex(
            model_name='mouvement',
            index=models.Index(fields=['session'], name='mouvement_session_idx'),
        ),
        migrations.AddIndex(
            model_name='mouvement',
            index=models.Index(fields=['date'], name='mouvement_date_idx'),
        ),
        migrations.AddConstraint(
            model_name='mouvement',
            constraint=models.CheckConstraint(condition=models.Q(('type_mouvement__in', ['epargne', 'cotisation_annuelle', 'versement_ponctuel', 'depot_caution', 'restitution_caution', 'credit', 'remboursement', 'interet', 'penalite', 'reconduction', 'depense_commune_fonds', 'depense_commune_epargne', 'prelevement_epargne', 'cassation'])), name='mouvement_type_valide'),
        ),
        migrations.AddConstraint(
            model_name='mouvement',
            constraint=models.CheckConstraint(condition=models.Q(('montant', 0), _negated=True), name='mouvement_montant_non_nul'),
        ),
    ]
