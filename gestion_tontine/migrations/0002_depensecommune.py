import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('gestion_tontine', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='DepenseCommune',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('description', models.CharField(blank=True, max_length=255)),
                ('montant', models.DecimalField(decimal_places=2, max_digits=15)),
                ('categorie', models.CharField(choices=[('boisson', 'Boisson'), ('deuil', 'Deuil'), ('evenement', 'Évènement'), ('transport', 'Transport'), ('materiel', 'Matériel'), ('communication', 'Communication'), ('autres', 'Autres')], default='autres', max_length=20)),
                ('sur_epargne', models.BooleanField(default=True)),
                ('date', models.DateTimeField(default=django.utils.timezone.now)),
                ('session', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='depenses_communes', to='gestion_tontine.session')),
            ],
            options={
                'verbose_name': 'Dépense commune',
                'verbose_name_plural': 'Dépenses communes',
                'db_table': 'depenses_communes',
                'ordering': ['-date', '-id'],
            },
        ),
        migrations.AddConstraint(
            model_name='depensecommune',
            constraint=models.CheckConstraint(condition=models.Q(('montant__gt', 0)), name='depense_montant_positif'),
        ),
        migrations.AddConstraint(
            model_name='depensecommune',
            constraint=models.CheckConstraint(condition=models.Q(('categorie__in', ['boisson', 'deuil', 'evenement', 'transport', 'materiel', 'communication', 'autres'])), name='depense_categorie_valide'),
        ),
        migrations.AlterField(
            model_name='mouvement',
            name='membre',
            field=models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='mouvements', to='gestion_tontine.membre'),
        ),
        migrations.AddField(
            model_name='mouvement',
            name='depense',
            field=models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='mouvements', to='gestion_tontine.depensecommune'),
        ),
        migrations.AddConstraint(
            model_name='mouvement',
            constraint=models.CheckConstraint(condition=models.Q(('membre__isnull', False), ('type_mouvement', 'depense_commune_fonds'), _connector='OR'), name='mouvement_membre_requis'),
        ),
    ]
