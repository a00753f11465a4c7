import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Medication',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('care_plan_id', models.CharField(db_index=True, max_length=64)),
                ('name', models.CharField(max_length=200)),
                ('dosage', models.CharField(blank=True, default='', max_length=100)),
                ('instructions', models.TextField(blank=True, default='')),
                ('schedule', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'medications',
            },
        ),
        migrations.CreateModel(
            name='MedicationAdministration',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('administered_at', models.DateTimeField()),
                ('administered_by', models.CharField(max_length=64)),
                ('administered_by_role', models.CharField(max_length=32)),
                ('status', models.CharField(
                    choices=[('administered', 'Administered'), ('missed', 'Missed'), ('refused', 'Refused')],
                    default='administered', max_length=20,
                )),
                ('notes', models.TextField(blank=True, null=True)),
                ('resolution_method', models.CharField(
                    blank=True, choices=[('dual_entry', 'Dual entry'), ('override', 'Override')],
                    max_length=20, null=True,
                )),
                ('resolution_notes', models.TextField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('medication', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT, related_name='administrations',
                    to='medication.medication',
                )),
                ('supersedes', models.ForeignKey(
                    blank=True, null=True, on_delete=django.db.models.deletion.PROTECT,
                    related_name='successors', to='medication.medicationadministration',
                )),
            ],
            options={
                'db_table': 'medication_administrations',
                'indexes': [models.Index(fields=['medication', 'administered_at'], name='medication_admin_med_at_idx')],
            },
        ),
        migrations.CreateModel(
            name='AdministrationConflictLink',
            fields=[
                ('id', models.BigAutoField(primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('conflicts_with', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT, related_name='+',
                    to='medication.medicationadministration',
                )),
                ('record', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT, related_name='conflict_links',
                    to='medication.medicationadministration',
                )),
            ],
            options={
                'db_table': 'medication_administration_conflicts',
            },
        ),
        migrations.AddConstraint(
            model_name='administrationconflictlink',
            constraint=models.UniqueConstraint(fields=('record', 'conflicts_with'), name='uniq_administration_conflict_pair'),
        ),
    ]
