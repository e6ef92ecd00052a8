"""
Initial migration for Labstock models.
"""

from decimal import Decimal

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


UNIT_CHOICES = [
    ('ug', 'ug'), ('mg', 'mg'), ('g', 'g'), ('kg', 'kg'),
    ('ul', 'ul'), ('ml', 'ml'), ('l', 'l'),
    ('pcs', 'pcs'), ('pack', 'pack'),
    ('U', 'U'), ('IU', 'IU'),
    ('umol', 'umol'), ('mmol', 'mmol'), ('mol', 'mol'),
]

BATCH_STATUS_CHOICES = [
    ('AVAILABLE', 'Available'),
    ('QUARANTINE', 'Quarantine'),
    ('EXPIRED', 'Expired'),
    ('DEPLETED', 'Depleted'),
]

CULTURE_STATUS_CHOICES = [
    ('ACTIVE', 'Active'),
    ('FROZEN', 'Frozen'),
    ('DISPOSED', 'Disposed'),
]


class Migration(migrations.Migration):
    """Create Labstock models."""

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='ContainerType',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('code', models.CharField(max_length=30, unique=True, verbose_name='Code')),
                ('name', models.CharField(max_length=100, verbose_name='Name')),
                ('is_active', models.BooleanField(default=True, verbose_name='Active')),
            ],
            options={
                'verbose_name': 'Container type',
                'verbose_name_plural': 'Container types',
                'ordering': ['code'],
            },
        ),
        migrations.CreateModel(
            name='Nomenclature',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('code', models.CharField(max_length=50, unique=True, verbose_name='Code')),
                ('name', models.CharField(max_length=200, verbose_name='Name')),
                ('category', models.CharField(choices=[('MEDIUM', 'Medium'), ('SERUM', 'Serum'), ('BUFFER', 'Buffer'), ('SUPPLEMENT', 'Supplement'), ('ENZYME', 'Enzyme'), ('REAGENT', 'Reagent'), ('CONSUMABLE', 'Consumable'), ('EQUIP', 'Equipment')], max_length=20, verbose_name='Category')),
                ('unit', models.CharField(choices=UNIT_CHOICES, max_length=10, verbose_name='Default unit')),
                ('molecular_weight', models.DecimalField(blank=True, decimal_places=4, max_digits=14, null=True, verbose_name='Molecular weight (g/mol)')),
                ('density', models.DecimalField(blank=True, decimal_places=6, max_digits=10, null=True, verbose_name='Density (g/ml)')),
                ('specific_activity', models.DecimalField(blank=True, decimal_places=4, max_digits=14, null=True, verbose_name='Specific activity (U/mg)')),
                ('is_active', models.BooleanField(default=True, verbose_name='Active')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'verbose_name': 'Nomenclature',
                'verbose_name_plural': 'Nomenclatures',
                'ordering': ['code'],
            },
        ),
        migrations.CreateModel(
            name='Culture',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('code', models.CharField(max_length=40, unique=True, verbose_name='Code')),
                ('name', models.CharField(max_length=200, verbose_name='Name')),
                ('culture_type', models.CharField(max_length=30, verbose_name='Culture type')),
                ('donor_ref', models.CharField(blank=True, default='', max_length=64, verbose_name='Donor')),
                ('donation_ref', models.CharField(blank=True, default='', max_length=64, verbose_name='Donation')),
                ('processing_method', models.CharField(blank=True, default='', max_length=50)),
                ('status', models.CharField(choices=CULTURE_STATUS_CHOICES, default='ACTIVE', max_length=20, verbose_name='Status')),
                ('passage_number', models.PositiveIntegerField(default=0)),
                ('notes', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'verbose_name': 'Culture',
                'verbose_name_plural': 'Cultures',
            },
        ),
        migrations.CreateModel(
            name='ReadyMedium',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('code', models.CharField(max_length=40, unique=True, verbose_name='Code')),
                ('name', models.CharField(max_length=200, verbose_name='Name')),
                ('volume_ml', models.DecimalField(decimal_places=3, max_digits=12, verbose_name='Volume (ml)')),
                ('current_volume_ml', models.DecimalField(decimal_places=3, default=Decimal('0'), max_digits=12, verbose_name='Current volume (ml)')),
                ('status', models.CharField(choices=[('QUARANTINE', 'Quarantine'), ('ACTIVE', 'Active'), ('EXPIRED', 'Expired'), ('DISPOSE', 'Disposed')], default='QUARANTINE', max_length=20, verbose_name='Status')),
                ('sterilization_method', models.CharField(blank=True, choices=[('FILTRATION', 'Filtration'), ('AUTOCLAVE', 'Autoclave')], default='', max_length=20)),
                ('prepared_at', models.DateField(blank=True, null=True)),
                ('expiration_date', models.DateField(blank=True, null=True)),
                ('storage_position_ref', models.CharField(blank=True, default='', max_length=64)),
                ('composition', models.JSONField(blank=True, default=list)),
                ('notes', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'verbose_name': 'Ready medium',
                'verbose_name_plural': 'Ready media',
            },
        ),
        migrations.CreateModel(
            name='Batch',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('batch_number', models.CharField(blank=True, default='', max_length=50, verbose_name='Batch number')),
                ('quantity_remaining', models.DecimalField(decimal_places=6, default=Decimal('0'), max_digits=18, verbose_name='Remaining')),
                ('unit', models.CharField(choices=UNIT_CHOICES, max_length=10, verbose_name='Unit')),
                ('expiration_date', models.DateField(blank=True, db_index=True, help_text='First day the batch may no longer be used', null=True, verbose_name='Expiration date')),
                ('status', models.CharField(choices=BATCH_STATUS_CHOICES, db_index=True, default='AVAILABLE', max_length=20, verbose_name='Status')),
                ('notes', models.TextField(blank=True, default='', verbose_name='Notes')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Created at')),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('container_type', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='batches', to='labstock.containertype', verbose_name='Container type')),
                ('nomenclature', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='batches', to='labstock.nomenclature', verbose_name='Nomenclature')),
            ],
            options={
                'verbose_name': 'Batch',
                'verbose_name_plural': 'Batches',
                'ordering': [models.OrderBy(models.F('expiration_date'), nulls_last=True), 'pk'],
                'indexes': [
                    models.Index(fields=['nomenclature', 'status'], name='labstock_ba_nomencl_3f1c2a_idx'),
                    models.Index(fields=['container_type', 'status'], name='labstock_ba_contain_8e4b7d_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('quantity_remaining__gte', 0)), name='labstock_batch_remaining_non_negative'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Lot',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('passage_number', models.PositiveIntegerField(default=0)),
                ('status', models.CharField(choices=CULTURE_STATUS_CHOICES, default='ACTIVE', max_length=20)),
                ('seeded_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('notes', models.TextField(blank=True, default='')),
                ('culture', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='lots', to='labstock.culture', verbose_name='Culture')),
            ],
            options={
                'verbose_name': 'Lot',
                'verbose_name_plural': 'Lots',
            },
        ),
        migrations.CreateModel(
            name='Container',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('code', models.CharField(max_length=80, unique=True, verbose_name='Code')),
                ('qr_code', models.CharField(blank=True, default='', max_length=100)),
                ('position_ref', models.CharField(blank=True, default='', max_length=64, verbose_name='Position')),
                ('status', models.CharField(choices=[('IN_CULTURE', 'In culture'), ('IN_BANK', 'In bank'), ('DISPOSED', 'Disposed')], default='IN_CULTURE', max_length=20)),
                ('passage_count', models.PositiveIntegerField(default=0)),
                ('confluent_percent', models.PositiveSmallIntegerField(default=0)),
                ('seeded_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('container_type', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='containers', to='labstock.containertype', verbose_name='Container type')),
                ('lot', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='containers', to='labstock.lot', verbose_name='Lot')),
            ],
            options={
                'verbose_name': 'Container',
                'verbose_name_plural': 'Containers',
            },
        ),
        migrations.CreateModel(
            name='WriteOff',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('amount', models.DecimalField(decimal_places=6, help_text='In the batch unit. Always positive; REVERSAL adds it back.', max_digits=18, verbose_name='Amount')),
                ('unit', models.CharField(choices=UNIT_CHOICES, max_length=10, verbose_name='Unit')),
                ('reason', models.CharField(choices=[('CONSUME', 'Consumed'), ('DISPOSE', 'Disposed'), ('CORRECT_MINUS', 'Correction (minus)'), ('REVERSAL', 'Reversal')], max_length=20, verbose_name='Reason')),
                ('target_id', models.CharField(blank=True, db_index=True, default='', max_length=64, verbose_name='Target')),
                ('quantity_after', models.DecimalField(blank=True, decimal_places=6, max_digits=18, null=True, verbose_name='Remaining after')),
                ('metadata', models.JSONField(blank=True, default=dict, verbose_name='Metadata')),
                ('timestamp', models.DateTimeField(db_index=True, default=django.utils.timezone.now, verbose_name='Timestamp')),
                ('batch', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='write_offs', to='labstock.batch', verbose_name='Batch')),
                ('reverses', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='reversals', to='labstock.writeoff', verbose_name='Reverses')),
            ],
            options={
                'verbose_name': 'Write-off',
                'verbose_name_plural': 'Write-offs',
                'ordering': ['timestamp', 'pk'],
                'indexes': [
                    models.Index(fields=['batch', 'timestamp'], name='labstock_wr_batch_i_5a9d01_idx'),
                ],
            },
        ),
    ]
