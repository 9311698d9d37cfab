# Generated manually
import backend.allocations.models
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='AllocationRecord',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('root_id', models.CharField(db_index=True, max_length=64)),
                ('rm_id', models.CharField(blank=True, db_index=True, default='', max_length=64)),
                ('bm_id', models.CharField(blank=True, db_index=True, default='', max_length=64)),
                ('manager_id', models.CharField(blank=True, db_index=True, default='', max_length=64)),
                ('level', models.CharField(choices=[('admin', 'Admin'), ('rm', 'Regional Manager'), ('bm', 'Branch Manager'), ('manager', 'Manager')], default='admin', max_length=10)),
                ('item', models.CharField(max_length=255)),
                ('year', models.CharField(default=backend.allocations.models.current_year, max_length=4)),
                ('lot', models.CharField(default='Lot 1', max_length=50)),
                ('purpose', models.CharField(blank=True, default='', max_length=255)),
                ('purpose_tag', models.CharField(choices=[('general', 'General'), ('project', 'Project'), ('marketing', 'Marketing'), ('other', 'Other')], default='general', editable=False, max_length=20)),
                ('assigned_by', models.CharField(blank=True, default='', max_length=150)),
                ('assigner_emp_code', models.CharField(blank=True, db_index=True, default='', max_length=50)),
                ('role', models.CharField(blank=True, default='', max_length=30)),
                ('region', models.CharField(blank=True, db_index=True, default='', max_length=100)),
                ('branch', models.CharField(blank=True, default='', max_length=100)),
                ('date', models.CharField(default=backend.allocations.models.display_timestamp, max_length=40)),
                ('to_vendor', models.BooleanField(default=False)),
                ('dispatched_at', models.DateTimeField(blank=True, null=True)),
                ('lr_no', models.CharField(blank=True, default='', max_length=100)),
                ('lr_updated_by', models.CharField(blank=True, default='', max_length=150)),
                ('lr_updated_at', models.DateTimeField(blank=True, null=True)),
                ('pod_updated_for_emp', models.BooleanField(default=False)),
                ('pod_updated_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='allocations_created', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'allocation_records',
                'ordering': ['-created_at', '-id'],
                'indexes': [
                    models.Index(fields=['to_vendor', 'purpose_tag'], name='idx_alloc_vendor'),
                    models.Index(fields=['year', 'lot'], name='idx_alloc_year_lot'),
                ],
            },
        ),
        migrations.CreateModel(
            name='AllocationLine',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('position', models.PositiveIntegerField(default=0)),
                ('emp_code', models.CharField(db_index=True, max_length=50)),
                ('name', models.CharField(blank=True, default='', max_length=150)),
                ('qty', models.PositiveIntegerField(default=0)),
                ('used_qty', models.PositiveIntegerField(default=0)),
                ('extra', models.JSONField(blank=True, default=dict)),
                ('record', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='employees', to='allocations.allocationrecord')),
            ],
            options={
                'db_table': 'allocation_lines',
                'ordering': ['record', 'position', 'id'],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('used_qty__lte', models.F('qty'))), name='allocation_line_used_within_qty'),
                ],
            },
        ),
        migrations.CreateModel(
            name='UsedSample',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('customer_id', models.CharField(max_length=100)),
                ('qty', models.PositiveIntegerField(default=1)),
                ('used_by', models.CharField(blank=True, default='', max_length=50)),
                ('used_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('line', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='used_samples', to='allocations.allocationline')),
            ],
            options={
                'db_table': 'allocation_used_samples',
                'ordering': ['used_at', 'id'],
            },
        ),
    ]
