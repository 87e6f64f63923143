import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('students', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='PresetNominal',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('type', models.CharField(choices=[('setor', 'Setor'), ('tarik', 'Tarik')], max_length=10)),
                ('amount', models.BigIntegerField()),
                ('label', models.CharField(blank=True, max_length=50)),
                ('sort_order', models.IntegerField(default=0)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'db_table': 'preset_nominal',
                'ordering': ['type', 'sort_order', 'amount'],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('amount__gt', 0)), name='preset_amount_positive'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Transaction',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('trx_no', models.CharField(editable=False, max_length=40, unique=True)),
                ('type', models.CharField(choices=[('setor', 'Setor'), ('tarik', 'Tarik')], max_length=10)),
                ('amount', models.BigIntegerField()),
                ('note', models.TextField(blank=True)),
                ('receiver_name', models.CharField(blank=True, max_length=200)),
                ('receipt_path', models.CharField(blank=True, max_length=255)),
                ('giver_signature_path', models.CharField(blank=True, max_length=255)),
                ('receiver_signature_path', models.CharField(blank=True, max_length=255)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('student', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='transactions', to='students.student')),
                ('user', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='ledger_transactions', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'transactions',
                'ordering': ['-created_at', '-id'],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('amount__gt', 0)), name='transaction_amount_positive'),
                ],
                'indexes': [
                    models.Index(fields=['student', 'created_at'], name='trx_student_created_idx'),
                    models.Index(fields=['type', 'created_at'], name='trx_type_created_idx'),
                    models.Index(fields=['created_at'], name='trx_created_idx'),
                ],
            },
        ),
    ]
