from django.db import migrations


DEFAULT_PRESETS = (
    (10000, '10 rb', 1),
    (20000, '20 rb', 2),
    (50000, '50 rb', 3),
    (100000, '100 rb', 4),
)


def seed_presets(apps, schema_editor):
    PresetNominal = apps.get_model('ledger', 'PresetNominal')
    if PresetNominal.objects.exists():
        return
    PresetNominal.objects.bulk_create([
        PresetNominal(type=trx_type, amount=amount, label=label, sort_order=sort_order, is_active=True)
        for trx_type in ('setor', 'tarik')
        for amount, label, sort_order in DEFAULT_PRESETS
    ])


class Migration(migrations.Migration):

    dependencies = [
        ('ledger', '0001_initial'),
    ]

    operations = [
        migrations.RunPython(seed_presets, migrations.RunPython.noop),
    ]
