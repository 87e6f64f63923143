from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Student',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('nis', models.CharField(max_length=50, unique=True)),
                ('name', models.CharField(max_length=200)),
                ('student_class', models.CharField(blank=True, max_length=50)),
                ('group', models.CharField(blank=True, max_length=100)),
                ('birth_date', models.DateField(blank=True, null=True)),
                ('address', models.TextField(blank=True)),
                ('guardian_phone', models.CharField(blank=True, max_length=30)),
                ('photo', models.ImageField(blank=True, null=True, upload_to='students/photos/')),
                ('balance', models.BigIntegerField(default=0, editable=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'students',
                'ordering': ['name', 'id'],
                'indexes': [
                    models.Index(fields=['name'], name='students_name_idx'),
                    models.Index(fields=['student_class', 'group'], name='students_class_group_idx'),
                ],
            },
        ),
    ]
