from django.core.management.base import BaseCommand
from django.db import transaction
from faker import Faker

from apps.core.students.models import Student
from apps.core.users.models import User


DEFAULT_USERS = (
    ('admin', 'admin123', User.ROLE_ADMIN, 'Administrator'),
    ('kasir', 'kasir123', User.ROLE_KASIR, 'Kasir'),
)


class Command(BaseCommand):
    help = 'Creates the default admin/kasir accounts and, optionally, fake santri records.'

    def add_arguments(self, parser):
        parser.add_argument('--students', type=int, default=0, help='Number of fake students to create.')
        parser.add_argument('--seed', type=int, default=None, help='Faker seed for repeatable data.')

    @transaction.atomic
    def handle(self, *args, **options):
        self.stdout.write('Seeding database...')

        if User.objects.exists():
            self.stdout.write('Users already exist; skipping default accounts.')
        else:
            for username, password, role, full_name in DEFAULT_USERS:
                User.objects.create_user(
                    username=username,
                    password=password,
                    role=role,
                    full_name=full_name,
                    is_staff=role == User.ROLE_ADMIN,
                )
                self.stdout.write(self.style.SUCCESS(f'Successfully created {role} user: {username}'))
            self.stdout.write(self.style.WARNING('Change the default passwords after first login.'))

        count = options['students']
        if count <= 0:
            return

        fake = Faker('id_ID')
        if options['seed'] is not None:
            Faker.seed(options['seed'])

        next_number = Student.objects.count() + 1
        created = 0
        while created < count:
            nis = f"{fake.year()}{next_number:05d}"
            next_number += 1
            if Student.objects.filter(nis=nis).exists():
                continue
            Student.objects.create(
                nis=nis,
                name=fake.name(),
                student_class=f"{fake.random_int(min=7, max=12)}{fake.random_element(['A', 'B', 'C'])}",
                group=fake.random_element(['Asrama Putra', 'Asrama Putri', 'Pondok Timur', 'Pondok Barat']),
                birth_date=fake.date_of_birth(minimum_age=11, maximum_age=19),
                address=fake.address(),
                guardian_phone=fake.phone_number(),
            )
            created += 1

        self.stdout.write(self.style.SUCCESS(f'Successfully created {created} students.'))
