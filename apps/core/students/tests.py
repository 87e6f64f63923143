import io
import shutil
import tempfile
from datetime import date, datetime
from pathlib import Path
from unittest import mock

import requests
from PIL import Image
from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.core.files.uploadedfile import SimpleUploadedFile
from django.db import DatabaseError
from django.test import TestCase, override_settings
from django.urls import reverse

from apps.core.ledger.services import TransactionEngine
from apps.core.ledger.types import DepositRequest, WithdrawalRequest

from .forms import StudentForm
from .models import Student
from .services import (
    fetch_google_sheet_records,
    google_sheet_csv_url,
    map_columns,
    map_records,
    parse_date,
    search_students,
    upsert_students,
)


TEST_MEDIA_ROOT = tempfile.mkdtemp(prefix='students_tests_')


def image_upload(name, image_format='PNG'):
    buffer = io.BytesIO()
    Image.new('RGB', (8, 8), color='white').save(buffer, format=image_format)
    return SimpleUploadedFile(name, buffer.getvalue(), content_type=f'image/{image_format.lower()}')


class StudentSearchTests(TestCase):
    def setUp(self):
        for nis, name, klass in (
            ('1', 'Ahmad Fauzi', '7A'),
            ('2', 'Ahmadi', '7B'),
            ('3', 'Zaid Ahmad', '8A'),
            ('4', 'Budi', '9C'),
        ):
            Student.objects.create(nis=nis, name=name, student_class=klass)

    def names(self, *args, **kwargs):
        return [student.name for student in search_students(*args, **kwargs)]

    def test_prefix_matches_come_first(self):
        self.assertEqual(self.names('ahmad'), ['Ahmad Fauzi', 'Ahmadi', 'Zaid Ahmad'])

    def test_short_query_uses_prefix_only(self):
        self.assertEqual(self.names('za'), ['Zaid Ahmad'])
        self.assertEqual(self.names('hm'), [])

    def test_limit_is_respected(self):
        self.assertEqual(self.names('ahmad', 2), ['Ahmad Fauzi', 'Ahmadi'])

    def test_empty_query(self):
        self.assertEqual(len(self.names('')), 4)
        self.assertEqual(self.names('', extended=True), [])

    def test_extended_search_covers_class(self):
        self.assertEqual(self.names('9C'), [])
        self.assertEqual(self.names('9C', extended=True), [])
        Student.objects.create(nis='5', name='Umar', student_class='kelas 10')
        self.assertEqual(self.names('kelas 10', extended=True), ['Umar'])


class ImportMappingTests(TestCase):
    def test_exact_alias_wins_over_substring(self):
        columns = map_columns(['Nama Wali', 'Nama', 'NIS', 'Kelas'])
        self.assertEqual(columns['name'], 1)
        self.assertEqual(columns['nis'], 2)
        self.assertEqual(columns['student_class'], 3)

    def test_substring_fallback(self):
        columns = map_columns(['No', 'Nama Lengkap Santri', 'NIS Lokal', 'Tgl. Lahir'])
        self.assertEqual(columns['name'], 1)
        self.assertEqual(columns['nis'], 2)
        self.assertEqual(columns['birth_date'], 3)
        self.assertNotIn('address', columns)

    def test_parse_date_formats(self):
        self.assertEqual(parse_date('2012-03-04'), date(2012, 3, 4))
        self.assertEqual(parse_date('04/03/2012'), date(2012, 3, 4))
        self.assertEqual(parse_date('4-3-2012'), date(2012, 3, 4))
        self.assertEqual(parse_date(datetime(2012, 3, 4, 10, 0)), date(2012, 3, 4))
        self.assertIsNone(parse_date('31/02/2012'))
        self.assertIsNone(parse_date('kemarin'))
        self.assertIsNone(parse_date(''))

    def test_map_records_skips_blank_rows(self):
        rows = map_records([
            ['NIS', 'Nama', 'Alamat'],
            ['', '', ''],
            [1001.0, 'Ahmad', 'Jl. Melati'],
        ])
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]['nis'], '1001')
        self.assertEqual(rows[0]['address'], 'Jl. Melati')
        self.assertIsNone(rows[0]['birth_date'])

    def test_upsert_skips_values_longer_than_columns(self):
        result = upsert_students([
            {'nis': '9' * 51, 'name': 'NIS Kepanjangan'},
            {'nis': '2001', 'name': 'N' * 201},
            {'nis': '2002', 'name': 'Santri', 'guardian_phone': '0812' * 10},
            {'nis': '2003', 'name': 'Santri Normal', 'address': 'A' * 500},
        ])

        self.assertEqual((result.inserted, result.updated, result.skipped), (1, 0, 3))
        self.assertEqual(list(Student.objects.values_list('nis', flat=True)), ['2003'])

    def test_header_only_sheet_is_rejected(self):
        with self.assertRaises(ValidationError):
            map_records([['NIS', 'Nama']])

    def test_upsert_counts_and_keeps_balance(self):
        existing = Student.objects.create(nis='1001', name='Nama Lama')
        Student.objects.filter(pk=existing.pk).update(balance=75000)

        result = upsert_students([
            {'nis': '1001', 'name': 'Nama Baru', 'student_class': '8A'},
            {'nis': '1002', 'name': 'Santri Baru'},
            {'nis': '', 'name': 'Tanpa NIS'},
            {'nis': '1003', 'name': ''},
        ])

        self.assertEqual((result.inserted, result.updated, result.skipped), (1, 1, 2))
        existing.refresh_from_db()
        self.assertEqual(existing.name, 'Nama Baru')
        self.assertEqual(existing.student_class, '8A')
        self.assertEqual(existing.balance, 75000)
        self.assertEqual(Student.objects.get(nis='1002').balance, 0)


class GoogleSheetTests(TestCase):
    def test_csv_export_url(self):
        url = google_sheet_csv_url(
            'https://docs.google.com/spreadsheets/d/abc_DEF-123/edit#gid=0',
            'Data Santri',
        )
        self.assertEqual(
            url,
            'https://docs.google.com/spreadsheets/d/abc_DEF-123/export?format=csv&sheet=Data%20Santri',
        )

    def test_invalid_url_is_rejected(self):
        with self.assertRaises(ValidationError):
            google_sheet_csv_url('https://example.com/sheet')

    @mock.patch('apps.core.students.services.requests.get')
    def test_fetch_parses_csv(self, mock_get):
        mock_get.return_value = mock.Mock(status_code=200, text='NIS,Nama\n1,Ahmad\n', encoding='utf-8')

        records = fetch_google_sheet_records('https://docs.google.com/spreadsheets/d/abc/edit')

        self.assertEqual(records, [['NIS', 'Nama'], ['1', 'Ahmad']])
        self.assertEqual(mock_get.call_args.kwargs['timeout'], 20)

    @mock.patch('apps.core.students.services.requests.get')
    def test_fetch_errors_become_validation_errors(self, mock_get):
        mock_get.return_value = mock.Mock(status_code=404, text='', encoding='utf-8')
        with self.assertRaises(ValidationError):
            fetch_google_sheet_records('https://docs.google.com/spreadsheets/d/abc/edit')

        mock_get.side_effect = requests.ConnectionError('offline')
        with self.assertRaises(ValidationError):
            fetch_google_sheet_records('https://docs.google.com/spreadsheets/d/abc/edit')


@override_settings(MEDIA_ROOT=TEST_MEDIA_ROOT, TABUNGAN_STORAGE_DIR=TEST_MEDIA_ROOT)
class StudentViewTests(TestCase):
    @classmethod
    def tearDownClass(cls):
        super().tearDownClass()
        shutil.rmtree(TEST_MEDIA_ROOT, ignore_errors=True)

    def setUp(self):
        user_model = get_user_model()
        self.admin = user_model.objects.create_user(username='admin1', password='pass12345', role='admin')
        self.kasir = user_model.objects.create_user(username='kasir1', password='pass12345', role='kasir')
        self.student = Student.objects.create(nis='1001', name='Ahmad Fauzi', student_class='7A')

    def test_kasir_cannot_open_student_admin(self):
        self.client.login(username='kasir1', password='pass12345')
        self.assertEqual(self.client.get(reverse('student_list')).status_code, 403)
        self.assertEqual(self.client.get(reverse('student_import')).status_code, 403)

    def test_kasir_can_view_student_detail(self):
        self.client.login(username='kasir1', password='pass12345')
        response = self.client.get(reverse('student_detail', args=[self.student.pk]))
        self.assertEqual(response.status_code, 200)
        self.assertContains(response, 'Ahmad Fauzi')

    def test_admin_creates_student_with_photo(self):
        self.client.login(username='admin1', password='pass12345')

        response = self.client.post(reverse('student_create'), {
            'nis': '2001',
            'name': 'Santri Foto',
            'photo': image_upload('foto.png'),
        })

        self.assertRedirects(response, reverse('student_list'))
        student = Student.objects.get(nis='2001')
        self.assertEqual(student.balance, 0)
        self.assertTrue(student.photo.name.startswith('students/photos/'))

    def test_photo_extension_is_checked(self):
        form = StudentForm(
            data={'nis': '2002', 'name': 'Santri'},
            files={'photo': image_upload('foto.gif', 'GIF')},
        )
        self.assertFalse(form.is_valid())
        self.assertIn('photo', form.errors)

    @override_settings(STUDENT_PHOTO_MAX_BYTES=10)
    def test_photo_size_is_checked(self):
        form = StudentForm(
            data={'nis': '2003', 'name': 'Santri'},
            files={'photo': image_upload('foto.png')},
        )
        self.assertFalse(form.is_valid())
        self.assertEqual(form.errors['photo'], ['Ukuran foto maksimal 2 MB.'])

    def test_admin_search_returns_json(self):
        self.client.login(username='admin1', password='pass12345')

        response = self.client.get(reverse('student_search'), {'q': '1001'})

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload[0]['nis'], '1001')
        self.assertEqual(payload[0]['balance'], 0)

    def test_csv_import_preview_then_run(self):
        self.client.login(username='admin1', password='pass12345')
        upload = SimpleUploadedFile(
            'santri.csv',
            b'NIS,Nama,Kelas,Tanggal Lahir\n1001,Ahmad F,7B,04/03/2012\n1002,Budi,8A,\n,Tanpa NIS,9A,\n',
            content_type='text/csv',
        )

        preview = self.client.post(reverse('student_import'), {'file': upload, 'action': 'preview'})
        self.assertEqual(preview.status_code, 200)
        self.assertEqual(len(preview.context['preview_rows']), 3)
        self.assertEqual(Student.objects.count(), 1)

        response = self.client.post(reverse('student_import'), {'action': 'run'})

        self.assertRedirects(response, reverse('student_list'))
        self.student.refresh_from_db()
        self.assertEqual(self.student.name, 'Ahmad F')
        self.assertEqual(self.student.birth_date, date(2012, 3, 4))
        self.assertTrue(Student.objects.filter(nis='1002').exists())
        self.assertEqual(Student.objects.count(), 2)

    def test_update_keeps_balance(self):
        Student.objects.filter(pk=self.student.pk).update(balance=42000)
        self.client.login(username='admin1', password='pass12345')

        response = self.client.post(reverse('student_update', args=[self.student.pk]), {
            'nis': '1001',
            'name': 'Ahmad Fauzi Baru',
            'student_class': '8A',
            'balance': 999999,
        })

        self.assertRedirects(response, reverse('student_list'))
        self.student.refresh_from_db()
        self.assertEqual(self.student.name, 'Ahmad Fauzi Baru')
        self.assertEqual(self.student.balance, 42000)
        self.assertNotIn('balance', StudentForm().fields)

    @mock.patch('apps.core.students.views.upsert_students', side_effect=DatabaseError('value too long'))
    def test_import_storage_error_is_reported(self, _mock_upsert):
        self.client.login(username='admin1', password='pass12345')
        upload = SimpleUploadedFile('santri.csv', b'NIS,Nama\n2001,Budi\n', content_type='text/csv')

        response = self.client.post(reverse('student_import'), {'file': upload, 'action': 'run'})

        self.assertRedirects(response, reverse('student_import'))
        self.assertFalse(Student.objects.filter(nis='2001').exists())

    def test_import_rejects_unsupported_file(self):
        self.client.login(username='admin1', password='pass12345')
        upload = SimpleUploadedFile('santri.txt', b'NIS,Nama\n1,A\n', content_type='text/plain')

        response = self.client.post(reverse('student_import'), {'file': upload, 'action': 'run'})

        self.assertEqual(response.status_code, 200)
        self.assertIn('file', response.context['form'].errors)

    def test_delete_student_removes_transactions_and_receipts(self):
        engine = TransactionEngine(storage_dir=TEST_MEDIA_ROOT)
        engine.deposit(DepositRequest(student_id=self.student.pk, amount=20000), actor=self.kasir)
        outcome = engine.withdraw(WithdrawalRequest(student_id=self.student.pk, amount=5000), actor=self.kasir)
        receipt = Path(TEST_MEDIA_ROOT) / outcome.transaction.receipt_path
        self.assertTrue(receipt.is_file())
        self.client.login(username='admin1', password='pass12345')

        response = self.client.post(reverse('student_delete', args=[self.student.pk]))

        self.assertRedirects(response, reverse('student_list'))
        self.assertFalse(Student.objects.filter(pk=self.student.pk).exists())
        self.assertFalse(receipt.exists())
