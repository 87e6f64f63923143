import csv
from datetime import date, datetime, time
from io import StringIO

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone

from apps.core.ledger.models import TYPE_DEPOSIT, TYPE_WITHDRAWAL, Transaction
from apps.core.students.models import Student

from .services import REPORT_HEADERS, DateRange, daily_series, preset_range, resolve_range


def local_noon(day):
    return timezone.make_aware(datetime.combine(day, time(12, 0)))


class DateRangeTests(TestCase):
    def setUp(self):
        self.today = date(2026, 2, 18)

    def test_presets(self):
        self.assertEqual(preset_range('day', self.today), DateRange(self.today, self.today))
        self.assertEqual(preset_range('week', self.today), DateRange(date(2026, 2, 12), self.today))
        self.assertEqual(preset_range('month', self.today), DateRange(date(2026, 2, 1), date(2026, 2, 28)))
        self.assertIsNone(preset_range('year', self.today))

    def test_explicit_dates_override_preset(self):
        date_range = resolve_range({'range': 'month', 'start': '2026-02-10'}, today=self.today)
        self.assertEqual(date_range, DateRange(date(2026, 2, 10), date(2026, 2, 28)))

    def test_reversed_dates_are_swapped(self):
        date_range = resolve_range({'start': '2026-02-10', 'end': '2026-02-01'}, today=self.today)
        self.assertEqual(date_range, DateRange(date(2026, 2, 1), date(2026, 2, 10)))

    def test_defaults(self):
        self.assertEqual(resolve_range({}, today=self.today), DateRange(self.today, self.today))
        self.assertIsNone(resolve_range({}, today=self.today, default_today=False))
        self.assertEqual(
            resolve_range({'start': 'bukan-tanggal'}, today=self.today),
            DateRange(self.today, self.today),
        )


class ReportDataTests(TestCase):
    def setUp(self):
        self.today = date(2026, 2, 18)
        self.kasir = get_user_model().objects.create_user(
            username='kasir1',
            password='pass12345',
            role='kasir',
            full_name='Bu Kasir',
        )
        self.admin = get_user_model().objects.create_user(username='admin1', password='pass12345', role='admin')
        self.student = Student.objects.create(nis='1001', name='Ahmad')
        self.add(TYPE_DEPOSIT, 50000, date(2026, 2, 16), 'TRX-20260216-120000-00000001')
        self.add(TYPE_WITHDRAWAL, 20000, date(2026, 2, 16), 'TRX-20260216-120000-00000002')
        self.add(TYPE_DEPOSIT, 10000, date(2026, 2, 18), 'TRX-20260218-120000-00000003')

    def add(self, trx_type, amount, day, trx_no):
        return Transaction.objects.create(
            trx_no=trx_no,
            student=self.student,
            user=self.kasir,
            type=trx_type,
            amount=amount,
            note='catatan',
            created_at=local_noon(day),
        )

    def test_daily_series_with_explicit_range(self):
        series = daily_series({'start': '2026-02-15', 'end': '2026-02-18'}, today=self.today)

        self.assertEqual(series['labels'], ['2026-02-15', '2026-02-16', '2026-02-17', '2026-02-18'])
        self.assertEqual(series['pemasukan'], [0, 50000, 0, 10000])
        self.assertEqual(series['pengeluaran'], [0, 20000, 0, 0])

    def test_daily_series_days_window(self):
        series = daily_series({'days': '3'}, today=self.today)
        self.assertEqual(series['labels'], ['2026-02-16', '2026-02-17', '2026-02-18'])
        self.assertEqual(series['pemasukan'], [50000, 0, 10000])

        self.assertEqual(len(daily_series({'days': 'x'}, today=self.today)['labels']), 14)
        self.assertEqual(len(daily_series({'days': '0'}, today=self.today)['labels']), 14)
        self.assertEqual(len(daily_series({'days': '500'}, today=self.today)['labels']), 90)

    def test_daily_series_caps_long_ranges(self):
        series = daily_series({'start': '2025-01-01', 'end': '2026-02-18'}, today=self.today)
        self.assertEqual(len(series['labels']), 180)
        self.assertEqual(series['labels'][0], '2025-01-01')

    def test_csv_export(self):
        self.client.login(username='admin1', password='pass12345')

        response = self.client.get(reverse('transaction_report_csv'), {
            'start': '2026-02-16',
            'end': '2026-02-16',
        })

        self.assertEqual(response['Content-Type'], 'text/csv')
        self.assertIn('laporan_2026-02-16_2026-02-16.csv', response['Content-Disposition'])
        rows = list(csv.reader(StringIO(response.content.decode('utf-8'))))
        self.assertEqual(rows[0], REPORT_HEADERS)
        self.assertEqual([row[1] for row in rows[1:]], [
            'TRX-20260216-120000-00000001',
            'TRX-20260216-120000-00000002',
        ])
        self.assertEqual(rows[1][6], 'Bu Kasir')

    def test_pdf_export(self):
        self.client.login(username='admin1', password='pass12345')

        response = self.client.get(reverse('transaction_report_pdf'), {'range': 'month'})

        self.assertEqual(response['Content-Type'], 'application/pdf')
        self.assertTrue(response.content.startswith(b'%PDF'))

    def test_report_page_totals(self):
        self.client.login(username='admin1', password='pass12345')

        response = self.client.get(reverse('transaction_report'), {'start': '2026-02-01', 'end': '2026-02-28'})

        totals = response.context['totals']
        self.assertEqual(totals['deposit_total'], 60000)
        self.assertEqual(totals['withdrawal_total'], 20000)
        self.assertEqual(totals['deposit_count'], 2)

    def test_daily_stats_endpoint(self):
        self.client.login(username='kasir1', password='pass12345')

        response = self.client.get(reverse('daily_stats'), {'start': '2026-02-16', 'end': '2026-02-16'})

        self.assertEqual(response.json(), {
            'labels': ['2026-02-16'],
            'pemasukan': [50000],
            'pengeluaran': [20000],
        })


class DashboardAccessTests(TestCase):
    def setUp(self):
        user_model = get_user_model()
        user_model.objects.create_user(username='admin1', password='pass12345', role='admin')
        user_model.objects.create_user(username='kasir1', password='pass12345', role='kasir')
        student = Student.objects.create(nis='1001', name='Ahmad')
        Student.objects.filter(pk=student.pk).update(balance=15000)

    def test_admin_dashboard(self):
        self.client.login(username='admin1', password='pass12345')

        response = self.client.get(reverse('admin_dashboard'))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.context['total_balance'], 15000)
        self.assertEqual(response.context['kasir_count'], 1)

    def test_kasir_sees_kasir_dashboard_only(self):
        self.client.login(username='kasir1', password='pass12345')

        self.assertEqual(self.client.get(reverse('kasir_dashboard')).status_code, 200)
        self.assertEqual(self.client.get(reverse('admin_dashboard')).status_code, 403)
        self.assertEqual(self.client.get(reverse('transaction_report')).status_code, 403)
