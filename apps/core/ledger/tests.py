import shutil
import tempfile
from pathlib import Path
from unittest import mock

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.db import OperationalError
from django.test import TestCase, override_settings
from django.urls import reverse
from django.utils import timezone

from apps.core.students.models import Student
from apps.core.users.models import AuditLog

from .exceptions import (
    AmbiguousReference,
    DuplicateTransactionNumber,
    InsufficientFunds,
    NotFound,
    RenderError,
    StorageUnavailable,
)
from .models import MAX_AMOUNT, TYPE_DEPOSIT, TYPE_WITHDRAWAL, PresetNominal, Transaction
from .receipts import format_rupiah, render_withdrawal_receipt, terbilang
from .services import TRX_NO_RE, TransactionEngine, active_presets, generate_trx_no
from .types import DepositRequest, ReceiptData, ReversalRequest, WithdrawalRequest


TEST_STORAGE_DIR = tempfile.mkdtemp(prefix='ledger_tests_')


class RecordingSink:
    def __init__(self):
        self.events = []

    def __call__(self, **event):
        self.events.append(event)


def failing_renderer(data, *, storage_dir):
    raise RenderError('disk full')


def sequence_factory(*numbers):
    iterator = iter(numbers)
    return lambda: next(iterator)


@override_settings(TABUNGAN_STORAGE_DIR=TEST_STORAGE_DIR, MEDIA_ROOT=TEST_STORAGE_DIR)
class LedgerBaseTestCase(TestCase):
    @classmethod
    def tearDownClass(cls):
        super().tearDownClass()
        shutil.rmtree(TEST_STORAGE_DIR, ignore_errors=True)

    def setUp(self):
        user_model = get_user_model()
        self.admin = user_model.objects.create_user(
            username='admin_ledger',
            password='pass12345',
            role='admin',
            full_name='Admin Ledger',
        )
        self.kasir = user_model.objects.create_user(
            username='kasir_ledger',
            password='pass12345',
            role='kasir',
            full_name='Bu Kasir',
        )
        self.student = Student.objects.create(nis='1001', name='Ahmad Fauzi', student_class='7A')
        self.other_student = Student.objects.create(nis='1002', name='Budi Santoso', student_class='8B')
        self.sink = RecordingSink()
        self.engine = TransactionEngine(storage_dir=TEST_STORAGE_DIR, audit_sink=self.sink)

    def balance(self, student=None):
        return Student.objects.get(pk=(student or self.student).pk).balance

    def deposit(self, amount, student=None, engine=None):
        request = DepositRequest(student_id=(student or self.student).pk, amount=amount, note='setoran')
        return (engine or self.engine).deposit(request, actor=self.kasir)

    def withdraw(self, amount, receiver_name='', student=None, engine=None):
        request = WithdrawalRequest(
            student_id=(student or self.student).pk,
            amount=amount,
            note='jajan',
            receiver_name=receiver_name,
        )
        return (engine or self.engine).withdraw(request, actor=self.kasir)

    def reverse_trx(self, reference, engine=None):
        return (engine or self.engine).reverse(ReversalRequest(reference=reference), actor=self.admin)


class TransactionNumberTests(TestCase):
    def test_generated_numbers_are_unique_and_well_formed(self):
        numbers = [generate_trx_no() for _ in range(10000)]
        self.assertEqual(len(set(numbers)), 10000)
        self.assertTrue(all(TRX_NO_RE.match(number) for number in numbers))


class TransactionEngineTests(LedgerBaseTestCase):
    def test_deposit_increments_balance_and_records_transaction(self):
        outcome = self.deposit(50000)

        self.assertEqual(outcome.student_balance, 50000)
        self.assertEqual(self.balance(), 50000)
        self.assertFalse(outcome.degraded)
        trx = Transaction.objects.get()
        self.assertEqual(trx.type, TYPE_DEPOSIT)
        self.assertEqual(trx.amount, 50000)
        self.assertEqual(trx.user, self.kasir)
        self.assertRegex(trx.trx_no, TRX_NO_RE)

    def test_savings_scenario(self):
        self.deposit(50000)
        self.assertEqual(self.balance(), 50000)

        outcome = self.withdraw(20000, receiver_name='Ali')
        self.assertEqual(self.balance(), 30000)
        withdrawal = outcome.transaction
        self.assertEqual(withdrawal.receiver_name, 'Ali')
        self.assertEqual(withdrawal.receipt_path, f'pdfs/{withdrawal.trx_no}.pdf')
        receipt_file = Path(TEST_STORAGE_DIR) / withdrawal.receipt_path
        self.assertTrue(receipt_file.is_file())

        with self.assertRaises(InsufficientFunds):
            self.withdraw(100000)
        self.assertEqual(self.balance(), 30000)
        self.assertEqual(Transaction.objects.count(), 2)

        reversal = self.reverse_trx(withdrawal.trx_no)
        self.assertEqual(reversal.student_balance, 50000)
        self.assertEqual(self.balance(), 50000)
        self.assertFalse(Transaction.objects.filter(pk=withdrawal.pk).exists())
        self.assertFalse(receipt_file.exists())

    def test_balance_equals_replay_of_transactions(self):
        self.deposit(100000)
        self.deposit(25000)
        self.withdraw(40000)
        self.deposit(5000)
        self.withdraw(90000)
        self.deposit(7000, student=self.other_student)

        replay = sum(
            trx.signed_amount
            for trx in Transaction.objects.filter(student=self.student).order_by('created_at', 'id')
        )
        self.assertEqual(replay, 100000 + 25000 + 5000 - 40000 - 90000)
        self.assertEqual(self.balance(), replay)
        self.assertEqual(self.balance(self.other_student), 7000)

    def test_rejected_withdrawal_leaves_balance_unchanged(self):
        self.deposit(10000)

        with self.assertRaises(InsufficientFunds) as ctx:
            self.withdraw(10001)

        self.assertEqual(ctx.exception.balance, 10000)
        self.assertEqual(ctx.exception.amount, 10001)
        self.assertEqual(self.balance(), 10000)
        self.assertEqual(Transaction.objects.filter(type=TYPE_WITHDRAWAL).count(), 0)

    def test_withdrawal_receiver_defaults_to_student_name(self):
        self.deposit(10000)
        outcome = self.withdraw(5000)
        self.assertEqual(outcome.transaction.receiver_name, 'Ahmad Fauzi')

    def test_reversing_deposit_subtracts_amount_once(self):
        trx = self.deposit(15000).transaction
        self.deposit(5000)

        self.reverse_trx(trx.trx_no)
        self.assertEqual(self.balance(), 5000)

        with self.assertRaises(NotFound):
            self.reverse_trx(trx.trx_no)
        self.assertEqual(self.balance(), 5000)

    def test_reversal_by_suffix(self):
        trx = self.deposit(12000).transaction
        suffix = trx.trx_no.rsplit('-', 1)[1]

        self.reverse_trx(suffix.upper())

        self.assertEqual(self.balance(), 0)
        self.assertFalse(Transaction.objects.exists())

    def test_ambiguous_suffix_changes_nothing(self):
        engine = TransactionEngine(
            storage_dir=TEST_STORAGE_DIR,
            audit_sink=self.sink,
            trx_no_factory=sequence_factory(
                'TRX-20260101-080000-abcdef12',
                'TRX-20260102-080000-abcdef12',
            ),
        )
        self.deposit(10000, engine=engine)
        self.deposit(20000, student=self.other_student, engine=engine)

        with self.assertRaises(AmbiguousReference):
            self.reverse_trx('abcdef12')

        self.assertEqual(Transaction.objects.count(), 2)
        self.assertEqual(self.balance(), 10000)
        self.assertEqual(self.balance(self.other_student), 20000)

        self.reverse_trx('TRX-20260102-080000-abcdef12')
        self.assertEqual(self.balance(self.other_student), 0)
        self.assertEqual(self.balance(), 10000)

    def test_suffix_matches_trailing_segment_only(self):
        engine = TransactionEngine(
            storage_dir=TEST_STORAGE_DIR,
            audit_sink=self.sink,
            trx_no_factory=sequence_factory('TRX-20260101-080000-abcdef12'),
        )
        self.deposit(10000, engine=engine)

        with self.assertRaises(NotFound):
            self.reverse_trx('20260101')
        self.assertEqual(Transaction.objects.count(), 1)

    def test_malformed_reference_is_a_validation_error(self):
        for reference in ('', 'abc', 'TRX-2026', 'abcdef123', 'zzzzzzzz'):
            with self.assertRaises(ValidationError):
                self.reverse_trx(reference)

    def test_full_reference_ignores_case(self):
        trx = self.deposit(12000).transaction
        prefix, suffix = trx.trx_no.rsplit('-', 1)

        self.reverse_trx(f'{prefix.lower()}-{suffix.upper()}')

        self.assertEqual(self.balance(), 0)
        self.assertFalse(Transaction.objects.exists())

    def test_amount_string_of_ascii_digits_is_accepted(self):
        outcome = self.deposit(' 15000 ')
        self.assertEqual(outcome.transaction.amount, 15000)
        self.assertEqual(self.deposit(MAX_AMOUNT).student_balance, 15000 + MAX_AMOUNT)

    def test_invalid_amounts_are_rejected(self):
        for amount in (0, -5000, 1.5, True, 'sepuluh', None, '²', '１２', MAX_AMOUNT + 1, 10**19):
            with self.assertRaises(ValidationError):
                self.deposit(amount)
        self.assertEqual(self.balance(), 0)
        self.assertFalse(Transaction.objects.exists())

    def test_missing_student_raises_not_found(self):
        with self.assertRaises(NotFound):
            self.engine.deposit(DepositRequest(student_id=999999, amount=1000), actor=self.kasir)
        self.assertFalse(Transaction.objects.exists())

    def test_receipt_failure_keeps_the_withdrawal(self):
        self.deposit(30000)
        engine = TransactionEngine(
            storage_dir=TEST_STORAGE_DIR,
            audit_sink=self.sink,
            receipt_renderer=failing_renderer,
        )

        outcome = self.withdraw(10000, engine=engine)

        self.assertTrue(outcome.degraded)
        self.assertIn('disk full', outcome.receipt_warning)
        self.assertEqual(self.balance(), 20000)
        trx = Transaction.objects.get(pk=outcome.transaction.pk)
        self.assertEqual(trx.receipt_path, '')

    def test_negative_balance_after_reversal_is_flagged(self):
        deposit = self.deposit(50000).transaction
        self.withdraw(40000)

        outcome = self.reverse_trx(deposit.trx_no)

        self.assertEqual(outcome.student_balance, -40000)
        self.assertEqual(self.balance(), -40000)
        self.assertTrue(outcome.degraded)
        self.assertIsNotNone(outcome.balance_warning)

    def test_audit_sink_failure_is_swallowed(self):
        def broken_sink(**event):
            raise RuntimeError('audit store down')

        engine = TransactionEngine(storage_dir=TEST_STORAGE_DIR, audit_sink=broken_sink)

        with self.assertLogs('apps.core.ledger.services', level='ERROR'):
            outcome = self.deposit(10000, engine=engine)

        self.assertEqual(outcome.student_balance, 10000)
        self.assertEqual(self.balance(), 10000)

    def test_audit_events_carry_operation_details(self):
        trx = self.deposit(10000).transaction
        self.reverse_trx(trx.trx_no)

        created, deleted = self.sink.events
        self.assertEqual(created['action'], 'create')
        self.assertEqual(created['entity'], 'transaction')
        self.assertEqual(created['entity_id'], trx.trx_no)
        self.assertEqual(created['details'], {'type': TYPE_DEPOSIT, 'student_id': self.student.pk, 'amount': 10000})
        self.assertEqual(deleted['action'], 'delete')
        self.assertEqual(deleted['details']['by'], 'admin_ledger')
        self.assertEqual(deleted['actor'], self.admin)

    def test_default_sink_writes_audit_log(self):
        engine = TransactionEngine(storage_dir=TEST_STORAGE_DIR)
        trx = self.deposit(10000, engine=engine).transaction

        entry = AuditLog.objects.get(entity='transaction', entity_id=trx.trx_no)
        self.assertEqual(entry.user, self.kasir)
        self.assertEqual(entry.action, 'create')
        self.assertEqual(entry.details['amount'], 10000)

    def test_number_collision_regenerates_once(self):
        taken = 'TRX-20260101-080000-00000001'
        fresh = 'TRX-20260101-080000-00000002'
        engine = TransactionEngine(
            storage_dir=TEST_STORAGE_DIR,
            audit_sink=self.sink,
            trx_no_factory=sequence_factory(taken, taken, fresh),
        )

        self.deposit(1000, engine=engine)
        outcome = self.deposit(2000, engine=engine)

        self.assertEqual(outcome.transaction.trx_no, fresh)
        self.assertEqual(self.balance(), 3000)

    def test_repeated_collision_is_fatal_and_rolls_back(self):
        taken = 'TRX-20260101-080000-00000001'
        engine = TransactionEngine(
            storage_dir=TEST_STORAGE_DIR,
            audit_sink=self.sink,
            trx_no_factory=lambda: taken,
        )
        self.deposit(1000, engine=engine)

        with self.assertRaises(DuplicateTransactionNumber):
            self.deposit(2000, engine=engine)

        self.assertEqual(self.balance(), 1000)
        self.assertEqual(Transaction.objects.count(), 1)

    def test_storage_failure_is_translated_and_rolled_back(self):
        with mock.patch.object(
            TransactionEngine,
            '_insert_transaction',
            side_effect=OperationalError('database is locked'),
        ):
            with self.assertRaises(StorageUnavailable):
                self.deposit(10000)

        self.assertEqual(self.balance(), 0)
        self.assertFalse(Transaction.objects.exists())


class PresetNominalTests(TestCase):
    def test_default_presets_are_seeded_in_order(self):
        amounts = list(active_presets(TYPE_DEPOSIT).values_list('amount', flat=True))
        self.assertEqual(amounts, [10000, 20000, 50000, 100000])
        labels = list(active_presets(TYPE_WITHDRAWAL).values_list('label', flat=True))
        self.assertEqual(labels, ['10 rb', '20 rb', '50 rb', '100 rb'])

    def test_active_presets_order_by_sort_order_then_amount(self):
        PresetNominal.objects.create(type=TYPE_DEPOSIT, amount=5000, sort_order=0)
        PresetNominal.objects.create(type=TYPE_DEPOSIT, amount=2000, sort_order=0)
        PresetNominal.objects.create(type=TYPE_DEPOSIT, amount=1000, sort_order=0, is_active=False)

        amounts = list(active_presets(TYPE_DEPOSIT).values_list('amount', flat=True))

        self.assertEqual(amounts[:2], [2000, 5000])
        self.assertNotIn(1000, amounts)


@override_settings(TABUNGAN_STORAGE_DIR=TEST_STORAGE_DIR)
class ReceiptTests(TestCase):
    def test_rupiah_formatting_and_words(self):
        self.assertEqual(format_rupiah(1234567), '1.234.567')
        self.assertEqual(format_rupiah(0), '0')
        words = terbilang(20000)
        self.assertTrue(words.endswith('rupiah'))
        self.assertTrue(words[0].isupper())

    def test_render_writes_pdf_into_storage(self):
        data = ReceiptData(
            trx_no='TRX-20260101-080000-0000abcd',
            student_name='Ahmad',
            student_nis='1001',
            student_class='7A',
            amount=20000,
            note='uang saku',
            giver_name='Bu Kasir',
            receiver_name='Ali',
            generated_at=timezone.now(),
        )

        path = Path(render_withdrawal_receipt(data, storage_dir=TEST_STORAGE_DIR))

        self.assertEqual(path.name, 'TRX-20260101-080000-0000abcd.pdf')
        self.assertTrue(path.read_bytes().startswith(b'%PDF'))


class LedgerViewTests(LedgerBaseTestCase):
    def test_kasir_can_deposit_through_form(self):
        self.client.login(username='kasir_ledger', password='pass12345')

        response = self.client.post(reverse('deposit_create'), {
            'student': self.student.pk,
            'amount': 25000,
            'note': 'kiriman orang tua',
        })

        self.assertRedirects(response, reverse('kasir_dashboard'))
        self.assertEqual(self.balance(), 25000)
        entry = AuditLog.objects.get(entity='transaction')
        self.assertEqual(entry.path, reverse('deposit_create'))

    def test_admin_cannot_open_cashier_forms(self):
        self.client.login(username='admin_ledger', password='pass12345')
        response = self.client.get(reverse('deposit_create'))
        self.assertEqual(response.status_code, 403)

    def test_oversized_amount_is_a_form_error(self):
        self.client.login(username='kasir_ledger', password='pass12345')

        response = self.client.post(reverse('deposit_create'), {
            'student': self.student.pk,
            'amount': str(10**19),
        })

        self.assertEqual(response.status_code, 200)
        self.assertIn('amount', response.context['form'].errors)
        self.assertEqual(self.balance(), 0)
        self.assertFalse(Transaction.objects.exists())

    def test_insufficient_funds_is_shown_on_form(self):
        self.client.login(username='kasir_ledger', password='pass12345')

        response = self.client.post(reverse('withdrawal_create'), {
            'student': self.student.pk,
            'amount': 5000,
        })

        self.assertEqual(response.status_code, 200)
        self.assertContains(response, 'Saldo tidak mencukupi')
        self.assertEqual(self.balance(), 0)

    def test_receipt_pdf_is_served_inline(self):
        self.deposit(30000)
        trx = self.withdraw(10000).transaction
        self.client.login(username='admin_ledger', password='pass12345')

        response = self.client.get(reverse('receipt_pdf', args=[trx.trx_no]))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response['Content-Type'], 'application/pdf')
        self.assertIn('inline', response['Content-Disposition'])
        response.close()

    def test_missing_receipt_redirects_with_message(self):
        trx = self.deposit(30000).transaction
        self.client.login(username='kasir_ledger', password='pass12345')

        response = self.client.get(reverse('receipt_pdf', args=[trx.trx_no]))

        self.assertRedirects(response, reverse('kasir_dashboard'))

    def test_admin_reverses_by_reference(self):
        trx = self.deposit(30000).transaction
        self.client.login(username='admin_ledger', password='pass12345')

        response = self.client.post(reverse('transaction_reverse'), {'reference': trx.trx_no})

        self.assertRedirects(response, reverse('transaction_reverse'))
        self.assertEqual(self.balance(), 0)

    def test_reverse_unknown_reference_shows_error(self):
        self.client.login(username='admin_ledger', password='pass12345')

        response = self.client.post(reverse('transaction_reverse'), {'reference': '0000ffff'})

        self.assertEqual(response.status_code, 200)
        self.assertContains(response, 'tidak ditemukan')

    def test_kasir_cannot_reverse(self):
        trx = self.deposit(30000).transaction
        self.client.login(username='kasir_ledger', password='pass12345')

        response = self.client.post(reverse('transaction_reverse'), {'reference': trx.trx_no})

        self.assertEqual(response.status_code, 403)
        self.assertEqual(self.balance(), 30000)

    def test_lookup_with_single_hit_opens_form(self):
        self.client.login(username='kasir_ledger', password='pass12345')

        response = self.client.post(reverse('student_lookup'), {'name': 'fauzi', 'type': TYPE_DEPOSIT})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.context['student'], self.student)

    def test_lookup_with_many_hits_lists_them(self):
        Student.objects.create(nis='1003', name='Ahmad Rizki')
        self.client.login(username='kasir_ledger', password='pass12345')

        response = self.client.post(reverse('student_lookup'), {'name': 'ahmad', 'type': TYPE_WITHDRAWAL})

        self.assertEqual(len(response.context['student_list']), 2)
        self.assertIsNone(response.context['student'])

    def test_cashier_search_returns_students_for_empty_query(self):
        self.client.login(username='kasir_ledger', password='pass12345')

        response = self.client.get(reverse('transaction_student_search'))

        names = [row['name'] for row in response.json()]
        self.assertEqual(names, ['Ahmad Fauzi', 'Budi Santoso'])

    def test_preset_with_non_positive_amount_is_rejected(self):
        self.client.login(username='admin_ledger', password='pass12345')
        before = PresetNominal.objects.count()

        self.client.post(reverse('preset_list'), {
            'type': TYPE_DEPOSIT,
            'amount': 0,
            'label': 'nol',
            'sort_order': 0,
            'is_active': 'on',
        })

        self.assertEqual(PresetNominal.objects.count(), before)

    def test_preset_above_maximum_is_rejected(self):
        self.client.login(username='admin_ledger', password='pass12345')
        before = PresetNominal.objects.count()

        self.client.post(reverse('preset_list'), {
            'type': TYPE_WITHDRAWAL,
            'amount': str(10**19),
            'label': 'besar',
            'sort_order': 0,
            'is_active': 'on',
        })

        self.assertEqual(PresetNominal.objects.count(), before)

    def test_admin_manages_presets(self):
        self.client.login(username='admin_ledger', password='pass12345')

        self.client.post(reverse('preset_list'), {
            'type': TYPE_WITHDRAWAL,
            'amount': 75000,
            'label': '75 rb',
            'sort_order': 5,
            'is_active': 'on',
        })
        preset = PresetNominal.objects.get(amount=75000)

        self.client.post(reverse('preset_update', args=[preset.pk]), {
            'type': TYPE_WITHDRAWAL,
            'amount': 80000,
            'label': '80 rb',
            'sort_order': 5,
        })
        preset.refresh_from_db()
        self.assertEqual(preset.amount, 80000)
        self.assertFalse(preset.is_active)

        self.client.post(reverse('preset_delete', args=[preset.pk]))
        self.assertFalse(PresetNominal.objects.filter(pk=preset.pk).exists())
