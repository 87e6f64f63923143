from __future__ import annotations

import logging
import re
import secrets
from pathlib import Path

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import DEFAULT_DB_ALIAS, DatabaseError, IntegrityError, OperationalError, transaction
from django.db.models import F
from django.utils import timezone

from apps.core.students.models import Student
from apps.core.users.audit import record_audit

from .exceptions import (
    AmbiguousReference,
    DuplicateTransactionNumber,
    InsufficientFunds,
    NotFound,
    RenderError,
    StorageUnavailable,
)
from .models import MAX_AMOUNT, TYPE_DEPOSIT, TYPE_WITHDRAWAL, PresetNominal, Transaction
from .receipts import format_rupiah, render_withdrawal_receipt
from .types import DepositRequest, LedgerOutcome, ReceiptData, ReversalRequest, WithdrawalRequest

logger = logging.getLogger(__name__)


TRX_NO_RE = re.compile(r'^TRX-\d{8}-\d{6}-[0-9a-f]{8}$')
TRX_SUFFIX_RE = re.compile(r'^[0-9a-f]{8}$')


def generate_trx_no(now=None) -> str:
    local_now = timezone.localtime(now or timezone.now())
    return f"TRX-{local_now:%Y%m%d-%H%M%S}-{secrets.token_hex(4)}"


def validate_amount(value) -> int:
    if isinstance(value, bool):
        raise ValidationError('Jumlah harus berupa bilangan bulat.')
    if isinstance(value, str):
        value = value.strip()
        if not value.isascii() or not value.isdecimal():
            raise ValidationError('Jumlah harus berupa bilangan bulat.')
        value = int(value)
    if not isinstance(value, int):
        raise ValidationError('Jumlah harus berupa bilangan bulat.')
    if value <= 0:
        raise ValidationError('Jumlah harus lebih dari 0.')
    if value > MAX_AMOUNT:
        raise ValidationError(f'Jumlah maksimal Rp {format_rupiah(MAX_AMOUNT)}.')
    return value


def normalize_reference(reference) -> tuple[str, bool]:
    """Return ``(reference, is_full)`` or raise ValidationError for anything else.

    Matching is case-insensitive; full numbers come back as ``TRX-`` plus lowercase hex.
    """
    text = (reference or '').strip()
    if text[:4].upper() == 'TRX-':
        full = 'TRX-' + text[4:].lower()
        if TRX_NO_RE.match(full):
            return full, True
    if TRX_SUFFIX_RE.match(text.lower()):
        return text.lower(), False
    raise ValidationError('Masukkan nomor transaksi lengkap atau 8 karakter terakhirnya.')


def active_presets(trx_type):
    return PresetNominal.objects.filter(type=trx_type, is_active=True).order_by('sort_order', 'amount')


def default_audit_sink(*, actor, action, entity, entity_id, details):
    record_audit(user=actor, action=action, entity=entity, entity_id=entity_id, details=details)


def _display_name(actor):
    if actor is None:
        return '-'
    return getattr(actor, 'full_name', '') or getattr(actor, 'username', '') or '-'


class TransactionEngine:
    """Balance mutations for deposits, withdrawals and reversals.

    Every balance change happens under a row lock on the student together with the
    insert or delete of its transaction row, so a student's balance always equals
    the replay of its remaining transactions. Receipts and file cleanup run after
    the database work and can only degrade the outcome, never undo it.
    """

    def __init__(
        self,
        *,
        using=DEFAULT_DB_ALIAS,
        audit_sink=None,
        receipt_renderer=None,
        storage_dir=None,
        trx_no_factory=generate_trx_no,
        logo_path=None,
        stamp_path=None,
    ):
        self.using = using
        self.audit_sink = audit_sink or default_audit_sink
        self.receipt_renderer = receipt_renderer or render_withdrawal_receipt
        self.storage_dir = Path(storage_dir or settings.TABUNGAN_STORAGE_DIR)
        self.trx_no_factory = trx_no_factory
        self.logo_path = logo_path if logo_path is not None else getattr(settings, 'PDF_LOGO_PATH', None)
        self.stamp_path = stamp_path if stamp_path is not None else getattr(settings, 'PDF_STAMP_PATH', None)

    # Queries

    def _students(self):
        return Student.objects.using(self.using)

    def _transactions(self):
        return Transaction.objects.using(self.using)

    def find_by_reference(self, reference, *, lock=False) -> Transaction:
        reference, is_full = normalize_reference(reference)
        queryset = self._transactions()
        if is_full:
            queryset = queryset.filter(trx_no=reference)
        else:
            queryset = queryset.filter(trx_no__endswith=f'-{reference}')
        if lock:
            queryset = queryset.select_for_update()
        else:
            queryset = queryset.select_related('student', 'user')

        matches = list(queryset[:2])
        if not matches:
            raise NotFound(f'Transaksi {reference} tidak ditemukan.')
        if len(matches) > 1:
            raise AmbiguousReference(reference, matches=len(matches))
        return matches[0]

    def _lock_student(self, student_id) -> Student:
        if student_id in (None, ''):
            raise ValidationError('Santri wajib dipilih.')
        student = self._students().select_for_update().filter(pk=student_id).first()
        if student is None:
            raise NotFound('Santri tidak ditemukan.')
        return student

    def _current_balance(self, student_id) -> int:
        return self._students().filter(pk=student_id).values_list('balance', flat=True).get()

    def _adjust_balance(self, student_id, delta):
        self._students().filter(pk=student_id).update(balance=F('balance') + delta)

    def _insert_transaction(self, **fields) -> Transaction:
        for _attempt in range(2):
            trx_no = self.trx_no_factory()
            try:
                with transaction.atomic(using=self.using):
                    return self._transactions().create(trx_no=trx_no, **fields)
            except IntegrityError:
                if not self._transactions().filter(trx_no=trx_no).exists():
                    raise
                logger.warning('Transaction number collision on %s, regenerating', trx_no)
        raise DuplicateTransactionNumber()

    # Side effects

    def _audit(self, *, actor, action, entity, entity_id, details):
        try:
            self.audit_sink(actor=actor, action=action, entity=entity, entity_id=entity_id, details=details)
        except Exception:
            # Audit failures never undo a committed operation.
            logger.exception('Audit sink failed for %s %s %s', action, entity, entity_id)

    def storage_path(self, relative):
        root = self.storage_dir.resolve()
        path = (root / relative).resolve()
        if root not in path.parents:
            raise ValueError(f'{relative} is outside the storage directory')
        return path

    def _relative_to_storage(self, path):
        path = Path(path).resolve()
        try:
            return path.relative_to(self.storage_dir.resolve()).as_posix()
        except ValueError:
            return str(path)

    def remove_files(self, relative_paths):
        for relative in relative_paths:
            try:
                self.storage_path(relative).unlink(missing_ok=True)
            except (OSError, ValueError):
                logger.warning('Could not remove stored file %s', relative, exc_info=True)

    def _attach_receipt(self, trx, student, actor, receiver_name):
        data = ReceiptData(
            trx_no=trx.trx_no,
            student_name=student.name,
            student_nis=student.nis,
            student_class=student.student_class,
            amount=trx.amount,
            note=trx.note,
            giver_name=_display_name(actor),
            receiver_name=receiver_name,
            generated_at=timezone.now(),
            logo_path=self.logo_path,
            stamp_path=self.stamp_path,
        )
        try:
            pdf_path = self.receipt_renderer(data, storage_dir=self.storage_dir)
        except RenderError as exc:
            logger.warning('Receipt for %s failed: %s', trx.trx_no, exc)
            return f'Transaksi tersimpan, tetapi bukti PDF gagal dibuat: {exc}'

        relative = self._relative_to_storage(pdf_path)
        try:
            self._transactions().filter(pk=trx.pk).update(receipt_path=relative)
        except DatabaseError:
            logger.warning('Could not store receipt path for %s', trx.trx_no, exc_info=True)
            return 'Transaksi tersimpan, tetapi lokasi bukti PDF gagal disimpan.'
        trx.receipt_path = relative
        return None

    # Operations

    def deposit(self, request: DepositRequest, *, actor) -> LedgerOutcome:
        amount = validate_amount(request.amount)
        try:
            with transaction.atomic(using=self.using):
                student = self._lock_student(request.student_id)
                self._adjust_balance(student.pk, amount)
                trx = self._insert_transaction(
                    student=student,
                    user=actor,
                    type=TYPE_DEPOSIT,
                    amount=amount,
                    note=(request.note or '').strip(),
                )
                balance = self._current_balance(student.pk)
        except OperationalError as exc:
            logger.exception('Deposit for student %s failed on storage', request.student_id)
            raise StorageUnavailable() from exc

        logger.info('Deposit %s: student=%s amount=%s balance=%s', trx.trx_no, student.pk, amount, balance)
        self._audit(
            actor=actor,
            action='create',
            entity='transaction',
            entity_id=trx.trx_no,
            details={'type': TYPE_DEPOSIT, 'student_id': student.pk, 'amount': amount},
        )
        return LedgerOutcome(transaction=trx, student_balance=balance)

    def withdraw(self, request: WithdrawalRequest, *, actor) -> LedgerOutcome:
        amount = validate_amount(request.amount)
        try:
            with transaction.atomic(using=self.using):
                student = self._lock_student(request.student_id)
                if student.balance < amount:
                    raise InsufficientFunds(balance=student.balance, amount=amount)
                receiver_name = (request.receiver_name or '').strip() or student.name
                self._adjust_balance(student.pk, -amount)
                trx = self._insert_transaction(
                    student=student,
                    user=actor,
                    type=TYPE_WITHDRAWAL,
                    amount=amount,
                    note=(request.note or '').strip(),
                    receiver_name=receiver_name,
                )
                balance = self._current_balance(student.pk)
        except InsufficientFunds as exc:
            logger.info('Withdrawal rejected for student %s: balance=%s amount=%s', request.student_id, exc.balance, exc.amount)
            raise
        except OperationalError as exc:
            logger.exception('Withdrawal for student %s failed on storage', request.student_id)
            raise StorageUnavailable() from exc

        logger.info('Withdrawal %s: student=%s amount=%s balance=%s', trx.trx_no, student.pk, amount, balance)
        receipt_warning = self._attach_receipt(trx, student, actor, receiver_name)
        self._audit(
            actor=actor,
            action='create',
            entity='transaction',
            entity_id=trx.trx_no,
            details={
                'type': TYPE_WITHDRAWAL,
                'student_id': student.pk,
                'amount': amount,
                'receiver_name': receiver_name,
            },
        )
        return LedgerOutcome(transaction=trx, student_balance=balance, receipt_warning=receipt_warning)

    def reverse(self, request: ReversalRequest, *, actor) -> LedgerOutcome:
        normalize_reference(request.reference)
        try:
            with transaction.atomic(using=self.using):
                trx = self.find_by_reference(request.reference, lock=True)
                student = self._lock_student(trx.student_id)
                delta = trx.amount if trx.type == TYPE_WITHDRAWAL else -trx.amount
                self._adjust_balance(student.pk, delta)
                stored_files = trx.stored_files
                trx_no = trx.trx_no
                trx.delete()
                balance = self._current_balance(student.pk)
        except OperationalError as exc:
            logger.exception('Reversal of %s failed on storage', request.reference)
            raise StorageUnavailable() from exc

        logger.info('Reversed %s: student=%s delta=%s balance=%s', trx_no, student.pk, delta, balance)
        self.remove_files(stored_files)
        self._audit(
            actor=actor,
            action='delete',
            entity='transaction',
            entity_id=trx_no,
            details={
                'by': getattr(actor, 'username', None),
                'type': trx.type,
                'student_id': student.pk,
                'amount': trx.amount,
            },
        )

        balance_warning = None
        if balance < 0:
            logger.warning('Balance of student %s is negative (%s) after reversing %s', student.pk, balance, trx_no)
            balance_warning = f'Saldo {student.name} menjadi negatif (Rp {format_rupiah(balance)}).'
        return LedgerOutcome(transaction=trx, student_balance=balance, balance_warning=balance_warning)

