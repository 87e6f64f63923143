from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from apps.core.students.models import Student


TYPE_DEPOSIT = 'setor'
TYPE_WITHDRAWAL = 'tarik'
TYPE_CHOICES = (
    (TYPE_DEPOSIT, 'Setor'),
    (TYPE_WITHDRAWAL, 'Tarik'),
)

# Upper bound for a single amount, in rupiah.
MAX_AMOUNT = 1_000_000_000_000


class Transaction(models.Model):
    TYPE_DEPOSIT = TYPE_DEPOSIT
    TYPE_WITHDRAWAL = TYPE_WITHDRAWAL
    TYPE_CHOICES = TYPE_CHOICES

    trx_no = models.CharField(max_length=40, unique=True, editable=False)
    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name='transactions')
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='ledger_transactions',
    )
    type = models.CharField(max_length=10, choices=TYPE_CHOICES)
    amount = models.BigIntegerField()
    note = models.TextField(blank=True)
    receiver_name = models.CharField(max_length=200, blank=True)

    # Relative to TABUNGAN_STORAGE_DIR.
    receipt_path = models.CharField(max_length=255, blank=True)
    giver_signature_path = models.CharField(max_length=255, blank=True)
    receiver_signature_path = models.CharField(max_length=255, blank=True)

    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'transactions'
        ordering = ['-created_at', '-id']
        constraints = [
            models.CheckConstraint(condition=Q(amount__gt=0), name='transaction_amount_positive'),
        ]
        indexes = [
            models.Index(fields=['student', 'created_at'], name='trx_student_created_idx'),
            models.Index(fields=['type', 'created_at'], name='trx_type_created_idx'),
            models.Index(fields=['created_at'], name='trx_created_idx'),
        ]

    @property
    def signed_amount(self):
        return self.amount if self.type == TYPE_DEPOSIT else -self.amount

    @property
    def stored_files(self):
        return [
            path
            for path in (self.receipt_path, self.giver_signature_path, self.receiver_signature_path)
            if path
        ]

    def __str__(self):
        return f"{self.trx_no} {self.type} {self.amount}"


class PresetNominal(models.Model):
    type = models.CharField(max_length=10, choices=TYPE_CHOICES)
    amount = models.BigIntegerField()
    label = models.CharField(max_length=50, blank=True)
    sort_order = models.IntegerField(default=0)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'preset_nominal'
        ordering = ['type', 'sort_order', 'amount']
        constraints = [
            models.CheckConstraint(condition=Q(amount__gt=0), name='preset_amount_positive'),
        ]

    @property
    def display_label(self):
        if self.label:
            return self.label
        return f"{self.amount:,}".replace(',', '.')

    def __str__(self):
        return f"{self.get_type_display()} {self.display_label}"
