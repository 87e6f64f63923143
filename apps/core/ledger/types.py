from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class DepositRequest:
    student_id: int
    amount: int
    note: str = ''


@dataclass(frozen=True)
class WithdrawalRequest:
    student_id: int
    amount: int
    note: str = ''
    receiver_name: str = ''


@dataclass(frozen=True)
class ReversalRequest:
    reference: str


@dataclass(frozen=True)
class ReceiptData:
    trx_no: str
    student_name: str
    student_nis: str
    student_class: str
    amount: int
    note: str
    giver_name: str
    receiver_name: str
    generated_at: datetime
    giver_signature_path: Optional[str] = None
    receiver_signature_path: Optional[str] = None
    logo_path: Optional[str] = None
    stamp_path: Optional[str] = None


@dataclass
class LedgerOutcome:
    transaction: object
    student_balance: int
    receipt_warning: Optional[str] = None
    balance_warning: Optional[str] = None

    @property
    def degraded(self):
        return bool(self.receipt_warning or self.balance_warning)
