class LedgerError(Exception):
    """Base class for ledger rejections and failures. Nothing was mutated unless stated."""

    message = 'Transaksi gagal diproses.'

    def __init__(self, message=None):
        super().__init__(message or self.message)


class NotFound(LedgerError):
    message = 'Data tidak ditemukan.'


class InsufficientFunds(LedgerError):
    message = 'Saldo tidak mencukupi.'

    def __init__(self, *, balance, amount):
        self.balance = balance
        self.amount = amount
        super().__init__(f'Saldo tidak mencukupi. Saldo: {balance}, diminta: {amount}.')


class AmbiguousReference(LedgerError):
    message = 'Nomor transaksi cocok dengan lebih dari satu data. Gunakan nomor lengkap.'

    def __init__(self, reference=None, matches=0):
        self.reference = reference
        self.matches = matches
        super().__init__()


class StorageUnavailable(LedgerError):
    message = 'Database sedang tidak tersedia. Tidak ada perubahan yang tersimpan, silakan coba lagi.'


class DuplicateTransactionNumber(LedgerError):
    message = 'Gagal membuat nomor transaksi unik.'


class RenderError(LedgerError):
    message = 'Bukti PDF gagal dibuat.'
