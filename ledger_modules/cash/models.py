"""
ledger_modules.cash.models
==========================

Responsibility:
    Frozen dataclass value objects for cash, bank and giro transactions as
    handed to the ledger by the cash desk and the treasury.  No business
    logic beyond construction checks.

Architecture:
    Module layer (ledger_modules).  In-memory DTOs, NOT SQLAlchemy ORM
    models; the producing subsystem owns the persistence of its documents.

Invariants enforced:
    - ``amount`` is a positive ``Decimal``.
    - The cash-side account and the counter account differ.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ledger_kernel.domain.values import RecordKind, RecordRef


class CashChannel(str, Enum):
    """Where the money moves: the cash box, a bank account, or a giro."""

    CASH = "cash"
    BANK = "bank"
    GIRO = "giro"

    @property
    def record_kind(self) -> RecordKind:
        return _CHANNEL_KINDS[self]


_CHANNEL_KINDS = {
    CashChannel.CASH: RecordKind.CASH_TRANSACTION,
    CashChannel.BANK: RecordKind.BANK_TRANSACTION,
    CashChannel.GIRO: RecordKind.GIRO_TRANSACTION,
}


class CashTransactionType(str, Enum):
    """Transaction types recognized by the cash desk."""

    PENERIMAAN = "penerimaan"
    PENGELUARAN = "pengeluaran"
    UANG_MUKA_PENERIMAAN = "uang_muka_penerimaan"
    UANG_MUKA_PENGELUARAN = "uang_muka_pengeluaran"
    TRANSFER_MASUK = "transfer_masuk"
    TRANSFER_KELUAR = "transfer_keluar"

    @property
    def is_incoming(self) -> bool:
        return self in INCOMING_TYPES


INCOMING_TYPES = frozenset({
    CashTransactionType.PENERIMAAN,
    CashTransactionType.UANG_MUKA_PENERIMAAN,
    CashTransactionType.TRANSFER_MASUK,
})

OUTGOING_TYPES = frozenset({
    CashTransactionType.PENGELUARAN,
    CashTransactionType.UANG_MUKA_PENGELUARAN,
    CashTransactionType.TRANSFER_KELUAR,
})


@dataclass(frozen=True)
class CashTransaction:
    """
    One cash, bank or giro movement.

    Contract:
        ``cash_account_code`` is the kas/bank/giro account whose balance
        moves; ``counter_account_code`` is the other side of the entry.
        Incoming types debit the cash side, outgoing types credit it.

    Guarantees:
        - Immutable (frozen dataclass).
        - ``amount > 0``.

    Non-goals:
        - Does NOT carry approval state; approvals live in the kernel.
    """

    id: UUID
    channel: CashChannel
    transaction_number: str
    transaction_date: date
    transaction_type: CashTransactionType
    amount: Decimal
    cash_account_code: str
    counter_account_code: str
    description: str
    counterparty: str | None = None
    reference: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.amount, Decimal):
            raise TypeError("amount must be Decimal, not float")
        if self.amount <= 0:
            raise ValueError("amount must be positive")
        if self.cash_account_code == self.counter_account_code:
            raise ValueError("cash and counter accounts must differ")
        if not self.transaction_number:
            raise ValueError("transaction_number is required")

    @property
    def record(self) -> RecordRef:
        return RecordRef(self.channel.record_kind, self.id)

    @property
    def is_outgoing(self) -> bool:
        return not self.transaction_type.is_incoming
