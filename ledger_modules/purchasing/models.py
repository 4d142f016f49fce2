"""
ledger_modules.purchasing.models
================================

Responsibility:
    Frozen value objects for supplier invoices and the payments that
    settle them.

Architecture:
    Module layer (ledger_modules).  In-memory DTOs, NOT ORM models.

Invariants enforced:
    - All monetary fields are ``Decimal`` and non-negative; invoice lines
      and payment amounts are positive.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from ledger_kernel.domain.dtos import ZERO
from ledger_kernel.domain.values import RecordKind, RecordRef


@dataclass(frozen=True)
class PurchaseInvoiceLine:
    """One received item: the inventory or expense account it lands in."""

    account_code: str
    amount: Decimal
    description: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.amount, Decimal):
            raise TypeError("amount must be Decimal, not float")
        if self.amount <= 0:
            raise ValueError("invoice line amount must be positive")


@dataclass(frozen=True)
class PurchaseInvoice:
    """
    A supplier invoice booked to accounts payable.

    Guarantees:
        - At least one line.
        - ``total == subtotal + tax_amount``.
    """

    id: UUID
    invoice_number: str
    invoice_date: date
    supplier_name: str
    lines: tuple[PurchaseInvoiceLine, ...]
    tax_amount: Decimal = ZERO
    description: str | None = None

    def __post_init__(self) -> None:
        if not self.lines:
            raise ValueError("invoice needs at least one line")
        if self.tax_amount < 0:
            raise ValueError("tax_amount cannot be negative")

    @property
    def record(self) -> RecordRef:
        return RecordRef(RecordKind.PURCHASE_INVOICE, self.id)

    @property
    def subtotal(self) -> Decimal:
        return sum((line.amount for line in self.lines), ZERO)

    @property
    def total(self) -> Decimal:
        return self.subtotal + self.tax_amount


@dataclass(frozen=True)
class PurchasePayment:
    """
    Payment of a supplier invoice from a cash or bank account.

    ``discount`` is a settlement discount taken at payment time; the
    payable is relieved by ``amount + discount``.
    """

    id: UUID
    payment_number: str
    payment_date: date
    invoice_number: str
    supplier_name: str
    amount: Decimal
    cash_account_code: str
    discount: Decimal = ZERO

    def __post_init__(self) -> None:
        if not isinstance(self.amount, Decimal):
            raise TypeError("amount must be Decimal, not float")
        if self.amount <= 0:
            raise ValueError("payment amount must be positive")
        if self.discount < 0:
            raise ValueError("discount cannot be negative")

    @property
    def record(self) -> RecordRef:
        return RecordRef(RecordKind.PURCHASE_PAYMENT, self.id)

    @property
    def settled_amount(self) -> Decimal:
        return self.amount + self.discount
