"""
ledger_modules.payroll.models
=============================

Responsibility:
    Frozen value objects for a salary batch: one detail per employee with
    earning and deduction components keyed by component name (e.g.
    ``gaji_pokok``, ``tunjangan_jabatan``, ``pph_21``, ``bpjs_kesehatan``).

Architecture:
    Module layer (ledger_modules).  In-memory DTOs, NOT ORM models.

Invariants enforced:
    - Component amounts are non-negative ``Decimal``.
    - Net pay per employee is never negative.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID

from ledger_kernel.domain.dtos import ZERO
from ledger_kernel.domain.values import RecordKind, RecordRef


@dataclass(frozen=True)
class SalaryDetail:
    """One employee's slip within a batch."""

    employee_code: str
    earnings: dict[str, Decimal] = field(default_factory=dict)
    deductions: dict[str, Decimal] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for name, amount in {**self.earnings, **self.deductions}.items():
            if not isinstance(amount, Decimal):
                raise TypeError(f"{name} must be Decimal, not float")
            if amount < 0:
                raise ValueError(f"{name} cannot be negative")
        if self.net_pay < 0:
            raise ValueError(f"deductions exceed earnings for {self.employee_code}")

    @property
    def gross_pay(self) -> Decimal:
        return sum(self.earnings.values(), ZERO)

    @property
    def total_deductions(self) -> Decimal:
        return sum(self.deductions.values(), ZERO)

    @property
    def net_pay(self) -> Decimal:
        return self.gross_pay - self.total_deductions


@dataclass(frozen=True)
class SalaryBatch:
    """
    A payroll run for one period.

    ``posting_date`` is the journal date of the accrual; the batch is
    admitted against the period covering it.
    """

    id: UUID
    batch_number: str
    period_label: str
    posting_date: date
    details: tuple[SalaryDetail, ...]
    description: str | None = None

    def __post_init__(self) -> None:
        if not self.details:
            raise ValueError("salary batch has no details")

    @property
    def record(self) -> RecordRef:
        return RecordRef(RecordKind.PAYROLL_BATCH, self.id)

    @property
    def total_net_pay(self) -> Decimal:
        return sum((d.net_pay for d in self.details), ZERO)
