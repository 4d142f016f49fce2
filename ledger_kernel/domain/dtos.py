"""
Frozen data transfer objects returned by kernel services and selectors.

Responsibility:
    Immutable views of accounts, journal entries, closing periods and
    revisions, plus the request/result shapes of the ledger operations.
    Services never hand ORM instances to callers.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - All monetary amounts are ``Decimal``.
    - Journal snapshots serialize amounts as strings and dates as ISO
      strings so they round-trip through JSON columns without loss.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from ledger_kernel.domain.values import (
    AccountType,
    AdmissionDecision,
    JournalEntryStatus,
    NormalBalance,
    PeriodStatus,
    PeriodType,
    RecordKind,
    RecordRef,
    RevisionAction,
    RevisionStatus,
)

ZERO = Decimal("0")


# ---------------------------------------------------------------------------
# Chart of accounts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AccountInfo:
    id: UUID
    code: str
    name: str
    account_type: AccountType
    normal_balance: NormalBalance
    sub_type: str | None
    parent_id: UUID | None
    level: int
    is_active: bool


@dataclass(frozen=True)
class AccountBalance:
    """Balance of one account over a date range, signed by normal balance."""

    account_code: str
    normal_balance: NormalBalance
    total_debit: Decimal
    total_credit: Decimal
    start_date: date | None
    end_date: date | None

    @property
    def balance(self) -> Decimal:
        if self.normal_balance == NormalBalance.DEBIT:
            return self.total_debit - self.total_credit
        return self.total_credit - self.total_debit


# ---------------------------------------------------------------------------
# Journal entries
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LineSpec:
    """
    Requested journal line.

    Contract:
        Exactly one of ``debit`` / ``credit`` is nonzero and neither is
        negative.  The ledger validates this; LineSpec itself accepts any
        values so the error can name the offending line index.
    """

    account_code: str
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    description: str | None = None

    @classmethod
    def dr(cls, account_code: str, amount: Decimal, description: str | None = None) -> LineSpec:
        return cls(account_code=account_code, debit=Decimal(amount), description=description)

    @classmethod
    def cr(cls, account_code: str, amount: Decimal, description: str | None = None) -> LineSpec:
        return cls(account_code=account_code, credit=Decimal(amount), description=description)

    def swapped(self) -> LineSpec:
        return LineSpec(
            account_code=self.account_code,
            debit=self.credit,
            credit=self.debit,
            description=self.description,
        )

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "account_code": self.account_code,
            "debit": str(self.debit),
            "credit": str(self.credit),
            "description": self.description,
        }

    @classmethod
    def from_snapshot(cls, data: dict[str, Any]) -> LineSpec:
        return cls(
            account_code=data["account_code"],
            debit=Decimal(data.get("debit") or "0"),
            credit=Decimal(data.get("credit") or "0"),
            description=data.get("description"),
        )


@dataclass(frozen=True)
class JournalLineInfo:
    id: UUID
    line_number: int
    account_id: UUID
    account_code: str
    debit: Decimal
    credit: Decimal
    description: str | None

    def to_spec(self) -> LineSpec:
        return LineSpec(
            account_code=self.account_code,
            debit=self.debit,
            credit=self.credit,
            description=self.description,
        )


@dataclass(frozen=True)
class JournalEntryInfo:
    id: UUID
    entry_number: str
    transaction_date: date
    description: str
    reference_type: str | None
    reference_number: str | None
    status: JournalEntryStatus
    total_debit: Decimal
    total_credit: Decimal
    lines: tuple[JournalLineInfo, ...]
    created_by_id: UUID
    posted_by_id: UUID | None = None
    posted_at: datetime | None = None
    reversal_of_id: UUID | None = None

    @property
    def is_balanced(self) -> bool:
        return self.total_debit == self.total_credit

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "entry_number": self.entry_number,
            "transaction_date": self.transaction_date.isoformat(),
            "description": self.description,
            "reference_type": self.reference_type,
            "reference_number": self.reference_number,
            "status": self.status.value,
            "total_debit": str(self.total_debit),
            "total_credit": str(self.total_credit),
            "lines": [line.to_spec().to_snapshot() for line in self.lines],
        }


def snapshot_lines(snapshot: dict[str, Any]) -> tuple[LineSpec, ...]:
    """Rebuild LineSpecs from a journal snapshot."""
    return tuple(LineSpec.from_snapshot(line) for line in snapshot.get("lines", ()))


def snapshot_total_debit(snapshot: dict[str, Any] | None) -> Decimal:
    """Total debit of a journal snapshot (zero for an absent snapshot)."""
    if not snapshot:
        return ZERO
    if snapshot.get("total_debit") is not None:
        return Decimal(snapshot["total_debit"])
    return sum((line.debit for line in snapshot_lines(snapshot)), ZERO)


class PostingStatus(str, Enum):
    """Outcome of a ledger mutation."""

    POSTED = "posted"
    REVERSED = "reversed"
    APPLIED = "applied"
    PENDING_APPROVAL = "pending_approval"


@dataclass(frozen=True)
class AdmissionResult:
    """Answer to "may a record dated ``transaction_date`` be written now?"."""

    decision: AdmissionDecision
    transaction_date: date
    period_id: UUID | None = None
    period_code: str | None = None
    period_status: PeriodStatus | None = None
    reason: str = ""

    @property
    def is_allowed(self) -> bool:
        return self.decision == AdmissionDecision.ALLOWED

    @property
    def requires_approval(self) -> bool:
        return self.decision == AdmissionDecision.REQUIRES_APPROVAL

    @property
    def is_denied(self) -> bool:
        return self.decision == AdmissionDecision.DENIED


@dataclass(frozen=True)
class PostingResult:
    """
    Result of post / reverse / update / delete.

    ``PENDING_APPROVAL`` is a success-shaped outcome: nothing was written to
    the ledger yet, and ``revision_id`` (plus ``approval_id`` when the
    revision is material) identifies the request awaiting a decision.
    """

    status: PostingStatus
    entry: JournalEntryInfo | None = None
    reversal: JournalEntryInfo | None = None
    revision_id: UUID | None = None
    approval_id: UUID | None = None
    admission: AdmissionResult | None = None

    @property
    def is_pending(self) -> bool:
        return self.status == PostingStatus.PENDING_APPROVAL


# ---------------------------------------------------------------------------
# Closing periods
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChecklistItemInfo:
    item_key: str
    label: str
    is_required: bool
    is_completed: bool
    completed_by_id: UUID | None = None
    completed_at: datetime | None = None
    notes: str | None = None
    validation_data: dict[str, Any] | None = None


@dataclass(frozen=True)
class ClosingPeriodInfo:
    id: UUID
    period_code: str
    period_type: PeriodType
    period_start: date
    period_end: date
    cutoff_date: date
    hard_close_date: date | None
    status: PeriodStatus
    template_code: str | None = None
    notes: str | None = None
    soft_closed_by_id: UUID | None = None
    soft_closed_at: datetime | None = None
    hard_closed_by_id: UUID | None = None
    hard_closed_at: datetime | None = None
    reopened_by_id: UUID | None = None
    reopened_at: datetime | None = None
    reopen_reason: str | None = None
    checklist: tuple[ChecklistItemInfo, ...] = ()

    def contains(self, day: date) -> bool:
        return self.period_start <= day <= self.period_end

    def is_past_cutoff(self, today: date) -> bool:
        return today > self.cutoff_date


@dataclass(frozen=True)
class CloseViolation:
    """One condition blocking a close transition."""

    code: str
    message: str
    item_key: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CloseReadiness:
    """Every blocking condition for moving a period to ``target_status``."""

    period_code: str
    target_status: PeriodStatus
    violations: tuple[CloseViolation, ...]

    @property
    def can_proceed(self) -> bool:
        return not self.violations

    @property
    def violation_codes(self) -> tuple[str, ...]:
        return tuple(v.code for v in self.violations)


@dataclass(frozen=True)
class PeriodSuggestion:
    period_type: PeriodType
    period_code: str
    period_start: date
    period_end: date


# ---------------------------------------------------------------------------
# Revisions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RevisionInfo:
    id: UUID
    period_id: UUID
    record: RecordRef
    action: RevisionAction
    reason: str
    old_snapshot: dict[str, Any] | None
    new_snapshot: dict[str, Any] | None
    impact_amount: Decimal
    is_material: bool
    status: RevisionStatus
    revised_by_id: UUID
    approval_id: UUID | None = None
    revised_at: datetime | None = None
    decided_by_id: UUID | None = None
    decided_at: datetime | None = None
    decision_notes: str | None = None
    created_at: datetime | None = None

    @property
    def record_kind(self) -> RecordKind:
        return self.record.kind


@dataclass(frozen=True)
class BulkDecisionResult:
    approved: tuple[UUID, ...] = ()
    awaiting_next_level: tuple[UUID, ...] = ()
    failed: dict[UUID, str] = field(default_factory=dict)


@dataclass(frozen=True)
class RevisionStatistics:
    pending: int
    pending_today: int
    pending_this_week: int
    pending_this_month: int
    decided_today: int
    decided_this_week: int
    decided_this_month: int
    high_value_pending: int
