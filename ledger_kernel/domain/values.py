"""
Value types shared by the ledger models, services and engines.

Responsibility:
    Closed vocabularies (str-valued enums) for account classification,
    journal and period lifecycles, revision and approval workflows, and
    the tagged record reference used for polymorphic links.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Imported by models/ for column
    vocabularies and by services/ and engines for branching.

Invariants enforced:
    - Every persisted status column stores one of these values.
    - ``RecordRef`` pairs a ``RecordKind`` with a typed UUID; resolution
      dispatches on the kind, never on untyped foreign keys.
"""

from dataclasses import dataclass
from enum import Enum
from uuid import UUID


class AccountType(str, Enum):
    """Types of accounts in the chart of accounts."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"


class NormalBalance(str, Enum):
    """Normal balance side for an account."""

    DEBIT = "debit"
    CREDIT = "credit"


NATURAL_NORMAL_BALANCE: dict[AccountType, NormalBalance] = {
    AccountType.ASSET: NormalBalance.DEBIT,
    AccountType.EXPENSE: NormalBalance.DEBIT,
    AccountType.LIABILITY: NormalBalance.CREDIT,
    AccountType.EQUITY: NormalBalance.CREDIT,
    AccountType.REVENUE: NormalBalance.CREDIT,
}


class JournalEntryStatus(str, Enum):
    """Lifecycle status of a journal entry.

    Transitions are one-way: DRAFT -> POSTED -> REVERSED.
    """

    DRAFT = "draft"
    POSTED = "posted"
    REVERSED = "reversed"


class PeriodType(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"
    CUSTOM = "custom"


class PeriodStatus(str, Enum):
    """Closing period lifecycle: OPEN -> SOFT_CLOSE -> HARD_CLOSE, reopen to OPEN."""

    OPEN = "open"
    SOFT_CLOSE = "soft_close"
    HARD_CLOSE = "hard_close"


# Higher rank is more restrictive; used when periods of several types
# cover the same date.
PERIOD_STATUS_RANK: dict[PeriodStatus, int] = {
    PeriodStatus.OPEN: 0,
    PeriodStatus.SOFT_CLOSE: 1,
    PeriodStatus.HARD_CLOSE: 2,
}


class ClosingMode(str, Enum):
    DISABLED = "disabled"
    SOFT_ONLY = "soft_only"
    SOFT_AND_HARD = "soft_and_hard"


class AdmissionDecision(str, Enum):
    """Outcome of the posting-date admission check."""

    ALLOWED = "allowed"
    REQUIRES_APPROVAL = "requires_approval"
    DENIED = "denied"


class RevisionAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class RevisionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class RevisionDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


class ApprovalStatus(str, Enum):
    """Generic approval lifecycle.

    PENDING and ESCALATED are open; APPROVED and REJECTED are terminal.
    """

    PENDING = "pending"
    ESCALATED = "escalated"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_open(self) -> bool:
        return self in (ApprovalStatus.PENDING, ApprovalStatus.ESCALATED)


class RecordKind(str, Enum):
    """Closed set of record kinds that revisions and approvals may reference."""

    JOURNAL_ENTRY = "journal_entry"
    REVISION_LOG = "journal_revision_log"
    CLOSING_PERIOD = "closing_period"
    CASH_TRANSACTION = "cash_transaction"
    BANK_TRANSACTION = "bank_transaction"
    GIRO_TRANSACTION = "giro_transaction"
    PURCHASE_INVOICE = "purchase_invoice"
    PURCHASE_PAYMENT = "purchase_payment"
    PAYROLL_BATCH = "payroll_batch"
    ASSET_DEPRECIATION = "asset_depreciation"
    ASSET_DISPOSAL = "asset_disposal"


@dataclass(frozen=True)
class RecordRef:
    """Typed pointer to a record of one of the known kinds."""

    kind: RecordKind
    record_id: UUID

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.record_id}"
