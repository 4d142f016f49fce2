"""Domain models for the ledger kernel."""

from ledger_kernel.models.account import Account
from ledger_kernel.models.approval import Approval, ApprovalDecisionRecord, ApprovalRule
from ledger_kernel.models.closing_period import ClosingPeriod, PeriodChecklistItem
from ledger_kernel.models.journal import JournalEntry, JournalLine
from ledger_kernel.models.revision_log import JournalRevisionLog
from ledger_kernel.services.sequence_service import SequenceCounter

__all__ = [
    "Account",
    "Approval",
    "ApprovalDecisionRecord",
    "ApprovalRule",
    "ClosingPeriod",
    "JournalEntry",
    "JournalLine",
    "JournalRevisionLog",
    "PeriodChecklistItem",
    "SequenceCounter",
]
