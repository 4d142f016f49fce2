"""Services for the ledger kernel (write side)."""

from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.approval_service import ApprovalService
from ledger_kernel.services.closing_period_service import ClosingPeriodService
from ledger_kernel.services.ledger_service import LedgerService
from ledger_kernel.services.notifications import LoggingNotifier, NotificationHook
from ledger_kernel.services.posting_orchestrator import PostingOrchestrator
from ledger_kernel.services.revision_service import RevisionService
from ledger_kernel.services.sequence_service import SequenceService

__all__ = [
    "AccountService",
    "ApprovalService",
    "ClosingPeriodService",
    "LedgerService",
    "LoggingNotifier",
    "NotificationHook",
    "PostingOrchestrator",
    "RevisionService",
    "SequenceService",
]
