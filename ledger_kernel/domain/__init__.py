"""Pure domain types for the ledger kernel (no I/O, no ORM)."""

from ledger_kernel.domain.actor import Actor, Capability, require_capability
from ledger_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from ledger_kernel.domain.dtos import (
    AdmissionResult,
    CloseReadiness,
    CloseViolation,
    JournalEntryInfo,
    LineSpec,
    PostingResult,
    PostingStatus,
)
from ledger_kernel.domain.values import (
    AccountType,
    AdmissionDecision,
    ApprovalStatus,
    ClosingMode,
    JournalEntryStatus,
    NormalBalance,
    PeriodStatus,
    PeriodType,
    RecordKind,
    RecordRef,
    RevisionAction,
    RevisionDecision,
    RevisionStatus,
)

__all__ = [
    "AccountType",
    "Actor",
    "AdmissionDecision",
    "AdmissionResult",
    "ApprovalStatus",
    "Capability",
    "Clock",
    "CloseReadiness",
    "CloseViolation",
    "ClosingMode",
    "DeterministicClock",
    "JournalEntryInfo",
    "JournalEntryStatus",
    "LineSpec",
    "NormalBalance",
    "PeriodStatus",
    "PeriodType",
    "PostingResult",
    "PostingStatus",
    "RecordKind",
    "RecordRef",
    "RevisionAction",
    "RevisionDecision",
    "RevisionStatus",
    "SystemClock",
    "require_capability",
]
