"""
Shared helpers for source-document posting flows.

Used by ledger_modules/*/service.py to reduce duplication when admitting a
document date, guarding against double posting, and handling session
commit/rollback around the ledger calls.

Architecture: Modules layer.  Imports only from ledger_kernel and
ledger_config.  MUST NOT be imported by ledger_kernel.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from enum import Enum
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_config.schema import ClosingSettings
from ledger_kernel.domain.actor import Actor
from ledger_kernel.domain.approval import ApprovalInfo
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.dtos import AdmissionResult, LineSpec, PostingResult
from ledger_kernel.domain.values import RecordRef
from ledger_kernel.exceptions import AlreadyPostedError, ClosedPeriodError
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.services.notifications import NotificationHook
from ledger_kernel.services.posting_orchestrator import PostingOrchestrator

logger = get_logger("modules.posting")


class AdapterStatus(str, Enum):
    """Outcome of handing a source document to the ledger."""

    POSTED = "posted"
    # Dated in a soft-closed (or bypassed hard-closed) period; a revision
    # request holds the draft entry until it is decided.
    PENDING_REVISION = "pending_revision"
    # Outgoing transaction waiting for its transaction approval.
    AWAITING_APPROVAL = "awaiting_approval"
    APPROVAL_REJECTED = "approval_rejected"


@dataclass(frozen=True)
class AdapterResult:
    """
    Result of one source-document operation.

    ``posting`` is set whenever the ledger was called; ``approval`` whenever
    the document went through the transaction approval gate.
    """

    status: AdapterStatus
    record: RecordRef
    posting: PostingResult | None = None
    approval: ApprovalInfo | None = None

    @property
    def is_posted(self) -> bool:
        return self.status == AdapterStatus.POSTED

    @property
    def entry_id(self) -> UUID | None:
        if self.posting is None or self.posting.entry is None:
            return None
        return self.posting.entry.id


@contextmanager
def unit_of_work(session: Session) -> Iterator[None]:
    """Commit on normal exit, roll back and re-raise on any exception."""
    try:
        yield
        session.commit()
    except Exception:
        session.rollback()
        raise


class DocumentPoster:
    """
    Posts journal requests built from source documents.

    Contract:
        Runs the kernel with ``auto_commit=False``; the calling adapter owns
        the transaction boundary (see ``unit_of_work``).

    Guarantees:
        - The document date is admitted before any row is written.  A DENIED
          date raises ``ClosedPeriodError`` without creating a draft.
        - A reference (type, number) is journaled at most once.
    """

    def __init__(
        self,
        session: Session,
        settings: ClosingSettings | None = None,
        clock: Clock | None = None,
        notifier: NotificationHook | None = None,
    ):
        self._kernel = PostingOrchestrator(
            session,
            settings=settings,
            clock=clock,
            notifier=notifier,
            auto_commit=False,
        )

    @property
    def kernel(self) -> PostingOrchestrator:
        return self._kernel

    def admit(self, record: RecordRef, transaction_date: date, actor: Actor) -> AdmissionResult:
        admission = self._kernel.periods.can_post_or_mutate(transaction_date, actor.capabilities)
        if admission.is_denied:
            logger.warning(
                "source_document_denied",
                extra={
                    "record": str(record),
                    "transaction_date": str(transaction_date),
                    "period_code": admission.period_code,
                },
            )
            raise ClosedPeriodError(
                admission.period_code or "",
                str(transaction_date),
                admission.period_status.value if admission.period_status else "unknown",
            )
        return admission

    def guard_not_journaled(self, reference_type: str, reference_number: str) -> None:
        existing = self._kernel.ledger.find_by_reference(reference_type, reference_number)
        if existing:
            entry = existing[0]
            raise AlreadyPostedError(str(entry.id), entry.status.value)

    def post(
        self,
        record: RecordRef,
        transaction_date: date,
        description: str,
        lines: Iterable[LineSpec],
        actor: Actor,
        reference_type: str,
        reference_number: str,
        approval: ApprovalInfo | None = None,
    ) -> AdapterResult:
        """Admit, guard, then create and post the entry in the open transaction."""
        self.admit(record, transaction_date, actor)
        self.guard_not_journaled(reference_type, reference_number)

        with LogContext.bind(source=record.kind.value):
            posting = self._kernel.record_entry(
                transaction_date,
                description,
                lines,
                actor,
                reference_type=reference_type,
                reference_number=reference_number,
            )
            status = AdapterStatus.PENDING_REVISION if posting.is_pending else AdapterStatus.POSTED
            logger.info(
                "source_document_journaled",
                extra={
                    "record": str(record),
                    "reference_type": reference_type,
                    "reference_number": reference_number,
                    "status": status.value,
                },
            )
        return AdapterResult(status=status, record=record, posting=posting, approval=approval)
