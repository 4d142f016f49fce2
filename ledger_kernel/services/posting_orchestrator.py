"""
Posting Orchestrator - Coordinates the ledger workflow.

The Orchestrator ties together:
- AccountService: chart of accounts
- ClosingPeriodService: admission and the period state machine
- ApprovalService: generic multi-level approvals
- RevisionService: closed-period revision requests and decisions
- LedgerService: journal persistence

Manages its own transaction boundary.  Every public operation is one unit
of work: commit on success, rollback on failure (with ``auto_commit``).
Services underneath only flush.
"""

import logging
import time
from collections.abc import Callable, Iterable
from datetime import date
from typing import TypeVar
from uuid import UUID
from uuid import uuid4 as _uuid4

from sqlalchemy.orm import Session

from ledger_config import get_active_settings
from ledger_config.schema import ClosingSettings
from ledger_kernel.domain.actor import Actor
from ledger_kernel.domain.approval import ApprovalInfo
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import (
    BulkDecisionResult,
    ClosingPeriodInfo,
    JournalEntryInfo,
    LineSpec,
    PostingResult,
    RevisionInfo,
)
from ledger_kernel.domain.values import RevisionDecision
from ledger_kernel.exceptions import ImmutabilityError, LedgerKernelError
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.approval_service import ApprovalService
from ledger_kernel.services.closing_period_service import ClosingPeriodService
from ledger_kernel.services.ledger_service import LedgerService
from ledger_kernel.services.notifications import LoggingNotifier, NotificationHook
from ledger_kernel.services.revision_service import RevisionService

logger = get_logger("services.posting_orchestrator")

T = TypeVar("T")


def _failure_level(exc: Exception) -> int:
    """Refusals and validation failures are WARNING; integrity breaches and bugs are ERROR."""
    if isinstance(exc, LedgerKernelError) and not isinstance(exc, ImmutabilityError):
        return logging.WARNING
    return logging.ERROR


class PostingOrchestrator:
    """
    Orchestrates ledger writes and closed-period decisions.

    Defines its own transaction boundary.  By default each operation
    commits on success and rolls back on failure.  Set ``auto_commit=False``
    to delegate transaction control to the caller (tests, batch jobs that
    group several operations).
    """

    def __init__(
        self,
        session: Session,
        settings: ClosingSettings | None = None,
        clock: Clock | None = None,
        notifier: NotificationHook | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._settings = settings or get_active_settings()
        self._clock = clock or SystemClock()
        self._notifier = notifier or LoggingNotifier()
        self._auto_commit = auto_commit

        self.accounts = AccountService(session)
        self.approvals = ApprovalService(session, self._settings, self._clock, self._notifier)
        self.periods = ClosingPeriodService(
            session, self._settings, self._clock, self._notifier, approvals=self.approvals
        )
        self.revisions = RevisionService(
            session, self._settings, self.approvals, self._clock, self._notifier
        )
        self.ledger = LedgerService(
            session, self._settings, self.periods, self.revisions, self._clock
        )

    @property
    def settings(self) -> ClosingSettings:
        return self._settings

    # =========================================================================
    # Ledger
    # =========================================================================

    def record_entry(
        self,
        transaction_date: date,
        description: str,
        lines: Iterable[LineSpec],
        actor: Actor,
        reference_type: str | None = None,
        reference_number: str | None = None,
        reason: str | None = None,
    ) -> PostingResult:
        """Create a draft and post it in one unit of work."""

        def _record() -> PostingResult:
            draft = self.ledger.create_draft(
                transaction_date,
                description,
                lines,
                actor.id,
                reference_type=reference_type,
                reference_number=reference_number,
            )
            return self.ledger.post(draft.id, actor, reason=reason)

        return self._run("record_entry", actor, _record)

    def create_draft(
        self,
        transaction_date: date,
        description: str,
        lines: Iterable[LineSpec],
        actor: Actor,
        reference_type: str | None = None,
        reference_number: str | None = None,
    ) -> JournalEntryInfo:
        return self._run(
            "create_draft",
            actor,
            lambda: self.ledger.create_draft(
                transaction_date,
                description,
                lines,
                actor.id,
                reference_type=reference_type,
                reference_number=reference_number,
            ),
        )

    def post(self, entry_id: UUID, actor: Actor, reason: str | None = None) -> PostingResult:
        return self._run("post", actor, lambda: self.ledger.post(entry_id, actor, reason=reason))

    def reverse(
        self,
        entry_id: UUID,
        actor: Actor,
        reversal_date: date | None = None,
        reason: str | None = None,
    ) -> PostingResult:
        return self._run(
            "reverse",
            actor,
            lambda: self.ledger.reverse(entry_id, actor, reversal_date=reversal_date, reason=reason),
        )

    def update_entry(
        self,
        entry_id: UUID,
        lines: Iterable[LineSpec],
        actor: Actor,
        description: str | None = None,
        reason: str | None = None,
    ) -> PostingResult:
        return self._run(
            "update_entry",
            actor,
            lambda: self.ledger.update_entry(
                entry_id, lines, actor, description=description, reason=reason
            ),
        )

    def delete_entry(self, entry_id: UUID, actor: Actor, reason: str | None = None) -> PostingResult:
        return self._run(
            "delete_entry",
            actor,
            lambda: self.ledger.delete_entry(entry_id, actor, reason=reason),
        )

    # =========================================================================
    # Revisions
    # =========================================================================

    def decide_revision(
        self,
        revision_id: UUID,
        decision: RevisionDecision,
        approver: Actor,
        notes: str | None = None,
    ) -> RevisionInfo:
        return self._run(
            "decide_revision",
            approver,
            lambda: self.revisions.decide(revision_id, decision, approver, notes),
        )

    def bulk_decide(
        self,
        revision_ids: Iterable[UUID],
        approver: Actor,
        notes: str | None = None,
    ) -> BulkDecisionResult:
        return self._run(
            "bulk_decide",
            approver,
            lambda: self.revisions.bulk_decide(list(revision_ids), approver, notes),
        )

    # =========================================================================
    # Periods
    # =========================================================================

    def soft_close(self, period_id: UUID, actor: Actor, notes: str | None = None) -> ClosingPeriodInfo:
        return self._run("soft_close", actor, lambda: self.periods.soft_close(period_id, actor, notes))

    def request_close_approval(self, period_id: UUID, actor: Actor) -> ApprovalInfo | None:
        return self._run(
            "request_close_approval", actor, lambda: self.periods.request_close_approval(period_id, actor)
        )

    def hard_close(self, period_id: UUID, actor: Actor, notes: str | None = None) -> ClosingPeriodInfo:
        return self._run("hard_close", actor, lambda: self.periods.hard_close(period_id, actor, notes))

    def reopen(self, period_id: UUID, actor: Actor, reason: str) -> ClosingPeriodInfo:
        return self._run("reopen", actor, lambda: self.periods.reopen(period_id, actor, reason))

    # =========================================================================
    # Transaction boundary
    # =========================================================================

    def _run(self, operation: str, actor: Actor, work: Callable[[], T]) -> T:
        correlation_id = str(_uuid4())
        with LogContext.bind(correlation_id=correlation_id, actor_id=str(actor.id)):
            logger.info("ledger_operation_started", extra={"operation": operation})
            t0 = time.monotonic()
            try:
                result = work()
                if self._auto_commit:
                    self._session.commit()
            except Exception as exc:
                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                if self._auto_commit:
                    self._session.rollback()
                logger.log(
                    _failure_level(exc),
                    "ledger_operation_failed",
                    extra={"operation": operation, "duration_ms": duration_ms},
                    exc_info=True,
                )
                raise

            duration_ms = round((time.monotonic() - t0) * 1000, 2)
            logger.info(
                "ledger_operation_completed",
                extra={
                    "operation": operation,
                    "duration_ms": duration_ms,
                    "status": getattr(getattr(result, "status", None), "value", None),
                },
            )
            return result
