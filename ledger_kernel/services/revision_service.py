"""
RevisionService -- approval workflow for mutations in closed periods.

Responsibility:
    Records every requested create / update / delete of a record dated in a
    soft- or hard-closed period as a pending ``JournalRevisionLog``, routes
    material revisions through the approval engine, and on final approval
    applies the stored mutation through the applier registered for the
    record's kind.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by LedgerService (admission returned REQUIRES_APPROVAL) and by
    the operator surface (decide / bulk_decide).  Depends on
    ApprovalService.  LedgerService registers the JOURNAL_ENTRY applier.

Invariants enforced:
    - Every request creates a pending log, material or not.
    - ``is_material`` is ``impact_amount >= material_threshold``.
    - A log is decided exactly once (row lock + status check).
    - A rejection changes nothing but the log and its approval.
    - Approval applies the stored mutation in the same transaction that
      marks the log approved; an applier failure rolls both back.
    - While a multi-level approval still has levels remaining, the log stays
      pending.

Failure modes:
    - ReasonTooShortError: request reason or rejection notes too short.
    - RevisionNotFoundError, AlreadyDecidedError.
    - InsufficientCapabilityError / ApproverNotAuthorizedError.
    - RevisionApplyError: no applier registered for the record kind, or the
      linked approval was rejected outside the workflow.

Audit relevance:
    Logs are never deleted.  Rejected revisions keep what was attempted,
    the reason, and who refused it.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal
from typing import Any, Callable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_config.schema import ClosingSettings
from ledger_kernel.domain.actor import Actor, Capability, require_capability
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import BulkDecisionResult, RevisionInfo, snapshot_total_debit
from ledger_kernel.domain.values import (
    RecordKind,
    RecordRef,
    RevisionAction,
    RevisionDecision,
    RevisionStatus,
)
from ledger_kernel.exceptions import (
    AlreadyDecidedError,
    LedgerKernelError,
    ReasonTooShortError,
    RevisionApplyError,
    RevisionNotFoundError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.revision_log import JournalRevisionLog
from ledger_kernel.services.approval_service import ApprovalService
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.notifications import (
    REVISION_REQUESTED,
    LoggingNotifier,
    NotificationHook,
)

logger = get_logger("services.revision")

REVISION_ENTITY_TYPE = RecordKind.REVISION_LOG.value
REVISION_APPROVAL_TYPE = "journal_revision"

# Applies an approved revision's stored mutation.  Runs inside the caller's
# transaction and must not re-enter admission.
RevisionApplier = Callable[[RevisionInfo, Actor], None]


def impact_amount(
    action: RevisionAction,
    old_snapshot: dict[str, Any] | None,
    new_snapshot: dict[str, Any] | None,
) -> Decimal:
    """
    Monetary size of a revision.

    update: |new total debit - old total debit|; delete: old total debit;
    create: new total debit.
    """
    action = RevisionAction(action)
    if action == RevisionAction.CREATE:
        return snapshot_total_debit(new_snapshot)
    if action == RevisionAction.DELETE:
        return snapshot_total_debit(old_snapshot)
    return abs(snapshot_total_debit(new_snapshot) - snapshot_total_debit(old_snapshot))


class RevisionService(BaseService[JournalRevisionLog]):
    """
    Service for revision requests and their decisions.

    Contract:
        ``request_revision`` never raises for closed periods -- that is the
        point of it.  ``decide`` either leaves the log pending (more
        approval levels), or resolves it to approved (mutation applied) or
        rejected (nothing applied).

    Non-goals:
        - Does NOT decide whether a revision is needed; LedgerService asks
          ClosingPeriodService for admission first.
        - Does NOT call ``session.commit()``.
    """

    model = JournalRevisionLog
    not_found = RevisionNotFoundError

    def __init__(
        self,
        session: Session,
        settings: ClosingSettings,
        approvals: ApprovalService,
        clock: Clock | None = None,
        notifier: NotificationHook | None = None,
    ):
        super().__init__(session)
        self._settings = settings
        self._approvals = approvals
        self._clock = clock or SystemClock()
        self._notifier = notifier or LoggingNotifier()
        self._appliers: dict[RecordKind, RevisionApplier] = {}

    def register_applier(self, kind: RecordKind, applier: RevisionApplier) -> None:
        self._appliers[RecordKind(kind)] = applier
        logger.debug("revision_applier_registered", extra={"record_kind": RecordKind(kind).value})

    # =========================================================================
    # Requests
    # =========================================================================

    def request_revision(
        self,
        period_id: UUID,
        record: RecordRef,
        action: RevisionAction,
        reason: str,
        old_snapshot: dict[str, Any] | None,
        new_snapshot: dict[str, Any] | None,
        actor: Actor,
        impact: Decimal | None = None,
    ) -> RevisionInfo:
        """
        Record a pending revision.  ``impact`` defaults to ``impact_amount``.

        Material revisions (or all revisions when ``approve_all_revisions``
        is set) are submitted to the approval engine under
        (``journal_revision_log``, ``journal_revision``).  With no matching
        rule the approval is single level.

        Raises:
            ReasonTooShortError: reason shorter than the configured minimum.
        """
        reason = (reason or "").strip()
        minimum = self._settings.revision_reason_min_length
        if len(reason) < minimum:
            raise ReasonTooShortError("revision reason", minimum, len(reason))

        action = RevisionAction(action)
        if impact is None:
            impact = impact_amount(action, old_snapshot, new_snapshot)
        is_material = impact >= self._settings.material_threshold

        log = JournalRevisionLog(
            period_id=period_id,
            record_kind=record.kind,
            record_id=record.record_id,
            action=action,
            reason=reason,
            old_snapshot=old_snapshot,
            new_snapshot=new_snapshot,
            impact_amount=impact,
            is_material=is_material,
            revised_by_id=actor.id,
            revised_at=self._clock.now(),
            status=RevisionStatus.PENDING,
            created_by_id=actor.id,
        )
        self.session.add(log)
        self.session.flush()

        if is_material or self._settings.approve_all_revisions:
            approval = self._approvals.submit(
                approvable=RecordRef(RecordKind.REVISION_LOG, log.id),
                approval_type=REVISION_APPROVAL_TYPE,
                amount=impact,
                requester_id=actor.id,
                conditions={"action": action.value, "record_kind": record.kind.value},
                entity_type=REVISION_ENTITY_TYPE,
                mandatory=True,
            )
            log.approval_id = approval.id
            self.session.flush()

        logger.info(
            "revision_requested",
            extra={
                "revision_id": str(log.id),
                "record": str(record),
                "action": action.value,
                "impact_amount": str(impact),
                "is_material": is_material,
                "approval_id": str(log.approval_id) if log.approval_id else None,
                "actor_id": str(actor.id),
            },
        )
        self._notifier.notify(
            REVISION_REQUESTED,
            {
                "revision_id": str(log.id),
                "period_id": str(period_id),
                "record": str(record),
                "action": action.value,
                "impact_amount": str(impact),
                "is_material": is_material,
            },
        )
        return log.to_dto()

    # =========================================================================
    # Decisions
    # =========================================================================

    def decide(
        self,
        revision_id: UUID,
        decision: RevisionDecision,
        approver: Actor,
        notes: str | None = None,
    ) -> RevisionInfo:
        """
        Approve or reject a pending revision.

        Approve advances the linked approval; the mutation is applied once
        the approval is terminal (or immediately when there is none).
        Reject requires notes of the configured minimum length.
        """
        decision = RevisionDecision(decision)
        if decision == RevisionDecision.REJECT:
            return self._reject(revision_id, approver, notes)
        return self._approve(revision_id, approver, notes)

    def bulk_decide(
        self,
        revision_ids: Iterable[UUID],
        approver: Actor,
        notes: str | None = None,
    ) -> BulkDecisionResult:
        """
        Approve each revision in its own savepoint.

        A failure rolls back only that revision and is reported by its error
        code; the others proceed.
        """
        approved: list[UUID] = []
        awaiting: list[UUID] = []
        failed: dict[UUID, str] = {}

        for revision_id in revision_ids:
            savepoint = self.session.begin_nested()
            try:
                info = self._approve(revision_id, approver, notes)
            except LedgerKernelError as exc:
                savepoint.rollback()
                failed[revision_id] = exc.code
                logger.warning(
                    "bulk_revision_failed",
                    extra={"revision_id": str(revision_id), "error_code": exc.code},
                )
                continue
            savepoint.commit()
            if info.status == RevisionStatus.APPROVED:
                approved.append(revision_id)
            else:
                awaiting.append(revision_id)

        logger.info(
            "bulk_revisions_decided",
            extra={
                "approved_count": len(approved),
                "awaiting_count": len(awaiting),
                "failed_count": len(failed),
                "actor_id": str(approver.id),
            },
        )
        return BulkDecisionResult(
            approved=tuple(approved),
            awaiting_next_level=tuple(awaiting),
            failed=failed,
        )

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, revision_id: UUID) -> RevisionInfo:
        log = self.session.get(JournalRevisionLog, revision_id)
        if log is None:
            raise RevisionNotFoundError(str(revision_id))
        return log.to_dto()

    def pending_for_record(
        self,
        record: RecordRef,
        action: RevisionAction | None = None,
    ) -> RevisionInfo | None:
        query = select(JournalRevisionLog).where(
            JournalRevisionLog.record_kind == record.kind,
            JournalRevisionLog.record_id == record.record_id,
            JournalRevisionLog.status == RevisionStatus.PENDING,
        )
        if action is not None:
            query = query.where(JournalRevisionLog.action == RevisionAction(action))
        log = self.session.execute(
            query.order_by(JournalRevisionLog.created_at).limit(1)
        ).scalar_one_or_none()
        return log.to_dto() if log is not None else None

    # =========================================================================
    # Internals
    # =========================================================================

    def _load_pending_for_update(self, revision_id: UUID) -> JournalRevisionLog:
        log = self._lock_row(revision_id)
        if log.status != RevisionStatus.PENDING:
            raise AlreadyDecidedError("Revision", str(log.id), RevisionStatus(log.status).value)
        return log

    def _reject(self, revision_id: UUID, approver: Actor, notes: str | None) -> RevisionInfo:
        notes = (notes or "").strip()
        minimum = self._settings.reject_notes_min_length
        if len(notes) < minimum:
            raise ReasonTooShortError("rejection notes", minimum, len(notes))

        log = self._load_pending_for_update(revision_id)
        if log.approval_id is not None:
            approval = self._approvals.get(log.approval_id)
            if approval.is_open:
                self._approvals.reject(log.approval_id, approver, notes)
        else:
            require_capability(approver, Capability.APPROVE, "reject a revision")

        self._resolve(log, RevisionStatus.REJECTED, approver, notes)
        logger.info(
            "revision_rejected",
            extra={
                "revision_id": str(log.id),
                "record": f"{RecordKind(log.record_kind).value}:{log.record_id}",
                "actor_id": str(approver.id),
            },
        )
        return log.to_dto()

    def _approve(self, revision_id: UUID, approver: Actor, notes: str | None) -> RevisionInfo:
        require_capability(approver, Capability.APPROVE, "approve a revision")
        log = self._load_pending_for_update(revision_id)

        if log.approval_id is not None:
            approval = self._approvals.get(log.approval_id)
            if approval.is_open:
                approval = self._approvals.approve(log.approval_id, approver, notes)
            if approval.is_rejected:
                raise RevisionApplyError(str(log.id), "linked approval was rejected")
            if approval.is_open:
                logger.info(
                    "revision_awaiting_next_level",
                    extra={
                        "revision_id": str(log.id),
                        "approval_id": str(approval.id),
                        "approval_level": approval.level,
                        "required_levels": approval.required_levels,
                    },
                )
                return log.to_dto()

        info = log.to_dto()
        applier = self._appliers.get(info.record.kind)
        if applier is None:
            raise RevisionApplyError(
                str(log.id), f"no applier registered for {info.record.kind.value}"
            )
        applier(info, approver)

        self._resolve(log, RevisionStatus.APPROVED, approver, notes)
        logger.info(
            "revision_applied",
            extra={
                "revision_id": str(log.id),
                "record": str(info.record),
                "action": info.action.value,
                "actor_id": str(approver.id),
            },
        )
        return log.to_dto()

    def _resolve(
        self,
        log: JournalRevisionLog,
        status: RevisionStatus,
        approver: Actor,
        notes: str | None,
    ) -> None:
        log.status = status
        log.decided_by_id = approver.id
        log.decided_at = self._clock.now()
        log.decision_notes = notes
        self.session.flush()
