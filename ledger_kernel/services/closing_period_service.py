"""
ClosingPeriodService -- closing period lifecycle and posting-date admission.

Responsibility:
    Creates closing periods (manually or from a template), drives the
    OPEN -> SOFT_CLOSE -> HARD_CLOSE state machine with its explicit reopen
    edge, maintains the pre-close checklist, and answers the admission
    question every ledger mutation asks: may a record dated D be written
    now, by this actor?

Architecture position:
    Kernel > Services -- imperative shell.
    Called by LedgerService before every post/reverse/update/delete, by
    source-document adapters to fail fast, and by the operator surface for
    transitions.

Invariants enforced:
    - period_start <= period_end <= cutoff_date <= hard_close_date.
    - Periods of the same type never overlap.
    - The only transitions are open -> soft_close -> hard_close plus reopen
      to open.  hard_close is never reached from open.
    - Hard-closed dates are never ALLOWED: DENIED without the bypass
      capability, REQUIRES_APPROVAL with it.
    - When several periods cover a date, the most restrictive status
      governs admission.
    - When an active ``monthly_closing`` approval rule exists, hard close
      needs a close approval decided after the period was last reopened.
    - Transitions lock the period row (SELECT ... FOR UPDATE,
      populate_existing) so a concurrent loser observes the new status and
      fails with PeriodStateError.  A stale version counter fails with
      OptimisticLockError.

Failure modes:
    - PeriodNotFoundError, PeriodCodeExistsError, InvalidPeriodDatesError,
      PeriodOverlapError, PeriodTemplateNotFoundError.
    - PeriodStateError: the period is not in the state the transition needs.
    - CloseBlockedError: soft/hard close blocked; carries every violation.
    - ReopenForbiddenError: hard-close reopen disabled by configuration.
    - InsufficientCapabilityError, ReasonTooShortError.
    - OptimisticLockError: concurrent modification detected at flush.

Audit relevance:
    Every transition stamps actor and timestamp on the period, is logged
    with from/to status, and fires the ``period_transitioned`` notification.
    Admission refusals are logged at WARNING with the governing period.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, timedelta
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ledger_config.schema import (
    ALL_POSTED,
    AUTO_CHECKLIST_ITEMS,
    CHECKLIST_LABELS,
    JOURNAL_BALANCE,
    ClosingSettings,
    PeriodTemplateDef,
)
from ledger_engines.periods import close_schedule, next_period_start, period_bounds, period_code_for
from ledger_kernel.domain.actor import Actor, Capability, require_capability
from ledger_kernel.domain.approval import ApprovalInfo
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import (
    AdmissionResult,
    ChecklistItemInfo,
    CloseReadiness,
    CloseViolation,
    ClosingPeriodInfo,
    PeriodSuggestion,
)
from ledger_kernel.domain.values import (
    PERIOD_STATUS_RANK,
    AdmissionDecision,
    JournalEntryStatus,
    PeriodStatus,
    PeriodType,
    RecordKind,
    RecordRef,
    RevisionStatus,
)
from ledger_kernel.exceptions import (
    ChecklistItemNotFoundError,
    CloseBlockedError,
    InvalidPeriodDatesError,
    OptimisticLockError,
    PeriodCodeExistsError,
    PeriodNotFoundError,
    PeriodOverlapError,
    PeriodStateError,
    PeriodTemplateNotFoundError,
    ReasonTooShortError,
    ReopenForbiddenError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.closing_period import ClosingPeriod, PeriodChecklistItem
from ledger_kernel.models.journal import JournalEntry, JournalLine
from ledger_kernel.models.revision_log import JournalRevisionLog
from ledger_kernel.services.approval_service import ApprovalService
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.notifications import (
    CUTOFF_APPROACHING,
    PERIOD_TRANSITIONED,
    LoggingNotifier,
    NotificationHook,
)

logger = get_logger("services.closing_period")

# Violation codes
MODULE_DISABLED = "MODULE_DISABLED"
HARD_CLOSE_DISABLED = "HARD_CLOSE_DISABLED"
INVALID_STATUS = "INVALID_STATUS"
BEFORE_CUTOFF = "BEFORE_CUTOFF"
BEFORE_HARD_CLOSE_DATE = "BEFORE_HARD_CLOSE_DATE"
CHECKLIST_INCOMPLETE = "CHECKLIST_INCOMPLETE"
UNPOSTED_JOURNALS = "UNPOSTED_JOURNALS"
UNBALANCED_JOURNALS = "UNBALANCED_JOURNALS"
PENDING_REVISIONS = "PENDING_REVISIONS"
CLOSE_APPROVAL_MISSING = "CLOSE_APPROVAL_MISSING"
CLOSE_APPROVAL_PENDING = "CLOSE_APPROVAL_PENDING"
CLOSE_APPROVAL_REJECTED = "CLOSE_APPROVAL_REJECTED"

CLOSE_APPROVAL_TYPE = "monthly_closing"


def period_to_dto(period: ClosingPeriod) -> ClosingPeriodInfo:
    return ClosingPeriodInfo(
        id=period.id,
        period_code=period.period_code,
        period_type=PeriodType(period.period_type),
        period_start=period.period_start,
        period_end=period.period_end,
        cutoff_date=period.cutoff_date,
        hard_close_date=period.hard_close_date,
        status=PeriodStatus(period.status),
        template_code=period.template_code,
        notes=period.notes,
        soft_closed_by_id=period.soft_closed_by_id,
        soft_closed_at=period.soft_closed_at,
        hard_closed_by_id=period.hard_closed_by_id,
        hard_closed_at=period.hard_closed_at,
        reopened_by_id=period.reopened_by_id,
        reopened_at=period.reopened_at,
        reopen_reason=period.reopen_reason,
        checklist=tuple(
            ChecklistItemInfo(
                item_key=item.item_key,
                label=item.label,
                is_required=item.is_required,
                is_completed=item.is_completed,
                completed_by_id=item.completed_by_id,
                completed_at=item.completed_at,
                notes=item.notes,
                validation_data=item.validation_data,
            )
            for item in period.checklist_items
        ),
    )


class ClosingPeriodService(BaseService[ClosingPeriod]):
    """
    Service for the closing period state machine.

    Contract:
        Accepts period ids, dates and an ``Actor``; returns frozen DTOs.
        Configuration arrives as an explicit ``ClosingSettings``.

    Guarantees:
        - ``can_post_or_mutate`` never returns ALLOWED for a hard-closed
          date.
        - Close transitions report every blocking condition at once.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT undo postings on reopen.
        - Does NOT run scheduled jobs; ``send_cutoff_reminders`` is invoked
          by an external trigger.
    """

    model = ClosingPeriod
    not_found = PeriodNotFoundError

    def __init__(
        self,
        session: Session,
        settings: ClosingSettings,
        clock: Clock | None = None,
        notifier: NotificationHook | None = None,
        approvals: ApprovalService | None = None,
    ):
        super().__init__(session)
        self._settings = settings
        self._clock = clock or SystemClock()
        self._notifier = notifier or LoggingNotifier()
        self._approvals = approvals

    @property
    def settings(self) -> ClosingSettings:
        return self._settings

    # =========================================================================
    # Creation
    # =========================================================================

    def create_period(
        self,
        period_type: PeriodType,
        period_start: date,
        period_end: date,
        actor_id: UUID,
        period_code: str | None = None,
        cutoff_date: date | None = None,
        hard_close_date: date | None = None,
        template_code: str | None = None,
        notes: str | None = None,
    ) -> ClosingPeriodInfo:
        """
        Create an OPEN period.

        Missing cutoff / hard-close dates are derived from the template (if
        given) or the settings defaults.  The checklist is the template's
        items plus every validation the settings make mandatory.

        Raises:
            PeriodTemplateNotFoundError, InvalidPeriodDatesError,
            PeriodCodeExistsError, PeriodOverlapError.
        """
        period_type = PeriodType(period_type)
        template = self._template(template_code) if template_code else None
        code = period_code or period_code_for(period_type, period_start)

        cutoff_date, hard_close_date = self._derive_schedule(template, period_end, cutoff_date, hard_close_date)
        self._validate_dates(code, period_start, period_end, cutoff_date, hard_close_date)

        if self._get_by_code(code) is not None:
            raise PeriodCodeExistsError(code)
        self._validate_no_overlap(code, period_type, period_start, period_end)

        period = ClosingPeriod(
            period_code=code,
            period_type=period_type,
            period_start=period_start,
            period_end=period_end,
            cutoff_date=cutoff_date,
            hard_close_date=hard_close_date,
            status=PeriodStatus.OPEN,
            template_code=template.code if template else None,
            notes=notes,
            created_by_id=actor_id,
        )
        for order, (key, label, required) in enumerate(self._checklist_for(template)):
            period.checklist_items.append(
                PeriodChecklistItem(
                    item_key=key,
                    label=label,
                    sort_order=order,
                    is_required=required,
                    is_completed=False,
                    created_by_id=actor_id,
                )
            )

        self.session.add(period)
        self.session.flush()

        logger.info(
            "period_created",
            extra={
                "period_code": code,
                "period_type": period_type.value,
                "period_start": str(period_start),
                "period_end": str(period_end),
                "cutoff_date": str(cutoff_date),
                "hard_close_date": str(hard_close_date) if hard_close_date else None,
                "template_code": period.template_code,
            },
        )
        return period_to_dto(period)

    def create_from_template(
        self,
        template_code: str,
        period_start: date,
        actor_id: UUID,
        notes: str | None = None,
    ) -> ClosingPeriodInfo:
        """Create the template-type period containing ``period_start``."""
        template = self._template(template_code)
        bounds = period_bounds(template.period_type, period_start)
        cutoff, hard_close = close_schedule(
            bounds.end, template.cutoff_days, template.hard_close_days
        )
        return self.create_period(
            period_type=template.period_type,
            period_start=bounds.start,
            period_end=bounds.end,
            actor_id=actor_id,
            cutoff_date=cutoff,
            hard_close_date=hard_close if self._settings.hard_close_enabled else None,
            template_code=template.code,
            notes=notes,
        )

    def update_period(
        self,
        period_id: UUID,
        actor_id: UUID,
        period_type: PeriodType | None = None,
        period_start: date | None = None,
        period_end: date | None = None,
        period_code: str | None = None,
        cutoff_date: date | None = None,
        hard_close_date: date | None = None,
        template_code: str | None = None,
        notes: str | None = None,
    ) -> ClosingPeriodInfo:
        """
        Edit an OPEN period.  Omitted arguments keep their current values.

        A new end date or template derives the cutoff and hard-close dates
        again unless they are given; an explicit cutoff moves the hard close
        with it.  The code follows a changed type or start unless
        ``period_code`` is given.  A new template adds its checklist items;
        existing items, completed or not, are kept.

        Raises:
            PeriodStateError: period is not open.
            PeriodTemplateNotFoundError, InvalidPeriodDatesError,
            PeriodCodeExistsError, PeriodOverlapError, OptimisticLockError.
        """
        period = self._lock_row(period_id)
        self._expect_status(period, PeriodStatus.OPEN)

        new_type = PeriodType(period_type) if period_type is not None else PeriodType(period.period_type)
        new_start = period_start or period.period_start
        new_end = period_end or period.period_end
        template_changed = template_code is not None and template_code != period.template_code
        template_code = template_code or period.template_code
        template = self._template(template_code) if template_code else None

        if period_code is not None:
            code = period_code
        elif new_type != period.period_type or new_start != period.period_start:
            code = period_code_for(new_type, new_start)
        else:
            code = period.period_code

        reschedule = template_changed or new_end != period.period_end
        if not reschedule:
            if cutoff_date is None:
                cutoff_date = period.cutoff_date
            if hard_close_date is None and cutoff_date == period.cutoff_date:
                hard_close_date = period.hard_close_date
        cutoff_date, hard_close_date = self._derive_schedule(template, new_end, cutoff_date, hard_close_date)

        self._validate_dates(code, new_start, new_end, cutoff_date, hard_close_date)
        if code != period.period_code and self._get_by_code(code) is not None:
            raise PeriodCodeExistsError(code)
        self._validate_no_overlap(code, new_type, new_start, new_end, exclude_id=period.id)

        previous_code = period.period_code
        changed = [
            name
            for name, value in (
                ("period_code", code),
                ("period_type", new_type),
                ("period_start", new_start),
                ("period_end", new_end),
                ("cutoff_date", cutoff_date),
                ("hard_close_date", hard_close_date),
                ("template_code", template.code if template else None),
                ("notes", notes if notes is not None else period.notes),
            )
            if getattr(period, name) != value
        ]
        period.period_code = code
        period.period_type = new_type
        period.period_start = new_start
        period.period_end = new_end
        period.cutoff_date = cutoff_date
        period.hard_close_date = hard_close_date
        period.template_code = template.code if template else None
        if notes is not None:
            period.notes = notes

        if template_changed:
            present = {item.item_key for item in period.checklist_items}
            for key, label, required in self._checklist_for(template):
                if key not in present:
                    period.checklist_items.append(
                        PeriodChecklistItem(
                            item_key=key,
                            label=label,
                            sort_order=len(period.checklist_items),
                            is_required=required,
                            is_completed=False,
                            created_by_id=actor_id,
                        )
                    )

        period.updated_by_id = actor_id
        self._flush_transition(period)

        logger.info(
            "period_updated",
            extra={
                "period_code": code,
                "previous_period_code": previous_code,
                "changed_fields": changed,
                "cutoff_date": str(cutoff_date),
                "hard_close_date": str(hard_close_date) if hard_close_date else None,
                "actor_id": str(actor_id),
            },
        )
        return period_to_dto(period)

    def suggest_next_period(self, period_type: PeriodType) -> PeriodSuggestion:
        """The period after the latest one of ``period_type``, or the current one."""
        period_type = PeriodType(period_type)
        last_end = self.session.execute(
            select(func.max(ClosingPeriod.period_end)).where(
                ClosingPeriod.period_type == period_type
            )
        ).scalar_one_or_none()
        anchor = next_period_start(last_end) if last_end else self._clock.today()
        bounds = period_bounds(period_type, anchor)
        return PeriodSuggestion(
            period_type=period_type,
            period_code=bounds.code,
            period_start=bounds.start,
            period_end=bounds.end,
        )

    def ensure_period_for(self, transaction_date: date, actor_id: UUID) -> ClosingPeriodInfo | None:
        """
        With ``auto_create_period`` set, create the monthly period covering
        ``transaction_date`` if no period covers it.  Returns the governing
        period, or None when nothing covers the date.
        """
        existing = self._covering(transaction_date)
        if existing:
            return period_to_dto(self._most_restrictive(existing))
        if not (self._settings.auto_create_period and self._settings.is_active):
            return None

        template = self._settings.default_template(PeriodType.MONTHLY)
        if template is not None:
            return self.create_from_template(template.code, transaction_date, actor_id)
        bounds = period_bounds(PeriodType.MONTHLY, transaction_date)
        return self.create_period(PeriodType.MONTHLY, bounds.start, bounds.end, actor_id)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_period(self, period_id: UUID) -> ClosingPeriodInfo:
        return period_to_dto(self._require(period_id))

    def get_period_by_code(self, period_code: str) -> ClosingPeriodInfo:
        period = self._get_by_code(period_code)
        if period is None:
            raise PeriodNotFoundError(period_code)
        return period_to_dto(period)

    def list_periods(
        self,
        period_type: PeriodType | None = None,
        status: PeriodStatus | None = None,
    ) -> list[ClosingPeriodInfo]:
        query = select(ClosingPeriod).order_by(ClosingPeriod.period_start, ClosingPeriod.period_code)
        if period_type is not None:
            query = query.where(ClosingPeriod.period_type == PeriodType(period_type))
        if status is not None:
            query = query.where(ClosingPeriod.status == PeriodStatus(status))
        return [period_to_dto(p) for p in self.session.execute(query).scalars().all()]

    def governing_period(self, transaction_date: date) -> ClosingPeriodInfo | None:
        """The most restrictive period covering ``transaction_date``."""
        covering = self._covering(transaction_date)
        if not covering:
            return None
        return period_to_dto(self._most_restrictive(covering))

    # =========================================================================
    # Admission
    # =========================================================================

    def can_post_or_mutate(
        self,
        transaction_date: date,
        capabilities: Iterable[Capability] = (),
    ) -> AdmissionResult:
        """
        May a record dated ``transaction_date`` be written now?

        open -> ALLOWED; soft_close -> REQUIRES_APPROVAL (ALLOWED with bypass
        when approval after soft close is not required); hard_close ->
        DENIED (REQUIRES_APPROVAL with bypass).  Never ALLOWED for a
        hard-closed date.
        """
        capabilities = frozenset(capabilities)
        bypass = Capability.BYPASS_PERIOD_LOCK in capabilities

        if not self._settings.is_active:
            return AdmissionResult(
                decision=AdmissionDecision.ALLOWED,
                transaction_date=transaction_date,
                reason="closing module disabled",
            )

        covering = self._covering(transaction_date)
        if not covering:
            decision = (
                AdmissionDecision.ALLOWED
                if self._settings.allow_posting_without_period
                else AdmissionDecision.DENIED
            )
            result = AdmissionResult(
                decision=decision,
                transaction_date=transaction_date,
                reason="no closing period covers the date",
            )
            self._log_admission(result)
            return result

        period = self._most_restrictive(covering)
        status = PeriodStatus(period.status)

        if status == PeriodStatus.OPEN:
            decision = AdmissionDecision.ALLOWED
            reason = "period open"
        elif status == PeriodStatus.SOFT_CLOSE:
            if bypass and not self._settings.require_approval_after_soft_close:
                decision = AdmissionDecision.ALLOWED
                reason = "soft close bypassed"
            else:
                decision = AdmissionDecision.REQUIRES_APPROVAL
                reason = "period soft closed"
        else:
            if bypass:
                decision = AdmissionDecision.REQUIRES_APPROVAL
                reason = "hard close bypass requires approval"
            else:
                decision = AdmissionDecision.DENIED
                reason = "period hard closed"

        result = AdmissionResult(
            decision=decision,
            transaction_date=transaction_date,
            period_id=period.id,
            period_code=period.period_code,
            period_status=status,
            reason=reason,
        )
        self._log_admission(result)
        return result

    # =========================================================================
    # Transitions
    # =========================================================================

    def close_readiness(
        self,
        period_id: UUID,
        actor: Actor,
        target_status: PeriodStatus = PeriodStatus.SOFT_CLOSE,
    ) -> CloseReadiness:
        """Every condition blocking ``target_status``, without transitioning."""
        period = self._require(period_id)
        target_status = PeriodStatus(target_status)
        if target_status == PeriodStatus.HARD_CLOSE:
            violations = self._hard_close_violations(period, actor)
        else:
            violations = self._soft_close_violations(period, actor)
        return CloseReadiness(
            period_code=period.period_code,
            target_status=target_status,
            violations=tuple(violations),
        )

    def soft_close(self, period_id: UUID, actor: Actor, notes: str | None = None) -> ClosingPeriodInfo:
        """
        OPEN -> SOFT_CLOSE.

        Raises:
            InsufficientCapabilityError: actor lacks CLOSE_PERIOD.
            PeriodStateError: period is not open.
            CloseBlockedError: one or more violations; all are reported.
        """
        require_capability(actor, Capability.CLOSE_PERIOD, "soft close a period")
        period = self._lock_row(period_id)
        self._expect_status(period, PeriodStatus.OPEN)

        violations = self._soft_close_violations(period, actor)
        if violations:
            self._log_blocked(period, PeriodStatus.SOFT_CLOSE, violations, actor)
            raise CloseBlockedError(period.period_code, PeriodStatus.SOFT_CLOSE.value, tuple(violations))

        period.status = PeriodStatus.SOFT_CLOSE
        period.soft_closed_by_id = actor.id
        period.soft_closed_at = self._clock.now()
        if notes:
            period.notes = notes
        period.updated_by_id = actor.id
        self._flush_transition(period)
        self._transitioned(period, PeriodStatus.OPEN, actor, "period_soft_closed")
        return period_to_dto(period)

    def request_close_approval(self, period_id: UUID, actor: Actor) -> ApprovalInfo | None:
        """
        Submit the ``monthly_closing`` approval for a soft-closed period.

        Returns the open request if one exists, the approval still valid
        for the current close if one was already granted, or None when no
        close approval rule is configured.

        Raises:
            InsufficientCapabilityError: actor lacks CLOSE_PERIOD.
            PeriodStateError: period is not soft closed.
        """
        require_capability(actor, Capability.CLOSE_PERIOD, "request a close approval")
        period = self._require(period_id)
        self._expect_status(period, PeriodStatus.SOFT_CLOSE)
        if self._approvals is None:
            return None

        ref = RecordRef(RecordKind.CLOSING_PERIOD, period.id)
        granted = [
            a
            for a in self._approvals.decided_for(ref, CLOSE_APPROVAL_TYPE, since=period.reopened_at)
            if a.is_approved
        ]
        if granted:
            return granted[-1]

        approval = self._approvals.submit(
            ref,
            CLOSE_APPROVAL_TYPE,
            None,
            actor.id,
            entity_type=RecordKind.CLOSING_PERIOD.value,
        )
        logger.info(
            "period_close_approval_requested",
            extra={
                "period_code": period.period_code,
                "approval_id": str(approval.id) if approval else None,
                "actor_id": str(actor.id),
            },
        )
        return approval

    def hard_close(self, period_id: UUID, actor: Actor, notes: str | None = None) -> ClosingPeriodInfo:
        """
        SOFT_CLOSE -> HARD_CLOSE.

        Raises:
            InsufficientCapabilityError: actor lacks CLOSE_PERIOD.
            PeriodStateError: period is not soft closed.
            CloseBlockedError: hard close disabled, date not reached without
                override, pending revisions, or the close approval is
                missing, pending or rejected.
        """
        require_capability(actor, Capability.CLOSE_PERIOD, "hard close a period")
        period = self._lock_row(period_id)
        self._expect_status(period, PeriodStatus.SOFT_CLOSE)

        violations = self._hard_close_violations(period, actor)
        if violations:
            self._log_blocked(period, PeriodStatus.HARD_CLOSE, violations, actor)
            raise CloseBlockedError(period.period_code, PeriodStatus.HARD_CLOSE.value, tuple(violations))

        period.status = PeriodStatus.HARD_CLOSE
        period.hard_closed_by_id = actor.id
        period.hard_closed_at = self._clock.now()
        if notes:
            period.notes = notes
        period.updated_by_id = actor.id
        self._flush_transition(period)
        self._transitioned(period, PeriodStatus.SOFT_CLOSE, actor, "period_hard_closed")
        return period_to_dto(period)

    def reopen(self, period_id: UUID, actor: Actor, reason: str) -> ClosingPeriodInfo:
        """
        SOFT_CLOSE or HARD_CLOSE -> OPEN.  Postings are not undone.

        Raises:
            InsufficientCapabilityError: actor lacks REOPEN_PERIOD.
            ReasonTooShortError: reason shorter than the configured minimum.
            PeriodStateError: period is already open.
            ReopenForbiddenError: hard-close reopen disabled.
        """
        require_capability(actor, Capability.REOPEN_PERIOD, "reopen a period")
        reason = (reason or "").strip()
        minimum = self._settings.reopen_reason_min_length
        if len(reason) < minimum:
            raise ReasonTooShortError("reopen reason", minimum, len(reason))

        period = self._lock_row(period_id)
        previous = PeriodStatus(period.status)
        if previous == PeriodStatus.OPEN:
            raise PeriodStateError(
                period.period_code,
                expected=f"{PeriodStatus.SOFT_CLOSE.value} or {PeriodStatus.HARD_CLOSE.value}",
                actual=previous.value,
            )
        if previous == PeriodStatus.HARD_CLOSE and not self._settings.allow_reopen_hard_close:
            logger.warning(
                "period_reopen_forbidden",
                extra={"period_code": period.period_code, "actor_id": str(actor.id)},
            )
            raise ReopenForbiddenError(period.period_code, previous.value)

        period.status = PeriodStatus.OPEN
        period.reopened_by_id = actor.id
        period.reopened_at = self._clock.now()
        period.reopen_reason = reason
        period.updated_by_id = actor.id
        self._flush_transition(period)
        self._transitioned(period, previous, actor, "period_reopened", reason=reason)
        return period_to_dto(period)

    # =========================================================================
    # Checklist
    # =========================================================================

    def refresh_checklist(self, period_id: UUID, actor_id: UUID) -> ClosingPeriodInfo:
        """Evaluate the automatic checklist items against the ledger."""
        period = self._require(period_id)
        now = self._clock.now()

        for item in period.checklist_items:
            if item.item_key == ALL_POSTED:
                drafts = self._draft_entry_numbers(period)
                passed = not drafts
                data = {"draft_count": len(drafts), "draft_entries": drafts[:50]}
            elif item.item_key == JOURNAL_BALANCE:
                unbalanced = self._unbalanced_entry_numbers(period)
                passed = not unbalanced
                data = {"unbalanced_count": len(unbalanced), "unbalanced_entries": unbalanced[:50]}
            else:
                continue

            data["checked_at"] = now.isoformat()
            item.validation_data = data
            item.is_completed = passed
            item.completed_by_id = actor_id if passed else None
            item.completed_at = now if passed else None
            item.updated_by_id = actor_id

        self.session.flush()
        logger.info(
            "period_checklist_refreshed",
            extra={"period_code": period.period_code, "actor_id": str(actor_id)},
        )
        return period_to_dto(period)

    def complete_checklist_item(
        self,
        period_id: UUID,
        item_key: str,
        actor_id: UUID,
        notes: str | None = None,
        validation_data: dict | None = None,
    ) -> ClosingPeriodInfo:
        """Attest a manual checklist item (bank reconciliation, cash opname ...)."""
        period, item = self._checklist_item_for_update(period_id, item_key)
        item.is_completed = True
        item.completed_by_id = actor_id
        item.completed_at = self._clock.now()
        item.notes = notes
        if validation_data is not None:
            item.validation_data = validation_data
        item.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "checklist_item_completed",
            extra={"period_code": period.period_code, "item_key": item_key, "actor_id": str(actor_id)},
        )
        return period_to_dto(period)

    def reset_checklist_item(self, period_id: UUID, item_key: str, actor_id: UUID) -> ClosingPeriodInfo:
        period, item = self._checklist_item_for_update(period_id, item_key)
        item.is_completed = False
        item.completed_by_id = None
        item.completed_at = None
        item.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "checklist_item_reset",
            extra={"period_code": period.period_code, "item_key": item_key, "actor_id": str(actor_id)},
        )
        return period_to_dto(period)

    # =========================================================================
    # Cutoff reminders
    # =========================================================================

    def periods_nearing_cutoff(self, as_of: date | None = None) -> list[ClosingPeriodInfo]:
        """Open periods whose cutoff falls within the warning window."""
        as_of = as_of or self._clock.today()
        horizon = as_of + timedelta(days=self._settings.warning_days_before_cutoff)
        periods = self.session.execute(
            select(ClosingPeriod)
            .where(
                ClosingPeriod.status == PeriodStatus.OPEN,
                ClosingPeriod.cutoff_date >= as_of,
                ClosingPeriod.cutoff_date <= horizon,
            )
            .order_by(ClosingPeriod.cutoff_date)
        ).scalars().all()
        return [period_to_dto(p) for p in periods]

    def send_cutoff_reminders(self, as_of: date | None = None) -> list[ClosingPeriodInfo]:
        as_of = as_of or self._clock.today()
        periods = self.periods_nearing_cutoff(as_of)
        for period in periods:
            self._notifier.notify(
                CUTOFF_APPROACHING,
                {
                    "period_code": period.period_code,
                    "cutoff_date": period.cutoff_date.isoformat(),
                    "days_remaining": (period.cutoff_date - as_of).days,
                },
            )
        logger.info(
            "cutoff_reminders_sent",
            extra={"as_of": str(as_of), "period_count": len(periods)},
        )
        return periods

    # =========================================================================
    # Internals
    # =========================================================================

    def _template(self, template_code: str) -> PeriodTemplateDef:
        template = self._settings.template(template_code)
        if template is None:
            raise PeriodTemplateNotFoundError(template_code)
        return template

    def _checklist_for(self, template: PeriodTemplateDef | None) -> list[tuple[str, str, bool]]:
        items: dict[str, tuple[str, bool]] = {}
        if template is not None:
            for item in template.checklist:
                items[item.item_key] = (item.label, item.is_required)
        for key in self._settings.required_validation_items():
            label, _ = items.get(key, (CHECKLIST_LABELS.get(key, key), True))
            items[key] = (label, True)
        return [(key, label, required) for key, (label, required) in items.items()]

    def _derive_schedule(
        self,
        template: PeriodTemplateDef | None,
        period_end: date,
        cutoff_date: date | None,
        hard_close_date: date | None,
    ) -> tuple[date, date | None]:
        """Fill in whichever of cutoff / hard close was not given explicitly."""
        cutoff_days = template.cutoff_days if template else self._settings.default_cutoff_days
        hard_days = template.hard_close_days if template else self._settings.default_hard_close_days
        if cutoff_date is None:
            cutoff_date, _ = close_schedule(period_end, cutoff_days, None)
        if hard_close_date is None and self._settings.hard_close_enabled and hard_days is not None:
            # Hard close follows the (possibly explicit) cutoff
            hard_close_date = cutoff_date + timedelta(days=hard_days)
        return cutoff_date, hard_close_date

    def _validate_dates(
        self,
        code: str,
        start: date,
        end: date,
        cutoff: date,
        hard_close: date | None,
    ) -> None:
        if start > end:
            raise InvalidPeriodDatesError(code, f"period_start {start} is after period_end {end}")
        if cutoff < end:
            raise InvalidPeriodDatesError(code, f"cutoff_date {cutoff} is before period_end {end}")
        if hard_close is not None and hard_close < cutoff:
            raise InvalidPeriodDatesError(
                code, f"hard_close_date {hard_close} is before cutoff_date {cutoff}"
            )

    def _validate_no_overlap(
        self,
        code: str,
        period_type: PeriodType,
        start: date,
        end: date,
        exclude_id: UUID | None = None,
    ) -> None:
        # Two ranges overlap if: start1 <= end2 AND start2 <= end1
        stmt = select(ClosingPeriod).where(
            ClosingPeriod.period_type == period_type,
            ClosingPeriod.period_start <= end,
            ClosingPeriod.period_end >= start,
        )
        if exclude_id is not None:
            stmt = stmt.where(ClosingPeriod.id != exclude_id)
        overlapping = self.session.execute(stmt.limit(1)).scalar_one_or_none()
        if overlapping is not None:
            raise PeriodOverlapError(
                new_period_code=code,
                existing_period_code=overlapping.period_code,
                overlap_start=str(max(start, overlapping.period_start)),
                overlap_end=str(min(end, overlapping.period_end)),
            )

    def _get_by_code(self, period_code: str) -> ClosingPeriod | None:
        return self.session.execute(
            select(ClosingPeriod).where(ClosingPeriod.period_code == period_code)
        ).scalar_one_or_none()

    def _require(self, period_id: UUID) -> ClosingPeriod:
        period = self.session.get(ClosingPeriod, period_id)
        if period is None:
            raise PeriodNotFoundError(str(period_id))
        return period

    def _covering(self, day: date) -> list[ClosingPeriod]:
        return list(
            self.session.execute(
                select(ClosingPeriod).where(
                    ClosingPeriod.period_start <= day,
                    ClosingPeriod.period_end >= day,
                )
            ).scalars().all()
        )

    @staticmethod
    def _most_restrictive(periods: list[ClosingPeriod]) -> ClosingPeriod:
        return max(
            periods,
            key=lambda p: (PERIOD_STATUS_RANK[PeriodStatus(p.status)], p.period_end - p.period_start),
        )

    def _expect_status(self, period: ClosingPeriod, expected: PeriodStatus) -> None:
        if period.status != expected:
            logger.warning(
                "period_state_mismatch",
                extra={
                    "period_code": period.period_code,
                    "expected": expected.value,
                    "actual": str(period.status),
                },
            )
            raise PeriodStateError(period.period_code, expected.value, PeriodStatus(period.status).value)

    def _checklist_item_for_update(
        self, period_id: UUID, item_key: str
    ) -> tuple[ClosingPeriod, PeriodChecklistItem]:
        period = self._lock_row(period_id)
        self._expect_status(period, PeriodStatus.OPEN)
        item = period.checklist_item(item_key)
        if item is None:
            raise ChecklistItemNotFoundError(period.period_code, item_key)
        return period, item

    def _soft_close_violations(self, period: ClosingPeriod, actor: Actor) -> list[CloseViolation]:
        violations: list[CloseViolation] = []
        today = self._clock.today()

        if not self._settings.is_active:
            violations.append(
                CloseViolation(MODULE_DISABLED, "Closing module is disabled")
            )
        if period.status != PeriodStatus.OPEN:
            violations.append(
                CloseViolation(
                    INVALID_STATUS,
                    f"Period is {PeriodStatus(period.status).value}, expected open",
                )
            )
        if today < period.cutoff_date and not actor.has(Capability.OVERRIDE_CUTOFF):
            violations.append(
                CloseViolation(
                    BEFORE_CUTOFF,
                    f"Cutoff date {period.cutoff_date} has not been reached",
                    details={"cutoff_date": period.cutoff_date.isoformat(), "today": today.isoformat()},
                )
            )

        required_auto = {
            item.item_key
            for item in period.checklist_items
            if item.is_required and item.item_key in AUTO_CHECKLIST_ITEMS
        }
        if self._settings.require_all_posted or ALL_POSTED in required_auto:
            drafts = self._draft_entry_numbers(period)
            if drafts:
                violations.append(
                    CloseViolation(
                        UNPOSTED_JOURNALS,
                        f"{len(drafts)} journal entries in the period are not posted",
                        item_key=ALL_POSTED,
                        details={"entries": drafts[:50]},
                    )
                )
        if self._settings.require_all_balanced or JOURNAL_BALANCE in required_auto:
            unbalanced = self._unbalanced_entry_numbers(period)
            if unbalanced:
                violations.append(
                    CloseViolation(
                        UNBALANCED_JOURNALS,
                        f"{len(unbalanced)} posted journal entries are unbalanced",
                        item_key=JOURNAL_BALANCE,
                        details={"entries": unbalanced[:50]},
                    )
                )

        for item in period.checklist_items:
            if item.item_key in AUTO_CHECKLIST_ITEMS:
                continue
            if item.is_required and not item.is_completed:
                violations.append(
                    CloseViolation(
                        CHECKLIST_INCOMPLETE,
                        f"Checklist item '{item.label}' is not complete",
                        item_key=item.item_key,
                    )
                )
        return violations

    def _hard_close_violations(self, period: ClosingPeriod, actor: Actor) -> list[CloseViolation]:
        violations: list[CloseViolation] = []
        today = self._clock.today()

        if not self._settings.is_active:
            violations.append(CloseViolation(MODULE_DISABLED, "Closing module is disabled"))
        if not self._settings.hard_close_enabled:
            violations.append(
                CloseViolation(
                    HARD_CLOSE_DISABLED,
                    f"Closing mode {self._settings.closing_mode.value} does not allow hard close",
                )
            )
        if period.status != PeriodStatus.SOFT_CLOSE:
            violations.append(
                CloseViolation(
                    INVALID_STATUS,
                    f"Period is {PeriodStatus(period.status).value}, expected soft_close",
                )
            )
        if not actor.has(Capability.OVERRIDE_CUTOFF):
            if period.hard_close_date is None:
                violations.append(
                    CloseViolation(
                        BEFORE_HARD_CLOSE_DATE,
                        "Period has no hard close date; an override is required",
                    )
                )
            elif today < period.hard_close_date:
                violations.append(
                    CloseViolation(
                        BEFORE_HARD_CLOSE_DATE,
                        f"Hard close date {period.hard_close_date} has not been reached",
                        details={
                            "hard_close_date": period.hard_close_date.isoformat(),
                            "today": today.isoformat(),
                        },
                    )
                )

        pending = self.session.execute(
            select(func.count(JournalRevisionLog.id)).where(
                JournalRevisionLog.period_id == period.id,
                JournalRevisionLog.status == RevisionStatus.PENDING,
            )
        ).scalar_one()
        if pending:
            violations.append(
                CloseViolation(
                    PENDING_REVISIONS,
                    f"{pending} revision requests are still pending",
                    details={"pending_count": pending},
                )
            )

        approval_violation = self._close_approval_violation(period)
        if approval_violation is not None:
            violations.append(approval_violation)
        return violations

    def _close_approval_violation(self, period: ClosingPeriod) -> CloseViolation | None:
        """Approvals decided before the last reopen do not count."""
        if self._approvals is None:
            return None
        entity_type = RecordKind.CLOSING_PERIOD.value
        if self._approvals.evaluate(entity_type, CLOSE_APPROVAL_TYPE, None) is None:
            return None

        ref = RecordRef(RecordKind.CLOSING_PERIOD, period.id)
        pending = self._approvals.open_for(ref, CLOSE_APPROVAL_TYPE)
        if pending is not None:
            return CloseViolation(
                CLOSE_APPROVAL_PENDING,
                f"Close approval is waiting at level {pending.level} of {pending.required_levels}",
                details={"approval_id": str(pending.id), "approval_level": pending.level},
            )

        decided = self._approvals.decided_for(ref, CLOSE_APPROVAL_TYPE, since=period.reopened_at)
        if any(a.is_approved for a in decided):
            return None
        if decided:
            rejected = decided[-1]
            return CloseViolation(
                CLOSE_APPROVAL_REJECTED,
                f"Close approval was rejected: {rejected.notes}",
                details={"approval_id": str(rejected.id)},
            )
        return CloseViolation(CLOSE_APPROVAL_MISSING, "Close approval has not been requested")

    def _draft_entry_numbers(self, period: ClosingPeriod) -> list[str]:
        return list(
            self.session.execute(
                select(JournalEntry.entry_number)
                .where(
                    JournalEntry.status == JournalEntryStatus.DRAFT,
                    JournalEntry.transaction_date >= period.period_start,
                    JournalEntry.transaction_date <= period.period_end,
                )
                .order_by(JournalEntry.entry_number)
            ).scalars().all()
        )

    def _unbalanced_entry_numbers(self, period: ClosingPeriod) -> list[str]:
        """Posted or reversed entries whose lines, or stored totals, disagree."""
        rows = self.session.execute(
            select(
                JournalEntry.entry_number,
                JournalEntry.total_debit,
                JournalEntry.total_credit,
                func.coalesce(func.sum(JournalLine.debit), 0),
                func.coalesce(func.sum(JournalLine.credit), 0),
            )
            .outerjoin(JournalLine, JournalLine.journal_entry_id == JournalEntry.id)
            .where(
                JournalEntry.status.in_([JournalEntryStatus.POSTED, JournalEntryStatus.REVERSED]),
                JournalEntry.transaction_date >= period.period_start,
                JournalEntry.transaction_date <= period.period_end,
            )
            .group_by(JournalEntry.id, JournalEntry.entry_number, JournalEntry.total_debit, JournalEntry.total_credit)
            .order_by(JournalEntry.entry_number)
        ).all()
        return [
            number
            for number, total_debit, total_credit, line_debit, line_credit in rows
            if total_debit != total_credit or line_debit != line_credit
        ]

    def _flush_transition(self, period: ClosingPeriod) -> None:
        try:
            self.session.flush()
        except StaleDataError as exc:
            logger.warning(
                "period_transition_conflict",
                extra={"period_code": period.period_code},
            )
            raise OptimisticLockError("ClosingPeriod", str(period.id)) from exc

    def _transitioned(
        self,
        period: ClosingPeriod,
        previous: PeriodStatus,
        actor: Actor,
        event_name: str,
        reason: str | None = None,
    ) -> None:
        new_status = PeriodStatus(period.status)
        logger.info(
            event_name,
            extra={
                "period_code": period.period_code,
                "from_status": previous.value,
                "to_status": new_status.value,
                "actor_id": str(actor.id),
                "reason": reason,
            },
        )
        self._notifier.notify(
            PERIOD_TRANSITIONED,
            {
                "period_id": str(period.id),
                "period_code": period.period_code,
                "from_status": previous.value,
                "to_status": new_status.value,
                "actor_id": str(actor.id),
                "reason": reason,
            },
        )

    def _log_blocked(
        self,
        period: ClosingPeriod,
        target: PeriodStatus,
        violations: list[CloseViolation],
        actor: Actor,
    ) -> None:
        logger.warning(
            "period_close_blocked",
            extra={
                "period_code": period.period_code,
                "target_status": target.value,
                "violation_codes": [v.code for v in violations],
                "actor_id": str(actor.id),
            },
        )

    def _log_admission(self, result: AdmissionResult) -> None:
        if result.decision == AdmissionDecision.ALLOWED:
            logger.debug(
                "posting_admission",
                extra={
                    "transaction_date": str(result.transaction_date),
                    "decision": result.decision.value,
                    "period_code": result.period_code,
                },
            )
            return
        logger.warning(
            "posting_admission_restricted",
            extra={
                "transaction_date": str(result.transaction_date),
                "decision": result.decision.value,
                "period_code": result.period_code,
                "period_status": result.period_status.value if result.period_status else None,
                "reason": result.reason,
            },
        )
