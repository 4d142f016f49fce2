"""
ledger_kernel.services.approval_service -- Generic multi-level approvals.

Responsibility:
    Seeds approval rules from configuration, selects the governing rule for
    a request (delegating to the pure ``ledger_engines.approval``), creates
    approval requests, and records approve / reject / escalate decisions.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/ and engines.
    Used by RevisionService (material revisions) and by the cash adapter
    (outgoing transactions).

Invariants enforced:
    - At most one open (pending or escalated) approval per approvable
      record and approval type; a second submit returns the existing one.
    - Approving below ``required_levels`` advances the level; approving at
      the last level or rejecting at any level is terminal.
    - Only actors with the APPROVE capability and an eligible role for the
      current level may decide.  Escalated approvals belong to the
      ``escalated_to`` role.
    - Escalation never approves.
    - One decision record per (approval, level), append-only.

Failure modes:
    - ApprovalNotFoundError if approval_id is unknown.
    - AlreadyDecidedError on a terminal approval.
    - InsufficientCapabilityError / ApproverNotAuthorizedError on role gates.
    - EscalationNotDueError before ``expires_at`` or on an already
      escalated approval.
    - ReasonTooShortError on a blank rejection reason.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_config.schema import ApprovalRuleDef, ClosingSettings
from ledger_engines.approval import actor_may_decide, select_matching_rule
from ledger_kernel.domain.actor import Actor, Capability, require_capability
from ledger_kernel.domain.approval import ApprovalDecisionInfo, ApprovalInfo, ApprovalRuleInfo
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.values import ApprovalStatus, RecordRef
from ledger_kernel.exceptions import (
    AlreadyDecidedError,
    ApprovalNotFoundError,
    ApproverNotAuthorizedError,
    EscalationNotDueError,
    ReasonTooShortError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.approval import Approval, ApprovalDecisionRecord, ApprovalRule
from ledger_kernel.services.notifications import (
    APPROVAL_DECIDED,
    APPROVAL_REQUESTED,
    LoggingNotifier,
    NotificationHook,
)

logger = get_logger("services.approval")

DECISION_APPROVE = "approve"
DECISION_REJECT = "reject"

_OPEN_STATUSES = (ApprovalStatus.PENDING, ApprovalStatus.ESCALATED)


class ApprovalService:
    """Manages approval rule seeding and the approval request lifecycle."""

    def __init__(
        self,
        session: Session,
        settings: ClosingSettings,
        clock: Clock | None = None,
        notifier: NotificationHook | None = None,
    ) -> None:
        self._session = session
        self._settings = settings
        self._clock = clock or SystemClock()
        self._notifier = notifier or LoggingNotifier()

    # =========================================================================
    # Rules
    # =========================================================================

    def install_rules(
        self,
        actor_id: UUID,
        rules: Iterable[ApprovalRuleDef] | None = None,
    ) -> list[ApprovalRuleInfo]:
        """
        Create or update rules by name.  Defaults to the configured rules.

        Rules absent from ``rules`` are left untouched; deactivate them via
        ``is_active: false`` in configuration.
        """
        rules = tuple(rules) if rules is not None else self._settings.approval_rules
        installed: list[ApprovalRuleInfo] = []
        created = updated = 0

        for rule_def in rules:
            model = self._session.execute(
                select(ApprovalRule).where(ApprovalRule.name == rule_def.name)
            ).scalar_one_or_none()
            if model is None:
                model = ApprovalRule(name=rule_def.name, created_by_id=actor_id)
                self._session.add(model)
                created += 1
            else:
                model.updated_by_id = actor_id
                updated += 1

            model.entity_type = rule_def.entity_type
            model.approval_type = rule_def.approval_type
            model.is_active = rule_def.is_active
            model.min_amount = rule_def.min_amount
            model.max_amount = rule_def.max_amount
            model.approval_levels = rule_def.approval_levels
            model.approver_roles = list(rule_def.approver_roles)
            model.escalation_hours = rule_def.escalation_hours
            model.conditions = dict(rule_def.conditions) or None
            model.description = rule_def.description
            self._session.flush()
            installed.append(model.to_dto())

        logger.info(
            "approval_rules_installed",
            extra={"rules_created": created, "rules_updated": updated, "actor_id": str(actor_id)},
        )
        return installed

    def active_rules(self, entity_type: str, approval_type: str) -> list[ApprovalRuleInfo]:
        models = self._session.execute(
            select(ApprovalRule)
            .where(
                ApprovalRule.entity_type == entity_type,
                ApprovalRule.approval_type == approval_type,
                ApprovalRule.is_active.is_(True),
            )
            .order_by(ApprovalRule.name)
        ).scalars().all()
        return [m.to_dto() for m in models]

    def evaluate(
        self,
        entity_type: str,
        approval_type: str,
        amount: Decimal | None,
        conditions: Mapping[str, Any] | None = None,
    ) -> ApprovalRuleInfo | None:
        """The governing rule for the request, or None if no approval is needed."""
        rule = select_matching_rule(
            self.active_rules(entity_type, approval_type),
            entity_type=entity_type,
            approval_type=approval_type,
            amount=Decimal(amount) if amount is not None else None,
            context=conditions,
        )
        logger.debug(
            "approval_rule_evaluated",
            extra={
                "entity_type": entity_type,
                "approval_type": approval_type,
                "amount": str(amount) if amount is not None else None,
                "rule_name": rule.name if rule else None,
            },
        )
        return rule

    # =========================================================================
    # Requests
    # =========================================================================

    def submit(
        self,
        approvable: RecordRef,
        approval_type: str,
        amount: Decimal | None,
        requester_id: UUID,
        conditions: Mapping[str, Any] | None = None,
        entity_type: str | None = None,
        mandatory: bool = False,
    ) -> ApprovalInfo | None:
        """
        Create the level-1 approval for ``approvable``.

        Returns None when no rule matches and ``mandatory`` is False.  A
        mandatory request without a rule becomes a single-level approval any
        APPROVE holder may decide.
        """
        entity_type = entity_type or approvable.kind.value

        existing = self._open_model_for(approvable, approval_type)
        if existing is not None:
            logger.info(
                "approval_already_open",
                extra={"approval_id": str(existing.id), "approvable": str(approvable)},
            )
            return existing.to_dto()

        rule = self.evaluate(entity_type, approval_type, amount, conditions)
        if rule is None and not mandatory:
            return None

        now = self._clock.now()
        approval = Approval(
            approvable_kind=approvable.kind,
            approvable_id=approvable.record_id,
            entity_type=entity_type,
            approval_type=approval_type,
            status=ApprovalStatus.PENDING,
            amount=Decimal(amount) if amount is not None else None,
            level=1,
            required_levels=rule.approval_levels if rule else 1,
            required_role=rule.role_for_level(1) if rule else None,
            rule_id=rule.id if rule else None,
            requested_by_id=requester_id,
            expires_at=self._expiry(rule, now),
            created_by_id=requester_id,
        )
        self._session.add(approval)
        self._session.flush()

        logger.info(
            "approval_submitted",
            extra={
                "approval_id": str(approval.id),
                "approvable": str(approvable),
                "approval_type": approval_type,
                "amount": str(amount) if amount is not None else None,
                "rule_name": rule.name if rule else None,
                "required_levels": approval.required_levels,
            },
        )
        self._notifier.notify(
            APPROVAL_REQUESTED,
            {
                "approval_id": str(approval.id),
                "approvable": str(approvable),
                "approval_type": approval_type,
                "amount": str(amount) if amount is not None else None,
                "required_role": approval.required_role,
            },
        )
        return approval.to_dto()

    def approve(self, approval_id: UUID, approver: Actor, notes: str | None = None) -> ApprovalInfo:
        """Approve the current level; terminal at the last level."""
        approval = self._load_for_decision(approval_id, approver, "approve")
        now = self._clock.now()
        decided_level = approval.level
        self._record_decision(approval, approver, DECISION_APPROVE, notes, now)

        if approval.level < approval.required_levels:
            approval.level += 1
            approval.status = ApprovalStatus.PENDING
            approval.escalated_to = None
            rule = self._rule_info(approval)
            approval.required_role = rule.role_for_level(approval.level) if rule else None
            approval.expires_at = self._expiry(rule, now)
        else:
            approval.status = ApprovalStatus.APPROVED
            approval.approver_id = approver.id
            approval.decided_at = now
            approval.notes = notes
        approval.updated_by_id = approver.id
        self._session.flush()

        self._decided(approval, approver, DECISION_APPROVE, decided_level)
        return approval.to_dto()

    def reject(self, approval_id: UUID, approver: Actor, reason: str) -> ApprovalInfo:
        """Reject at the current level.  Always terminal."""
        reason = (reason or "").strip()
        if not reason:
            raise ReasonTooShortError("rejection reason", 1, 0)

        approval = self._load_for_decision(approval_id, approver, "reject")
        now = self._clock.now()
        decided_level = approval.level
        self._record_decision(approval, approver, DECISION_REJECT, reason, now)

        approval.status = ApprovalStatus.REJECTED
        approval.approver_id = approver.id
        approval.decided_at = now
        approval.notes = reason
        approval.updated_by_id = approver.id
        self._session.flush()

        self._decided(approval, approver, DECISION_REJECT, decided_level)
        return approval.to_dto()

    def escalate(self, approval_id: UUID, escalated_to: str | None = None) -> ApprovalInfo:
        """
        Reassign an overdue pending approval to a more senior role.

        The target is ``escalated_to``, else the role after the current
        level's role in the rule, else ``default_escalation_role``.
        """
        approval = self._load_for_update(approval_id)
        status = ApprovalStatus(approval.status)
        if not status.is_open:
            raise AlreadyDecidedError("Approval", str(approval.id), status.value)

        now = self._clock.now()
        if status == ApprovalStatus.ESCALATED or approval.expires_at is None or now < approval.expires_at:
            raise EscalationNotDueError(
                str(approval.id),
                approval.expires_at.isoformat() if approval.expires_at else None,
            )

        target = escalated_to or self._next_role(approval) or self._settings.default_escalation_role
        approval.status = ApprovalStatus.ESCALATED
        approval.escalated_to = target
        approval.escalated_at = now
        self._session.flush()

        logger.warning(
            "approval_escalated",
            extra={
                "approval_id": str(approval.id),
                "approvable": str(approval.approvable),
                "approval_level": approval.level,
                "escalated_to": target,
            },
        )
        self._notifier.notify(
            APPROVAL_REQUESTED,
            {
                "approval_id": str(approval.id),
                "approvable": str(approval.approvable),
                "approval_type": approval.approval_type,
                "required_role": target,
                "escalated": True,
            },
        )
        return approval.to_dto()

    def escalate_overdue(self, as_of: datetime | None = None) -> list[ApprovalInfo]:
        """Escalate every pending approval past its expiry."""
        as_of = as_of or self._clock.now()
        overdue_ids = self._session.execute(
            select(Approval.id)
            .where(
                Approval.status == ApprovalStatus.PENDING,
                Approval.expires_at.is_not(None),
                Approval.expires_at <= as_of,
            )
            .order_by(Approval.expires_at)
        ).scalars().all()

        escalated = [self.escalate(approval_id) for approval_id in overdue_ids]
        logger.info("overdue_approvals_escalated", extra={"count": len(escalated)})
        return escalated

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, approval_id: UUID) -> ApprovalInfo:
        return self._load(approval_id).to_dto()

    def open_for(self, approvable: RecordRef, approval_type: str) -> ApprovalInfo | None:
        model = self._open_model_for(approvable, approval_type)
        return model.to_dto() if model is not None else None

    def latest_for(self, approvable: RecordRef, approval_type: str) -> ApprovalInfo | None:
        model = self._session.execute(
            select(Approval)
            .where(
                Approval.approvable_kind == approvable.kind,
                Approval.approvable_id == approvable.record_id,
                Approval.approval_type == approval_type,
            )
            .order_by(Approval.created_at.desc())
            .limit(1)
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def decided_for(
        self,
        approvable: RecordRef,
        approval_type: str,
        since: datetime | None = None,
    ) -> list[ApprovalInfo]:
        """Terminal approvals for ``approvable`` decided after ``since``, oldest first."""
        stmt = select(Approval).where(
            Approval.approvable_kind == approvable.kind,
            Approval.approvable_id == approvable.record_id,
            Approval.approval_type == approval_type,
            Approval.status.in_((ApprovalStatus.APPROVED, ApprovalStatus.REJECTED)),
        )
        if since is not None:
            stmt = stmt.where(Approval.decided_at > since)
        models = self._session.execute(stmt.order_by(Approval.decided_at)).unique().scalars().all()
        return [m.to_dto() for m in models]

    def decisions(self, approval_id: UUID) -> list[ApprovalDecisionInfo]:
        return [d.to_dto() for d in self._load(approval_id).decisions]

    # =========================================================================
    # Internals
    # =========================================================================

    def _load(self, approval_id: UUID) -> Approval:
        model = self._session.get(Approval, approval_id)
        if model is None:
            raise ApprovalNotFoundError(str(approval_id))
        return model

    def _load_for_update(self, approval_id: UUID) -> Approval:
        model = self._session.execute(
            select(Approval)
            .where(Approval.id == approval_id)
            .with_for_update(of=Approval)
            .execution_options(populate_existing=True)
        ).unique().scalar_one_or_none()
        if model is None:
            raise ApprovalNotFoundError(str(approval_id))
        return model

    def _load_for_decision(self, approval_id: UUID, approver: Actor, operation: str) -> Approval:
        approval = self._load_for_update(approval_id)
        status = ApprovalStatus(approval.status)
        if not status.is_open:
            raise AlreadyDecidedError("Approval", str(approval.id), status.value)

        require_capability(approver, Capability.APPROVE, f"{operation} an approval")
        rule = self._rule_info(approval)
        if not actor_may_decide(approver.roles, rule, approval.level, approval.escalated_to):
            required = approval.escalated_to or approval.required_role or ""
            logger.warning(
                "approver_not_authorized",
                extra={
                    "approval_id": str(approval.id),
                    "actor_id": str(approver.id),
                    "required_role": required,
                    "approval_level": approval.level,
                },
            )
            raise ApproverNotAuthorizedError(str(approval.id), str(approver.id), required)
        return approval

    def _open_model_for(self, approvable: RecordRef, approval_type: str) -> Approval | None:
        return self._session.execute(
            select(Approval)
            .where(
                Approval.approvable_kind == approvable.kind,
                Approval.approvable_id == approvable.record_id,
                Approval.approval_type == approval_type,
                Approval.status.in_(_OPEN_STATUSES),
            )
            .limit(1)
        ).unique().scalar_one_or_none()

    @staticmethod
    def _rule_info(approval: Approval) -> ApprovalRuleInfo | None:
        return approval.rule.to_dto() if approval.rule is not None else None

    def _next_role(self, approval: Approval) -> str | None:
        rule = self._rule_info(approval)
        if rule is None:
            return None
        # approver_roles[level] is the role after the current level's role
        if approval.level < len(rule.approver_roles):
            return rule.approver_roles[approval.level]
        return None

    @staticmethod
    def _expiry(rule: ApprovalRuleInfo | None, now: datetime) -> datetime | None:
        if rule is None or rule.escalation_hours is None:
            return None
        return now + timedelta(hours=rule.escalation_hours)

    def _record_decision(
        self,
        approval: Approval,
        approver: Actor,
        decision: str,
        notes: str | None,
        now: datetime,
    ) -> None:
        approval.decisions.append(
            ApprovalDecisionRecord(
                level=approval.level,
                actor_id=approver.id,
                decision=decision,
                notes=notes,
                decided_at=now,
            )
        )

    def _decided(self, approval: Approval, approver: Actor, decision: str, level: int) -> None:
        status = ApprovalStatus(approval.status)
        logger.info(
            "approval_decision_recorded",
            extra={
                "approval_id": str(approval.id),
                "actor_id": str(approver.id),
                "decision": decision,
                "decided_level": level,
                "new_status": status.value,
            },
        )
        self._notifier.notify(
            APPROVAL_DECIDED,
            {
                "approval_id": str(approval.id),
                "approvable": str(approval.approvable),
                "decision": decision,
                "approval_level": level,
                "status": status.value,
                "actor_id": str(approver.id),
            },
        )
