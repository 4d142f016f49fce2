"""
Module: ledger_kernel.models.approval
Responsibility: ORM persistence for approval rules, approval requests and
    the append-only decisions taken on them.

Architecture position: Kernel > Models.  May import from db/base.py,
    domain/ and exceptions only.

Invariants enforced:
    - Approval status is one of pending / escalated / approved / rejected
      (CHECK constraint).  Terminal approvals are immutable
      (db/immutability.py).
    - ``level`` never exceeds ``required_levels`` (CHECK constraint).
    - Decisions are append-only: no UPDATE, no DELETE (listeners below).
    - (approvable_kind, approvable_id) is a tagged reference, not a foreign
      key.

Failure modes:
    - IntegrityError on CHECK violation.
    - ImmutabilityViolationError on decision UPDATE/DELETE or on mutation of
      a terminal approval.

Audit relevance:
    Approvals and their decisions form the governance trail for both
    revision approval and outgoing-payment approval.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import Base, TrackedBase, UTCDateTime, UUIDString
from ledger_kernel.domain.approval import (
    ApprovalDecisionInfo,
    ApprovalInfo,
    ApprovalRuleInfo,
)
from ledger_kernel.domain.values import ApprovalStatus, RecordKind, RecordRef
from ledger_kernel.exceptions import ImmutabilityViolationError


def _decimal_or_none(value: Any) -> Decimal | None:
    return Decimal(str(value)) if value is not None else None


class ApprovalRule(TrackedBase):
    """
    Threshold rule that decides whether, and by whom, something is approved.

    Contract:
        Keyed by (entity_type, approval_type).  The amount band is inclusive
        at both ends; NULL bounds are open.  ``approver_roles`` lists the
        role required at each level, in order.  ``conditions`` narrows the
        rule by context (e.g. ``{"transaction_type": ["pengeluaran"]}``).
    """

    __tablename__ = "approval_rules"

    __table_args__ = (
        UniqueConstraint("name", name="uq_approval_rule_name"),
        Index("idx_approval_rule_key", "entity_type", "approval_type", "is_active"),
        CheckConstraint("approval_levels >= 1", name="ck_approval_rule_levels"),
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    approval_type: Mapped[str] = mapped_column(String(50), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    min_amount: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    max_amount: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    approval_levels: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    approver_roles: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    escalation_hours: Mapped[int | None] = mapped_column(Integer, nullable=True)
    conditions: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<ApprovalRule {self.name} {self.entity_type}/{self.approval_type}>"

    def to_dto(self) -> ApprovalRuleInfo:
        return ApprovalRuleInfo(
            id=self.id,
            name=self.name,
            entity_type=self.entity_type,
            approval_type=self.approval_type,
            min_amount=_decimal_or_none(self.min_amount),
            max_amount=_decimal_or_none(self.max_amount),
            approval_levels=self.approval_levels,
            approver_roles=tuple(self.approver_roles or ()),
            escalation_hours=self.escalation_hours,
            conditions=dict(self.conditions or {}),
            is_active=self.is_active,
            description=self.description,
        )


class Approval(TrackedBase):
    """
    One approval request for an approvable record.

    Contract:
        ``level`` is the level currently awaiting a decision.  Approving
        below ``required_levels`` advances the level; approving at the last
        level, or rejecting at any level, is terminal.  Escalation changes
        status to ESCALATED and assigns ``escalated_to`` without approving.
    """

    __tablename__ = "approvals"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'escalated', 'approved', 'rejected')",
            name="ck_approval_valid_status",
        ),
        CheckConstraint("level >= 1 AND level <= required_levels", name="ck_approval_level"),
        Index("idx_approval_approvable", "approvable_kind", "approvable_id", "status"),
        Index("idx_approval_expiry", "status", "expires_at"),
    )

    approvable_kind: Mapped[RecordKind] = mapped_column(String(50), nullable=False)
    approvable_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    approval_type: Mapped[str] = mapped_column(String(50), nullable=False)

    status: Mapped[ApprovalStatus] = mapped_column(
        String(20),
        nullable=False,
        default=ApprovalStatus.PENDING,
    )

    amount: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    required_levels: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    required_role: Mapped[str | None] = mapped_column(String(100), nullable=True)

    rule_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("approval_rules.id"),
        nullable=True,
    )

    requested_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    approver_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    escalated_to: Mapped[str | None] = mapped_column(String(100), nullable=True)
    escalated_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    rule: Mapped[ApprovalRule | None] = relationship(lazy="joined")

    decisions: Mapped[list["ApprovalDecisionRecord"]] = relationship(
        back_populates="approval",
        order_by="ApprovalDecisionRecord.decided_at",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<Approval {self.id} {self.approvable_kind}:{self.approvable_id} "
            f"level={self.level}/{self.required_levels} status={self.status}>"
        )

    @property
    def approvable(self) -> RecordRef:
        return RecordRef(RecordKind(self.approvable_kind), self.approvable_id)

    def to_dto(self) -> ApprovalInfo:
        return ApprovalInfo(
            id=self.id,
            approvable=self.approvable,
            entity_type=self.entity_type,
            approval_type=self.approval_type,
            status=ApprovalStatus(self.status),
            amount=_decimal_or_none(self.amount),
            level=self.level,
            required_levels=self.required_levels,
            required_role=self.required_role,
            requested_by_id=self.requested_by_id,
            rule_name=self.rule.name if self.rule is not None else None,
            approver_id=self.approver_id,
            decided_at=self.decided_at,
            expires_at=self.expires_at,
            escalated_to=self.escalated_to,
            escalated_at=self.escalated_at,
            notes=self.notes,
        )


class ApprovalDecisionRecord(Base):
    """Append-only record of one approve/reject action at one level."""

    __tablename__ = "approval_decisions"

    __table_args__ = (
        Index("idx_approval_decision_approval", "approval_id"),
        UniqueConstraint("approval_id", "level", name="uq_approval_decision_level"),
    )

    approval_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("approvals.id"),
        nullable=False,
    )
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    decision: Mapped[str] = mapped_column(String(20), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    decided_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    approval: Mapped[Approval] = relationship(back_populates="decisions")

    def __repr__(self) -> str:
        return (
            f"<ApprovalDecision approval={self.approval_id} "
            f"level={self.level} decision={self.decision}>"
        )

    def to_dto(self) -> ApprovalDecisionInfo:
        return ApprovalDecisionInfo(
            approval_id=self.approval_id,
            level=self.level,
            actor_id=self.actor_id,
            decision=self.decision,
            notes=self.notes,
            decided_at=self.decided_at,
        )


# =============================================================================
# ORM-level immutability for decisions (append-only)
# =============================================================================


@event.listens_for(ApprovalDecisionRecord, "before_update")
def prevent_decision_update(mapper, connection, target):
    """Prevent updates to approval decision records."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalDecision",
        entity_id=str(target.id),
        reason="Approval decisions are immutable -- cannot modify",
    )


@event.listens_for(ApprovalDecisionRecord, "before_delete")
def prevent_decision_delete(mapper, connection, target):
    """Prevent deletion of approval decision records."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalDecision",
        entity_id=str(target.id),
        reason="Approval decisions are immutable -- cannot delete",
    )
