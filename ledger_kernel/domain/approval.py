"""
Approval domain types.

Responsibility:
    Frozen views of approval rules and approval requests.  The pure rule
    selection in ``ledger_engines.approval`` works on ``ApprovalRuleInfo``;
    ``ApprovalService`` converts ORM rows to these before calling it.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - Amount bands are inclusive at both ends; ``None`` means unbounded.
    - ``approver_roles[i]`` is the role required at level ``i + 1``; roles
      are ordered junior to senior, so a later role may decide an earlier
      level.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from ledger_kernel.domain.values import ApprovalStatus, RecordRef


@dataclass(frozen=True)
class ApprovalRuleInfo:
    name: str
    entity_type: str
    approval_type: str
    min_amount: Decimal | None = None
    max_amount: Decimal | None = None
    approval_levels: int = 1
    approver_roles: tuple[str, ...] = ()
    escalation_hours: int | None = None
    conditions: Mapping[str, Any] = field(default_factory=dict)
    is_active: bool = True
    description: str | None = None
    id: UUID | None = None

    def contains(self, amount: Decimal | None) -> bool:
        """Inclusive band check.  A missing amount only matches an open band."""
        if amount is None:
            return self.min_amount is None and self.max_amount is None
        if self.min_amount is not None and amount < self.min_amount:
            return False
        if self.max_amount is not None and amount > self.max_amount:
            return False
        return True

    @property
    def band_width(self) -> Decimal | None:
        """Width of the amount band; None when unbounded above."""
        if self.max_amount is None:
            return None
        return self.max_amount - (self.min_amount or Decimal("0"))

    def role_for_level(self, level: int) -> str | None:
        """Role required at ``level``; levels past the list reuse the last role."""
        if not self.approver_roles or level < 1:
            return None
        return self.approver_roles[min(level, len(self.approver_roles)) - 1]

    def eligible_roles(self, level: int) -> tuple[str, ...]:
        """The level's role and every more senior role listed after it."""
        if not self.approver_roles or level < 1:
            return ()
        return self.approver_roles[min(level, len(self.approver_roles)) - 1:]


@dataclass(frozen=True)
class ApprovalInfo:
    id: UUID
    approvable: RecordRef
    entity_type: str
    approval_type: str
    status: ApprovalStatus
    amount: Decimal | None
    level: int
    required_levels: int
    required_role: str | None
    requested_by_id: UUID
    rule_name: str | None = None
    approver_id: UUID | None = None
    decided_at: datetime | None = None
    expires_at: datetime | None = None
    escalated_to: str | None = None
    escalated_at: datetime | None = None
    notes: str | None = None

    @property
    def is_open(self) -> bool:
        return self.status.is_open

    @property
    def is_approved(self) -> bool:
        return self.status == ApprovalStatus.APPROVED

    @property
    def is_rejected(self) -> bool:
        return self.status == ApprovalStatus.REJECTED


@dataclass(frozen=True)
class ApprovalDecisionInfo:
    approval_id: UUID
    level: int
    actor_id: UUID
    decision: str
    notes: str | None
    decided_at: datetime
