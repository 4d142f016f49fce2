"""
Module: ledger_kernel.models.revision_log
Responsibility: ORM persistence for journal revision requests -- edits to
    records dated inside a soft- or hard-closed period.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/values.py only.

Invariants enforced:
    - Immutable once created except for the approval-status transition
      (status, decided_by_id, decided_at, decision_notes); immutable
      entirely once decided (db/immutability.py).
    - (record_kind, record_id) is a tagged reference resolved through the
      RevisionService applier registry, not a foreign key.

Failure modes:
    - ImmutabilityViolationError on any other UPDATE, or any DELETE.

Audit relevance:
    Rejected revisions stay as permanent records: what was attempted, by
    whom, why, and who refused it is reconstructable from these rows.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UTCDateTime, UUIDString
from ledger_kernel.domain.dtos import RevisionInfo
from ledger_kernel.domain.values import RecordKind, RecordRef, RevisionAction, RevisionStatus
from ledger_kernel.models.closing_period import ClosingPeriod


class JournalRevisionLog(TrackedBase):
    """A requested mutation of a record in a non-open period."""

    __tablename__ = "journal_revision_logs"

    __table_args__ = (
        Index("idx_revision_period_status", "period_id", "status"),
        Index("idx_revision_record", "record_kind", "record_id"),
        Index("idx_revision_status_revised_at", "status", "revised_at"),
    )

    period_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("closing_periods.id"),
        nullable=False,
    )

    record_kind: Mapped[RecordKind] = mapped_column(String(50), nullable=False)
    record_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    action: Mapped[RevisionAction] = mapped_column(String(10), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)

    old_snapshot: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    new_snapshot: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    impact_amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=Decimal("0"),
    )
    is_material: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    revised_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    revised_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    status: Mapped[RevisionStatus] = mapped_column(
        String(10),
        nullable=False,
        default=RevisionStatus.PENDING,
    )

    # Set at creation when the revision is routed through the approval engine
    approval_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    decided_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    decision_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    period: Mapped[ClosingPeriod] = relationship()

    def __repr__(self) -> str:
        return (
            f"<JournalRevisionLog {self.id} {self.action} "
            f"{self.record_kind}:{self.record_id} status={self.status}>"
        )

    @property
    def is_pending(self) -> bool:
        return self.status == RevisionStatus.PENDING

    @property
    def record(self) -> RecordRef:
        return RecordRef(RecordKind(self.record_kind), self.record_id)

    def to_dto(self) -> RevisionInfo:
        return RevisionInfo(
            id=self.id,
            period_id=self.period_id,
            record=self.record,
            action=RevisionAction(self.action),
            reason=self.reason,
            old_snapshot=self.old_snapshot,
            new_snapshot=self.new_snapshot,
            impact_amount=Decimal(str(self.impact_amount)),
            is_material=self.is_material,
            status=RevisionStatus(self.status),
            revised_by_id=self.revised_by_id,
            revised_at=self.revised_at,
            approval_id=self.approval_id,
            decided_by_id=self.decided_by_id,
            decided_at=self.decided_at,
            decision_notes=self.decision_notes,
            created_at=self.created_at,
        )
