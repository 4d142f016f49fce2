"""
Module: ledger_kernel.models.closing_period
Responsibility: ORM persistence for closing periods and their pre-close
    checklist items.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/values.py only.

Invariants enforced:
    - ``period_code`` is unique.
    - period_start <= period_end <= cutoff_date <= hard_close_date (CHECK
      constraints; hard_close_date may be NULL).
    - ``version`` is the SQLAlchemy version counter: an UPDATE issued from a
      stale read fails with StaleDataError, which ClosingPeriodService
      translates to OptimisticLockError.
    - Non-overlap per period_type is enforced by ClosingPeriodService at
      creation (a range predicate, not a unique key).
    - (period_id, item_key) is unique for checklist items.

Failure modes:
    - IntegrityError on duplicate period_code or CHECK violation.
    - StaleDataError on concurrent transition (translated by the service).
    - ImmutabilityViolationError on DELETE of a non-open period.

Audit relevance:
    Every transition stamps actor and timestamp columns; reopen also stores
    the mandatory reason.
"""

from datetime import date, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UTCDateTime, UUIDString
from ledger_kernel.domain.values import PeriodStatus, PeriodType


class ClosingPeriod(TrackedBase):
    """
    An accounting period with a closing lifecycle.

    Contract:
        Status moves OPEN -> SOFT_CLOSE -> HARD_CLOSE, with an explicit
        reopen edge back to OPEN.  ClosingPeriodService is the only writer
        of ``status``.
    """

    __tablename__ = "closing_periods"

    __table_args__ = (
        Index("idx_closing_period_range", "period_type", "period_start", "period_end"),
        Index("idx_closing_period_status", "status"),
        CheckConstraint("period_start <= period_end", name="ck_period_start_before_end"),
        CheckConstraint("period_end <= cutoff_date", name="ck_period_end_before_cutoff"),
        CheckConstraint(
            "hard_close_date IS NULL OR cutoff_date <= hard_close_date",
            name="ck_period_cutoff_before_hard_close",
        ),
    )

    period_code: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        unique=True,
    )

    period_type: Mapped[PeriodType] = mapped_column(
        String(20),
        nullable=False,
    )

    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)

    # Soft-close deadline
    cutoff_date: Mapped[date] = mapped_column(Date, nullable=False)

    hard_close_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    status: Mapped[PeriodStatus] = mapped_column(
        String(20),
        nullable=False,
        default=PeriodStatus.OPEN,
    )

    template_code: Mapped[str | None] = mapped_column(String(50), nullable=True)

    soft_closed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    soft_closed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    hard_closed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    hard_closed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    reopened_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    reopened_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    reopen_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    checklist_items: Mapped[list["PeriodChecklistItem"]] = relationship(
        back_populates="period",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="PeriodChecklistItem.sort_order",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<ClosingPeriod {self.period_code} status={self.status}>"

    def contains(self, day: date) -> bool:
        return self.period_start <= day <= self.period_end

    def is_past_cutoff(self, today: date) -> bool:
        return today > self.cutoff_date

    def checklist_item(self, item_key: str) -> "PeriodChecklistItem | None":
        for item in self.checklist_items:
            if item.item_key == item_key:
                return item
        return None


class PeriodChecklistItem(TrackedBase):
    """A pre-close task; required items gate OPEN -> SOFT_CLOSE."""

    __tablename__ = "period_checklist_items"

    __table_args__ = (
        UniqueConstraint("period_id", "item_key", name="uq_checklist_period_item"),
    )

    period_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("closing_periods.id"),
        nullable=False,
    )

    item_key: Mapped[str] = mapped_column(String(50), nullable=False)
    label: Mapped[str] = mapped_column(String(200), nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    completed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Evidence recorded by automatic checks (counts, offending entry numbers)
    validation_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    period: Mapped["ClosingPeriod"] = relationship(back_populates="checklist_items")

    def __repr__(self) -> str:
        return f"<PeriodChecklistItem {self.item_key} completed={self.is_completed}>"
