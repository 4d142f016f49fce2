"""
Module: ledger_kernel.selectors.revision_selector
Responsibility: Read-only queries over revision requests: the approval
    queue for a period, the history of a record, and dashboard statistics.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Day, week (Monday start) and month windows are computed in UTC from
      the ``as_of`` date passed by the caller; the selector never reads the
      clock.
"""

from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_kernel.domain.dtos import RevisionInfo, RevisionStatistics
from ledger_kernel.domain.values import RecordRef, RevisionStatus
from ledger_kernel.models.revision_log import JournalRevisionLog
from ledger_kernel.selectors.base import BaseSelector

_DECIDED = (RevisionStatus.APPROVED, RevisionStatus.REJECTED)


def _start_of(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


class RevisionSelector(BaseSelector[JournalRevisionLog]):
    """Selector for revision queues and statistics."""

    def __init__(self, session: Session, high_value_threshold: Decimal = Decimal("10000000")):
        super().__init__(session)
        self._high_value_threshold = high_value_threshold

    def pending_for_period(self, period_id: UUID) -> list[RevisionInfo]:
        logs = self.session.execute(
            select(JournalRevisionLog)
            .where(
                JournalRevisionLog.period_id == period_id,
                JournalRevisionLog.status == RevisionStatus.PENDING,
            )
            .order_by(JournalRevisionLog.created_at)
        ).scalars()
        return [log.to_dto() for log in logs]

    def pending(self, material_only: bool = False) -> list[RevisionInfo]:
        query = select(JournalRevisionLog).where(JournalRevisionLog.status == RevisionStatus.PENDING)
        if material_only:
            query = query.where(JournalRevisionLog.is_material.is_(True))
        logs = self.session.execute(query.order_by(JournalRevisionLog.created_at)).scalars()
        return [log.to_dto() for log in logs]

    def history_for_record(self, record: RecordRef) -> list[RevisionInfo]:
        logs = self.session.execute(
            select(JournalRevisionLog)
            .where(
                JournalRevisionLog.record_kind == record.kind,
                JournalRevisionLog.record_id == record.record_id,
            )
            .order_by(JournalRevisionLog.created_at)
        ).scalars()
        return [log.to_dto() for log in logs]

    def statistics(self, as_of: date) -> RevisionStatistics:
        """
        Queue size and decision throughput as of ``as_of``.

        ``pending_*`` count still-pending requests by the day they were
        raised; ``decided_*`` count approvals and rejections by decision day.
        """
        day_start = _start_of(as_of)
        day_end = _start_of(as_of + timedelta(days=1))
        week_start = _start_of(as_of - timedelta(days=as_of.weekday()))
        month_start = _start_of(as_of.replace(day=1))

        pending = self._count(JournalRevisionLog.status == RevisionStatus.PENDING)
        high_value_pending = self._count(
            JournalRevisionLog.status == RevisionStatus.PENDING,
            JournalRevisionLog.impact_amount >= self._high_value_threshold,
        )
        return RevisionStatistics(
            pending=pending,
            pending_today=self._requested_between(day_start, day_end),
            pending_this_week=self._requested_between(week_start, day_end),
            pending_this_month=self._requested_between(month_start, day_end),
            decided_today=self._decided_between(day_start, day_end),
            decided_this_week=self._decided_between(week_start, day_end),
            decided_this_month=self._decided_between(month_start, day_end),
            high_value_pending=high_value_pending,
        )

    def _requested_between(self, start: datetime, end: datetime) -> int:
        return self._count(
            JournalRevisionLog.status == RevisionStatus.PENDING,
            JournalRevisionLog.revised_at >= start,
            JournalRevisionLog.revised_at < end,
        )

    def _decided_between(self, start: datetime, end: datetime) -> int:
        return self._count(
            JournalRevisionLog.status.in_(_DECIDED),
            JournalRevisionLog.decided_at >= start,
            JournalRevisionLog.decided_at < end,
        )

    def _count(self, *criteria) -> int:
        return self.session.execute(
            select(func.count(JournalRevisionLog.id)).where(*criteria)
        ).scalar_one()
