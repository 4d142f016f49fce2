"""
ledger_engines.periods -- Pure calendar math for closing periods.

Responsibility:
    Derive period bounds, period codes and cutoff / hard-close dates from a
    period type and an anchor date.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Codes: monthly ``YYYY-MM``, quarterly ``YYYY-Qn``, yearly ``YYYY``,
      weekly ``YYYY-Www`` (ISO week), daily and custom ``YYYY-MM-DD``.
    - start <= end <= cutoff <= hard_close for every derived schedule.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, timedelta

from ledger_kernel.domain.values import PeriodType


@dataclass(frozen=True)
class PeriodBounds:
    period_type: PeriodType
    start: date
    end: date

    @property
    def code(self) -> str:
        return period_code_for(self.period_type, self.start)


def _month_end(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def period_bounds(period_type: PeriodType, anchor: date) -> PeriodBounds:
    """Bounds of the period of ``period_type`` that contains ``anchor``."""
    if period_type == PeriodType.MONTHLY:
        start = anchor.replace(day=1)
        end = _month_end(anchor.year, anchor.month)
    elif period_type == PeriodType.QUARTERLY:
        quarter = (anchor.month - 1) // 3 + 1
        start = date(anchor.year, 3 * quarter - 2, 1)
        end = _month_end(anchor.year, 3 * quarter)
    elif period_type == PeriodType.YEARLY:
        start = date(anchor.year, 1, 1)
        end = date(anchor.year, 12, 31)
    elif period_type == PeriodType.WEEKLY:
        start = anchor - timedelta(days=anchor.weekday())
        end = start + timedelta(days=6)
    else:
        # daily; custom periods have caller-supplied bounds
        start = end = anchor
    return PeriodBounds(period_type=period_type, start=start, end=end)


def period_code_for(period_type: PeriodType, start: date) -> str:
    if period_type == PeriodType.MONTHLY:
        return start.strftime("%Y-%m")
    if period_type == PeriodType.QUARTERLY:
        return f"{start.year}-Q{(start.month - 1) // 3 + 1}"
    if period_type == PeriodType.YEARLY:
        return f"{start.year}"
    if period_type == PeriodType.WEEKLY:
        iso_year, iso_week, _ = start.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    return start.isoformat()


def next_period_start(last_end: date) -> date:
    return last_end + timedelta(days=1)


def close_schedule(
    period_end: date,
    cutoff_days: int,
    hard_close_days: int | None,
) -> tuple[date, date | None]:
    """Cutoff is ``period_end + cutoff_days``; hard close follows the cutoff."""
    cutoff = period_end + timedelta(days=cutoff_days)
    hard_close = cutoff + timedelta(days=hard_close_days) if hard_close_days is not None else None
    return cutoff, hard_close
