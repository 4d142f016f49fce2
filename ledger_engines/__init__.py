"""
Module: ledger_engines
Responsibility:
    Package entrypoint that re-exports the pure calculation engines used by
    the kernel services and source-document modules.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import ledger_kernel/domain types (and sibling engine modules).
    MUST NOT import ledger_kernel services or ledger_modules.

Invariants enforced:
    - Engines NEVER read the clock.  Dates and timestamps are parameters.
    - Decimal-only arithmetic for monetary amounts.
    - Identical inputs always produce identical outputs.
"""

from ledger_engines.approval import (
    actor_may_decide,
    condition_matches,
    matched_condition_count,
    rule_matches,
    select_matching_rule,
)
from ledger_engines.periods import (
    PeriodBounds,
    close_schedule,
    next_period_start,
    period_bounds,
    period_code_for,
)
from ledger_engines.tracer import traced_engine

__all__ = [
    "PeriodBounds",
    "actor_may_decide",
    "close_schedule",
    "condition_matches",
    "matched_condition_count",
    "next_period_start",
    "period_bounds",
    "period_code_for",
    "rule_matches",
    "select_matching_rule",
    "traced_engine",
]
