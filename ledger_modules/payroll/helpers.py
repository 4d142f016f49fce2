"""
Payroll helpers (``ledger_modules.payroll.helpers``).

Pure aggregation over salary details: no session, no clock.  Called by
PayrollService and from tests.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal

from ledger_kernel.domain.dtos import ZERO
from ledger_modules.payroll.models import SalaryDetail


def _sum_components(components: Iterable[dict[str, Decimal]]) -> dict[str, Decimal]:
    totals: dict[str, Decimal] = {}
    for mapping in components:
        for name, amount in mapping.items():
            totals[name] = totals.get(name, ZERO) + amount
    # Zero components produce no journal line
    return {name: amount for name, amount in sorted(totals.items()) if amount > 0}


def earning_totals(details: Iterable[SalaryDetail]) -> dict[str, Decimal]:
    """Batch total per earning component, zero totals dropped."""
    return _sum_components(d.earnings for d in details)


def deduction_totals(details: Iterable[SalaryDetail]) -> dict[str, Decimal]:
    """Batch total per deduction component, zero totals dropped."""
    return _sum_components(d.deductions for d in details)
