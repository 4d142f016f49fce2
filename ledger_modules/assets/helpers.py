"""
Fixed asset helpers (``ledger_modules.assets.helpers``).

Responsibility
--------------
Pure calculation functions for monthly straight-line depreciation and
disposal gain/loss.  No I/O, no session, no clock.

Invariants enforced
-------------------
* All numeric inputs and outputs use ``Decimal`` -- NEVER ``float``.
* Depreciation is quantized to 2 decimal places.

Failure modes
-------------
* Zero or negative useful life -> returns ``Decimal("0")``.
"""

from __future__ import annotations

from decimal import Decimal

CENT = Decimal("0.01")


def straight_line(
    cost: Decimal,
    salvage_value: Decimal,
    useful_life_months: int,
) -> Decimal:
    """
    Monthly straight-line depreciation.

    Returns ``Decimal("0")`` if ``useful_life_months`` <= 0.
    """
    if useful_life_months <= 0:
        return Decimal("0")
    depreciable_base = cost - salvage_value
    return (depreciable_base / useful_life_months).quantize(CENT)


def book_value(cost: Decimal, accumulated_depreciation: Decimal) -> Decimal:
    return cost - accumulated_depreciation


def disposal_gain_loss(
    cost: Decimal,
    accumulated_depreciation: Decimal,
    disposal_price: Decimal,
) -> Decimal:
    """Proceeds less book value: positive is a gain, negative a loss."""
    return disposal_price - book_value(cost, accumulated_depreciation)
