"""
ledger_modules.assets.models
============================

Responsibility:
    Frozen value objects for monthly depreciation runs and asset disposals.

Architecture:
    Module layer (ledger_modules).  In-memory DTOs, NOT ORM models; the
    asset register belongs to the producing subsystem.

Invariants enforced:
    - Depreciation amounts are positive.
    - Accumulated depreciation never exceeds acquisition cost.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from ledger_kernel.domain.values import RecordKind, RecordRef
from ledger_modules.assets.helpers import book_value, disposal_gain_loss


@dataclass(frozen=True)
class AssetDepreciation:
    """One asset's depreciation charge for one period."""

    id: UUID
    depreciation_number: str
    asset_code: str
    period_label: str
    depreciation_date: date
    amount: Decimal
    expense_account_code: str
    accumulated_account_code: str

    def __post_init__(self) -> None:
        if not isinstance(self.amount, Decimal):
            raise TypeError("amount must be Decimal, not float")
        if self.amount <= 0:
            raise ValueError("depreciation amount must be positive")

    @property
    def record(self) -> RecordRef:
        return RecordRef(RecordKind.ASSET_DEPRECIATION, self.id)


@dataclass(frozen=True)
class AssetDisposal:
    """
    Sale or write-off of an asset.

    Contract:
        ``proceeds_account_code`` receives ``disposal_price``; it may be
        None only for a write-off with zero proceeds.
    """

    id: UUID
    disposal_number: str
    asset_code: str
    asset_name: str
    disposal_date: date
    acquisition_cost: Decimal
    accumulated_depreciation: Decimal
    disposal_price: Decimal
    asset_account_code: str
    accumulated_account_code: str
    proceeds_account_code: str | None = None

    def __post_init__(self) -> None:
        if self.acquisition_cost <= 0:
            raise ValueError("acquisition_cost must be positive")
        if self.accumulated_depreciation < 0:
            raise ValueError("accumulated_depreciation cannot be negative")
        if self.accumulated_depreciation > self.acquisition_cost:
            raise ValueError("accumulated_depreciation exceeds acquisition_cost")
        if self.disposal_price < 0:
            raise ValueError("disposal_price cannot be negative")
        if self.disposal_price > 0 and not self.proceeds_account_code:
            raise ValueError("proceeds_account_code is required when there are proceeds")

    @property
    def record(self) -> RecordRef:
        return RecordRef(RecordKind.ASSET_DISPOSAL, self.id)

    @property
    def book_value(self) -> Decimal:
        return book_value(self.acquisition_cost, self.accumulated_depreciation)

    @property
    def gain_loss(self) -> Decimal:
        return disposal_gain_loss(
            self.acquisition_cost, self.accumulated_depreciation, self.disposal_price
        )
