"""
ledger_modules.assets.config
============================

Responsibility:
    Gain and loss accounts for disposals and the journal reference types
    of the asset adapter.

Failure modes:
    - Missing gain/loss accounts -> ``ValueError`` from ``__post_init__``.
"""

from dataclasses import dataclass


@dataclass
class AssetsConfig:
    """Configuration schema for the fixed asset adapter."""

    disposal_gain_account_code: str
    disposal_loss_account_code: str
    depreciation_reference_type: str = "penyusutan"
    disposal_reference_type: str = "disposal_aset"

    def __post_init__(self) -> None:
        if not self.disposal_gain_account_code or not self.disposal_loss_account_code:
            raise ValueError("disposal gain and loss accounts are required")
