"""
ledger_modules.assets
=====================

Fixed asset depreciation charges and disposals with gain/loss
recognition.
"""

from ledger_modules.assets.config import AssetsConfig
from ledger_modules.assets.helpers import book_value, disposal_gain_loss, straight_line
from ledger_modules.assets.models import AssetDepreciation, AssetDisposal
from ledger_modules.assets.service import FixedAssetService

__all__ = [
    "AssetDepreciation",
    "AssetDisposal",
    "AssetsConfig",
    "FixedAssetService",
    "book_value",
    "disposal_gain_loss",
    "straight_line",
]
