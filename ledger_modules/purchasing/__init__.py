"""
ledger_modules.purchasing
=========================

Supplier invoices and payments journaled against accounts payable.
"""

from ledger_modules.purchasing.config import PurchasingConfig
from ledger_modules.purchasing.models import (
    PurchaseInvoice,
    PurchaseInvoiceLine,
    PurchasePayment,
)
from ledger_modules.purchasing.service import PurchasingService

__all__ = [
    "PurchaseInvoice",
    "PurchaseInvoiceLine",
    "PurchasePayment",
    "PurchasingConfig",
    "PurchasingService",
]
