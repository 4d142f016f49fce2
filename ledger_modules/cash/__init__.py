"""
ledger_modules.cash
===================

Responsibility:
    Cash desk, bank and giro transactions: receipts, payments, advances and
    transfers, with outgoing transactions routed through transaction
    approval before they reach the ledger.

Architecture:
    Module layer (ledger_modules).  May import from ledger_kernel and
    ledger_config.  MUST NOT be imported by ledger_kernel.
"""

from ledger_modules.cash.config import CashConfig
from ledger_modules.cash.models import (
    INCOMING_TYPES,
    OUTGOING_TYPES,
    CashChannel,
    CashTransaction,
    CashTransactionType,
)
from ledger_modules.cash.service import CashService, build_lines

__all__ = [
    "CashChannel",
    "CashConfig",
    "CashService",
    "CashTransaction",
    "CashTransactionType",
    "INCOMING_TYPES",
    "OUTGOING_TYPES",
    "build_lines",
]
