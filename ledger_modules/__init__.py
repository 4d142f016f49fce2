"""
Ledger Modules.

Source-document adapters over the ledger kernel.  Each turns a business
event from a producing subsystem into a balanced journal request, checks
the document date with the closing-period manager before building it, and
treats a pending revision as an ordinary outcome.

Modules:
- Cash: cash desk, bank and giro receipts/payments, outgoing approval
- Purchasing: supplier invoices and payments
- Payroll: salary batch accrual and payout
- Assets: depreciation and disposals

Every adapter commits on success and rolls back on failure.  Journal
logic lives in the kernel.
"""

from ledger_modules import assets, cash, payroll, purchasing
from ledger_modules._posting_helpers import AdapterResult, AdapterStatus

__all__ = [
    "AdapterResult",
    "AdapterStatus",
    "assets",
    "cash",
    "payroll",
    "purchasing",
]
