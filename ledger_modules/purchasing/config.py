"""
ledger_modules.purchasing.config
================================

Responsibility:
    Account mappings and journal reference types for supplier invoices and
    payments.

Architecture:
    Module layer (ledger_modules).  Consumed by PurchasingService.

Failure modes:
    - Missing account codes -> ``ValueError`` from ``__post_init__``.
"""

from dataclasses import dataclass


@dataclass
class PurchasingConfig:
    """
    Configuration schema for the purchasing adapter.

    Contract:
        Account codes have no sensible default and must be supplied from
        the hospital's chart of accounts.
    """

    payable_account_code: str
    input_tax_account_code: str | None = None
    purchase_discount_account_code: str | None = None
    invoice_reference_type: str = "pembelian"
    payment_reference_type: str = "pembayaran_pembelian"

    def __post_init__(self) -> None:
        if not self.payable_account_code:
            raise ValueError("payable_account_code is required")
        if self.invoice_reference_type == self.payment_reference_type:
            raise ValueError("invoice and payment reference types must differ")
