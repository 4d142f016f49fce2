"""
ledger_modules.payroll.config
=============================

Responsibility:
    Maps salary components to GL accounts: each earning component to its
    expense account, each deduction component to the liability (or
    receivable, for staff advances) it is withheld into.

Architecture:
    Module layer (ledger_modules).  Consumed by PayrollService.

Failure modes:
    - Missing salary payable account or empty earning mapping ->
      ``ValueError`` from ``__post_init__``.
"""

from dataclasses import dataclass, field


@dataclass
class PayrollConfig:
    """
    Configuration schema for the payroll adapter.

    Example::

        config = PayrollConfig(
            salary_payable_account_code="2-21-2103",
            earning_accounts={"gaji_pokok": "5-51-5101"},
            deduction_accounts={"pph_21": "2-21-2104"},
        )
    """

    salary_payable_account_code: str
    earning_accounts: dict[str, str] = field(default_factory=dict)
    deduction_accounts: dict[str, str] = field(default_factory=dict)
    reference_type: str = "penggajian"
    payment_reference_type: str = "pembayaran_gaji"

    def __post_init__(self) -> None:
        if not self.salary_payable_account_code:
            raise ValueError("salary_payable_account_code is required")
        if not self.earning_accounts:
            raise ValueError("earning_accounts cannot be empty")
        if self.reference_type == self.payment_reference_type:
            raise ValueError("accrual and payment reference types must differ")
