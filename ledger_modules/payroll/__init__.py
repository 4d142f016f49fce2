"""
ledger_modules.payroll
======================

Salary batches journaled as an accrual against salary payable, and the
payout that settles it.
"""

from ledger_modules.payroll.config import PayrollConfig
from ledger_modules.payroll.helpers import deduction_totals, earning_totals
from ledger_modules.payroll.models import SalaryBatch, SalaryDetail
from ledger_modules.payroll.service import PayrollService

__all__ = [
    "PayrollConfig",
    "PayrollService",
    "SalaryBatch",
    "SalaryDetail",
    "deduction_totals",
    "earning_totals",
]
