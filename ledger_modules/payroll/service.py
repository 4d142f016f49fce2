"""
ledger_modules.payroll.service
==============================

Responsibility:
    Journals a salary batch accrual (Dr salary expense per earning
    component, Cr salary payable for net pay, Cr each withholding) and the
    later payout (Dr salary payable, Cr cash or bank).

Architecture:
    Module layer (ledger_modules).  Posting through DocumentPoster with
    ``auto_commit=False``; this service owns commit/rollback.

Invariants enforced:
    - The accrual balances by construction: gross = net + deductions.

Failure modes:
    - ValueError naming every unmapped component before anything is
      written.
    - Kernel errors -> session rolled back, exception re-raised.
"""

from __future__ import annotations

from datetime import date

from sqlalchemy.orm import Session

from ledger_config.schema import ClosingSettings
from ledger_kernel.domain.actor import Actor
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.dtos import LineSpec
from ledger_kernel.logging_config import get_logger
from ledger_kernel.services.notifications import NotificationHook
from ledger_modules._posting_helpers import AdapterResult, DocumentPoster, unit_of_work
from ledger_modules.payroll.config import PayrollConfig
from ledger_modules.payroll.helpers import deduction_totals, earning_totals
from ledger_modules.payroll.models import SalaryBatch

logger = get_logger("modules.payroll.service")


class PayrollService:
    """Journals salary batches."""

    def __init__(
        self,
        session: Session,
        config: PayrollConfig,
        settings: ClosingSettings | None = None,
        clock: Clock | None = None,
        notifier: NotificationHook | None = None,
    ):
        self._session = session
        self._config = config
        self._poster = DocumentPoster(session, settings, clock, notifier)

    def record_batch(self, batch: SalaryBatch, actor: Actor) -> AdapterResult:
        """Journal the accrual for ``batch``."""
        lines = self.batch_lines(batch)
        logger.info("payroll_batch_started", extra={
            "batch_number": batch.batch_number,
            "employee_count": len(batch.details),
            "net_pay": str(batch.total_net_pay),
        })
        with unit_of_work(self._session):
            return self._poster.post(
                batch.record,
                batch.posting_date,
                batch.description or f"Gaji karyawan periode {batch.period_label}",
                lines,
                actor,
                reference_type=self._config.reference_type,
                reference_number=batch.batch_number,
            )

    def pay_batch(
        self,
        batch: SalaryBatch,
        cash_account_code: str,
        actor: Actor,
        payment_date: date | None = None,
    ) -> AdapterResult:
        """Journal the payout of net pay from ``cash_account_code``."""
        payment_date = payment_date or batch.posting_date
        amount = batch.total_net_pay
        description = f"Pembayaran gaji periode {batch.period_label}"
        with unit_of_work(self._session):
            return self._poster.post(
                batch.record,
                payment_date,
                description,
                [
                    LineSpec.dr(self._config.salary_payable_account_code, amount, description),
                    LineSpec.cr(cash_account_code, amount, description),
                ],
                actor,
                reference_type=self._config.payment_reference_type,
                reference_number=batch.batch_number,
            )

    def batch_lines(self, batch: SalaryBatch) -> list[LineSpec]:
        earnings = earning_totals(batch.details)
        deductions = deduction_totals(batch.details)

        unmapped = sorted(
            [f"earning:{n}" for n in earnings if n not in self._config.earning_accounts]
            + [f"deduction:{n}" for n in deductions if n not in self._config.deduction_accounts]
        )
        if unmapped:
            raise ValueError(f"Unmapped salary components: {', '.join(unmapped)}")

        lines = [
            LineSpec.dr(self._config.earning_accounts[name], amount, name)
            for name, amount in earnings.items()
        ]
        lines.append(
            LineSpec.cr(self._config.salary_payable_account_code, batch.total_net_pay, "Hutang gaji")
        )
        lines.extend(
            LineSpec.cr(self._config.deduction_accounts[name], amount, name)
            for name, amount in deductions.items()
        )
        return lines
