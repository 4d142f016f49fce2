"""
ledger_modules.purchasing.service
=================================

Responsibility:
    Journals supplier invoices (Dr inventory/expense + input tax, Cr
    accounts payable) and their payments (Dr accounts payable, Cr cash or
    bank, Cr purchase discount).

Architecture:
    Module layer (ledger_modules).  Posting through DocumentPoster with
    ``auto_commit=False``; this service commits or rolls back.

Failure modes:
    - ValueError when the invoice carries tax (or the payment a discount)
      but the matching account is not configured.
    - ClosedPeriodError / AlreadyPostedError / kernel validation errors
      -> session rolled back, exception re-raised.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from ledger_config.schema import ClosingSettings
from ledger_kernel.domain.actor import Actor
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.dtos import LineSpec
from ledger_kernel.logging_config import get_logger
from ledger_kernel.services.notifications import NotificationHook
from ledger_modules._posting_helpers import AdapterResult, DocumentPoster, unit_of_work
from ledger_modules.purchasing.config import PurchasingConfig
from ledger_modules.purchasing.models import PurchaseInvoice, PurchasePayment

logger = get_logger("modules.purchasing.service")


class PurchasingService:
    """Journals supplier invoices and payments."""

    def __init__(
        self,
        session: Session,
        config: PurchasingConfig,
        settings: ClosingSettings | None = None,
        clock: Clock | None = None,
        notifier: NotificationHook | None = None,
    ):
        self._session = session
        self._config = config
        self._poster = DocumentPoster(session, settings, clock, notifier)

    def record_invoice(self, invoice: PurchaseInvoice, actor: Actor) -> AdapterResult:
        logger.info("purchase_invoice_started", extra={
            "invoice_number": invoice.invoice_number,
            "total": str(invoice.total),
        })
        lines = self.invoice_lines(invoice)
        with unit_of_work(self._session):
            return self._poster.post(
                invoice.record,
                invoice.invoice_date,
                invoice.description or f"Pembelian {invoice.invoice_number} - {invoice.supplier_name}",
                lines,
                actor,
                reference_type=self._config.invoice_reference_type,
                reference_number=invoice.invoice_number,
            )

    def record_payment(self, payment: PurchasePayment, actor: Actor) -> AdapterResult:
        logger.info("purchase_payment_started", extra={
            "payment_number": payment.payment_number,
            "invoice_number": payment.invoice_number,
            "amount": str(payment.amount),
        })
        lines = self.payment_lines(payment)
        with unit_of_work(self._session):
            return self._poster.post(
                payment.record,
                payment.payment_date,
                f"Pembayaran {payment.invoice_number} - {payment.supplier_name}",
                lines,
                actor,
                reference_type=self._config.payment_reference_type,
                reference_number=payment.payment_number,
            )

    def invoice_lines(self, invoice: PurchaseInvoice) -> list[LineSpec]:
        lines = [
            LineSpec.dr(line.account_code, line.amount, line.description)
            for line in invoice.lines
        ]
        if invoice.tax_amount > 0:
            if not self._config.input_tax_account_code:
                raise ValueError("input_tax_account_code is not configured")
            lines.append(LineSpec.dr(self._config.input_tax_account_code, invoice.tax_amount, "PPN Masukan"))
        lines.append(LineSpec.cr(self._config.payable_account_code, invoice.total, invoice.supplier_name))
        return lines

    def payment_lines(self, payment: PurchasePayment) -> list[LineSpec]:
        lines = [
            LineSpec.dr(self._config.payable_account_code, payment.settled_amount, payment.supplier_name),
            LineSpec.cr(payment.cash_account_code, payment.amount, payment.invoice_number),
        ]
        if payment.discount > 0:
            if not self._config.purchase_discount_account_code:
                raise ValueError("purchase_discount_account_code is not configured")
            lines.append(
                LineSpec.cr(self._config.purchase_discount_account_code, payment.discount, "Potongan pembelian")
            )
        return lines
