"""
ledger_modules.cash.service
===========================

Responsibility:
    Turns cash, bank and giro transactions into balanced journal requests,
    gating outgoing transactions behind the generic approval engine.  Thin
    ERP glue: no period or balance logic of its own.

Architecture:
    Module layer (ledger_modules).  Delegates admission, posting and
    approvals to the kernel through DocumentPoster (``auto_commit=False``)
    and owns the transaction boundary.

Invariants enforced:
    - Incoming types debit the cash-side account; outgoing types credit it.
    - An outgoing transaction matching an approval rule is journaled only
      after its approval reaches APPROVED.
    - A transaction number is journaled at most once per channel.

Failure modes:
    - ClosedPeriodError when the transaction date is denied; nothing is
      written, not even the approval request.
    - ApprovalRequiredError from ``post_approved`` when the approval is
      missing, open or rejected.
    - Any kernel error -> session rolled back, exception re-raised.

Audit relevance:
    Outgoing cash is the highest-risk flow.  The approval request, every
    decision on it and the resulting journal entry are all persisted.

Usage::

    service = CashService(session, clock=clock)
    result = service.record_transaction(txn, actor)
    if result.status == AdapterStatus.AWAITING_APPROVAL:
        ...  # later, once approved
        service.post_approved(txn, actor)
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from ledger_config.schema import ClosingSettings
from ledger_kernel.domain.actor import Actor
from ledger_kernel.domain.approval import ApprovalInfo
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.dtos import LineSpec
from ledger_kernel.domain.values import ApprovalStatus
from ledger_kernel.exceptions import ApprovalRequiredError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.services.notifications import NotificationHook
from ledger_modules._posting_helpers import (
    AdapterResult,
    AdapterStatus,
    DocumentPoster,
    unit_of_work,
)
from ledger_modules.cash.config import CashConfig
from ledger_modules.cash.models import CashTransaction

logger = get_logger("modules.cash.service")


def build_lines(txn: CashTransaction) -> tuple[LineSpec, LineSpec]:
    """Two-line entry for ``txn``: cash side and counter side."""
    if txn.transaction_type.is_incoming:
        return (
            LineSpec.dr(txn.cash_account_code, txn.amount, txn.description),
            LineSpec.cr(txn.counter_account_code, txn.amount, txn.description),
        )
    return (
        LineSpec.dr(txn.counter_account_code, txn.amount, txn.description),
        LineSpec.cr(txn.cash_account_code, txn.amount, txn.description),
    )


class CashService:
    """
    Journals cash, bank and giro transactions.

    Contract:
        Each public method either commits and returns an ``AdapterResult``,
        or rolls back and re-raises.

    Guarantees:
        - All amounts are ``Decimal``.
        - Receipts never require transaction approval.

    Non-goals:
        - Does NOT decide approvals; approvers use ApprovalService.
        - Does NOT persist the cash documents themselves.
    """

    def __init__(
        self,
        session: Session,
        settings: ClosingSettings | None = None,
        clock: Clock | None = None,
        notifier: NotificationHook | None = None,
        config: CashConfig | None = None,
    ):
        self._session = session
        self._config = config or CashConfig()
        self._poster = DocumentPoster(session, settings, clock, notifier)

    # =========================================================================
    # Transactions
    # =========================================================================

    def record_transaction(self, txn: CashTransaction, actor: Actor) -> AdapterResult:
        """
        Journal ``txn``, or request its approval first when it is outgoing.

        Postconditions:
            - Receipts and unmatched outgoing transactions: POSTED (or
              PENDING_REVISION in a soft-closed period).
            - Outgoing transactions matching a rule: AWAITING_APPROVAL with
              an open approval, nothing journaled.
            - An already approved transaction is journaled directly.
        """
        logger.info("cash_transaction_started", extra={
            "record": str(txn.record),
            "transaction_number": txn.transaction_number,
            "transaction_type": txn.transaction_type.value,
            "amount": str(txn.amount),
        })
        with unit_of_work(self._session):
            self._poster.admit(txn.record, txn.transaction_date, actor)

            approval = None
            if self._needs_approval_gate(txn):
                approval = self._approval_gate(txn, actor)
                if approval is not None and approval.status != ApprovalStatus.APPROVED:
                    status = (
                        AdapterStatus.APPROVAL_REJECTED
                        if approval.is_rejected
                        else AdapterStatus.AWAITING_APPROVAL
                    )
                    return AdapterResult(status=status, record=txn.record, approval=approval)

            return self._journal(txn, actor, approval)

    def post_approved(self, txn: CashTransaction, actor: Actor) -> AdapterResult:
        """Journal an outgoing transaction whose approval has been granted."""
        with unit_of_work(self._session):
            approval = self.approval_for(txn)
            if approval is None or not approval.is_approved:
                raise ApprovalRequiredError(
                    str(txn.record),
                    approval.status.value if approval is not None else None,
                )
            return self._journal(txn, actor, approval)

    def approval_for(self, txn: CashTransaction) -> ApprovalInfo | None:
        """Most recent transaction approval for ``txn``."""
        return self._poster.kernel.approvals.latest_for(txn.record, self._config.approval_type)

    # =========================================================================
    # Internals
    # =========================================================================

    def _needs_approval_gate(self, txn: CashTransaction) -> bool:
        return txn.transaction_type in self._config.approval_required_types

    def _approval_gate(self, txn: CashTransaction, actor: Actor) -> ApprovalInfo | None:
        """Existing decision for ``txn``, else a new request (None if no rule matches)."""
        existing = self.approval_for(txn)
        if existing is not None:
            return existing
        return self._poster.kernel.approvals.submit(
            txn.record,
            self._config.approval_type,
            txn.amount,
            actor.id,
            conditions={"transaction_type": txn.transaction_type.value},
        )

    def _journal(
        self,
        txn: CashTransaction,
        actor: Actor,
        approval: ApprovalInfo | None,
    ) -> AdapterResult:
        description = txn.description
        if txn.counterparty:
            description = f"{txn.description} - {txn.counterparty}"
        return self._poster.post(
            txn.record,
            txn.transaction_date,
            description,
            build_lines(txn),
            actor,
            reference_type=self._config.reference_type_for(txn.channel),
            reference_number=txn.transaction_number,
            approval=approval,
        )
