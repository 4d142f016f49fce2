"""
Shared fixtures for source-document adapter tests.

Adapters own their transaction: they commit on success and roll back on
failure.  Under the savepoint-per-test session a rollback discards every
uncommitted row, so ``ledger_ready`` commits the chart of accounts and the
approval rules before an adapter runs.  Tests that provoke a failure after
creating periods call ``session.commit()`` themselves first.

DESIGN RULE: Every fixture is opt-in.  No autouse.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_modules.assets import AssetsConfig, FixedAssetService
from ledger_modules.cash import CashChannel, CashService, CashTransaction, CashTransactionType
from ledger_modules.payroll import PayrollConfig, PayrollService
from ledger_modules.purchasing import PurchasingConfig, PurchasingService


@pytest.fixture
def ledger_ready(session, hospital_accounts, orchestrator):
    """Accounts and approval rules committed; returns the kernel orchestrator."""
    session.commit()
    return orchestrator


@pytest.fixture
def adapter_kwargs(closing_settings, deterministic_clock, notifier):
    return {
        "settings": closing_settings,
        "clock": deterministic_clock,
        "notifier": notifier,
    }


@pytest.fixture
def cash_service(session, adapter_kwargs):
    return CashService(session, **adapter_kwargs)


@pytest.fixture
def purchasing_service(session, adapter_kwargs):
    config = PurchasingConfig(
        payable_account_code="2101",
        input_tax_account_code="1401",
        purchase_discount_account_code="4301",
    )
    return PurchasingService(session, config, **adapter_kwargs)


@pytest.fixture
def payroll_config():
    return PayrollConfig(
        salary_payable_account_code="2102",
        earning_accounts={"gaji_pokok": "5101", "tunjangan_jabatan": "5102"},
        deduction_accounts={"pph_21": "2103", "bpjs_kesehatan": "2104"},
    )


@pytest.fixture
def payroll_service(session, payroll_config, adapter_kwargs):
    return PayrollService(session, payroll_config, **adapter_kwargs)


@pytest.fixture
def asset_service(session, adapter_kwargs):
    config = AssetsConfig(disposal_gain_account_code="4201", disposal_loss_account_code="5401")
    return FixedAssetService(session, config, **adapter_kwargs)


@pytest.fixture
def make_cash_transaction():
    """Factory for cash desk transactions (cash box 1101 by default)."""

    def _make(
        transaction_type: CashTransactionType,
        amount: str,
        counter_account_code: str,
        transaction_number: str = "KK-2025-01-0001",
        transaction_date: date = date(2025, 1, 20),
        channel: CashChannel = CashChannel.CASH,
        cash_account_code: str = "1101",
        counterparty: str | None = None,
    ) -> CashTransaction:
        return CashTransaction(
            id=uuid4(),
            channel=channel,
            transaction_number=transaction_number,
            transaction_date=transaction_date,
            transaction_type=transaction_type,
            amount=Decimal(amount),
            cash_account_code=cash_account_code,
            counter_account_code=counter_account_code,
            description="Transaksi kas",
            counterparty=counterparty,
        )

    return _make
