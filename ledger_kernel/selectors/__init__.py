"""Selectors for the ledger kernel (read side)."""

from ledger_kernel.selectors.account_selector import AccountHistoryLine, AccountSelector
from ledger_kernel.selectors.base import BaseSelector
from ledger_kernel.selectors.revision_selector import RevisionSelector

__all__ = [
    "AccountHistoryLine",
    "AccountSelector",
    "BaseSelector",
    "RevisionSelector",
]
