"""
Ledger Kernel - General ledger and period-closing core

A double-entry bookkeeping core for the hospital back office with:
- Balanced, immutable journal postings
- Period lifecycle (open, soft close, hard close, reopen)
- Approval-gated revisions to closed periods
- Threshold- and role-based multi-level approvals
"""

__version__ = "0.1.0"
