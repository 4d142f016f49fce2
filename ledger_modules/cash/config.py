"""
ledger_modules.cash.config
==========================

Responsibility:
    Configuration schema for the cash adapter: the journal reference type
    per channel and which transaction types pass the outgoing-approval gate.

Architecture:
    Module layer (ledger_modules).  Consumed by CashService.  MUST NOT be
    imported by ledger_kernel.

Failure modes:
    - Invalid configuration values -> ``ValueError`` from ``__post_init__``.

Audit relevance:
    Narrowing ``approval_required_types`` lets outgoing payments post
    without review.  Changes to it should be audited.
"""

from dataclasses import dataclass, field

from ledger_modules.cash.models import OUTGOING_TYPES, CashChannel, CashTransactionType

DEFAULT_REFERENCE_TYPES = {
    CashChannel.CASH: "kas",
    CashChannel.BANK: "bank",
    CashChannel.GIRO: "giro",
}


@dataclass
class CashConfig:
    """
    Configuration schema for the cash adapter.

    Contract:
        All fields have defaults matching the shipped approval rules.
        ``__post_init__`` validates and raises ``ValueError`` on violation.

    Guarantees:
        - Every channel has a reference type.
        - Only outgoing types can require approval.
    """

    approval_type: str = "transaction"
    reference_types: dict[CashChannel, str] = field(
        default_factory=lambda: dict(DEFAULT_REFERENCE_TYPES)
    )
    approval_required_types: frozenset[CashTransactionType] = OUTGOING_TYPES

    def __post_init__(self) -> None:
        if not self.approval_type:
            raise ValueError("approval_type is required")
        missing = [c.value for c in CashChannel if not self.reference_types.get(c)]
        if missing:
            raise ValueError(f"reference_types missing channels: {', '.join(missing)}")
        incoming = [t.value for t in self.approval_required_types if t.is_incoming]
        if incoming:
            raise ValueError(f"incoming types cannot require approval: {', '.join(incoming)}")

    def reference_type_for(self, channel: CashChannel) -> str:
        return self.reference_types[channel]
