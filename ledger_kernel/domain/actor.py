"""
Actor identity and capability set.

Responsibility:
    Carries who is acting and which gated actions they may perform.  The
    kernel never looks up users or roles; the caller resolves them from its
    own permission store and passes an ``Actor`` with every call.

Architecture position:
    Kernel > Domain -- pure.  Components check capabilities themselves via
    ``require_capability`` so state-machine legality does not depend on how
    authorization is sourced.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from uuid import UUID

from ledger_kernel.exceptions import InsufficientCapabilityError


class Capability(str, Enum):
    """Gated actions the ledger checks for."""

    BYPASS_PERIOD_LOCK = "bypass_period_lock"
    OVERRIDE_CUTOFF = "override_cutoff"
    CLOSE_PERIOD = "close_period"
    REOPEN_PERIOD = "reopen_period"
    APPROVE = "approve"


@dataclass(frozen=True)
class Actor:
    """
    The user or process performing an operation.

    Contract:
        ``roles`` are approver roles (e.g. ``supervisor_keuangan``) matched
        against ApprovalRule role lists.  ``capabilities`` gate period
        overrides and decisions.
    """

    id: UUID
    roles: frozenset[str] = field(default_factory=frozenset)
    capabilities: frozenset[Capability] = field(default_factory=frozenset)

    @classmethod
    def of(
        cls,
        actor_id: UUID,
        roles: Iterable[str] = (),
        capabilities: Iterable[Capability] = (),
    ) -> "Actor":
        return cls(id=actor_id, roles=frozenset(roles), capabilities=frozenset(capabilities))

    def has(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def has_role(self, role: str) -> bool:
        return role in self.roles


def require_capability(actor: Actor, capability: Capability, operation: str) -> None:
    """Raise InsufficientCapabilityError unless ``actor`` holds ``capability``."""
    if not actor.has(capability):
        raise InsufficientCapabilityError(
            actor_id=str(actor.id),
            capability=capability.value,
            operation=operation,
        )
