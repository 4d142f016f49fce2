"""
Notification hooks fired by the closing and approval workflows.

Responsibility:
    Define the outbound ``NotificationHook`` protocol and the default
    ``LoggingNotifier``.  Delivery (email, in-app) is an external
    collaborator that implements the protocol.

Architecture position:
    Kernel > Services.  Called by ClosingPeriodService, ApprovalService and
    RevisionService after their state change has been flushed.

Failure modes:
    - A hook that raises aborts the caller's transaction.  Hooks that talk
      to slow or unreliable transports should queue, not send inline.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from ledger_kernel.logging_config import get_logger

logger = get_logger("services.notifications")

PERIOD_TRANSITIONED = "period_transitioned"
APPROVAL_REQUESTED = "approval_requested"
APPROVAL_DECIDED = "approval_decided"
REVISION_REQUESTED = "revision_requested"
CUTOFF_APPROACHING = "cutoff_approaching"


@runtime_checkable
class NotificationHook(Protocol):
    def notify(self, event: str, payload: dict[str, Any]) -> None: ...


class LoggingNotifier:
    """Default hook: one structured log record per event."""

    def notify(self, event: str, payload: dict[str, Any]) -> None:
        logger.info(
            "notification_emitted",
            extra={"notification_event": event, "payload": payload},
        )
