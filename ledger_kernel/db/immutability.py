"""
ORM-level immutability enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Posted ledger records are corrected by reversal, never by edit.  Decided
revisions and approvals are permanent governance records.  This module
intercepts UPDATE and DELETE at flush time, before any SQL is sent:

    session.flush()
         |
         v
    [before_update event] --> _check_*_immutability() --> ImmutabilityViolationError
         |                                                        ^
         v                                                        |
    [before_delete event] --> _check_*_delete() -----------------+
         |
         v
    SQL sent to database (only if checks pass)

If a check fails, ImmutabilityViolationError aborts the flush and the caller's
transaction rolls back.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity               | When Immutable                        | Permitted change
---------------------|---------------------------------------|--------------------------
JournalEntry         | status POSTED                         | status POSTED -> REVERSED
JournalEntry         | status REVERSED                       | none
JournalLine          | parent POSTED or REVERSED             | none
JournalRevisionLog   | always; fully once decided            | the decision fields while PENDING
Approval             | status APPROVED or REJECTED           | none
Account              | structural fields once lines exist    | name, sub_type, is_active, parent
Account              | DELETE always                         | deactivate instead
ClosingPeriod        | DELETE unless OPEN                    | none

ApprovalDecisionRecord is append-only; its listeners live beside the model in
models/approval.py.

===============================================================================
DESIGN DECISIONS
===============================================================================

1. updated_at / updated_by_id are audit metadata and may always change.

2. The check uses the PERSISTED status, read from attribute history, not the
   in-memory one.  DRAFT -> POSTED is the posting itself and must pass; a
   change after that must not.

3. Model imports are inline so this module can be imported before the model
   registry is complete.

===============================================================================
USAGE
===============================================================================

    from ledger_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

    # TESTS ONLY
    from ledger_kernel.db.immutability import unregister_immutability_listeners
    unregister_immutability_listeners()

===============================================================================
"""

from sqlalchemy import event, inspect, text
from sqlalchemy.orm.attributes import get_history

from ledger_kernel.domain.values import (
    ApprovalStatus,
    JournalEntryStatus,
    PeriodStatus,
    RevisionStatus,
)
from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})

# Structural fields that become immutable once the account carries lines
ACCOUNT_STRUCTURAL_FIELDS = frozenset({"account_type", "normal_balance", "code"})

# Fields a pending revision may change when it is decided
REVISION_DECISION_FIELDS = frozenset(
    {"status", "decided_by_id", "decided_at", "decision_notes", "approval_id"}
)

_LOCKED_ENTRY_STATUSES = (JournalEntryStatus.POSTED, JournalEntryStatus.REVERSED)


def _persisted_value(target, attr: str):
    """Value as loaded from the database, before any pending change."""
    history = get_history(target, attr)
    if history.deleted:
        return history.deleted[0]
    return getattr(target, attr)


def _changed_fields(target, ignore: frozenset[str] = AUDIT_FIELDS) -> list[str]:
    changed = []
    for attr in inspect(target).mapper.column_attrs:
        if attr.key in ignore:
            continue
        if get_history(target, attr.key).has_changes():
            changed.append(attr.key)
    return changed


def _block(entity_type: str, target, operation: str, reason: str, **extra) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            **extra,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


# =============================================================================
# Journal entries and lines
# =============================================================================


def _check_journal_entry_immutability(mapper, connection, target):
    """
    Prevent updates to posted and reversed JournalEntry records.

    The only permitted change to a posted entry is the status transition
    POSTED -> REVERSED made when its reversal is posted.
    """
    old_status = _persisted_value(target, "status")
    if old_status not in _LOCKED_ENTRY_STATUSES:
        return

    changed = _changed_fields(target)
    if not changed:
        return

    if (
        old_status == JournalEntryStatus.POSTED
        and changed == ["status"]
        and target.status == JournalEntryStatus.REVERSED
    ):
        return

    _block(
        "JournalEntry",
        target,
        "UPDATE",
        f"Cannot modify field(s) {changed} on {old_status} journal entry",
        fields=changed,
    )


def _check_journal_entry_delete(mapper, connection, target):
    """Prevent deletion of posted and reversed JournalEntry records."""
    old_status = _persisted_value(target, "status")
    if old_status in _LOCKED_ENTRY_STATUSES:
        _block(
            "JournalEntry",
            target,
            "DELETE",
            f"{old_status} journal entries cannot be deleted",
        )


def _parent_locked(line) -> bool:
    entry = line.entry
    if entry is None:
        return False
    return _persisted_value(entry, "status") in _LOCKED_ENTRY_STATUSES


def _check_journal_line_immutability(mapper, connection, target):
    """Prevent updates to JournalLine once the parent entry has left DRAFT."""
    if _parent_locked(target) and _changed_fields(target):
        _block(
            "JournalLine",
            target,
            "UPDATE",
            "Journal lines cannot be modified after parent entry is posted",
        )


def _check_journal_line_delete(mapper, connection, target):
    """Prevent deletion of JournalLine once the parent entry has left DRAFT."""
    if _parent_locked(target):
        _block(
            "JournalLine",
            target,
            "DELETE",
            "Journal lines cannot be deleted after parent entry is posted",
        )


# =============================================================================
# Revision logs and approvals
# =============================================================================


def _check_revision_log_immutability(mapper, connection, target):
    """
    A pending revision may only record its decision; a decided one is frozen.
    """
    old_status = _persisted_value(target, "status")
    changed = _changed_fields(target)
    if not changed:
        return

    if old_status == RevisionStatus.PENDING:
        forbidden = [f for f in changed if f not in REVISION_DECISION_FIELDS]
        if not forbidden:
            return
        _block(
            "JournalRevisionLog",
            target,
            "UPDATE",
            f"Cannot modify field(s) {forbidden} on a revision request",
            fields=forbidden,
        )

    _block(
        "JournalRevisionLog",
        target,
        "UPDATE",
        f"Revision is already {old_status} and cannot be modified",
        fields=changed,
    )


def _check_revision_log_delete(mapper, connection, target):
    """Revision logs are permanent records."""
    _block(
        "JournalRevisionLog",
        target,
        "DELETE",
        "Revision logs cannot be deleted",
    )


def _check_approval_immutability(mapper, connection, target):
    """Prevent updates to approvals that reached a terminal status."""
    old_status = _persisted_value(target, "status")
    if old_status in (ApprovalStatus.APPROVED, ApprovalStatus.REJECTED):
        changed = _changed_fields(target)
        if changed:
            _block(
                "Approval",
                target,
                "UPDATE",
                f"Approval is already {old_status} and cannot be modified",
                fields=changed,
            )


def _check_approval_delete(mapper, connection, target):
    """Approvals are permanent records."""
    _block("Approval", target, "DELETE", "Approvals cannot be deleted")


# =============================================================================
# Account structural immutability
# =============================================================================
#
# Structural fields (account_type, normal_balance, code) determine how every
# historical line is reported.  They are locked as soon as the account, or
# any descendant, carries a journal line.  Display and organizational fields
# stay editable.
# =============================================================================


def _account_has_line_references(connection, account_id: str) -> bool:
    """True if the account OR ANY OF ITS DESCENDANTS has journal lines."""
    result = connection.execute(
        text("""
            WITH RECURSIVE account_tree AS (
                SELECT id FROM accounts WHERE id = :account_id
                UNION ALL
                SELECT a.id
                FROM accounts a
                JOIN account_tree t ON a.parent_id = t.id
            )
            SELECT EXISTS (
                SELECT 1 FROM journal_lines jl
                WHERE jl.account_id IN (SELECT id FROM account_tree)
            )
        """),
        {"account_id": account_id},
    )
    return bool(result.scalar())


def _check_account_structural_immutability(mapper, connection, target):
    """Prevent changes to structural fields on accounts referenced by lines."""
    changed = [
        field
        for field in sorted(ACCOUNT_STRUCTURAL_FIELDS)
        if get_history(target, field).has_changes()
    ]
    if not changed:
        return

    if _account_has_line_references(connection, str(target.id)):
        _block(
            "Account",
            target,
            "UPDATE",
            (
                f"Cannot modify structural field(s) {changed} "
                "on account referenced by journal lines"
            ),
            fields=changed,
        )


def _check_account_delete(mapper, connection, target):
    """Accounts are deactivated, never deleted."""
    _block(
        "Account",
        target,
        "DELETE",
        "Accounts cannot be deleted; deactivate instead",
    )


# =============================================================================
# Closing periods
# =============================================================================


def _check_closing_period_delete(mapper, connection, target):
    """Only an OPEN period may be deleted."""
    old_status = _persisted_value(target, "status")
    if old_status != PeriodStatus.OPEN:
        _block(
            "ClosingPeriod",
            target,
            "DELETE",
            f"Period {target.period_code} is {old_status} and cannot be deleted",
        )


# =============================================================================
# Registration
# =============================================================================


def _listeners():
    from ledger_kernel.models.account import Account
    from ledger_kernel.models.approval import Approval
    from ledger_kernel.models.closing_period import ClosingPeriod
    from ledger_kernel.models.journal import JournalEntry, JournalLine
    from ledger_kernel.models.revision_log import JournalRevisionLog

    return (
        (JournalEntry, "before_update", _check_journal_entry_immutability),
        (JournalEntry, "before_delete", _check_journal_entry_delete),
        (JournalLine, "before_update", _check_journal_line_immutability),
        (JournalLine, "before_delete", _check_journal_line_delete),
        (JournalRevisionLog, "before_update", _check_revision_log_immutability),
        (JournalRevisionLog, "before_delete", _check_revision_log_delete),
        (Approval, "before_update", _check_approval_immutability),
        (Approval, "before_delete", _check_approval_delete),
        (Account, "before_update", _check_account_structural_immutability),
        (Account, "before_delete", _check_account_delete),
        (ClosingPeriod, "before_delete", _check_closing_period_delete),
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Call once at startup, after the models are importable and before any
    database writes.  Registering twice is a no-op.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
