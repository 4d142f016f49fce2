"""
Typed exception hierarchy for the ledger kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the ledger (source-document adapters, the operator surface, batch
jobs) must branch on what went wrong without parsing message strings.  Every
exception therefore has:

  1. A dedicated class (catch by type, not message)
  2. A ``code`` class attribute (machine-readable, API-safe)
  3. Structured attributes (the specific unmet condition)

Example:

    try:
        ledger.post(entry_id, actor)
    except ClosedPeriodError as e:
        show_user(f"Period {e.period_code} is {e.period_status}")

``PENDING_APPROVAL`` is NOT an exception.  A posting that lands in a
soft-closed period returns a ``PostingResult`` the caller branches on.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerKernelError (base)
    |
    +-- ValidationError
    |   +-- ReasonTooShortError
    |
    +-- AccountError
    |   +-- DuplicateAccountCodeError
    |   +-- InvalidParentError
    |   +-- AccountCycleError
    |   +-- AccountNotFoundError
    |   +-- AccountInactiveError
    |
    +-- PostingError
    |   +-- EntryNotFoundError
    |   +-- EmptyEntryError
    |   +-- InvalidLineError
    |   +-- UnbalancedEntryError
    |   +-- AlreadyPostedError
    |
    +-- ReversalError
    |   +-- EntryNotPostedError
    |
    +-- PeriodError
    |   +-- PeriodNotFoundError
    |   +-- PeriodCodeExistsError
    |   +-- InvalidPeriodDatesError
    |   +-- PeriodOverlapError
    |   +-- PeriodStateError
    |   +-- ClosedPeriodError
    |   +-- CloseBlockedError
    |   +-- ReopenForbiddenError
    |   +-- ChecklistItemNotFoundError
    |   +-- PeriodTemplateNotFoundError
    |
    +-- WorkflowError
    |   +-- RevisionNotFoundError
    |   +-- ApprovalNotFoundError
    |   +-- AlreadyDecidedError
    |   +-- EscalationNotDueError
    |   +-- RevisionApplyError
    |   +-- ApprovalRequiredError
    |
    +-- AuthorizationError
    |   +-- InsufficientCapabilityError
    |   +-- ApproverNotAuthorizedError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError
        +-- IntegrityViolationError

===============================================================================
CATEGORIES
===============================================================================

ValidationError / AccountError / PostingError
    Caller-correctable.  Never retried automatically.
PeriodStateError / AlreadyPostedError / AlreadyDecidedError / ConcurrencyError
    Stale caller state.  Re-fetch, then decide whether to retry.
ClosedPeriodError / ReopenForbiddenError / AccountInactiveError / AuthorizationError
    Policy refusals surfaced to the end user with the unmet condition.
ImmutabilityError
    Data-integrity incidents.  Abort the transaction; never repaired silently.
===============================================================================
"""

from typing import Any


class LedgerKernelError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "LEDGER_KERNEL_ERROR"


# Validation


class ValidationError(LedgerKernelError):
    """Base exception for caller-correctable input errors."""

    code: str = "VALIDATION_ERROR"


class ReasonTooShortError(ValidationError):
    """A mandatory free-text justification is missing or too short."""

    code: str = "REASON_TOO_SHORT"

    def __init__(self, field: str, min_length: int, actual_length: int):
        self.field = field
        self.min_length = min_length
        self.actual_length = actual_length
        super().__init__(
            f"{field} must be at least {min_length} characters "
            f"(got {actual_length})"
        )


# Account-related exceptions


class AccountError(LedgerKernelError):
    """Base exception for chart-of-accounts errors."""

    code: str = "ACCOUNT_ERROR"


class DuplicateAccountCodeError(AccountError):
    """An account with this code already exists."""

    code: str = "DUPLICATE_CODE"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(f"Account code already exists: {account_code}")


class InvalidParentError(AccountError):
    """The proposed parent cannot hold this account."""

    code: str = "INVALID_PARENT"

    def __init__(self, account_code: str, parent_code: str, reason: str):
        self.account_code = account_code
        self.parent_code = parent_code
        self.reason = reason
        super().__init__(
            f"Account {account_code} cannot be placed under {parent_code}: {reason}"
        )


class AccountCycleError(AccountError):
    """Re-parenting would make an account its own ancestor."""

    code: str = "CYCLE_DETECTED"

    def __init__(self, account_code: str, parent_code: str):
        self.account_code = account_code
        self.parent_code = parent_code
        super().__init__(
            f"Moving {account_code} under {parent_code} would create a cycle"
        )


class AccountNotFoundError(AccountError):
    """Account was not found."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(f"Account not found: {account_code}")


class AccountInactiveError(AccountError):
    """Account is deactivated and rejects new postings."""

    code: str = "ACCOUNT_INACTIVE"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(f"Account is inactive: {account_code}")


# Posting-related exceptions


class PostingError(LedgerKernelError):
    """Base exception for journal entry errors."""

    code: str = "POSTING_ERROR"


class EntryNotFoundError(PostingError):
    """Journal entry was not found."""

    code: str = "ENTRY_NOT_FOUND"

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Journal entry not found: {entry_id}")


class EmptyEntryError(PostingError):
    """A journal entry needs at least two lines."""

    code: str = "EMPTY_ENTRY"

    def __init__(self, line_count: int):
        self.line_count = line_count
        super().__init__(
            f"Journal entry requires at least 2 lines, got {line_count}"
        )


class InvalidLineError(PostingError):
    """A journal line is malformed."""

    code: str = "INVALID_LINE"

    def __init__(self, line_index: int, reason: str):
        self.line_index = line_index
        self.reason = reason
        super().__init__(f"Invalid journal line {line_index}: {reason}")


class UnbalancedEntryError(PostingError):
    """Journal entry debits do not equal credits."""

    code: str = "UNBALANCED_ENTRY"

    def __init__(self, total_debit: str, total_credit: str, delta: str):
        self.total_debit = total_debit
        self.total_credit = total_credit
        self.delta = delta
        super().__init__(
            f"Unbalanced entry: debit={total_debit}, credit={total_credit}, "
            f"delta={delta}"
        )


class AlreadyPostedError(PostingError):
    """Entry is no longer a draft."""

    code: str = "ALREADY_POSTED"

    def __init__(self, entry_id: str, status: str):
        self.entry_id = entry_id
        self.status = status
        super().__init__(f"Journal entry {entry_id} is already {status}")


# Reversal-related exceptions


class ReversalError(LedgerKernelError):
    """Base exception for reversal errors."""

    code: str = "REVERSAL_ERROR"


class EntryNotPostedError(ReversalError):
    """Only posted entries can be reversed."""

    code: str = "ENTRY_NOT_POSTED"

    def __init__(self, entry_id: str, status: str):
        self.entry_id = entry_id
        self.status = status
        super().__init__(
            f"Cannot reverse entry {entry_id}: status is {status}, not posted"
        )


# Period-related exceptions


class PeriodError(LedgerKernelError):
    """Base exception for closing-period errors."""

    code: str = "PERIOD_ERROR"


class PeriodNotFoundError(PeriodError):
    """Closing period was not found."""

    code: str = "PERIOD_NOT_FOUND"

    def __init__(self, period_ref: str):
        self.period_ref = period_ref
        super().__init__(f"Closing period not found: {period_ref}")


class PeriodCodeExistsError(PeriodError):
    """A period with this code already exists."""

    code: str = "PERIOD_CODE_EXISTS"

    def __init__(self, period_code: str):
        self.period_code = period_code
        super().__init__(f"Closing period code already exists: {period_code}")


class InvalidPeriodDatesError(PeriodError):
    """Period dates violate start <= end <= cutoff <= hard close."""

    code: str = "INVALID_PERIOD_DATES"

    def __init__(self, period_code: str, reason: str):
        self.period_code = period_code
        self.reason = reason
        super().__init__(f"Invalid dates for period {period_code}: {reason}")


class PeriodOverlapError(PeriodError):
    """New period overlaps an existing period of the same type."""

    code: str = "PERIOD_OVERLAP"

    def __init__(
        self,
        new_period_code: str,
        existing_period_code: str,
        overlap_start: str,
        overlap_end: str,
    ):
        self.new_period_code = new_period_code
        self.existing_period_code = existing_period_code
        self.overlap_start = overlap_start
        self.overlap_end = overlap_end
        super().__init__(
            f"Period {new_period_code} overlaps with {existing_period_code} "
            f"({overlap_start} to {overlap_end})"
        )


class PeriodStateError(PeriodError):
    """Period is not in the state the transition requires."""

    code: str = "PERIOD_STATE_MISMATCH"

    def __init__(self, period_code: str, expected: str, actual: str):
        self.period_code = period_code
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Period {period_code} is {actual}, expected {expected}"
        )


class ClosedPeriodError(PeriodError):
    """Writes dated in this period are denied."""

    code: str = "CLOSED_PERIOD"

    def __init__(self, period_code: str, transaction_date: str, period_status: str):
        self.period_code = period_code
        self.transaction_date = transaction_date
        self.period_status = period_status
        super().__init__(
            f"Cannot write to period {period_code} ({period_status}) "
            f"for date {transaction_date}"
        )


class CloseBlockedError(PeriodError):
    """A close transition is blocked by one or more violations."""

    code: str = "CLOSE_BLOCKED"

    def __init__(self, period_code: str, target_status: str, violations: tuple[Any, ...]):
        self.period_code = period_code
        self.target_status = target_status
        self.violations = violations
        summary = "; ".join(v.message for v in violations)
        super().__init__(
            f"Cannot move period {period_code} to {target_status}: {summary}"
        )


class ReopenForbiddenError(PeriodError):
    """Reopening a hard-closed period is disabled by configuration."""

    code: str = "REOPEN_FORBIDDEN"

    def __init__(self, period_code: str, period_status: str):
        self.period_code = period_code
        self.period_status = period_status
        super().__init__(
            f"Period {period_code} cannot be reopened from {period_status}"
        )


class ChecklistItemNotFoundError(PeriodError):
    """Checklist item key does not exist on the period."""

    code: str = "CHECKLIST_ITEM_NOT_FOUND"

    def __init__(self, period_code: str, item_key: str):
        self.period_code = period_code
        self.item_key = item_key
        super().__init__(f"Period {period_code} has no checklist item {item_key}")


class PeriodTemplateNotFoundError(PeriodError):
    """No configured period template has this code."""

    code: str = "PERIOD_TEMPLATE_NOT_FOUND"

    def __init__(self, template_code: str):
        self.template_code = template_code
        super().__init__(f"Period template not found: {template_code}")


# Workflow (revision / approval) exceptions


class WorkflowError(LedgerKernelError):
    """Base exception for revision and approval workflow errors."""

    code: str = "WORKFLOW_ERROR"


class RevisionNotFoundError(WorkflowError):
    """Revision log was not found."""

    code: str = "REVISION_NOT_FOUND"

    def __init__(self, revision_id: str):
        self.revision_id = revision_id
        super().__init__(f"Revision log not found: {revision_id}")


class ApprovalNotFoundError(WorkflowError):
    """Approval was not found."""

    code: str = "APPROVAL_NOT_FOUND"

    def __init__(self, approval_id: str):
        self.approval_id = approval_id
        super().__init__(f"Approval not found: {approval_id}")


class AlreadyDecidedError(WorkflowError):
    """Revision or approval has already reached a terminal status."""

    code: str = "ALREADY_DECIDED"

    def __init__(self, entity_type: str, entity_id: str, status: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.status = status
        super().__init__(f"{entity_type} {entity_id} is already {status}")


class EscalationNotDueError(WorkflowError):
    """Approval has not yet passed its expiry."""

    code: str = "ESCALATION_NOT_DUE"

    def __init__(self, approval_id: str, expires_at: str | None):
        self.approval_id = approval_id
        self.expires_at = expires_at
        super().__init__(
            f"Approval {approval_id} is not due for escalation (expires_at={expires_at})"
        )


class RevisionApplyError(WorkflowError):
    """The approved mutation could not be applied."""

    code: str = "REVISION_APPLY_FAILED"

    def __init__(self, revision_id: str, reason: str):
        self.revision_id = revision_id
        self.reason = reason
        super().__init__(f"Cannot apply revision {revision_id}: {reason}")


class ApprovalRequiredError(WorkflowError):
    """A source document needs an approved approval before it may post."""

    code: str = "APPROVAL_REQUIRED"

    def __init__(self, record_ref: str, approval_status: str | None):
        self.record_ref = record_ref
        self.approval_status = approval_status
        super().__init__(
            f"{record_ref} requires an approved approval (current: {approval_status or 'none'})"
        )


# Authorization exceptions


class AuthorizationError(LedgerKernelError):
    """Base exception for capability and role refusals."""

    code: str = "AUTHORIZATION_ERROR"


class InsufficientCapabilityError(AuthorizationError):
    """Actor lacks the capability the operation requires."""

    code: str = "INSUFFICIENT_CAPABILITY"

    def __init__(self, actor_id: str, capability: str, operation: str):
        self.actor_id = actor_id
        self.capability = capability
        self.operation = operation
        super().__init__(
            f"Actor {actor_id} needs capability {capability} to {operation}"
        )


class ApproverNotAuthorizedError(AuthorizationError):
    """Actor does not hold the role assigned to the current approval level."""

    code: str = "APPROVER_NOT_AUTHORIZED"

    def __init__(self, approval_id: str, actor_id: str, required_role: str):
        self.approval_id = approval_id
        self.actor_id = actor_id
        self.required_role = required_role
        super().__init__(
            f"Actor {actor_id} cannot decide approval {approval_id}: "
            f"role {required_role} required"
        )


# Concurrency exceptions


class ConcurrencyError(LedgerKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Row was modified by another transaction since it was read."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Immutability and integrity exceptions


class ImmutabilityError(LedgerKernelError):
    """Base exception for immutability and integrity errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an immutable record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


class IntegrityViolationError(ImmutabilityError):
    """Stored data contradicts an invariant it was written under."""

    code: str = "INTEGRITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Integrity violation on {entity_type} {entity_id}: {reason}"
        )
