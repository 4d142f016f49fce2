"""
LedgerService -- double-entry journal persistence.

Responsibility:
    Creates balanced draft journal entries, posts them, reverses posted
    entries, and applies corrections (update / delete) -- each gated by the
    closing period admission check.  When admission requires approval the
    mutation is recorded as a revision request instead of being applied.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by PostingOrchestrator and the source-document adapters.
    Depends on AccountService (postable accounts), SequenceService (entry
    numbers), ClosingPeriodService (admission) and RevisionService (pending
    approvals).  Registers itself as the JOURNAL_ENTRY revision applier.

Invariants enforced:
    - Every non-draft entry has Sum(debit) == Sum(credit) over its lines,
      at least two lines, and exactly one nonzero side per line.
    - Posting happens exactly once: the entry row is locked and a second
      ``post`` raises AlreadyPostedError.
    - Posted entries are never edited.  Corrections reverse the entry (all
      lines swapped, linked by ``reversal_of_id``) and, for an update, post
      a replacement.  The original's lines are untouched.
    - A hard-closed date is never written without an approved revision.

Failure modes:
    - EmptyEntryError, InvalidLineError, UnbalancedEntryError.
    - AccountNotFoundError, AccountInactiveError.
    - EntryNotFoundError, AlreadyPostedError, EntryNotPostedError.
    - ClosedPeriodError: admission DENIED.
    - IntegrityViolationError: stored totals disagree with the lines.
      Logged at ERROR as a data integrity incident.

Audit relevance:
    Entry numbers are allocated under a row lock; posting stamps poster and
    time; reversal entries reference the original by id and number.
    ``PENDING_APPROVAL`` results identify the revision awaiting a decision.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_config.schema import ClosingSettings
from ledger_kernel.domain.actor import Actor
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import (
    ZERO,
    AdmissionResult,
    JournalEntryInfo,
    JournalLineInfo,
    LineSpec,
    PostingResult,
    PostingStatus,
    RevisionInfo,
    snapshot_lines,
)
from ledger_kernel.domain.values import (
    JournalEntryStatus,
    RecordKind,
    RecordRef,
    RevisionAction,
)
from ledger_kernel.exceptions import (
    AccountInactiveError,
    AlreadyPostedError,
    ClosedPeriodError,
    EmptyEntryError,
    EntryNotFoundError,
    EntryNotPostedError,
    IntegrityViolationError,
    InvalidLineError,
    UnbalancedEntryError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.journal import JournalEntry, JournalLine
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.closing_period_service import ClosingPeriodService
from ledger_kernel.services.revision_service import RevisionService
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.ledger")

REVERSAL_REFERENCE_TYPE = "reversal"


def entry_to_dto(entry: JournalEntry) -> JournalEntryInfo:
    return JournalEntryInfo(
        id=entry.id,
        entry_number=entry.entry_number,
        transaction_date=entry.transaction_date,
        description=entry.description,
        reference_type=entry.reference_type,
        reference_number=entry.reference_number,
        status=JournalEntryStatus(entry.status),
        total_debit=Decimal(str(entry.total_debit)),
        total_credit=Decimal(str(entry.total_credit)),
        lines=tuple(
            JournalLineInfo(
                id=line.id,
                line_number=line.line_number,
                account_id=line.account_id,
                account_code=line.account.code,
                debit=Decimal(str(line.debit)),
                credit=Decimal(str(line.credit)),
                description=line.description,
            )
            for line in entry.lines
        ),
        created_by_id=entry.created_by_id,
        posted_by_id=entry.posted_by_id,
        posted_at=entry.posted_at,
        reversal_of_id=entry.reversal_of_id,
    )


class LedgerService(BaseService[JournalEntry]):
    """
    Service for journal entry writes.

    Contract:
        Accepts ``LineSpec`` sequences and an ``Actor``; returns
        ``JournalEntryInfo`` / ``PostingResult`` DTOs.  ``PENDING_APPROVAL``
        is a result, not an exception.

    Guarantees:
        - Validation happens before any row is written.
        - A repeated pending request for the same entry and action returns
          the existing revision instead of a duplicate.

    Non-goals:
        - Does NOT call ``session.commit()`` -- PostingOrchestrator or the
          adapter owns the transaction.
        - Does NOT decide revisions (see RevisionService).
    """

    model = JournalEntry
    not_found = EntryNotFoundError

    def __init__(
        self,
        session: Session,
        settings: ClosingSettings,
        periods: ClosingPeriodService,
        revisions: RevisionService,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._settings = settings
        self._periods = periods
        self._revisions = revisions
        self._clock = clock or SystemClock()
        self._accounts = AccountService(session)
        self._sequences = SequenceService(session)
        revisions.register_applier(RecordKind.JOURNAL_ENTRY, self._apply_revision)

    # =========================================================================
    # Drafts
    # =========================================================================

    def create_draft(
        self,
        transaction_date: date,
        description: str,
        lines: Iterable[LineSpec],
        actor_id: UUID,
        reference_type: str | None = None,
        reference_number: str | None = None,
    ) -> JournalEntryInfo:
        """
        Validate ``lines`` and persist a DRAFT entry.

        Raises:
            EmptyEntryError, InvalidLineError, AccountNotFoundError,
            AccountInactiveError, UnbalancedEntryError.
        """
        lines = tuple(lines)
        accounts = self._validate_lines(lines)

        if self._settings.auto_create_period:
            self._periods.ensure_period_for(transaction_date, actor_id)

        entry = JournalEntry(
            entry_number=self._sequences.next_entry_number(transaction_date),
            transaction_date=transaction_date,
            description=description or "",
            reference_type=reference_type,
            reference_number=reference_number,
            status=JournalEntryStatus.DRAFT,
            created_by_id=actor_id,
        )
        self._set_lines(entry, lines, accounts, actor_id)
        self.session.add(entry)
        self.session.flush()

        logger.info(
            "journal_draft_created",
            extra={
                "entry_id": str(entry.id),
                "entry_number": entry.entry_number,
                "transaction_date": str(transaction_date),
                "line_count": len(lines),
                "total_debit": str(entry.total_debit),
                "reference_type": reference_type,
                "reference_number": reference_number,
            },
        )
        return entry_to_dto(entry)

    # =========================================================================
    # Posting and reversal
    # =========================================================================

    def post(self, entry_id: UUID, actor: Actor, reason: str | None = None) -> PostingResult:
        """
        Post a draft entry.

        ALLOWED posts immediately; REQUIRES_APPROVAL records a create
        revision and returns PENDING_APPROVAL; DENIED raises.

        Raises:
            AlreadyPostedError: entry is not a draft.
            UnbalancedEntryError / IntegrityViolationError: lines corrupted.
            ClosedPeriodError: admission denied.
        """
        entry = self._lock_row(entry_id)
        if entry.status != JournalEntryStatus.DRAFT:
            logger.warning(
                "post_rejected_not_draft",
                extra={"entry_id": str(entry.id), "status": str(entry.status)},
            )
            raise AlreadyPostedError(str(entry.id), JournalEntryStatus(entry.status).value)

        self._revalidate(entry)
        admission = self._admit(entry.transaction_date, actor)

        if admission.requires_approval:
            snapshot = entry_to_dto(entry).to_snapshot()
            return self._pending(
                entry,
                RevisionAction.CREATE,
                admission,
                actor,
                reason or self._default_reason("Posting", entry, admission),
                old_snapshot=None,
                new_snapshot=snapshot,
            )

        self._mark_posted(entry, actor.id)
        return PostingResult(status=PostingStatus.POSTED, entry=entry_to_dto(entry), admission=admission)

    def reverse(
        self,
        entry_id: UUID,
        actor: Actor,
        reversal_date: date | None = None,
        reason: str | None = None,
    ) -> PostingResult:
        """
        Reverse a posted entry with an equal-and-opposite posted entry.

        ``reversal_date`` defaults to the original's date and is what the
        admission check is asked about.

        Raises:
            EntryNotPostedError: entry is draft or already reversed.
            ClosedPeriodError: admission denied.
        """
        entry = self._lock_row(entry_id)
        if entry.status != JournalEntryStatus.POSTED:
            raise EntryNotPostedError(str(entry.id), JournalEntryStatus(entry.status).value)

        reversal_date = reversal_date or entry.transaction_date
        admission = self._admit(reversal_date, actor)

        if admission.requires_approval:
            return self._pending(
                entry,
                RevisionAction.DELETE,
                admission,
                actor,
                reason or self._default_reason("Reversal of", entry, admission),
                old_snapshot=entry_to_dto(entry).to_snapshot(),
                new_snapshot={"reversal_date": reversal_date.isoformat()},
            )

        reversal = self._create_reversal(entry, reversal_date, actor.id)
        return PostingResult(
            status=PostingStatus.REVERSED,
            entry=entry_to_dto(entry),
            reversal=entry_to_dto(reversal),
            admission=admission,
        )

    # =========================================================================
    # Corrections
    # =========================================================================

    def update_entry(
        self,
        entry_id: UUID,
        lines: Iterable[LineSpec],
        actor: Actor,
        description: str | None = None,
        reason: str | None = None,
    ) -> PostingResult:
        """
        Replace an entry's lines (and optionally its description).

        A draft is edited in place.  A posted entry is reversed and a
        replacement posted.  In a non-open period an update revision is
        requested instead.
        """
        lines = tuple(lines)
        self._validate_lines(lines)

        entry = self._lock_row(entry_id)
        if entry.status == JournalEntryStatus.REVERSED:
            raise AlreadyPostedError(str(entry.id), JournalEntryStatus.REVERSED.value)

        admission = self._admit(entry.transaction_date, actor)
        if admission.requires_approval:
            current = entry_to_dto(entry)
            return self._pending(
                entry,
                RevisionAction.UPDATE,
                admission,
                actor,
                reason or self._default_reason("Correction of", entry, admission),
                old_snapshot=current.to_snapshot(),
                new_snapshot=self._proposed_snapshot(current, lines, description),
            )

        result = self._apply_update(entry, lines, description, actor.id)
        return PostingResult(
            status=result.status,
            entry=result.entry,
            reversal=result.reversal,
            admission=admission,
        )

    def delete_entry(self, entry_id: UUID, actor: Actor, reason: str | None = None) -> PostingResult:
        """
        Remove an entry: a draft is deleted, a posted entry is reversed.

        In a non-open period a delete revision is requested instead.
        """
        entry = self._lock_row(entry_id)
        if entry.status == JournalEntryStatus.REVERSED:
            raise AlreadyPostedError(str(entry.id), JournalEntryStatus.REVERSED.value)

        admission = self._admit(entry.transaction_date, actor)
        if admission.requires_approval:
            return self._pending(
                entry,
                RevisionAction.DELETE,
                admission,
                actor,
                reason or self._default_reason("Deletion of", entry, admission),
                old_snapshot=entry_to_dto(entry).to_snapshot(),
                new_snapshot=None,
            )

        result = self._apply_delete(entry, entry.transaction_date, actor.id)
        return PostingResult(
            status=result.status,
            entry=result.entry,
            reversal=result.reversal,
            admission=admission,
        )

    # =========================================================================
    # Queries
    # =========================================================================

    def get_entry(self, entry_id: UUID) -> JournalEntryInfo:
        entry = self.session.get(JournalEntry, entry_id)
        if entry is None:
            raise EntryNotFoundError(str(entry_id))
        return entry_to_dto(entry)

    def get_entry_by_number(self, entry_number: str) -> JournalEntryInfo:
        entry = self.session.execute(
            select(JournalEntry).where(JournalEntry.entry_number == entry_number)
        ).scalar_one_or_none()
        if entry is None:
            raise EntryNotFoundError(entry_number)
        return entry_to_dto(entry)

    def find_by_reference(self, reference_type: str, reference_number: str) -> list[JournalEntryInfo]:
        entries = self.session.execute(
            select(JournalEntry)
            .where(
                JournalEntry.reference_type == reference_type,
                JournalEntry.reference_number == reference_number,
            )
            .order_by(JournalEntry.entry_number)
        ).scalars().all()
        return [entry_to_dto(e) for e in entries]

    # =========================================================================
    # Revision applier
    # =========================================================================

    def _apply_revision(self, revision: RevisionInfo, approver: Actor) -> None:
        """Apply an approved JOURNAL_ENTRY revision, bypassing admission."""
        entry = self._lock_row(revision.record.record_id)
        poster_id = revision.revised_by_id

        if revision.action == RevisionAction.CREATE:
            if entry.status != JournalEntryStatus.DRAFT:
                raise AlreadyPostedError(str(entry.id), JournalEntryStatus(entry.status).value)
            self._revalidate(entry)
            self._mark_posted(entry, poster_id)

        elif revision.action == RevisionAction.UPDATE:
            if entry.status == JournalEntryStatus.REVERSED:
                raise AlreadyPostedError(str(entry.id), JournalEntryStatus.REVERSED.value)
            new_snapshot = revision.new_snapshot or {}
            self._apply_update(
                entry,
                snapshot_lines(new_snapshot),
                new_snapshot.get("description"),
                poster_id,
            )

        else:
            if entry.status == JournalEntryStatus.REVERSED:
                raise EntryNotPostedError(str(entry.id), JournalEntryStatus.REVERSED.value)
            reversal_date = entry.transaction_date
            if revision.new_snapshot and revision.new_snapshot.get("reversal_date"):
                reversal_date = date.fromisoformat(revision.new_snapshot["reversal_date"])
            self._apply_delete(entry, reversal_date, poster_id)

        logger.info(
            "journal_revision_applied",
            extra={
                "entry_id": str(entry.id),
                "revision_id": str(revision.id),
                "action": revision.action.value,
                "approver_id": str(approver.id),
            },
        )

    # =========================================================================
    # Internals
    # =========================================================================

    def _admit(self, transaction_date: date, actor: Actor) -> AdmissionResult:
        admission = self._periods.can_post_or_mutate(transaction_date, actor.capabilities)
        if admission.is_denied:
            raise ClosedPeriodError(
                admission.period_code or "",
                str(transaction_date),
                admission.period_status.value if admission.period_status else "unknown",
            )
        return admission

    def _validate_lines(self, lines: Sequence[LineSpec]) -> list[Account]:
        if len(lines) < 2:
            raise EmptyEntryError(len(lines))

        accounts: list[Account] = []
        total_debit = ZERO
        total_credit = ZERO
        for index, line in enumerate(lines):
            debit = Decimal(line.debit)
            credit = Decimal(line.credit)
            if debit < ZERO or credit < ZERO:
                raise InvalidLineError(index, "amounts must not be negative")
            if (debit > ZERO) == (credit > ZERO):
                raise InvalidLineError(index, "exactly one of debit or credit must be nonzero")
            accounts.append(self._accounts.get_postable(line.account_code))
            total_debit += debit
            total_credit += credit

        if total_debit != total_credit:
            raise UnbalancedEntryError(
                str(total_debit), str(total_credit), str(total_debit - total_credit)
            )
        return accounts

    def _set_lines(
        self,
        entry: JournalEntry,
        lines: Sequence[LineSpec],
        accounts: Sequence[Account],
        actor_id: UUID,
    ) -> None:
        entry.lines = [
            JournalLine(
                account=account,
                line_number=number,
                debit=Decimal(spec.debit),
                credit=Decimal(spec.credit),
                description=spec.description,
                created_by_id=actor_id,
            )
            for number, (spec, account) in enumerate(zip(lines, accounts), start=1)
        ]
        entry.total_debit = sum((Decimal(spec.debit) for spec in lines), ZERO)
        entry.total_credit = sum((Decimal(spec.credit) for spec in lines), ZERO)

    def _revalidate(self, entry: JournalEntry) -> None:
        """Re-check a stored draft from its lines before it becomes final."""
        if len(entry.lines) < 2:
            raise EmptyEntryError(len(entry.lines))

        line_debit = entry.line_debit_sum
        line_credit = entry.line_credit_sum
        if line_debit != line_credit:
            self._integrity_incident(entry, "lines are unbalanced", line_debit, line_credit)
            raise UnbalancedEntryError(
                str(line_debit), str(line_credit), str(line_debit - line_credit)
            )
        if entry.total_debit != line_debit or entry.total_credit != line_credit:
            self._integrity_incident(entry, "stored totals disagree with lines", line_debit, line_credit)
            raise IntegrityViolationError(
                "JournalEntry",
                str(entry.id),
                f"stored totals {entry.total_debit}/{entry.total_credit} != "
                f"line sums {line_debit}/{line_credit}",
            )
        for line in entry.lines:
            if not line.account.is_active:
                raise AccountInactiveError(line.account.code)

    def _integrity_incident(
        self,
        entry: JournalEntry,
        problem: str,
        line_debit: Decimal,
        line_credit: Decimal,
    ) -> None:
        logger.error(
            "data_integrity_incident",
            extra={
                "entry_id": str(entry.id),
                "entry_number": entry.entry_number,
                "problem": problem,
                "stored_total_debit": str(entry.total_debit),
                "stored_total_credit": str(entry.total_credit),
                "line_debit": str(line_debit),
                "line_credit": str(line_credit),
            },
        )

    def _mark_posted(self, entry: JournalEntry, poster_id: UUID) -> None:
        entry.status = JournalEntryStatus.POSTED
        entry.posted_by_id = poster_id
        entry.posted_at = self._clock.now()
        entry.updated_by_id = poster_id
        self.session.flush()
        logger.info(
            "journal_entry_posted",
            extra={
                "entry_id": str(entry.id),
                "entry_number": entry.entry_number,
                "transaction_date": str(entry.transaction_date),
                "total_debit": str(entry.total_debit),
                "actor_id": str(poster_id),
            },
        )

    def _create_reversal(self, entry: JournalEntry, reversal_date: date, actor_id: UUID) -> JournalEntry:
        """Post the mirror of ``entry`` and mark the original reversed."""
        reversal = JournalEntry(
            entry_number=self._sequences.next_entry_number(reversal_date),
            transaction_date=reversal_date,
            description=f"Reversal of {entry.entry_number}",
            reference_type=REVERSAL_REFERENCE_TYPE,
            reference_number=entry.entry_number,
            status=JournalEntryStatus.POSTED,
            posted_by_id=actor_id,
            posted_at=self._clock.now(),
            reversal_of_id=entry.id,
            total_debit=entry.total_credit,
            total_credit=entry.total_debit,
            created_by_id=actor_id,
        )
        reversal.lines = [
            JournalLine(
                account=line.account,
                line_number=line.line_number,
                debit=line.credit,
                credit=line.debit,
                description=line.description,
                created_by_id=actor_id,
            )
            for line in entry.lines
        ]
        self.session.add(reversal)
        entry.status = JournalEntryStatus.REVERSED
        self.session.flush()

        logger.info(
            "journal_entry_reversed",
            extra={
                "entry_id": str(entry.id),
                "entry_number": entry.entry_number,
                "reversal_id": str(reversal.id),
                "reversal_number": reversal.entry_number,
                "reversal_date": str(reversal_date),
                "actor_id": str(actor_id),
            },
        )
        return reversal

    def _apply_update(
        self,
        entry: JournalEntry,
        lines: Sequence[LineSpec],
        description: str | None,
        actor_id: UUID,
    ) -> PostingResult:
        accounts = self._validate_lines(lines)

        if entry.status == JournalEntryStatus.DRAFT:
            self._set_lines(entry, lines, accounts, actor_id)
            if description is not None:
                entry.description = description
            entry.updated_by_id = actor_id
            self.session.flush()
            logger.info(
                "journal_draft_updated",
                extra={"entry_id": str(entry.id), "line_count": len(lines)},
            )
            return PostingResult(status=PostingStatus.APPLIED, entry=entry_to_dto(entry))

        reversal = self._create_reversal(entry, entry.transaction_date, actor_id)
        replacement = JournalEntry(
            entry_number=self._sequences.next_entry_number(entry.transaction_date),
            transaction_date=entry.transaction_date,
            description=description if description is not None else entry.description,
            reference_type=entry.reference_type,
            reference_number=entry.reference_number,
            status=JournalEntryStatus.POSTED,
            posted_by_id=actor_id,
            posted_at=self._clock.now(),
            created_by_id=actor_id,
        )
        self._set_lines(replacement, lines, accounts, actor_id)
        self.session.add(replacement)
        self.session.flush()

        logger.info(
            "journal_entry_corrected",
            extra={
                "entry_id": str(entry.id),
                "reversal_id": str(reversal.id),
                "replacement_id": str(replacement.id),
                "replacement_number": replacement.entry_number,
            },
        )
        return PostingResult(
            status=PostingStatus.APPLIED,
            entry=entry_to_dto(replacement),
            reversal=entry_to_dto(reversal),
        )

    def _apply_delete(self, entry: JournalEntry, reversal_date: date, actor_id: UUID) -> PostingResult:
        if entry.status == JournalEntryStatus.DRAFT:
            snapshot = entry_to_dto(entry)
            self.session.delete(entry)
            self.session.flush()
            logger.info(
                "journal_draft_deleted",
                extra={"entry_id": str(snapshot.id), "entry_number": snapshot.entry_number},
            )
            return PostingResult(status=PostingStatus.APPLIED, entry=snapshot)

        reversal = self._create_reversal(entry, reversal_date, actor_id)
        return PostingResult(
            status=PostingStatus.REVERSED,
            entry=entry_to_dto(entry),
            reversal=entry_to_dto(reversal),
        )

    def _pending(
        self,
        entry: JournalEntry,
        action: RevisionAction,
        admission: AdmissionResult,
        actor: Actor,
        reason: str,
        old_snapshot: dict[str, Any] | None,
        new_snapshot: dict[str, Any] | None,
    ) -> PostingResult:
        record = RecordRef(RecordKind.JOURNAL_ENTRY, entry.id)
        revision = self._revisions.pending_for_record(record, action)
        if revision is None:
            revision = self._revisions.request_revision(
                period_id=admission.period_id,
                record=record,
                action=action,
                reason=reason,
                old_snapshot=old_snapshot,
                new_snapshot=new_snapshot,
                actor=actor,
            )
        else:
            logger.info(
                "revision_already_pending",
                extra={"entry_id": str(entry.id), "revision_id": str(revision.id)},
            )

        return PostingResult(
            status=PostingStatus.PENDING_APPROVAL,
            entry=entry_to_dto(entry),
            revision_id=revision.id,
            approval_id=revision.approval_id,
            admission=admission,
        )

    @staticmethod
    def _default_reason(verb: str, entry: JournalEntry, admission: AdmissionResult) -> str:
        status = admission.period_status.value if admission.period_status else "closed"
        return (
            f"{verb} {entry.entry_number} dated {entry.transaction_date.isoformat()} "
            f"in {status} period {admission.period_code}"
        )

    @staticmethod
    def _proposed_snapshot(
        current: JournalEntryInfo,
        lines: Sequence[LineSpec],
        description: str | None,
    ) -> dict[str, Any]:
        snapshot = current.to_snapshot()
        snapshot["description"] = description if description is not None else current.description
        snapshot["lines"] = [line.to_snapshot() for line in lines]
        snapshot["total_debit"] = str(sum((Decimal(line.debit) for line in lines), ZERO))
        snapshot["total_credit"] = str(sum((Decimal(line.credit) for line in lines), ZERO))
        return snapshot
