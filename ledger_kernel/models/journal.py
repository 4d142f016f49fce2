"""
Module: ledger_kernel.models.journal
Responsibility: ORM persistence for journal entries and journal lines -- the
    permanent financial record.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/values.py only.

Invariants enforced:
    - ``entry_number`` is unique (JE-YYYY-MM-NNNN, allocated by
      SequenceService; not required to be gapless).
    - Each line has exactly one nonzero side, both sides >= 0 (CHECK
      constraints, and validated by LedgerService before flush).
    - total_debit / total_credit are written from the lines in the same
      flush; ``is_balanced`` recomputes from the lines for read-side checks.
    - Posted and reversed entries, and their lines, are immutable
      (db/immutability.py).  The only permitted change to a posted entry is
      status POSTED -> REVERSED.

Failure modes:
    - IntegrityError on duplicate entry_number or CHECK violation.
    - ImmutabilityViolationError on UPDATE/DELETE of posted rows.

Audit relevance:
    JournalEntry and JournalLine rows are the authoritative financial
    record.  Every balance and report derives from them.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UTCDateTime, UUIDString
from ledger_kernel.domain.values import JournalEntryStatus

if TYPE_CHECKING:
    from ledger_kernel.models.account import Account


class JournalEntry(TrackedBase):
    """
    Journal entry header -- the atomic unit of double-entry accounting.

    Contract:
        Created as DRAFT by an adapter, POSTED by LedgerService after the
        admission check, and REVERSED when an equal-and-opposite entry
        referencing it via ``reversal_of_id`` is posted.

    Guarantees:
        - Debits == Credits whenever status != DRAFT.
        - Lines are ordered by ``line_number``.
    """

    __tablename__ = "journal_entries"

    __table_args__ = (
        Index("idx_journal_transaction_date", "transaction_date"),
        Index("idx_journal_status", "status"),
        Index("idx_journal_reference", "reference_type", "reference_number"),
    )

    entry_number: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        unique=True,
    )

    transaction_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    # Optional link to the producing source document
    reference_type: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )

    reference_number: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    description: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
        default="",
    )

    total_debit: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=Decimal("0"),
    )

    total_credit: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=Decimal("0"),
    )

    status: Mapped[JournalEntryStatus] = mapped_column(
        String(10),
        nullable=False,
        default=JournalEntryStatus.DRAFT,
    )

    posted_by_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    posted_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )

    # Set on reversal entries; points at the entry being negated
    reversal_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=True,
    )

    lines: Mapped[list["JournalLine"]] = relationship(
        back_populates="entry",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="JournalLine.line_number",
    )

    reversal_of: Mapped["JournalEntry | None"] = relationship(
        remote_side="JournalEntry.id",
        foreign_keys=[reversal_of_id],
    )

    def __repr__(self) -> str:
        return f"<JournalEntry {self.entry_number} status={self.status}>"

    @property
    def is_draft(self) -> bool:
        return self.status == JournalEntryStatus.DRAFT

    @property
    def is_posted(self) -> bool:
        return self.status == JournalEntryStatus.POSTED

    @property
    def is_reversed(self) -> bool:
        return self.status == JournalEntryStatus.REVERSED

    @property
    def line_debit_sum(self) -> Decimal:
        return sum((line.debit for line in self.lines), Decimal("0"))

    @property
    def line_credit_sum(self) -> Decimal:
        return sum((line.credit for line in self.lines), Decimal("0"))

    @property
    def is_balanced(self) -> bool:
        """Read-side check computed from the lines, not the stored totals."""
        return self.line_debit_sum == self.line_credit_sum


class JournalLine(TrackedBase):
    """
    One debit or credit line within a journal entry.

    Contract:
        Belongs to exactly one JournalEntry and references exactly one
        Account.  Immutable once the parent leaves DRAFT.
    """

    __tablename__ = "journal_lines"

    __table_args__ = (
        Index("idx_line_entry", "journal_entry_id"),
        Index("idx_line_account", "account_id"),
        CheckConstraint("debit >= 0 AND credit >= 0", name="ck_line_non_negative"),
        CheckConstraint(
            "(debit > 0 AND credit = 0) OR (credit > 0 AND debit = 0)",
            name="ck_line_one_side",
        ),
    )

    journal_entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=False,
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    line_number: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
    )

    debit: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=Decimal("0"),
    )

    credit: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=Decimal("0"),
    )

    description: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    entry: Mapped["JournalEntry"] = relationship(
        back_populates="lines",
    )

    account: Mapped["Account"] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return f"<JournalLine {self.line_number} debit={self.debit} credit={self.credit}>"
