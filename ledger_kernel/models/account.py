"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for the Chart of Accounts -- the target of
    every journal line.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/values.py only.

Invariants enforced:
    - ``code`` is unique (UNIQUE constraint).
    - ``level`` equals parent.level + 1, or 1 for a root (maintained by
      AccountService on create and reparent).
    - Structural fields (account_type, normal_balance, code) are immutable
      once referenced by journal lines (db/immutability.py).
    - Accounts are never physically deleted; ``is_active`` is the only
      supported retirement.

Failure modes:
    - IntegrityError on duplicate code (services check first and raise
      DuplicateAccountCodeError).
    - ImmutabilityViolationError on DELETE or on a structural change after
      first use.

Audit relevance:
    Account rows define how every historical line is reported.  Locking the
    structural fields after first use keeps past reports stable.
"""

from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.domain.dtos import AccountInfo
from ledger_kernel.domain.values import AccountType, NormalBalance


class Account(TrackedBase):
    """
    A node in the chart-of-accounts tree.

    Contract:
        The parent is stored as ``parent_id``; the tree is walked through
        ``parent`` / ``children``.  An account's type always equals its
        parent's type.

    Non-goals:
        - Cycle detection lives in AccountService, not in the mapping.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        Index("idx_account_parent", "parent_id"),
        Index("idx_account_type", "account_type"),
    )

    code: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )

    account_type: Mapped[AccountType] = mapped_column(
        String(20),
        nullable=False,
    )

    sub_type: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )

    normal_balance: Mapped[NormalBalance] = mapped_column(
        String(10),
        nullable=False,
    )

    parent_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=True,
    )

    level: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    parent: Mapped["Account | None"] = relationship(
        remote_side="Account.id",
        back_populates="children",
        foreign_keys=[parent_id],
    )

    children: Mapped[list["Account"]] = relationship(
        back_populates="parent",
        foreign_keys=[parent_id],
    )

    def __repr__(self) -> str:
        return f"<Account {self.code} {self.name}>"

    @property
    def is_debit_normal(self) -> bool:
        return self.normal_balance == NormalBalance.DEBIT

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    def to_dto(self) -> AccountInfo:
        return AccountInfo(
            id=self.id,
            code=self.code,
            name=self.name,
            account_type=AccountType(self.account_type),
            normal_balance=NormalBalance(self.normal_balance),
            sub_type=self.sub_type,
            parent_id=self.parent_id,
            level=self.level,
            is_active=self.is_active,
        )
