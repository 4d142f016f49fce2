"""
Module: ledger_kernel.selectors.account_selector
Responsibility: Read-only chart-of-accounts queries: resolution, hierarchy
    labels, children, balances and line history.  Balances are a derived
    view over the lines of posted and reversed entries (a reversed entry and
    its reversal net to zero); drafts never count.
Architecture position: Kernel > Selectors.  May import from models/,
    domain/ and selectors/base.py.

Failure modes:
    - AccountNotFoundError on an unknown code.
    - Returns zero balances and empty histories when nothing is posted.
"""

from collections import deque
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_kernel.domain.dtos import ZERO, AccountBalance, AccountInfo
from ledger_kernel.domain.values import JournalEntryStatus, NormalBalance
from ledger_kernel.exceptions import AccountNotFoundError
from ledger_kernel.models.account import Account
from ledger_kernel.models.journal import JournalEntry, JournalLine
from ledger_kernel.selectors.base import BaseSelector

# Entry statuses whose lines make up the ledger
BALANCE_STATUSES = (JournalEntryStatus.POSTED, JournalEntryStatus.REVERSED)


@dataclass(frozen=True)
class AccountHistoryLine:
    """One ledger line for an account with the running balance after it."""

    entry_id: UUID
    entry_number: str
    transaction_date: date
    entry_status: JournalEntryStatus
    description: str | None
    debit: Decimal
    credit: Decimal
    running_balance: Decimal


class AccountSelector(BaseSelector[Account]):
    """
    Selector for account queries.

    Guarantees:
        - Balances are signed by the account's normal balance.
        - All amounts are Decimal.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def resolve(self, code: str) -> AccountInfo:
        return self._require(code).to_dto()

    def full_code(self, code: str, separator: str = "-") -> str:
        """Ancestor codes joined root first, e.g. ``1-11-1101``."""
        return separator.join(a.code for a in self._ancestry(self._require(code)))

    def full_name(self, code: str, separator: str = " > ") -> str:
        """Ancestor names joined root first, e.g. ``Aset > Kas > Kas Besar``."""
        return separator.join(a.name for a in self._ancestry(self._require(code)))

    def children(self, code: str, include_inactive: bool = False) -> list[AccountInfo]:
        parent = self._require(code)
        query = select(Account).where(Account.parent_id == parent.id)
        if not include_inactive:
            query = query.where(Account.is_active.is_(True))
        return [a.to_dto() for a in self.session.execute(query.order_by(Account.code)).scalars()]

    def roots(self) -> list[AccountInfo]:
        accounts = self.session.execute(
            select(Account).where(Account.parent_id.is_(None)).order_by(Account.code)
        ).scalars()
        return [a.to_dto() for a in accounts]

    def balance(
        self,
        code: str,
        start_date: date | None = None,
        end_date: date | None = None,
        include_descendants: bool = False,
    ) -> AccountBalance:
        """
        Debit and credit totals for ``code`` between the dates (inclusive).

        ``include_descendants`` rolls up the whole subtree, which is how a
        header account such as ``Kas`` is reported.
        """
        account = self._require(code)
        account_ids = self._subtree_ids(account) if include_descendants else [account.id]

        query = (
            select(
                func.coalesce(func.sum(JournalLine.debit), 0),
                func.coalesce(func.sum(JournalLine.credit), 0),
            )
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .where(
                JournalLine.account_id.in_(account_ids),
                JournalEntry.status.in_(BALANCE_STATUSES),
            )
        )
        query = self._date_filter(query, start_date, end_date)
        total_debit, total_credit = self.session.execute(query).one()

        return AccountBalance(
            account_code=account.code,
            normal_balance=NormalBalance(account.normal_balance),
            total_debit=Decimal(str(total_debit or 0)),
            total_credit=Decimal(str(total_credit or 0)),
            start_date=start_date,
            end_date=end_date,
        )

    def history(
        self,
        code: str,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[AccountHistoryLine]:
        """Ledger lines for ``code`` in date order with a running balance.

        The running balance starts from the balance before ``start_date``.
        """
        account = self._require(code)
        debit_normal = account.normal_balance == NormalBalance.DEBIT

        running = ZERO
        if start_date is not None:
            opening = self.balance(code, end_date=date.fromordinal(start_date.toordinal() - 1))
            running = opening.balance

        query = (
            select(JournalLine, JournalEntry)
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .where(
                JournalLine.account_id == account.id,
                JournalEntry.status.in_(BALANCE_STATUSES),
            )
        )
        query = self._date_filter(query, start_date, end_date).order_by(
            JournalEntry.transaction_date,
            JournalEntry.entry_number,
            JournalLine.line_number,
        )

        history: list[AccountHistoryLine] = []
        for line, entry in self.session.execute(query).all():
            debit = Decimal(str(line.debit))
            credit = Decimal(str(line.credit))
            running += (debit - credit) if debit_normal else (credit - debit)
            history.append(
                AccountHistoryLine(
                    entry_id=entry.id,
                    entry_number=entry.entry_number,
                    transaction_date=entry.transaction_date,
                    entry_status=JournalEntryStatus(entry.status),
                    description=line.description or entry.description,
                    debit=debit,
                    credit=credit,
                    running_balance=running,
                )
            )
        return history

    # -- internals ---------------------------------------------------------

    def _require(self, code: str) -> Account:
        account = self.session.execute(
            select(Account).where(Account.code == code)
        ).scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(code)
        return account

    def _ancestry(self, account: Account) -> list[Account]:
        chain = [account]
        seen = {account.id}
        node = account
        while node.parent_id is not None and node.parent_id not in seen:
            node = self.session.get(Account, node.parent_id)
            if node is None:
                break
            seen.add(node.id)
            chain.append(node)
        chain.reverse()
        return chain

    def _subtree_ids(self, root: Account) -> list[UUID]:
        ids = [root.id]
        queue = deque([root.id])
        while queue:
            parent_id = queue.popleft()
            child_ids = self.session.execute(
                select(Account.id).where(Account.parent_id == parent_id)
            ).scalars().all()
            ids.extend(child_ids)
            queue.extend(child_ids)
        return ids

    @staticmethod
    def _date_filter(query, start_date: date | None, end_date: date | None):
        if start_date is not None:
            query = query.where(JournalEntry.transaction_date >= start_date)
        if end_date is not None:
            query = query.where(JournalEntry.transaction_date <= end_date)
        return query
