"""
AccountService -- chart-of-accounts maintenance.

Responsibility:
    Creates accounts, moves them within the tree, and activates or
    deactivates them.  Resolves account codes to postable accounts for the
    ledger.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by setup tooling and by LedgerService (``get_postable``).

Invariants enforced:
    - Account codes are unique.
    - An account's type equals its parent's type.
    - The tree has no cycles: a reparent walks the new parent's ancestors
      and refuses if it meets the account being moved.
    - ``level`` is parent.level + 1 (1 for a root), recomputed for the whole
      subtree on reparent.
    - Accounts are deactivated, never deleted (db/immutability.py).

Failure modes:
    - DuplicateAccountCodeError, InvalidParentError, AccountCycleError,
      AccountNotFoundError, AccountInactiveError.

Audit relevance:
    Creation, reparent and (de)activation are logged with the account code
    and actor.
"""

from collections import deque
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.dtos import AccountInfo
from ledger_kernel.domain.values import NATURAL_NORMAL_BALANCE, AccountType, NormalBalance
from ledger_kernel.exceptions import (
    AccountCycleError,
    AccountInactiveError,
    AccountNotFoundError,
    DuplicateAccountCodeError,
    InvalidParentError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.services.base import BaseService

logger = get_logger("services.account")


class AccountService(BaseService[Account]):
    """
    Service for chart-of-accounts writes.

    Contract:
        Accepts account codes, returns frozen ``AccountInfo`` DTOs.

    Non-goals:
        - Does NOT compute balances (see AccountSelector).
        - Does NOT call ``session.commit()``.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def create_account(
        self,
        code: str,
        name: str,
        account_type: AccountType,
        normal_balance: NormalBalance | None,
        actor_id: UUID,
        sub_type: str | None = None,
        parent_code: str | None = None,
    ) -> AccountInfo:
        """
        Create an account, optionally under ``parent_code``.

        ``normal_balance=None`` uses the natural side for ``account_type``.

        Raises:
            DuplicateAccountCodeError: ``code`` already exists.
            AccountNotFoundError: ``parent_code`` is unknown.
            InvalidParentError: parent has another type or is inactive.
        """
        account_type = AccountType(account_type)
        if self._get_by_code(code) is not None:
            raise DuplicateAccountCodeError(code)

        parent = None
        if parent_code is not None:
            parent = self._require(parent_code)
            self._validate_parent(code, account_type, parent)

        account = Account(
            code=code,
            name=name,
            account_type=account_type,
            normal_balance=(
                NormalBalance(normal_balance)
                if normal_balance is not None
                else NATURAL_NORMAL_BALANCE[account_type]
            ),
            sub_type=sub_type,
            parent_id=parent.id if parent is not None else None,
            level=parent.level + 1 if parent is not None else 1,
            is_active=True,
            created_by_id=actor_id,
        )
        self.session.add(account)
        self.session.flush()

        logger.info(
            "account_created",
            extra={
                "account_code": code,
                "account_type": account_type.value,
                "parent_code": parent_code,
                "actor_id": str(actor_id),
            },
        )
        return account.to_dto()

    def reparent(
        self,
        code: str,
        new_parent_code: str | None,
        actor_id: UUID,
    ) -> AccountInfo:
        """
        Move ``code`` (with its subtree) under ``new_parent_code``.

        ``None`` makes the account a root.

        Raises:
            AccountCycleError: new parent is the account or a descendant.
            InvalidParentError: type mismatch or inactive parent.
        """
        account = self._require(code)

        new_parent = None
        if new_parent_code is not None:
            new_parent = self._require(new_parent_code)
            self._check_no_cycle(account, new_parent)
            self._validate_parent(code, AccountType(account.account_type), new_parent)

        old_parent_id = account.parent_id
        account.parent_id = new_parent.id if new_parent is not None else None
        account.level = new_parent.level + 1 if new_parent is not None else 1
        account.updated_by_id = actor_id
        self._relevel_subtree(account, actor_id)
        self.session.flush()

        logger.info(
            "account_reparented",
            extra={
                "account_code": code,
                "old_parent_id": str(old_parent_id) if old_parent_id else None,
                "new_parent_code": new_parent_code,
                "actor_id": str(actor_id),
            },
        )
        return account.to_dto()

    def resolve(self, code: str) -> AccountInfo:
        return self._require(code).to_dto()

    def deactivate(self, code: str, actor_id: UUID) -> AccountInfo:
        """Stop new postings to ``code``; historical lines are unaffected."""
        return self._set_active(code, False, actor_id)

    def reactivate(self, code: str, actor_id: UUID) -> AccountInfo:
        return self._set_active(code, True, actor_id)

    def get_postable(self, code: str) -> Account:
        """
        ORM account for a new journal line (kernel-internal).

        Raises:
            AccountNotFoundError: unknown code.
            AccountInactiveError: account is deactivated.
        """
        account = self._require(code)
        if not account.is_active:
            raise AccountInactiveError(code)
        return account

    # -- internals ---------------------------------------------------------

    def _get_by_code(self, code: str) -> Account | None:
        return self.session.execute(
            select(Account).where(Account.code == code)
        ).scalar_one_or_none()

    def _require(self, code: str) -> Account:
        account = self._get_by_code(code)
        if account is None:
            raise AccountNotFoundError(code)
        return account

    def _validate_parent(self, code: str, account_type: AccountType, parent: Account) -> None:
        if parent.account_type != account_type:
            raise InvalidParentError(
                account_code=code,
                parent_code=parent.code,
                reason=(
                    f"parent type {parent.account_type} differs from "
                    f"account type {account_type.value}"
                ),
            )
        if not parent.is_active:
            raise InvalidParentError(
                account_code=code,
                parent_code=parent.code,
                reason="parent is inactive",
            )

    def _check_no_cycle(self, account: Account, new_parent: Account) -> None:
        seen: set[UUID] = set()
        node: Account | None = new_parent
        while node is not None and node.id not in seen:
            if node.id == account.id:
                raise AccountCycleError(account_code=account.code, parent_code=new_parent.code)
            seen.add(node.id)
            node = self.session.get(Account, node.parent_id) if node.parent_id else None

    def _relevel_subtree(self, root: Account, actor_id: UUID) -> None:
        queue = deque([root])
        while queue:
            parent = queue.popleft()
            children = self.session.execute(
                select(Account).where(Account.parent_id == parent.id)
            ).scalars().all()
            for child in children:
                if child.level != parent.level + 1:
                    child.level = parent.level + 1
                    child.updated_by_id = actor_id
                queue.append(child)

    def _set_active(self, code: str, active: bool, actor_id: UUID) -> AccountInfo:
        account = self._require(code)
        if account.is_active != active:
            account.is_active = active
            account.updated_by_id = actor_id
            self.session.flush()
            logger.info(
                "account_activated" if active else "account_deactivated",
                extra={"account_code": code, "actor_id": str(actor_id)},
            )
        return account.to_dto()
