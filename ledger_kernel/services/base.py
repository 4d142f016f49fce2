"""
BaseService -- shared session contract and row locking for kernel services.

Responsibility:
    Holds the caller's SQLAlchemy ``Session`` and provides ``_lock_row``,
    the SELECT ... FOR UPDATE read every state transition starts from
    (posting, reversal, period close/reopen, revision decisions).

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    Transaction boundaries: services flush within the caller's
    transaction and never commit or rollback themselves.  The caller
    (PostingOrchestrator, a source-document adapter, or the test harness)
    owns commit/rollback.

Failure modes:
    - ``_lock_row`` raises the subclass's ``not_found`` error when the row
      does not exist.
    - On SQLite ``FOR UPDATE`` is dropped by the dialect; the database-level
      write lock serializes writers instead.
"""

from abc import ABC
from typing import ClassVar, Generic, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.db.base import Base
from ledger_kernel.exceptions import LedgerKernelError

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for kernel write services.

    Subclasses that lock rows set ``model`` and ``not_found``.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide report queries -- those belong in
          ``ledger_kernel/selectors/``.
    """

    model: ClassVar[type[Base]]
    not_found: ClassVar[type[LedgerKernelError]]

    def __init__(self, session: Session):
        self.session = session

    def _lock_row(self, row_id: UUID) -> ModelType:
        """Row-locked read; populate_existing refreshes a stale identity map."""
        row = self.session.execute(
            select(self.model)
            .where(self.model.id == row_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None:
            raise self.not_found(str(row_id))
        return row
