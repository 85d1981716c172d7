"""Transaction state machine shared by the backends."""

from __future__ import annotations

import logging
from typing import Any

from dbc.backend import Handle, Query, Result, Row, Rows, Statement, TxState
from dbc.errors import (
    TransactionClosedError,
    TransactionCommitError,
    TransactionRollbackError,
    WriteError,
)
from dbc.rows import DriverErrors, FailedRow

logger = logging.getLogger(__name__)


class TransactionBase:
    """A ``Handle`` whose work is finalized by ``commit()`` or ``rollback()``.

    Statement operations forward to the session that began the transaction.
    Once committed or rolled back, every operation raises
    ``TransactionClosedError``.

    Subclasses implement ``_commit()`` and ``_rollback()`` against the driver
    and set ``_driver_errors``.
    """

    _driver_errors: DriverErrors = ()

    def __init__(self, session: Handle) -> None:
        """Initialize with the connection handle the transaction runs on."""
        self._session = session
        self._state = TxState.OPEN

    @property
    def state(self) -> TxState:
        """Current lifecycle state."""
        return self._state

    def _closed_error(self) -> TransactionClosedError:
        return TransactionClosedError(f"transaction already {self._state}")

    def _check_open(self) -> None:
        if self._state is not TxState.OPEN:
            raise self._closed_error()

    async def _commit(self) -> None:
        raise NotImplementedError

    async def _rollback(self) -> None:
        raise NotImplementedError

    async def exec(
        self, query: str | Query, *args: Any, kind: type[WriteError] = WriteError
    ) -> Result:
        """Execute a statement inside the transaction."""
        self._check_open()
        return await self._session.exec(query, *args, kind=kind)

    async def prepare(self, query: str | Query) -> Statement:
        """Prepare a statement scoped to the transaction."""
        self._check_open()
        return await self._session.prepare(query)

    def query_row(self, query: str | Query, *args: Any) -> Row:
        """Return a row for the query; errors surface on ``scan``."""
        if self._state is not TxState.OPEN:
            return FailedRow(self._closed_error())
        return self._session.query_row(query, *args)

    async def query(self, query: str | Query, *args: Any) -> Rows:
        """Execute and return a cursor over the result."""
        self._check_open()
        return await self._session.query(query, *args)

    async def commit(self) -> None:
        """Commit. A failed commit leaves the transaction rolled back."""
        self._check_open()
        try:
            await self._commit()
        except self._driver_errors as exc:
            self._state = TxState.ROLLED_BACK
            raise TransactionCommitError.wrap(exc) from exc
        self._state = TxState.COMMITTED
        logger.debug("Transaction committed")

    async def rollback(self) -> None:
        """Discard all work since the transaction began."""
        self._check_open()
        self._state = TxState.ROLLED_BACK
        try:
            await self._rollback()
        except self._driver_errors as exc:
            raise TransactionRollbackError.wrap(exc) from exc
        logger.debug("Transaction rolled back")

    async def __aenter__(self) -> TransactionBase:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: object,
    ) -> None:
        if self._state is not TxState.OPEN:
            return
        if exc is None:
            await self.commit()
            return
        try:
            await self.rollback()
        except TransactionRollbackError as rollback_exc:
            # The body's exception keeps propagating; record the rollback failure on it.
            exc.add_note(f"transaction rollback also failed: {rollback_exc}")
