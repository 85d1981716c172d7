"""Batch insert and statement lifecycle helpers."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterable, Sequence
from contextlib import asynccontextmanager
from typing import Any

from dbc.backend import Handle, Query, RowValues, Statement
from dbc.errors import StatementExecError

logger = logging.getLogger(__name__)


async def batch_insert(stmt: Statement, rows: Iterable[RowValues | Sequence[Any]]) -> None:
    """Execute ``stmt`` once per row, in order, then flush.

    The first failing row stops the batch: later rows are not sent and no
    flush is issued. Rows before it were already handed to the driver; only
    an enclosing transaction can undo them.

    The final zero-argument ``exec()`` flushes any client-side buffering in
    the driver. If it fails, the whole batch is reported as failed.
    """
    count = 0
    for row in rows:
        values = row.values if isinstance(row, RowValues) else tuple(row)
        await stmt.exec(*values)
        count += 1

    await stmt.exec()
    logger.debug("Batch insert sent %d row(s) and flushed", count)


@asynccontextmanager
async def prepared(handle: Handle, query: str | Query) -> AsyncIterator[Statement]:
    """Prepare a statement on ``handle`` and close it on every exit path."""
    stmt = await handle.prepare(query)
    try:
        yield stmt
    finally:
        await stmt.close()


class StatementBase:
    """Lifecycle shared by backend statements.

    Subclasses implement ``_release()`` to free the driver-side statement.
    ``close()`` marks the statement closed even when the release fails, so a
    second ``close()`` is always a no-op.
    """

    def __init__(self) -> None:
        self._closed = False

    @property
    def closed(self) -> bool:
        """True once ``close()`` has been called."""
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise StatementExecError("statement is closed")

    async def _release(self) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        """Release the statement. Closing twice is a no-op."""
        if self._closed:
            return
        self._closed = True
        await self._release()
        logger.debug("Statement closed")

    async def batch_insert(self, rows: Iterable[RowValues | Sequence[Any]]) -> None:
        """Execute once per row, then flush. See ``dbc.statement.batch_insert``."""
        await batch_insert(self, rows)  # type: ignore[arg-type]

    async def __aenter__(self) -> StatementBase:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
