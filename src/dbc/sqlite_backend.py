"""SQLite implementation of the handle protocols.

Thin wrapper around aiosqlite.Connection. No SQL translation needed since
application code already uses ``?`` placeholders.
"""

from __future__ import annotations

import logging
import re
from typing import Any

import aiosqlite

from dbc.backend import Query, as_query
from dbc.errors import (
    SelectError,
    StatementCreateError,
    StatementExecError,
    TransactionBeginError,
    WriteError,
)
from dbc.log import log_query
from dbc.rows import FailedRow, LazyRow, RowsBase
from dbc.statement import StatementBase
from dbc.transaction import TransactionBase

logger = logging.getLogger(__name__)

_DRIVER_ERRORS = (aiosqlite.Error,)

# Literals, quoted identifiers and comments are matched first so that
# placeholder characters inside them are skipped.
_TOKEN_RE = re.compile(
    r"'(?:[^']|'')*'"
    r'|"(?:[^"]|"")*"'
    r"|`(?:[^`]|``)*`"
    r"|\[[^\]]*\]"
    r"|--[^\n]*"
    r"|/\*.*?(?:\*/|$)"
    r"|\?(?P<num>\d*)"
    r"|[:@$](?P<name>[A-Za-z_]\w*)",
    re.DOTALL,
)


def _null_bindings(sql: str) -> list[None] | dict[str, None]:
    """Build all-NULL bindings matching the placeholders in ``sql``.

    Follows SQLite's numbering: ``?`` takes the next index, ``?NNN`` takes
    index NNN. Statements using only named parameters get a mapping.
    """
    count = 0
    positional = False
    names: dict[str, None] = {}
    for match in _TOKEN_RE.finditer(sql):
        num, name = match.group("num"), match.group("name")
        if num is not None:
            positional = True
            count = max(count, int(num)) if num else count + 1
        elif name is not None and name not in names:
            names[name] = None
            count += 1
    if names and not positional:
        return names
    return [None] * count


class SQLiteResult:
    """Rows affected and last row id of a write."""

    def __init__(self, rowcount: int = -1, lastrowid: int | None = None) -> None:
        self._rowcount = rowcount
        self._lastrowid = lastrowid

    @classmethod
    def from_cursor(cls, cursor: aiosqlite.Cursor) -> SQLiteResult:
        """Capture the counters of a finished cursor."""
        rc = cursor.rowcount
        return cls(rc if rc is not None else -1, cursor.lastrowid)

    @property
    def rowcount(self) -> int:
        """Number of rows affected, or -1 if unknown."""
        return self._rowcount

    @property
    def lastrowid(self) -> int | None:
        """Row id of the last inserted row."""
        return self._lastrowid


class SQLiteRows(RowsBase):
    """Wraps aiosqlite.Cursor to satisfy the Rows protocol."""

    _driver_errors = _DRIVER_ERRORS

    def __init__(self, cursor: aiosqlite.Cursor) -> None:
        """Initialize with an executed aiosqlite cursor."""
        super().__init__()
        self._cursor = cursor

    async def _fetch(self) -> Any:
        return await self._cursor.fetchone()

    async def _release(self) -> None:
        await self._cursor.close()

    def columns(self) -> list[str]:
        """Return column names."""
        return [col[0] for col in self._cursor.description or ()]


async def _exec_cursor(conn: aiosqlite.Connection, sql: str, args: Any) -> SQLiteResult:
    cursor = await conn.execute(sql, args)
    try:
        return SQLiteResult.from_cursor(cursor)
    finally:
        await cursor.close()


def _lazy_row(conn: aiosqlite.Connection, sql: str, args: Any) -> LazyRow:
    async def fetch() -> Any:
        async with conn.execute(sql, args) as cursor:
            return await cursor.fetchone()

    return LazyRow(fetch, _DRIVER_ERRORS)


class SQLiteStatement(StatementBase):
    """A statement compiled against one aiosqlite connection.

    sqlite3 keeps compiled statements in its own per-connection cache, so
    executing the same text reuses the prepared form. Writes go straight to
    the database: a zero-argument ``exec()`` on a statement that takes
    parameters is the flush signal and sends nothing.
    """

    def __init__(self, conn: aiosqlite.Connection, sql: str) -> None:
        """Initialize with the connection and the already-validated SQL."""
        super().__init__()
        self._conn = conn
        self._sql = sql
        self._has_params = bool(_null_bindings(sql))

    @property
    def sql(self) -> str:
        """The statement's SQL text."""
        return self._sql

    async def exec(self, *args: Any) -> SQLiteResult:
        """Execute with the given arguments."""
        self._check_open()
        if not args and self._has_params:
            return SQLiteResult(rowcount=0)
        log_query(logger, "stmt exec", Query(text=self._sql, args=args))
        try:
            return await _exec_cursor(self._conn, self._sql, args)
        except aiosqlite.Error as exc:
            raise StatementExecError.wrap(exc) from exc

    def query_row(self, *args: Any) -> LazyRow | FailedRow:
        """Return a row for the statement; errors surface on ``scan``."""
        if self._closed:
            return FailedRow(StatementExecError("statement is closed"))
        return _lazy_row(self._conn, self._sql, args)

    async def query(self, *args: Any) -> SQLiteRows:
        """Execute and return a cursor over the result."""
        self._check_open()
        try:
            cursor = await self._conn.execute(self._sql, args)
        except aiosqlite.Error as exc:
            raise StatementExecError.wrap(exc) from exc
        return SQLiteRows(cursor)

    async def _release(self) -> None:
        # Nothing to free driver-side; sqlite3 owns its statement cache.
        return None


class SQLiteConnection:
    """SQLite implementation of the Handle protocol.

    Passes all calls through to the underlying aiosqlite.Connection. The
    session must be in autocommit mode (``isolation_level=None``) so that
    statements outside ``begin()`` are committed immediately and ``begin()``
    controls transactions; ``create()`` switches it.
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        """Initialize with an aiosqlite connection already in autocommit mode."""
        self._conn = conn

    @classmethod
    async def create(cls, conn: aiosqlite.Connection) -> SQLiteConnection:
        """Switch ``conn`` to autocommit and wrap it."""

        def _autocommit() -> None:
            conn._conn.isolation_level = None

        # sqlite3 objects may only be touched from aiosqlite's worker thread
        await conn._execute(_autocommit)  # type: ignore[no-untyped-call]
        return cls(conn)

    async def exec(
        self, query: str | Query, *args: Any, kind: type[WriteError] = WriteError
    ) -> SQLiteResult:
        """Execute a single SQL statement."""
        q = as_query(query, args)
        log_query(logger, "exec", q)
        try:
            return await _exec_cursor(self._conn, q.text, q.args)
        except aiosqlite.Error as exc:
            raise kind.wrap(exc) from exc

    async def prepare(self, query: str | Query) -> SQLiteStatement:
        """Compile the SQL now so syntax errors surface here.

        ``EXPLAIN`` compiles the statement with all-NULL bindings without
        running it.
        """
        sql = as_query(query).text
        try:
            async with self._conn.execute(f"EXPLAIN {sql}", _null_bindings(sql)):
                pass
        except aiosqlite.Error as exc:
            raise StatementCreateError.wrap(exc) from exc
        log_query(logger, "prepare", Query(text=sql))
        return SQLiteStatement(self._conn, sql)

    def query_row(self, query: str | Query, *args: Any) -> LazyRow:
        """Return a row for the query; errors surface on ``scan``."""
        q = as_query(query, args)
        return _lazy_row(self._conn, q.text, q.args)

    async def query(self, query: str | Query, *args: Any) -> SQLiteRows:
        """Execute and return a cursor over the result."""
        q = as_query(query, args)
        log_query(logger, "query", q)
        try:
            cursor = await self._conn.execute(q.text, q.args)
        except aiosqlite.Error as exc:
            raise SelectError.wrap(exc) from exc
        return SQLiteRows(cursor)

    async def begin(self) -> SQLiteTransaction:
        """Open an explicit transaction on this connection."""
        if self._conn.in_transaction:
            raise TransactionBeginError("transaction already in progress")
        try:
            await self._conn.execute("BEGIN")
        except aiosqlite.Error as exc:
            raise TransactionBeginError.wrap(exc) from exc
        logger.debug("Transaction begun")
        return SQLiteTransaction(self, self._conn)


class SQLiteTransaction(TransactionBase):
    """An explicit SQLite transaction opened by ``SQLiteConnection.begin()``."""

    _driver_errors = _DRIVER_ERRORS

    def __init__(self, session: SQLiteConnection, conn: aiosqlite.Connection) -> None:
        """Initialize with the owning connection handle and its session."""
        super().__init__(session)
        self._conn = conn

    async def _commit(self) -> None:
        try:
            await self._conn.commit()
        except aiosqlite.Error:
            # A failed COMMIT leaves SQLite inside the transaction.
            if self._conn.in_transaction:
                await self._conn.rollback()
            raise

    async def _rollback(self) -> None:
        await self._conn.rollback()
