"""PostgreSQL implementation of the handle protocols.

Uses asyncpg. All application SQL uses ``?`` placeholders; this backend
translates them to ``$N`` at execute time.

``copy_in()`` builds a ``COPY ... FROM STDIN`` query. Preparing it yields a
statement that buffers rows client-side and sends them in one COPY when
``exec()`` is called with no arguments, which is exactly what
``batch_insert`` issues last.
"""

from __future__ import annotations

import logging
import re
from typing import Any

import asyncpg

from dbc.backend import Query, as_query
from dbc.errors import (
    SelectError,
    StatementCloseError,
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

_DRIVER_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError)

# Pre-compiled regex for placeholder translation
_PLACEHOLDER_RE = re.compile(r"\?")

_IDENT = r'"(?:[^"]|"")+"'
_COPY_RE = re.compile(
    rf"^\s*COPY\s+(?:(?P<schema>{_IDENT})\.)?(?P<table>{_IDENT})"
    rf"\s*\((?P<columns>\s*{_IDENT}(?:\s*,\s*{_IDENT})*\s*)\)\s+FROM\s+STDIN\s*;?\s*$",
    re.IGNORECASE,
)
_IDENT_RE = re.compile(_IDENT)


def _translate_placeholders(sql: str) -> str:
    """Convert ``?`` placeholders to ``$1, $2, ...`` for asyncpg."""
    counter = 0

    def _replace(_match: re.Match[str]) -> str:
        nonlocal counter
        counter += 1
        return f"${counter}"

    return _PLACEHOLDER_RE.sub(_replace, sql)


def _quote_ident(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def _unquote_ident(quoted: str) -> str:
    return quoted[1:-1].replace('""', '"')


def copy_in(table: str, *columns: str, schema: str | None = None) -> str:
    """Build a ``COPY table (columns) FROM STDIN`` query for bulk loading.

    Prepare the result on a Postgres handle to get a buffering statement.
    """
    if not columns:
        raise ValueError("copy_in needs at least one column")
    target = _quote_ident(table)
    if schema:
        target = f"{_quote_ident(schema)}.{target}"
    cols = ", ".join(_quote_ident(c) for c in columns)
    return f"COPY {target} ({cols}) FROM STDIN"


def _parse_copy_in(sql: str) -> tuple[str | None, str, list[str]] | None:
    """Return (schema, table, columns) for a ``copy_in()`` query, else None."""
    match = _COPY_RE.match(sql)
    if match is None:
        return None
    schema = match.group("schema")
    columns = [_unquote_ident(c) for c in _IDENT_RE.findall(match.group("columns"))]
    return (
        _unquote_ident(schema) if schema else None,
        _unquote_ident(match.group("table")),
        columns,
    )


class PostgresResult:
    """Rows affected by a write, parsed from the command status tag."""

    def __init__(self, rowcount: int = -1) -> None:
        self._rowcount = rowcount

    @classmethod
    def from_status(cls, status: str | None) -> PostgresResult:
        """Build from an asyncpg status string such as ``"INSERT 0 1"``."""
        return cls(cls._parse_rowcount(status))

    @property
    def rowcount(self) -> int:
        """Number of rows affected, or -1 if unknown."""
        return self._rowcount

    @property
    def lastrowid(self) -> int | None:
        """Postgres does not report row ids; use ``RETURNING`` instead."""
        return None

    @staticmethod
    def _parse_rowcount(status: str | None) -> int:
        """Parse affected row count from asyncpg status string.

        Examples: "INSERT 0 1" → 1, "UPDATE 3" → 3, "DELETE 0" → 0.
        """
        if not status:
            return -1
        parts = status.split()
        if len(parts) >= 2:
            try:
                return int(parts[-1])
            except ValueError:
                pass
        return -1


class PostgresRows(RowsBase):
    """Wraps a list of asyncpg.Record as a Rows cursor.

    asyncpg returns results eagerly: there's no server-side cursor outside
    a transaction. This walks the fetched list.
    """

    _driver_errors = _DRIVER_ERRORS

    def __init__(self, records: list[asyncpg.Record], columns: list[str]) -> None:
        """Initialize with result records and the statement's column names."""
        super().__init__()
        self._records = records
        self._columns = columns
        self._index = 0

    async def _fetch(self) -> Any:
        if self._index >= len(self._records):
            return None
        record = self._records[self._index]
        self._index += 1
        return record

    async def _release(self) -> None:
        self._records = []
        self._index = 0

    def columns(self) -> list[str]:
        """Return column names."""
        return list(self._columns)


class PostgresStatement(StatementBase):
    """Wraps asyncpg.PreparedStatement.

    Writes are sent immediately: a zero-argument ``exec()`` on a statement
    that takes parameters is the flush signal and sends nothing.
    """

    def __init__(
        self, conn: asyncpg.Connection, stmt: asyncpg.prepared_stmt.PreparedStatement
    ) -> None:
        """Initialize with the owning connection and the prepared statement."""
        super().__init__()
        self._conn = conn
        self._stmt = stmt
        self._has_params = bool(stmt.get_parameters())

    @property
    def sql(self) -> str:
        """The statement's SQL text, with ``$N`` placeholders."""
        return self._stmt.get_query()

    async def exec(self, *args: Any) -> PostgresResult:
        """Execute with the given arguments."""
        self._check_open()
        if not args and self._has_params:
            return PostgresResult(rowcount=0)
        log_query(logger, "stmt exec", Query(text=self.sql, args=args))
        try:
            await self._stmt.fetch(*args)
        except _DRIVER_ERRORS as exc:
            raise StatementExecError.wrap(exc) from exc
        return PostgresResult.from_status(self._stmt.get_statusmsg())

    def query_row(self, *args: Any) -> LazyRow | FailedRow:
        """Return a row for the statement; errors surface on ``scan``."""
        if self._closed:
            return FailedRow(StatementExecError("statement is closed"))

        async def fetch() -> Any:
            return await self._stmt.fetchrow(*args)

        return LazyRow(fetch, _DRIVER_ERRORS)

    async def query(self, *args: Any) -> PostgresRows:
        """Execute and return a cursor over the result."""
        self._check_open()
        try:
            records = await self._stmt.fetch(*args)
        except _DRIVER_ERRORS as exc:
            raise StatementExecError.wrap(exc) from exc
        return PostgresRows(records, [a.name for a in self._stmt.get_attributes()])

    async def _release(self) -> None:
        name = self._stmt.get_name()
        try:
            await self._conn.execute(f"DEALLOCATE {_quote_ident(name)}")
        except _DRIVER_ERRORS as exc:
            raise StatementCloseError.wrap(exc) from exc


class PostgresCopyStatement(StatementBase):
    """A ``COPY ... FROM STDIN`` statement that buffers rows client-side.

    Each ``exec(*values)`` appends one row. ``exec()`` with no arguments
    sends the buffer with ``copy_records_to_table`` and empties it.
    """

    def __init__(
        self, conn: asyncpg.Connection, table: str, columns: list[str], schema: str | None = None
    ) -> None:
        """Initialize with the target table and column names."""
        super().__init__()
        self._conn = conn
        self._table = table
        self._columns = columns
        self._schema = schema
        self._buffer: list[tuple[Any, ...]] = []

    @property
    def pending(self) -> int:
        """Number of buffered rows not yet sent."""
        return len(self._buffer)

    async def exec(self, *args: Any) -> PostgresResult:
        """Buffer one row, or flush the buffer when called with no arguments."""
        self._check_open()
        if args:
            if len(args) != len(self._columns):
                raise StatementExecError(
                    f"expected {len(self._columns)} value(s) for COPY, got {len(args)}"
                )
            self._buffer.append(args)
            return PostgresResult(rowcount=0)
        return await self._flush()

    async def _flush(self) -> PostgresResult:
        records, self._buffer = self._buffer, []
        if not records:
            return PostgresResult(rowcount=0)
        try:
            status = await self._conn.copy_records_to_table(
                self._table,
                records=records,
                columns=self._columns,
                schema_name=self._schema,
            )
        except _DRIVER_ERRORS as exc:
            raise StatementExecError.wrap(exc) from exc
        logger.debug("COPY sent %d row(s) to %s", len(records), self._table)
        return PostgresResult.from_status(status)

    def query_row(self, *args: Any) -> FailedRow:
        """COPY returns no rows."""
        return FailedRow(StatementExecError("COPY statements do not return rows"))

    async def query(self, *args: Any) -> PostgresRows:
        """COPY returns no rows."""
        raise StatementExecError("COPY statements do not return rows")

    async def _release(self) -> None:
        if self._buffer:
            logger.debug("Discarding %d unflushed COPY row(s)", len(self._buffer))
            self._buffer = []


class PostgresConnection:
    """PostgreSQL implementation of the Handle protocol.

    Wraps one asyncpg.Connection; every call runs on that session.
    """

    def __init__(self, conn: asyncpg.Connection) -> None:
        """Initialize with an open asyncpg connection."""
        self._conn = conn

    async def exec(
        self, query: str | Query, *args: Any, kind: type[WriteError] = WriteError
    ) -> PostgresResult:
        """Execute a single SQL statement."""
        q = as_query(query, args)
        log_query(logger, "exec", q)
        try:
            status = await self._conn.execute(_translate_placeholders(q.text), *q.args)
        except _DRIVER_ERRORS as exc:
            raise kind.wrap(exc) from exc
        return PostgresResult.from_status(status)

    async def prepare(self, query: str | Query) -> PostgresStatement | PostgresCopyStatement:
        """Prepare a statement on the server.

        A ``copy_in()`` query is not sent; it yields a buffering COPY
        statement instead.
        """
        sql = as_query(query).text
        log_query(logger, "prepare", Query(text=sql))
        copy_target = _parse_copy_in(sql)
        if copy_target is not None:
            schema, table, columns = copy_target
            return PostgresCopyStatement(self._conn, table, columns, schema=schema)
        try:
            stmt = await self._conn.prepare(_translate_placeholders(sql))
        except _DRIVER_ERRORS as exc:
            raise StatementCreateError.wrap(exc) from exc
        return PostgresStatement(self._conn, stmt)

    def query_row(self, query: str | Query, *args: Any) -> LazyRow:
        """Return a row for the query; errors surface on ``scan``."""
        q = as_query(query, args)

        async def fetch() -> Any:
            return await self._conn.fetchrow(_translate_placeholders(q.text), *q.args)

        return LazyRow(fetch, _DRIVER_ERRORS)

    async def query(self, query: str | Query, *args: Any) -> PostgresRows:
        """Execute and return a cursor over the result.

        The statement prepared for the query is deallocated once its records
        are fetched. If the fetch fails, asyncpg frees it when it is collected.
        """
        q = as_query(query, args)
        log_query(logger, "query", q)
        try:
            stmt = await self._conn.prepare(_translate_placeholders(q.text))
            records = await stmt.fetch(*q.args)
        except _DRIVER_ERRORS as exc:
            raise SelectError.wrap(exc) from exc
        columns = [a.name for a in stmt.get_attributes()]
        try:
            await self._conn.execute(f"DEALLOCATE {_quote_ident(stmt.get_name())}")
        except _DRIVER_ERRORS as exc:
            raise SelectError.wrap(exc) from exc
        return PostgresRows(records, columns)

    async def begin(self) -> PostgresTransaction:
        """Open a transaction on this connection."""
        if self._conn.is_in_transaction():
            raise TransactionBeginError("transaction already in progress")
        tx = self._conn.transaction()
        try:
            await tx.start()
        except _DRIVER_ERRORS as exc:
            raise TransactionBeginError.wrap(exc) from exc
        logger.debug("Transaction begun")
        return PostgresTransaction(self, tx)


class PostgresTransaction(TransactionBase):
    """Wraps asyncpg.transaction.Transaction."""

    _driver_errors = _DRIVER_ERRORS

    def __init__(self, session: PostgresConnection, tx: asyncpg.transaction.Transaction) -> None:
        """Initialize with the owning connection handle and the started transaction."""
        super().__init__(session)
        self._tx = tx

    async def _commit(self) -> None:
        await self._tx.commit()

    async def _rollback(self) -> None:
        await self._tx.rollback()
