"""Database handle protocols: a thin abstraction over async DB sessions.

Application code programs against these protocols. A ``Handle`` is either a
live connection or an open transaction; code that only runs statements does
not need to know which. Each backend (SQLite, Postgres) provides concrete
implementations that forward to the driver.

All SQL uses ``?`` positional placeholders. Backends with another paramstyle
translate at execute time.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from enum import StrEnum
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict

from dbc.errors import WriteError

Converter = Callable[[Any], Any]


class Query(BaseModel):
    """SQL text plus the arguments meant to be bound to it."""

    model_config = ConfigDict(frozen=True)

    text: str
    args: tuple[Any, ...] = ()

    def __str__(self) -> str:
        return f"[{self.text}, {list(self.args)}]"


def new_query(text: str, *args: Any) -> Query:
    """Build a Query. The SQL text is not validated."""
    return Query(text=text, args=args)


def as_query(query: str | Query, args: Sequence[Any] = ()) -> Query:
    """Normalize SQL text or a Query, appending extra arguments."""
    if isinstance(query, Query):
        if not args:
            return query
        return Query(text=query.text, args=query.args + tuple(args))
    return Query(text=query, args=tuple(args))


class RowValues(BaseModel):
    """Column values for one row of a batch insert."""

    model_config = ConfigDict(frozen=True)

    values: tuple[Any, ...] = ()


class TxState(StrEnum):
    """Lifecycle of a transaction. Both non-open states are terminal."""

    OPEN = "open"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@runtime_checkable
class Result(Protocol):
    """Summary of a write."""

    @property
    def rowcount(self) -> int:
        """Number of rows affected, or -1 if unknown."""
        ...

    @property
    def lastrowid(self) -> int | None:
        """Row id of the last inserted row, where the backend reports one."""
        ...


@runtime_checkable
class Row(Protocol):
    """A single-row result whose query runs when it is scanned."""

    async def scan(self, *converters: Converter) -> tuple[Any, ...]:
        """Return the row's column values, applying converters positionally."""
        ...


@runtime_checkable
class Rows(Protocol):
    """A multi-row cursor. Call ``next()`` before each ``scan()``."""

    async def next(self) -> bool:
        """Advance to the next row. False when exhausted or failed."""
        ...

    def scan(self, *converters: Converter) -> tuple[Any, ...]:
        """Return the current row's column values."""
        ...

    def columns(self) -> list[str]:
        """Return column names."""
        ...

    def err(self) -> Exception | None:
        """Return the error that stopped iteration, if any."""
        ...

    async def close(self) -> None:
        """Release the cursor."""
        ...


@runtime_checkable
class Statement(Protocol):
    """A prepared statement bound to the handle that created it."""

    async def exec(self, *args: Any) -> Result:
        """Execute with the given arguments. No arguments flushes buffered writes."""
        ...

    def query_row(self, *args: Any) -> Row:
        """Return a row for the statement with the given arguments."""
        ...

    async def query(self, *args: Any) -> Rows:
        """Execute and return a cursor over the result."""
        ...

    async def close(self) -> None:
        """Release the statement. Closing twice is a no-op."""
        ...

    async def batch_insert(self, rows: Iterable[RowValues | Sequence[Any]]) -> None:
        """Execute once per row, then flush."""
        ...


@runtime_checkable
class Handle(Protocol):
    """A connection or a transaction."""

    async def exec(
        self, query: str | Query, *args: Any, kind: type[WriteError] = WriteError
    ) -> Result:
        """Execute a statement. Driver failures raise ``kind``."""
        ...

    async def prepare(self, query: str | Query) -> Statement:
        """Prepare a reusable statement."""
        ...

    def query_row(self, query: str | Query, *args: Any) -> Row:
        """Return a row for the query; errors surface on ``scan``."""
        ...

    async def query(self, query: str | Query, *args: Any) -> Rows:
        """Execute and return a cursor over the result."""
        ...


@runtime_checkable
class Tx(Handle, Protocol):
    """A transactional handle."""

    @property
    def state(self) -> TxState:
        """Current lifecycle state."""
        ...

    async def commit(self) -> None:
        """Finalize all work since the transaction began."""
        ...

    async def rollback(self) -> None:
        """Discard all work since the transaction began."""
        ...
