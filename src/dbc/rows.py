"""Row and cursor wrappers shared by the backends."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from dbc.backend import Converter
from dbc.errors import DbcError, NoRowsError, ScanError, SelectError

logger = logging.getLogger(__name__)

DriverErrors = tuple[type[BaseException], ...]


def apply_converters(values: Sequence[Any], converters: Sequence[Converter]) -> tuple[Any, ...]:
    """Copy column values out, converting each one positionally.

    With no converters the values are returned unchanged. Otherwise there must
    be exactly one converter per column.
    """
    if not converters:
        return tuple(values)
    if len(converters) != len(values):
        raise ScanError(
            f"expected {len(values)} destination(s) for {len(values)} column(s),"
            f" got {len(converters)}"
        )
    try:
        return tuple(convert(value) for convert, value in zip(converters, values, strict=True))
    except (TypeError, ValueError) as exc:
        raise ScanError.wrap(exc) from exc


class LazyRow:
    """A single-row result that runs its query on ``scan()``.

    Acquiring the row never fails; every failure, including an empty result,
    is raised from ``scan()``.
    """

    def __init__(self, fetch: Callable[[], Awaitable[Any]], driver_errors: DriverErrors) -> None:
        """Initialize with a coroutine function returning one record or None."""
        self._fetch = fetch
        self._driver_errors = driver_errors
        self._scanned = False

    async def scan(self, *converters: Converter) -> tuple[Any, ...]:
        """Run the query and return the first row's column values."""
        if self._scanned:
            raise ScanError("row already scanned")
        self._scanned = True
        try:
            record = await self._fetch()
        except self._driver_errors as exc:
            raise SelectError.wrap(exc) from exc
        if record is None:
            raise NoRowsError("no rows in result set")
        return apply_converters(tuple(record), converters)


class FailedRow:
    """A row whose acquisition was already known to be invalid."""

    def __init__(self, error: DbcError) -> None:
        self._error = error

    async def scan(self, *converters: Converter) -> tuple[Any, ...]:
        raise self._error


class RowsBase:
    """Cursor state shared by backend ``Rows`` implementations.

    Subclasses provide ``_fetch()`` (next record or None), ``_release()`` and
    ``columns()``. The cursor closes itself once exhausted or failed.
    """

    _driver_errors: DriverErrors = ()

    def __init__(self) -> None:
        self._current: tuple[Any, ...] | None = None
        self._err: DbcError | None = None
        self._closed = False

    async def _fetch(self) -> Any:
        raise NotImplementedError

    async def _release(self) -> None:
        raise NotImplementedError

    def columns(self) -> list[str]:
        raise NotImplementedError

    async def next(self) -> bool:
        """Advance to the next row. False when exhausted, failed or closed."""
        if self._closed:
            self._current = None
            return False
        try:
            record = await self._fetch()
        except self._driver_errors as exc:
            self._err = SelectError.wrap(exc)
            record = None
        if record is None:
            self._current = None
            await self.close()
            return False
        self._current = tuple(record)
        return True

    def scan(self, *converters: Converter) -> tuple[Any, ...]:
        """Return the current row's column values."""
        if self._current is None:
            raise ScanError("scan called without a current row")
        return apply_converters(self._current, converters)

    def err(self) -> Exception | None:
        """Return the error that stopped iteration, if any."""
        return self._err

    async def close(self) -> None:
        """Release the cursor. Closing twice is a no-op."""
        if self._closed:
            return
        self._closed = True
        try:
            await self._release()
        except self._driver_errors as exc:
            raise SelectError.wrap(exc) from exc

    async def __aenter__(self) -> RowsBase:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def __aiter__(self) -> RowsBase:
        return self

    async def __anext__(self) -> tuple[Any, ...]:
        if await self.next():
            return self.scan()
        if self._err is not None:
            raise self._err
        raise StopAsyncIteration
