"""Tests for the shared row and cursor wrappers."""

import pytest

from dbc.errors import NoRowsError, ScanError, SelectError, StatementExecError
from dbc.rows import FailedRow, LazyRow, RowsBase, apply_converters


class DriverError(Exception):
    pass


class ListRows(RowsBase):
    """RowsBase over a list; ``fail_at`` makes that fetch raise."""

    _driver_errors = (DriverError,)

    def __init__(self, records, fail_at=None):
        super().__init__()
        self.records = list(records)
        self.fail_at = fail_at
        self.fetches = 0
        self.released = 0

    async def _fetch(self):
        index = self.fetches
        self.fetches += 1
        if index == self.fail_at:
            raise DriverError("connection lost")
        if index >= len(self.records):
            return None
        return self.records[index]

    async def _release(self):
        self.released += 1

    def columns(self):
        return ["a", "b"]


class TestApplyConverters:
    def test_no_converters(self):
        assert apply_converters([1, "x"], ()) == (1, "x")

    def test_converters_applied_positionally(self):
        assert apply_converters(["1", 2], (int, str)) == (1, "2")

    def test_count_mismatch(self):
        with pytest.raises(ScanError):
            apply_converters([1, "x"], (int,))

    def test_conversion_failure(self):
        with pytest.raises(ScanError) as exc_info:
            apply_converters([None], (int,))
        assert isinstance(exc_info.value.__cause__, TypeError)


class TestLazyRow:
    @pytest.mark.asyncio
    async def test_scan_runs_fetch(self):
        calls = []

        async def fetch():
            calls.append(1)
            return (1, "x")

        row = LazyRow(fetch, (DriverError,))
        assert calls == []
        assert await row.scan() == (1, "x")
        assert calls == [1]

    @pytest.mark.asyncio
    async def test_no_rows(self):
        async def fetch():
            return None

        with pytest.raises(NoRowsError):
            await LazyRow(fetch, (DriverError,)).scan()

    @pytest.mark.asyncio
    async def test_driver_error(self):
        async def fetch():
            raise DriverError("bad column")

        with pytest.raises(SelectError) as exc_info:
            await LazyRow(fetch, (DriverError,)).scan()
        assert isinstance(exc_info.value.cause, DriverError)

    @pytest.mark.asyncio
    async def test_second_scan(self):
        async def fetch():
            return (1,)

        row = LazyRow(fetch, (DriverError,))
        await row.scan()
        with pytest.raises(ScanError):
            await row.scan()


@pytest.mark.asyncio
async def test_failed_row():
    row = FailedRow(StatementExecError("statement is closed"))
    with pytest.raises(StatementExecError):
        await row.scan()


class TestRowsBase:
    @pytest.mark.asyncio
    async def test_next_and_scan(self):
        rows = ListRows([(1, "x"), (2, "y")])
        assert await rows.next()
        assert rows.scan() == (1, "x")
        assert await rows.next()
        assert rows.scan(str, str) == ("2", "y")
        assert not await rows.next()
        assert rows.err() is None

    @pytest.mark.asyncio
    async def test_scan_before_next(self):
        rows = ListRows([(1, "x")])
        with pytest.raises(ScanError):
            rows.scan()

    @pytest.mark.asyncio
    async def test_exhaustion_closes(self):
        rows = ListRows([])
        assert not await rows.next()
        assert rows.released == 1
        await rows.close()
        assert rows.released == 1

    @pytest.mark.asyncio
    async def test_scan_after_exhaustion(self):
        rows = ListRows([(1, "x")])
        await rows.next()
        await rows.next()
        with pytest.raises(ScanError):
            rows.scan()

    @pytest.mark.asyncio
    async def test_error_recorded(self):
        rows = ListRows([(1, "x"), (2, "y")], fail_at=1)
        assert await rows.next()
        assert not await rows.next()
        err = rows.err()
        assert isinstance(err, SelectError)
        assert isinstance(err.__cause__, DriverError)
        assert rows.released == 1

    @pytest.mark.asyncio
    async def test_next_after_close(self):
        rows = ListRows([(1, "x")])
        await rows.close()
        assert not await rows.next()
        assert rows.fetches == 0

    @pytest.mark.asyncio
    async def test_async_iteration(self):
        rows = ListRows([(1, "x"), (2, "y")])
        assert [r async for r in rows] == [(1, "x"), (2, "y")]

    @pytest.mark.asyncio
    async def test_async_iteration_raises_recorded_error(self):
        rows = ListRows([(1, "x")], fail_at=1)
        seen = []
        with pytest.raises(SelectError):
            async for r in rows:
                seen.append(r)
        assert seen == [(1, "x")]

    @pytest.mark.asyncio
    async def test_context_manager_closes(self):
        rows = ListRows([(1, "x"), (2, "y")])
        async with rows as r:
            await r.next()
        assert rows.released == 1
