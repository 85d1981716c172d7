"""Tests for batch insert and scoped statement helpers."""

import pytest

from dbc.backend import RowValues
from dbc.statement import batch_insert, prepared


@pytest.mark.asyncio
async def test_empty_batch_still_flushes(make_statement):
    stmt = make_statement()
    await batch_insert(stmt, [])
    assert stmt.calls == [()]


@pytest.mark.asyncio
async def test_rows_then_flush(make_statement):
    stmt = make_statement()
    await batch_insert(stmt, [[1, "x"], [2, "y"]])
    assert stmt.calls == [(1, "x"), (2, "y"), ()]


@pytest.mark.asyncio
async def test_accepts_row_values(make_statement):
    stmt = make_statement()
    await batch_insert(stmt, [RowValues(values=(1, "x")), RowValues(values=(2, "y"))])
    assert stmt.calls == [(1, "x"), (2, "y"), ()]


@pytest.mark.asyncio
async def test_accepts_generator(make_statement):
    stmt = make_statement()
    await batch_insert(stmt, ((i, str(i)) for i in range(3)))
    assert stmt.calls == [(0, "0"), (1, "1"), (2, "2"), ()]


@pytest.mark.asyncio
@pytest.mark.parametrize("k", [0, 1, 3])
async def test_failure_stops_batch(make_statement, k):
    error = RuntimeError(f"row {k} rejected")
    stmt = make_statement(fail_on=k, error=error)
    rows = [[i, f"v{i}"] for i in range(5)]

    with pytest.raises(RuntimeError) as exc_info:
        await batch_insert(stmt, rows)

    assert exc_info.value is error
    # Rows 0..k were attempted, nothing after, and no flush
    assert stmt.calls == [tuple(r) for r in rows[: k + 1]]


@pytest.mark.asyncio
async def test_flush_failure_fails_batch(make_statement):
    stmt = make_statement(fail_on=2)
    with pytest.raises(RuntimeError):
        await batch_insert(stmt, [[1, "x"], [2, "y"]])
    assert stmt.calls == [(1, "x"), (2, "y"), ()]


@pytest.mark.asyncio
async def test_prepared_closes_on_success(fake_handle):
    handle = fake_handle
    async with prepared(handle, "INSERT INTO t (a) VALUES (?)") as stmt:
        await stmt.exec(1)
    assert handle.prepared == ["INSERT INTO t (a) VALUES (?)"]
    assert handle.statement.closed == 1


@pytest.mark.asyncio
async def test_prepared_closes_on_error(fake_handle):
    handle = fake_handle
    with pytest.raises(ValueError):
        async with prepared(handle, "INSERT INTO t (a) VALUES (?)"):
            raise ValueError("caller failure")
    assert handle.statement.closed == 1
