"""Shared test fixtures."""

import aiosqlite
import pytest
import pytest_asyncio

from dbc.sqlite_backend import SQLiteConnection


@pytest_asyncio.fixture
async def raw_conn():
    """In-memory aiosqlite session."""
    conn = await aiosqlite.connect(":memory:")
    yield conn
    await conn.close()


@pytest_asyncio.fixture
async def handle(raw_conn):
    """SQLite connection handle with a two-column test table."""
    h = await SQLiteConnection.create(raw_conn)
    await h.exec("CREATE TABLE t (a INTEGER PRIMARY KEY, b TEXT NOT NULL)")
    return h


class FakeResult:
    rowcount = 1
    lastrowid = None


class FakeStatement:
    """Statement that records every exec call.

    ``fail_on`` is the 0-based index of the exec call that raises ``error``.
    """

    def __init__(self, fail_on: int | None = None, error: Exception | None = None):
        self.calls: list[tuple] = []
        self.fail_on = fail_on
        self.error = error or RuntimeError("exec failed")
        self.closed = 0

    async def exec(self, *args):
        self.calls.append(args)
        if self.fail_on is not None and len(self.calls) - 1 == self.fail_on:
            raise self.error
        return FakeResult()

    async def close(self):
        self.closed += 1


class FakeHandle:
    """Handle whose prepare() hands out a FakeStatement."""

    def __init__(self):
        self.statement = FakeStatement()
        self.prepared: list[str] = []

    async def prepare(self, query):
        self.prepared.append(str(query))
        return self.statement


@pytest.fixture
def make_statement():
    """Factory for recording fake statements."""
    return FakeStatement


@pytest.fixture
def fake_handle():
    """Handle that prepares a recording fake statement."""
    return FakeHandle()
