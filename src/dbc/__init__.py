"""Async database handles over aiosqlite and asyncpg."""

from dbc.backend import (
    Handle,
    Query,
    Result,
    Row,
    Rows,
    RowValues,
    Statement,
    Tx,
    TxState,
    as_query,
    new_query,
)
from dbc.errors import (
    DbcError,
    InsertError,
    NoRowsError,
    ScanError,
    SelectError,
    StatementCloseError,
    StatementCreateError,
    StatementExecError,
    TransactionBeginError,
    TransactionClosedError,
    TransactionCommitError,
    TransactionRollbackError,
    UpdateError,
    WriteError,
)
from dbc.postgres_backend import PostgresConnection, PostgresTransaction, copy_in
from dbc.sqlite_backend import SQLiteConnection, SQLiteTransaction
from dbc.statement import batch_insert, prepared

__all__ = [
    "DbcError",
    "Handle",
    "InsertError",
    "NoRowsError",
    "PostgresConnection",
    "PostgresTransaction",
    "Query",
    "Result",
    "Row",
    "RowValues",
    "Rows",
    "SQLiteConnection",
    "SQLiteTransaction",
    "ScanError",
    "SelectError",
    "Statement",
    "StatementCloseError",
    "StatementCreateError",
    "StatementExecError",
    "TransactionBeginError",
    "TransactionClosedError",
    "TransactionCommitError",
    "TransactionRollbackError",
    "Tx",
    "TxState",
    "UpdateError",
    "WriteError",
    "as_query",
    "batch_insert",
    "copy_in",
    "new_query",
    "prepared",
]
