"""Error taxonomy for database operations.

Each class names the category of operation that failed. Wrappers raise them
with ``raise ... from driver_exc`` so the driver error stays reachable through
``__cause__`` (also kept as ``.cause``). Messages are the driver's own.
"""

from __future__ import annotations


class DbcError(Exception):
    """Base class for all database-layer errors."""

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause

    @classmethod
    def wrap(cls, exc: BaseException) -> DbcError:
        """Build an error of this kind carrying the driver exception's message."""
        err = cls(str(exc) or type(exc).__name__, cause=exc)
        err.__cause__ = exc
        return err


class WriteError(DbcError):
    """A direct ``exec`` on a handle failed."""


class InsertError(WriteError):
    """SQL insert failed."""


class UpdateError(WriteError):
    """SQL update failed."""


class SelectError(DbcError):
    """SQL select failed."""


class ScanError(SelectError):
    """Result columns could not be copied out of a row."""


class NoRowsError(SelectError):
    """A single-row query matched no rows."""


class StatementCreateError(DbcError):
    """SQL create statement failed."""


class StatementCloseError(DbcError):
    """SQL close statement failed."""


class StatementExecError(DbcError):
    """SQL execute statement failed."""


class TransactionBeginError(DbcError):
    """SQL transaction begin failed."""


class TransactionCommitError(DbcError):
    """SQL transaction commit failed."""


class TransactionRollbackError(DbcError):
    """SQL transaction rollback failed."""


class TransactionClosedError(DbcError):
    """The transaction was already committed or rolled back."""


__all__ = [
    "DbcError",
    "InsertError",
    "NoRowsError",
    "ScanError",
    "SelectError",
    "StatementCloseError",
    "StatementCreateError",
    "StatementExecError",
    "TransactionBeginError",
    "TransactionClosedError",
    "TransactionCommitError",
    "TransactionRollbackError",
    "UpdateError",
    "WriteError",
]
