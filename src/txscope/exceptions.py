"""Exception hierarchy and helpers shared by the transaction layers."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

from sqlalchemy import exc as sa_exc

__all__ = [
    "TransactionError",
    "TransactionManagerNotInitializedError",
    "NoActiveScopeError",
    "NoActiveTransactionError",
    "InvalidTransactionOptionError",
    "UnsupportedIsolationLevelError",
    "UnsupportedReadOnlyError",
    "TransactionOpenError",
    "TransactionCommitError",
    "TransactionRollbackError",
    "TransactionAlreadyCompletedError",
    "handle_sqlalchemy_errors",
]


class TransactionError(Exception):
    """Base class for transaction management errors."""


class TransactionManagerNotInitializedError(TransactionError):
    """Raised when a manager is used before an engine was bound to it."""


class NoActiveScopeError(TransactionError):
    """Raised when the context store is written outside of any scope."""


class NoActiveTransactionError(TransactionError):
    """Raised when code expecting a unit of work runs outside of one."""


class InvalidTransactionOptionError(TransactionError, ValueError):
    """Raised when transaction options cannot be interpreted."""


class UnsupportedIsolationLevelError(InvalidTransactionOptionError):
    """Raised when the database dialect rejects the isolation level."""


class UnsupportedReadOnlyError(InvalidTransactionOptionError):
    """Raised when read-only transactions are not available for a dialect."""


class TransactionOpenError(TransactionError):
    """Raised when a transaction could not be opened."""


class TransactionCommitError(TransactionError):
    """Raised when committing a transaction failed."""


class TransactionRollbackError(TransactionError):
    """Raised when rolling back a transaction failed."""


class TransactionAlreadyCompletedError(TransactionError):
    """Raised when a committed or rolled back transaction is used again."""


@dataclass(slots=True)
class _OperationContext:
    """Internal helper describing the failed operation for error messages."""

    operation: str
    transaction_id: str | None = None

    def format(self, message: str) -> str:
        if self.transaction_id:
            return f"{self.operation} of transaction '{self.transaction_id}': {message}"
        return f"{self.operation}: {message}"


@contextmanager
def handle_sqlalchemy_errors(
    error_cls: type[TransactionError],
    *,
    operation: str,
    transaction_id: str | None = None,
) -> Iterator[None]:
    """Translate SQLAlchemy errors raised in the block into ``error_cls``."""

    context = _OperationContext(operation, transaction_id)
    try:
        yield
    except sa_exc.DBAPIError as exc:
        raise error_cls(context.format("database operation failed")) from exc
    except sa_exc.SQLAlchemyError as exc:
        raise error_cls(context.format(str(exc))) from exc
