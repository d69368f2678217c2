"""Scope-bound transaction management for async SQLAlchemy engines.

A unit of work wrapped with :meth:`TransactionManager.run_in_transaction`
(or :func:`transactional`) runs inside one transaction; every operation it
issues through the dispatch handle returned by
:meth:`TransactionManager.initialize` is routed onto that transaction, even
from functions that never receive it explicitly.
"""

from .context import ContextStore
from .database import Database, EngineDatabase, TransactionalDatabase
from .decorators import transactional, wrap_in_transaction
from .exceptions import (
    InvalidTransactionOptionError,
    NoActiveScopeError,
    NoActiveTransactionError,
    TransactionAlreadyCompletedError,
    TransactionCommitError,
    TransactionError,
    TransactionManagerNotInitializedError,
    TransactionOpenError,
    TransactionRollbackError,
    UnsupportedIsolationLevelError,
    UnsupportedReadOnlyError,
)
from .manager import TransactionManager
from .options import IsolationLevel, TransactionOptions
from .transaction import Transaction, TransactionState

__all__ = [
    "ContextStore",
    "Database",
    "EngineDatabase",
    "InvalidTransactionOptionError",
    "IsolationLevel",
    "NoActiveScopeError",
    "NoActiveTransactionError",
    "Transaction",
    "TransactionAlreadyCompletedError",
    "TransactionCommitError",
    "TransactionError",
    "TransactionManager",
    "TransactionManagerNotInitializedError",
    "TransactionOpenError",
    "TransactionOptions",
    "TransactionRollbackError",
    "TransactionState",
    "TransactionalDatabase",
    "UnsupportedIsolationLevelError",
    "UnsupportedReadOnlyError",
    "transactional",
    "wrap_in_transaction",
]
