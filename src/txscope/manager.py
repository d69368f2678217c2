"""Scope-bound transaction lifecycle management.

:class:`TransactionManager` opens one transaction per unit of work, publishes
it in a :class:`~src.txscope.context.ContextStore` scope for the duration of
the callback and commits or rolls back depending on the outcome. Database
operations issued through the dispatch handle returned by
:meth:`TransactionManager.initialize` are routed onto that transaction
without the callback threading it through its calls.

Nesting reuses the active transaction: a nested unit of work runs directly on
the enclosing transaction and its failures propagate to the outer one.
"""

from __future__ import annotations

import inspect
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, AsyncIterator, Awaitable, Callable, Mapping, TypeVar

import structlog
from sqlalchemy.ext.asyncio import AsyncEngine

from .context import ContextStore
from .database import EngineDatabase, TransactionalDatabase
from .exceptions import (
    NoActiveTransactionError,
    TransactionCommitError,
    TransactionManagerNotInitializedError,
)
from .logging import configure_logging
from .options import IsolationLevel, TransactionOptions
from .transaction import Transaction

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .core.config import TransactionSettings

__all__ = ["TransactionManager", "TRANSACTION_KEY"]


logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSACTION_KEY = "transaction"

OptionsArg = TransactionOptions | Mapping[str, Any] | None


def _requested_fields(
    options: OptionsArg,
    isolation_level: IsolationLevel | str | None,
    read_only: bool | None,
) -> frozenset[str]:
    """Names of the options a caller asked for explicitly."""

    fields: set[str] = set()
    if isinstance(options, TransactionOptions):
        fields.add("read_only")
        if options.isolation_level is not None:
            fields.add("isolation_level")
    elif isinstance(options, Mapping):
        fields.update(options)
    if isolation_level is not None:
        fields.add("isolation_level")
    if read_only is not None:
        fields.add("read_only")
    return frozenset(fields)


async def _invoke(callback: Callable[[], Awaitable[T] | T]) -> T:
    result = callback()
    if inspect.isawaitable(result):
        return await result
    return result


class TransactionManager:
    """Bind an engine and run callbacks inside transactions."""

    def __init__(
        self,
        engine: AsyncEngine | None = None,
        *,
        default_options: OptionsArg = None,
        context: ContextStore | None = None,
    ) -> None:
        self._context = context or ContextStore()
        self._default_options = TransactionOptions.coerce(default_options)
        self._engine: AsyncEngine | None = None
        self._database: TransactionalDatabase | None = None
        if engine is not None:
            self.initialize(engine)

    @classmethod
    def from_settings(
        cls, settings: "TransactionSettings", *, configure_logs: bool = True
    ) -> "TransactionManager":
        """Build the engine described by ``settings`` and bind it.

        Logging is configured from ``settings.log_level`` and
        ``settings.log_json`` unless ``configure_logs`` is false.
        """

        from .core.config import build_engine

        if configure_logs:
            configure_logging(settings.log_level, json=settings.log_json)
        return cls(build_engine(settings), default_options=settings.default_options())

    # Binding ------------------------------------------------------------

    def initialize(
        self, engine: AsyncEngine | EngineDatabase | TransactionalDatabase
    ) -> TransactionalDatabase:
        """Bind ``engine`` and return the dispatch handle to use in its place."""

        if isinstance(engine, (EngineDatabase, TransactionalDatabase)):
            engine = engine.engine
        if self._engine is engine and self._database is not None:
            return self._database
        if self._engine is not None:
            logger.info(
                "transaction manager rebound from %s to %s",
                self._engine.url.render_as_string(),
                engine.url.render_as_string(),
            )
        self._engine = engine
        self._database = TransactionalDatabase(EngineDatabase(engine), self.get_transaction)
        return self._database

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise TransactionManagerNotInitializedError(
                "transaction manager has no engine; call initialize() first"
            )
        return self._engine

    @property
    def database(self) -> TransactionalDatabase:
        if self._database is None:
            raise TransactionManagerNotInitializedError(
                "transaction manager has no engine; call initialize() first"
            )
        return self._database

    @property
    def context(self) -> ContextStore:
        return self._context

    @property
    def default_options(self) -> TransactionOptions:
        return self._default_options

    # Lookup -------------------------------------------------------------

    def get_transaction(self) -> Transaction | None:
        """Return the transaction of the current unit of work, if any."""

        return self._context.get(TRANSACTION_KEY)

    def require_transaction(self) -> Transaction:
        transaction = self.get_transaction()
        if transaction is None:
            raise NoActiveTransactionError(
                "no transaction is active in the current context; "
                "wrap the call in run_in_transaction()"
            )
        return transaction

    def in_transaction(self) -> bool:
        return self.get_transaction() is not None

    # Units of work ------------------------------------------------------

    async def run_in_transaction(
        self,
        callback: Callable[[], Awaitable[T] | T],
        options: OptionsArg = None,
        *,
        isolation_level: IsolationLevel | str | None = None,
        read_only: bool | None = None,
    ) -> T:
        """Run ``callback`` in a transaction and return its result.

        The transaction commits when ``callback`` returns and rolls back when
        it raises; the callback's exception is re-raised unchanged. Inside an
        active transaction the callback runs on that transaction instead.
        """

        async with self.transaction(
            options, isolation_level=isolation_level, read_only=read_only
        ):
            return await _invoke(callback)

    @asynccontextmanager
    async def transaction(
        self,
        options: OptionsArg = None,
        *,
        isolation_level: IsolationLevel | str | None = None,
        read_only: bool | None = None,
    ) -> AsyncIterator[Transaction]:
        """Async context manager form of :meth:`run_in_transaction`.

        Yields the active transaction when one is already open in the current
        context; otherwise opens a new one for the block.
        """

        engine = self.engine
        resolved = TransactionOptions.coerce(
            options,
            defaults=self._default_options,
            isolation_level=isolation_level,
            read_only=read_only,
        )
        active = self.get_transaction()
        if active is not None and not active.is_completed():
            requested = _requested_fields(options, isolation_level, read_only)
            if requested:
                self._warn_on_conflict(active, resolved, requested)
            yield active
            return

        with self._context.scoped():
            transaction = await Transaction.begin(engine, resolved)
            self._context.set(TRANSACTION_KEY, transaction)
            with structlog.contextvars.bound_contextvars(transaction_id=transaction.id):
                try:
                    yield transaction
                except BaseException:
                    await self._rollback_after_failure(transaction)
                    raise
                await self._commit(transaction)

    async def dispose(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()

    # Helpers ------------------------------------------------------------

    async def _commit(self, transaction: Transaction) -> None:
        if transaction.is_completed():
            logger.debug(
                "transaction %s already completed by the unit of work; skipping commit",
                transaction.id,
            )
            await transaction.close()
            return
        try:
            await transaction.commit()
        except TransactionCommitError:
            logger.exception("commit of transaction %s failed", transaction.id)
            raise

    async def _rollback_after_failure(self, transaction: Transaction) -> None:
        if transaction.is_completed():
            logger.debug(
                "transaction %s already completed by the unit of work; skipping rollback",
                transaction.id,
            )
            await transaction.close()
            return
        try:
            await transaction.rollback()
        except Exception:
            logger.exception(
                "rollback of transaction %s failed; re-raising the original error",
                transaction.id,
            )

    def _warn_on_conflict(
        self,
        active: Transaction,
        resolved: TransactionOptions,
        requested: frozenset[str],
    ) -> None:
        wanted = {
            field: value
            for field, value in resolved.describe().items()
            if field in requested
        }
        current = active.options.describe()
        if any(current[field] != value for field, value in wanted.items()):
            logger.warning(
                "nested unit of work requested %s but reuses transaction %s opened with %s",
                wanted,
                active.id,
                active.options.describe(),
            )
