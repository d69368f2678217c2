"""Transaction handle bound to one pooled connection."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, AsyncIterator, Callable, Mapping, Sequence
from uuid import uuid4

import sqlalchemy as sa
from sqlalchemy import exc as sa_exc
from sqlalchemy.engine import Result, ScalarResult
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncEngine,
    AsyncSession,
    AsyncTransaction,
)

from .exceptions import (
    TransactionAlreadyCompletedError,
    TransactionCommitError,
    TransactionOpenError,
    TransactionRollbackError,
    UnsupportedIsolationLevelError,
    UnsupportedReadOnlyError,
    handle_sqlalchemy_errors,
)
from .options import TransactionOptions
from .utils.statements import coerce_statement, has_table, table_names

__all__ = ["Transaction", "TransactionState"]


logger = logging.getLogger(__name__)


class TransactionState(str, Enum):
    OPEN = "open"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


def _read_only_plan(
    dialect_name: str,
) -> tuple[dict[str, Any], tuple[str, ...], tuple[str, ...]]:
    """Return execution options, setup and reset statements for read-only mode."""

    if dialect_name == "postgresql":
        return {"postgresql_readonly": True}, (), ()
    if dialect_name in {"mysql", "mariadb"}:
        return {}, ("SET TRANSACTION READ ONLY",), ()
    if dialect_name == "sqlite":
        return {}, ("PRAGMA query_only = ON",), ("PRAGMA query_only = OFF",)
    raise UnsupportedReadOnlyError(
        f"read-only transactions are not supported for dialect '{dialect_name}'"
    )


class Transaction:
    """One database transaction and the connection it holds until completion.

    Exactly one terminal transition happens per handle: after :meth:`commit`
    or :meth:`rollback` every further lifecycle call or database operation
    raises :class:`TransactionAlreadyCompletedError`.
    """

    def __init__(
        self,
        connection: AsyncConnection,
        transaction: AsyncTransaction,
        options: TransactionOptions,
        *,
        reset_statements: Sequence[str] = (),
    ) -> None:
        self.id = uuid4().hex
        self.options = options
        self._connection = connection
        self._transaction = transaction
        self._reset_statements = tuple(reset_statements)
        self._state = TransactionState.OPEN
        self._released = False
        self._lock = asyncio.Lock()

    @classmethod
    async def begin(
        cls,
        engine: AsyncEngine,
        options: TransactionOptions | None = None,
    ) -> "Transaction":
        """Check out a connection from ``engine`` and open a transaction on it."""

        options = options or TransactionOptions()
        dialect_name = engine.dialect.name
        execution_options: dict[str, Any] = {}
        setup: tuple[str, ...] = ()
        reset: tuple[str, ...] = ()
        if options.read_only:
            execution_options, setup, reset = _read_only_plan(dialect_name)
        if options.isolation_level is not None:
            execution_options["isolation_level"] = options.isolation_level.value

        with handle_sqlalchemy_errors(TransactionOpenError, operation="begin"):
            connection = await engine.connect()
        try:
            if execution_options:
                try:
                    await connection.execution_options(**execution_options)
                except sa_exc.ArgumentError as exc:
                    raise UnsupportedIsolationLevelError(
                        f"dialect '{dialect_name}' rejected transaction options "
                        f"{options.describe()}"
                    ) from exc
            with handle_sqlalchemy_errors(TransactionOpenError, operation="begin"):
                transaction = await connection.begin()
                for statement in setup:
                    await connection.execute(sa.text(statement))
        except BaseException:
            await connection.close()
            raise

        handle = cls(connection, transaction, options, reset_statements=reset)
        logger.debug(
            "transaction %s opened",
            handle.id,
            extra={"transaction_id": handle.id, **options.describe()},
        )
        return handle

    # Lifecycle ----------------------------------------------------------

    @property
    def connection(self) -> AsyncConnection:
        return self._connection

    @property
    def state(self) -> TransactionState:
        return self._state

    def is_completed(self) -> bool:
        """Return ``True`` once the transaction cannot run statements anymore.

        Covers transitions made through this handle as well as transactions
        finished directly on the connection or by a joined ORM session.
        """

        return self._state is not TransactionState.OPEN or not self._transaction.is_active

    async def commit(self) -> None:
        self._ensure_open("commit")
        try:
            with handle_sqlalchemy_errors(
                TransactionCommitError, operation="commit", transaction_id=self.id
            ):
                await self._transaction.commit()
        except BaseException:
            self._state = TransactionState.ROLLED_BACK
            raise
        else:
            self._state = TransactionState.COMMITTED
            logger.debug("transaction %s committed", self.id)
        finally:
            await self._release()

    async def rollback(self) -> None:
        self._ensure_open("rollback")
        try:
            with handle_sqlalchemy_errors(
                TransactionRollbackError, operation="rollback", transaction_id=self.id
            ):
                await self._transaction.rollback()
        finally:
            self._state = TransactionState.ROLLED_BACK
            logger.debug("transaction %s rolled back", self.id)
            await self._release()

    async def close(self) -> None:
        """Release the connection; an open transaction is rolled back."""

        if self._state is TransactionState.OPEN:
            self._state = TransactionState.ROLLED_BACK
        await self._release()

    # Operations ---------------------------------------------------------

    async def execute(
        self,
        statement: Any,
        parameters: Mapping[str, Any] | Sequence[Mapping[str, Any]] | None = None,
        *,
        execution_options: Mapping[str, Any] | None = None,
    ) -> Result[Any]:
        self._ensure_open("execute")
        async with self._lock:
            return await self._connection.execute(
                coerce_statement(statement),
                parameters,
                execution_options=execution_options,
            )

    async def scalar(
        self,
        statement: Any,
        parameters: Mapping[str, Any] | None = None,
    ) -> Any:
        self._ensure_open("scalar")
        async with self._lock:
            return await self._connection.scalar(coerce_statement(statement), parameters)

    async def scalars(
        self,
        statement: Any,
        parameters: Mapping[str, Any] | None = None,
    ) -> ScalarResult[Any]:
        self._ensure_open("scalars")
        async with self._lock:
            return await self._connection.scalars(coerce_statement(statement), parameters)

    async def run_sync(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run ``fn(sync_connection, *args, **kwargs)`` on the bound connection."""

        self._ensure_open("run_sync")
        async with self._lock:
            return await self._connection.run_sync(fn, *args, **kwargs)

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[AsyncConnection]:
        """Yield the bound connection; it stays open when the block exits."""

        self._ensure_open("connect")
        yield self._connection

    @asynccontextmanager
    async def session(self, **kwargs: Any) -> AsyncIterator[AsyncSession]:
        """Yield an ORM session joined to this transaction.

        ``session.commit()`` does not commit the transaction; a session
        rollback rolls the whole transaction back.
        """

        self._ensure_open("session")
        options: dict[str, Any] = {
            "join_transaction_mode": "conservative_savepoint",
            "expire_on_commit": False,
        }
        options.update(kwargs)
        async with AsyncSession(bind=self._connection, **options) as session:
            yield session

    async def get_table_names(self, schema: str | None = None) -> list[str]:
        return await self.run_sync(table_names, schema)

    async def has_table(self, name: str, schema: str | None = None) -> bool:
        return await self.run_sync(has_table, name, schema)

    # Helpers ------------------------------------------------------------

    def _ensure_open(self, operation: str) -> None:
        if self.is_completed():
            raise TransactionAlreadyCompletedError(
                f"cannot {operation}: transaction '{self.id}' is already completed "
                f"({self._state.value})"
            )

    async def _release(self) -> None:
        if self._released:
            return
        self._released = True
        try:
            for statement in self._reset_statements:
                await self._connection.execute(sa.text(statement))
        except Exception:
            logger.warning(
                "failed to reset connection state after transaction %s; "
                "discarding the connection",
                self.id,
                exc_info=True,
            )
            await self._connection.invalidate()
        finally:
            await self._connection.close()

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"Transaction(id={self.id!r}, state={self._state.value!r})"
