"""Database operation surface and the dispatch handle routing it.

Application code receives a :class:`TransactionalDatabase`. Every operation
on it checks for the transaction of the current unit of work and runs there
when one is bound, otherwise it runs on the base engine unmodified.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import (
    Any,
    AsyncContextManager,
    AsyncIterator,
    Callable,
    Mapping,
    Protocol,
    Sequence,
)

from sqlalchemy.engine import URL, Dialect, Engine, Result, ScalarResult
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, AsyncSession
from sqlalchemy.pool import Pool

from .transaction import Transaction
from .utils.statements import coerce_statement, detach_result, has_table, table_names

__all__ = ["Database", "EngineDatabase", "TransactionalDatabase"]


class Database(Protocol):
    """Operations shared by the base engine, transactions and the dispatch handle."""

    async def execute(
        self,
        statement: Any,
        parameters: Mapping[str, Any] | Sequence[Mapping[str, Any]] | None = None,
        *,
        execution_options: Mapping[str, Any] | None = None,
    ) -> Result[Any]:
        """Run a statement and return its result."""
        ...

    async def scalar(self, statement: Any, parameters: Mapping[str, Any] | None = None) -> Any:
        """Return the first column of the first row."""
        ...

    async def scalars(
        self, statement: Any, parameters: Mapping[str, Any] | None = None
    ) -> ScalarResult[Any]:
        """Return the first column of every row."""
        ...

    async def run_sync(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run ``fn`` with a synchronous connection as first argument."""
        ...

    def connect(self) -> AsyncContextManager[AsyncConnection]:
        """Yield a connection to run statements on."""
        ...

    def session(self, **kwargs: Any) -> AsyncContextManager[AsyncSession]:
        """Yield an ORM session."""
        ...

    async def get_table_names(self, schema: str | None = None) -> list[str]:
        """List tables visible to the connection."""
        ...

    async def has_table(self, name: str, schema: str | None = None) -> bool:
        """Return whether ``name`` exists."""
        ...


class EngineDatabase:
    """Run each operation on its own pooled connection in auto-commit style."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def execute(
        self,
        statement: Any,
        parameters: Mapping[str, Any] | Sequence[Mapping[str, Any]] | None = None,
        *,
        execution_options: Mapping[str, Any] | None = None,
    ) -> Result[Any]:
        async with self._engine.begin() as connection:
            result = await connection.execute(
                coerce_statement(statement),
                parameters,
                execution_options=execution_options,
            )
            return detach_result(result)

    async def scalar(self, statement: Any, parameters: Mapping[str, Any] | None = None) -> Any:
        async with self._engine.begin() as connection:
            return await connection.scalar(coerce_statement(statement), parameters)

    async def scalars(
        self, statement: Any, parameters: Mapping[str, Any] | None = None
    ) -> ScalarResult[Any]:
        result = await self.execute(statement, parameters)
        return result.scalars()

    async def run_sync(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        async with self._engine.begin() as connection:
            return await connection.run_sync(fn, *args, **kwargs)

    def connect(self) -> AsyncContextManager[AsyncConnection]:
        return self._engine.connect()

    def begin(self) -> AsyncContextManager[AsyncConnection]:
        return self._engine.begin()

    @asynccontextmanager
    async def session(self, **kwargs: Any) -> AsyncIterator[AsyncSession]:
        options: dict[str, Any] = {"expire_on_commit": False}
        options.update(kwargs)
        async with AsyncSession(bind=self._engine, **options) as session:
            yield session

    async def get_table_names(self, schema: str | None = None) -> list[str]:
        return await self.run_sync(table_names, schema)

    async def has_table(self, name: str, schema: str | None = None) -> bool:
        return await self.run_sync(has_table, name, schema)


class TransactionalDatabase:
    """Dispatch handle standing in for the base engine.

    ``resolve_transaction`` returns the transaction of the current unit of
    work (or ``None``); it is evaluated once per operation. ``begin()``
    always opens an independent transaction on the base engine, and
    configuration attributes pass straight through to it.
    """

    def __init__(
        self,
        base: EngineDatabase,
        resolve_transaction: Callable[[], Transaction | None],
    ) -> None:
        self._base = base
        self._resolve_transaction = resolve_transaction

    def _target(self) -> Transaction | EngineDatabase:
        transaction = self._resolve_transaction()
        if transaction is not None:
            return transaction
        return self._base

    # Operations ---------------------------------------------------------

    async def execute(
        self,
        statement: Any,
        parameters: Mapping[str, Any] | Sequence[Mapping[str, Any]] | None = None,
        *,
        execution_options: Mapping[str, Any] | None = None,
    ) -> Result[Any]:
        return await self._target().execute(
            statement, parameters, execution_options=execution_options
        )

    async def scalar(self, statement: Any, parameters: Mapping[str, Any] | None = None) -> Any:
        return await self._target().scalar(statement, parameters)

    async def scalars(
        self, statement: Any, parameters: Mapping[str, Any] | None = None
    ) -> ScalarResult[Any]:
        return await self._target().scalars(statement, parameters)

    async def run_sync(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        return await self._target().run_sync(fn, *args, **kwargs)

    def connect(self) -> AsyncContextManager[AsyncConnection]:
        return self._target().connect()

    def session(self, **kwargs: Any) -> AsyncContextManager[AsyncSession]:
        return self._target().session(**kwargs)

    async def get_table_names(self, schema: str | None = None) -> list[str]:
        return await self._target().get_table_names(schema)

    async def has_table(self, name: str, schema: str | None = None) -> bool:
        return await self._target().has_table(name, schema)

    def begin(self) -> AsyncContextManager[AsyncConnection]:
        return self._base.begin()

    async def dispose(self) -> None:
        await self._base.engine.dispose()

    # Pass-through attributes --------------------------------------------

    @property
    def engine(self) -> AsyncEngine:
        return self._base.engine

    @property
    def sync_engine(self) -> Engine:
        return self._base.engine.sync_engine

    @property
    def dialect(self) -> Dialect:
        return self._base.engine.dialect

    @property
    def url(self) -> URL:
        return self._base.engine.url

    @property
    def name(self) -> str:
        return self._base.engine.name

    @property
    def pool(self) -> Pool:
        return self._base.engine.pool

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"TransactionalDatabase(url={self.url.render_as_string()!r})"
