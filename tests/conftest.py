from __future__ import annotations

import os

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import AsyncAdaptedQueuePool

from src.txscope import TransactionManager, TransactionalDatabase
from tests.helpers.db import metadata

POSTGRES_DSN_ENV = "TXSCOPE_TEST_POSTGRES_DSN"
POSTGRES_MISSING_REASON = f"{POSTGRES_DSN_ENV} is not set; PostgreSQL tests skipped"


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncEngine:
    """File backed SQLite engine so every pooled connection shares one database."""

    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'txscope.db'}",
        poolclass=AsyncAdaptedQueuePool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def manager(engine: AsyncEngine) -> TransactionManager:
    return TransactionManager(engine)


@pytest.fixture
def db(manager: TransactionManager) -> TransactionalDatabase:
    return manager.database


@pytest.fixture
def postgres_dsn() -> str:
    dsn = os.getenv(POSTGRES_DSN_ENV)
    if not dsn:
        pytest.skip(POSTGRES_MISSING_REASON)
    return dsn
