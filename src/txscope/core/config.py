"""Environment driven configuration for the transaction layer.

Every field can be set through a ``TXSCOPE_``-prefixed environment variable,
e.g. ``TXSCOPE_DATABASE_URL`` or ``TXSCOPE_DEFAULT_ISOLATION_LEVEL``.
"""

from __future__ import annotations

from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from ..options import IsolationLevel, TransactionOptions
from ..utils.dsn import to_async_url


class TransactionSettings(BaseSettings):
    """Pydantic settings container for engines and transaction defaults."""

    model_config = SettingsConfigDict(env_prefix="TXSCOPE_")

    database_url: str = Field(
        default="sqlite+aiosqlite:///./txscope.db",
        description="Database URL; bare dialects get their default async driver.",
    )
    echo: bool = Field(default=False, description="Log every SQL statement.")
    pool_size: int = Field(
        default=5,
        ge=1,
        description="Connections kept in the pool (ignored for SQLite).",
    )
    max_overflow: int = Field(
        default=10,
        ge=0,
        description="Connections allowed above pool_size (ignored for SQLite).",
    )
    pool_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Seconds to wait for a pooled connection (ignored for SQLite).",
    )
    pool_pre_ping: bool = Field(
        default=False,
        description="Test connections for liveness on checkout.",
    )
    default_isolation_level: IsolationLevel | None = Field(
        default=None,
        description="Isolation level used when a unit of work does not request one.",
    )
    default_read_only: bool = Field(
        default=False,
        description="Open read-only transactions unless a unit of work overrides it.",
    )
    log_level: str = Field(default="INFO", description="Root log level.")
    log_json: bool = Field(default=True, description="Render logs as JSON lines.")

    @field_validator("default_isolation_level", mode="before")
    @classmethod
    def _parse_isolation_level(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        return IsolationLevel.parse(value)

    @field_validator("database_url")
    @classmethod
    def _normalize_database_url(cls, value: str) -> str:
        return to_async_url(value)

    def default_options(self) -> TransactionOptions:
        return TransactionOptions(
            isolation_level=self.default_isolation_level,
            read_only=self.default_read_only,
        )


def build_engine(settings: TransactionSettings) -> AsyncEngine:
    """Create the async engine described by ``settings``."""

    url = make_url(settings.database_url)
    kwargs: dict[str, Any] = {
        "echo": settings.echo,
        "pool_pre_ping": settings.pool_pre_ping,
    }
    if url.get_backend_name() != "sqlite":
        kwargs.update(
            pool_size=settings.pool_size,
            max_overflow=settings.max_overflow,
            pool_timeout=settings.pool_timeout_seconds,
        )
    return create_async_engine(url, **kwargs)


__all__ = ["TransactionSettings", "build_engine"]
