"""Helpers turning configured DSNs into async SQLAlchemy URLs."""

from __future__ import annotations

from typing import Mapping

from sqlalchemy.engine import URL, make_url

_LIBPQ_KEYS = ("host", "port", "dbname", "user", "password")

_ASYNC_DRIVERS = {
    "postgres": "postgresql+psycopg",
    "postgresql": "postgresql+psycopg",
    "sqlite": "sqlite+aiosqlite",
    "mysql": "mysql+aiomysql",
    "mariadb": "mariadb+aiomysql",
}


def _coerce_port(value: str | int | None) -> int | None:
    if value in (None, ""):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid PostgreSQL port value: {value!r}") from exc


def _url_from_libpq(mapping: Mapping[str, str]) -> URL:
    query = {k: v for k, v in mapping.items() if k not in _LIBPQ_KEYS}
    return URL.create(
        drivername="postgresql+psycopg",
        username=mapping.get("user") or None,
        password=mapping.get("password") or None,
        host=mapping.get("host") or None,
        port=_coerce_port(mapping.get("port")),
        database=mapping.get("dbname") or None,
        query=query,
    )


def to_async_url(raw_dsn: str) -> str:
    """Return ``raw_dsn`` as a URL naming an asyncio-capable driver.

    URLs that already name a driver (``postgresql+asyncpg://``) are kept,
    bare dialect names get the default async driver, and libpq key/value
    strings (``host=... dbname=...``) are converted with psycopg.
    """

    raw = raw_dsn.strip()
    if not raw:
        raise ValueError("database URL must be a non-empty string")

    if "://" in raw:
        url = make_url(raw)
        if "+" not in url.drivername:
            driver = _ASYNC_DRIVERS.get(url.drivername)
            if driver is None:
                raise ValueError(f"no default async driver for '{url.drivername}'")
            url = url.set(drivername=driver)
        return url.render_as_string(hide_password=False)

    from psycopg.conninfo import conninfo_to_dict

    url = _url_from_libpq(conninfo_to_dict(raw))
    return url.render_as_string(hide_password=False)


__all__ = ["to_async_url"]
