"""Statement and result helpers shared by the database surfaces."""

from __future__ import annotations

from typing import Any

import sqlalchemy as sa
from sqlalchemy.engine import Connection, Result


def coerce_statement(statement: Any) -> Any:
    """Wrap raw SQL strings in :func:`sqlalchemy.text`."""

    if isinstance(statement, str):
        return sa.text(statement)
    return statement


def detach_result(result: Result[Any]) -> Result[Any]:
    """Buffer row results so they outlive the connection that produced them."""

    if result.returns_rows:
        return result.freeze()()
    return result


def table_names(connection: Connection, schema: str | None = None) -> list[str]:
    return sa.inspect(connection).get_table_names(schema=schema)


def has_table(connection: Connection, name: str, schema: str | None = None) -> bool:
    return sa.inspect(connection).has_table(name, schema=schema)


__all__ = ["coerce_statement", "detach_result", "has_table", "table_names"]
