"""Schema and assertions shared by the SQLite backed tests."""

from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncEngine

metadata = sa.MetaData()

items = sa.Table(
    "items",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True),
    sa.Column("name", sa.String(64), nullable=False),
)


async def count_items(engine: AsyncEngine) -> int:
    """Count committed rows through a connection of its own."""

    async with engine.connect() as conn:
        return int(await conn.scalar(sa.select(sa.func.count()).select_from(items)))


async def item_names(engine: AsyncEngine) -> list[str]:
    async with engine.connect() as conn:
        result = await conn.execute(sa.select(items.c.name).order_by(items.c.id))
        return list(result.scalars().all())


def insert_item(name: str) -> sa.Insert:
    return items.insert().values(name=name)


COUNT_ITEMS = sa.select(sa.func.count()).select_from(items)
