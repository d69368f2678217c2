from __future__ import annotations

import logging

import pytest

from src.txscope import TransactionOptions, transactional, wrap_in_transaction
from tests.helpers.db import count_items, insert_item, item_names

pytestmark = pytest.mark.unit


@pytest.mark.asyncio
async def test_decorated_function_commits(manager, db, engine) -> None:
    @transactional(manager)
    async def create(name: str) -> str:
        await db.execute(insert_item(name))
        return name

    assert await create("decorated") == "decorated"
    assert await item_names(engine) == ["decorated"]


@pytest.mark.asyncio
async def test_decorated_function_rolls_back_on_error(manager, db, engine) -> None:
    @transactional(manager)
    async def create_and_fail(name: str) -> None:
        await db.execute(insert_item(name))
        raise LookupError(name)

    with pytest.raises(LookupError):
        await create_and_fail("discarded")
    assert await count_items(engine) == 0


@pytest.mark.asyncio
async def test_decorated_methods_receive_self(manager, db, engine) -> None:
    class Repository:
        prefix = "repo-"

        @transactional(manager)
        async def add(self, name: str) -> None:
            await db.execute(insert_item(self.prefix + name))

    await Repository().add("item")

    assert await item_names(engine) == ["repo-item"]


def test_wrapper_keeps_function_metadata(manager) -> None:
    async def create_invoice() -> None:
        """Create an invoice."""

    wrapped = transactional(manager)(create_invoice)

    assert wrapped.__name__ == "create_invoice"
    assert wrapped.__doc__ == "Create an invoice."
    assert wrapped.__wrapped__ is create_invoice


def test_sync_functions_are_rejected(manager) -> None:
    def not_async() -> None:
        return None

    with pytest.raises(TypeError, match="async function"):
        transactional(manager)(not_async)


@pytest.mark.asyncio
async def test_decorator_options_reach_the_transaction(manager) -> None:
    @transactional(manager, isolation_level="read uncommitted", read_only=True)
    async def inspect_options() -> TransactionOptions:
        return manager.require_transaction().options

    options = await inspect_options()

    assert options == TransactionOptions(isolation_level="read uncommitted", read_only=True)


@pytest.mark.asyncio
async def test_wrap_in_transaction_wraps_existing_functions(manager, db, engine) -> None:
    async def create(name: str) -> None:
        await db.execute(insert_item(name))

    wrapped = wrap_in_transaction(manager, create, {"read_only": False})
    await wrapped("wrapped")

    assert await item_names(engine) == ["wrapped"]


@pytest.mark.asyncio
async def test_nested_plain_decorator_does_not_warn(manager, db, engine, caplog) -> None:
    caplog.set_level(logging.WARNING, logger="src.txscope.manager")

    @transactional(manager)
    async def create(name: str) -> str:
        await db.execute(insert_item(name))
        return manager.require_transaction().id

    @transactional(manager, isolation_level="serializable")
    async def create_pair() -> tuple[str, str, str]:
        outer_id = manager.require_transaction().id
        return outer_id, await create("first"), await create("second")

    outer_id, first_id, second_id = await create_pair()

    assert outer_id == first_id == second_id
    assert await item_names(engine) == ["first", "second"]
    assert [r for r in caplog.records if r.name == "src.txscope.manager"] == []


def test_decorator_validates_options_when_applied(manager) -> None:
    with pytest.raises(ValueError):
        transactional(manager, isolation_level="eventually")
