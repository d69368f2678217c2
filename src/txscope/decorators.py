"""Function wrappers that run a unit of work inside a transaction."""

from __future__ import annotations

import functools
import inspect
from typing import Any, Awaitable, Callable, Mapping, TypeVar

from .manager import TransactionManager
from .options import IsolationLevel, TransactionOptions

__all__ = ["transactional", "wrap_in_transaction"]

T = TypeVar("T")


def wrap_in_transaction(
    manager: TransactionManager,
    func: Callable[..., Awaitable[T]],
    options: TransactionOptions | Mapping[str, Any] | None = None,
    *,
    isolation_level: IsolationLevel | str | None = None,
    read_only: bool | None = None,
) -> Callable[..., Awaitable[T]]:
    """Return ``func`` wrapped so every call runs through ``manager``.

    Options are validated here but only applied when a call opens a new
    transaction; calls nested in an active unit of work request nothing
    beyond what was passed explicitly.
    """

    if not inspect.iscoroutinefunction(func):
        raise TypeError(
            f"{getattr(func, '__qualname__', func)!r} must be an async function "
            "to run in a transaction"
        )
    TransactionOptions.coerce(
        options,
        defaults=manager.default_options,
        isolation_level=isolation_level,
        read_only=read_only,
    )

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        return await manager.run_in_transaction(
            lambda: func(*args, **kwargs),
            options,
            isolation_level=isolation_level,
            read_only=read_only,
        )

    return wrapper


def transactional(
    manager: TransactionManager,
    options: TransactionOptions | Mapping[str, Any] | None = None,
    *,
    isolation_level: IsolationLevel | str | None = None,
    read_only: bool | None = None,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorator form of :func:`wrap_in_transaction`.

    Example::

        @transactional(manager, isolation_level="serializable")
        async def transfer(source: int, target: int, amount: int) -> None:
            ...
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        return wrap_in_transaction(
            manager,
            func,
            options,
            isolation_level=isolation_level,
            read_only=read_only,
        )

    return decorator
