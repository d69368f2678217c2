"""Execution-scoped key/value store for units of work.

The store follows the causal chain of an asyncio task instead of a thread:
asyncio copies the current :mod:`contextvars` context into every task it
creates, so sub-steps spawned inside a scope observe the same store while
sibling tasks that open their own scope never see each other's values.
"""

from __future__ import annotations

import inspect
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Callable, Iterator

from .exceptions import NoActiveScopeError

__all__ = ["ContextStore"]


class ContextStore:
    """Publish a ``dict`` for the dynamic extent of one unit of work."""

    def __init__(self, name: str = "txscope") -> None:
        self.name = name
        self._current: ContextVar[dict[str, Any] | None] = ContextVar(
            f"{name}_store", default=None
        )

    def current_store(self) -> dict[str, Any] | None:
        """Return the store of the active scope or ``None`` outside of one."""

        return self._current.get()

    def in_scope(self) -> bool:
        return self._current.get() is not None

    @contextmanager
    def scoped(self, store: dict[str, Any] | None = None) -> Iterator[dict[str, Any]]:
        """Make ``store`` (a fresh one by default) current inside the block.

        The previously active store is restored on exit, so scopes nest to
        any depth.
        """

        active = {} if store is None else store
        token = self._current.set(active)
        try:
            yield active
        finally:
            self._current.reset(token)

    async def run_scoped(
        self,
        store: dict[str, Any] | None,
        fn: Callable[..., Any],
        /,
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        """Run ``fn`` with ``store`` as the current store and return its result."""

        with self.scoped(store):
            result = fn(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await result
            return result

    def get(self, key: str, default: Any = None) -> Any:
        store = self._current.get()
        if store is None:
            return default
        return store.get(key, default)

    def set(self, key: str, value: Any) -> None:
        store = self._current.get()
        if store is None:
            raise NoActiveScopeError(
                f"cannot set '{key}': no active '{self.name}' scope"
            )
        store[key] = value

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"ContextStore(name={self.name!r}, in_scope={self.in_scope()})"
