"""ASGI middlewares opening one unit of work per HTTP request."""

from __future__ import annotations

from typing import Iterable

import structlog
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..manager import TransactionManager
from ..options import IsolationLevel, TransactionOptions

__all__ = ["ContextScopeMiddleware", "TransactionMiddleware"]


logger = structlog.get_logger(__name__)


class _ErrorResponse(Exception):
    """Raised inside the unit of work to roll back after an error response."""

    def __init__(self, status: int) -> None:
        super().__init__(status)
        self.status = status


class TransactionMiddleware:
    """Wrap each HTTP request in ``manager.run_in_transaction``.

    The transaction commits once the downstream app finished sending its
    response. It rolls back when the app raises (the exception keeps
    propagating to the server error handler) or when the response status is
    at least ``rollback_on_status``; pass ``None`` to commit regardless of
    the status code.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        manager: TransactionManager,
        isolation_level: IsolationLevel | str | None = None,
        read_only: bool = False,
        read_only_methods: Iterable[str] = (),
        rollback_on_status: int | None = 500,
    ) -> None:
        self.app = app
        self.manager = manager
        self._options = TransactionOptions.coerce(
            defaults=manager.default_options,
            isolation_level=isolation_level,
            read_only=read_only or None,
        )
        self._read_only_options = TransactionOptions.coerce(self._options, read_only=True)
        self._read_only_methods = frozenset(method.upper() for method in read_only_methods)
        self._rollback_on_status = rollback_on_status

    def options_for(self, method: str) -> TransactionOptions:
        if method.upper() in self._read_only_methods:
            return self._read_only_options
        return self._options

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        status: int | None = None

        async def send_wrapper(message: Message) -> None:
            nonlocal status
            if message["type"] == "http.response.start":
                status = int(message["status"])
            await send(message)

        async def handle_request() -> None:
            await self.app(scope, receive, send_wrapper)
            threshold = self._rollback_on_status
            if threshold is not None and status is not None and status >= threshold:
                raise _ErrorResponse(status)

        try:
            await self.manager.run_in_transaction(
                handle_request, self.options_for(scope["method"])
            )
        except _ErrorResponse as signal:
            logger.info(
                "transaction rolled back after error response",
                method=scope["method"],
                path=scope.get("path"),
                status=signal.status,
            )


class ContextScopeMiddleware:
    """Give each HTTP request its own, initially empty, context store scope."""

    def __init__(self, app: ASGIApp, *, manager: TransactionManager) -> None:
        self.app = app
        self.manager = manager

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return
        await self.manager.context.run_scoped(None, self.app, scope, receive, send)
