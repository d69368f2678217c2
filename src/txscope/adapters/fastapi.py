"""FastAPI wiring for the transaction middleware."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request

from ..exceptions import TransactionManagerNotInitializedError
from ..manager import TransactionManager
from .asgi import TransactionMiddleware

__all__ = ["get_transaction_manager", "install_transactions"]


logger = logging.getLogger(__name__)


def install_transactions(
    app: FastAPI,
    manager: TransactionManager,
    *,
    dispose_on_shutdown: bool = True,
    **middleware_options: Any,
) -> TransactionManager:
    """Run every request of ``app`` in a transaction managed by ``manager``.

    ``middleware_options`` are forwarded to :class:`TransactionMiddleware`.
    """

    app.state.transaction_manager = manager
    app.add_middleware(TransactionMiddleware, manager=manager, **middleware_options)

    if dispose_on_shutdown:

        async def _dispose_engine() -> None:
            logger.info("Disposing database engine on shutdown")
            await manager.dispose()

        app.add_event_handler("shutdown", _dispose_engine)
    return manager


def get_transaction_manager(request: Request) -> TransactionManager:
    """FastAPI dependency returning the manager installed on the app."""

    manager = getattr(request.app.state, "transaction_manager", None)
    if manager is None:
        raise TransactionManagerNotInitializedError(
            "no transaction manager installed; call install_transactions() first"
        )
    return manager
