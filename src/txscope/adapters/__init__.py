"""Framework adapters opening units of work per inbound request."""

from .asgi import ContextScopeMiddleware, TransactionMiddleware
from .fastapi import get_transaction_manager, install_transactions

__all__ = [
    "ContextScopeMiddleware",
    "TransactionMiddleware",
    "get_transaction_manager",
    "install_transactions",
]
