"""Logging configuration for txscope."""

from __future__ import annotations

import logging

import structlog


def configure_logging(level: str | int = "INFO", *, json: bool = True) -> None:
    """Configure stdlib logging and structlog.

    Transaction ids bound by the manager for the current unit of work are
    merged into every structlog event.
    """

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    if json:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
