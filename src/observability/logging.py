"""
Structured logging configuration using structlog.

JSON logs in production, colored console output in development. Request
and sync context (request_id, platform, handle) is carried through
contextvars so every event logged while serving a request or syncing a
source is tagged with it.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import structlog
from structlog.types import Processor

from src.config.settings import get_settings

# Third-party loggers that are chatty at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "asyncio", "telethon", "uvicorn.access")


def setup_logging() -> None:
    """
    Configure structured logging for the application.

    Usage:
        setup_logging()
        logger = structlog.get_logger(__name__)
        logger.info("Batch stored", platform="telegram", size=200)
    """
    settings = get_settings()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.is_production:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level),
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_context(**kwargs) -> None:
    """Bind key-value pairs to all subsequent log events in this context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()


@contextmanager
def source_context(platform: str, handle: str, mode: str) -> Iterator[None]:
    """
    Tag every event logged while syncing one source.

    Bindings are removed on exit, so concurrent sources running in separate
    tasks never see each other's tags.

    Usage:
        with source_context("telegram", "investigations", "backfill"):
            logger.info("Batch stored", size=200)
    """
    with structlog.contextvars.bound_contextvars(
        platform=platform,
        handle=handle,
        mode=mode,
    ):
        yield
