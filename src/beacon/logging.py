"""Structured logging configuration for Beacon.

Delivery workers run many attempts concurrently, so every log line carries
its webhook and job context through structlog's contextvars integration.
Standard library loggers used inside the delivery pipeline are routed
through the same renderer.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from structlog.typing import Processor

_configured = False


def configure_logging(
    level: str = "INFO",
    format: str = "json",
) -> None:
    """Configure structured logging for Beacon.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        format: "json" for production, "text" for a colored dev console.
    """
    global _configured

    log_level = getattr(logging, level.upper(), logging.INFO)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    renderer: Processor
    if format.lower() == "json":
        renderer = structlog.processors.JSONRenderer()
        shared_processors.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    # Stdlib records (logging.getLogger(__name__)) get the same rendering
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _configured = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Example:
        ```python
        from beacon.logging import get_logger

        logger = get_logger(__name__)
        logger.info("Webhook created", webhook_id="whk_123", user_id="user_1")
        ```
    """
    if not _configured:
        configure_logging()

    return structlog.get_logger(name)  # type: ignore[no-any-return]


def bind_context(**kwargs: object) -> None:
    """Bind context variables to all subsequent log messages in this task."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()


@contextmanager
def delivery_context(**kwargs: object) -> Iterator[None]:
    """Bind delivery identifiers for the duration of one attempt.

    Each asyncio task has its own contextvars copy, so concurrent attempts
    never see each other's webhook_id or job_id.

    Example:
        ```python
        with delivery_context(webhook_id=sub.id, job_id=job.id, attempt=2):
            await worker.attempt(...)
        ```
    """
    with structlog.contextvars.bound_contextvars(**kwargs):
        yield
