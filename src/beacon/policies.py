"""Named error policies for best-effort call sites.

A few operations must never change the outcome of the work around them:
writing a delivery-log row, the test delivery fired on creation, and the
``last_triggered_at`` batch stamp after jobs are already enqueued. Those
call sites wrap the operation in :func:`log_and_continue`, which records
the failure and lets execution proceed. Everything else propagates.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class PolicyOutcome:
    """What happened inside a log_and_continue block."""

    operation: str
    failed: bool = False
    error: str | None = None


@asynccontextmanager
async def log_and_continue(operation: str, **context: object) -> AsyncIterator[PolicyOutcome]:
    """Run a block whose failure is logged and contained.

    Args:
        operation: Stable name of the best-effort operation, used in logs.
        **context: Identifiers included in the log record.

    Yields:
        A PolicyOutcome that reports whether the block failed.

    Example:
        ```python
        async with log_and_continue("delivery_log.append", webhook_id=sub.id) as outcome:
            await store.append_delivery_attempt(attempt)
        if outcome.failed:
            ...
        ```
    """
    outcome = PolicyOutcome(operation=operation)
    try:
        yield outcome
    except Exception as e:
        outcome.failed = True
        outcome.error = str(e)
        logger.exception(
            "Best-effort operation %s failed (%s): %s",
            operation,
            ", ".join(f"{k}={v}" for k, v in context.items()) or "no context",
            e,
        )
