"""Retry utilities for SQL storage operations.

Retries transient connection failures with exponential backoff. Only
idempotent operations are decorated: an increment whose commit may have
landed before the connection dropped must not be replayed.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)


def _log_retry(retry_state: RetryCallState) -> None:
    """Log retry attempts with context."""
    if retry_state.attempt_number >= 1:
        logger.warning(
            "Retrying database operation",
            extra={
                "attempt": retry_state.attempt_number,
                "fn_name": retry_state.fn.__name__ if retry_state.fn else "unknown",
                "exception": str(retry_state.outcome.exception()) if retry_state.outcome else None,
            },
        )


db_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
    retry=retry_if_exception_type(
        (
            OperationalError,  # Connection lost, database locked
            InterfaceError,  # Driver-level connection failure
            DisconnectionError,  # Pool detected a dead connection
        )
    ),
    before_sleep=_log_retry,
    reraise=True,
)
