"""Single-attempt webhook delivery.

The worker performs exactly one signed HTTP POST per call and writes
exactly one DeliveryAttempt row for it. It never raises for delivery
failures; timeouts, transport errors and non-2xx answers come back as an
unsuccessful DeliveryResult.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING

import httpx

from beacon.logging import delivery_context
from beacon.models import DeliveryAttempt, DeliveryResult, utc_now

from .signature import DEFAULT_USER_AGENT, build_headers

if TYPE_CHECKING:
    from beacon.models import WebhookSubscription

    from .delivery_log import DeliveryLog

logger = logging.getLogger(__name__)

TEST_DELIVERY_ID = "test"


class DeliveryWorker:
    """Sends one signed delivery and records it.

    Example:
        ```python
        worker = DeliveryWorker(DeliveryLog(store))
        result = await worker.attempt(subscription, "mood.logged", body, job_id=job.id)
        ```
    """

    def __init__(
        self,
        delivery_log: DeliveryLog,
        timeout_seconds: float = 30.0,
        user_agent: str = DEFAULT_USER_AGENT,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the delivery worker.

        Args:
            delivery_log: Where attempt rows are written.
            timeout_seconds: Hard bound on one attempt, connect through response.
            user_agent: User-Agent header value.
            client: Shared HTTP client. A short-lived client is opened per
                attempt when omitted.
            clock: Source of the signing timestamp and attempt time.
        """
        self._log = delivery_log
        self._timeout = timeout_seconds
        self._user_agent = user_agent
        self._client = client
        self._clock = clock

    async def _post(self, url: str, body: str, headers: dict[str, str]) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(url, content=body, headers=headers)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.post(url, content=body, headers=headers)

    async def attempt(
        self,
        subscription: WebhookSubscription,
        event_type: str,
        body: str,
        *,
        job_id: str | None = None,
        attempt: int = 1,
    ) -> DeliveryResult:
        """Deliver a body to the subscription's URL once.

        Args:
            subscription: Current subscription state (URL and secret are read here).
            event_type: Event type for the header and the log row.
            body: Raw JSON body to sign and send.
            job_id: Owning job, or None for a test send.
            attempt: 1-based attempt number within the job.

        Returns:
            The attempt outcome.
        """
        url = subscription.url
        timestamp = int(self._clock().timestamp())
        headers = build_headers(
            body,
            event_type,
            subscription.secret,
            delivery_id=job_id or TEST_DELIVERY_ID,
            timestamp=timestamp,
            user_agent=self._user_agent,
        )

        with delivery_context(webhook_id=subscription.id, job_id=job_id, attempt=attempt):
            status_code = 0
            error: str | None = None
            try:
                # Abandon the whole attempt past the bound, not just one I/O phase
                async with asyncio.timeout(self._timeout):
                    response = await self._post(url, body, headers)
                status_code = response.status_code
                if not 200 <= status_code < 300:
                    error = f"HTTP {status_code}"
            except (TimeoutError, httpx.TimeoutException):
                error = "Request timeout"
            except httpx.HTTPError as e:
                error = str(e) or type(e).__name__
            except Exception as e:
                error = f"Unexpected error: {e}"
                logger.exception("Webhook delivery error: %s", e)

            success = error is None
            if success:
                logger.info("Webhook delivered: %s to %s (status %d)", event_type, url, status_code)
            else:
                logger.warning("Webhook attempt failed: %s to %s (%s)", event_type, url, error)

            record = DeliveryAttempt(
                webhook_id=subscription.id,
                job_id=job_id,
                url=url,
                event=event_type,
                status_code=status_code,
                success=success,
                error=error,
                attempt=attempt,
                created_at=self._clock(),
            )
            await self._log.record(record)

        return DeliveryResult(
            success=success,
            status_code=status_code,
            error=error,
            attempt_id=record.id,
        )
