"""Run notification webhook client with exponential backoff retry logic"""

import asyncio
import logging
from typing import Any, Dict

import httpx

from sda_billing.config import settings
from sda_billing.infrastructure.observability.metrics import (
    notification_failure_counter,
    notification_latency_histogram,
)

logger = logging.getLogger(__name__)


class NotificationClient:
    """Posts automation run summaries to the notification service"""

    def __init__(
        self,
        webhook_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        max_retries: int | None = None,
        backoff_base: float | None = None,
    ):
        self.webhook_url = webhook_url or settings.notification_webhook_url
        self.transport = transport
        self.max_retries = max_retries or settings.webhook_max_retries
        self.backoff_base = settings.webhook_backoff_base if backoff_base is None else backoff_base

    async def send_run_completed(self, payload: Dict[str, Any]) -> None:
        """
        Deliver one organization's run summary.

        Retry strategy:
        - Exponential backoff: base, 2x base, 4x base, ...
        - Retries on 5xx / 4xx responses and network failures
        - The final failure is re-raised after max_retries attempts
        """
        attempt = 0
        async with httpx.AsyncClient(transport=self.transport) as client:
            while attempt < self.max_retries:
                try:
                    with notification_latency_histogram.time():
                        response = await client.post(
                            self.webhook_url,
                            json=payload,
                            timeout=settings.http_timeout_seconds,
                        )
                        response.raise_for_status()
                        return

                except (httpx.HTTPStatusError, httpx.RequestError) as e:
                    attempt += 1
                    notification_failure_counter.inc()
                    logger.warning(
                        "Run notification failed",
                        extra={
                            "run_id": payload.get("run_id"),
                            "attempt": attempt,
                            "error": str(e),
                        },
                    )

                    if attempt >= self.max_retries:
                        raise

                    await asyncio.sleep(self.backoff_base * (2 ** (attempt - 1)))

    async def send_many(self, payloads: list[Dict[str, Any]]) -> None:
        """Background task entry point: a failed delivery does not block the rest"""
        for payload in payloads:
            try:
                await self.send_run_completed(payload)
            except (httpx.HTTPStatusError, httpx.RequestError):
                logger.error(
                    "Giving up on run notification",
                    extra={"run_id": payload.get("run_id"), "organization_id": payload.get("organization_id")},
                )
