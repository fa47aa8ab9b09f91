"""Order lifecycle event notifications."""

import asyncio
import logging
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.core.config import get_settings

logger = logging.getLogger(__name__)

# Retry configuration
MAX_ATTEMPTS = 3
MIN_WAIT_SECONDS = 1
MAX_WAIT_SECONDS = 10


class NotificationService:
    """Fire-and-forget delivery of order events to the notification webhook.

    Events are dispatched only after a transition commits. Delivery is
    at-least-once; the Idempotency-Key header lets consumers drop repeats.
    A failed delivery is logged and never affects the order.
    """

    def __init__(self, http_client: httpx.AsyncClient | None = None) -> None:
        """Initialize notification service from settings."""
        self.settings = get_settings()
        self.webhook_url = self.settings.notification_webhook_url
        self._client = http_client
        self._tasks: set[asyncio.Task] = set()

    async def notify(self, order_id: str, event: str, actor_id: str | None) -> bool:
        """Deliver one event.

        Returns:
            bool: True if the webhook accepted the event.
        """
        if not self.webhook_url:
            logger.debug("Notification webhook not configured, dropping %s for order %s", event, order_id)
            return False

        payload: dict[str, Any] = {"order_id": order_id, "event": event, "actor_id": actor_id}
        headers = {"Idempotency-Key": f"{order_id}:{event}"}
        try:
            await self._post(payload, headers)
        except httpx.HTTPError as e:
            logger.error("Failed to deliver %s notification for order %s: %s", event, order_id, str(e))
            return False

        logger.info("Delivered %s notification for order %s", event, order_id)
        return True

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(MAX_ATTEMPTS),
        wait=wait_exponential(multiplier=1, min=MIN_WAIT_SECONDS, max=MAX_WAIT_SECONDS),
        reraise=True,
    )
    async def _post(self, payload: dict[str, Any], headers: dict[str, str]) -> None:
        """POST one event, retrying connection failures and timeouts."""
        if self._client is not None:
            response = await self._client.post(self.webhook_url, json=payload, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=self.settings.external_request_timeout_seconds) as client:
                response = await client.post(self.webhook_url, json=payload, headers=headers)
        response.raise_for_status()

    def dispatch(self, order_id: str, event: str, actor_id: str | None) -> asyncio.Task:
        """Schedule delivery without waiting for it."""
        task = asyncio.create_task(self.notify(order_id, event, actor_id))
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Notification task failed: %s", str(error), exc_info=error)

    async def drain(self) -> None:
        """Wait for in-flight deliveries, used at shutdown."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
