"""Unit tests for NotificationService."""

import logging
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from src.services.notification_service import NotificationService


@pytest.fixture
def mock_settings() -> MagicMock:
    settings = MagicMock()
    settings.notification_webhook_url = "https://hooks.test/orders"
    settings.external_request_timeout_seconds = 5.0
    return settings


@pytest.fixture
def http_client() -> AsyncMock:
    client = AsyncMock(spec=httpx.AsyncClient)
    client.post.return_value = MagicMock()
    return client


@pytest.fixture
def notifications(mock_settings: MagicMock, http_client: AsyncMock) -> NotificationService:
    with patch("src.services.notification_service.get_settings", return_value=mock_settings):
        return NotificationService(http_client=http_client)


class TestNotify:
    """Tests for notify."""

    @pytest.mark.asyncio
    async def test_posts_event_with_idempotency_key(
        self, notifications: NotificationService, http_client: AsyncMock
    ) -> None:
        delivered = await notifications.notify("order-1", "submitted", "user-1")

        assert delivered is True
        http_client.post.assert_awaited_once_with(
            "https://hooks.test/orders",
            json={"order_id": "order-1", "event": "submitted", "actor_id": "user-1"},
            headers={"Idempotency-Key": "order-1:submitted"},
        )

    @pytest.mark.asyncio
    async def test_rejected_delivery_returns_false(
        self, notifications: NotificationService, http_client: AsyncMock
    ) -> None:
        response = MagicMock()
        response.raise_for_status.side_effect = httpx.HTTPStatusError(
            "Server error", request=MagicMock(), response=MagicMock()
        )
        http_client.post.return_value = response

        assert await notifications.notify("order-1", "approved", "user-1") is False
        # Error responses are not retried
        http_client.post.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_connection_error_is_retried(
        self, notifications: NotificationService, http_client: AsyncMock
    ) -> None:
        http_client.post.side_effect = [httpx.ConnectError("refused"), MagicMock()]

        assert await notifications.notify("order-1", "approved", "user-1") is True
        assert http_client.post.await_count == 2

    @pytest.mark.asyncio
    async def test_unconfigured_webhook_drops_event(
        self, mock_settings: MagicMock, http_client: AsyncMock
    ) -> None:
        mock_settings.notification_webhook_url = ""
        with patch("src.services.notification_service.get_settings", return_value=mock_settings):
            service = NotificationService(http_client=http_client)

        assert await service.notify("order-1", "approved", "user-1") is False
        http_client.post.assert_not_called()


class TestDispatch:
    """Tests for background dispatch."""

    @pytest.mark.asyncio
    async def test_dispatch_then_drain_delivers(
        self, notifications: NotificationService, http_client: AsyncMock
    ) -> None:
        task = notifications.dispatch("order-1", "fulfilled", "user-1")

        await notifications.drain()

        assert task.done()
        assert task.result() is True
        http_client.post.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unexpected_error_is_logged(
        self,
        notifications: NotificationService,
        http_client: AsyncMock,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        http_client.post.side_effect = RuntimeError("bad payload")

        with caplog.at_level(logging.ERROR, logger="src.services.notification_service"):
            task = notifications.dispatch("order-1", "submitted", "user-1")
            await notifications.drain()

        assert isinstance(task.exception(), RuntimeError)
        assert "Notification task failed: bad payload" in caplog.text
        assert not notifications._tasks
