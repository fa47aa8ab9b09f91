"""Pytest configuration and fixtures."""

import os
from collections.abc import Generator, Iterator
from contextlib import contextmanager
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing application modules
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ.setdefault("SUPABASE_SIGNING_KEY_JWK", "test-signing-key-jwk")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_stripe_secret_key")
os.environ.setdefault("TAXJAR_API_KEY", "test-taxjar-key")
os.environ.setdefault("CATALOG_API_URL", "https://catalog.test/api")
os.environ.setdefault("CATALOG_API_TOKEN", "test-catalog-token")
os.environ.setdefault("NOTIFICATION_WEBHOOK_URL", "")

from src.core.unit_of_work import UnitOfWork  # noqa: E402
from src.services.order_repository import OrderRepository  # noqa: E402

BUYER_ID = "550e8400-e29b-41d4-a716-446655440000"
SELLER_ID = "partner-1"
ORDER_ID = "660e8400-e29b-41d4-a716-446655440000"


@pytest.fixture(scope="session")
def test_settings() -> Generator[Any, None, None]:
    """Provide test settings with cleared cache.

    Yields:
        Settings: Test configuration settings.
    """
    from src.core.config import Settings, get_settings

    # Clear the cache to ensure fresh settings
    get_settings.cache_clear()

    settings = get_settings()
    yield settings

    # Clean up cache after tests
    get_settings.cache_clear()


@pytest.fixture
def mock_supabase_client() -> Generator[MagicMock, None, None]:
    """Provide a mocked Supabase client.

    Yields:
        MagicMock: Mocked Supabase client for testing.
    """
    mock_client = MagicMock()

    # Configure default mock responses
    mock_response = MagicMock()
    mock_response.data = []
    mock_client.table.return_value.select.return_value.limit.return_value.execute.return_value = (
        mock_response
    )

    with patch("src.core.supabase.get_supabase_client", return_value=mock_client):
        yield mock_client


@pytest.fixture
def mock_repository() -> MagicMock:
    """Repository mock whose units of work are real and recorded on commit.

    ``repository.committed`` lists every unit that exited cleanly.
    """
    repository = MagicMock(spec=OrderRepository)
    repository.committed = []

    @contextmanager
    def unit_of_work() -> Iterator[UnitOfWork]:
        unit = UnitOfWork()
        yield unit
        repository.committed.append(unit)

    repository.unit_of_work.side_effect = unit_of_work
    repository.get_history.return_value = []
    repository.get_pending_orders_for_buyer.return_value = []
    repository.get_fulfilled_line_item_ids.return_value = set()
    return repository


@pytest.fixture
def sample_artwork() -> dict:
    """Artwork located in New York with both shipping fees set."""
    return {
        "id": "artwork-1",
        "title": "Untitled",
        "location": {
            "country": "US",
            "region": "NY",
            "city": "New York",
            "address": "401 Broadway",
            "postal_code": "10013",
        },
        "domestic_shipping_fee_cents": 2000,
        "international_shipping_fee_cents": 5000,
    }


@pytest.fixture
def sample_order() -> dict:
    """A pending order with no shipping or payment set."""
    return {
        "id": ORDER_ID,
        "code": "123456789",
        "buyer_id": BUYER_ID,
        "seller_id": SELLER_ID,
        "currency_code": "usd",
        "state": "pending",
        "state_updated_at": "2024-06-01T12:00:00+00:00",
        "state_expires_at": "2024-06-03T12:00:00+00:00",
        "fulfillment_type": None,
        "shipping_total_cents": None,
        "tax_total_cents": None,
        "commission_fee_cents": None,
        "transaction_fee_cents": 0,
        "items_total_cents": 50000,
        "buyer_total_cents": 50000,
        "seller_total_cents": 50000,
        "credit_card_id": None,
        "external_credit_card_id": None,
        "external_customer_id": None,
        "external_charge_id": None,
    }


@pytest.fixture
def sample_line_item() -> dict:
    """A single line item priced at $500."""
    return {
        "id": "770e8400-e29b-41d4-a716-446655440000",
        "order_id": ORDER_ID,
        "artwork_id": "artwork-1",
        "edition_set_id": None,
        "price_cents": 50000,
        "quantity": 1,
        "sales_tax_cents": None,
        "should_remit_sales_tax": False,
    }


@pytest.fixture
def client(mock_supabase_client: MagicMock) -> Generator[TestClient, None, None]:
    """Provide a test client for the FastAPI application.

    Args:
        mock_supabase_client: Mocked Supabase client fixture.

    Yields:
        TestClient: FastAPI test client.
    """
    from src.main import app

    with TestClient(app) as test_client:
        yield test_client
