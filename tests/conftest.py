"""Pytest configuration and fixtures."""

import copy
import os
from collections.abc import Callable, Generator
from typing import Any
from unittest.mock import MagicMock, patch
from uuid import UUID

import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing application modules
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ.setdefault("SUPABASE_SIGNING_KEY_JWK", "test-signing-key-jwk")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_stripe_secret_key")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_webhook_secret")

from src.api.middleware.error_handler import ConcurrentModificationError  # noqa: E402
from src.services.authorization import Actor  # noqa: E402
from src.services.order_service import OrderService  # noqa: E402

ORDER_ID = "6f1c2b9e-3a4d-4e5f-8a7b-1c2d3e4f5a6b"
CUSTOMER_ID = "2b7e1516-28ae-4d2a-abf7-158809cf4f3c"
ADMIN_ID = "9a0b1c2d-3e4f-4a5b-8c6d-7e8f9a0b1c2d"
VENDOR_USER_ID = "3c4d5e6f-7a8b-4c9d-8e0f-1a2b3c4d5e6f"
VENDOR_ID = "0d3e5f7a-9b1c-4d2e-8f3a-5b7c9d1e3f5a"
OTHER_VENDOR_ID = "7e8f9a0b-1c2d-4e3f-9a4b-5c6d7e8f9a0b"
MENU_ID = "c0ffee00-0000-4000-8000-000000000001"


@pytest.fixture(scope="session")
def test_settings() -> Generator[Any, None, None]:
    """Provide test settings with cleared cache.

    Yields:
        Settings: Test configuration settings.
    """
    from src.core.config import get_settings

    get_settings.cache_clear()

    settings = get_settings()
    yield settings

    get_settings.cache_clear()


@pytest.fixture
def mock_supabase_client() -> Generator[MagicMock, None, None]:
    """Provide a mocked Supabase client.

    Yields:
        MagicMock: Mocked Supabase client for testing.
    """
    mock_client = MagicMock()

    mock_response = MagicMock()
    mock_response.data = []
    mock_client.table.return_value.select.return_value.limit.return_value.execute.return_value = (
        mock_response
    )

    with patch("src.core.supabase.get_supabase_client", return_value=mock_client):
        yield mock_client


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
    app.dependency_overrides.clear()


# Actors


@pytest.fixture
def admin_actor() -> Actor:
    return Actor(user_id=UUID(ADMIN_ID), role="admin")


@pytest.fixture
def vendor_actor() -> Actor:
    return Actor(user_id=UUID(VENDOR_USER_ID), role="vendor", vendor_id=VENDOR_ID)


@pytest.fixture
def other_vendor_actor() -> Actor:
    return Actor(user_id=UUID(VENDOR_USER_ID), role="vendor", vendor_id=OTHER_VENDOR_ID)


@pytest.fixture
def customer_actor() -> Actor:
    return Actor(user_id=UUID(CUSTOMER_ID), role="user")


# Orders


def _make_item(**overrides: Any) -> dict[str, Any]:
    item = {
        "id": "item-1",
        "menu_id": MENU_ID,
        "plan_id": "plan-weekly",
        "vendor_id": VENDOR_ID,
        "quantity": 1,
        "start_date": "2026-03-02T12:00:00+00:00",
        "end_date": "2026-03-08T12:00:00+00:00",
        "skipped_dates": ["2026-03-04T12:00:00+00:00"],
        "selected_meal_times": ["Lunch", "dinner"],
        "item_total_price": 900,
        "order_status": [],
    }
    item.update(overrides)
    return item


def _make_order(**overrides: Any) -> dict[str, Any]:
    order = {
        "id": ORDER_ID,
        "user_id": CUSTOMER_ID,
        "items": [_make_item()],
        "total_amount": 900,
        "currency": "inr",
        "status": "confirmed",
        "payment_details": {
            "payment_intent_id": "pi_test_123",
            "status": "succeeded",
            "amount_received": 900,
        },
        "refunds": [],
        "delivery_addresses": {},
        "version": 1,
        "created_at": "2026-03-01T09:30:00+00:00",
        "updated_at": "2026-03-01T09:30:00+00:00",
    }
    order.update(overrides)
    return order


@pytest.fixture
def make_item() -> Callable[..., dict[str, Any]]:
    """Factory for order items; keyword arguments override defaults."""
    return _make_item


@pytest.fixture
def make_order() -> Callable[..., dict[str, Any]]:
    """Factory for orders; keyword arguments override defaults."""
    return _make_order


class OrderTable:
    """In-memory orders table that enforces the version check on write."""

    def __init__(self) -> None:
        self.rows: dict[str, dict[str, Any]] = {}
        self.writes = 0

    def add(self, order: dict[str, Any]) -> None:
        self.rows[str(order["id"])] = copy.deepcopy(order)

    def row(self, order_id: str = ORDER_ID) -> dict[str, Any]:
        return self.rows[str(order_id)]

    async def get(self, order_id: Any) -> dict[str, Any] | None:
        row = self.rows.get(str(order_id))
        return copy.deepcopy(row) if row else None

    async def save(self, order: dict[str, Any]) -> dict[str, Any]:
        stored = self.rows[str(order["id"])]
        if stored.get("version", 0) != order.get("version", 0):
            raise ConcurrentModificationError()
        updated = copy.deepcopy(order)
        updated["version"] = stored.get("version", 0) + 1
        self.rows[str(order["id"])] = updated
        self.writes += 1
        return copy.deepcopy(updated)


@pytest.fixture
def order_table() -> OrderTable:
    return OrderTable()


@pytest.fixture
def order_settings() -> MagicMock:
    settings = MagicMock()
    settings.order_write_attempts = 3
    settings.default_currency = "inr"
    return settings


@pytest.fixture
def order_store(order_table: OrderTable, order_settings: MagicMock) -> OrderService:
    """OrderService whose reads and writes go to the in-memory table."""
    with patch("src.services.order_service.get_supabase_client", return_value=MagicMock()), \
         patch("src.services.order_service.get_settings", return_value=order_settings):
        service = OrderService()
    service.get_order = order_table.get
    service.save_order = order_table.save
    return service
