"""Integration tests for order API endpoints."""

from typing import Any, Callable, Generator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from src.api.deps import get_actor
from src.api.middleware.error_handler import (
    AuthorizationError,
    ConcurrentModificationError,
    ConflictError,
)
from src.main import app
from src.services.authorization import Actor

ORDER_ID = "6f1c2b9e-3a4d-4e5f-8a7b-1c2d3e4f5a6b"


@pytest.fixture
def as_admin(client: TestClient, admin_actor: Actor) -> TestClient:
    app.dependency_overrides[get_actor] = lambda: admin_actor
    return client


@pytest.fixture
def mock_order_service() -> Generator[MagicMock, None, None]:
    """Patch the OrderService used by the order routes."""
    with patch("src.api.routes.orders.OrderService") as mock_cls:
        service = MagicMock()
        mock_cls.return_value = service
        yield service


class TestAuthentication:
    """Tests for unauthenticated access."""

    def test_requires_token(self, client: TestClient) -> None:
        response = client.get("/api/v1/orders")

        assert response.status_code == 401


class TestListOrders:
    """Tests for GET /api/v1/orders endpoint."""

    def test_returns_orders(
        self, as_admin: TestClient, mock_order_service: MagicMock, make_order: Callable[..., dict[str, Any]]
    ) -> None:
        mock_order_service.list_orders_for_actor = AsyncMock(return_value=[make_order()])

        response = as_admin.get("/api/v1/orders")

        assert response.status_code == 200
        data = response.json()
        assert len(data["items"]) == 1
        assert data["items"][0]["id"] == ORDER_ID
        assert data["items"][0]["items"][0]["selected_meal_times"] == ["Lunch", "dinner"]

    def test_customer_forbidden(
        self, client: TestClient, customer_actor: Actor, mock_order_service: MagicMock
    ) -> None:
        app.dependency_overrides[get_actor] = lambda: customer_actor
        mock_order_service.list_orders_for_actor = AsyncMock(side_effect=AuthorizationError("Role 'user' may not list orders"))

        response = client.get("/api/v1/orders")

        assert response.status_code == 403
        assert response.json()["error"] == "authorization_error"


class TestGetOrder:
    """Tests for GET /api/v1/orders/{order_id} endpoint."""

    def test_returns_order(
        self, as_admin: TestClient, mock_order_service: MagicMock, make_order: Callable[..., dict[str, Any]]
    ) -> None:
        mock_order_service.get_order_for_actor = AsyncMock(return_value=make_order())

        response = as_admin.get(f"/api/v1/orders/{ORDER_ID}")

        assert response.status_code == 200
        assert response.json()["version"] == 1

    def test_malformed_id_is_400(self, as_admin: TestClient) -> None:
        response = as_admin.get("/api/v1/orders/not-a-uuid")

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"


class TestUpdateOrderStatus:
    """Tests for PATCH /api/v1/orders/{order_id}/status endpoint."""

    def test_updates_status(
        self, as_admin: TestClient, mock_order_service: MagicMock, make_order: Callable[..., dict[str, Any]]
    ) -> None:
        mock_order_service.update_order_status = AsyncMock(return_value=(make_order(status="cancelled"), True))

        response = as_admin.patch(f"/api/v1/orders/{ORDER_ID}/status", json={"status": "cancelled"})

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "cancelled"
        assert data["message"] == "Order status updated"

    def test_same_status_reports_noop(
        self, as_admin: TestClient, mock_order_service: MagicMock, make_order: Callable[..., dict[str, Any]]
    ) -> None:
        mock_order_service.update_order_status = AsyncMock(return_value=(make_order(status="delivered"), False))

        response = as_admin.patch(f"/api/v1/orders/{ORDER_ID}/status", json={"status": "delivered"})

        assert response.status_code == 200
        assert response.json()["message"] == "Order already has this status"

    def test_invalid_transition_is_409(self, as_admin: TestClient, mock_order_service: MagicMock) -> None:
        mock_order_service.update_order_status = AsyncMock(
            side_effect=ConflictError("Cannot change order status from 'delivered' to 'cancelled'")
        )

        response = as_admin.patch(f"/api/v1/orders/{ORDER_ID}/status", json={"status": "cancelled"})

        assert response.status_code == 409
        assert response.json()["error"] == "conflict"

    def test_version_race_is_409(self, as_admin: TestClient, mock_order_service: MagicMock) -> None:
        mock_order_service.update_order_status = AsyncMock(side_effect=ConcurrentModificationError())

        response = as_admin.patch(f"/api/v1/orders/{ORDER_ID}/status", json={"status": "cancelled"})

        assert response.status_code == 409
        assert response.json()["error"] == "concurrent_modification"

    def test_missing_body_is_400(self, as_admin: TestClient) -> None:
        response = as_admin.patch(f"/api/v1/orders/{ORDER_ID}/status", json={})

        assert response.status_code == 400


class TestMealStatus:
    """Tests for meal status endpoints."""

    def test_updates_meal_status(self, as_admin: TestClient, mock_order_service: MagicMock) -> None:
        entry = {
            "date": "2026-03-05T12:00:00+00:00",
            "meal_time": "lunch",
            "status": "delivered",
            "updated_by": "9a0b1c2d-3e4f-4a5b-8c6d-7e8f9a0b1c2d",
            "updated_at": "2026-03-05T13:00:00+00:00",
            "notes": None,
        }
        mock_order_service.update_meal_status = AsyncMock(return_value=entry)

        response = as_admin.patch(
            f"/api/v1/orders/{ORDER_ID}/items/item-1/meal-status",
            json={"date": "2026-03-05", "meal_time": "Lunch", "status": "delivered"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["item_id"] == "item-1"
        assert data["entry"]["status"] == "delivered"
        kwargs = mock_order_service.update_meal_status.call_args.kwargs
        assert kwargs["date_value"] == "2026-03-05"
        assert kwargs["meal_time"] == "Lunch"

    def test_status_history(
        self, as_admin: TestClient, mock_order_service: MagicMock, make_item: Callable[..., dict[str, Any]]
    ) -> None:
        item = make_item()
        mock_order_service.get_status_history = AsyncMock(return_value=(item, []))

        response = as_admin.get(f"/api/v1/orders/{ORDER_ID}/items/item-1/status-history")

        assert response.status_code == 200
        data = response.json()
        assert data["selected_meal_times"] == ["lunch", "dinner"]
        assert data["history"] == []

    def test_meal_schedule_not_shadowed_by_order_route(
        self, as_admin: TestClient, mock_order_service: MagicMock
    ) -> None:
        mock_order_service.get_meal_schedule = AsyncMock(
            return_value={"breakfast": [], "lunch": [], "dinner": []}
        )

        response = as_admin.get("/api/v1/orders/items/meal-schedule", params={"date": "2026-03-05"})

        assert response.status_code == 200
        assert response.json()["date"] == "2026-03-05"
        mock_order_service.get_meal_schedule.assert_awaited_once()

    def test_meal_schedule_requires_date(self, as_admin: TestClient) -> None:
        response = as_admin.get("/api/v1/orders/items/meal-schedule")

        assert response.status_code == 400


class TestAnalytics:
    """Tests for GET /api/v1/analytics endpoint."""

    def test_returns_summary(self, as_admin: TestClient, make_order: Callable[..., dict[str, Any]]) -> None:
        summary = {
            "scope": "all",
            "total_orders": 1,
            "pending_orders": 0,
            "active_customers": 1,
            "revenue_today": 900,
            "recent_orders": [make_order()],
            "popular_menus": [{"menu_id": "m1", "name": "Thali", "orders": 1}],
        }
        with patch("src.api.routes.analytics.AnalyticsService") as mock_cls:
            mock_cls.return_value.get_summary = AsyncMock(return_value=summary)

            response = as_admin.get("/api/v1/analytics")

        assert response.status_code == 200
        data = response.json()
        assert data["revenue_today"] == 900
        assert data["recent_orders"][0]["id"] == ORDER_ID
