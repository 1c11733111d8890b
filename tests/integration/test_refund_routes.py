"""Integration tests for refund API endpoints."""

from typing import Any, Callable, Generator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from src.api.deps import get_actor
from src.api.middleware.error_handler import AuthorizationError, ConflictError, ExternalServiceError
from src.main import app
from src.services.authorization import Actor
from src.services.refund_calculator import RefundCalculation

ORDER_ID = "6f1c2b9e-3a4d-4e5f-8a7b-1c2d3e4f5a6b"


@pytest.fixture
def as_admin(client: TestClient, admin_actor: Actor) -> TestClient:
    app.dependency_overrides[get_actor] = lambda: admin_actor
    return client


@pytest.fixture
def mock_refund_service() -> Generator[MagicMock, None, None]:
    """Patch the RefundService used by the refund routes."""
    with patch("src.api.routes.refunds.RefundService") as mock_cls:
        service = MagicMock()
        service.orders.settings.default_currency = "inr"
        mock_cls.return_value = service
        yield service


def make_refund(**overrides: Any) -> dict[str, Any]:
    refund = {
        "gateway_refund_id": "re_123",
        "refund_id": "rf_abc",
        "amount": 400,
        "currency": "inr",
        "status": "PENDING",
        "note": "two meals missed",
        "created_at": "2026-03-09T10:00:00+00:00",
        "updated_at": "2026-03-09T10:00:00+00:00",
    }
    refund.update(overrides)
    return refund


class TestCalculateRefund:
    """Tests for GET /api/v1/orders/{order_id}/refund/calculate endpoint."""

    def test_returns_breakdown(
        self, as_admin: TestClient, mock_refund_service: MagicMock, make_order: Callable[..., dict[str, Any]]
    ) -> None:
        calculation = RefundCalculation(
            suggested_amount=800, consumed_amount=100, consumed_meals_count=1, total_already_refunded=0
        )
        mock_refund_service.calculate = AsyncMock(return_value=(make_order(status="cancelled"), calculation))

        response = as_admin.get(f"/api/v1/orders/{ORDER_ID}/refund/calculate")

        assert response.status_code == 200
        data = response.json()
        assert data["suggested_amount"] == 800
        assert data["total_amount"] == 900
        assert data["currency"] == "inr"

    def test_not_cancelled_is_409(self, as_admin: TestClient, mock_refund_service: MagicMock) -> None:
        mock_refund_service.calculate = AsyncMock(side_effect=ConflictError("Refunds can only be calculated for cancelled orders"))

        response = as_admin.get(f"/api/v1/orders/{ORDER_ID}/refund/calculate")

        assert response.status_code == 409

    def test_vendor_forbidden(
        self, client: TestClient, vendor_actor: Actor, mock_refund_service: MagicMock
    ) -> None:
        app.dependency_overrides[get_actor] = lambda: vendor_actor
        mock_refund_service.calculate = AsyncMock(side_effect=AuthorizationError("Role 'vendor' may not calculate refund"))

        response = client.get(f"/api/v1/orders/{ORDER_ID}/refund/calculate")

        assert response.status_code == 403


class TestProcessRefund:
    """Tests for POST /api/v1/orders/{order_id}/refund/process endpoint."""

    def test_creates_refund(self, as_admin: TestClient, mock_refund_service: MagicMock, admin_actor: Actor) -> None:
        mock_refund_service.process_refund = AsyncMock(return_value=(make_refund(), "gateway"))

        response = as_admin.post(
            f"/api/v1/orders/{ORDER_ID}/refund/process",
            json={"amount": 400, "note": "two meals missed"},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["refund"]["gateway_refund_id"] == "re_123"
        assert data["refund"]["status"] == "PENDING"
        assert data["ledger_source"] == "gateway"
        args = mock_refund_service.process_refund.call_args.args
        assert args[1:] == (400, "two meals missed", admin_actor)

    def test_local_ledger_reported(self, as_admin: TestClient, mock_refund_service: MagicMock) -> None:
        mock_refund_service.process_refund = AsyncMock(return_value=(make_refund(), "local"))

        response = as_admin.post(f"/api/v1/orders/{ORDER_ID}/refund/process", json={"amount": 400})

        assert response.json()["ledger_source"] == "local"

    @pytest.mark.parametrize("amount", [0, -5])
    def test_non_positive_amount_is_400(self, as_admin: TestClient, mock_refund_service: MagicMock, amount: int) -> None:
        response = as_admin.post(f"/api/v1/orders/{ORDER_ID}/refund/process", json={"amount": amount})

        assert response.status_code == 400
        mock_refund_service.process_refund.assert_not_called()

    def test_over_refund_is_409(self, as_admin: TestClient, mock_refund_service: MagicMock) -> None:
        mock_refund_service.process_refund = AsyncMock(
            side_effect=ConflictError("Refund of 800 exceeds the 500 still refundable")
        )

        response = as_admin.post(f"/api/v1/orders/{ORDER_ID}/refund/process", json={"amount": 800})

        assert response.status_code == 409
        assert "exceeds" in response.json()["message"]

    def test_gateway_failure_is_502(self, as_admin: TestClient, mock_refund_service: MagicMock) -> None:
        mock_refund_service.process_refund = AsyncMock(
            side_effect=ExternalServiceError("Gateway rejected the refund: timeout")
        )

        response = as_admin.post(f"/api/v1/orders/{ORDER_ID}/refund/process", json={"amount": 400})

        assert response.status_code == 502
        assert response.json()["error"] == "external_service_error"


class TestCancelRefund:
    """Tests for POST /api/v1/orders/{order_id}/refunds/{refund_id}/cancel endpoint."""

    def test_cancels(self, as_admin: TestClient, mock_refund_service: MagicMock) -> None:
        mock_refund_service.cancel_refund = AsyncMock(return_value=make_refund(status="CANCELLED"))

        response = as_admin.post(f"/api/v1/orders/{ORDER_ID}/refunds/rf_abc/cancel")

        assert response.status_code == 200
        assert response.json()["refund"]["status"] == "CANCELLED"

    def test_settled_refund_is_409(self, as_admin: TestClient, mock_refund_service: MagicMock) -> None:
        mock_refund_service.cancel_refund = AsyncMock(side_effect=ConflictError("Refund re_123 is already SUCCESS"))

        response = as_admin.post(f"/api/v1/orders/{ORDER_ID}/refunds/re_123/cancel")

        assert response.status_code == 409
