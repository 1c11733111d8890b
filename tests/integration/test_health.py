"""Integration tests for health check endpoints."""

import time
from unittest.mock import MagicMock, patch

from fastapi.testclient import TestClient

from src.schemas.auth import TokenPayload


class TestHealthEndpoint:
    """Tests for /health endpoint."""

    def test_health_returns_healthy_status(self, client: TestClient) -> None:
        """Test that /health endpoint returns healthy status."""
        response = client.get("/health")
        data = response.json()

        assert response.status_code == 200
        assert data["status"] == "healthy"
        assert data["timestamp"] is not None
        assert data["version"] == "0.1.0"


class TestReadinessEndpoint:
    """Tests for /health/ready endpoint."""

    def test_readiness_returns_200_when_healthy(self, client: TestClient) -> None:
        """Test that /health/ready returns 200 when all dependencies are healthy."""
        response = client.get("/health/ready")
        data = response.json()

        assert response.status_code == 200
        assert data["status"] == "healthy"
        assert {check["name"] for check in data["checks"]} == {"database", "payment_gateway"}

    def test_readiness_database_check_includes_latency(self, client: TestClient) -> None:
        """Test that database check includes latency measurement."""
        response = client.get("/health/ready")
        data = response.json()

        db_check = next(c for c in data["checks"] if c["name"] == "database")
        assert db_check["latency_ms"] is not None

    def test_readiness_returns_503_when_database_unhealthy(self, client: TestClient) -> None:
        """Test that /health/ready returns 503 when database is unhealthy."""
        with patch(
            "src.api.routes.health.check_database_connection",
            return_value={"healthy": False, "error": "Connection timeout"},
        ):
            response = client.get("/health/ready")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "unhealthy"
        db_check = next(c for c in data["checks"] if c["name"] == "database")
        assert db_check["healthy"] is False
        assert db_check["error"] == "Connection timeout"

    def test_readiness_returns_503_without_stripe_keys(self, client: TestClient) -> None:
        """Test that missing gateway credentials make the service unready."""
        settings = MagicMock()
        settings.missing_gateway_settings = ["STRIPE_SECRET_KEY"]

        with patch("src.api.routes.health.get_settings", return_value=settings):
            response = client.get("/health/ready")

        assert response.status_code == 503
        gateway_check = next(c for c in response.json()["checks"] if c["name"] == "payment_gateway")
        assert gateway_check["healthy"] is False
        assert gateway_check["error"] == "Missing STRIPE_SECRET_KEY"


class TestAuthEndpoint:
    """Tests for /health/auth endpoint."""

    def test_requires_token(self, client: TestClient) -> None:
        response = client.get("/health/auth")

        assert response.status_code == 401

    @patch("src.api.deps.decode_jwt")
    def test_returns_user_info(self, mock_decode: MagicMock, client: TestClient) -> None:
        now = int(time.time())
        mock_decode.return_value = TokenPayload(
            sub="550e8400-e29b-41d4-a716-446655440000",
            email="ops@example.com",
            role="authenticated",
            app_metadata={"role": "admin"},
            exp=now + 3600,
            iat=now,
        )

        response = client.get("/health/auth", headers={"Authorization": "Bearer token"})

        assert response.status_code == 200
        data = response.json()
        assert data["user_id"] == "550e8400-e29b-41d4-a716-446655440000"
        assert data["role"] == "admin"


class TestErrorResponseSchema:
    """Tests for error response schema compliance."""

    def test_404_returns_error_response_format(self, client: TestClient) -> None:
        """Test that 404 errors follow ErrorResponse schema."""
        response = client.get("/nonexistent-endpoint")

        assert response.status_code == 404
        data = response.json()
        assert "error" in data or "detail" in data
