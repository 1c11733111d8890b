"""Liveness, readiness and token probes."""

import time

from fastapi import APIRouter, Response, status

from src.api.deps import CurrentUser
from src.core.config import get_settings
from src.core.supabase import check_database_connection
from src.schemas.auth import AuthenticatedResponse
from src.schemas.common import CheckResult, HealthResponse, HealthStatus, ReadinessResponse

router = APIRouter(tags=["health"])


async def _database_check() -> CheckResult:
    started = time.perf_counter()
    result = await check_database_connection()
    return CheckResult(
        name="database",
        healthy=result["healthy"],
        latency_ms=round((time.perf_counter() - started) * 1000, 2),
        error=result.get("error"),
    )


def _payment_gateway_check() -> CheckResult:
    missing = get_settings().missing_gateway_settings
    return CheckResult(
        name="payment_gateway",
        healthy=not missing,
        error=f"Missing {', '.join(missing)}" if missing else None,
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Liveness check",
    description="Returns 200 while the process is up. Dependencies are not checked.",
)
async def health_check() -> HealthResponse:
    return HealthResponse(status=HealthStatus.HEALTHY)


@router.get(
    "/health/ready",
    response_model=ReadinessResponse,
    responses={
        200: {"description": "Orders table reachable and gateway configured"},
        503: {"description": "At least one dependency is unavailable"},
    },
    summary="Readiness check",
    description="Checks the orders table and the Stripe configuration.",
)
async def readiness_check(response: Response) -> ReadinessResponse:
    """Report whether the service can take order and refund traffic.

    The database check runs a one-row read of ``orders``. Stripe is not
    called; only its keys are checked, so a Stripe outage surfaces as 502 on
    the refund routes rather than taking the service out of rotation.

    Args:
        response: Used to set 503 when a check fails.

    Returns:
        ReadinessResponse: Overall status and per-dependency results.
    """
    checks = [await _database_check(), _payment_gateway_check()]

    ready = all(check.healthy for check in checks)
    if not ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return ReadinessResponse(
        status=HealthStatus.HEALTHY if ready else HealthStatus.UNHEALTHY,
        checks=checks,
    )


@router.get(
    "/health/auth",
    response_model=AuthenticatedResponse,
    summary="Token check",
    description="Echoes the caller's identity and resolved application role.",
    responses={401: {"description": "Missing, expired or invalid token"}},
)
async def authenticated_check(user: CurrentUser) -> AuthenticatedResponse:
    return AuthenticatedResponse(
        user_id=str(user.user_id),
        email=user.email,
        role=user.role,
    )
