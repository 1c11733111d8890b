"""Probe and error envelopes shared by every route."""

from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class HealthResponse(BaseModel):
    """Liveness probe body."""

    model_config = ConfigDict(from_attributes=True)

    status: HealthStatus = Field(description="Always healthy while the process answers")
    timestamp: datetime = Field(default_factory=_utcnow, description="Probe time (UTC)")
    version: str = Field(default="0.1.0", description="API version")


class CheckResult(BaseModel):
    """Outcome of one readiness check."""

    model_config = ConfigDict(from_attributes=True)

    name: str = Field(description="database or payment_gateway")
    healthy: bool = Field(description="Whether the dependency can be used")
    latency_ms: float | None = Field(default=None, description="Round trip of the check, if it made one")
    error: str | None = Field(default=None, description="Why the dependency is unusable")


class ReadinessResponse(BaseModel):
    """Readiness probe body."""

    model_config = ConfigDict(from_attributes=True)

    status: HealthStatus = Field(description="Unhealthy if any check failed")
    timestamp: datetime = Field(default_factory=_utcnow, description="Probe time (UTC)")
    checks: list[CheckResult] = Field(default_factory=list, description="Per-dependency results")


class ErrorDetail(BaseModel):
    """One field-level problem, e.g. a rejected request body field."""

    model_config = ConfigDict(from_attributes=True)

    loc: list[str] | None = Field(default=None, description="Path to the offending value")
    msg: str = Field(description="What is wrong with it")
    type: str = Field(description="Machine-readable problem type")


class ErrorResponse(BaseModel):
    """Body of every non-2xx response produced by the error middleware.

    ``error`` is stable for clients to branch on: ``validation_error``,
    ``authorization_error``, ``not_found``, ``conflict``,
    ``concurrent_modification``, ``external_service_error`` and so on.
    """

    model_config = ConfigDict(from_attributes=True)

    error: str = Field(description="Error category")
    message: str = Field(description="Human-readable description")
    details: list[ErrorDetail] | None = Field(default=None, description="Field-level problems")
    request_id: str | None = Field(default=None, description="X-Request-ID of the failed request")
    timestamp: datetime = Field(default_factory=_utcnow, description="When the error was produced (UTC)")

    @classmethod
    def from_exception(
        cls,
        error_type: str,
        message: str,
        details: Iterable[Mapping[str, Any]] | None = None,
        request_id: str | None = None,
    ) -> "ErrorResponse":
        """Build the envelope from an error category, message and raw detail dicts."""
        return cls(
            error=error_type,
            message=message,
            details=[
                ErrorDetail(loc=d.get("loc"), msg=d.get("msg", str(d)), type=d.get("type", "error"))
                for d in details
            ]
            if details
            else None,
            request_id=request_id,
        )
