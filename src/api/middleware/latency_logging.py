"""Request latency logging middleware."""

import logging
import re
import time
from typing import Callable

from fastapi import Request, Response

logger = logging.getLogger(__name__)

# Refund routes wait on the payment gateway, so they get a wider margin
SLOW_REQUEST_THRESHOLD_MS = 1000
GATEWAY_SLOW_REQUEST_THRESHOLD_MS = 5000

PROBE_PATHS = frozenset({"/health", "/health/ready"})

UUID_PATTERN = re.compile(r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.IGNORECASE)


def normalize_path(path: str) -> str:
    """Replace UUIDs in a path with ``{id}`` so log lines group by route."""
    return UUID_PATTERN.sub("{id}", path)


def slow_threshold_ms(path: str) -> int:
    if "/refund" in path:
        return GATEWAY_SLOW_REQUEST_THRESHOLD_MS
    return SLOW_REQUEST_THRESHOLD_MS


async def latency_logging_middleware(request: Request, call_next: Callable) -> Response:
    """Log method, route, status and latency of every request.

    Probe requests are only logged at debug level. Slow requests, 4xx and 5xx
    responses are logged at elevated levels.

    Args:
        request: The incoming request.
        call_next: The next middleware/handler in the chain.

    Returns:
        Response: The response from the handler.
    """
    start_time = time.perf_counter()
    path = request.url.path
    response = None

    try:
        response = await call_next(request)
        return response
    finally:
        latency_ms = (time.perf_counter() - start_time) * 1000
        status_code = response.status_code if response else 500
        route = normalize_path(path)

        if path in PROBE_PATHS:
            logger.debug("%s %s - %s - %.2fms", request.method, route, status_code, latency_ms)
        elif status_code >= 500:
            logger.error("%s %s - %s - %.2fms", request.method, route, status_code, latency_ms)
        elif latency_ms > slow_threshold_ms(path):
            logger.warning("SLOW REQUEST: %s %s - %s - %.2fms", request.method, route, status_code, latency_ms)
        elif status_code >= 400:
            logger.warning("%s %s - %s - %.2fms", request.method, route, status_code, latency_ms)
        else:
            logger.info("%s %s - %s - %.2fms", request.method, route, status_code, latency_ms)
