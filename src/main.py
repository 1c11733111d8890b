"""ASGI entry point: ``uvicorn src.main:app``."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from src.api.middleware.error_handler import error_handler_middleware, request_validation_handler
from src.api.middleware.latency_logging import latency_logging_middleware
from src.api.routes import analytics, health, orders, refunds, webhooks
from src.core.config import get_settings
from src.core.stripe import configure_stripe

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Mounted under /api/v1, in registration order
API_ROUTERS = (orders.router, refunds.router, analytics.router, webhooks.router)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings = get_settings()
    logger.info("Starting %s in %s mode", settings.app_name, settings.app_env)
    configure_stripe()
    yield
    logger.info("Shutting down %s", settings.app_name)


def create_app() -> FastAPI:
    """Build the application with middleware and routers.

    Middleware added later wraps earlier ones, so latency logging sees the
    status code the error handler produced.
    """
    settings = get_settings()

    app = FastAPI(
        title="Meal Subscription API",
        description="Order lifecycle and refund reconciliation for meal subscriptions",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    )
    app.add_middleware(BaseHTTPMiddleware, dispatch=error_handler_middleware)
    app.add_middleware(BaseHTTPMiddleware, dispatch=latency_logging_middleware)

    # Malformed bodies, params and path ids are client errors (400), not 422
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    app.include_router(health.router)

    api_v1_router = APIRouter(prefix="/api/v1")
    for router in API_ROUTERS:
        api_v1_router.include_router(router)
    app.include_router(api_v1_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run("src.main:app", host=settings.host, port=settings.port, reload=settings.debug)
