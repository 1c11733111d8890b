"""Stripe SDK setup for the refund gateway."""

import logging

import stripe

from src.core.config import get_settings

logger = logging.getLogger(__name__)


def configure_stripe() -> None:
    """Apply the API key and network limits to the Stripe module.

    Called once from the application lifespan and by operator scripts. Each
    gateway call is bounded by ``stripe_timeout_seconds`` and the SDK never
    retries on its own.
    """
    settings = get_settings()
    if settings.stripe_secret_key:
        stripe.api_key = settings.stripe_secret_key
        logger.info("Stripe configured (%s mode)", "test" if settings.is_stripe_test_mode else "live")
    else:
        logger.warning("STRIPE_SECRET_KEY not set, refund endpoints will fail")

    stripe.max_network_retries = 0
    stripe.default_http_client = stripe.RequestsClient(timeout=settings.stripe_timeout_seconds)


def get_stripe() -> stripe:
    """The Stripe module; its configuration is module-level."""
    return stripe
