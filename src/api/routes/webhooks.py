"""Webhook API routes for payment gateway notifications."""

import json
import logging

import pydantic
from fastapi import APIRouter, HTTPException, Request, status

from src.api.middleware.error_handler import ConcurrentModificationError
from src.schemas.refund import REFUND_EVENT_ADAPTER, REFUND_EVENT_TYPES
from src.services.payment_gateway import PaymentGateway
from src.services.refund_service import RefundService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/refund", tags=["webhooks"])


@router.post(
    "/webhook",
    status_code=status.HTTP_200_OK,
    summary="Handle refund webhooks",
    description="Receives Stripe refund events. Requires a valid signature.",
)
async def refund_webhook(request: Request) -> dict[str, str]:
    """Handle Stripe refund events.

    The signature is verified and the event validated before any state is
    touched. Delivery is at-least-once and unordered; applying the same
    event twice leaves the order unchanged.

    Handles:
    - refund.created, refund.updated, charge.refund.updated, refund.failed

    Other event types are acknowledged and ignored.

    Args:
        request: FastAPI request object for reading raw body and headers.

    Returns:
        dict: Acknowledgment message.

    Raises:
        HTTPException: 400 if the signature or payload is invalid, 500 if the
            order could not be written after repeated version conflicts.
    """
    payload = await request.body()

    sig_header = request.headers.get("stripe-signature")
    if not sig_header:
        logger.error("Missing Stripe-Signature header in refund webhook")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing Stripe-Signature header",
        )

    try:
        PaymentGateway().verify_webhook_signature(payload, sig_header)
        body = json.loads(payload)
    except ValueError as e:
        logger.error("Rejected refund webhook: %s", str(e))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature or payload",
        ) from e

    event_type = body.get("type", "") if isinstance(body, dict) else ""
    if event_type not in REFUND_EVENT_TYPES:
        logger.debug("Ignoring webhook event type: %s", event_type)
        return {"status": "ignored"}

    try:
        event = REFUND_EVENT_ADAPTER.validate_python(body)
    except pydantic.ValidationError as e:
        logger.warning("Invalid %s payload: %s", event_type, str(e))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {event_type} payload",
        ) from e

    notification = event.to_notification()
    logger.info(
        "Processing %s for refund %s on order %s",
        event_type,
        notification.gateway_refund_id,
        notification.order_id,
    )

    try:
        await RefundService().handle_refund_webhook(notification)
    except ConcurrentModificationError as e:
        logger.error("Gave up reconciling refund %s: %s", notification.gateway_refund_id, e.message)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Order kept changing, redeliver the event",
        ) from e
    return {"status": "received"}
