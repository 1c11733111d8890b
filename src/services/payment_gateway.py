"""Payment gateway adapter over the Stripe SDK.

A Stripe PaymentIntent plays the role of the gateway order and Stripe refunds
carry our order id and local refund id in their metadata. Every Stripe failure,
including timeouts, surfaces as ``ExternalServiceError``; nothing is retried here.
"""

import logging
from dataclasses import dataclass
from typing import Any

import stripe

from src.api.middleware.error_handler import ExternalServiceError
from src.core.config import get_settings
from src.core.stripe import get_stripe
from src.models.order import PAID_PAYMENT_STATUS

logger = logging.getLogger(__name__)

# Stripe refund status -> local refund status
REFUND_STATUS_MAP: dict[str, str] = {
    "pending": "PENDING",
    "requires_action": "ONHOLD",
    "succeeded": "SUCCESS",
    "failed": "FAILED",
    "canceled": "CANCELLED",
}


def map_refund_status(gateway_status: str) -> str:
    """Translate a Stripe refund status into the local vocabulary.

    Raises:
        ValueError: If Stripe reports a status we do not know.
    """
    try:
        return REFUND_STATUS_MAP[gateway_status]
    except KeyError as e:
        raise ValueError(f"Unknown gateway refund status '{gateway_status}'") from e


@dataclass(frozen=True)
class GatewayOrder:
    """Gateway view of the payment behind an order."""

    payment_intent_id: str
    status: str
    captured_amount: int
    currency: str

    @property
    def is_paid(self) -> bool:
        return self.status == PAID_PAYMENT_STATUS


@dataclass(frozen=True)
class GatewayRefund:
    """Gateway view of one refund, status already in local vocabulary."""

    gateway_refund_id: str
    refund_id: str | None
    amount: int
    currency: str
    status: str
    note: str | None = None


def _to_gateway_refund(refund: Any) -> GatewayRefund:
    metadata = refund.metadata or {}
    return GatewayRefund(
        gateway_refund_id=refund.id,
        refund_id=metadata.get("refund_id"),
        amount=int(refund.amount or 0),
        currency=refund.currency,
        status=map_refund_status(refund.status),
        note=metadata.get("note"),
    )


class PaymentGateway:
    """Synchronous calls to the payment gateway, bounded by the SDK timeout."""

    def __init__(self) -> None:
        """Initialize gateway with the configured Stripe module."""
        self.stripe = get_stripe()
        self.settings = get_settings()

    def _ensure_configured(self) -> None:
        if not self.settings.stripe_secret_key:
            raise ExternalServiceError(
                "Payment gateway is not configured. Please set STRIPE_SECRET_KEY environment variable."
            )

    async def get_order_details(self, payment_intent_id: str) -> GatewayOrder:
        """Fetch the payment status and captured amount of an order.

        Args:
            payment_intent_id: Stripe PaymentIntent ID stored on the order.

        Returns:
            GatewayOrder: Status and captured amount.

        Raises:
            ExternalServiceError: Gateway unreachable or rejected the call.
        """
        self._ensure_configured()
        try:
            intent = self.stripe.PaymentIntent.retrieve(payment_intent_id)
        except stripe.StripeError as e:
            logger.error("Stripe error fetching payment %s: %s", payment_intent_id, str(e))
            raise ExternalServiceError(f"Could not fetch payment from gateway: {e.user_message or str(e)}") from e

        return GatewayOrder(
            payment_intent_id=intent.id,
            status=intent.status,
            captured_amount=int(intent.amount_received or 0),
            currency=intent.currency,
        )

    async def create_refund(
        self,
        payment_intent_id: str,
        amount: int,
        idempotency_key: str,
        note: str | None,
        order_id: str,
    ) -> GatewayRefund:
        """Create a refund at the gateway.

        Args:
            payment_intent_id: Stripe PaymentIntent ID to refund.
            amount: Amount in the smallest currency unit.
            idempotency_key: Unique per attempt; also stored as the local refund id.
            note: Free text kept in refund metadata.
            order_id: Local order id, echoed back in webhooks.

        Returns:
            GatewayRefund: The refund as acknowledged by the gateway.

        Raises:
            ExternalServiceError: Gateway rejected or could not be reached.
        """
        self._ensure_configured()
        metadata = {"order_id": order_id, "refund_id": idempotency_key}
        if note:
            metadata["note"] = note

        try:
            refund = self.stripe.Refund.create(
                payment_intent=payment_intent_id,
                amount=amount,
                metadata=metadata,
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as e:
            logger.error("Stripe rejected refund %s for order %s: %s", idempotency_key, order_id, str(e))
            raise ExternalServiceError(f"Gateway rejected the refund: {e.user_message or str(e)}") from e

        return _to_gateway_refund(refund)

    async def list_refunds(self, payment_intent_id: str) -> list[GatewayRefund]:
        """List every refund the gateway holds for a payment.

        Raises:
            ExternalServiceError: Listing failed.
        """
        self._ensure_configured()
        try:
            refunds = self.stripe.Refund.list(payment_intent=payment_intent_id, limit=100)
            return [_to_gateway_refund(refund) for refund in refunds.auto_paging_iter()]
        except stripe.StripeError as e:
            raise ExternalServiceError(f"Could not list refunds from gateway: {e.user_message or str(e)}") from e

    async def get_refund(self, gateway_refund_id: str) -> GatewayRefund:
        """Fetch a single refund from the gateway."""
        self._ensure_configured()
        try:
            refund = self.stripe.Refund.retrieve(gateway_refund_id)
        except stripe.StripeError as e:
            raise ExternalServiceError(f"Could not fetch refund from gateway: {e.user_message or str(e)}") from e
        return _to_gateway_refund(refund)

    async def cancel_refund(self, gateway_refund_id: str) -> GatewayRefund:
        """Ask the gateway to cancel a refund that has not settled yet.

        Raises:
            ExternalServiceError: Gateway refused or could not be reached.
        """
        self._ensure_configured()
        try:
            refund = self.stripe.Refund.cancel(gateway_refund_id)
        except stripe.StripeError as e:
            logger.error("Stripe refused to cancel refund %s: %s", gateway_refund_id, str(e))
            raise ExternalServiceError(f"Gateway refused to cancel the refund: {e.user_message or str(e)}") from e
        return _to_gateway_refund(refund)

    def verify_webhook_signature(self, payload: bytes, sig_header: str) -> Any:
        """Verify Stripe webhook signature and return event.

        Args:
            payload: Raw webhook payload bytes.
            sig_header: Stripe-Signature header value.

        Returns:
            Verified Stripe event.

        Raises:
            ValueError: If signature is invalid or Stripe not configured.
        """
        if not self.settings.stripe_webhook_secret:
            raise ValueError("Stripe webhook secret is not configured. Please set STRIPE_WEBHOOK_SECRET environment variable.")

        try:
            return self.stripe.Webhook.construct_event(
                payload, sig_header, self.settings.stripe_webhook_secret
            )
        except stripe.SignatureVerificationError as e:
            logger.warning("Invalid webhook signature: %s", str(e))
            raise ValueError("Invalid webhook signature") from e
