"""Refund calculation, processing, cancellation and webhook reconciliation.

The gateway is the source of truth for refund status. A local refund record is
only written after the gateway has acknowledged the refund, and its status only
ever changes from data the gateway reported. All writes go through
``OrderService.mutate_order`` and upsert by gateway refund id, so a webhook
racing a refund request ends with one record either way.
"""

import logging
import secrets
import time
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from src.api.middleware.error_handler import ConflictError, ExternalServiceError, NotFoundError, ValidationError
from src.schemas.refund import RefundNotification
from src.services.authorization import Action, Actor, authorize
from src.services.order_service import OrderService
from src.services.payment_gateway import GatewayRefund, PaymentGateway
from src.services.refund_calculator import RefundCalculation, calculate_refund

logger = logging.getLogger(__name__)

SETTLED_REFUND_STATUSES = frozenset({"SUCCESS", "CANCELLED", "FAILED"})
IN_FLIGHT_REFUND_STATUSES = frozenset({"PENDING", "ONHOLD"})

# Refunds that do not reduce the headroom for a new refund
HEADROOM_EXCLUDED_STATUSES = frozenset({"CANCELLED", "FAILED", "ONHOLD"})
UNCLAIMED_STATUSES = frozenset({"CANCELLED", "FAILED"})

WEBHOOK_NOTE = "Recorded from gateway webhook"
SYNC_NOTE = "Recovered from gateway refund list"


def generate_idempotency_key(order_id: UUID | str) -> str:
    """Fresh key for one refund attempt: order prefix, millisecond clock, random suffix."""
    return f"rf_{UUID(str(order_id)).hex[:12]}_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def find_refund(order: dict[str, Any], gateway_refund_id: str | None, refund_id: str | None = None) -> dict[str, Any] | None:
    """Find a local refund by gateway refund id or local refund id."""
    for refund in order.get("refunds") or []:
        if gateway_refund_id and refund.get("gateway_refund_id") == gateway_refund_id:
            return refund
        if refund_id and refund.get("refund_id") == refund_id:
            return refund
    return None


def upsert_refund(
    order: dict[str, Any],
    *,
    gateway_refund_id: str,
    refund_id: str | None,
    amount: int,
    currency: str,
    status: str,
    note: str | None,
) -> bool:
    """Record gateway refund state on the order.

    An existing record only has its status (and missing gateway id) updated.
    A settled record is never moved back to an in-flight status, so late
    deliveries of older events are ignored.

    Returns:
        bool: True if the order changed.
    """
    now = datetime.now(timezone.utc).isoformat()
    existing = find_refund(order, gateway_refund_id, refund_id)

    if existing is None:
        order.setdefault("refunds", []).append(
            {
                "gateway_refund_id": gateway_refund_id,
                "refund_id": refund_id,
                "amount": amount,
                "currency": currency,
                "status": status,
                "note": note,
                "created_at": now,
                "updated_at": now,
            }
        )
        return True

    changed = False
    if not existing.get("gateway_refund_id"):
        existing["gateway_refund_id"] = gateway_refund_id
        changed = True

    current = existing.get("status")
    if current != status:
        if current in SETTLED_REFUND_STATUSES and status in IN_FLIGHT_REFUND_STATUSES:
            logger.info(
                "Ignoring stale %s for refund %s already %s",
                status,
                gateway_refund_id,
                current,
            )
        else:
            existing["status"] = status
            changed = True

    if changed:
        existing["updated_at"] = now
    return changed


def recompute_refund_status(order: dict[str, Any]) -> bool:
    """Derive the order status from its refunds.

    Returns:
        bool: True if the order status changed.
    """
    refunds = order.get("refunds") or []
    if not refunds:
        return False

    total_success_refunded = sum(int(r.get("amount") or 0) for r in refunds if r.get("status") == "SUCCESS")
    all_settled = all(r.get("status") in SETTLED_REFUND_STATUSES for r in refunds)
    any_pending = any(r.get("status") in IN_FLIGHT_REFUND_STATUSES for r in refunds)

    if all_settled and total_success_refunded >= int(order.get("total_amount") or 0):
        target = "refunded"
    elif all_settled and total_success_refunded > 0:
        target = "partially_refunded"
    elif any_pending:
        target = "refund_pending"
    else:
        return False

    if order.get("status") == target:
        return False
    order["status"] = target
    return True


def _sum_refunds(refunds: Iterable[Any], excluded: frozenset[str]) -> int:
    total = 0
    for refund in refunds:
        if isinstance(refund, GatewayRefund):
            amount, status = refund.amount, refund.status
        else:
            amount, status = refund.get("amount"), refund.get("status")
        if status not in excluded:
            total += int(amount or 0)
    return total


class RefundService:
    """Service for refunds of cancelled subscription orders."""

    def __init__(self) -> None:
        """Initialize refund service with order store and payment gateway."""
        self.orders = OrderService()
        self.gateway = PaymentGateway()

    def _payment_intent_id(self, order: dict[str, Any]) -> str:
        payment_intent_id = (order.get("payment_details") or {}).get("payment_intent_id")
        if not payment_intent_id:
            raise ConflictError(f"Order {order['id']} has no gateway payment to refund")
        return payment_intent_id

    async def _sync_from_gateway(self, order_id: UUID | str, gateway_refunds: list[GatewayRefund]) -> dict[str, Any]:
        """Bring the local refund ledger in line with the gateway's list."""

        def reconcile(order: dict[str, Any]) -> bool:
            changed = False
            for refund in gateway_refunds:
                changed = (
                    upsert_refund(
                        order,
                        gateway_refund_id=refund.gateway_refund_id,
                        refund_id=refund.refund_id,
                        amount=refund.amount,
                        currency=refund.currency,
                        status=refund.status,
                        note=refund.note or SYNC_NOTE,
                    )
                    or changed
                )
            return recompute_refund_status(order) or changed

        return await self.orders.mutate_order(order_id, reconcile)

    async def calculate(self, order_id: UUID, actor: Actor) -> tuple[dict[str, Any], RefundCalculation]:
        """Suggest a refund amount for a cancelled order.

        Returns:
            tuple: (order, calculation).
        """
        authorize(actor, Action.CALCULATE_REFUND)
        order = await self.orders.require_order(order_id)
        menu_ids = [str(item["menu_id"]) for item in order.get("items") or [] if item.get("menu_id")]
        menu_prices = await self.orders.get_menu_prices(menu_ids)
        return order, calculate_refund(order, menu_prices)

    async def process_refund(
        self,
        order_id: UUID,
        amount: int,
        note: str | None,
        actor: Actor,
    ) -> tuple[dict[str, Any], str]:
        """Refund part or all of an order's captured payment.

        Args:
            order_id: The order's UUID.
            amount: Amount in the smallest currency unit.
            note: Free text stored with the refund.
            actor: Caller, must be an admin.

        Returns:
            tuple: (refund record, ledger source). The source is ``"gateway"``
                when headroom came from the gateway's refund list and
                ``"local"`` when it fell back to the local ledger.

        Raises:
            ValidationError: Amount is not positive.
            NotFoundError: Order does not exist.
            ConflictError: Payment not captured or amount exceeds headroom.
            ExternalServiceError: Gateway unreachable or rejected the refund.
        """
        authorize(actor, Action.PROCESS_REFUND)
        if amount <= 0:
            raise ValidationError("Refund amount must be greater than zero")

        order = await self.orders.require_order(order_id)
        payment_intent_id = self._payment_intent_id(order)

        gateway_order = await self.gateway.get_order_details(payment_intent_id)
        if not gateway_order.is_paid:
            raise ConflictError(f"Payment is not captured at the gateway (status: {gateway_order.status})")

        try:
            gateway_refunds = await self.gateway.list_refunds(payment_intent_id)
        except (ExternalServiceError, ValueError) as e:
            gateway_refunds = None
            logger.warning(
                "Gateway refund listing unavailable for order %s, using local ledger: %s",
                order_id,
                str(e),
            )

        if gateway_refunds is not None:
            await self._sync_from_gateway(order_id, gateway_refunds)
            refunded_total = _sum_refunds(gateway_refunds, HEADROOM_EXCLUDED_STATUSES)
            claimed_total = _sum_refunds(gateway_refunds, UNCLAIMED_STATUSES)
            ledger_source = "gateway"
        else:
            refunded_total = claimed_total = _sum_refunds(order.get("refunds") or [], UNCLAIMED_STATUSES)
            ledger_source = "local"

        # On-hold refunds leave headroom but still count against the captured amount
        captured_amount = gateway_order.captured_amount
        available_amount = captured_amount - refunded_total
        if amount > available_amount:
            raise ConflictError(f"Refund amount {amount} exceeds available amount {available_amount}")
        if claimed_total + amount > captured_amount:
            raise ConflictError(
                f"Refund would exceed captured amount: {claimed_total} already claimed of {captured_amount}"
            )

        idempotency_key = generate_idempotency_key(order_id)
        gateway_refund = await self.gateway.create_refund(
            payment_intent_id=payment_intent_id,
            amount=amount,
            idempotency_key=idempotency_key,
            note=note,
            order_id=str(order_id),
        )
        logger.info(
            "Gateway accepted refund %s (%s) of %s for order %s",
            gateway_refund.gateway_refund_id,
            idempotency_key,
            gateway_refund.amount,
            order_id,
        )

        def record(current: dict[str, Any]) -> bool:
            changed = upsert_refund(
                current,
                gateway_refund_id=gateway_refund.gateway_refund_id,
                refund_id=gateway_refund.refund_id or idempotency_key,
                amount=gateway_refund.amount,
                currency=gateway_refund.currency,
                status=gateway_refund.status,
                note=gateway_refund.note or note,
            )
            return recompute_refund_status(current) or changed

        try:
            saved = await self.orders.mutate_order(order_id, record)
        except ConflictError:
            logger.error(
                "Refund %s accepted by gateway but not recorded on order %s; the webhook will record it",
                gateway_refund.gateway_refund_id,
                order_id,
            )
            raise

        return find_refund(saved, gateway_refund.gateway_refund_id) or {}, ledger_source

    async def cancel_refund(self, order_id: UUID, refund_id: str, actor: Actor) -> dict[str, Any]:
        """Cancel a refund the gateway has not settled yet.

        Args:
            order_id: The order's UUID.
            refund_id: Local refund id or gateway refund id.
            actor: Caller, must be an admin.

        Returns:
            dict: The refund record after cancellation.

        Raises:
            NotFoundError: Order or refund does not exist.
            ConflictError: Refund is already settled, locally or at the gateway.
            ExternalServiceError: Gateway refused the cancellation.
        """
        authorize(actor, Action.CANCEL_REFUND)
        order = await self.orders.require_order(order_id)
        refund = find_refund(order, refund_id, refund_id)
        if refund is None:
            raise NotFoundError(f"Refund {refund_id} not found on order {order_id}")
        if refund.get("status") not in IN_FLIGHT_REFUND_STATUSES:
            raise ConflictError(f"Refund {refund_id} is {refund.get('status')} and can no longer be cancelled")

        # Local record may lag behind a webhook that has not arrived yet
        current = await self.gateway.get_refund(refund["gateway_refund_id"])
        if current.status not in IN_FLIGHT_REFUND_STATUSES:
            await self._sync_from_gateway(order_id, [current])
            raise ConflictError(f"Refund {refund_id} is already {current.status} at the gateway")

        gateway_refund = await self.gateway.cancel_refund(refund["gateway_refund_id"])
        saved = await self._sync_from_gateway(order_id, [gateway_refund])

        logger.info("Refund %s on order %s cancelled by %s", refund_id, order_id, actor.user_id)
        return find_refund(saved, gateway_refund.gateway_refund_id) or refund

    async def handle_refund_webhook(self, notification: RefundNotification) -> dict[str, Any]:
        """Apply a gateway refund notification to its order.

        Reapplying the same notification leaves the order unchanged.

        Args:
            notification: Validated refund state from the gateway.

        Returns:
            dict: The order after reconciliation.

        Raises:
            NotFoundError: Order does not exist.
        """

        def reconcile(order: dict[str, Any]) -> bool:
            changed = upsert_refund(
                order,
                gateway_refund_id=notification.gateway_refund_id,
                refund_id=notification.refund_id,
                amount=notification.amount,
                currency=notification.currency,
                status=notification.status,
                note=WEBHOOK_NOTE,
            )
            return recompute_refund_status(order) or changed

        order = await self.orders.mutate_order(notification.order_id, reconcile)
        logger.info(
            "Refund %s on order %s is %s, order status %s",
            notification.gateway_refund_id,
            notification.order_id,
            notification.status,
            order.get("status"),
        )
        return order

    async def resync_refunds(self, order_id: UUID) -> dict[str, Any]:
        """Rebuild an order's refund ledger from the gateway's list.

        Unlike ``process_refund`` there is no local fallback: a listing
        failure is raised.
        """
        order = await self.orders.require_order(order_id)
        gateway_refunds = await self.gateway.list_refunds(self._payment_intent_id(order))
        return await self._sync_from_gateway(order_id, gateway_refunds)
