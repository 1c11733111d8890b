"""Order-level status state machine."""

from typing import Any, get_args

from src.api.middleware.error_handler import ConflictError, ValidationError
from src.models.order import OrderStatus
from src.services.authorization import (
    ORDER_STATUS_TARGETS,
    Action,
    Actor,
    authorize,
    ensure_status_allowed,
)

ORDER_STATUSES: frozenset[str] = frozenset(get_args(OrderStatus))

# Only reachable through refund reconciliation, never through a status patch
REFUND_STATUSES: frozenset[str] = frozenset({"refund_pending", "partially_refunded", "refunded"})

# target -> statuses it may be entered from
ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "readyForDelivery": frozenset({"confirmed"}),
    "delivered": frozenset({"readyForDelivery"}),
    "cancelled": frozenset({"confirmed", "readyForDelivery"}),
}


def set_order_status(order: dict[str, Any], target: str, actor: Actor) -> bool:
    """Move an order to ``target`` on behalf of ``actor``.

    The order dict is mutated in place. Nothing else on the order (items,
    refunds) is touched.

    Args:
        order: Order row.
        target: Requested status.
        actor: Caller.

    Returns:
        bool: True if the status changed, False if it already had ``target``.

    Raises:
        ValidationError: Unknown status value.
        AuthorizationError: Role may not set ``target`` or vendor does not
            own any item of the order.
        ConflictError: ``target`` is not reachable from the current status.
    """
    normalized = (target or "").strip()
    if normalized not in ORDER_STATUSES:
        raise ValidationError(f"Unknown order status '{target}'")

    ensure_status_allowed(actor, normalized, ORDER_STATUS_TARGETS)
    authorize(actor, Action.UPDATE_ORDER_STATUS, order=order)

    current = order.get("status")
    if current == normalized:
        return False

    if current not in ALLOWED_TRANSITIONS.get(normalized, frozenset()):
        raise ConflictError(f"Cannot change order status from '{current}' to '{normalized}'")

    order["status"] = normalized
    return True
