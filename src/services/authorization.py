"""Role-based authorization policy for order and refund operations.

Every route resolves the caller into an ``Actor`` and asks ``authorize`` before
touching an order. Vendors are additionally restricted to orders (or items)
that carry their ``vendor_id``.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any
from uuid import UUID

from src.api.middleware.error_handler import AuthorizationError


@dataclass(frozen=True)
class Actor:
    """Authenticated caller as seen by the order services."""

    user_id: UUID
    role: str
    vendor_id: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def is_vendor(self) -> bool:
        return self.role == "vendor"


class Action(str, Enum):
    """Operations guarded by the policy."""

    LIST_ORDERS = "list_orders"
    VIEW_ORDER = "view_order"
    UPDATE_ORDER_STATUS = "update_order_status"
    UPDATE_MEAL_STATUS = "update_meal_status"
    VIEW_STATUS_HISTORY = "view_status_history"
    VIEW_MEAL_SCHEDULE = "view_meal_schedule"
    VIEW_ANALYTICS = "view_analytics"
    CALCULATE_REFUND = "calculate_refund"
    PROCESS_REFUND = "process_refund"
    CANCEL_REFUND = "cancel_refund"


STAFF_ROLES = frozenset({"admin", "vendor"})
ADMIN_ONLY = frozenset({"admin"})

POLICY: dict[Action, frozenset[str]] = {
    Action.LIST_ORDERS: STAFF_ROLES,
    Action.VIEW_ORDER: STAFF_ROLES,
    Action.UPDATE_ORDER_STATUS: STAFF_ROLES,
    Action.UPDATE_MEAL_STATUS: STAFF_ROLES,
    Action.VIEW_STATUS_HISTORY: STAFF_ROLES,
    Action.VIEW_MEAL_SCHEDULE: STAFF_ROLES,
    Action.VIEW_ANALYTICS: STAFF_ROLES,
    Action.CALCULATE_REFUND: ADMIN_ONLY,
    Action.PROCESS_REFUND: ADMIN_ONLY,
    Action.CANCEL_REFUND: ADMIN_ONLY,
}

# Order-level targets each role may patch in
ORDER_STATUS_TARGETS: dict[str, frozenset[str]] = {
    "admin": frozenset({"readyForDelivery", "delivered", "cancelled"}),
    "vendor": frozenset({"readyForDelivery"}),
}

# Meal-time statuses each role may record
MEAL_STATUS_TARGETS: dict[str, frozenset[str]] = {
    "admin": frozenset({"pending", "preparing", "readyForDelivery", "delivered", "cancelled"}),
    "vendor": frozenset({"preparing", "readyForDelivery"}),
}


def vendor_owns_item(actor: Actor, item: Mapping[str, Any]) -> bool:
    """Check whether the item was sold by the actor's vendor."""
    return actor.vendor_id is not None and str(item.get("vendor_id")) == actor.vendor_id


def vendor_owns_order(actor: Actor, order: Mapping[str, Any]) -> bool:
    """Check whether at least one item of the order belongs to the actor's vendor."""
    return any(vendor_owns_item(actor, item) for item in order.get("items") or [])


def authorize(
    actor: Actor,
    action: Action,
    order: Mapping[str, Any] | None = None,
    item: Mapping[str, Any] | None = None,
) -> None:
    """Enforce the policy for an action.

    Args:
        actor: The caller.
        action: Operation being attempted.
        order: Order the operation targets, if any.
        item: Order item the operation targets, if any. Takes precedence
            over ``order`` for the vendor ownership check.

    Raises:
        AuthorizationError: If the role may not perform the action or a
            vendor does not own the targeted resource.
    """
    if actor.role not in POLICY[action]:
        raise AuthorizationError(f"Role '{actor.role}' may not {action.value.replace('_', ' ')}")

    if not actor.is_vendor:
        return

    if actor.vendor_id is None:
        raise AuthorizationError("No vendor profile is linked to this account")

    if item is not None:
        if not vendor_owns_item(actor, item):
            raise AuthorizationError("Order item belongs to another vendor")
    elif order is not None and not vendor_owns_order(actor, order):
        raise AuthorizationError("Order has no items from this vendor")


def ensure_status_allowed(actor: Actor, status: str, targets: dict[str, frozenset[str]]) -> None:
    """Check that the actor's role may set ``status`` according to ``targets``.

    Raises:
        AuthorizationError: If the status is outside the role's allowed set.
    """
    allowed = targets.get(actor.role, frozenset())
    if status not in allowed:
        raise AuthorizationError(f"Status '{status}' is not allowed for role '{actor.role}'")
