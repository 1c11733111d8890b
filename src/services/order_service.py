"""Order business logic service.

Orders are stored as one row per aggregate with items and refunds embedded as
JSONB arrays. Every write is a compare-and-swap on the ``version`` column so a
status patch racing a webhook cannot silently drop either update.
"""

import json
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from src.api.middleware.error_handler import ConcurrentModificationError, NotFoundError
from src.core.config import get_settings
from src.core.supabase import get_supabase_client
from src.models.menu import MealTimePrice, SavedAddress
from src.models.order import PAID_PAYMENT_STATUS
from src.services.authorization import Action, Actor, authorize
from src.services.meal_status import (
    parse_calendar_date,
    schedule_for_date,
    set_meal_status,
    status_history,
)
from src.services.order_status import set_order_status

logger = logging.getLogger(__name__)

# Columns an order write may change
WRITABLE_FIELDS = ("status", "items", "refunds")


def find_item(order: dict[str, Any], item_id: str) -> dict[str, Any]:
    """Return the order item with ``item_id``.

    Raises:
        NotFoundError: If the order has no such item.
    """
    for item in order.get("items") or []:
        if str(item.get("id")) == str(item_id):
            return item
    raise NotFoundError(f"Item {item_id} not found in order {order.get('id')}")


class OrderService:
    """Service for loading, mutating and persisting order aggregates."""

    def __init__(self) -> None:
        """Initialize order service with Supabase client."""
        self.client = get_supabase_client()
        self.settings = get_settings()

    # Storage

    async def get_order(self, order_id: UUID | str) -> dict[str, Any] | None:
        """Get an order by ID.

        Args:
            order_id: The order's UUID.

        Returns:
            dict | None: The order data or None if not found.
        """
        response = (
            self.client.table("orders")
            .select("*")
            .eq("id", str(order_id))
            .maybe_single()
            .execute()
        )

        return response.data if response and response.data else None

    async def require_order(self, order_id: UUID | str) -> dict[str, Any]:
        """Get an order by ID or raise NotFoundError."""
        order = await self.get_order(order_id)
        if not order:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    async def save_order(self, order: dict[str, Any]) -> dict[str, Any]:
        """Write the mutable parts of an order if nobody wrote it since it was read.

        Args:
            order: Order as loaded, with in-memory changes applied.

        Returns:
            dict: The stored order with its new version.

        Raises:
            ConcurrentModificationError: The stored version moved on.
        """
        version = int(order.get("version") or 0)
        update_data = {field: order[field] for field in WRITABLE_FIELDS if field in order}
        update_data["version"] = version + 1
        update_data["updated_at"] = datetime.now(timezone.utc).isoformat()

        response = (
            self.client.table("orders")
            .update(update_data)
            .eq("id", str(order["id"]))
            .eq("version", version)
            .execute()
        )

        if not response.data:
            logger.info("Version conflict on order %s at version %s", order["id"], version)
            raise ConcurrentModificationError()

        return response.data[0]

    async def mutate_order(
        self,
        order_id: UUID | str,
        mutate: Callable[[dict[str, Any]], bool],
    ) -> dict[str, Any]:
        """Load, mutate and save an order, reloading when the write loses a race.

        ``mutate`` is applied to a fresh copy on each attempt and must be safe
        to reapply. It returns False when it made no change, in which case
        nothing is written.

        Args:
            order_id: The order's UUID.
            mutate: In-place mutation of the order dict.

        Returns:
            dict: The order after the mutation.

        Raises:
            NotFoundError: Order does not exist.
            ConcurrentModificationError: Every attempt lost the race.
        """
        attempts = self.settings.order_write_attempts
        for attempt in range(1, attempts + 1):
            order = await self.require_order(order_id)
            if not mutate(order):
                return order
            try:
                return await self.save_order(order)
            except ConcurrentModificationError:
                logger.warning(
                    "Order %s changed during write (attempt %s/%s), reloading",
                    order_id,
                    attempt,
                    attempts,
                )

        raise ConcurrentModificationError(f"Order {order_id} kept changing, gave up after {attempts} attempts")

    async def list_orders(self, vendor_id: str | None = None) -> list[dict[str, Any]]:
        """List orders, newest first.

        Args:
            vendor_id: Only orders containing at least one of this vendor's items.

        Returns:
            list[dict]: Order rows.
        """
        query = self.client.table("orders").select("*")
        if vendor_id is not None:
            query = query.contains("items", json.dumps([{"vendor_id": vendor_id}]))
        response = query.order("created_at", desc=True).execute()
        return response.data or []

    async def list_paid_orders(self) -> list[dict[str, Any]]:
        """List orders whose payment has been captured."""
        response = (
            self.client.table("orders")
            .select("*")
            .eq("payment_details->>status", PAID_PAYMENT_STATUS)
            .execute()
        )
        return response.data or []

    async def get_menu_prices(self, menu_ids: list[str]) -> dict[str, MealTimePrice]:
        """Per meal-time prices of the given menus, keyed by menu id."""
        if not menu_ids:
            return {}

        response = (
            self.client.table("menus")
            .select("id, price")
            .in_("id", sorted(set(menu_ids)))
            .execute()
        )
        return {str(row["id"]): row.get("price") or {} for row in response.data or []}

    async def get_saved_addresses(self, user_ids: list[str]) -> dict[str, list[SavedAddress]]:
        """Saved delivery addresses of the given customers, keyed by user id."""
        if not user_ids:
            return {}

        response = (
            self.client.table("delivery_addresses")
            .select("*")
            .in_("user_id", sorted(set(user_ids)))
            .execute()
        )

        addresses: dict[str, list[SavedAddress]] = {}
        for row in response.data or []:
            addresses.setdefault(str(row["user_id"]), []).append(row)
        return addresses

    async def get_vendor_id_for_user(self, user_id: UUID) -> str | None:
        """Get the vendor profile linked to a user account.

        Args:
            user_id: The user's UUID.

        Returns:
            str | None: The vendor ID or None if the user has no vendor profile.
        """
        response = (
            self.client.table("vendors")
            .select("id")
            .eq("user_id", str(user_id))
            .maybe_single()
            .execute()
        )

        return str(response.data["id"]) if response and response.data else None

    # Operations

    async def list_orders_for_actor(self, actor: Actor) -> list[dict[str, Any]]:
        authorize(actor, Action.LIST_ORDERS)
        return await self.list_orders(vendor_id=actor.vendor_id if actor.is_vendor else None)

    async def get_order_for_actor(self, order_id: UUID, actor: Actor) -> dict[str, Any]:
        """Read an order the actor is allowed to see."""
        authorize(actor, Action.VIEW_ORDER)
        order = await self.require_order(order_id)
        authorize(actor, Action.VIEW_ORDER, order=order)
        return order

    async def update_order_status(
        self,
        order_id: UUID,
        target: str,
        actor: Actor,
    ) -> tuple[dict[str, Any], bool]:
        """Move an order to a new status.

        A lost version race is reported to the caller as a conflict instead of
        being retried, since the transition was checked against stale state.

        Args:
            order_id: The order's UUID.
            target: Requested status.
            actor: Caller.

        Returns:
            tuple: (order, changed). ``changed`` is False when the order
                already had the requested status.
        """
        authorize(actor, Action.UPDATE_ORDER_STATUS)
        order = await self.require_order(order_id)
        previous = order.get("status")

        if not set_order_status(order, target, actor):
            return order, False

        saved = await self.save_order(order)
        logger.info(
            "Order %s status %s -> %s by %s %s",
            order_id,
            previous,
            saved["status"],
            actor.role,
            actor.user_id,
        )
        return saved, True

    async def update_meal_status(
        self,
        order_id: UUID,
        item_id: str,
        date_value: str,
        meal_time: str,
        status: str,
        actor: Actor,
        notes: str | None = None,
    ) -> dict[str, Any]:
        """Record the delivery status of one meal-time of one day.

        Returns:
            dict: The stored meal status entry.
        """
        authorize(actor, Action.UPDATE_MEAL_STATUS)
        order = await self.require_order(order_id)
        item = find_item(order, item_id)
        authorize(actor, Action.UPDATE_MEAL_STATUS, item=item)

        entry = set_meal_status(item, date_value, meal_time, status, actor, notes=notes)
        await self.save_order(order)

        logger.info(
            "Meal status %s/%s %s %s set to %s by %s",
            order_id,
            item_id,
            entry["date"],
            entry["meal_time"],
            status,
            actor.user_id,
        )
        return entry

    async def get_status_history(
        self,
        order_id: UUID,
        item_id: str,
        actor: Actor,
    ) -> tuple[dict[str, Any], list[dict[str, Any]]]:
        """Return an item and its meal status entries in calendar order."""
        authorize(actor, Action.VIEW_STATUS_HISTORY)
        order = await self.require_order(order_id)
        item = find_item(order, item_id)
        authorize(actor, Action.VIEW_STATUS_HISTORY, item=item)
        return item, status_history(item)

    async def get_meal_schedule(self, date_value: str, actor: Actor) -> dict[str, list[dict[str, Any]]]:
        """Build the delivery schedule of a day for the actor.

        Args:
            date_value: Day as ``YYYY-MM-DD``.
            actor: Caller; vendors only see their own items.

        Returns:
            dict: Entries bucketed by breakfast, lunch and dinner.
        """
        authorize(actor, Action.VIEW_MEAL_SCHEDULE)
        day = parse_calendar_date(date_value)

        orders = await self.list_paid_orders()
        saved_addresses = await self.get_saved_addresses(
            [str(order["user_id"]) for order in orders if order.get("user_id")]
        )
        return schedule_for_date(
            orders,
            day,
            saved_addresses=saved_addresses,
            vendor_id=actor.vendor_id if actor.is_vendor else None,
        )
