"""Dashboard analytics for admins and vendors."""

from collections import Counter
from datetime import date, datetime, timezone
from typing import Any

from src.services.authorization import Action, Actor, authorize
from src.services.meal_status import to_calendar_date
from src.services.order_service import OrderService

RECENT_ORDERS_LIMIT = 5
POPULAR_MENUS_LIMIT = 4


class AnalyticsService:
    """Service for order analytics."""

    def __init__(self) -> None:
        """Initialize analytics service with the order store."""
        self.orders = OrderService()

    async def get_menu_names(self, menu_ids: list[str]) -> dict[str, str]:
        if not menu_ids:
            return {}
        response = (
            self.orders.client.table("menus")
            .select("id, name")
            .in_("id", menu_ids)
            .execute()
        )
        return {str(row["id"]): row.get("name") or "Unknown Menu" for row in response.data or []}

    async def get_recent_vendor_menus(self, vendor_id: str) -> list[dict[str, Any]]:
        """A vendor's newest menus, for a dashboard with no orders to rank."""
        response = (
            self.orders.client.table("menus")
            .select("id, name")
            .eq("vendor_id", vendor_id)
            .order("created_at", desc=True)
            .limit(POPULAR_MENUS_LIMIT)
            .execute()
        )
        return response.data or []

    async def get_summary(self, actor: Actor, today: date | None = None) -> dict[str, Any]:
        """Summarize orders visible to the actor.

        Admins see every order, vendors the orders that contain one of their
        items. Revenue today is the sum of ``total_amount`` over orders created
        today (UTC) that are still confirmed. A vendor with no orders gets
        their newest menus in place of the ranking.

        Args:
            actor: Caller.
            today: Day to report revenue for, defaults to the current UTC day.

        Returns:
            dict: Fields of ``AnalyticsResponse``.
        """
        authorize(actor, Action.VIEW_ANALYTICS)
        vendor_id = actor.vendor_id if actor.is_vendor else None
        today = today or datetime.now(timezone.utc).date()

        # newest first
        orders = await self.orders.list_orders(vendor_id=vendor_id)

        revenue_today = sum(
            int(order.get("total_amount") or 0)
            for order in orders
            if order.get("status") == "confirmed"
            and order.get("created_at")
            and to_calendar_date(order["created_at"]) == today
        )

        menu_counts: Counter[str] = Counter(
            str(item["menu_id"])
            for order in orders
            for item in order.get("items") or []
            if item.get("menu_id") and (vendor_id is None or str(item.get("vendor_id")) == vendor_id)
        )
        top_menus = menu_counts.most_common(POPULAR_MENUS_LIMIT)
        names = await self.get_menu_names([menu_id for menu_id, _ in top_menus])
        popular_menus = [
            {"menu_id": menu_id, "name": names.get(menu_id, "Unknown Menu"), "orders": count}
            for menu_id, count in top_menus
        ]
        if not popular_menus and vendor_id is not None:
            popular_menus = [
                {"menu_id": str(menu["id"]), "name": menu.get("name") or "Unknown Menu", "orders": 0}
                for menu in await self.get_recent_vendor_menus(vendor_id)
            ]

        return {
            "scope": "vendor" if vendor_id else "all",
            "total_orders": len(orders),
            "pending_orders": sum(1 for order in orders if order.get("status") == "pending"),
            "active_customers": len({str(order["user_id"]) for order in orders if order.get("user_id")}),
            "revenue_today": revenue_today,
            "recent_orders": orders[:RECENT_ORDERS_LIMIT],
            "popular_menus": popular_menus,
        }
