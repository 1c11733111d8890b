"""Suggested refund amount for a cancelled order.

A customer is not refunded for meals already marked ready or delivered, and is
refunded everything not yet claimed when nothing was consumed.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from src.api.middleware.error_handler import ConflictError
from src.models.menu import MealTimePrice

# Every refund except a cancelled one counts against the order total
UNCLAIMED_REFUND_STATUSES = frozenset({"CANCELLED"})

CONSUMED_MEAL_STATUSES = frozenset({"delivered", "readyForDelivery"})


@dataclass(frozen=True)
class RefundCalculation:
    """Outcome of a refund calculation, amounts in the smallest currency unit."""

    suggested_amount: int
    consumed_amount: int
    consumed_meals_count: int
    total_already_refunded: int


def claimed_refund_total(refunds: Iterable[Mapping[str, Any]]) -> int:
    """Sum of all refunds that were not cancelled."""
    return sum(int(r.get("amount") or 0) for r in refunds if r.get("status") not in UNCLAIMED_REFUND_STATUSES)


def calculate_refund(
    order: Mapping[str, Any],
    menu_prices: Mapping[str, MealTimePrice],
) -> RefundCalculation:
    """Compute the suggested refund for an order.

    Pure function of the order status, total, item meal statuses, the menu
    prices and the recorded refunds.

    Args:
        order: Order row.
        menu_prices: Per meal-time price keyed by menu id.

    Returns:
        RefundCalculation: Suggested amount and consumption breakdown.

    Raises:
        ConflictError: Order not cancelled, already fully refunded, or
            nothing left to refund.
    """
    if order.get("status") != "cancelled":
        raise ConflictError("Refunds can only be calculated for cancelled orders")

    total_amount = int(order.get("total_amount") or 0)
    total_already_refunded = claimed_refund_total(order.get("refunds") or [])

    if total_already_refunded >= total_amount:
        raise ConflictError("Order is already fully refunded")

    items = order.get("items") or []
    if not items:
        return RefundCalculation(
            suggested_amount=total_amount - total_already_refunded,
            consumed_amount=0,
            consumed_meals_count=0,
            total_already_refunded=total_already_refunded,
        )

    consumed_amount = 0
    consumed_meals_count = 0
    for item in items:
        quantity = int(item.get("quantity") or 1)
        prices = menu_prices.get(str(item.get("menu_id"))) or {}
        for entry in item.get("order_status") or []:
            if entry.get("status") not in CONSUMED_MEAL_STATUSES:
                continue
            meal_time = str(entry.get("meal_time", "")).lower()
            consumed_amount += int(prices.get(meal_time) or 0) * quantity
            consumed_meals_count += quantity

    suggested_amount = max(0, total_amount - consumed_amount - total_already_refunded)
    if consumed_meals_count == 0:
        suggested_amount = total_amount - total_already_refunded

    if suggested_amount == 0:
        raise ConflictError("Nothing left to refund: eligible amount is already refunded")

    return RefundCalculation(
        suggested_amount=suggested_amount,
        consumed_amount=consumed_amount,
        consumed_meals_count=consumed_meals_count,
        total_already_refunded=total_already_refunded,
    )
