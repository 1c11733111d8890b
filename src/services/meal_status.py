"""Per meal-time delivery status ledger and daily schedule.

Calendar dates are compared as dates, never as instants. Every date this
module writes is pinned to 12:00 UTC so that any consumer converting it to a
local timezone still lands on the same calendar day.
"""

import re
from collections.abc import Iterable, Mapping
from datetime import date, datetime, timezone
from typing import Any

from src.api.middleware.error_handler import ConflictError, ValidationError
from src.models.order import MEAL_TIMES, PAID_PAYMENT_STATUS
from src.services.authorization import MEAL_STATUS_TARGETS, Actor, ensure_status_allowed

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

MEAL_STATUSES: tuple[str, ...] = ("pending", "preparing", "readyForDelivery", "delivered", "cancelled")

MEAL_TIME_ORDER = {meal_time: index for index, meal_time in enumerate(MEAL_TIMES)}


def parse_calendar_date(value: str) -> date:
    """Parse a request date. Only ``YYYY-MM-DD`` is accepted.

    Raises:
        ValidationError: If the value is not an unambiguous calendar date.
    """
    if not isinstance(value, str) or not DATE_PATTERN.match(value.strip()):
        raise ValidationError(f"Invalid date '{value}', expected YYYY-MM-DD")
    try:
        return date.fromisoformat(value.strip())
    except ValueError as e:
        raise ValidationError(f"Invalid date '{value}': {e}") from e


def to_calendar_date(value: str | date | datetime) -> date:
    """Reduce a stored date or timestamp to its calendar date.

    Aware timestamps are read in UTC; stored values written by this module
    sit at noon UTC so the result is stable.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    text = value.strip()
    if DATE_PATTERN.match(text):
        return date.fromisoformat(text)
    return to_calendar_date(datetime.fromisoformat(text.replace("Z", "+00:00")))


def normalize_date(day: date) -> str:
    """Serialize a calendar date as an ISO timestamp at 12:00 UTC."""
    return datetime(day.year, day.month, day.day, 12, tzinfo=timezone.utc).isoformat()


def normalize_meal_time(value: str) -> str:
    """Lowercase a meal-time and check it is breakfast, lunch or dinner."""
    meal_time = (value or "").strip().lower()
    if meal_time not in MEAL_TIMES:
        raise ValidationError(f"Invalid meal time '{value}', expected one of {', '.join(MEAL_TIMES)}")
    return meal_time


def selected_meal_times(item: Mapping[str, Any]) -> list[str]:
    """Selected meal-times of an item, lowercased, in breakfast/lunch/dinner order."""
    chosen = {str(m).strip().lower() for m in item.get("selected_meal_times") or []}
    return [meal_time for meal_time in MEAL_TIMES if meal_time in chosen]


def skipped_dates(item: Mapping[str, Any]) -> set[date]:
    return {to_calendar_date(value) for value in item.get("skipped_dates") or []}


def is_delivery_day(item: Mapping[str, Any], day: date) -> bool:
    """True if ``day`` is inside the item's window and not skipped."""
    start = to_calendar_date(item["start_date"])
    end = to_calendar_date(item["end_date"])
    return start <= day <= end and day not in skipped_dates(item)


def find_entry(item: Mapping[str, Any], day: date, meal_time: str) -> dict[str, Any] | None:
    for entry in item.get("order_status") or []:
        if entry.get("meal_time", "").lower() == meal_time and to_calendar_date(entry["date"]) == day:
            return entry
    return None


def set_meal_status(
    item: dict[str, Any],
    date_value: str,
    meal_time: str,
    status: str,
    actor: Actor,
    notes: str | None = None,
) -> dict[str, Any]:
    """Record the delivery status of one meal-time of one day.

    An existing entry for the same (date, meal-time) is replaced in place,
    otherwise a new entry is appended to ``item["order_status"]``.

    Args:
        item: Order item, mutated in place.
        date_value: Day as ``YYYY-MM-DD``.
        meal_time: breakfast, lunch or dinner (any case).
        status: New meal status.
        actor: Caller; decides which statuses are allowed.
        notes: Optional free text.

    Returns:
        dict: The stored entry.

    Raises:
        ValidationError: Malformed date, meal-time or status.
        AuthorizationError: Status not allowed for the caller's role.
        ConflictError: Day outside the window or skipped, or meal-time not
            part of the subscription.
    """
    day = parse_calendar_date(date_value)
    normalized_meal_time = normalize_meal_time(meal_time)
    if status not in MEAL_STATUSES:
        raise ValidationError(f"Invalid meal status '{status}'")
    ensure_status_allowed(actor, status, MEAL_STATUS_TARGETS)

    start = to_calendar_date(item["start_date"])
    end = to_calendar_date(item["end_date"])
    if not start <= day <= end:
        raise ConflictError(
            f"Date {day.isoformat()} is outside the subscription window "
            f"{start.isoformat()} to {end.isoformat()}"
        )
    if day in skipped_dates(item):
        raise ConflictError(f"Date {day.isoformat()} was skipped by the customer")
    if normalized_meal_time not in selected_meal_times(item):
        raise ConflictError(f"Meal time '{normalized_meal_time}' is not part of this subscription")

    entry = {
        "date": normalize_date(day),
        "meal_time": normalized_meal_time,
        "status": status,
        "updated_by": str(actor.user_id),
        "updated_at": datetime.now(timezone.utc).isoformat(),
        "notes": notes,
    }

    entries = item.setdefault("order_status", [])
    for index, existing in enumerate(entries):
        if (
            existing.get("meal_time", "").lower() == normalized_meal_time
            and to_calendar_date(existing["date"]) == day
        ):
            entries[index] = entry
            return entry

    entries.append(entry)
    return entry


def status_history(item: Mapping[str, Any]) -> list[dict[str, Any]]:
    """Item's meal status entries ordered by day, then meal-time."""
    return sorted(
        item.get("order_status") or [],
        key=lambda entry: (
            to_calendar_date(entry["date"]),
            MEAL_TIME_ORDER.get(entry.get("meal_time", "").lower(), len(MEAL_TIMES)),
        ),
    )


def is_paid(order: Mapping[str, Any]) -> bool:
    payment = order.get("payment_details") or {}
    return str(payment.get("status", "")).lower() == PAID_PAYMENT_STATUS


def resolve_delivery_address(
    order: Mapping[str, Any],
    meal_time: str,
    saved_addresses: Iterable[Mapping[str, Any]] = (),
) -> dict[str, Any]:
    """Pick the address a meal-time delivery goes to.

    Priority: the order's address for that meal-time, then the order's only
    address, then the customer's saved address enabled for that meal-time.
    Returns an empty dict when nothing matches.
    """
    order_addresses = {
        str(label).strip().lower(): address
        for label, address in (order.get("delivery_addresses") or {}).items()
        if address
    }
    if meal_time in order_addresses:
        return dict(order_addresses[meal_time])
    if len(order_addresses) == 1:
        return dict(next(iter(order_addresses.values())))

    for saved in saved_addresses:
        window = (saved.get("meal_time_windows") or {}).get(meal_time) or {}
        if window.get("enabled"):
            return {
                "street": saved.get("street"),
                "city": saved.get("city"),
                "zip": saved.get("zip"),
            }
    return {}


def schedule_for_date(
    orders: Iterable[Mapping[str, Any]],
    day: date,
    saved_addresses: Mapping[str, list[Mapping[str, Any]]] | None = None,
    vendor_id: str | None = None,
) -> dict[str, list[dict[str, Any]]]:
    """Build the delivery schedule of one day, bucketed by meal-time.

    Args:
        orders: Orders to consider; unpaid ones are ignored.
        day: Calendar day of the schedule.
        saved_addresses: Customer saved addresses keyed by user id.
        vendor_id: Restrict to this vendor's items when set.

    Returns:
        dict: ``{"breakfast": [...], "lunch": [...], "dinner": [...]}``.
    """
    saved_addresses = saved_addresses or {}
    schedule: dict[str, list[dict[str, Any]]] = {meal_time: [] for meal_time in MEAL_TIMES}

    for order in orders:
        if not is_paid(order):
            continue
        customer_addresses = saved_addresses.get(str(order.get("user_id")), [])
        for item in order.get("items") or []:
            if vendor_id is not None and str(item.get("vendor_id")) != vendor_id:
                continue
            if not is_delivery_day(item, day):
                continue
            for meal_time in selected_meal_times(item):
                entry = find_entry(item, day, meal_time)
                schedule[meal_time].append(
                    {
                        "order_id": str(order["id"]),
                        "item_id": item["id"],
                        "user_id": str(order.get("user_id")),
                        "menu_id": item.get("menu_id"),
                        "vendor_id": item.get("vendor_id"),
                        "quantity": item.get("quantity", 1),
                        "status": entry["status"] if entry else "pending",
                        "notes": entry.get("notes") if entry else None,
                        "delivery_address": resolve_delivery_address(order, meal_time, customer_addresses),
                    }
                )

    return schedule
