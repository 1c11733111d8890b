"""Order model type definitions for database operations."""

from typing import Literal, TypedDict


# Order status values stored in orders.status
OrderStatus = Literal[
    "pending",
    "confirmed",
    "readyForDelivery",
    "delivered",
    "cancelled",
    "failed",
    "refund_pending",
    "partially_refunded",
    "refunded",
]

MealTime = Literal["breakfast", "lunch", "dinner"]

MealStatus = Literal["pending", "preparing", "readyForDelivery", "delivered", "cancelled"]

RefundStatus = Literal["PENDING", "ONHOLD", "SUCCESS", "CANCELLED", "FAILED"]

MEAL_TIMES: tuple[str, ...] = ("breakfast", "lunch", "dinner")

# Payment intent status that means the charge was captured
PAID_PAYMENT_STATUS = "succeeded"


class MealStatusEntry(TypedDict):
    """Delivery status of one meal-time on one day of an order item.

    Stored inside the order_status JSONB array of an item.
    """

    date: str
    meal_time: MealTime
    status: MealStatus
    updated_by: str
    updated_at: str
    notes: str | None


class OrderItem(TypedDict):
    """Structure for a single subscription item in an order.

    Stored as part of the items JSONB array. ``id`` is a stable string
    assigned at checkout, unrelated to any storage key.
    """

    id: str
    menu_id: str
    plan_id: str
    vendor_id: str
    quantity: int
    start_date: str
    end_date: str
    skipped_dates: list[str]
    selected_meal_times: list[str]
    item_total_price: int
    order_status: list[MealStatusEntry]


class Refund(TypedDict):
    """Local cache of a gateway refund.

    Stored as part of the refunds JSONB array. The gateway owns ``status``.
    """

    gateway_refund_id: str
    refund_id: str
    amount: int
    currency: str
    status: RefundStatus
    note: str | None
    created_at: str
    updated_at: str


class PaymentDetails(TypedDict, total=False):
    """Snapshot of the gateway payment taken at checkout."""

    payment_intent_id: str
    status: str
    amount_received: int
    paid_at: str


class DeliveryAddress(TypedDict, total=False):
    """Address snapshot used for a meal-time delivery."""

    street: str
    city: str
    zip: str


class Order(TypedDict):
    """Order table row representation.

    The whole aggregate (items, refunds) is written back on every mutation,
    guarded by ``version``.
    """

    id: str
    user_id: str
    items: list[OrderItem]
    total_amount: int
    currency: str
    status: OrderStatus
    payment_details: PaymentDetails
    refunds: list[Refund]
    delivery_addresses: dict[str, DeliveryAddress]
    version: int
    created_at: str
    updated_at: str
