"""Order Pydantic schemas for API request/response models."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from src.schemas.refund import RefundSchema


class DeliveryAddressSchema(BaseModel):
    """Address a meal-time delivery goes to."""

    model_config = ConfigDict(from_attributes=True)

    street: str | None = Field(default=None, description="Street address")
    city: str | None = Field(default=None, description="City")
    zip: str | None = Field(default=None, description="Postal code")


class MealStatusEntrySchema(BaseModel):
    """Delivery status of one meal-time on one day."""

    model_config = ConfigDict(from_attributes=True)

    date: datetime = Field(description="Calendar day, pinned to 12:00 UTC")
    meal_time: str = Field(description="breakfast, lunch or dinner")
    status: str = Field(description="Meal status")
    updated_by: str | None = Field(default=None, description="User ID of the last writer")
    updated_at: datetime | None = Field(default=None, description="Last update timestamp")
    notes: str | None = Field(default=None, description="Free-text notes")


class OrderItemSchema(BaseModel):
    """Schema for a subscription item in an order."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(description="Stable item identifier")
    menu_id: str = Field(description="Menu UUID")
    plan_id: str | None = Field(default=None, description="Plan UUID")
    vendor_id: str = Field(description="Vendor UUID")
    quantity: int = Field(ge=1, description="Portions per meal")
    start_date: datetime = Field(description="First delivery day")
    end_date: datetime = Field(description="Last delivery day (inclusive)")
    skipped_dates: list[datetime] = Field(default_factory=list, description="Days without delivery")
    selected_meal_times: list[str] = Field(default_factory=list, description="Subscribed meal-times")
    item_total_price: int = Field(ge=0, description="Item price in the smallest currency unit")
    order_status: list[MealStatusEntrySchema] = Field(default_factory=list, description="Meal status entries")


class OrderResponse(BaseModel):
    """Schema for order API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(description="Order unique identifier")
    user_id: UUID = Field(description="Customer ID")
    status: str = Field(description="Order status")
    items: list[OrderItemSchema] = Field(default_factory=list, description="Order items")
    total_amount: int = Field(description="Total in the smallest currency unit")
    currency: str = Field(description="Currency code")
    refunds: list[RefundSchema] = Field(default_factory=list, description="Refunds recorded for this order")
    delivery_addresses: dict[str, DeliveryAddressSchema] = Field(
        default_factory=dict, description="Delivery address per meal-time"
    )
    version: int = Field(default=0, description="Write sequence number")
    created_at: datetime | None = Field(default=None, description="Creation timestamp")
    updated_at: datetime | None = Field(default=None, description="Last update timestamp")


class OrderListResponse(BaseModel):
    """Schema for order list API responses."""

    model_config = ConfigDict(from_attributes=True)

    items: list[OrderResponse] = Field(description="List of orders")


class OrderStatusUpdate(BaseModel):
    """Request body for PATCH /orders/{order_id}/status."""

    model_config = ConfigDict(from_attributes=True)

    status: str = Field(min_length=1, description="Target order status")


class OrderStatusUpdateResponse(BaseModel):
    """Response for an order status change."""

    model_config = ConfigDict(from_attributes=True)

    message: str = Field(description="Outcome message")
    order_id: UUID = Field(description="Order ID")
    status: str = Field(description="Order status after the update")


class MealStatusUpdate(BaseModel):
    """Request body for PATCH /orders/{order_id}/items/{item_id}/meal-status."""

    model_config = ConfigDict(from_attributes=True)

    date: str = Field(description="Delivery day as YYYY-MM-DD")
    meal_time: str = Field(description="breakfast, lunch or dinner")
    status: str = Field(description="New meal status")
    notes: str | None = Field(default=None, max_length=1000, description="Optional notes")


class MealStatusUpdateResponse(BaseModel):
    """Response for a meal status update."""

    model_config = ConfigDict(from_attributes=True)

    order_id: UUID = Field(description="Order ID")
    item_id: str = Field(description="Order item ID")
    entry: MealStatusEntrySchema = Field(description="Stored entry")


class StatusHistoryResponse(BaseModel):
    """Audit trail of an order item."""

    model_config = ConfigDict(from_attributes=True)

    order_id: UUID = Field(description="Order ID")
    item_id: str = Field(description="Order item ID")
    start_date: datetime = Field(description="First delivery day")
    end_date: datetime = Field(description="Last delivery day")
    selected_meal_times: list[str] = Field(description="Subscribed meal-times")
    history: list[MealStatusEntrySchema] = Field(description="Entries by day, then meal-time")


class ScheduleEntry(BaseModel):
    """One delivery on the daily schedule."""

    model_config = ConfigDict(from_attributes=True)

    order_id: UUID = Field(description="Order ID")
    item_id: str = Field(description="Order item ID")
    user_id: UUID = Field(description="Customer ID")
    menu_id: str | None = Field(default=None, description="Menu ID")
    vendor_id: str | None = Field(default=None, description="Vendor ID")
    quantity: int = Field(description="Portions")
    status: str = Field(description="Current meal status")
    notes: str | None = Field(default=None, description="Notes of the current entry")
    delivery_address: DeliveryAddressSchema = Field(description="Resolved address, empty if unknown")


class MealScheduleResponse(BaseModel):
    """Daily delivery schedule bucketed by meal-time."""

    model_config = ConfigDict(from_attributes=True)

    date: str = Field(description="Schedule day as YYYY-MM-DD")
    breakfast: list[ScheduleEntry] = Field(default_factory=list)
    lunch: list[ScheduleEntry] = Field(default_factory=list)
    dinner: list[ScheduleEntry] = Field(default_factory=list)


class RecentOrder(BaseModel):
    """Row of the analytics recent-orders list."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    total_amount: int
    status: str
    created_at: datetime | None = None


class PopularMenu(BaseModel):
    """Menu ranked by how many order items reference it."""

    model_config = ConfigDict(from_attributes=True)

    menu_id: str
    name: str
    orders: int


class AnalyticsResponse(BaseModel):
    """Dashboard summary for admins and vendors."""

    model_config = ConfigDict(from_attributes=True)

    scope: Literal["all", "vendor"] = Field(description="Whether figures cover all orders or one vendor")
    total_orders: int = Field(description="Orders in scope")
    pending_orders: int = Field(description="Orders still pending")
    active_customers: int = Field(description="Distinct customers in scope")
    revenue_today: int = Field(description="Sum of total_amount of today's confirmed orders")
    recent_orders: list[RecentOrder] = Field(default_factory=list, description="Five most recent orders")
    popular_menus: list[PopularMenu] = Field(default_factory=list, description="Up to four most ordered menus")
