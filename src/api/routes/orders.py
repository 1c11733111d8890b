"""Order API routes for status tracking and delivery scheduling."""

from uuid import UUID

from fastapi import APIRouter, Query, status

from src.api.deps import CurrentActor
from src.schemas.order import (
    MealScheduleResponse,
    MealStatusEntrySchema,
    MealStatusUpdate,
    MealStatusUpdateResponse,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdate,
    OrderStatusUpdateResponse,
    StatusHistoryResponse,
)
from src.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


@router.get(
    "",
    response_model=OrderListResponse,
    summary="List orders",
    description="Admins see every order, vendors the orders containing their items.",
)
async def list_orders(actor: CurrentActor) -> OrderListResponse:
    """List orders visible to the caller, newest first."""
    service = OrderService()
    orders = await service.list_orders_for_actor(actor)
    return OrderListResponse(items=[OrderResponse.model_validate(order) for order in orders])


# Registered before /{order_id} so "items" is not parsed as an order id
@router.get(
    "/items/meal-schedule",
    response_model=MealScheduleResponse,
    summary="Daily delivery schedule",
    description="Meals to deliver on a day, grouped by breakfast, lunch and dinner.",
)
async def get_meal_schedule(
    actor: CurrentActor,
    date: str = Query(..., description="Day as YYYY-MM-DD"),
) -> MealScheduleResponse:
    """Get the delivery schedule of one day.

    Only paid orders are included. Vendors only see their own items.

    Args:
        actor: Authenticated admin or vendor.
        date: Day as YYYY-MM-DD.

    Returns:
        MealScheduleResponse: Entries bucketed by meal-time.
    """
    service = OrderService()
    schedule = await service.get_meal_schedule(date, actor)
    return MealScheduleResponse(date=date.strip(), **schedule)


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get order",
    description="Get a single order by ID.",
)
async def get_order(order_id: UUID, actor: CurrentActor) -> OrderResponse:
    service = OrderService()
    order = await service.get_order_for_actor(order_id, actor)
    return OrderResponse.model_validate(order)


@router.patch(
    "/{order_id}/status",
    response_model=OrderStatusUpdateResponse,
    status_code=status.HTTP_200_OK,
    summary="Update order status",
    description="Move an order along confirmed -> readyForDelivery -> delivered, or cancel it.",
)
async def update_order_status(
    order_id: UUID,
    data: OrderStatusUpdate,
    actor: CurrentActor,
) -> OrderStatusUpdateResponse:
    """Update the order-level status.

    Admins may set readyForDelivery, delivered or cancelled; vendors only
    readyForDelivery on orders containing their items. Setting the current
    status again succeeds without a write.

    Args:
        order_id: The order's UUID.
        data: Target status.
        actor: Authenticated admin or vendor.

    Returns:
        OrderStatusUpdateResponse: Status after the update.
    """
    service = OrderService()
    order, changed = await service.update_order_status(order_id, data.status, actor)
    return OrderStatusUpdateResponse(
        message="Order status updated" if changed else "Order already has this status",
        order_id=order["id"],
        status=order["status"],
    )


@router.patch(
    "/{order_id}/items/{item_id}/meal-status",
    response_model=MealStatusUpdateResponse,
    summary="Update meal status",
    description="Record the delivery status of one meal-time on one day of a subscription item.",
)
async def update_meal_status(
    order_id: UUID,
    item_id: str,
    data: MealStatusUpdate,
    actor: CurrentActor,
) -> MealStatusUpdateResponse:
    """Record the status of one meal-time on one day.

    Args:
        order_id: The order's UUID.
        item_id: The order item's ID.
        data: Date, meal-time, status and notes.
        actor: Authenticated admin or vendor owning the item.

    Returns:
        MealStatusUpdateResponse: The stored entry.
    """
    service = OrderService()
    entry = await service.update_meal_status(
        order_id=order_id,
        item_id=item_id,
        date_value=data.date,
        meal_time=data.meal_time,
        status=data.status,
        actor=actor,
        notes=data.notes,
    )
    return MealStatusUpdateResponse(
        order_id=order_id,
        item_id=item_id,
        entry=MealStatusEntrySchema.model_validate(entry),
    )


@router.get(
    "/{order_id}/items/{item_id}/status-history",
    response_model=StatusHistoryResponse,
    summary="Meal status history",
    description="All recorded meal statuses of an item, by day and meal-time.",
)
async def get_status_history(
    order_id: UUID,
    item_id: str,
    actor: CurrentActor,
) -> StatusHistoryResponse:
    service = OrderService()
    item, history = await service.get_status_history(order_id, item_id, actor)
    return StatusHistoryResponse(
        order_id=order_id,
        item_id=item_id,
        start_date=item["start_date"],
        end_date=item["end_date"],
        selected_meal_times=[str(m).lower() for m in item.get("selected_meal_times") or []],
        history=[MealStatusEntrySchema.model_validate(entry) for entry in history],
    )
