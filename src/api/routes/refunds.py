"""Refund API routes for cancelled subscription orders."""

from uuid import UUID

from fastapi import APIRouter, status

from src.api.deps import CurrentActor
from src.schemas.refund import (
    RefundCalculationResponse,
    RefundCancelResponse,
    RefundProcessRequest,
    RefundProcessResponse,
    RefundSchema,
)
from src.services.refund_service import RefundService

router = APIRouter(prefix="/orders", tags=["refunds"])


@router.get(
    "/{order_id}/refund/calculate",
    response_model=RefundCalculationResponse,
    summary="Calculate refund",
    description="Suggest a refund for a cancelled order, excluding meals already prepared or delivered.",
)
async def calculate_refund(order_id: UUID, actor: CurrentActor) -> RefundCalculationResponse:
    """Suggest a refund amount.

    Args:
        order_id: The order's UUID.
        actor: Authenticated admin.

    Returns:
        RefundCalculationResponse: Suggested amount and breakdown.
    """
    service = RefundService()
    order, calculation = await service.calculate(order_id, actor)
    return RefundCalculationResponse(
        order_id=order_id,
        total_amount=int(order.get("total_amount") or 0),
        currency=order.get("currency") or service.orders.settings.default_currency,
        suggested_amount=calculation.suggested_amount,
        consumed_amount=calculation.consumed_amount,
        consumed_meals_count=calculation.consumed_meals_count,
        total_already_refunded=calculation.total_already_refunded,
    )


@router.post(
    "/{order_id}/refund/process",
    response_model=RefundProcessResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Process refund",
    description="Refund part of the captured payment through the payment gateway.",
)
async def process_refund(
    order_id: UUID,
    data: RefundProcessRequest,
    actor: CurrentActor,
) -> RefundProcessResponse:
    """Execute a refund at the gateway and record it on the order.

    The request is not retried on failure. Re-sending it is safe: each call
    uses a fresh idempotency key and headroom is rechecked against the gateway.

    Args:
        order_id: The order's UUID.
        data: Amount and note.
        actor: Authenticated admin.

    Returns:
        RefundProcessResponse: The refund as acknowledged by the gateway.
    """
    service = RefundService()
    refund, ledger_source = await service.process_refund(order_id, data.amount, data.note, actor)
    return RefundProcessResponse(
        order_id=order_id,
        refund=RefundSchema.model_validate(refund),
        ledger_source=ledger_source,
    )


@router.post(
    "/{order_id}/refunds/{refund_id}/cancel",
    response_model=RefundCancelResponse,
    summary="Cancel refund",
    description="Cancel a pending or on-hold refund at the gateway.",
)
async def cancel_refund(order_id: UUID, refund_id: str, actor: CurrentActor) -> RefundCancelResponse:
    service = RefundService()
    refund = await service.cancel_refund(order_id, refund_id, actor)
    return RefundCancelResponse(order_id=order_id, refund=RefundSchema.model_validate(refund))
