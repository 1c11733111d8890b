"""Refund Pydantic schemas for API and webhook payloads."""

from datetime import datetime
from typing import Annotated, Literal, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from src.services.payment_gateway import map_refund_status


class RefundSchema(BaseModel):
    """Schema for a refund recorded on an order."""

    model_config = ConfigDict(from_attributes=True)

    gateway_refund_id: str = Field(description="Stripe Refund ID")
    refund_id: str | None = Field(default=None, description="Local idempotency key")
    amount: int = Field(description="Amount in the smallest currency unit")
    currency: str = Field(description="Currency code")
    status: str = Field(description="PENDING, ONHOLD, SUCCESS, CANCELLED or FAILED")
    note: str | None = Field(default=None, description="Free-text note")
    created_at: datetime | None = Field(default=None, description="When the refund was recorded")
    updated_at: datetime | None = Field(default=None, description="Last status change")


class RefundCalculationResponse(BaseModel):
    """Suggested refund for a cancelled order."""

    model_config = ConfigDict(from_attributes=True)

    order_id: UUID = Field(description="Order ID")
    total_amount: int = Field(description="Order total")
    currency: str = Field(description="Currency code")
    suggested_amount: int = Field(description="Amount the customer should get back")
    consumed_amount: int = Field(description="Value of meals already prepared or delivered")
    consumed_meals_count: int = Field(description="Number of consumed meals")
    total_already_refunded: int = Field(description="Pending, on-hold and successful refunds")


class RefundProcessRequest(BaseModel):
    """Request body for POST /orders/{order_id}/refund/process."""

    model_config = ConfigDict(from_attributes=True)

    amount: int = Field(gt=0, description="Amount to refund in the smallest currency unit")
    note: str | None = Field(default=None, max_length=500, description="Reason shown to the customer")


class RefundProcessResponse(BaseModel):
    """Outcome of a refund request."""

    model_config = ConfigDict(from_attributes=True)

    order_id: UUID = Field(description="Order ID")
    refund: RefundSchema = Field(description="Refund as acknowledged by the gateway")
    ledger_source: Literal["gateway", "local"] = Field(
        description="Where the already-refunded total came from; 'local' means the gateway listing was unavailable"
    )


class RefundCancelResponse(BaseModel):
    """Outcome of a refund cancellation."""

    model_config = ConfigDict(from_attributes=True)

    order_id: UUID = Field(description="Order ID")
    refund: RefundSchema = Field(description="Refund after cancellation")


# Webhook payloads


class RefundNotification(BaseModel):
    """Refund state reported by the gateway, in local vocabulary."""

    model_config = ConfigDict(frozen=True)

    gateway_refund_id: str
    refund_id: str | None = None
    order_id: UUID
    amount: int
    currency: str
    status: str


class StripeRefundMetadata(BaseModel):
    """Metadata we attach to every refund we create."""

    order_id: UUID
    refund_id: str | None = None
    note: str | None = None


class StripeRefundObject(BaseModel):
    """The refund object carried in a refund event."""

    id: str = Field(min_length=1)
    object: Literal["refund"]
    amount: int = Field(ge=0)
    currency: str = Field(min_length=3)
    status: Literal["pending", "requires_action", "succeeded", "failed", "canceled"]
    metadata: StripeRefundMetadata
    payment_intent: str | None = None


class StripeRefundEventData(BaseModel):
    object: StripeRefundObject


class _StripeRefundEventBase(BaseModel):
    id: str = Field(min_length=1)
    data: StripeRefundEventData

    def to_notification(self) -> RefundNotification:
        refund = self.data.object
        return RefundNotification(
            gateway_refund_id=refund.id,
            refund_id=refund.metadata.refund_id,
            order_id=refund.metadata.order_id,
            amount=refund.amount,
            currency=refund.currency,
            status=map_refund_status(refund.status),
        )


class RefundCreatedEvent(_StripeRefundEventBase):
    type: Literal["refund.created"]


class RefundUpdatedEvent(_StripeRefundEventBase):
    type: Literal["refund.updated"]


class ChargeRefundUpdatedEvent(_StripeRefundEventBase):
    type: Literal["charge.refund.updated"]


class RefundFailedEvent(_StripeRefundEventBase):
    type: Literal["refund.failed"]


StripeRefundEvent = Annotated[
    Union[RefundCreatedEvent, RefundUpdatedEvent, ChargeRefundUpdatedEvent, RefundFailedEvent],
    Field(discriminator="type"),
]

REFUND_EVENT_ADAPTER: TypeAdapter[StripeRefundEvent] = TypeAdapter(StripeRefundEvent)

REFUND_EVENT_TYPES = frozenset(
    {"refund.created", "refund.updated", "charge.refund.updated", "refund.failed"}
)
