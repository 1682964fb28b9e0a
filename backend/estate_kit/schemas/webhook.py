"""
Tagged union of the Shopify billing webhooks the service understands
"""

from pydantic import BaseModel, Field, TypeAdapter, field_validator
from typing import Annotated, Literal, Optional, Union
from datetime import datetime

class OrderPayload(BaseModel):
    """Fields consumed from a Shopify order payload; everything else is ignored"""

    id: str = Field(..., description="Shopify order id, matched against the subscription")
    email: Optional[str] = None
    processed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        if isinstance(v, int):
            return str(v)
        return v

class OrderPaidEvent(BaseModel):
    topic: Literal["orders/paid"]
    order: OrderPayload

class OrderCancelledEvent(BaseModel):
    topic: Literal["orders/cancelled"]
    order: OrderPayload

class OrderFailedEvent(BaseModel):
    topic: Literal["orders/failed"]
    order: OrderPayload

WebhookEvent = Annotated[
    Union[OrderPaidEvent, OrderCancelledEvent, OrderFailedEvent],
    Field(discriminator="topic"),
]

webhook_event_adapter = TypeAdapter(WebhookEvent)

SUPPORTED_TOPICS = ("orders/paid", "orders/cancelled", "orders/failed")
