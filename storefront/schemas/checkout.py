from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from storefront.models.order import OrderStatus


class CheckoutItem(BaseModel):
    product_id: str = Field(min_length=1, max_length=128)
    quantity: int = Field(ge=1, le=1000)
    unit_price: Decimal = Field(ge=0, max_digits=12, decimal_places=2)


class CheckoutRequest(BaseModel):
    items: list[CheckoutItem] = Field(min_length=1)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    customer_id: str | None = None


class PaymentCaptureRequest(BaseModel):
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    payment_reference: str = Field(min_length=1, max_length=128)


class OrderUpdateRequest(BaseModel):
    status: OrderStatus


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: str
    customer_id: str | None
    status: OrderStatus
    total_amount: Decimal
    currency: str
    items: list[dict[str, Any]]
    payment_reference: str | None
    created_at: datetime
    updated_at: datetime


class WebhookEventRequest(BaseModel):
    event_id: str = Field(min_length=1, max_length=255)
    type: str = Field(min_length=1, max_length=100)
    order_id: UUID | None = None
    payment_reference: str | None = None
    amount: Decimal | None = None


class WebhookReceipt(BaseModel):
    event_id: str
    provider: str
    handled: bool
    order_id: UUID | None = None
