# order_lifecycle/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict
from typing import List
from decimal import Decimal
from datetime import datetime

from order_lifecycle.domain.status import OrderStatus, RefundStatus


class LineItemIn(BaseModel):
    """Order line item (input)."""

    product_id: str = Field(..., min_length=1, description="Menu item id")
    name: str = Field("", description="Snapshot of the menu item name")
    price: Decimal = Field(..., ge=0, description="Unit price")
    quantity: int = Field(..., gt=0, description="Quantity (> 0)")


class OrderCreate(BaseModel):
    """Input for placing an order.

    Emptiness of items / address / phone is checked by the service so the
    rejection surfaces as a ValidationError rather than a schema error.
    """

    customer_id: str = Field(..., min_length=1)
    restaurant_id: str = Field(..., min_length=1)
    restaurant_name: str | None = None
    items: List[LineItemIn]
    delivery_fee: Decimal = Field(Decimal("0.00"), ge=0)
    delivery_address: str
    phone: str
    customer_email: str | None = None
    payment_method: str = "cash"
    payment_status: str = "pending"
    special_instructions: str | None = None
    is_scheduled: bool = False
    scheduled_time: datetime | None = None


class StatusUpdateIn(BaseModel):
    status: OrderStatus
    actor_id: str = Field(..., min_length=1)
    note: str | None = None


class CancelIn(BaseModel):
    reason: str
    actor_id: str = Field(..., min_length=1)


class ModifyIn(BaseModel):
    items: List[LineItemIn]
    actor_id: str = Field(..., min_length=1)
    subtotal: Decimal | None = Field(None, ge=0)
    total: Decimal | None = Field(None, ge=0)
    reason: str | None = None


class AcceptDeliveryIn(BaseModel):
    driver_id: str = Field(..., min_length=1)
    driver_name: str = Field(..., min_length=1)


class DriverActionIn(BaseModel):
    driver_id: str = Field(..., min_length=1)


class LineItemOut(BaseModel):
    product_id: str
    name: str
    price: Decimal
    quantity: int

    model_config = ConfigDict(from_attributes=True)


class StatusHistoryOut(BaseModel):
    """One audit trail entry (response)."""

    status: str
    timestamp: datetime
    note: str
    updated_by: str | None = None

    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    """Snapshot of a committed order (response and event payload)."""

    id: int
    order_number: str
    customer_id: str
    restaurant_id: str
    restaurant_name: str | None = None
    items: List[LineItemOut]
    subtotal: Decimal
    delivery_fee: Decimal
    tax: Decimal
    total: Decimal
    delivery_address: str
    phone: str
    customer_email: str | None = None
    payment_method: str
    payment_status: str
    special_instructions: str | None = None
    is_scheduled: bool
    scheduled_time: datetime | None = None

    status: OrderStatus
    can_cancel: bool
    can_modify: bool
    cancellation_deadline: datetime
    modification_deadline: datetime

    cancellation_reason: str | None = None
    cancelled_by: str | None = None
    cancelled_at: datetime | None = None
    modified_at: datetime | None = None
    driver_id: str | None = None
    driver_name: str | None = None
    updated_by: str | None = None
    created_at: datetime
    updated_at: datetime | None = None
    version: int

    status_history: List[StatusHistoryOut]

    model_config = ConfigDict(from_attributes=True)


class RefundProcessIn(BaseModel):
    status: RefundStatus
    processed_by: str = Field(..., min_length=1)
    note: str = ""


class RefundOut(BaseModel):
    id: str
    order_id: int
    amount: Decimal
    reason: str
    status: RefundStatus
    initiated_by: str
    processed_by: str | None = None
    processed_at: datetime | None = None
    note: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderEvent(BaseModel):
    """Published after a change is committed, carries the full order snapshot."""

    kind: str  # created, status_changed, cancelled, modified
    order_id: int
    status: OrderStatus
    previous_status: OrderStatus | None = None
    occurred_at: datetime
    order: OrderOut
