from sqlalchemy import Column, Integer, String, DateTime, Numeric, Boolean, Text
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from order_lifecycle.data.database import Base


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    order_number = Column(String(16), nullable=False, index=True)

    customer_id = Column(String, nullable=False, index=True)
    restaurant_id = Column(String, nullable=False, index=True)
    restaurant_name = Column(String, nullable=True)

    subtotal = Column(Numeric(10, 2), nullable=False)
    delivery_fee = Column(Numeric(10, 2), nullable=False, default=0)
    tax = Column(Numeric(10, 2), nullable=False, default=0)
    total = Column(Numeric(10, 2), nullable=False)

    delivery_address = Column(Text, nullable=False)
    phone = Column(String, nullable=False)
    customer_email = Column(String, nullable=True)
    payment_method = Column(String, nullable=False, default="cash")
    payment_status = Column(String, nullable=False, default="pending")
    special_instructions = Column(Text, nullable=True)
    is_scheduled = Column(Boolean, nullable=False, default=False)
    scheduled_time = Column(DateTime(timezone=True), nullable=True)

    # placed, confirmed, preparing, ready, picked, nearby, delivered, cancelled
    status = Column(String, nullable=False, default="placed", index=True)
    can_cancel = Column(Boolean, nullable=False, default=True)
    can_modify = Column(Boolean, nullable=False, default=True)
    cancellation_deadline = Column(DateTime(timezone=True), nullable=False)
    modification_deadline = Column(DateTime(timezone=True), nullable=False)

    cancellation_reason = Column(Text, nullable=True)
    cancelled_by = Column(String, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    modified_at = Column(DateTime(timezone=True), nullable=True)
    driver_id = Column(String, nullable=True, index=True)
    driver_name = Column(String, nullable=True)

    updated_by = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=True)

    # optimistic locking, every write is UPDATE ... WHERE version = old
    version = Column(Integer, nullable=False, default=1)

    items = relationship(
        "OrderItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItemModel.position",
    )
    status_history = relationship(
        "StatusHistoryModel",
        back_populates="order",
        order_by="StatusHistoryModel.id",
    )
