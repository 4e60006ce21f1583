from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Text
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from order_lifecycle.data.database import Base


class StatusHistoryModel(Base):
    """Append-only, rows are never updated or deleted."""

    __tablename__ = "order_status_history"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)

    status = Column(String, nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    note = Column(Text, nullable=False, default="")
    updated_by = Column(String, nullable=True)

    order = relationship("OrderModel", back_populates="status_history")
