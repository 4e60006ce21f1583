from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Numeric, Text
from datetime import datetime, timezone

from order_lifecycle.data.database import Base


class RefundModel(Base):
    __tablename__ = "refunds"

    id = Column(String(36), primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)

    amount = Column(Numeric(10, 2), nullable=False)
    reason = Column(Text, nullable=False)
    status = Column(String, nullable=False, default="pending")  # pending, approved, rejected, completed

    initiated_by = Column(String, nullable=False, index=True)
    processed_by = Column(String, nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
