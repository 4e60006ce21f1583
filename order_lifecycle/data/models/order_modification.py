from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Text, JSON
from datetime import datetime, timezone

from order_lifecycle.data.database import Base


class OrderModificationModel(Base):
    __tablename__ = "order_modifications"

    id = Column(String(36), primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)

    # {"items": [...], "subtotal": "..", "total": ".."}
    original = Column(JSON, nullable=False)
    modified = Column(JSON, nullable=False)
    reason = Column(Text, nullable=True)
    modified_by = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
