#import all models so SQLAlchemy registers them in Base.metadata

from order_lifecycle.data.models.order import OrderModel
from order_lifecycle.data.models.order_item import OrderItemModel
from order_lifecycle.data.models.status_history import StatusHistoryModel
from order_lifecycle.data.models.order_modification import OrderModificationModel
from order_lifecycle.data.models.refund import RefundModel

__all__ = [
    "OrderModel",
    "OrderItemModel",
    "StatusHistoryModel",
    "OrderModificationModel",
    "RefundModel",
]
