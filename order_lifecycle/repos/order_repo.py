# order_lifecycle/repos/order_repo.py
from datetime import datetime
from typing import Any, Dict, Iterable, List

from sqlalchemy import select, update, delete
from sqlalchemy.orm import Session

from order_lifecycle.data.models.order import OrderModel
from order_lifecycle.data.models.order_item import OrderItemModel
from order_lifecycle.data.models.status_history import StatusHistoryModel
from order_lifecycle.data.models.order_modification import OrderModificationModel


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def create_order(self, order: OrderModel) -> OrderModel:
        self.db.add(order)
        self.db.commit()
        self.db.refresh(order)
        return order

    def get_order(self, order_id: int) -> OrderModel | None:
        return self.db.get(OrderModel, order_id)

    def _list(self, *criteria) -> List[OrderModel]:
        stmt = (
            select(OrderModel)
            .where(*criteria)
            .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_by_customer(self, customer_id: str) -> List[OrderModel]:
        return self._list(OrderModel.customer_id == customer_id)

    def list_by_restaurant(self, restaurant_id: str) -> List[OrderModel]:
        return self._list(OrderModel.restaurant_id == restaurant_id)

    def list_by_status(self, status: str) -> List[OrderModel]:
        return self._list(OrderModel.status == status)

    def list_active_for_driver(self, driver_id: str, statuses: Iterable[str]) -> List[OrderModel]:
        return self._list(OrderModel.driver_id == driver_id, OrderModel.status.in_(list(statuses)))

    def get_history(self, order_id: int) -> List[StatusHistoryModel]:
        stmt = (
            select(StatusHistoryModel)
            .where(StatusHistoryModel.order_id == order_id)
            .order_by(StatusHistoryModel.id)
        )
        return list(self.db.execute(stmt).scalars().all())

    def update_order_version(self, order_id: int, old_version: int, new_data: Dict[str, Any]) -> int:
        # UPDATE orders SET ... WHERE id = :id AND version = :old_version
        result = self.db.execute(
            update(OrderModel)
            .where(OrderModel.id == order_id, OrderModel.version == old_version)
            .values(**new_data)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def add_history(
        self,
        order_id: int,
        status: str,
        note: str,
        updated_by: str | None,
        timestamp: datetime,
    ) -> StatusHistoryModel:
        entry = StatusHistoryModel(
            order_id=order_id,
            status=status,
            note=note,
            updated_by=updated_by,
            timestamp=timestamp,
        )
        self.db.add(entry)
        return entry

    def replace_items(self, order_id: int, items: Iterable[OrderItemModel]) -> None:
        self.db.execute(
            delete(OrderItemModel)
            .where(OrderItemModel.order_id == order_id)
            .execution_options(synchronize_session=False)
        )
        for position, item in enumerate(items):
            item.order_id = order_id
            item.position = position
            self.db.add(item)

    def add_modification(self, modification: OrderModificationModel) -> OrderModificationModel:
        self.db.add(modification)
        return modification

    def commit(self, order: OrderModel | None = None) -> None:
        self.db.commit()
        if order is not None:
            # columns were written through a bulk UPDATE, reload everything on next access
            self.db.expire(order)

    def rollback(self) -> None:
        self.db.rollback()
