# order_lifecycle/repos/refund_repo.py
from typing import Any, Dict, List

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from order_lifecycle.data.models.refund import RefundModel


class RefundRepo:
    def __init__(self, db: Session):
        self.db = db

    def create_refund(self, refund: RefundModel) -> RefundModel:
        self.db.add(refund)
        self.db.commit()
        self.db.refresh(refund)
        return refund

    def get_refund(self, refund_id: str) -> RefundModel | None:
        return self.db.get(RefundModel, refund_id)

    def list_by_initiator(self, initiated_by: str) -> List[RefundModel]:
        stmt = (
            select(RefundModel)
            .where(RefundModel.initiated_by == initiated_by)
            .order_by(RefundModel.created_at.desc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_by_order(self, order_id: int) -> List[RefundModel]:
        stmt = (
            select(RefundModel)
            .where(RefundModel.order_id == order_id)
            .order_by(RefundModel.created_at.desc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def update_refund_status(self, refund_id: str, old_status: str, new_data: Dict[str, Any]) -> int:
        # same idea as the order version check, the status is the guard
        result = self.db.execute(
            update(RefundModel)
            .where(RefundModel.id == refund_id, RefundModel.status == old_status)
            .values(**new_data)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def commit(self, refund: RefundModel | None = None) -> None:
        self.db.commit()
        if refund is not None:
            self.db.expire(refund)

    def rollback(self) -> None:
        self.db.rollback()
