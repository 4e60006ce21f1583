# order_lifecycle/services/refund_service.py
import uuid
from decimal import Decimal
from typing import List

from sqlalchemy.orm import Session

from order_lifecycle.data.models.refund import RefundModel
from order_lifecycle.domain.errors import NotFoundError, RefundStateError, ValidationError
from order_lifecycle.domain.schemas import RefundOut
from order_lifecycle.domain.status import RefundStatus, REFUND_TRANSITIONS
from order_lifecycle.repos.refund_repo import RefundRepo
from order_lifecycle.utils.clock import Clock, utcnow
from order_lifecycle.utils.logging import get_logger

logger = get_logger(__name__)


class RefundService:
    """
    Refunds created when a paid order is cancelled.
    Once created a refund follows its own approval workflow, independent of the order.
    """

    def __init__(self, db: Session, clock: Clock = utcnow):
        self.repo = RefundRepo(db)
        self.clock = clock

    def initiate(self, order_id: int, amount: Decimal, reason: str, actor_id: str) -> RefundOut:
        if amount is None or Decimal(amount) < 0:
            raise ValidationError("Refund amount must not be negative")
        if not reason or not reason.strip():
            raise ValidationError("Refund reason is required")

        refund = RefundModel(
            id=str(uuid.uuid4()),
            order_id=order_id,
            amount=Decimal(amount),
            reason=reason.strip(),
            status=RefundStatus.PENDING.value,
            initiated_by=actor_id,
            created_at=self.clock(),
        )
        created = self.repo.create_refund(refund)

        logger.info(f"Refund {created.id} of {created.amount} initiated for order {order_id} by {actor_id}")
        return RefundOut.model_validate(created)

    def process(self, refund_id: str, status: RefundStatus, processed_by: str, note: str = "") -> RefundOut:
        refund = self.repo.get_refund(refund_id)
        if not refund:
            raise NotFoundError(f"Refund {refund_id} not found")

        current = RefundStatus(refund.status)
        target = RefundStatus(status)
        if target not in REFUND_TRANSITIONS[current]:
            logger.warning(f"Refund {refund_id}: rejected transition {current.value} -> {target.value}")
            raise RefundStateError(f"Cannot move refund from '{current.value}' to '{target.value}'")

        rowcount = self.repo.update_refund_status(
            refund_id=refund_id,
            old_status=current.value,
            new_data={
                "status": target.value,
                "processed_by": processed_by,
                "processed_at": self.clock(),
                "note": note,
            },
        )
        if rowcount == 0:
            self.repo.rollback()
            raise RefundStateError(f"Refund {refund_id} was processed by another operation")

        self.repo.commit(refund)

        logger.info(f"Refund {refund_id} {current.value} -> {target.value} by {processed_by}")
        return RefundOut.model_validate(refund)

    def get(self, refund_id: str) -> RefundOut:
        refund = self.repo.get_refund(refund_id)
        if not refund:
            raise NotFoundError(f"Refund {refund_id} not found")
        return RefundOut.model_validate(refund)

    def list_by_initiator(self, actor_id: str) -> List[RefundOut]:
        return [RefundOut.model_validate(r) for r in self.repo.list_by_initiator(actor_id)]

    def list_by_order(self, order_id: int) -> List[RefundOut]:
        return [RefundOut.model_validate(r) for r in self.repo.list_by_order(order_id)]
