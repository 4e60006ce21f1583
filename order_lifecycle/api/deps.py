# order_lifecycle/api/deps.py
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from order_lifecycle.data.database import get_db
from order_lifecycle.services.order_service import OrderService
from order_lifecycle.services.refund_service import RefundService


def get_refund_service(db: Session = Depends(get_db)) -> RefundService:
    return RefundService(db)


def get_order_service(
    request: Request,
    db: Session = Depends(get_db),
) -> OrderService:
    state = request.app.state
    return OrderService(
        db=db,
        notifier=state.notifier,
        events=state.events,
        refunds=RefundService(db),
        menu=state.menu,
    )
