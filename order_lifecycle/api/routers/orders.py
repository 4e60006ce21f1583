# order_lifecycle/api/routers/orders.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query

from order_lifecycle.api.deps import get_order_service
from order_lifecycle.domain.errors import (
    ConcurrencyConflictError,
    NotFoundError,
    PreconditionError,
    RefundInitiationError,
    ValidationError,
)
from order_lifecycle.domain.schemas import (
    CancelIn,
    ModifyIn,
    OrderCreate,
    OrderOut,
    StatusHistoryOut,
    StatusUpdateIn,
)
from order_lifecycle.services.order_service import OrderService
from order_lifecycle.utils.retry import conflict_retry

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("/", response_model=OrderOut, status_code=201)
def create_order(
    payload: OrderCreate,
    svc: OrderService = Depends(get_order_service),
):
    """
    Places an order: status 'placed', cancel / modify windows open.
    """
    try:
        return svc.create_order(payload)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/", response_model=List[OrderOut])
def list_orders(
    customer_id: str | None = Query(None),
    restaurant_id: str | None = Query(None),
    svc: OrderService = Depends(get_order_service),
):
    if customer_id:
        return svc.list_by_customer(customer_id)
    if restaurant_id:
        return svc.list_by_restaurant(restaurant_id)
    raise HTTPException(status_code=400, detail="customer_id or restaurant_id is required")


@router.get("/{order_id}", response_model=OrderOut)
def get_order(order_id: int, svc: OrderService = Depends(get_order_service)):
    try:
        return svc.get_order(order_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/{order_id}/history", response_model=List[StatusHistoryOut])
def get_history(order_id: int, svc: OrderService = Depends(get_order_service)):
    try:
        return svc.get_history(order_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/{order_id}/status", response_model=OrderOut)
def advance_status(
    order_id: int,
    payload: StatusUpdateIn,
    svc: OrderService = Depends(get_order_service),
):
    """
    Moves the order one step forward. A lost version race is retried once,
    then the business rules decide against the fresh state.
    """
    try:
        return conflict_retry()(svc.advance_status)(
            order_id, payload.status, payload.actor_id, payload.note
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (PreconditionError, ConcurrencyConflictError) as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.post("/{order_id}/cancel", response_model=OrderOut)
def cancel_order(
    order_id: int,
    payload: CancelIn,
    svc: OrderService = Depends(get_order_service),
):
    try:
        return conflict_retry()(svc.cancel_order)(order_id, payload.reason, payload.actor_id)
    except RefundInitiationError as e:
        # the order stays cancelled, only the refund is missing
        raise HTTPException(status_code=500, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (PreconditionError, ConcurrencyConflictError) as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.post("/{order_id}/modify", response_model=OrderOut)
def modify_order(
    order_id: int,
    payload: ModifyIn,
    svc: OrderService = Depends(get_order_service),
):
    try:
        return conflict_retry()(svc.modify_order)(
            order_id,
            payload.items,
            payload.actor_id,
            subtotal=payload.subtotal,
            total=payload.total,
            reason=payload.reason,
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (PreconditionError, ConcurrencyConflictError) as e:
        raise HTTPException(status_code=409, detail=str(e))
