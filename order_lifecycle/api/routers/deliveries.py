# order_lifecycle/api/routers/deliveries.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query

from order_lifecycle.api.deps import get_order_service
from order_lifecycle.domain.errors import (
    ConcurrencyConflictError,
    NotFoundError,
    PreconditionError,
)
from order_lifecycle.domain.schemas import AcceptDeliveryIn, DriverActionIn, OrderOut
from order_lifecycle.services.order_service import OrderService
from order_lifecycle.utils.retry import conflict_retry

router = APIRouter(prefix="/deliveries", tags=["deliveries"])


@router.get("/available", response_model=List[OrderOut])
def available_orders(svc: OrderService = Depends(get_order_service)):
    """Orders waiting for a driver (status 'ready')."""
    return svc.list_available_for_delivery()


@router.get("/active", response_model=List[OrderOut])
def active_deliveries(
    driver_id: str = Query(...),
    svc: OrderService = Depends(get_order_service),
):
    """Picked-up and nearby orders of one driver, newest first."""
    return svc.list_active_deliveries(driver_id)


@router.post("/{order_id}/accept", response_model=OrderOut)
def accept_delivery(
    order_id: int,
    payload: AcceptDeliveryIn,
    svc: OrderService = Depends(get_order_service),
):
    try:
        return conflict_retry()(svc.accept_delivery)(order_id, payload.driver_id, payload.driver_name)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (PreconditionError, ConcurrencyConflictError) as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.post("/{order_id}/nearby", response_model=OrderOut)
def mark_nearby(
    order_id: int,
    payload: DriverActionIn,
    svc: OrderService = Depends(get_order_service),
):
    try:
        return conflict_retry()(svc.mark_nearby)(order_id, payload.driver_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (PreconditionError, ConcurrencyConflictError) as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.post("/{order_id}/complete", response_model=OrderOut)
def complete_delivery(
    order_id: int,
    payload: DriverActionIn,
    svc: OrderService = Depends(get_order_service),
):
    try:
        return conflict_retry()(svc.complete_delivery)(order_id, payload.driver_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (PreconditionError, ConcurrencyConflictError) as e:
        raise HTTPException(status_code=409, detail=str(e))
