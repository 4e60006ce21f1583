# order_lifecycle/api/routers/refunds.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query

from order_lifecycle.api.deps import get_refund_service
from order_lifecycle.domain.errors import NotFoundError, RefundStateError
from order_lifecycle.domain.schemas import RefundOut, RefundProcessIn
from order_lifecycle.services.refund_service import RefundService

router = APIRouter(prefix="/refunds", tags=["refunds"])


@router.get("/", response_model=List[RefundOut])
def list_refunds(
    initiated_by: str | None = Query(None),
    order_id: int | None = Query(None),
    svc: RefundService = Depends(get_refund_service),
):
    if initiated_by:
        return svc.list_by_initiator(initiated_by)
    if order_id is not None:
        return svc.list_by_order(order_id)
    raise HTTPException(status_code=400, detail="initiated_by or order_id is required")


@router.get("/{refund_id}", response_model=RefundOut)
def get_refund(refund_id: str, svc: RefundService = Depends(get_refund_service)):
    try:
        return svc.get(refund_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/{refund_id}/process", response_model=RefundOut)
def process_refund(
    refund_id: str,
    payload: RefundProcessIn,
    svc: RefundService = Depends(get_refund_service),
):
    try:
        return svc.process(refund_id, payload.status, payload.processed_by, payload.note)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except RefundStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
