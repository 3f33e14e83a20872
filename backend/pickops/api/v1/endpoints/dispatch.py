"""
API endpoints for shipping and delivering picked orders.
"""
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from pickops.api.v1.deps import get_dispatch_service
from pickops.db.session import get_db
from pickops.schemas.reconciliation import DispatchRequest, DispatchResponse
from pickops.services.dispatch_service import DISPATCH_ACTOR, DispatchService

router = APIRouter()


@router.post(
    "/{order_id}/ship",
    response_model=DispatchResponse,
    summary="Create shipments for an order's fulfillments",
)
def ship_order(
    order_id: str,
    request: Optional[DispatchRequest] = None,
    db: Session = Depends(get_db),
    service: DispatchService = Depends(get_dispatch_service),
):
    request = request or DispatchRequest()
    shipped = service.ship(
        order_id,
        order_display_id=request.order_display_id,
        user_name=request.user_name or DISPATCH_ACTOR,
    )
    db.commit()
    return DispatchResponse(order_id=order_id, fulfillment_ids=shipped)


@router.post(
    "/{order_id}/deliver",
    response_model=DispatchResponse,
    summary="Mark an order's fulfillments as delivered",
)
def deliver_order(
    order_id: str,
    request: Optional[DispatchRequest] = None,
    db: Session = Depends(get_db),
    service: DispatchService = Depends(get_dispatch_service),
):
    request = request or DispatchRequest()
    delivered = service.deliver(
        order_id,
        order_display_id=request.order_display_id,
        user_name=request.user_name or DISPATCH_ACTOR,
    )
    db.commit()
    return DispatchResponse(order_id=order_id, fulfillment_ids=delivered)
