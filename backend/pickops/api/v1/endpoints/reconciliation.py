"""
API endpoints for faltante (shortfall) reconciliation.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from pickops.api.v1.deps import Pagination, get_reconciliation_service
from pickops.api.v1.endpoints.picking import build_session_response
from pickops.db.session import get_db
from pickops.models.picking_session import PickingItem
from pickops.schemas.common import PaginationMeta
from pickops.schemas.reconciliation import (
    CustomerContact,
    MissingItemResponse,
    OutstandingResponse,
    ReceiveRequest,
    ReceiveResponse,
    ResolveRequest,
    ResolveResponse,
    UnresolvedItem,
    UnresolvedListResponse,
    VoucherRequest,
    VoucherResponse,
)
from pickops.services.reconciliation_service import ReconciliationService, missing_items_of

router = APIRouter()

RESOLUTION_LABELS = {
    "voucher": "Compensation voucher",
    "waiting": "Waiting for stock",
    "resolved": "Resolved",
}


def build_missing_item(item: PickingItem) -> MissingItemResponse:
    return MissingItemResponse(
        line_item_id=item.line_item_id,
        sku=item.sku or "",
        barcode=item.barcode or "",
        quantity_required=item.quantity_required,
        quantity_picked=item.quantity_picked,
        quantity_missing=item.quantity_missing,
        quantity_received=item.quantity_received,
    )


@router.get(
    "/faltantes",
    response_model=UnresolvedListResponse,
    summary="Completed sessions with unresolved missing items",
)
def list_unresolved(
    pagination: Pagination,
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    sessions, total = service.list_unresolved(offset=pagination.offset, limit=pagination.limit)
    items = []
    for s in sessions:
        missing = missing_items_of(s)
        items.append(UnresolvedItem(
            order_id=s.order_id,
            order_display_id=s.order_display_id,
            user_name=s.user_name,
            completed_at=s.completed_at,
            faltante_resolution=s.faltante_resolution,
            faltante_notes=s.faltante_notes,
            total_missing=sum(i.quantity_missing for i in missing),
            total_received=sum(i.quantity_received for i in missing),
            missing_items=[build_missing_item(i) for i in missing],
        ))
    return UnresolvedListResponse(
        items=items,
        pagination=PaginationMeta(
            total=total,
            offset=pagination.offset,
            limit=pagination.limit,
            returned=len(items),
        ),
    )


@router.post(
    "/faltantes/{order_id}/resolve",
    response_model=ResolveResponse,
    summary="Resolve a shortfall",
)
def resolve_faltante(
    order_id: str,
    request: ResolveRequest,
    db: Session = Depends(get_db),
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """
    Record the resolution.

    voucher / resolved write the missing units off and send a fulfillment
    for the picked quantities; waiting starts scan-to-receive.
    """
    result = service.resolve(order_id, request.resolution, request.notes, request.user_name)
    db.commit()
    return ResolveResponse(
        message=f"Shortfall marked as: {RESOLUTION_LABELS[result.resolution]}",
        resolution=result.resolution,
        fulfillment_created=result.fulfillment_created,
        fulfillment_error=result.fulfillment_error,
        session=build_session_response(result.session),
    )


@router.post(
    "/faltantes/{order_id}/voucher",
    response_model=VoucherResponse,
    summary="Issue a compensation voucher",
)
def issue_voucher(
    order_id: str,
    request: VoucherRequest,
    db: Session = Depends(get_db),
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    result = service.issue_voucher(order_id, request.value, request.notes, request.user_name)
    db.commit()
    return VoucherResponse(
        code=result.code,
        value=result.value,
        promotion_id=result.promotion_id,
        customer=CustomerContact(name=result.customer_name, phone=result.customer_phone),
        order_display_id=result.session.order_display_id,
        fulfillment_created=result.fulfillment_created,
        fulfillment_error=result.fulfillment_error,
    )


@router.get(
    "/faltantes/{order_id}/receive",
    response_model=OutstandingResponse,
    summary="Missing items awaiting receipt",
)
def get_outstanding(
    order_id: str,
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    session, missing = service.outstanding(order_id)
    return OutstandingResponse(
        order_id=session.order_id,
        order_display_id=session.order_display_id,
        faltante_resolution=session.faltante_resolution,
        missing_items=[build_missing_item(i) for i in missing],
    )


@router.post(
    "/faltantes/{order_id}/receive",
    response_model=ReceiveResponse,
    summary="Receive one scanned unit of missing stock",
)
def receive_item(
    order_id: str,
    request: ReceiveRequest,
    db: Session = Depends(get_db),
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    result = service.receive(
        order_id,
        line_item_id=request.line_item_id,
        barcode=request.barcode,
        sku=request.sku,
        user_name=request.user_name,
    )
    db.commit()
    return ReceiveResponse(
        matched=build_missing_item(result.matched),
        all_received=result.all_received,
        fulfillment_created=result.fulfillment_created,
        fulfillment_error=result.fulfillment_error,
        missing_items=[build_missing_item(i) for i in result.missing_items],
    )
