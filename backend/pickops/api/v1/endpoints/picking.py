"""
API endpoints for picking sessions.

Services raise PickOpsException subclasses; the application-level handler
turns them into the standard error body. Endpoints commit on success.
"""
from datetime import date, datetime, time
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from pickops.api.v1.deps import (
    Pagination,
    get_fulfillment_coordinator,
    get_picking_service,
)
from pickops.db.session import get_db
from pickops.models.picking_session import PickingSession
from pickops.schemas.common import PaginationMeta
from pickops.schemas.picking import (
    CancelSessionRequest,
    CompleteSessionRequest,
    CompleteSessionResponse,
    FailedFulfillmentItem,
    FailedFulfillmentListResponse,
    FulfillmentInfo,
    HistoryResponse,
    HistorySessionItem,
    MarkMissingRequest,
    PackRequest,
    PickingItemResponse,
    PickRequest,
    PickResponse,
    RetryFulfillmentRequest,
    RetryFulfillmentResponse,
    SessionResponse,
    StartSessionRequest,
    TodayStatsResponse,
    UnpickRequest,
)
from pickops.services.fulfillment_coordinator import FulfillmentCoordinator
from pickops.services.picking_service import PickingService, session_totals

router = APIRouter()


def build_fulfillment_info(session: PickingSession) -> FulfillmentInfo:
    return FulfillmentInfo(
        status=session.fulfillment_status,
        kind=session.fulfillment_kind,
        lines=session.fulfillment_lines,
        attempts=session.fulfillment_attempts or 0,
        attempted_at=session.fulfillment_attempted_at,
        submitted_at=session.fulfillment_submitted_at,
        error=session.fulfillment_error,
        remote_id=session.fulfillment_remote_id,
    )


def build_session_response(session: PickingSession) -> SessionResponse:
    """Build response from session model, derived totals recomputed."""
    totals = session_totals(session)
    return SessionResponse(
        id=session.id,
        order_id=session.order_id,
        order_display_id=session.order_display_id,
        status=session.status,
        started_at=session.started_at,
        completed_at=session.completed_at,
        cancelled_at=session.cancelled_at,
        cancel_reason=session.cancel_reason,
        duration_seconds=session.duration_seconds,
        user_id=session.user_id,
        user_name=session.user_name,
        completed_by_name=session.completed_by_name,
        packed=session.packed,
        packed_at=session.packed_at,
        packed_by_name=session.packed_by_name,
        faltante_resolution=session.faltante_resolution,
        faltante_resolved_at=session.faltante_resolved_at,
        faltante_notes=session.faltante_notes,
        fulfillment=build_fulfillment_info(session),
        items=[PickingItemResponse.model_validate(item) for item in session.items],
        total_required=totals.total_required,
        total_picked=totals.total_picked,
        total_missing=totals.total_missing,
        total_received=totals.total_received,
        is_complete=totals.is_complete,
        progress_percent=totals.progress_percent,
        elapsed_seconds=totals.elapsed_seconds,
        version=session.version,
    )


def _day_bounds(date_from: Optional[date], date_to: Optional[date]):
    start = datetime.combine(date_from, time.min) if date_from else None
    end = datetime.combine(date_to, time.max) if date_to else None
    return start, end


# ============================================================================
# Session lifecycle
# ============================================================================

@router.post(
    "/sessions/{order_id}",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start (or resume) picking an order",
)
def start_session(
    order_id: str,
    request: StartSessionRequest,
    response: Response,
    db: Session = Depends(get_db),
    service: PickingService = Depends(get_picking_service),
):
    """
    Start a picking session.

    Returns the session already in progress for the order (200) instead of
    creating a second one; a new session answers 201.
    """
    session, created = service.start(
        order_id,
        request.user_id,
        request.order_display_id,
        [item.model_dump() for item in request.items],
    )
    db.commit()
    if not created:
        response.status_code = status.HTTP_200_OK
    return build_session_response(session)


@router.get(
    "/sessions/{order_id}",
    response_model=SessionResponse,
    summary="Get the picking session of an order",
)
def get_session(
    order_id: str,
    include_completed: bool = Query(False, description="Fall back to the latest completed session"),
    service: PickingService = Depends(get_picking_service),
):
    return build_session_response(service.get(order_id, include_completed=include_completed))


@router.post(
    "/sessions/{order_id}/pick",
    response_model=PickResponse,
    summary="Pick one unit",
)
def pick_item(
    order_id: str,
    request: PickRequest,
    db: Session = Depends(get_db),
    service: PickingService = Depends(get_picking_service),
):
    session, item = service.pick(
        order_id,
        line_item_id=request.line_item_id,
        barcode=request.barcode,
        method=request.method,
    )
    db.commit()
    return PickResponse(
        item=PickingItemResponse.model_validate(item),
        session=build_session_response(session),
    )


@router.post(
    "/sessions/{order_id}/unpick",
    response_model=PickResponse,
    summary="Put one picked unit back",
)
def unpick_item(
    order_id: str,
    request: UnpickRequest,
    db: Session = Depends(get_db),
    service: PickingService = Depends(get_picking_service),
):
    session, item = service.unpick(order_id, request.line_item_id)
    db.commit()
    return PickResponse(
        item=PickingItemResponse.model_validate(item),
        session=build_session_response(session),
    )


@router.post(
    "/sessions/{order_id}/missing",
    response_model=PickResponse,
    summary="Declare missing units of a line",
)
def mark_missing(
    order_id: str,
    request: MarkMissingRequest,
    db: Session = Depends(get_db),
    service: PickingService = Depends(get_picking_service),
):
    session, item = service.mark_missing(order_id, request.line_item_id, request.quantity)
    db.commit()
    return PickResponse(
        item=PickingItemResponse.model_validate(item),
        session=build_session_response(session),
    )


@router.post(
    "/sessions/{order_id}/complete",
    response_model=CompleteSessionResponse,
    summary="Complete picking",
)
def complete_session(
    order_id: str,
    request: CompleteSessionRequest,
    db: Session = Depends(get_db),
    service: PickingService = Depends(get_picking_service),
):
    """
    Complete the session.

    Validations:
    - Every item must be picked or declared missing

    The completion is stored even when the Order Service rejects the
    fulfillment; fulfillment_created / fulfillment_error report that outcome.
    """
    result = service.complete(order_id, request.user_id)
    db.commit()

    if result.missing_items:
        message = "Picking completed with missing items, pending reconciliation"
    elif result.fulfillment_created:
        message = "Picking completed and order marked as prepared"
    elif result.fulfillment_error:
        message = "Picking completed but the Order Service could not be updated"
    else:
        message = "Picking completed"

    return CompleteSessionResponse(
        message=message,
        session=build_session_response(result.session),
        duration_seconds=result.duration_seconds,
        duration_formatted=result.duration_formatted,
        fulfillment_created=result.fulfillment_created,
        fulfillment_error=result.fulfillment_error,
        missing_items=[PickingItemResponse.model_validate(i) for i in result.missing_items],
    )


@router.post(
    "/sessions/{order_id}/cancel",
    response_model=SessionResponse,
    summary="Cancel picking",
)
def cancel_session(
    order_id: str,
    request: CancelSessionRequest,
    db: Session = Depends(get_db),
    service: PickingService = Depends(get_picking_service),
):
    session = service.cancel(order_id, request.reason)
    db.commit()
    return build_session_response(session)


@router.post(
    "/sessions/{order_id}/pack",
    response_model=SessionResponse,
    summary="Mark a completed pick as packed",
)
def pack_session(
    order_id: str,
    request: Optional[PackRequest] = None,
    db: Session = Depends(get_db),
    service: PickingService = Depends(get_picking_service),
):
    session = service.pack(order_id, request.user_id if request else None)
    db.commit()
    return build_session_response(session)


# ============================================================================
# Fulfillment outbox
# ============================================================================

@router.post(
    "/sessions/{order_id}/fulfillment/retry",
    response_model=RetryFulfillmentResponse,
    summary="Resubmit a failed fulfillment",
)
def retry_fulfillment(
    order_id: str,
    request: Optional[RetryFulfillmentRequest] = None,
    db: Session = Depends(get_db),
    coordinator: FulfillmentCoordinator = Depends(get_fulfillment_coordinator),
):
    user_name = request.user_name if request else "operator"
    session, result = coordinator.retry(order_id, user_name)
    db.commit()
    return RetryFulfillmentResponse(
        order_id=session.order_id,
        submitted=result.submitted,
        attempts=result.attempts,
        remote_id=result.remote_id,
        error=result.error,
    )


@router.get(
    "/fulfillments/failed",
    response_model=FailedFulfillmentListResponse,
    summary="List sessions whose fulfillment was not submitted",
)
def list_failed_fulfillments(
    include_pending: bool = Query(False, description="Also list outcomes never attempted"),
    coordinator: FulfillmentCoordinator = Depends(get_fulfillment_coordinator),
):
    sessions = coordinator.list_failed(include_pending=include_pending)
    return FailedFulfillmentListResponse(
        items=[
            FailedFulfillmentItem(
                session_id=s.id,
                order_id=s.order_id,
                order_display_id=s.order_display_id,
                completed_at=s.completed_at,
                fulfillment=build_fulfillment_info(s),
            )
            for s in sessions
        ]
    )


# ============================================================================
# History
# ============================================================================

@router.get(
    "/history",
    response_model=HistoryResponse,
    summary="Completed and cancelled sessions",
)
def get_history(
    pagination: Pagination,
    user_id: Optional[int] = Query(None),
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
    service: PickingService = Depends(get_picking_service),
):
    start, end = _day_bounds(date_from, date_to)
    page = service.history(
        user_id=user_id,
        date_from=start,
        date_to=end,
        offset=pagination.offset,
        limit=pagination.limit,
    )

    sessions = []
    for s in page.sessions:
        totals = session_totals(s)
        sessions.append(HistorySessionItem(
            id=s.id,
            order_id=s.order_id,
            order_display_id=s.order_display_id,
            status=s.status,
            user_id=s.user_id,
            user_name=s.user_name,
            completed_by_name=s.completed_by_name,
            started_at=s.started_at,
            completed_at=s.completed_at,
            cancelled_at=s.cancelled_at,
            cancel_reason=s.cancel_reason,
            duration_seconds=s.duration_seconds,
            total_required=totals.total_required,
            total_picked=totals.total_picked,
            total_missing=totals.total_missing,
            faltante_resolution=s.faltante_resolution,
            fulfillment_status=s.fulfillment_status,
        ))

    return HistoryResponse(
        sessions=sessions,
        pagination=PaginationMeta(
            total=page.total,
            offset=pagination.offset,
            limit=pagination.limit,
            returned=len(sessions),
        ),
        today_stats=TodayStatsResponse(
            completed_count=page.today.completed_count,
            avg_duration_seconds=page.today.avg_duration_seconds,
            total_items_picked=page.today.total_items_picked,
        ),
    )
