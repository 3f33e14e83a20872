"""
Session store - durable record of each order's picking progress.

Concurrency:
- get_* accept for_update to take a row lock (no-op on SQLite)
- create_session is an atomic get-or-create backed by the partial unique
  index on active sessions; the loser of a race gets the winner's row
- save() flushes under the version counter; a lost compare-and-swap becomes
  ConcurrencyError
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from pickops.db.base import utcnow
from pickops.exceptions import ConcurrencyError
from pickops.logging_config import get_logger
from pickops.models.picking_session import PickingItem, PickingSession, SessionStatus
from pickops.services.line_items import LineItemProgress

logger = get_logger(__name__)

HISTORY_STATUSES = (SessionStatus.COMPLETED, SessionStatus.CANCELLED)


@dataclass
class TodayStats:
    completed_count: int
    avg_duration_seconds: int
    total_items_picked: int


def get_active_session(db: Session, order_id: str, for_update: bool = False) -> Optional[PickingSession]:
    query = db.query(PickingSession).filter(
        PickingSession.order_id == order_id,
        PickingSession.status == SessionStatus.IN_PROGRESS,
    )
    if for_update:
        # Locked reads refresh the instance already in the identity map
        query = query.with_for_update().populate_existing()
    return query.first()


def get_latest_completed_session(
    db: Session, order_id: str, for_update: bool = False
) -> Optional[PickingSession]:
    query = (
        db.query(PickingSession)
        .filter(
            PickingSession.order_id == order_id,
            PickingSession.status == SessionStatus.COMPLETED,
        )
        .order_by(PickingSession.completed_at.desc(), PickingSession.id.desc())
    )
    if for_update:
        # Locked reads refresh the instance already in the identity map
        query = query.with_for_update().populate_existing()
    return query.first()


def create_session(
    db: Session,
    *,
    order_id: str,
    order_display_id: int,
    user_id: int,
    user_name: str,
    items: Iterable[LineItemProgress],
) -> Tuple[PickingSession, bool]:
    """
    Insert a new in-progress session, or return the one that beat us to it.

    Returns:
        (session, created)
    """
    now = utcnow()
    session = PickingSession(
        order_id=order_id,
        order_display_id=order_display_id,
        status=SessionStatus.IN_PROGRESS,
        started_at=now,
        user_id=user_id,
        user_name=user_name,
        created_at=now,
        updated_at=now,
        items=[
            PickingItem(
                position=position,
                line_item_id=item.line_item_id,
                variant_id=item.variant_id,
                sku=item.sku,
                barcode=item.barcode,
                quantity_required=item.quantity_required,
                quantity_picked=item.quantity_picked,
                quantity_missing=item.quantity_missing,
                quantity_received=item.quantity_received,
            )
            for position, item in enumerate(items)
        ],
    )

    try:
        with db.begin_nested():
            db.add(session)
    except IntegrityError:
        winner = get_active_session(db, order_id)
        if winner is None:
            raise
        logger.info(
            "Concurrent start lost the race, returning existing session",
            extra={"order_id": order_id, "session_id": winner.id},
        )
        return winner, False

    return session, True


def save(db: Session, session: PickingSession) -> PickingSession:
    """Persist in-place changes; the UPDATE is guarded by the version column."""
    order_id, session_id = session.order_id, session.id
    session.updated_at = utcnow()
    try:
        db.flush()
    except StaleDataError as e:
        # The failed flush leaves the transaction unusable until rolled back
        db.rollback()
        logger.warning(
            "Picking session changed underneath us",
            extra={"order_id": order_id, "session_id": session_id},
        )
        raise ConcurrencyError(
            details={"order_id": order_id, "session_id": session_id}
        ) from e
    return session


def list_history(
    db: Session,
    *,
    user_id: Optional[int] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    offset: int = 0,
    limit: int = 50,
) -> Tuple[List[PickingSession], int]:
    """Completed and cancelled sessions, newest first, with the total count."""
    finished_at = func.coalesce(PickingSession.completed_at, PickingSession.cancelled_at)
    query = db.query(PickingSession).filter(PickingSession.status.in_(HISTORY_STATUSES))

    if user_id is not None:
        query = query.filter(PickingSession.user_id == user_id)
    if date_from:
        query = query.filter(finished_at >= date_from)
    if date_to:
        query = query.filter(finished_at <= date_to)

    total = query.count()
    sessions = (
        query.order_by(finished_at.desc(), PickingSession.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return sessions, total


def today_stats(db: Session, now: Optional[datetime] = None) -> TodayStats:
    now = now or utcnow()
    today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)

    count, avg_duration = (
        db.query(
            func.count(PickingSession.id),
            func.avg(PickingSession.duration_seconds),
        )
        .filter(
            PickingSession.status == SessionStatus.COMPLETED,
            PickingSession.completed_at >= today_start,
        )
        .one()
    )
    items_picked = (
        db.query(func.coalesce(func.sum(PickingItem.quantity_picked), 0))
        .join(PickingSession, PickingItem.session_id == PickingSession.id)
        .filter(
            PickingSession.status == SessionStatus.COMPLETED,
            PickingSession.completed_at >= today_start,
        )
        .scalar()
    )
    return TodayStats(
        completed_count=count or 0,
        avg_duration_seconds=int(round(float(avg_duration or 0))),
        total_items_picked=int(items_picked or 0),
    )


def list_sessions_by_fulfillment_status(
    db: Session, statuses: Iterable[str]
) -> List[PickingSession]:
    return (
        db.query(PickingSession)
        .filter(PickingSession.fulfillment_status.in_(list(statuses)))
        .order_by(PickingSession.fulfillment_attempted_at.desc(), PickingSession.id.desc())
        .all()
    )
