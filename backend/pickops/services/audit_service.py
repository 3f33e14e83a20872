"""
Audit Service

Append-only trail for picking and reconciliation mutations.

record_audit() joins the caller's transaction through a savepoint: if the
insert fails the savepoint is rolled back, the failure is logged and the
business mutation carries on. Every entry is mirrored to the
"pickops.audit" logger as well.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pickops.logging_config import get_audit_logger, get_logger
from pickops.models.audit_log import AuditLog

logger = get_logger(__name__)
audit_logger = get_audit_logger()


def record_audit(
    db: Session,
    action: str,
    user_name: str,
    *,
    user_id: Optional[int] = None,
    order_id: Optional[str] = None,
    order_display_id: Optional[int] = None,
    details: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Optional[AuditLog]:
    """
    Record an audit entry.

    Args:
        db: Database session
        action: One of AuditAction
        user_name: Who performed the action (picker name or a system actor)
        user_id: PickingUser id, when the actor is a picker
        order_id: Remote order id the action concerns
        order_display_id: Human order number
        details: Short human-readable description
        metadata: Structured context stored as JSON

    Returns:
        The created AuditLog, or None if it could not be stored.
        Never raises for database errors.
    """
    audit_logger.info(
        details or action,
        extra={
            "action": action,
            "user_name": user_name,
            "user_id": user_id,
            "order_id": order_id,
            "order_display_id": order_display_id,
            "audit_metadata": metadata,
        },
    )

    entry = AuditLog(
        action=action,
        user_name=user_name,
        user_id=user_id,
        order_id=order_id,
        order_display_id=order_display_id,
        details=details,
        metadata_json=metadata,
    )
    # Pending business changes flush here, outside the guarded block, so
    # their errors (stale version, constraint) still reach the caller
    db.flush()
    try:
        with db.begin_nested():
            db.add(entry)
    except SQLAlchemyError as e:
        logger.error(
            f"Failed to store audit entry {action}: {e}",
            extra={"action": action, "order_id": order_id},
        )
        return None
    # Don't commit - the caller owns the transaction
    return entry


def query_audit(
    db: Session,
    *,
    action: Optional[str] = None,
    user_name: Optional[str] = None,
    order_id: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    offset: int = 0,
    limit: int = 100,
) -> Tuple[List[AuditLog], int]:
    """Audit entries newest first, with the total matching count."""
    query = db.query(AuditLog)

    if action:
        query = query.filter(AuditLog.action == action)
    if user_name:
        query = query.filter(AuditLog.user_name.ilike(f"%{user_name}%"))
    if order_id:
        query = query.filter(AuditLog.order_id == order_id)
    if date_from:
        query = query.filter(AuditLog.created_at >= date_from)
    if date_to:
        query = query.filter(AuditLog.created_at <= date_to)

    total = query.count()
    entries = (
        query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return entries, total
