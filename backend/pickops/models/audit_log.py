"""
Audit Log Model

Append-only trail of every mutating picking / reconciliation operation.
Rows are immutable once written: the ORM refuses updates and deletes.
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, JSON, event

from pickops.db.base import Base, utcnow


class AuditAction:
    SESSION_START = "session_start"
    SESSION_COMPLETE = "session_complete"
    SESSION_CANCEL = "session_cancel"
    ITEM_PICK = "item_pick"
    ITEM_UNPICK = "item_unpick"
    ITEM_MISSING = "item_missing"
    FULFILLMENT_CREATE = "fulfillment_create"
    FULFILLMENT_ERROR = "fulfillment_error"
    ORDER_SHIP = "order_ship"
    ORDER_DELIVER = "order_deliver"
    USER_CREATE = "user_create"
    USER_UPDATE = "user_update"


class AuditLog(Base):
    """Audit Log - one immutable fact about a mutation"""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)

    action = Column(String(50), nullable=False, index=True)
    user_name = Column(String(100), nullable=False)
    # No FK: the trail outlives users and is written for system actors too
    user_id = Column(Integer, nullable=True, index=True)

    order_id = Column(String(64), nullable=True, index=True)
    order_display_id = Column(Integer, nullable=True)

    details = Column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    metadata_json = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    def __repr__(self):
        return f"<AuditLog {self.action} order={self.order_id}>"


@event.listens_for(AuditLog, "before_update")
def _refuse_update(mapper, connection, target):
    raise ValueError("Audit log entries are immutable")


@event.listens_for(AuditLog, "before_delete")
def _refuse_delete(mapper, connection, target):
    raise ValueError("Audit log entries cannot be deleted")
