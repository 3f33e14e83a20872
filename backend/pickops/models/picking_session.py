"""
Picking Session Models

One PickingSession per pick attempt on an order, owning the ordered list of
PickingItem rows (line item progress). Status values:

    in_progress -> completed | cancelled   (both terminal)

Once completed with missing units, faltante_resolution runs its own
sub-state machine: pending -> waiting -> resolved, or pending -> voucher |
resolved.
"""
from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Text, Boolean, JSON,
    Index, UniqueConstraint, CheckConstraint, text,
)
from sqlalchemy.orm import relationship

from pickops.db.base import Base, utcnow


class SessionStatus:
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class FaltanteResolution:
    PENDING = "pending"
    VOUCHER = "voucher"
    WAITING = "waiting"
    RESOLVED = "resolved"

    OPEN = (PENDING, WAITING)
    TERMINAL = (VOUCHER, RESOLVED)


class FulfillmentStatus:
    NONE = "none"
    PENDING = "pending"
    SUBMITTED = "submitted"
    FAILED = "failed"


class FulfillmentKind:
    FULL = "full"                # completed with nothing missing
    PICKED_ONLY = "picked_only"  # voucher / resolved write-off
    COMBINED = "combined"        # every missing unit received


class PickingSession(Base):
    """Picking Session - durable record of one order's pick progress"""
    __tablename__ = "picking_sessions"

    id = Column(Integer, primary_key=True, index=True)

    # Order reference (remote order id + human display number)
    order_id = Column(String(64), nullable=False, index=True)
    order_display_id = Column(Integer, nullable=False, default=0)

    status = Column(String(20), nullable=False, default=SessionStatus.IN_PROGRESS, index=True)

    # Timing
    started_at = Column(DateTime, nullable=False, default=utcnow)
    completed_at = Column(DateTime, nullable=True, index=True)
    duration_seconds = Column(Integer, nullable=True)

    # Cancellation
    cancelled_at = Column(DateTime, nullable=True)
    cancel_reason = Column(Text, nullable=True)

    # Picker
    user_id = Column(Integer, ForeignKey("picking_users.id", ondelete="NO ACTION"), nullable=False, index=True)
    user_name = Column(String(100), nullable=False)
    completed_by_name = Column(String(100), nullable=True)

    # Packing
    packed = Column(Boolean, nullable=False, default=False)
    packed_at = Column(DateTime, nullable=True)
    packed_by_name = Column(String(100), nullable=True)

    # Shortfall reconciliation
    faltante_resolution = Column(String(20), nullable=True, index=True)  # pending, voucher, waiting, resolved
    faltante_resolved_at = Column(DateTime, nullable=True)
    faltante_notes = Column(Text, nullable=True)

    # Fulfillment outbox: what was (or will be) submitted to the Order Service
    fulfillment_status = Column(String(20), nullable=False, default=FulfillmentStatus.NONE, index=True)
    fulfillment_kind = Column(String(20), nullable=True)
    fulfillment_lines = Column(JSON, nullable=True)  # [{"line_item_id": ..., "quantity": ...}]
    fulfillment_attempts = Column(Integer, nullable=False, default=0)
    fulfillment_attempted_at = Column(DateTime, nullable=True)
    fulfillment_submitted_at = Column(DateTime, nullable=True)
    fulfillment_error = Column(Text, nullable=True)
    fulfillment_remote_id = Column(String(64), nullable=True)

    # Timestamps / optimistic locking
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)
    version = Column(Integer, nullable=False)

    items = relationship(
        "PickingItem",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="PickingItem.position",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        # At most one in-progress session per order
        Index(
            "uq_picking_sessions_active_order",
            "order_id",
            unique=True,
            sqlite_where=text("status = 'in_progress'"),
            postgresql_where=text("status = 'in_progress'"),
        ),
    )

    def __repr__(self):
        return f"<PickingSession {self.id} order={self.order_id} {self.status}>"


class PickingItem(Base):
    """Progress of one line item inside a picking session"""
    __tablename__ = "picking_items"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(
        Integer,
        ForeignKey("picking_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    position = Column(Integer, nullable=False)  # order of the snapshot, scan priority

    line_item_id = Column(String(64), nullable=False)
    variant_id = Column(String(64), nullable=True)
    sku = Column(String(100), nullable=True, index=True)
    barcode = Column(String(100), nullable=True, index=True)

    # Snapshot at session start - never changes afterwards
    quantity_required = Column(Integer, nullable=False)

    quantity_picked = Column(Integer, nullable=False, default=0)
    quantity_missing = Column(Integer, nullable=False, default=0)
    quantity_received = Column(Integer, nullable=False, default=0)

    picked_at = Column(DateTime, nullable=True)
    scan_method = Column(String(20), nullable=True)  # manual, barcode

    session = relationship("PickingSession", back_populates="items")

    __table_args__ = (
        UniqueConstraint("session_id", "line_item_id", name="uq_picking_items_session_line"),
        CheckConstraint("quantity_required >= 0", name="ck_picking_items_required"),
        CheckConstraint(
            "quantity_picked >= 0 AND quantity_picked <= quantity_required",
            name="ck_picking_items_picked",
        ),
        CheckConstraint(
            "quantity_missing >= 0 AND quantity_missing <= quantity_required - quantity_picked",
            name="ck_picking_items_missing",
        ),
        CheckConstraint(
            "quantity_received >= 0 AND quantity_received <= quantity_missing",
            name="ck_picking_items_received",
        ),
    )

    def __repr__(self):
        return (
            f"<PickingItem {self.line_item_id} "
            f"{self.quantity_picked}+{self.quantity_missing}/{self.quantity_required}>"
        )
