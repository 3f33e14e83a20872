"""Database models"""
from pickops.models.picking_user import PickingUser
from pickops.models.picking_session import (
    PickingSession,
    PickingItem,
    SessionStatus,
    FaltanteResolution,
    FulfillmentStatus,
    FulfillmentKind,
)
from pickops.models.audit_log import AuditLog, AuditAction

__all__ = [
    "PickingUser",
    "PickingSession",
    "PickingItem",
    "SessionStatus",
    "FaltanteResolution",
    "FulfillmentStatus",
    "FulfillmentKind",
    "AuditLog",
    "AuditAction",
]
