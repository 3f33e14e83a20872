"""
Test data factories for PickOps.

Provides functions to create test entities with sensible defaults, and to
seed the fake Order Service with a matching remote order.

Usage:
    from tests.factories import create_test_user, order_items, seed_remote_order

    def test_something(db_session, fake_order_service):
        user = create_test_user(db_session, name="Ana")
        items = order_items(("A", 3), ("B", 2))
        seed_remote_order(fake_order_service, "order_1", 1001, items)
"""
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from pickops.db.base import utcnow


# =============================================================================
# SEQUENCE MANAGEMENT
# =============================================================================

_sequences: Dict[str, int] = {}


def reset_sequences():
    """Reset all sequences. Call between tests for predictable IDs."""
    global _sequences
    _sequences = {}


def _next(name: str) -> int:
    """Get next sequence number for a given entity type."""
    _sequences[name] = _sequences.get(name, 0) + 1
    return _sequences[name]


# =============================================================================
# USER FACTORY
# =============================================================================

def create_test_user(
    db: Session,
    name: Optional[str] = None,
    role: str = "picker",
    **overrides
) -> "PickingUser":
    """
    Create a picking user.

    Args:
        db: Database session
        name: Display name (auto-generated if not provided)
        role: 'picker', 'supervisor' or 'admin'
        **overrides: Additional field overrides

    Returns:
        Created PickingUser instance
    """
    from pickops.models.picking_user import PickingUser

    seq = _next("user")
    user = PickingUser(
        name=name or f"Picker {seq}",
        role=role,
        active=overrides.pop("active", True),
        **overrides
    )
    db.add(user)
    db.flush()
    return user


# =============================================================================
# ORDER SNAPSHOT FACTORIES
# =============================================================================

def order_items(*lines: Tuple[str, int]) -> List[Dict[str, Any]]:
    """
    Build a start-session item list from (sku, quantity_required) pairs.

    line_item_id, barcode and variant_id are derived from the sku so tests
    can refer to them predictably: item_A, BC-A, variant_A.
    """
    return [
        {
            "line_item_id": f"item_{sku}",
            "variant_id": f"variant_{sku}",
            "sku": sku,
            "barcode": f"BC-{sku}",
            "quantity_required": quantity,
        }
        for sku, quantity in lines
    ]


def seed_remote_order(
    fake_order_service,
    order_id: str,
    display_id: int,
    items: List[Dict[str, Any]],
    **kwargs
) -> Dict[str, Any]:
    """Register the order on the fake Order Service with matching line ids."""
    return fake_order_service.add_order(
        order_id,
        display_id,
        [
            {
                "id": item["line_item_id"],
                "variant_id": item.get("variant_id"),
                "quantity": item["quantity_required"],
            }
            for item in items
        ],
        **kwargs
    )


# =============================================================================
# SESSION FACTORY
# =============================================================================

def create_test_session(
    db: Session,
    user,
    order_id: Optional[str] = None,
    items: Optional[List[Dict[str, Any]]] = None,
    status: str = "in_progress",
    **overrides
) -> "PickingSession":
    """
    Insert a picking session directly, bypassing the service.

    Useful for history, store and statistics tests that need sessions in a
    given state without walking the whole flow.

    Args:
        db: Database session
        user: PickingUser owning the session
        order_id: Remote order id (auto-generated if not provided)
        items: Start-session item dicts; picked/missing/received may be included
        status: 'in_progress', 'completed' or 'cancelled'
        **overrides: Additional PickingSession field overrides
    """
    from pickops.models.picking_session import PickingItem, PickingSession

    seq = _next("session")
    started_at = overrides.pop("started_at", utcnow() - timedelta(minutes=5))
    if status == "completed":
        overrides.setdefault("completed_at", started_at + timedelta(minutes=3))
        overrides.setdefault("duration_seconds", 180)
        overrides.setdefault("completed_by_name", user.name)
    elif status == "cancelled":
        overrides.setdefault("cancelled_at", started_at + timedelta(minutes=1))
        overrides.setdefault("cancel_reason", "Customer cancelled")

    session = PickingSession(
        order_id=order_id or f"order_{seq:04d}",
        order_display_id=overrides.pop("order_display_id", 1000 + seq),
        status=status,
        started_at=started_at,
        user_id=user.id,
        user_name=user.name,
        created_at=started_at,
        updated_at=started_at,
        items=[
            PickingItem(
                position=position,
                line_item_id=item["line_item_id"],
                variant_id=item.get("variant_id"),
                sku=item.get("sku"),
                barcode=item.get("barcode"),
                quantity_required=item["quantity_required"],
                quantity_picked=item.get("quantity_picked", 0),
                quantity_missing=item.get("quantity_missing", 0),
                quantity_received=item.get("quantity_received", 0),
            )
            for position, item in enumerate(items or [])
        ],
        **overrides
    )
    db.add(session)
    db.flush()
    return session
