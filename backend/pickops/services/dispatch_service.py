"""
Dispatch service - ship and deliver orders on the Order Service once picked.

Both operations work on the remote fulfillments only; the local session is
not touched. Each success is audited under a fixed dispatch actor. When the
Order Service fails partway through, the fulfillments already updated are
audited (and committed) before the error propagates.
"""
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from pickops.exceptions import InvalidStateError, OrderServiceError
from pickops.integrations.order_service_port import OrderServicePort
from pickops.logging_config import get_logger
from pickops.models.audit_log import AuditAction
from pickops.services.audit_service import record_audit

logger = get_logger(__name__)

DISPATCH_ACTOR = "dispatch"

SHIPPED_STATUSES = ("shipped", "partially_shipped", "delivered")


class DispatchService:
    def __init__(self, db: Session, order_service: OrderServicePort):
        self.db = db
        self.order_service = order_service

    def _audit(
        self,
        action: str,
        user_name: str,
        order_id: str,
        display_id: int,
        verb: str,
        fulfillment_ids: List[str],
        error: Optional[str] = None,
    ) -> None:
        label = f"#{display_id or order_id}"
        metadata: Dict[str, Any] = {"fulfillment_ids": fulfillment_ids}
        if error is None:
            details = f"Order {label} marked as {verb}"
        else:
            metadata["error"] = error
            details = (
                f"Order {label} partially {verb} "
                f"({len(fulfillment_ids)} fulfillment(s)) before error: {error}"
            )
        record_audit(
            self.db,
            action,
            user_name,
            order_id=order_id,
            order_display_id=display_id,
            details=details,
            metadata=metadata,
        )

    def _apply(
        self,
        order: Dict[str, Any],
        pending: List[Dict[str, Any]],
        remote_call: Callable[[str, str], None],
        action: str,
        verb: str,
        user_name: str,
        display_id: int,
    ) -> List[str]:
        order_id = order["id"]
        done: List[str] = []
        for fulfillment in pending:
            try:
                remote_call(order_id, fulfillment["id"])
            except OrderServiceError as e:
                if done:
                    self._audit(action, user_name, order_id, display_id, verb, done, error=e.message)
                    self.db.commit()
                logger.warning(
                    f"Order {order_id} {verb} stopped after {len(done)} fulfillment(s): {e.message}",
                    extra={"order_id": order_id, "fulfillment_ids": done},
                )
                raise
            done.append(fulfillment["id"])

        self._audit(action, user_name, order_id, display_id, verb, done)
        logger.info(f"Order {verb}", extra={"order_id": order_id, "fulfillments": len(done)})
        return done

    def ship(
        self,
        order_id: str,
        order_display_id: Optional[int] = None,
        user_name: str = DISPATCH_ACTOR,
    ) -> List[str]:
        """Create a shipment for every fulfillment not shipped yet. Returns their ids."""
        order = self.order_service.get_order(order_id)
        fulfillment_status = order.get("fulfillment_status") or ""
        fulfillments = order.get("fulfillments") or []

        if fulfillment_status in SHIPPED_STATUSES:
            raise InvalidStateError(
                f"Order {order_id} was already shipped",
                current_state=fulfillment_status,
            )
        if not fulfillments:
            raise InvalidStateError(
                f"Order {order_id} has no fulfillments to ship",
                current_state=fulfillment_status or None,
            )

        return self._apply(
            dict(order, id=order_id),
            [f for f in fulfillments if not f.get("shipped_at")],
            self.order_service.create_shipment,
            AuditAction.ORDER_SHIP,
            "shipped",
            user_name,
            order_display_id or order.get("display_id") or 0,
        )

    def deliver(
        self,
        order_id: str,
        order_display_id: Optional[int] = None,
        user_name: str = DISPATCH_ACTOR,
    ) -> List[str]:
        """Mark every undelivered fulfillment as delivered. Returns their ids."""
        order = self.order_service.get_order(order_id)
        fulfillment_status = order.get("fulfillment_status") or ""
        fulfillments = order.get("fulfillments") or []

        if fulfillment_status == "delivered":
            raise InvalidStateError(
                f"Order {order_id} was already delivered",
                current_state=fulfillment_status,
            )
        if not fulfillments:
            raise InvalidStateError(
                f"Order {order_id} has no fulfillments to deliver",
                current_state=fulfillment_status or None,
            )

        return self._apply(
            dict(order, id=order_id),
            [f for f in fulfillments if not f.get("delivered_at")],
            self.order_service.mark_fulfillment_delivered,
            AuditAction.ORDER_DELIVER,
            "delivered",
            user_name,
            order_display_id or order.get("display_id") or 0,
        )
