"""Fake Order Service adapter - deterministic in-memory remote for tests and development.

Orders are seeded with add_order(); every mutating call is recorded so tests
can assert exactly what would have been sent. Configurable failure.
"""
from copy import deepcopy
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pickops.exceptions import OrderServiceError
from pickops.integrations.order_service_port import OrderServicePort


class FakeOrderService(OrderServicePort):
    """Fake Order Service that always succeeds by default."""

    def __init__(self):
        self.orders: Dict[str, Dict[str, Any]] = {}
        self.fulfillment_calls: List[Dict[str, Any]] = []
        self.shipment_calls: List[Dict[str, Any]] = []
        self.delivery_calls: List[Dict[str, Any]] = []
        self.promotion_calls: List[Dict[str, Any]] = []
        self.should_succeed = True
        self.failure_reason = "Order Service unavailable"

    def configure(self, should_succeed: bool = True, failure_reason: str = "Order Service unavailable"):
        """Configure the fake behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def add_order(
        self,
        order_id: str,
        display_id: int,
        items: List[Dict[str, Any]],
        *,
        first_name: Optional[str] = None,
        phone: Optional[str] = None,
        fulfillment_status: str = "not_fulfilled",
    ) -> Dict[str, Any]:
        order = {
            "id": order_id,
            "display_id": display_id,
            "currency_code": "ars",
            "fulfillment_status": fulfillment_status,
            "items": deepcopy(items),
            "fulfillments": [],
            "shipping_address": {"first_name": first_name, "phone": phone},
            "customer": {"first_name": first_name},
        }
        self.orders[order_id] = order
        return order

    def _check(self, endpoint: str) -> None:
        if not self.should_succeed:
            raise OrderServiceError(self.failure_reason, status=503, endpoint=endpoint)

    def _order(self, order_id: str) -> Dict[str, Any]:
        order = self.orders.get(order_id)
        if order is None:
            raise OrderServiceError(
                "404 Not Found", status=404, endpoint=f"/admin/orders/{order_id}"
            )
        return order

    def _fulfillment(self, order: Dict[str, Any], fulfillment_id: str) -> Dict[str, Any]:
        for fulfillment in order["fulfillments"]:
            if fulfillment["id"] == fulfillment_id:
                return fulfillment
        raise OrderServiceError(
            "404 Not Found",
            status=404,
            endpoint=f"/admin/orders/{order['id']}/fulfillments/{fulfillment_id}",
        )

    def get_order(self, order_id: str) -> Dict[str, Any]:
        self._check(f"/admin/orders/{order_id}")
        return deepcopy(self._order(order_id))

    def create_fulfillment(self, order_id: str, items: List[Dict[str, Any]]) -> Dict[str, Any]:
        self._check(f"/admin/orders/{order_id}/fulfillments")
        order = self._order(order_id)
        fulfillment = {
            "id": f"ful_{uuid4().hex[:12]}",
            "items": deepcopy(items),
            "shipped_at": None,
            "delivered_at": None,
        }
        order["fulfillments"].append(fulfillment)
        order["fulfillment_status"] = "fulfilled"
        self.fulfillment_calls.append({"order_id": order_id, "items": deepcopy(items)})
        return {"id": fulfillment["id"]}

    def create_shipment(self, order_id: str, fulfillment_id: str) -> None:
        self._check(f"/admin/orders/{order_id}/fulfillments/{fulfillment_id}/shipments")
        order = self._order(order_id)
        self._fulfillment(order, fulfillment_id)["shipped_at"] = "now"
        order["fulfillment_status"] = "shipped"
        self.shipment_calls.append({"order_id": order_id, "fulfillment_id": fulfillment_id})

    def mark_fulfillment_delivered(self, order_id: str, fulfillment_id: str) -> None:
        self._check(f"/admin/orders/{order_id}/fulfillments/{fulfillment_id}/mark-as-delivered")
        order = self._order(order_id)
        self._fulfillment(order, fulfillment_id)["delivered_at"] = "now"
        order["fulfillment_status"] = "delivered"
        self.delivery_calls.append({"order_id": order_id, "fulfillment_id": fulfillment_id})

    def create_promotion(
        self,
        code: str,
        fixed_value: int,
        currency: str,
        order_id: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        self._check("/admin/promotions")
        promotion_id = f"promo_{uuid4().hex[:12]}"
        self.promotion_calls.append({
            "id": promotion_id,
            "code": code,
            "fixed_value": fixed_value,
            "currency": currency,
            "order_id": order_id,
            "metadata": metadata or {},
        })
        return {"id": promotion_id, "code": code}
