"""
Order Service port - abstract interface for the remote fulfillment system.

The picking and reconciliation services program against this port; the HTTP
adapter (Medusa-style admin API) or the in-memory fake is selected through
configuration.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


class OrderServicePort(ABC):
    """Abstract interface for Order Service adapters.

    Every method raises ``pickops.exceptions.OrderServiceError`` on transport
    or remote failure.
    """

    @abstractmethod
    def get_order(self, order_id: str) -> Dict[str, Any]:
        """Fetch an order.

        Returns:
            dict with at least: id, display_id, items (list of {id, quantity, ...}),
            fulfillments (list of {id, shipped_at, delivered_at}),
            fulfillment_status, currency_code, shipping_address, customer
        """
        ...

    @abstractmethod
    def create_fulfillment(self, order_id: str, items: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Create a fulfillment for ``[{"id": remote_item_id, "quantity": n}]``.

        Returns:
            dict with key: id (fulfillment id, may be None if the remote omits it)
        """
        ...

    @abstractmethod
    def mark_fulfillment_delivered(self, order_id: str, fulfillment_id: str) -> None:
        ...

    @abstractmethod
    def create_shipment(self, order_id: str, fulfillment_id: str) -> None:
        ...

    @abstractmethod
    def create_promotion(
        self,
        code: str,
        fixed_value: int,
        currency: str,
        order_id: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Create a fixed-value, single-use promotion code.

        Returns:
            dict with keys: id, code
        """
        ...
