"""Order Service adapters - pluggable remote fulfillment integration."""
from typing import Optional

from pickops.core.settings import Settings, get_settings
from pickops.integrations.order_service_port import OrderServicePort

_order_service_instance: Optional[OrderServicePort] = None


def get_order_service(settings: Optional[Settings] = None) -> OrderServicePort:
    """Return the configured Order Service adapter (singleton).

    Selected by ORDER_SERVICE_BACKEND: "http" talks to the real admin API,
    "fake" keeps everything in memory.
    """
    global _order_service_instance
    if _order_service_instance is None:
        settings = settings or get_settings()
        if settings.ORDER_SERVICE_BACKEND == "fake":
            from pickops.integrations.fake_order_service import FakeOrderService

            _order_service_instance = FakeOrderService()
        elif settings.ORDER_SERVICE_BACKEND == "http":
            from pickops.integrations.http_order_service import HttpOrderService

            _order_service_instance = HttpOrderService(settings)
        else:
            raise ValueError(f"Unknown Order Service backend: {settings.ORDER_SERVICE_BACKEND}")
    return _order_service_instance


def reset_order_service() -> None:
    """Reset the adapter singleton (useful for testing)."""
    global _order_service_instance
    _order_service_instance = None
