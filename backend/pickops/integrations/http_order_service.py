"""
HTTP Order Service adapter

Talks to a MedusaJS v2 style admin API:
- email/password login, bearer token reused for ORDER_SERVICE_TOKEN_TTL_SECONDS
- one forced re-login when a call comes back 401
- explicit timeout on every request; failures are raised as OrderServiceError
"""
import threading
import time
from typing import Any, Dict, List, Optional

import requests

from pickops.core.settings import Settings
from pickops.exceptions import OrderServiceError
from pickops.integrations.order_service_port import OrderServicePort
from pickops.logging_config import get_logger

logger = get_logger(__name__)

ORDER_FIELDS = (
    "+items.*,+items.variant.*,+fulfillments.*,"
    "+shipping_address.*,+customer.*"
)


class HttpOrderService(OrderServicePort):
    """requests-based client for the remote Order Service"""

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.base_url = settings.ORDER_SERVICE_URL
        self.email = settings.ORDER_SERVICE_EMAIL or ""
        self.password = settings.ORDER_SERVICE_PASSWORD or ""
        self.timeout = settings.ORDER_SERVICE_TIMEOUT_SECONDS
        self.token_ttl = settings.ORDER_SERVICE_TOKEN_TTL_SECONDS
        self.http = session or requests.Session()

        self._token: Optional[str] = None
        self._token_expiry: float = 0.0
        self._token_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def _login(self) -> str:
        endpoint = "/auth/user/emailpass"
        started = time.monotonic()
        try:
            response = self.http.post(
                f"{self.base_url}{endpoint}",
                json={"email": self.email, "password": self.password},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise OrderServiceError(f"Login failed: {e}", endpoint=endpoint) from e

        if not response.ok:
            logger.error(
                "Order Service login rejected",
                extra={"status": response.status_code, "body": response.text[:500]},
            )
            raise OrderServiceError(
                f"Login failed: {response.status_code} {response.reason}",
                status=response.status_code,
                endpoint=endpoint,
            )

        try:
            token = response.json().get("token")
        except ValueError as e:
            raise OrderServiceError("Login response was not valid JSON", endpoint=endpoint) from e
        if not token:
            raise OrderServiceError("Login response did not include a token", endpoint=endpoint)

        logger.info(
            "Order Service login ok",
            extra={"elapsed_ms": round((time.monotonic() - started) * 1000)},
        )
        return token

    def _get_token(self, force_refresh: bool = False) -> str:
        with self._token_lock:
            if not force_refresh and self._token and time.monotonic() < self._token_expiry:
                return self._token
            self._token = self._login()
            self._token_expiry = time.monotonic() + self.token_ttl
            return self._token

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _send(self, method: str, endpoint: str, token: str, body: Any = None) -> requests.Response:
        try:
            return self.http.request(
                method,
                f"{self.base_url}{endpoint}",
                json=body,
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise OrderServiceError(
                f"Timed out after {self.timeout}s", endpoint=endpoint
            ) from e
        except requests.RequestException as e:
            raise OrderServiceError(f"Request failed: {e}", endpoint=endpoint) from e

    def request(self, method: str, endpoint: str, body: Any = None) -> Dict[str, Any]:
        started = time.monotonic()
        response = self._send(method, endpoint, self._get_token(), body)

        if response.status_code == 401:
            logger.info("Order Service token rejected, logging in again", extra={"endpoint": endpoint})
            response = self._send(method, endpoint, self._get_token(force_refresh=True), body)

        if not response.ok:
            logger.error(
                "Order Service call failed",
                extra={
                    "method": method,
                    "endpoint": endpoint,
                    "status": response.status_code,
                    "body": response.text[:500],
                },
            )
            raise OrderServiceError(
                f"{response.status_code} {response.reason}",
                status=response.status_code,
                endpoint=endpoint,
            )

        logger.debug(
            "Order Service call ok",
            extra={
                "method": method,
                "endpoint": endpoint,
                "elapsed_ms": round((time.monotonic() - started) * 1000),
            },
        )
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise OrderServiceError(
                "Response was not valid JSON", status=response.status_code, endpoint=endpoint
            ) from e

    # ------------------------------------------------------------------
    # OrderServicePort
    # ------------------------------------------------------------------

    def get_order(self, order_id: str) -> Dict[str, Any]:
        data = self.request("GET", f"/admin/orders/{order_id}?fields={ORDER_FIELDS}")
        order = data.get("order")
        if not order:
            raise OrderServiceError(f"Order {order_id} missing from response")
        return order

    def create_fulfillment(self, order_id: str, items: List[Dict[str, Any]]) -> Dict[str, Any]:
        data = self.request(
            "POST",
            f"/admin/orders/{order_id}/fulfillments",
            body={"items": items},
        )
        fulfillment = data.get("fulfillment") or {}
        fulfillment_id = fulfillment.get("id")
        if not fulfillment_id:
            # v2 answers with the updated order; the newest fulfillment is ours
            fulfillments = (data.get("order") or {}).get("fulfillments") or []
            if fulfillments:
                fulfillment_id = fulfillments[-1].get("id")
        return {"id": fulfillment_id}

    def mark_fulfillment_delivered(self, order_id: str, fulfillment_id: str) -> None:
        self.request(
            "POST",
            f"/admin/orders/{order_id}/fulfillments/{fulfillment_id}/mark-as-delivered",
            body={},
        )

    def create_shipment(self, order_id: str, fulfillment_id: str) -> None:
        self.request(
            "POST",
            f"/admin/orders/{order_id}/fulfillments/{fulfillment_id}/shipments",
            body={},
        )

    def create_promotion(
        self,
        code: str,
        fixed_value: int,
        currency: str,
        order_id: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        data = self.request(
            "POST",
            "/admin/promotions",
            body={
                "code": code,
                "type": "standard",
                "status": "active",
                "is_automatic": False,
                "application_method": {
                    "type": "fixed",
                    "target_type": "order",
                    "value": fixed_value,
                    "currency_code": currency,
                },
                # Single use: a usage budget of one on its own campaign
                "campaign": {
                    "name": code,
                    "campaign_identifier": code,
                    "budget": {"type": "usage", "limit": 1},
                },
                "metadata": {"order_id": order_id, **(metadata or {})},
            },
        )
        promotion = data.get("promotion") or {}
        return {"id": promotion.get("id"), "code": promotion.get("code", code)}
