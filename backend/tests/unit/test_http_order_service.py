"""
Unit tests for the HTTP Order Service adapter

requests.Session is mocked; no network access.
"""
from unittest.mock import MagicMock

import pytest
import requests

from pickops.core.settings import Settings
from pickops.exceptions import OrderServiceError
from pickops.integrations.http_order_service import HttpOrderService


def make_response(status_code=200, payload=None, reason="OK"):
    response = MagicMock(spec=requests.Response)
    response.status_code = status_code
    response.ok = status_code < 400
    response.reason = reason
    response.text = "" if payload is None else str(payload)
    response.content = b"" if payload is None else b"{}"
    response.json.return_value = payload
    return response


@pytest.fixture
def http_settings():
    return Settings(
        ORDER_SERVICE_URL="http://orders.local/",
        ORDER_SERVICE_EMAIL="admin@example.com",
        ORDER_SERVICE_PASSWORD="secret",
        ORDER_SERVICE_TIMEOUT_SECONDS=5,
    )


@pytest.fixture
def http_session():
    session = MagicMock(spec=requests.Session)
    session.post.return_value = make_response(payload={"token": "tok-1"})
    return session


@pytest.fixture
def adapter(http_settings, http_session):
    return HttpOrderService(http_settings, session=http_session)


class TestAuthentication:

    def test_token_is_cached(self, adapter, http_session):
        http_session.request.return_value = make_response(payload={"order": {"id": "order_1"}})

        adapter.get_order("order_1")
        adapter.get_order("order_1")

        assert http_session.post.call_count == 1
        headers = http_session.request.call_args.kwargs["headers"]
        assert headers == {"Authorization": "Bearer tok-1"}

    def test_login_posts_credentials(self, adapter, http_session):
        http_session.request.return_value = make_response(payload={"order": {"id": "order_1"}})
        adapter.get_order("order_1")

        args, kwargs = http_session.post.call_args
        assert args[0] == "http://orders.local/auth/user/emailpass"
        assert kwargs["json"] == {"email": "admin@example.com", "password": "secret"}
        assert kwargs["timeout"] == 5

    def test_relogin_once_on_401(self, adapter, http_session):
        http_session.post.side_effect = [
            make_response(payload={"token": "tok-1"}),
            make_response(payload={"token": "tok-2"}),
        ]
        http_session.request.side_effect = [
            make_response(status_code=401, payload={}, reason="Unauthorized"),
            make_response(payload={"order": {"id": "order_1"}}),
        ]

        assert adapter.get_order("order_1") == {"id": "order_1"}
        assert http_session.post.call_count == 2
        assert http_session.request.call_args.kwargs["headers"]["Authorization"] == "Bearer tok-2"

    def test_rejected_login(self, adapter, http_session):
        http_session.post.return_value = make_response(status_code=401, payload={}, reason="Unauthorized")
        with pytest.raises(OrderServiceError) as exc:
            adapter.get_order("order_1")
        assert exc.value.details["remote_status"] == 401

    def test_login_without_token(self, adapter, http_session):
        http_session.post.return_value = make_response(payload={})
        with pytest.raises(OrderServiceError):
            adapter.get_order("order_1")


class TestRequests:

    def test_timeout_becomes_order_service_error(self, adapter, http_session):
        http_session.request.side_effect = requests.Timeout("slow")
        with pytest.raises(OrderServiceError) as exc:
            adapter.get_order("order_1")
        assert "Timed out" in exc.value.message

    def test_connection_error(self, adapter, http_session):
        http_session.request.side_effect = requests.ConnectionError("refused")
        with pytest.raises(OrderServiceError):
            adapter.create_shipment("order_1", "ful_1")

    def test_remote_error_status(self, adapter, http_session):
        http_session.request.return_value = make_response(status_code=500, payload={}, reason="Server Error")
        with pytest.raises(OrderServiceError) as exc:
            adapter.create_fulfillment("order_1", [{"id": "item_A", "quantity": 1}])
        assert exc.value.details["remote_status"] == 500
        assert exc.value.details["endpoint"] == "/admin/orders/order_1/fulfillments"

    def test_create_fulfillment_falls_back_to_order_payload(self, adapter, http_session):
        http_session.request.return_value = make_response(
            payload={"order": {"fulfillments": [{"id": "ful_old"}, {"id": "ful_new"}]}}
        )
        assert adapter.create_fulfillment("order_1", [{"id": "item_A", "quantity": 1}]) == {"id": "ful_new"}
        assert http_session.request.call_args.kwargs["json"] == {"items": [{"id": "item_A", "quantity": 1}]}

    def test_create_promotion_payload(self, adapter, http_session):
        http_session.request.return_value = make_response(
            payload={"promotion": {"id": "promo_1", "code": "VOUCHER-1-ABCDEF"}}
        )
        result = adapter.create_promotion("VOUCHER-1-ABCDEF", 5000, "ars", "order_1", metadata={"x": 1})

        assert result == {"id": "promo_1", "code": "VOUCHER-1-ABCDEF"}
        body = http_session.request.call_args.kwargs["json"]
        assert body["application_method"]["value"] == 5000
        assert body["application_method"]["type"] == "fixed"
        assert body["campaign"]["budget"] == {"type": "usage", "limit": 1}
        assert body["metadata"] == {"order_id": "order_1", "x": 1}

    def test_missing_order_in_response(self, adapter, http_session):
        http_session.request.return_value = make_response(payload={})
        with pytest.raises(OrderServiceError):
            adapter.get_order("order_1")
