"""
Tests for the /picking session endpoints

Start, progress, complete, cancel, pack, fulfillment retry and history
through the HTTP layer, with the fake Order Service behind it.
"""
import pytest

from tests.factories import order_items, reset_sequences, seed_remote_order

BASE = "/api/v1/picking"


def start(client, user_id, order_id="order_1", items=None, display_id=1001):
    return client.post(
        f"{BASE}/sessions/{order_id}",
        json={
            "user_id": user_id,
            "order_display_id": display_id,
            "items": items if items is not None else order_items(("A", 3), ("B", 2)),
        },
    )


def pick(client, line_item_id, order_id="order_1", times=1):
    response = None
    for _ in range(times):
        response = client.post(f"{BASE}/sessions/{order_id}/pick", json={"line_item_id": line_item_id})
        assert response.status_code == 200, response.json()
    return response


class TestStartSessionEndpoint:

    @pytest.fixture(autouse=True)
    def setup(self, db_session):
        reset_sequences()

    def test_start_returns_201_then_200(self, client, picker):
        first = start(client, picker.id)
        assert first.status_code == 201
        data = first.json()
        assert data["status"] == "in_progress"
        assert data["user_name"] == "Lucia"
        assert data["total_required"] == 5
        assert data["progress_percent"] == 0
        assert data["fulfillment"]["status"] == "none"

        second = start(client, picker.id)
        assert second.status_code == 200
        assert second.json()["id"] == data["id"]

    def test_unknown_user(self, client):
        response = start(client, 999)
        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    def test_inactive_user(self, client, inactive_user):
        response = start(client, inactive_user.id)
        assert response.status_code == 401
        assert response.json()["error"] == "AUTHENTICATION_ERROR"

    def test_malformed_items(self, client, picker):
        response = start(client, picker.id, items=[{"line_item_id": "item_A", "quantity_required": -1}])
        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "VALIDATION_ERROR"
        assert body["timestamp"].endswith("Z")

    def test_get_session(self, client, picker):
        start(client, picker.id)
        response = client.get(f"{BASE}/sessions/order_1")
        assert response.status_code == 200
        assert [i["line_item_id"] for i in response.json()["items"]] == ["item_A", "item_B"]

    def test_get_missing_session(self, client):
        response = client.get(f"{BASE}/sessions/order_9")
        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "NOT_FOUND"
        assert body["details"]["resource_id"] == "order_9"
        assert "timestamp" in body


class TestPickEndpoints:

    @pytest.fixture(autouse=True)
    def setup(self, client, picker):
        reset_sequences()
        start(client, picker.id)

    def test_pick_updates_progress(self, client):
        data = pick(client, "item_A").json()
        assert data["item"]["quantity_picked"] == 1
        assert data["session"]["total_picked"] == 1
        assert data["session"]["progress_percent"] == 20

    def test_pick_by_barcode(self, client):
        response = client.post(
            f"{BASE}/sessions/order_1/pick", json={"barcode": "BC-B", "method": "barcode"}
        )
        assert response.status_code == 200
        assert response.json()["item"]["line_item_id"] == "item_B"

    def test_barcode_method_requires_barcode(self, client):
        response = client.post(f"{BASE}/sessions/order_1/pick", json={"method": "barcode"})
        assert response.status_code == 422

    def test_unknown_barcode(self, client):
        response = client.post(
            f"{BASE}/sessions/order_1/pick", json={"barcode": "BC-Z", "method": "barcode"}
        )
        assert response.status_code == 400
        assert response.json()["details"]["outstanding_barcodes"] == ["BC-A", "BC-B"]

    def test_pick_beyond_required(self, client):
        pick(client, "item_B", times=2)
        response = client.post(f"{BASE}/sessions/order_1/pick", json={"line_item_id": "item_B"})
        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_STATE"

    def test_unpick(self, client):
        pick(client, "item_A")
        response = client.post(f"{BASE}/sessions/order_1/unpick", json={"line_item_id": "item_A"})
        assert response.status_code == 200
        assert response.json()["item"]["quantity_picked"] == 0

    def test_mark_missing(self, client):
        response = client.post(
            f"{BASE}/sessions/order_1/missing", json={"line_item_id": "item_B", "quantity": 5}
        )
        assert response.status_code == 200
        assert response.json()["item"]["quantity_missing"] == 2

    def test_mark_missing_negative(self, client):
        response = client.post(
            f"{BASE}/sessions/order_1/missing", json={"line_item_id": "item_B", "quantity": -1}
        )
        assert response.status_code == 422


class TestCompleteEndpoint:

    @pytest.fixture(autouse=True)
    def setup(self, client, fake_order_service, picker):
        reset_sequences()
        self.picker = picker
        seed_remote_order(fake_order_service, "order_1", 1001, order_items(("A", 3), ("B", 2)))
        start(client, picker.id)

    def test_incomplete(self, client):
        pick(client, "item_A")
        response = client.post(f"{BASE}/sessions/order_1/complete", json={"user_id": self.picker.id})
        assert response.status_code == 400
        assert len(response.json()["details"]["incomplete_items"]) == 2

    def test_complete_creates_fulfillment(self, client, fake_order_service):
        pick(client, "item_A", times=3)
        pick(client, "item_B", times=2)

        response = client.post(f"{BASE}/sessions/order_1/complete", json={"user_id": self.picker.id})
        assert response.status_code == 200
        data = response.json()
        assert data["fulfillment_created"] is True
        assert data["message"] == "Picking completed and order marked as prepared"
        assert data["session"]["status"] == "completed"
        assert data["session"]["fulfillment"]["status"] == "submitted"
        assert data["missing_items"] == []
        assert len(fake_order_service.fulfillment_calls) == 1

        assert client.get(f"{BASE}/sessions/order_1").status_code == 404
        completed = client.get(f"{BASE}/sessions/order_1", params={"include_completed": True})
        assert completed.json()["status"] == "completed"

    def test_complete_with_missing(self, client, fake_order_service):
        pick(client, "item_A", times=3)
        pick(client, "item_B")
        client.post(f"{BASE}/sessions/order_1/missing", json={"line_item_id": "item_B", "quantity": 1})

        data = client.post(f"{BASE}/sessions/order_1/complete", json={"user_id": self.picker.id}).json()
        assert data["fulfillment_created"] is False
        assert data["session"]["faltante_resolution"] == "pending"
        assert data["session"]["total_missing"] == 1
        assert [i["line_item_id"] for i in data["missing_items"]] == ["item_B"]
        assert fake_order_service.fulfillment_calls == []

    def test_failed_fulfillment_then_retry(self, client, fake_order_service):
        pick(client, "item_A", times=3)
        pick(client, "item_B", times=2)
        fake_order_service.configure(should_succeed=False)

        data = client.post(f"{BASE}/sessions/order_1/complete", json={"user_id": self.picker.id}).json()
        assert data["session"]["status"] == "completed"
        assert data["fulfillment_created"] is False
        assert data["fulfillment_error"]
        assert data["message"] == "Picking completed but the Order Service could not be updated"

        failed = client.get(f"{BASE}/fulfillments/failed").json()["items"]
        assert [f["order_id"] for f in failed] == ["order_1"]
        assert failed[0]["fulfillment"]["attempts"] == 1

        fake_order_service.configure(should_succeed=True)
        retry = client.post(f"{BASE}/sessions/order_1/fulfillment/retry", json={"user_name": "Marcos"})
        assert retry.status_code == 200
        assert retry.json()["submitted"] is True
        assert retry.json()["attempts"] == 2

        assert client.get(f"{BASE}/fulfillments/failed").json()["items"] == []

    def test_retry_without_failure(self, client):
        pick(client, "item_A", times=3)
        pick(client, "item_B", times=2)
        client.post(f"{BASE}/sessions/order_1/complete", json={"user_id": self.picker.id})

        response = client.post(f"{BASE}/sessions/order_1/fulfillment/retry")
        assert response.status_code == 400

    def test_pack(self, client):
        pick(client, "item_A", times=3)
        pick(client, "item_B", times=2)
        client.post(f"{BASE}/sessions/order_1/complete", json={"user_id": self.picker.id})

        response = client.post(f"{BASE}/sessions/order_1/pack")
        assert response.status_code == 200
        assert response.json()["packed"] is True
        assert response.json()["packed_by_name"] == "Lucia"

        assert client.post(f"{BASE}/sessions/order_1/pack").status_code == 400


class TestCancelAndHistory:

    @pytest.fixture(autouse=True)
    def setup(self, client, picker):
        reset_sequences()
        self.picker = picker
        start(client, picker.id)

    def test_cancel_requires_reason(self, client):
        response = client.post(f"{BASE}/sessions/order_1/cancel", json={"reason": "x"})
        assert response.status_code == 400
        assert response.json()["details"]["field"] == "reason"

    def test_cancel(self, client):
        response = client.post(f"{BASE}/sessions/order_1/cancel", json={"reason": "Customer called"})
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        assert client.get(f"{BASE}/sessions/order_1").status_code == 404

    def test_history(self, client):
        client.post(f"{BASE}/sessions/order_1/cancel", json={"reason": "Customer called"})

        response = client.get(f"{BASE}/history")
        assert response.status_code == 200
        data = response.json()
        assert data["pagination"]["total"] == 1
        assert data["sessions"][0]["status"] == "cancelled"
        assert data["sessions"][0]["cancel_reason"] == "Customer called"
        assert data["today_stats"]["completed_count"] == 0

    def test_history_date_filter(self, client):
        client.post(f"{BASE}/sessions/order_1/cancel", json={"reason": "Customer called"})
        response = client.get(f"{BASE}/history", params={"from": "2000-01-01", "to": "2000-01-31"})
        assert response.json()["pagination"]["total"] == 0

    def test_history_filter_by_user(self, client):
        client.post(f"{BASE}/sessions/order_1/cancel", json={"reason": "Customer called"})
        response = client.get(f"{BASE}/history", params={"user_id": self.picker.id + 1})
        assert response.json()["sessions"] == []
