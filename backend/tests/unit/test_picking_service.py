"""
Unit tests for PickingService

Session lifecycle through the service layer against in-memory SQLite and the
fake Order Service:
1. start (get-or-create, user checks, snapshot validation)
2. pick / unpick / mark_missing
3. complete (two-phase fulfillment), cancel, pack
"""
import pytest

from pickops.exceptions import (
    AuthenticationError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from pickops.models.audit_log import AuditLog
from pickops.models.picking_session import PickingSession
from pickops.services.picking_service import format_duration, round_half_up, session_totals
from tests.factories import order_items, reset_sequences, seed_remote_order


def audit_actions(db_session, order_id):
    return [
        entry.action
        for entry in db_session.query(AuditLog)
        .filter(AuditLog.order_id == order_id)
        .order_by(AuditLog.id)
        .all()
    ]


class TestHelpers:

    def test_round_half_up(self):
        assert round_half_up(12.5) == 13
        assert round_half_up(2.5) == 3
        assert round_half_up(2.49) == 2

    def test_format_duration(self):
        assert format_duration(45) == "45s"
        assert format_duration(125) == "2m 5s"
        assert format_duration(-3) == "0s"


class TestStartSession:

    @pytest.fixture(autouse=True)
    def setup(self, db_session):
        reset_sequences()

    def test_start_creates_session(self, db_session, picking_service, picker):
        session, created = picking_service.start("order_1", picker.id, 1001, order_items(("A", 3), ("B", 2)))
        db_session.commit()

        assert created is True
        assert session.status == "in_progress"
        assert session.user_name == picker.name
        assert [i.line_item_id for i in session.items] == ["item_A", "item_B"]
        assert all(i.quantity_picked == 0 for i in session.items)
        assert audit_actions(db_session, "order_1") == ["session_start"]

    def test_start_twice_returns_existing(self, db_session, picking_service, picker, supervisor):
        first, _ = picking_service.start("order_1", picker.id, 1001, order_items(("A", 3)))
        db_session.commit()

        second, created = picking_service.start("order_1", supervisor.id, 1001, order_items(("A", 9)))

        assert created is False
        assert second.id == first.id
        assert second.user_name == picker.name
        assert second.items[0].quantity_required == 3
        assert db_session.query(PickingSession).count() == 1
        assert audit_actions(db_session, "order_1") == ["session_start"]

    def test_start_unknown_user(self, picking_service):
        with pytest.raises(ValidationError):
            picking_service.start("order_1", 999, 1001, order_items(("A", 1)))

    def test_start_inactive_user(self, picking_service, inactive_user):
        with pytest.raises(AuthenticationError):
            picking_service.start("order_1", inactive_user.id, 1001, order_items(("A", 1)))

    def test_start_rejects_duplicate_line_items(self, picking_service, picker):
        items = order_items(("A", 1)) + order_items(("A", 2))
        with pytest.raises(ValidationError):
            picking_service.start("order_1", picker.id, 1001, items)

    def test_start_rejects_negative_quantity(self, picking_service, picker):
        with pytest.raises(ValidationError):
            picking_service.start("order_1", picker.id, 1001, order_items(("A", -1)))

    def test_start_after_cancel_creates_new_session(self, db_session, picking_service, picker):
        first, _ = picking_service.start("order_1", picker.id, 1001, order_items(("A", 1)))
        picking_service.cancel("order_1", "Wrong order")
        db_session.commit()

        second, created = picking_service.start("order_1", picker.id, 1001, order_items(("A", 1)))
        assert created is True
        assert second.id != first.id


class TestItemMutations:

    @pytest.fixture(autouse=True)
    def setup(self, db_session, picking_service, picker):
        reset_sequences()
        self.service = picking_service
        self.session, _ = picking_service.start(
            "order_1", picker.id, 1001, order_items(("A", 3), ("B", 2))
        )
        db_session.commit()

    def test_manual_pick(self, db_session):
        session, item = self.service.pick("order_1", line_item_id="item_A")
        db_session.commit()

        assert item.quantity_picked == 1
        assert item.scan_method == "manual"
        assert item.picked_at is not None
        assert session_totals(session).total_picked == 1
        assert "item_pick" in audit_actions(db_session, "order_1")

    def test_barcode_pick(self):
        _, item = self.service.pick("order_1", barcode="BC-B", method="barcode")
        assert item.line_item_id == "item_B"
        assert item.scan_method == "barcode"

    def test_barcode_without_match_lists_outstanding(self):
        with pytest.raises(ValidationError) as exc:
            self.service.pick("order_1", barcode="BC-Z", method="barcode")
        assert exc.value.details["outstanding_barcodes"] == ["BC-A", "BC-B"]

    def test_barcode_skips_fully_picked_item(self):
        self.service.pick("order_1", barcode="BC-B", method="barcode")
        self.service.pick("order_1", barcode="BC-B", method="barcode")
        with pytest.raises(ValidationError) as exc:
            self.service.pick("order_1", barcode="BC-B", method="barcode")
        assert exc.value.details["outstanding_barcodes"] == ["BC-A"]

    def test_manual_pick_of_complete_item_fails(self):
        self.service.pick("order_1", line_item_id="item_B")
        self.service.pick("order_1", line_item_id="item_B")
        with pytest.raises(InvalidStateError):
            self.service.pick("order_1", line_item_id="item_B")

    def test_pick_unknown_line(self):
        with pytest.raises(ValidationError):
            self.service.pick("order_1", line_item_id="item_Z")

    def test_pick_without_session(self):
        with pytest.raises(NotFoundError):
            self.service.pick("order_2", line_item_id="item_A")

    def test_pick_rejects_unknown_method(self):
        with pytest.raises(ValidationError):
            self.service.pick("order_1", line_item_id="item_A", method="voice")

    def test_unpick(self, db_session):
        self.service.pick("order_1", line_item_id="item_A")
        _, item = self.service.unpick("order_1", "item_A")
        assert item.quantity_picked == 0
        assert audit_actions(db_session, "order_1")[-1] == "item_unpick"

    def test_unpick_at_zero_fails(self):
        with pytest.raises(InvalidStateError):
            self.service.unpick("order_1", "item_A")

    def test_mark_missing_overwrites(self):
        self.service.mark_missing("order_1", "item_A", 2)
        _, item = self.service.mark_missing("order_1", "item_A", 1)
        assert item.quantity_missing == 1

    def test_mark_missing_clamps_to_remaining(self):
        self.service.pick("order_1", line_item_id="item_A")
        _, item = self.service.mark_missing("order_1", "item_A", 10)
        assert item.quantity_missing == 2

    def test_progress_counts_picked_and_missing(self):
        self.service.pick("order_1", line_item_id="item_A")
        session, _ = self.service.mark_missing("order_1", "item_B", 1)

        totals = session_totals(session)
        assert totals.total_required == 5
        assert totals.total_picked == 1
        assert totals.total_missing == 1
        assert totals.progress_percent == 40
        assert totals.is_complete is False

    def test_every_mutation_bumps_version(self, db_session):
        version = self.session.version
        self.service.pick("order_1", line_item_id="item_A")
        db_session.commit()
        assert self.session.version == version + 1


class TestProgressRounding:

    def test_half_rounds_up(self, db_session, picking_service, picker):
        picking_service.start("order_1", picker.id, 1001, order_items(("A", 8)))
        session, _ = picking_service.pick("order_1", line_item_id="item_A")
        assert session_totals(session).progress_percent == 13

    def test_empty_order_is_complete(self, db_session, picking_service, picker):
        session, _ = picking_service.start("order_1", picker.id, 1001, [])
        totals = session_totals(session)
        assert totals.progress_percent == 100
        assert totals.is_complete is True


class TestCompleteSession:

    @pytest.fixture(autouse=True)
    def setup(self, db_session, picking_service, fake_order_service, picker):
        reset_sequences()
        self.service = picking_service
        self.fake = fake_order_service
        self.picker = picker
        items = order_items(("A", 3), ("B", 2))
        seed_remote_order(fake_order_service, "order_1", 1001, items)
        picking_service.start("order_1", picker.id, 1001, items)
        db_session.commit()

    def pick_all(self):
        for _ in range(3):
            self.service.pick("order_1", line_item_id="item_A")
        for _ in range(2):
            self.service.pick("order_1", line_item_id="item_B")

    def test_incomplete_items_block_completion(self):
        self.service.pick("order_1", line_item_id="item_A")
        with pytest.raises(InvalidStateError) as exc:
            self.service.complete("order_1", self.picker.id)
        incomplete = exc.value.details["incomplete_items"]
        assert [i["line_item_id"] for i in incomplete] == ["item_A", "item_B"]

    def test_complete_submits_full_fulfillment(self, db_session):
        self.pick_all()
        result = self.service.complete("order_1", self.picker.id)
        db_session.commit()

        assert result.session.status == "completed"
        assert result.session.completed_by_name == self.picker.name
        assert result.fulfillment_created is True
        assert result.session.fulfillment_status == "submitted"
        assert result.session.fulfillment_kind == "full"
        assert result.session.fulfillment_remote_id.startswith("ful_")
        assert self.fake.fulfillment_calls == [{
            "order_id": "order_1",
            "items": [{"id": "item_A", "quantity": 3}, {"id": "item_B", "quantity": 2}],
        }]
        assert audit_actions(db_session, "order_1")[-2:] == ["session_complete", "fulfillment_create"]

    def test_remote_failure_keeps_completion(self, db_session):
        self.pick_all()
        self.fake.configure(should_succeed=False, failure_reason="Order Service down")

        result = self.service.complete("order_1", self.picker.id)
        db_session.commit()

        assert result.session.status == "completed"
        assert result.fulfillment_created is False
        assert "Order Service down" in result.fulfillment_error
        assert result.session.fulfillment_status == "failed"
        assert result.session.fulfillment_attempts == 1
        assert audit_actions(db_session, "order_1")[-1] == "fulfillment_error"

    def test_completion_with_missing_waits_for_reconciliation(self, db_session):
        for _ in range(3):
            self.service.pick("order_1", line_item_id="item_A")
        self.service.pick("order_1", line_item_id="item_B")
        self.service.mark_missing("order_1", "item_B", 1)

        result = self.service.complete("order_1", self.picker.id)

        assert result.session.faltante_resolution == "pending"
        assert result.session.fulfillment_status == "none"
        assert result.fulfillment_created is False
        assert [i.line_item_id for i in result.missing_items] == ["item_B"]
        assert self.fake.fulfillment_calls == []

    def test_complete_twice_fails(self):
        self.pick_all()
        self.service.complete("order_1", self.picker.id)
        with pytest.raises(NotFoundError):
            self.service.complete("order_1", self.picker.id)

    def test_complete_unknown_user(self):
        self.pick_all()
        with pytest.raises(ValidationError):
            self.service.complete("order_1", 999)

    def test_pack(self, db_session, supervisor):
        self.pick_all()
        self.service.complete("order_1", self.picker.id)

        session = self.service.pack("order_1", supervisor.id)
        db_session.commit()

        assert session.packed is True
        assert session.packed_by_name == supervisor.name
        with pytest.raises(InvalidStateError):
            self.service.pack("order_1")

    def test_pack_requires_completed_session(self):
        with pytest.raises(NotFoundError):
            self.service.pack("order_1")


class TestCancelSession:

    def test_short_reason_rejected(self, picking_service, picker):
        picking_service.start("order_1", picker.id, 1001, order_items(("A", 1)))
        with pytest.raises(ValidationError):
            picking_service.cancel("order_1", "  no ")

    def test_cancel(self, db_session, picking_service, picker):
        picking_service.start("order_1", picker.id, 1001, order_items(("A", 1)))
        session = picking_service.cancel("order_1", "  Customer called  ")
        db_session.commit()

        assert session.status == "cancelled"
        assert session.cancel_reason == "Customer called"
        assert session.cancelled_at is not None
        assert audit_actions(db_session, "order_1")[-1] == "session_cancel"

    def test_cancel_without_session(self, picking_service):
        with pytest.raises(NotFoundError):
            picking_service.cancel("order_1", "Nothing here")

    def test_history_lists_finished_sessions(self, db_session, picking_service, picker):
        picking_service.start("order_1", picker.id, 1001, order_items(("A", 1)))
        picking_service.cancel("order_1", "Customer called")
        picking_service.start("order_2", picker.id, 1002, order_items(("A", 1)))
        db_session.commit()

        page = picking_service.history()
        assert page.total == 1
        assert page.sessions[0].order_id == "order_1"
        assert page.today.completed_count == 0
