"""
Unit tests for LineItemProgress

Covers the quantity invariants checked at construction and every transition:
pick, unpick, overwrite-missing and receive.
"""
import pytest
from datetime import datetime

from pickops.exceptions import InvalidStateError, ValidationError
from pickops.services.line_items import LineItemProgress

NOW = datetime(2026, 3, 2, 10, 0, 0)


def make(required=3, picked=0, missing=0, received=0, **kwargs):
    return LineItemProgress(
        line_item_id=kwargs.pop("line_item_id", "item_A"),
        quantity_required=required,
        quantity_picked=picked,
        quantity_missing=missing,
        quantity_received=received,
        **kwargs
    )


class TestInvariants:

    def test_valid_value(self):
        value = make(required=3, picked=1, missing=2, received=1)
        assert value.remaining == 2
        assert value.is_complete is True
        assert value.outstanding_receipt == 1

    def test_rejects_missing_line_item_id(self):
        with pytest.raises(ValidationError):
            make(line_item_id="")

    def test_rejects_negative_required(self):
        with pytest.raises(ValidationError):
            make(required=-1)

    def test_rejects_picked_above_required(self):
        with pytest.raises(ValidationError) as exc:
            make(required=2, picked=3)
        assert exc.value.details["field"] == "quantity_picked"

    def test_rejects_missing_above_remaining(self):
        with pytest.raises(ValidationError) as exc:
            make(required=3, picked=2, missing=2)
        assert exc.value.details["field"] == "quantity_missing"

    def test_rejects_received_above_missing(self):
        with pytest.raises(ValidationError) as exc:
            make(required=3, missing=1, received=2)
        assert exc.value.details["field"] == "quantity_received"

    def test_rejects_unknown_scan_method(self):
        with pytest.raises(ValidationError):
            make(scan_method="telepathy")

    def test_zero_required_is_complete(self):
        assert make(required=0).is_complete is True


class TestPick:

    def test_pick_increments_and_stamps(self):
        value = make(required=3).pick("barcode", NOW)
        assert value.quantity_picked == 1
        assert value.picked_at == NOW
        assert value.scan_method == "barcode"

    def test_pick_returns_new_value(self):
        original = make(required=3)
        original.pick("manual", NOW)
        assert original.quantity_picked == 0

    def test_pick_fully_picked_item_fails(self):
        with pytest.raises(InvalidStateError):
            make(required=2, picked=2).pick("manual", NOW)

    def test_pick_reduces_missing_that_no_longer_fits(self):
        """A unit that turned up after being declared missing is no longer missing."""
        value = make(required=2, missing=2, received=2).pick("manual", NOW)
        assert value.quantity_picked == 1
        assert value.quantity_missing == 1
        assert value.quantity_received == 1

    def test_pick_then_unpick_restores_picked(self):
        value = make(required=3, picked=1)
        assert value.pick("manual", NOW).unpick().quantity_picked == 1


class TestUnpick:

    def test_unpick_at_zero_fails(self):
        with pytest.raises(InvalidStateError):
            make(required=3).unpick()

    def test_unpick_decrements(self):
        assert make(required=3, picked=2).unpick().quantity_picked == 1


class TestWithMissing:

    def test_overwrites_instead_of_accumulating(self):
        value = make(required=5).with_missing(2).with_missing(1)
        assert value.quantity_missing == 1

    def test_clamps_to_remaining(self):
        value = make(required=3, picked=2).with_missing(5)
        assert value.quantity_missing == 1

    def test_zero_clears_missing(self):
        assert make(required=3, missing=2).with_missing(0).quantity_missing == 0

    def test_lowering_missing_clamps_received(self):
        value = make(required=3, missing=2, received=2).with_missing(1)
        assert value.quantity_received == 1

    def test_negative_rejected(self):
        with pytest.raises(ValidationError):
            make(required=3).with_missing(-1)


class TestReceive:

    def test_receive_increments(self):
        assert make(required=3, picked=1, missing=2).receive().quantity_received == 1

    def test_receive_without_missing_fails(self):
        with pytest.raises(InvalidStateError):
            make(required=3, picked=3).receive()

    def test_receive_when_fully_received_fails(self):
        with pytest.raises(InvalidStateError):
            make(required=3, missing=1, received=1).receive()


class TestRowMapping:

    def test_apply_to_wrong_row_fails(self):
        class Row:
            line_item_id = "item_B"

        with pytest.raises(ValueError):
            make().apply_to(Row())

    def test_from_row_and_back(self):
        class Row:
            line_item_id = "item_A"
            variant_id = "variant_A"
            sku = "A"
            barcode = "BC-A"
            quantity_required = 3
            quantity_picked = None
            quantity_missing = 1
            quantity_received = 0
            picked_at = None
            scan_method = None

        row = Row()
        value = LineItemProgress.from_row(row)
        assert value.quantity_picked == 0

        value.pick("manual", NOW).apply_to(row)
        assert row.quantity_picked == 1
        assert row.quantity_missing == 1
        assert row.scan_method == "manual"
