"""
Line item progress value type.

Every quantity change on a picking item goes through LineItemProgress: each
transition returns a new value, validated in __post_init__, which is then
written back onto the ORM row at the same position.

    0 <= picked <= required
    0 <= missing <= required - picked
    0 <= received <= missing
"""
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

from pickops.exceptions import InvalidStateError, ValidationError

SCAN_METHODS = ("manual", "barcode")


@dataclass(frozen=True)
class LineItemProgress:
    line_item_id: str
    quantity_required: int
    quantity_picked: int = 0
    quantity_missing: int = 0
    quantity_received: int = 0
    variant_id: Optional[str] = None
    sku: Optional[str] = None
    barcode: Optional[str] = None
    picked_at: Optional[datetime] = None
    scan_method: Optional[str] = None

    def __post_init__(self):
        if not self.line_item_id:
            raise ValidationError("line_item_id is required", field="line_item_id")
        if self.quantity_required < 0:
            raise ValidationError(
                "quantity_required must be >= 0",
                field="quantity_required",
                value=self.quantity_required,
            )
        if not 0 <= self.quantity_picked <= self.quantity_required:
            raise ValidationError(
                f"quantity_picked must be between 0 and {self.quantity_required}",
                field="quantity_picked",
                value=self.quantity_picked,
            )
        if not 0 <= self.quantity_missing <= self.remaining:
            raise ValidationError(
                f"quantity_missing must be between 0 and {self.remaining}",
                field="quantity_missing",
                value=self.quantity_missing,
            )
        if not 0 <= self.quantity_received <= self.quantity_missing:
            raise ValidationError(
                f"quantity_received must be between 0 and {self.quantity_missing}",
                field="quantity_received",
                value=self.quantity_received,
            )
        if self.scan_method is not None and self.scan_method not in SCAN_METHODS:
            raise ValidationError("Invalid scan method", field="scan_method", value=self.scan_method)

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def remaining(self) -> int:
        """Units neither picked yet; the ceiling for quantity_missing."""
        return self.quantity_required - self.quantity_picked

    @property
    def is_complete(self) -> bool:
        """Every required unit is either picked or declared missing."""
        return self.quantity_picked + self.quantity_missing >= self.quantity_required

    @property
    def outstanding_receipt(self) -> int:
        return self.quantity_missing - self.quantity_received

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def pick(self, method: str, at: datetime) -> "LineItemProgress":
        if self.quantity_picked >= self.quantity_required:
            raise InvalidStateError(
                f"Item {self.line_item_id} is already complete "
                f"({self.quantity_picked}/{self.quantity_required})",
                details={"line_item_id": self.line_item_id},
            )
        picked = self.quantity_picked + 1
        # A unit that turned up is no longer missing
        missing = min(self.quantity_missing, self.quantity_required - picked)
        return replace(
            self,
            quantity_picked=picked,
            quantity_missing=missing,
            quantity_received=min(self.quantity_received, missing),
            picked_at=at,
            scan_method=method,
        )

    def unpick(self) -> "LineItemProgress":
        if self.quantity_picked <= 0:
            raise InvalidStateError(
                f"Nothing to remove from item {self.line_item_id}",
                details={"line_item_id": self.line_item_id},
            )
        return replace(self, quantity_picked=self.quantity_picked - 1)

    def with_missing(self, quantity: int) -> "LineItemProgress":
        """Overwrite (never accumulate) the missing count, clamped to what is left."""
        if quantity < 0:
            raise ValidationError("quantity must be >= 0", field="quantity", value=quantity)
        missing = min(quantity, self.remaining)
        return replace(
            self,
            quantity_missing=missing,
            quantity_received=min(self.quantity_received, missing),
        )

    def receive(self) -> "LineItemProgress":
        if self.quantity_missing == 0 or self.quantity_received >= self.quantity_missing:
            raise InvalidStateError(
                f"Item {self.line_item_id} has nothing left to receive",
                details={"line_item_id": self.line_item_id},
            )
        return replace(self, quantity_received=self.quantity_received + 1)

    # ------------------------------------------------------------------
    # ORM mapping
    # ------------------------------------------------------------------

    @classmethod
    def from_row(cls, row) -> "LineItemProgress":
        return cls(
            line_item_id=row.line_item_id,
            quantity_required=row.quantity_required,
            quantity_picked=row.quantity_picked or 0,
            quantity_missing=row.quantity_missing or 0,
            quantity_received=row.quantity_received or 0,
            variant_id=row.variant_id,
            sku=row.sku,
            barcode=row.barcode,
            picked_at=row.picked_at,
            scan_method=row.scan_method,
        )

    def apply_to(self, row) -> None:
        """Write the mutable counters back onto the row; identity fields never change."""
        if row.line_item_id != self.line_item_id:
            raise ValueError(f"Row {row.line_item_id} does not hold item {self.line_item_id}")
        row.quantity_picked = self.quantity_picked
        row.quantity_missing = self.quantity_missing
        row.quantity_received = self.quantity_received
        row.picked_at = self.picked_at
        row.scan_method = self.scan_method
