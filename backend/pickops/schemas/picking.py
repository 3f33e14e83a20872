"""
Schemas for picking sessions.
"""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from pickops.schemas.common import PaginationMeta


# ============================================================================
# Requests
# ============================================================================

class PickingItemIn(BaseModel):
    """One line of the order snapshot taken at session start."""
    line_item_id: str = Field(..., min_length=1, max_length=64)
    variant_id: Optional[str] = Field(None, max_length=64)
    sku: Optional[str] = Field(None, max_length=100)
    barcode: Optional[str] = Field(None, max_length=100)
    quantity_required: int = Field(..., ge=0, description="Units the order asks for")


class StartSessionRequest(BaseModel):
    """Request to start (or resume) picking an order."""
    user_id: int = Field(..., description="Picker starting the session")
    order_display_id: int = Field(default=0, ge=0, description="Human order number")
    items: List[PickingItemIn] = Field(default_factory=list)


class PickRequest(BaseModel):
    """Count one unit as picked, by line item or by scanned barcode."""
    line_item_id: Optional[str] = None
    barcode: Optional[str] = None
    method: Literal["manual", "barcode"] = "manual"

    @model_validator(mode="after")
    def check_target(self):
        if self.method == "barcode" and not self.barcode:
            raise ValueError("barcode is required when method is 'barcode'")
        if self.method != "barcode" and not self.line_item_id:
            raise ValueError("line_item_id is required")
        return self


class UnpickRequest(BaseModel):
    line_item_id: str = Field(..., min_length=1)


class MarkMissingRequest(BaseModel):
    """Declare how many units of a line could not be found (overwrites)."""
    line_item_id: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=0)


class CompleteSessionRequest(BaseModel):
    user_id: int


class CancelSessionRequest(BaseModel):
    reason: str = Field(..., description="Why the pick was abandoned (3+ characters)")


class PackRequest(BaseModel):
    user_id: Optional[int] = Field(None, description="Packer; defaults to the picker")


class RetryFulfillmentRequest(BaseModel):
    user_name: str = Field(default="operator", min_length=1, max_length=100)


# ============================================================================
# Responses
# ============================================================================

class PickingItemResponse(BaseModel):
    line_item_id: str
    variant_id: Optional[str] = None
    sku: Optional[str] = None
    barcode: Optional[str] = None
    quantity_required: int
    quantity_picked: int
    quantity_missing: int
    quantity_received: int
    picked_at: Optional[datetime] = None
    scan_method: Optional[str] = None

    class Config:
        from_attributes = True


class FulfillmentInfo(BaseModel):
    """Durable outcome of the fulfillment submission."""
    status: str
    kind: Optional[str] = None
    lines: Optional[List[dict]] = None
    attempts: int = 0
    attempted_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    error: Optional[str] = None
    remote_id: Optional[str] = None


class SessionResponse(BaseModel):
    """Picking session with derived totals."""
    id: int
    order_id: str
    order_display_id: int
    status: str

    started_at: datetime
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    duration_seconds: Optional[int] = None

    user_id: int
    user_name: str
    completed_by_name: Optional[str] = None

    packed: bool = False
    packed_at: Optional[datetime] = None
    packed_by_name: Optional[str] = None

    faltante_resolution: Optional[str] = None
    faltante_resolved_at: Optional[datetime] = None
    faltante_notes: Optional[str] = None

    fulfillment: FulfillmentInfo
    items: List[PickingItemResponse]

    # Derived
    total_required: int
    total_picked: int
    total_missing: int
    total_received: int
    is_complete: bool
    progress_percent: int
    elapsed_seconds: int

    version: int


class PickResponse(BaseModel):
    item: PickingItemResponse
    session: SessionResponse


class CompleteSessionResponse(BaseModel):
    success: bool = True
    message: str
    session: SessionResponse
    duration_seconds: int
    duration_formatted: str
    fulfillment_created: bool
    fulfillment_error: Optional[str] = None
    missing_items: List[PickingItemResponse]


class RetryFulfillmentResponse(BaseModel):
    order_id: str
    submitted: bool
    attempts: int
    remote_id: Optional[str] = None
    error: Optional[str] = None


class FailedFulfillmentItem(BaseModel):
    session_id: int
    order_id: str
    order_display_id: int
    completed_at: Optional[datetime] = None
    fulfillment: FulfillmentInfo


class FailedFulfillmentListResponse(BaseModel):
    items: List[FailedFulfillmentItem]


class HistorySessionItem(BaseModel):
    id: int
    order_id: str
    order_display_id: int
    status: str
    user_id: int
    user_name: str
    completed_by_name: Optional[str] = None
    started_at: datetime
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    duration_seconds: Optional[int] = None
    total_required: int
    total_picked: int
    total_missing: int
    faltante_resolution: Optional[str] = None
    fulfillment_status: str


class TodayStatsResponse(BaseModel):
    completed_count: int
    avg_duration_seconds: int
    total_items_picked: int


class HistoryResponse(BaseModel):
    sessions: List[HistorySessionItem]
    pagination: PaginationMeta
    today_stats: TodayStatsResponse
