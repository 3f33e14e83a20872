"""
Schemas for faltante (shortfall) reconciliation and dispatch.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from pickops.schemas.common import PaginationMeta
from pickops.schemas.picking import SessionResponse


class ResolveRequest(BaseModel):
    """Record how a shortfall is handled: voucher, waiting or resolved."""
    resolution: str = Field(..., description="voucher, waiting or resolved")
    notes: Optional[str] = Field(None, max_length=1000)
    user_name: Optional[str] = Field(None, max_length=100)


class VoucherRequest(BaseModel):
    value: Decimal = Field(..., gt=0, description="Compensation amount, rounded to whole units")
    notes: Optional[str] = Field(None, max_length=1000)
    user_name: Optional[str] = Field(None, max_length=100)


class ReceiveRequest(BaseModel):
    """One scanned unit of previously missing stock."""
    line_item_id: Optional[str] = None
    barcode: Optional[str] = None
    sku: Optional[str] = None
    user_name: Optional[str] = Field(None, max_length=100)

    @model_validator(mode="after")
    def check_target(self):
        if not (self.line_item_id or self.barcode or self.sku):
            raise ValueError("line_item_id, barcode or sku is required")
        return self


class MissingItemResponse(BaseModel):
    line_item_id: str
    sku: str = ""
    barcode: str = ""
    quantity_required: int
    quantity_picked: int
    quantity_missing: int
    quantity_received: int


class ResolveResponse(BaseModel):
    success: bool = True
    message: str
    resolution: str
    fulfillment_created: bool
    fulfillment_error: Optional[str] = None
    session: SessionResponse


class CustomerContact(BaseModel):
    name: str = ""
    phone: str = ""


class VoucherResponse(BaseModel):
    success: bool = True
    code: str
    value: int
    promotion_id: Optional[str] = None
    customer: CustomerContact
    order_display_id: int
    fulfillment_created: bool
    fulfillment_error: Optional[str] = None


class OutstandingResponse(BaseModel):
    order_id: str
    order_display_id: int
    faltante_resolution: Optional[str] = None
    missing_items: List[MissingItemResponse]


class ReceiveResponse(BaseModel):
    success: bool = True
    matched: MissingItemResponse
    all_received: bool
    fulfillment_created: bool
    fulfillment_error: Optional[str] = None
    missing_items: List[MissingItemResponse]


class UnresolvedItem(BaseModel):
    order_id: str
    order_display_id: int
    user_name: str
    completed_at: Optional[datetime] = None
    faltante_resolution: str
    faltante_notes: Optional[str] = None
    total_missing: int
    total_received: int
    missing_items: List[MissingItemResponse]


class UnresolvedListResponse(BaseModel):
    items: List[UnresolvedItem]
    pagination: PaginationMeta


# ============================================================================
# Dispatch
# ============================================================================

class DispatchRequest(BaseModel):
    order_display_id: Optional[int] = Field(None, ge=0)
    user_name: Optional[str] = Field(None, max_length=100)


class DispatchResponse(BaseModel):
    success: bool = True
    order_id: str
    fulfillment_ids: List[str]
