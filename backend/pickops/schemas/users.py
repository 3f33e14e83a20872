"""
Schemas for the picking user directory and the audit log.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from pickops.schemas.common import PaginationMeta


class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    role: str = Field(default="picker", description="picker, supervisor or admin")


class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    role: Optional[str] = None
    active: Optional[bool] = None


class UserResponse(BaseModel):
    id: int
    name: str
    role: str
    active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UserListResponse(BaseModel):
    users: List[UserResponse]


class AuditLogResponse(BaseModel):
    id: int
    action: str
    user_name: str
    user_id: Optional[int] = None
    order_id: Optional[str] = None
    order_display_id: Optional[int] = None
    details: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: datetime


class AuditListResponse(BaseModel):
    logs: List[AuditLogResponse]
    pagination: PaginationMeta
