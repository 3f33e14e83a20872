"""
API endpoints for the picking user directory and the audit log.
"""
from datetime import date, datetime, time
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from pickops.api.v1.deps import Pagination
from pickops.db.session import get_db
from pickops.schemas.common import PaginationMeta
from pickops.schemas.users import (
    AuditListResponse,
    AuditLogResponse,
    UserCreate,
    UserListResponse,
    UserResponse,
    UserUpdate,
)
from pickops.services import user_directory
from pickops.services.audit_service import query_audit

router = APIRouter()


@router.get("/users", response_model=UserListResponse, summary="List picking users")
def list_users(
    include_inactive: bool = Query(False, alias="all"),
    db: Session = Depends(get_db),
):
    users = user_directory.list_users(db, include_inactive=include_inactive)
    return UserListResponse(users=[UserResponse.model_validate(u) for u in users])


@router.post(
    "/users",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a picking user",
)
def create_user(request: UserCreate, db: Session = Depends(get_db)):
    user = user_directory.create_user(db, request.name, request.role)
    db.commit()
    db.refresh(user)
    return UserResponse.model_validate(user)


@router.patch("/users/{user_id}", response_model=UserResponse, summary="Update a picking user")
def update_user(user_id: int, request: UserUpdate, db: Session = Depends(get_db)):
    user = user_directory.update_user(
        db,
        user_id,
        name=request.name,
        role=request.role,
        active=request.active,
    )
    db.commit()
    db.refresh(user)
    return UserResponse.model_validate(user)


@router.get("/audit", response_model=AuditListResponse, summary="Query the audit log")
def get_audit_log(
    pagination: Pagination,
    action: Optional[str] = Query(None),
    user_name: Optional[str] = Query(None, description="Case-insensitive contains"),
    order_id: Optional[str] = Query(None),
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
    db: Session = Depends(get_db),
):
    entries, total = query_audit(
        db,
        action=action,
        user_name=user_name,
        order_id=order_id,
        date_from=datetime.combine(date_from, time.min) if date_from else None,
        date_to=datetime.combine(date_to, time.max) if date_to else None,
        offset=pagination.offset,
        limit=pagination.limit,
    )
    logs = [
        AuditLogResponse(
            id=e.id,
            action=e.action,
            user_name=e.user_name,
            user_id=e.user_id,
            order_id=e.order_id,
            order_display_id=e.order_display_id,
            details=e.details,
            metadata=e.metadata_json,
            created_at=e.created_at,
        )
        for e in entries
    ]
    return AuditListResponse(
        logs=logs,
        pagination=PaginationMeta(
            total=total,
            offset=pagination.offset,
            limit=pagination.limit,
            returned=len(logs),
        ),
    )
