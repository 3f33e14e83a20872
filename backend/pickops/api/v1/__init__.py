"""
API v1 Router - PickOps
"""
from fastapi import APIRouter
from pickops.api.v1.endpoints import (
    picking,
    reconciliation,
    dispatch,
    users,
)

router = APIRouter()

# Picking sessions, fulfillment outbox, history
router.include_router(
    picking.router,
    prefix="/picking",
    tags=["picking"]
)

# User directory and audit log (mounted next to picking)
router.include_router(
    users.router,
    prefix="/picking",
    tags=["users", "audit"]
)

# Faltante reconciliation
router.include_router(
    reconciliation.router,
    prefix="/reconciliation",
    tags=["reconciliation"]
)

# Ship / deliver
router.include_router(
    dispatch.router,
    prefix="/dispatch",
    tags=["dispatch"]
)
