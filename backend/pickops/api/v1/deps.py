"""
API Dependencies

Wires the request-scoped database session, settings and Order Service
adapter into the domain services, plus the common query parameters.
"""
from typing import Annotated

from fastapi import Depends, Query
from sqlalchemy.orm import Session

from pickops.core.settings import Settings, get_settings
from pickops.db.session import get_db
from pickops.integrations import get_order_service
from pickops.integrations.order_service_port import OrderServicePort
from pickops.schemas.common import PaginationParams
from pickops.services.dispatch_service import DispatchService
from pickops.services.fulfillment_coordinator import FulfillmentCoordinator
from pickops.services.picking_service import PickingService
from pickops.services.reconciliation_service import ReconciliationService


def get_order_service_dependency() -> OrderServicePort:
    """Dependency for the configured Order Service adapter (override in tests)."""
    return get_order_service()


def get_fulfillment_coordinator(
    db: Session = Depends(get_db),
    order_service: OrderServicePort = Depends(get_order_service_dependency),
) -> FulfillmentCoordinator:
    return FulfillmentCoordinator(db, order_service)


def get_picking_service(
    db: Session = Depends(get_db),
    coordinator: FulfillmentCoordinator = Depends(get_fulfillment_coordinator),
    settings: Settings = Depends(get_settings),
) -> PickingService:
    return PickingService(db, coordinator, settings)


def get_reconciliation_service(
    db: Session = Depends(get_db),
    coordinator: FulfillmentCoordinator = Depends(get_fulfillment_coordinator),
    order_service: OrderServicePort = Depends(get_order_service_dependency),
    settings: Settings = Depends(get_settings),
) -> ReconciliationService:
    return ReconciliationService(db, coordinator, order_service, settings)


def get_dispatch_service(
    db: Session = Depends(get_db),
    order_service: OrderServicePort = Depends(get_order_service_dependency),
) -> DispatchService:
    return DispatchService(db, order_service)


def get_pagination_params(
    offset: int = Query(
        default=0,
        ge=0,
        description="Number of records to skip (for pagination)"
    ),
    limit: int = Query(
        default=50,
        ge=1,
        le=500,
        description="Maximum number of records to return (1-500)"
    )
) -> PaginationParams:
    """
    Dependency for standardized pagination parameters.

    Example:
        @router.get("/history")
        def history(
            pagination: Annotated[PaginationParams, Depends(get_pagination_params)],
            db: Session = Depends(get_db)
        ):
            ...
    """
    return PaginationParams(offset=offset, limit=limit)


Pagination = Annotated[PaginationParams, Depends(get_pagination_params)]
