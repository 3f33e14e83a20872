"""
Shared test fixtures for PickOps tests

Provides database setup, client creation, the fake Order Service and
picker fixtures.
"""
import os

# Must be set before pickops is imported: settings and the engine are built at import
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ORDER_SERVICE_BACKEND"] = "fake"
os.environ["LOG_FORMAT"] = "text"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pickops.main import app
from pickops.api.v1.deps import get_order_service_dependency
from pickops.core.settings import get_settings
from pickops.db.base import Base
from pickops.db.session import enable_sqlite_savepoints, get_db
from pickops.integrations import reset_order_service
from pickops.integrations.fake_order_service import FakeOrderService
from pickops.services.fulfillment_coordinator import FulfillmentCoordinator
from pickops.services.picking_service import PickingService
from pickops.services.reconciliation_service import ReconciliationService


# Create in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
enable_sqlite_savepoints(engine)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def create_tables(engine):
    """Create all tables for testing using SQLAlchemy metadata"""
    import pickops.models  # noqa: F401

    Base.metadata.create_all(bind=engine)


def drop_tables(engine):
    """Drop all tables after testing"""
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    """Create a fresh database session for each test"""
    create_tables(engine)

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        drop_tables(engine)


@pytest.fixture
def fake_order_service():
    """In-memory Order Service; seed orders with add_order()"""
    reset_order_service()
    service = FakeOrderService()
    yield service
    reset_order_service()


@pytest.fixture
def client(db_session, fake_order_service):
    """Create a test client with database and Order Service overrides"""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_order_service_dependency] = lambda: fake_order_service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def coordinator(db_session, fake_order_service):
    return FulfillmentCoordinator(db_session, fake_order_service)


@pytest.fixture
def picking_service(db_session, coordinator, settings):
    return PickingService(db_session, coordinator, settings)


@pytest.fixture
def reconciliation_service(db_session, coordinator, fake_order_service, settings):
    return ReconciliationService(db_session, coordinator, fake_order_service, settings)


@pytest.fixture
def picker(db_session):
    """Create an active picker"""
    from pickops.models.picking_user import PickingUser

    user = PickingUser(name="Lucia", role="picker", active=True)
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def supervisor(db_session):
    """Create an active supervisor"""
    from pickops.models.picking_user import PickingUser

    user = PickingUser(name="Marcos", role="supervisor", active=True)
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def inactive_user(db_session):
    """Create a deactivated picker"""
    from pickops.models.picking_user import PickingUser

    user = PickingUser(name="Former Picker", role="picker", active=False)
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user
