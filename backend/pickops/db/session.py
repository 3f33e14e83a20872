"""
Database session management
"""
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from pickops.core.settings import settings
from pickops.logging_config import get_logger

logger = get_logger(__name__)


def enable_sqlite_savepoints(engine: Engine) -> None:
    """
    Let pysqlite honour SAVEPOINT / begin_nested().

    The driver defers BEGIN on its own, which breaks nested transactions;
    take over transaction control so the audit recorder and concurrent
    session creation can roll back a savepoint without losing the outer work.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


connection_string = settings.database_url

if connection_string.startswith("sqlite"):
    engine = create_engine(
        connection_string,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_savepoints(engine)
    logger.info("Database connection: %s (SQLite)", connection_string)
else:
    engine = create_engine(
        connection_string,
        echo=False,  # Set to True for SQL query logging
        pool_pre_ping=True,  # Verify connections before using
        pool_recycle=3600,  # Recycle connections after 1 hour
    )
    # Log connection info (without password)
    logger.info(
        "Database connection: %s:%s/%s (PostgreSQL)",
        settings.DB_HOST, settings.DB_PORT, settings.DB_NAME,
    )

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """
    Dependency for getting database session

    Usage in FastAPI endpoints:
        @router.get("/sessions")
        def get_sessions(db: Session = Depends(get_db)):
            ...
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
