"""
Database Configuration and Session Management

This module handles SQLAlchemy setup with connection pooling.

Sessions are created from TenantSession, which enforces the tenant
isolation boundary (see ethicsdesk.core.tenancy). A fresh session has no
tenant context and therefore sees no tenant-scoped rows until one is bound.
"""
from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import QueuePool, StaticPool
from typing import Any, Dict, Iterator
from ethicsdesk.config import get_settings
from ethicsdesk.core.tenancy import TenantSession
import logging

logger = logging.getLogger(__name__)

settings = get_settings()


def _engine_options(database_url: str) -> Dict[str, Any]:
    """Pool settings per backend. In-memory SQLite needs one shared connection."""
    if database_url.startswith("sqlite"):
        options: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            options["poolclass"] = StaticPool
        return options
    return {
        "poolclass": QueuePool,
        "pool_size": settings.DATABASE_POOL_SIZE,
        "max_overflow": settings.DATABASE_MAX_OVERFLOW,
        "pool_pre_ping": True,
    }


engine = create_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    **_engine_options(settings.DATABASE_URL),
)

# expire_on_commit=False so response models can read attributes after commit
SessionLocal = sessionmaker(
    class_=TenantSession,
    autocommit=False,
    autoflush=False,
    bind=engine,
    expire_on_commit=False,
)

# Base class for all models
Base = declarative_base()


@event.listens_for(engine, "connect")
def configure_connection(dbapi_connection, connection_record):
    """Set connection-level configuration on new connections."""
    cursor = dbapi_connection.cursor()
    if settings.DATABASE_URL.startswith("postgresql"):
        cursor.execute("SET TIME ZONE 'UTC'")
    elif settings.DATABASE_URL.startswith("sqlite"):
        # ON DELETE SET NULL / CASCADE are only honoured with this pragma
        cursor.execute("PRAGMA foreign_keys=ON")
        # pysqlite's own transaction handling breaks SAVEPOINT; BEGIN is
        # emitted by sqlite_begin below instead
        dbapi_connection.isolation_level = None
    cursor.close()
    logger.debug("New database connection established")


@event.listens_for(engine, "begin")
def sqlite_begin(conn):
    if conn.dialect.name == "sqlite":
        conn.exec_driver_sql("BEGIN")


def get_db() -> Iterator[Session]:
    """
    Dependency function that provides a database session.

    The session starts without tenant context; request dependencies
    bind one before any tenant-scoped query runs.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """
    Initialize database tables.

    Production databases are managed by Alembic (see alembic/versions),
    which also installs the PostgreSQL row-level-security policies.
    """
    import ethicsdesk.models  # noqa: F401

    logger.warning("init_db() called - use Alembic migrations in production!")
    Base.metadata.create_all(bind=engine)
