"""
Database connection and session management.
"""

import logging

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session, declarative_base

from .config import settings

logger = logging.getLogger(__name__)


def _connect_args(database_url: str) -> dict:
    """Driver arguments that make connection attempts and stuck queries fail fast."""
    if "sqlite" in database_url:
        return {"check_same_thread": False, "timeout": settings.database_connect_timeout}
    if database_url.startswith("postgresql"):
        return {
            "connect_timeout": settings.database_connect_timeout,
            "options": f"-c statement_timeout={settings.database_statement_timeout_ms}",
        }
    return {}


def enable_sqlite_foreign_keys(target_engine: Engine) -> None:
    """Make SQLite honour ON DELETE CASCADE for event hops."""
    if target_engine.dialect.name != "sqlite":
        return

    @event.listens_for(target_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# Create database engine
engine = create_engine(
    settings.database_url,
    connect_args=_connect_args(settings.database_url),
    pool_pre_ping=True,
    echo=settings.debug,
)
enable_sqlite_foreign_keys(engine)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for models
Base = declarative_base()


def get_db() -> Session:
    """
    Dependency function to get database session.
    Usage: Depends(get_db) in FastAPI endpoints.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """
    Initialize database tables.
    """
    # Import models so that they register with Base.metadata
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=engine)


def check_connection(db: Session) -> bool:
    """Run a trivial query to confirm the store is reachable.

    Args:
        db: Database session

    Returns:
        True if the query succeeded
    """
    try:
        db.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning(f"Database connectivity check failed: {e}")
        return False
