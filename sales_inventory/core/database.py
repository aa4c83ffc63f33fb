import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from sales_inventory.core import config
from sales_inventory.core.exceptions import ConcurrencyConflictError, InventoryError

logger = logging.getLogger(__name__)

Base = declarative_base()


def make_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine; SQLite connections get foreign keys and a busy timeout."""
    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 30},
        )

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine
    return create_engine(url, echo=echo, pool_pre_ping=True)


engine = make_engine(config.DATABASE_URL, echo=config.SQL_ECHO)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Database dependency for FastAPI"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# Lock-not-available, serialization failure and deadlock
RETRYABLE_SQLSTATES = {"40001", "40P01", "55P03"}


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the way timestamps are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def is_lock_conflict(error: OperationalError) -> bool:
    """True when the store aborted the statement because of concurrent access."""
    orig = error.orig
    sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if sqlstate in RETRYABLE_SQLSTATES:
        return True
    message = str(orig).lower()
    return "database is locked" in message or "database table is locked" in message


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """
    All-or-nothing boundary around a unit of work.

    Commits when the block exits normally and rolls back on every
    exception. Lock timeouts, deadlocks and serialization failures raised
    by the store surface as ConcurrencyConflictError; nothing is retried.
    Any other database error is logged and re-raised unchanged.
    """
    try:
        yield db
        db.commit()
    except OperationalError as e:
        db.rollback()
        if not is_lock_conflict(e):
            logger.error(f"Transaction rolled back after database error: {e.orig}")
            raise
        logger.warning(f"Transaction aborted by the database: {e.orig}")
        raise ConcurrencyConflictError(
            "The operation conflicted with a concurrent update, please resubmit"
        ) from e
    except Exception as e:
        db.rollback()
        if not isinstance(e, InventoryError):
            logger.error(f"Transaction rolled back after unexpected error: {e}")
        raise
