"""
Database connection and session management for the storefront catalog.

This module provides:
- Database engine creation and configuration (SQLite or PostgreSQL)
- Session factory for database operations
- Transaction scopes with an optional isolation level
- Bounded retry of transactions on infrastructure failures
- Database initialization (create tables)
- Foreign key enforcement on SQLite
"""

import sqlite3
import time
from typing import Callable, Optional, TypeVar
from contextlib import contextmanager
import logging

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from ..utils.config import get_config
from ..models.base import Base
from .exceptions import CatalogUnavailableError, DatabaseError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Isolation levels used by the catalog core
REPEATABLE_READ = "REPEATABLE READ"
SERIALIZABLE = "SERIALIZABLE"

# Seconds to wait before retry N is (RETRY_BACKOFF_SECONDS * N)
RETRY_BACKOFF_SECONDS = 0.05

# Global engine and session factory
_engine: Optional[Engine] = None
_SessionFactory: Optional[sessionmaker] = None


@event.listens_for(Engine, "connect")
def _set_sqlite_pragma(dbapi_connection, connection_record):
    """
    Set SQLite pragmas on connection.

    Enables foreign key constraints so ON DELETE CASCADE / RESTRICT / SET NULL
    behave as they do on PostgreSQL. Other drivers are left untouched.
    """
    if not isinstance(dbapi_connection, sqlite3.Connection):
        return

    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


def create_database_engine(database_url: Optional[str] = None, echo: Optional[bool] = None) -> Engine:
    """
    Create and configure the database engine.

    Args:
        database_url: Optional database URL. If None, uses config default.
        echo: If True, log all SQL statements. If None, uses config.

    Returns:
        Configured SQLAlchemy Engine
    """
    config = get_config()
    if database_url is None:
        database_url = config.database_url
        config.ensure_directories()
    if echo is None:
        echo = config.sql_echo

    logger.info(f"Creating database engine: {database_url}")

    if database_url.startswith("sqlite"):
        if ":memory:" in database_url or "mode=memory" in database_url:
            # In-memory databases (testing) share one connection
            return create_engine(
                database_url,
                echo=echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 30},
        )

    # Server databases (PostgreSQL)
    return create_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


def init_database(engine: Optional[Engine] = None) -> None:
    """
    Initialize the database by creating all tables.

    Safe to call multiple times - existing tables won't be recreated.

    Args:
        engine: Optional engine to use. If None, uses global engine.
    """
    if engine is None:
        engine = get_engine()

    logger.info("Initializing database tables")

    # Import all models so they are registered with Base
    from .. import models  # noqa: F401

    Base.metadata.create_all(engine)

    logger.info("Database tables initialized successfully")


def get_engine() -> Engine:
    """
    Get the global database engine (created on first use).

    Returns:
        Database engine
    """
    global _engine

    if _engine is None:
        _engine = create_database_engine()

    return _engine


def get_session_factory() -> sessionmaker:
    """
    Get the global session factory.

    Returns:
        Session factory (sessionmaker)
    """
    global _SessionFactory

    if _SessionFactory is None:
        engine = get_engine()
        _SessionFactory = sessionmaker(bind=engine, expire_on_commit=False)

    return _SessionFactory


def get_session() -> Session:
    """
    Create a new database session.

    Returns:
        New Session instance
    """
    session_factory = get_session_factory()
    return session_factory()


def _apply_isolation_level(session: Session, isolation_level: Optional[str]) -> None:
    """
    Pin the isolation level of the session's transaction.

    Must run before the first statement of the transaction. SQLite
    transactions are already serializable, so nothing is applied there.
    """
    if isolation_level is None:
        return
    if session.get_bind().dialect.name == "sqlite":
        return
    session.connection(execution_options={"isolation_level": isolation_level})


@contextmanager
def session_scope(isolation_level: Optional[str] = None):
    """
    Provide a transactional scope for database operations.

    This context manager handles session lifecycle automatically:
    - Creates a new session
    - Optionally pins the transaction isolation level
    - Commits on success
    - Rolls back on exception
    - Always closes the session

    Args:
        isolation_level: Optional level such as REPEATABLE_READ or SERIALIZABLE

    Yields:
        Database session

    Example:
        with session_scope() as session:
            product = Product(name="Pump", ...)
            session.add(product)
            # Commit happens automatically if no exception
    """
    session = get_session()
    try:
        _apply_isolation_level(session, isolation_level)
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def is_retryable_error(error: Exception) -> bool:
    """
    True for infrastructure failures worth retrying.

    Covers lost connections, deadlocks and serialization failures, which
    drivers report as OperationalError or as invalidated DBAPI connections.
    """
    if isinstance(error, OperationalError):
        return True
    return isinstance(error, DBAPIError) and bool(getattr(error, "connection_invalidated", False))


def run_in_transaction(
    work: Callable[[Session], T],
    isolation_level: Optional[str] = None,
    max_retries: Optional[int] = None,
    operation: str = "transaction",
) -> T:
    """
    Run ``work(session)`` in its own transaction, retrying infrastructure failures.

    Service errors (validation, structural, referential) propagate at once and
    are never retried. Retryable database errors roll the transaction back and
    start over, up to ``max_retries`` attempts, then CatalogUnavailableError is
    raised. Other SQLAlchemy errors become DatabaseError.

    Args:
        work: Callable receiving the transaction's session
        isolation_level: Optional isolation level for each attempt
        max_retries: Attempt bound (defaults to Config.max_transaction_retries)
        operation: Name used in log messages

    Returns:
        Whatever ``work`` returns
    """
    if max_retries is None:
        max_retries = get_config().max_transaction_retries
    attempts = max(1, max_retries)

    last_error: Optional[Exception] = None
    for attempt in range(1, attempts + 1):
        try:
            with session_scope(isolation_level=isolation_level) as session:
                return work(session)
        except SQLAlchemyError as e:
            if not is_retryable_error(e):
                logger.error(f"Database error during {operation}: {e}")
                raise DatabaseError(f"{operation} failed: {e}", original_error=e)

            last_error = e
            logger.warning(
                f"Transient database error during {operation} "
                f"(attempt {attempt} of {attempts}): {e}"
            )
            if attempt < attempts:
                time.sleep(RETRY_BACKOFF_SECONDS * attempt)

    logger.error(f"{operation} failed after {attempts} attempt(s)")
    raise CatalogUnavailableError(attempts, original_error=last_error)


def verify_database() -> bool:
    """
    Verify that the database is accessible and has tables.

    Returns:
        True if database is valid, False otherwise
    """
    try:
        engine = get_engine()
        inspector = inspect(engine)
        tables = inspector.get_table_names()

        expected_tables = ["products", "product_components", "order_line_items"]
        return all(table in tables for table in expected_tables)
    except SQLAlchemyError as e:
        logger.error(f"Database verification failed: {e}")
        return False


def initialize_app_database() -> None:
    """
    Initialize the application database.

    Creates tables if they don't exist and verifies the schema.
    """
    config = get_config()
    logger.info(f"Using database at: {config.database_url}")

    engine = get_engine()
    init_database(engine)

    if verify_database():
        logger.info("Database initialized and verified successfully")
    else:
        logger.warning("Database verification failed - tables may not exist")
