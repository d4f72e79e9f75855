"""
Database initialization and connection management utilities.

This module provides functions for initializing the state and entity
tables, managing connections, and creating sessions with proper pooling
and thread safety.
"""

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import Engine, create_engine, event, pool, text
from sqlalchemy.exc import DataError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

# Entity tables share the metadata and must be registered before create_all
import legacy_sync.migration.entities  # noqa: F401
from legacy_sync.client.exceptions import (
    ConfigurationError,
    ConstraintViolationError,
    StateError,
)
from legacy_sync.migration.models import Base
from legacy_sync.utils.logging import get_logger

logger = get_logger(__name__)

# Global engine and session factory (initialized on first use)
_engine: Engine | None = None
_SessionFactory: sessionmaker | None = None
_database_url: str | None = None


def _enable_sqlite_foreign_keys(dbapi_conn, connection_record):
    """
    Enable foreign key constraints for SQLite connections.

    SQLite has foreign keys disabled by default. This event handler
    enables them for each new connection.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def is_sqlite(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def create_database_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 5,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    pool_recycle: int = 3600,
) -> Engine:
    """
    Create a SQLAlchemy engine with appropriate settings.

    Args:
        database_url: Database connection URL (sqlite:/// or postgresql://)
        echo: Whether to log SQL statements (useful for debugging)
        pool_size: Number of connections to maintain in the pool
        max_overflow: Maximum number of connections that can be created beyond pool_size
        pool_timeout: Timeout for getting a connection from the pool (seconds)
        pool_recycle: Recycle connections after this many seconds (prevents stale connections)

    Returns:
        SQLAlchemy Engine instance

    Raises:
        ConfigurationError: If database URL is invalid
    """
    if not database_url:
        raise ConfigurationError("Database URL cannot be empty")

    try:
        if is_sqlite(database_url):
            # NullPool: each session gets its own connection, usable from worker threads
            engine = create_engine(
                database_url,
                echo=echo,
                poolclass=pool.NullPool,
                connect_args={"check_same_thread": False},
            )
            event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        else:
            engine = create_engine(
                database_url,
                echo=echo,
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_timeout=pool_timeout,
                pool_pre_ping=True,
                pool_recycle=pool_recycle,
            )

        logger.info(
            "Database engine created",
            database_type=engine.dialect.name,
            pool_size="NullPool" if is_sqlite(database_url) else pool_size,
        )
        return engine

    except Exception as e:
        logger.error("Failed to create database engine", error=str(e))
        raise ConfigurationError(f"Failed to create database engine: {e}") from e


def init_database(
    database_url: str,
    echo: bool = False,
    pool_size: int = 5,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    pool_recycle: int = 3600,
) -> Engine:
    """
    Initialize the sync database.

    Creates all tables if they don't exist. This is idempotent and safe
    to call multiple times; calling it with a different URL replaces the
    global engine.

    Args:
        database_url: Database connection URL
        echo: Whether to log SQL statements
        pool_size: Number of connections to maintain in the pool
        max_overflow: Maximum number of connections that can be created beyond pool_size
        pool_timeout: Timeout for getting a connection from the pool (seconds)
        pool_recycle: Recycle connections after this many seconds

    Returns:
        SQLAlchemy Engine instance

    Raises:
        StateError: If the database cannot be reached or the schema cannot be created
    """
    global _engine, _SessionFactory, _database_url

    if _engine is not None and _database_url == database_url:
        return _engine

    engine = create_database_engine(
        database_url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
    )

    try:
        Base.metadata.create_all(engine)
    except SQLAlchemyError as e:
        engine.dispose()
        logger.error("Failed to initialize database", error=str(e))
        raise StateError(f"Failed to initialize database: {e}") from e

    if _engine is not None:
        _engine.dispose()

    _engine = engine
    _SessionFactory = sessionmaker(bind=engine, expire_on_commit=False)
    _database_url = database_url

    logger.info("Database initialized successfully", tables=len(Base.metadata.tables))
    return engine


def get_engine(database_url: str | None = None, echo: bool = False) -> Engine:
    """
    Get the global database engine.

    Initializes the engine when it has not been initialized yet or when
    database_url names a different database. If database_url is not
    provided, uses the already-initialized engine.

    Raises:
        ConfigurationError: If engine is not initialized and no URL provided
    """
    if database_url is not None and database_url != _database_url:
        init_database(database_url, echo=echo)
    elif _engine is None:
        raise ConfigurationError(
            "Database engine not initialized. Call init_database() first or provide database_url."
        )

    assert _engine is not None, "Engine should be initialized by init_database()"
    return _engine


def get_session_factory() -> sessionmaker:
    """
    Get the global session factory.

    Raises:
        ConfigurationError: If session factory is not initialized
    """
    if _SessionFactory is None:
        raise ConfigurationError("Session factory not initialized. Call init_database() first.")

    return _SessionFactory


@contextmanager
def get_session(database_url: str | None = None) -> Generator[Session, None, None]:
    """
    Context manager for database sessions.

    Automatically commits on success and rolls back on exception.
    Always closes the session when done.

    Usage:
        with get_session() as session:
            session.add(obj)

    Args:
        database_url: Database connection URL (optional if already initialized)

    Yields:
        SQLAlchemy Session instance

    Raises:
        ConstraintViolationError: If a write violates a constraint or carries invalid data
        StateError: If any other database operation fails
    """
    get_engine(database_url)
    session = get_session_factory()()

    try:
        yield session
        session.commit()

    except (IntegrityError, DataError) as e:
        session.rollback()
        logger.debug("Database session rolled back on constraint violation", error=str(e.orig))
        raise ConstraintViolationError(f"Constraint violation: {e.orig}") from e

    except SQLAlchemyError as e:
        session.rollback()
        logger.error("Database session rolled back due to error", error=str(e))
        raise StateError(f"Database operation failed: {e}") from e

    except Exception:
        session.rollback()
        raise

    finally:
        session.close()


def validate_database_connection(database_url: str) -> bool:
    """
    Validate that a database connection can be established.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        engine = create_database_engine(database_url)
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        engine.dispose()
        logger.info("Database connection validated successfully")
        return True

    except (ConfigurationError, SQLAlchemyError) as e:
        logger.error("Database connection validation failed", error=str(e))
        return False
