"""
Database engine and session factory utilities for the target schema.

The engine and session factory are created by the caller and passed to the
importers and the rollback engine; this module keeps no module-level
connection state.
"""

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import Engine, create_engine, event, pool, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from legacy_migration.client.exceptions import ConfigurationError, StateError
from legacy_migration.migration.models import Base
from legacy_migration.utils.logging import get_logger

logger = get_logger(__name__)


def _configure_sqlite_connection(dbapi_conn, connection_record):
    """
    Enable foreign keys and hand transaction control to SQLAlchemy.

    pysqlite's own transaction handling defers BEGIN and breaks SAVEPOINT;
    with isolation_level=None the "begin" listener below emits BEGIN itself.
    """
    dbapi_conn.isolation_level = None
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _begin_sqlite_transaction(conn):
    conn.exec_driver_sql("BEGIN")


def _is_sqlite_memory(database_url: str) -> bool:
    return database_url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in database_url


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
        echo: Whether to log SQL statements
        pool_size: Number of connections to maintain in the pool
        max_overflow: Maximum number of connections beyond pool_size
        pool_timeout: Timeout for getting a connection from the pool (seconds)
        pool_recycle: Recycle connections after this many seconds

    Returns:
        SQLAlchemy Engine instance

    Raises:
        ConfigurationError: If database URL is invalid
    """
    if not database_url:
        raise ConfigurationError("Database URL cannot be empty")

    try:
        is_sqlite = database_url.startswith("sqlite")

        if is_sqlite:
            engine = create_engine(
                database_url,
                echo=echo,
                # An in-memory database only lives as long as its one connection
                poolclass=pool.StaticPool if _is_sqlite_memory(database_url) else pool.NullPool,
                connect_args={"check_same_thread": False},
            )
            event.listen(engine, "connect", _configure_sqlite_connection)
            event.listen(engine, "begin", _begin_sqlite_transaction)
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
            "database_engine_created",
            database_type="sqlite" if is_sqlite else engine.dialect.name,
            pool=type(engine.pool).__name__,
        )
        return engine

    except Exception as e:
        logger.error("database_engine_failed", error=str(e))
        raise ConfigurationError(f"Failed to create database engine: {e}") from e


def init_database(database_url: str, echo: bool = False, **pool_options: int) -> Engine:
    """
    Create an engine and all tables that don't exist yet.

    This is idempotent and safe to call multiple times.

    Args:
        database_url: Database connection URL
        echo: Whether to log SQL statements
        **pool_options: Passed through to create_database_engine

    Returns:
        SQLAlchemy Engine instance

    Raises:
        ConfigurationError: If database initialization fails
    """
    engine = create_database_engine(database_url, echo=echo, **pool_options)
    try:
        Base.metadata.create_all(engine)
    except Exception as e:
        engine.dispose()
        logger.error("database_init_failed", error=str(e))
        raise ConfigurationError(f"Failed to initialize database: {e}") from e

    logger.info("database_initialized", tables=len(Base.metadata.tables))
    return engine


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Session factory bound to engine; objects stay usable after commit."""
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """
    Context manager for database sessions.

    Commits on success, rolls back on exception and always closes the session.
    Errors raised by the database are wrapped in StateError; other errors
    propagate unchanged.

    Yields:
        SQLAlchemy Session instance
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("database_session_rolled_back", error=str(e))
        raise StateError(f"Database operation failed: {e}") from e
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def validate_database_connection(database_url: str) -> bool:
    """
    Validate that a database connection can be established.

    Args:
        database_url: Database connection URL

    Returns:
        True if connection successful, False otherwise
    """
    try:
        engine = create_database_engine(database_url)
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        engine.dispose()
        logger.info("database_connection_validated")
        return True

    except Exception as e:
        logger.error("database_connection_failed", error=str(e))
        return False
