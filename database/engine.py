"""
Database Persistence Layer - Core Engine.

============================================================
RELATIONAL STORE ACCESS
============================================================

Engine construction, session factories and transaction
boundaries for the normalized ETRM store.

- PostgreSQL in production (psycopg2 driver)
- SQLite in-memory for tests and --in-memory runs
- Explicit transaction management
- Hard failures on persistence errors

============================================================
"""

import logging
from contextlib import contextmanager
from typing import Dict, Generator, Optional

from sqlalchemy import create_engine, event, inspect, select, func
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from core.config import DatabaseConfig
from core.exceptions import PersistenceError


logger = logging.getLogger(__name__)

# =============================================================
# DECLARATIVE BASE
# =============================================================

Base = declarative_base()

IN_MEMORY_URL = "sqlite://"


# =============================================================
# CUSTOM EXCEPTIONS
# =============================================================


class DatabasePersistenceError(PersistenceError):
    """Raised when database persistence fails."""
    pass


class DatabaseConnectionError(DatabasePersistenceError):
    """Raised when database connection fails."""
    pass


class DatabaseInitializationError(DatabasePersistenceError):
    """Raised when table creation fails."""
    pass


# =============================================================
# DATABASE ENGINE
# =============================================================


def _redact(url: str) -> str:
    return url.split("@")[-1]


def create_database_engine(
    config: Optional[DatabaseConfig] = None,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Create SQLAlchemy engine for the configured store.
    
    SQLite URLs get a single shared connection so an in-memory
    database is visible to every session of the process.
    
    Args:
        config: Connection parameters (default: DatabaseConfig())
        pool_timeout: Seconds to wait for available connection
        pool_recycle: Recycle connections after N seconds
        
    Returns:
        SQLAlchemy Engine
    """
    config = config or DatabaseConfig()
    database_url = config.connection_url
    
    logger.info(f"Creating database engine for: {_redact(database_url)}")
    
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
            echo=config.echo,
        )
    else:
        engine = create_engine(
            database_url,
            poolclass=QueuePool,
            pool_size=config.pool_size,
            max_overflow=config.max_overflow,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            pool_pre_ping=True,
            echo=config.echo,
        )
    
    @event.listens_for(engine, "connect")
    def on_connect(dbapi_conn, connection_record):
        logger.debug("Database connection established")
    
    return engine


def create_in_memory_engine() -> Engine:
    """Engine over a private SQLite in-memory database."""
    return create_database_engine(DatabaseConfig(url=IN_MEMORY_URL))


def get_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


# =============================================================
# SESSION MANAGEMENT
# =============================================================


@contextmanager
def get_db_session(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Context manager for read-only work with automatic cleanup.
    
    Usage:
        with get_db_session(factory) as session:
            rows = session.execute(...)
    
    On exception the session is rolled back and the error re-raised.
    """
    session = session_factory()
    try:
        yield session
    except SQLAlchemyError as e:
        logger.error(f"Database error, rolling back: {e}")
        session.rollback()
        raise DatabasePersistenceError(f"Database error: {e}", cause=e) from e
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def transaction_scope(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Context manager for explicit transaction boundaries.
    
    Commits only if no exception occurs.
    Rolls back on ANY exception; store errors surface as
    DatabasePersistenceError, everything else propagates as is.
    
    Usage:
        with transaction_scope(factory) as session:
            upsert_trades(session, trades)
            # Commits automatically at end
    """
    session = session_factory()
    try:
        yield session
        session.commit()
        logger.debug("Database transaction committed successfully")
    except SQLAlchemyError as e:
        logger.error(f"Database transaction failed, rolling back: {e}")
        session.rollback()
        raise DatabasePersistenceError(f"Transaction failed: {e}", cause=e) from e
    except Exception as e:
        logger.error(f"Transaction aborted, rolling back: {e}")
        session.rollback()
        raise
    finally:
        session.close()


# =============================================================
# DATABASE INITIALIZATION
# =============================================================


def verify_database_connection(engine: Engine) -> bool:
    """
    Verify database connection is working.
    
    Raises:
        DatabaseConnectionError if connection fails
    """
    try:
        with engine.connect() as conn:
            conn.execute(select(1)).fetchone()
            logger.info("Database connection verified successfully")
            return True
    except OperationalError as e:
        logger.error(f"Database connection failed: {e}")
        raise DatabaseConnectionError(f"Cannot connect to database: {e}", cause=e) from e


def create_all_tables(engine: Engine) -> None:
    """
    Create every pipeline table that does not exist yet.
    
    Raises:
        DatabaseInitializationError if table creation fails
    """
    from . import models  # noqa: F401
    
    try:
        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created successfully")
    except SQLAlchemyError as e:
        logger.error(f"Failed to create database tables: {e}")
        raise DatabaseInitializationError(f"Table creation failed: {e}", cause=e) from e


def get_table_row_counts(engine: Engine) -> Dict[str, int]:
    """
    Get row counts for all pipeline tables.
    
    Returns:
        Dict mapping table name to row count (-1 if missing)
    """
    from . import models  # noqa: F401
    
    existing = set(inspect(engine).get_table_names())
    counts = {}
    
    with engine.connect() as conn:
        for name, table in Base.metadata.tables.items():
            if name not in existing:
                counts[name] = -1
                continue
            counts[name] = conn.execute(select(func.count()).select_from(table)).scalar()
    
    return counts
