"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine and session management
- Connection pooling with sane defaults (SQLite for tests)
- Table definitions for teams, entitlements, ledger and entities
"""
from typing import Iterator, Optional
from contextlib import contextmanager
from sqlalchemy import create_engine, MetaData, Table, Column, Integer, String, DateTime, JSON, Text, Index, UniqueConstraint, CheckConstraint, event
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.sql import func
import logging
import os

from brandforge.core.config import settings

logger = logging.getLogger(__name__)

# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour

# Global engine and session factory
_engine = None
_SessionLocal = None


def get_database_url() -> Optional[str]:
    """
    Get the database URL from settings or environment.

    For testing, use TEST_DATABASE_URL if available.
    """
    test_url = os.getenv("TEST_DATABASE_URL") or settings.TEST_DATABASE_URL
    if test_url:
        return test_url

    return os.getenv("DATABASE_URL") or settings.DATABASE_URL


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def init_engine(database_url: Optional[str] = None):
    """
    Initialize the SQLAlchemy engine.

    Args:
        database_url: Optional override for DATABASE_URL
    """
    global _engine, _SessionLocal

    url = database_url or get_database_url()

    if not url:
        raise ValueError(
            "DATABASE_URL is not configured. "
            "Set DATABASE_URL in environment or .env file."
        )

    if url.startswith("sqlite"):
        in_memory = url in ("sqlite://", "sqlite:///:memory:")
        _engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool if in_memory else None,
            echo=False,
        )
        event.listen(_engine, "connect", _enable_sqlite_foreign_keys)
    else:
        # Create engine with connection pooling
        _engine = create_engine(
            url,
            poolclass=QueuePool,
            pool_size=POOL_SIZE,
            max_overflow=MAX_OVERFLOW,
            pool_timeout=POOL_TIMEOUT,
            pool_recycle=POOL_RECYCLE,
            echo=False,  # Set to True for SQL query logging
        )

    # Create session factory
    _SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=_engine
    )

    return _engine


def get_engine():
    """Get the current SQLAlchemy engine."""
    global _engine
    if _engine is None:
        init_engine()
    return _engine


def get_session_factory():
    """Get the session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        init_engine()
    return _SessionLocal


@contextmanager
def get_db_session() -> Iterator[Session]:
    """
    Context manager for database sessions.

    Usage:
        with get_db_session() as session:
            session.execute(...)

    Commits on clean exit, rolls back and re-raises on error.
    """
    SessionLocal = get_session_factory()
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_all_tables():
    """
    Create all tables defined in metadata.

    This is idempotent - tables that already exist will not be recreated.
    """
    engine = get_engine()
    metadata.create_all(bind=engine)


def drop_all_tables():
    """
    Drop all tables defined in metadata.

    WARNING: This is destructive! Only use in tests or development.
    """
    engine = get_engine()
    metadata.drop_all(bind=engine)


def reset_database():
    """
    Reset the database by dropping and recreating all tables.

    WARNING: This is destructive! Only use in tests.
    """
    drop_all_tables()
    create_all_tables()


def check_connection() -> bool:
    """
    Check if database connection is available.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        engine = get_engine()
        with engine.connect() as conn:
            conn.exec_driver_sql("SELECT 1")
        return True
    except (SQLAlchemyError, ValueError) as e:
        logger.warning(f"Database connection check failed: {e}")
        return False


# Users and their team (identity resolution)
users = Table(
    'app_users',
    metadata,
    Column('user_id', String(100), primary_key=True),
    Column('team_id', String(100), nullable=True, index=True),
    Column('display_name', Text, nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
)

# Team balances: one metered pool for resource creation, one for image generation
team_entitlements = Table(
    'team_entitlements',
    metadata,
    Column('team_id', String(100), primary_key=True),
    Column('credits', Integer, nullable=False, server_default='0'),
    Column('image_credits', Integer, nullable=False, server_default='0'),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
    CheckConstraint('credits >= 0', name='ck_team_entitlements_credits_non_negative'),
    CheckConstraint('image_credits >= 0', name='ck_team_entitlements_image_credits_non_negative'),
)

# Free-usage counters per (team, action type)
team_free_usage = Table(
    'team_free_usage',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('team_id', String(100), nullable=False, index=True),
    Column('action_type', String(50), nullable=False),
    Column('used', Integer, nullable=False, server_default='0'),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
    UniqueConstraint('team_id', 'action_type', name='uq_team_free_usage_team_action'),
)

# Append-only ledger
credit_history = Table(
    'credit_history',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('team_id', String(100), nullable=False, index=True),
    Column('user_id', String(100), nullable=True, index=True),
    Column('action_type', String(50), nullable=False),
    Column('amount_debited', Integer, nullable=False),
    Column('balance_before', Integer, nullable=False),
    Column('balance_after', Integer, nullable=False),
    Column('description', Text, nullable=True),
    Column('metadata', JSON, nullable=True),
    Column('created_at', DateTime(timezone=True), nullable=False),
    # Composite index for history listing: (team_id, created_at)
    Index('idx_credit_history_team_created', 'team_id', 'created_at'),
)

# Entity tables: the row insert is the paid action
personas = Table(
    'personas',
    metadata,
    Column('id', String(100), primary_key=True),
    Column('team_id', String(100), nullable=False, index=True),
    Column('user_id', String(100), nullable=False),
    Column('brand_id', String(100), nullable=True, index=True),
    Column('name', Text, nullable=False),
    Column('attributes', JSON, nullable=False),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
)

themes = Table(
    'themes',
    metadata,
    Column('id', String(100), primary_key=True),
    Column('team_id', String(100), nullable=False, index=True),
    Column('user_id', String(100), nullable=False),
    Column('brand_id', String(100), nullable=True, index=True),
    Column('name', Text, nullable=False),
    Column('attributes', JSON, nullable=False),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
)

brands = Table(
    'brands',
    metadata,
    Column('id', String(100), primary_key=True),
    Column('team_id', String(100), nullable=False, index=True),
    Column('user_id', String(100), nullable=False),
    Column('brand_id', String(100), nullable=True),
    Column('name', Text, nullable=False),
    Column('attributes', JSON, nullable=False),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
)

# Generated content history
actions = Table(
    'actions',
    metadata,
    Column('id', String(100), primary_key=True),
    Column('team_id', String(100), nullable=False, index=True),
    Column('user_id', String(100), nullable=False, index=True),
    Column('type', String(50), nullable=False),
    Column('status', String(50), nullable=False),
    Column('details', JSON, nullable=False),
    Column('result', JSON, nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_actions_team_created', 'team_id', 'created_at'),
)
