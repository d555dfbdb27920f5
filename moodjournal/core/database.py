"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine and session management
- Connection pooling with sane defaults
- Test database support (SQLite accepted alongside PostgreSQL)
- Table definitions for users, usage ledger, payments, notifications, journals
"""
from typing import Optional
from contextlib import contextmanager
from sqlalchemy import create_engine, MetaData, Table, Column, Integer, String, DateTime, Boolean, JSON, Text, Index, ForeignKey, UniqueConstraint, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import QueuePool
from sqlalchemy.orm import sessionmaker
import logging
import os

from moodjournal.core.config import settings
from moodjournal.core.errors import StorageError

logger = logging.getLogger("moodjournal.database")

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
    test_url = os.getenv("TEST_DATABASE_URL")
    if test_url:
        return test_url

    return settings.DATABASE_URL


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
        _engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            echo=False,
        )
    else:
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


def dispose_engine() -> None:
    """Drop the cached engine so the next call re-reads the database URL."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


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
def get_db_session():
    """
    Context manager for database sessions.

    Commits on clean exit, rolls back on any exception. Driver and
    constraint errors that escape the block are re-raised as StorageError.

    Usage:
        with get_db_session() as session:
            session.execute(...)
    """
    SessionLocal = get_session_factory()
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("[db] session failed", extra={"error": type(e).__name__})
        raise StorageError("Storage unavailable") from e
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


def check_connection() -> bool:
    """
    Check if database connection is available.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        engine = get_engine()
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning(f"Database connection check failed: {e}")
        return False


# Users with plan state
users = Table(
    'app_users',
    metadata,
    Column('user_id', String(100), primary_key=True),
    Column('email', String(320), nullable=True),
    Column('display_name', Text, nullable=True),
    Column('role', String(20), nullable=False, server_default='user'),  # user | admin
    Column('status', String(50), nullable=False, server_default='active'),
    Column('plan', String(20), nullable=False, server_default='free'),  # free | premium
    Column('premium_started_at', DateTime(timezone=True), nullable=True),
    Column('premium_expires_at', DateTime(timezone=True), nullable=True),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Index('idx_app_users_plan_expires', 'plan', 'premium_expires_at'),
)

# Daily usage ledger: one row per (user, local calendar date)
usage_ledger = Table(
    'usage_ledger',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), ForeignKey('app_users.user_id'), nullable=False),
    Column('date', String(10), nullable=False),  # YYYY-MM-DD
    Column('created_journals', Integer, nullable=False, server_default='0'),
    Column('basic_suggestions_used', Integer, nullable=False, server_default='0'),
    Column('updated_at', DateTime(timezone=True), nullable=True),
    UniqueConstraint('user_id', 'date', name='uq_usage_ledger_user_date'),
)

# Gateway payments; status is monotone pending -> success | failed | expired
payments = Table(
    'payments',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('gateway', String(20), nullable=False),  # payos | vnpay
    Column('gateway_order_code', String(64), nullable=False),
    Column('user_id', String(100), ForeignKey('app_users.user_id'), nullable=False),
    Column('amount', Integer, nullable=False),
    Column('payment_type', String(50), nullable=False, server_default='premium_subscription'),
    Column('description', Text, nullable=True),
    Column('status', String(20), nullable=False, server_default='pending'),
    Column('payment_url', Text, nullable=True),
    Column('payment_timeout', DateTime(timezone=True), nullable=True),
    Column('paid_at', DateTime(timezone=True), nullable=True),
    Column('cancelled_at', DateTime(timezone=True), nullable=True),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Column('updated_at', DateTime(timezone=True), nullable=False),
    UniqueConstraint('gateway_order_code', name='uq_payments_gateway_order_code'),
    Index('idx_payments_user_status', 'user_id', 'status'),
    Index('idx_payments_status_created', 'status', 'created_at'),
)

# Append-only notification log with read flag
notifications = Table(
    'notifications',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('user_id', String(100), ForeignKey('app_users.user_id'), nullable=False),
    Column('type', String(50), nullable=False),
    Column('title', Text, nullable=False),
    Column('message', Text, nullable=False),
    Column('is_read', Boolean, nullable=False, server_default='false'),
    Column('data', JSON, nullable=True),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Column('read_at', DateTime(timezone=True), nullable=True),
    Index('idx_notifications_user_read_created', 'user_id', 'is_read', 'created_at'),
    Index('idx_notifications_user_type_created', 'user_id', 'type', 'created_at'),
)

# Journal entries (the quota-protected write)
journals = Table(
    'journals',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('user_id', String(100), ForeignKey('app_users.user_id'), nullable=False),
    Column('title', Text, nullable=True),
    Column('content', Text, nullable=False),
    Column('mood', String(50), nullable=True),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Index('idx_journals_user_created', 'user_id', 'created_at'),
)
