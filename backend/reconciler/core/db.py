"""
Database connection

Creates the engine (connection pool) shared by request handlers and workers.

Notes:
- Tables are created by Alembic migrations, never here
- Import ``reconciler.models`` before use so every table is registered
"""
from sqlalchemy import Engine
from sqlmodel import Session, create_engine

from reconciler.core.config import settings


def build_engine(url: str) -> Engine:
    """
    Create an engine for the given URL

    SQLite connections are shared across the FastAPI threadpool, so the
    same-thread check is disabled for them.

    Args:
        url: SQLAlchemy database URL

    Returns:
        Engine with pre-ping enabled
    """
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, pool_pre_ping=True, connect_args=connect_args)


engine = build_engine(settings.SQLALCHEMY_DATABASE_URI)


def dialect_name(session: Session) -> str:
    """Name of the dialect behind a session ("postgresql", "sqlite", ...)."""
    return session.get_bind().dialect.name
