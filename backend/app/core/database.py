"""Database engine, session factory and declarative base"""

from typing import Any, Dict
from sqlalchemy import Table
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from backend.app.core.config import settings


def _engine_options(database_url: str) -> Dict[str, Any]:
    """Pool options for the configured backend (SQLite has no pool sizing)"""
    options: Dict[str, Any] = {"echo": settings.DEBUG, "pool_pre_ping": True}
    if not database_url.startswith("sqlite"):
        options["pool_size"] = settings.DATABASE_POOL_SIZE
        options["max_overflow"] = settings.DATABASE_MAX_OVERFLOW
    return options


engine = create_async_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

Base = declarative_base()


def dialect_insert(session: AsyncSession, table: Table):
    """
    Build an INSERT that supports ON CONFLICT for the session's backend

    Args:
        session: Active session (its bound dialect picks the construct)
        table: Target table

    Returns:
        Dialect-specific insert statement with on_conflict_do_update/do_nothing
    """
    if session.bind.dialect.name == "sqlite":
        return sqlite.insert(table)
    return postgresql.insert(table)
