"""
Async SQLAlchemy engine and session factory for the remote backend.
The engine is built from settings only when the remote backend is selected.
"""
from __future__ import annotations

from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from todoboard.core.config import Settings
from todoboard.db.base import Base


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    """Create the async engine; SQLite gets foreign keys enforced for cascades."""
    options: dict[str, Any] = {"echo": settings.DEBUG, "pool_pre_ping": True}
    if not settings.is_sqlite:
        options.update(pool_size=10, max_overflow=20, pool_recycle=3600)

    engine = create_async_engine(settings.DATABASE_URL, **options)

    if settings.is_sqlite:
        @event.listens_for(engine.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def create_tables(engine: AsyncEngine) -> None:
    """Create all tables directly; used for SQLite and tests instead of Alembic."""
    import todoboard.models  # noqa: F401  registers every table on Base.metadata

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
