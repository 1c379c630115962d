"""Async engine, session factory and the bridge's table bootstrap.

SQLite files are created on startup with ``create_tables``; any other
database is expected to be migrated with Alembic before the app starts.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .config import settings


def is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def engine_options(url: str) -> dict[str, Any]:
    """Pool settings per backend; server databases drop dead connections before use."""
    if is_sqlite(url):
        return {}
    return {"pool_pre_ping": True}


engine = create_async_engine(settings.database_url, echo=settings.echo_sql, **engine_options(settings.database_url))
async_session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_tables(bind: AsyncEngine) -> None:
    from .models import Base

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db():
    """FastAPI dependency that yields an async session."""
    async with async_session_factory() as session:
        yield session
