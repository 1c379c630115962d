"""Engine options and table bootstrap tests."""

from __future__ import annotations

import pytest
from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import create_async_engine

from ghl_bridge.database import create_tables, engine_options, is_sqlite
from ghl_bridge.models import Base


def test_sqlite_urls_detected():
    assert is_sqlite("sqlite+aiosqlite:///ghl_bridge.db")
    assert not is_sqlite("postgresql+asyncpg://bridge@db/bridge")


def test_server_databases_pre_ping():
    assert engine_options("sqlite+aiosqlite:///:memory:") == {}
    assert engine_options("postgresql+asyncpg://bridge@db/bridge") == {"pool_pre_ping": True}


@pytest.mark.asyncio
async def test_create_tables_builds_every_model_table(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'bootstrap.db'}")
    try:
        await create_tables(eng)
        await create_tables(eng)
        async with eng.connect() as conn:
            tables = await conn.run_sync(lambda sync_conn: set(inspect(sync_conn).get_table_names()))
    finally:
        await eng.dispose()

    assert set(Base.metadata.tables) <= tables
