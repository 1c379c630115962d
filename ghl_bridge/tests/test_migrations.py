"""Smoke tests for bridge Alembic migrations."""

from __future__ import annotations

from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

from ghl_bridge.config import settings
from ghl_bridge.models import Base


def _config(tmp_path: Path, monkeypatch) -> tuple[Config, Path]:
    db_path = tmp_path / "bridge_migrations.db"
    monkeypatch.setattr(settings, "database_url", f"sqlite+aiosqlite:///{db_path}")

    package_root = Path(__file__).resolve().parents[1]
    cfg = Config(str(package_root / "alembic.ini"))
    cfg.attributes["configure_logger"] = False
    return cfg, db_path


def test_alembic_upgrade_matches_models(tmp_path: Path, monkeypatch):
    cfg, db_path = _config(tmp_path, monkeypatch)
    command.upgrade(cfg, "head")

    engine = create_engine(f"sqlite:///{db_path}")
    try:
        inspector = inspect(engine)
        tables = set(inspector.get_table_names())
        columns = {name: {c["name"] for c in inspector.get_columns(name)} for name in Base.metadata.tables}
    finally:
        engine.dispose()

    for name in ("ghl_oauth_credential", "sync_status", "webhook_event", "ghl_sync_log", "initial_sync_run"):
        assert name in tables
    for name, table in Base.metadata.tables.items():
        assert columns[name] == {c.name for c in table.columns}, name


def test_alembic_downgrade_drops_everything(tmp_path: Path, monkeypatch):
    cfg, db_path = _config(tmp_path, monkeypatch)
    command.upgrade(cfg, "head")
    command.downgrade(cfg, "base")

    engine = create_engine(f"sqlite:///{db_path}")
    try:
        tables = set(inspect(engine).get_table_names())
    finally:
        engine.dispose()

    assert tables <= {"alembic_version"}
