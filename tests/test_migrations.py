from __future__ import annotations

import types

import pytest
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine

from boardgamebash import database, storage
from boardgamebash.models import Base


def _patch_db(monkeypatch: pytest.MonkeyPatch, engine: Engine, db_path) -> None:
    monkeypatch.setattr(storage, "engine", engine)
    monkeypatch.setattr(database, "engine", engine)
    monkeypatch.setattr(database, "DATABASE_URL", str(engine.url))
    fake_settings = types.SimpleNamespace(database_path=db_path)
    monkeypatch.setattr(storage, "settings", fake_settings)


def _get_version(engine: Engine) -> str | None:
    with engine.connect() as conn:
        try:
            return conn.execute(
                text("select version_num from alembic_version")
            ).scalar()
        except Exception:
            return None


def test_upgrade_database_stamps_existing_db(monkeypatch, tmp_path):
    db_path = tmp_path / "existing.sqlite"
    engine = create_engine(f"sqlite:///{db_path}", future=True)
    Base.metadata.create_all(bind=engine)  # existing schema without Alembic tracking
    _patch_db(monkeypatch, engine, db_path)

    actions = storage.upgrade_database(make_backup=False)

    assert "Stamped existing database to Alembic head" in actions
    assert _get_version(engine) == "0001_initial"


def test_upgrade_database_creates_fresh_schema(monkeypatch, tmp_path):
    db_path = tmp_path / "fresh.sqlite"
    engine = create_engine(f"sqlite:///{db_path}", future=True)
    _patch_db(monkeypatch, engine, db_path)

    actions = storage.upgrade_database(make_backup=False)

    assert "Ran Alembic upgrade to head (fresh database)" in actions
    assert _get_version(engine) == "0001_initial"
    inspector = inspect(engine)
    for table in ("users", "games", "events", "event_games", "participations"):
        assert inspector.has_table(table)
    indexes = {ix["name"] for ix in inspector.get_indexes("participations")}
    assert "ix_participations_event_id" in indexes


def test_upgrade_database_creates_backup(monkeypatch, tmp_path):
    db_path = tmp_path / "backup.sqlite"
    engine = create_engine(f"sqlite:///{db_path}", future=True)
    _patch_db(monkeypatch, engine, db_path)
    storage.upgrade_database(make_backup=False)

    actions = storage.upgrade_database(make_backup=True)

    assert (tmp_path / "backup.sqlite.bak").exists()
    assert any(action.startswith("Backup created at") for action in actions)
    assert "Applied Alembic migrations to head" in actions


def test_migrated_schema_enforces_single_identity(monkeypatch, tmp_path):
    db_path = tmp_path / "constraints.sqlite"
    engine = create_engine(f"sqlite:///{db_path}", future=True)
    _patch_db(monkeypatch, engine, db_path)
    storage.upgrade_database(make_backup=False)

    with engine.begin() as conn:
        conn.execute(
            text(
                "insert into events (id, title, description, date, created_at, last_modified) "
                "values ('e1', 'Night', '', '2030-01-01', '2030-01-01', '2030-01-01')"
            )
        )
    with pytest.raises(Exception):
        with engine.begin() as conn:
            conn.execute(
                text(
                    "insert into participations "
                    "(id, event_id, user_id, attendee_name, attending, excluded, created_at, last_modified) "
                    "values ('p1', 'e1', NULL, NULL, 1, '[]', '2030-01-01', '2030-01-01')"
                )
            )


def test_upgrade_database_with_percent_in_path(monkeypatch, tmp_path):
    db_path = tmp_path / "50%off.sqlite"
    engine = create_engine(f"sqlite:///{db_path}", future=True)
    _patch_db(monkeypatch, engine, db_path)

    config = storage._alembic_config()
    actions = storage.upgrade_database(make_backup=False)

    assert config.get_main_option("sqlalchemy.url") == engine.url.render_as_string(
        hide_password=False
    )
    assert "Ran Alembic upgrade to head (fresh database)" in actions
    assert _get_version(engine) == "0001_initial"
