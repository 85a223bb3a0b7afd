"""Shared pytest fixtures for Boardgame Bash."""

from __future__ import annotations

import sys
from datetime import datetime
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import scoped_session, sessionmaker
from sqlalchemy.pool import StaticPool

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from boardgamebash import api, crud, database, storage
from boardgamebash.models import Base


@pytest.fixture(scope="session", autouse=True)
def configure_in_memory_db():
    """Reuse a single in-memory SQLite database for fast, isolated tests."""

    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    session_factory = scoped_session(
        sessionmaker(
            bind=engine,
            autoflush=False,
            autocommit=False,
            future=True,
            expire_on_commit=False,
        )
    )
    database.engine = engine
    database.SessionLocal = session_factory
    storage.engine = engine
    api.SessionLocal = session_factory
    Base.metadata.create_all(bind=engine)
    yield
    session_factory.remove()


@pytest.fixture(autouse=True)
def clean_database():
    """Reset all tables and cached rankings between tests."""

    database.SessionLocal.remove()
    Base.metadata.drop_all(bind=database.engine)
    Base.metadata.create_all(bind=database.engine)
    api.rankings_cache.clear()
    yield
    database.SessionLocal.remove()


@pytest.fixture
def session():
    db = database.SessionLocal()
    try:
        yield db
    finally:
        db.rollback()
        db.close()


@pytest.fixture
def catalog(session):
    """Three games and one event listing them in catalog order A, B, C."""
    game_a = crud.create_game(
        session, title="Alpha", description="", complexity_rating=1.2
    )
    game_b = crud.create_game(
        session, title="Bravo", description="", complexity_rating=2.8
    )
    game_c = crud.create_game(
        session, title="Charlie", description="", complexity_rating=4.7
    )
    event = crud.create_event(
        session,
        title="Friday Game Night",
        description="Bring snacks",
        date=datetime(2030, 1, 10, 18, 0),
        game_ids=[game_a.id, game_b.id, game_c.id],
    )
    session.commit()
    return {"event": event, "games": [game_a, game_b, game_c]}
