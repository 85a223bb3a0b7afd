from __future__ import annotations

import json
from datetime import datetime

from typer.testing import CliRunner

from boardgamebash import crud, database
from boardgamebash.cli import app
from boardgamebash.identity import GuestIdentity
from boardgamebash.participation import ParticipationStore

runner = CliRunner()


def test_create_user_prints_id():
    result = runner.invoke(app, ["create-user", "Sam", "--admin"])

    assert result.exit_code == 0
    user_id = result.stdout.strip()
    with database.get_session() as session:
        user = crud.get_user(session, user_id)
        assert user.name == "Sam"
        assert user.is_admin is True


def test_rankings_command_prints_summary():
    with database.get_session() as session:
        game = crud.create_game(
            session, title="Catan", description="", complexity_rating=2.3
        )
        event = crud.create_event(
            session,
            title="Friday Night",
            description="",
            date=datetime(2030, 1, 1, 19, 0),
            game_ids=[game.id],
        )
        store = ParticipationStore(session)
        store.upsert_attendance(GuestIdentity("Robin"), event.id)
        store.upsert_rankings(GuestIdentity("Robin"), event.id, {game.id: 1})
        event_id = event.id

    text_result = runner.invoke(app, ["rankings", event_id])
    json_result = runner.invoke(app, ["rankings", event_id, "--json"])

    assert text_result.exit_code == 0
    assert "Friday Night: 1 attending" in text_result.stdout
    assert "Catan" in text_result.stdout
    assert json.loads(json_result.stdout)["games"][0]["votes_count"] == 1


def test_rankings_command_unknown_event():
    result = runner.invoke(app, ["rankings", "missing"])
    assert result.exit_code == 1
