from __future__ import annotations

from sqlalchemy import select

from boardgamebash import database
from boardgamebash.models import Game, Participation, User
from boardgamebash.seed import STARTER_GAMES, seed_fake_data


def test_seed_creates_catalog_users_and_preferences():
    stats = seed_fake_data(
        game_count=2, event_count=2, max_guests_per_event=3, user_count=1
    )

    assert stats["games"] == len(STARTER_GAMES) + 2
    assert stats["users"] == 3
    assert stats["events"] == 2
    with database.get_session() as session:
        titles = set(session.scalars(select(Game.title)))
        admins = session.scalars(select(User).where(User.is_admin.is_(True))).all()
        participations = session.scalars(select(Participation)).all()

    assert {"Catan", "Ticket to Ride", "Gloomhaven"} <= titles
    assert [user.name for user in admins] == ["Admin User"]
    assert len(participations) == stats["participations"]
    for participation in participations:
        ranks = sorted(participation.rankings.values())
        assert ranks == list(range(1, len(ranks) + 1))
        assert set(participation.rankings).isdisjoint(participation.excluded)


def test_seed_adds_starter_rows_only_once():
    seed_fake_data(game_count=0, event_count=0, max_guests_per_event=0, user_count=0)
    stats = seed_fake_data(
        game_count=0, event_count=0, max_guests_per_event=0, user_count=0
    )

    assert stats == {"games": 0, "users": 0, "events": 0, "participations": 0}
