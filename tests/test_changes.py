from __future__ import annotations

import pytest

from boardgamebash import crud
from boardgamebash.changes import ChangeFeed, change_feed
from boardgamebash.identity import GuestIdentity
from boardgamebash.participation import ParticipationStore


@pytest.fixture()
def heard():
    tables: list[str] = []
    unsubscribe = change_feed.subscribe(
        ["participations", "games", "events", "event_games", "users"], tables.append
    )
    yield tables
    unsubscribe()


def test_subscribe_rejects_unknown_tables():
    with pytest.raises(ValueError):
        ChangeFeed().subscribe("rsvps", lambda table: None)


def test_unsubscribe_stops_delivery():
    feed = ChangeFeed()
    seen: list[str] = []
    unsubscribe = feed.subscribe("games", seen.append)

    feed.publish(["games"])
    unsubscribe()
    feed.publish(["games"])

    assert seen == ["games"]


def test_failing_subscriber_does_not_block_others():
    feed = ChangeFeed()
    seen: list[str] = []

    def broken(table: str) -> None:
        raise RuntimeError("boom")

    feed.subscribe("users", broken)
    feed.subscribe("users", seen.append)
    feed.publish(["users"])

    assert seen == ["users"]


def test_commit_publishes_written_tables(session, catalog, heard):
    heard.clear()
    store = ParticipationStore(session)
    store.upsert_attendance(GuestIdentity("Robin"), catalog["event"].id)
    assert heard == []

    session.commit()

    assert "participations" in heard


def test_rollback_discards_pending_changes(session, heard):
    crud.create_user(session, name="Temporary")
    session.rollback()
    session.commit()

    assert heard == []


def test_event_writes_also_report_links(session, heard):
    crud.create_game(session, title="Solo", description="", complexity_rating=2.0)
    session.commit()

    assert heard == ["event_games", "games"]
