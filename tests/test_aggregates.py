from __future__ import annotations

from datetime import datetime

from boardgamebash.aggregates import (
    RankingsCache,
    aggregate_rankings,
    participant_breakdown,
    summarize_event,
)
from boardgamebash.changes import ChangeFeed
from boardgamebash.identity import GuestIdentity, UserIdentity
from boardgamebash.participation import ParticipationRecord
from boardgamebash.preferences import GameSummary

GAME_A = GameSummary("a", "Alpha", 1.2)
GAME_B = GameSummary("b", "Bravo", 2.8)
GAME_C = GameSummary("c", "Charlie", 4.7)


def _participation(identity, rankings=None, excluded=(), attending=True):
    now = datetime(2030, 1, 1)
    return ParticipationRecord(
        id=f"p-{identity.label}",
        event_id="e-1",
        identity=identity,
        attending=attending,
        rankings=rankings,
        excluded=tuple(excluded),
        created_at=now,
        last_modified=now,
    )


def _by_id(aggregates):
    return {item.game_id: item for item in aggregates}


def test_two_participant_example():
    p1 = _participation(GuestIdentity("P1"), {"a": 1, "b": 2})
    p2 = _participation(GuestIdentity("P2"), {"b": 1}, excluded=["a"])

    result = aggregate_rankings([GAME_A, GAME_B], [p1, p2])
    totals = _by_id(result)

    assert [item.game_id for item in result] == ["a", "b"]
    assert (totals["a"].votes_count, totals["a"].total_rank) == (1, 1)
    assert totals["a"].average_rank == 1
    assert (totals["a"].excluded_count, totals["a"].included_count) == (1, 1)
    assert (totals["b"].votes_count, totals["b"].total_rank) == (2, 3)
    assert totals["b"].average_rank == 1.5
    assert (totals["b"].excluded_count, totals["b"].included_count) == (0, 2)


def test_games_without_votes_go_last():
    p1 = _participation(GuestIdentity("P1"), {"c": 3})

    result = aggregate_rankings([GAME_A, GAME_B, GAME_C], [p1])

    assert [item.game_id for item in result] == ["c", "a", "b"]
    assert result[1].average_rank is None
    assert result[2].votes_count == 0


def test_ties_keep_catalog_order():
    p1 = _participation(GuestIdentity("P1"), {"b": 1, "a": 2})
    p2 = _participation(GuestIdentity("P2"), {"a": 1, "b": 2})

    result = aggregate_rankings([GAME_A, GAME_B], [p1, p2])

    assert [item.game_id for item in result] == ["a", "b"]


def test_non_attending_and_unknown_games_are_ignored():
    gone = _participation(GuestIdentity("Gone"), {"a": 1}, attending=False)
    stale = _participation(GuestIdentity("Stale"), {"zzz": 1, "b": 2})

    totals = _by_id(aggregate_rankings([GAME_A, GAME_B], [gone, stale]))

    assert totals["a"].votes_count == 0
    assert totals["a"].included_count == 1
    assert totals["b"].total_rank == 2
    assert "zzz" not in totals


def test_participant_breakdown_statuses():
    user = _participation(UserIdentity("u-1"), {"a": 1}, excluded=["b"])
    guest = _participation(GuestIdentity("Robin"))
    orphan = _participation(UserIdentity("u-gone"), {"b": 1})

    breakdown = participant_breakdown(
        [GAME_A, GAME_B], [user, guest, orphan], {"u-1": "Sam"}
    )

    assert [(p.name, p.status) for p in breakdown["a"]] == [
        ("Sam", 1),
        ("Robin", "unranked"),
        ("Unknown", "unranked"),
    ]
    assert [(p.name, p.status) for p in breakdown["b"]] == [
        ("Sam", "excluded"),
        ("Robin", "unranked"),
        ("Unknown", 1),
    ]


def test_summary_counts_only_attending():
    attending = _participation(GuestIdentity("P1"), {"a": 1})
    absent = _participation(GuestIdentity("P2"), {"b": 1}, attending=False)

    summary = summarize_event("e-1", [GAME_A, GAME_B], [attending, absent], {})
    payload = summary.as_dict()

    assert payload["attending_count"] == 1
    assert payload["games"][0]["game_id"] == "a"
    assert payload["games"][0]["participants"][0]["name"] == "P1"
    assert payload["games"][1]["average_rank"] is None


def test_cache_is_cleared_by_change_feed():
    feed = ChangeFeed()
    cache = RankingsCache(feed)
    calls = []

    def compute():
        calls.append(1)
        return summarize_event("e-1", [GAME_A], [], {})

    cache.get("e-1", compute)
    cache.get("e-1", compute)
    assert len(calls) == 1

    feed.publish(["participations"])
    assert len(cache) == 0
    cache.get("e-1", compute)
    assert len(calls) == 2

    cache.close()
    cache.get("e-1", compute)
    feed.publish(["games"])
    assert len(cache) == 1


def test_cache_skips_results_computed_during_a_change():
    feed = ChangeFeed()
    cache = RankingsCache(feed)

    def compute():
        feed.publish(["participations"])
        return summarize_event("e-1", [GAME_A], [], {})

    cache.get("e-1", compute)

    assert len(cache) == 0


def test_stale_rank_of_excluded_game_is_not_a_vote():
    p1 = _participation(GuestIdentity("P1"), {"a": 1, "b": 2}, excluded=["a"])

    totals = _by_id(aggregate_rankings([GAME_A, GAME_B], [p1]))

    assert totals["a"].votes_count == 0
    assert totals["a"].excluded_count == 1
    assert totals["b"].votes_count == 1


def test_cache_recomputes_when_the_stamp_changes():
    cache = RankingsCache()
    calls = []

    def compute():
        calls.append(1)
        return summarize_event("e-1", [GAME_A], [], {})

    cache.get("e-1", compute, stamp=("v1",))
    cache.get("e-1", compute, stamp=("v1",))
    assert len(calls) == 1

    cache.get("e-1", compute, stamp=("v2",))
    assert len(calls) == 2
    assert len(cache) == 1
