"""Per-game aggregate of every attending participant's preferences."""

from __future__ import annotations

import threading
from collections.abc import Callable, Hashable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field

from .changes import ChangeFeed
from .participation import ParticipationRecord
from .preferences import GameSummary

EXCLUDED = "excluded"
UNRANKED = "unranked"


@dataclass
class GameAggregate:
    game_id: str
    title: str
    complexity_rating: float | None = None
    total_rank: int = 0
    votes_count: int = 0
    excluded_count: int = 0
    included_count: int = 0

    @property
    def average_rank(self) -> float | None:
        if self.votes_count == 0:
            return None
        return self.total_rank / self.votes_count

    def as_dict(self) -> dict:
        return {
            "game_id": self.game_id,
            "title": self.title,
            "complexity_rating": self.complexity_rating,
            "total_rank": self.total_rank,
            "votes_count": self.votes_count,
            "average_rank": self.average_rank,
            "excluded_count": self.excluded_count,
            "included_count": self.included_count,
        }


def display_order(aggregates: Sequence[GameAggregate]) -> list[GameAggregate]:
    """Lowest average rank first; games nobody ranked always go last."""

    def sort_key(item: GameAggregate) -> tuple[bool, float]:
        if item.votes_count == 0:
            return (True, 0.0)
        return (False, item.total_rank / item.votes_count)

    return sorted(aggregates, key=sort_key)


def aggregate_rankings(
    games: Sequence[GameSummary], participations: Iterable[ParticipationRecord]
) -> list[GameAggregate]:
    """Combine rankings and exclusions of attending participants.

    ``included_count`` counts everyone attending who did not exclude the game,
    whether or not they ranked it. Ids that are not in ``games`` are ignored.
    """
    totals = {
        game.id: GameAggregate(
            game_id=game.id, title=game.title, complexity_rating=game.complexity_rating
        )
        for game in games
    }
    for participation in participations:
        if not participation.attending:
            continue
        excluded = set(participation.excluded)
        for game_id, rank in (participation.rankings or {}).items():
            if game_id in totals and game_id not in excluded:
                totals[game_id].total_rank += rank
                totals[game_id].votes_count += 1
        for game_id in excluded:
            if game_id in totals:
                totals[game_id].excluded_count += 1
        for game in games:
            if game.id not in excluded:
                totals[game.id].included_count += 1
    return display_order(list(totals.values()))


@dataclass
class ParticipantPreference:
    name: str
    status: int | str
    user_id: str | None = None
    attendee_name: str | None = None

    def as_dict(self) -> dict:
        return {
            "name": self.name,
            "status": self.status,
            "user_id": self.user_id,
            "attendee_name": self.attendee_name,
        }


def participant_breakdown(
    games: Sequence[GameSummary],
    participations: Iterable[ParticipationRecord],
    user_names: Mapping[str, str],
) -> dict[str, list[ParticipantPreference]]:
    """Each attending participant's rank, ``excluded`` or ``unranked`` per game."""
    breakdown: dict[str, list[ParticipantPreference]] = {game.id: [] for game in games}
    for participation in participations:
        if not participation.attending:
            continue
        if participation.user_id is not None:
            name = user_names.get(participation.user_id, "Unknown")
        else:
            name = participation.attendee_name or "Guest"
        excluded = set(participation.excluded)
        rankings = participation.rankings or {}
        for game in games:
            if game.id in excluded:
                status: int | str = EXCLUDED
            else:
                status = rankings.get(game.id, UNRANKED)
            breakdown[game.id].append(
                ParticipantPreference(
                    name=name,
                    status=status,
                    user_id=participation.user_id,
                    attendee_name=participation.attendee_name,
                )
            )
    return breakdown


@dataclass
class RankingsSummary:
    event_id: str
    games: list[GameAggregate]
    breakdown: dict[str, list[ParticipantPreference]] = field(default_factory=dict)
    attending_count: int = 0

    def as_dict(self) -> dict:
        return {
            "event_id": self.event_id,
            "attending_count": self.attending_count,
            "games": [
                {
                    **item.as_dict(),
                    "participants": [
                        p.as_dict() for p in self.breakdown.get(item.game_id, [])
                    ],
                }
                for item in self.games
            ],
        }


def summarize_event(
    event_id: str,
    games: Sequence[GameSummary],
    participations: Sequence[ParticipationRecord],
    user_names: Mapping[str, str],
) -> RankingsSummary:
    attending = [p for p in participations if p.attending]
    return RankingsSummary(
        event_id=event_id,
        games=aggregate_rankings(games, attending),
        breakdown=participant_breakdown(games, attending, user_names),
        attending_count=len(attending),
    )


class RankingsCache:
    """Memoized event summaries, dropped whenever relevant tables change."""

    TABLES = ("participations", "events", "event_games", "games", "users")

    def __init__(self, feed: ChangeFeed | None = None) -> None:
        self._entries: dict[str, tuple[Hashable, RankingsSummary]] = {}
        self._generation = 0
        self._lock = threading.Lock()
        self._unsubscribe: Callable[[], None] | None = None
        if feed is not None:
            self._unsubscribe = feed.subscribe(self.TABLES, self._on_change)

    def get(
        self,
        event_id: str,
        compute: Callable[[], RankingsSummary],
        *,
        stamp: Hashable = None,
    ) -> RankingsSummary:
        """Return the cached summary, recomputing when ``stamp`` no longer matches."""
        with self._lock:
            cached = self._entries.get(event_id)
            generation = self._generation
        if cached is not None and cached[0] == stamp:
            return cached[1]
        summary = compute()
        with self._lock:
            # A change committed while computing makes this result stale.
            if generation == self._generation:
                self._entries[event_id] = (stamp, summary)
        return summary

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._generation += 1

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def __len__(self) -> int:
        return len(self._entries)

    def _on_change(self, table: str) -> None:
        self.clear()
