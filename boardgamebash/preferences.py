"""Ordered game preference list for one participant in one event.

The list is loaded from a stored participation, edited in memory (adjacent
moves, include/exclude toggles) and saved back as a fresh rank map where the
rank of a game is simply its 1-based position.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum

from .identity import ParticipantIdentity
from .models import Game
from .participation import ParticipationRecord, ParticipationStore
from .utils import complexity_band


class PreferenceState(str, Enum):
    UNRANKED = "unranked"
    PARTIALLY_RANKED = "partially_ranked"
    FULLY_RANKED = "fully_ranked"


@dataclass(frozen=True)
class GameSummary:
    id: str
    title: str
    complexity_rating: float | None = None

    @classmethod
    def from_model(cls, game: Game) -> "GameSummary":
        return cls(id=game.id, title=game.title, complexity_rating=game.complexity_rating)

    @property
    def complexity_band(self) -> str:
        return complexity_band(self.complexity_rating)


def _valid_rank(value: object) -> int | None:
    if isinstance(value, int) and not isinstance(value, bool) and value > 0:
        return value
    return None


def order_by_rank(
    games: Sequence[GameSummary], rankings: Mapping[str, int] | None
) -> list[GameSummary]:
    """Sort games by stored rank; unranked games keep catalog order at the end."""
    if not rankings:
        return list(games)

    def sort_key(game: GameSummary) -> tuple[int, int]:
        rank = _valid_rank(rankings.get(game.id))
        return (0, rank) if rank is not None else (1, 0)

    return sorted(games, key=sort_key)


def classify(
    rankings: Mapping[str, int] | None, working_ids: Sequence[str]
) -> PreferenceState:
    if rankings is None:
        return PreferenceState.UNRANKED
    ranks = [_valid_rank(rankings.get(game_id)) for game_id in working_ids]
    if None not in ranks and sorted(ranks) == list(range(1, len(ranks) + 1)):
        return PreferenceState.FULLY_RANKED
    return PreferenceState.PARTIALLY_RANKED


class PreferenceList:
    def __init__(
        self,
        event_games: Sequence[GameSummary],
        *,
        ordered: Sequence[GameSummary] | None = None,
        excluded: Iterable[str] = (),
        stored_rankings: Mapping[str, int] | None = None,
    ) -> None:
        self._catalog = list(event_games)
        self._by_id = {game.id: game for game in self._catalog}
        self._excluded = {game_id for game_id in excluded if game_id in self._by_id}
        if ordered is None:
            ordered = [g for g in self._catalog if g.id not in self._excluded]
        self._ordered = list(ordered)
        self._stored_rankings = dict(stored_rankings) if stored_rankings is not None else None
        self.dirty = False

    @classmethod
    def load(
        cls,
        event_games: Sequence[GameSummary],
        participation: ParticipationRecord | None,
    ) -> "PreferenceList":
        """Build the working list from what is stored.

        Excluded games are split off; the rest are sorted by stored rank with
        unranked games after ranked ones. Ties keep catalog order.
        """
        if participation is None:
            return cls(event_games)
        excluded = set(participation.excluded)
        included = [g for g in event_games if g.id not in excluded]
        return cls(
            event_games,
            ordered=order_by_rank(included, participation.rankings),
            excluded=excluded,
            stored_rankings=participation.rankings,
        )

    @property
    def games(self) -> list[GameSummary]:
        return list(self._ordered)

    @property
    def game_ids(self) -> list[str]:
        return [game.id for game in self._ordered]

    @property
    def excluded_games(self) -> list[GameSummary]:
        return [g for g in self._catalog if g.id in self._excluded]

    @property
    def excluded_ids(self) -> list[str]:
        return [g.id for g in self.excluded_games]

    @property
    def state(self) -> PreferenceState:
        return classify(self._stored_rankings, self.game_ids)

    def stored_rank(self, game_id: str) -> int | None:
        if self._stored_rankings is None:
            return None
        return _valid_rank(self._stored_rankings.get(game_id))

    def move_up(self, index: int) -> bool:
        if index <= 0 or index >= len(self._ordered):
            return False
        self._swap(index - 1, index)
        return True

    def move_down(self, index: int) -> bool:
        if index < 0 or index >= len(self._ordered) - 1:
            return False
        self._swap(index, index + 1)
        return True

    def exclude(self, game_id: str) -> bool:
        self._require_game(game_id)
        if game_id in self._excluded:
            return False
        self._excluded.add(game_id)
        self._ordered = [g for g in self._ordered if g.id != game_id]
        self.dirty = True
        return True

    def include(self, game_id: str) -> bool:
        """Bring an excluded game back; it always lands at the end."""
        game = self._require_game(game_id)
        if game_id not in self._excluded:
            return False
        self._excluded.discard(game_id)
        self._ordered.append(game)
        self.dirty = True
        return True

    def toggle_excluded(self, game_id: str) -> bool:
        """Flip a game between the ranking and the excluded set.

        Returns ``True`` when the game ends up excluded.
        """
        if game_id in self._excluded:
            self.include(game_id)
            return False
        self.exclude(game_id)
        return True

    def reorder(self, game_ids: Sequence[str]) -> None:
        """Replace the order with a permutation of the current working list."""
        if sorted(game_ids) != sorted(self.game_ids) or len(set(game_ids)) != len(game_ids):
            raise ValueError("Order must list every ranked game exactly once")
        if list(game_ids) != self.game_ids:
            self._ordered = [self._by_id[game_id] for game_id in game_ids]
            self.dirty = True

    def arrange(self, order: Sequence[str], excluded: Iterable[str]) -> None:
        """Apply a full client-side arrangement: exclusions first, then order."""
        wanted = list(dict.fromkeys(excluded))
        for game_id in wanted:
            self._require_game(game_id)
        for game_id in self.excluded_ids:
            if game_id not in wanted:
                self.include(game_id)
        for game_id in wanted:
            self.exclude(game_id)
        self.reorder(order)

    def to_rankings(self) -> dict[str, int]:
        return {game.id: position for position, game in enumerate(self._ordered, start=1)}

    def save(
        self, store: ParticipationStore, identity: ParticipantIdentity, event_id: str
    ) -> ParticipationRecord:
        """Persist the current order and exclusions, replacing stored ranks."""
        record = store.save_preferences(
            identity, event_id, self.to_rankings(), self.excluded_ids
        )
        self._stored_rankings = dict(record.rankings or {})
        self.dirty = False
        return record

    def as_dict(self) -> dict:
        """Serializable view of the working list and the excluded games."""
        ranked = [
            {
                "position": position,
                "game_id": game.id,
                "title": game.title,
                "complexity_rating": game.complexity_rating,
                "complexity_band": game.complexity_band,
                "stored_rank": self.stored_rank(game.id),
            }
            for position, game in enumerate(self._ordered, start=1)
        ]
        excluded = [
            {
                "game_id": game.id,
                "title": game.title,
                "complexity_rating": game.complexity_rating,
                "complexity_band": game.complexity_band,
            }
            for game in self.excluded_games
        ]
        return {"state": self.state.value, "ranked": ranked, "excluded": excluded}

    def _swap(self, left: int, right: int) -> None:
        self._ordered[left], self._ordered[right] = self._ordered[right], self._ordered[left]
        self.dirty = True

    def _require_game(self, game_id: str) -> GameSummary:
        try:
            return self._by_id[game_id]
        except KeyError:
            raise ValueError(f"Game {game_id} is not part of this event") from None
