"""CRUD helpers for users, games and events."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from .models import Event, EventGame, Game, User
from .participation import ParticipationStore
from .utils import clean_name, to_naive_utc, utcnow

MIN_COMPLEXITY = 1.0
MAX_COMPLEXITY = 5.0


def _require_text(value: str | None, field: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValueError(f"{field} must not be empty")
    return cleaned


def _normalize_complexity(rating: float) -> float:
    value = float(rating)
    if not MIN_COMPLEXITY <= value <= MAX_COMPLEXITY:
        raise ValueError(
            f"Complexity rating must be between {MIN_COMPLEXITY:g} and {MAX_COMPLEXITY:g}"
        )
    return round(value, 2)


def _optional_url(raw: str | None) -> str | None:
    cleaned = (raw or "").strip()
    return cleaned or None


# Users


def get_user(session: Session, user_id: str | None) -> User | None:
    if not user_id:
        return None
    return session.get(User, user_id)


def list_users(session: Session) -> Sequence[User]:
    return session.scalars(select(User).order_by(User.name.asc())).all()


def create_user(session: Session, *, name: str, is_admin: bool = False) -> User:
    user = User(name=_require_text(clean_name(name), "Name"), is_admin=bool(is_admin))
    session.add(user)
    session.flush()
    return user


def user_names(session: Session, user_ids: Sequence[str]) -> dict[str, str]:
    """Map user ids to display names for the ones that still exist."""
    if not user_ids:
        return {}
    stmt = select(User.id, User.name).where(User.id.in_(set(user_ids)))
    return {row.id: row.name for row in session.execute(stmt)}


# Games


def get_game(session: Session, game_id: str) -> Game | None:
    return session.get(Game, game_id)


def list_games(
    session: Session, search_term: str | None = None, limit: int | None = None
) -> Sequence[Game]:
    stmt = select(Game).order_by(Game.title.asc())
    if search_term:
        stmt = stmt.where(Game.title.ilike(f"%{search_term}%"))
    if limit and limit > 0:
        stmt = stmt.limit(limit)
    return session.scalars(stmt).all()


def create_game(
    session: Session,
    *,
    title: str,
    description: str | None,
    complexity_rating: float,
    bgg_url: str | None = None,
    video_url: str | None = None,
    image_url: str | None = None,
) -> Game:
    """Create and persist a catalog entry."""
    game = Game(
        title=_require_text(title, "Title"),
        description=(description or "").strip(),
        complexity_rating=_normalize_complexity(complexity_rating),
        bgg_url=_optional_url(bgg_url),
        video_url=_optional_url(video_url),
        image_url=_optional_url(image_url),
    )
    session.add(game)
    session.flush()
    return game


def update_game(
    session: Session,
    game: Game,
    *,
    title: str,
    description: str | None,
    complexity_rating: float,
    bgg_url: str | None = None,
    video_url: str | None = None,
    image_url: str | None = None,
) -> Game:
    game.title = _require_text(title, "Title")
    game.description = (description or "").strip()
    game.complexity_rating = _normalize_complexity(complexity_rating)
    game.bgg_url = _optional_url(bgg_url)
    game.video_url = _optional_url(video_url)
    game.image_url = _optional_url(image_url)
    session.add(game)
    session.flush()
    return game


def delete_game(session: Session, game: Game) -> None:
    """Remove a game from the catalog and from every event that lists it.

    Stored rankings that mention the game are left alone; read views skip ids
    that are no longer part of the event.
    """
    for link in list(game.event_links):
        event = link.event
        event.game_links.remove(link)
        event.last_modified = utcnow()
    session.delete(game)
    session.flush()


# Events


def get_event(session: Session, event_id: str) -> Event | None:
    return session.get(Event, event_id)


def list_events(session: Session, limit: int | None = None) -> Sequence[Event]:
    stmt = select(Event).order_by(Event.date.asc())
    if limit and limit > 0:
        stmt = stmt.limit(limit)
    return session.scalars(stmt).all()


def set_event_games(session: Session, event: Event, game_ids: Sequence[str]) -> Event:
    """Replace the event's game set, keeping the given order as catalog order."""
    wanted = list(dict.fromkeys(game_ids))
    if wanted:
        found = set(
            session.scalars(select(Game.id).where(Game.id.in_(wanted))).all()
        )
        missing = [game_id for game_id in wanted if game_id not in found]
        if missing:
            raise ValueError(f"Unknown games: {', '.join(missing)}")
    existing = {link.game_id: link for link in event.game_links}
    links: list[EventGame] = []
    for position, game_id in enumerate(wanted):
        link = existing.get(game_id) or EventGame(game_id=game_id)
        link.position = position
        links.append(link)
    event.game_links = links
    return event


def create_event(
    session: Session,
    *,
    title: str,
    description: str | None,
    date: datetime,
    game_ids: Sequence[str] = (),
) -> Event:
    """Create and persist a new game night."""
    event = Event(
        title=_require_text(title, "Title"),
        description=(description or "").strip(),
        date=to_naive_utc(date),
    )
    session.add(event)
    set_event_games(session, event, game_ids)
    session.flush()
    return event


def update_event(
    session: Session,
    event: Event,
    *,
    title: str,
    description: str | None,
    date: datetime,
    game_ids: Sequence[str] | None = None,
) -> Event:
    event.title = _require_text(title, "Title")
    event.description = (description or "").strip()
    event.date = to_naive_utc(date)
    if game_ids is not None:
        set_event_games(session, event, game_ids)
    event.last_modified = utcnow()
    session.add(event)
    session.flush()
    return event


def delete_event(session: Session, event: Event) -> int:
    """Delete an event and purge its participations; returns how many went."""
    removed = ParticipationStore(session).remove_by_event(event.id)
    session.delete(event)
    session.flush()
    return removed
