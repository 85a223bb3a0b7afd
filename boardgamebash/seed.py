"""Development helpers for populating a demo catalog, events and RSVPs."""

from __future__ import annotations

import random
from datetime import timedelta

from faker import Faker
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .crud import create_event, create_game, create_user, list_games
from .database import get_session
from .identity import GuestIdentity
from .models import Event, Game, User
from .notifications import LoggingNotifier
from .participation import ParticipationStore
from .preferences import GameSummary, PreferenceList
from .storage import init_db
from .utils import utcnow

STARTER_GAMES = [
    {
        "title": "Catan",
        "description": "Build settlements, trade resources, and compete for longest road in this classic strategy game.",
        "complexity_rating": 2.3,
        "bgg_url": "https://boardgamegeek.com/boardgame/13/catan",
        "video_url": "https://www.youtube.com/watch?v=cPhX_1RiwEg",
    },
    {
        "title": "Ticket to Ride",
        "description": "Collect cards, build train routes, and connect cities across North America in this railway adventure.",
        "complexity_rating": 1.8,
        "bgg_url": "https://boardgamegeek.com/boardgame/9209/ticket-ride",
        "video_url": "https://www.youtube.com/watch?v=4JhFhyvGdik",
    },
    {
        "title": "Gloomhaven",
        "description": "A campaign-based dungeon crawl game with legacy elements and tactical combat.",
        "complexity_rating": 3.9,
        "bgg_url": "https://boardgamegeek.com/boardgame/174430/gloomhaven",
        "video_url": "https://www.youtube.com/watch?v=mKc5XhvkR6Y",
    },
]
STARTER_USERS = [("Admin User", True), ("Regular User", False)]

_game_nouns = [
    "Kingdoms",
    "Harbors",
    "Expedition",
    "Caverns",
    "Orchards",
    "Railways",
    "Dynasties",
    "Heist",
]
_event_types = [
    "Game Night",
    "Strategy Evening",
    "Board Game Brunch",
    "Tabletop Marathon",
    "Casual Games Meetup",
]


def seed_fake_data(
    *,
    game_count: int = 6,
    event_count: int = 3,
    max_guests_per_event: int = 4,
    user_count: int = 2,
) -> dict[str, int]:
    """Populate the SQLite database with a demo catalog and game nights."""
    if game_count < 0:
        raise ValueError("game_count must be >= 0")
    if event_count < 0:
        raise ValueError("event_count must be >= 0")
    if max_guests_per_event < 0:
        raise ValueError("max_guests_per_event must be >= 0")
    if user_count < 0:
        raise ValueError("user_count must be >= 0")

    init_db()
    fake = Faker()
    stats = {"games": 0, "users": 0, "events": 0, "participations": 0}

    with get_session() as session:
        stats["games"] += _create_starter_games(session)
        stats["users"] += _create_starter_users(session)
        for _ in range(game_count):
            _create_game(session, fake)
            stats["games"] += 1
        for _ in range(user_count):
            create_user(session, name=fake.name_nonbinary())
            stats["users"] += 1

        games = list(list_games(session))
        if not games:
            return stats
        for _ in range(event_count):
            event = _create_event(session, fake, games)
            stats["events"] += 1
            stats["participations"] += _create_guests(
                session, fake, event, max_guests_per_event
            )

    return stats


def _create_starter_games(session: Session) -> int:
    """Add the starter catalog once, when the catalog is still empty."""
    if session.scalar(select(func.count()).select_from(Game)):
        return 0
    for entry in STARTER_GAMES:
        create_game(session, **entry)
    return len(STARTER_GAMES)


def _create_starter_users(session: Session) -> int:
    if session.scalar(select(func.count()).select_from(User)):
        return 0
    for name, is_admin in STARTER_USERS:
        create_user(session, name=name, is_admin=is_admin)
    return len(STARTER_USERS)


def _create_game(session: Session, fake: Faker) -> Game:
    title = f"{fake.city()} {random.choice(_game_nouns)}"
    return create_game(
        session,
        title=title,
        description=fake.paragraph(nb_sentences=2),
        complexity_rating=round(random.uniform(1.0, 5.0), 1),
        bgg_url=fake.url() if random.random() < 0.5 else None,
    )


def _create_event(session: Session, fake: Faker, games: list[Game]) -> Event:
    date = utcnow() + timedelta(
        days=random.randint(1, 30), hours=random.randint(0, 12)
    )
    subset = random.sample(games, k=random.randint(1, min(len(games), 6)))
    return create_event(
        session,
        title=f"{fake.city()} {random.choice(_event_types)}",
        description=fake.sentence(),
        date=date,
        game_ids=[game.id for game in subset],
    )


def _create_guests(
    session: Session, fake: Faker, event: Event, max_guests: int
) -> int:
    """RSVP some guests and let each one arrange a random preference list."""
    if max_guests <= 0:
        return 0
    store = ParticipationStore(session, notifier=LoggingNotifier())
    event_games = [GameSummary.from_model(game) for game in event.games]
    names: set[str] = set()
    for _ in range(random.randint(0, max_guests)):
        name = fake.first_name()
        if name in names:
            continue
        names.add(name)
        identity = GuestIdentity(name)
        store.upsert_attendance(identity, event.id)
        preferences = PreferenceList(event_games)
        for game in event_games:
            if random.random() < 0.2:
                preferences.exclude(game.id)
        shuffled = preferences.game_ids
        random.shuffle(shuffled)
        preferences.reorder(shuffled)
        preferences.save(store, identity, event.id)
    return len(names)
