"""FastAPI application for Boardgame Bash."""

from __future__ import annotations

import logging
import tomllib
from collections.abc import Iterator, Sequence
from contextlib import asynccontextmanager, contextmanager
from datetime import datetime
from importlib.metadata import PackageNotFoundError, version as pkg_version
from pathlib import Path

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import crud
from .aggregates import RankingsCache, summarize_event
from .changes import change_feed
from .config import settings
from .database import SessionLocal
from .errors import NoParticipantIdentity, PersistenceFailure, RecordNotFound
from .identity import (
    CurrentUser,
    ParticipantIdentity,
    UserIdentity,
    guest_identity,
    require_key,
    resolve_key,
)
from .models import Event, Game, User
from .notifications import CollectingNotifier
from .participation import ParticipationRecord, ParticipationStore
from .preferences import GameSummary, PreferenceList
from .storage import init_db
from .utils import complexity_band

# Use uvicorn's error logger so messages get the level prefix in the default log
# format.
logger = logging.getLogger("uvicorn.error")

USER_HEADER = "x-user-id"
GUEST_HEADER = "x-guest-name"


def _load_app_version() -> str:
    """Return the current package version, falling back to pyproject for dev runs."""
    try:
        return pkg_version("boardgamebash")
    except PackageNotFoundError:
        pyproject_path = Path(__file__).resolve().parent.parent / "pyproject.toml"
        if pyproject_path.exists():
            data = tomllib.loads(pyproject_path.read_text())
            project = data.get("project") or {}
            return str(project.get("version") or "dev")
    return "dev"


APP_VERSION = _load_app_version()


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_db()
    yield


app = FastAPI(title="Boardgame Bash", version=APP_VERSION, lifespan=lifespan)
rankings_cache = RankingsCache(change_feed)


def get_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_current_user(
    request: Request, db: Session = Depends(get_db)
) -> CurrentUser | None:
    """Resolve the ``X-User-Id`` header into the logged-in user, if any."""
    user_id = (request.headers.get(USER_HEADER) or "").strip()
    if not user_id:
        return None
    user = crud.get_user(db, user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="Unknown user")
    return CurrentUser(id=user.id, name=user.name, is_admin=user.is_admin)


def _require_admin(current_user: CurrentUser | None) -> CurrentUser:
    if current_user is None:
        raise HTTPException(status_code=401, detail="Login required")
    if not current_user.is_admin:
        raise HTTPException(status_code=403, detail="Organizer access required")
    return current_user


def _guest_name(request: Request, supplied: str | None = None) -> str | None:
    return supplied or request.headers.get(GUEST_HEADER)


def _notifier(request: Request) -> CollectingNotifier:
    """Collect notices on the request so error handlers can return them too."""
    notifier = CollectingNotifier()
    request.state.notifier = notifier
    return notifier


@contextmanager
def _bad_request() -> Iterator[None]:
    try:
        yield
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _parse_datetime(raw: str) -> datetime:
    try:
        return datetime.fromisoformat(raw)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid datetime") from exc


def _ensure_event(db: Session, event_id: str) -> Event:
    event = crud.get_event(db, event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


def _ensure_game(db: Session, game_id: str) -> Game:
    game = crud.get_game(db, game_id)
    if not game:
        raise HTTPException(status_code=404, detail="Game not found")
    return game


def _event_games(event: Event) -> list[GameSummary]:
    return [GameSummary.from_model(game) for game in event.games]


def _serialize_identity(identity: ParticipantIdentity | None):
    if identity is None:
        return None
    if isinstance(identity, UserIdentity):
        return {"kind": identity.kind, "id": identity.id}
    return {"kind": identity.kind, "name": identity.name}


def _serialize_user(user: User):
    return {
        "id": user.id,
        "name": user.name,
        "is_admin": user.is_admin,
        "created_at": user.created_at.isoformat(),
    }


def _serialize_game(game: Game):
    return {
        "id": game.id,
        "title": game.title,
        "description": game.description,
        "complexity_rating": game.complexity_rating,
        "complexity_band": complexity_band(game.complexity_rating),
        "bgg_url": game.bgg_url,
        "video_url": game.video_url,
        "image_url": game.image_url,
        "created_at": game.created_at.isoformat(),
    }


def _serialize_event(event: Event, *, include_games: bool = True):
    payload = {
        "id": event.id,
        "title": event.title,
        "description": event.description,
        "date": event.date.isoformat(),
        "game_ids": event.game_ids,
        "attending_count": event.attending_count,
        "created_at": event.created_at.isoformat(),
        "last_modified": event.last_modified.isoformat(),
    }
    if include_games:
        payload["games"] = [_serialize_game(game) for game in event.games]
    return payload


def _serialize_participation(record: ParticipationRecord, names: dict[str, str]):
    if record.user_id is not None:
        name = names.get(record.user_id, "Unknown")
    else:
        name = record.attendee_name
    return {
        "id": record.id,
        "event_id": record.event_id,
        "identity": _serialize_identity(record.identity),
        "name": name,
        "attending": record.attending,
        "rankings": record.rankings,
        "excluded": list(record.excluded),
        "created_at": record.created_at.isoformat(),
        "last_modified": record.last_modified.isoformat(),
    }


def _names_for(db: Session, records: Sequence[ParticipationRecord]) -> dict[str, str]:
    return crud.user_names(db, [r.user_id for r in records if r.user_id])


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse({"detail": exc.detail}, status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse({"detail": exc.errors()}, status_code=422)


@app.exception_handler(NoParticipantIdentity)
async def no_identity_handler(request: Request, exc: NoParticipantIdentity):
    return JSONResponse(exc.as_payload(), status_code=409)


@app.exception_handler(RecordNotFound)
async def record_not_found_handler(request: Request, exc: RecordNotFound):
    return JSONResponse(exc.as_payload(), status_code=404)


@app.exception_handler(PersistenceFailure)
async def persistence_failure_handler(request: Request, exc: PersistenceFailure):
    logger.error(
        "Persistence failure while handling %s %s", request.method, request.url.path
    )
    payload = exc.as_payload()
    notifier = getattr(request.state, "notifier", None)
    if notifier is not None:
        payload["notices"] = notifier.as_list()
    return JSONResponse(payload, status_code=503)


@app.exception_handler(OperationalError)
async def operational_error_handler(request: Request, exc: OperationalError):
    raw = str(exc.orig) if getattr(exc, "orig", None) else str(exc)
    if "database is locked" in raw.lower():
        logger.error(
            "SQLite database is locked while handling %s %s",
            request.method,
            request.url.path,
        )
        detail = "The database is busy at the moment. Please wait a few seconds and try again."
        status = 503
    else:
        logger.error(
            "Operational database error on %s %s: %s",
            request.method,
            request.url.path,
            raw,
        )
        detail = "We hit a database issue. Please try again."
        status = 500
    return JSONResponse({"detail": detail}, status_code=status)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    logger.exception(
        "Unhandled error while processing %s %s", request.method, request.url.path
    )
    return JSONResponse({"detail": "Internal server error"}, status_code=500)


class GameCreatePayload(BaseModel):
    title: str
    description: str | None = None
    complexity_rating: float = Field(..., description="Complexity on a 1-5 scale")
    bgg_url: str | None = None
    video_url: str | None = None
    image_url: str | None = None


class GameUpdatePayload(BaseModel):
    title: str | None = None
    description: str | None = None
    complexity_rating: float | None = None
    bgg_url: str | None = None
    video_url: str | None = None
    image_url: str | None = None


class EventCreatePayload(BaseModel):
    title: str
    description: str | None = None
    date: str = Field(..., description="ISO datetime string")
    game_ids: list[str] = Field(default_factory=list)


class EventUpdatePayload(BaseModel):
    title: str | None = None
    description: str | None = None
    date: str | None = None
    game_ids: list[str] | None = None


class UserCreatePayload(BaseModel):
    name: str
    is_admin: bool = False


class RSVPPayload(BaseModel):
    attending: bool = True
    name: str | None = Field(None, description="Guest name when not logged in")


class PreferencesPayload(BaseModel):
    order: list[str] = Field(..., description="Included game ids, most preferred first")
    excluded: list[str] = Field(default_factory=list)
    name: str | None = None


class RankingsPayload(BaseModel):
    rankings: dict[str, int]
    name: str | None = None


class ExcludedPayload(BaseModel):
    excluded: list[str]
    name: str | None = None


# Users


@app.get("/api/v1/users")
def api_list_users(db: Session = Depends(get_db)):
    return {"users": [_serialize_user(u) for u in crud.list_users(db)]}


@app.post("/api/v1/users", status_code=201)
def api_create_user(payload: UserCreatePayload, db: Session = Depends(get_db)):
    with _bad_request():
        user = crud.create_user(db, name=payload.name, is_admin=payload.is_admin)
    return {"user": _serialize_user(user)}


@app.get("/api/v1/me")
def api_me(
    current_user: CurrentUser | None = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if current_user is None:
        raise HTTPException(status_code=401, detail="Login required")
    return {"user": _serialize_user(crud.get_user(db, current_user.id))}


# Games


@app.get("/api/v1/games")
def api_list_games(
    q: str | None = Query(None, description="Search by title"),
    limit: int = Query(settings.games_per_page, ge=1, le=500),
    db: Session = Depends(get_db),
):
    games = crud.list_games(db, search_term=q, limit=limit)
    return {"games": [_serialize_game(g) for g in games]}


@app.post("/api/v1/games", status_code=201)
def api_create_game(
    payload: GameCreatePayload,
    current_user: CurrentUser | None = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _require_admin(current_user)
    with _bad_request():
        game = crud.create_game(db, **payload.model_dump())
    return {"game": _serialize_game(game)}


@app.get("/api/v1/games/{game_id}")
def api_get_game(game_id: str, db: Session = Depends(get_db)):
    return {"game": _serialize_game(_ensure_game(db, game_id))}


@app.patch("/api/v1/games/{game_id}")
def api_update_game(
    game_id: str,
    payload: GameUpdatePayload,
    current_user: CurrentUser | None = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _require_admin(current_user)
    game = _ensure_game(db, game_id)
    data = payload.model_dump(exclude_unset=True)
    with _bad_request():
        game = crud.update_game(
            db,
            game,
            title=data.get("title", game.title),
            description=data.get("description", game.description),
            complexity_rating=data.get("complexity_rating", game.complexity_rating),
            bgg_url=data.get("bgg_url", game.bgg_url),
            video_url=data.get("video_url", game.video_url),
            image_url=data.get("image_url", game.image_url),
        )
    return {"game": _serialize_game(game)}


@app.delete("/api/v1/games/{game_id}", status_code=204)
def api_delete_game(
    game_id: str,
    current_user: CurrentUser | None = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _require_admin(current_user)
    crud.delete_game(db, _ensure_game(db, game_id))
    return Response(status_code=204)


# Events


@app.get("/api/v1/events")
def api_list_events(db: Session = Depends(get_db)):
    events = crud.list_events(db)
    return {"events": [_serialize_event(e, include_games=False) for e in events]}


@app.post("/api/v1/events", status_code=201)
def api_create_event(
    payload: EventCreatePayload,
    current_user: CurrentUser | None = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _require_admin(current_user)
    date = _parse_datetime(payload.date)
    with _bad_request():
        event = crud.create_event(
            db,
            title=payload.title,
            description=payload.description,
            date=date,
            game_ids=payload.game_ids,
        )
    return {"event": _serialize_event(event)}


@app.get("/api/v1/events/{event_id}")
def api_get_event(event_id: str, db: Session = Depends(get_db)):
    event = _ensure_event(db, event_id)
    records = ParticipationStore(db).list_for_event(event.id, attending_only=True)
    names = _names_for(db, records)
    payload = _serialize_event(event)
    payload["attendees"] = [_serialize_participation(r, names) for r in records]
    return {"event": payload}


@app.patch("/api/v1/events/{event_id}")
def api_update_event(
    event_id: str,
    payload: EventUpdatePayload,
    current_user: CurrentUser | None = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _require_admin(current_user)
    event = _ensure_event(db, event_id)
    data = payload.model_dump(exclude_unset=True)
    date = _parse_datetime(data["date"]) if data.get("date") else event.date
    with _bad_request():
        event = crud.update_event(
            db,
            event,
            title=data.get("title", event.title),
            description=data.get("description", event.description),
            date=date,
            game_ids=data.get("game_ids"),
        )
    return {"event": _serialize_event(event)}


@app.delete("/api/v1/events/{event_id}", status_code=204)
def api_delete_event(
    event_id: str,
    current_user: CurrentUser | None = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _require_admin(current_user)
    event = _ensure_event(db, event_id)
    removed = crud.delete_event(db, event)
    logger.info("Deleted event %s and %d participations", event_id, removed)
    return Response(status_code=204)


# Participation


@app.post("/api/v1/events/{event_id}/rsvp")
def api_rsvp(
    event_id: str,
    payload: RSVPPayload,
    request: Request,
    current_user: CurrentUser | None = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    event = _ensure_event(db, event_id)
    identity: ParticipantIdentity | None
    if current_user is not None:
        identity = UserIdentity(current_user.id)
    else:
        identity = guest_identity(_guest_name(request, payload.name))
    if identity is None:
        raise HTTPException(status_code=400, detail="Please enter your name")
    notifier = _notifier(request)
    store = ParticipationStore(db, notifier=notifier)
    with _bad_request():
        record = store.upsert_attendance(identity, event.id, payload.attending)
    return {
        "participation": _serialize_participation(record, _names_for(db, [record])),
        "notices": notifier.as_list(),
    }


@app.delete("/api/v1/events/{event_id}/rsvp")
def api_cancel_rsvp(
    event_id: str,
    request: Request,
    current_user: CurrentUser | None = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    event = _ensure_event(db, event_id)
    # Cancel only acts on an explicit identity.
    identity: ParticipantIdentity | None
    if current_user is not None:
        identity = UserIdentity(current_user.id)
    else:
        identity = guest_identity(_guest_name(request))
    if identity is None:
        raise HTTPException(status_code=400, detail="Please enter your name")
    notifier = _notifier(request)
    store = ParticipationStore(db, notifier=notifier)
    record = store.cancel_attendance(identity, event.id)
    participation = None
    if record is not None:
        participation = _serialize_participation(record, _names_for(db, [record]))
    return {"participation": participation, "notices": notifier.as_list()}


@app.get("/api/v1/events/{event_id}/participations")
def api_list_participations(event_id: str, db: Session = Depends(get_db)):
    event = _ensure_event(db, event_id)
    records = ParticipationStore(db).list_for_event(event.id)
    names = _names_for(db, records)
    return {"participations": [_serialize_participation(r, names) for r in records]}


@app.get("/api/v1/events/{event_id}/preferences")
def api_get_preferences(
    event_id: str,
    request: Request,
    current_user: CurrentUser | None = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    event = _ensure_event(db, event_id)
    store = ParticipationStore(db)
    identity = resolve_key(current_user, event.id, store, guest_name=_guest_name(request))
    record = store.find(identity, event.id) if identity else None
    preferences = PreferenceList.load(_event_games(event), record)
    return {
        "identity": _serialize_identity(identity),
        "attending": record.attending if record else False,
        "preferences": preferences.as_dict(),
    }


@app.put("/api/v1/events/{event_id}/preferences")
def api_save_preferences(
    event_id: str,
    payload: PreferencesPayload,
    request: Request,
    current_user: CurrentUser | None = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    event = _ensure_event(db, event_id)
    notifier = _notifier(request)
    store = ParticipationStore(db, notifier=notifier)
    identity = require_key(
        current_user, event.id, store, guest_name=_guest_name(request, payload.name)
    )
    preferences = PreferenceList.load(_event_games(event), store.find(identity, event.id))
    with _bad_request():
        preferences.arrange(payload.order, payload.excluded)
        record = preferences.save(store, identity, event.id)
    return {
        "participation": _serialize_participation(record, _names_for(db, [record])),
        "preferences": preferences.as_dict(),
        "notices": notifier.as_list(),
    }


@app.put("/api/v1/events/{event_id}/rankings")
def api_put_rankings(
    event_id: str,
    payload: RankingsPayload,
    request: Request,
    current_user: CurrentUser | None = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    event = _ensure_event(db, event_id)
    notifier = _notifier(request)
    store = ParticipationStore(db, notifier=notifier)
    identity = require_key(
        current_user, event.id, store, guest_name=_guest_name(request, payload.name)
    )
    with _bad_request():
        record = store.upsert_rankings(identity, event.id, payload.rankings)
    return {
        "participation": _serialize_participation(record, _names_for(db, [record])),
        "notices": notifier.as_list(),
    }


@app.put("/api/v1/events/{event_id}/excluded")
def api_put_excluded(
    event_id: str,
    payload: ExcludedPayload,
    request: Request,
    current_user: CurrentUser | None = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    event = _ensure_event(db, event_id)
    notifier = _notifier(request)
    store = ParticipationStore(db, notifier=notifier)
    identity = require_key(
        current_user, event.id, store, guest_name=_guest_name(request, payload.name)
    )
    with _bad_request():
        record = store.upsert_excluded(identity, event.id, payload.excluded)
    return {
        "participation": _serialize_participation(record, _names_for(db, [record])),
        "notices": notifier.as_list(),
    }


@app.get("/api/v1/events/{event_id}/rankings")
def api_event_rankings(event_id: str, db: Session = Depends(get_db)):
    event = _ensure_event(db, event_id)
    records = ParticipationStore(db).list_for_event(event.id, attending_only=True)
    names = _names_for(db, records)
    games = _event_games(event)
    # Rows written outside this process never reach the change feed, so the
    # cached summary is only reused while its inputs are unchanged.
    stamp = (
        event.last_modified,
        tuple((g.id, g.title, g.complexity_rating) for g in games),
        tuple(
            (
                r.id,
                tuple(sorted((r.rankings or {}).items())),
                tuple(r.excluded),
                r.last_modified,
            )
            for r in records
        ),
        tuple(sorted(names.items())),
    )

    def compute():
        return summarize_event(event.id, games, records, names)

    return rankings_cache.get(event.id, compute, stamp=stamp).as_dict()
