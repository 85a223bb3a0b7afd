"""Authoritative storage of participation records.

The store works inside the caller's unit of work: every operation flushes its
changes, and the caller commits (``get_db`` in the API, ``get_session`` in the
CLI). Rankings and exclusions are always replaced wholesale; the store never
merges a partial map into an existing one.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import config
from . import notifications
from .errors import PersistenceFailure, RecordNotFound
from .identity import (
    GuestIdentity,
    ParticipantIdentity,
    UserIdentity,
    identity_clause,
    identity_of,
)
from .models import Event, Participation, User
from .notifications import Notification, Notifier
from .utils import utcnow

logger = logging.getLogger("uvicorn.error")


@dataclass(frozen=True)
class ParticipationRecord:
    """Read-only snapshot of a participation row."""

    id: str
    event_id: str
    identity: ParticipantIdentity
    attending: bool
    rankings: dict[str, int] | None
    excluded: tuple[str, ...]
    created_at: datetime
    last_modified: datetime

    @classmethod
    def from_model(cls, row: Participation) -> "ParticipationRecord":
        return cls(
            id=row.id,
            event_id=row.event_id,
            identity=identity_of(row),
            attending=bool(row.attending),
            rankings=dict(row.rankings) if row.rankings is not None else None,
            excluded=tuple(row.excluded or ()),
            created_at=row.created_at,
            last_modified=row.last_modified,
        )

    @property
    def user_id(self) -> str | None:
        return self.identity.id if isinstance(self.identity, UserIdentity) else None

    @property
    def attendee_name(self) -> str | None:
        return self.identity.name if isinstance(self.identity, GuestIdentity) else None


def normalize_rankings(
    rankings: Mapping[str, int], allowed_ids: Iterable[str]
) -> dict[str, int]:
    """Validate a rank map: positive unique integers for games in the event."""
    allowed = set(allowed_ids)
    normalized: dict[str, int] = {}
    for game_id, rank in rankings.items():
        if isinstance(rank, bool) or not isinstance(rank, int) or rank < 1:
            raise ValueError(f"Rank for game {game_id} must be a positive integer")
        if game_id not in allowed:
            raise ValueError(f"Game {game_id} is not part of this event")
        normalized[str(game_id)] = rank
    if len(set(normalized.values())) != len(normalized):
        raise ValueError("Each game must have a distinct rank")
    return normalized


def normalize_excluded(excluded: Iterable[str], allowed_ids: Iterable[str]) -> list[str]:
    """De-duplicate exclusions, keeping the first occurrence of each id."""
    allowed = set(allowed_ids)
    result: list[str] = []
    for game_id in excluded:
        if game_id not in allowed:
            raise ValueError(f"Game {game_id} is not part of this event")
        if game_id not in result:
            result.append(game_id)
    return result


class ParticipationStore:
    def __init__(self, session: Session, *, notifier: Notifier | None = None) -> None:
        self.session = session
        self.notifier = notifier

    # Reads

    def find(
        self, identity: ParticipantIdentity, event_id: str
    ) -> ParticipationRecord | None:
        row = self._find_row(identity, event_id)
        return ParticipationRecord.from_model(row) if row else None

    def get(self, identity: ParticipantIdentity, event_id: str) -> ParticipationRecord:
        record = self.find(identity, event_id)
        if record is None:
            raise RecordNotFound()
        return record

    def list_for_event(
        self, event_id: str, *, attending_only: bool = False
    ) -> list[ParticipationRecord]:
        stmt = (
            select(Participation)
            .where(Participation.event_id == event_id)
            .order_by(Participation.created_at.asc(), Participation.id.asc())
        )
        if attending_only:
            stmt = stmt.where(Participation.attending.is_(True))
        return [ParticipationRecord.from_model(r) for r in self.session.scalars(stmt)]

    def first_attending_guest(self, event_id: str) -> GuestIdentity | None:
        stmt = (
            select(Participation.attendee_name)
            .where(
                Participation.event_id == event_id,
                Participation.user_id.is_(None),
                Participation.attending.is_(True),
            )
            .order_by(Participation.created_at.asc(), Participation.id.asc())
            .limit(1)
        )
        name = self.session.scalars(stmt).first()
        return GuestIdentity(name) if name else None

    # Writes

    def upsert_attendance(
        self, identity: ParticipantIdentity, event_id: str, attending: bool = True
    ) -> ParticipationRecord:
        """Create the record on first RSVP, otherwise set the attending flag."""
        event = self._event(event_id)
        with self._writing("attendance"):
            row = self._find_row(identity, event_id)
            if row is None:
                row = self._create_row(identity, event, attending=attending)
            elif row.attending != attending:
                row.attending = attending
                row.last_modified = utcnow()
        name = self._display_name(identity)
        self._notify(
            notifications.attendance_confirmed(name)
            if attending
            else notifications.attendance_cancelled(name)
        )
        return ParticipationRecord.from_model(row)

    def cancel_attendance(
        self, identity: ParticipantIdentity, event_id: str
    ) -> ParticipationRecord | None:
        """Withdraw an RSVP according to the configured cancel policy.

        Returns ``None`` when the record was deleted.
        """
        self._event(event_id)
        row = self._find_row(identity, event_id)
        if row is None:
            raise RecordNotFound()
        if not config.settings.cancel_removes_participation:
            return self.upsert_attendance(identity, event_id, False)
        with self._writing("cancel"):
            self.session.delete(row)
        self._notify(notifications.attendance_cancelled(self._display_name(identity)))
        return None

    def upsert_rankings(
        self,
        identity: ParticipantIdentity,
        event_id: str,
        rankings: Mapping[str, int],
    ) -> ParticipationRecord:
        event = self._event(event_id)
        normalized = normalize_rankings(rankings, event.game_ids)
        with self._writing("rankings"):
            row = self._find_or_recover(identity, event, "rankings")
            self._replace(row, rankings=normalized)
        self._notify(notifications.rankings_saved())
        return ParticipationRecord.from_model(row)

    def upsert_excluded(
        self,
        identity: ParticipantIdentity,
        event_id: str,
        excluded: Iterable[str],
    ) -> ParticipationRecord:
        """Replace the exclusion list.

        Callers remove excluded games from the rankings themselves; the two
        fields are not reconciled here.
        """
        event = self._event(event_id)
        normalized = normalize_excluded(excluded, event.game_ids)
        with self._writing("exclusions"):
            row = self._find_or_recover(identity, event, "exclusions")
            self._replace(row, excluded=normalized)
        self._notify(notifications.exclusions_saved())
        return ParticipationRecord.from_model(row)

    def save_preferences(
        self,
        identity: ParticipantIdentity,
        event_id: str,
        rankings: Mapping[str, int],
        excluded: Iterable[str],
    ) -> ParticipationRecord:
        """Replace rankings and exclusions together in one flush."""
        event = self._event(event_id)
        normalized_rankings = normalize_rankings(rankings, event.game_ids)
        normalized_excluded = normalize_excluded(excluded, event.game_ids)
        with self._writing("preferences"):
            row = self._find_or_recover(identity, event, "preferences")
            self._replace(row, rankings=normalized_rankings, excluded=normalized_excluded)
        self._notify(notifications.preferences_saved())
        return ParticipationRecord.from_model(row)

    def remove_by_event(self, event_id: str) -> int:
        """Delete every participation of an event; returns how many went."""
        rows = self.session.scalars(
            select(Participation).where(Participation.event_id == event_id)
        ).all()
        with self._writing("remove"):
            for row in rows:
                self.session.delete(row)
        event = self.session.get(Event, event_id)
        if event is not None:
            self.session.expire(event, ["participations"])
        logger.info("Removed %d participations for event %s", len(rows), event_id)
        return len(rows)

    # Internals

    def _event(self, event_id: str) -> Event:
        event = self.session.get(Event, event_id)
        if event is None:
            raise RecordNotFound(f"Event {event_id} not found")
        return event

    def _find_row(
        self, identity: ParticipantIdentity, event_id: str
    ) -> Participation | None:
        stmt = select(Participation).where(
            Participation.event_id == event_id, identity_clause(identity)
        )
        return self.session.scalars(stmt).first()

    def _create_row(
        self, identity: ParticipantIdentity, event: Event, *, attending: bool
    ) -> Participation:
        row = Participation(attending=attending, rankings=None, excluded=[])
        if isinstance(identity, UserIdentity):
            if self.session.get(User, identity.id) is None:
                raise RecordNotFound(f"User {identity.id} not found")
            row.user_id = identity.id
        else:
            limit = config.settings.guest_name_max_length
            if len(identity.name) > limit:
                raise ValueError(f"Guest name must be at most {limit} characters")
            row.attendee_name = identity.name
        row.event = event
        self.session.add(row)
        return row

    def _find_or_recover(
        self, identity: ParticipantIdentity, event: Event, operation: str
    ) -> Participation:
        row = self._find_row(identity, event.id)
        if row is not None:
            return row
        logger.warning(
            "No participation for %s %r in event %s while saving %s; "
            "creating an attending record",
            identity.kind,
            identity.label,
            event.id,
            operation,
        )
        self._notify(notifications.record_recovered())
        return self._create_row(identity, event, attending=True)

    @staticmethod
    def _replace(
        row: Participation,
        *,
        rankings: dict[str, int] | None = None,
        excluded: list[str] | None = None,
    ) -> None:
        changed = False
        if rankings is not None and row.rankings != rankings:
            row.rankings = dict(rankings)
            changed = True
        if excluded is not None and list(row.excluded or ()) != excluded:
            row.excluded = list(excluded)
            changed = True
        if changed:
            row.last_modified = utcnow()

    @contextmanager
    def _writing(self, operation: str) -> Iterator[None]:
        try:
            yield
            self.session.flush()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Saving %s failed: %s", operation, exc)
            self._notify(notifications.save_failed())
            raise PersistenceFailure() from exc

    def _display_name(self, identity: ParticipantIdentity) -> str:
        if isinstance(identity, GuestIdentity):
            return identity.name
        user = self.session.get(User, identity.id)
        return user.name if user else "Unknown"

    def _notify(self, notification: Notification) -> None:
        if self.notifier is not None:
            self.notifier.notify(notification)
