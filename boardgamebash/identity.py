"""Participant identities and how a request maps onto one.

An identity is built once at the edge (HTTP handler, CLI, seed script) and
passed through unchanged. A user id and a guest name never match each other,
even when the strings are equal.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import and_

from .errors import NoParticipantIdentity
from .models import Participation
from .utils import clean_name


@dataclass(frozen=True)
class UserIdentity:
    id: str
    kind = "user"

    @property
    def label(self) -> str:
        return self.id


@dataclass(frozen=True)
class GuestIdentity:
    name: str
    kind = "guest"

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Guest name must not be empty")

    @property
    def label(self) -> str:
        return self.name


ParticipantIdentity = UserIdentity | GuestIdentity


@dataclass(frozen=True)
class CurrentUser:
    """The logged-in user as supplied by the auth layer."""

    id: str
    name: str
    is_admin: bool = False


class GuestLookup(Protocol):
    def first_attending_guest(self, event_id: str) -> GuestIdentity | None: ...


def guest_identity(raw_name: str | None) -> GuestIdentity | None:
    name = clean_name(raw_name)
    return GuestIdentity(name) if name else None


def resolve_key(
    current_user: CurrentUser | None,
    event_id: str,
    store: GuestLookup,
    *,
    guest_name: str | None = None,
) -> ParticipantIdentity | None:
    """Return the identity to look participation records up by.

    Logged-in users always resolve to their user id. Anonymous callers use the
    guest name they supplied, falling back to the first attending guest of the
    event so a returning browser can find its RSVP again.
    """
    if current_user is not None:
        return UserIdentity(current_user.id)
    supplied = guest_identity(guest_name)
    if supplied is not None:
        return supplied
    return store.first_attending_guest(event_id)


def require_key(
    current_user: CurrentUser | None,
    event_id: str,
    store: GuestLookup,
    *,
    guest_name: str | None = None,
) -> ParticipantIdentity:
    identity = resolve_key(current_user, event_id, store, guest_name=guest_name)
    if identity is None:
        raise NoParticipantIdentity()
    return identity


def identity_of(participation: Participation) -> ParticipantIdentity:
    if participation.user_id is not None:
        return UserIdentity(participation.user_id)
    return GuestIdentity(participation.attendee_name)


def identity_clause(identity: ParticipantIdentity):
    """SQL filter selecting the records that belong to ``identity``."""
    if isinstance(identity, UserIdentity):
        return Participation.user_id == identity.id
    if isinstance(identity, GuestIdentity):
        return and_(
            Participation.user_id.is_(None),
            Participation.attendee_name == identity.name,
        )
    raise TypeError(f"Unsupported identity {identity!r}")
