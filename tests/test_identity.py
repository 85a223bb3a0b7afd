from __future__ import annotations

import pytest

from boardgamebash.errors import NoParticipantIdentity
from boardgamebash.identity import (
    CurrentUser,
    GuestIdentity,
    UserIdentity,
    guest_identity,
    require_key,
    resolve_key,
)


class _Lookup:
    def __init__(self, guest: GuestIdentity | None = None) -> None:
        self.guest = guest
        self.calls: list[str] = []

    def first_attending_guest(self, event_id: str) -> GuestIdentity | None:
        self.calls.append(event_id)
        return self.guest


def test_logged_in_user_wins_over_guest_name():
    lookup = _Lookup(GuestIdentity("Dana"))
    user = CurrentUser(id="u-1", name="Sam")

    identity = resolve_key(user, "e-1", lookup, guest_name="Robin")

    assert identity == UserIdentity("u-1")
    assert lookup.calls == []


def test_supplied_guest_name_is_trimmed():
    identity = resolve_key(None, "e-1", _Lookup(), guest_name="  Robin  ")
    assert identity == GuestIdentity("Robin")


def test_falls_back_to_first_attending_guest():
    lookup = _Lookup(GuestIdentity("Dana"))

    identity = resolve_key(None, "e-1", lookup, guest_name="   ")

    assert identity == GuestIdentity("Dana")
    assert lookup.calls == ["e-1"]


def test_resolve_returns_none_without_any_identity():
    assert resolve_key(None, "e-1", _Lookup()) is None


def test_require_key_raises_no_participant_identity():
    with pytest.raises(NoParticipantIdentity) as excinfo:
        require_key(None, "e-1", _Lookup())
    assert excinfo.value.as_payload()["error"] == "NoParticipantIdentity"


def test_user_and_guest_with_same_text_are_distinct():
    assert UserIdentity("Robin") != GuestIdentity("Robin")
    assert UserIdentity("Robin").kind == "user"
    assert GuestIdentity("Robin").kind == "guest"


def test_guest_identity_rejects_blank_names():
    assert guest_identity("") is None
    assert guest_identity(None) is None
    with pytest.raises(ValueError):
        GuestIdentity("")
