"""Error kinds raised by the participation core."""

from __future__ import annotations


class BoardgameBashError(Exception):
    """Base class for domain errors."""

    code = "BoardgameBashError"
    user_message = "Something went wrong."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.user_message)

    def as_payload(self) -> dict[str, object]:
        return {"error": self.code, "message": str(self)}


class NoParticipantIdentity(BoardgameBashError):
    """Raised when a ranking or exclusion change has nobody to attach to."""

    code = "NoParticipantIdentity"
    user_message = "Please RSVP before saving game preferences."


class PersistenceFailure(BoardgameBashError):
    """Raised when the database rejects a store operation.

    The session is rolled back before this is raised, so the previously
    persisted state is unchanged and the caller may retry.
    """

    code = "PersistenceFailure"
    user_message = "Could not save your changes. Please try again."


class RecordNotFound(BoardgameBashError):
    """Raised when an event or participation record does not exist."""

    code = "RecordNotFound"
    user_message = "Could not find your RSVP record."
