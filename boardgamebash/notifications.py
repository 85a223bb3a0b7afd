"""Human-readable outcome messages for participation operations."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger("uvicorn.error")

SUCCESS = "success"
WARNING = "warning"
ERROR = "error"


@dataclass(frozen=True)
class Notification:
    level: str
    title: str
    message: str

    def as_dict(self) -> dict[str, str]:
        return {"level": self.level, "title": self.title, "message": self.message}


class Notifier(Protocol):
    def notify(self, notification: Notification) -> None: ...


class CollectingNotifier:
    """Keep notifications in memory so a response can echo them back."""

    def __init__(self) -> None:
        self.notifications: list[Notification] = []

    def notify(self, notification: Notification) -> None:
        self.notifications.append(notification)

    def as_list(self) -> list[dict[str, str]]:
        return [n.as_dict() for n in self.notifications]


class LoggingNotifier:
    def notify(self, notification: Notification) -> None:
        level = logging.ERROR if notification.level == ERROR else logging.INFO
        logger.log(level, "%s: %s", notification.title, notification.message)


def attendance_confirmed(name: str) -> Notification:
    return Notification(
        SUCCESS, "RSVP Confirmed!", f"{name} has been added to the event attendees."
    )


def attendance_cancelled(name: str) -> Notification:
    return Notification(
        SUCCESS, "RSVP Cancelled", f"{name} has been removed from the event attendees."
    )


def rankings_saved() -> Notification:
    return Notification(
        SUCCESS, "Preferences Saved", "Your game rankings have been saved."
    )


def exclusions_saved() -> Notification:
    return Notification(
        SUCCESS, "Exclusions Saved", "Your game exclusions have been saved."
    )


def preferences_saved() -> Notification:
    return Notification(
        SUCCESS, "Preferences Saved", "Your game preferences have been saved."
    )


def record_recovered() -> Notification:
    return Notification(
        WARNING,
        "RSVP Restored",
        "We could not find your RSVP record, so we created one and marked you as attending.",
    )


def save_failed() -> Notification:
    return Notification(
        ERROR, "Save Error", "Could not save your preferences. Please try again."
    )
