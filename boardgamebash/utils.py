"""Utility helpers for Boardgame Bash."""

from __future__ import annotations

from datetime import UTC, datetime

COMPLEXITY_BANDS: tuple[tuple[float, str], ...] = (
    (1.5, "light"),
    (2.5, "medium-light"),
    (3.5, "medium"),
    (4.5, "medium-heavy"),
)
HEAVIEST_BAND = "heavy"


def utcnow() -> datetime:
    """Return a naive UTC datetime."""

    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(value: datetime | None) -> datetime | None:
    """Convert aware datetimes to naive UTC; naive values are assumed UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def complexity_band(rating: float | None) -> str:
    """Bucket a complexity rating into one of five ordered bands.

    Missing or zero ratings count as ``light``.
    """
    if not rating:
        return COMPLEXITY_BANDS[0][1]
    for upper, name in COMPLEXITY_BANDS:
        if rating <= upper:
            return name
    return HEAVIEST_BAND


def clean_name(raw: str | None) -> str:
    """Collapse surrounding whitespace in a display name."""
    return (raw or "").strip()
