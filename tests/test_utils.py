from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

import pytest

from boardgamebash.utils import clean_name, complexity_band, to_naive_utc, utcnow


@pytest.mark.parametrize(
    ("rating", "band"),
    [
        (None, "light"),
        (0, "light"),
        (1.0, "light"),
        (1.5, "light"),
        (1.8, "medium-light"),
        (2.5, "medium-light"),
        (3.9, "medium-heavy"),
        (3.5, "medium"),
        (4.51, "heavy"),
        (5.0, "heavy"),
    ],
)
def test_complexity_band_boundaries(rating, band):
    assert complexity_band(rating) == band


def test_to_naive_utc_converts_aware_datetimes():
    aware = datetime(2030, 1, 1, 20, 0, tzinfo=timezone(timedelta(hours=2)))
    assert to_naive_utc(aware) == datetime(2030, 1, 1, 18, 0)
    assert to_naive_utc(datetime(2030, 1, 1, 18, 0)) == datetime(2030, 1, 1, 18, 0)
    assert to_naive_utc(None) is None


def test_utcnow_is_naive():
    now = utcnow()
    assert now.tzinfo is None
    assert abs(datetime.now(UTC).replace(tzinfo=None) - now) < timedelta(seconds=5)


def test_clean_name_strips_whitespace():
    assert clean_name("  Robin ") == "Robin"
    assert clean_name(None) == ""
