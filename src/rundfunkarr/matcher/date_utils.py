"""Date parsing for air-date based matching.

Catalog titles carry broadcast dates in a handful of German and ISO styles.
``parse_catalog_date`` tries them in a fixed order and returns ``None`` when
nothing fits, so callers can treat unparseable titles as a plain non-match.
"""

from __future__ import annotations

import datetime as dt
import re

GERMAN_MONTHS: dict[str, int] = {
    "januar": 1,
    "jänner": 1,
    "februar": 2,
    "märz": 3,
    "maerz": 3,
    "marz": 3,
    "april": 4,
    "mai": 5,
    "juni": 6,
    "juli": 7,
    "august": 8,
    "september": 9,
    "oktober": 10,
    "november": 11,
    "dezember": 12,
}

# Ordered: "7. Juni 2024", "31.12.2017", "2017-12-01", "20171201"
_LONG_GERMAN = re.compile(r"^(\d{1,2})\.\s*([^\W\d_]+)\s*(\d{4})$")
_DOTTED = re.compile(r"^(\d{1,2})\.(\d{1,2})\.(\d{4})$")
_ISO = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_COMPACT = re.compile(r"^(\d{4})(\d{2})(\d{2})$")


def _safe_date(year: int, month: int, day: int) -> dt.date | None:
    try:
        return dt.date(year, month, day)
    except ValueError:
        return None


def parse_catalog_date(value: str | None) -> dt.date | None:
    """Parse a candidate title into a calendar date.

    Args:
        value: Text such as ``"7. Juni 2024"`` or ``"20171201"``

    Returns:
        The parsed date, or None when no supported format matches
    """
    if not value:
        return None
    text = value.strip()

    match = _LONG_GERMAN.match(text)
    if match:
        month = GERMAN_MONTHS.get(match.group(2).lower())
        if month is not None:
            return _safe_date(int(match.group(3)), month, int(match.group(1)))

    match = _DOTTED.match(text)
    if match:
        return _safe_date(int(match.group(3)), int(match.group(2)), int(match.group(1)))

    match = _ISO.match(text)
    if match:
        return _safe_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))

    match = _COMPACT.match(text)
    if match:
        return _safe_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))

    return None


def parse_daily_selector(year: str, month_day: str) -> dt.date | None:
    """Parse a ``YYYY`` + ``MM/DD`` daily-show selector into a date."""
    parts = month_day.split("/")
    if len(parts) != 2:
        return None
    try:
        return _safe_date(int(year), int(parts[0]), int(parts[1]))
    except ValueError:
        return None
