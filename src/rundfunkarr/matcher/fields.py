"""Field extraction from catalog hits.

Every later matching stage reads hit attributes through ``field_value`` so
that rule authors can name fields as plain strings. Absent or unknown fields
are represented by an empty string, never ``None``.
"""

from __future__ import annotations

from collections.abc import Callable

from ..models import RawHit

FIELD_GETTERS: dict[str, Callable[[RawHit], object]] = {
    "channel": lambda hit: hit.channel,
    "topic": lambda hit: hit.topic,
    "title": lambda hit: hit.title,
    "description": lambda hit: hit.description,
    "timestamp": lambda hit: hit.timestamp,
    "duration": lambda hit: hit.duration,
    "size": lambda hit: hit.size,
    "url_website": lambda hit: hit.url_website,
    "url_video": lambda hit: hit.url_video,
    "url_video_low": lambda hit: hit.url_video_low,
    "url_video_hd": lambda hit: hit.url_video_hd,
}


def field_value(hit: RawHit, name: str | None) -> str:
    """Return the string form of ``name`` on ``hit`` (numbers stringified)."""
    getter = FIELD_GETTERS.get(name or "")
    if getter is None:
        return ""
    value = getter(hit)
    if value is None:
        return ""
    return str(value)
