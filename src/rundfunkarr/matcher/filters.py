"""Pre-match filter evaluation.

Filters are cheap predicates evaluated before any matching strategy runs.
A hit must satisfy every filter of a ruleset to be considered by that
ruleset's strategy.
"""

from __future__ import annotations

from collections.abc import Iterable

from ..models import Filter, MatchType, RawHit
from ..utils import compile_pattern, parse_leading_float
from .fields import field_value

# Catalog versions that never correspond to a regular broadcast.
SKIP_KEYWORDS = (
    "Audiodeskription",
    "Hörfassung",
    "(klare Sprache)",
    "(Gebärdensprache)",
    "Trailer",
    "Outtakes:",
)

# Numeric filter values are stored in minutes while durations are seconds.
# Every numeric comparison scales the filter side, as existing rulesets expect.
NUMERIC_VALUE_SCALE = 60


def should_skip_hit(hit: RawHit) -> bool:
    """Return True for streaming playlists and accessibility/trailer variants."""
    if hit.url_video.endswith(".m3u8"):
        return True
    return any(keyword in hit.title for keyword in SKIP_KEYWORDS)


def _compare_numeric(attribute_value: str, filter_value: str, *, greater: bool) -> bool:
    attribute_number = parse_leading_float(attribute_value)
    filter_number = parse_leading_float(filter_value)
    if attribute_number is None or filter_number is None:
        return False
    threshold = filter_number * NUMERIC_VALUE_SCALE
    if greater:
        return attribute_number > threshold
    return attribute_number < threshold


def filter_matches(hit: RawHit, flt: Filter) -> bool:
    """Evaluate a single filter against ``hit``. Never raises."""
    attribute_value = field_value(hit, flt.attribute)
    filter_value = "" if flt.value is None else str(flt.value)
    match_type = flt.match_type

    if match_type is MatchType.EXACT_MATCH:
        return attribute_value.lower() == filter_value.lower()
    if match_type is MatchType.CONTAINS:
        return filter_value.lower() in attribute_value.lower()
    if match_type is MatchType.REGEX:
        if not filter_value:
            return True
        pattern = compile_pattern(filter_value)
        if pattern is None:
            return False
        return pattern.search(attribute_value) is not None
    if match_type is MatchType.GREATER_THAN:
        return _compare_numeric(attribute_value, filter_value, greater=True)
    if match_type is MatchType.LESS_THAN:
        return _compare_numeric(attribute_value, filter_value, greater=False)
    return False


def passes_filters(hit: RawHit, filters: Iterable[Filter]) -> bool:
    return all(filter_matches(hit, flt) for flt in filters)
