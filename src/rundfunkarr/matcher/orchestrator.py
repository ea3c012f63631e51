"""Main matcher orchestration - routes catalog hits through rulesets.

For every hit the candidate rulesets of its topic are tried in order. A
ruleset whose filters reject the hit is skipped; the first ruleset whose
strategy yields an episode wins and later rulesets are not consulted.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

from ..models import MatchedEpisodeInfo, RawHit, Ruleset, ShowMetadata
from .filters import passes_filters, should_skip_hit
from .strategies import apply_strategy

if TYPE_CHECKING:
    from ..rulesets.store import RulesetStore

LOGGER = logging.getLogger(__name__)

ShowResolver = Callable[[int], "ShowMetadata | None"]

# Number of hits logged in detail per run.
_LOGGED_HIT_SAMPLE = 5


def match_hit(
    hit: RawHit,
    rulesets: Iterable[Ruleset],
    resolve_show: Callable[[Ruleset], ShowMetadata | None],
    *,
    threshold: float = 1.0,
    diagnostics: list[tuple[str, str]] | None = None,
) -> MatchedEpisodeInfo | None:
    """Match a single hit against an ordered ruleset list.

    Args:
        hit: Catalog hit to match
        rulesets: Candidate rulesets in precedence order
        resolve_show: Returns the show metadata a ruleset targets
        threshold: Fuzzy title threshold for title-based strategies
        diagnostics: Optional list to collect ``(severity, message)`` tuples

    Returns:
        The first successful match, or None
    """

    def record(severity: str, message: str) -> None:
        if diagnostics is not None:
            diagnostics.append((severity, message))

    for ruleset in rulesets:
        descriptor = f"{ruleset.topic}#{ruleset.id} ({ruleset.strategy.value})"
        if not passes_filters(hit, ruleset.filters):
            record("ignored", f"{descriptor}: filters rejected {hit.title!r}")
            continue
        show = resolve_show(ruleset)
        if show is None:
            record("warning", f"{descriptor}: no metadata for show {ruleset.show_id}")
            continue
        result = apply_strategy(hit, ruleset, show, threshold=threshold)
        if result is not None:
            return result
        record("ignored", f"{descriptor}: no episode matched {hit.title!r}")
    return None


def _dedupe_key(match: MatchedEpisodeInfo) -> tuple[object, ...]:
    hit = match.hit
    identity = hit.url_video or f"{hit.channel}|{hit.title}|{hit.timestamp}"
    return (identity, match.show_id, match.episode.key)


class HitMatcher:
    """Matches catalog hits using the rulesets held by a ``RulesetStore``."""

    def __init__(self, store: RulesetStore, resolve_show: ShowResolver, *, threshold: float = 1.0) -> None:
        self._store = store
        self._resolve_show = resolve_show
        self._threshold = threshold

    def match(
        self,
        hits: Iterable[RawHit],
        show: ShowMetadata | None = None,
        *,
        diagnostics: list[tuple[str, str]] | None = None,
    ) -> list[MatchedEpisodeInfo]:
        """Match ``hits``; with ``show`` only that show's rulesets are used.

        Results keep catalog order and are de-duplicated by (video, episode).
        """
        self._store.ensure_loaded()
        if show is not None and not self._store.has_ruleset_for_show(show.show_id):
            LOGGER.warning("No rulesets found for show %s (%s)", show.show_id, show.display_name)

        shows: dict[int, ShowMetadata | None] = {}
        if show is not None:
            shows[show.show_id] = show

        def resolve(ruleset: Ruleset) -> ShowMetadata | None:
            if ruleset.show_id not in shows:
                shows[ruleset.show_id] = self._resolve_show(ruleset.show_id)
            return shows[ruleset.show_id]

        matches: list[MatchedEpisodeInfo] = []
        seen: set[tuple[object, ...]] = set()
        checked = 0
        for hit in hits:
            if should_skip_hit(hit):
                continue
            if show is not None:
                rulesets = self._store.rulesets_for_topic_and_show(hit.topic, show.show_id)
            else:
                rulesets = self._store.rulesets_for_topic(hit.topic)

            if checked < _LOGGED_HIT_SAMPLE:
                LOGGER.debug("Checking hit topic=%r title=%r rulesets=%d", hit.topic, hit.title, len(rulesets))
                checked += 1
            if not rulesets:
                continue

            result = match_hit(hit, rulesets, resolve, threshold=self._threshold, diagnostics=diagnostics)
            if result is None:
                continue
            key = _dedupe_key(result)
            if key in seen:
                continue
            seen.add(key)
            matches.append(result)
        return matches
