"""Matching strategies that turn a catalog hit into a specific episode.

Each ruleset names exactly one strategy. Strategies are plain functions with
the signature ``(hit, ruleset, show, *, threshold) -> MatchedEpisodeInfo | None``
and are looked up in ``STRATEGY_HANDLERS``, which is checked at import time to
cover every ``MatchingStrategy`` member.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from ..models import Episode, MatchedEpisodeInfo, MatchingStrategy, RawHit, Ruleset, ShowMetadata
from ..utils import compile_pattern, normalize_title
from .date_utils import parse_catalog_date
from .fields import field_value
from .similarity import best_similar_episodes
from .title_builder import build_title

LOGGER = logging.getLogger(__name__)

# Floor applied to the fuzzy fallback of exact title matching.
EXACT_FUZZY_FLOOR = 0.9

StrategyHandler = Callable[..., "MatchedEpisodeInfo | None"]


def extract_number(hit: RawHit, pattern: str | None) -> str | None:
    """Return the first capture group of ``pattern`` applied to the hit title."""
    compiled = compile_pattern(pattern)
    if compiled is None or compiled.groups < 1:
        return None
    text = field_value(hit, "title")
    if not text:
        return None
    match = compiled.search(text)
    if match is None:
        return None
    return match.group(1)


def _to_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


def _result(episode: Episode, hit: RawHit, show: ShowMetadata, matched_title: str) -> MatchedEpisodeInfo:
    return MatchedEpisodeInfo(
        episode=episode,
        hit=hit,
        show_name=show.display_name,
        matched_title=matched_title,
        show_id=show.show_id,
    )


def _break_tie(candidates: list[Episode], hit: RawHit) -> Episode:
    """Prefer the episode aired on the hit's catalog day, else the newest one."""
    if len(candidates) == 1:
        return candidates[0]
    catalog_day = hit.catalog_date
    for episode in candidates:
        if episode.aired is not None and episode.aired == catalog_day:
            return episode
    dated = [episode for episode in candidates if episode.aired is not None]
    if not dated:
        return candidates[0]
    return max(dated, key=lambda episode: episode.aired)


def match_season_and_episode(
    hit: RawHit,
    ruleset: Ruleset,
    show: ShowMetadata,
    *,
    threshold: float = 1.0,
) -> MatchedEpisodeInfo | None:
    season_raw = extract_number(hit, ruleset.season_regex)
    episode_raw = extract_number(hit, ruleset.episode_regex)
    season_number = _to_int(season_raw)
    episode_number = _to_int(episode_raw)
    if season_number is None or episode_number is None:
        return None

    episode = show.find_episode(season_number, episode_number)
    if episode is None:
        LOGGER.debug("No episode S%sE%s for %s (%s)", season_raw, episode_raw, show.display_name, hit.title)
        return None
    return _result(episode, hit, show, f"S{season_raw}E{episode_raw}")


def match_item_title_includes(
    hit: RawHit,
    ruleset: Ruleset,
    show: ShowMetadata,
    *,
    threshold: float = 1.0,
) -> MatchedEpisodeInfo | None:
    constructed = build_title(hit, ruleset.title_rules)
    if not constructed:
        return None
    candidate = normalize_title(constructed)
    if not candidate:
        return None

    for episode in show.episodes:
        name = normalize_title(episode.name)
        if name and name in candidate:
            return _result(episode, hit, show, constructed)

    if threshold >= 1.0:
        return None
    _, best = best_similar_episodes(candidate, show.episodes, threshold)
    if not best:
        return None
    return _result(best[0], hit, show, constructed)


def match_item_title_exact(
    hit: RawHit,
    ruleset: Ruleset,
    show: ShowMetadata,
    *,
    threshold: float = 1.0,
) -> MatchedEpisodeInfo | None:
    constructed = build_title(hit, ruleset.title_rules)
    if not constructed:
        return None
    candidate = normalize_title(constructed)
    if not candidate:
        return None

    candidates = [episode for episode in show.episodes if normalize_title(episode.name) == candidate]
    if not candidates and threshold < 1.0:
        floor = max(threshold, EXACT_FUZZY_FLOOR)
        _, candidates = best_similar_episodes(candidate, show.episodes, floor, strict=True)
    if not candidates:
        return None
    return _result(_break_tie(candidates, hit), hit, show, constructed)


def match_item_title_equals_airdate(
    hit: RawHit,
    ruleset: Ruleset,
    show: ShowMetadata,
    *,
    threshold: float = 1.0,
) -> MatchedEpisodeInfo | None:
    constructed = build_title(hit, ruleset.title_rules)
    if not constructed:
        return None
    aired = parse_catalog_date(constructed)
    if aired is None:
        return None
    episode = show.find_by_air_date(aired)
    if episode is None:
        return None
    return _result(episode, hit, show, constructed)


def match_absolute_episode_number(
    hit: RawHit,
    ruleset: Ruleset,
    show: ShowMetadata,
    *,
    threshold: float = 1.0,
) -> MatchedEpisodeInfo | None:
    number = _to_int(extract_number(hit, ruleset.episode_regex))
    if number is None or number < 1:
        return None
    regular = sorted(
        (episode for episode in show.episodes if episode.season_number >= 1),
        key=lambda episode: episode.key,
    )
    if number > len(regular):
        return None
    return _result(regular[number - 1], hit, show, f"E{number}")


STRATEGY_HANDLERS: dict[MatchingStrategy, StrategyHandler] = {
    MatchingStrategy.SEASON_AND_EPISODE_NUMBER: match_season_and_episode,
    MatchingStrategy.ITEM_TITLE_INCLUDES: match_item_title_includes,
    MatchingStrategy.ITEM_TITLE_EXACT: match_item_title_exact,
    MatchingStrategy.ITEM_TITLE_EQUALS_AIRDATE: match_item_title_equals_airdate,
    MatchingStrategy.BY_ABSOLUTE_EPISODE_NUMBER: match_absolute_episode_number,
}

_missing = set(MatchingStrategy) - set(STRATEGY_HANDLERS)
if _missing:  # pragma: no cover - guards against adding a strategy without a handler
    raise RuntimeError(f"No handler registered for strategies: {sorted(item.value for item in _missing)}")


def apply_strategy(
    hit: RawHit,
    ruleset: Ruleset,
    show: ShowMetadata,
    *,
    threshold: float = 1.0,
) -> MatchedEpisodeInfo | None:
    """Run the ruleset's strategy for ``hit``; shows without episodes never match."""
    if not show.episodes:
        return None
    handler = STRATEGY_HANDLERS[ruleset.strategy]
    return handler(hit, ruleset, show, threshold=threshold)
