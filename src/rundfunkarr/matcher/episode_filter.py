"""Desired-episode selection for season/episode search requests.

A caller may ask for a whole season, a single episode, a calendar year of a
dated show (``season="2024"``) or a single day of a daily show
(``season="2024"``, ``episode="03/15"``).
"""

from __future__ import annotations

from collections.abc import Iterable

from ..models import Episode, MatchedEpisodeInfo, ShowMetadata
from .date_utils import parse_daily_selector

MIN_YEAR_SEASON = 1900
MAX_YEAR_SEASON = 2100


def _parse_int(value: str) -> int | None:
    try:
        return int(value.strip())
    except ValueError:
        return None


def _looks_like_year(token: str) -> bool:
    stripped = token.strip()
    if len(stripped) != 4 or not stripped.isdigit():
        return False
    return MIN_YEAR_SEASON <= int(stripped) <= MAX_YEAR_SEASON


def desired_episodes(show: ShowMetadata, season: str | None, episode: str | None = None) -> list[Episode] | None:
    """Resolve the caller's selector into concrete episodes.

    Returns:
        None when no season was requested (everything passes), otherwise the
        list of wanted episodes, which may be empty.
    """
    if not season:
        return None

    desired: list[Episode] = []
    if not episode:
        season_number = _parse_int(season)
        if season_number is not None:
            desired.extend(show.episodes_in_season(season_number))
        if _looks_like_year(season):
            seen = {item.key for item in desired}
            for candidate in show.episodes_in_year(int(season)):
                if candidate.key not in seen:
                    seen.add(candidate.key)
                    desired.append(candidate)
        return desired

    if len(season.strip()) == 4 and "/" in episode:
        aired = parse_daily_selector(season.strip(), episode.strip())
        if aired is not None:
            found = show.find_by_air_date(aired)
            if found is not None:
                desired.append(found)
        return desired

    season_number = _parse_int(season)
    episode_number = _parse_int(episode)
    if season_number is not None and episode_number is not None:
        found = show.find_episode(season_number, episode_number)
        if found is not None:
            desired.append(found)
    return desired


def filter_desired(
    matches: Iterable[MatchedEpisodeInfo],
    desired: list[Episode] | None,
) -> list[MatchedEpisodeInfo]:
    """Keep matches whose (season, episode) is in ``desired``; None keeps all."""
    if desired is None:
        return list(matches)
    wanted = {episode.key for episode in desired}
    return [match for match in matches if match.episode.key in wanted]
