"""Movie hit scoring.

Movies have no rulesets; every feature-length hit is scored on how well its
topic/title resembles the movie's local or original title, plus a bonus for a
runtime close to the movie's.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from typing import Optional

from ..models import MovieMatchResult, MovieRecord, RawHit, TitleMatch
from .similarity import string_similarity

LOGGER = logging.getLogger(__name__)

DEFAULT_DURATION_TOLERANCE = 10
MIN_MOVIE_MINUTES = 60

_PUNCTUATION = re.compile(r"[/:;,\"'“”‘’@#?$%^*+=!|<>()&]")
_DASHES = re.compile(r"[-–—]")
_SPACES = re.compile(r"\s+")

# (exact score, similarity weight for >= 0.9, weight for >= 0.7, partial score)
_LOCAL_WEIGHTS = (100.0, 100.0, 100.0, 60.0)
_ORIGINAL_WEIGHTS = (95.0, 95.0, 90.0, 55.0)


def normalize_movie_title(title: str) -> str:
    lowered = _PUNCTUATION.sub("", title.lower())
    lowered = _DASHES.sub(" ", lowered)
    return _SPACES.sub(" ", lowered).strip()


def _score_title(
    target: str,
    topic: str,
    title: str,
    combined: str,
    weights: tuple[float, float, float, float],
) -> tuple[Optional[TitleMatch], float]:
    exact_score, high_weight, fuzzy_weight, partial_score = weights
    if target in (topic, title, combined):
        return TitleMatch.EXACT, exact_score

    best = max(
        string_similarity(topic, target),
        string_similarity(title, target),
        string_similarity(combined, target),
    )
    if best >= 0.9:
        return TitleMatch.EXACT, best * high_weight
    if best >= 0.7:
        return TitleMatch.FUZZY, best * fuzzy_weight
    if target in topic or topic in target or target in title or title in target:
        return TitleMatch.PARTIAL, partial_score
    return None, 0.0


def _duration_score(runtime: Optional[int], diff: int, tolerance: int) -> float:
    if not runtime:
        # unknown runtime
        return 10.0
    if diff <= tolerance:
        return 20.0
    if diff <= tolerance * 2:
        return 10.0
    return 0.0


def match_movie_hits(
    hits: Iterable[RawHit],
    movie: MovieRecord,
    duration_tolerance: int = DEFAULT_DURATION_TOLERANCE,
) -> list[MovieMatchResult]:
    """Score ``hits`` against ``movie`` and return them best first.

    Streaming playlists and hits shorter than an hour are ignored. Hits whose
    titles resemble neither the local nor the original title are dropped.
    """
    local_title = normalize_movie_title(movie.local_title or movie.title)
    original_title = normalize_movie_title(movie.title)
    runtime = movie.runtime or 0

    results: list[MovieMatchResult] = []
    for hit in hits:
        if hit.url_video.endswith(".m3u8"):
            continue
        minutes = hit.duration // 60
        if minutes < MIN_MOVIE_MINUTES:
            continue

        topic = normalize_movie_title(hit.topic)
        title = normalize_movie_title(hit.title)
        combined = normalize_movie_title(f"{hit.topic} {hit.title}")

        title_match, title_score = _score_title(local_title, topic, title, combined, _LOCAL_WEIGHTS)
        if title_match is None and original_title != local_title:
            title_match, title_score = _score_title(original_title, topic, title, combined, _ORIGINAL_WEIGHTS)
        if title_match is None:
            continue

        diff = abs(runtime - minutes)
        score = title_score * 0.8 + _duration_score(runtime, diff, duration_tolerance)
        results.append(MovieMatchResult(hit=hit, score=score, title_match=title_match, duration_diff=diff))

    results.sort(key=lambda result: result.score, reverse=True)
    LOGGER.debug("Movie %r matched %d hit(s)", movie.local_title or movie.title, len(results))
    return results
