"""Fuzzy string similarity utilities.

Title comparisons use rapidfuzz's normalized Levenshtein similarity, which is
``1 - distance / max(len(a), len(b))`` and therefore symmetric.
"""

from __future__ import annotations

from rapidfuzz.distance import Levenshtein

from ..models import Episode
from ..utils import normalize_title


def string_similarity(candidate: str, target: str) -> float:
    """Calculate normalized similarity between two strings.

    Args:
        candidate: First string to compare
        target: Second string to compare

    Returns:
        Float between 0.0 and 1.0 where 1.0 is identical
    """
    if candidate == target:
        return 1.0
    if not candidate or not target:
        return 0.0
    return float(Levenshtein.normalized_similarity(candidate, target))


def best_similar_episodes(
    candidate: str,
    episodes: list[Episode],
    threshold: float,
    *,
    strict: bool = False,
) -> tuple[float, list[Episode]]:
    """Return the best similarity score and every episode that reaches it.

    ``candidate`` must already be normalized. With ``strict`` the score has to
    exceed ``threshold``; otherwise reaching it is enough.
    """
    best_score = 0.0
    best: list[Episode] = []
    for episode in episodes:
        name = normalize_title(episode.name)
        if not name:
            continue
        score = string_similarity(candidate, name)
        passes = score > threshold if strict else score >= threshold
        if not passes:
            continue
        if score > best_score:
            best_score = score
            best = [episode]
        elif score == best_score:
            best.append(episode)
    return best_score, best
