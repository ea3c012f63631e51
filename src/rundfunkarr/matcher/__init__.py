"""Matcher package for ruleset-driven episode matching.

This package provides the core matching logic for rundfunkarr, including:
- Field extraction and pre-match filters
- Candidate title construction
- Per-strategy episode matching
- Desired-episode selection
- Movie hit scoring

Public API:
- HitMatcher: Matches catalog hits using the rulesets of a store
- match_hit: Match a single hit against an ordered ruleset list
- desired_episodes / filter_desired: Season/episode request narrowing
- match_movie_hits: Score hits against a movie

Example:
    from rundfunkarr.matcher import HitMatcher

    matcher = HitMatcher(store, provider.get_show)
    for match in matcher.match(hits, show):
        print(match.matched_title, match.episode.key)
"""

from .episode_filter import desired_episodes, filter_desired
from .filters import filter_matches, passes_filters, should_skip_hit
from .movie import match_movie_hits
from .orchestrator import HitMatcher, match_hit
from .strategies import STRATEGY_HANDLERS, apply_strategy
from .title_builder import build_title

__all__ = [
    "HitMatcher",
    "STRATEGY_HANDLERS",
    "apply_strategy",
    "build_title",
    "desired_episodes",
    "filter_desired",
    "filter_matches",
    "match_hit",
    "match_movie_hits",
    "passes_filters",
    "should_skip_hit",
]
