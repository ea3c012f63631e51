"""Show metadata providers.

Public API:
- MetadataProvider: Protocol implemented by every provider
- LocalShowsProvider: Shows from the bundled ``shows.json``
- TvdbProvider: TheTVDB v4 API with SQLite caching
- TmdbProvider: TMDB v3 API, looked up by TVDB id, with SQLite caching
- ProviderChain: First-answer-wins chain with an expiring in-memory cache
"""

from __future__ import annotations

from .providers import LocalShowsProvider, MetadataProvider, MetadataProviderError, ProviderChain
from .tmdb import TmdbProvider
from .tvdb import TvdbProvider, cache_ttl_hours

__all__ = [
    "LocalShowsProvider",
    "MetadataProvider",
    "MetadataProviderError",
    "ProviderChain",
    "TmdbProvider",
    "TvdbProvider",
    "cache_ttl_hours",
]
