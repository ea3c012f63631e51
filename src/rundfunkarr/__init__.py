"""rundfunkarr core package.

The package maps MediathekView catalog entries onto show episodes and movies:

- **matcher**: Field extraction, filters, matching strategies and the hit orchestrator
- **rulesets**: Curated ruleset loading, the topic index store and ruleset generation
- **persistence**: SQLite stores for generated rulesets and cached show metadata
- **catalog**: MediathekView query client
- **metadata**: Show metadata providers (local show list, TheTVDB)
- **search**: ``SearchService``, the entry point that wires everything together

The main entry point is ``SearchService``, usually built with ``build_search_service``.
"""

from .search import SearchResult, SearchService, build_search_service
from .version import __version__

__all__ = [
    "__version__",
    "SearchResult",
    "SearchService",
    "build_search_service",
]
