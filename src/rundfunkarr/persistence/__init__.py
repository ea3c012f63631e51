"""Persistence layer for generated rulesets and metadata caching.

Public API:
- GeneratedRulesetStore: SQLite-backed store for generated rulesets
- PersistenceError / RulesetConflictError: store failures
- CacheEntry: A cached show with its expiry
- MetadataCacheStore: SQLite-backed TTL cache for show metadata
"""

from .generated_store import GeneratedRulesetStore, PersistenceError, RulesetConflictError
from .metadata_cache import CacheEntry, MetadataCacheStore, show_from_dict, show_to_dict

__all__ = [
    "CacheEntry",
    "GeneratedRulesetStore",
    "MetadataCacheStore",
    "PersistenceError",
    "RulesetConflictError",
    "show_from_dict",
    "show_to_dict",
]
