"""Ruleset loading, indexing and generation.

Public API:
- CuratedRulesetSource: Loads the curated ``rulesets.json`` (remote, then local)
- RulesetStore: Snapshot-based topic index over curated and generated rulesets
- RulesetGenerator: Derives a ruleset for a show from catalog samples
- RulesetAdapter: Converts curated payloads into ``Ruleset`` dataclasses
"""

from __future__ import annotations

from .generator import RulesetGenerator, analyze_titles, detect_strategy, find_best_topic, synthesize_template
from .models import RulesetAdapter, RulesetPayload
from .sources import CuratedRulesetSource, RulesetSource
from .store import RulesetSnapshot, RulesetStore

__all__ = [
    "CuratedRulesetSource",
    "RulesetAdapter",
    "RulesetGenerator",
    "RulesetPayload",
    "RulesetSnapshot",
    "RulesetSource",
    "RulesetStore",
    "analyze_titles",
    "detect_strategy",
    "find_best_topic",
    "synthesize_template",
]
