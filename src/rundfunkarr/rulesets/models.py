"""Pydantic models for the curated rulesets payload and its adapter.

The curated file is a JSON array of rulesets whose ``filters`` and
``titleRegexRules`` members are themselves JSON-encoded strings.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..models import MatchingStrategy, Ruleset, decode_filters, decode_title_rules

LOGGER = logging.getLogger(__name__)


class MediaPayload(BaseModel):
    """The show a curated ruleset belongs to."""

    model_config = ConfigDict(extra="ignore")

    media_id: int | None = None
    media_name: str = ""
    media_type: str | None = None
    media_tvdbId: int | None = None
    media_tmdbId: int | None = None
    media_imdbId: str | None = None


class RulesetPayload(BaseModel):
    """A single curated ruleset as published in ``rulesets.json``."""

    model_config = ConfigDict(extra="ignore")

    id: int
    mediaId: int | None = None
    topic: str
    priority: int = 0
    filters: str | list[Any] = "[]"
    titleRegexRules: str | list[Any] = "[]"
    episodeRegex: str | None = None
    seasonRegex: str | None = None
    matchingStrategy: str
    media: MediaPayload = Field(default_factory=MediaPayload)


class RulesetAdapter:
    """Converts curated ruleset payloads into ``Ruleset`` dataclasses."""

    def to_ruleset(self, payload: RulesetPayload) -> Ruleset | None:
        """Convert one payload; returns None when it cannot be dispatched."""
        strategy = MatchingStrategy.parse(payload.matchingStrategy)
        if strategy is None:
            LOGGER.warning(
                "Skipping ruleset %s for topic %r: unknown strategy %r",
                payload.id,
                payload.topic,
                payload.matchingStrategy,
            )
            return None
        show_id = payload.media.media_tvdbId
        if show_id is None:
            LOGGER.warning("Skipping ruleset %s for topic %r: no show id", payload.id, payload.topic)
            return None
        return Ruleset(
            id=payload.id,
            show_id=show_id,
            show_name=payload.media.media_name,
            topic=payload.topic,
            strategy=strategy,
            priority=payload.priority,
            filters=decode_filters(payload.filters),
            title_rules=decode_title_rules(payload.titleRegexRules),
            season_regex=payload.seasonRegex or None,
            episode_regex=payload.episodeRegex or None,
        )

    def to_rulesets(self, raw: Any) -> list[Ruleset]:
        """Validate and convert a decoded ``rulesets.json`` document.

        Entries that fail validation are logged and skipped individually.
        """
        if not isinstance(raw, list):
            raise ValueError("rulesets payload must be a JSON array")
        rulesets: list[Ruleset] = []
        for index, entry in enumerate(raw):
            try:
                payload = RulesetPayload.model_validate(entry)
            except ValidationError as exc:
                LOGGER.warning("Skipping invalid ruleset at index %d: %s", index, exc.errors()[0].get("msg", exc))
                continue
            ruleset = self.to_ruleset(payload)
            if ruleset is not None:
                rulesets.append(ruleset)
        return rulesets
