from __future__ import annotations

import datetime as dt
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class MatchingStrategy(Enum):
    SEASON_AND_EPISODE_NUMBER = "SeasonAndEpisodeNumber"
    ITEM_TITLE_INCLUDES = "ItemTitleIncludes"
    ITEM_TITLE_EXACT = "ItemTitleExact"
    ITEM_TITLE_EQUALS_AIRDATE = "ItemTitleEqualsAirdate"
    BY_ABSOLUTE_EPISODE_NUMBER = "ByAbsoluteEpisodeNumber"

    @classmethod
    def parse(cls, value: str | None) -> Optional["MatchingStrategy"]:
        if not value:
            return None
        try:
            return cls(str(value).strip())
        except ValueError:
            return None


class MatchType(Enum):
    EXACT_MATCH = "ExactMatch"
    CONTAINS = "Contains"
    REGEX = "Regex"
    GREATER_THAN = "GreaterThan"
    LESS_THAN = "LessThan"

    @classmethod
    def parse(cls, value: str | None) -> Optional["MatchType"]:
        if not value:
            return None
        try:
            return cls(str(value).strip())
        except ValueError:
            return None


class TitleRuleType(Enum):
    STATIC = "static"
    REGEX = "regex"


class TitleMatch(Enum):
    EXACT = "exact"
    FUZZY = "fuzzy"
    PARTIAL = "partial"


@dataclass(frozen=True, slots=True)
class RawHit:
    """A single catalog search result as published by MediathekView."""

    channel: str
    topic: str
    title: str
    description: str = ""
    timestamp: int = 0
    duration: int = 0
    size: int = 0
    url_website: str = ""
    url_video: str = ""
    url_video_low: str = ""
    url_video_hd: str = ""

    @property
    def catalog_date(self) -> dt.date:
        """Calendar day (UTC) on which the hit was added to the catalog."""
        return dt.datetime.fromtimestamp(self.timestamp, tz=dt.UTC).date()


@dataclass(frozen=True, slots=True)
class Episode:
    season_number: int
    episode_number: int
    name: str
    aired: Optional[dt.date] = None
    runtime: Optional[int] = None

    @property
    def key(self) -> tuple[int, int]:
        return (self.season_number, self.episode_number)


@dataclass(slots=True)
class ShowMetadata:
    show_id: int
    name: str
    local_name: Optional[str] = None
    aliases: list[str] = field(default_factory=list)
    episodes: list[Episode] = field(default_factory=list)

    @property
    def display_name(self) -> str:
        return self.name or self.local_name or ""

    def search_names(self) -> list[str]:
        """Lowercased names used to recognise the show's catalog topic."""
        names: list[str] = []
        for candidate in (self.local_name, self.name, *self.aliases):
            if not candidate:
                continue
            lowered = candidate.strip().lower()
            if lowered and lowered not in names:
                names.append(lowered)
        return names

    def find_episode(self, season_number: int, episode_number: int) -> Optional[Episode]:
        for episode in self.episodes:
            if episode.season_number == season_number and episode.episode_number == episode_number:
                return episode
        return None

    def find_by_air_date(self, day: dt.date) -> Optional[Episode]:
        for episode in self.episodes:
            if episode.aired is not None and episode.aired == day:
                return episode
        return None

    def episodes_in_season(self, season_number: int) -> list[Episode]:
        return [episode for episode in self.episodes if episode.season_number == season_number]

    def episodes_in_year(self, year: int) -> list[Episode]:
        return [episode for episode in self.episodes if episode.aired is not None and episode.aired.year == year]


@dataclass(frozen=True, slots=True)
class Filter:
    attribute: str
    match_type: MatchType
    value: str


@dataclass(frozen=True, slots=True)
class TitleRule:
    type: TitleRuleType
    value: Optional[str] = None
    field: Optional[str] = None
    pattern: Optional[str] = None

    def to_dict(self) -> dict[str, str]:
        payload = {"type": self.type.value}
        if self.value is not None:
            payload["value"] = self.value
        if self.field is not None:
            payload["field"] = self.field
        if self.pattern is not None:
            payload["pattern"] = self.pattern
        return payload


@dataclass(frozen=True, slots=True)
class Ruleset:
    """Recipe binding a catalog topic to a show and a matching strategy."""

    id: int
    show_id: int
    show_name: str
    topic: str
    strategy: MatchingStrategy
    priority: int = 0
    filters: tuple[Filter, ...] = ()
    title_rules: tuple[TitleRule, ...] = ()
    season_regex: Optional[str] = None
    episode_regex: Optional[str] = None
    generated: bool = False


@dataclass(slots=True)
class MatchedEpisodeInfo:
    episode: Episode
    hit: RawHit
    show_name: str
    matched_title: str
    show_id: int


@dataclass(slots=True)
class MovieRecord:
    title: str
    local_title: str
    runtime: Optional[int] = None
    tmdb_id: Optional[int] = None
    imdb_id: Optional[str] = None


@dataclass(slots=True)
class MovieMatchResult:
    hit: RawHit
    score: float
    title_match: TitleMatch
    duration_diff: int


def _decode_list(raw: str | list[Any] | None) -> list[Any]:
    if raw is None:
        return []
    if isinstance(raw, list):
        return raw
    if not raw.strip():
        return []
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError:
        return []
    return decoded if isinstance(decoded, list) else []


def decode_filters(raw: str | list[Any] | None) -> tuple[Filter, ...]:
    """Decode stored filter entries, dropping ones with an unknown match type."""
    filters: list[Filter] = []
    for entry in _decode_list(raw):
        if not isinstance(entry, dict):
            continue
        match_type = MatchType.parse(entry.get("type"))
        attribute = entry.get("attribute")
        if match_type is None or not attribute:
            continue
        value = entry.get("value")
        filters.append(Filter(attribute=str(attribute), match_type=match_type, value="" if value is None else str(value)))
    return tuple(filters)


def decode_title_rules(raw: str | list[Any] | None) -> tuple[TitleRule, ...]:
    rules: list[TitleRule] = []
    for entry in _decode_list(raw):
        if not isinstance(entry, dict):
            continue
        try:
            rule_type = TitleRuleType(entry.get("type"))
        except ValueError:
            continue
        rules.append(
            TitleRule(type=rule_type, value=entry.get("value"), field=entry.get("field"), pattern=entry.get("pattern"))
        )
    return tuple(rules)


def encode_filters(filters: tuple[Filter, ...]) -> str:
    return json.dumps(
        [{"attribute": flt.attribute, "type": flt.match_type.value, "value": flt.value} for flt in filters],
        ensure_ascii=False,
    )


def encode_title_rules(rules: tuple[TitleRule, ...]) -> str:
    return json.dumps([rule.to_dict() for rule in rules], ensure_ascii=False)
