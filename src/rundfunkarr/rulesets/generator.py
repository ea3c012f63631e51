"""Automatic ruleset generation for shows without a curated ruleset.

The generator searches the catalog for the show, picks the catalog topic
that belongs to it, inspects a sample of that topic's titles and emits one
of a fixed set of regex templates. Generated rulesets are persisted so that
each topic is generated at most once.
"""

from __future__ import annotations

import logging
import re
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from ..logging_utils import render_fields_block
from ..models import Filter, MatchingStrategy, MatchType, RawHit, Ruleset, ShowMetadata, TitleRule, TitleRuleType
from ..persistence.generated_store import RulesetConflictError

if TYPE_CHECKING:
    from ..persistence.generated_store import GeneratedRulesetStore

LOGGER = logging.getLogger(__name__)

DEFAULT_SAMPLE_SIZE = 15
DEFAULT_INSPECT_SIZE = 5
DEFAULT_SEARCH_SIZE = 50
MIN_SIGNATURE_COUNT = 3
SEPARATOR_SHARE = 0.3

DEFAULT_FILTERS = (Filter(attribute="duration", match_type=MatchType.GREATER_THAN, value="15"),)

SEASON_EPISODE_PATTERNS = (
    re.compile(r"\(S(\d{1,4})/E(\d{1,4})\)"),
    re.compile(r"\bS(\d{1,4})E(\d{1,4})\b"),
    re.compile(r"Staffel\s*(\d+).*Folge\s*(\d+)", re.IGNORECASE),
    re.compile(r"Staffel\s*(\d+).*Episode\s*(\d+)", re.IGNORECASE),
)

DATE_PATTERNS = (
    re.compile(r"vom\s+(\d{1,2}\.\s*\w+\s*\d{4})"),
    re.compile(r"vom\s+(\d{1,2}\.\d{1,2}\.\d{4})"),
    re.compile(r"\b(\d{1,2}\.\d{1,2}\.\d{4})\b"),
    re.compile(r"\b(\d{1,2}\.\s*\w+\s*\d{4})\b"),
)

ABSOLUTE_EPISODE_PATTERNS = (
    re.compile(r"Episode\s*(\d+)", re.IGNORECASE),
    re.compile(r"(?<!/)Folge\s*(\d+)", re.IGNORECASE),
    re.compile(r"Teil\s*(\d+)", re.IGNORECASE),
)


class CatalogSearch(Protocol):
    def search(self, query: str, *, max_results: int = ..., fields: Sequence[str] = ...) -> list[RawHit]: ...


@dataclass(frozen=True)
class PatternTemplate:
    """Regex parameters emitted for one detected title sub-pattern."""

    season_regex: str | None = None
    episode_regex: str | None = None
    title_rules: tuple[TitleRule, ...] = ()


def _title_rule(pattern: str) -> tuple[TitleRule, ...]:
    return (TitleRule(type=TitleRuleType.REGEX, field="title", pattern=pattern),)


# (detector, template) pairs per strategy, checked in order against each inspected title.
SEASON_EPISODE_TEMPLATES: tuple[tuple[re.Pattern[str], PatternTemplate], ...] = (
    (
        re.compile(r"\(S\d{1,4}/E\d{1,4}\)"),
        PatternTemplate(season_regex=r"(?<=S)(\d{1,4})(?=/E)", episode_regex=r"(?<=E)(\d{1,4})(?=\))"),
    ),
    (
        re.compile(r"\bS\d{1,4}E\d{1,4}\b"),
        PatternTemplate(season_regex=r"(?<=S)(\d{1,4})(?=E)", episode_regex=r"(?<=E)(\d{1,4})"),
    ),
    (
        re.compile(r"Staffel\s*\d+.*Folge\s*\d+", re.IGNORECASE),
        PatternTemplate(season_regex=r"Staffel\s*(\d+)", episode_regex=r"Folge\s*(\d+)"),
    ),
    (
        re.compile(r"Staffel\s*\d+.*Episode\s*\d+", re.IGNORECASE),
        PatternTemplate(season_regex=r"Staffel\s*(\d+)", episode_regex=r"Episode\s*(\d+)"),
    ),
)

AIRDATE_TEMPLATES: tuple[tuple[re.Pattern[str], PatternTemplate], ...] = (
    (
        re.compile(r"vom\s+\d{1,2}\.\s*\w+\s*\d{4}"),
        PatternTemplate(title_rules=_title_rule(r"vom\s+(\d{1,2}\.\s*\w+\s*\d{4})")),
    ),
    (
        re.compile(r"vom\s+\d{1,2}\.\d{1,2}\.\d{4}"),
        PatternTemplate(title_rules=_title_rule(r"vom\s+(\d{1,2}\.\d{1,2}\.\d{4})")),
    ),
    (
        re.compile(r"\b\d{1,2}\.\d{1,2}\.\d{4}\b"),
        PatternTemplate(title_rules=_title_rule(r"(\d{1,2}\.\d{1,2}\.\d{4})")),
    ),
    (
        re.compile(r"\b\d{1,2}\.\s*\w+\s*\d{4}\b"),
        PatternTemplate(title_rules=_title_rule(r"(\d{1,2}\.\s*\w+\s*\d{4})")),
    ),
)

ABSOLUTE_TEMPLATES: tuple[tuple[re.Pattern[str], PatternTemplate], ...] = (
    (re.compile(r"Episode\s*\d+", re.IGNORECASE), PatternTemplate(episode_regex=r"Episode\s*(\d+)")),
    (re.compile(r"Folge\s*\d+", re.IGNORECASE), PatternTemplate(episode_regex=r"Folge\s*(\d+)")),
    (re.compile(r"Teil\s*\d+", re.IGNORECASE), PatternTemplate(episode_regex=r"Teil\s*(\d+)")),
)

INCLUDES_TEMPLATE = PatternTemplate(title_rules=_title_rule(r"^(.+)$"))


@dataclass(frozen=True)
class SampleAnalysis:
    """Per-signature hit counts over a title sample."""

    total: int = 0
    season_episode: int = 0
    date: int = 0
    absolute_episode: int = 0
    topic_prefix: int = 0
    separator: int = 0


def analyze_titles(titles: Sequence[str], topic: str) -> SampleAnalysis:
    """Count how many ``titles`` exhibit each signature."""
    topic_lower = topic.lower()
    counts = {"season_episode": 0, "date": 0, "absolute_episode": 0, "topic_prefix": 0, "separator": 0}
    for title in titles:
        if any(pattern.search(title) for pattern in SEASON_EPISODE_PATTERNS):
            counts["season_episode"] += 1
        if any(pattern.search(title) for pattern in DATE_PATTERNS):
            counts["date"] += 1
        if any(pattern.search(title) for pattern in ABSOLUTE_EPISODE_PATTERNS):
            counts["absolute_episode"] += 1
        if title.lower().startswith(topic_lower):
            counts["topic_prefix"] += 1
        if ":" in title or " - " in title:
            counts["separator"] += 1
    return SampleAnalysis(total=len(titles), **counts)


def detect_strategy(analysis: SampleAnalysis) -> MatchingStrategy:
    """Pick a strategy from signature counts using fixed integer thresholds."""
    if analysis.season_episode >= MIN_SIGNATURE_COUNT and analysis.season_episode > analysis.date:
        return MatchingStrategy.SEASON_AND_EPISODE_NUMBER
    if analysis.date >= MIN_SIGNATURE_COUNT and analysis.date > analysis.season_episode:
        return MatchingStrategy.ITEM_TITLE_EQUALS_AIRDATE
    if analysis.absolute_episode >= MIN_SIGNATURE_COUNT:
        return MatchingStrategy.BY_ABSOLUTE_EPISODE_NUMBER
    if analysis.topic_prefix >= MIN_SIGNATURE_COUNT and analysis.separator >= analysis.total * SEPARATOR_SHARE:
        return MatchingStrategy.ITEM_TITLE_EXACT
    return MatchingStrategy.ITEM_TITLE_INCLUDES


def _exact_templates(topic: str) -> tuple[tuple[re.Pattern[str], PatternTemplate], ...]:
    escaped = re.escape(topic)
    return (
        (re.compile(":"), PatternTemplate(title_rules=_title_rule(rf"^{escaped}[^:]*:\s*(.+)"))),
        (re.compile(" - "), PatternTemplate(title_rules=_title_rule(rf"^{escaped}[^-]*-\s*(.+)"))),
    )


def synthesize_template(titles: Sequence[str], strategy: MatchingStrategy, topic: str) -> PatternTemplate | None:
    """Return the template for the first inspected title showing a known sub-pattern.

    ItemTitleIncludes needs no inspection. Any other strategy whose titles
    show none of its sub-patterns yields None.
    """
    if strategy is MatchingStrategy.ITEM_TITLE_INCLUDES:
        return INCLUDES_TEMPLATE

    templates = {
        MatchingStrategy.SEASON_AND_EPISODE_NUMBER: SEASON_EPISODE_TEMPLATES,
        MatchingStrategy.ITEM_TITLE_EQUALS_AIRDATE: AIRDATE_TEMPLATES,
        MatchingStrategy.BY_ABSOLUTE_EPISODE_NUMBER: ABSOLUTE_TEMPLATES,
        MatchingStrategy.ITEM_TITLE_EXACT: _exact_templates(topic),
    }[strategy]
    for title in titles:
        for detector, template in templates:
            if detector.search(title):
                return template
    return None


def find_best_topic(hits: Sequence[RawHit], show: ShowMetadata) -> str | None:
    """Pick the catalog topic that belongs to ``show``.

    Exact case-insensitive name matches win over substring matches; a result
    set with a single distinct topic falls back to that topic.
    """
    topics = list(dict.fromkeys(hit.topic for hit in hits if hit.topic))
    if not topics:
        return None
    names = show.search_names()

    for topic in topics:
        if topic.lower() in names:
            LOGGER.debug("Exact topic match: %r", topic)
            return topic
    for topic in topics:
        lowered = topic.lower()
        if any(name in lowered or lowered in name for name in names):
            LOGGER.debug("Partial topic match: %r", topic)
            return topic
    if len(topics) == 1:
        LOGGER.debug("Using single topic: %r", topics[0])
        return topics[0]

    LOGGER.info("No matching topic for %s among: %s", show.display_name, ", ".join(topics[:10]))
    return None


class RulesetGenerator:
    """Generates and persists rulesets; at most one generation per show at a time."""

    def __init__(
        self,
        catalog: CatalogSearch,
        store: GeneratedRulesetStore,
        *,
        sample_size: int = DEFAULT_SAMPLE_SIZE,
        inspect_size: int = DEFAULT_INSPECT_SIZE,
        search_size: int = DEFAULT_SEARCH_SIZE,
    ) -> None:
        self._catalog = catalog
        self._store = store
        self.sample_size = sample_size
        self.inspect_size = inspect_size
        self.search_size = search_size
        # show id -> (lock, number of callers using it)
        self._locks: dict[int, tuple[threading.Lock, int]] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def _show_lock(self, show_id: int) -> Iterator[None]:
        with self._locks_guard:
            lock, users = self._locks.get(show_id) or (threading.Lock(), 0)
            self._locks[show_id] = (lock, users + 1)
        try:
            with lock:
                yield
        finally:
            with self._locks_guard:
                lock, users = self._locks[show_id]
                if users <= 1:
                    del self._locks[show_id]
                else:
                    self._locks[show_id] = (lock, users - 1)

    def generate(self, show: ShowMetadata) -> Ruleset | None:
        """Generate (or return the persisted) ruleset for ``show``; None if impossible."""
        with self._show_lock(show.show_id):
            return self._generate(show)

    def _search(self, show: ShowMetadata) -> list[RawHit]:
        query = show.local_name or show.name
        hits = self._catalog.search(query, max_results=self.search_size, fields=("topic",))
        LOGGER.debug("Catalog returned %d hits for %r", len(hits), query)
        if not hits and show.local_name and show.name and show.name != show.local_name:
            LOGGER.debug("Retrying catalog search with original name %r", show.name)
            hits = self._catalog.search(show.name, max_results=self.search_size, fields=("topic",))
        return hits

    def _generate(self, show: ShowMetadata) -> Ruleset | None:
        existing = self._store.get_by_show_id(show.show_id)
        if existing is not None:
            LOGGER.debug("Found persisted ruleset for show %s: topic=%r", show.show_id, existing.topic)
            return existing

        hits = self._search(show)
        if not hits:
            LOGGER.info("Cannot generate ruleset for %s: no catalog results", show.display_name)
            return None

        topic = find_best_topic(hits, show)
        if topic is None:
            LOGGER.info("Cannot generate ruleset for %s: no matching topic", show.display_name)
            return None

        existing = self._store.get_by_topic(topic)
        if existing is not None:
            if existing.show_id != show.show_id:
                LOGGER.warning(
                    "Topic %r already has a generated ruleset for show %s (requested by show %s)",
                    topic,
                    existing.show_id,
                    show.show_id,
                )
            return existing

        sample = [hit.title for hit in hits if hit.topic == topic][: self.sample_size]
        analysis = analyze_titles(sample, topic)
        strategy = detect_strategy(analysis)
        template = synthesize_template(sample[: self.inspect_size], strategy, topic)
        LOGGER.info(
            render_fields_block(
                f"Ruleset analysis for {show.display_name}",
                {
                    "Topic": topic,
                    "Sample": analysis.total,
                    "Season/episode": analysis.season_episode,
                    "Date": analysis.date,
                    "Absolute": analysis.absolute_episode,
                    "Topic prefix": analysis.topic_prefix,
                    "Separator": analysis.separator,
                    "Strategy": strategy.value,
                },
            )
        )
        if template is None:
            LOGGER.info("Cannot generate ruleset for %s: unrecognized sample pattern", show.display_name)
            return None

        candidate = Ruleset(
            id=0,
            show_id=show.show_id,
            show_name=show.name or show.local_name or "",
            topic=topic,
            strategy=strategy,
            priority=0,
            filters=DEFAULT_FILTERS,
            title_rules=template.title_rules,
            season_regex=template.season_regex,
            episode_regex=template.episode_regex,
            generated=True,
        )
        try:
            created = self._store.create(candidate)
        except RulesetConflictError:
            LOGGER.info("Topic %r was generated concurrently; using the persisted ruleset", topic)
            return self._store.get_by_topic(topic)
        LOGGER.info("Created generated ruleset %s for topic %r (%s)", created.id, topic, strategy.value)
        return created
