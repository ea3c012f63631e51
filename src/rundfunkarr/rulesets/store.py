"""In-memory ruleset index with snapshot publication.

Readers always see one complete ``RulesetSnapshot``. Loads and additions
build a new snapshot and publish it with a single reference assignment, so
a refresh running in the background never exposes a half-built index.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from collections.abc import Iterable, Mapping
from concurrent.futures import Future
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING

from ..models import Ruleset, ShowMetadata

if TYPE_CHECKING:
    from ..persistence.generated_store import GeneratedRulesetStore
    from .generator import RulesetGenerator
    from .sources import RulesetSource

LOGGER = logging.getLogger(__name__)

DEFAULT_REFRESH_INTERVAL = 3600.0

TopicIndex = Mapping[str, tuple[Ruleset, ...]]


def _index(rulesets: Iterable[Ruleset]) -> TopicIndex:
    grouped: dict[str, list[Ruleset]] = {}
    for ruleset in rulesets:
        grouped.setdefault(ruleset.topic, []).append(ruleset)
    return MappingProxyType(
        {topic: tuple(sorted(items, key=lambda item: item.priority)) for topic, items in grouped.items()}
    )


@dataclass(frozen=True)
class RulesetSnapshot:
    """Immutable view of every known ruleset, indexed by topic."""

    curated: TopicIndex = field(default_factory=lambda: MappingProxyType({}))
    generated: TopicIndex = field(default_factory=lambda: MappingProxyType({}))
    loaded_at: float = 0.0

    def rulesets_for_topic(self, topic: str) -> list[Ruleset]:
        return [*self.generated.get(topic, ()), *self.curated.get(topic, ())]

    def has_ruleset_for_show(self, show_id: int) -> bool:
        for index in (self.generated, self.curated):
            for rulesets in index.values():
                if any(ruleset.show_id == show_id for ruleset in rulesets):
                    return True
        return False

    def all_topics(self) -> list[str]:
        topics = list(self.curated)
        topics.extend(topic for topic in self.generated if topic not in self.curated)
        return topics

    def all_rulesets(self) -> list[Ruleset]:
        rulesets: list[Ruleset] = []
        for topic in self.all_topics():
            rulesets.extend(self.rulesets_for_topic(topic))
        return rulesets

    def with_generated(self, ruleset: Ruleset) -> RulesetSnapshot:
        existing = self.generated.get(ruleset.topic, ())
        if any(item.id == ruleset.id for item in existing):
            return self
        generated = dict(self.generated)
        generated[ruleset.topic] = (*existing, ruleset)
        return RulesetSnapshot(curated=self.curated, generated=MappingProxyType(generated), loaded_at=self.loaded_at)


class RulesetStore:
    """Holds curated and generated rulesets and answers topic lookups.

    Generated rulesets take precedence over curated ones for the same topic.
    The first ``ensure_loaded`` call loads synchronously; concurrent first
    callers wait for that single load. Later calls on a stale snapshot start
    at most one background refresh and return immediately.
    """

    def __init__(
        self,
        source: RulesetSource,
        generated_store: GeneratedRulesetStore | None = None,
        *,
        generator: RulesetGenerator | None = None,
        refresh_interval: float = DEFAULT_REFRESH_INTERVAL,
    ) -> None:
        self._source = source
        self._generated_store = generated_store
        self._generator = generator
        self.refresh_interval = refresh_interval

        self._snapshot: RulesetSnapshot | None = None
        self._lock = threading.Lock()
        self._initial_load: Future[None] | None = None
        self._refresh_thread: threading.Thread | None = None

    @property
    def snapshot(self) -> RulesetSnapshot:
        return self._snapshot or RulesetSnapshot()

    @property
    def is_loaded(self) -> bool:
        return self._snapshot is not None

    def _is_stale(self, snapshot: RulesetSnapshot) -> bool:
        return time.monotonic() - snapshot.loaded_at > self.refresh_interval

    def ensure_loaded(self) -> None:
        """Load once, or schedule a background refresh of a stale snapshot."""
        snapshot = self._snapshot
        if snapshot is not None:
            if self._is_stale(snapshot):
                self._start_background_refresh()
            return

        with self._lock:
            if self._snapshot is not None:
                return
            future = self._initial_load
            owner = future is None
            if owner:
                future = Future()
                self._initial_load = future

        if not owner:
            future.result()
            return

        try:
            self.load()
        except BaseException as exc:
            with self._lock:
                self._initial_load = None
            future.set_exception(exc)
            raise
        future.set_result(None)

    def _start_background_refresh(self) -> None:
        with self._lock:
            if self._refresh_thread is not None and self._refresh_thread.is_alive():
                return
            LOGGER.info("Refreshing rulesets (snapshot older than %.0fs)", self.refresh_interval)
            thread = threading.Thread(target=self._refresh_quietly, name="ruleset-refresh", daemon=True)
            self._refresh_thread = thread
        thread.start()

    def _refresh_quietly(self) -> None:
        try:
            self.load()
        except Exception:  # noqa: BLE001
            LOGGER.exception("Background ruleset refresh failed")

    def wait_for_refresh(self, timeout: float | None = None) -> None:
        thread = self._refresh_thread
        if thread is not None:
            thread.join(timeout)

    def load(self) -> RulesetSnapshot:
        """Rebuild the index from the curated source and the generated store."""
        previous = self._snapshot

        curated_rulesets = self._source.load()
        if curated_rulesets is None:
            LOGGER.error("No curated rulesets could be loaded; keeping the previous set")
            curated = previous.curated if previous else MappingProxyType({})
        else:
            curated = _index(curated_rulesets)

        generated: TopicIndex
        if self._generated_store is None:
            generated = previous.generated if previous else MappingProxyType({})
        else:
            try:
                generated = _index(self._generated_store.list_all())
            except sqlite3.Error as exc:
                LOGGER.warning("Loading generated rulesets failed: %s", exc)
                generated = previous.generated if previous else MappingProxyType({})

        snapshot = RulesetSnapshot(curated=curated, generated=generated, loaded_at=time.monotonic())
        with self._lock:
            self._snapshot = snapshot

        LOGGER.info(
            "Indexed %d curated topics and %d generated topics",
            len(snapshot.curated),
            len(snapshot.generated),
        )
        return snapshot

    def rulesets_for_topic(self, topic: str) -> list[Ruleset]:
        return self.snapshot.rulesets_for_topic(topic)

    def rulesets_for_topic_and_show(self, topic: str, show_id: int) -> list[Ruleset]:
        return [ruleset for ruleset in self.rulesets_for_topic(topic) if ruleset.show_id == show_id]

    def has_ruleset_for_show(self, show_id: int) -> bool:
        return self.snapshot.has_ruleset_for_show(show_id)

    def all_topics(self) -> list[str]:
        return self.snapshot.all_topics()

    def add_generated(self, ruleset: Ruleset) -> None:
        """Publish a snapshot that also contains ``ruleset``.

        A store that was never loaded loads first, so the curated rulesets are
        not skipped for a whole refresh interval.
        """
        self.ensure_loaded()
        with self._lock:
            current = self._snapshot or RulesetSnapshot()
            self._snapshot = current.with_generated(ruleset)
        LOGGER.info("Added generated ruleset for topic %r", ruleset.topic)

    def get_or_generate(self, show: ShowMetadata) -> Ruleset | None:
        """Make sure ``show`` has a ruleset.

        Returns:
            None when the show already had a ruleset or none could be produced,
            otherwise the newly available generated ruleset
        """
        self.ensure_loaded()
        if self.has_ruleset_for_show(show.show_id):
            LOGGER.debug("Already have a ruleset for show %s", show.show_id)
            return None

        if self._generated_store is not None:
            existing = self._generated_store.get_by_show_id(show.show_id)
            if existing is not None:
                self.add_generated(existing)
                return existing

        if self._generator is None:
            return None

        LOGGER.info("No ruleset for show %s (%s), attempting generation", show.show_id, show.display_name)
        generated = self._generator.generate(show)
        if generated is None:
            return None
        self.add_generated(generated)
        return generated
