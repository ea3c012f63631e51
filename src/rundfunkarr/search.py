"""Search entry points that tie the catalog, metadata and matcher together.

``SearchService`` answers the three kinds of request the system supports:

- a show id with an optional season/episode selector
- free text with an optional season
- the newest catalog entries

Every lookup runs on its own daemon thread and is bounded by ``search.timeout``;
a lookup that takes longer yields an empty result. An abandoned lookup keeps
its thread until the catalog answers but never delays other lookups.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from typing import Callable, TypeVar

from .catalog.client import QUERY_FIELDS, CatalogClient
from .config import Settings
from .logging_utils import render_fields_block
from .matcher.episode_filter import desired_episodes, filter_desired
from .matcher.movie import match_movie_hits
from .matcher.orchestrator import HitMatcher
from .metadata.providers import LocalShowsProvider, MetadataProvider, ProviderChain
from .metadata.tmdb import TmdbProvider
from .metadata.tvdb import TvdbProvider
from .models import MatchedEpisodeInfo, MovieMatchResult, MovieRecord, RawHit, ShowMetadata
from .persistence.generated_store import GeneratedRulesetStore
from .persistence.metadata_cache import MetadataCacheStore
from .rulesets.generator import RulesetGenerator
from .rulesets.sources import CuratedRulesetSource
from .rulesets.store import RulesetStore
from .utils import ensure_directory

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class SearchResult:
    """Matches for one request plus how they were obtained."""

    matches: list[MatchedEpisodeInfo] = field(default_factory=list)
    show: ShowMetadata | None = None
    hits: int = 0
    timed_out: bool = False
    diagnostics: list[tuple[str, str]] = field(default_factory=list)


def season_query(season: str) -> str:
    """Title query for a season number (``"3"`` -> ``"S03"``)."""
    stripped = season.strip()
    return f"S{stripped if len(stripped) >= 2 else '0' + stripped}"


class SearchService:
    def __init__(
        self,
        catalog: CatalogClient,
        metadata: MetadataProvider,
        store: RulesetStore,
        *,
        settings: Settings | None = None,
        auto_generate: bool = True,
        closeables: list[object] | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.catalog = catalog
        self.metadata = metadata
        self.store = store
        self.auto_generate = auto_generate
        self.matcher = HitMatcher(store, metadata.get_show, threshold=self.settings.matching.title_threshold)
        self._closeables = list(closeables or [])

    def _bounded(self, label: str, default: T, func: Callable[[], T]) -> T:
        timeout = self.settings.search.timeout
        future: Future[T] = Future()

        def run() -> None:
            try:
                future.set_result(func())
            except Exception as exc:  # noqa: BLE001
                future.set_exception(exc)

        threading.Thread(target=run, name="search", daemon=True).start()
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError:
            LOGGER.warning("%s did not finish within %.1fs; returning no results", label, timeout)
            return default

    def _by_show(self, show_id: int, season: str | None, episode: str | None) -> SearchResult:
        show = self.metadata.get_show(show_id)
        if show is None:
            LOGGER.warning("Unknown show %s; nothing to search for", show_id)
            return SearchResult()

        desired = desired_episodes(show, season, episode)
        if season and desired is not None and not desired:
            LOGGER.info("Show %s has no episodes for season=%s episode=%s", show.display_name, season, episode)
            return SearchResult(show=show)

        if self.auto_generate:
            self.store.get_or_generate(show)

        query = show.local_name or show.name
        hits = self.catalog.search(query, max_results=self.settings.catalog.show_max_results)
        result = SearchResult(show=show, hits=len(hits))
        matched = self.matcher.match(hits, show, diagnostics=result.diagnostics)
        result.matches = filter_desired(matched, desired)
        LOGGER.info(
            render_fields_block(
                f"Search for {show.display_name}",
                {
                    "Show id": show.show_id,
                    "Query": query,
                    "Season": season or "-",
                    "Episode": episode or "-",
                    "Desired": "all" if desired is None else len(desired),
                    "Catalog hits": len(hits),
                    "Matched": len(matched),
                    "Returned": len(result.matches),
                },
            )
        )
        return result

    def search_by_show(self, show_id: int, season: str | None = None, episode: str | None = None) -> SearchResult:
        """Find catalog entries for ``show_id``, optionally narrowed to a season or episode.

        A season selector that resolves to no episodes returns an empty result
        without querying the catalog. A show without any ruleset gets one
        generated first when ``auto_generate`` is on.
        """
        return self._bounded(
            f"Search for show {show_id}",
            SearchResult(timed_out=True),
            lambda: self._by_show(show_id, season, episode),
        )

    def _by_text(self, query: str | None, season: str | None) -> SearchResult:
        queries: list[tuple[tuple[str, ...], str]] = []
        if query and query.strip():
            queries.append((QUERY_FIELDS, query.strip()))
        if season and season.strip():
            queries.append((("title",), season_query(season)))
        if not queries:
            return SearchResult()

        hits = self.catalog.query(queries, size=self.settings.catalog.text_max_results)
        result = SearchResult(hits=len(hits))
        result.matches = self.matcher.match(hits, diagnostics=result.diagnostics)
        LOGGER.debug("Text search %r season=%s matched %d of %d hits", query, season, len(result.matches), len(hits))
        return result

    def search_by_text(self, query: str | None, season: str | None = None) -> SearchResult:
        """Match free-text catalog results against every known ruleset."""
        return self._bounded(
            f"Search for {query!r}", SearchResult(timed_out=True), lambda: self._by_text(query, season)
        )

    def _recent(self) -> SearchResult:
        hits = self.catalog.recent(max_results=self.settings.catalog.recent_max_results)
        result = SearchResult(hits=len(hits))
        result.matches = self.matcher.match(hits, diagnostics=result.diagnostics)
        return result

    def recent(self) -> SearchResult:
        """Match the newest catalog entries against every known ruleset."""
        return self._bounded("Recent search", SearchResult(timed_out=True), self._recent)

    def _movie_hits(self, movie: MovieRecord) -> list[RawHit]:
        names = [movie.local_title or movie.title]
        if movie.title and movie.title not in names:
            names.append(movie.title)

        hits: list[RawHit] = []
        seen: set[str] = set()
        for name in names:
            for hit in self.catalog.search(name, max_results=self.settings.catalog.text_max_results):
                identity = hit.url_video or f"{hit.channel}|{hit.title}|{hit.timestamp}"
                if identity in seen:
                    continue
                seen.add(identity)
                hits.append(hit)
        return hits

    def search_movie(self, movie: MovieRecord) -> list[MovieMatchResult]:
        """Return catalog entries for ``movie`` ranked by title and runtime fit."""
        tolerance = self.settings.matching.movie_duration_tolerance
        return self._bounded(
            f"Movie search for {movie.local_title or movie.title!r}",
            [],
            lambda: match_movie_hits(self._movie_hits(movie), movie, duration_tolerance=tolerance),
        )

    def generate(self, show_id: int) -> SearchResult:
        """Ensure a ruleset exists for ``show_id`` without searching for episodes."""
        show = self.metadata.get_show(show_id)
        if show is None:
            LOGGER.warning("Unknown show %s; cannot generate a ruleset", show_id)
            return SearchResult()
        self.store.get_or_generate(show)
        return SearchResult(show=show)

    def close(self) -> None:
        for resource in self._closeables:
            close = getattr(resource, "close", None)
            if close is not None:
                close()

    def __enter__(self) -> SearchService:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


def build_search_service(settings: Settings) -> SearchService:
    """Wire a ``SearchService`` from settings: HTTP clients, SQLite stores, providers."""
    ensure_directory(settings.data_dir)

    catalog = CatalogClient(
        settings.catalog.api_url,
        timeout=settings.catalog.timeout,
        cache_ttl=settings.catalog.cache_ttl,
    )

    metadata_cache = MetadataCacheStore(settings.metadata_db_path)
    providers: list[MetadataProvider] = [
        LocalShowsProvider(
            settings.metadata.shows_url,
            settings.metadata.shows_file,
            timeout=settings.metadata.timeout,
        )
    ]
    closeables: list[object] = [catalog, metadata_cache]
    if settings.metadata.tvdb_api_key:
        tvdb = TvdbProvider(
            settings.metadata.tvdb_api_key,
            pin=settings.metadata.tvdb_pin,
            cache=metadata_cache,
            timeout=settings.metadata.timeout,
        )
        providers.append(tvdb)
        closeables.append(tvdb)
    if settings.metadata.tmdb_api_key:
        tmdb = TmdbProvider(
            settings.metadata.tmdb_api_key,
            cache=metadata_cache,
            timeout=settings.metadata.timeout,
        )
        providers.append(tmdb)
        closeables.append(tmdb)
    if len(providers) == 1:
        LOGGER.info("No TVDB or TMDB api key configured; using the local show list only")

    generated_store = GeneratedRulesetStore(settings.generated_db_path)
    closeables.append(generated_store)
    generator = RulesetGenerator(catalog, generated_store) if settings.rulesets.auto_generate else None
    store = RulesetStore(
        CuratedRulesetSource(settings.rulesets.url, settings.rulesets.local_file, timeout=settings.catalog.timeout),
        generated_store,
        generator=generator,
        refresh_interval=settings.rulesets.refresh_interval,
    )

    return SearchService(
        catalog,
        ProviderChain(providers, cache_ttl=settings.metadata.cache_ttl),
        store,
        settings=settings,
        auto_generate=settings.rulesets.auto_generate,
        closeables=closeables,
    )
