"""Tests for the search service."""

from __future__ import annotations

import threading
from unittest.mock import MagicMock

import pytest
from factories import StaticSource, make_hit

from rundfunkarr.config import Settings
from rundfunkarr.metadata import ProviderChain
from rundfunkarr.models import MovieRecord, ShowMetadata
from rundfunkarr.rulesets.store import RulesetStore
from rundfunkarr.search import SearchResult, SearchService, build_search_service, season_query


@pytest.fixture
def catalog() -> MagicMock:
    catalog = MagicMock()
    catalog.search.return_value = [
        make_hit("Tatort: Der Fall (S01/E05)"),
        make_hit("Tatort: Neues Jahr (S02/E01)"),
        make_hit("Tatort: Vorschau (S02/E01)", duration=60),
    ]
    catalog.query.return_value = catalog.search.return_value
    catalog.recent.return_value = catalog.search.return_value
    return catalog


@pytest.fixture
def metadata(tatort_show) -> MagicMock:
    metadata = MagicMock()
    metadata.get_show.side_effect = {100: tatort_show}.get
    return metadata


@pytest.fixture
def service(catalog, metadata, tatort_ruleset):
    service = SearchService(catalog, metadata, RulesetStore(StaticSource([tatort_ruleset])))
    yield service
    service.close()


@pytest.mark.parametrize(("season", "expected"), [("3", "S03"), (" 12 ", "S12"), ("2024", "S2024")])
def test_season_query(season: str, expected: str) -> None:
    assert season_query(season) == expected


class TestSearchByShow:
    def test_all_episodes(self, service: SearchService, catalog: MagicMock, tatort_show) -> None:
        result = service.search_by_show(100)

        catalog.search.assert_called_once_with("Tatort", max_results=10000)
        assert result.show is tatort_show
        assert result.hits == 3
        assert result.timed_out is False
        assert [match.episode.key for match in result.matches] == [(1, 5), (2, 1)]

    def test_season_narrows_results(self, service: SearchService) -> None:
        result = service.search_by_show(100, season="1")
        assert [match.episode.key for match in result.matches] == [(1, 5)]

    def test_single_episode(self, service: SearchService) -> None:
        result = service.search_by_show(100, season="2", episode="1")
        assert [match.episode.key for match in result.matches] == [(2, 1)]

    def test_unknown_season_skips_catalog(self, service: SearchService, catalog: MagicMock, tatort_show) -> None:
        result = service.search_by_show(100, season="7")
        assert result.show is tatort_show
        assert result.matches == []
        catalog.search.assert_not_called()

    def test_year_without_episodes_skips_catalog(self, service: SearchService, catalog: MagicMock) -> None:
        assert service.search_by_show(100, season="2020").matches == []
        catalog.search.assert_not_called()
        catalog.query.assert_not_called()

    def test_unknown_show(self, service: SearchService, catalog: MagicMock) -> None:
        assert service.search_by_show(999) == SearchResult()
        catalog.search.assert_not_called()

    def test_diagnostics_are_collected(self, service: SearchService) -> None:
        result = service.search_by_show(100)
        assert any(kind == "ignored" and "Vorschau" in message for kind, message in result.diagnostics)

    def test_missing_ruleset_is_generated_first(self, catalog, metadata, tatort_ruleset) -> None:
        generator = MagicMock()
        generator.generate.return_value = tatort_ruleset
        store = RulesetStore(StaticSource([]), generator=generator)

        with SearchService(catalog, metadata, store) as service:
            result = service.search_by_show(100)

        generator.generate.assert_called_once()
        assert len(result.matches) == 2

    def test_generation_can_be_disabled(self, catalog, metadata) -> None:
        generator = MagicMock()
        store = RulesetStore(StaticSource([]), generator=generator)

        with SearchService(catalog, metadata, store, auto_generate=False) as service:
            result = service.search_by_show(100)

        generator.generate.assert_not_called()
        assert result.matches == []
        assert result.hits == 3

    def test_slow_lookup_times_out(self, catalog, metadata, tatort_ruleset, caplog) -> None:
        release = threading.Event()
        catalog.search.side_effect = lambda *args, **kwargs: release.wait(5) and []
        settings = Settings()
        settings.search.timeout = 0.05
        service = SearchService(catalog, metadata, RulesetStore(StaticSource([tatort_ruleset])), settings=settings)
        try:
            with caplog.at_level("WARNING"):
                result = service.search_by_show(100)
        finally:
            release.set()
            service.close()

        assert result.timed_out is True
        assert result.matches == []
        assert "did not finish within" in caplog.text

    def test_abandoned_lookups_do_not_block_later_ones(self, catalog, tatort_show, tatort_ruleset) -> None:
        release = threading.Event()
        fast_hits = catalog.search.return_value

        def search(query, **kwargs):
            if query == "Langsam":
                release.wait(5)
                return []
            return fast_hits

        catalog.search.side_effect = search
        shows = {100: tatort_show, 7: ShowMetadata(7, "Langsam")}
        metadata = MagicMock()
        metadata.get_show.side_effect = shows.get
        settings = Settings()
        settings.search.timeout = 0.2
        store = RulesetStore(StaticSource([tatort_ruleset]))
        service = SearchService(catalog, metadata, store, settings=settings, auto_generate=False)
        try:
            slow = [service.search_by_show(7) for _ in range(6)]
            healthy = service.search_by_show(100)
        finally:
            release.set()
            service.close()

        assert all(result.timed_out for result in slow)
        assert healthy.timed_out is False
        assert [match.episode.key for match in healthy.matches] == [(1, 5), (2, 1)]


class TestTextAndRecent:
    def test_text_with_season(self, service: SearchService, catalog: MagicMock) -> None:
        result = service.search_by_text("Tatort", season="1")

        catalog.query.assert_called_once_with(
            [(("topic", "title"), "Tatort"), (("title",), "S01")],
            size=1500,
        )
        assert [match.episode.key for match in result.matches] == [(1, 5), (2, 1)]
        assert result.show is None

    def test_text_only(self, service: SearchService, catalog: MagicMock) -> None:
        service.search_by_text("  Tatort ")
        catalog.query.assert_called_once_with([(("topic", "title"), "Tatort")], size=1500)

    def test_nothing_to_search(self, service: SearchService, catalog: MagicMock) -> None:
        assert service.search_by_text("  ") == SearchResult()
        catalog.query.assert_not_called()

    def test_recent(self, service: SearchService, catalog: MagicMock) -> None:
        result = service.recent()
        catalog.recent.assert_called_once_with(max_results=6000)
        assert len(result.matches) == 2

    def test_configured_sizes(self, catalog, metadata, tatort_ruleset) -> None:
        settings = Settings()
        settings.catalog.text_max_results = 50
        with SearchService(catalog, metadata, RulesetStore(StaticSource([tatort_ruleset])), settings=settings) as service:
            service.search_by_text("Tatort")
        assert catalog.query.call_args.kwargs["size"] == 50


class TestSearchMovie:
    def test_searches_local_and_original_title(self, service: SearchService, catalog: MagicMock) -> None:
        local = make_hit("Das Boot", topic="Filme", duration=150 * 60)
        original = make_hit("The Boat", topic="Kino", duration=150 * 60)
        catalog.search.side_effect = lambda name, **kwargs: {"Das Boot": [local], "The Boat": [local, original]}[name]

        results = service.search_movie(MovieRecord(title="The Boat", local_title="Das Boot", runtime=150))

        assert [call.args[0] for call in catalog.search.call_args_list] == ["Das Boot", "The Boat"]
        assert [result.hit for result in results] == [local, original]

    def test_same_titles_search_once(self, service: SearchService, catalog: MagicMock) -> None:
        catalog.search.return_value = []
        assert service.search_movie(MovieRecord(title="Das Boot", local_title="Das Boot")) == []
        assert catalog.search.call_count == 1


class TestGenerate:
    def test_unknown_show(self, service: SearchService) -> None:
        assert service.generate(999).show is None

    def test_known_show(self, catalog, metadata, tatort_show) -> None:
        store = MagicMock()
        with SearchService(catalog, metadata, store) as service:
            result = service.generate(100)
        store.get_or_generate.assert_called_once_with(tatort_show)
        assert result.show is tatort_show


def test_close_closes_resources(catalog, metadata) -> None:
    resource = MagicMock()
    service = SearchService(catalog, metadata, MagicMock(), closeables=[resource])
    service.close()
    resource.close.assert_called_once()


class TestBuildSearchService:
    def _settings(self, tmp_path) -> Settings:
        settings = Settings(data_dir=tmp_path)
        settings.rulesets.url = None
        settings.metadata.shows_url = None
        return settings

    def test_providers_follow_configured_keys(self, tmp_path) -> None:
        settings = self._settings(tmp_path)
        settings.metadata.tvdb_api_key = "tvdb-key"
        settings.metadata.tmdb_api_key = "tmdb-key"
        settings.metadata.cache_ttl = 120

        with build_search_service(settings) as service:
            assert isinstance(service.metadata, ProviderChain)
            assert [provider.name for provider in service.metadata.providers] == ["local", "tvdb", "tmdb"]
            assert service.metadata.cache_ttl == 120

    def test_tmdb_without_tvdb(self, tmp_path) -> None:
        settings = self._settings(tmp_path)
        settings.metadata.tmdb_api_key = "tmdb-key"

        with build_search_service(settings) as service:
            assert [provider.name for provider in service.metadata.providers] == ["local", "tmdb"]

    def test_local_list_only(self, tmp_path) -> None:
        with build_search_service(self._settings(tmp_path)) as service:
            assert [provider.name for provider in service.metadata.providers] == ["local"]
