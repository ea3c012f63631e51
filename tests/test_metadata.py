"""Tests for the show metadata providers."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from pathlib import Path
from unittest.mock import MagicMock, patch

import httpx
import pytest

from rundfunkarr.metadata import (
    LocalShowsProvider,
    MetadataProviderError,
    ProviderChain,
    TmdbProvider,
    TvdbProvider,
    cache_ttl_hours,
)
from rundfunkarr.metadata.models import TvdbSeries, parse_day
from rundfunkarr.metadata.tmdb import CACHE_TTL_HOURS
from rundfunkarr.metadata.tvdb import ACTIVE_TTL_HOURS, INACTIVE_TTL_HOURS
from rundfunkarr.models import Episode, ShowMetadata
from rundfunkarr.persistence import MetadataCacheStore

SHOWS = [
    {
        "tvdbId": 83214,
        "name": "Crime Scene",
        "germanName": "Tatort",
        "aliases": ["Tatort Classics"],
        "episodes": [
            {"name": "Der Fall", "seasonNumber": 1, "episodeNumber": 5, "aired": "2023-12-10", "runtime": 90},
            {"name": None, "seasonNumber": 1, "episodeNumber": 6},
        ],
    },
    {"name": "no id"},
]


def _response(payload, status: int = 200, method: str = "GET", url: str = "https://example.com") -> httpx.Response:
    return httpx.Response(status, json=payload, request=httpx.Request(method, url))


class TestLocalShowsProvider:
    def test_remote_list(self) -> None:
        client = MagicMock()
        client.get.return_value = _response(SHOWS)
        provider = LocalShowsProvider("https://example.com/shows.json", client=client)

        show = provider.get_show(83214)

        assert show is not None
        assert show.name == "Crime Scene"
        assert show.local_name == "Tatort"
        assert show.aliases == ["Tatort Classics"]
        assert show.episodes[0] == Episode(1, 5, "Der Fall", aired=parse_day("2023-12-10"), runtime=90)
        assert show.episodes[1].name == ""
        assert provider.get_show(1) is None
        assert client.get.call_count == 1

    def test_falls_back_to_local_file(self, tmp_path: Path) -> None:
        local = tmp_path / "shows.json"
        local.write_text(json.dumps(SHOWS), encoding="utf-8")
        client = MagicMock()
        client.get.side_effect = httpx.ConnectError("down")

        provider = LocalShowsProvider("https://example.com/shows.json", local, client=client)

        assert provider.get_show(83214) is not None

    def test_nothing_loadable_retries_next_time(self, tmp_path: Path, caplog) -> None:
        client = MagicMock()
        client.get.side_effect = [_response({"not": "a list"}), _response(SHOWS)]
        provider = LocalShowsProvider("https://example.com/shows.json", tmp_path / "missing.json", client=client)

        with caplog.at_level("ERROR"):
            assert provider.get_show(83214) is None
        assert "No show list could be loaded" in caplog.text
        assert provider.get_show(83214) is not None

    def test_failed_refresh_keeps_previous_index(self) -> None:
        client = MagicMock()
        client.get.side_effect = [_response(SHOWS), _response({}, status=500)]
        provider = LocalShowsProvider("https://example.com/shows.json", client=client, refresh_interval=0)

        assert provider.get_show(83214) is not None
        assert provider.get_show(83214) is not None
        assert client.get.call_count == 2


class _Provider:
    def __init__(self, name: str, shows: dict[int, ShowMetadata] | None = None, error: bool = False) -> None:
        self.name = name
        self.shows = shows or {}
        self.error = error
        self.calls = 0

    def get_show(self, show_id: int) -> ShowMetadata | None:
        self.calls += 1
        if self.error:
            raise MetadataProviderError("unavailable")
        return self.shows.get(show_id)


class TestProviderChain:
    def test_first_answer_wins_and_is_cached(self) -> None:
        first = _Provider("first", {1: ShowMetadata(1, "Eins")})
        second = _Provider("second", {1: ShowMetadata(1, "Anders"), 2: ShowMetadata(2, "Zwei")})
        chain = ProviderChain([first, second])

        assert chain.get_show(1).name == "Eins"
        assert chain.get_show(2).name == "Zwei"
        assert chain.get_show(1).name == "Eins"
        assert first.calls == 2
        assert second.calls == 1

    def test_provider_errors_fall_through(self, caplog) -> None:
        broken = _Provider("broken", error=True)
        working = _Provider("working", {1: ShowMetadata(1, "Eins")})
        with caplog.at_level("WARNING"):
            assert ProviderChain([broken, working]).get_show(1).name == "Eins"
        assert "Provider broken failed for show 1" in caplog.text

    def test_unknown_show_is_not_cached(self) -> None:
        provider = _Provider("only")
        chain = ProviderChain([provider])
        assert chain.get_show(3) is None
        provider.shows[3] = ShowMetadata(3, "Drei")
        assert chain.get_show(3).name == "Drei"

    def test_invalidate(self) -> None:
        provider = _Provider("only", {1: ShowMetadata(1, "Eins")})
        chain = ProviderChain([provider])
        chain.get_show(1)
        chain.invalidate(1)
        chain.get_show(1)
        chain.invalidate()
        chain.get_show(1)
        assert provider.calls == 3

    def test_cached_shows_expire(self) -> None:
        provider = _Provider("only", {1: ShowMetadata(1, "Eins", episodes=[Episode(1, 1, "A")])})
        chain = ProviderChain([provider], cache_ttl=60)

        with patch("rundfunkarr.metadata.providers.time.monotonic", side_effect=[0.0, 30.0, 61.0, 61.0]):
            assert len(chain.get_show(1).episodes) == 1
            refreshed = [Episode(1, 1, "A"), Episode(1, 2, "B"), Episode(2, 1, "C")]
            provider.shows[1] = ShowMetadata(1, "Eins", episodes=refreshed)
            assert len(chain.get_show(1).episodes) == 1
            assert len(chain.get_show(1).episodes) == 3

        assert provider.calls == 2

    def test_zero_ttl_disables_caching(self) -> None:
        provider = _Provider("only", {1: ShowMetadata(1, "Eins")})
        chain = ProviderChain([provider], cache_ttl=0)
        chain.get_show(1)
        chain.get_show(1)
        assert provider.calls == 2

    def test_least_recently_used_show_is_dropped(self) -> None:
        provider = _Provider("only", {show_id: ShowMetadata(show_id, str(show_id)) for show_id in (1, 2, 3)})
        chain = ProviderChain([provider], max_entries=2)

        chain.get_show(1)
        chain.get_show(2)
        chain.get_show(1)
        chain.get_show(3)
        assert provider.calls == 3

        chain.get_show(1)
        assert provider.calls == 3
        chain.get_show(2)
        assert provider.calls == 4


def _series(**overrides) -> dict:
    series = {
        "id": 83214,
        "name": "Crime Scene",
        "nameTranslations": ["eng", "deu"],
        "aliases": [{"language": "deu", "name": "Tatort Classics"}, {"language": "eng", "name": "Scene"}],
        "episodes": [
            {"id": 1, "name": "Der Fall", "aired": "2023-12-10", "runtime": 90, "seasonNumber": 1, "number": 5},
            {"id": 2, "name": "Special", "aired": None, "seasonNumber": 0, "number": 1},
        ],
        "lastUpdated": "2020-01-01 00:00:00",
        "nextAired": "",
        "lastAired": "2019-12-31",
    }
    series.update(overrides)
    return series


class FakeTvdb:
    """Routes TVDB requests to canned responses."""

    def __init__(self, series: dict | None = None, translation: str | None = "Tatort") -> None:
        self.series = series if series is not None else _series()
        self.translation = translation
        self.logins = 0
        self.reject_next = 0
        self.client = MagicMock()
        self.client.post.side_effect = self._post
        self.client.get.side_effect = self._get

    def _post(self, url: str, json: dict) -> httpx.Response:
        self.logins += 1
        assert url.endswith("/login")
        return _response({"status": "success", "data": {"token": f"token-{self.logins}"}}, method="POST", url=url)

    def _get(self, url: str, params=None, headers=None) -> httpx.Response:
        if self.reject_next:
            self.reject_next -= 1
            return _response({"status": "failure"}, status=401, url=url)
        if url.endswith("/translations/deu"):
            if self.translation is None:
                return _response({"status": "failure"}, status=404, url=url)
            return _response({"status": "success", "data": {"name": self.translation, "language": "deu"}}, url=url)
        if url.endswith(f"/series/{self.series.get('id')}/extended"):
            return _response({"status": "success", "data": self.series}, url=url)
        return _response({"status": "failure", "message": "NotFoundException"}, status=404, url=url)


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("rundfunkarr.metadata.tvdb.time.sleep"), patch("rundfunkarr.metadata.tmdb.time.sleep"):
        yield


class TestTvdbProvider:
    def test_fetches_series_with_local_name(self) -> None:
        fake = FakeTvdb()
        provider = TvdbProvider("key", client=fake.client)

        show = provider.get_show(83214)

        assert show is not None
        assert show.name == "Crime Scene"
        assert show.local_name == "Tatort"
        assert show.aliases == ["Tatort Classics"]
        assert [episode.key for episode in show.episodes] == [(1, 5), (0, 1)]
        assert show.episodes[0].runtime == 90
        assert fake.logins == 1

    def test_login_body_includes_pin(self) -> None:
        fake = FakeTvdb()
        TvdbProvider("key", pin="1234", client=fake.client).get_show(83214)
        assert fake.client.post.call_args.kwargs["json"] == {"apikey": "key", "pin": "1234"}

    def test_translation_dict_needs_no_extra_request(self) -> None:
        fake = FakeTvdb(_series(nameTranslations={"deu": "Tatort"}))
        show = TvdbProvider("key", client=fake.client).get_show(83214)
        assert show.local_name == "Tatort"
        urls = [call.args[0] for call in fake.client.get.call_args_list]
        assert not any("translations" in url for url in urls)

    def test_missing_translation_uses_series_name(self) -> None:
        fake = FakeTvdb(_series(nameTranslations=["eng"]))
        assert TvdbProvider("key", client=fake.client).get_show(83214).local_name == "Crime Scene"

    def test_failed_translation_lookup_uses_series_name(self) -> None:
        fake = FakeTvdb(translation=None)
        assert TvdbProvider("key", client=fake.client).get_show(83214).local_name == "Crime Scene"

    def test_unknown_series(self) -> None:
        fake = FakeTvdb()
        assert TvdbProvider("key", client=fake.client).get_show(1) is None

    def test_token_is_reused(self) -> None:
        fake = FakeTvdb()
        provider = TvdbProvider("key", client=fake.client)
        provider.fetch_show(83214)
        provider.fetch_show(83214)
        assert fake.logins == 1

    def test_rejected_token_triggers_new_login(self) -> None:
        fake = FakeTvdb()
        provider = TvdbProvider("key", client=fake.client)
        provider.fetch_show(83214)
        fake.reject_next = 1

        assert provider.fetch_show(83214) is not None
        assert fake.logins == 2
        headers = fake.client.get.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer token-2"

    def test_login_failure_is_reported(self, caplog) -> None:
        client = MagicMock()
        client.post.return_value = _response({"status": "failure", "data": None}, status=401, method="POST")
        provider = TvdbProvider("bad", client=client)

        with pytest.raises(MetadataProviderError):
            provider.fetch_show(83214)
        with caplog.at_level("WARNING"):
            assert provider.get_show(83214) is None
        assert "TVDB lookup for show 83214 failed" in caplog.text

    def test_server_errors_are_retried(self) -> None:
        fake = FakeTvdb()
        responses = iter([_response({}, status=503), _response({}, status=503)])

        def flaky_get(url, params=None, headers=None):
            response = next(responses, None)
            if response is None:
                return fake._get(url, params=params, headers=headers)
            return response

        fake.client.get.side_effect = flaky_get
        assert TvdbProvider("key", client=fake.client).fetch_show(83214) is not None

    def test_results_are_cached(self, tmp_path: Path) -> None:
        fake = FakeTvdb()
        cache = MetadataCacheStore(tmp_path / "metadata.db")
        provider = TvdbProvider("key", cache=cache, client=fake.client)

        first = provider.get_show(83214)
        calls = fake.client.get.call_count
        second = provider.get_show(83214)

        assert second == first
        assert fake.client.get.call_count == calls
        entry = cache.get("tvdb/83214")
        assert entry is not None
        assert entry.expires_at - entry.fetched_at == timedelta(hours=INACTIVE_TTL_HOURS)
        cache.close()


class TestCacheTtl:
    NOW = datetime(2024, 6, 15, 12, 0, tzinfo=UTC)

    def test_inactive_series(self) -> None:
        series = TvdbSeries(id=1, lastUpdated="2024-01-01 00:00:00", lastAired="2023-12-01")
        assert cache_ttl_hours(series, self.NOW) == INACTIVE_TTL_HOURS

    @pytest.mark.parametrize(
        "fields",
        [
            {"lastUpdated": "2024-06-10 08:00:00"},
            {"nextAired": "2024-06-19"},
            {"lastAired": "2024-06-13"},
        ],
    )
    def test_active_series(self, fields: dict) -> None:
        assert cache_ttl_hours(TvdbSeries(id=1, **fields), self.NOW) == ACTIVE_TTL_HOURS

    def test_unparseable_dates_count_as_inactive(self) -> None:
        series = TvdbSeries(id=1, lastUpdated="soon", nextAired="", lastAired=None)
        assert cache_ttl_hours(series, self.NOW) == INACTIVE_TTL_HOURS


def test_parse_day() -> None:
    assert parse_day("2024-01-15T20:15:00Z").isoformat() == "2024-01-15"
    assert parse_day("2024") is None
    assert parse_day("not-a-date") is None
    assert parse_day(None) is None


JWT_TOKEN = "eyJhbGciOiJIUzI1NiJ9.e30.signature"


class FakeTmdb:
    """Routes TMDB requests to canned responses."""

    def __init__(self, translations: list[dict] | None = None) -> None:
        self.found: list[dict] = [{"id": 555, "name": "Crime Scene", "original_name": "Tatort"}]
        self.translations = (
            translations if translations is not None else [{"iso_639_1": "de", "data": {"name": "Tatort"}}]
        )
        self.seasons = {
            1: [
                {"name": "Der Fall", "episode_number": 5, "season_number": 1, "air_date": "2023-12-10", "runtime": 90},
                {"name": None, "episode_number": 6, "season_number": 1, "air_date": None, "runtime": None},
            ],
            2: [{"name": "Neues Jahr", "episode_number": 1, "season_number": 2, "air_date": "2024-01-07"}],
        }
        self.status: int | None = None
        self.client = MagicMock()
        self.client.get.side_effect = self._get

    def _get(self, url: str, params=None, headers=None) -> httpx.Response:
        if self.status is not None:
            return _response({"status_message": "nope"}, status=self.status, url=url)
        if "/find/83214" in url:
            return _response({"tv_results": self.found, "movie_results": []}, url=url)
        if url.endswith("/tv/555"):
            seasons = [{"season_number": 0, "episode_count": 3}]
            seasons += [{"season_number": number, "episode_count": 1} for number in (1, 2, 3)]
            details = {
                "id": 555,
                "name": "Crime Scene",
                "seasons": seasons,
                "translations": {"translations": self.translations},
            }
            return _response(details, url=url)
        for number, episodes in self.seasons.items():
            if url.endswith(f"/tv/555/season/{number}"):
                return _response({"episodes": episodes}, url=url)
        return _response({"status_message": "not found"}, status=404, url=url)

    def requested_urls(self) -> list[str]:
        return [call.args[0] for call in self.client.get.call_args_list]


class TestTmdbProvider:
    def test_resolves_show_via_tvdb_id(self) -> None:
        fake = FakeTmdb()
        show = TmdbProvider("v3key", client=fake.client).get_show(83214)

        assert show is not None
        assert show.show_id == 83214
        assert show.name == "Crime Scene"
        assert show.local_name == "Tatort"
        assert show.aliases == []
        assert [episode.key for episode in show.episodes] == [(1, 5), (1, 6), (2, 1)]
        assert show.episodes[0] == Episode(1, 5, "Der Fall", aired=parse_day("2023-12-10"), runtime=90)
        assert show.episodes[1].name == ""

        find_call = fake.client.get.call_args_list[0]
        assert find_call.kwargs["params"]["external_source"] == "tvdb_id"
        season_call = fake.client.get.call_args_list[2]
        assert season_call.kwargs["params"]["language"] == "de-DE"

    def test_specials_are_not_requested_and_missing_seasons_are_skipped(self, caplog) -> None:
        fake = FakeTmdb()
        with caplog.at_level("WARNING"):
            TmdbProvider("v3key", client=fake.client).get_show(83214)
        urls = fake.requested_urls()
        assert not any(url.endswith("/season/0") for url in urls)
        assert any(url.endswith("/season/3") for url in urls)
        assert "Skipping season 3" in caplog.text

    def test_api_key_is_sent_as_query_parameter(self) -> None:
        fake = FakeTmdb()
        TmdbProvider("v3key", client=fake.client).get_show(83214)
        for call in fake.client.get.call_args_list:
            assert call.kwargs["params"]["api_key"] == "v3key"
            assert "Authorization" not in call.kwargs["headers"]

    def test_read_access_token_is_sent_as_bearer(self) -> None:
        fake = FakeTmdb()
        TmdbProvider(JWT_TOKEN, client=fake.client).get_show(83214)
        for call in fake.client.get.call_args_list:
            assert call.kwargs["headers"]["Authorization"] == f"Bearer {JWT_TOKEN}"
            assert "api_key" not in call.kwargs["params"]

    def test_missing_translation_uses_show_name(self) -> None:
        fake = FakeTmdb(translations=[{"iso_639_1": "fr", "data": {"name": "Scène de crime"}}])
        assert TmdbProvider("v3key", client=fake.client).get_show(83214).local_name == "Crime Scene"

    def test_unknown_tvdb_id(self) -> None:
        fake = FakeTmdb()
        fake.found = []
        assert TmdbProvider("v3key", client=fake.client).get_show(83214) is None
        assert len(fake.requested_urls()) == 1

    def test_rejected_key_is_not_retried(self, caplog) -> None:
        fake = FakeTmdb()
        fake.status = 401
        provider = TmdbProvider("bad", client=fake.client)

        with pytest.raises(MetadataProviderError):
            provider.fetch_show(83214)
        assert fake.client.get.call_count == 1
        with caplog.at_level("WARNING"):
            assert provider.get_show(83214) is None
        assert "TMDB lookup for show 83214 failed" in caplog.text

    def test_server_errors_are_retried(self) -> None:
        fake = FakeTmdb()
        fake.status = 503
        with pytest.raises(MetadataProviderError):
            TmdbProvider("v3key", client=fake.client).fetch_show(83214)
        assert fake.client.get.call_count == 3

    def test_results_are_cached_for_a_week(self, tmp_path: Path) -> None:
        fake = FakeTmdb()
        cache = MetadataCacheStore(tmp_path / "metadata.db")
        provider = TmdbProvider("v3key", cache=cache, client=fake.client)

        first = provider.get_show(83214)
        calls = fake.client.get.call_count
        second = provider.get_show(83214)

        assert second == first
        assert fake.client.get.call_count == calls
        entry = cache.get("tmdb/83214")
        assert entry is not None
        assert entry.expires_at - entry.fetched_at == timedelta(hours=CACHE_TTL_HOURS)
        cache.close()
