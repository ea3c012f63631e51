"""TMDB v3 metadata provider, resolving shows by their TVDB id."""

from __future__ import annotations

import logging
import time

import httpx
from pydantic import ValidationError

from ..models import Episode, ShowMetadata
from ..persistence.metadata_cache import MetadataCacheStore
from .models import TmdbFindResult, TmdbSeasonDetails, TmdbTvDetails, parse_day
from .providers import MetadataProviderError

LOGGER = logging.getLogger(__name__)

TMDB_API_URL = "https://api.themoviedb.org/3"
LOCAL_LANGUAGE = "de"
SEASON_LANGUAGE = "de-DE"

MAX_RETRIES = 3
RETRY_BACKOFF = 1.0
CACHE_TTL_HOURS = 168


class TmdbNotFoundError(MetadataProviderError):
    """Resource not found (404)."""


def is_bearer_token(api_key: str) -> bool:
    """v4 read access tokens are JWTs; classic v3 keys are short hex strings."""
    return api_key.startswith("eyJ")


class TmdbProvider:
    """Looks up shows on TMDB via ``/find`` with the TVDB id.

    Episodes are collected season by season (specials excluded) with German
    titles. Results are cached in SQLite for a week under ``tmdb/<tvdb id>``.
    """

    name = "tmdb"

    def __init__(
        self,
        api_key: str,
        *,
        cache: MetadataCacheStore | None = None,
        base_url: str = TMDB_API_URL,
        timeout: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.api_key = api_key
        self.cache = cache
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=timeout)
        self._owns_client = client is None

    def _auth(self, params: dict[str, str]) -> tuple[dict[str, str], dict[str, str]]:
        headers = {"Accept": "application/json"}
        if is_bearer_token(self.api_key):
            headers["Authorization"] = f"Bearer {self.api_key}"
        else:
            params = {**params, "api_key": self.api_key}
        return params, headers

    def _request(self, path: str, **params: str) -> dict:
        """GET ``path`` with retry logic.

        Raises:
            TmdbNotFoundError: If the resource does not exist
            MetadataProviderError: On other API errors
        """
        url = f"{self.base_url}{path}"
        query, headers = self._auth(params)
        last_exception: Exception | None = None
        backoff = RETRY_BACKOFF

        for attempt in range(MAX_RETRIES):
            try:
                response = self._client.get(url, params=query, headers=headers)
                if response.status_code == 404:
                    raise TmdbNotFoundError(f"Resource not found: {path}")
                if 400 <= response.status_code < 500 and response.status_code != 429:
                    raise MetadataProviderError(f"TMDB rejected {path} with status {response.status_code}")
                response.raise_for_status()
                return response.json()
            except httpx.HTTPStatusError as exc:
                last_exception = exc
                if attempt < MAX_RETRIES - 1:
                    LOGGER.debug("TMDB request failed (attempt %d/%d): %s", attempt + 1, MAX_RETRIES, exc)
                    time.sleep(backoff)
                    backoff = min(backoff * 2, 30.0)
            except httpx.RequestError as exc:
                last_exception = exc
                if attempt < MAX_RETRIES - 1:
                    LOGGER.debug("TMDB request error (attempt %d/%d): %s", attempt + 1, MAX_RETRIES, exc)
                    time.sleep(backoff)
                    backoff = min(backoff * 2, 30.0)
            except ValueError as exc:
                raise MetadataProviderError(f"Malformed TMDB response for {path}") from exc

        raise MetadataProviderError(f"Failed to fetch {path} after {MAX_RETRIES} attempts") from last_exception

    def _find(self, tvdb_id: int) -> int | None:
        payload = self._request(f"/find/{tvdb_id}", external_source="tvdb_id")
        try:
            result = TmdbFindResult.model_validate(payload)
        except ValidationError as exc:
            raise MetadataProviderError(f"Unexpected TMDB find payload for {tvdb_id}: {exc}") from exc
        if not result.tv_results:
            return None
        match = result.tv_results[0]
        LOGGER.debug("TVDB id %s is TMDB show %s (%s)", tvdb_id, match.id, match.name)
        return match.id

    def _details(self, tmdb_id: int) -> TmdbTvDetails:
        payload = self._request(f"/tv/{tmdb_id}", append_to_response="translations")
        try:
            return TmdbTvDetails.model_validate(payload)
        except ValidationError as exc:
            raise MetadataProviderError(f"Unexpected TMDB payload for show {tmdb_id}: {exc}") from exc

    def _season_episodes(self, tmdb_id: int, season_number: int) -> list[Episode]:
        try:
            payload = self._request(f"/tv/{tmdb_id}/season/{season_number}", language=SEASON_LANGUAGE)
            season = TmdbSeasonDetails.model_validate(payload)
        except (MetadataProviderError, ValidationError) as exc:
            LOGGER.warning("Skipping season %s of TMDB show %s: %s", season_number, tmdb_id, exc)
            return []
        return [
            Episode(
                season_number=episode.season_number,
                episode_number=episode.episode_number,
                name=episode.name or "",
                aired=parse_day(episode.air_date),
                runtime=episode.runtime or None,
            )
            for episode in season.episodes
        ]

    def fetch_show(self, show_id: int) -> ShowMetadata | None:
        """Fetch the show with TVDB id ``show_id`` from the API, bypassing the cache.

        Raises:
            MetadataProviderError: On transport or API errors other than 404
        """
        try:
            tmdb_id = self._find(show_id)
        except TmdbNotFoundError:
            tmdb_id = None
        if tmdb_id is None:
            LOGGER.info("TMDB has no show for TVDB id %s", show_id)
            return None

        details = self._details(tmdb_id)
        episodes: list[Episode] = []
        for season in details.seasons:
            if season.season_number == 0:
                continue
            episodes.extend(self._season_episodes(tmdb_id, season.season_number))

        show = ShowMetadata(
            show_id=show_id,
            name=details.name,
            local_name=details.translated_name(LOCAL_LANGUAGE) or details.name or None,
            episodes=episodes,
        )
        LOGGER.info("Loaded %d TMDB episodes for %r", len(episodes), details.name)
        if self.cache is not None:
            self.cache.set(f"{self.name}/{show_id}", show, ttl_hours=CACHE_TTL_HOURS)
        return show

    def get_show(self, show_id: int) -> ShowMetadata | None:
        if self.cache is not None:
            entry = self.cache.get(f"{self.name}/{show_id}")
            if entry is not None:
                return entry.show
        try:
            return self.fetch_show(show_id)
        except MetadataProviderError as exc:
            LOGGER.warning("TMDB lookup for show %s failed: %s", show_id, exc)
            return None

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
