"""TheTVDB v4 metadata provider."""

from __future__ import annotations

import logging
import threading
import time
from datetime import UTC, datetime, timedelta

import httpx
from pydantic import ValidationError

from ..models import Episode, ShowMetadata
from ..persistence.metadata_cache import MetadataCacheStore
from .models import TvdbEnvelope, TvdbSeries, parse_day
from .providers import MetadataProviderError

LOGGER = logging.getLogger(__name__)

TVDB_API_URL = "https://api4.thetvdb.com/v4"
LOCAL_LANGUAGE = "deu"

MAX_RETRIES = 3
RETRY_BACKOFF = 1.0
TOKEN_LIFETIME = timedelta(hours=24)

# Running shows are refreshed after two days, everything else after six.
ACTIVE_TTL_HOURS = 48
INACTIVE_TTL_HOURS = 144


class TvdbNotFoundError(MetadataProviderError):
    """Series not found (404)."""


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        day = parse_day(value)
        if day is None:
            return None
        parsed = datetime(day.year, day.month, day.day)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def cache_ttl_hours(series: TvdbSeries, now: datetime | None = None) -> int:
    """Return how long ``series`` may be cached.

    A series counts as active when it was updated within 7 days, airs next
    within 6 days, or last aired within 3 days.
    """
    now = now or datetime.now(UTC)

    def within(value: str | None, days: int) -> bool:
        moment = _parse_timestamp(value)
        return moment is not None and abs((moment - now).total_seconds()) < days * 86400

    if within(series.lastUpdated, 7) or within(series.nextAired, 6) or within(series.lastAired, 3):
        return ACTIVE_TTL_HOURS
    return INACTIVE_TTL_HOURS


class TvdbProvider:
    """Fetches series with episodes from TheTVDB and caches them in SQLite.

    A login token is requested with the API key (and optional PIN) and reused
    for 24 hours. Cached series expire after ``cache_ttl_hours``.
    """

    name = "tvdb"

    def __init__(
        self,
        api_key: str,
        *,
        pin: str | None = None,
        cache: MetadataCacheStore | None = None,
        base_url: str = TVDB_API_URL,
        timeout: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.api_key = api_key
        self.pin = pin
        self.cache = cache
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=timeout)
        self._owns_client = client is None
        self._token: str | None = None
        self._token_expiry: datetime | None = None
        self._token_lock = threading.Lock()

    def _login(self) -> str:
        body: dict[str, str] = {"apikey": self.api_key}
        if self.pin:
            body["pin"] = self.pin
        try:
            response = self._client.post(f"{self.base_url}/login", json=body)
            response.raise_for_status()
            envelope = TvdbEnvelope.model_validate(response.json())
        except (httpx.HTTPError, ValueError, ValidationError) as exc:
            raise MetadataProviderError(f"TVDB login failed: {exc}") from exc

        token = envelope.data.get("token") if isinstance(envelope.data, dict) else None
        if envelope.status != "success" or not token:
            raise MetadataProviderError(f"TVDB login rejected (status={envelope.status})")
        return token

    def _get_token(self, *, force: bool = False) -> str:
        with self._token_lock:
            now = datetime.now(UTC)
            if not force and self._token and self._token_expiry and now < self._token_expiry:
                return self._token
            self._token = self._login()
            self._token_expiry = now + TOKEN_LIFETIME
            return self._token

    def _request(self, path: str, **params: str) -> dict:
        """GET ``path`` with authentication and retry logic.

        Raises:
            TvdbNotFoundError: If the resource does not exist
            MetadataProviderError: On other API errors
        """
        url = f"{self.base_url}{path}"
        last_exception: Exception | None = None
        backoff = RETRY_BACKOFF
        refreshed = False

        for attempt in range(MAX_RETRIES):
            token = self._get_token()
            try:
                response = self._client.get(
                    url,
                    params=params or None,
                    headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
                )
                if response.status_code == 404:
                    raise TvdbNotFoundError(f"Resource not found: {path}")
                if response.status_code == 401 and not refreshed:
                    LOGGER.debug("TVDB token rejected, logging in again")
                    self._get_token(force=True)
                    refreshed = True
                    continue
                response.raise_for_status()
                return response.json()
            except httpx.HTTPStatusError as exc:
                last_exception = exc
                if attempt < MAX_RETRIES - 1:
                    LOGGER.debug("TVDB request failed (attempt %d/%d): %s", attempt + 1, MAX_RETRIES, exc)
                    time.sleep(backoff)
                    backoff = min(backoff * 2, 30.0)
            except httpx.RequestError as exc:
                last_exception = exc
                if attempt < MAX_RETRIES - 1:
                    LOGGER.debug("TVDB request error (attempt %d/%d): %s", attempt + 1, MAX_RETRIES, exc)
                    time.sleep(backoff)
                    backoff = min(backoff * 2, 30.0)
            except ValueError as exc:
                raise MetadataProviderError(f"Malformed TVDB response for {path}") from exc

        raise MetadataProviderError(f"Failed to fetch {path} after {MAX_RETRIES} attempts") from last_exception

    def _fetch_series(self, show_id: int) -> TvdbSeries:
        payload = self._request(f"/series/{show_id}/extended", meta="episodes", short="true")
        try:
            envelope = TvdbEnvelope.model_validate(payload)
            if envelope.status != "success" or not isinstance(envelope.data, dict):
                raise MetadataProviderError(f"TVDB returned status {envelope.status!r} for series {show_id}")
            return TvdbSeries.model_validate(envelope.data)
        except ValidationError as exc:
            raise MetadataProviderError(f"Unexpected TVDB payload for series {show_id}: {exc}") from exc

    def _local_name(self, series: TvdbSeries) -> str | None:
        translations = series.nameTranslations
        if isinstance(translations, dict):
            return translations.get(LOCAL_LANGUAGE) or None
        if not translations or LOCAL_LANGUAGE not in translations:
            return None
        try:
            payload = self._request(f"/series/{series.id}/translations/{LOCAL_LANGUAGE}")
        except MetadataProviderError as exc:
            LOGGER.debug("No %s translation for series %s: %s", LOCAL_LANGUAGE, series.id, exc)
            return None
        data = payload.get("data") if isinstance(payload, dict) else None
        if isinstance(data, dict):
            return data.get("name") or None
        return None

    def to_show(self, series: TvdbSeries, local_name: str | None) -> ShowMetadata:
        return ShowMetadata(
            show_id=series.id,
            name=series.name,
            local_name=local_name or series.name or None,
            aliases=[alias.name for alias in series.aliases if alias.language == LOCAL_LANGUAGE and alias.name],
            episodes=[
                Episode(
                    season_number=episode.seasonNumber,
                    episode_number=episode.number,
                    name=episode.name or "",
                    aired=parse_day(episode.aired),
                    runtime=episode.runtime or None,
                )
                for episode in series.episodes
            ],
        )

    def fetch_show(self, show_id: int) -> ShowMetadata | None:
        """Fetch ``show_id`` from the API, bypassing the cache.

        Raises:
            MetadataProviderError: On transport or API errors other than 404
        """
        try:
            series = self._fetch_series(show_id)
        except TvdbNotFoundError:
            LOGGER.info("TVDB has no series %s", show_id)
            return None
        show = self.to_show(series, self._local_name(series))
        if self.cache is not None:
            self.cache.set(f"{self.name}/{show_id}", show, ttl_hours=cache_ttl_hours(series))
        return show

    def get_show(self, show_id: int) -> ShowMetadata | None:
        if self.cache is not None:
            entry = self.cache.get(f"{self.name}/{show_id}")
            if entry is not None:
                return entry.show
        try:
            return self.fetch_show(show_id)
        except MetadataProviderError as exc:
            LOGGER.warning("TVDB lookup for show %s failed: %s", show_id, exc)
            return None

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
