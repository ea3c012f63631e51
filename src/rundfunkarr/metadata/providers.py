"""Show metadata providers and the provider chain.

Providers return ``None`` for unknown shows and for transport failures; a
``MetadataProviderError`` raised inside a provider is handled by the chain.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections import OrderedDict
from pathlib import Path
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from ..models import ShowMetadata
from .models import LocalShowPayload

LOGGER = logging.getLogger(__name__)

DEFAULT_SHOWS_URL = "https://raw.githubusercontent.com/rundfunkarr/rundfunkarr/main/data/shows.json"
SHOWS_REFRESH_INTERVAL = 3600.0
DEFAULT_CHAIN_TTL = 86400.0
DEFAULT_CHAIN_ENTRIES = 1000
USER_AGENT = "rundfunkarr"


class MetadataProviderError(Exception):
    """Raised when a metadata provider cannot answer a request."""


class MetadataProvider(Protocol):
    name: str

    def get_show(self, show_id: int) -> ShowMetadata | None: ...


class LocalShowsProvider:
    """Serves shows from ``shows.json``, fetched remotely with a local fallback.

    The index is rebuilt at most once per ``refresh_interval`` seconds.
    """

    name = "local"

    def __init__(
        self,
        url: str | None = DEFAULT_SHOWS_URL,
        local_file: Path | None = None,
        *,
        refresh_interval: float = SHOWS_REFRESH_INTERVAL,
        timeout: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.url = url
        self.local_file = local_file
        self.refresh_interval = refresh_interval
        self.timeout = timeout
        self._client = client
        self._shows: dict[int, ShowMetadata] = {}
        self._loaded_at: float | None = None
        self._lock = threading.Lock()

    def _fetch_remote(self) -> Any | None:
        if not self.url:
            return None
        try:
            if self._client is not None:
                response = self._client.get(self.url)
            else:
                response = httpx.get(
                    self.url,
                    timeout=self.timeout,
                    headers={"User-Agent": USER_AGENT},
                    follow_redirects=True,
                )
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as exc:
            LOGGER.warning("Fetching shows from %s failed: %s", self.url, exc)
            return None

    def _read_local(self) -> Any | None:
        if self.local_file is None:
            return None
        try:
            with self.local_file.open("r", encoding="utf-8") as handle:
                return json.load(handle)
        except (OSError, ValueError) as exc:
            LOGGER.warning("Reading shows from %s failed: %s", self.local_file, exc)
            return None

    def _index(self, raw: Any) -> dict[int, ShowMetadata] | None:
        if not isinstance(raw, list):
            return None
        shows: dict[int, ShowMetadata] = {}
        for entry in raw:
            try:
                payload = LocalShowPayload.model_validate(entry)
            except ValidationError as exc:
                LOGGER.debug("Skipping invalid show entry: %s", exc)
                continue
            shows[payload.tvdbId] = payload.to_show()
        return shows

    def _ensure_loaded(self) -> None:
        with self._lock:
            now = time.monotonic()
            if self._loaded_at is not None and now - self._loaded_at < self.refresh_interval:
                return
            shows = self._index(self._fetch_remote())
            if shows is None:
                shows = self._index(self._read_local())
            if shows is None:
                LOGGER.error("No show list could be loaded")
                if self._loaded_at is None:
                    # retry on the next lookup
                    return
            else:
                self._shows = shows
                LOGGER.info("Indexed %d local shows", len(shows))
            self._loaded_at = now

    def get_show(self, show_id: int) -> ShowMetadata | None:
        self._ensure_loaded()
        return self._shows.get(show_id)


class ProviderChain:
    """Tries providers in order and caches the first answer per show in memory.

    Cached shows expire after ``cache_ttl`` seconds; once ``max_entries`` shows
    are cached the least recently used one is dropped.
    """

    name = "chain"

    def __init__(
        self,
        providers: list[MetadataProvider],
        *,
        cache_ttl: float = DEFAULT_CHAIN_TTL,
        max_entries: int = DEFAULT_CHAIN_ENTRIES,
    ) -> None:
        self._providers = list(providers)
        self.cache_ttl = cache_ttl
        self.max_entries = max_entries
        self._cache: OrderedDict[int, tuple[float, ShowMetadata]] = OrderedDict()
        self._lock = threading.Lock()

    @property
    def providers(self) -> list[MetadataProvider]:
        return list(self._providers)

    def _cached(self, show_id: int) -> ShowMetadata | None:
        with self._lock:
            entry = self._cache.get(show_id)
            if entry is None:
                return None
            expires_at, show = entry
            if time.monotonic() >= expires_at:
                del self._cache[show_id]
                return None
            self._cache.move_to_end(show_id)
            return show

    def _remember(self, show_id: int, show: ShowMetadata) -> None:
        if self.cache_ttl <= 0:
            return
        with self._lock:
            self._cache[show_id] = (time.monotonic() + self.cache_ttl, show)
            self._cache.move_to_end(show_id)
            while len(self._cache) > self.max_entries:
                self._cache.popitem(last=False)

    def get_show(self, show_id: int) -> ShowMetadata | None:
        cached = self._cached(show_id)
        if cached is not None:
            return cached

        for provider in self._providers:
            try:
                show = provider.get_show(show_id)
            except MetadataProviderError as exc:
                LOGGER.warning("Provider %s failed for show %s: %s", provider.name, show_id, exc)
                continue
            if show is None:
                continue
            LOGGER.debug("Found %r via %s", show.display_name, provider.name)
            self._remember(show_id, show)
            return show

        LOGGER.info("No metadata found for show %s in any provider", show_id)
        return None

    def invalidate(self, show_id: int | None = None) -> None:
        with self._lock:
            if show_id is None:
                self._cache.clear()
            else:
                self._cache.pop(show_id, None)
