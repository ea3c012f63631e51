"""HTTP client for the MediathekView query API."""

from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Sequence

import httpx
from pydantic import ValidationError

from ..models import RawHit
from .models import QueryResponse

LOGGER = logging.getLogger(__name__)

DEFAULT_API_URL = "https://mediathekviewweb.de/api/query"
QUERY_FIELDS = ("topic", "title")
USER_AGENT = "rundfunkarr"

MAX_RETRIES = 3
RETRY_BACKOFF = 1.0

CatalogQuery = tuple[Sequence[str], str]


class CatalogError(Exception):
    """Base exception for catalog API errors."""


class CatalogClient:
    """HTTP client for the MediathekView catalog.

    Every public method converts transport, HTTP and payload errors into an
    empty result; ``CatalogError`` never leaves the client. Successful
    responses are cached in memory for ``cache_ttl`` seconds.
    """

    def __init__(
        self,
        api_url: str = DEFAULT_API_URL,
        *,
        timeout: float = 30.0,
        cache_ttl: float = 3600.0,
        client: httpx.Client | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_url: Query endpoint
            timeout: HTTP request timeout in seconds
            cache_ttl: Seconds a response stays cached (0 disables caching)
            client: Optional pre-configured httpx client
        """
        self.api_url = api_url
        self.cache_ttl = cache_ttl
        self._client = client or httpx.Client(timeout=timeout, headers={"User-Agent": USER_AGENT})
        self._owns_client = client is None
        self._cache: dict[str, tuple[float, list[RawHit]]] = {}
        self._cache_lock = threading.Lock()

    def _post(self, body: dict[str, object]) -> httpx.Response:
        """POST ``body`` with retry logic.

        Raises:
            CatalogError: When every attempt failed
        """
        last_exception: Exception | None = None
        backoff = RETRY_BACKOFF

        for attempt in range(MAX_RETRIES):
            try:
                response = self._client.post(self.api_url, json=body)
                if response.status_code == 429:
                    retry_after = int(response.headers.get("Retry-After", backoff))
                    LOGGER.warning("Rate limited, waiting %d seconds", retry_after)
                    time.sleep(retry_after)
                    backoff = min(backoff * 2, 30.0)
                    continue
                response.raise_for_status()
                return response
            except httpx.HTTPStatusError as exc:
                last_exception = exc
                if exc.response.status_code < 500:
                    break
                if attempt < MAX_RETRIES - 1:
                    LOGGER.debug("Catalog query failed (attempt %d/%d): %s", attempt + 1, MAX_RETRIES, exc)
                    time.sleep(backoff)
                    backoff = min(backoff * 2, 30.0)
            except httpx.RequestError as exc:
                last_exception = exc
                if attempt < MAX_RETRIES - 1:
                    LOGGER.debug("Catalog request error (attempt %d/%d): %s", attempt + 1, MAX_RETRIES, exc)
                    time.sleep(backoff)
                    backoff = min(backoff * 2, 30.0)

        raise CatalogError(f"Catalog query failed after {MAX_RETRIES} attempts") from last_exception

    def _parse(self, response: httpx.Response) -> list[RawHit]:
        try:
            payload = QueryResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise CatalogError(f"Malformed catalog response: {exc}") from exc
        if payload.err:
            raise CatalogError(f"Catalog reported an error: {payload.err}")
        if payload.result is None:
            return []
        return [item.to_hit() for item in payload.result.results]

    def _cached(self, key: str) -> list[RawHit] | None:
        if self.cache_ttl <= 0:
            return None
        with self._cache_lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            stored_at, hits = entry
            if time.monotonic() - stored_at > self.cache_ttl:
                del self._cache[key]
                return None
            return list(hits)

    def _store(self, key: str, hits: list[RawHit]) -> None:
        if self.cache_ttl <= 0:
            return
        with self._cache_lock:
            self._cache[key] = (time.monotonic(), list(hits))

    def query(
        self,
        queries: Sequence[CatalogQuery],
        *,
        size: int,
        sort_by: str = "timestamp",
        future: bool = False,
    ) -> list[RawHit]:
        """Run a raw catalog query.

        Args:
            queries: ``(fields, text)`` pairs; all must match
            size: Maximum number of hits
            sort_by: Sort field, newest first
            future: Include entries scheduled in the future

        Returns:
            Hits in catalog order, or an empty list on any failure
        """
        body: dict[str, object] = {
            "queries": [{"fields": list(fields), "query": text} for fields, text in queries],
            "sortBy": sort_by,
            "sortOrder": "desc",
            "future": future,
            "offset": 0,
            "size": size,
        }
        key = json.dumps(body, sort_keys=True, ensure_ascii=False)
        cached = self._cached(key)
        if cached is not None:
            LOGGER.debug("Using cached catalog response (%d hits)", len(cached))
            return cached

        try:
            hits = self._parse(self._post(body))
        except CatalogError as exc:
            LOGGER.warning("Catalog query %s failed: %s", [text for _, text in queries], exc)
            return []

        self._store(key, hits)
        LOGGER.debug("Catalog returned %d hits for %s", len(hits), [text for _, text in queries])
        return hits

    def search(
        self,
        query: str,
        *,
        max_results: int = 50,
        fields: Sequence[str] = QUERY_FIELDS,
    ) -> list[RawHit]:
        """Search ``fields`` for ``query``; empty queries return nothing."""
        if not query or not query.strip():
            return []
        return self.query([(fields, query.strip())], size=max_results)

    def recent(self, *, max_results: int = 6000) -> list[RawHit]:
        """Return the newest catalog entries regardless of topic."""
        return self.query([], size=max_results)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> CatalogClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
