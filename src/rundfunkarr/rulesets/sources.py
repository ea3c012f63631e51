"""Curated ruleset source: remote JSON with a local file fallback."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Protocol

import httpx

from ..models import Ruleset
from .models import RulesetAdapter

LOGGER = logging.getLogger(__name__)

DEFAULT_RULESETS_URL = "https://raw.githubusercontent.com/rundfunkarr/rundfunkarr/main/data/rulesets.json"
USER_AGENT = "rundfunkarr"


class RulesetSource(Protocol):
    def load(self) -> list[Ruleset] | None:
        """Return the curated rulesets, or None when none could be read."""


class CuratedRulesetSource:
    """Loads curated rulesets from ``url``, falling back to ``local_file``."""

    def __init__(
        self,
        url: str | None = DEFAULT_RULESETS_URL,
        local_file: Path | None = None,
        *,
        timeout: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.url = url
        self.local_file = local_file
        self.timeout = timeout
        self._client = client
        self._adapter = RulesetAdapter()

    def _fetch_remote(self) -> Any | None:
        if not self.url:
            return None
        LOGGER.debug("Fetching curated rulesets from %s", self.url)
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
            LOGGER.warning("Fetching curated rulesets from %s failed: %s", self.url, exc)
            return None

    def _read_local(self) -> Any | None:
        if self.local_file is None:
            return None
        try:
            with self.local_file.open("r", encoding="utf-8") as handle:
                return json.load(handle)
        except (OSError, ValueError) as exc:
            LOGGER.warning("Reading curated rulesets from %s failed: %s", self.local_file, exc)
            return None

    def _convert(self, raw: Any, origin: str) -> list[Ruleset] | None:
        try:
            rulesets = self._adapter.to_rulesets(raw)
        except ValueError as exc:
            LOGGER.warning("Ignoring curated rulesets from %s: %s", origin, exc)
            return None
        LOGGER.info("Loaded %d curated rulesets from %s", len(rulesets), origin)
        return rulesets

    def load(self) -> list[Ruleset] | None:
        raw = self._fetch_remote()
        if raw is not None:
            rulesets = self._convert(raw, self.url or "remote")
            if rulesets is not None:
                return rulesets

        if self.local_file is not None:
            LOGGER.info("Falling back to local rulesets file %s", self.local_file)
        raw = self._read_local()
        if raw is not None:
            return self._convert(raw, str(self.local_file))
        return None
