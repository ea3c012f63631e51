from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .catalog.client import DEFAULT_API_URL
from .metadata.providers import DEFAULT_SHOWS_URL
from .rulesets.sources import DEFAULT_RULESETS_URL
from .utils import env_str, load_yaml_file, validate_url

TVDB_KEY_ENV = "RUNDFUNKARR_TVDB_KEY"
RULESETS_URL_ENV = "RUNDFUNKARR_RULESETS_URL"
TMDB_KEY_ENV = "RUNDFUNKARR_TMDB_KEY"


@dataclass
class CatalogSettings:
    """MediathekView query endpoint and request sizing."""

    api_url: str = DEFAULT_API_URL
    timeout: float = 30.0
    cache_ttl: float = 3600.0
    show_max_results: int = 10000
    text_max_results: int = 1500
    recent_max_results: int = 6000


@dataclass
class RulesetSettings:
    url: str | None = DEFAULT_RULESETS_URL
    local_file: Path | None = None
    refresh_interval: float = 3600.0
    auto_generate: bool = True


@dataclass
class MetadataSettings:
    shows_url: str | None = DEFAULT_SHOWS_URL
    shows_file: Path | None = None
    tvdb_api_key: str | None = None
    tvdb_pin: str | None = None
    tmdb_api_key: str | None = None
    timeout: float = 30.0
    cache_ttl: float = 86400.0


@dataclass
class MatchingSettings:
    title_threshold: float = 1.0
    movie_duration_tolerance: int = 10


@dataclass
class SearchSettings:
    timeout: float = 30.0


@dataclass
class Settings:
    data_dir: Path = field(default_factory=lambda: Path("data"))
    log_level: str = "INFO"
    log_file: Path | None = None
    catalog: CatalogSettings = field(default_factory=CatalogSettings)
    rulesets: RulesetSettings = field(default_factory=RulesetSettings)
    metadata: MetadataSettings = field(default_factory=MetadataSettings)
    matching: MatchingSettings = field(default_factory=MatchingSettings)
    search: SearchSettings = field(default_factory=SearchSettings)

    @property
    def generated_db_path(self) -> Path:
        return self.data_dir / "rundfunkarr.db"

    @property
    def metadata_db_path(self) -> Path:
        return self.data_dir / "metadata.db"


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    raw = data.get(name, {}) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"'{name}' must be provided as a mapping when specified")
    return raw


def _float(data: dict[str, Any], key: str, default: float, *, field_name: str, minimum: float | None = None) -> float:
    try:
        value = float(data.get(key, default))
    except (TypeError, ValueError) as exc:
        raise ValueError(f"'{field_name}' must be a number") from exc
    if minimum is not None and value < minimum:
        raise ValueError(f"'{field_name}' must be at least {minimum}")
    return value


def _int(data: dict[str, Any], key: str, default: int, *, field_name: str, minimum: int | None = None) -> int:
    try:
        value = int(data.get(key, default))
    except (TypeError, ValueError) as exc:
        raise ValueError(f"'{field_name}' must be an integer") from exc
    if minimum is not None and value < minimum:
        raise ValueError(f"'{field_name}' must be at least {minimum}")
    return value


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    stripped = str(value).strip()
    return stripped or None


def _optional_url(value: Any, *, field_name: str) -> str | None:
    url = _optional_str(value)
    if url is not None and not validate_url(url):
        raise ValueError(f"'{field_name}' must be an http(s) URL")
    return url


def _optional_path(value: Any) -> Path | None:
    text = _optional_str(value)
    return Path(text).expanduser() if text else None


def _build_catalog_settings(data: dict[str, Any]) -> CatalogSettings:
    defaults = CatalogSettings()
    api_url = _optional_url(data.get("api_url"), field_name="catalog.api_url") or defaults.api_url
    return CatalogSettings(
        api_url=api_url,
        timeout=_float(data, "timeout", defaults.timeout, field_name="catalog.timeout", minimum=0.1),
        cache_ttl=_float(data, "cache_ttl", defaults.cache_ttl, field_name="catalog.cache_ttl", minimum=0),
        show_max_results=_int(
            data, "show_max_results", defaults.show_max_results, field_name="catalog.show_max_results", minimum=1
        ),
        text_max_results=_int(
            data, "text_max_results", defaults.text_max_results, field_name="catalog.text_max_results", minimum=1
        ),
        recent_max_results=_int(
            data, "recent_max_results", defaults.recent_max_results, field_name="catalog.recent_max_results", minimum=1
        ),
    )


def _build_ruleset_settings(data: dict[str, Any]) -> RulesetSettings:
    defaults = RulesetSettings()
    if "url" in data:
        url = _optional_url(data.get("url"), field_name="rulesets.url")
    else:
        url = defaults.url
    env_url = env_str(RULESETS_URL_ENV)
    if env_url:
        url = _optional_url(env_url, field_name=RULESETS_URL_ENV)
    return RulesetSettings(
        url=url,
        local_file=_optional_path(data.get("local_file")),
        refresh_interval=_float(
            data, "refresh_interval", defaults.refresh_interval, field_name="rulesets.refresh_interval", minimum=1
        ),
        auto_generate=bool(data.get("auto_generate", defaults.auto_generate)),
    )


def _build_metadata_settings(data: dict[str, Any]) -> MetadataSettings:
    defaults = MetadataSettings()
    if "shows_url" in data:
        shows_url = _optional_url(data.get("shows_url"), field_name="metadata.shows_url")
    else:
        shows_url = defaults.shows_url

    tvdb_raw = data.get("tvdb", {}) or {}
    if not isinstance(tvdb_raw, dict):
        raise ValueError("'metadata.tvdb' must be provided as a mapping when specified")
    api_key = env_str(TVDB_KEY_ENV) or _optional_str(tvdb_raw.get("api_key"))

    tmdb_raw = data.get("tmdb", {}) or {}
    if not isinstance(tmdb_raw, dict):
        raise ValueError("'metadata.tmdb' must be provided as a mapping when specified")
    tmdb_key = env_str(TMDB_KEY_ENV) or _optional_str(tmdb_raw.get("api_key"))

    return MetadataSettings(
        shows_url=shows_url,
        shows_file=_optional_path(data.get("shows_file")),
        tvdb_api_key=api_key,
        tvdb_pin=_optional_str(tvdb_raw.get("pin")),
        tmdb_api_key=tmdb_key,
        timeout=_float(data, "timeout", defaults.timeout, field_name="metadata.timeout", minimum=0.1),
        cache_ttl=_float(data, "cache_ttl", defaults.cache_ttl, field_name="metadata.cache_ttl", minimum=0),
    )


def _build_matching_settings(data: dict[str, Any]) -> MatchingSettings:
    threshold = _float(data, "title_threshold", 1.0, field_name="matching.title_threshold", minimum=0)
    if threshold > 1.0:
        raise ValueError("'matching.title_threshold' must be between 0 and 1")
    return MatchingSettings(
        title_threshold=threshold,
        movie_duration_tolerance=_int(
            data, "movie_duration_tolerance", 10, field_name="matching.movie_duration_tolerance", minimum=0
        ),
    )


def _build_settings(data: dict[str, Any]) -> Settings:
    log_level = str(data.get("log_level", "INFO")).strip().upper() or "INFO"
    return Settings(
        data_dir=Path(data.get("data_dir", "data")).expanduser(),
        log_level=log_level,
        log_file=_optional_path(data.get("log_file")),
        catalog=_build_catalog_settings(_section(data, "catalog")),
        rulesets=_build_ruleset_settings(_section(data, "rulesets")),
        metadata=_build_metadata_settings(_section(data, "metadata")),
        matching=_build_matching_settings(_section(data, "matching")),
        search=SearchSettings(
            timeout=_float(_section(data, "search"), "timeout", 30.0, field_name="search.timeout", minimum=0.1)
        ),
    )


def build_settings(data: dict[str, Any] | None) -> Settings:
    """Build ``Settings`` from an already-parsed mapping.

    Raises:
        ValueError: With the offending field path when a value is invalid
    """
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError("Configuration root must be a mapping")
    return _build_settings(data)


def load_config(path: Path | None) -> Settings:
    """Load settings from a YAML file; ``None`` yields defaults plus env overrides."""
    if path is None:
        return build_settings({})
    return build_settings(load_yaml_file(path))
