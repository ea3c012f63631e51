"""Pydantic models for show metadata payloads (shows.json, TVDB v4 and TMDB v3)."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models import Episode, ShowMetadata


def parse_day(value: Any) -> date | None:
    """Parse ``"2024-01-15"`` or an ISO timestamp into a date; None when unusable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if len(text) < 10:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


class LocalEpisodePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str | None = ""
    seasonNumber: int
    episodeNumber: int
    aired: str | None = None
    runtime: int | None = None


class LocalShowPayload(BaseModel):
    """A show entry of the bundled ``shows.json``."""

    model_config = ConfigDict(extra="ignore")

    tvdbId: int
    name: str = ""
    germanName: str | None = None
    aliases: list[str] = Field(default_factory=list)
    episodes: list[LocalEpisodePayload] = Field(default_factory=list)

    def to_show(self) -> ShowMetadata:
        return ShowMetadata(
            show_id=self.tvdbId,
            name=self.name,
            local_name=self.germanName or None,
            aliases=list(self.aliases),
            episodes=[
                Episode(
                    season_number=episode.seasonNumber,
                    episode_number=episode.episodeNumber,
                    name=episode.name or "",
                    aired=parse_day(episode.aired),
                    runtime=episode.runtime or None,
                )
                for episode in self.episodes
            ],
        )


class TvdbAlias(BaseModel):
    model_config = ConfigDict(extra="ignore")

    language: str | None = None
    name: str = ""


class TvdbEpisode(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int | None = None
    name: str | None = ""
    aired: str | None = None
    runtime: int | None = None
    seasonNumber: int = 0
    number: int = 0


class TvdbSeries(BaseModel):
    """The ``data`` member of ``/series/{id}/extended``."""

    model_config = ConfigDict(extra="ignore")

    id: int
    name: str = ""
    slug: str | None = None
    nameTranslations: list[str] | dict[str, str] | None = None
    aliases: list[TvdbAlias] = Field(default_factory=list)
    episodes: list[TvdbEpisode] = Field(default_factory=list)
    lastUpdated: str | None = None
    nextAired: str | None = None
    lastAired: str | None = None

    @field_validator("aliases", "episodes", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class TvdbEnvelope(BaseModel):
    """``{"status": ..., "data": ...}`` wrapper used by every TVDB v4 response."""

    model_config = ConfigDict(extra="ignore")

    status: str | None = None
    data: Any = None


class TmdbFindShow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    name: str = ""
    original_name: str | None = None


class TmdbFindResult(BaseModel):
    """Response of ``/find/{id}?external_source=tvdb_id``."""

    model_config = ConfigDict(extra="ignore")

    tv_results: list[TmdbFindShow] = Field(default_factory=list)

    @field_validator("tv_results", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class TmdbSeasonSummary(BaseModel):
    model_config = ConfigDict(extra="ignore")

    season_number: int
    episode_count: int | None = None


class TmdbTranslationData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str | None = None


class TmdbTranslation(BaseModel):
    model_config = ConfigDict(extra="ignore")

    iso_639_1: str | None = None
    data: TmdbTranslationData | None = None


class TmdbTranslations(BaseModel):
    model_config = ConfigDict(extra="ignore")

    translations: list[TmdbTranslation] = Field(default_factory=list)


class TmdbTvDetails(BaseModel):
    """Response of ``/tv/{id}?append_to_response=translations``."""

    model_config = ConfigDict(extra="ignore")

    id: int
    name: str = ""
    original_name: str | None = None
    seasons: list[TmdbSeasonSummary] = Field(default_factory=list)
    translations: TmdbTranslations | None = None

    @field_validator("seasons", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    def translated_name(self, language: str) -> str | None:
        if self.translations is None:
            return None
        for translation in self.translations.translations:
            if translation.iso_639_1 == language and translation.data is not None and translation.data.name:
                return translation.data.name
        return None


class TmdbEpisode(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str | None = ""
    episode_number: int
    season_number: int
    air_date: str | None = None
    runtime: int | None = None


class TmdbSeasonDetails(BaseModel):
    """Response of ``/tv/{id}/season/{number}``."""

    model_config = ConfigDict(extra="ignore")

    episodes: list[TmdbEpisode] = Field(default_factory=list)

    @field_validator("episodes", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value
