"""Pydantic models for MediathekView query responses."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models import RawHit


def _coerce_int(value: Any) -> int:
    if value is None or value == "":
        return 0
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


class ResultItem(BaseModel):
    """A single catalog entry."""

    model_config = ConfigDict(extra="ignore")

    channel: str | None = ""
    topic: str | None = ""
    title: str | None = ""
    description: str | None = ""
    timestamp: int = 0
    filmlisteTimestamp: int = 0
    duration: int = 0
    size: int = 0
    url_website: str | None = ""
    url_video: str | None = ""
    url_video_low: str | None = ""
    url_video_hd: str | None = ""

    @field_validator("timestamp", "filmlisteTimestamp", "duration", "size", mode="before")
    @classmethod
    def _numbers(cls, value: Any) -> int:
        return _coerce_int(value)

    def to_hit(self) -> RawHit:
        return RawHit(
            channel=self.channel or "",
            topic=self.topic or "",
            title=self.title or "",
            description=self.description or "",
            timestamp=self.timestamp or self.filmlisteTimestamp,
            duration=self.duration,
            size=self.size,
            url_website=self.url_website or "",
            url_video=self.url_video or "",
            url_video_low=self.url_video_low or "",
            url_video_hd=self.url_video_hd or "",
        )


class QueryInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    filmlisteTimestamp: int | None = None
    searchEngineTime: float | str | None = None
    resultCount: int = 0
    totalResults: int = 0


class QueryResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    results: list[ResultItem] = Field(default_factory=list)
    queryInfo: QueryInfo | None = None


class QueryResponse(BaseModel):
    """Top-level ``{"result": ..., "err": ...}`` envelope."""

    model_config = ConfigDict(extra="ignore")

    result: QueryResult | None = None
    err: Any = None
