"""SQLite-backed cache for show metadata.

Entries are keyed ``"provider/show_id"`` (e.g. ``"tvdb/81189"``) and carry
their own expiry so providers can keep ended shows longer than running ones.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from pathlib import Path
from typing import Any

from ..models import Episode, ShowMetadata

LOGGER = logging.getLogger(__name__)


def show_to_dict(show: ShowMetadata) -> dict[str, Any]:
    return {
        "show_id": show.show_id,
        "name": show.name,
        "local_name": show.local_name,
        "aliases": list(show.aliases),
        "episodes": [
            {
                "season": episode.season_number,
                "episode": episode.episode_number,
                "name": episode.name,
                "aired": episode.aired.isoformat() if episode.aired else None,
                "runtime": episode.runtime,
            }
            for episode in show.episodes
        ],
    }


def show_from_dict(data: dict[str, Any]) -> ShowMetadata:
    episodes = [
        Episode(
            season_number=int(item["season"]),
            episode_number=int(item["episode"]),
            name=item.get("name") or "",
            aired=date.fromisoformat(item["aired"]) if item.get("aired") else None,
            runtime=item.get("runtime"),
        )
        for item in data.get("episodes", [])
    ]
    return ShowMetadata(
        show_id=int(data["show_id"]),
        name=data.get("name") or "",
        local_name=data.get("local_name"),
        aliases=list(data.get("aliases") or []),
        episodes=episodes,
    )


@dataclass
class CacheEntry:
    """A cached show.

    Attributes:
        key: Unique cache key (e.g., "tvdb/81189")
        show: The cached metadata
        fetched_at: When the metadata was fetched
        expires_at: When the cache entry expires
    """

    key: str
    show: ShowMetadata
    fetched_at: datetime
    expires_at: datetime

    @property
    def is_expired(self) -> bool:
        return datetime.now(UTC) > self.expires_at


class MetadataCacheStore:
    """SQLite-backed TTL cache for ``ShowMetadata``.

    Example:
        cache = MetadataCacheStore(Path("/data/metadata.db"), ttl_hours=48)
        cache.set("tvdb/81189", show, ttl_hours=144)
        entry = cache.get("tvdb/81189")  # None once expired
    """

    SCHEMA_VERSION = 1

    def __init__(self, db_path: Path, ttl_hours: int = 48) -> None:
        self.db_path = db_path
        self.ttl_hours = ttl_hours
        self._ttl = timedelta(hours=ttl_hours)
        self._local = threading.local()

        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a thread-local database connection."""
        if not hasattr(self._local, "connection") or self._local.connection is None:
            self._local.connection = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._local.connection.row_factory = sqlite3.Row
            self._local.connection.execute("PRAGMA journal_mode=WAL")
        return self._local.connection

    def _init_schema(self) -> None:
        conn = self._get_connection()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY
            )
        """)
        row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
        current_version = row[0] if row else 0

        if current_version < self.SCHEMA_VERSION:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS show_cache (
                    key TEXT PRIMARY KEY,
                    content TEXT NOT NULL,
                    fetched_at TEXT NOT NULL,
                    expires_at TEXT NOT NULL
                )
            """)
            conn.execute("DELETE FROM schema_version")
            conn.execute("INSERT INTO schema_version (version) VALUES (?)", (self.SCHEMA_VERSION,))
            conn.commit()

    def get(self, key: str, *, include_expired: bool = False) -> CacheEntry | None:
        """Get a cached show by key.

        Args:
            key: The cache key (e.g., "tvdb/81189")
            include_expired: If True, returns expired entries as well

        Returns:
            CacheEntry if found (and not expired, unless include_expired=True), else None
        """
        conn = self._get_connection()
        row = conn.execute(
            "SELECT key, content, fetched_at, expires_at FROM show_cache WHERE key = ?",
            (key,),
        ).fetchone()
        if row is None:
            return None

        try:
            show = show_from_dict(json.loads(row["content"]))
        except (ValueError, KeyError, TypeError) as exc:
            LOGGER.warning("Dropping unreadable cache entry %s: %s", key, exc)
            self.delete(key)
            return None

        entry = CacheEntry(
            key=row["key"],
            show=show,
            fetched_at=datetime.fromisoformat(row["fetched_at"]),
            expires_at=datetime.fromisoformat(row["expires_at"]),
        )
        if not include_expired and entry.is_expired:
            return None
        return entry

    def set(self, key: str, show: ShowMetadata, *, ttl_hours: int | None = None) -> None:
        now = datetime.now(UTC)
        ttl = timedelta(hours=ttl_hours) if ttl_hours is not None else self._ttl
        conn = self._get_connection()
        conn.execute(
            """
            INSERT OR REPLACE INTO show_cache (key, content, fetched_at, expires_at)
            VALUES (?, ?, ?, ?)
            """,
            (key, json.dumps(show_to_dict(show), ensure_ascii=False), now.isoformat(), (now + ttl).isoformat()),
        )
        conn.commit()

    def delete(self, key: str) -> bool:
        conn = self._get_connection()
        cursor = conn.execute("DELETE FROM show_cache WHERE key = ?", (key,))
        conn.commit()
        return cursor.rowcount > 0

    def invalidate_expired(self) -> int:
        """Remove all expired entries.

        Returns:
            Number of entries deleted
        """
        conn = self._get_connection()
        cursor = conn.execute("DELETE FROM show_cache WHERE expires_at < ?", (datetime.now(UTC).isoformat(),))
        conn.commit()
        return cursor.rowcount

    def close(self) -> None:
        """Close the database connection."""
        if hasattr(self._local, "connection") and self._local.connection is not None:
            self._local.connection.close()
            self._local.connection = None
