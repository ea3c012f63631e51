"""SQLite-backed store for automatically generated rulesets.

Each catalog topic holds at most one generated ruleset. The UNIQUE constraint
on ``topic`` is the last line of defence when two processes generate a
ruleset for the same show at the same time.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import UTC, datetime
from pathlib import Path

from ..models import MatchingStrategy, Ruleset, decode_filters, decode_title_rules, encode_filters, encode_title_rules

LOGGER = logging.getLogger(__name__)


class PersistenceError(Exception):
    """Raised when a persistence operation cannot be completed."""


class RulesetConflictError(PersistenceError):
    """Raised when a generated ruleset already exists for a topic."""

    def __init__(self, topic: str) -> None:
        super().__init__(f"A generated ruleset already exists for topic {topic!r}")
        self.topic = topic


class GeneratedRulesetStore:
    """SQLite-backed store for generated rulesets.

    The database uses WAL mode and one connection per thread.
    """

    SCHEMA_VERSION = 1

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._local = threading.local()
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create database connection for the current thread."""
        if not hasattr(self._local, "connection") or self._local.connection is None:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._local.connection = sqlite3.connect(self._db_path)
            self._local.connection.execute("PRAGMA journal_mode=WAL")
            self._local.connection.row_factory = sqlite3.Row
        return self._local.connection

    def _init_db(self) -> None:
        conn = self._get_connection()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS generated_schema_version (
                version INTEGER PRIMARY KEY
            )
        """)
        row = conn.execute("SELECT version FROM generated_schema_version LIMIT 1").fetchone()
        current_version = row["version"] if row else 0
        if current_version < self.SCHEMA_VERSION:
            self._migrate_schema(current_version)

    def _migrate_schema(self, from_version: int) -> None:
        conn = self._get_connection()
        if from_version < 1:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS generated_rulesets (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    topic TEXT UNIQUE NOT NULL,
                    show_id INTEGER NOT NULL,
                    show_name TEXT NOT NULL DEFAULT '',
                    priority INTEGER NOT NULL DEFAULT 0,
                    filters TEXT NOT NULL DEFAULT '[]',
                    title_rules TEXT NOT NULL DEFAULT '[]',
                    episode_regex TEXT,
                    season_regex TEXT,
                    strategy TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_generated_rulesets_show_id
                ON generated_rulesets(show_id)
            """)

        conn.execute("DELETE FROM generated_schema_version")
        conn.execute("INSERT INTO generated_schema_version (version) VALUES (?)", (self.SCHEMA_VERSION,))
        conn.commit()

    def close(self) -> None:
        """Close the database connection for the current thread."""
        if hasattr(self._local, "connection") and self._local.connection is not None:
            self._local.connection.close()
            self._local.connection = None

    def create(self, ruleset: Ruleset) -> Ruleset:
        """Persist ``ruleset`` and return it with its database id.

        Raises:
            RulesetConflictError: If a generated ruleset exists for the topic
        """
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                """
                INSERT INTO generated_rulesets (
                    topic, show_id, show_name, priority, filters, title_rules,
                    episode_regex, season_regex, strategy, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    ruleset.topic,
                    ruleset.show_id,
                    ruleset.show_name,
                    ruleset.priority,
                    encode_filters(ruleset.filters),
                    encode_title_rules(ruleset.title_rules),
                    ruleset.episode_regex,
                    ruleset.season_regex,
                    ruleset.strategy.value,
                    datetime.now(UTC).isoformat(),
                ),
            )
            conn.commit()
        except sqlite3.IntegrityError as exc:
            conn.rollback()
            raise RulesetConflictError(ruleset.topic) from exc

        row = conn.execute("SELECT * FROM generated_rulesets WHERE id = ?", (cursor.lastrowid,)).fetchone()
        return self._row_to_ruleset(row)

    def get_by_topic(self, topic: str) -> Ruleset | None:
        conn = self._get_connection()
        row = conn.execute("SELECT * FROM generated_rulesets WHERE topic = ?", (topic,)).fetchone()
        return self._row_to_ruleset(row) if row else None

    def get_by_show_id(self, show_id: int) -> Ruleset | None:
        """Return the oldest generated ruleset for ``show_id``."""
        conn = self._get_connection()
        row = conn.execute(
            "SELECT * FROM generated_rulesets WHERE show_id = ? ORDER BY id LIMIT 1",
            (show_id,),
        ).fetchone()
        return self._row_to_ruleset(row) if row else None

    def list_all(self) -> list[Ruleset]:
        conn = self._get_connection()
        rows = conn.execute("SELECT * FROM generated_rulesets ORDER BY priority, id").fetchall()
        rulesets = []
        for row in rows:
            ruleset = self._row_to_ruleset(row)
            if ruleset is not None:
                rulesets.append(ruleset)
        return rulesets

    def delete(self, ruleset_id: int) -> bool:
        """Delete a generated ruleset.

        Returns:
            True if a row was deleted
        """
        conn = self._get_connection()
        cursor = conn.execute("DELETE FROM generated_rulesets WHERE id = ?", (ruleset_id,))
        conn.commit()
        return cursor.rowcount > 0

    def _row_to_ruleset(self, row: sqlite3.Row) -> Ruleset | None:
        strategy = MatchingStrategy.parse(row["strategy"])
        if strategy is None:
            LOGGER.warning("Ignoring generated ruleset %s with unknown strategy %r", row["id"], row["strategy"])
            return None
        return Ruleset(
            id=row["id"],
            show_id=row["show_id"],
            show_name=row["show_name"],
            topic=row["topic"],
            strategy=strategy,
            priority=row["priority"],
            filters=decode_filters(row["filters"]),
            title_rules=decode_title_rules(row["title_rules"]),
            season_regex=row["season_regex"],
            episode_regex=row["episode_regex"],
            generated=True,
        )
