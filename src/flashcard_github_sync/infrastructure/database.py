"""SQLite database holding local cards and the sync key-value store.

Security Note:
    All SQL queries in this package use parameterized statements (?
    placeholders). Never build SQL with string formatting.
"""

from __future__ import annotations

import sqlite3
import time
from pathlib import Path
from typing import Any

from ..utils.logging import get_logger

logger = get_logger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS cards (
        card_id TEXT PRIMARY KEY,
        front TEXT NOT NULL DEFAULT '',
        back TEXT NOT NULL DEFAULT '',
        parent_id TEXT,
        scheduler TEXT,
        difficulty REAL,
        stability REAL,
        ease REAL,
        interval REAL,
        last_reviewed_at TEXT,
        next_due_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tags (
        tag_id TEXT PRIMARY KEY,
        name TEXT NOT NULL UNIQUE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS card_tags (
        card_id TEXT NOT NULL REFERENCES cards(card_id) ON DELETE CASCADE,
        tag_id TEXT NOT NULL REFERENCES tags(tag_id) ON DELETE CASCADE,
        PRIMARY KEY (card_id, tag_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS kv_store (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_card_tags_tag ON card_tags(tag_id)",
)


class SQLiteDatabase:
    """Connection owner shared by the SQLite host and key-value store.

    Async Compatibility:
        Uses synchronous sqlite3 on one connection. Every caller runs on the
        event loop thread and queries are short, so they are issued inline.

    Usage:
        with SQLiteDatabase(db_path) as db:
            host = SQLiteHostApplication(db)
            kv = SQLiteKeyValueStore(db)
    """

    def __init__(self, db_path: Path | str):
        self._db_path = str(db_path)
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn: sqlite3.Connection | None = sqlite3.connect(
            self._db_path, check_same_thread=False
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys=ON")
        if self._db_path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA synchronous=NORMAL")
        with self._conn:
            for statement in _SCHEMA:
                self._conn.execute(statement)
        logger.debug("db_initialized", db_path=self._db_path)

    @property
    def connection(self) -> sqlite3.Connection:
        if self._conn is None:
            msg = "Database connection is closed"
            raise RuntimeError(msg)
        return self._conn

    def execute(
        self, query: str, params: tuple[Any, ...] = (), operation: str = "query"
    ) -> sqlite3.Cursor:
        """Execute one statement and commit it, logging slow queries."""
        start_time = time.perf_counter()
        try:
            with self.connection:
                cursor = self.connection.execute(query, params)
        except sqlite3.Error as e:
            logger.error(
                "db_query_error",
                operation=operation,
                error=str(e),
                error_type=type(e).__name__,
                query_preview=query[:100],
            )
            raise
        duration = time.perf_counter() - start_time
        if duration > 0.1:
            logger.warning(
                "db_slow_query",
                operation=operation,
                duration=round(duration, 3),
                query_preview=query[:100],
            )
        return cursor

    def close(self) -> None:
        """Close the connection. Safe to call more than once."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.debug("db_closed", db_path=self._db_path)

    def __enter__(self) -> SQLiteDatabase:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
