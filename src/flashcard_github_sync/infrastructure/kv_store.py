"""Durable key-value store on SQLite with JSON values."""

from __future__ import annotations

import json
import sqlite3
from typing import Any

from ..domain.interfaces.key_value_store import IKeyValueStore
from ..error_codes import ErrorCode
from ..exceptions import StateError
from ..utils.timestamps import to_iso, utc_now
from .database import SQLiteDatabase


class SQLiteKeyValueStore(IKeyValueStore):
    """Stores the identity map, retry queue and sync status."""

    def __init__(self, db: SQLiteDatabase):
        self.db = db

    async def get(self, key: str) -> Any:
        try:
            row = self.db.execute(
                "SELECT value FROM kv_store WHERE key = ?", (key,), operation="kv_get"
            ).fetchone()
        except sqlite3.Error as e:
            raise StateError(
                f"Failed to read {key!r} from the local store",
                error_code=ErrorCode.STA_STORE_FAILED.value,
                context={"key": key},
            ) from e
        if row is None:
            return None
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError as e:
            raise StateError(
                f"Stored value for {key!r} is not valid JSON",
                error_code=ErrorCode.STA_CORRUPT_MAP.value,
                context={"key": key},
            ) from e

    async def set(self, key: str, value: Any) -> None:
        try:
            self.db.execute(
                """
                INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, json.dumps(value, ensure_ascii=False), to_iso(utc_now())),
                operation="kv_set",
            )
        except (sqlite3.Error, TypeError) as e:
            raise StateError(
                f"Failed to write {key!r} to the local store",
                error_code=ErrorCode.STA_STORE_FAILED.value,
                context={"key": key},
            ) from e
