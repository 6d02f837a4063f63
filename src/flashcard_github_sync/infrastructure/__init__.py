"""Standalone implementations of the host collaborators backed by SQLite."""

from .database import SQLiteDatabase
from .kv_store import SQLiteKeyValueStore
from .sqlite_host import SQLiteHostApplication

__all__ = ["SQLiteDatabase", "SQLiteHostApplication", "SQLiteKeyValueStore"]
