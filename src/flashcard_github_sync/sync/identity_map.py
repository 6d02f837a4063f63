"""Persistent table mapping local card ids to remote paths and version tokens."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime

from ..domain.entities.identity import IdentityMapEntry
from ..domain.interfaces.key_value_store import IKeyValueStore
from ..error_codes import ErrorCode
from ..exceptions import StateError
from ..utils.logging import get_logger
from ..utils.timestamps import utc_now

logger = get_logger(__name__)

IDENTITY_MAP_KEY = "github-sha-map"


class IdentityMap:
    """In-memory identity map with load/persist delegated to host storage.

    Thread Safety:
        Every mutation runs under one asyncio lock and is written through to
        the key-value store before the lock is released, so push and pull
        never interleave field-by-field updates.

    Usage:
        identity_map = IdentityMap(kv_store)
        await identity_map.load()
        await identity_map.upsert("c1", "cards/c1.md", "abc123")
    """

    def __init__(self, store: IKeyValueStore, key: str = IDENTITY_MAP_KEY):
        self._store = store
        self._key = key
        self._entries: dict[str, IdentityMapEntry] = {}
        self._lock = asyncio.Lock()
        self._loaded = False

    @property
    def loaded(self) -> bool:
        return self._loaded

    async def load(self) -> None:
        """Replace in-memory state with what the store holds."""
        async with self._lock:
            raw = await self._store.get(self._key)
            entries: dict[str, IdentityMapEntry] = {}
            if raw is not None and not isinstance(raw, dict):
                raise StateError(
                    "Stored identity map is not a mapping",
                    error_code=ErrorCode.STA_CORRUPT_MAP.value,
                    context={"key": self._key},
                )
            for card_id, data in (raw or {}).items():
                try:
                    entries[card_id] = IdentityMapEntry.from_dict(card_id, data)
                except (TypeError, ValueError, AttributeError) as e:
                    # A bad row only costs a re-pull of that card
                    logger.warning(
                        "identity_entry_dropped",
                        card_id=card_id,
                        error=str(e),
                        error_code=ErrorCode.STA_CORRUPT_MAP.value,
                    )
            self._entries = entries
            self._loaded = True
            logger.debug("identity_map_loaded", entries=len(entries))

    async def _persist_locked(self) -> None:
        await self._store.set(
            self._key,
            {card_id: entry.to_dict() for card_id, entry in self._entries.items()},
        )

    async def persist(self) -> None:
        async with self._lock:
            await self._persist_locked()
            logger.debug("identity_map_persisted", entries=len(self._entries))

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[dict[str, IdentityMapEntry]]:
        """Critical section over the raw entries, persisted on exit."""
        async with self._lock:
            yield self._entries
            await self._persist_locked()

    def lookup_by_local_id(self, card_id: str) -> IdentityMapEntry | None:
        return self._entries.get(card_id)

    def lookup_by_path(self, remote_path: str) -> IdentityMapEntry | None:
        return next(
            (e for e in self._entries.values() if e.remote_path == remote_path), None
        )

    def all_entries(self) -> list[IdentityMapEntry]:
        return list(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, card_id: object) -> bool:
        return card_id in self._entries

    async def upsert(
        self,
        card_id: str,
        remote_path: str,
        version_token: str,
        *,
        synced_at: datetime | None = None,
        slug: str | None = None,
        parent_id: str | None = None,
    ) -> IdentityMapEntry:
        """Create or replace the entry for card_id.

        Raises:
            ValueError: remote_path or version_token is empty
        """
        entry = IdentityMapEntry(
            card_id=card_id,
            remote_path=remote_path,
            version_token=version_token,
            last_synced_at=synced_at or utc_now(),
            slug=slug,
            parent_id=parent_id,
        )
        async with self.transaction() as entries:
            # A path belongs to exactly one card
            for other_id, other in list(entries.items()):
                if other_id != card_id and other.remote_path == remote_path:
                    del entries[other_id]
            entries[card_id] = entry
        logger.debug("identity_entry_upserted", card_id=card_id, path=remote_path, sha=version_token)
        return entry

    async def remove(self, card_id: str) -> IdentityMapEntry | None:
        async with self.transaction() as entries:
            removed = entries.pop(card_id, None)
        if removed:
            logger.debug("identity_entry_removed", card_id=card_id, path=removed.remote_path)
        return removed
