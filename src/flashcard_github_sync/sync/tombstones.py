"""Cards kept locally after their remote file was deleted."""

from __future__ import annotations

import asyncio
from datetime import datetime

from ..domain.interfaces.key_value_store import IKeyValueStore
from ..error_codes import ErrorCode
from ..exceptions import StateError
from ..utils.logging import get_logger
from ..utils.timestamps import parse_iso, to_iso

logger = get_logger(__name__)

TOMBSTONES_KEY = "github-removed-cards"


class Tombstones:
    """Persistent map of card id to the local modification time at removal.

    A tombstoned card is not pushed again until the host reports a different
    modification time, i.e. until someone edits it after the deletion.
    """

    def __init__(self, store: IKeyValueStore, key: str = TOMBSTONES_KEY):
        self._store = store
        self._key = key
        self._removed: dict[str, str | None] = {}
        self._lock = asyncio.Lock()

    async def load(self) -> None:
        async with self._lock:
            raw = await self._store.get(self._key)
            if raw is not None and not isinstance(raw, dict):
                raise StateError(
                    "Stored tombstones are not a mapping",
                    error_code=ErrorCode.STA_CORRUPT_MAP.value,
                    context={"key": self._key},
                )
            self._removed = {
                str(card_id): value if isinstance(value, str) else None
                for card_id, value in (raw or {}).items()
            }

    async def _persist_locked(self) -> None:
        await self._store.set(self._key, dict(self._removed))

    async def persist(self) -> None:
        async with self._lock:
            await self._persist_locked()

    async def bury(self, card_id: str, updated_at: datetime | None) -> None:
        async with self._lock:
            self._removed[card_id] = to_iso(updated_at)
            await self._persist_locked()
        logger.debug("card_tombstoned", card_id=card_id)

    async def lift(self, card_id: str) -> bool:
        """Forget card_id. Returns False if it was not tombstoned."""
        async with self._lock:
            if card_id not in self._removed:
                return False
            del self._removed[card_id]
            await self._persist_locked()
        return True

    def buried(self, card_id: str, updated_at: datetime | None) -> bool:
        """True while card_id is tombstoned and unedited since removal."""
        if card_id not in self._removed:
            return False
        try:
            removed_at = parse_iso(self._removed[card_id])
        except ValueError:
            return True
        return removed_at == updated_at

    def __contains__(self, card_id: object) -> bool:
        return card_id in self._removed

    def __len__(self) -> int:
        return len(self._removed)
