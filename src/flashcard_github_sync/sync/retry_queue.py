"""Set of card ids whose last push failed for a retryable reason."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable

from ..domain.interfaces.key_value_store import IKeyValueStore
from ..error_codes import ErrorCode
from ..exceptions import StateError
from ..utils.logging import get_logger

logger = get_logger(__name__)

RETRY_QUEUE_KEY = "github-failed-queue"


class RetryQueue:
    """Persistent, insertion-ordered set of card ids pending a retried push.

    Adding an id that is already queued has no effect. Draining is gated by
    ``min_interval`` seconds so an outage never turns into a tight retry loop.
    """

    def __init__(
        self,
        store: IKeyValueStore,
        min_interval: float = 300.0,
        key: str = RETRY_QUEUE_KEY,
        time_func: Callable[[], float] | None = None,
    ):
        self._store = store
        self._key = key
        self.min_interval = min_interval
        self._ids: dict[str, None] = {}
        self._lock = asyncio.Lock()
        self._time_func = time_func or time.monotonic
        self._last_drain: float | None = None

    async def load(self) -> None:
        async with self._lock:
            raw = await self._store.get(self._key)
            if raw is not None and not isinstance(raw, list):
                raise StateError(
                    "Stored retry queue is not a list",
                    error_code=ErrorCode.STA_CORRUPT_MAP.value,
                    context={"key": self._key},
                )
            self._ids = dict.fromkeys(str(card_id) for card_id in raw or [])

    async def _persist_locked(self) -> None:
        await self._store.set(self._key, list(self._ids))

    async def persist(self) -> None:
        async with self._lock:
            await self._persist_locked()

    async def add(self, card_id: str) -> bool:
        """Queue card_id. Returns False if it was already queued."""
        async with self._lock:
            if card_id in self._ids:
                return False
            self._ids[card_id] = None
            await self._persist_locked()
        return True

    async def discard(self, card_id: str) -> bool:
        """Remove card_id. Returns False if it was not queued."""
        async with self._lock:
            if card_id not in self._ids:
                return False
            del self._ids[card_id]
            await self._persist_locked()
        return True

    def snapshot(self) -> list[str]:
        return list(self._ids)

    def __contains__(self, card_id: object) -> bool:
        return card_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def drain_allowed(self) -> bool:
        if self._last_drain is None:
            return True
        return self._time_func() - self._last_drain >= self.min_interval

    def begin_drain(self, force: bool = False) -> list[str] | None:
        """Ids to retry now, or None when the last drain was too recent."""
        if not force and not self.drain_allowed():
            logger.debug(
                "retry_drain_rate_limited",
                pending=len(self._ids),
                min_interval=self.min_interval,
            )
            return None
        self._last_drain = self._time_func()
        return self.snapshot()
