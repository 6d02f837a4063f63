"""Interface for the host's durable key-value storage."""

from abc import ABC, abstractmethod
from typing import Any


class IKeyValueStore(ABC):
    """Durable storage for JSON-compatible values.

    The identity map, the retry queue and the sync status live here so that
    they survive process restarts.
    """

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the stored value, or None if the key is absent."""

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Store a JSON-compatible value under key."""
