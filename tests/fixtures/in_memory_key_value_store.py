"""In-memory IKeyValueStore for testing."""

import json
from typing import Any

from flashcard_github_sync.domain.interfaces.key_value_store import IKeyValueStore


class InMemoryKeyValueStore(IKeyValueStore):
    """Stores JSON-encoded values so tests see exactly what would persist."""

    def __init__(self, initial: dict[str, Any] | None = None):
        self.data: dict[str, str] = {
            key: json.dumps(value) for key, value in (initial or {}).items()
        }
        self.writes = 0

    async def get(self, key: str) -> Any:
        raw = self.data.get(key)
        return None if raw is None else json.loads(raw)

    async def set(self, key: str, value: Any) -> None:
        self.data[key] = json.dumps(value)
        self.writes += 1

    def value(self, key: str) -> Any:
        raw = self.data.get(key)
        return None if raw is None else json.loads(raw)
