"""Test fixtures package."""

from datetime import UTC, datetime

from .in_memory_key_value_store import InMemoryKeyValueStore
from .in_memory_remote_store import InMemoryRemoteStore
from .mock_host_application import MockHostApplication

# Edit times used across the sync tests, in increasing order
T0 = datetime(2025, 4, 10, 9, 30, tzinfo=UTC)
T1 = datetime(2025, 4, 11, 10, 0, tzinfo=UTC)
T2 = datetime(2025, 4, 12, 8, 15, tzinfo=UTC)

__all__ = [
    "T0",
    "T1",
    "T2",
    "InMemoryKeyValueStore",
    "InMemoryRemoteStore",
    "MockHostApplication",
]
