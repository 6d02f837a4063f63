"""Synchronization between the host card store and the remote repository."""

from .engine import (
    PullAction,
    PullOutcome,
    PullReport,
    PushOutcome,
    PushStatus,
    SyncEngine,
    SyncReport,
    SyncStatus,
)
from .identity_map import IdentityMap
from .media import MediaTranslator
from .retry_queue import RetryQueue
from .scheduler import SyncScheduler
from .serializer import ParsedArtifact, parse_artifact, serialize_card

__all__ = [
    "IdentityMap",
    "MediaTranslator",
    "ParsedArtifact",
    "PullAction",
    "PullOutcome",
    "PullReport",
    "PushOutcome",
    "PushStatus",
    "RetryQueue",
    "SyncEngine",
    "SyncReport",
    "SyncScheduler",
    "SyncStatus",
    "parse_artifact",
    "serialize_card",
]
