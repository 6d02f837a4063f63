"""Domain interfaces for dependency inversion."""

from .host_application import DeletionConfirmer, HostCard, IHostApplication
from .key_value_store import IKeyValueStore
from .remote_store import IRemoteStore, RemoteEntry, RemoteResult, RemoteStatus

__all__ = [
    "DeletionConfirmer",
    "HostCard",
    "IHostApplication",
    "IKeyValueStore",
    "IRemoteStore",
    "RemoteEntry",
    "RemoteResult",
    "RemoteStatus",
]
