"""Identity map entry: where a local card lives remotely and at which version."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ...utils.timestamps import ensure_utc, parse_iso, to_iso


@dataclass(frozen=True)
class IdentityMapEntry:
    """Value object linking a local card id to its remote artifact.

    ``version_token`` is the content hash (git blob sha) returned by the
    remote store for the last content this engine wrote or read.
    """

    card_id: str
    remote_path: str
    version_token: str
    last_synced_at: datetime
    slug: str | None = None
    parent_id: str | None = None

    def __post_init__(self) -> None:
        if not self.card_id:
            raise ValueError("Identity entry card id cannot be empty")
        if not self.remote_path:
            raise ValueError("Identity entry remote path cannot be empty")
        if not self.version_token:
            raise ValueError("Identity entry version token cannot be empty")
        object.__setattr__(self, "last_synced_at", ensure_utc(self.last_synced_at))

    def to_dict(self) -> dict[str, Any]:
        """JSON-compatible form stored in the host's key-value store."""
        return {
            "path": self.remote_path,
            "sha": self.version_token,
            "syncedAt": to_iso(self.last_synced_at),
            "slug": self.slug,
            "parentId": self.parent_id,
        }

    @classmethod
    def from_dict(cls, card_id: str, data: dict[str, Any]) -> IdentityMapEntry:
        synced = parse_iso(data.get("syncedAt") or data.get("timestamp"))
        if synced is None:
            msg = f"Identity entry for {card_id} has no sync timestamp"
            raise ValueError(msg)
        return cls(
            card_id=card_id,
            remote_path=str(data.get("path") or ""),
            version_token=str(data.get("sha") or ""),
            last_synced_at=synced,
            slug=data.get("slug"),
            parent_id=data.get("parentId"),
        )
