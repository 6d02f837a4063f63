"""Domain service deciding which side wins when a card changed on both sides."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from ...utils.timestamps import ensure_utc


class ConflictPolicy(str, Enum):
    """Configured conflict policy."""

    NEWER_WINS = "newer"
    PREFER_REMOTE = "prefer-remote"
    PREFER_LOCAL = "prefer-local"

    @classmethod
    def from_config(cls, value: str) -> ConflictPolicy:
        return cls(value)


class Resolution(str, Enum):
    """Resolver decision."""

    USE_LOCAL = "use_local"
    USE_REMOTE = "use_remote"
    TIE = "tie"


def resolve(
    local_modified_at: datetime | None,
    remote_modified_at: datetime | None,
    policy: ConflictPolicy,
) -> Resolution:
    """Decide which version of a card wins.

    Under NEWER_WINS the later timestamp wins and equal timestamps are a TIE.
    A side with no timestamp loses to a side with one; when neither side has
    a timestamp the result is a TIE, since nothing orders the two edits.
    TIE is only reachable under NEWER_WINS.

    Args:
        local_modified_at: Last modification of the local card
        remote_modified_at: ``updated`` field of the remote artifact
        policy: Configured conflict policy

    Returns:
        Resolution for the caller to act on
    """
    if policy is ConflictPolicy.PREFER_REMOTE:
        return Resolution.USE_REMOTE
    if policy is ConflictPolicy.PREFER_LOCAL:
        return Resolution.USE_LOCAL

    if local_modified_at is None and remote_modified_at is None:
        return Resolution.TIE
    if remote_modified_at is None:
        return Resolution.USE_LOCAL
    if local_modified_at is None:
        return Resolution.USE_REMOTE

    local_ts = ensure_utc(local_modified_at)
    remote_ts = ensure_utc(remote_modified_at)
    if local_ts > remote_ts:
        return Resolution.USE_LOCAL
    if remote_ts > local_ts:
        return Resolution.USE_REMOTE
    return Resolution.TIE
