"""Conflict records for edits the conflict policy cannot order."""

from __future__ import annotations

from ..domain.interfaces.remote_store import IRemoteStore
from ..domain.services.slug_service import SlugService
from ..utils.logging import get_logger
from ..utils.timestamps import to_iso, utc_now

logger = get_logger(__name__)


def render_conflict(
    card_id: str,
    local_text: str,
    remote_text: str,
    remote_sha: str | None = None,
    recorded_at: str | None = None,
) -> str:
    """Markdown document holding both versions of a card side by side."""
    lines = [
        f"# Sync conflict for card {card_id}",
        "",
        f"- Recorded: {recorded_at or to_iso(utc_now())}",
        f"- Remote version: {remote_sha or 'unknown'}",
        "",
        "Both versions carry the same modification time. Edit the card on",
        "either side to resolve; the next sync then picks the newer edit.",
        "",
        "## Local",
        "",
        "````markdown",
        local_text.rstrip("\n"),
        "````",
        "",
        "## Remote",
        "",
        "````markdown",
        remote_text.rstrip("\n"),
        "````",
        "",
    ]
    return "\n".join(lines)


class ConflictRecorder:
    """Writes conflict records to ``<subdir>/conflicts/`` in the remote store.

    Records are named by card id and remote version, and written create-only,
    so a tie that persists across passes is recorded once. Recording is
    terminal for the sync attempt: a failed write is logged and never retried.
    """

    def __init__(self, remote: IRemoteStore, subdir: str = ""):
        self.remote = remote
        self.subdir = subdir

    async def record(
        self,
        card_id: str,
        local_text: str,
        remote_text: str,
        remote_sha: str | None = None,
    ) -> str | None:
        """Write a record and return its path, or None if the write failed.

        An existing record for the same card and remote version is kept and
        its path returned.
        """
        path = SlugService.conflict_path(self.subdir, card_id, remote_sha)
        content = render_conflict(
            card_id, local_text, remote_text, remote_sha, recorded_at=to_iso(utc_now())
        )
        result = await self.remote.write(path, content)
        if result.is_conflict:
            logger.debug("conflict_already_recorded", card_id=card_id, path=path)
            return path
        if not result.ok:
            logger.warning(
                "conflict_record_write_failed",
                card_id=card_id,
                path=path,
                status_code=result.status_code,
                error=result.error,
            )
            return None
        return path
