"""Synchronization engine between the host card store and the GitHub repository."""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeVar

from ..config_settings import Config
from ..domain.entities.card import CardEntity, SchedulerKind, SchedulingState
from ..domain.entities.identity import IdentityMapEntry
from ..domain.interfaces.host_application import DeletionConfirmer, IHostApplication
from ..domain.interfaces.key_value_store import IKeyValueStore
from ..domain.interfaces.remote_store import IRemoteStore, RemoteEntry, RemoteResult
from ..domain.services.conflict_resolver import ConflictPolicy, Resolution, resolve
from ..domain.services.slug_service import SlugService
from ..error_codes import ErrorCode
from ..exceptions import ConfigurationError, MalformedArtifactError
from ..utils.logging import get_logger
from ..utils.timestamps import utc_now
from .conflicts import ConflictRecorder
from .identity_map import IdentityMap
from .keyed_lock import KeyedLock
from .media import MediaTranslator
from .retry_queue import RetryQueue
from .serializer import ParsedArtifact, parse_artifact, serialize_card
from .tombstones import Tombstones

logger = get_logger(__name__)

SYNC_STATUS_KEY = "sync-status"

T = TypeVar("T")
R = TypeVar("R")


class SyncStatus(str, Enum):
    IDLE = "Idle"
    SYNCING = "Syncing"
    SYNCED = "Synced"
    ERROR = "Error"


class PushStatus(str, Enum):
    """What a push did for one card."""

    PUSHED = "pushed"
    UNCHANGED = "unchanged"
    APPLIED_REMOTE = "applied_remote"
    CONFLICT = "conflict"
    QUEUED = "queued"
    MISSING = "missing"
    SKIPPED = "skipped"
    FAILED = "failed"


class PullAction(str, Enum):
    """What a pull did for one listed file."""

    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    KEPT_LOCAL = "kept_local"
    CONFLICT = "conflict"
    MALFORMED = "malformed"
    FAILED = "failed"


@dataclass
class PushOutcome:
    card_id: str
    status: PushStatus
    path: str | None = None
    sha: str | None = None
    record_path: str | None = None
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.status in (PushStatus.QUEUED, PushStatus.FAILED)


@dataclass
class PullOutcome:
    path: str
    action: PullAction
    card_id: str | None = None
    record_path: str | None = None
    error: str | None = None


@dataclass
class PullReport:
    """Result of one pull pass.

    ``removed`` maps card ids whose remote file disappeared to the local
    action taken (``deleted``, ``archived``, ``kept`` or ``missing``).
    """

    outcomes: list[PullOutcome] = field(default_factory=list)
    removed: dict[str, str] = field(default_factory=dict)
    error: str | None = None

    def count(self, action: PullAction) -> int:
        return sum(1 for outcome in self.outcomes if outcome.action is action)

    @property
    def created(self) -> int:
        return self.count(PullAction.CREATED)

    @property
    def updated(self) -> int:
        return self.count(PullAction.UPDATED)

    @property
    def conflicts(self) -> int:
        return self.count(PullAction.CONFLICT)

    @property
    def ok(self) -> bool:
        return self.error is None and self.count(PullAction.FAILED) == 0


@dataclass
class SyncReport:
    """Result of a full sync: pull, push of every card, retry drain."""

    pull: PullReport | None = None
    pushes: list[PushOutcome] = field(default_factory=list)
    retried: list[PushOutcome] = field(default_factory=list)
    error: str | None = None
    duration_seconds: float = 0.0

    def count(self, status: PushStatus) -> int:
        return sum(1 for o in [*self.pushes, *self.retried] if o.status is status)

    @property
    def pushed(self) -> int:
        return self.count(PushStatus.PUSHED)

    @property
    def conflicts(self) -> int:
        pulled = self.pull.conflicts if self.pull else 0
        return pulled + self.count(PushStatus.CONFLICT)

    @property
    def queued(self) -> int:
        return self.count(PushStatus.QUEUED)

    @property
    def success(self) -> bool:
        if self.error is not None:
            return False
        if self.pull is not None and not self.pull.ok:
            return False
        return not any(outcome.failed for outcome in [*self.pushes, *self.retried])


class SyncEngine:
    """Orchestrate push and pull between the host application and the remote store.

    Per-card failures never abort a batch; each id's outcome is isolated.
    Only configuration failures abort a whole pass, raised as
    ConfigurationError before any remote I/O.
    """

    def __init__(
        self,
        config: Config,
        host: IHostApplication,
        remote: IRemoteStore,
        kv_store: IKeyValueStore,
        confirm_delete: DeletionConfirmer | None = None,
        media: MediaTranslator | None = None,
        identity_map: IdentityMap | None = None,
        retry_queue: RetryQueue | None = None,
    ):
        """
        Initialize sync engine.

        Args:
            config: Service configuration
            host: Host application owning the local cards
            remote: Remote versioned file store
            kv_store: Durable storage for the identity map, retry queue and
                tombstones
            confirm_delete: Asked before deleting or archiving a local card
                whose remote file disappeared; defaults to
                ``config.confirm_remote_deletes``
            media: Media translator; without one media references pass
                through untouched
            identity_map: Preconstructed identity map (tests inject one)
            retry_queue: Preconstructed retry queue (tests inject one)
        """
        self.config = config
        self.host = host
        self.remote = remote
        self.kv = kv_store
        self.confirm_delete = confirm_delete
        self.media = media
        self.policy = ConflictPolicy.from_config(config.conflict_policy)
        self.identity_map = identity_map or IdentityMap(kv_store)
        self.retry_queue = retry_queue or RetryQueue(
            kv_store, min_interval=config.retry_interval_minutes * 60
        )
        self.tombstones = Tombstones(kv_store)
        self.conflicts = ConflictRecorder(remote, config.github_subdir)
        self.status = SyncStatus.IDLE

        self._card_locks = KeyedLock()
        self._semaphore = asyncio.Semaphore(max(1, config.max_concurrent_syncs))
        self._started = False
        self._active_passes = 0
        self._pass_failed = False

        logger.info(
            "sync_engine_configuration",
            repo=config.github_repo,
            branch=config.github_branch,
            subdir=config.github_subdir,
            conflict_policy=self.policy.value,
            filename_strategy=config.filename_strategy,
            delete_mode=config.delete_mode,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Load persisted state. Idempotent."""
        if self._started:
            return
        await self.identity_map.load()
        await self.retry_queue.load()
        await self.tombstones.load()
        self._started = True
        logger.info(
            "sync_engine_started",
            mapped_cards=len(self.identity_map),
            queued_retries=len(self.retry_queue),
        )

    async def stop(self) -> None:
        """Persist state. In-flight operations are not cancelled."""
        await self.identity_map.persist()
        await self.retry_queue.persist()
        await self.tombstones.persist()
        self._started = False
        logger.info("sync_engine_stopped")

    async def _ensure_ready(self) -> None:
        self.config.validate_config()
        if not self._started:
            await self.start()

    async def _set_status(self, status: SyncStatus) -> None:
        self.status = status
        await self.kv.set(SYNC_STATUS_KEY, status.value)

    async def read_status(self) -> SyncStatus:
        """Status persisted by the last pass, possibly from another process."""
        raw = await self.kv.get(SYNC_STATUS_KEY)
        try:
            return SyncStatus(raw)
        except ValueError:
            return SyncStatus.IDLE

    @asynccontextmanager
    async def _tracking_status(self) -> AsyncIterator[None]:
        # Nested and concurrent passes share one Syncing -> Synced/Error cycle
        if self._active_passes == 0:
            self._pass_failed = False
            await self._set_status(SyncStatus.SYNCING)
        self._active_passes += 1
        try:
            yield
        except Exception:
            self._pass_failed = True
            raise
        finally:
            self._active_passes -= 1
            if self._active_passes == 0:
                await self._set_status(
                    SyncStatus.ERROR if self._pass_failed else SyncStatus.SYNCED
                )

    async def _bounded(
        self, items: Iterable[T], func: Callable[[T], Awaitable[R]]
    ) -> list[R]:
        async def run(item: T) -> R:
            async with self._semaphore:
                return await func(item)

        return list(await asyncio.gather(*(run(item) for item in items)))

    # ------------------------------------------------------------------
    # Host boundary
    # ------------------------------------------------------------------

    async def _read_local(self, card_id: str) -> CardEntity | None:
        card = await self.host.get_card(card_id)
        if card is None:
            return None
        scheduling = card.scheduling or SchedulingState.empty(
            SchedulerKind(self.config.default_scheduler)
        )
        return CardEntity(
            card_id=card_id,
            front=await self.host.to_markdown(card.front),
            back=await self.host.to_markdown(card.back),
            tags=frozenset(card.tags),
            scheduling=scheduling,
            updated_at=card.updated_at,
            parent_id=card.parent_id,
        )

    async def _render(self, card: CardEntity) -> str:
        """Serialize a card with its media externalized."""
        if self.media is not None:
            card = card.with_text(
                await self.media.externalize(card.front),
                await self.media.externalize(card.back),
            )
        return serialize_card(card)

    async def _apply_remote(self, card_id: str, parsed: ParsedArtifact) -> None:
        """Write parsed remote fields onto the local card."""
        question, answer = parsed.question, parsed.answer
        if self.media is not None:
            question = await self.media.internalize(question)
            answer = await self.media.internalize(answer)
        await self.host.set_text(
            card_id,
            await self.host.from_markdown(question),
            await self.host.from_markdown(answer),
        )
        tag_ids = [await self.host.get_or_create_tag(name) for name in sorted(parsed.tags)]
        await self.host.set_tags(card_id, tag_ids)
        await self.host.set_scheduling(card_id, parsed.scheduling)
        await self.host.set_parent_id(card_id, parsed.parent_id)
        if parsed.updated_at is not None:
            await self.host.set_updated_at(card_id, parsed.updated_at)

    def _is_current(self, artifact: str, token: str | None) -> bool:
        if not token:
            return False
        return self.remote.version_token_for(artifact) == token

    # ------------------------------------------------------------------
    # Push
    # ------------------------------------------------------------------

    async def push_card(self, card_id: str) -> PushOutcome:
        """Push one card to the remote store.

        Raises:
            ConfigurationError: configuration is incomplete; nothing was sent
        """
        await self._ensure_ready()
        async with self._tracking_status(), self._semaphore:
            return await self._push_isolated(card_id)

    async def push_all(
        self,
        card_ids: Iterable[str] | None = None,
        exclude: Iterable[str] = (),
    ) -> list[PushOutcome]:
        """Push every host card, or the given ids, concurrently.

        Raises:
            ConfigurationError: configuration is incomplete; nothing was sent
        """
        await self._ensure_ready()
        async with self._tracking_status():
            ids = list(card_ids) if card_ids is not None else await self.host.list_card_ids()
            skipped = set(exclude)
            ids = [card_id for card_id in dict.fromkeys(ids) if card_id not in skipped]
            logger.info("push_all_started", cards=len(ids))
            outcomes = await self._bounded(ids, self._push_isolated)
            logger.info(
                "push_all_completed",
                cards=len(ids),
                pushed=sum(1 for o in outcomes if o.status is PushStatus.PUSHED),
                unchanged=sum(1 for o in outcomes if o.status is PushStatus.UNCHANGED),
                failed=sum(1 for o in outcomes if o.failed),
            )
            return outcomes

    async def _push_isolated(self, card_id: str) -> PushOutcome:
        async with self._card_locks.acquire(card_id):
            try:
                outcome = await self._push_locked(card_id)
            except Exception as e:
                logger.error(
                    "card_push_failed",
                    card_id=card_id,
                    error=str(e),
                    error_type=type(e).__name__,
                    error_code=ErrorCode.SYN_HOST_FAILED.value,
                )
                await self.retry_queue.add(card_id)
                outcome = PushOutcome(card_id, PushStatus.QUEUED, error=str(e))
        if outcome.failed:
            self._pass_failed = True
        return outcome

    async def _push_locked(self, card_id: str) -> PushOutcome:
        local = await self._read_local(card_id)
        if local is None:
            logger.debug(
                "card_missing_locally",
                card_id=card_id,
                error_code=ErrorCode.SYN_CARD_MISSING.value,
            )
            await self.retry_queue.discard(card_id)
            await self.tombstones.lift(card_id)
            return PushOutcome(card_id, PushStatus.MISSING)

        entry = self.identity_map.lookup_by_local_id(card_id)
        # Archived cards whose file is gone stay gone
        if entry is None and self.config.archive_tag in local.tags:
            await self.retry_queue.discard(card_id)
            return PushOutcome(card_id, PushStatus.SKIPPED)
        # Kept after a remote deletion: stays gone until edited locally
        if entry is None and card_id in self.tombstones:
            if self.tombstones.buried(card_id, local.updated_at):
                await self.retry_queue.discard(card_id)
                logger.debug("card_skipped_removed_remotely", card_id=card_id)
                return PushOutcome(card_id, PushStatus.SKIPPED)
            await self.tombstones.lift(card_id)

        artifact = await self._render(local)
        path = entry.remote_path if entry else SlugService.card_path(
            self.config.github_subdir,
            card_id,
            local.front,
            self.config.filename_strategy,
        )

        if entry and self._is_current(artifact, entry.version_token):
            await self.retry_queue.discard(card_id)
            logger.debug("card_unchanged", card_id=card_id, path=path)
            return PushOutcome(card_id, PushStatus.UNCHANGED, path=path, sha=entry.version_token)

        result = await self.remote.write(
            path, artifact, entry.version_token if entry else None
        )
        if result.ok and result.sha:
            return await self._record_push(local, path, result.sha)
        if result.is_conflict:
            return await self._resolve_push_conflict(local, artifact, path)
        return await self._enqueue(card_id, path, result)

    async def _record_push(self, card: CardEntity, path: str, sha: str) -> PushOutcome:
        await self.identity_map.upsert(
            card.card_id,
            path,
            sha,
            slug=SlugService.slug_from_path(path),
            parent_id=card.parent_id,
        )
        await self.retry_queue.discard(card.card_id)
        logger.info("card_pushed", card_id=card.card_id, path=path, sha=sha)
        return PushOutcome(card.card_id, PushStatus.PUSHED, path=path, sha=sha)

    async def _enqueue(self, card_id: str, path: str, result: RemoteResult) -> PushOutcome:
        await self.retry_queue.add(card_id)
        logger.warning(
            "card_enqueued_for_retry",
            card_id=card_id,
            path=path,
            status=result.status.value,
            status_code=result.status_code,
            error=result.error,
            error_code=ErrorCode.RMT_TRANSPORT.value,
        )
        return PushOutcome(card_id, PushStatus.QUEUED, path=path, error=result.error)

    async def _resolve_push_conflict(
        self, local: CardEntity, artifact: str, path: str
    ) -> PushOutcome:
        card_id = local.card_id
        logger.info("push_version_conflict", card_id=card_id, path=path)

        current = await self.remote.read(path)
        if current.is_not_found:
            # Deleted since the token was taken; create it again
            retry = await self.remote.write(path, artifact)
            if retry.ok and retry.sha:
                return await self._record_push(local, path, retry.sha)
            return await self._enqueue(card_id, path, retry)
        if not current.ok or current.content is None or not current.sha:
            return await self._enqueue(card_id, path, current)

        if current.content == artifact:
            await self.identity_map.upsert(
                card_id, path, current.sha,
                slug=SlugService.slug_from_path(path),
                parent_id=local.parent_id,
            )
            await self.retry_queue.discard(card_id)
            return PushOutcome(card_id, PushStatus.UNCHANGED, path=path, sha=current.sha)

        try:
            parsed = parse_artifact(current.content)
        except MalformedArtifactError as e:
            logger.warning(
                "remote_artifact_malformed",
                card_id=card_id,
                path=path,
                error=str(e),
                error_code=e.error_code,
            )
            await self.retry_queue.discard(card_id)
            return PushOutcome(card_id, PushStatus.FAILED, path=path, error=str(e))

        resolution = resolve(local.updated_at, parsed.updated_at, self.policy)
        logger.debug(
            "push_conflict_resolved",
            card_id=card_id,
            resolution=resolution.value,
            policy=self.policy.value,
        )

        if resolution is Resolution.USE_REMOTE:
            await self._apply_remote(card_id, parsed)
            await self.identity_map.upsert(
                card_id, path, current.sha,
                slug=SlugService.slug_from_path(path),
                parent_id=parsed.parent_id,
            )
            await self.retry_queue.discard(card_id)
            logger.info("remote_version_applied", card_id=card_id, path=path, sha=current.sha)
            return PushOutcome(card_id, PushStatus.APPLIED_REMOTE, path=path, sha=current.sha)

        if resolution is Resolution.USE_LOCAL:
            retry = await self.remote.write(path, artifact, current.sha)
            if retry.ok and retry.sha:
                return await self._record_push(local, path, retry.sha)
            return await self._enqueue(card_id, path, retry)

        record_path = await self._record_conflict(card_id, artifact, current.content, current.sha)
        await self.retry_queue.discard(card_id)
        return PushOutcome(
            card_id, PushStatus.CONFLICT, path=path, sha=current.sha, record_path=record_path
        )

    async def _record_conflict(
        self, card_id: str, local_text: str, remote_text: str, remote_sha: str | None
    ) -> str | None:
        record_path = await self.conflicts.record(card_id, local_text, remote_text, remote_sha)
        logger.warning(
            "sync_conflict_detected",
            card_id=card_id,
            record_path=record_path,
            policy=self.policy.value,
            error_code=ErrorCode.SYN_TIE.value,
        )
        return record_path

    # ------------------------------------------------------------------
    # Pull
    # ------------------------------------------------------------------

    async def pull(self) -> PullReport:
        """Apply remote changes and deletions to the host.

        Raises:
            ConfigurationError: configuration is incomplete; nothing was read
        """
        await self._ensure_ready()
        async with self._tracking_status():
            report = await self._pull()
            if not report.ok:
                self._pass_failed = True
            return report

    async def _pull(self) -> PullReport:
        report = PullReport()
        started_at = utc_now()
        directory = self.config.github_subdir

        listing = await self.remote.list(directory)
        if listing.is_not_found:
            # Git keeps no empty directories
            entries: list[RemoteEntry] = []
        elif not listing.ok:
            report.error = listing.error or f"Listing {directory or '/'} failed"
            logger.warning(
                "pull_listing_failed",
                directory=directory,
                status_code=listing.status_code,
                error=listing.error,
                error_code=ErrorCode.RMT_TRANSPORT.value,
            )
            return report
        else:
            entries = [
                entry
                for entry in listing.entries
                if entry.kind == "file" and SlugService.is_artifact_path(entry.path)
            ]

        report.outcomes = await self._bounded(entries, self._pull_isolated)

        listed = {entry.path for entry in entries}
        for entry in self.identity_map.all_entries():
            # Entries written after the listing was taken cannot appear in it
            if entry.remote_path in listed or entry.last_synced_at >= started_at:
                continue
            report.removed[entry.card_id] = await self._handle_remote_deletion(entry)

        logger.info(
            "pull_completed",
            listed=len(entries),
            created=report.created,
            updated=report.updated,
            conflicts=report.conflicts,
            malformed=report.count(PullAction.MALFORMED),
            failed=report.count(PullAction.FAILED),
            removed=len(report.removed),
        )
        return report

    async def _pull_isolated(self, entry: RemoteEntry) -> PullOutcome:
        try:
            return await self._pull_entry(entry)
        except Exception as e:
            logger.error(
                "pull_entry_failed",
                path=entry.path,
                error=str(e),
                error_type=type(e).__name__,
                error_code=ErrorCode.SYN_HOST_FAILED.value,
            )
            return PullOutcome(entry.path, PullAction.FAILED, error=str(e))

    async def _pull_entry(self, entry: RemoteEntry) -> PullOutcome:
        known = self.identity_map.lookup_by_path(entry.path)
        if known is not None and known.version_token == entry.sha:
            return PullOutcome(entry.path, PullAction.UNCHANGED, card_id=known.card_id)

        # Read under the card lock so a push of the same card cannot write in between
        lock_id = known.card_id if known else SlugService.card_id_from_path(entry.path)
        async with self._card_locks.acquire(lock_id):
            fetched = await self._fetch_pulled(entry)
            if isinstance(fetched, PullOutcome):
                return fetched
            card_id, sha, content, parsed = fetched
            if card_id == lock_id:
                return await self._apply_pulled(card_id, entry.path, sha, content, parsed)
        # Metadata names another card than the file name did
        async with self._card_locks.acquire(card_id):
            return await self._apply_pulled(card_id, entry.path, sha, content, parsed)

    async def _fetch_pulled(
        self, entry: RemoteEntry
    ) -> PullOutcome | tuple[str, str, str, ParsedArtifact]:
        """Read and parse a listed file, or the outcome that ends its pull."""
        known = self.identity_map.lookup_by_path(entry.path)
        if known is not None and known.version_token == entry.sha:
            # A push landed this version while the lock was held
            return PullOutcome(entry.path, PullAction.UNCHANGED, card_id=known.card_id)

        result = await self.remote.read(entry.path)
        if not result.ok or result.content is None:
            logger.warning(
                "pull_read_failed",
                path=entry.path,
                status=result.status.value,
                status_code=result.status_code,
                error=result.error,
            )
            return PullOutcome(entry.path, PullAction.FAILED, error=result.error)

        try:
            parsed = parse_artifact(result.content)
        except MalformedArtifactError as e:
            logger.warning(
                "remote_artifact_malformed",
                path=entry.path,
                error=str(e),
                error_code=e.error_code,
            )
            return PullOutcome(entry.path, PullAction.MALFORMED, error=str(e))

        card_id = parsed.card_id or SlugService.card_id_from_path(entry.path)
        return card_id, result.sha or entry.sha, result.content, parsed

    async def _apply_pulled(
        self,
        card_id: str,
        path: str,
        sha: str,
        remote_text: str,
        parsed: ParsedArtifact,
    ) -> PullOutcome:
        local = await self._read_local(card_id)
        if local is None:
            new_id = await self.host.create_card(card_id)
            await self._apply_remote(new_id, parsed)
            await self._upsert_pulled(new_id, path, sha, parsed)
            logger.info("card_created_from_remote", card_id=new_id, path=path, sha=sha)
            return PullOutcome(path, PullAction.CREATED, card_id=new_id)

        known = self.identity_map.lookup_by_local_id(card_id)
        local_text = await self._render(local)

        if local_text == remote_text:
            await self._upsert_pulled(card_id, path, sha, parsed)
            return PullOutcome(path, PullAction.UNCHANGED, card_id=card_id)

        # Local still matches the last synced version: only the remote moved
        if known is not None and self._is_current(local_text, known.version_token):
            resolution = Resolution.USE_REMOTE
        else:
            resolution = resolve(local.updated_at, parsed.updated_at, self.policy)

        if resolution is Resolution.USE_REMOTE:
            await self._apply_remote(card_id, parsed)
            await self._upsert_pulled(card_id, path, sha, parsed)
            logger.info("card_updated_from_remote", card_id=card_id, path=path, sha=sha)
            return PullOutcome(path, PullAction.UPDATED, card_id=card_id)

        if resolution is Resolution.USE_LOCAL:
            logger.debug("remote_change_overridden_locally", card_id=card_id, path=path)
            return PullOutcome(path, PullAction.KEPT_LOCAL, card_id=card_id)

        record_path = await self._record_conflict(card_id, local_text, remote_text, sha)
        return PullOutcome(path, PullAction.CONFLICT, card_id=card_id, record_path=record_path)

    async def _upsert_pulled(
        self, card_id: str, path: str, sha: str, parsed: ParsedArtifact
    ) -> IdentityMapEntry:
        await self.tombstones.lift(card_id)
        return await self.identity_map.upsert(
            card_id,
            path,
            sha,
            slug=SlugService.slug_from_path(path),
            parent_id=parsed.parent_id,
        )

    async def _confirm_deletion(self, card_id: str) -> bool:
        if self.confirm_delete is None:
            return self.config.confirm_remote_deletes
        try:
            return bool(await self.confirm_delete(card_id))
        except Exception as e:
            logger.warning("deletion_confirmation_failed", card_id=card_id, error=str(e))
            return False

    async def _handle_remote_deletion(self, entry: IdentityMapEntry) -> str:
        """Act on a card whose remote file disappeared; returns the local action."""
        card_id = entry.card_id
        async with self._card_locks.acquire(card_id):
            action = "missing"
            try:
                card = await self.host.get_card(card_id)
                if card is not None:
                    action = "kept"
                    if await self._confirm_deletion(card_id):
                        action = await self._remove_local(card_id)
                    else:
                        await self.tombstones.bury(card_id, card.updated_at)
            except Exception as e:
                logger.error(
                    "remote_deletion_apply_failed",
                    card_id=card_id,
                    error=str(e),
                    error_code=ErrorCode.SYN_HOST_FAILED.value,
                )
                action = "failed"
            # Never resurrect: the stored token points at a file that is gone
            await self.identity_map.remove(card_id)
            await self.retry_queue.discard(card_id)
        logger.info(
            "remote_deletion_detected",
            card_id=card_id,
            path=entry.remote_path,
            action=action,
        )
        return action

    async def _remove_local(self, card_id: str) -> str:
        if self.config.delete_mode == "delete":
            await self.host.delete_card(card_id)
            return "deleted"
        card = await self.host.get_card(card_id)
        names = sorted({*(card.tags if card else []), self.config.archive_tag})
        tag_ids = [await self.host.get_or_create_tag(name) for name in names]
        await self.host.set_tags(card_id, tag_ids)
        return "archived"

    # ------------------------------------------------------------------
    # Deletion, retries, full sync
    # ------------------------------------------------------------------

    async def delete_card_file(self, card_id: str) -> bool:
        """Delete the remote file of a card the host no longer has.

        Returns:
            True if the file is gone and the identity entry was removed
        """
        await self._ensure_ready()
        async with self._card_locks.acquire(card_id):
            entry = self.identity_map.lookup_by_local_id(card_id)
            if entry is None:
                return False
            result = await self.remote.delete(entry.remote_path, entry.version_token)
            if result.ok or result.is_not_found:
                await self.identity_map.remove(card_id)
                await self.retry_queue.discard(card_id)
                logger.info("card_file_deleted", card_id=card_id, path=entry.remote_path)
                return True
        logger.warning(
            "card_file_delete_failed",
            card_id=card_id,
            path=entry.remote_path,
            status=result.status.value,
            status_code=result.status_code,
            error=result.error,
        )
        return False

    async def process_retry_queue(self, force: bool = False) -> list[PushOutcome]:
        """Re-attempt queued pushes, at most once per retry interval unless forced."""
        await self._ensure_ready()
        ids = self.retry_queue.begin_drain(force)
        if not ids:
            return []
        async with self._tracking_status():
            outcomes = await self._bounded(ids, self._push_isolated)
        logger.info(
            "retry_queue_drained",
            attempted=len(ids),
            succeeded=sum(1 for o in outcomes if not o.failed),
            remaining=len(self.retry_queue),
        )
        return outcomes

    async def sync_now(self) -> SyncReport:
        """Pull, push every card, then drain the retry queue.

        Configuration failures are reported in the returned SyncReport
        rather than raised.
        """
        start_time = time.perf_counter()
        report = SyncReport()
        logger.info("sync_started", repo=self.config.github_repo, mode="full")
        try:
            await self._ensure_ready()
            async with self._tracking_status():
                report.pull = await self.pull()
                # Files deleted remotely in this pass are not pushed back
                report.pushes = await self.push_all(exclude=report.pull.removed)
                report.retried = await self.process_retry_queue()
        except ConfigurationError as e:
            report.error = str(e)
            await self._set_status(SyncStatus.ERROR)
            logger.error("sync_failed", error=str(e), error_code=e.error_code)
            return report
        finally:
            report.duration_seconds = time.perf_counter() - start_time

        summary: dict[str, Any] = {
            "pushed": report.pushed,
            "created": report.pull.created if report.pull else 0,
            "updated": report.pull.updated if report.pull else 0,
            "conflicts": report.conflicts,
            "queued": len(self.retry_queue),
            "duration_seconds": round(report.duration_seconds, 2),
        }
        if report.success:
            logger.info("sync_completed", **summary)
        else:
            logger.error(
                "sync_failed",
                error=report.pull.error if report.pull and report.pull.error else "Some cards failed to sync",
                **summary,
            )
        return report
