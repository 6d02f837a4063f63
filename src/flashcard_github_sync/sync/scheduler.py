"""Triggers for the sync engine: change notifications and periodic timers."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from ..config_settings import Config
from ..error_codes import ErrorCode
from ..exceptions import ConfigurationError
from ..utils.logging import get_logger
from .engine import PushStatus, SyncEngine

logger = get_logger(__name__)


class SyncScheduler:
    """Coalesces change notifications and runs pull/retry timers.

    A burst of notifications for one card collapses into a single push
    after ``push_debounce_seconds`` of quiet. A notification that arrives
    while that card is being pushed marks it dirty, and it is pushed once
    more when the running push finishes.

    Usage:
        scheduler = SyncScheduler(engine, config)
        await scheduler.start()
        scheduler.notify_card_changed("c1")
        ...
        await scheduler.stop()
    """

    def __init__(self, engine: SyncEngine, config: Config):
        self.engine = engine
        self.config = config
        self._pending: dict[str, asyncio.Task[None]] = {}
        self._running: dict[str, asyncio.Task[None]] = {}
        self._dirty: set[str] = set()
        self._timers: list[asyncio.Task[None]] = []
        self._background: set[asyncio.Task[Any]] = set()
        self._started = False

    @property
    def running(self) -> bool:
        return self._started

    @property
    def pending_ids(self) -> list[str]:
        return list(self._pending)

    def notify_card_changed(self, card_id: str) -> None:
        """Schedule a debounced push for a card the host reports as changed.

        Must be called from the event loop thread.
        """
        if not self.config.auto_push:
            logger.debug("card_change_ignored", card_id=card_id, reason="auto_push_disabled")
            return
        if card_id in self._running:
            self._dirty.add(card_id)
            return
        previous = self._pending.pop(card_id, None)
        if previous is not None:
            previous.cancel()
        self._pending[card_id] = asyncio.create_task(self._debounced_push(card_id))

    async def _debounced_push(self, card_id: str) -> None:
        await asyncio.sleep(self.config.push_debounce_seconds)
        task = self._pending.pop(card_id, None)
        if task is not None:
            self._running[card_id] = task
        try:
            await self._push_until_clean(card_id)
        finally:
            self._running.pop(card_id, None)

    async def _push_until_clean(self, card_id: str) -> None:
        while True:
            self._dirty.discard(card_id)
            await self._push_or_delete(card_id)
            if card_id not in self._dirty:
                return

    async def _push_or_delete(self, card_id: str) -> None:
        try:
            outcome = await self.engine.push_card(card_id)
            if outcome.status is PushStatus.MISSING:
                # The host no longer has the card: drop its remote file too
                await self.engine.delete_card_file(card_id)
        except ConfigurationError as e:
            logger.error("sync_failed", card_id=card_id, error=str(e), error_code=e.error_code)
        except Exception as e:
            logger.error(
                "scheduled_push_failed",
                card_id=card_id,
                error=str(e),
                error_type=type(e).__name__,
                error_code=ErrorCode.SYN_HOST_FAILED.value,
            )

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Load engine state, start timers, drain the retry queue once."""
        if self._started:
            return
        await self.engine.start()
        self._started = True
        self.restart_timers(immediate_pull=True)
        self._spawn(self._run_job("retry", lambda: self.engine.process_retry_queue(force=True)))
        logger.info(
            "watch_started",
            auto_push=self.config.auto_push,
            auto_pull=self.config.auto_pull,
            pull_interval_minutes=self.config.pull_interval_minutes,
            retry_interval_minutes=self.config.retry_interval_minutes,
        )

    def restart_timers(self, immediate_pull: bool = False) -> None:
        """Replace the running timers with ones built from current settings."""
        self._cancel_timers()
        if self.config.auto_pull:
            self._timers.append(
                asyncio.create_task(
                    self._every(
                        self.config.pull_interval_minutes * 60,
                        "pull",
                        self.engine.pull,
                        immediate=immediate_pull,
                    )
                )
            )
        # The timer interval is the rate limit; the queue's own gate would
        # skip the first tick after the start-up drain
        self._timers.append(
            asyncio.create_task(
                self._every(
                    self.config.retry_interval_minutes * 60,
                    "retry",
                    lambda: self.engine.process_retry_queue(force=True),
                )
            )
        )

    def _cancel_timers(self) -> list[asyncio.Task[None]]:
        timers, self._timers = self._timers, []
        for timer in timers:
            timer.cancel()
        return timers

    def _spawn(self, coro: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _every(
        self,
        interval: float,
        name: str,
        job: Callable[[], Awaitable[Any]],
        immediate: bool = False,
    ) -> None:
        if immediate:
            await self._run_job(name, job)
        while True:
            await asyncio.sleep(interval)
            await self._run_job(name, job)

    async def _run_job(self, name: str, job: Callable[[], Awaitable[Any]]) -> None:
        try:
            await job()
        except ConfigurationError as e:
            logger.error("sync_failed", job=name, error=str(e), error_code=e.error_code)
        except Exception as e:
            logger.error(
                "scheduled_job_failed",
                job=name,
                error=str(e),
                error_type=type(e).__name__,
            )

    async def stop(self) -> None:
        """Cancel timers, flush pending pushes, wait for in-flight work, persist."""
        if not self._started:
            return
        timers = self._cancel_timers()
        await asyncio.gather(*timers, return_exceptions=True)

        pending = list(self._pending)
        cancelled = list(self._pending.values())
        for task in cancelled:
            task.cancel()
        self._pending.clear()

        in_flight = [*cancelled, *self._running.values(), *self._background]
        await asyncio.gather(*in_flight, return_exceptions=True)
        for card_id in pending:
            await self._push_or_delete(card_id)

        await self.engine.stop()
        self._started = False
        logger.info("watch_stopped", flushed=len(pending))
