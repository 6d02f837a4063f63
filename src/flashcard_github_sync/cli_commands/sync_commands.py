"""Sync CLI commands: sync, push, pull, retry, status, watch, add-card."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Coroutine
from datetime import datetime
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.table import Table

from ..domain.entities.card import SchedulerKind, SchedulingState
from ..exceptions import FlashcardSyncError
from ..infrastructure import SQLiteHostApplication
from ..sync.engine import PullReport, PushOutcome, PushStatus, SyncReport
from ..sync.identity_map import IdentityMap
from ..sync.retry_queue import RetryQueue
from ..sync.scheduler import SyncScheduler
from .shared import (
    console,
    get_config_and_logger,
    open_engine,
    open_workspace,
    print_error,
)

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", help="Path to config.yaml", exists=True),
]
LogLevelOption = Annotated[
    str | None,
    typer.Option(
        "--log-level", help="Log level (DEBUG, INFO, WARN, ERROR); defaults to config"
    ),
]
VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Show all log messages on terminal"),
]
InteractiveOption = Annotated[
    bool,
    typer.Option(
        "--interactive/--no-interactive",
        help="Ask before removing cards whose file was deleted remotely",
    ),
]


def _print_push_outcomes(outcomes: list[PushOutcome], title: str = "Push") -> None:
    interesting = [o for o in outcomes if o.status is not PushStatus.UNCHANGED]
    unchanged = len(outcomes) - len(interesting)
    if interesting:
        table = Table(title=title)
        table.add_column("Card", style="cyan")
        table.add_column("Result")
        table.add_column("Path / details", style="dim")
        for outcome in interesting:
            style = "red" if outcome.failed else "yellow" if outcome.status is PushStatus.CONFLICT else "green"
            details = outcome.record_path or outcome.error or outcome.path or ""
            table.add_row(outcome.card_id, f"[{style}]{outcome.status.value}[/{style}]", details)
        console.print(table)
    console.print(f"[dim]{unchanged} unchanged, {len(interesting)} changed or failed[/dim]")


def _print_pull_report(report: PullReport) -> None:
    if report.error:
        console.print(f"[bold red]Listing failed:[/bold red] {report.error}")
        return
    table = Table(title="Pull")
    table.add_column("Result")
    table.add_column("Count", justify="right")
    for action in ("created", "updated", "unchanged", "kept_local", "conflict", "malformed", "failed"):
        count = sum(1 for o in report.outcomes if o.action.value == action)
        if count:
            table.add_row(action, str(count))
    if report.removed:
        table.add_row("removed remotely", str(len(report.removed)))
    console.print(table)
    for outcome in report.outcomes:
        if outcome.record_path:
            console.print(f"[yellow]Conflict record:[/yellow] {outcome.record_path}")


def _print_sync_report(report: SyncReport) -> None:
    if report.pull is not None:
        _print_pull_report(report.pull)
    _print_push_outcomes([*report.pushes, *report.retried])
    if report.success:
        console.print(
            f"\n[bold green]Sync completed in {report.duration_seconds:.1f}s[/bold green]"
        )
    else:
        console.print(f"\n[bold red]Sync finished with errors[/bold red] {report.error or ''}")


def _run(main: Callable[[], Coroutine[Any, Any, None]]) -> None:
    """Run an async command body, mapping domain errors to exit codes."""
    try:
        asyncio.run(main())
    except FlashcardSyncError as e:
        print_error(e)
        raise typer.Exit(code=1) from e


async def _snapshot(host: SQLiteHostApplication) -> dict[str, datetime | None]:
    """Modification time of every local card."""
    current: dict[str, datetime | None] = {}
    for card_id in await host.list_card_ids():
        card = await host.get_card(card_id)
        if card is not None:
            current[card_id] = card.updated_at
    return current


async def _poll_local_changes(
    host: SQLiteHostApplication,
    scheduler: SyncScheduler,
    snapshot: dict[str, datetime | None],
) -> dict[str, datetime | None]:
    """Notify the scheduler about cards added, edited or removed since snapshot."""
    current = await _snapshot(host)
    for card_id, updated_at in current.items():
        if card_id not in snapshot or snapshot[card_id] != updated_at:
            scheduler.notify_card_changed(card_id)
    for card_id in snapshot.keys() - current.keys():
        scheduler.notify_card_changed(card_id)
    return current


def register(app: typer.Typer) -> None:
    """Register sync commands on the given Typer app."""

    @app.command()
    def sync(
        interactive: InteractiveOption = False,
        config_path: ConfigOption = None,
        log_level: LogLevelOption = None,
        verbose: VerboseOption = False,
    ) -> None:
        """Pull remote changes, push every card, then retry failed pushes."""
        config, logger = get_config_and_logger(config_path, log_level, verbose)

        async def main() -> None:
            async with open_engine(config, interactive=interactive) as (engine, _):
                report = await engine.sync_now()
            _print_sync_report(report)
            if not report.success:
                raise typer.Exit(code=1)

        _run(main)

    @app.command()
    def push(
        card_ids: Annotated[
            list[str] | None,
            typer.Option("--card-id", help="Push only this card (repeatable)"),
        ] = None,
        config_path: ConfigOption = None,
        log_level: LogLevelOption = None,
        verbose: VerboseOption = False,
    ) -> None:
        """Push local cards to the repository."""
        config, logger = get_config_and_logger(config_path, log_level, verbose)

        async def main() -> None:
            async with open_engine(config) as (engine, _):
                outcomes = await engine.push_all(card_ids or None)
            _print_push_outcomes(outcomes)
            if any(o.failed for o in outcomes):
                raise typer.Exit(code=1)

        _run(main)

    @app.command()
    def pull(
        interactive: InteractiveOption = False,
        config_path: ConfigOption = None,
        log_level: LogLevelOption = None,
        verbose: VerboseOption = False,
    ) -> None:
        """Apply repository changes to local cards."""
        config, logger = get_config_and_logger(config_path, log_level, verbose)

        async def main() -> None:
            async with open_engine(config, interactive=interactive) as (engine, _):
                report = await engine.pull()
            _print_pull_report(report)
            if not report.ok:
                raise typer.Exit(code=1)

        _run(main)

    @app.command()
    def retry(
        config_path: ConfigOption = None,
        log_level: LogLevelOption = None,
        verbose: VerboseOption = False,
    ) -> None:
        """Re-attempt pushes that failed earlier."""
        config, logger = get_config_and_logger(config_path, log_level, verbose)

        async def main() -> None:
            async with open_engine(config) as (engine, _):
                outcomes = await engine.process_retry_queue(force=True)
                remaining = len(engine.retry_queue)
            if not outcomes:
                console.print("[dim]Retry queue is empty[/dim]")
                return
            _print_push_outcomes(outcomes, title="Retry")
            console.print(f"{remaining} card(s) still queued")

        _run(main)

    @app.command()
    def status(
        config_path: ConfigOption = None,
        log_level: LogLevelOption = None,
        verbose: VerboseOption = False,
    ) -> None:
        """Show sync configuration and persisted sync state."""
        config, logger = get_config_and_logger(config_path, log_level, verbose)

        async def main() -> None:
            async with open_workspace(config) as workspace:
                identity_map = IdentityMap(workspace.kv)
                queue = RetryQueue(workspace.kv)
                await identity_map.load()
                await queue.load()
                raw_status = await workspace.kv.get("sync-status")
                local_cards = len(await workspace.host.list_card_ids())

            table = Table(title="Sync status", show_header=False)
            table.add_column("Key", style="cyan")
            table.add_column("Value")
            table.add_row("Repository", config.github_repo or "[red]not configured[/red]")
            table.add_row("Branch", config.github_branch)
            table.add_row("Directory", config.github_subdir or "/")
            table.add_row("Conflict policy", config.conflict_policy)
            table.add_row("Status", str(raw_status or "Idle"))
            table.add_row("Local cards", str(local_cards))
            table.add_row("Synced cards", str(len(identity_map)))
            table.add_row("Queued for retry", str(len(queue)))
            console.print(table)
            for card_id in queue.snapshot():
                console.print(f"  [yellow]retry pending:[/yellow] {card_id}")

        _run(main)

    @app.command()
    def watch(
        duration: Annotated[
            float | None,
            typer.Option("--duration", help="Stop after this many seconds", min=0),
        ] = None,
        poll_interval: Annotated[
            float,
            typer.Option("--poll-interval", help="Seconds between local change scans", min=0.1),
        ] = 5.0,
        config_path: ConfigOption = None,
        log_level: LogLevelOption = None,
        verbose: VerboseOption = False,
    ) -> None:
        """Push local edits as they happen and pull on a timer until interrupted."""
        config, logger = get_config_and_logger(config_path, log_level, verbose)

        async def main() -> None:
            async with open_engine(config) as (engine, workspace):
                scheduler = SyncScheduler(engine, config)
                await scheduler.start()
                snapshot = await _snapshot(workspace.host)
                deadline = None if duration is None else time.monotonic() + duration
                console.print("[bold cyan]Watching for changes (Ctrl+C to stop)[/bold cyan]")
                try:
                    while deadline is None or time.monotonic() < deadline:
                        await asyncio.sleep(poll_interval)
                        snapshot = await _poll_local_changes(workspace.host, scheduler, snapshot)
                finally:
                    await scheduler.stop()

        try:
            _run(main)
        except KeyboardInterrupt:
            console.print("\n[yellow]Stopped[/yellow]")

    @app.command(name="add-card")
    def add_card(
        front: Annotated[str, typer.Argument(help="Question text (markdown)")],
        back: Annotated[str, typer.Argument(help="Answer text (markdown)")],
        tags: Annotated[
            list[str] | None,
            typer.Option("--tag", "-t", help="Tag name (repeatable)"),
        ] = None,
        scheduler_kind: Annotated[
            str | None,
            typer.Option("--scheduler", help="FSRS or SM2 (default from config)"),
        ] = None,
        push_now: Annotated[
            bool, typer.Option("--push", help="Push the card right away")
        ] = False,
        config_path: ConfigOption = None,
        log_level: LogLevelOption = None,
        verbose: VerboseOption = False,
    ) -> None:
        """Create a card in the local card database."""
        config, logger = get_config_and_logger(config_path, log_level, verbose)
        try:
            kind = SchedulerKind((scheduler_kind or config.default_scheduler).upper())
        except ValueError as e:
            console.print(f"[bold red]Unknown scheduler:[/bold red] {scheduler_kind}")
            raise typer.Exit(code=1) from e

        async def main() -> None:
            async with open_workspace(config) as workspace:
                card_id = await workspace.host.add_card(
                    front, back, tags or [], scheduling=SchedulingState.empty(kind)
                )
            logger.info("card_added", card_id=card_id)
            console.print(f"[green]Created card[/green] {card_id}")
            if push_now:
                async with open_engine(config) as (engine, _):
                    outcome = await engine.push_card(card_id)
                _print_push_outcomes([outcome])

        _run(main)

