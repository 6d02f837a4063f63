"""Shared utilities for CLI commands."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import typer
from rich.console import Console

from ..config import Config, load_config, set_config
from ..domain.interfaces.host_application import DeletionConfirmer
from ..domain.interfaces.remote_store import IRemoteStore
from ..exceptions import ConfigurationError
from ..github.client import GitHubContentsClient
from ..infrastructure import SQLiteDatabase, SQLiteHostApplication, SQLiteKeyValueStore
from ..sync.engine import SyncEngine
from ..sync.media import MediaTranslator
from ..utils.logging import configure_logging, get_logger

# Shared console for all commands
console = Console()

# Cached across commands of one process
_config: Config | None = None
_logger: Any | None = None


def get_config_and_logger(
    config_path: Path | None = None,
    log_level: str | None = None,
    verbose: bool = False,
) -> tuple[Config, Any]:
    """Load configuration and logger (dependency injection helper).

    Args:
        config_path: Optional path to config file
        log_level: Logging level; None uses the configured level
        verbose: Show all log messages on terminal (for debugging)

    Returns:
        Tuple of (Config, Logger)
    """
    global _config, _logger

    if _config is None:
        try:
            _config = load_config(config_path)
        except ConfigurationError as e:
            print_error(e)
            raise typer.Exit(code=1) from e
        set_config(_config)
        configure_logging(
            log_level or _config.log_level,
            log_dir=_config.get_log_dir(),
            verbose=verbose,
        )
        _logger = get_logger("cli")

    return _config, _logger


def reset_cli_state() -> None:
    """Forget the cached config and logger."""
    global _config, _logger
    _config = None
    _logger = None


def print_error(error: Exception) -> None:
    if isinstance(error, ConfigurationError):
        console.print(f"\n[bold red]Configuration error:[/bold red] {error.message}")
        if error.suggestion:
            console.print(f"  [dim]{error.suggestion}[/dim]")
        return
    console.print(f"\n[bold red]Error:[/bold red] {error}")


def build_remote(config: Config) -> IRemoteStore:
    """Remote store used by the commands."""
    return GitHubContentsClient.from_config(config)


def interactive_confirmer() -> DeletionConfirmer:
    """Ask on the terminal before deleting or archiving a card."""

    async def confirm(card_id: str) -> bool:
        return typer.confirm(
            f"Card {card_id} was deleted from the repository. "
            "Remove it locally too?",
            default=False,
        )

    return confirm


@dataclass
class Workspace:
    """Objects one command works with."""

    config: Config
    db: SQLiteDatabase
    host: SQLiteHostApplication
    kv: SQLiteKeyValueStore


@asynccontextmanager
async def open_workspace(config: Config) -> AsyncIterator[Workspace]:
    """Open the local card database without touching the network."""
    db = SQLiteDatabase(config.get_db_path())
    try:
        yield Workspace(
            config=config,
            db=db,
            host=SQLiteHostApplication(db),
            kv=SQLiteKeyValueStore(db),
        )
    finally:
        db.close()


@asynccontextmanager
async def open_engine(
    config: Config, interactive: bool = False
) -> AsyncIterator[tuple[SyncEngine, Workspace]]:
    """Wire the local database, remote client and engine, and tear them down.

    Raises:
        ConfigurationError: repository or token is not configured
    """
    config.validate_config()
    async with open_workspace(config) as workspace:
        remote = build_remote(config)
        media = MediaTranslator(
            remote, subdir=config.github_subdir, timeout=config.request_timeout
        )
        engine = SyncEngine(
            config,
            workspace.host,
            remote,
            workspace.kv,
            confirm_delete=interactive_confirmer() if interactive else None,
            media=media,
        )
        try:
            await engine.start()
            try:
                yield engine, workspace
            finally:
                # Only state that was loaded gets persisted back
                await engine.stop()
        finally:
            await media.close()
            await remote.close()
