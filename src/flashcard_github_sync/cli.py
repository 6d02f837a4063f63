"""Command-line interface for the sync service."""

from __future__ import annotations

import typer

from .cli_commands import sync_commands

app = typer.Typer(
    name="flashcard-github-sync",
    help="Keep a local flashcard collection in sync with a GitHub repository.",
    no_args_is_help=True,
)

sync_commands.register(app)


def cli() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    cli()
