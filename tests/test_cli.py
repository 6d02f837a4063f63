"""CLI command tests."""

import pytest
from typer.testing import CliRunner

from flashcard_github_sync.cli import app
from flashcard_github_sync.cli_commands import shared
from flashcard_github_sync.config import reset_config
from tests.fixtures import InMemoryRemoteStore

runner = CliRunner()

CONFIG_YAML = """\
github_repo: octocat/flashcards
github_token: test-token
github_subdir: cards
auto_pull: false
"""


@pytest.fixture(autouse=True)
def _fresh_cli_state():
    shared.reset_cli_state()
    reset_config()
    yield
    shared.reset_cli_state()
    reset_config()


@pytest.fixture
def cli_remote(monkeypatch) -> InMemoryRemoteStore:
    """Route every command to an in-memory repository."""
    store = InMemoryRemoteStore()
    monkeypatch.setattr(shared, "build_remote", lambda config: store)
    return store


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG_YAML, encoding="utf-8")
    return path


def test_add_card_then_push(config_file, cli_remote):
    added = runner.invoke(app, ["add-card", "Why is the sky blue?", "Rayleigh", "--tag", "physics"])

    assert added.exit_code == 0, added.output
    assert "Created card" in added.output

    pushed = runner.invoke(app, ["push"])

    assert pushed.exit_code == 0, pushed.output
    files = [path for path in cli_remote.files if path.startswith("cards/")]
    assert len(files) == 1
    assert "physics" in cli_remote.text(files[0])


def test_add_card_rejects_unknown_scheduler(config_file, cli_remote):
    result = runner.invoke(app, ["add-card", "Q", "A", "--scheduler", "leitner"])

    assert result.exit_code == 1
    assert "Unknown scheduler" in result.output


def test_sync_pulls_remote_cards(config_file, cli_remote):
    cli_remote.put(
        "cards/c9.md",
        "---\ncardId: c9\ntags: []\nupdated: '2025-04-10T09:30:00Z'\n---\n"
        "**Q:** Hello\n\n**A:** There\n",
    )

    result = runner.invoke(app, ["sync"])

    assert result.exit_code == 0, result.output
    assert "Sync completed" in result.output

    status = runner.invoke(app, ["status"])

    assert status.exit_code == 0, status.output
    assert "octocat/flashcards" in status.output
    assert "Synced" in status.output


def test_push_failure_exits_non_zero(config_file, cli_remote):
    runner.invoke(app, ["add-card", "Q", "A"])
    cli_remote.fail("write")

    result = runner.invoke(app, ["push"])

    assert result.exit_code == 1
    assert "queued" in result.output


def test_retry_with_empty_queue(config_file, cli_remote):
    result = runner.invoke(app, ["retry"])

    assert result.exit_code == 0, result.output
    assert "Retry queue is empty" in result.output


def test_missing_repository_configuration(cli_remote):
    result = runner.invoke(app, ["push"])

    assert result.exit_code == 1
    assert "Configuration error" in result.output
    assert cli_remote.calls == []


def test_watch_runs_for_duration(config_file, cli_remote):
    runner.invoke(app, ["add-card", "Q", "A"])

    result = runner.invoke(app, ["watch", "--duration", "0.3", "--poll-interval", "0.1"])

    assert result.exit_code == 0, result.output
    assert "Watching for changes" in result.output


def test_log_level_defaults_to_config(tmp_path, monkeypatch, cli_remote):
    (tmp_path / "config.yaml").write_text(CONFIG_YAML + "log_level: DEBUG\n", encoding="utf-8")
    levels = []
    monkeypatch.setattr(
        shared, "configure_logging", lambda level, **kwargs: levels.append(level)
    )

    assert runner.invoke(app, ["status"]).exit_code == 0
    shared.reset_cli_state()
    assert runner.invoke(app, ["status", "--log-level", "WARN"]).exit_code == 0

    assert levels == ["DEBUG", "WARN"]
