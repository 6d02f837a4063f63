"""Pytest configuration and fixtures for the test suite."""

import pytest

from flashcard_github_sync.config_settings import Config
from flashcard_github_sync.sync.engine import SyncEngine
from tests.fixtures import (
    InMemoryKeyValueStore,
    InMemoryRemoteStore,
    MockHostApplication,
)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    """Keep developer config and environment out of the tests."""
    for key in (
        "GITHUB_REPO",
        "GITHUB_TOKEN",
        "GITHUB_BRANCH",
        "GITHUB_SUBDIR",
        "CONFLICT_POLICY",
        "FLASHCARD_SYNC_CONFIG",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def config(tmp_path) -> Config:
    """Provide a complete configuration for a test repository."""
    return Config(
        github_repo="octocat/flashcards",
        github_token="test-token",
        github_subdir="cards",
        data_dir=tmp_path,
        push_debounce_seconds=0.01,
    )


@pytest.fixture
def host() -> MockHostApplication:
    """Provide a mock host application."""
    return MockHostApplication()


@pytest.fixture
def remote() -> InMemoryRemoteStore:
    """Provide an in-memory remote store."""
    return InMemoryRemoteStore()


@pytest.fixture
def kv_store() -> InMemoryKeyValueStore:
    """Provide an in-memory key-value store."""
    return InMemoryKeyValueStore()


@pytest.fixture
def make_engine(config, host, remote, kv_store):
    """Build a SyncEngine over the shared fakes, with config overrides."""

    def _make(confirm_delete=None, **overrides) -> SyncEngine:
        cfg = config.model_copy(update=overrides) if overrides else config
        return SyncEngine(cfg, host, remote, kv_store, confirm_delete=confirm_delete)

    return _make


@pytest.fixture
def engine(make_engine) -> SyncEngine:
    """Provide a SyncEngine with the default newer-wins policy."""
    return make_engine()
