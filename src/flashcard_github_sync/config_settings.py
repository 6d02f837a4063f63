"""Settings model for the sync service (split from config.py)."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .error_codes import ErrorCode
from .exceptions import ConfigurationError, ConfigurationMissingError

# Policy names accepted from older config files
_POLICY_ALIASES = {
    "newer-wins": "newer",
    "prefer-github": "prefer-remote",
    "prefer-host": "prefer-local",
}


class Config(BaseSettings):
    """Service configuration using pydantic-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=False,
        extra="ignore",
        validate_assignment=True,
    )

    # Remote repository
    github_repo: str = Field(
        default="", description="Repository identity in owner/repo form"
    )
    github_token: str = Field(default="", description="GitHub access token")
    github_branch: str = Field(default="main", description="Branch used for sync")
    github_subdir: str = Field(
        default="", description="Optional folder inside the repo for card files"
    )
    github_api_url: str = Field(
        default="https://api.github.com", description="GitHub REST API base URL"
    )
    request_timeout: float = Field(
        default=30.0, ge=1.0, description="HTTP request timeout in seconds"
    )

    # Sync behavior
    conflict_policy: Literal["newer", "prefer-remote", "prefer-local"] = Field(
        default="newer", description="How to resolve cards changed on both sides"
    )
    auto_push: bool = Field(default=True, description="Push local edits automatically")
    auto_pull: bool = Field(
        default=True, description="Pull remote changes on a timer"
    )
    pull_interval_minutes: float = Field(
        default=5.0, gt=0, description="Minutes between automatic pulls"
    )
    retry_interval_minutes: float = Field(
        default=5.0, gt=0, description="Minutes between retry-queue drains"
    )
    push_debounce_seconds: float = Field(
        default=2.0,
        ge=0.0,
        description="Delay that coalesces bursts of edits to one card into one push",
    )
    max_concurrent_syncs: int = Field(
        default=4, ge=1, description="Cards processed concurrently in one pass"
    )
    filename_strategy: Literal["id", "slug"] = Field(
        default="id", description="'id' -> <id>.md, 'slug' -> <slug>__<id>.md"
    )
    default_scheduler: Literal["FSRS", "SM2"] = Field(
        default="FSRS",
        description="Scheduler kind written for cards without scheduling data",
    )

    # Remote deletion handling
    delete_mode: Literal["archive", "delete"] = Field(
        default="archive",
        description="What to do with a local card whose remote file disappeared",
    )
    archive_tag: str = Field(
        default="Archived", description="Tag added to cards archived on remote delete"
    )
    confirm_remote_deletes: bool = Field(
        default=False,
        description="Answer used when no interactive confirmation is available",
    )

    # Local storage (relative to data_dir)
    data_dir: Path = Field(
        default=Path(), description="Directory for the card store and logs"
    )
    db_path: Path = Field(
        default=Path(".flashcards.db"),
        description="SQLite card store (relative to data_dir)",
    )

    # Logging (relative to data_dir)
    log_level: str = Field(default="INFO", description="Log level")
    project_log_dir: Path = Field(
        default=Path("logs"), description="Directory for log files"
    )

    @field_validator("conflict_policy", mode="before")
    @classmethod
    def normalize_conflict_policy(cls, v: Any) -> Any:
        """Accept legacy policy names."""
        if isinstance(v, str):
            value = v.strip().lower()
            return _POLICY_ALIASES.get(value, value)
        return v

    @field_validator("default_scheduler", mode="before")
    @classmethod
    def normalize_scheduler(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("github_subdir", mode="before")
    @classmethod
    def normalize_subdir(cls, v: Any) -> Any:
        """Strip surrounding slashes so paths join cleanly."""
        if v is None:
            return ""
        if isinstance(v, str):
            return v.strip().strip("/")
        return v

    @field_validator("data_dir", "db_path", "project_log_dir", mode="before")
    @classmethod
    def parse_path(cls, v: Any) -> Path:
        """Convert string to Path."""
        if isinstance(v, str):
            return Path(v).expanduser()
        if isinstance(v, Path):
            return v
        if v is None:
            return Path()
        msg = f"Path field must be string or Path, got {type(v).__name__}"
        raise ValueError(msg)

    @property
    def repo_owner(self) -> str:
        return self.github_repo.split("/", 1)[0] if "/" in self.github_repo else ""

    @property
    def repo_name(self) -> str:
        return self.github_repo.split("/", 1)[1] if "/" in self.github_repo else ""

    def validate_config(self) -> Config:
        """Validate that the remote side is usable.

        Raises:
            ConfigurationMissingError: repository or token is not set
            ConfigurationError: repository identity is malformed
        """
        if not self.github_repo:
            raise ConfigurationMissingError(
                "github_repo is required",
                suggestion="Set GITHUB_REPO=owner/repo or github_repo in config.yaml",
                error_code=ErrorCode.CFG_MISSING_REPO.value,
            )
        if not self.github_token:
            raise ConfigurationMissingError(
                "github_token is required",
                suggestion="Set GITHUB_TOKEN or github_token in config.yaml",
                error_code=ErrorCode.CFG_MISSING_TOKEN.value,
            )
        owner, _, repo = self.github_repo.partition("/")
        if not owner or not repo or "/" in repo:
            raise ConfigurationError(
                f"Invalid github_repo: {self.github_repo!r}",
                suggestion="Use the form owner/repo, for example octocat/flashcards",
                error_code=ErrorCode.CFG_INVALID_VALUE.value,
            )
        return self

    def get_data_path(self, relative_path: Path | str | None = None) -> Path:
        """Resolve a path relative to data_dir."""
        if relative_path is None:
            return self.data_dir
        path = Path(relative_path)
        return path if path.is_absolute() else self.data_dir / path

    def get_db_path(self) -> Path:
        return self.get_data_path(self.db_path)

    def get_log_dir(self) -> Path:
        return self.get_data_path(self.project_log_dir)


__all__ = ["Config"]
