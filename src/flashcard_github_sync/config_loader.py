"""Config loader utilities (split from config.py)."""

from __future__ import annotations

import contextlib
import os
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import yaml

from .config_settings import Config
from .error_codes import ErrorCode
from .exceptions import ConfigurationError
from .utils.logging import get_logger

CONFIG_ENV_VAR = "FLASHCARD_SYNC_CONFIG"

_config: Config | None = None


def _candidate_paths(config_path: Path | None) -> list[Path]:
    if config_path:
        return [config_path.expanduser()]
    candidates: list[Path] = []
    env_path = os.getenv(CONFIG_ENV_VAR)
    if env_path:
        candidates.append(Path(env_path).expanduser())
    candidates.append(Path.cwd() / "config.yaml")
    return candidates


@contextlib.contextmanager
def _yaml_as_env(yaml_data: dict[str, Any]) -> Iterator[None]:
    """Temporarily expose scalar YAML values as environment variables.

    Real environment variables win over the file, matching the precedence of
    pydantic-settings for .env files.
    """
    applied: list[str] = []
    try:
        for key, value in yaml_data.items():
            env_key = str(key).upper()
            if value is None or isinstance(value, (list, dict)):
                continue
            if env_key in os.environ:
                continue
            if isinstance(value, bool):
                os.environ[env_key] = "true" if value else "false"
            else:
                os.environ[env_key] = str(value)
            applied.append(env_key)
        yield
    finally:
        for env_key in applied:
            os.environ.pop(env_key, None)


def load_config(
    config_path: Path | None = None, *, strict_config: bool = True
) -> Config:
    """Load configuration from .env, environment and config.yaml.

    Args:
        config_path: Explicit config file; otherwise FLASHCARD_SYNC_CONFIG or
            ./config.yaml are tried
        strict_config: Raise on unreadable YAML instead of logging a warning

    Note:
        Remote settings are not validated here; the sync engine calls
        ``Config.validate_config()`` at the start of every pass so that a
        missing token is reported once per pass.
    """
    logger = get_logger(__name__)

    candidates = _candidate_paths(config_path)
    resolved: Path | None = next((p for p in candidates if p.exists()), None)
    if resolved:
        logger.info("config_file_found", config_path=str(resolved))
    else:
        logger.debug(
            "config_file_not_found", searched_paths=[str(p) for p in candidates]
        )

    yaml_data: dict[str, Any] = {}
    if resolved:
        try:
            with open(resolved, encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or {}
            if not isinstance(loaded, dict):
                msg = "top-level YAML value must be a mapping"
                raise ValueError(msg)
            yaml_data = loaded
        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.error(
                "config_yaml_load_error",
                config_path=str(resolved),
                error=str(e),
                error_type=type(e).__name__,
            )
            if strict_config:
                msg = f"Failed to parse config file: {resolved}"
                raise ConfigurationError(
                    msg,
                    suggestion=(
                        "Check YAML syntax (indentation, colons, quotes). "
                        f"Original error: {e}"
                    ),
                    error_code=ErrorCode.CFG_FILE_UNREADABLE.value,
                ) from e
            logger.warning("config_warning", error=str(e))

    with _yaml_as_env(yaml_data):
        config = Config()

    logger.info(
        "config_loaded",
        repo=config.github_repo or None,
        branch=config.github_branch,
        subdir=config.github_subdir or None,
        conflict_policy=config.conflict_policy,
    )
    return config


def get_config() -> Config:
    """Get singleton config instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: Config) -> None:
    """Set singleton config instance (for testing)."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset global config instance (for testing only)."""
    global _config
    _config = None


__all__ = ["Config", "get_config", "load_config", "reset_config", "set_config"]
