"""Logging configuration using structlog for structured JSON logging."""

import logging
import sys
import threading
import time
from collections import deque
from collections.abc import Callable, Mapping, MutableMapping
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog
from structlog.dev import ConsoleRenderer
from structlog.processors import JSONRenderer
from structlog.stdlib import LoggerFactory, add_log_level, add_logger_name

_LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# Events shown on the terminal without --verbose, plus all ERROR/CRITICAL
USER_FACING_EVENTS: set[str] = {
    "sync_started",
    "sync_completed",
    "sync_failed",
    "sync_conflict_detected",
    "remote_deletion_detected",
    "retry_queue_drained",
    "config_warning",
    "watch_started",
    "watch_stopped",
}


def _get_level_no(level_name: str) -> int:
    """Get numeric log level from name."""
    return _LOG_LEVELS.get(level_name.upper(), logging.INFO)


@dataclass(slots=True)
class HighVolumeEventPolicy:
    """
    Rate-limiting policy for high-frequency log events.

    Attributes:
        max_occurrences: Maximum number of events allowed within the window.
        window_seconds: Sliding window size in seconds for counting events.
    """

    max_occurrences: int
    window_seconds: float


class ConsoleNoiseFilterProcessor:
    """
    Structlog processor that reduces console noise.

    Enforces module-level minimum log levels and rate-limits specific
    high-volume events within a sliding time window.
    """

    def __init__(
        self,
        level_overrides: Mapping[str, str] | None = None,
        high_volume_policies: Mapping[str, HighVolumeEventPolicy] | None = None,
        time_func: Callable[[], float] | None = None,
    ) -> None:
        """
        Initialize the console noise filter processor.

        Args:
            level_overrides: Mapping of module prefixes to minimum log levels.
            high_volume_policies: Mapping of event names to rate-limit policies.
            time_func: Optional time provider for testing (defaults to time.monotonic).
        """
        self.level_overrides = dict(level_overrides or {})
        self.high_volume_policies = dict(high_volume_policies or {})
        self._resolved_level_overrides = {
            prefix: _get_level_no(level_name)
            for prefix, level_name in self.level_overrides.items()
            if level_name
        }
        self._event_windows: dict[str, deque[float]] = {
            event: deque() for event in self.high_volume_policies
        }
        self._lock = threading.Lock()
        self._time_func = time_func or time.monotonic

    def __call__(
        self, logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
    ) -> MutableMapping[str, Any]:
        """Apply level overrides and rate limits to a log event."""
        logger_name = event_dict.get("logger", "") or ""
        level_no = event_dict.get("level", logging.INFO)
        if isinstance(level_no, str):
            level_no = _get_level_no(level_no)
        elif not isinstance(level_no, int):
            level_no = logging.INFO

        for prefix, min_level in self._resolved_level_overrides.items():
            if logger_name.startswith(prefix) and level_no < min_level:
                raise structlog.DropEvent

        message = event_dict.get("event", "")
        policy = (
            self.high_volume_policies.get(message) if isinstance(message, str) else None
        )
        if policy:
            now = self._time_func()
            with self._lock:
                window = self._event_windows.setdefault(str(message), deque())
                while window and now - window[0] > policy.window_seconds:
                    window.popleft()
                if len(window) >= policy.max_occurrences:
                    raise structlog.DropEvent
                window.append(now)

        return event_dict


class UserFacingConsoleFilter(logging.Filter):
    """Logging filter that only passes user-facing events to console.

    Allows events in USER_FACING_EVENTS, every ERROR and CRITICAL record,
    and everything when verbose mode is enabled.
    """

    def __init__(self, verbose: bool = False) -> None:
        super().__init__()
        self.verbose = verbose

    def filter(self, record: logging.LogRecord) -> bool:
        if self.verbose:
            return True
        if record.levelno >= logging.ERROR:
            return True

        event = record.getMessage()
        if event in USER_FACING_EVENTS:
            return True
        return any(user_event in event for user_event in USER_FACING_EVENTS)


class UserFriendlyConsoleRenderer:
    """Renders user-facing sync events in a readable format for the terminal."""

    def __init__(self) -> None:
        self._fallback = ConsoleRenderer(
            colors=True,
            exception_formatter=structlog.dev.plain_traceback,
        )

    def __call__(
        self, logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
    ) -> str:
        event = event_dict.get("event", "")
        level = str(event_dict.get("level", "info")).upper()

        if event == "sync_started":
            repo = event_dict.get("repo", "")
            mode = event_dict.get("mode", "full")
            return f"Starting {mode} sync with {repo}" if repo else "Starting sync"

        if event == "sync_completed":
            pushed = event_dict.get("pushed", 0)
            created = event_dict.get("created", 0)
            updated = event_dict.get("updated", 0)
            conflicts = event_dict.get("conflicts", 0)
            queued = event_dict.get("queued", 0)
            duration = event_dict.get("duration_seconds", 0.0)
            summary = (
                f"Sync completed in {duration:.1f}s: {pushed} pushed, "
                f"{created} created, {updated} updated"
            )
            if conflicts:
                summary += f" | {conflicts} conflicts"
            if queued:
                summary += f" | {queued} queued for retry"
            return summary

        if event == "sync_failed":
            return f"Sync failed: {event_dict.get('error', 'Unknown error')}"

        if event == "sync_conflict_detected":
            card_id = event_dict.get("card_id", "?")
            record = event_dict.get("record_path", "")
            return f"CONFLICT: card {card_id} changed on both sides; see {record}"

        if event == "remote_deletion_detected":
            card_id = event_dict.get("card_id", "?")
            action = event_dict.get("action", "kept")
            return f"Card {card_id} was deleted remotely ({action} locally)"

        if event == "retry_queue_drained":
            remaining = event_dict.get("remaining", 0)
            return f"Retried failed pushes, {remaining} still pending"

        if level == "ERROR":
            error = event_dict.get("error", event)
            return f"ERROR: {error}"

        if level == "WARNING" and event in USER_FACING_EVENTS:
            return f"WARNING: {event}"

        return str(self._fallback(logger, method_name, event_dict))


DEFAULT_CONSOLE_LEVEL_OVERRIDES: dict[str, str] = {
    # The HTTP client logs every request at DEBUG/INFO.
    "flashcard_github_sync.github": "WARNING",
    "httpx": "WARNING",
}

DEFAULT_HIGH_VOLUME_EVENTS: dict[str, HighVolumeEventPolicy] = {
    "remote_request": HighVolumeEventPolicy(5, 10.0),
    "card_unchanged": HighVolumeEventPolicy(5, 10.0),
}

_configured = False
_handlers: list[logging.Handler] = []


def _add_formatted_extra_processor(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Add a '_formatted' field with the extra key/value pairs, card ids first."""
    priority_fields = ["card_id", "path", "sha"]
    important_parts = []
    other_parts = []

    for key, value in event_dict.items():
        if key in ("logger", "level", "event", "timestamp", "exception", "_formatted"):
            continue
        if key in priority_fields:
            if value:
                important_parts.append(f"{key}={value}")
        elif value is not None and value != "":
            other_parts.append(f"{key}={value}")

    all_parts = important_parts + other_parts
    event_dict["_formatted"] = " | " + " ".join(all_parts) if all_parts else ""
    return event_dict


def _base_pre_chain() -> list[structlog.typing.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        add_log_level,
        add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def _setup_structlog() -> None:
    """Route structlog through the standard library logging handlers."""
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    structlog.configure(
        processors=[
            *_base_pre_chain(),
            _add_formatted_extra_processor,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_logging(
    log_level: str = "INFO",
    log_dir: Path | None = None,
    verbose: bool = False,
    enable_console_noise_filter: bool = True,
    enable_file_logging: bool = True,
) -> None:
    """Configure structlog logging with console and rotating file output.

    Args:
        log_level: Minimum console log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for log files (default: ./logs)
        verbose: If True, show all log messages on terminal
        enable_console_noise_filter: Toggle console-side noise suppression
        enable_file_logging: Write JSON log files in addition to the console
    """
    global _configured

    _setup_structlog()

    root_logger = logging.getLogger()
    for handler in _handlers:
        root_logger.removeHandler(handler)
        handler.close()
    _handlers.clear()

    level = _get_level_no(log_level)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)

    console_pre_chain = _base_pre_chain()
    if enable_console_noise_filter:
        console_pre_chain.append(
            ConsoleNoiseFilterProcessor(
                level_overrides=DEFAULT_CONSOLE_LEVEL_OVERRIDES,
                high_volume_policies=DEFAULT_HIGH_VOLUME_EVENTS,
            )
        )
    console_pre_chain.append(_add_formatted_extra_processor)
    console_handler.addFilter(UserFacingConsoleFilter(verbose=verbose))

    renderer: Any
    if verbose:
        renderer = ConsoleRenderer(
            colors=True, exception_formatter=structlog.dev.plain_traceback
        )
    else:
        renderer = UserFriendlyConsoleRenderer()

    console_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=renderer, foreign_pre_chain=console_pre_chain
        )
    )
    root_logger.addHandler(console_handler)
    _handlers.append(console_handler)

    if enable_file_logging:
        if log_dir is None:
            log_dir = Path("./logs")
        log_dir.mkdir(exist_ok=True, parents=True)

        file_formatter = structlog.stdlib.ProcessorFormatter(
            processor=JSONRenderer(),
            foreign_pre_chain=[*_base_pre_chain(), _add_formatted_extra_processor],
        )

        # 20MB max per file, keep 5 backups
        file_handler = RotatingFileHandler(
            filename=str(log_dir / "flashcard-github-sync.log"),
            maxBytes=20 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(file_formatter)
        root_logger.addHandler(file_handler)
        _handlers.append(file_handler)

        error_handler = RotatingFileHandler(
            filename=str(log_dir / "errors.log"),
            maxBytes=5 * 1024 * 1024,
            backupCount=10,
            encoding="utf-8",
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(file_formatter)
        root_logger.addHandler(error_handler)
        _handlers.append(error_handler)

    _configured = True

    get_logger("flashcard_github_sync.utils.logging").debug(
        "logging_configured",
        console_level=log_level,
        log_dir=str(log_dir) if log_dir else None,
        verbose=verbose,
        console_noise_filter=enable_console_noise_filter,
    )


def get_logger(name: str) -> Any:
    """Get a structlog logger bound to the given name (typically __name__)."""
    if not _configured:
        configure_logging(enable_file_logging=False)
    return structlog.get_logger(name)
