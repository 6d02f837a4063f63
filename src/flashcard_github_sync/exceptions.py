"""Centralized exception hierarchy for flashcard-github-sync.

All custom exceptions inherit from FlashcardSyncError, so callers can catch
every sync-related error with a single except clause.

Exception Hierarchy:
    FlashcardSyncError (base)
     ConfigurationError - Configuration loading/validation errors
        ConfigurationMissingError - Required settings are absent
     ValidationError - Artifact validation errors
        MalformedArtifactError - Artifact text cannot be parsed
     RemoteStoreError - Remote content API errors
        TransportError - Network or HTTP failure (retryable)
        VersionConflictError - Stale version token (HTTP 409)
     SyncError - Synchronization operation errors
        StateError - Identity map / durable storage errors

Usage Examples:
    try:
        config.validate_config()
    except ConfigurationMissingError as e:
        print(f"Configuration error: {e}")
        print(f"Suggestion: {e.suggestion}")

    raise MalformedArtifactError(
        "Missing frontmatter delimiter",
        error_code=ErrorCode.SER_MISSING_FRONTMATTER.value,
        context={"path": "cards/c1.md"},
    )
"""

from typing import Any


class FlashcardSyncError(Exception):
    """Base exception for all sync-related errors.

    Attributes:
        message: Human-readable error message
        suggestion: Optional suggestion for resolving the error
        error_code: Structured error code for machine-readable handling
        context: Additional context for debugging (e.g., paths, card ids)
    """

    def __init__(
        self,
        message: str,
        suggestion: str | None = None,
        error_code: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        """Initialize the exception.

        Args:
            message: Human-readable error message
            suggestion: Optional suggestion for resolving the error
            error_code: Structured error code (e.g., "SER-PARSE-001")
            context: Additional context for debugging
        """
        self.message = message
        self.suggestion = suggestion
        self.error_code = error_code
        self.context = context or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the error message with error code and suggestion if available."""
        parts = []
        if self.error_code:
            parts.append(f"[{self.error_code}] {self.message}")
        else:
            parts.append(self.message)
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for structured logging."""
        return {
            "message": self.message,
            "error_code": self.error_code,
            "suggestion": self.suggestion,
            "context": self.context,
            "type": type(self).__name__,
        }


# Configuration Errors


class ConfigurationError(FlashcardSyncError):
    """Configuration loading or validation errors.

    Raised when:
    - Config file is malformed
    - Configuration values fail validation
    """


class ConfigurationMissingError(ConfigurationError):
    """Required configuration is absent.

    Fatal for a whole sync pass: raised before any remote I/O so that no
    partial work or retries are attempted.
    """


# Validation Errors


class ValidationError(FlashcardSyncError):
    """Base class for validation-related errors."""


class MalformedArtifactError(ValidationError):
    """Artifact text could not be parsed.

    Raised when:
    - The metadata delimiter is missing
    - The question or answer marker is missing
    - The answer marker precedes the question marker
    - The metadata block is not a key/value mapping
    """


# Remote Store Errors


class RemoteStoreError(FlashcardSyncError):
    """Remote content API errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        suggestion: str | None = None,
        error_code: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        self.status_code = status_code
        super().__init__(
            message, suggestion=suggestion, error_code=error_code, context=context
        )


class TransportError(RemoteStoreError):
    """Network or HTTP failure talking to the remote store. Retryable."""


class VersionConflictError(RemoteStoreError):
    """Write rejected because the supplied version token is stale."""


# Sync Errors


class SyncError(FlashcardSyncError):
    """Base class for errors during the sync process."""


class StateError(SyncError):
    """Identity map or durable key-value storage errors.

    Raised when:
    - Stored identity map data is corrupt
    - The durable store cannot be read or written
    """


__all__ = [
    "ConfigurationError",
    "ConfigurationMissingError",
    "FlashcardSyncError",
    "MalformedArtifactError",
    "RemoteStoreError",
    "StateError",
    "SyncError",
    "TransportError",
    "ValidationError",
    "VersionConflictError",
]
