"""Structured error codes for machine-readable error handling.

Error codes follow the format: {DOMAIN}-{CATEGORY}-{NUMBER}

Error Domains:
    CFG - Configuration errors
    SER - Serialization errors (artifact format)
    RMT - Remote store errors (GitHub contents API)
    STA - State errors (identity map, retry queue, durable storage)
    SYN - Sync orchestration errors

Usage:
    from flashcard_github_sync.error_codes import ErrorCode

    logger.warning(
        "card_enqueued_for_retry",
        error_code=ErrorCode.RMT_TRANSPORT.value,
        card_id=card_id,
    )
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Structured error codes for machine-readable handling.

    All error codes inherit from str for JSON serialization compatibility.
    """

    # =========================================================================
    # Configuration Errors (CFG-xxx-xxx)
    # =========================================================================
    CFG_MISSING_REPO = "CFG-MISSING-001"
    """Repository identity (owner/repo) is not configured."""

    CFG_MISSING_TOKEN = "CFG-MISSING-002"
    """Access token is not configured."""

    CFG_INVALID_VALUE = "CFG-INVALID-001"
    """A configuration value failed validation."""

    CFG_FILE_UNREADABLE = "CFG-FILE-001"
    """Configuration file exists but could not be parsed."""

    # =========================================================================
    # Serialization Errors (SER-xxx-xxx)
    # =========================================================================
    SER_MISSING_FRONTMATTER = "SER-PARSE-001"
    """Artifact has no metadata block delimited by '---' lines."""

    SER_MISSING_MARKERS = "SER-PARSE-002"
    """Artifact body lacks the question or answer marker."""

    SER_MARKER_ORDER = "SER-PARSE-003"
    """Answer marker precedes question marker."""

    SER_BAD_METADATA = "SER-PARSE-004"
    """Metadata block is not a valid key/value mapping."""

    SER_BAD_TIMESTAMP = "SER-PARSE-005"
    """A timestamp field is not ISO-8601."""

    # =========================================================================
    # Remote Store Errors (RMT-xxx-xxx)
    # =========================================================================
    RMT_TRANSPORT = "RMT-TRANSPORT-001"
    """Network failure or unexpected HTTP status from the content API."""

    RMT_CONFLICT = "RMT-CONFLICT-001"
    """Write rejected because the version token is stale."""

    RMT_NOT_FOUND = "RMT-NOTFOUND-001"
    """Requested remote path does not exist."""

    RMT_MEDIA_FAILED = "RMT-MEDIA-001"
    """A media reference could not be fetched or uploaded."""

    # =========================================================================
    # State Errors (STA-xxx-xxx)
    # =========================================================================
    STA_CORRUPT_MAP = "STA-CORRUPT-001"
    """Stored identity map could not be decoded."""

    STA_STORE_FAILED = "STA-STORE-001"
    """Durable key-value store read or write failed."""

    # =========================================================================
    # Sync Errors (SYN-xxx-xxx)
    # =========================================================================
    SYN_TIE = "SYN-TIE-001"
    """Local and remote changed at the same instant; conflict record written."""

    SYN_HOST_FAILED = "SYN-HOST-001"
    """Host application rejected a read or mutation."""

    SYN_CARD_MISSING = "SYN-MISSING-001"
    """Card id is unknown to the host application."""


__all__ = ["ErrorCode"]
