"""Interface and typed outcomes for the remote versioned file store."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum

from ...exceptions import TransportError, VersionConflictError


class RemoteStatus(str, Enum):
    """Outcome category of a remote store call."""

    OK = "ok"
    NOT_FOUND = "not_found"
    VERSION_CONFLICT = "version_conflict"
    TRANSPORT_ERROR = "transport_error"


@dataclass(frozen=True)
class RemoteEntry:
    """One file returned by a directory listing."""

    path: str
    sha: str
    kind: str = "file"

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]


@dataclass
class RemoteResult:
    """Result of one remote store call.

    Attributes:
        status: Outcome category
        path: Path the call addressed
        sha: Version token of the file read or written
        content: Decoded UTF-8 text (read)
        data: Raw bytes (binary read)
        entries: Listed files (list)
        status_code: HTTP status code, 0 when no response was received
        error: Error message for failed calls
    """

    status: RemoteStatus
    path: str
    sha: str | None = None
    content: str | None = None
    data: bytes | None = None
    entries: list[RemoteEntry] = field(default_factory=list)
    status_code: int | None = None
    error: str | None = None

    def __bool__(self) -> bool:
        """Allow using result in boolean context."""
        return self.status is RemoteStatus.OK

    @property
    def ok(self) -> bool:
        return self.status is RemoteStatus.OK

    @property
    def is_not_found(self) -> bool:
        return self.status is RemoteStatus.NOT_FOUND

    @property
    def is_conflict(self) -> bool:
        return self.status is RemoteStatus.VERSION_CONFLICT

    @property
    def is_transport_error(self) -> bool:
        return self.status is RemoteStatus.TRANSPORT_ERROR

    def raise_for_status(self) -> RemoteResult:
        """Raise the matching exception for failed calls, else return self.

        NOT_FOUND is not an error and does not raise.
        """
        if self.status is RemoteStatus.VERSION_CONFLICT:
            raise VersionConflictError(
                f"Version conflict writing {self.path}",
                status_code=self.status_code,
                context={"path": self.path},
            )
        if self.status is RemoteStatus.TRANSPORT_ERROR:
            raise TransportError(
                f"Remote store call failed for {self.path}: {self.error}",
                status_code=self.status_code,
                context={"path": self.path},
            )
        return self


class IRemoteStore(ABC):
    """Thin CRUD contract over a content-hash-versioned file store.

    Implementations never retry; failures are returned as RemoteResult
    outcomes and the caller decides the retry policy.
    """

    @abstractmethod
    async def read(self, path: str) -> RemoteResult:
        """Read a text file. OK carries ``content`` and ``sha``."""

    @abstractmethod
    async def write(
        self, path: str, content: str, expected_sha: str | None = None
    ) -> RemoteResult:
        """Create or update a text file.

        Omitting ``expected_sha`` means create. A stale ``expected_sha``
        yields VERSION_CONFLICT. OK carries the new ``sha``.
        """

    @abstractmethod
    async def delete(self, path: str, sha: str) -> RemoteResult:
        """Delete a file at the given version."""

    @abstractmethod
    async def list(self, directory: str) -> RemoteResult:
        """List a directory. OK carries ``entries``."""

    @abstractmethod
    async def read_binary(self, path: str) -> RemoteResult:
        """Read a binary file. OK carries ``data`` and ``sha``."""

    @abstractmethod
    async def write_binary(
        self, path: str, data: bytes, expected_sha: str | None = None
    ) -> RemoteResult:
        """Create or update a binary file."""

    async def close(self) -> None:
        """Release network resources."""

    def version_token_for(self, content: str) -> str | None:
        """Token the store would assign to ``content``, if it can be computed locally.

        Lets callers skip writes whose content is already stored. Returns
        None when tokens are opaque.
        """
        return None
