"""GitHub contents API client.

Each operation maps to one HTTP call against
``/repos/{owner}/{repo}/contents/{path}``:

    read / read_binary   GET    ?ref={branch}      -> {content (base64), sha}
    write / write_binary PUT    {message, content, branch, sha?} -> {content: {sha}}
    delete               DELETE {message, sha, branch}
    list                 GET    ?ref={branch}      -> [{path, sha, type}]

Failures are returned as RemoteResult outcomes; nothing is retried here.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import time
from types import TracebackType
from typing import Any, Literal
from urllib.parse import quote

import httpx

from ..config_settings import Config
from ..domain.interfaces.remote_store import (
    IRemoteStore,
    RemoteEntry,
    RemoteResult,
    RemoteStatus,
)
from ..utils.logging import get_logger

logger = get_logger(__name__)

GITHUB_API_VERSION = "2022-11-28"


def git_blob_sha(data: bytes | str) -> str:
    """SHA-1 git assigns to a blob, which is the contents API version token."""
    raw = data.encode("utf-8") if isinstance(data, str) else data
    header = f"blob {len(raw)}\0".encode("ascii")
    return hashlib.sha1(header + raw).hexdigest()


class GitHubContentsClient(IRemoteStore):
    """Client for the GitHub repository contents API."""

    def __init__(
        self,
        owner: str,
        repo: str,
        token: str,
        branch: str = "main",
        api_url: str = "https://api.github.com",
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize client.

        Args:
            owner: Repository owner
            repo: Repository name
            token: Access token sent as a bearer token
            branch: Branch every call reads from and commits to
            api_url: REST API base URL
            timeout: Request timeout in seconds
            client: Preconfigured AsyncClient (tests inject one)
        """
        self.owner = owner
        self.repo = repo
        self.branch = branch
        self.base_url = f"{api_url.rstrip('/')}/repos/{owner}/{repo}/contents"
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            limits=httpx.Limits(
                max_keepalive_connections=5, max_connections=10, keepalive_expiry=30.0
            ),
        )
        logger.info(
            "github_client_initialized", repo=f"{owner}/{repo}", branch=branch
        )

    @classmethod
    def from_config(cls, config: Config) -> GitHubContentsClient:
        """Build a client from validated configuration."""
        config.validate_config()
        return cls(
            owner=config.repo_owner,
            repo=config.repo_name,
            token=config.github_token,
            branch=config.github_branch,
            api_url=config.github_api_url,
            timeout=config.request_timeout,
        )

    def _url(self, path: str) -> str:
        escaped = quote(path.strip("/"), safe="/")
        return f"{self.base_url}/{escaped}" if escaped else self.base_url

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
    ) -> tuple[httpx.Response | None, str | None]:
        """Send one request; returns (response, None) or (None, error)."""
        start_time = time.perf_counter()
        try:
            response = await self._client.request(
                method, self._url(path), params=params, json=json, headers=self._headers
            )
        except httpx.TimeoutException as e:
            logger.warning("remote_request_timeout", method=method, path=path, error=str(e))
            return None, f"Request timed out: {e}"
        except httpx.HTTPError as e:
            logger.warning("remote_request_failed", method=method, path=path, error=str(e))
            return None, f"HTTP error: {e}"

        logger.debug(
            "remote_request",
            method=method,
            path=path,
            status_code=response.status_code,
            latency_ms=round((time.perf_counter() - start_time) * 1000, 2),
        )
        return response, None

    @staticmethod
    def _failure(
        path: str, response: httpx.Response | None, error: str | None
    ) -> RemoteResult:
        if response is None:
            return RemoteResult(
                status=RemoteStatus.TRANSPORT_ERROR, path=path, status_code=0, error=error
            )
        status = (
            RemoteStatus.NOT_FOUND
            if response.status_code == 404
            else RemoteStatus.TRANSPORT_ERROR
        )
        return RemoteResult(
            status=status,
            path=path,
            status_code=response.status_code,
            error=response.text[:500],
        )

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return None

    async def _get_file(self, path: str) -> tuple[RemoteResult | None, dict[str, Any]]:
        response, error = await self._request("GET", path, params={"ref": self.branch})
        if response is None or response.status_code != 200:
            return self._failure(path, response, error), {}
        payload = self._json(response)
        if not isinstance(payload, dict) or "sha" not in payload:
            return (
                RemoteResult(
                    status=RemoteStatus.TRANSPORT_ERROR,
                    path=path,
                    status_code=response.status_code,
                    error="Response is not a file object",
                ),
                {},
            )
        return None, payload

    @staticmethod
    def _decode(payload: dict[str, Any]) -> bytes:
        # GitHub wraps base64 content at 60 columns
        return base64.b64decode(str(payload.get("content") or "").replace("\n", ""))

    def version_token_for(self, content: str) -> str:
        return git_blob_sha(content)

    async def read(self, path: str) -> RemoteResult:
        failure, payload = await self._get_file(path)
        if failure is not None:
            return failure
        try:
            content = self._decode(payload).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            return RemoteResult(
                status=RemoteStatus.TRANSPORT_ERROR,
                path=path,
                status_code=200,
                error=f"Undecodable content: {e}",
            )
        return RemoteResult(
            status=RemoteStatus.OK,
            path=path,
            sha=str(payload["sha"]),
            content=content,
            status_code=200,
        )

    async def read_binary(self, path: str) -> RemoteResult:
        failure, payload = await self._get_file(path)
        if failure is not None:
            return failure
        try:
            data = self._decode(payload)
        except binascii.Error as e:
            return RemoteResult(
                status=RemoteStatus.TRANSPORT_ERROR,
                path=path,
                status_code=200,
                error=f"Undecodable content: {e}",
            )
        return RemoteResult(
            status=RemoteStatus.OK,
            path=path,
            sha=str(payload["sha"]),
            data=data,
            status_code=200,
        )

    async def _put(
        self, path: str, encoded: str, expected_sha: str | None
    ) -> RemoteResult:
        body: dict[str, Any] = {
            "message": f"Update {path}",
            "content": encoded,
            "branch": self.branch,
        }
        if expected_sha:
            body["sha"] = expected_sha

        response, error = await self._request("PUT", path, json=body)
        if response is None:
            return self._failure(path, None, error)

        # 409: stale sha. 422 without a sha: the file already exists.
        if response.status_code == 409 or (
            response.status_code == 422 and not expected_sha
        ):
            logger.info(
                "remote_version_conflict",
                path=path,
                status_code=response.status_code,
                expected_sha=expected_sha,
            )
            return RemoteResult(
                status=RemoteStatus.VERSION_CONFLICT,
                path=path,
                status_code=response.status_code,
                error=response.text[:500],
            )
        if response.status_code not in (200, 201):
            return self._failure(path, response, error)

        payload = self._json(response)
        sha = None
        if isinstance(payload, dict) and isinstance(payload.get("content"), dict):
            sha = payload["content"].get("sha")
        if not sha:
            return RemoteResult(
                status=RemoteStatus.TRANSPORT_ERROR,
                path=path,
                status_code=response.status_code,
                error="Response carries no content sha",
            )
        return RemoteResult(
            status=RemoteStatus.OK,
            path=path,
            sha=str(sha),
            status_code=response.status_code,
        )

    async def write(
        self, path: str, content: str, expected_sha: str | None = None
    ) -> RemoteResult:
        encoded = base64.b64encode(content.encode("utf-8")).decode("ascii")
        return await self._put(path, encoded, expected_sha)

    async def write_binary(
        self, path: str, data: bytes, expected_sha: str | None = None
    ) -> RemoteResult:
        encoded = base64.b64encode(data).decode("ascii")
        return await self._put(path, encoded, expected_sha)

    async def delete(self, path: str, sha: str) -> RemoteResult:
        body = {"message": f"Delete {path}", "sha": sha, "branch": self.branch}
        response, error = await self._request("DELETE", path, json=body)
        if response is None:
            return self._failure(path, None, error)
        if response.status_code == 409:
            return RemoteResult(
                status=RemoteStatus.VERSION_CONFLICT,
                path=path,
                status_code=409,
                error=response.text[:500],
            )
        if response.status_code not in (200, 204):
            return self._failure(path, response, error)
        return RemoteResult(status=RemoteStatus.OK, path=path, status_code=response.status_code)

    async def list(self, directory: str) -> RemoteResult:
        response, error = await self._request(
            "GET", directory, params={"ref": self.branch}
        )
        if response is None or response.status_code != 200:
            return self._failure(directory, response, error)

        payload = self._json(response)
        if not isinstance(payload, list):
            return RemoteResult(
                status=RemoteStatus.TRANSPORT_ERROR,
                path=directory,
                status_code=response.status_code,
                error="Path is not a directory",
            )
        entries = [
            RemoteEntry(
                path=str(item["path"]),
                sha=str(item["sha"]),
                kind=str(item.get("type", "file")),
            )
            for item in payload
            if isinstance(item, dict) and "path" in item and "sha" in item
        ]
        return RemoteResult(
            status=RemoteStatus.OK, path=directory, entries=entries, status_code=200
        )

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()
            logger.debug("github_client_closed", repo=f"{self.owner}/{self.repo}")

    async def __aenter__(self) -> GitHubContentsClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> Literal[False]:
        await self.close()
        return False
