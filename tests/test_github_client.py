"""Tests for the GitHub contents API client."""

import base64
import json

import httpx
import pytest
import pytest_asyncio
import respx

from flashcard_github_sync.config_settings import Config
from flashcard_github_sync.domain.interfaces.remote_store import RemoteStatus
from flashcard_github_sync.exceptions import (
    ConfigurationMissingError,
    TransportError,
    VersionConflictError,
)
from flashcard_github_sync.github.client import GitHubContentsClient, git_blob_sha

BASE_URL = "https://api.github.com/repos/octocat/flashcards/contents"


def _b64(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


@pytest_asyncio.fixture
async def client():
    """Create a client with its own AsyncClient."""
    client = GitHubContentsClient("octocat", "flashcards", "secret", branch="main")
    yield client
    await client.close()


def test_git_blob_sha_matches_git() -> None:
    """Blob sha equals `git hash-object` output."""
    assert git_blob_sha("") == "e69de29bb2d1d6434b8b29ae775ad8c2e48c5391"
    assert git_blob_sha(b"hello\n") == "ce013625030ba8dba906f756967f9e9ca394464a"


def test_from_config_requires_token() -> None:
    with pytest.raises(ConfigurationMissingError):
        GitHubContentsClient.from_config(Config(github_repo="octocat/flashcards"))


class TestRead:
    """Tests for read and read_binary."""

    @respx.mock
    @pytest.mark.asyncio
    async def test_read_success(self, client) -> None:
        """read decodes line-wrapped base64 content and returns the sha."""
        encoded = _b64("---\ncardId: c1\n---\n")
        wrapped = "\n".join(encoded[i : i + 8] for i in range(0, len(encoded), 8))
        route = respx.get(f"{BASE_URL}/cards/c1.md", params={"ref": "main"}).mock(
            return_value=httpx.Response(200, json={"content": wrapped, "sha": "abc"})
        )

        result = await client.read("cards/c1.md")

        assert result.ok
        assert result.sha == "abc"
        assert result.content == "---\ncardId: c1\n---\n"
        request = route.calls.last.request
        assert request.headers["Authorization"] == "Bearer secret"
        assert request.headers["X-GitHub-Api-Version"] == "2022-11-28"

    @respx.mock
    @pytest.mark.asyncio
    async def test_read_not_found(self, client) -> None:
        respx.get(f"{BASE_URL}/cards/missing.md").mock(
            return_value=httpx.Response(404, json={"message": "Not Found"})
        )

        result = await client.read("cards/missing.md")

        assert result.is_not_found
        assert not result
        assert result.raise_for_status() is result

    @respx.mock
    @pytest.mark.asyncio
    async def test_read_server_error(self, client) -> None:
        respx.get(f"{BASE_URL}/cards/c1.md").mock(return_value=httpx.Response(502))

        result = await client.read("cards/c1.md")

        assert result.is_transport_error
        assert result.status_code == 502
        with pytest.raises(TransportError):
            result.raise_for_status()

    @respx.mock
    @pytest.mark.asyncio
    async def test_read_timeout(self, client) -> None:
        respx.get(f"{BASE_URL}/cards/c1.md").mock(side_effect=httpx.ReadTimeout("slow"))

        result = await client.read("cards/c1.md")

        assert result.is_transport_error
        assert result.status_code == 0
        assert "timed out" in result.error

    @respx.mock
    @pytest.mark.asyncio
    async def test_read_binary(self, client) -> None:
        data = bytes(range(256))
        respx.get(f"{BASE_URL}/media/a.png").mock(
            return_value=httpx.Response(
                200, json={"content": base64.b64encode(data).decode(), "sha": "s1"}
            )
        )

        result = await client.read_binary("media/a.png")

        assert result.ok
        assert result.data == data

    @respx.mock
    @pytest.mark.asyncio
    async def test_path_is_escaped(self, client) -> None:
        """Spaces and unicode in paths are percent-encoded, slashes kept."""
        route = respx.get(url__startswith=BASE_URL).mock(
            return_value=httpx.Response(200, json={"content": _b64("x"), "sha": "s"})
        )

        result = await client.read("my cards/café.md")

        assert result.ok
        raw_path = route.calls.last.request.url.raw_path
        assert raw_path.startswith(b"/repos/octocat/flashcards/contents/my%20cards/caf%C3%A9.md")


class TestWrite:
    """Tests for write, write_binary and delete."""

    @respx.mock
    @pytest.mark.asyncio
    async def test_create_without_sha(self, client) -> None:
        route = respx.put(f"{BASE_URL}/cards/c1.md").mock(
            return_value=httpx.Response(201, json={"content": {"sha": "new-sha"}})
        )

        result = await client.write("cards/c1.md", "hello")

        assert result.ok
        assert result.sha == "new-sha"
        body = json.loads(route.calls.last.request.content)
        assert body["content"] == _b64("hello")
        assert body["branch"] == "main"
        assert "sha" not in body
        assert body["message"]

    @respx.mock
    @pytest.mark.asyncio
    async def test_update_sends_sha(self, client) -> None:
        route = respx.put(f"{BASE_URL}/cards/c1.md").mock(
            return_value=httpx.Response(200, json={"content": {"sha": "next"}})
        )

        result = await client.write("cards/c1.md", "hello", expected_sha="prev")

        assert result.sha == "next"
        assert json.loads(route.calls.last.request.content)["sha"] == "prev"

    @respx.mock
    @pytest.mark.asyncio
    async def test_stale_sha_is_conflict(self, client) -> None:
        respx.put(f"{BASE_URL}/cards/c1.md").mock(
            return_value=httpx.Response(409, json={"message": "does not match"})
        )

        result = await client.write("cards/c1.md", "hello", expected_sha="stale")

        assert result.status is RemoteStatus.VERSION_CONFLICT
        with pytest.raises(VersionConflictError):
            result.raise_for_status()

    @respx.mock
    @pytest.mark.asyncio
    async def test_create_over_existing_is_conflict(self, client) -> None:
        """422 on a create means the file already exists."""
        respx.put(f"{BASE_URL}/cards/c1.md").mock(
            return_value=httpx.Response(422, json={"message": "sha wasn't supplied"})
        )

        result = await client.write("cards/c1.md", "hello")

        assert result.is_conflict

    @respx.mock
    @pytest.mark.asyncio
    async def test_unprocessable_update_is_transport_error(self, client) -> None:
        respx.put(f"{BASE_URL}/cards/c1.md").mock(return_value=httpx.Response(422))

        result = await client.write("cards/c1.md", "hello", expected_sha="abc")

        assert result.is_transport_error

    @respx.mock
    @pytest.mark.asyncio
    async def test_connection_error(self, client) -> None:
        respx.put(f"{BASE_URL}/cards/c1.md").mock(side_effect=httpx.ConnectError("refused"))

        result = await client.write("cards/c1.md", "hello")

        assert result.is_transport_error

    @respx.mock
    @pytest.mark.asyncio
    async def test_write_binary_base64(self, client) -> None:
        route = respx.put(f"{BASE_URL}/media/a.png").mock(
            return_value=httpx.Response(201, json={"content": {"sha": "m1"}})
        )

        result = await client.write_binary("media/a.png", b"\x89PNG")

        assert result.ok
        body = json.loads(route.calls.last.request.content)
        assert base64.b64decode(body["content"]) == b"\x89PNG"

    @respx.mock
    @pytest.mark.asyncio
    async def test_delete(self, client) -> None:
        route = respx.delete(f"{BASE_URL}/cards/c1.md").mock(
            return_value=httpx.Response(200, json={"commit": {}})
        )

        result = await client.delete("cards/c1.md", "abc")

        assert result.ok
        body = json.loads(route.calls.last.request.content)
        assert body == {"message": "Delete cards/c1.md", "sha": "abc", "branch": "main"}

    @respx.mock
    @pytest.mark.asyncio
    async def test_delete_failure(self, client) -> None:
        respx.delete(f"{BASE_URL}/cards/c1.md").mock(return_value=httpx.Response(500))

        result = await client.delete("cards/c1.md", "abc")

        assert result.is_transport_error


class TestList:
    """Tests for directory listing."""

    @respx.mock
    @pytest.mark.asyncio
    async def test_list(self, client) -> None:
        respx.get(f"{BASE_URL}/cards").mock(
            return_value=httpx.Response(
                200,
                json=[
                    {"path": "cards/c1.md", "sha": "s1", "type": "file"},
                    {"path": "cards/media", "sha": "t1", "type": "dir"},
                ],
            )
        )

        result = await client.list("cards")

        assert result.ok
        assert [(e.path, e.sha, e.kind) for e in result.entries] == [
            ("cards/c1.md", "s1", "file"),
            ("cards/media", "t1", "dir"),
        ]
        assert result.entries[0].name == "c1.md"

    @respx.mock
    @pytest.mark.asyncio
    async def test_list_root(self, client) -> None:
        respx.get(BASE_URL).mock(return_value=httpx.Response(200, json=[]))

        result = await client.list("")

        assert result.ok
        assert result.entries == []

    @respx.mock
    @pytest.mark.asyncio
    async def test_list_of_file_is_error(self, client) -> None:
        respx.get(f"{BASE_URL}/cards/c1.md").mock(
            return_value=httpx.Response(200, json={"path": "cards/c1.md", "sha": "s"})
        )

        result = await client.list("cards/c1.md")

        assert result.is_transport_error


@pytest.mark.asyncio
async def test_injected_client_not_closed() -> None:
    """A caller-supplied AsyncClient stays open after close()."""
    async with httpx.AsyncClient() as http:
        client = GitHubContentsClient("o", "r", "t", client=http)
        await client.close()

        assert not http.is_closed
