"""Media reference translation between local (inline) and remote (path) form.

Local cards embed media inline as ``data:`` URIs or point at external URLs.
Remote artifacts reference files stored next to the cards as
``media/<name>``. Push externalizes, pull internalizes.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import mimetypes
import re
from collections.abc import Awaitable, Callable
from pathlib import PurePosixPath
from urllib.parse import unquote, urlparse

import httpx

from ..domain.interfaces.remote_store import IRemoteStore
from ..domain.services.slug_service import MEDIA_DIR, SlugService
from ..error_codes import ErrorCode
from ..utils.logging import get_logger

logger = get_logger(__name__)

MEDIA_REFERENCE_RE = re.compile(r"!\[(.*?)\]\((.*?)\)")
_DATA_URI_RE = re.compile(r"^data:([\w.+-]+/[\w.+-]+)?(;[^,]*)?,(.*)$", re.DOTALL)
DEFAULT_EXTENSION = ".png"
DEFAULT_MIME_TYPE = "application/octet-stream"
_HASH_LENGTH = 16


def is_path_form(target: str) -> bool:
    return target.startswith(f"{MEDIA_DIR}/")


def media_name(data: bytes, extension: str) -> str:
    """Content-addressed file name, stable across re-pushes of the same bytes."""
    digest = hashlib.sha256(data).hexdigest()[:_HASH_LENGTH]
    return f"{digest}{extension or DEFAULT_EXTENSION}"


def decode_data_uri(uri: str) -> tuple[bytes, str | None] | None:
    """Decode a ``data:`` URI into (bytes, mime type), or None if it is not one."""
    match = _DATA_URI_RE.match(uri)
    if not match:
        return None
    mime, params, payload = match.groups()
    try:
        if params and ";base64" in params:
            data = base64.b64decode(payload, validate=False)
        else:
            data = unquote(payload).encode("utf-8")
    except binascii.Error:
        return None
    return data, mime


def encode_data_uri(data: bytes, mime: str) -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def _extension_for(target: str, mime: str | None) -> str:
    if mime:
        guessed = mimetypes.guess_extension(mime)
        if guessed:
            return guessed
    suffix = PurePosixPath(urlparse(target).path).suffix
    return suffix or DEFAULT_EXTENSION


async def _rewrite(text: str, replace: Callable[[str, str], Awaitable[str]]) -> str:
    parts: list[str] = []
    last = 0
    for match in MEDIA_REFERENCE_RE.finditer(text):
        parts.append(text[last : match.start()])
        parts.append(await replace(match.group(1), match.group(2)))
        last = match.end()
    parts.append(text[last:])
    return "".join(parts)


class MediaTranslator:
    """Rewrites media references in question/answer text at the sync boundary.

    A reference that cannot be fetched or uploaded is left unchanged; one
    bad image never fails a whole push or pull.
    """

    def __init__(
        self,
        remote: IRemoteStore,
        subdir: str = "",
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ):
        self.remote = remote
        self.subdir = subdir
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)
        self._uploaded: set[str] = set()

    async def _load(self, target: str) -> tuple[bytes, str | None] | None:
        if target.startswith("data:"):
            return decode_data_uri(target)
        if target.startswith(("http://", "https://")):
            try:
                response = await self._http.get(target)
                response.raise_for_status()
            except httpx.HTTPError as e:
                logger.warning(
                    "media_fetch_failed",
                    url=target[:200],
                    error=str(e),
                    error_code=ErrorCode.RMT_MEDIA_FAILED.value,
                )
                return None
            mime = response.headers.get("content-type", "").split(";")[0].strip() or None
            return response.content, mime
        return None

    async def _upload(self, name: str, data: bytes) -> bool:
        if name in self._uploaded:
            return True
        path = SlugService.media_path(self.subdir, name)
        result = await self.remote.write_binary(path, data)
        # A conflict on create means identical bytes are already stored
        if result.ok or result.is_conflict:
            self._uploaded.add(name)
            return True
        logger.warning(
            "media_upload_failed",
            path=path,
            status_code=result.status_code,
            error=result.error,
            error_code=ErrorCode.RMT_MEDIA_FAILED.value,
        )
        return False

    async def externalize(self, text: str) -> str:
        """Upload inline/external media and rewrite references to ``media/<name>``."""

        async def replace(alt: str, target: str) -> str:
            original = f"![{alt}]({target})"
            if is_path_form(target):
                return original
            loaded = await self._load(target)
            if loaded is None:
                return original
            data, mime = loaded
            name = media_name(data, _extension_for(target, mime))
            if not await self._upload(name, data):
                return original
            return f"![{alt}]({MEDIA_DIR}/{name})"

        return await _rewrite(text, replace)

    async def internalize(self, text: str) -> str:
        """Fetch ``media/<name>`` references and inline them as data URIs."""

        async def replace(alt: str, target: str) -> str:
            original = f"![{alt}]({target})"
            if not is_path_form(target):
                return original
            name = target[len(MEDIA_DIR) + 1 :]
            result = await self.remote.read_binary(SlugService.media_path(self.subdir, name))
            if not result.ok or result.data is None:
                logger.warning(
                    "media_download_failed",
                    path=target,
                    status_code=result.status_code,
                    error_code=ErrorCode.RMT_MEDIA_FAILED.value,
                )
                return original
            self._uploaded.add(name)
            mime = mimetypes.guess_type(name)[0] or DEFAULT_MIME_TYPE
            return f"![{alt}]({encode_data_uri(result.data, mime)})"

        return await _rewrite(text, replace)

    async def close(self) -> None:
        if self._owns_http:
            await self._http.aclose()
