"""Async WebDAV client for Nextcloud-style file stores."""

from __future__ import annotations

import logging
from typing import Any, Protocol
from urllib.parse import quote

import httpx

from davfinder.index.listing import create_file_metadata, parse_multistatus
from davfinder.models import FileMetadata
from davfinder.utils.files import normalize_path

LOGGER = logging.getLogger(__name__)

DAV_ROOT = "/remote.php/dav/files"

PROPFIND_BODY = """<?xml version="1.0" encoding="utf-8"?>
<d:propfind xmlns:d="DAV:">
  <d:prop>
    <d:getcontentlength/>
    <d:getlastmodified/>
    <d:getcontenttype/>
    <d:resourcetype/>
  </d:prop>
</d:propfind>
"""


class RemoteStoreError(Exception):
    """Raised when the remote store rejects or fails a request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RemoteStore(Protocol):
    """Primitives the search core needs from a remote file store."""

    async def list_directory(self, path: str) -> Any: ...

    async def read_file(self, path: str, max_bytes: int | None = None) -> str: ...

    async def stat(self, path: str) -> FileMetadata | None: ...


class WebDAVClient:
    """Talks to ``/remote.php/dav/files/<user>/`` with basic auth."""

    def __init__(
        self,
        host: str,
        username: str,
        password: str,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.username = username
        self.client = httpx.AsyncClient(
            base_url=host.rstrip("/"),
            auth=(username, password),
            headers={"OCS-APIRequest": "true"},
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "WebDAVClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    def _url(self, path: str) -> str:
        relative = normalize_path(path).lstrip("/")
        return f"{DAV_ROOT}/{quote(self.username)}/{quote(relative)}"

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = self._url(path)
        LOGGER.debug("%s %s", method, url)
        try:
            response = await self.client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise RemoteStoreError(
                f"WebDAV {method} {path} failed with status {status}", status_code=status
            ) from exc
        except httpx.HTTPError as exc:
            raise RemoteStoreError(f"WebDAV {method} {path} failed: {exc}") from exc
        return response

    async def _propfind(self, path: str, depth: str) -> str:
        response = await self._request(
            "PROPFIND",
            path,
            content=PROPFIND_BODY,
            headers={"Depth": depth, "Content-Type": "application/xml; charset=utf-8"},
        )
        return response.text

    async def list_directory(self, path: str) -> str:
        """Return the raw multistatus document describing ``path`` and its children."""
        return await self._propfind(path, "1")

    async def read_file(self, path: str, max_bytes: int | None = None) -> str:
        if max_bytes is None:
            response = await self._request("GET", path)
            return response.text

        url = self._url(path)
        buffer = bytearray()
        try:
            async with self.client.stream("GET", url) as response:
                response.raise_for_status()
                async for chunk in response.aiter_bytes():
                    buffer.extend(chunk)
                    if len(buffer) >= max_bytes:
                        break
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise RemoteStoreError(
                f"WebDAV GET {path} failed with status {status}", status_code=status
            ) from exc
        except httpx.HTTPError as exc:
            raise RemoteStoreError(f"WebDAV GET {path} failed: {exc}") from exc
        return bytes(buffer[:max_bytes]).decode("utf-8", errors="replace")

    async def stat(self, path: str) -> FileMetadata | None:
        try:
            document = await self._propfind(path, "0")
        except RemoteStoreError as exc:
            if exc.status_code == 404:
                return None
            raise
        for item in parse_multistatus(document):
            metadata = create_file_metadata(item, base_path=None, depth=0)
            if metadata is not None:
                return metadata
        return None

    async def write_file(self, path: str, content: str) -> None:
        await self._request("PUT", path, content=content.encode("utf-8"))

    async def create_directory(self, path: str) -> None:
        await self._request("MKCOL", path)

    async def delete_resource(self, path: str) -> None:
        await self._request("DELETE", path)
