"""Shared fixtures: an in-memory stand-in for the remote store."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Dict, List, Tuple

import pytest

from davfinder.client.webdav import RemoteStoreError
from davfinder.config import SearchConfig
from davfinder.index.listing import create_file_metadata
from davfinder.models import FileMetadata
from davfinder.utils.files import mime_type_from_extension, normalize_path, split_extension

OLD_DATE = datetime(2020, 1, 1, tzinfo=timezone.utc)


class InMemoryStore:
    """Implements the RemoteStore primitives over dicts and records every call."""

    def __init__(self, delay: float = 0.0) -> None:
        self.delay = delay
        self.entries: Dict[str, Dict[str, Any]] = {"/": self._entry("/", 0, OLD_DATE, True)}
        self.contents: Dict[str, str] = {}
        self.calls: List[Tuple[str, str]] = []
        self.failing_listings: set[str] = set()
        self.hanging_listings: set[str] = set()
        self.unreadable: set[str] = set()
        self.closed = False

    @staticmethod
    def _entry(path: str, size: int, modified: datetime, is_directory: bool, mime_type: str | None = None) -> Dict[str, Any]:
        entry = {
            "path": path,
            "size": size,
            "lastModified": modified,
            "isDirectory": is_directory,
        }
        if mime_type:
            entry["contentType"] = mime_type
        return entry

    def add_directory(self, path: str, modified: datetime = OLD_DATE) -> None:
        path = normalize_path(path)
        if path in self.entries:
            return
        parent = path.rsplit("/", 1)[0] or "/"
        if parent != path:
            self.add_directory(parent, modified)
        self.entries[path] = self._entry(path, 0, modified, True, "httpd/unix-directory")

    def add_file(
        self,
        path: str,
        content: str = "",
        *,
        size: int | None = None,
        modified: datetime = OLD_DATE,
        mime_type: str | None = None,
    ) -> None:
        path = normalize_path(path)
        self.add_directory(path.rsplit("/", 1)[0] or "/")
        self.contents[path] = content
        mime = mime_type or mime_type_from_extension(split_extension(path.rsplit("/", 1)[-1]))
        actual_size = len(content.encode("utf-8")) if size is None else size
        self.entries[path] = self._entry(path, actual_size, modified, False, mime)

    def calls_for(self, operation: str) -> List[str]:
        return [path for name, path in self.calls if name == operation]

    async def _pause(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)

    async def list_directory(self, path: str) -> List[Dict[str, Any]]:
        path = normalize_path(path)
        self.calls.append(("list", path))
        await self._pause()
        if path in self.failing_listings:
            raise RemoteStoreError(f"listing {path} failed", status_code=500)
        if path in self.hanging_listings:
            await asyncio.sleep(3600)
        if path not in self.entries:
            raise RemoteStoreError(f"{path} not found", status_code=404)
        children = [
            dict(entry)
            for key, entry in self.entries.items()
            if key != "/" and (key.rsplit("/", 1)[0] or "/") == path
        ]
        return [dict(self.entries[path])] + children

    async def read_file(self, path: str, max_bytes: int | None = None) -> str:
        path = normalize_path(path)
        self.calls.append(("read", path))
        await self._pause()
        if path in self.unreadable or path not in self.contents:
            raise RemoteStoreError(f"cannot read {path}", status_code=500)
        content = self.contents[path]
        if max_bytes is not None:
            return content.encode("utf-8")[:max_bytes].decode("utf-8", errors="ignore")
        return content

    async def stat(self, path: str) -> FileMetadata | None:
        path = normalize_path(path)
        self.calls.append(("stat", path))
        entry = self.entries.get(path)
        if entry is None:
            return None
        return create_file_metadata(entry, base_path=None, depth=0)

    async def write_file(self, path: str, content: str) -> None:
        self.calls.append(("write", normalize_path(path)))
        self.add_file(path, content, modified=datetime.now(timezone.utc))

    async def create_directory(self, path: str) -> None:
        self.calls.append(("mkdir", normalize_path(path)))
        self.add_directory(path)

    async def delete_resource(self, path: str) -> None:
        path = normalize_path(path)
        self.calls.append(("delete", path))
        if path not in self.entries:
            raise RemoteStoreError(f"{path} not found", status_code=404)
        for key in [key for key in self.entries if key == path or key.startswith(path + "/")]:
            del self.entries[key]
            self.contents.pop(key, None)

    async def aclose(self) -> None:
        self.closed = True


class ConcurrencyTrackingStore(InMemoryStore):
    """Records the highest number of listings and reads in flight at once."""

    def __init__(self, delay: float = 0.01) -> None:
        super().__init__(delay=delay)
        self.in_flight = {"list": 0, "read": 0}
        self.max_in_flight = {"list": 0, "read": 0}

    async def _tracked(self, operation: str, pending: Awaitable[Any]) -> Any:
        self.in_flight[operation] += 1
        self.max_in_flight[operation] = max(self.max_in_flight[operation], self.in_flight[operation])
        try:
            return await pending
        finally:
            self.in_flight[operation] -= 1

    async def list_directory(self, path: str) -> List[Dict[str, Any]]:
        return await self._tracked("list", super().list_directory(path))

    async def read_file(self, path: str, max_bytes: int | None = None) -> str:
        return await self._tracked("read", super().read_file(path, max_bytes))


@pytest.fixture
def store() -> InMemoryStore:
    """Store with a small document tree."""
    recent = datetime.now(timezone.utc) - timedelta(days=2)
    memory = InMemoryStore()
    memory.add_file("/Documents/budget-2024.pdf", size=500 * 1024, modified=OLD_DATE)
    memory.add_file("/Documents/notes.txt", "budget review", modified=OLD_DATE)
    memory.add_file("/A/readme.md", "Project A readme")
    memory.add_file("/B/readme.md", "Project B readme")
    memory.add_file("/Projects/app/main.py", "def main():\n    print('hello budget')\n", modified=recent)
    return memory


@pytest.fixture
def search_config() -> SearchConfig:
    return SearchConfig()
