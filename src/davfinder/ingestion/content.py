"""Searchable text extraction for remote files.

Text-like files (plain text, code, configuration) are read from the store,
cleaned and cached. Everything else, and anything that cannot be read, is
represented by a synthesized description built from its metadata so that
metadata search still has something to match against.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Dict

from davfinder.client.webdav import RemoteStore
from davfinder.config import SearchConfig
from davfinder.models import FileMetadata
from davfinder.utils.files import (
    EXTRACTABLE_CATEGORIES,
    classify_file,
    describe_mime_type,
    size_category,
)
from davfinder.utils.text import clean_text_content

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ContentCacheEntry:
    content: str
    size: int
    timestamp: float
    last_modified: datetime | None = None


class ContentCache:
    """Path-keyed text cache bounded by age and by total UTF-8 size."""

    def __init__(self, max_size: int, ttl: float) -> None:
        self.max_size = max_size
        self.ttl = ttl
        self.entries: Dict[str, ContentCacheEntry] = {}
        self.total_size = 0

    def get(self, key: str, last_modified: datetime | None = None) -> str | None:
        entry = self.entries.get(key)
        if entry is None:
            return None
        if time.time() - entry.timestamp > self.ttl:
            self._remove(key)
            return None
        if (
            last_modified is not None
            and entry.last_modified is not None
            and entry.last_modified != last_modified
        ):
            self._remove(key)
            return None
        return entry.content

    def put(self, key: str, content: str, last_modified: datetime | None = None) -> bool:
        size = len(content.encode("utf-8"))
        if size > self.max_size / 10:
            LOGGER.debug("Not caching large content for %s (%d bytes)", key, size)
            return False

        if key in self.entries:
            self._remove(key)
        while self.entries and self.total_size + size > self.max_size:
            self._evict_oldest()

        self.entries[key] = ContentCacheEntry(
            content=content, size=size, timestamp=time.time(), last_modified=last_modified
        )
        self.total_size += size
        return True

    def clear(self) -> None:
        self.entries.clear()
        self.total_size = 0

    def stats(self) -> dict:
        return {
            "size": len(self.entries),
            "total_size": self.total_size,
            "keys": list(self.entries),
        }

    def _remove(self, key: str) -> None:
        entry = self.entries.pop(key)
        self.total_size -= entry.size

    def _evict_oldest(self) -> None:
        oldest = min(self.entries, key=lambda key: self.entries[key].timestamp)
        self._remove(oldest)


class ContentExtractor:
    """Produces bounded, cacheable text for matching."""

    def __init__(self, store: RemoteStore, config: SearchConfig | None = None) -> None:
        self.store = store
        self.config = config or SearchConfig()
        self.cache = ContentCache(self.config.max_content_size, self.config.content_ttl)

    def is_searchable_content(self, file: FileMetadata) -> bool:
        if file.is_directory:
            return False
        return classify_file(file.mime_type, file.extension) in EXTRACTABLE_CATEGORIES

    async def extract_content(self, file: FileMetadata) -> str:
        if file.is_directory:
            return self.extract_metadata_as_text(file)
        if file.size > self.config.max_file_size:
            LOGGER.debug(
                "Skipping content extraction for large file %s (%d bytes)", file.path, file.size
            )
            return self.extract_metadata_as_text(file)

        cached = self.cache.get(file.path, file.last_modified)
        if cached is not None:
            return cached

        if not self.is_searchable_content(file):
            content = self.extract_metadata_as_text(file)
        else:
            try:
                raw = await self.store.read_file(file.path, max_bytes=self.config.max_file_size)
            except Exception as exc:
                LOGGER.warning("Failed to extract content from %s: %s", file.path, exc)
                return self.extract_metadata_as_text(file)
            content = clean_text_content(raw)

        self.cache.put(file.path, content, file.last_modified)
        return content

    def extract_metadata_as_text(self, file: FileMetadata) -> str:
        """Describe a file by name, type, size class, date and folders."""
        name = file.name
        suffix = f".{file.extension}" if file.extension else ""
        if suffix and name.lower().endswith(suffix):
            name = name[: -len(suffix)]

        parts = [name]
        if file.extension:
            parts.append(file.extension)
        parts.append(describe_mime_type(file.mime_type))
        parts.append(size_category(file.size))
        parts.append(file.last_modified.date().isoformat())
        parts.append(str(file.last_modified.year))
        parts.extend(segment for segment in file.path.split("/") if segment)
        return " ".join(parts)

    async def get_content_preview(self, file: FileMetadata, max_lines: int = 3) -> str:
        try:
            content = await self.extract_content(file)
        except Exception as exc:
            LOGGER.warning("Failed to get content preview for %s: %s", file.path, exc)
            return ""
        return "\n".join(content.split("\n")[:max_lines])

    def clear_cache(self) -> None:
        self.cache.clear()
        LOGGER.info("Content cache cleared")

    def cache_stats(self) -> dict:
        return self.cache.stats()
