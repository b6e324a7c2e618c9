"""Bounded recursive indexing of the remote store."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Dict, List

from davfinder.client.webdav import RemoteStore
from davfinder.config import SearchConfig
from davfinder.index.listing import parse_listing
from davfinder.models import FileIndex, FileMetadata
from davfinder.utils.files import is_path_within, is_root, normalize_path

LOGGER = logging.getLogger(__name__)


class IndexingError(Exception):
    """Indexing could not produce a snapshot."""


class IndexingTimeoutError(IndexingError):
    """The walk exceeded its wall-clock budget."""


class FileIndexer:
    """Walks the remote store and caches one FileIndex per base path."""

    def __init__(self, store: RemoteStore, config: SearchConfig | None = None) -> None:
        self.store = store
        self.config = config or SearchConfig()
        self.index_cache: Dict[str, FileIndex] = {}

    async def get_index(
        self, base_path: str = "/", quick_mode: bool = False, max_depth: int | None = None
    ) -> FileIndex:
        """Pick depth and time budget from the kind of base path, then index."""
        if is_root(base_path) and quick_mode:
            LOGGER.info("Using quick mode for root path search")
            depth, timeout = self.config.quick_depth, self.config.quick_timeout
        elif is_root(base_path):
            depth, timeout = self.config.root_depth, self.config.root_timeout
        else:
            depth, timeout = self.config.max_depth, self.config.subdir_timeout

        if max_depth is not None:
            depth = max_depth
        return await self.index_directory(base_path, max_depth=depth, timeout=timeout)

    async def index_directory(
        self, base_path: str = "/", max_depth: int | None = None, timeout: float = 30.0
    ) -> FileIndex:
        key = normalize_path(base_path)
        depth = self.config.max_depth if max_depth is None else max_depth
        cached = self._cached_index(key, depth)
        if cached is not None:
            LOGGER.debug("Using cached index for %s with %d files", key, cached.file_count)
            return cached

        LOGGER.info("Starting file indexing for %s (max depth %d, timeout %.1fs)", key, depth, timeout)
        started = time.monotonic()
        try:
            files = await asyncio.wait_for(self._collect(key, depth), timeout=timeout)
        except asyncio.TimeoutError as exc:
            elapsed = time.monotonic() - started
            LOGGER.warning("Indexing %s timed out after %.1fs", key, elapsed)
            raise IndexingTimeoutError(f"Indexing timeout for {key} after {timeout:.1f}s") from exc
        except Exception as exc:
            raise IndexingError(f"Failed to index directory {key}: {exc}") from exc

        index = FileIndex.build(key, files, depth)
        self.index_cache[key] = index
        self._prune_cache()
        LOGGER.info(
            "Indexing completed in %.2fs: %d files, %d directories",
            time.monotonic() - started,
            index.file_count,
            index.directory_count,
        )
        return index

    def update_index(self, path: str) -> str | None:
        """Invalidate the most specific cached index containing ``path``."""
        candidates = [key for key in self.index_cache if is_path_within(path, key)]
        if not candidates:
            return None
        key = max(candidates, key=len)
        del self.index_cache[key]
        LOGGER.info("Invalidated cached index %s for update of %s", key, path)
        return key

    def clear_cache(self) -> None:
        self.index_cache.clear()
        LOGGER.info("File index cache cleared")

    def cache_stats(self) -> dict:
        return {"size": len(self.index_cache), "keys": list(self.index_cache)}

    async def _collect(self, base_path: str, max_depth: int) -> List[FileMetadata]:
        # Collected into a local list so a cancelled walk leaves no trace.
        files: List[FileMetadata] = []
        await self._walk(base_path, files, 0, max_depth)
        return files

    async def _walk(
        self, path: str, files: List[FileMetadata], depth: int, max_depth: int
    ) -> None:
        limit = self.config.max_index_size
        if depth > max_depth:
            return
        if len(files) >= limit:
            LOGGER.warning("Reached maximum index size (%d), stopping indexing", limit)
            return

        try:
            response = await asyncio.wait_for(
                self.store.list_directory(path), timeout=self.config.listing_timeout
            )
        except Exception as exc:
            LOGGER.warning("Failed to index directory %s (depth %d): %s", path, depth, exc)
            return

        entries = sorted(parse_listing(response, path, depth), key=lambda item: item.is_directory)
        for entry in entries:
            if len(files) >= limit:
                LOGGER.warning("Reached maximum index size (%d), stopping indexing", limit)
                return
            files.append(entry)

        if depth >= max_depth:
            return

        directories = [entry for entry in entries if entry.is_directory]
        batch_size = max(1, self.config.subdir_concurrency)
        for start in range(0, len(directories), batch_size):
            if len(files) >= limit:
                break
            batch = directories[start : start + batch_size]
            outcomes = await asyncio.gather(
                *(self._walk(entry.path, files, depth + 1, max_depth) for entry in batch),
                return_exceptions=True,
            )
            for entry, outcome in zip(batch, outcomes):
                if isinstance(outcome, Exception):
                    LOGGER.warning("Subtree %s failed: %s", entry.path, outcome)

    def _cached_index(self, key: str, depth: int) -> FileIndex | None:
        # A deeper snapshot can serve a shallower request, never the reverse.
        cached = self.index_cache.get(key)
        if cached is None or not self._is_fresh(cached) or cached.max_depth is None:
            return None
        if cached.max_depth == depth:
            return cached
        if cached.max_depth > depth:
            return cached.within_depth(depth)
        return None

    def _is_fresh(self, index: FileIndex) -> bool:
        age = (datetime.now(timezone.utc) - index.last_updated).total_seconds()
        return age < self.config.index_ttl

    def _prune_cache(self) -> None:
        if len(self.index_cache) <= self.config.max_index_size / 10:
            return
        expired = [key for key, index in self.index_cache.items() if not self._is_fresh(index)]
        for key in expired:
            del self.index_cache[key]
        LOGGER.info("Index cache cleanup: removed %d expired entries", len(expired))
