"""Tests for content extraction and its cache."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from conftest import InMemoryStore
from davfinder.config import SearchConfig
from davfinder.ingestion.content import ContentCache, ContentExtractor
from davfinder.models import FileMetadata

MODIFIED = datetime(2024, 3, 15, 9, 30, tzinfo=timezone.utc)


def make_file(
    path: str,
    size: int,
    mime_type: str = "text/plain",
    is_directory: bool = False,
    modified: datetime = MODIFIED,
) -> FileMetadata:
    name = path.rsplit("/", 1)[-1]
    return FileMetadata(
        path=path,
        name=name,
        size=size,
        last_modified=modified,
        mime_type=mime_type,
        extension="" if is_directory or "." not in name else name.rsplit(".", 1)[-1].lower(),
        is_directory=is_directory,
    )


class TestContentCache:
    """Test ContentCache bounds."""

    def test_put_and_get(self) -> None:
        cache = ContentCache(max_size=1000, ttl=60)

        assert cache.put("/a.txt", "hello") is True
        assert cache.get("/a.txt") == "hello"
        assert cache.total_size == 5

    def test_expired_entry(self) -> None:
        """Entries older than the TTL are dropped on access."""
        cache = ContentCache(max_size=1000, ttl=60)
        with patch("davfinder.ingestion.content.time.time", return_value=1000.0):
            cache.put("/a.txt", "hello")
        with patch("davfinder.ingestion.content.time.time", return_value=1061.0):
            assert cache.get("/a.txt") is None
        assert cache.total_size == 0

    def test_oversized_content_not_cached(self) -> None:
        """Nothing larger than a tenth of the ceiling is stored."""
        cache = ContentCache(max_size=100, ttl=60)

        assert cache.put("/big.txt", "x" * 11) is False
        assert cache.put("/ok.txt", "x" * 10) is True
        assert cache.stats()["keys"] == ["/ok.txt"]

    def test_evicts_oldest_until_it_fits(self) -> None:
        cache = ContentCache(max_size=100, ttl=60)
        for number in range(10):
            with patch("davfinder.ingestion.content.time.time", return_value=float(number)):
                cache.put(f"/f{number}", "x" * 10)

        with patch("davfinder.ingestion.content.time.time", return_value=10.0):
            cache.put("/new", "y" * 10)

        assert "/f0" not in cache.entries
        assert "/f1" in cache.entries
        assert "/new" in cache.entries
        assert cache.total_size == 100

    def test_modified_file_invalidates_entry(self) -> None:
        """A changed modification time means the cached text is stale."""
        cache = ContentCache(max_size=1000, ttl=60)
        cache.put("/a.txt", "old", MODIFIED)

        assert cache.get("/a.txt", MODIFIED) == "old"
        assert cache.get("/a.txt", MODIFIED + timedelta(minutes=1)) is None
        assert "/a.txt" not in cache.entries

    def test_replacing_key_keeps_total(self) -> None:
        cache = ContentCache(max_size=1000, ttl=60)
        cache.put("/a.txt", "12345")
        cache.put("/a.txt", "123")

        assert cache.total_size == 3
        cache.clear()
        assert cache.total_size == 0
        assert cache.entries == {}


class TestContentExtractor:
    """Test ContentExtractor."""

    @pytest.mark.asyncio
    async def test_reads_and_cleans_text(self) -> None:
        store = InMemoryStore()
        store.add_file("/notes.txt", "budget\x00\n\n  review\t2024")
        extractor = ContentExtractor(store)

        content = await extractor.extract_content(make_file("/notes.txt", 22))

        assert content == "budget review 2024"

    @pytest.mark.asyncio
    async def test_second_extraction_uses_cache(self) -> None:
        store = InMemoryStore()
        store.add_file("/notes.txt", "cached text")
        extractor = ContentExtractor(store)
        file = make_file("/notes.txt", 11)

        await extractor.extract_content(file)
        await extractor.extract_content(file)

        assert store.calls_for("read") == ["/notes.txt"]

    @pytest.mark.asyncio
    async def test_modified_file_is_read_again(self) -> None:
        store = InMemoryStore()
        store.add_file("/notes.txt", "first")
        extractor = ContentExtractor(store)
        await extractor.extract_content(make_file("/notes.txt", 5))

        store.add_file("/notes.txt", "second")
        content = await extractor.extract_content(
            make_file("/notes.txt", 6, modified=MODIFIED + timedelta(hours=1))
        )

        assert content == "second"

    @pytest.mark.asyncio
    async def test_oversized_file_never_read(self) -> None:
        """Files above max_file_size are described, not read."""
        store = InMemoryStore()
        config = SearchConfig(max_file_size=100)
        extractor = ContentExtractor(store, config)
        file = make_file("/big.txt", 101)

        content = await extractor.extract_content(file)

        assert content == extractor.extract_metadata_as_text(file)
        assert store.calls_for("read") == []

    @pytest.mark.asyncio
    async def test_file_at_size_limit_is_read(self) -> None:
        """The size boundary is inclusive."""
        store = InMemoryStore()
        store.add_file("/edge.txt", "x" * 100)
        extractor = ContentExtractor(store, SearchConfig(max_file_size=100))

        content = await extractor.extract_content(make_file("/edge.txt", 100))

        assert content == "x" * 100
        assert store.calls_for("read") == ["/edge.txt"]

    @pytest.mark.asyncio
    async def test_documents_are_metadata_only(self) -> None:
        store = InMemoryStore()
        extractor = ContentExtractor(store)
        file = make_file("/Documents/report.pdf", 2048, mime_type="application/pdf")

        content = await extractor.extract_content(file)

        assert content == extractor.extract_metadata_as_text(file)
        assert store.calls_for("read") == []

    @pytest.mark.asyncio
    async def test_directories_are_never_read(self) -> None:
        store = InMemoryStore()
        extractor = ContentExtractor(store)
        folder = make_file("/Projects", 0, mime_type="httpd/unix-directory", is_directory=True)

        assert extractor.is_searchable_content(folder) is False
        await extractor.extract_content(folder)
        assert store.calls_for("read") == []

    @pytest.mark.asyncio
    async def test_read_failure_degrades_to_metadata(self) -> None:
        """An unreadable file still yields searchable text."""
        store = InMemoryStore()
        store.add_file("/locked.txt", "secret")
        store.unreadable.add("/locked.txt")
        extractor = ContentExtractor(store)
        file = make_file("/locked.txt", 6)

        content = await extractor.extract_content(file)

        assert content == extractor.extract_metadata_as_text(file)
        assert extractor.cache_stats()["size"] == 0

    def test_extract_metadata_as_text(self) -> None:
        extractor = ContentExtractor(InMemoryStore())
        file = make_file("/Documents/Taxes/budget-2024.pdf", 500 * 1024, "application/pdf")

        text = extractor.extract_metadata_as_text(file)

        assert text == (
            "budget-2024 pdf pdf document large 2024-03-15 2024 Documents Taxes budget-2024.pdf"
        )

    @pytest.mark.asyncio
    async def test_content_preview(self) -> None:
        store = InMemoryStore()
        store.add_file("/a.md", "line one\nline two")
        extractor = ContentExtractor(store)

        preview = await extractor.get_content_preview(make_file("/a.md", 17, "text/markdown"))

        assert preview == "line one line two"

    @pytest.mark.asyncio
    async def test_content_preview_failure_is_empty(self) -> None:
        extractor = ContentExtractor(InMemoryStore())
        with patch.object(extractor, "extract_content", side_effect=RuntimeError("boom")):
            preview = await extractor.get_content_preview(make_file("/a.md", 1))

        assert preview == ""

    @pytest.mark.asyncio
    async def test_clear_cache(self) -> None:
        store = InMemoryStore()
        store.add_file("/a.txt", "abc")
        extractor = ContentExtractor(store)
        await extractor.extract_content(make_file("/a.txt", 3))

        assert extractor.cache_stats()["keys"] == ["/a.txt"]
        extractor.clear_cache()
        assert extractor.cache_stats()["size"] == 0
