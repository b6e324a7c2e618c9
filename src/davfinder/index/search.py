"""Query execution over the remote store: matching, ranking and fallback."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Sequence, Tuple

from davfinder.client.webdav import RemoteStore
from davfinder.config import SearchConfig
from davfinder.index.indexer import FileIndexer, IndexingError
from davfinder.index.listing import parse_listing
from davfinder.ingestion.content import ContentExtractor
from davfinder.models import (
    FileMetadata,
    ParsedQuery,
    SearchOptions,
    SearchResult,
    SearchScope,
)
from davfinder.utils.text import count_occurrences, find_context, find_highlights, tokenize_query

LOGGER = logging.getLogger(__name__)

MAX_SCORE = 100.0
METADATA_WEIGHT = 0.7
RECENCY_WINDOW_DAYS = 30
RECENCY_BONUS = 10.0
SMALL_FILE_BYTES = 100 * 1024
SMALL_FILE_BONUS = 5.0
PREFERRED_EXTENSIONS = frozenset({"txt", "md", "json", "js", "ts", "py"})
PREFERRED_TYPE_BONUS = 3.0
CONTEXT_CHARS = 200

MATCH_TYPE_PRIORITY = {
    SearchScope.FILENAME: 3,
    SearchScope.CONTENT: 2,
    SearchScope.METADATA: 1,
}

DEFAULT_SUGGESTIONS = (
    'Try using a more specific directory path instead of root "/"',
    "Enable quickSearch mode for faster results",
    "Reduce the file type filters or search scope",
    "Use a smaller limit parameter",
)

TIMEOUT_SUGGESTIONS = (
    "The search timed out. Try searching in a specific directory instead of root.",
    "Use quickSearch for faster results with limited depth",
    "Reduce the search scope by specifying fileTypes",
    'Try searching in a subdirectory like "/Documents" instead of "/"',
)


def suggestions_for(message: str) -> List[str]:
    if "timeout" in message.lower() or "timed out" in message.lower():
        return list(TIMEOUT_SUGGESTIONS)
    return list(DEFAULT_SUGGESTIONS)


class SearchError(Exception):
    """The query could not be serviced at all."""

    def __init__(self, message: str, suggestions: Sequence[str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.suggestions = list(suggestions) if suggestions is not None else suggestions_for(message)

    def to_dict(self) -> dict:
        return {"error": "Search failed", "message": self.message, "suggestions": self.suggestions}


def parse_query(query: str) -> ParsedQuery:
    return ParsedQuery(terms=tokenize_query(query), original_query=query)


def filename_relevance(filename: str, terms: Iterable[str]) -> float:
    """Exact name 100, whole word 80, substring 60 plus up to 20 for an early match."""
    lowered = filename.lower()
    score = 0.0
    for term in terms:
        term = term.lower()
        if lowered == term:
            score += 100
        elif (
            f" {term} " in lowered
            or lowered.startswith(f"{term} ")
            or lowered.endswith(f" {term}")
        ):
            score += 80
        elif term in lowered:
            position = lowered.index(term)
            score += 60 + max(0.0, 20 - (position / len(lowered)) * 20)
    return min(MAX_SCORE, score)


def content_relevance(content: str, terms: Sequence[str]) -> float:
    """Term frequency with diminishing returns plus a coverage bonus for multi-term queries."""
    lowered = content.lower()
    score = 0.0
    for term in terms:
        occurrences = count_occurrences(lowered, term)
        if occurrences:
            score += min(50, occurrences * 10)

    if len(terms) > 1:
        present = sum(1 for term in terms if term.lower() in lowered)
        score += (present / len(terms)) * 30
    return min(MAX_SCORE, score)


def final_score(result: SearchResult, now: datetime) -> float:
    score = result.relevance_score

    days = (now - result.file.last_modified).total_seconds() / 86400
    if days <= RECENCY_WINDOW_DAYS:
        bonus = RECENCY_BONUS - (max(days, 0.0) / RECENCY_WINDOW_DAYS) * RECENCY_BONUS
        score += max(0.0, bonus)

    if result.file.size < SMALL_FILE_BYTES:
        score += SMALL_FILE_BONUS
    if result.file.extension in PREFERRED_EXTENSIONS:
        score += PREFERRED_TYPE_BONUS
    return max(0.0, min(MAX_SCORE, score))


def _sorted_or_none(values: Iterable[str] | None) -> Tuple[str, ...] | None:
    return tuple(sorted(values)) if values else None


def limit_quick_root_search(options: SearchOptions, cap: int) -> SearchOptions:
    """Quick searches of the root return at most ``cap`` results."""
    if options.quick_search and options.base_path == "/" and options.limit > cap:
        return dataclasses.replace(options, limit=cap)
    return options


def copy_results(results: Iterable[SearchResult]) -> List[SearchResult]:
    return [
        dataclasses.replace(
            result, file=dataclasses.replace(result.file), highlights=list(result.highlights)
        )
        for result in results
    ]


def result_cache_key(options: SearchOptions) -> tuple:
    return (
        options.query.lower(),
        tuple(sorted(scope.value for scope in options.search_in)),
        _sorted_or_none(options.file_types),
        options.base_path,
        options.case_sensitive,
        options.limit,
        options.include_content,
        options.quick_search,
        options.max_depth,
        options.size_range,
        options.date_range,
    )


class ResultCache:
    """Short-lived cache of final result lists."""

    def __init__(self, ttl: float = 60.0, max_entries: int = 100) -> None:
        self.ttl = ttl
        self.max_entries = max_entries
        self.entries: "OrderedDict[tuple, Tuple[float, List[SearchResult]]]" = OrderedDict()

    def get(self, key: tuple) -> List[SearchResult] | None:
        entry = self.entries.get(key)
        if entry is None:
            return None
        stored_at, results = entry
        if time.time() - stored_at >= self.ttl:
            del self.entries[key]
            return None
        return copy_results(results)

    def put(self, key: tuple, results: List[SearchResult]) -> None:
        self.entries.pop(key, None)
        self.entries[key] = (time.time(), copy_results(results))
        while len(self.entries) > self.max_entries:
            self.entries.popitem(last=False)

    def clear(self) -> None:
        self.entries.clear()

    def __len__(self) -> int:
        return len(self.entries)


class SearchEngine:
    """Runs indexing, matching and ranking for one remote store."""

    def __init__(
        self,
        store: RemoteStore,
        config: SearchConfig | None = None,
        *,
        indexer: FileIndexer | None = None,
        extractor: ContentExtractor | None = None,
    ) -> None:
        self.store = store
        self.config = config or SearchConfig()
        self.indexer = indexer or FileIndexer(store, self.config)
        self.extractor = extractor or ContentExtractor(store, self.config)
        self.result_cache = ResultCache(self.config.result_ttl, self.config.result_cache_size)

    async def search(self, options: SearchOptions) -> List[SearchResult]:
        parsed = parse_query(options.query)
        if not parsed.terms:
            return []

        key = result_cache_key(options)
        cached = self.result_cache.get(key)
        if cached is not None:
            LOGGER.debug("Returning cached search results for %r", options.query)
            return cached

        quick_mode = options.quick_search and options.base_path == "/"
        try:
            index = await self.indexer.get_index(options.base_path, quick_mode, options.max_depth)
        except IndexingError as exc:
            LOGGER.warning("Indexing failed (%s), attempting fallback search", exc)
            return await self._fallback_search(options, parsed)

        try:
            LOGGER.info(
                "Searching %d files under %s (quick mode: %s)",
                index.file_count,
                options.base_path,
                quick_mode,
            )
            candidates = self.apply_pre_filters(index.files, options)

            matches: List[SearchResult] = []
            if SearchScope.FILENAME in options.search_in:
                matches.extend(self.search_filenames(parsed, candidates))
            if SearchScope.METADATA in options.search_in:
                matches.extend(self.search_metadata(parsed, candidates))
            if SearchScope.CONTENT in options.search_in:
                matches.extend(await self.search_content(parsed, candidates))

            results = self.rank_results(self.apply_post_filters(self.merge_results(matches), options))
            results = results[: options.limit]

            if options.include_content:
                await self._add_content_previews(results)
        except Exception as exc:
            LOGGER.exception("Search for %r failed", options.query)
            raise SearchError(f"Search failed: {exc}") from exc

        self.result_cache.put(key, results)
        LOGGER.info("Search completed: %d results", len(results))
        return list(results)

    async def _fallback_search(
        self, options: SearchOptions, parsed: ParsedQuery
    ) -> List[SearchResult]:
        """Filename/metadata search over the immediate listing of the base path."""
        try:
            response = await asyncio.wait_for(
                self.store.list_directory(options.base_path), timeout=self.config.listing_timeout
            )
            files = parse_listing(response, options.base_path, 0)
            LOGGER.info("Fallback search: %d entries in %s", len(files), options.base_path)

            candidates = self.apply_pre_filters(files, options)
            matches: List[SearchResult] = []
            if SearchScope.FILENAME in options.search_in:
                matches.extend(self.search_filenames(parsed, candidates))
            if SearchScope.METADATA in options.search_in:
                matches.extend(self.search_metadata(parsed, candidates))

            results = self.rank_results(self.apply_post_filters(self.merge_results(matches), options))
            return results[: min(options.limit, self.config.fallback_limit)]
        except Exception as exc:
            LOGGER.error("Fallback search failed: %s", exc)
            return []

    def search_filenames(
        self, query: ParsedQuery, files: Sequence[FileMetadata]
    ) -> List[SearchResult]:
        results = []
        for file in files:
            score = filename_relevance(file.name, query.terms)
            if score > 0:
                results.append(
                    SearchResult(
                        file=file,
                        match_type=SearchScope.FILENAME,
                        relevance_score=score,
                        highlights=find_highlights(file.name, query.terms),
                        context=file.name,
                    )
                )
        return results

    def search_metadata(
        self, query: ParsedQuery, files: Sequence[FileMetadata]
    ) -> List[SearchResult]:
        results = []
        for file in files:
            text = self.extractor.extract_metadata_as_text(file)
            score = content_relevance(text, query.terms)
            if score > 0:
                results.append(
                    SearchResult(
                        file=file,
                        match_type=SearchScope.METADATA,
                        relevance_score=score * METADATA_WEIGHT,
                        highlights=find_highlights(text, query.terms),
                        context=text[:CONTEXT_CHARS],
                    )
                )
        return results

    async def search_content(
        self, query: ParsedQuery, files: Sequence[FileMetadata]
    ) -> List[SearchResult]:
        searchable = [
            file
            for file in files
            if self.extractor.is_searchable_content(file)
            and file.size <= self.config.max_file_size
        ]
        LOGGER.debug("Searching content in %d files", len(searchable))

        results: List[SearchResult] = []
        batch_size = max(1, self.config.content_batch_size)
        for start in range(0, len(searchable), batch_size):
            batch = searchable[start : start + batch_size]
            matches = await asyncio.gather(*(self._match_content(query, file) for file in batch))
            results.extend(match for match in matches if match is not None)
        return results

    async def _match_content(self, query: ParsedQuery, file: FileMetadata) -> SearchResult | None:
        content = await self.extractor.extract_content(file)
        score = content_relevance(content, query.terms)
        if score <= 0:
            return None

        context = ""
        for term in query.terms:
            contexts = find_context(content, term)
            if contexts:
                context = contexts[0]
                break
        return SearchResult(
            file=file,
            match_type=SearchScope.CONTENT,
            relevance_score=score,
            highlights=find_highlights(content, query.terms),
            context=context or content[:CONTEXT_CHARS],
        )

    @staticmethod
    def apply_pre_filters(
        files: Sequence[FileMetadata], options: SearchOptions
    ) -> List[FileMetadata]:
        allowed = set(options.file_types) if options.file_types else None
        size_range = options.size_range
        date_range = options.date_range

        selected = []
        for file in files:
            if allowed is not None and file.extension not in allowed:
                continue
            if size_range is not None:
                if size_range.min is not None and file.size < size_range.min:
                    continue
                if size_range.max is not None and file.size > size_range.max:
                    continue
            if date_range is not None:
                if date_range.start is not None and file.last_modified < date_range.start:
                    continue
                if date_range.end is not None and file.last_modified > date_range.end:
                    continue
            selected.append(file)
        return selected

    @staticmethod
    def apply_post_filters(
        results: Sequence[SearchResult], options: SearchOptions
    ) -> List[SearchResult]:
        if not options.case_sensitive:
            return list(results)
        literal_terms = options.query.split()
        return [
            result
            for result in results
            if any(term in highlight for highlight in result.highlights for term in literal_terms)
        ]

    @staticmethod
    def merge_results(results: Iterable[SearchResult]) -> List[SearchResult]:
        """One result per path: best score and type win, highlights are unioned."""
        merged: Dict[str, SearchResult] = {}
        for result in results:
            existing = merged.get(result.file.path)
            if existing is None:
                merged[result.file.path] = dataclasses.replace(
                    result, highlights=list(result.highlights)
                )
                continue

            highlights = list(existing.highlights)
            highlights.extend(h for h in result.highlights if h not in highlights)
            if result.relevance_score > existing.relevance_score:
                merged[result.file.path] = dataclasses.replace(result, highlights=highlights)
            else:
                existing.highlights = highlights
        return list(merged.values())

    @staticmethod
    def rank_results(
        results: Iterable[SearchResult], now: datetime | None = None
    ) -> List[SearchResult]:
        now = now or datetime.now(timezone.utc)
        scored = [
            dataclasses.replace(result, relevance_score=final_score(result, now))
            for result in results
        ]
        scored.sort(
            key=lambda result: (
                -result.relevance_score,
                -MATCH_TYPE_PRIORITY[result.match_type],
                result.file.name,
            )
        )
        return scored

    async def _add_content_previews(self, results: Sequence[SearchResult]) -> None:
        for result in results:
            if result.match_type not in (SearchScope.FILENAME, SearchScope.CONTENT):
                continue
            if result.file.is_directory:
                continue
            result.content_preview = await self.extractor.get_content_preview(
                result.file, self.config.preview_lines
            )

    def clear_all_caches(self) -> None:
        self.result_cache.clear()
        self.indexer.clear_cache()
        self.extractor.clear_cache()
        LOGGER.info("All search caches cleared")

    def stats(self) -> dict:
        return {
            "result_cache_size": len(self.result_cache),
            "index_cache": self.indexer.cache_stats(),
            "content_cache": self.extractor.cache_stats(),
        }
