"""Core DavFinder data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Sequence, Tuple

from davfinder.utils.files import normalize_path

PREVIEW_CHARS = 500


class SearchScope(str, Enum):
    """Axis along which a query is matched."""

    FILENAME = "filename"
    CONTENT = "content"
    METADATA = "metadata"


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(slots=True)
class FileMetadata:
    """One entry of the remote store."""

    path: str
    name: str
    size: int
    last_modified: datetime
    mime_type: str
    extension: str
    is_directory: bool = False
    depth: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "name": self.name,
            "size": self.size,
            "lastModified": self.last_modified.isoformat(),
            "mimeType": self.mime_type,
            "extension": self.extension,
            "isDirectory": self.is_directory,
        }


@dataclass(slots=True)
class FileIndex:
    """Snapshot of a subtree of the remote store."""

    base_path: str
    last_updated: datetime
    files: List[FileMetadata]
    total_size: int = 0
    directory_count: int = 0
    file_count: int = 0
    max_depth: int | None = None

    @classmethod
    def build(
        cls,
        base_path: str,
        files: Sequence[FileMetadata],
        max_depth: int | None = None,
        last_updated: datetime | None = None,
    ) -> "FileIndex":
        ordered = sorted(files, key=lambda item: item.path)
        directories = sum(1 for item in ordered if item.is_directory)
        return cls(
            base_path=base_path,
            last_updated=last_updated or datetime.now(timezone.utc),
            files=ordered,
            total_size=sum(item.size for item in ordered),
            directory_count=directories,
            file_count=len(ordered) - directories,
            max_depth=max_depth,
        )

    def within_depth(self, max_depth: int) -> "FileIndex":
        """View of this snapshot limited to entries at most ``max_depth`` deep."""
        files = [item for item in self.files if item.depth <= max_depth]
        return FileIndex.build(self.base_path, files, max_depth, self.last_updated)


@dataclass(slots=True)
class SearchResult:
    file: FileMetadata
    match_type: SearchScope
    relevance_score: float
    highlights: List[str] = field(default_factory=list)
    context: str = ""
    content_preview: str | None = None

    def to_dict(self) -> Dict[str, Any]:
        payload = self.file.to_dict()
        payload.update(
            {
                "matchType": self.match_type.value,
                "relevanceScore": round(self.relevance_score, 2),
                "highlights": list(self.highlights),
            }
        )
        if self.content_preview:
            payload["contentPreview"] = self.content_preview[:PREVIEW_CHARS]
        return payload


@dataclass(slots=True, frozen=True)
class SizeRange:
    min: int | None = None
    max: int | None = None


@dataclass(slots=True, frozen=True)
class DateRange:
    start: datetime | None = None
    end: datetime | None = None

    def __post_init__(self) -> None:
        if self.start is not None:
            object.__setattr__(self, "start", ensure_utc(self.start))
        if self.end is not None:
            object.__setattr__(self, "end", ensure_utc(self.end))


DEFAULT_SCOPES: Tuple[SearchScope, ...] = (SearchScope.FILENAME, SearchScope.CONTENT)


@dataclass(slots=True, frozen=True)
class SearchOptions:
    """Input of a single search call. Immutable once built."""

    query: str
    search_in: Tuple[SearchScope, ...] = DEFAULT_SCOPES
    file_types: Tuple[str, ...] | None = None
    base_path: str = "/"
    limit: int = 50
    include_content: bool = False
    case_sensitive: bool = False
    size_range: SizeRange | None = None
    date_range: DateRange | None = None
    quick_search: bool = True
    max_depth: int | None = None

    def __post_init__(self) -> None:
        scopes = tuple(SearchScope(scope) for scope in self.search_in)
        object.__setattr__(self, "search_in", scopes or DEFAULT_SCOPES)
        if self.file_types is not None:
            types = tuple(ext.strip().lstrip(".").lower() for ext in self.file_types if ext.strip())
            object.__setattr__(self, "file_types", types or None)
        object.__setattr__(self, "base_path", normalize_path(self.base_path))
        if self.limit < 1:
            raise ValueError("limit must be at least 1")
        if self.max_depth is not None and self.max_depth < 0:
            raise ValueError("max_depth must not be negative")


@dataclass(slots=True)
class QueryOperator:
    type: str  # AND / OR / NOT
    left: str
    right: str | None = None


@dataclass(slots=True)
class QueryFilter:
    field: str  # filename / content / ext / size / modified
    operator: str
    value: Any


@dataclass(slots=True)
class ParsedQuery:
    terms: List[str]
    original_query: str
    # Never populated yet: operator and filter syntax is not parsed.
    operators: List[QueryOperator] = field(default_factory=list)
    filters: List[QueryFilter] = field(default_factory=list)
