"""Utility helpers for classifying remote files and handling their paths."""

from __future__ import annotations

import re
from enum import Enum
from typing import Dict


class FileCategory(str, Enum):
    TEXT = "text"
    CODE = "code"
    CONFIG = "config"
    DOCUMENT = "document"  # metadata only
    MEDIA = "media"  # metadata only


EXTRACTABLE_CATEGORIES = frozenset({FileCategory.TEXT, FileCategory.CODE, FileCategory.CONFIG})

FILE_TYPE_MAPPINGS: Dict[str, FileCategory] = {
    # Text
    "txt": FileCategory.TEXT,
    "md": FileCategory.TEXT,
    "markdown": FileCategory.TEXT,
    "csv": FileCategory.TEXT,
    "tsv": FileCategory.TEXT,
    "log": FileCategory.TEXT,
    # Code
    "js": FileCategory.CODE,
    "ts": FileCategory.CODE,
    "jsx": FileCategory.CODE,
    "tsx": FileCategory.CODE,
    "py": FileCategory.CODE,
    "java": FileCategory.CODE,
    "c": FileCategory.CODE,
    "cpp": FileCategory.CODE,
    "h": FileCategory.CODE,
    "cs": FileCategory.CODE,
    "php": FileCategory.CODE,
    "rb": FileCategory.CODE,
    "go": FileCategory.CODE,
    "rs": FileCategory.CODE,
    "swift": FileCategory.CODE,
    "kt": FileCategory.CODE,
    "sql": FileCategory.CODE,
    "html": FileCategory.CODE,
    "htm": FileCategory.CODE,
    "css": FileCategory.CODE,
    "scss": FileCategory.CODE,
    "sass": FileCategory.CODE,
    "less": FileCategory.CODE,
    # Configuration
    "json": FileCategory.CONFIG,
    "xml": FileCategory.CONFIG,
    "yaml": FileCategory.CONFIG,
    "yml": FileCategory.CONFIG,
    "toml": FileCategory.CONFIG,
    "ini": FileCategory.CONFIG,
    "conf": FileCategory.CONFIG,
    "config": FileCategory.CONFIG,
    "properties": FileCategory.CONFIG,
    "env": FileCategory.CONFIG,
    # Documents
    "pdf": FileCategory.DOCUMENT,
    "doc": FileCategory.DOCUMENT,
    "docx": FileCategory.DOCUMENT,
    "xls": FileCategory.DOCUMENT,
    "xlsx": FileCategory.DOCUMENT,
    "ppt": FileCategory.DOCUMENT,
    "pptx": FileCategory.DOCUMENT,
    "odt": FileCategory.DOCUMENT,
    "ods": FileCategory.DOCUMENT,
    "odp": FileCategory.DOCUMENT,
    # Media
    "jpg": FileCategory.MEDIA,
    "jpeg": FileCategory.MEDIA,
    "png": FileCategory.MEDIA,
    "gif": FileCategory.MEDIA,
    "bmp": FileCategory.MEDIA,
    "svg": FileCategory.MEDIA,
    "webp": FileCategory.MEDIA,
    "mp4": FileCategory.MEDIA,
    "avi": FileCategory.MEDIA,
    "mov": FileCategory.MEDIA,
    "mkv": FileCategory.MEDIA,
    "wmv": FileCategory.MEDIA,
    "mp3": FileCategory.MEDIA,
    "wav": FileCategory.MEDIA,
    "flac": FileCategory.MEDIA,
    "aac": FileCategory.MEDIA,
    "ogg": FileCategory.MEDIA,
}

MIME_TYPE_MAPPINGS: Dict[str, FileCategory] = {
    "text/plain": FileCategory.TEXT,
    "text/markdown": FileCategory.TEXT,
    "text/csv": FileCategory.TEXT,
    "text/javascript": FileCategory.CODE,
    "application/javascript": FileCategory.CODE,
    "text/html": FileCategory.CODE,
    "text/css": FileCategory.CODE,
    "text/x-python": FileCategory.CODE,
    "text/x-java-source": FileCategory.CODE,
    "text/x-c": FileCategory.CODE,
    "text/x-c++": FileCategory.CODE,
    "application/json": FileCategory.CONFIG,
    "text/xml": FileCategory.CONFIG,
    "application/xml": FileCategory.CONFIG,
    "text/yaml": FileCategory.CONFIG,
    "application/x-yaml": FileCategory.CONFIG,
    "application/pdf": FileCategory.DOCUMENT,
    "application/msword": FileCategory.DOCUMENT,
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": FileCategory.DOCUMENT,
    "application/vnd.ms-excel": FileCategory.DOCUMENT,
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": FileCategory.DOCUMENT,
    "image/jpeg": FileCategory.MEDIA,
    "image/png": FileCategory.MEDIA,
    "image/gif": FileCategory.MEDIA,
    "image/svg+xml": FileCategory.MEDIA,
    "video/mp4": FileCategory.MEDIA,
    "video/avi": FileCategory.MEDIA,
    "audio/mpeg": FileCategory.MEDIA,
    "audio/wav": FileCategory.MEDIA,
}

MIME_DESCRIPTIONS: Dict[str, str] = {
    "text/plain": "text file",
    "text/markdown": "markdown document",
    "text/csv": "spreadsheet data",
    "application/json": "json data",
    "text/xml": "xml document",
    "application/xml": "xml document",
    "text/html": "web page",
    "text/css": "stylesheet",
    "application/javascript": "javascript code",
    "text/javascript": "javascript code",
    "application/pdf": "pdf document",
    "image/jpeg": "jpeg image",
    "image/png": "png image",
    "video/mp4": "mp4 video",
    "audio/mpeg": "mp3 audio",
}

DEFAULT_MIME_TYPE = "application/octet-stream"

_SPECIFIC_MIME_TYPES: Dict[str, str] = {
    "js": "application/javascript",
    "html": "text/html",
    "htm": "text/html",
    "css": "text/css",
    "json": "application/json",
    "xml": "application/xml",
    "yaml": "application/x-yaml",
    "yml": "application/x-yaml",
    "pdf": "application/pdf",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "svg": "image/svg+xml",
    "mp4": "video/mp4",
    "mp3": "audio/mpeg",
}

_KB = 1024
_MB = 1024 * 1024
_SLASHES = re.compile(r"/{2,}")


def classify_file(mime_type: str | None, extension: str | None) -> FileCategory:
    """Map a MIME type / extension pair onto a handling category.

    The MIME type wins over the extension. Anything unknown is treated as a
    document, i.e. metadata-only.
    """
    if mime_type and mime_type in MIME_TYPE_MAPPINGS:
        return MIME_TYPE_MAPPINGS[mime_type]
    if extension and extension in FILE_TYPE_MAPPINGS:
        return FILE_TYPE_MAPPINGS[extension]
    if mime_type and mime_type.startswith("text/"):
        return FileCategory.TEXT
    return FileCategory.DOCUMENT


def mime_type_from_extension(extension: str) -> str:
    category = FILE_TYPE_MAPPINGS.get(extension)
    if category is None:
        return DEFAULT_MIME_TYPE
    if extension in _SPECIFIC_MIME_TYPES:
        return _SPECIFIC_MIME_TYPES[extension]
    if category in EXTRACTABLE_CATEGORIES:
        return "text/plain"
    return DEFAULT_MIME_TYPE


def describe_mime_type(mime_type: str) -> str:
    if mime_type in MIME_DESCRIPTIONS:
        return MIME_DESCRIPTIONS[mime_type]
    return mime_type.split("/")[0] or "file"


def size_category(size: int) -> str:
    if size == 0:
        return "empty"
    if size < _KB:
        return "tiny"
    if size < 10 * _KB:
        return "small"
    if size < 100 * _KB:
        return "medium"
    if size < _MB:
        return "large"
    if size < 10 * _MB:
        return "very large"
    return "huge"


def normalize_path(path: str | None) -> str:
    """Return a canonical absolute path: leading slash, no trailing slash."""
    if not path:
        return "/"
    cleaned = _SLASHES.sub("/", "/" + path.strip().lstrip("/"))
    if len(cleaned) > 1:
        cleaned = cleaned.rstrip("/")
    return cleaned or "/"


def is_root(path: str | None) -> bool:
    return normalize_path(path) == "/"


def is_path_within(path: str, base: str) -> bool:
    """Segment-aware prefix test: ``/Doc`` does not contain ``/Documents``."""
    path = normalize_path(path)
    base = normalize_path(base)
    if base == "/":
        return True
    return path == base or path.startswith(base + "/")


def split_extension(name: str) -> str:
    """Lowercased extension without the dot, ``""`` when there is none."""
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[1].lower()
