"""Normalisation of directory listings into FileMetadata records.

Listings arrive either as structured data (a list of dicts, a dict with an
``items`` list, or a single dict) or as a WebDAV ``207 Multi-Status`` XML
document. Both are reduced to the same flat records; a broken entry is logged
and skipped without affecting the rest of the listing.
"""

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, List, Mapping
from urllib.parse import unquote, urlsplit

from davfinder.models import FileMetadata, ensure_utc
from davfinder.utils.files import (
    DEFAULT_MIME_TYPE,
    mime_type_from_extension,
    normalize_path,
    split_extension,
)

LOGGER = logging.getLogger(__name__)

DAV_NS = "{DAV:}"

_DAV_PREFIX = re.compile(r"^/remote\.php/(?:dav/files/[^/]+|webdav)(?=/|$)")


def normalize_href(href: str) -> str:
    """Turn a WebDAV href into a store path (``/Documents/a.txt``)."""
    path = urlsplit(href.strip()).path if "://" in href else href.strip()
    path = unquote(path)
    path = _DAV_PREFIX.sub("", path)
    return normalize_path(path)


def _status_ok(propstat: ET.Element) -> bool:
    status = propstat.findtext(f"{DAV_NS}status") or ""
    return not status or " 200 " in f"{status} "


def _prop_text(prop: ET.Element, name: str) -> str | None:
    value = prop.findtext(f"{DAV_NS}{name}")
    if value is None:
        return None
    return value.strip() or None


def parse_multistatus(document: str | bytes) -> List[Dict[str, Any]]:
    """Extract href/size/last-modified/type/collection from a multistatus body."""
    try:
        root = ET.fromstring(document)
    except ET.ParseError as exc:
        LOGGER.error("Failed to parse WebDAV multistatus response: %s", exc)
        return []

    items: List[Dict[str, Any]] = []
    for response in root.iter(f"{DAV_NS}response"):
        href = response.findtext(f"{DAV_NS}href")
        if not href or not href.strip():
            LOGGER.warning("Skipping multistatus response without href")
            continue

        prop = None
        for propstat in response.findall(f"{DAV_NS}propstat"):
            if _status_ok(propstat):
                prop = propstat.find(f"{DAV_NS}prop")
                break
        if prop is None:
            prop = ET.Element(f"{DAV_NS}prop")

        resource_type = prop.find(f"{DAV_NS}resourcetype")
        is_directory = (
            resource_type is not None and resource_type.find(f"{DAV_NS}collection") is not None
        )
        size_text = _prop_text(prop, "getcontentlength")

        items.append(
            {
                "href": href.strip(),
                "size": int(size_text) if size_text and size_text.isdigit() else 0,
                "last_modified": _prop_text(prop, "getlastmodified"),
                "content_type": _prop_text(prop, "getcontenttype"),
                "is_directory": is_directory,
            }
        )
    return items


def parse_timestamp(value: Any) -> datetime:
    """Accept datetimes, epoch seconds, RFC 1123 and ISO 8601 strings."""
    if value is None or value == "":
        return datetime.now(timezone.utc)
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        try:
            return ensure_utc(parsedate_to_datetime(text))
        except (TypeError, ValueError, IndexError):
            pass
        try:
            return ensure_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
        except ValueError:
            pass
    raise ValueError(f"Unrecognised timestamp: {value!r}")


def _first(item: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = item.get(key)
        if value not in (None, ""):
            return value
    return None


def create_file_metadata(
    item: Mapping[str, Any], base_path: str | None, depth: int
) -> FileMetadata | None:
    """Build a record from one listing item; ``None`` for the listed directory itself."""
    raw_path = _first(item, "href", "path")
    if raw_path is None:
        raise ValueError("listing entry has neither href nor path")
    path = normalize_href(str(raw_path))
    if base_path is not None and path == normalize_path(base_path):
        return None

    name = path.rsplit("/", 1)[-1] if path != "/" else "/"
    extension = split_extension(name)
    size = int(_first(item, "size", "content_length", "contentLength") or 0)
    if size < 0:
        raise ValueError(f"negative size for {path}")

    is_directory = bool(
        _first(item, "is_directory", "isDirectory")
        or item.get("resource_type") == "collection"
        or item.get("resourceType") == "collection"
    )
    if is_directory:
        extension = ""
    mime_type = _first(item, "content_type", "contentType", "mime_type", "mimeType")
    if mime_type is None:
        mime_type = "httpd/unix-directory" if is_directory else mime_type_from_extension(extension)

    return FileMetadata(
        path=path,
        name=name,
        size=size,
        last_modified=parse_timestamp(_first(item, "last_modified", "lastModified")),
        mime_type=str(mime_type).split(";", 1)[0].strip() or DEFAULT_MIME_TYPE,
        extension=extension,
        is_directory=is_directory,
        depth=depth,
    )


def parse_listing(response: Any, base_path: str, depth: int) -> List[FileMetadata]:
    """Normalise any supported listing shape into FileMetadata records."""
    if isinstance(response, (str, bytes)):
        items: List[Any] = parse_multistatus(response)
    elif isinstance(response, list):
        items = response
    elif isinstance(response, Mapping):
        nested = response.get("items")
        items = nested if isinstance(nested, list) else [response]
    else:
        LOGGER.warning("Unsupported listing response type: %s", type(response).__name__)
        return []

    files: List[FileMetadata] = []
    for item in items:
        try:
            metadata = create_file_metadata(item, base_path, depth)
        except (TypeError, ValueError, AttributeError) as exc:
            LOGGER.warning("Skipping malformed listing entry %r: %s", item, exc)
            continue
        if metadata is not None:
            files.append(metadata)
    return files
