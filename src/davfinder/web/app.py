"""FastAPI application exposing search and WebDAV file operations."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, List

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from davfinder.client.webdav import RemoteStore, RemoteStoreError, WebDAVClient
from davfinder.config import AppConfig
from davfinder.index.listing import parse_listing
from davfinder.index.search import SearchEngine, SearchError, limit_quick_root_search
from davfinder.models import DateRange, SearchOptions, SearchScope, SizeRange
from davfinder.utils.files import normalize_path

LOGGER = logging.getLogger(__name__)

MAX_LIMIT = 200

app = FastAPI(title="DavFinder Web", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


class SizeRangePayload(BaseModel):
    min: int | None = Field(None, ge=0)
    max: int | None = Field(None, ge=0)


class DateRangePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start: datetime | None = Field(None, alias="from")
    end: datetime | None = Field(None, alias="to")


class SearchPayload(BaseModel):
    query: str
    search_in: List[SearchScope] = [SearchScope.FILENAME, SearchScope.CONTENT]
    file_types: List[str] | None = None
    base_path: str = "/"
    limit: int = 50
    include_content: bool = False
    case_sensitive: bool = False
    size_range: SizeRangePayload | None = None
    date_range: DateRangePayload | None = None
    quick_search: bool = True
    max_depth: int | None = Field(None, ge=0, le=10)

    def to_options(self) -> SearchOptions:
        size_range = None
        if self.size_range is not None:
            size_range = SizeRange(min=self.size_range.min, max=self.size_range.max)
        date_range = None
        if self.date_range is not None:
            date_range = DateRange(start=self.date_range.start, end=self.date_range.end)
        return SearchOptions(
            query=self.query.strip(),
            search_in=tuple(self.search_in),
            file_types=tuple(self.file_types) if self.file_types else None,
            base_path=self.base_path,
            limit=max(1, min(self.limit, MAX_LIMIT)),
            include_content=self.include_content,
            case_sensitive=self.case_sensitive,
            size_range=size_range,
            date_range=date_range,
            quick_search=self.quick_search,
            max_depth=self.max_depth,
        )


class WriteFilePayload(BaseModel):
    path: str
    content: str


class DirectoryPayload(BaseModel):
    path: str


def _create_store() -> WebDAVClient:
    config = AppConfig.from_env()
    try:
        config.require_credentials()
    except ValueError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return WebDAVClient(config.host, config.username, config.password)  # type: ignore[arg-type]


def get_engine(request: Request) -> SearchEngine:
    """One engine (and therefore one set of caches) per application."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        engine = SearchEngine(_create_store(), AppConfig.from_env().search)
        request.app.state.engine = engine
    return engine


def get_store(engine: SearchEngine = Depends(get_engine)) -> RemoteStore:
    return engine.store


def _remote_error(exc: RemoteStoreError) -> HTTPException:
    if exc.status_code == 404:
        return HTTPException(status_code=404, detail=str(exc))
    return HTTPException(status_code=502, detail=str(exc))


def _invalidate(engine: SearchEngine, path: str) -> None:
    engine.indexer.update_index(path)
    engine.result_cache.clear()


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")


@app.on_event("shutdown")
async def shutdown_event() -> None:
    engine = getattr(app.state, "engine", None)
    close = getattr(getattr(engine, "store", None), "aclose", None)
    if close is not None:
        await close()


@app.post("/search")
async def search_files(
    payload: SearchPayload, engine: SearchEngine = Depends(get_engine)
) -> dict[str, Any]:
    if not payload.query.strip():
        raise HTTPException(status_code=400, detail="Empty query")
    try:
        options = payload.to_options()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    options = limit_quick_root_search(options, engine.config.quick_result_limit)

    timeout = engine.config.search_timeout
    started = time.monotonic()
    try:
        results = await asyncio.wait_for(engine.search(options), timeout=timeout)
    except asyncio.TimeoutError:
        error = SearchError(f"Search operation timed out after {timeout:g} seconds")
        LOGGER.error("Search for %r timed out", options.query)
        raise HTTPException(status_code=500, detail=error.to_dict())
    except SearchError as exc:
        raise HTTPException(status_code=500, detail=exc.to_dict()) from exc

    duration_ms = int((time.monotonic() - started) * 1000)
    stats: dict[str, Any] = {
        "query": options.query,
        "searchScope": [scope.value for scope in options.search_in],
        "totalResults": len(results),
        "searchDurationMs": duration_ms,
        "searchTime": datetime.now(timezone.utc).isoformat(),
        "basePath": options.base_path,
        "quickSearchEnabled": options.quick_search and options.base_path == "/",
    }
    if options.file_types:
        stats["fileTypesFilter"] = list(options.file_types)
    LOGGER.info("Search completed in %dms with %d results", duration_ms, len(results))
    return {"searchStats": stats, "results": [result.to_dict() for result in results]}


@app.get("/files")
async def list_files(path: str = "/", store: RemoteStore = Depends(get_store)) -> dict[str, Any]:
    base = normalize_path(path)
    try:
        response = await store.list_directory(base)
    except RemoteStoreError as exc:
        raise _remote_error(exc) from exc
    entries = parse_listing(response, base, 0)
    return {"path": base, "entries": [entry.to_dict() for entry in entries]}


@app.get("/files/content")
async def read_file(path: str, store: RemoteStore = Depends(get_store)) -> dict[str, str]:
    try:
        content = await store.read_file(normalize_path(path))
    except RemoteStoreError as exc:
        raise _remote_error(exc) from exc
    return {"path": normalize_path(path), "content": content}


@app.put("/files/content")
async def write_file(
    payload: WriteFilePayload, engine: SearchEngine = Depends(get_engine)
) -> dict[str, str]:
    path = normalize_path(payload.path)
    try:
        await engine.store.write_file(path, payload.content)  # type: ignore[attr-defined]
    except RemoteStoreError as exc:
        raise _remote_error(exc) from exc
    _invalidate(engine, path)
    return {"status": "ok", "message": f"File written successfully to {path}"}


@app.post("/directories")
async def create_directory(
    payload: DirectoryPayload, engine: SearchEngine = Depends(get_engine)
) -> dict[str, str]:
    path = normalize_path(payload.path)
    try:
        await engine.store.create_directory(path)  # type: ignore[attr-defined]
    except RemoteStoreError as exc:
        raise _remote_error(exc) from exc
    _invalidate(engine, path)
    return {"status": "ok", "message": f"Directory created successfully at {path}"}


@app.delete("/files")
async def delete_resource(path: str, engine: SearchEngine = Depends(get_engine)) -> dict[str, str]:
    target = normalize_path(path)
    if target == "/":
        raise HTTPException(status_code=400, detail="Refusing to delete the root directory")
    try:
        await engine.store.delete_resource(target)  # type: ignore[attr-defined]
    except RemoteStoreError as exc:
        raise _remote_error(exc) from exc
    _invalidate(engine, target)
    return {"status": "ok", "message": f"Resource deleted successfully at {target}"}


@app.get("/stat")
async def stat_resource(path: str, store: RemoteStore = Depends(get_store)) -> dict[str, Any]:
    try:
        metadata = await store.stat(normalize_path(path))
    except RemoteStoreError as exc:
        raise _remote_error(exc) from exc
    if metadata is None:
        raise HTTPException(status_code=404, detail=f"Not found: {path}")
    return metadata.to_dict()


@app.get("/stats")
async def cache_stats(engine: SearchEngine = Depends(get_engine)) -> dict[str, Any]:
    return engine.stats()


@app.delete("/cache")
async def clear_caches(engine: SearchEngine = Depends(get_engine)) -> dict[str, str]:
    engine.clear_all_caches()
    return {"status": "ok"}
