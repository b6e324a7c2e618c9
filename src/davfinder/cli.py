"""Command line interface for DavFinder."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import List, NoReturn, Optional

import typer
from rich.console import Console
from rich.table import Table

from davfinder.client.webdav import RemoteStoreError, WebDAVClient
from davfinder.config import HOST_ENV, PASSWORD_ENV, USERNAME_ENV, AppConfig
from davfinder.index.listing import parse_listing
from davfinder.index.search import SearchEngine, SearchError, limit_quick_root_search
from davfinder.models import DateRange, SearchOptions, SearchResult, SearchScope, SizeRange
from davfinder.utils.files import normalize_path
from davfinder.web.app import app as web_app


console = Console()
app = typer.Typer(help="DavFinder - search a Nextcloud/WebDAV file store")

HostOption = typer.Option(None, "--host", envvar=HOST_ENV, help="Nextcloud server URL")
UserOption = typer.Option(None, "--user", envvar=USERNAME_ENV, help="Nextcloud username")
PasswordOption = typer.Option(
    None, "--password", envvar=PASSWORD_ENV, help="Nextcloud (app) password"
)
VerboseOption = typer.Option(False, "--verbose", "-v", help="Verbose logging")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _make_client(host: Optional[str], user: Optional[str], password: Optional[str]) -> WebDAVClient:
    config = AppConfig(host=host, username=user, password=password)
    try:
        config.require_credentials()
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    return WebDAVClient(config.host, config.username, config.password)  # type: ignore[arg-type]


def _parse_scopes(values: Optional[List[str]]) -> tuple:
    if not values:
        return (SearchScope.FILENAME, SearchScope.CONTENT)
    try:
        return tuple(SearchScope(value.lower()) for value in values)
    except ValueError as exc:
        raise typer.BadParameter(
            "Scope must be one of: filename, content, metadata", param_hint="--in"
        ) from exc


def _format_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    value = float(size)
    for unit in ("KB", "MB", "GB"):
        value /= 1024
        if value < 1024:
            break
    return f"{value:.1f} {unit}"


def _fail(message: str) -> NoReturn:
    console.print(f"[red]{message}[/red]")
    raise typer.Exit(code=1)


async def _run_search(client: WebDAVClient, options: SearchOptions, config: AppConfig) -> List[SearchResult]:
    engine = SearchEngine(client, config.search)
    timeout = config.search.search_timeout
    try:
        return await asyncio.wait_for(engine.search(options), timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise SearchError(f"Search operation timed out after {timeout:g} seconds") from exc
    finally:
        await client.aclose()


@app.command()
def search(
    query: str = typer.Argument(..., help="Search terms, e.g. 'budget report 2024'"),
    base_path: str = typer.Option("/", "--base-path", "-p", help="Directory to search in"),
    scopes: Optional[List[str]] = typer.Option(
        None, "--in", help="filename, content and/or metadata (repeatable)"
    ),
    file_types: Optional[List[str]] = typer.Option(
        None, "--type", "-t", help="Extension filter, e.g. pdf (repeatable)"
    ),
    limit: int = typer.Option(50, min=1, help="Maximum number of results"),
    include_content: bool = typer.Option(False, "--include-content", help="Show content previews"),
    case_sensitive: bool = typer.Option(False, "--case-sensitive", help="Case sensitive matching"),
    quick: bool = typer.Option(True, "--quick/--no-quick", help="Shallow indexing for root searches"),
    max_depth: Optional[int] = typer.Option(None, "--max-depth", min=0, max=10, help="Maximum depth"),
    min_size: Optional[int] = typer.Option(None, "--min-size", min=0, help="Minimum size in bytes"),
    max_size: Optional[int] = typer.Option(None, "--max-size", min=0, help="Maximum size in bytes"),
    since: Optional[datetime] = typer.Option(
        None, "--since", formats=["%Y-%m-%d"], help="Modified on or after (YYYY-MM-DD)"
    ),
    until: Optional[datetime] = typer.Option(
        None, "--until", formats=["%Y-%m-%d"], help="Modified on or before (YYYY-MM-DD)"
    ),
    host: Optional[str] = HostOption,
    user: Optional[str] = UserOption,
    password: Optional[str] = PasswordOption,
    verbose: bool = VerboseOption,
) -> None:
    """Search files by name, content or metadata."""
    _setup_logging(verbose)
    options = SearchOptions(
        query=query,
        search_in=_parse_scopes(scopes),
        file_types=tuple(file_types) if file_types else None,
        base_path=base_path,
        limit=limit,
        include_content=include_content,
        case_sensitive=case_sensitive,
        size_range=SizeRange(min_size, max_size) if min_size is not None or max_size is not None else None,
        date_range=DateRange(since, until) if since is not None or until is not None else None,
        quick_search=quick,
        max_depth=max_depth,
    )
    config = AppConfig(host=host, username=user, password=password)
    options = limit_quick_root_search(options, config.search.quick_result_limit)
    client = _make_client(host, user, password)

    try:
        results = asyncio.run(_run_search(client, options, config))
    except SearchError as exc:
        console.print(f"[red]{exc.message}[/red]")
        for suggestion in exc.suggestions:
            console.print(f"  - {suggestion}")
        raise typer.Exit(code=1)

    if not results:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Score")
    table.add_column("Path")
    table.add_column("Match")
    table.add_column("Highlights")
    if include_content:
        table.add_column("Preview")

    for result in results:
        row = [
            f"{result.relevance_score:.2f}",
            result.file.path,
            result.match_type.value,
            ", ".join(result.highlights),
        ]
        if include_content:
            row.append((result.content_preview or "").replace("\n", " ")[:180])
        table.add_row(*row)

    console.print(table)


async def _list(client: WebDAVClient, path: str):
    try:
        return parse_listing(await client.list_directory(path), path, 0)
    finally:
        await client.aclose()


@app.command("ls")
def list_directory(
    path: str = typer.Argument("/", help="Directory to list"),
    host: Optional[str] = HostOption,
    user: Optional[str] = UserOption,
    password: Optional[str] = PasswordOption,
) -> None:
    """List a remote directory."""
    client = _make_client(host, user, password)
    target = normalize_path(path)
    try:
        entries = asyncio.run(_list(client, target))
    except RemoteStoreError as exc:
        _fail(str(exc))

    if not entries:
        console.print("[yellow]Directory is empty.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Name")
    table.add_column("Size")
    table.add_column("Modified")
    table.add_column("Type")
    for entry in entries:
        name = f"{entry.name}/" if entry.is_directory else entry.name
        size = "" if entry.is_directory else _format_size(entry.size)
        table.add_row(name, size, entry.last_modified.strftime("%Y-%m-%d %H:%M"), entry.mime_type)
    console.print(table)


async def _close_after(client: WebDAVClient, operation):
    try:
        return await operation
    finally:
        await client.aclose()


@app.command("cat")
def read_file(
    path: str = typer.Argument(..., help="File to print"),
    host: Optional[str] = HostOption,
    user: Optional[str] = UserOption,
    password: Optional[str] = PasswordOption,
) -> None:
    """Print the content of a remote file."""
    client = _make_client(host, user, password)
    try:
        content = asyncio.run(_close_after(client, client.read_file(normalize_path(path))))
    except RemoteStoreError as exc:
        _fail(str(exc))
    console.print(content, markup=False, highlight=False)


@app.command("stat")
def stat(
    path: str = typer.Argument(..., help="File or directory to inspect"),
    host: Optional[str] = HostOption,
    user: Optional[str] = UserOption,
    password: Optional[str] = PasswordOption,
) -> None:
    """Show metadata of a remote file or directory."""
    client = _make_client(host, user, password)
    try:
        metadata = asyncio.run(_close_after(client, client.stat(normalize_path(path))))
    except RemoteStoreError as exc:
        _fail(str(exc))
    if metadata is None:
        _fail(f"Not found: {path}")
    for key, value in metadata.to_dict().items():
        console.print(f"[bold]{key}[/bold]: {value}")


@app.command("put")
def write_file(
    path: str = typer.Argument(..., help="Remote file to write"),
    content: Optional[str] = typer.Option(None, "--content", "-c", help="Text to write"),
    source: Optional[Path] = typer.Option(
        None, "--from", exists=True, dir_okay=False, help="Local file to upload as text"
    ),
    host: Optional[str] = HostOption,
    user: Optional[str] = UserOption,
    password: Optional[str] = PasswordOption,
) -> None:
    """Write text to a remote file."""
    if (content is None) == (source is None):
        raise typer.BadParameter("Provide exactly one of --content or --from")
    text = content if content is not None else source.read_text(encoding="utf-8")  # type: ignore[union-attr]

    client = _make_client(host, user, password)
    target = normalize_path(path)
    try:
        asyncio.run(_close_after(client, client.write_file(target, text)))
    except RemoteStoreError as exc:
        _fail(str(exc))
    console.print(f"File written successfully to {target}")


@app.command("mkdir")
def create_directory(
    path: str = typer.Argument(..., help="Remote directory to create"),
    host: Optional[str] = HostOption,
    user: Optional[str] = UserOption,
    password: Optional[str] = PasswordOption,
) -> None:
    """Create a remote directory."""
    client = _make_client(host, user, password)
    target = normalize_path(path)
    try:
        asyncio.run(_close_after(client, client.create_directory(target)))
    except RemoteStoreError as exc:
        _fail(str(exc))
    console.print(f"Directory created successfully at {target}")


@app.command("rm")
def delete_resource(
    path: str = typer.Argument(..., help="Remote file or directory to delete"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    host: Optional[str] = HostOption,
    user: Optional[str] = UserOption,
    password: Optional[str] = PasswordOption,
) -> None:
    """Delete a remote file or directory."""
    target = normalize_path(path)
    if target == "/":
        raise typer.BadParameter("Refusing to delete the root directory")
    if not yes and not typer.confirm(f"Delete {target}?"):
        raise typer.Abort()

    client = _make_client(host, user, password)
    try:
        asyncio.run(_close_after(client, client.delete_resource(target)))
    except RemoteStoreError as exc:
        _fail(str(exc))
    console.print(f"Resource deleted successfully at {target}")


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
) -> None:
    """Start the web interface."""
    try:
        import uvicorn
    except ImportError as exc:  # pragma: no cover
        raise typer.BadParameter(
            "uvicorn is not installed. Install the web extras with \"python -m pip install '.[web]'\""
        ) from exc

    missing = AppConfig.from_env().missing_credentials()
    if missing:
        console.print(
            f"[yellow]Warning: {', '.join(missing)} not set, requests will fail.[/yellow]"
        )

    console.print(f"Starting web interface on http://{host}:{port}")
    uvicorn.run(
        web_app,
        host=host,
        port=port,
        reload=False,
        log_level="info",
    )
