"""
CLI commands for working with the local image cache.

Provides ``pixelcache cache get``, ``preload``, ``status`` and ``purge``.
Each command builds its own ``ImageCacheService`` from application
settings and closes it before exiting.
"""

from __future__ import annotations

import asyncio
import base64
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from pixelcache.config.settings import settings
from pixelcache.exceptions import (
    EXIT_CODE_GENERAL_ERROR,
    EXIT_CODE_INTERRUPTED,
    EXIT_CODE_INVALID_ARGS,
    EXIT_CODE_STORE_UNAVAILABLE,
    StoreInitializationError,
)
from pixelcache.models.enums import Priority
from pixelcache.models.results import SettledOutcome
from pixelcache.services.image_cache import ImageCacheConfig, ImageCacheService

console = Console()

# Valid --priority values
_VALID_PRIORITIES = {p.value for p in Priority}

app = typer.Typer(
    name="cache",
    help="Load, preload and manage cached images.",
    no_args_is_help=True,
)


def _build_cache_service() -> ImageCacheService:
    """Build an ImageCacheService from application settings.

    Returns
    -------
    ImageCacheService
        Configured image cache service.
    """
    settings.create_directories()
    return ImageCacheService(config=ImageCacheConfig.from_settings(settings))


def _format_size(size: int) -> str:
    """Convert a byte or character count to a human-readable string."""
    if size < 1024:
        return f"{size} B"
    elif size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    elif size < 1024 * 1024 * 1024:
        return f"{size / (1024 * 1024):.1f} MB"
    else:
        return f"{size / (1024 * 1024 * 1024):.1f} GB"


def _store_unavailable(exc: StoreInitializationError) -> typer.Exit:
    console.print(f"[red]Error: image store unavailable: {exc.message}[/red]")
    return typer.Exit(code=EXIT_CODE_STORE_UNAVAILABLE)


# ---------------------------------------------------------------------------
# get
# ---------------------------------------------------------------------------


@app.command(name="get")
def get(
    url: str = typer.Argument(..., help="Image URL to load"),
    priority: str = typer.Option(
        "normal",
        "--priority",
        "-p",
        help='Queue priority: "high", "normal", or "low"',
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the decoded image bytes to this file",
    ),
) -> None:
    """
    Load one image through the cache.

    Served from the cache when present; otherwise fetched with retries
    and stored. Exits with code 1 when the fallback image was returned.

    Examples:
        pixelcache cache get https://picsum.photos/200/300
        pixelcache cache get https://picsum.photos/200/300 -o photo.jpg
    """
    if priority not in _VALID_PRIORITIES:
        console.print(
            f'[red]Error: Invalid --priority "{priority}". '
            f"Must be one of: {', '.join(sorted(_VALID_PRIORITIES))}[/red]"
        )
        raise typer.Exit(code=EXIT_CODE_INVALID_ARGS)

    try:
        asyncio.run(_get_async(url=url, priority=Priority(priority), output=output))
    except KeyboardInterrupt:
        console.print("\n[yellow]Image load interrupted by user[/yellow]")
        raise typer.Exit(code=EXIT_CODE_INTERRUPTED)


async def _get_async(*, url: str, priority: Priority, output: Path | None) -> None:
    """Async implementation of the cache get command."""
    service = _build_cache_service()
    try:
        payload = await service.get_image(url, priority=priority)
    except StoreInitializationError as exc:
        raise _store_unavailable(exc)
    finally:
        await service.close()

    if payload == service.fallback or not payload.startswith("data:"):
        console.print(f"[yellow]Image unavailable, fallback: {payload}[/yellow]")
        raise typer.Exit(code=EXIT_CODE_GENERAL_ERROR)

    header, _, encoded = payload.partition(",")
    mime = header[len("data:") :].split(";", 1)[0]
    body = base64.b64decode(encoded)
    console.print(f"[green]Loaded {url}[/green] ({mime}, {_format_size(len(body))})")

    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(body)
        console.print(f"  Written to {output}")


# ---------------------------------------------------------------------------
# preload
# ---------------------------------------------------------------------------


@app.command(name="preload")
def preload(
    urls: Optional[List[str]] = typer.Argument(None, help="Image URLs to preload"),
    from_file: Optional[Path] = typer.Option(
        None,
        "--file",
        "-f",
        help="Read URLs from a file, one per line",
        exists=True,
        dir_okay=False,
    ),
) -> None:
    """
    Fetch and store many images at low priority.

    One URL failing never stops the others. Exits with code 1 if any URL
    ended up with the fallback image.

    Examples:
        pixelcache cache preload https://a.example/1.jpg https://a.example/2.jpg
        pixelcache cache preload --file urls.txt
    """
    all_urls = list(urls or [])
    if from_file is not None:
        for line in from_file.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if line and not line.startswith("#"):
                all_urls.append(line)

    if not all_urls:
        console.print("[red]Error: no URLs given (pass URLs or --file)[/red]")
        raise typer.Exit(code=EXIT_CODE_INVALID_ARGS)

    try:
        asyncio.run(_preload_async(all_urls))
    except KeyboardInterrupt:
        console.print("\n[yellow]Preload interrupted by user[/yellow]")
        raise typer.Exit(code=EXIT_CODE_INTERRUPTED)


async def _preload_async(urls: list[str]) -> None:
    """Async implementation of the cache preload command."""
    service = _build_cache_service()
    try:
        await service.open()
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            TimeElapsedColumn(),
            console=console,
            transient=True,
        ) as progress:
            progress.add_task(f"Preloading {len(urls)} image(s)", total=None)
            outcomes = await service.preload_images(urls)
    except StoreInitializationError as exc:
        raise _store_unavailable(exc)
    finally:
        await service.close()

    failed = _display_preload_summary(outcomes, fallback=service.fallback)
    if failed:
        raise typer.Exit(code=EXIT_CODE_GENERAL_ERROR)


def _display_preload_summary(outcomes: list[SettledOutcome], *, fallback: str) -> int:
    """Print a per-URL results table and return the number of failures."""
    table = Table(title="Preload Summary")
    table.add_column("URL", style="cyan", overflow="fold")
    table.add_column("Result", justify="right")

    failed = 0
    for outcome in outcomes:
        if not outcome.ok:
            failed += 1
            table.add_row(outcome.url, f"[red]error: {outcome.reason}[/red]")
        elif outcome.value == fallback:
            failed += 1
            table.add_row(outcome.url, "[yellow]fallback[/yellow]")
        else:
            table.add_row(
                outcome.url, f"[green]cached ({_format_size(len(outcome.value or ''))})[/green]"
            )

    console.print()
    console.print(table)
    console.print(
        f"\n  {len(outcomes) - failed} cached, {failed} failed, {len(outcomes)} total\n"
    )
    return failed


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


@app.command(name="status")
def status() -> None:
    """
    Display cache statistics.

    Examples:
        pixelcache cache status
    """
    try:
        asyncio.run(_status_async())
    except KeyboardInterrupt:
        console.print("\n[yellow]Status check interrupted by user[/yellow]")
        raise typer.Exit(code=EXIT_CODE_INTERRUPTED)


async def _status_async() -> None:
    """Async implementation of the cache status command."""
    service = _build_cache_service()
    try:
        stats = await service.get_stats()
    except StoreInitializationError as exc:
        raise _store_unavailable(exc)
    finally:
        await service.close()

    table = Table(title="Image Cache Status")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")

    table.add_row("Cached images", f"{stats.entry_count:,} / {stats.capacity:,}")
    table.add_row("Payload size", _format_size(stats.total_payload_chars))

    console.print()
    console.print(table)
    console.print()

    console.print(f"  Store: {service.config.database_url}")
    if stats.oldest_entry is not None:
        console.print(f"  Oldest entry: {stats.oldest_entry.strftime('%Y-%m-%d %H:%M')}")
    if stats.newest_entry is not None:
        console.print(f"  Newest entry: {stats.newest_entry.strftime('%Y-%m-%d %H:%M')}")
    console.print()


# ---------------------------------------------------------------------------
# purge
# ---------------------------------------------------------------------------


@app.command(name="purge")
def purge(
    force: bool = typer.Option(
        False,
        "--force",
        help="Skip confirmation prompt",
    ),
) -> None:
    """
    Delete every cached image.

    Examples:
        pixelcache cache purge
        pixelcache cache purge --force
    """
    if not force:
        confirmation = typer.confirm(
            "Are you sure you want to purge all cached images?",
            default=False,
        )
        if not confirmation:
            console.print("[yellow]Purge cancelled by user[/yellow]")
            raise typer.Exit(code=EXIT_CODE_GENERAL_ERROR)

    try:
        asyncio.run(_purge_async())
    except KeyboardInterrupt:
        console.print("\n[yellow]Purge interrupted by user[/yellow]")
        raise typer.Exit(code=EXIT_CODE_INTERRUPTED)


async def _purge_async() -> None:
    """Async implementation of the cache purge command."""
    service = _build_cache_service()
    try:
        stats = await service.get_stats()
        await service.clear_cache()
    except StoreInitializationError as exc:
        raise _store_unavailable(exc)
    finally:
        await service.close()

    console.print()
    console.print(
        f"[green]Purge complete: removed {stats.entry_count} image(s), "
        f"freed {_format_size(stats.total_payload_chars)}[/green]"
    )
    console.print()
