"""
Main CLI entry point for pixelcache.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel

from pixelcache import __version__
from pixelcache.cli.commands.cache import app as cache_app
from pixelcache.cli.logging_setup import configure_logging
from pixelcache.config.settings import settings

console = Console()

app = typer.Typer(
    name="pixelcache",
    help="Prioritised, retrying, durable image loader",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Add subcommands
app.add_typer(cache_app, name="cache", help="Image cache commands")


@app.command()
def version() -> None:
    """Show version information."""
    console.print(
        Panel(
            f"[bold blue]pixelcache[/bold blue] v{__version__}",
            title="Version",
            border_style="blue",
        )
    )


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False, "--version", "-v", help="Show version and exit"
    ),
    verbose: bool = typer.Option(
        False, "--verbose", help="Log at DEBUG level to stderr"
    ),
    log_file: Optional[Path] = typer.Option(
        None, "--log-file", help="Also write logs to this file"
    ),
) -> None:
    """
    pixelcache - Prioritised, retrying, durable image loader.

    Fetches remote images through a bounded priority queue, caches them
    in a FIFO-evicting store and remembers URLs that keep failing.
    """
    if version:
        console.print(f"pixelcache v{__version__}")
        raise typer.Exit(code=0)

    configure_logging(settings.log_level, verbose=verbose, log_file=log_file)

    if ctx.invoked_subcommand is None:
        console.print(
            "[yellow]Use 'pixelcache --help' for available commands[/yellow]"
        )
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
