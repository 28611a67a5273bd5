"""
CLI for gridcache.

Commands:
    gridcache show - Open a cache (seeding it if needed) and print rows
    gridcache put KEY JSON - Insert or overwrite one row
    gridcache remove KEY - Delete one row
    gridcache config - Show current configuration
    gridcache version - Print version
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated, Any, Optional

import orjson
import typer
from rich.console import Console
from rich.table import Table

from gridcache import __version__
from gridcache.cache import GridCache
from gridcache.config import Settings, clear_settings_cache, get_settings
from gridcache.dataset import DatasetBuilder, JsonDatasetBuilder
from gridcache.logging import setup_logging
from gridcache.runtime import open_cache
from gridcache.types import CacheOptions, Schema

app = typer.Typer(
    name="gridcache",
    help="gridcache - persisted in-memory row cache",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)

# Shape of the channel-listing dataset the grid was first built for
CHANNELS_SCHEMA = Schema(
    name="Channels",
    sample={
        "ID": -1,
        "Call_Sign": " ",
        "Affiliate": " ",
        "Virtual_Channel": 0,
        "Keep": " ",
        "Band": " ",
        "Heading": " ",
        "Distance": " ",
        "Strength": " ",
    },
    read_only=("ID",),
)

SizeOption = Annotated[
    Optional[int],
    typer.Option("--size", "-s", help="Dataset size (defaults to DEFAULT_DATASET_SIZE)"),
]
DatasetOption = Annotated[
    Optional[Path],
    typer.Option("--dataset", "-d", help="JSON array of rows used to seed an empty store"),
]


def _get_settings_safe() -> Settings | None:
    """Get settings, returning None if configuration is invalid."""
    try:
        clear_settings_cache()
        return get_settings()
    except Exception:
        return None


def _load_settings() -> Settings:
    settings = _get_settings_safe()
    if settings is None:
        error_console.print(
            "[red]Error:[/red] Configuration is invalid. "
            "Run 'gridcache config' to see what's wrong."
        )
        raise typer.Exit(1)
    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)
    return settings


def _options(settings: Settings, size: int | None) -> CacheOptions:
    return CacheOptions(
        schema=CHANNELS_SCHEMA,
        size=size if size is not None else settings.DEFAULT_DATASET_SIZE,
    )


def _builder(dataset: Path | None) -> DatasetBuilder | None:
    if dataset is None:
        return None
    return JsonDatasetBuilder(dataset, identity=CHANNELS_SCHEMA.identity)


def _rows_table(cache: GridCache, rows: int) -> Table:
    table = Table(title=f"{cache.store_key} ({len(cache)} rows)", show_header=True)
    for column in cache.columns:
        style = "dim" if column.read_only else "green"
        table.add_column(column.name, style=style)
    for record in cache.query_set[:rows]:
        table.add_row(*(str(record.get(column.name, "")) for column in cache.columns))
    return table


async def _run_show(settings: Settings, options: CacheOptions, builder: Any, rows: int) -> int:
    async with open_cache(options, settings=settings, builder=builder) as runtime:
        if runtime.bootstrap_result != "ok":
            error_console.print(f"[red]Error:[/red] {runtime.bootstrap_result}")
            return 1
        console.print(_rows_table(runtime.cache, rows))
    return 0


async def _run_put(
    settings: Settings, options: CacheOptions, builder: Any, key: int, record: dict[str, Any]
) -> str:
    async with open_cache(options, settings=settings, builder=builder) as runtime:
        return runtime.cache.set(key, record)


async def _run_remove(
    settings: Settings, options: CacheOptions, builder: Any, key: int
) -> bool | str:
    async with open_cache(options, settings=settings, builder=builder) as runtime:
        return runtime.cache.delete(key)


@app.command()
def show(
    size: SizeOption = None,
    rows: Annotated[int, typer.Option("--rows", "-r", help="Rows to print")] = 10,
    dataset: DatasetOption = None,
) -> None:
    """Open the cache and print its first rows.

    Seeds the store on first use for a given size.
    """
    settings = _load_settings()
    code = asyncio.run(_run_show(settings, _options(settings, size), _builder(dataset), rows))
    if code:
        raise typer.Exit(code)


@app.command()
def put(
    key: Annotated[int, typer.Argument(help="Identity key of the row")],
    record: Annotated[str, typer.Argument(help="Row as a JSON object")],
    size: SizeOption = None,
    dataset: DatasetOption = None,
) -> None:
    """Insert or overwrite one row and persist the working set."""
    settings = _load_settings()
    try:
        value = orjson.loads(record)
    except orjson.JSONDecodeError as e:
        error_console.print(f"[red]Error:[/red] row is not valid JSON: {e}")
        raise typer.Exit(1)
    if not isinstance(value, dict):
        error_console.print("[red]Error:[/red] row must be a JSON object")
        raise typer.Exit(1)

    result = asyncio.run(
        _run_put(settings, _options(settings, size), _builder(dataset), key, value)
    )
    if result.startswith("Error "):
        error_console.print(f"[red]{result}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Saved row {result}[/green]")


@app.command()
def remove(
    key: Annotated[int, typer.Argument(help="Identity key of the row")],
    size: SizeOption = None,
    dataset: DatasetOption = None,
) -> None:
    """Delete one row and persist the working set."""
    settings = _load_settings()
    result = asyncio.run(
        _run_remove(settings, _options(settings, size), _builder(dataset), key)
    )
    if isinstance(result, str):
        error_console.print(f"[red]{result}[/red]")
        raise typer.Exit(1)
    if not result:
        console.print(f"[yellow]No row with key {key}[/yellow]")
        raise typer.Exit(1)
    console.print(f"[green]Removed row {key}[/green]")


@app.command()
def config() -> None:
    """Show current configuration."""
    console.print()
    console.print("[bold]gridcache Configuration[/bold]")
    console.print()

    settings = _get_settings_safe()

    if settings is None:
        error_console.print("[red]Configuration is invalid.[/red]")
        error_console.print()
        error_console.print("Check these environment variables:")
        error_console.print("  - STORE_COLLECTION (must be a valid identifier)")
        error_console.print("  - RPC_TIMEOUT_SECONDS (must be positive when set)")
        error_console.print("  - DEFAULT_DATASET_SIZE (must be at least 1)")
        raise typer.Exit(1)

    table = Table(title="Settings", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for key, value in settings.display().items():
        display_value = str(value) if value is not None else "[dim]not set[/dim]"
        table.add_row(key, display_value)

    console.print(table)
    console.print()


@app.command()
def version() -> None:
    """Print the version number."""
    console.print(f"gridcache version {__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
