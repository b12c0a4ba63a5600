"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import os
import sys
import threading
import time
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from tile_prefetch import __version__
from tile_prefetch.core.prefetch_manager import PrefetchManager
from tile_prefetch.core.registry import QueueRegistry
from tile_prefetch.exceptions import TilePrefetchError
from tile_prefetch.fetch.tile_fetcher import close_connection_pool
from tile_prefetch.models.config import BoundingBox
from tile_prefetch.models.layers import LayerId
from tile_prefetch.storage.config_manager import ConfigManager
from tile_prefetch.storage.tile_cache import TileCache

from .formatters import (
    print_config,
    print_plan_table,
    print_summary_panel,
    print_validation_table,
)
from .progress_manager import ProgressManager

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("tile_prefetch")

app = typer.Typer(
    name="tile-prefetch",
    help=(
        "Download map tiles of the aerial and mapnik layers for offline use."
        " Use 'tile-prefetch <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)

# Interactive commands: a line naming a layer toggles it.
INTERACTIVE_COMMANDS = {
    "a": LayerId.AERIAL,
    "aerial": LayerId.AERIAL,
    "m": LayerId.MAPNIK,
    "mapnik": LayerId.MAPNIK,
}
QUIT_COMMANDS = {"q", "quit", "exit"}


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "tile-prefetch"


def get_default_cache_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("LOCALAPPDATA", "~\\AppData\\Local"))
    else:
        base_dir = Path(os.getenv("XDG_CACHE_HOME", "~/.cache"))
    return base_dir.expanduser() / "tile-prefetch"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


def _area_options(
    bbox: str | None, min_zoom: int | None, max_zoom: int | None
) -> dict:
    options = {
        "bbox": bbox,
        "min_zoom": min_zoom,
        "max_zoom": max_zoom,
    }
    return {key: value for key, value in options.items() if value is not None}


def _parse_layers(layers: list[str] | None) -> list[LayerId]:
    if not layers:
        return list(LayerId)
    try:
        return list(dict.fromkeys(LayerId.parse(name) for name in layers))
    except TilePrefetchError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1) from e


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
):
    """Offline tile prefetch CLI"""
    if version:
        console.print(f"[bold]tile-prefetch[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "INFO"
    if verbose >= 2:
        log_level = "DEBUG"
    logging.getLogger("tile_prefetch").setLevel(log_level)

    if show_config:
        if not CONFIG_FILE.is_file():
            console.print(
                "[red]✗ Config file not found.[/] Run [cyan]tile-prefetch init[/cyan]"
                " first."
            )
            raise typer.Exit(code=1)
        config_manager = ConfigManager(CONFIG_FILE)
        print_config(CONFIG_FILE, config_manager.get_config_as_dict())
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    bbox: str = typer.Option(
        ...,
        "--bbox",
        help="Area to make available offline, as 'south,west,north,east' degrees.",
    ),
    cache_dir: Path | None = typer.Option(  # noqa: B008
        None, "--cache-dir", help="Where downloaded tiles are stored."
    ),
    min_zoom: int = typer.Option(12, "--min-zoom", help="Lowest zoom level."),
    max_zoom: int = typer.Option(17, "--max-zoom", help="Highest zoom level."),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration without asking."
    ),
):
    """Create the configuration file."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    try:
        area = BoundingBox.parse(bbox)
    except ValueError as e:
        console.print(f"[red]✗ Invalid bounding box: {e}[/red]")
        raise typer.Exit(code=1) from e

    settings = {
        "bbox": area,
        "min_zoom": min_zoom,
        "max_zoom": max_zoom,
        "cache_dir": str(cache_dir or get_default_cache_dir()),
        "user_agent": f"tile-prefetch/{__version__}",
    }
    config_manager = ConfigManager(CONFIG_FILE)
    config_manager.save_new_config(settings)
    try:
        config_manager.load_config()
    except TilePrefetchError as e:
        console.print(f"[red]✗ Saved configuration is invalid: {e}[/red]")
        raise typer.Exit(code=1) from e
    console.print(f"\n[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")
    console.print("See what is needed with: [cyan]tile-prefetch plan[/cyan]")


@app.command()
def plan(
    bbox: str | None = typer.Option(
        None, "--bbox", help="Override the area, as 'south,west,north,east'."
    ),
    min_zoom: int | None = typer.Option(None, "--min-zoom"),
    max_zoom: int | None = typer.Option(None, "--max-zoom"),
):
    """Show how many tiles each layer still needs."""
    try:
        config = ConfigManager(CONFIG_FILE).load_config(
            _area_options(bbox, min_zoom, max_zoom)
        )
        manager = PrefetchManager(config)
        with console.status("[cyan]Computing tiles needed...[/cyan]"):
            tile_plan = manager.plan()
    except TilePrefetchError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1) from e

    print_plan_table(
        {layer: len(keys) for layer, keys in tile_plan.items()},
        {layer: config.zoom_range(layer) for layer in LayerId},
    )


def _start_command_reader(
    registry: QueueRegistry,
    loop: asyncio.AbstractEventLoop,
    quit_event: asyncio.Event,
) -> threading.Thread:
    """
    Reads toggle commands from stdin on a daemon thread.

    The thread stops at 'q' or EOF, and at the first line read after the
    session has ended.
    """

    def _session_over() -> bool:
        return loop.is_closed() or quit_event.is_set()

    def _read():
        for line in sys.stdin:
            if _session_over():
                return
            command = line.strip().lower()
            if not command:
                continue
            if command in QUIT_COMMANDS:
                break
            layer = INTERACTIVE_COMMANDS.get(command)
            try:
                if layer is None:
                    loop.call_soon_threadsafe(
                        log.warning,
                        f"[yellow]Unknown command '{command}'. Use a, m or q.[/yellow]",
                    )
                else:
                    registry.toggle_threadsafe(layer)
            except RuntimeError:
                # The loop closed between the check and the call.
                return
        if not _session_over():
            try:
                loop.call_soon_threadsafe(quit_event.set)
            except RuntimeError:
                return

    reader = threading.Thread(target=_read, name="command-reader", daemon=True)
    reader.start()
    return reader


@app.command(name="download")
def download_command(
    layers: list[str] | None = typer.Option(  # noqa: B008
        None,
        "--layer",
        "-l",
        help="Layer to start (aerial or mapnik). Repeatable; default is both.",
    ),
    bbox: str | None = typer.Option(
        None, "--bbox", help="Override the area, as 'south,west,north,east'."
    ),
    min_zoom: int | None = typer.Option(None, "--min-zoom"),
    max_zoom: int | None = typer.Option(None, "--max-zoom"),
    interactive: bool = typer.Option(
        False,
        "--interactive",
        "-i",
        help="Toggle layers from stdin: 'a' aerial, 'm' mapnik, 'q' quit.",
    ),
):
    """Download the tiles each layer needs."""
    selected = [] if interactive and not layers else _parse_layers(layers)
    cli_options = _area_options(bbox, min_zoom, max_zoom)

    async def _download_async():
        progress = None

        try:
            config = ConfigManager(CONFIG_FILE).load_config(cli_options)
            manager = PrefetchManager(config)
            with console.status("[cyan]Computing tiles needed...[/cyan]"):
                tile_plan = await manager.plan_async()
        except TilePrefetchError as e:
            console.print(f"[bold red]Error: {e}[/bold red]")
            raise typer.Exit(code=1) from e

        totals = {layer: len(keys) for layer, keys in tile_plan.items()}
        if interactive:
            console.print(
                "[dim]Type [cyan]a[/cyan] + Enter to start/stop aerial, "
                "[cyan]m[/cyan] for mapnik, [cyan]q[/cyan] to quit.[/dim]"
            )

        start_time = time.monotonic()
        quit_event = asyncio.Event() if interactive else None
        try:
            async with ProgressManager(console, totals) as progress:
                registry = manager.create_registry(tile_plan, progress)
                if quit_event is not None:
                    _start_command_reader(
                        registry, asyncio.get_running_loop(), quit_event
                    )
                await manager.run(registry, selected, quit_event)
        finally:
            if quit_event is not None:
                # Lets the stdin reader stop at its next line.
                quit_event.set()
            duration = time.monotonic() - start_time
            await close_connection_pool()
            if progress is not None:
                print_summary_panel(manager.stats, progress.remaining, duration)
                manager.save_session_stats()

    try:
        asyncio.run(_download_async())
    except KeyboardInterrupt:
        console.print(
            "\n[yellow]⚠️  Downloads stopped by user. Fetched tiles stay cached;"
            " run [cyan]tile-prefetch download[/cyan] again to continue.[/yellow]"
        )
        raise typer.Exit() from None


@app.command()
def validate():
    """Validate the current configuration."""
    try:
        config_manager = ConfigManager(CONFIG_FILE)
        config = config_manager.load_config()
        print_validation_table(config)
    except TilePrefetchError as e:
        console.print(f"[red]✗ Configuration is invalid: {e}[/red]")
        raise typer.Exit(code=1) from e


@app.command(name="purge-cache")
def purge_cache(
    all_tiles: bool = typer.Option(
        False, "--all", help="Remove every cached tile, not only expired ones."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Bypass the confirmation prompt for --all."
    ),
):
    """Remove expired (or all) tiles from the cache."""
    try:
        config = ConfigManager(CONFIG_FILE).load_config()
    except TilePrefetchError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(code=1) from e

    if (
        all_tiles
        and not force
        and not typer.confirm("Remove every cached tile of both layers?")
    ):
        console.print("[yellow]Operation cancelled.[/yellow]")
        raise typer.Abort()

    for layer in LayerId:
        cache = TileCache(
            Path(config.cache_dir),
            layer.value,
            extension=config.layer(layer).extension,
            max_age_days=config.cache_max_age_days,
        )
        removed = cache.clear() if all_tiles else cache.purge_expired()
        console.print(f"[green]✓ {layer.value}: removed {removed} tiles.[/green]")
