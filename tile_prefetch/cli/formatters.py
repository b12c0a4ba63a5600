"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from tile_prefetch.models.config import PrefetchConfig
from tile_prefetch.models.layers import LayerId
from tile_prefetch.models.stats import FetchStats
from tile_prefetch.utils.formatting import (
    format_duration,
    format_size,
    format_tiles_needed,
)


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "ConfigurationError": [
            "• Run `tile-prefetch init --bbox S,W,N,E` to create a configuration.",
            "• Run `tile-prefetch validate` to see which setting is rejected.",
        ],
        "UnknownLayerError": [
            "• Use `--layer aerial` or `--layer mapnik`.",
        ],
        "InvalidTileKeyError": [
            "• Tile keys have the form 'zoom,x,y', e.g. '16,34322,22950'.",
        ],
        "ClientResponseError": [
            "• The tile server rejected a request.",
            "• Check the layer's url_template in the configuration file.",
        ],
        "TimeoutError": [
            "• The tile server did not answer in time.",
            "• Increase `request_timeout` or reduce `max_connections`.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    suggestion_text = Text("\n".join(suggestions))

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(suggestion_text)

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the current configuration."""
    console = Console()
    content = ""
    for key, value in config_data.items():
        if isinstance(value, dict):
            content += f"\n[{key}]\n"
            for sub_key, sub_value in value.items():
                content += f"  {sub_key} = {sub_value}\n"
        else:
            content += f"{key} = {value}\n"

    console.print(
        Panel(
            content.strip(),
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_validation_table(config: PrefetchConfig):
    """Displays a summary of the current settings."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()

    table.add_row("Area:", config.bbox.to_string())
    table.add_row("Zoom:", f"{config.min_zoom} – {config.max_zoom}")
    table.add_row("Cache:", f"[dim]{config.cache_dir}[/dim]")
    table.add_row(
        "Cache Expiry:",
        f"{config.cache_max_age_days} days" if config.cache_max_age_days else "never",
    )
    table.add_row("Max Connections:", str(config.max_connections))
    for layer in LayerId:
        layer_config = config.layer(layer)
        zooms = config.zoom_range(layer)
        zoom_text = f"{zooms.start}–{zooms.stop - 1}" if zooms else "[red]none[/red]"
        table.add_row(
            f"{layer.value.capitalize()}:",
            f"[dim]{layer_config.url_template}[/dim] (zoom {zoom_text})",
        )

    console.print(
        Panel(
            table,
            title="[bold green]✓ Validated Settings[/bold green]",
            border_style="green",
        )
    )


def print_plan_table(plan_counts: dict[LayerId, int], zoom_ranges: dict[LayerId, range]):
    """Displays how many tiles each layer still needs."""
    console = Console()
    table = Table(title="Offline Tiles", box=box.ROUNDED)
    table.add_column("Layer", style="cyan")
    table.add_column("Zoom", justify="center")
    table.add_column("Needed", justify="right", style="green")
    for layer, count in plan_counts.items():
        zooms = zoom_ranges.get(layer)
        zoom_text = f"{zooms.start}–{zooms.stop - 1}" if zooms else "–"
        table.add_row(layer.value, zoom_text, format_tiles_needed(count))
    console.print(table)


def print_summary_panel(
    stats: dict[LayerId, FetchStats],
    remaining: dict[LayerId, int],
    duration_s: float,
):
    """Displays the final summary of a prefetch session."""
    console = Console()

    table = Table(box=box.SIMPLE_HEAD, padding=(0, 2))
    table.add_column("Layer", style="bold cyan")
    table.add_column("✓ Downloaded", justify="right", style="green")
    table.add_column("○ Cached", justify="right", style="yellow")
    table.add_column("✗ Failed", justify="right", style="red")
    table.add_column("Size", justify="right")
    table.add_column("Remaining", justify="right", style="cyan")

    total_bytes = 0
    for layer, layer_stats in stats.items():
        total_bytes += layer_stats.bytes_downloaded
        table.add_row(
            layer.value,
            str(layer_stats.fetched),
            str(layer_stats.already_cached),
            str(layer_stats.failed),
            format_size(layer_stats.bytes_downloaded),
            str(remaining.get(layer, 0)),
        )

    footer = Text()
    footer.append("Duration: ", style="bold")
    footer.append(format_duration(duration_s))
    footer.append("   Total: ", style="bold")
    footer.append(format_size(total_bytes))
    if duration_s > 0 and total_bytes > 0:
        footer.append("   Avg Speed: ", style="bold")
        footer.append(f"{format_size(int(total_bytes / duration_s))}/s")

    content = Table.grid(padding=(1, 0))
    content.add_row(table)
    content.add_row(footer)

    console.print(
        Panel(
            content,
            title="[bold]📊 Session Summary[/bold]",
            border_style="blue",
            expand=False,
        )
    )
