"""
Manages a Rich Live display of both layer queues: remaining tiles per layer,
whether each queue is running, and whether any downloads are in progress.
"""

import asyncio
import logging
from datetime import datetime

from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)
from rich.text import Text

from tile_prefetch.core.observer import QueueObserver
from tile_prefetch.models.layers import LayerId, QueueState
from tile_prefetch.utils.formatting import format_tiles_needed

log = logging.getLogger("tile_prefetch")

LAYER_TITLES = {
    LayerId.AERIAL: "Aerial imagery",
    LayerId.MAPNIK: "OpenStreetMap (Mapnik)",
}

STATE_LABELS = {
    QueueState.IDLE: "[dim]■ stopped[/dim]",
    QueueState.RUNNING: "[cyan]▶ downloading[/cyan]",
}


class ProgressManager(QueueObserver):
    """
    The console controller for a prefetch session.

    Turns queue events into labels: "<n> tiles needed" per layer, a
    running/stopped marker, and a header that warns not to quit while any
    download is active.
    """

    def __init__(
        self, console: Console, totals: dict[LayerId, int], live: bool = True
    ):
        self.console = console
        self.live = live
        self.totals = dict(totals)
        self.remaining = dict(totals)
        self.states = {layer: QueueState.IDLE for layer in totals}
        self.finished: set[LayerId] = set()
        self.downloads_active = False
        self.start_time: datetime | None = None

        self.progress = Progress(
            TextColumn("[bold]{task.description}", justify="left"),
            BarColumn(bar_width=30),
            MofNCompleteColumn(),
            "•",
            TextColumn("{task.fields[needed]}"),
            "•",
            TextColumn("{task.fields[state]}"),
            "•",
            TimeElapsedColumn(),
            console=console,
        )
        self._tasks: dict[LayerId, TaskID] = {}
        for layer, total in self.totals.items():
            self._tasks[layer] = self.progress.add_task(
                LAYER_TITLES.get(layer, layer.value),
                total=total,
                completed=0,
                start=False,
                needed=format_tiles_needed(total),
                state=STATE_LABELS[QueueState.IDLE],
            )

        self._live: Live | None = None
        self._layout: Layout | None = None

    def log_message(self, message: str, level: str = "info"):
        """Logs through the live console when one is active."""
        getattr(log, level, log.info)(message)

    def on_state_changed(self, layer: LayerId, state: QueueState) -> None:
        self.states[layer] = state
        task_id = self._tasks.get(layer)
        if task_id is not None:
            label = STATE_LABELS[state]
            if state is QueueState.IDLE and layer in self.finished:
                label = "[green]✓ done[/green]"
            if state is QueueState.RUNNING:
                self.progress.start_task(task_id)
            else:
                self.progress.stop_task(task_id)
            self.progress.update(task_id, state=label)
        self._update_display()

    def on_remaining_changed(self, layer: LayerId, remaining: int) -> None:
        self.remaining[layer] = remaining
        task_id = self._tasks.get(layer)
        if task_id is not None:
            self.progress.update(
                task_id,
                completed=self.totals.get(layer, 0) - remaining,
                needed=format_tiles_needed(remaining),
            )
        self._update_display()

    def on_queue_empty(self, layer: LayerId) -> None:
        self.finished.add(layer)
        task_id = self._tasks.get(layer)
        if task_id is not None:
            self.progress.update(task_id, state="[green]✓ done[/green]")
        self.log_message(
            f"[green]✓ {LAYER_TITLES.get(layer, layer.value)}: no tiles left.[/green]"
        )
        self._update_display()

    def on_downloads_active_changed(self, active: bool) -> None:
        self.downloads_active = active
        self._update_display()

    def _create_layout(self) -> Layout:
        layout = Layout()
        layout.split_column(
            Layout(name="header", size=3),
            Layout(name="progress", size=len(self._tasks) + 2),
        )
        return layout

    def _generate_header(self) -> Panel:
        if self.start_time:
            elapsed = (datetime.now() - self.start_time).total_seconds()
            elapsed_str = (
                f"{int(elapsed // 3600):02d}:"
                f"{int((elapsed % 3600) // 60):02d}:{int(elapsed % 60):02d}"
            )
        else:
            elapsed_str = "00:00:00"
        header_text = Text()
        header_text.append("🗺  Offline Tiles ", style="bold cyan")
        header_text.append("│ ", style="dim")
        header_text.append(f"Session: {elapsed_str}", style="yellow")
        header_text.append(" │ ", style="dim")
        if self.downloads_active:
            header_text.append(
                "⏳ Downloads in progress (Ctrl+C stops them)", style="magenta"
            )
        else:
            header_text.append("Idle", style="dim")
        return Panel(header_text, border_style="cyan")

    def _update_display(self):
        """Updates all panels in the layout, letting the Live object handle refresh rate."""
        if not self._layout:
            return
        self._layout["header"].update(self._generate_header())
        self._layout["progress"].update(
            Panel(self.progress, title="[bold]📥 Layers[/bold]", border_style="green")
        )

    async def __aenter__(self):
        self.start_time = datetime.now()
        if not self.live:
            return self
        self._layout = self._create_layout()
        self._update_display()
        self._live = Live(
            self._layout,
            console=self.console,
            refresh_per_second=8,
            vertical_overflow="visible",
        )
        self._live.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._live:
            self._update_display()
            await asyncio.sleep(0.2)
            self._live.stop()
