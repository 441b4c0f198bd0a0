"""
Manages a Rich Live display for one job: a header with the current transfer
speed, a bar per track being downloaded and a bar for the final mux.
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
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)
from rich.text import Text

log = logging.getLogger("segmux")


class ProgressManager:
    """
    Owns the progress bars of a job. With `quiet=True` nothing is drawn and
    every method is a no-op, which is what stdout passthrough needs.
    """

    def __init__(self, console: Console, title: str = "", quiet: bool = False):
        self.console = console
        self.title = title
        self.quiet = quiet

        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}", justify="left"),
            BarColumn(bar_width=30),
            "[progress.percentage]{task.percentage:>3.0f}%",
            "•",
            DownloadColumn(),
            "•",
            TransferSpeedColumn(),
            "•",
            TimeRemainingColumn(),
            console=console,
            transient=False,
        )
        self.mux_progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(bar_width=40),
            "[progress.percentage]{task.percentage:>3.0f}%",
            TimeRemainingColumn(),
            console=console,
        )

        self._live: Live | None = None
        self._layout: Layout | None = None
        self._mux_tasks: set[TaskID] = set()
        self._stats = {
            "completed": 0,
            "failed": 0,
            "active_downloads": 0,
            "start_time": None,
            "current_speed": 0.0,
            "peak_speed": 0.0,
        }

    def log_message(self, message: str, level: str = "info"):
        getattr(log, level, log.info)(message)

    def update_speed(self, speed_bps: float):
        self._stats["current_speed"] = speed_bps
        self._stats["peak_speed"] = max(self._stats["peak_speed"], speed_bps)

    def _create_layout(self) -> Layout:
        layout = Layout()
        layout.split_column(
            Layout(name="header", size=3),
            Layout(name="progress", ratio=1),
        )
        return layout

    def _generate_header(self) -> Panel:
        if self._stats["start_time"]:
            elapsed = int((datetime.now() - self._stats["start_time"]).total_seconds())
            elapsed_str = f"{elapsed // 3600:02d}:{elapsed % 3600 // 60:02d}:{elapsed % 60:02d}"
        else:
            elapsed_str = "00:00:00"
        header_text = Text()
        header_text.append("segmux ", style="bold cyan")
        if self.title:
            header_text.append("│ ", style="dim")
            header_text.append(self.title, style="bold")
            header_text.append(" ")
        header_text.append("│ ", style="dim")
        header_text.append(f"Elapsed: {elapsed_str}", style="yellow")
        if self._stats["current_speed"] > 0:
            speed_mb = self._stats["current_speed"] / (1024 * 1024)
            header_text.append(" │ ", style="dim")
            header_text.append(f"{speed_mb:.1f} MB/s", style="magenta")
        return Panel(header_text, border_style="cyan")

    def _generate_progress_panel(self) -> Panel:
        if self._mux_tasks:
            return Panel(
                self.mux_progress,
                title="[bold]Muxing[/bold]",
                border_style="blue",
            )
        if not self._stats["active_downloads"]:
            return Panel(
                Text(
                    "Waiting for downloads to start...",
                    style="dim italic",
                    justify="center",
                ),
                title="[bold]Active Downloads[/bold]",
                border_style="green",
            )
        return Panel(
            self.progress,
            title=f"[bold]Active Downloads ({self._stats['active_downloads']})[/bold]",
            border_style="green",
        )

    def _update_display(self):
        if self.quiet or not self._layout:
            return
        self._layout["header"].update(self._generate_header())
        self._layout["progress"].update(self._generate_progress_panel())

    def add_track_task(self, description: str, total_size: int) -> TaskID | None:
        if self.quiet:
            return None
        if len(description) > 50:
            description = description[:47] + "..."
        task_id = self.progress.add_task(
            description, total=total_size or None, start=True
        )
        self._stats["active_downloads"] += 1
        self._update_display()
        return task_id

    def update_task_progress(self, task_id: TaskID | None, completed: int):
        if task_id is not None and not self.quiet:
            self.progress.update(task_id, completed=completed)
            self._update_display()

    def update_task_total(self, task_id: TaskID | None, total: int):
        if task_id is not None and not self.quiet and total > 0:
            self.progress.update(task_id, total=total)

    def add_mux_task(self, description: str) -> TaskID | None:
        if self.quiet:
            return None
        task_id = self.mux_progress.add_task(description, total=100.0)
        self._mux_tasks.add(task_id)
        self._update_display()
        return task_id

    def update_mux_progress(self, task_id: TaskID | None, percent: float):
        if task_id is not None and not self.quiet:
            self.mux_progress.update(task_id, completed=percent)

    def remove_task(self, task_id: TaskID | None, success: bool = True):
        if task_id is None or self.quiet:
            return
        if task_id in self._mux_tasks:
            self._mux_tasks.discard(task_id)
            self.mux_progress.remove_task(task_id)
        else:
            try:
                self.progress.remove_task(task_id)
            except KeyError:
                return
            self._stats["active_downloads"] -= 1
            if success:
                self._stats["completed"] += 1
            else:
                self._stats["failed"] += 1
        self._update_display()

    def get_statistics(self) -> dict:
        return self._stats.copy()

    async def __aenter__(self):
        self._stats["start_time"] = datetime.now()
        if self.quiet:
            return self
        self._layout = self._create_layout()
        self._update_display()
        self._live = Live(
            self._layout,
            console=self.console,
            refresh_per_second=12,
            vertical_overflow="visible",
        )
        self._live.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._live and not self.quiet:
            await asyncio.sleep(0.2)
            self._live.stop()
