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

from segmux.media.ffmpeg import FFmpegPreset
from segmux.models.stats import JobStats
from segmux.utils.formatting import format_duration, format_offset_ms, format_size


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "ConfigurationError": [
            "• Check the values in your configuration file.",
            "• Run `segmux --show-config` to see what is loaded.",
            "• Run `segmux init --force` to start from the defaults.",
        ],
        "SegmentDownloadError": [
            "• The segment URL may have expired. Resolve the job again.",
            "• Check your internet connection.",
            "• Raise `max_attempts` or `retry_delay` for flaky networks.",
        ],
        "DecryptionError": [
            "• The segment key or IV in the job file is probably wrong.",
            "• Resolve the job again to get fresh key material.",
        ],
        "ReassemblyError": [
            "• A segment was lost while downloading. Try again.",
            "• Run the command with -v for detailed logs.",
        ],
        "FileIntegrityError": [
            "• The downloaded data is not a valid media file.",
            "• Disable the check with `verify_tracks = false` if the source is unusual.",
        ],
        "MissingLocaleError": [
            "• The job does not contain every requested locale.",
            "• Set `missing_locale = warn` to continue without them.",
        ],
        "SyncError": [
            "• The audio tracks do not share enough matching audio.",
            "• Disable synchronization with `--no-sync`.",
            "• Try a higher `sync_tolerance`.",
        ],
        "FingerprintError": [
            "• ffmpeg could not decode the audio track.",
            "• Make sure your ffmpeg build includes the chromaprint muxer.",
        ],
        "FFmpegNotFoundError": [
            "• Install ffmpeg and make sure it is on your PATH.",
            "• Run `segmux diagnose` to check your setup.",
        ],
        "MuxError": [
            "• Check the ffmpeg output above.",
            "• Try the default preset (stream copy) or another output format.",
        ],
        "ClientResponseError": [
            "• A network connection issue occurred.",
            "• The server might be temporarily unavailable.",
            "• Please try again in a few minutes.",
        ],
        "TimeoutError": [
            "• A download timed out, which may indicate network throttling.",
            "• Check your internet speed.",
            "• Try reducing the number of `--workers`.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -v for detailed logs."]
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
    """Displays the current configuration file contents."""
    console = Console()
    content = ""
    for key, value in config_data.items():
        content += f"{key} = {value}\n"

    console.print(
        Panel(
            content.strip() or "[dim]empty[/dim]",
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_presets():
    """Lists the predefined ffmpeg presets."""
    console = Console()
    table = Table(box=box.ROUNDED, title="[bold]ffmpeg presets[/bold]")
    table.add_column("Name", style="bold magenta", no_wrap=True)
    table.add_column("Description")
    for name, description in FFmpegPreset.available_names():
        table.add_row(name, description)
    console.print(table)
    console.print(
        "[dim]Anything that is not a preset name is passed to ffmpeg as custom "
        "output arguments. The default is stream copy.[/dim]"
    )


def print_offsets(offsets: dict[str, float], console: Console | None = None):
    """Displays synchronization offsets; the reference track has 0 ms."""
    console = console or Console()
    table = Table(show_header=True, box=box.SIMPLE)
    table.add_column("Track", style="cyan")
    table.add_column("Offset", justify="right")
    for track_id, offset in offsets.items():
        style = "dim" if offset == 0 else "green"
        table.add_row(track_id, f"[{style}]{format_offset_ms(offset)}[/{style}]")
    console.print(table)


def print_summary_panel(
    stats: JobStats,
    duration_s: float,
    destination: Path | None = None,
    offsets: dict[str, float] | None = None,
):
    """Displays the final summary of a job."""
    console = Console(stderr=True)

    stats_table = Table(show_header=False, box=None, padding=(0, 2))
    stats_table.add_column(style="bold cyan", justify="right", width=20)
    stats_table.add_column(style="white", justify="left")

    if stats.skipped:
        stats_table.add_row("○ Skipped:", "[yellow]destination already exists[/yellow]")
    else:
        stats_table.add_row(
            "✓ Tracks:", f"[bold green]{stats.tracks_downloaded}[/bold green]"
        )
        stats_table.add_row("Segments:", f"[green]{stats.segments_downloaded}[/green]")
        if destination is not None:
            stats_table.add_row("Output:", f"[dim]{destination}[/dim]")

        stats_table.add_row("", "")
        stats_table.add_row(
            "Total Size:", f"[cyan]{format_size(stats.total_size_downloaded)}[/cyan]"
        )
        if stats.download_seconds > 0:
            avg_speed = stats.total_size_downloaded / stats.download_seconds
            stats_table.add_row(
                "Avg. Speed:", f"[magenta]{format_size(int(avg_speed))}/s[/magenta]"
            )
        if stats.peak_speed_bps > 0:
            stats_table.add_row(
                "Peak Speed:",
                f"[magenta]{format_size(int(stats.peak_speed_bps))}/s[/magenta]",
            )
        if offsets:
            shifted = {k: v for k, v in offsets.items() if v}
            stats_table.add_row(
                "Audio Offsets:",
                ", ".join(f"{k} {format_offset_ms(v)}" for k, v in shifted.items())
                or "[dim]none needed[/dim]",
            )
        if stats.sync_seconds > 0:
            stats_table.add_row(
                "Sync Time:", f"[blue]{format_duration(stats.sync_seconds)}[/blue]"
            )
        stats_table.add_row(
            "Mux Time:", f"[blue]{format_duration(stats.mux_seconds)}[/blue]"
        )

    stats_table.add_row("Time Elapsed:", f"[blue]{format_duration(duration_s)}[/blue]")

    console.print()
    console.print(
        Panel(
            stats_table,
            title="[bold]Job Complete![/bold]",
            border_style="yellow" if stats.skipped else "green",
            box=box.DOUBLE,
            expand=False,
            padding=(1, 2),
        )
    )
    console.print()
