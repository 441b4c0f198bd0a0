"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import os
import shutil
import subprocess
import time
from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler

from segmux import __version__
from segmux.core.download_manager import DownloadManager
from segmux.core.synchronizer import AudioSynchronizer
from segmux.exceptions import SegmuxError
from segmux.media.ffmpeg import FFmpegPreset, has_ffmpeg
from segmux.models.job import DownloadJob
from segmux.storage.config_manager import ConfigManager
from segmux.storage.tempfiles import sweep_tempfiles, temp_directory
from segmux.utils.formatting import format_space
from segmux.utils.path import is_stdout, sanitize_output_path

from .formatters import print_config, print_offsets, print_presets, print_summary_panel
from .progress_manager import ProgressManager

# stdout is reserved for muxed output streamed to '-'
console = Console(stderr=True)

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
log = logging.getLogger("segmux")

app = typer.Typer(
    name="segmux",
    help=(
        "Concurrent segmented media downloader and muxer. Use 'segmux"
        " <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "segmux"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-v for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
):
    """segmux CLI"""
    if version:
        console.print(f"[bold]segmux[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    logging.getLogger("segmux").setLevel("DEBUG" if verbose >= 1 else "INFO")

    if show_config:
        if not CONFIG_FILE.is_file():
            console.print(
                "[yellow]No config file found, defaults are in use.[/] Run "
                "[cyan]segmux init[/cyan] to create one."
            )
            raise typer.Exit()
        config_manager = ConfigManager(CONFIG_FILE)
        print_config(CONFIG_FILE, config_manager.get_raw_settings())
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing file without asking."
    ),
):
    """Write a configuration file with all default settings."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    ConfigManager(CONFIG_FILE).save_new_config()
    console.print(f"[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")
    console.print("Ready to go! Try: [cyan]segmux download job.json -o out.mkv[/cyan]")


def _load_job(job_file: Path) -> DownloadJob:
    try:
        return DownloadJob.model_validate_json(job_file.read_text(encoding="utf-8"))
    except OSError as e:
        console.print(f"[red]✗ Could not read job file '{job_file}': {e}[/red]")
        raise typer.Exit(code=1) from e
    except ValidationError as e:
        console.print(f"[red]✗ Job file '{job_file}' is invalid:[/red]\n{e}")
        raise typer.Exit(code=1) from e


@app.command(name="download")
def download_command(
    job_file: Path = typer.Argument(  # noqa: B008
        ..., help="JSON file describing the tracks and segments to download."
    ),
    output: str = typer.Option(
        ...,
        "-o",
        "--output",
        help="Destination file. Use '-' to stream the muxed output to stdout.",
    ),
    workers: int | None = typer.Option(
        None, "-w", "--workers", help="Segment workers per track (default: CPU count)."
    ),
    default_subtitle: str | None = typer.Option(
        None,
        "--default-subtitle",
        help="Locale of the subtitle to mark as default (or to burn in).",
    ),
    hardsub: bool | None = typer.Option(
        None,
        "--hardsub/--softsub",
        help="Burn a subtitle into the video even if the container supports soft subs.",
    ),
    sync: bool | None = typer.Option(
        None,
        "--sync/--no-sync",
        help="Align multiple audio tracks using audio fingerprints.",
    ),
    ffmpeg_preset: str | None = typer.Option(
        None,
        "--ffmpeg-preset",
        help="Preset name (see 'segmux presets') or custom ffmpeg output arguments.",
    ),
    ffmpeg_threads: int | None = typer.Option(
        None, "--ffmpeg-threads", help="Threads for predefined ffmpeg presets."
    ),
    output_format: str | None = typer.Option(
        None, "--output-format", help="Force an ffmpeg output format (e.g. matroska)."
    ),
    skip_existing: bool | None = typer.Option(
        None,
        "--skip-existing/--no-skip-existing",
        help="Skip the job if the destination already exists.",
    ),
):
    """Download all tracks of a job and mux them into one file."""
    job = _load_job(job_file)
    destination = sanitize_output_path(output)

    cli_options = {
        key: value
        for key, value in {
            "workers": workers,
            "default_subtitle": default_subtitle,
            "force_hardsub": hardsub,
            "sync_audio": sync,
            "ffmpeg_preset": ffmpeg_preset,
            "ffmpeg_threads": ffmpeg_threads,
            "output_format": output_format,
            "skip_existing": skip_existing,
        }.items()
        if value is not None
    }

    async def _download_async():
        config = ConfigManager(CONFIG_FILE).load_config(cli_options)
        start_time = time.monotonic()
        async with ProgressManager(
            console=console, title=job.title, quiet=is_stdout(destination)
        ) as progress_manager:
            manager = DownloadManager(config, progress_manager)
            result = await manager.execute(job, destination)
        duration = time.monotonic() - start_time
        if not is_stdout(destination):
            print_summary_panel(
                result.stats, duration, result.destination, result.offsets
            )

    asyncio.run(_download_async())


@app.command(name="sync")
def sync_command(
    files: list[Path] = typer.Argument(  # noqa: B008
        ..., help="Two or more audio (or video) files with the same content."
    ),
    tolerance: int | None = typer.Option(
        None, "--tolerance", help="Maximum differing bits per fingerprint token."
    ),
    precision: int | None = typer.Option(
        None, "--precision", help="Number of sub-token sweep steps."
    ),
):
    """Print the offsets that line the given files up with each other."""
    if len(files) < 2:
        console.print("[red]✗ At least two files are needed.[/red]")
        raise typer.Exit(code=1)
    missing = [str(f) for f in files if not f.is_file()]
    if missing:
        console.print(f"[red]✗ Files not found: {', '.join(missing)}[/red]")
        raise typer.Exit(code=1)

    cli_options = {
        key: value
        for key, value in {
            "sync_tolerance": tolerance,
            "sync_precision": precision,
        }.items()
        if value is not None
    }

    async def _sync_async():
        config = ConfigManager(CONFIG_FILE).load_config(cli_options)
        synchronizer = AudioSynchronizer(
            tolerance=config.sync_tolerance, precision=config.sync_precision
        )
        with console.status("[cyan]Fingerprinting audio...[/cyan]"):
            return await synchronizer.synchronize({str(f): f for f in files})

    offsets = asyncio.run(_sync_async())
    print_offsets(offsets, Console())


@app.command()
def presets():
    """List the predefined ffmpeg presets."""
    print_presets()


@app.command()
def clean():
    """Remove temporary files left behind by interrupted runs."""
    try:
        config = ConfigManager(CONFIG_FILE).load_config()
        directory = temp_directory(config.temp_dir)
    except SegmuxError as e:
        log.debug(f"Ignoring configuration while cleaning: {e}")
        directory = temp_directory()
    removed = sweep_tempfiles(directory)
    if removed:
        console.print(
            f"[green]✓ Removed {removed} temporary files from [dim]{directory}[/dim][/green]"
        )
    else:
        console.print(f"[dim]No temporary files found in {directory}.[/dim]")


def _has_chromaprint_muxer() -> bool:
    try:
        result = subprocess.run(
            ["ffmpeg", "-hide_banner", "-muxers"],
            capture_output=True,
            text=True,
            timeout=10,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        log.debug(f"Could not list ffmpeg muxers: {e}")
        return False
    return "chromaprint" in result.stdout


@app.command()
def diagnose():
    """Diagnose common configuration and environment issues."""
    console.print("\n[bold cyan]Running diagnostics...[/bold cyan]\n")
    issues_found = False
    config = None

    if CONFIG_FILE.is_file():
        console.print(f"[green]✓[/] Config file exists at: [dim]{CONFIG_FILE}[/dim]")
    else:
        console.print(
            "[yellow]○ Config file not found, defaults are used.[/] "
            "Run [cyan]segmux init[/cyan] to create one."
        )
    try:
        config = ConfigManager(CONFIG_FILE).load_config()
        console.print("[green]✓[/] Configuration is valid and can be loaded.")
        FFmpegPreset.parse(config.ffmpeg_preset)
        console.print("[green]✓[/] ffmpeg preset is valid.")
    except SegmuxError as e:
        console.print(f"[red]✗ Configuration validation failed: {e}[/red]")
        issues_found = True

    if has_ffmpeg():
        console.print(f"[green]✓[/] ffmpeg found at: [dim]{shutil.which('ffmpeg')}[/dim]")
        if _has_chromaprint_muxer():
            console.print("[green]✓[/] ffmpeg supports chromaprint fingerprints.")
        else:
            console.print(
                "[yellow]○ ffmpeg lacks the chromaprint muxer; audio sync will fail.[/]"
            )
    else:
        console.print("[red]✗ ffmpeg not found on PATH.[/red]")
        issues_found = True

    directory = temp_directory(config.temp_dir if config else "")
    try:
        directory.mkdir(parents=True, exist_ok=True)
        free = shutil.disk_usage(directory).free
        console.print(
            f"[green]✓[/] Temp directory [dim]{directory}[/dim] has "
            f"{format_space(free)} free."
        )
    except OSError as e:
        console.print(f"[red]✗ Temp directory '{directory}' is not usable: {e}[/red]")
        issues_found = True

    console.print()
    if not issues_found:
        console.print(
            "[bold green]✓ All checks passed! Your setup looks good.[/bold green]\n"
        )
    else:
        console.print(
            "[bold red]✗ Some issues were found. "
            "Please review the messages above.[/bold red]\n"
        )
        raise typer.Exit(code=1)
