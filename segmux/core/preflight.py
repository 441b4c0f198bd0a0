"""
Disk space preflight: estimates the bytes a job needs and warns when the temp
directory or the destination volume looks too small.
"""

import logging
import shutil
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from segmux.models.job import Track
from segmux.utils.formatting import format_space
from segmux.utils.path import is_special_file, is_stdout, nearest_existing_ancestor

log = logging.getLogger(__name__)

# Free space figures closer than this are treated as the same volume.
SAME_VOLUME_DELTA = 10 * 1024 * 1024


class SpaceKind(str, Enum):
    TEMP = "temp"
    DESTINATION = "destination"


@dataclass(frozen=True)
class SpaceWarning:
    kind: SpaceKind
    path: Path
    required: int
    available: int

    def __str__(self) -> str:
        location = (
            "temp directory" if self.kind == SpaceKind.TEMP else "output directory"
        )
        return (
            f"Not enough free space in the {location} ({self.path}): "
            f"{format_space(self.available)} available, "
            f"{format_space(self.required)} needed"
        )


@dataclass
class PreflightReport:
    estimated_bytes: int
    same_volume: bool = False
    warnings: list[SpaceWarning] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.warnings


def estimate_required_bytes(tracks: Iterable[Track]) -> int:
    """Sum of bitrate / 8 * duration over all tracks. Deterministic."""
    return sum(track.estimated_size() for track in tracks)


def check_free_space(
    tracks: Iterable[Track], temp_dir: Path, destination: Path | str
) -> PreflightReport:
    """
    Compares the estimated job size with the free space of the temp directory
    and of the destination volume. Only ever warns, never blocks the job.
    """
    required = estimate_required_bytes(tracks)
    report = PreflightReport(estimated_bytes=required)

    temp_usage = shutil.disk_usage(nearest_existing_ancestor(temp_dir))

    check_destination = not is_stdout(destination) and not is_special_file(
        Path(destination)
    )
    if not check_destination:
        log.debug(f"Skipping destination space check for '{destination}'")
        if temp_usage.free < required:
            report.warnings.append(
                SpaceWarning(SpaceKind.TEMP, temp_dir, required, temp_usage.free)
            )
        return report

    destination_dir = nearest_existing_ancestor(Path(destination).parent)
    destination_usage = shutil.disk_usage(destination_dir)

    report.same_volume = (
        temp_usage.total == destination_usage.total
        and abs(temp_usage.free - destination_usage.free) < SAME_VOLUME_DELTA
    )
    # temp files and the muxed output both land on a shared volume
    needed = required * 2 if report.same_volume else required

    if temp_usage.free < needed:
        report.warnings.append(
            SpaceWarning(SpaceKind.TEMP, temp_dir, needed, temp_usage.free)
        )
    if destination_usage.free < needed:
        report.warnings.append(
            SpaceWarning(
                SpaceKind.DESTINATION, destination_dir, needed, destination_usage.free
            )
        )
    return report


def log_report(report: PreflightReport) -> None:
    for warning in report.warnings:
        log.warning(f"[yellow]{warning}[/yellow]")
    if report.ok:
        log.debug(
            f"Preflight passed, estimated size {format_space(report.estimated_bytes)}"
        )
