"""
Creates and sweeps the temporary files a job produces.

Every temporary file shares one prefix and one directory, so leftovers of an
interrupted run can be found and removed later.
"""

import logging
import os
import tempfile
from pathlib import Path

log = logging.getLogger(__name__)

TEMP_PREFIX = ".segmux_"
TEMP_DIR_ENV = "SEGMUX_TEMP_DIR"


def temp_directory(configured: str = "") -> Path:
    """The temp directory: env override first, then config, then the OS default."""
    if env_dir := os.getenv(TEMP_DIR_ENV):
        return Path(env_dir)
    if configured:
        return Path(configured).expanduser()
    return Path(tempfile.gettempdir())


def create_tempfile(suffix: str = "", directory: Path | None = None) -> Path:
    """Creates an empty temporary file and returns its path."""
    directory = directory or temp_directory()
    directory.mkdir(parents=True, exist_ok=True)
    fd, name = tempfile.mkstemp(prefix=TEMP_PREFIX, suffix=suffix, dir=directory)
    os.close(fd)
    log.debug(f"Created temporary file: {name}")
    return Path(name)


def remove_tempfile(path: Path | None) -> None:
    """Removes a temporary file if it still exists."""
    if path is None:
        return
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        log.warning(f"[yellow]Could not remove temporary file '{path}': {e}[/yellow]")


def sweep_tempfiles(directory: Path | None = None) -> int:
    """Deletes all leftover files carrying the temp prefix. Returns the count."""
    directory = directory or temp_directory()
    if not directory.is_dir():
        return 0
    removed = 0
    for path in directory.glob(f"{TEMP_PREFIX}*"):
        if not path.is_file():
            continue
        try:
            path.unlink()
            removed += 1
        except OSError as e:
            log.debug(f"Could not remove '{path}': {e}")
    if removed:
        log.debug(f"Removed {removed} leftover temporary files from {directory}")
    return removed


class TempFileRegistry:
    """Keeps track of the temporary files of one job and deletes them together."""

    def __init__(self, directory: Path):
        self.directory = directory
        self._paths: list[Path] = []

    def create(self, suffix: str = "") -> Path:
        path = create_tempfile(suffix, self.directory)
        self._paths.append(path)
        return path

    def discard(self, path: Path) -> None:
        remove_tempfile(path)
        if path in self._paths:
            self._paths.remove(path)

    def cleanup(self) -> None:
        for path in self._paths:
            remove_tempfile(path)
        self._paths.clear()

    def __len__(self) -> int:
        return len(self._paths)
