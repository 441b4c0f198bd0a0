"""
Utilities for handling output paths.
"""

import os
from pathlib import Path

from pathvalidate import sanitize_filename, sanitize_filepath

STDOUT_PATH = "-"


def create_dir(directory_path: Path) -> None:
    """Creates a directory if it does not already exist."""
    directory_path.mkdir(parents=True, exist_ok=True)


def is_stdout(path: Path | str) -> bool:
    return str(path) == STDOUT_PATH


def is_special_file(path: Path) -> bool:
    """True for existing paths that are neither regular files nor directories (pipes)."""
    return path.exists() and not path.is_file() and not path.is_dir()


def nearest_existing_ancestor(path: Path) -> Path:
    """Walks up from an absolute path until an existing directory is found."""
    candidate = Path(os.path.abspath(path))
    while not candidate.exists():
        if candidate.parent == candidate:
            break
        candidate = candidate.parent
    return candidate


def free_file(path: Path) -> tuple[Path, bool]:
    """
    Returns a path that does not exist yet by appending ' (n)' to the stem.

    Special files are returned unchanged. The boolean tells whether the path
    had to be changed.
    """
    if is_special_file(path):
        return path, False

    stem, suffix = path.stem, path.suffix
    candidate = path
    i = 0
    while candidate.exists():
        i += 1
        candidate = path.with_name(f"{stem} ({i}){suffix}")
    return candidate, i != 0


def sanitize_output_path(raw: str) -> Path:
    """Sanitizes a user supplied destination, keeping '-' for stdout."""
    if is_stdout(raw):
        return Path(STDOUT_PATH)
    path = Path(raw).expanduser()
    parent = sanitize_filepath(str(path.parent), platform="auto") or "."
    return Path(parent) / sanitize_filename(path.name, platform="auto")
