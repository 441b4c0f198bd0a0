from __future__ import annotations

import os
from pathlib import Path

import pytest

from segmux.storage.tempfiles import (
    TEMP_DIR_ENV,
    TEMP_PREFIX,
    TempFileRegistry,
    sweep_tempfiles,
    temp_directory,
)
from segmux.utils.formatting import (
    format_offset_ms,
    format_space,
    format_time_delta,
    parse_time,
)
from segmux.utils.path import free_file, nearest_existing_ancestor, sanitize_output_path


@pytest.mark.parametrize(
    ("seconds", "expected"),
    [
        (0.0, "0:00:00.000"),
        (0.34, "0:00:00.340"),
        (-0.34, "-0:00:00.340"),
        (3723.5, "1:02:03.500"),
        (-0.0001, "0:00:00.000"),
    ],
)
def test_format_time_delta(seconds: float, expected: str) -> None:
    assert format_time_delta(seconds) == expected


def test_parse_time() -> None:
    assert parse_time("01:02:03.50") == pytest.approx(3723.5)


def test_format_space() -> None:
    assert format_space(1) == "1MB"
    assert format_space(300 * 1024 * 1024 + 1) == "301MB"
    assert format_space(3 * 1024**3) == "3.00GB"


def test_format_offset_ms() -> None:
    assert format_offset_ms(0.34) == "+340 ms"
    assert format_offset_ms(-1.0) == "-1000 ms"


def test_free_file_appends_a_counter(tmp_path: Path) -> None:
    target = tmp_path / "movie.mkv"
    assert free_file(target) == (target, False)

    target.write_bytes(b"")
    (tmp_path / "movie (1).mkv").write_bytes(b"")

    assert free_file(target) == (tmp_path / "movie (2).mkv", True)


def test_nearest_existing_ancestor(tmp_path: Path) -> None:
    assert nearest_existing_ancestor(tmp_path / "a" / "b" / "c") == tmp_path


def test_sanitize_output_path_keeps_stdout() -> None:
    assert str(sanitize_output_path("-")) == "-"
    assert sanitize_output_path("out/movie.mkv") == Path("out/movie.mkv")


def test_temp_directory_prefers_the_environment(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv(TEMP_DIR_ENV, str(tmp_path / "env"))
    assert temp_directory("/configured") == tmp_path / "env"

    monkeypatch.delenv(TEMP_DIR_ENV)
    assert temp_directory(str(tmp_path / "configured")) == tmp_path / "configured"


def test_registry_cleanup_and_sweep(tmp_path: Path) -> None:
    registry = TempFileRegistry(tmp_path)
    first = registry.create(".mp4")
    second = registry.create(".m4a")
    assert first.name.startswith(TEMP_PREFIX)
    assert len(registry) == 2

    registry.discard(first)
    assert not first.exists()
    assert len(registry) == 1

    leftover = tmp_path / f"{TEMP_PREFIX}left.ass"
    leftover.write_text("x")
    (tmp_path / "keep.txt").write_text("x")

    registry.cleanup()
    assert not second.exists()
    assert sweep_tempfiles(tmp_path) == 1
    assert sorted(os.listdir(tmp_path)) == ["keep.txt"]
