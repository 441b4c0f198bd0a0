from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

from segmux.core import preflight
from segmux.core.preflight import (
    SpaceKind,
    check_free_space,
    estimate_required_bytes,
)
from segmux.models.job import Segment, Track

GB = 1_000_000_000


def _tracks() -> list[Track]:
    return [
        Track(
            id="video",
            kind="video",
            bitrate=7_200_000,
            segments=[
                Segment(index=i, url=f"https://cdn.test/v/{i}", duration=10.0)
                for i in range(100)
            ],
        ),
        Track(
            id="audio",
            kind="audio",
            bitrate=800_000,
            duration=1000.0,
            url="https://cdn.test/a.m4a",
        ),
    ]


def _fake_usage(monkeypatch, usage_by_root: dict[Path, SimpleNamespace]) -> None:
    def disk_usage(path):
        path = Path(path)
        for root, usage in usage_by_root.items():
            if path == root or root in path.parents:
                return usage
        raise AssertionError(f"unexpected disk_usage call for {path}")

    monkeypatch.setattr(preflight.shutil, "disk_usage", disk_usage)


def test_estimate_is_bitrate_times_duration_and_deterministic() -> None:
    tracks = _tracks()

    first = estimate_required_bytes(tracks)
    second = estimate_required_bytes(tracks)

    assert first == second == 900_000_000 + 100_000_000


def test_same_volume_doubles_the_requirement(monkeypatch, tmp_path: Path) -> None:
    usage = SimpleNamespace(total=500 * GB, used=0, free=int(1.5 * GB))
    _fake_usage(monkeypatch, {tmp_path: usage})
    temp_dir = tmp_path / "temp"
    destination = tmp_path / "out" / "movie.mkv"

    report = check_free_space(_tracks(), temp_dir, destination)

    assert report.same_volume
    assert report.estimated_bytes == GB
    assert [w.kind for w in report.warnings] == [SpaceKind.TEMP, SpaceKind.DESTINATION]
    assert all(w.required == 2 * GB for w in report.warnings)
    assert not report.ok
    message = str(report.warnings[1])
    assert "1.40GB available" in message
    assert "1.86GB needed" in message


def test_separate_volumes_are_checked_independently(
    monkeypatch, tmp_path: Path
) -> None:
    temp_dir = tmp_path / "temp"
    out_dir = tmp_path / "out"
    temp_dir.mkdir()
    out_dir.mkdir()
    _fake_usage(
        monkeypatch,
        {
            temp_dir: SimpleNamespace(total=100 * GB, used=0, free=int(1.5 * GB)),
            out_dir: SimpleNamespace(total=900 * GB, used=0, free=int(0.5 * GB)),
        },
    )

    report = check_free_space(_tracks(), temp_dir, out_dir / "movie.mkv")

    assert not report.same_volume
    assert [w.kind for w in report.warnings] == [SpaceKind.DESTINATION]
    assert report.warnings[0].required == GB
    assert report.warnings[0].path == out_dir


def test_enough_space_gives_no_warnings(monkeypatch, tmp_path: Path) -> None:
    usage = SimpleNamespace(total=500 * GB, used=0, free=100 * GB)
    _fake_usage(monkeypatch, {tmp_path: usage})

    report = check_free_space(_tracks(), tmp_path, tmp_path / "movie.mkv")

    assert report.ok


def test_stdout_destination_only_checks_temp(monkeypatch, tmp_path: Path) -> None:
    usage = SimpleNamespace(total=500 * GB, used=0, free=int(0.5 * GB))
    _fake_usage(monkeypatch, {tmp_path: usage})

    report = check_free_space(_tracks(), tmp_path, "-")

    assert [w.kind for w in report.warnings] == [SpaceKind.TEMP]
    assert report.warnings[0].required == GB
