from __future__ import annotations

import asyncio
import os
import stat
from pathlib import Path

import pytest

from segmux.core.mux import (
    MuxInput,
    MuxOrchestrator,
    ProgressReader,
    StreamRole,
    build_mux_plan,
)
from segmux.exceptions import MuxError
from segmux.media.ffmpeg import FFmpegPreset, escape_filter_path

VIDEO = MuxInput(Path("/work/video.mp4"), StreamRole.VIDEO, duration=10.0, fps=25.0)
AUDIO_EN = MuxInput(Path("/work/en.m4a"), StreamRole.AUDIO, locale="en", title="English")
AUDIO_DE = MuxInput(Path("/work/de.m4a"), StreamRole.AUDIO, locale="de", offset=0.34)
SUB_EN = MuxInput(Path("/work/en.ass"), StreamRole.SUBTITLE, locale="en")
SUB_DE_CC = MuxInput(
    Path("/work/de:cc.ass"), StreamRole.SUBTITLE, locale="de", closed_captions=True
)


def _value_after(args: list[str], flag: str) -> str:
    return args[args.index(flag) + 1]


def _plan(destination: str, **kwargs):
    return build_mux_plan(
        [VIDEO], [AUDIO_EN, AUDIO_DE], [SUB_EN, SUB_DE_CC], destination, **kwargs
    )


def test_all_inputs_are_mapped_in_order() -> None:
    plan = _plan("/out/movie.mkv")
    args = plan.to_args()

    assert args[:2] == ["-y", "-hide_banner"]
    assert args.count("-map") == 5
    assert [args[i + 1] for i, a in enumerate(args) if a == "-map"] == [
        "0",
        "1",
        "2",
        "3",
        "4",
    ]
    assert [i.path for i in plan.inputs] == [
        VIDEO.path,
        AUDIO_EN.path,
        AUDIO_DE.path,
        SUB_EN.path,
        SUB_DE_CC.path,
    ]
    assert args[-1] == "/out/movie.mkv"
    assert plan.total_frames == 250


def test_stream_metadata() -> None:
    args = _plan("/out/movie.mkv").to_args()

    assert _value_after(args, "-metadata:s:v:0") == "title="
    assert "language=" in args
    assert _value_after(args, "-metadata:s:a:0") == "language=en"
    assert "title=English" in args
    assert _value_after(args, "-metadata:s:a:1") == "language=de"
    assert _value_after(args, "-metadata:s:s:1") == "language=de"
    assert "title=de (CC)" in args


def test_offset_is_applied_to_its_input_only() -> None:
    args = _plan("/out/movie.mkv").to_args()

    assert args.count("-itsoffset") == 1
    position = args.index("-itsoffset")
    assert args[position + 1 : position + 4] == ["0:00:00.340", "-i", "/work/de.m4a"]


def test_negative_offset_is_formatted_with_sign() -> None:
    audio = MuxInput(Path("/work/fr.m4a"), StreamRole.AUDIO, locale="fr", offset=-1.5)
    args = build_mux_plan([VIDEO], [audio], [], "/out/movie.mkv").to_args()

    assert _value_after(args, "-itsoffset") == "-0:00:01.500"


def test_default_subtitle_disposition() -> None:
    args = _plan("/out/movie.mkv", default_subtitle="de").to_args()

    assert _value_after(args, "-disposition:s:s:0") == "0"
    assert _value_after(args, "-disposition:s:s:1") == "default+forced"


def test_without_default_subtitle_the_first_is_cleared() -> None:
    subtitles = [SUB_EN, MuxInput(Path("/work/fr.ass"), StreamRole.SUBTITLE, "fr")]
    args = build_mux_plan([VIDEO], [AUDIO_EN], subtitles, "/out/movie.mkv").to_args()

    assert _value_after(args, "-disposition:s:s:0") == "0"
    assert _value_after(args, "-disposition:s:s:1") == "0"
    assert "-vf" not in args


def test_mp4_uses_mov_text_and_faststart() -> None:
    args = _plan("/out/movie.mp4").to_args()

    assert _value_after(args, "-c:s") == "mov_text"
    assert _value_after(args, "-movflags") == "faststart"


def test_non_softsub_container_burns_in_default_subtitle() -> None:
    plan = _plan("/out/movie.avi", default_subtitle="de")
    args = plan.to_args()

    assert plan.burned_subtitle == SUB_DE_CC
    assert args.count("-map") == 3
    assert not any(a.startswith("-disposition") for a in args)
    assert _value_after(args, "-vf") == f"ass={escape_filter_path(SUB_DE_CC.path)}"
    assert _value_after(args, "-c:a") == "copy"
    assert "-c:v" not in args


def test_mov_is_not_a_softsub_container() -> None:
    plan = _plan("/out/movie.mov", default_subtitle="en")
    args = plan.to_args()

    assert plan.burned_subtitle == SUB_EN
    assert args.count("-map") == 3
    assert "-c:s" not in args
    assert "-vf" in args


def test_burned_subtitle_falls_back_to_the_first() -> None:
    plan = _plan("/out/movie.avi", default_subtitle="ja")

    assert plan.burned_subtitle == SUB_EN


def test_forced_hardsub_in_softsub_container() -> None:
    plan = _plan("/out/movie.mkv", force_hardsub=True)

    assert plan.burned_subtitle == SUB_EN
    assert "-vf" in plan.to_args()


def test_stdout_defaults_to_matroska() -> None:
    args = _plan("-").to_args()

    assert _value_after(args, "-f") == "matroska"
    assert args[-1] == "-"
    assert args.count("-map") == 5


def test_preset_arguments_are_included() -> None:
    preset = FFmpegPreset.parse("h265-nvidia")
    args = _plan("/out/movie.mkv", preset=preset, threads=4).to_args()

    assert args.index("-hwaccel") < args.index("-i")
    assert args.index("hevc_nvenc") > args.index("-map")
    assert _value_after(args, "-tag:v") == "hvc1"
    assert _value_after(args, "-threads") == "4"


def test_progress_target_is_passed() -> None:
    args = _plan("/out/movie.mkv").to_args(Path("/tmp/.segmux_x.progress"))

    assert _value_after(args, "-progress") == "/tmp/.segmux_x.progress"


def test_escape_filter_path() -> None:
    assert escape_filter_path("/tmp/a:b\\c.ass", windows=False) == "/tmp/a\\:b\\\\c.ass"
    assert escape_filter_path("C:\\subs\\en.ass", windows=True) == "C\\:/subs/en.ass"


def test_progress_lines_are_parsed() -> None:
    reader = ProgressReader(Path("unused"), total_frames=240)

    assert reader.parse_line("frame=  120\n") == 50.0
    assert reader.parse_line("frame=480\n") == 100.0
    assert reader.parse_line("fps=24.00\n") is None
    assert ProgressReader(Path("unused"), total_frames=0).parse_line("frame=5") is None


def test_progress_reader_drains_and_finishes_at_100(tmp_path: Path) -> None:
    progress_file = tmp_path / "progress"
    progress_file.write_text("frame=60\nfps=25\nframe=120\nprogress=continue\n")
    reported: list[float] = []
    reader = ProgressReader(progress_file, total_frames=240, callback=reported.append)

    async def _run():
        stop = asyncio.Event()
        stop.set()
        await reader.run(stop)

    asyncio.run(_run())

    assert reported == [25.0, 50.0, 100.0]


def _fake_ffmpeg(tmp_path: Path, exit_code: int) -> str:
    script = tmp_path / "fake-ffmpeg"
    script.write_text(
        "#!/bin/sh\n"
        'while [ "$#" -gt 0 ]; do\n'
        '  if [ "$1" = "-progress" ]; then progress="$2"; fi\n'
        '  last="$1"\n'
        "  shift\n"
        "done\n"
        'echo "frame=5" >> "$progress"\n'
        'echo "frame=10" >> "$progress"\n'
        "printf 'muxed' > \"$last\"\n"
        f"if [ {exit_code} -ne 0 ]; then echo 'Invalid data found' >&2; fi\n"
        f"exit {exit_code}\n"
    )
    script.chmod(script.stat().st_mode | stat.S_IEXEC)
    return str(script)


@pytest.mark.skipif(os.name == "nt", reason="uses a POSIX shell script as ffmpeg")
def test_orchestrator_reports_progress(tmp_path: Path) -> None:
    destination = tmp_path / "out" / "movie.mkv"
    video = MuxInput(tmp_path / "v.mp4", StreamRole.VIDEO, duration=1.0, fps=10.0)
    plan = build_mux_plan([video], [], [], destination)
    reported: list[float] = []
    orchestrator = MuxOrchestrator(_fake_ffmpeg(tmp_path, 0), temp_dir=tmp_path)

    asyncio.run(orchestrator.run(plan, on_progress=reported.append))

    assert destination.read_text() == "muxed"
    assert reported[-1] == 100.0
    assert 50.0 in reported
    assert list(tmp_path.glob(".segmux_*")) == []


@pytest.mark.skipif(os.name == "nt", reason="uses a POSIX shell script as ffmpeg")
def test_orchestrator_failure_carries_stderr(tmp_path: Path) -> None:
    destination = tmp_path / "movie.mkv"
    video = MuxInput(tmp_path / "v.mp4", StreamRole.VIDEO)
    plan = build_mux_plan([video], [], [], destination)
    orchestrator = MuxOrchestrator(_fake_ffmpeg(tmp_path, 1), temp_dir=tmp_path)

    with pytest.raises(MuxError) as excinfo:
        asyncio.run(orchestrator.run(plan))

    assert excinfo.value.returncode == 1
    assert excinfo.value.stderr == "Invalid data found\n"
    assert not destination.exists()


@pytest.mark.skipif(os.name == "nt", reason="uses a POSIX shell script as ffmpeg")
def test_ffmpeg_gets_no_standard_input(tmp_path: Path) -> None:
    script = tmp_path / "stdin-ffmpeg"
    script.write_text(
        "#!/bin/sh\n"
        'for last in "$@"; do :; done\n'
        'cat > "$last"\n'
    )
    script.chmod(script.stat().st_mode | stat.S_IEXEC)
    destination = tmp_path / "movie.mkv"
    plan = build_mux_plan([MuxInput(tmp_path / "v.mp4", StreamRole.VIDEO)], [], [], destination)

    asyncio.run(
        asyncio.wait_for(MuxOrchestrator(str(script), temp_dir=tmp_path).run(plan), 10)
    )

    assert destination.read_bytes() == b""
