"""
Builds the ffmpeg invocation that merges all downloaded tracks into one
container and runs it while reporting frame based progress.
"""

import asyncio
import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import aiofiles

from segmux.exceptions import MuxError
from segmux.media.ffmpeg import SOFTSUB_CONTAINERS, FFmpegPreset, escape_filter_path
from segmux.storage.tempfiles import create_tempfile, remove_tempfile
from segmux.utils.formatting import format_time_delta
from segmux.utils.path import STDOUT_PATH, create_dir, is_special_file, is_stdout

log = logging.getLogger(__name__)

FRAME_PATTERN = re.compile(r"frame=\s*(\d+)")

# ffmpeg format names mapped to the container extension they produce
FORMAT_CONTAINERS = {"matroska": "mkv", "mp4": "mp4", "mov": "mov"}
STDOUT_FORMAT = "matroska"

ProgressCallback = Callable[[float], None]


class StreamRole(str, Enum):
    VIDEO = "v"
    AUDIO = "a"
    SUBTITLE = "s"


@dataclass(frozen=True)
class MuxInput:
    """One downloaded track as seen by ffmpeg."""

    path: Path
    role: StreamRole
    locale: str = ""
    title: str = ""
    offset: float = 0.0
    closed_captions: bool = False
    duration: float = 0.0
    fps: float = 0.0

    @property
    def stream_title(self) -> str:
        title = self.title or self.locale
        if self.role == StreamRole.SUBTITLE and self.closed_captions and title:
            return f"{title} (CC)"
        return title


@dataclass(frozen=True)
class MuxPlan:
    """A fully resolved ffmpeg invocation, minus the progress target."""

    inputs: tuple[MuxInput, ...]
    input_args: tuple[str, ...]
    output_args: tuple[str, ...]
    destination: str
    total_frames: int = 0
    burned_subtitle: MuxInput | None = None

    @property
    def to_stdout(self) -> bool:
        return is_stdout(self.destination)

    def to_args(self, progress_path: Path | None = None) -> list[str]:
        """The ffmpeg argument list, without the executable."""
        args = ["-y", "-hide_banner"]
        if progress_path is not None:
            args.extend(["-progress", str(progress_path), "-nostats"])
        args.extend(self.input_args)
        for mux_input in self.inputs:
            if mux_input.offset:
                args.extend(["-itsoffset", format_time_delta(mux_input.offset)])
            args.extend(["-i", str(mux_input.path)])
        args.extend(self.output_args)
        args.append(self.destination)
        return args


def _container_of(destination: str, output_format: str) -> str:
    if output_format:
        return FORMAT_CONTAINERS.get(output_format, output_format)
    return Path(destination).suffix.lstrip(".").lower()


def _without_video_copy(args: Sequence[str]) -> list[str]:
    """Drops '-c:v copy' since a burned in subtitle needs a real encode."""
    result = []
    skip = False
    for i, arg in enumerate(args):
        if skip:
            skip = False
            continue
        if arg == "-c:v" and i + 1 < len(args) and args[i + 1] == "copy":
            skip = True
            continue
        result.append(arg)
    return result


def build_mux_plan(
    videos: Sequence[MuxInput],
    audios: Sequence[MuxInput],
    subtitles: Sequence[MuxInput],
    destination: Path | str,
    preset: FFmpegPreset | None = None,
    threads: int | None = None,
    output_format: str = "",
    default_subtitle: str = "",
    force_hardsub: bool = False,
) -> MuxPlan:
    """
    Lays out the ffmpeg arguments for the given inputs.

    Inputs are ordered videos, audios, subtitles, and mapped in that order, so
    subtitle k ends up at input index len(videos) + len(audios) + k. Containers
    that cannot carry soft subtitles get a single subtitle burned into the video
    instead: the one matching `default_subtitle`, otherwise the first.
    """
    preset = preset or FFmpegPreset.default()
    input_args, output_args = preset.input_output_args(threads)
    destination = str(destination)

    if is_stdout(destination) and not output_format:
        output_format = STDOUT_FORMAT
    container = _container_of(destination, output_format)
    softsub = container in SOFTSUB_CONTAINERS and not force_hardsub

    burned = None
    mapped_subtitles = list(subtitles)
    if subtitles and not softsub:
        burned = next(
            (s for s in subtitles if default_subtitle and s.locale == default_subtitle),
            subtitles[0],
        )
        mapped_subtitles = []
        output_args = _without_video_copy(output_args)
        log.debug(f"Burning subtitle '{burned.locale}' into the video")

    inputs = (*videos, *audios, *mapped_subtitles)
    args: list[str] = []
    for n in range(len(inputs)):
        args.extend(["-map", str(n)])

    for k, video in enumerate(videos):
        args.extend([f"-metadata:s:v:{k}", f"title={video.stream_title}"])
        # the source language tag of video streams is unreliable
        args.extend([f"-metadata:s:v:{k}", "language="])
    for k, audio in enumerate(audios):
        args.extend([f"-metadata:s:a:{k}", f"language={audio.locale}"])
        args.extend([f"-metadata:s:a:{k}", f"title={audio.stream_title}"])
    for k, subtitle in enumerate(mapped_subtitles):
        args.extend([f"-metadata:s:s:{k}", f"language={subtitle.locale}"])
        args.extend([f"-metadata:s:s:{k}", f"title={subtitle.stream_title}"])

    if mapped_subtitles:
        default_index = _default_subtitle_index(mapped_subtitles, default_subtitle)
        for k, subtitle in enumerate(mapped_subtitles):
            flags = []
            if k == default_index:
                flags.append("default")
            if subtitle.closed_captions:
                flags.append("forced")
            args.extend([f"-disposition:s:s:{k}", "+".join(flags) or "0"])
        if container == "mp4":
            args.extend(["-c:s", "mov_text"])

    args.extend(output_args)
    if burned is not None:
        args.extend(["-vf", f"ass={escape_filter_path(burned.path)}"])
    if container == "mp4":
        args.extend(["-movflags", "faststart"])
    if output_format:
        args.extend(["-f", output_format])

    total_frames = max(
        (int(video.duration * video.fps) for video in videos), default=0
    )
    return MuxPlan(
        inputs=inputs,
        input_args=tuple(input_args),
        output_args=tuple(args),
        destination=destination,
        total_frames=total_frames,
        burned_subtitle=burned,
    )


def _default_subtitle_index(
    subtitles: Sequence[MuxInput], default_subtitle: str
) -> int | None:
    if not default_subtitle:
        return None
    matching = [k for k, s in enumerate(subtitles) if s.locale == default_subtitle]
    if not matching:
        return None
    # prefer the full subtitle over closed captions of the same locale
    for k in matching:
        if not subtitles[k].closed_captions:
            return k
    return matching[0]


class ProgressReader:
    """
    Tails the file ffmpeg writes its `-progress` key/value lines to and turns
    the frame counter into a percentage.
    """

    POLL_INTERVAL = 0.1

    def __init__(
        self, path: Path, total_frames: int, callback: ProgressCallback | None = None
    ):
        self.path = path
        self.total_frames = total_frames
        self.callback = callback
        self.percent = 0.0

    def parse_line(self, line: str) -> float | None:
        match = FRAME_PATTERN.search(line)
        if not match or self.total_frames <= 0:
            return None
        return min(100.0, int(match.group(1)) / self.total_frames * 100)

    def _report(self, percent: float) -> None:
        self.percent = percent
        if self.callback:
            self.callback(percent)

    async def run(self, stop: asyncio.Event) -> None:
        """Reads until `stop` is set and the file is drained, then reports 100%."""
        async with aiofiles.open(self.path, "r", errors="replace") as f:
            pending = ""
            while True:
                chunk = await f.readline()
                if chunk:
                    pending += chunk
                    if not pending.endswith("\n"):
                        continue
                    percent = self.parse_line(pending)
                    pending = ""
                    if percent is not None and percent > self.percent:
                        self._report(percent)
                    continue
                if stop.is_set():
                    break
                try:
                    await asyncio.wait_for(stop.wait(), self.POLL_INTERVAL)
                except asyncio.TimeoutError:
                    pass
        self._report(100.0)


class MuxOrchestrator:
    """Runs a MuxPlan through ffmpeg."""

    def __init__(self, executable: str = "ffmpeg", temp_dir: Path | None = None):
        self.executable = executable
        self.temp_dir = temp_dir

    async def run(
        self,
        plan: MuxPlan,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        """
        Muxes the plan's inputs into its destination.

        Raises MuxError with ffmpeg's stderr on a non-zero exit. A destination
        file created by a failed run is removed.
        """
        destination = Path(plan.destination)
        owns_destination = False
        if not plan.to_stdout and not is_special_file(destination):
            create_dir(destination.parent)
            owns_destination = not destination.exists()

        progress_path = create_tempfile(".progress", self.temp_dir)
        args = plan.to_args(progress_path)
        log.debug(f"Running: {self.executable} {' '.join(args)}")

        stop = asyncio.Event()
        reader = ProgressReader(progress_path, plan.total_frames, on_progress)
        reader_task = asyncio.create_task(reader.run(stop))
        process = None
        succeeded = False
        try:
            process = await asyncio.create_subprocess_exec(
                self.executable,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=None if plan.to_stdout else asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
            stderr_task = asyncio.create_task(process.stderr.read())
            returncode = await process.wait()
            stderr = (await stderr_task).decode(errors="replace")

            if returncode != 0:
                raise MuxError(returncode, stderr)
            succeeded = True
        finally:
            stop.set()
            if process is not None and process.returncode is None:
                process.kill()
                await process.wait()
            await asyncio.gather(reader_task, return_exceptions=True)
            remove_tempfile(progress_path)
            if not succeeded and owns_destination:
                destination.unlink(missing_ok=True)

        if plan.destination != STDOUT_PATH:
            log.debug(f"Muxed {len(plan.inputs)} inputs into '{plan.destination}'")
