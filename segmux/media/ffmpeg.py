"""
ffmpeg presets and small helpers around the ffmpeg executable.
"""

import asyncio
import logging
import os
import re
import shlex
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from segmux.exceptions import ConfigurationError, FFmpegNotFoundError
from segmux.models.config import PREDEFINED_PRESET
from segmux.utils.formatting import parse_time

log = logging.getLogger(__name__)

SOFTSUB_CONTAINERS = ("mkv", "mp4")
DEFAULT_OUTPUT_ARGS = ("-c:v", "copy", "-c:a", "copy")

DURATION_PATTERN = re.compile(r"Duration:\s(?P<time>\d+:\d+:\d+\.\d+),")


class FFmpegCodec(str, Enum):
    H264 = "h264"
    H265 = "h265"
    AV1 = "av1"


class FFmpegHwAccel(str, Enum):
    NVIDIA = "nvidia"
    APPLE = "apple"


class FFmpegQuality(str, Enum):
    LOSSLESS = "lossless"
    NORMAL = "normal"
    LOW = "low"


# (lossless, low) crf values per software encoder
_CRF = {
    FFmpegCodec.H264: ("18", "35"),
    FFmpegCodec.H265: ("20", "35"),
    FFmpegCodec.AV1: ("22", "35"),
}
# VideoToolbox ignores -crf and takes -q:v on a 1-100 scale instead
_APPLE_QUALITY = {
    FFmpegCodec.H264: ("65", "32"),
    FFmpegCodec.H265: ("61", "32"),
}
_ENCODERS = {
    (FFmpegCodec.H264, None): "libx264",
    (FFmpegCodec.H264, FFmpegHwAccel.NVIDIA): "h264_nvenc",
    (FFmpegCodec.H264, FFmpegHwAccel.APPLE): "h264_videotoolbox",
    (FFmpegCodec.H265, None): "libx265",
    (FFmpegCodec.H265, FFmpegHwAccel.NVIDIA): "hevc_nvenc",
    (FFmpegCodec.H265, FFmpegHwAccel.APPLE): "hevc_videotoolbox",
    (FFmpegCodec.AV1, None): "libsvtav1",
}
_NVIDIA_INPUT = (
    "-hwaccel",
    "cuda",
    "-hwaccel_output_format",
    "cuda",
    "-c:v",
    "h264_cuvid",
)


@dataclass(frozen=True)
class FFmpegPreset:
    """
    Either a predefined transcoding preset (codec, optional hardware
    acceleration, quality) or a custom string of ffmpeg output arguments.
    """

    codec: FFmpegCodec | None = None
    hwaccel: FFmpegHwAccel | None = None
    quality: FFmpegQuality = FFmpegQuality.NORMAL
    custom: str | None = None

    @classmethod
    def default(cls) -> "FFmpegPreset":
        """Stream copy, no transcoding."""
        return cls(custom=" ".join(DEFAULT_OUTPUT_ARGS))

    @property
    def is_custom(self) -> bool:
        return self.codec is None

    @property
    def name(self) -> str:
        if self.custom is not None:
            return self.custom
        parts = [self.codec.value]
        if self.hwaccel:
            parts.append(self.hwaccel.value)
        if self.quality != FFmpegQuality.NORMAL:
            parts.append(self.quality.value)
        return "-".join(parts)

    @staticmethod
    def available_matches() -> list[tuple[FFmpegCodec, FFmpegHwAccel | None]]:
        """All supported codec / hardware acceleration combinations."""
        return [(codec, hwaccel) for codec, hwaccel in _ENCODERS]

    @classmethod
    def available_names(cls) -> list[tuple[str, str]]:
        """Preset names with a human readable description, for the CLI."""
        names = []
        for codec, hwaccel in cls.available_matches():
            for quality in FFmpegQuality:
                preset = cls(codec=codec, hwaccel=hwaccel, quality=quality)
                details = []
                if hwaccel:
                    details.append(f"{hwaccel.value} hardware acceleration")
                details.append(f"{quality.value} video quality/compression")
                names.append(
                    (preset.name, f"{codec.value} encoded with {' and '.join(details)}")
                )
        return names

    @classmethod
    def parse(cls, value: str) -> "FFmpegPreset":
        """
        Parses a preset name like 'h265-nvidia-lossless'. Anything that does not
        look like a dash separated name is taken as custom ffmpeg arguments.
        """
        value = value.strip()
        if not value:
            return cls.default()
        if not PREDEFINED_PRESET.match(value):
            try:
                shlex.split(value)
            except ValueError as e:
                raise ConfigurationError(
                    f"Custom ffmpeg arguments cannot be parsed: {e}"
                ) from e
            return cls(custom=value)

        codec = hwaccel = quality = None
        for token in value.lower().split("-"):
            if token in FFmpegCodec._value2member_map_:
                if codec:
                    raise ConfigurationError(
                        f"cannot use multiple codecs (found {codec.value} and {token})"
                    )
                codec = FFmpegCodec(token)
            elif token in FFmpegHwAccel._value2member_map_:
                if hwaccel:
                    raise ConfigurationError(
                        "cannot use multiple hardware accelerations "
                        f"(found {hwaccel.value} and {token})"
                    )
                hwaccel = FFmpegHwAccel(token)
            elif token in FFmpegQuality._value2member_map_:
                if quality:
                    raise ConfigurationError(
                        "cannot use multiple ffmpeg preset qualities "
                        f"(found {quality.value} and {token})"
                    )
                quality = FFmpegQuality(token)
            else:
                raise ConfigurationError(
                    f"'{value}' is not a valid ffmpeg preset (unknown token '{token}')"
                )

        if codec is None:
            raise ConfigurationError("cannot use ffmpeg preset without a codec")
        if (codec, hwaccel) not in _ENCODERS:
            raise ConfigurationError(f"ffmpeg preset '{value}' is not supported")
        return cls(codec=codec, hwaccel=hwaccel, quality=quality or FFmpegQuality.NORMAL)

    def input_output_args(
        self, threads: int | None = None
    ) -> tuple[list[str], list[str]]:
        """Splits the preset into ffmpeg input and output arguments."""
        if self.is_custom:
            return [], shlex.split(self.custom or "")

        input_args: list[str] = []
        output_args: list[str] = []

        if self.hwaccel == FFmpegHwAccel.APPLE:
            lossless, low = _APPLE_QUALITY[self.codec]
            quality_flag = "-q:v"
        else:
            lossless, low = _CRF[self.codec]
            quality_flag = "-crf"
        if self.quality == FFmpegQuality.LOSSLESS:
            output_args.extend([quality_flag, lossless])
        elif self.quality == FFmpegQuality.LOW:
            output_args.extend([quality_flag, low])

        if self.hwaccel == FFmpegHwAccel.NVIDIA:
            input_args.extend(_NVIDIA_INPUT)

        output_args.extend(
            ["-c:v", _ENCODERS[(self.codec, self.hwaccel)], "-c:a", "copy"]
        )
        if self.codec == FFmpegCodec.H265:
            output_args.extend(["-tag:v", "hvc1"])
        if threads:
            output_args.extend(["-threads", str(threads)])
        return input_args, output_args


def has_ffmpeg() -> bool:
    return shutil.which("ffmpeg") is not None


def require_ffmpeg() -> str:
    """Returns the ffmpeg executable path or raises if it is not installed."""
    executable = shutil.which("ffmpeg")
    if executable is None:
        raise FFmpegNotFoundError(
            "ffmpeg could not be found on PATH. It is required for muxing."
        )
    return executable


def escape_filter_path(path: Path | str, windows: bool | None = None) -> str:
    """
    Escapes a path for use as a filter argument, e.g. in '-vf ass=<path>'.
    """
    windows = os.name == "nt" if windows is None else windows
    raw = str(path)
    if windows:
        return raw.replace("\\", "/").replace(":", "\\:")
    return raw.replace("\\", "\\\\").replace(":", "\\:")


async def probe_duration(path: Path) -> float | None:
    """Reads the container duration (seconds) from ffmpeg's input summary."""
    process = await asyncio.create_subprocess_exec(
        "ffmpeg",
        "-hide_banner",
        "-i",
        str(path),
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.PIPE,
    )
    _, stderr = await process.communicate()
    # ffmpeg exits non-zero without an output file; the summary is still printed
    match = DURATION_PATTERN.search(stderr.decode(errors="replace"))
    if not match:
        log.debug(f"Could not find a duration for '{path}'")
        return None
    return parse_time(match.group("time"))
