"""
Chromaprint audio fingerprints produced by ffmpeg's chromaprint muxer.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import numpy as np

from segmux.exceptions import FingerprintError
from segmux.utils.formatting import format_time_delta

log = logging.getLogger(__name__)

# Each raw chromaprint token covers this many seconds of audio.
TOKEN_DURATION = 0.128


@dataclass(frozen=True)
class Fingerprint:
    """Raw 32 bit fingerprint tokens and the source time of the first one."""

    tokens: np.ndarray
    origin: float = 0.0

    def __len__(self) -> int:
        return len(self.tokens)

    def timestamp(self, index: int) -> float:
        """Source time of the token at `index`."""
        return self.origin + index * TOKEN_DURATION


class Fingerprinter(Protocol):
    async def __call__(
        self, path: Path, start: float = 0.0, end: float | None = None
    ) -> Fingerprint: ...


def decode_raw_fingerprint(raw: bytes) -> np.ndarray:
    """Decodes ffmpeg's raw output: little endian unsigned 32 bit integers."""
    if len(raw) % 4:
        raise FingerprintError(
            f"Chromaprint output has {len(raw)} bytes, which is not a multiple of 4"
        )
    return np.frombuffer(raw, dtype="<u4").astype(np.uint32)


class ChromaprintFingerprinter:
    """Fingerprints a window of an audio file with `ffmpeg -f chromaprint`."""

    def __init__(self, executable: str = "ffmpeg"):
        self.executable = executable

    def build_args(self, path: Path, start: float, end: float | None) -> list[str]:
        args = ["-hide_banner", "-y", "-ss", format_time_delta(start)]
        if end is not None:
            args.extend(["-to", format_time_delta(end)])
        args.extend(
            ["-i", str(path), "-ac", "2", "-f", "chromaprint", "-fp_format", "raw", "-"]
        )
        return args

    async def __call__(
        self, path: Path, start: float = 0.0, end: float | None = None
    ) -> Fingerprint:
        start = max(0.0, start)
        args = self.build_args(path, start, end)
        log.debug(f"Generating fingerprint: {self.executable} {' '.join(args)}")
        process = await asyncio.create_subprocess_exec(
            self.executable,
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()
        if process.returncode != 0:
            raise FingerprintError(
                f"ffmpeg could not fingerprint '{path}':\n"
                f"{stderr.decode(errors='replace')}"
            )
        return Fingerprint(decode_raw_fingerprint(stdout), origin=start)
