"""
Dataclasses for tracking transfer counters and job statistics.
"""

import time
from dataclasses import dataclass, field


@dataclass
class TransferCounters:
    """
    Counters shared by the segment workers of one track.

    Workers and the sampler all run on the event loop thread, so plain integer
    increments are atomic with respect to each other.
    """

    segments_total: int = 0
    segments_done: int = 0
    bytes_received: int = 0
    estimated_bytes: int = 0

    # Throughput estimation fields
    speed_bps: float = 0.0
    peak_speed_bps: float = 0.0
    smoothing: float = field(default=0.3, repr=False)
    _last_sample_time: float = field(default=0.0, repr=False)
    _last_sample_bytes: int = field(default=0, repr=False)

    def __post_init__(self):
        self._last_sample_time = time.monotonic()

    def record_segment(self, size: int) -> None:
        self.segments_done += 1
        self.bytes_received += size

    def sample(self, now: float | None = None) -> float:
        """
        Folds the bytes received since the previous sample into an exponential
        moving average and returns the smoothed speed in bytes per second.
        """
        now = time.monotonic() if now is None else now
        elapsed = now - self._last_sample_time
        if elapsed <= 0:
            return self.speed_bps

        instant = (self.bytes_received - self._last_sample_bytes) / elapsed
        if self.speed_bps == 0.0:
            self.speed_bps = instant
        else:
            self.speed_bps = (
                self.smoothing * instant + (1 - self.smoothing) * self.speed_bps
            )
        self.peak_speed_bps = max(self.peak_speed_bps, self.speed_bps)

        self._last_sample_time = now
        self._last_sample_bytes = self.bytes_received
        return self.speed_bps


@dataclass
class JobStats:
    """Tracks statistics for a single job."""

    tracks_downloaded: int = 0
    segments_downloaded: int = 0
    total_size_downloaded: int = 0
    peak_speed_bps: float = 0.0
    download_seconds: float = 0.0
    sync_seconds: float = 0.0
    mux_seconds: float = 0.0
    skipped: bool = False

    def add_track(self, counters: TransferCounters) -> None:
        self.tracks_downloaded += 1
        self.segments_downloaded += counters.segments_done
        self.total_size_downloaded += counters.bytes_received
        self.peak_speed_bps = max(self.peak_speed_bps, counters.peak_speed_bps)
