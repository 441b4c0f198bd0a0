"""
Data Models Layer.

This package contains the Pydantic models and dataclasses that define the core
data structures used throughout the application: configuration, the resolved
download job and transfer statistics.
"""

from .config import DownloadConfig
from .job import DownloadJob, Segment, SegmentKey, Track, TrackKind
from .stats import JobStats, TransferCounters

__all__ = [
    "DownloadConfig",
    "DownloadJob",
    "JobStats",
    "Segment",
    "SegmentKey",
    "Track",
    "TrackKind",
    "TransferCounters",
]
