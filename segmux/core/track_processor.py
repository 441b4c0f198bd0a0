"""
Handles the processing of a single track, from download to a verified
temporary file ready for muxing.
"""

import asyncio
import logging
from pathlib import Path

import aiofiles
from rich.markup import escape

from segmux.cli.progress_manager import ProgressManager
from segmux.core.segment_scheduler import SegmentScheduler
from segmux.exceptions import FileIntegrityError
from segmux.media import Decryptor, Downloader, FileIntegrityChecker
from segmux.media.ffmpeg import probe_duration
from segmux.media.subtitle import fix_subtitle
from segmux.models.config import DownloadConfig
from segmux.models.job import Track, TrackKind
from segmux.models.stats import TransferCounters
from segmux.storage.tempfiles import TempFileRegistry

log = logging.getLogger(__name__)

TRACK_SUFFIXES = {
    TrackKind.VIDEO: ".mp4",
    TrackKind.AUDIO: ".m4a",
    TrackKind.SUBTITLE: ".ass",
}


class TrackProcessor:
    """
    Materializes one track into a temporary file. The file is deleted again if
    anything fails or the task is cancelled.
    """

    def __init__(
        self,
        config: DownloadConfig,
        downloader: Downloader,
        decryptor: Decryptor,
        tempfiles: TempFileRegistry,
        progress_manager: ProgressManager | None = None,
    ):
        self.config = config
        self.downloader = downloader
        self.decryptor = decryptor
        self.tempfiles = tempfiles
        self.progress_manager = progress_manager

    async def process_track(
        self, track: Track, video_length: float | None = None
    ) -> tuple[Path, TransferCounters]:
        """
        Downloads `track` and returns the temp file path with its counters.

        `video_length` is used to clamp subtitle lines; when it is unknown the
        subtitle is left as long as it is.
        """
        path = self.tempfiles.create(TRACK_SUFFIXES[track.kind])
        task_id = None
        if self.progress_manager:
            task_id = self.progress_manager.add_track_task(
                escape(track.display_name), total_size=track.estimated_size()
            )

        try:
            if track.is_segmented:
                counters = await self._download_segments(track, path, task_id)
            else:
                counters = TransferCounters(segments_total=1)
                size = await self.downloader.download_file(track.url, path)
                counters.record_segment(size)

            if track.kind == TrackKind.SUBTITLE:
                await self._fix_subtitle(path, video_length)
            elif self.config.verify_tracks:
                if not await asyncio.to_thread(FileIntegrityChecker.check, path):
                    raise FileIntegrityError(
                        f"Downloaded {track.display_name} failed integrity check."
                    )
        except BaseException:
            self.tempfiles.discard(path)
            if self.progress_manager:
                self.progress_manager.remove_task(task_id, success=False)
            raise

        if self.progress_manager:
            self.progress_manager.remove_task(task_id)
        log.debug(
            f"Downloaded {track.display_name} ({counters.bytes_received} bytes) "
            f"to '{path}'"
        )
        return path, counters

    async def _download_segments(
        self, track: Track, path: Path, task_id
    ) -> TransferCounters:
        def on_progress(counters: TransferCounters):
            if not self.progress_manager:
                return
            self.progress_manager.update_task_total(task_id, counters.estimated_bytes)
            self.progress_manager.update_task_progress(task_id, counters.bytes_received)
            self.progress_manager.update_speed(counters.speed_bps)

        scheduler = SegmentScheduler(
            self.downloader,
            self.decryptor,
            workers=self.config.workers,
            on_progress=on_progress,
        )
        async with aiofiles.open(path, "wb") as sink:
            return await scheduler.run(track.segments, sink, bitrate=track.bitrate)

    async def _fix_subtitle(self, path: Path, video_length: float | None) -> None:
        async with aiofiles.open(path, "r", encoding="utf-8-sig") as f:
            text = await f.read()
        async with aiofiles.open(path, "w", encoding="utf-8") as f:
            await f.write(fix_subtitle(text, video_length))


async def resolve_video_length(track: Track, path: Path) -> float | None:
    """Declared duration of a video track, probed from the file if unknown."""
    if track.duration > 0:
        return track.duration
    return await probe_duration(path)
