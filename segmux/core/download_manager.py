"""
The main orchestrator: turns a resolved DownloadJob into one muxed output file.
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path

from rich.markup import escape

from segmux.cli.progress_manager import ProgressManager
from segmux.core.locale_policy import (
    MissingLocalePolicy,
    check_requested_locales,
    order_by_locale,
    policy_for,
)
from segmux.core.mux import MuxInput, MuxOrchestrator, StreamRole, build_mux_plan
from segmux.core.preflight import PreflightReport, check_free_space, log_report
from segmux.core.synchronizer import AudioSynchronizer
from segmux.core.track_processor import TrackProcessor, resolve_video_length
from segmux.media import AesCbcDecryptor, Decryptor, Downloader, FFmpegPreset
from segmux.media.downloader import RetryPolicy, close_connection_pool
from segmux.media.ffmpeg import require_ffmpeg
from segmux.media.rate_limiter import ByteRateLimiter
from segmux.models.config import DownloadConfig
from segmux.models.job import DownloadJob, Track, TrackKind
from segmux.models.stats import JobStats
from segmux.storage.tempfiles import TempFileRegistry, temp_directory
from segmux.utils.path import free_file, is_stdout

log = logging.getLogger(__name__)

_ROLES = {
    TrackKind.VIDEO: StreamRole.VIDEO,
    TrackKind.AUDIO: StreamRole.AUDIO,
    TrackKind.SUBTITLE: StreamRole.SUBTITLE,
}


@dataclass
class JobResult:
    destination: Path | None
    offsets: dict[str, float] = field(default_factory=dict)
    stats: JobStats = field(default_factory=JobStats)
    preflight: PreflightReport | None = None

    @property
    def skipped(self) -> bool:
        return self.stats.skipped


class DownloadManager:
    """Orchestrates download, synchronization and muxing of one job."""

    def __init__(
        self,
        config: DownloadConfig,
        progress_manager: ProgressManager | None = None,
        downloader: Downloader | None = None,
        decryptor: Decryptor | None = None,
        synchronizer: AudioSynchronizer | None = None,
        muxer: MuxOrchestrator | None = None,
        locale_policy: MissingLocalePolicy | None = None,
    ):
        self.config = config
        self.progress_manager = progress_manager
        self.temp_dir = temp_directory(config.temp_dir)
        self.downloader = downloader or Downloader(
            RetryPolicy(config.max_attempts, config.retry_delay),
            max_workers=config.workers,
            rate_limiter=ByteRateLimiter(config.speed_limit)
            if config.speed_limit
            else None,
        )
        self.decryptor = decryptor or AesCbcDecryptor()
        self.synchronizer = synchronizer or AudioSynchronizer(
            tolerance=config.sync_tolerance, precision=config.sync_precision
        )
        self.muxer = muxer or MuxOrchestrator(temp_dir=self.temp_dir)
        self.locale_policy = locale_policy or policy_for(config.missing_locale)
        self.preset = FFmpegPreset.parse(config.ffmpeg_preset)

    def resolve_destination(self, destination: Path | str) -> Path | None:
        """
        The path to mux into, or None when the job should be skipped because
        the destination already exists.
        """
        if is_stdout(destination):
            return Path(destination)
        path = Path(destination)
        if path.is_file() and self.config.skip_existing:
            return None
        resolved, changed = free_file(path)
        if changed:
            log.info(
                f"[yellow]'{escape(str(path))}' already exists, writing to "
                f"'{escape(resolved.name)}' instead[/yellow]"
            )
        return resolved

    async def execute(self, job: DownloadJob, destination: Path | str) -> JobResult:
        """
        Downloads every track of `job`, aligns the audio tracks and muxes
        everything into `destination`. Temporary files are always removed.
        """
        resolved = self.resolve_destination(destination)
        if resolved is None:
            log.info(
                f"  [yellow]○ Skipping:[/] [dim]{escape(str(destination))}[/dim] "
                "(already exists)"
            )
            return JobResult(destination=None, stats=JobStats(skipped=True))

        require_ffmpeg()
        check_requested_locales(job, self.locale_policy)
        report = check_free_space(job.tracks, self.temp_dir, resolved)
        log_report(report)

        result = JobResult(destination=resolved, preflight=report)
        tempfiles = TempFileRegistry(self.temp_dir)
        processor = TrackProcessor(
            self.config,
            self.downloader,
            self.decryptor,
            tempfiles,
            self.progress_manager,
        )
        try:
            paths = await self._download_tracks(job, processor, result.stats)

            if self.config.sync_audio and len(job.audios) > 1:
                started = time.monotonic()
                self._log("Synchronizing audio tracks...")
                result.offsets = await self.synchronizer.synchronize(
                    {audio.id: paths[audio.id] for audio in job.audios}
                )
                result.stats.sync_seconds = time.monotonic() - started

            started = time.monotonic()
            await self._mux(job, paths, result.offsets, resolved)
            result.stats.mux_seconds = time.monotonic() - started
        finally:
            tempfiles.cleanup()
            await close_connection_pool()
        return result

    async def _download_tracks(
        self, job: DownloadJob, processor: TrackProcessor, stats: JobStats
    ) -> dict[str, Path]:
        started = time.monotonic()
        paths: dict[str, Path] = {}
        video_length = None
        for track in [*job.videos, *job.audios, *job.subtitles]:
            if track.kind == TrackKind.SUBTITLE and video_length is None and job.videos:
                video = job.videos[0]
                video_length = await resolve_video_length(video, paths[video.id])
            path, counters = await processor.process_track(track, video_length)
            paths[track.id] = path
            stats.add_track(counters)
        stats.download_seconds = time.monotonic() - started
        return paths

    async def _mux(
        self,
        job: DownloadJob,
        paths: dict[str, Path],
        offsets: dict[str, float],
        destination: Path,
    ) -> None:
        def as_input(track: Track) -> MuxInput:
            return MuxInput(
                path=paths[track.id],
                role=_ROLES[track.kind],
                locale=track.locale,
                title=track.title,
                offset=offsets.get(track.id, 0.0),
                closed_captions=track.closed_captions,
                duration=track.duration,
                fps=track.fps,
            )

        plan = build_mux_plan(
            [as_input(t) for t in job.videos],
            [as_input(t) for t in order_by_locale(job.audios, job.requested_audio)],
            [
                as_input(t)
                for t in order_by_locale(job.subtitles, job.requested_subtitles)
            ],
            destination,
            preset=self.preset,
            threads=self.config.ffmpeg_threads,
            output_format=self.config.output_format,
            default_subtitle=self.config.default_subtitle,
            force_hardsub=self.config.force_hardsub,
        )

        task_id = None
        if self.progress_manager:
            task_id = self.progress_manager.add_mux_task(
                f"Muxing {escape(job.title or destination.name)}"
            )

        def on_progress(percent: float):
            if self.progress_manager:
                self.progress_manager.update_mux_progress(task_id, percent)

        try:
            await self.muxer.run(plan, on_progress=on_progress)
        except BaseException:
            if self.progress_manager:
                self.progress_manager.remove_task(task_id, success=False)
            raise
        if self.progress_manager:
            self.progress_manager.remove_task(task_id)

    def _log(self, message: str) -> None:
        if self.progress_manager:
            self.progress_manager.log_message(message)
        else:
            log.info(message)
