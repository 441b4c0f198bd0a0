"""
Fetches the segments of one track with a fixed pool of workers and hands them
to an ordered writer.
"""

import asyncio
import logging
import os
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from segmux.core.reassembly import AsyncSink, OrderedWriter
from segmux.media.decryptor import Decryptor
from segmux.media.downloader import Downloader
from segmux.models.job import Segment
from segmux.models.stats import TransferCounters

log = logging.getLogger(__name__)

ProgressCallback = Callable[[TransferCounters], None]

_CLOSED = object()


@dataclass
class _Failure:
    """Poison item a worker puts on the channel instead of a payload."""

    error: Exception


class SegmentScheduler:
    """
    Runs one worker per partition of the segment list. Worker `w` owns the
    segments `w, w + W, w + 2W, ...` and pushes `(index, payload)` pairs onto a
    single unbounded queue; the calling task is the only consumer and the only
    writer of the output.
    """

    SAMPLE_INTERVAL = 0.1

    def __init__(
        self,
        downloader: Downloader,
        decryptor: Decryptor,
        workers: int | None = None,
        on_progress: ProgressCallback | None = None,
    ):
        self.downloader = downloader
        self.decryptor = decryptor
        self.workers = workers or os.cpu_count() or 4
        self.on_progress = on_progress

    @staticmethod
    def partition(segments: Sequence[Segment], workers: int) -> list[list[Segment]]:
        """Static round-robin partitioning of segments over workers."""
        return [list(segments[w::workers]) for w in range(workers)]

    async def run(
        self,
        segments: Sequence[Segment],
        sink: AsyncSink,
        bitrate: int = 0,
        counters: TransferCounters | None = None,
    ) -> TransferCounters:
        """
        Downloads all segments and writes them to `sink` in index order.

        Raises the first worker error (SegmentDownloadError, DecryptionError),
        or ReassemblyError when the workers finished without delivering every
        segment. Remaining workers are cancelled in either case.
        """
        worker_count = max(1, min(self.workers, len(segments)))
        counters = counters or TransferCounters()
        counters.segments_total = len(segments)
        counters.estimated_bytes = int(
            sum(bitrate / 8 * segment.duration for segment in segments)
        )

        queue: asyncio.Queue = asyncio.Queue()
        writer = OrderedWriter(sink, len(segments))
        workers = [
            asyncio.create_task(
                self._worker(partition, queue, counters, bitrate),
                name=f"segment-worker-{w}",
            )
            for w, partition in enumerate(self.partition(segments, worker_count))
        ]
        supervisor = asyncio.create_task(self._close_when_done(workers, queue))
        sampler = (
            asyncio.create_task(self._sample(counters)) if self.on_progress else None
        )
        log.debug(
            f"Downloading {len(segments)} segments with {worker_count} workers"
        )

        try:
            while not writer.complete:
                item = await queue.get()
                if item is _CLOSED:
                    break
                if isinstance(item, _Failure):
                    raise item.error
                index, data = item
                await writer.push(index, data)
            writer.finish()
        finally:
            pending = [*workers, supervisor]
            if sampler:
                pending.append(sampler)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        if self.on_progress:
            counters.sample()
            self.on_progress(counters)
        return counters

    async def _worker(
        self,
        segments: list[Segment],
        queue: asyncio.Queue,
        counters: TransferCounters,
        bitrate: int,
    ) -> None:
        for segment in segments:
            try:
                payload = await self.downloader.fetch_segment(segment)
                data = await asyncio.to_thread(
                    self.decryptor.decrypt, payload, segment.key
                )
            except Exception as e:
                queue.put_nowait(_Failure(e))
                return

            counters.record_segment(len(data))
            # replace the bitrate estimate of this segment with its real size
            counters.estimated_bytes += len(data) - int(bitrate / 8 * segment.duration)
            queue.put_nowait((segment.index, data))

    @staticmethod
    async def _close_when_done(workers: list[asyncio.Task], queue: asyncio.Queue):
        await asyncio.gather(*workers, return_exceptions=True)
        queue.put_nowait(_CLOSED)

    async def _sample(self, counters: TransferCounters) -> None:
        while True:
            await asyncio.sleep(self.SAMPLE_INTERVAL)
            counters.sample()
            self.on_progress(counters)
