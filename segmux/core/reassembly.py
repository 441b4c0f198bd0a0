"""
Writes out-of-order segment payloads to a sink in strict index order.
"""

import logging
from typing import Protocol

from segmux.exceptions import ReassemblyError

log = logging.getLogger(__name__)


class AsyncSink(Protocol):
    async def write(self, data: bytes) -> int | None: ...


class OrderedWriter:
    """
    Buffers segments that arrive ahead of the next expected index and flushes
    every contiguous run as soon as the gap closes.

    The buffer only ever holds indices greater than `next_index`, so the bytes
    written are the concatenation of all payloads in ascending index order no
    matter in which order they were pushed.
    """

    def __init__(self, sink: AsyncSink, total: int):
        self.sink = sink
        self.total = total
        self.next_index = 0
        self.bytes_written = 0
        self._buffer: dict[int, bytes] = {}

    @property
    def buffered(self) -> list[int]:
        return sorted(self._buffer)

    @property
    def complete(self) -> bool:
        return self.next_index == self.total and not self._buffer

    async def push(self, index: int, data: bytes) -> int:
        """
        Accepts one segment. Returns the number of segments written by this call.
        """
        if index < self.next_index or index in self._buffer:
            raise ReassemblyError([index], reason=f"Segment {index} was delivered twice")
        if index >= self.total:
            raise ReassemblyError(
                [index], reason=f"Segment {index} is out of range (total {self.total})"
            )

        if index != self.next_index:
            self._buffer[index] = data
            return 0

        await self._write(data)
        written = 1
        while self.next_index in self._buffer:
            await self._write(self._buffer.pop(self.next_index))
            written += 1
        if written > 1:
            log.debug(f"Flushed {written} buffered segments up to {self.next_index - 1}")
        return written

    async def _write(self, data: bytes) -> None:
        await self.sink.write(data)
        self.bytes_written += len(data)
        self.next_index += 1

    def finish(self) -> None:
        """
        Called once no more segments can arrive. Raises if anything is still
        buffered or was never delivered.
        """
        if self.complete:
            return
        stranded = self.buffered
        received = set(stranded)
        missing = [
            i for i in range(self.next_index, self.total) if i not in received
        ]
        raise ReassemblyError(stranded, missing)
