"""
Provides a byte rate limiter that caps the combined download speed of all workers.
"""

import asyncio
import logging

log = logging.getLogger(__name__)


class ByteRateLimiter:
    """
    Paces consumers so that the bytes they report never exceed the configured
    rate, averaged over time. Shared by all segment workers of a job.
    """

    def __init__(self, bytes_per_second: int):
        """
        Initializes the rate limiter.

        Args:
            bytes_per_second: The maximum combined throughput.
        """
        if bytes_per_second <= 0:
            raise ValueError("Rate must be a positive number of bytes per second.")
        self._rate = float(bytes_per_second)
        self._next_free = 0.0
        self._lock = asyncio.Lock()

    @property
    def rate(self) -> float:
        return self._rate

    async def consume(self, size: int) -> None:
        """
        Accounts for `size` bytes and waits until they fit into the rate budget.
        """
        async with self._lock:
            loop = asyncio.get_running_loop()
            now = loop.time()
            start = max(now, self._next_free)
            self._next_free = start + size / self._rate
            delay = self._next_free - now

        if delay > 0:
            await asyncio.sleep(delay)
