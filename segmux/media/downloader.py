"""
Handles the low-level fetching of segments and single files over HTTP with
retry logic and an optional shared speed limit.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

import aiofiles
import aiohttp

from segmux.exceptions import SegmentDownloadError
from segmux.media.rate_limiter import ByteRateLimiter
from segmux.models.job import Segment

log = logging.getLogger(__name__)

_connection_pool: aiohttp.ClientSession | None = None
_pool_lock = asyncio.Lock()

CHUNK_SIZE = 262144  # 256 KB

Transport = Callable[[str], Awaitable[bytes]]


async def get_connection_pool(max_workers: int = 8) -> aiohttp.ClientSession:
    """
    Gets or creates a shared aiohttp ClientSession for downloads.

    This function ensures that only one connection pool is created for the
    lifetime of the application run.

    Args:
        max_workers: Maximum concurrent connections (should match config.workers).
    """
    global _connection_pool
    async with _pool_lock:
        if _connection_pool and not _connection_pool.closed:
            return _connection_pool

        connector = aiohttp.TCPConnector(
            limit=max_workers * 2,  # Total connections
            limit_per_host=max_workers,  # Per-host (segment CDN)
            ttl_dns_cache=600,  # 10 minutes
            keepalive_timeout=30,
            enable_cleanup_closed=True,
            force_close=False,
        )
        timeout = aiohttp.ClientTimeout(total=None, sock_connect=15, sock_read=60)
        _connection_pool = aiohttp.ClientSession(connector=connector, timeout=timeout)
        log.debug(f"Created download pool with limit_per_host={max_workers}")

    return _connection_pool


async def close_connection_pool() -> None:
    """Closes the shared global connection pool."""
    global _connection_pool
    async with _pool_lock:
        if _connection_pool and not _connection_pool.closed:
            await _connection_pool.close()
            _connection_pool = None
            log.debug("Shared downloader connection pool closed.")


@dataclass(frozen=True)
class RetryPolicy:
    """How often a transient fetch failure is retried and how long to wait."""

    max_attempts: int = 5
    base_delay: float = 0.0

    def delay_for(self, attempt: int) -> float:
        """Exponential backoff after the given (1-based) failed attempt."""
        if self.base_delay <= 0:
            return 0.0
        return self.base_delay * (2 ** (attempt - 1))


class Downloader:
    """A low-level fetcher with retry logic for segments and small files."""

    def __init__(
        self,
        retry_policy: RetryPolicy | None = None,
        max_workers: int = 8,
        rate_limiter: ByteRateLimiter | None = None,
        transport: Transport | None = None,
    ):
        self.retry_policy = retry_policy or RetryPolicy()
        self.max_workers = max_workers
        self.rate_limiter = rate_limiter
        self._transport = transport or self._http_get

    async def _http_get(self, url: str) -> bytes:
        session = await get_connection_pool(self.max_workers)
        async with session.get(url, allow_redirects=True) as response:
            response.raise_for_status()
            chunks = []
            async for chunk in response.content.iter_chunked(CHUNK_SIZE):
                if self.rate_limiter:
                    await self.rate_limiter.consume(len(chunk))
                chunks.append(chunk)
            return b"".join(chunks)

    async def fetch(self, url: str, label: str = "") -> bytes:
        """
        Fetches a URL, retrying transient network failures.

        Raises the last network error once the retry policy is exhausted.
        """
        label = label or url
        max_attempts = self.retry_policy.max_attempts
        last_exception: Exception | None = None
        for attempt in range(1, max_attempts + 1):
            try:
                return await self._transport(url)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_exception = e
                log.debug(
                    f"Download attempt {attempt}/{max_attempts} for "
                    f"{label} failed: {e!r}. Retrying..."
                )
                if attempt < max_attempts:
                    await asyncio.sleep(self.retry_policy.delay_for(attempt))

        if last_exception:
            raise last_exception
        raise ValueError("Retry policy allows no attempts.")

    async def fetch_segment(self, segment: Segment) -> bytes:
        """Fetches one segment, naming it in the error once retries run out."""
        try:
            return await self.fetch(segment.url, label=f"segment {segment.index}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise SegmentDownloadError(
                segment.index, segment.url, f"{type(e).__name__}: {e}"
            ) from e

    async def download_file(self, url: str, destination_path: Path) -> int:
        """Downloads a single-file resource and returns the number of bytes written."""
        try:
            data = await self.fetch(url, label=destination_path.name)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise SegmentDownloadError(0, url, f"{type(e).__name__}: {e}") from e
        async with aiofiles.open(destination_path, "wb") as f:
            await f.write(data)
        return len(data)
