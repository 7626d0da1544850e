"""In-flight limiter and burst pacing for the vendor API."""
import asyncio
import logging
import time
from typing import Iterator

logger = logging.getLogger(__name__)


class InFlightLimiter:
    """Hard ceiling on simultaneous outbound requests, shared by all credentials."""

    def __init__(self, max_in_flight: int):
        if max_in_flight <= 0:
            raise ValueError("max_in_flight must be positive")
        self.max_in_flight = max_in_flight
        self._semaphore = asyncio.Semaphore(max_in_flight)
        self.in_flight = 0
        self.peak = 0

    async def __aenter__(self):
        await self._semaphore.acquire()
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.in_flight -= 1
        self._semaphore.release()


class BurstPacer:
    """Cool-down policy between bursts of one credential."""

    def __init__(self, burst_reset: float, margin: float = 1.0):
        self.burst_reset = burst_reset
        self.margin = margin
        self._burst_started: float | None = None

    def start_burst(self) -> None:
        self._burst_started = time.monotonic()

    def elapsed(self) -> float:
        if self._burst_started is None:
            return 0.0
        return time.monotonic() - self._burst_started

    def cooldown(self) -> float:
        """Seconds to wait before the next burst.

        The whole reset window plus margin, unless the burst itself already
        lasted at least one reset window.
        """
        if self.burst_reset <= 0:
            return 0.0
        if self.elapsed() >= self.burst_reset:
            return 0.0
        return self.burst_reset + self.margin

    async def wait(self) -> float:
        """Sleep out the cool-down; returns the time slept."""
        delay = self.cooldown()
        if delay > 0:
            logger.info(f"Burst window cool-down: {delay:.1f}s")
            await asyncio.sleep(delay)
        else:
            logger.debug(f"Burst took {self.elapsed():.1f}s, no cool-down needed")
        return delay


def iter_page_offsets(start: int, total: int, page_size: int) -> Iterator[int]:
    """Page offsets covering [start, total); the last page may overrun total."""
    if page_size <= 0:
        raise ValueError("page_size must be positive")
    return iter(range(start, total, page_size))


def iter_page_bursts(start: int, total: int, page_size: int, burst_limit: int) -> Iterator[list[int]]:
    """Lazily yield bursts of at most burst_limit offsets.

    Restart from a checkpoint by passing the first offset not yet fetched as start.
    """
    if burst_limit <= 0:
        raise ValueError("burst_limit must be positive")
    burst: list[int] = []
    for offset in iter_page_offsets(start, total, page_size):
        burst.append(offset)
        if len(burst) == burst_limit:
            yield burst
            burst = []
    if burst:
        yield burst


def count_pages(start: int, total: int, page_size: int) -> int:
    """Number of pages needed to cover [start, total)."""
    if total <= start:
        return 0
    return -(-(total - start) // page_size)
