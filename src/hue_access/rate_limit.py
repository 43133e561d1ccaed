from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

MAX_NANOS = 2**63 - 1


def saturated_add(a: int, b: int) -> int:
    total = a + b
    if total > MAX_NANOS:
        return MAX_NANOS
    if total < -MAX_NANOS - 1:
        return -MAX_NANOS - 1
    return total


class RateLimiter:
    """Smooth token bucket that reserves future slots instead of rejecting callers.

    A reservation pays for the *next* caller: the first acquire after an idle period
    is served immediately and pushes the "next free" watermark forward by the cost of
    its fresh permits. Idle time is banked as stored permits, capped at one second
    worth of the steady rate.
    """

    def __init__(
        self,
        *,
        permits_per_second: float,
        clock_ns: Callable[[], int] = time.monotonic_ns,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if permits_per_second <= 0:
            raise ValueError("permits_per_second must be positive")
        self._clock_ns = clock_ns
        self._sleep = sleep
        self._stable_interval_ns = 1_000_000_000 / float(permits_per_second)
        self._max_permits = float(permits_per_second)
        self._stored_permits = 0.0
        self._next_free_ns = clock_ns()
        self._lock = threading.Lock()

    @property
    def rate(self) -> float:
        return 1_000_000_000 / self._stable_interval_ns

    def _resync(self, now_ns: int) -> None:
        if now_ns > self._next_free_ns:
            new_permits = (now_ns - self._next_free_ns) / self._stable_interval_ns
            self._stored_permits = min(self._max_permits, self._stored_permits + new_permits)
            self._next_free_ns = now_ns

    def reserve(self, permits: int = 1) -> int:
        """Reserve ``permits`` and return how many nanoseconds the caller has to wait."""
        if permits <= 0:
            raise ValueError("permits must be positive")
        with self._lock:
            now_ns = self._clock_ns()
            self._resync(now_ns)
            moment_available = self._next_free_ns
            stored_to_spend = min(float(permits), self._stored_permits)
            fresh_permits = permits - stored_to_spend
            wait_ns = int(fresh_permits * self._stable_interval_ns)
            self._next_free_ns = saturated_add(self._next_free_ns, wait_ns)
            self._stored_permits -= stored_to_spend
            return max(moment_available - now_ns, 0)

    async def acquire(self, permits: int = 1, *, cancel: asyncio.Event | None = None) -> float:
        """Wait until ``permits`` are available and return the seconds spent waiting.

        When ``cancel`` is set while waiting, the wait ends early; the reservation is kept.
        """
        wait_ns = self.reserve(permits)
        if wait_ns <= 0:
            return 0.0
        seconds = wait_ns / 1_000_000_000
        if seconds > 1.0:
            logger.debug("Rate limited: waiting %.2fs for %d permit(s)", seconds, permits)
        if cancel is None:
            await self._sleep(seconds)
            return seconds
        try:
            await asyncio.wait_for(cancel.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
        return seconds
