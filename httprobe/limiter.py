"""
Concurrency Limiter

Counting admission gate bounding the number of probes in flight.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any

logger = logging.getLogger(__name__)


class ConcurrencyLimiter:
    """
    Asyncio-compatible counting semaphore with in-flight bookkeeping.

    Callers ``await`` :meth:`acquire` before starting a probe; the coroutine
    suspends while *capacity* probes are already running. :meth:`release`
    frees one slot and must be called exactly once per successful acquire.

    Example::

        limiter = ConcurrencyLimiter(capacity=60)
        async with limiter:
            ...  # one probe
    """

    def __init__(self, capacity: int) -> None:
        """
        Args:
            capacity: Maximum number of simultaneous holders (>= 1).
        """
        if capacity < 1:
            raise ValueError("capacity must be >= 1")

        self.capacity = capacity
        self._semaphore = asyncio.Semaphore(capacity)
        self._in_flight = 0
        self._peak = 0

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def peak(self) -> int:
        """Highest number of simultaneous holders observed"""
        return self._peak

    async def acquire(self) -> None:
        """Wait for a free slot, then take it."""
        await self._semaphore.acquire()
        self._in_flight += 1
        self._peak = max(self._peak, self._in_flight)

    def release(self) -> None:
        """Give back one slot."""
        if self._in_flight <= 0:
            raise RuntimeError("release() called more times than acquire()")
        self._in_flight -= 1
        self._semaphore.release()

    async def __aenter__(self) -> "ConcurrencyLimiter":
        await self.acquire()
        return self

    async def __aexit__(self, *args: Any) -> None:
        self.release()
