"""
Result Emitter

Single writer for probe results: every outcome goes through one queue and
one consumer task, so lines from concurrent probes never interleave.
"""

import asyncio
import logging
from typing import Optional, TextIO

from .schemas import OutcomeKind, ProbeOutcome, ProbeStats

logger = logging.getLogger(__name__)


class ResultEmitter:
    """
    Writes the URL of each matched outcome to an output stream.

    Usage::

        emitter = ResultEmitter(sys.stdout)
        emitter.start()
        emitter.submit(outcome)
        ...
        await emitter.close()
    """

    def __init__(self, stream: TextIO, stats: Optional[ProbeStats] = None):
        self.stream = stream
        self.stats = stats if stats is not None else ProbeStats()
        self._queue: "asyncio.Queue[Optional[ProbeOutcome]]" = asyncio.Queue()
        self._consumer: Optional[asyncio.Task] = None
        self._stream_closed = False

    def start(self) -> None:
        """Start the consumer task"""
        if self._consumer is None:
            self._consumer = asyncio.create_task(self._drain())

    def submit(self, outcome: ProbeOutcome) -> None:
        """Queue a terminal outcome; never blocks"""
        self._queue.put_nowait(outcome)

    async def close(self) -> None:
        """Write everything queued so far, then stop the consumer"""
        if self._consumer is None:
            return
        self._queue.put_nowait(None)
        await self._consumer
        self._consumer = None

    async def _drain(self) -> None:
        while True:
            outcome = await self._queue.get()
            if outcome is None:
                break
            self.emit(outcome)

    def emit(self, outcome: ProbeOutcome) -> None:
        """Record one outcome and print it if it matched"""
        self.stats.record(outcome)

        if outcome.kind != OutcomeKind.MATCHED:
            logger.debug(f"Dropping {outcome.host}: {outcome.kind.value}")
            return

        if self._stream_closed:
            return

        try:
            self.stream.write(f"{outcome.url}\n")
            self.stream.flush()
        except BrokenPipeError:
            self._stream_closed = True
            logger.warning("Output stream closed, results are no longer written")
