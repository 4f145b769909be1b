"""
Probe Pipeline Orchestrator

Coordinates the probing workflow:
1. Wait for a free slot in the concurrency limiter
2. Pull the next host from ingestion
3. Probe the host under its deadline
4. Hand the outcome to the result emitter
"""

import asyncio
import time
from typing import AsyncIterable, Optional, Set, TextIO
import logging

import httpx

from .emitter import ResultEmitter
from .errors import ErrorKind
from .http_probe import HttpProbe, build_client
from .limiter import ConcurrencyLimiter
from .matcher import MatcherSet
from .schemas import ProbeConfig, ProbeOutcome, ProbeStats

logger = logging.getLogger(__name__)


class ProbePipeline:
    """
    Orchestrates a probing run from input hosts to printed URLs.

    Intake only pulls a host after the limiter admitted it, so reading
    never runs ahead of the probes: at most ``concurrency`` hosts are held
    in memory and at most that many connections are open.
    """

    def __init__(
        self,
        config: ProbeConfig,
        output: TextIO,
        matchers: Optional[MatcherSet] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize pipeline.

        Args:
            config: Probe configuration
            output: Stream receiving matched URLs
            matchers: Precompiled matchers; compiled from config.patterns when omitted
            transport: Optional HTTP transport override

        Raises:
            PatternCompilationError: If a configured pattern does not compile
        """
        self.config = config
        self.output = output
        self.matchers = matchers if matchers is not None else MatcherSet.compile(config.patterns)
        self.transport = transport

        self.stats = ProbeStats()
        self.limiter: Optional[ConcurrencyLimiter] = None
        self._tasks: Set[asyncio.Task] = set()
        self._intake: Optional[asyncio.Task] = None
        self._interrupted = False

    async def run(self, hosts: AsyncIterable[str]) -> ProbeStats:
        """
        Probe every host and stream matches to the output.

        Args:
            hosts: Lazy sequence of bare hostnames

        Returns:
            ProbeStats for the run
        """
        start_time = time.monotonic()
        logger.info(
            f"Starting probe run (concurrency={self.config.concurrency}, "
            f"timeout={self.config.timeout_ms}ms, patterns={len(self.matchers)})"
        )

        self.limiter = ConcurrencyLimiter(self.config.concurrency)
        emitter = ResultEmitter(self.output, self.stats)
        emitter.start()

        async with build_client(self.config, self.transport) as client:
            probe = HttpProbe(client, self.matchers, self.config.max_body_bytes)
            self._intake = asyncio.create_task(self._admit_all(hosts, probe, emitter))

            try:
                await self._intake
            except asyncio.CancelledError:
                if not self._interrupted:
                    # the run itself was cancelled
                    self.interrupt()
                    await self._shutdown(emitter)
                    raise
            except Exception:
                logger.error("Host intake failed, cancelling admitted probes", exc_info=True)
                self.interrupt()
                await self._shutdown(emitter)
                raise
            finally:
                self._intake = None

            await self._shutdown(emitter)

        self.stats.peak_in_flight = self.limiter.peak
        self.stats.interrupted = self._interrupted
        self.stats.duration_seconds = round(time.monotonic() - start_time, 3)

        logger.info(f"Probe run complete: {self.stats.summary()}")
        return self.stats

    def interrupt(self) -> None:
        """
        Stop intake and cancel every executing probe.

        Cancelled probes are reported as timed out; run() then completes
        normally.
        """
        if self._interrupted:
            return
        self._interrupted = True
        logger.warning(f"Interrupted, cancelling {len(self._tasks)} probe(s)")

        if self._intake is not None:
            self._intake.cancel()
        for task in list(self._tasks):
            task.cancel()

    async def _admit_all(
        self,
        hosts: AsyncIterable[str],
        probe: HttpProbe,
        emitter: ResultEmitter,
    ) -> None:
        """Admit hosts one at a time as limiter capacity frees up"""
        loop = asyncio.get_running_loop()
        pending = hosts.__aiter__()

        while True:
            # a slot is taken before the next host is read
            await self.limiter.acquire()
            try:
                host = await pending.__anext__()
            except StopAsyncIteration:
                self.limiter.release()
                break
            except BaseException:
                self.limiter.release()
                raise

            if self._interrupted:
                self.limiter.release()
                break

            deadline = loop.time() + self.config.timeout_seconds
            task = asyncio.create_task(self._probe(probe, emitter, host, deadline))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _probe(
        self,
        probe: HttpProbe,
        emitter: ResultEmitter,
        host: str,
        deadline: float,
    ) -> None:
        """Run one admitted probe through to a reported outcome"""
        # Cancellation leaves the probe reported as timed out
        outcome = ProbeOutcome.timed_out(host)
        try:
            outcome = await probe.probe_host(host, deadline)
        except Exception as e:
            logger.error(f"Unexpected error probing {host}: {e}", exc_info=True)
            outcome = ProbeOutcome.failed(host, ErrorKind.PROTOCOL)
        finally:
            self.limiter.release()
            emitter.submit(outcome)

    async def _shutdown(self, emitter: ResultEmitter) -> None:
        """Wait for admitted probes, then flush the emitter"""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await emitter.close()
