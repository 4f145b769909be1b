"""
HTTP Probe Module

Performs the request for one host under a deadline and classifies the
response with the configured matchers.
"""

import asyncio
from typing import Optional
import logging

import httpx

from .matcher import MatcherSet, match_context
from .scheme import negotiate
from .schemas import DEFAULT_MAX_BODY_BYTES, ProbeConfig, ProbeOutcome

logger = logging.getLogger(__name__)


def build_client(
    config: ProbeConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """
    Build the HTTP client shared by every probe of a run.

    Connections are never reused: each probe opens its own, so the number
    of open sockets follows the number of probes in flight.

    Args:
        config: Probe configuration
        transport: Optional transport override (tests use httpx.MockTransport)

    Returns:
        Configured httpx.AsyncClient
    """
    limits = httpx.Limits(
        max_connections=config.concurrency,
        max_keepalive_connections=0,
    )

    return httpx.AsyncClient(
        timeout=httpx.Timeout(config.timeout_seconds),
        limits=limits,
        verify=config.verify_tls,
        follow_redirects=config.follow_redirects,
        headers={"User-Agent": config.user_agent},
        transport=transport,
    )


def status_line(response: httpx.Response) -> str:
    """Render the response status line, e.g. ``HTTP/1.1 200 OK``"""
    return f"{response.http_version} {response.status_code} {response.reason_phrase}".rstrip()


class HttpProbe:
    """
    Probe executor for a single host.

    - Negotiates the scheme (https, then http)
    - Enforces the deadline on the whole negotiation
    - Streams the body only as far as the matchers need it
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        matchers: MatcherSet,
        max_body_bytes: int = DEFAULT_MAX_BODY_BYTES,
    ):
        """
        Initialize HTTP probe.

        Args:
            client: Shared HTTP client
            matchers: Compiled response matchers
            max_body_bytes: Body bytes read before a response counts as unmatched
        """
        self.client = client
        self.matchers = matchers
        self.max_body_bytes = max_body_bytes

    async def probe_host(self, host: str, deadline: float) -> ProbeOutcome:
        """
        Probe one host.

        Args:
            host: Bare hostname
            deadline: Event loop time by which the probe must finish

        Returns:
            Terminal ProbeOutcome; never raises for per-host failures
        """
        loop = asyncio.get_running_loop()
        remaining = deadline - loop.time()
        if remaining <= 0:
            return ProbeOutcome.timed_out(host)

        try:
            outcome = await asyncio.wait_for(
                negotiate(host, lambda url: self._fetch(host, url)),
                timeout=remaining,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.debug(f"{host} timed out")
            return ProbeOutcome.timed_out(host)

        # Any outcome reached at or after the deadline counts as a timeout
        if loop.time() >= deadline:
            logger.debug(f"{host} finished past its deadline ({outcome.kind.value})")
            return ProbeOutcome.timed_out(host)

        return outcome

    async def _fetch(self, host: str, url: str) -> ProbeOutcome:
        """Send the request for url and evaluate the response"""
        async with self.client.stream("GET", url) as response:
            logger.debug(f"{url} -> {response.status_code}")

            if self.matchers.is_empty:
                return ProbeOutcome.matched(host, url)

            return await self._evaluate(host, url, response)

    async def _evaluate(self, host: str, url: str, response: httpx.Response) -> ProbeOutcome:
        """Match status line and headers, then the body as it arrives"""
        match = self.matchers.search_head(status_line(response), response.headers)
        if match:
            return ProbeOutcome.matched(host, url, match_context(match))

        scanner = self.matchers.scanner()
        async for chunk in response.aiter_text():
            if chunk:
                match = scanner.feed(chunk)
                if match:
                    return ProbeOutcome.matched(host, url, match_context(match))

            if response.num_bytes_downloaded >= self.max_body_bytes:
                logger.debug(f"{url} body exceeds {self.max_body_bytes} bytes, not searched further")
                break

            # let the deadline fire between chunks of a fast body
            await asyncio.sleep(0)

        return ProbeOutcome.no_match(host, url)
