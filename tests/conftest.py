"""
Test configuration and fixtures for the probing pipeline.

Network access is simulated with httpx.MockTransport; no test reaches a
real host.
"""

import asyncio
import io
from typing import Callable, Dict, List

import httpx
import pytest

from httprobe.schemas import ProbeConfig


async def hosts_from(hosts: List[str]):
    """Async host source over a fixed list."""
    for host in hosts:
        yield host


def dns_failure(request: httpx.Request):
    raise httpx.ConnectError("[Errno -2] Name or service not known", request=request)


class RecordingHandler:
    """
    MockTransport handler that routes by URL and tracks concurrency.

    Routes map ``scheme://host`` to either an httpx.Response factory or an
    exception factory. Unknown URLs fail DNS resolution.
    """

    def __init__(self, routes: Dict[str, Callable], delay: float = 0.0):
        self.routes = routes
        self.delay = delay
        self.requested: List[str] = []
        self.active = 0
        self.peak = 0

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        url = f"{request.url.scheme}://{request.url.netloc.decode()}"
        self.requested.append(url)
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            route = self.routes.get(url, dns_failure)
            return route(request)
        finally:
            self.active -= 1


@pytest.fixture
def output():
    """Captures emitted result lines."""
    return io.StringIO()


@pytest.fixture
def config():
    """Fast default configuration for tests."""
    return ProbeConfig(timeout_ms=2000, concurrency=10)


@pytest.fixture
def make_client():
    """Build AsyncClients over a MockTransport for a handler."""
    def _make(handler) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _make


@pytest.fixture
def host_source():
    """Turn a list of hosts into an async host source."""
    return hosts_from


@pytest.fixture
def handler_factory():
    return RecordingHandler
