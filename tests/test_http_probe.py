"""
Tests for the HTTP probe executor and scheme negotiation
"""

import asyncio
import time

import httpx
import pytest

from httprobe.errors import ErrorKind
from httprobe.http_probe import HttpProbe, build_client, status_line
from httprobe.matcher import MatcherSet
from httprobe.scheme import SCHEMES, build_url, negotiate
from httprobe.schemas import OutcomeKind, ProbeConfig, ProbeOutcome


def deadline_in(seconds):
    return asyncio.get_running_loop().time() + seconds


def refused(request):
    raise httpx.ConnectError("[Errno 111] Connection refused", request=request)


def protocol_error(request):
    raise httpx.RemoteProtocolError("Server disconnected without sending a response.", request=request)


# Scheme Negotiation Tests

def test_scheme_order():
    """Test that https is always tried before http"""
    assert SCHEMES == ("https://", "http://")
    assert build_url("https://", "google.fr") == "https://google.fr"


@pytest.mark.asyncio
async def test_negotiate_stops_at_first_response():
    """Test that a successful https attempt ends negotiation"""
    attempts = []

    async def fetch(url):
        attempts.append(url)
        return ProbeOutcome.matched("google.fr", url)

    outcome = await negotiate("google.fr", fetch)

    assert outcome.url == "https://google.fr"
    assert attempts == ["https://google.fr"]


@pytest.mark.asyncio
async def test_negotiate_reports_last_error():
    """Test that Failed carries the error of the http attempt"""
    errors = iter([
        httpx.ConnectError("[SSL: WRONG_VERSION_NUMBER] wrong version number"),
        httpx.ConnectError("[Errno 111] Connection refused"),
    ])

    async def fetch(url):
        raise next(errors)

    outcome = await negotiate("example.com", fetch)

    assert outcome.kind == OutcomeKind.FAILED
    assert outcome.error == ErrorKind.CONNECTION_REFUSED


@pytest.mark.asyncio
async def test_negotiate_propagates_timeouts():
    """Test that transport timeouts are not turned into failures"""
    async def fetch(url):
        raise httpx.ConnectTimeout("timed out")

    with pytest.raises(httpx.TimeoutException):
        await negotiate("example.com", fetch)


# HttpProbe Tests

class TestHttpProbe:
    """Tests for HttpProbe class"""

    def test_build_client(self):
        """Test client settings derived from the configuration"""
        config = ProbeConfig(timeout_ms=2500, concurrency=7, user_agent="httprobe-test/1.0")
        client = build_client(config)

        assert client.timeout.connect == 2.5
        assert client.timeout.read == 2.5
        assert client.headers["User-Agent"] == "httprobe-test/1.0"
        assert client.follow_redirects == False

    def test_status_line(self):
        """Test status line rendering"""
        response = httpx.Response(404)
        assert status_line(response) == "HTTP/1.1 404 Not Found"

    @pytest.mark.asyncio
    async def test_https_success(self, make_client, handler_factory):
        """Test a host answering over https"""
        handler = handler_factory({"https://google.fr": lambda r: httpx.Response(200, text="ok")})

        async with make_client(handler) as client:
            probe = HttpProbe(client, MatcherSet())
            outcome = await probe.probe_host("google.fr", deadline_in(2))

        assert outcome.kind == OutcomeKind.MATCHED
        assert outcome.url == "https://google.fr"
        assert handler.requested == ["https://google.fr"]

    @pytest.mark.asyncio
    async def test_http_error_status_is_a_response(self, make_client, handler_factory):
        """Test that an HTTP error status does not trigger fallback"""
        handler = handler_factory({
            "https://broken.example": lambda r: httpx.Response(503),
            "http://broken.example": lambda r: httpx.Response(200),
        })

        async with make_client(handler) as client:
            probe = HttpProbe(client, MatcherSet())
            outcome = await probe.probe_host("broken.example", deadline_in(2))

        assert outcome.url == "https://broken.example"
        assert handler.requested == ["https://broken.example"]

    @pytest.mark.asyncio
    async def test_fallback_to_http(self, make_client, handler_factory):
        """Test http fallback after a connection failure over https"""
        handler = handler_factory({
            "https://legacy.example": refused,
            "http://legacy.example": lambda r: httpx.Response(200),
        })

        async with make_client(handler) as client:
            probe = HttpProbe(client, MatcherSet())
            outcome = await probe.probe_host("legacy.example", deadline_in(2))

        assert outcome.kind == OutcomeKind.MATCHED
        assert outcome.url == "http://legacy.example"
        assert handler.requested == ["https://legacy.example", "http://legacy.example"]

    @pytest.mark.asyncio
    async def test_both_schemes_fail(self, make_client, handler_factory):
        """Test a host that resolves under neither scheme"""
        handler = handler_factory({})

        async with make_client(handler) as client:
            probe = HttpProbe(client, MatcherSet())
            outcome = await probe.probe_host("nope.invalid", deadline_in(2))

        assert outcome.kind == OutcomeKind.FAILED
        assert outcome.error == ErrorKind.DNS_RESOLUTION
        assert handler.requested == ["https://nope.invalid", "http://nope.invalid"]

    @pytest.mark.asyncio
    async def test_protocol_error_does_not_fall_back(self, make_client, handler_factory):
        """Test that post-connect failures are not retried over http"""
        handler = handler_factory({
            "https://flaky.example": protocol_error,
            "http://flaky.example": lambda r: httpx.Response(200),
        })

        async with make_client(handler) as client:
            probe = HttpProbe(client, MatcherSet())
            outcome = await probe.probe_host("flaky.example", deadline_in(2))

        assert outcome.kind == OutcomeKind.FAILED
        assert outcome.error == ErrorKind.PROTOCOL
        assert handler.requested == ["https://flaky.example"]

    @pytest.mark.asyncio
    async def test_deadline_exceeded(self, make_client, handler_factory):
        """Test that a slow host times out"""
        handler = handler_factory({"https://slow.example": lambda r: httpx.Response(200)}, delay=1.0)

        async with make_client(handler) as client:
            probe = HttpProbe(client, MatcherSet())
            outcome = await probe.probe_host("slow.example", deadline_in(0.05))

        assert outcome.kind == OutcomeKind.TIMED_OUT

    @pytest.mark.asyncio
    async def test_deadline_covers_fallback(self, make_client):
        """Test that the deadline spans both scheme attempts"""
        async def slow_refusal(request):
            await asyncio.sleep(0.2)
            refused(request)

        async def handler(request):
            if request.url.scheme == "https":
                await slow_refusal(request)
            await asyncio.sleep(0.2)
            return httpx.Response(200)

        async with make_client(handler) as client:
            probe = HttpProbe(client, MatcherSet())
            outcome = await probe.probe_host("slow.example", deadline_in(0.3))

        assert outcome.kind == OutcomeKind.TIMED_OUT

    @pytest.mark.asyncio
    async def test_expired_deadline(self, make_client, handler_factory):
        """Test that no request is sent once the deadline has passed"""
        handler = handler_factory({"https://late.example": lambda r: httpx.Response(200)})

        async with make_client(handler) as client:
            probe = HttpProbe(client, MatcherSet())
            outcome = await probe.probe_host("late.example", deadline_in(-1))

        assert outcome.kind == OutcomeKind.TIMED_OUT
        assert handler.requested == []

    @pytest.mark.asyncio
    async def test_transport_timeout(self, make_client):
        """Test that httpx timeouts are reported as timeouts"""
        def handler(request):
            raise httpx.ReadTimeout("read timed out", request=request)

        async with make_client(handler) as client:
            probe = HttpProbe(client, MatcherSet())
            outcome = await probe.probe_host("slow.example", deadline_in(2))

        assert outcome.kind == OutcomeKind.TIMED_OUT

    @pytest.mark.asyncio
    async def test_body_match(self, make_client, handler_factory):
        """Test matching against the response body"""
        handler = handler_factory({
            "https://site.example": lambda r: httpx.Response(200, text="<title>Welcome to nginx!</title>"),
        })

        async with make_client(handler) as client:
            probe = HttpProbe(client, MatcherSet.compile([r"Welcome to \w+"]))
            outcome = await probe.probe_host("site.example", deadline_in(2))

        assert outcome.kind == OutcomeKind.MATCHED
        assert outcome.context == "Welcome to nginx"

    @pytest.mark.asyncio
    async def test_header_match(self, make_client, handler_factory):
        """Test matching against response headers"""
        handler = handler_factory({
            "https://site.example": lambda r: httpx.Response(200, headers={"Server": "Apache/2.4.41"}),
        })

        async with make_client(handler) as client:
            probe = HttpProbe(client, MatcherSet.compile([r"(?i)server: apache"]))
            outcome = await probe.probe_host("site.example", deadline_in(2))

        assert outcome.kind == OutcomeKind.MATCHED

    @pytest.mark.asyncio
    async def test_no_match(self, make_client, handler_factory):
        """Test a fetched response that matches no pattern"""
        handler = handler_factory({
            "https://google.fr": lambda r: httpx.Response(200, text="<html>Google</html>"),
        })

        async with make_client(handler) as client:
            probe = HttpProbe(client, MatcherSet.compile(["NoSuchStringEver"]))
            outcome = await probe.probe_host("google.fr", deadline_in(2))

        assert outcome.kind == OutcomeKind.NO_MATCH
        assert outcome.url == "https://google.fr"

    @pytest.mark.asyncio
    async def test_streamed_body_match(self, make_client):
        """Test that a match spanning chunks is found"""
        async def body():
            yield b"<html>Powered by Word"
            yield b"Press</html>"

        def handler(request):
            return httpx.Response(200, content=body())

        async with make_client(handler) as client:
            probe = HttpProbe(client, MatcherSet.compile(["WordPress"]))
            outcome = await probe.probe_host("blog.example", deadline_in(2))

        assert outcome.kind == OutcomeKind.MATCHED
        assert outcome.context == "WordPress"

    @pytest.mark.asyncio
    async def test_large_chunked_body_match(self, make_client):
        """Test a match at the end of a long body delivered in many chunks"""
        async def body():
            for _ in range(4000):
                yield b"<p>" + b"x" * 1024 + b"</p>"
            yield b"<footer>Powered by Dru"
            yield b"pal</footer>"

        def handler(request):
            return httpx.Response(200, content=body())

        async with make_client(handler) as client:
            probe = HttpProbe(client, MatcherSet.compile(["Drupal"]))
            outcome = await probe.probe_host("cms.example", deadline_in(10))

        assert outcome.kind == OutcomeKind.MATCHED
        assert outcome.context == "Drupal"

    @pytest.mark.asyncio
    async def test_body_limit(self, make_client):
        """Test that reading stops once the body limit is reached"""
        sent = []

        async def body():
            for i in range(8):
                sent.append(i)
                yield b"x" * 1024
            yield b"Drupal"

        def handler(request):
            return httpx.Response(200, content=body())

        async with make_client(handler) as client:
            probe = HttpProbe(client, MatcherSet.compile(["Drupal"]), max_body_bytes=2048)
            outcome = await probe.probe_host("cms.example", deadline_in(2))

        assert outcome.kind == OutcomeKind.NO_MATCH
        assert len(sent) < 8

    @pytest.mark.asyncio
    async def test_endless_body_times_out(self, make_client):
        """Test that the deadline interrupts a body that never ends"""
        async def body():
            while True:
                yield b"x" * 1024

        def handler(request):
            return httpx.Response(200, content=body())

        async with make_client(handler) as client:
            probe = HttpProbe(client, MatcherSet.compile(["NoSuchStringEver"]), max_body_bytes=2 ** 40)
            outcome = await asyncio.wait_for(probe.probe_host("stream.example", deadline_in(0.1)), timeout=5)

        assert outcome.kind == OutcomeKind.TIMED_OUT

    @pytest.mark.asyncio
    async def test_match_after_deadline_is_timed_out(self, make_client):
        """Test that a response completed past the deadline is not reported"""
        def handler(request):
            # blocks the loop so the deadline cannot fire first
            time.sleep(0.1)
            return httpx.Response(200)

        async with make_client(handler) as client:
            probe = HttpProbe(client, MatcherSet())
            outcome = await probe.probe_host("slow.example", deadline_in(0.05))

        assert outcome.kind == OutcomeKind.TIMED_OUT
