"""
Scheme Negotiation

Resolves a bare hostname to a working URL: https:// first, then http://
when the https attempt could not establish a connection.
"""

import logging
from typing import Awaitable, Callable

import httpx

from .errors import ErrorKind, classify_error
from .schemas import ProbeOutcome

logger = logging.getLogger(__name__)

SCHEME_HTTPS = "https://"
SCHEME_HTTP = "http://"

SCHEMES = (SCHEME_HTTPS, SCHEME_HTTP)


def build_url(scheme: str, host: str) -> str:
    return f"{scheme}{host}"


async def negotiate(
    host: str,
    fetch: Callable[[str], Awaitable[ProbeOutcome]],
) -> ProbeOutcome:
    """
    Try each scheme in order until one yields a response.

    Args:
        host: Bare hostname (optionally with port)
        fetch: Coroutine performing the request for a URL; raises httpx
            errors when no response is obtained

    Returns:
        The outcome of the first attempt that produced a response, or
        Failed with the last error kind
    """
    last_error = ErrorKind.CONNECT

    for scheme in SCHEMES:
        url = build_url(scheme, host)
        try:
            return await fetch(url)
        except httpx.TimeoutException:
            # deadline handling belongs to the executor
            raise
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            last_error = classify_error(e)
            logger.debug(f"{url} failed ({last_error.value}): {e}")

            if not last_error.is_connection_establishment:
                break

    return ProbeOutcome.failed(host, last_error)
