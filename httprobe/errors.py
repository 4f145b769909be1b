"""
Probe Error Handling

Defines the exceptions raised by the probing pipeline and the
classification of per-host connection failures.
"""

import socket
import ssl
from enum import Enum
from typing import Optional

import httpx


class HttprobeError(Exception):
    """Base class for all httprobe errors"""
    pass


class PatternCompilationError(HttprobeError):
    """Raised when a configured regular expression does not compile"""

    def __init__(self, pattern: str, reason: str):
        self.pattern = pattern
        self.reason = reason
        super().__init__(f"Invalid pattern {pattern!r}: {reason}")


class InputReadError(HttprobeError):
    """Raised when the host input stream can no longer be read"""
    pass


class ErrorKind(str, Enum):
    """Why a probe failed"""
    DNS_RESOLUTION = "dns_resolution"
    CONNECTION_REFUSED = "connection_refused"
    TLS_HANDSHAKE = "tls_handshake"
    CONNECT = "connect"
    PROTOCOL = "protocol"
    INVALID_URL = "invalid_url"

    @property
    def is_connection_establishment(self) -> bool:
        """Whether the failure happened before a response could be read"""
        return self in _ESTABLISHMENT_KINDS


_ESTABLISHMENT_KINDS = frozenset({
    ErrorKind.DNS_RESOLUTION,
    ErrorKind.CONNECTION_REFUSED,
    ErrorKind.TLS_HANDSHAKE,
    ErrorKind.CONNECT,
})

# Substrings seen in resolver / socket / ssl messages when no cause is attached
_DNS_HINTS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "temporary failure in name resolution",
    "no address associated",
)
_REFUSED_HINTS = ("connection refused", "errno 111", "errno 61")
_TLS_HINTS = ("ssl", "tls", "certificate", "handshake")


def _cause_chain(exc: BaseException):
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def classify_error(exc: BaseException) -> ErrorKind:
    """
    Map an httpx exception to an ErrorKind.

    Args:
        exc: Exception raised while sending a request

    Returns:
        The ErrorKind describing the failure
    """
    if isinstance(exc, (httpx.InvalidURL, httpx.UnsupportedProtocol)):
        return ErrorKind.INVALID_URL

    if not isinstance(exc, httpx.ConnectError):
        return ErrorKind.PROTOCOL

    for cause in _cause_chain(exc):
        if isinstance(cause, socket.gaierror):
            return ErrorKind.DNS_RESOLUTION
        if isinstance(cause, ConnectionRefusedError):
            return ErrorKind.CONNECTION_REFUSED
        if isinstance(cause, ssl.SSLError):
            return ErrorKind.TLS_HANDSHAKE

    message = str(exc).lower()
    if any(hint in message for hint in _DNS_HINTS):
        return ErrorKind.DNS_RESOLUTION
    if any(hint in message for hint in _REFUSED_HINTS):
        return ErrorKind.CONNECTION_REFUSED
    if any(hint in message for hint in _TLS_HINTS):
        return ErrorKind.TLS_HANDSHAKE

    return ErrorKind.CONNECT
