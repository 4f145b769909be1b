"""
Host Ingestion

Turns an input byte stream into a lazy sequence of bare hostnames.
"""

import asyncio
import logging
from typing import AsyncIterator, BinaryIO, Optional, Union

from .errors import InputReadError

logger = logging.getLogger(__name__)

# Longest accepted input line in bytes
MAX_LINE_BYTES = 64 * 1024

_SCHEME_PREFIXES = ("https://", "http://")


def parse_host_line(line: Union[bytes, str]) -> Optional[str]:
    """
    Extract a host from one input line.

    Args:
        line: Raw line, with or without its line terminator

    Returns:
        The bare host, or None for blank, comment and undecodable lines
    """
    if isinstance(line, bytes):
        try:
            line = line.decode("utf-8")
        except UnicodeDecodeError:
            logger.warning(f"Skipping line that is not valid UTF-8: {line[:80]!r}")
            return None

    host = line.strip()
    if not host or host.startswith("#"):
        return None

    # If a full URL was supplied, keep only the authority
    lowered = host.lower()
    for prefix in _SCHEME_PREFIXES:
        if lowered.startswith(prefix):
            host = host[len(prefix):]
            break
    host = host.split("/")[0].strip()

    return host or None


async def read_hosts(stream: BinaryIO) -> AsyncIterator[str]:
    """
    Yield hosts from a binary stream, one per non-empty line.

    Pipes and terminals are read without blocking the event loop; regular
    files and in-memory streams are read line by line on the default
    executor. A read error ends the sequence.

    Args:
        stream: Binary input stream, typically ``sys.stdin.buffer``
    """
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=MAX_LINE_BYTES)

    try:
        transport, _ = await loop.connect_read_pipe(
            lambda: asyncio.StreamReaderProtocol(reader), stream
        )
    except (AttributeError, ValueError, OSError, NotImplementedError):
        async for host in _read_blocking(stream):
            yield host
        return

    try:
        while True:
            try:
                line = await _read_line(reader)
            except InputReadError as e:
                logger.error(f"Stopped reading hosts: {e}")
                return
            if not line:
                return
            host = parse_host_line(line)
            if host:
                yield host
    finally:
        transport.close()


async def _read_line(reader: asyncio.StreamReader) -> bytes:
    try:
        return await reader.readline()
    except (ValueError, OSError) as e:
        raise InputReadError(str(e)) from e


async def _read_blocking(stream: BinaryIO) -> AsyncIterator[str]:
    loop = asyncio.get_running_loop()

    while True:
        try:
            line = await loop.run_in_executor(None, _readline_sync, stream)
        except InputReadError as e:
            logger.error(f"Stopped reading hosts: {e}")
            return
        if not line:
            return
        host = parse_host_line(line)
        if host:
            yield host


def _readline_sync(stream: BinaryIO) -> bytes:
    try:
        line = stream.readline(MAX_LINE_BYTES + 1)
    except (ValueError, OSError) as e:
        raise InputReadError(str(e)) from e

    if len(line) > MAX_LINE_BYTES:
        raise InputReadError(f"line exceeds {MAX_LINE_BYTES} bytes")
    return line
