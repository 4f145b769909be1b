"""
Response Matcher

Decides whether a probed response is worth reporting. Patterns are compiled
once at startup and shared read-only by every probe.
"""

import re
import logging
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

from .errors import PatternCompilationError

logger = logging.getLogger(__name__)

# Longest matched text kept as outcome context
MAX_CONTEXT_CHARS = 200

# Body text carried from one chunk into the search of the next
BODY_OVERLAP_CHARS = 4096


def load_patterns(path: str) -> List[str]:
    """
    Load regular expression sources from a file.

    Args:
        path: File containing one pattern per line

    Returns:
        Non-empty lines, in file order
    """
    with open(path, 'r', encoding='utf-8') as f:
        return [line.rstrip('\r\n') for line in f if line.strip()]


class MatcherSet:
    """
    Ordered, immutable set of compiled regular expressions.

    A response matches when any pattern is found in its status line, its
    headers or its body. An empty set matches every response.
    """

    def __init__(self, patterns: Sequence["re.Pattern[str]"] = ()):
        self._patterns: Tuple["re.Pattern[str]", ...] = tuple(patterns)

    @classmethod
    def compile(cls, sources: Iterable[str]) -> "MatcherSet":
        """
        Compile pattern sources into a MatcherSet.

        Raises:
            PatternCompilationError: On the first source that fails to compile
        """
        compiled = []
        for source in sources:
            try:
                compiled.append(re.compile(source))
            except re.error as e:
                raise PatternCompilationError(source, str(e)) from e

        logger.debug(f"Compiled {len(compiled)} pattern(s)")
        return cls(compiled)

    @property
    def patterns(self) -> Tuple["re.Pattern[str]", ...]:
        return self._patterns

    @property
    def is_empty(self) -> bool:
        return not self._patterns

    def __len__(self) -> int:
        return len(self._patterns)

    def search(self, text: str) -> Optional["re.Match[str]"]:
        """Return the first match of any pattern in text, in pattern order"""
        for pattern in self._patterns:
            match = pattern.search(text)
            if match:
                return match
        return None

    def search_head(self, status_line: str, headers: Mapping[str, str]) -> Optional["re.Match[str]"]:
        """Search the status line and each header line"""
        match = self.search(status_line)
        if match:
            return match

        for name, value in headers.items():
            match = self.search(f"{name}: {value}")
            if match:
                return match
        return None

    def scanner(self, overlap: int = BODY_OVERLAP_CHARS) -> "BodyScanner":
        """Start an incremental search over a body that arrives in chunks"""
        return BodyScanner(self, overlap)


class BodyScanner:
    """
    Searches a streamed body one chunk at a time.

    Each chunk is searched together with the last ``overlap`` characters of
    the text before it, so a match spanning a chunk boundary is still found
    as long as it starts within the overlap. Work and memory per chunk stay
    proportional to the chunk size, not to the body received so far.
    """

    def __init__(self, matchers: MatcherSet, overlap: int = BODY_OVERLAP_CHARS):
        if overlap < 0:
            raise ValueError("overlap must not be negative")
        self.matchers = matchers
        self.overlap = overlap
        self._tail = ""

    @property
    def tail(self) -> str:
        """Text carried over into the next search"""
        return self._tail

    def feed(self, chunk: str) -> Optional["re.Match[str]"]:
        """Search the next chunk; returns the first match, if any"""
        window = self._tail + chunk
        match = self.matchers.search(window)
        if match:
            return match

        self._tail = window[-self.overlap:] if self.overlap else ""
        return None


def match_context(match: "re.Match[str]") -> str:
    return match.group(0)[:MAX_CONTEXT_CHARS]
