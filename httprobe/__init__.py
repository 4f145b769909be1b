"""
httprobe - concurrent HTTP(S) host prober

Reads hostnames from standard input and prints the URL of every host that
answers, optionally filtered by regular expressions:
- https:// first, http:// on connection failure
- bounded concurrency with backpressure on input
- per-host deadline measured from admission
- results streamed in completion order
"""

__version__ = "0.1.0"

from .errors import ErrorKind, HttprobeError, InputReadError, PatternCompilationError
from .schemas import OutcomeKind, ProbeConfig, ProbeOutcome, ProbeStats
from .matcher import BodyScanner, MatcherSet, load_patterns
from .limiter import ConcurrencyLimiter
from .http_probe import HttpProbe, build_client
from .emitter import ResultEmitter
from .ingestion import read_hosts, parse_host_line
from .orchestrator import ProbePipeline

__all__ = [
    '__version__',
    'ErrorKind',
    'HttprobeError',
    'InputReadError',
    'PatternCompilationError',
    'OutcomeKind',
    'ProbeConfig',
    'ProbeOutcome',
    'ProbeStats',
    'MatcherSet',
    'BodyScanner',
    'load_patterns',
    'ConcurrencyLimiter',
    'HttpProbe',
    'build_client',
    'ResultEmitter',
    'read_hosts',
    'parse_host_line',
    'ProbePipeline',
]
