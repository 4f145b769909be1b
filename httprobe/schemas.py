"""
Probe Schemas

Pydantic models for probe configuration, outcomes and run statistics.
"""

from typing import List, Optional
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from . import __version__
from .errors import ErrorKind


DEFAULT_TIMEOUT_MS = 6000
DEFAULT_CONCURRENCY = 60
DEFAULT_MAX_BODY_BYTES = 5 * 1024 * 1024


class ProbeConfig(BaseModel):
    """Configuration consumed by the probing pipeline"""
    timeout_ms: int = Field(default=DEFAULT_TIMEOUT_MS, description="Per-host deadline in milliseconds")
    concurrency: int = Field(default=DEFAULT_CONCURRENCY, description="Maximum probes in flight")
    patterns: List[str] = Field(default_factory=list, description="Regular expressions to match responses against")
    user_agent: str = Field(default=f"httprobe/{__version__}", description="User-Agent header")
    verify_tls: bool = Field(default=False, description="Verify TLS certificates")
    follow_redirects: bool = Field(default=False, description="Follow HTTP redirects")
    max_body_bytes: int = Field(default=DEFAULT_MAX_BODY_BYTES, description="Body bytes read per response before giving up on a match")

    @field_validator('timeout_ms')
    @classmethod
    def validate_timeout(cls, v):
        if v <= 0:
            raise ValueError('timeout_ms must be greater than 0')
        return v

    @field_validator('concurrency')
    @classmethod
    def validate_concurrency(cls, v):
        if v < 1:
            raise ValueError('concurrency must be at least 1')
        return v

    @field_validator('max_body_bytes')
    @classmethod
    def validate_max_body_bytes(cls, v):
        if v <= 0:
            raise ValueError('max_body_bytes must be greater than 0')
        return v

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000


class OutcomeKind(str, Enum):
    """Terminal classification of a probe"""
    MATCHED = "matched"
    NO_MATCH = "no_match"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class ProbeOutcome(BaseModel):
    """Immutable result of probing one host"""
    model_config = ConfigDict(frozen=True)

    host: str
    kind: OutcomeKind
    url: Optional[str] = None
    context: Optional[str] = None
    error: Optional[ErrorKind] = None

    @classmethod
    def matched(cls, host: str, url: str, context: Optional[str] = None) -> "ProbeOutcome":
        return cls(host=host, kind=OutcomeKind.MATCHED, url=url, context=context)

    @classmethod
    def no_match(cls, host: str, url: str) -> "ProbeOutcome":
        return cls(host=host, kind=OutcomeKind.NO_MATCH, url=url)

    @classmethod
    def failed(cls, host: str, error: ErrorKind) -> "ProbeOutcome":
        return cls(host=host, kind=OutcomeKind.FAILED, error=error)

    @classmethod
    def timed_out(cls, host: str) -> "ProbeOutcome":
        return cls(host=host, kind=OutcomeKind.TIMED_OUT)

    @property
    def scheme(self) -> Optional[str]:
        if self.url is None:
            return None
        return self.url.split("://", 1)[0]


class ProbeStats(BaseModel):
    """Statistics from a probing run"""
    total: int = 0
    matched: int = 0
    no_match: int = 0
    failed: int = 0
    timed_out: int = 0
    https_count: int = 0
    http_count: int = 0
    peak_in_flight: int = 0
    interrupted: bool = False
    duration_seconds: float = 0.0

    def record(self, outcome: ProbeOutcome) -> None:
        """Count one terminal outcome"""
        self.total += 1
        if outcome.kind == OutcomeKind.MATCHED:
            self.matched += 1
        elif outcome.kind == OutcomeKind.NO_MATCH:
            self.no_match += 1
        elif outcome.kind == OutcomeKind.FAILED:
            self.failed += 1
        else:
            self.timed_out += 1

        if outcome.scheme == "https":
            self.https_count += 1
        elif outcome.scheme == "http":
            self.http_count += 1

    def summary(self) -> str:
        return (
            f"{self.total} probed, {self.matched} matched, {self.no_match} unmatched, "
            f"{self.failed} failed, {self.timed_out} timed out "
            f"(https={self.https_count}, http={self.http_count}, "
            f"peak={self.peak_in_flight}) in {self.duration_seconds:.2f}s"
        )
