"""
Retry policy and per-batch upload task state.

Backoff formula: delay(n) = min(base_delay * 2^n, max_delay), where n counts
retries from 0. With the defaults (100 ms base, 1 h cap, 20 attempts) the
delays run 0.1s, 0.2s, 0.4s, ... and reach the cap after the 16th retry.

Task lifecycle:
    PENDING --success--> SUCCEEDED
    PENDING --transient failure--> WAITING(delay) --resume--> PENDING
    PENDING --fatal failure / budget exhausted--> FAILED
"""
from dataclasses import dataclass, field
from typing import Optional

from importer.core.enums import RetryState, UploadOperation
from importer.core.exceptions import FatalUploadError, UploadError

# 2 ** 64 * any sane base delay is far past any max_delay
_MAX_EXPONENT = 64


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff without jitter."""
    base_delay: float = 0.1
    max_delay: float = 3600.0
    max_attempts: int = 20

    def __post_init__(self):
        if self.base_delay <= 0 or self.max_delay <= 0:
            raise ValueError("retry delays must be positive")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    @classmethod
    def from_config(cls, retry_config) -> "RetryPolicy":
        """Build from a config.RetryConfig."""
        return cls(
            base_delay=retry_config.base_delay_seconds,
            max_delay=retry_config.max_delay_seconds,
            max_attempts=retry_config.max_attempts,
        )

    def delay_for(self, retry_number: int) -> float:
        """Seconds to wait before retry number retry_number (0-based)."""
        if retry_number >= _MAX_EXPONENT:
            return self.max_delay
        return min(self.base_delay * (2 ** retry_number), self.max_delay)


@dataclass
class UploadTask:
    """
    One batch on its way to the server.

    Tracks the attempt counter and the retry state. Transitions are explicit
    so the loop driving them can be tested without sleeping.
    """
    url: str
    operation: UploadOperation
    payload: bytes
    policy: RetryPolicy = field(default_factory=RetryPolicy)
    attempts: int = 0
    state: RetryState = RetryState.PENDING
    delay: Optional[float] = None
    delays: list[float] = field(default_factory=list)
    last_error: Optional[UploadError] = None

    def begin_attempt(self):
        if self.state is not RetryState.PENDING:
            raise RuntimeError(f"Cannot start an attempt while {self.state}")
        self.attempts += 1
        self.delay = None

    def succeed(self):
        self.state = RetryState.SUCCEEDED
        self.last_error = None

    def fail(self, error: UploadError) -> RetryState:
        """
        Register a failed attempt and move to WAITING or FAILED.

        Returns:
            The new state
        """
        self.last_error = error
        error.attempts = self.attempts

        if isinstance(error, FatalUploadError) or self.attempts >= self.policy.max_attempts:
            self.state = RetryState.FAILED
            return self.state

        self.delay = self.policy.delay_for(self.attempts - 1)
        self.delays.append(self.delay)
        self.state = RetryState.WAITING
        return self.state

    def resume(self):
        if self.state is not RetryState.WAITING:
            raise RuntimeError(f"Cannot resume a task that is {self.state}")
        self.state = RetryState.PENDING

    @property
    def exhausted(self) -> bool:
        return self.state is RetryState.FAILED and not isinstance(self.last_error, FatalUploadError)
