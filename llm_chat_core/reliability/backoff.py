"""
Exponential backoff with jitter.

Delays grow as ``base_delay_ms * 2**attempt`` and are capped at
``max_delay_ms``. With the defaults the progression is 1s, 2s, 4s, 8s, 16s.
Jitter spreads each delay by +/-20% so that concurrent clients do not retry
in lockstep.
"""

import random
from dataclasses import dataclass, field
from typing import FrozenSet

from ..models.errors import AIError, TRANSPORT_FAILURE_CODE

DEFAULT_RETRYABLE_CODES: FrozenSet[int] = frozenset({429, 500, 503})

JITTER_FACTOR = 0.2


@dataclass(frozen=True)
class BackoffPolicy:
    """Retry eligibility and delay calculation.

    Attributes:
        max_attempts: Total attempts allowed for one turn, including the first
        base_delay_ms: Delay for attempt 0 before jitter
        max_delay_ms: Upper bound for the un-jittered delay
        retryable_codes: Status codes that warrant a retry
    """
    max_attempts: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 16000
    retryable_codes: FrozenSet[int] = field(default_factory=lambda: DEFAULT_RETRYABLE_CODES)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay_ms < 0:
            raise ValueError(f"base_delay_ms must be >= 0, got {self.base_delay_ms}")
        if self.max_delay_ms < self.base_delay_ms:
            raise ValueError("max_delay_ms must be >= base_delay_ms")
        # Accept any iterable of codes but store an immutable set
        object.__setattr__(self, "retryable_codes", frozenset(self.retryable_codes))

    def should_retry(self, status_code: int, attempt: int) -> bool:
        """Whether a failure with ``status_code`` at 0-indexed ``attempt`` may be retried."""
        return attempt < self.max_attempts and status_code in self.retryable_codes

    def is_retryable(self, error: AIError, attempt: int) -> bool:
        """Retry decision for a classified error.

        Network and timeout failures carry the transport sentinel code, which
        is not an HTTP status; they are retryable on the attempt bound alone.
        """
        if error.retry_status_code == TRANSPORT_FAILURE_CODE:
            return attempt < self.max_attempts
        return self.should_retry(error.retry_status_code, attempt)

    def compute_backoff(self, attempt: int) -> int:
        """Un-jittered delay in milliseconds for 0-indexed ``attempt``."""
        if attempt < 0:
            raise ValueError(f"attempt must be >= 0, got {attempt}")
        # Cap the exponent; the delay is clamped to max_delay_ms anyway
        exponent = min(attempt, 62)
        return min(self.base_delay_ms * (2 ** exponent), self.max_delay_ms)

    def apply_jitter(self, delay_ms: int) -> int:
        """Random delay drawn from the closed range ``delay_ms`` +/- 20%."""
        spread = int(delay_ms * JITTER_FACTOR)
        return random.randint(delay_ms - spread, delay_ms + spread)

    def next_delay(self, attempt: int) -> int:
        """Jittered backoff for ``attempt``."""
        return self.apply_jitter(self.compute_backoff(attempt))

    def max_total_delay_ms(self) -> int:
        """Worst-case sum of all retry waits for one turn."""
        return sum(
            int(self.compute_backoff(i) * (1 + JITTER_FACTOR))
            for i in range(self.max_attempts)
        )
