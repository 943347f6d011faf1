"""
Per-turn retry state.

A RetryState lives only inside one orchestrator turn and is dropped once
the turn succeeds or fails permanently.
"""

from dataclasses import dataclass, field
from typing import List, Optional
import time

from ..models.errors import AIError


@dataclass
class RetryState:
    """Tracks attempts and errors for a single turn."""
    attempt: int = 0
    last_error: Optional[AIError] = None
    errors: List[AIError] = field(default_factory=list)
    total_delay_ms: int = 0
    start_time: float = field(default_factory=time.time)

    def record_failure(self, error: AIError) -> None:
        """Record a failed attempt without advancing the counter."""
        self.last_error = error
        self.errors.append(error)

    def advance(self, delay_ms: int) -> int:
        """Move to the next attempt and return its 0-indexed number."""
        self.attempt += 1
        self.total_delay_ms += delay_ms
        return self.attempt

    def get_duration(self) -> float:
        """Seconds elapsed since the turn started."""
        return time.time() - self.start_time
