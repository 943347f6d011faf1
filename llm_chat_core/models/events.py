"""Event models emitted by the chat orchestrator.

One turn yields, in order: zero or more ``ChunkEvent``, zero or more
``RetryingEvent`` between attempts, then exactly one ``CompleteEvent`` or
``ErrorEvent``.
"""

from dataclasses import dataclass, field
from typing import Optional
import time

from .errors import AIError
from .messages import Message


@dataclass(frozen=True)
class ChatEvent:
    """Base class for all turn events."""
    type: str = field(default="", init=False)
    timestamp: float = field(default_factory=time.time, init=False, compare=False)

    @property
    def is_terminal(self) -> bool:
        return False


@dataclass(frozen=True)
class ChunkEvent(ChatEvent):
    """A fragment of streamed assistant text."""
    text: str = ""
    type: str = field(default="chunk", init=False)


@dataclass(frozen=True)
class RetryingEvent(ChatEvent):
    """A retryable failure occurred; the next attempt starts after ``delay_ms``.

    ``attempt`` is 1-based: the first retry is attempt 1.
    """
    attempt: int = 0
    delay_ms: int = 0
    error: Optional[AIError] = None
    type: str = field(default="retrying", init=False)


@dataclass(frozen=True)
class CompleteEvent(ChatEvent):
    """The stream finished and the assistant message was persisted."""
    message: Optional[Message] = None
    type: str = field(default="complete", init=False)

    @property
    def is_terminal(self) -> bool:
        return True


@dataclass(frozen=True)
class ErrorEvent(ChatEvent):
    """The turn failed permanently."""
    error: Optional[AIError] = None
    type: str = field(default="error", init=False)

    @property
    def is_terminal(self) -> bool:
        return True
