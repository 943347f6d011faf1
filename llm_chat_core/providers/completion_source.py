"""
Completion source: the boundary between the raw client and the orchestrator.

The source calls the completion client, forwards text deltas and ends
every stream with exactly one terminal signal. Raw failures never cross
this boundary; they are classified into :class:`AIError` here.
"""

import asyncio
from dataclasses import dataclass
from typing import AsyncIterator, Optional, Sequence, Union

from ..config.settings import DEFAULT_TEMPERATURE, DEFAULT_TIMEOUT_SECONDS
from ..models.errors import AIError
from ..models.messages import Message
from ..observability.logging import ChatLogger
from ..reliability.error_classifier import ErrorClassifier
from .base import CompletionClient

logger = ChatLogger("completion")


@dataclass(frozen=True)
class TextDelta:
    """A piece of streamed completion text."""
    text: str


@dataclass(frozen=True)
class StreamComplete:
    """The stream ended cleanly."""


@dataclass(frozen=True)
class StreamFailure:
    """The stream ended with a classified error."""
    error: AIError


StreamSignal = Union[TextDelta, StreamComplete, StreamFailure]


class CompletionSource:
    """Wraps a completion client with a deadline and error classification."""

    def __init__(
        self,
        client: CompletionClient,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        temperature: float = DEFAULT_TEMPERATURE
    ):
        if timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be > 0, got {timeout_seconds}")
        self.client = client
        self.timeout_seconds = timeout_seconds
        self.temperature = temperature

    async def stream(
        self,
        messages: Sequence[Message],
        temperature: Optional[float] = None
    ) -> AsyncIterator[StreamSignal]:
        """
        Stream a completion as signals.

        Yields zero or more :class:`TextDelta` followed by exactly one
        :class:`StreamComplete` or :class:`StreamFailure`. The deadline covers
        the whole stream, not each chunk. Cancellation is propagated.
        """
        if temperature is None:
            temperature = self.temperature

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout_seconds
        stream = None
        deltas = 0
        try:
            stream = self.client.stream_chat(list(messages), temperature)
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise asyncio.TimeoutError()
                try:
                    text = await asyncio.wait_for(stream.__anext__(), timeout=remaining)
                except StopAsyncIteration:
                    break
                if text:
                    deltas += 1
                    yield TextDelta(text)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = ErrorClassifier.classify(e)
            logger.debug(
                f"Stream failed after {deltas} deltas: {type(e).__name__}",
                category=error.category.value
            )
            yield StreamFailure(error)
            return
        finally:
            if stream is not None and hasattr(stream, "aclose"):
                try:
                    await stream.aclose()
                except Exception as e:
                    logger.debug(f"Error closing stream: {e}")

        logger.debug(f"Stream completed with {deltas} deltas")
        yield StreamComplete()
