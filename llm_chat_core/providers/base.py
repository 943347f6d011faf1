"""
Base completion client interface.

A completion client is the black box that talks to the LLM service. It
yields text deltas as they arrive and raises on any failure; turning
those failures into the AIError taxonomy is not its job.
"""

from typing import AsyncIterator, Dict, List, Protocol, Sequence

from ..models.messages import Message


class CompletionClient(Protocol):
    """Streaming chat-completion client."""

    def stream_chat(
        self,
        messages: Sequence[Message],
        temperature: float
    ) -> AsyncIterator[str]:
        """
        Stream a completion for ``messages``.

        Args:
            messages: Context to send, oldest first
            temperature: Sampling temperature

        Returns:
            Async iterator of text deltas. Raises on failure.
        """
        ...


def to_api_messages(messages: Sequence[Message]) -> List[Dict[str, str]]:
    """Convert messages to the ``{"role", "content"}`` wire shape."""
    return [{"role": m.role.value, "content": m.text} for m in messages]
