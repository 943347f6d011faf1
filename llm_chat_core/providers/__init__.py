"""Completion clients and the completion source boundary."""

from .base import CompletionClient, to_api_messages
from .completion_source import (
    CompletionSource,
    StreamComplete,
    StreamFailure,
    StreamSignal,
    TextDelta,
)
from .openai import OpenAIChatClient

__all__ = [
    "CompletionClient",
    "to_api_messages",
    "CompletionSource",
    "StreamComplete",
    "StreamFailure",
    "StreamSignal",
    "TextDelta",
    "OpenAIChatClient",
]
