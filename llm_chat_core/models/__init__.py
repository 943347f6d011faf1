"""Data models shared across the chat core."""

from .errors import AIError, ErrorCategory, TRANSPORT_FAILURE_CODE
from .events import ChatEvent, ChunkEvent, CompleteEvent, ErrorEvent, RetryingEvent
from .messages import Conversation, Message, MessageRole, generate_message_id, now_ms
from .personality import (
    ALL_PERSONALITIES,
    CODE_REVIEWER,
    CREATIVE,
    DEFAULT_PERSONALITY,
    PROFESSIONAL,
    AIPersonality,
    get_personality,
)

__all__ = [
    "AIError",
    "ErrorCategory",
    "TRANSPORT_FAILURE_CODE",
    "ChatEvent",
    "ChunkEvent",
    "CompleteEvent",
    "ErrorEvent",
    "RetryingEvent",
    "Conversation",
    "Message",
    "MessageRole",
    "generate_message_id",
    "now_ms",
    "AIPersonality",
    "PROFESSIONAL",
    "CREATIVE",
    "CODE_REVIEWER",
    "DEFAULT_PERSONALITY",
    "ALL_PERSONALITIES",
    "get_personality",
]
