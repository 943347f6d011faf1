"""Conversation and message models."""

import random
import threading
import time
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

_clock_lock = threading.Lock()
_last_timestamp_ms = 0


def now_ms() -> int:
    """Current epoch time in milliseconds, never lower than a previous call."""
    global _last_timestamp_ms
    with _clock_lock:
        current = int(time.time() * 1000)
        if current < _last_timestamp_ms:
            current = _last_timestamp_ms
        _last_timestamp_ms = current
        return current


def generate_message_id() -> str:
    """Generate an id combining the timestamp and a random suffix."""
    return f"{now_ms()}_{random.randint(0, 999999):06d}"


class MessageRole(str, Enum):
    """Author of a message."""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class Message(BaseModel):
    """A single chat message.

    ``token_count`` is filled in by the context store when the message is
    persisted. ``streaming`` only describes in-flight UI state and is never
    written to storage.
    """

    id: str = Field(default_factory=generate_message_id)
    conversation_id: str = "default"
    text: str
    role: MessageRole
    timestamp: int = Field(default_factory=now_ms)
    token_count: int = Field(default=0, ge=0)
    streaming: bool = Field(default=False, exclude=True)

    @property
    def is_user(self) -> bool:
        return self.role == MessageRole.USER

    @classmethod
    def user(cls, text: str, conversation_id: str = "default") -> "Message":
        return cls(text=text, role=MessageRole.USER, conversation_id=conversation_id)

    @classmethod
    def assistant(cls, text: str, conversation_id: str = "default",
                  streaming: bool = False) -> "Message":
        return cls(
            text=text,
            role=MessageRole.ASSISTANT,
            conversation_id=conversation_id,
            streaming=streaming,
        )

    @classmethod
    def system(cls, text: str, conversation_id: str = "default",
               token_count: int = 0) -> "Message":
        return cls(
            text=text,
            role=MessageRole.SYSTEM,
            conversation_id=conversation_id,
            token_count=token_count,
        )


class Conversation(BaseModel):
    """Conversation row. Created lazily on the first appended message."""

    id: str
    title: str = "Default"
    created_at: int = Field(default_factory=now_ms)
    updated_at: int = Field(default_factory=now_ms)

    def touch(self, timestamp: Optional[int] = None) -> "Conversation":
        """Return a copy with ``updated_at`` moved forward."""
        return self.model_copy(update={"updated_at": timestamp or now_ms()})
