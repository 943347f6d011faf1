"""
In-memory chat storage.

Useful for tests and for running without a database. Rows are kept in
dictionaries guarded by an asyncio lock; nothing survives the process.
"""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional

from ..models.messages import Conversation, Message
from .base import ChatStorage


class InMemoryStorage(ChatStorage):
    """Dictionary-backed storage with insertion-ordered messages."""

    def __init__(self):
        self._conversations: Dict[str, Conversation] = {}
        # message id -> message; dict order doubles as insertion order
        self._messages: Dict[str, Message] = {}
        self._lock = asyncio.Lock()

    async def upsert_conversation(self, conversation: Conversation) -> None:
        async with self._lock:
            self._conversations[conversation.id] = conversation.model_copy()

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        async with self._lock:
            conversation = self._conversations.get(conversation_id)
            return conversation.model_copy() if conversation else None

    async def insert_message(self, message: Message) -> None:
        async with self._lock:
            # Replacing keeps the original slot, matching INSERT OR REPLACE by id
            self._messages[message.id] = message.model_copy(update={"streaming": False})

    async def list_messages(self, conversation_id: str) -> List[Message]:
        async with self._lock:
            rows = [
                message.model_copy()
                for message in self._messages.values()
                if message.conversation_id == conversation_id
            ]
        # sort is stable, so equal timestamps keep insertion order
        return sorted(rows, key=lambda message: message.timestamp)

    async def delete_messages(self, conversation_id: str) -> None:
        async with self._lock:
            self._messages = {
                message_id: message
                for message_id, message in self._messages.items()
                if message.conversation_id != conversation_id
            }

    async def count_messages(self, conversation_id: str) -> int:
        async with self._lock:
            return sum(
                1 for message in self._messages.values()
                if message.conversation_id == conversation_id
            )

    def clear_all(self) -> None:
        """Drop every row."""
        self._conversations.clear()
        self._messages.clear()
