"""Base interface for chat storage backends."""

from typing import List, Optional, Protocol

from ..models.messages import Conversation, Message


class StorageError(Exception):
    """Raised when a storage backend cannot complete an operation."""

    def __init__(self, operation: str, original_error: Optional[BaseException] = None):
        self.operation = operation
        self.original_error = original_error
        message = f"Storage operation '{operation}' failed"
        if original_error is not None:
            message += f": {original_error}"
        super().__init__(message)


class ChatStorage(Protocol):
    """Row-level storage for conversations and messages."""

    async def upsert_conversation(self, conversation: Conversation) -> None:
        """Insert or replace a conversation by id."""
        ...

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        """Fetch a conversation, or None if absent."""
        ...

    async def insert_message(self, message: Message) -> None:
        """Insert or replace a message by id."""
        ...

    async def list_messages(self, conversation_id: str) -> List[Message]:
        """All messages of a conversation, oldest first."""
        ...

    async def delete_messages(self, conversation_id: str) -> None:
        """Delete every message of a conversation."""
        ...

    async def count_messages(self, conversation_id: str) -> int:
        """Number of messages in a conversation."""
        ...
