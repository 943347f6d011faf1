"""
Conversation persistence and context-window management.

The store persists messages (with their estimated token cost) and builds
the message list sent to the completion API, pruned to a token budget.
"""

import asyncio
import logging
import weakref
from typing import List, Optional

from ..models.messages import Conversation, Message, now_ms
from ..storage.base import ChatStorage, StorageError
from .token_estimator import MAX_CONTEXT_TOKENS, TokenEstimator

logger = logging.getLogger(__name__)

DEFAULT_CONVERSATION_TITLE = "Default"


class ContextStore:
    """
    Persists chat history and prunes it to fit the context window.

    Operations on the same conversation are serialized so that an append
    can never interleave with the read that builds a context. A
    conversation's lock only lives while some operation holds or awaits it.
    """

    def __init__(
        self,
        storage: ChatStorage,
        max_tokens: int = MAX_CONTEXT_TOKENS,
        estimator: Optional[TokenEstimator] = None
    ):
        self.storage = storage
        self.max_tokens = max_tokens
        self.estimator = estimator or TokenEstimator()
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, conversation_id: str) -> asyncio.Lock:
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[conversation_id] = lock
        return lock

    async def append(self, message: Message) -> Message:
        """
        Persist a message, creating its conversation on first use.

        Args:
            message: Message to store; its ``token_count`` is recomputed

        Returns:
            The stored message with ``token_count`` set

        Raises:
            StorageError: If the backend fails
        """
        stored = message.model_copy(update={
            "token_count": self.estimator.estimate(message.text),
            "streaming": False,
        })
        async with self._lock_for(message.conversation_id):
            await self._ensure_conversation(message.conversation_id)
            await self._call("insert_message", self.storage.insert_message(stored))
        logger.debug(
            f"Stored {stored.role.value} message {stored.id} "
            f"({stored.token_count} tokens) in {stored.conversation_id}"
        )
        return stored

    async def _ensure_conversation(self, conversation_id: str) -> None:
        existing = await self._call(
            "get_conversation", self.storage.get_conversation(conversation_id)
        )
        if existing is None:
            timestamp = now_ms()
            conversation = Conversation(
                id=conversation_id,
                title=DEFAULT_CONVERSATION_TITLE,
                created_at=timestamp,
                updated_at=timestamp,
            )
            logger.info(f"Creating conversation {conversation_id}")
        else:
            conversation = existing.touch()
        await self._call("upsert_conversation", self.storage.upsert_conversation(conversation))

    async def build_context(
        self,
        conversation_id: str,
        max_tokens: Optional[int] = None,
        system_prompt: Optional[str] = None
    ) -> List[Message]:
        """
        Build the message list for a completion request.

        The system prompt's cost is reserved from the budget first. History
        is then kept newest-first until the next older message would exceed
        what remains, and returned in chronological order with the system
        prompt (if any) in front. The system message is not persisted.

        Args:
            conversation_id: Conversation to read
            max_tokens: Token budget (defaults to the store's budget)
            system_prompt: Optional system prompt to prepend

        Returns:
            Messages oldest first
        """
        budget = self.history_budget(max_tokens, system_prompt)

        async with self._lock_for(conversation_id):
            history = await self._call(
                "list_messages", self.storage.list_messages(conversation_id)
            )

        context = self.prune_by_tokens(history, budget)
        if len(context) < len(history):
            logger.debug(
                f"Pruned {len(history) - len(context)} of {len(history)} messages "
                f"from {conversation_id} to fit {budget} tokens"
            )

        if system_prompt:
            context.insert(0, Message.system(
                system_prompt,
                conversation_id=conversation_id,
                token_count=self.estimator.estimate(system_prompt),
            ))
        return context

    def history_budget(
        self,
        max_tokens: Optional[int] = None,
        system_prompt: Optional[str] = None
    ) -> int:
        """Tokens left for history once the system prompt is reserved, never below 0."""
        budget = self.max_tokens if max_tokens is None else max_tokens
        if system_prompt:
            budget = max(budget - self.estimator.estimate(system_prompt), 0)
        return budget

    def fits_history(
        self,
        text: str,
        max_tokens: Optional[int] = None,
        system_prompt: Optional[str] = None
    ) -> bool:
        """Whether a message of ``text`` alone fits the history budget."""
        return not self.estimator.exceeds_limit(
            text, self.history_budget(max_tokens, system_prompt)
        )

    @staticmethod
    def prune_by_tokens(messages: List[Message], max_tokens: int) -> List[Message]:
        """
        Keep the most recent messages whose summed tokens fit ``max_tokens``.

        Walks backwards from the newest message and stops at the first one
        that would push the total over the limit.
        """
        kept: List[Message] = []
        total = 0
        for message in reversed(messages):
            if total + message.token_count > max_tokens:
                break
            kept.append(message)
            total += message.token_count
        kept.reverse()
        return kept

    async def clear(self, conversation_id: str) -> None:
        """Delete all messages of a conversation. The conversation row is kept."""
        async with self._lock_for(conversation_id):
            await self._call("delete_messages", self.storage.delete_messages(conversation_id))
        logger.info(f"Cleared conversation {conversation_id}")

    async def count(self, conversation_id: str) -> int:
        """Number of persisted messages in a conversation."""
        async with self._lock_for(conversation_id):
            return await self._call("count_messages", self.storage.count_messages(conversation_id))

    async def load_all(self, conversation_id: str) -> List[Message]:
        """Full history, oldest first, without pruning."""
        async with self._lock_for(conversation_id):
            return await self._call("list_messages", self.storage.list_messages(conversation_id))

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        """The conversation row, or None if it was never created."""
        return await self._call("get_conversation", self.storage.get_conversation(conversation_id))

    @staticmethod
    async def _call(operation: str, awaitable):
        try:
            return await awaitable
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(operation, e) from e
