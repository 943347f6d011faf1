"""Main client interface for the chat core."""

from typing import AsyncIterator, List, Optional

from ..config.settings import ChatSettings
from ..context.store import ContextStore
from ..models.events import ChatEvent
from ..models.messages import Message
from ..models.personality import AIPersonality
from ..orchestration.orchestrator import ChatOrchestrator, TurnHandle
from ..providers.base import CompletionClient
from ..providers.completion_source import CompletionSource
from ..providers.openai import OpenAIChatClient
from ..reliability.backoff import BackoffPolicy
from ..storage.base import ChatStorage
from ..storage.sqlite import SQLiteStorage


class ChatClient:
    """
    High-level chat client.

    Wires storage, the context store, the completion source and the
    orchestrator together. Use it as an async context manager so that the
    SQLite connection it owns is opened and closed::

        async with ChatClient.from_settings() as chat:
            async for event in chat.send("Hello"):
                ...
    """

    def __init__(
        self,
        completion_client: CompletionClient,
        storage: Optional[ChatStorage] = None,
        settings: Optional[ChatSettings] = None,
        backoff_policy: Optional[BackoffPolicy] = None
    ):
        """
        Initialize the client.

        Args:
            completion_client: Client that streams completion text
            storage: Storage backend (defaults to SQLite at ``settings.db_path``)
            settings: Settings (defaults to ``ChatSettings()``)
            backoff_policy: Retry policy (defaults to the one built from settings)
        """
        self.settings = settings or ChatSettings()
        self.storage = storage if storage is not None else SQLiteStorage(self.settings.db_path)
        self.context_store = ContextStore(
            self.storage,
            max_tokens=self.settings.max_context_tokens
        )
        self.completion_source = CompletionSource(
            completion_client,
            timeout_seconds=self.settings.timeout_seconds,
            temperature=self.settings.temperature
        )
        self.orchestrator = ChatOrchestrator(
            self.context_store,
            self.completion_source,
            backoff_policy or BackoffPolicy(
                max_attempts=self.settings.retry_max_attempts,
                base_delay_ms=self.settings.retry_base_delay_ms,
                max_delay_ms=self.settings.retry_max_delay_ms,
            ),
            conversation_id=self.settings.conversation_id,
        )

    @classmethod
    def from_settings(cls, settings: Optional[ChatSettings] = None) -> "ChatClient":
        """Build a client talking to OpenAI, with settings from the environment by default."""
        settings = settings or ChatSettings.from_env()
        return cls(OpenAIChatClient.from_settings(settings), settings=settings)

    async def __aenter__(self) -> "ChatClient":
        initialize = getattr(self.storage, "initialize", None)
        if initialize is not None:
            await initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Cancel any running turn and close the storage backend."""
        await self.orchestrator.stop()
        close = getattr(self.storage, "close", None)
        if close is not None:
            await close()

    def send(
        self,
        text: str,
        personality: Optional[AIPersonality] = None
    ) -> AsyncIterator[ChatEvent]:
        """Send a message and iterate over the reply's events."""
        return self.orchestrator.send(text, personality)

    def start(
        self,
        text: str,
        personality: Optional[AIPersonality] = None
    ) -> TurnHandle:
        """Send a message in the background and return its handle."""
        return self.orchestrator.start(text, personality)

    async def load_history(self) -> List[Message]:
        return await self.orchestrator.load_history()

    async def clear(self) -> None:
        await self.orchestrator.clear()
