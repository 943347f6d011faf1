"""
LLM Chat Core - streaming chat orchestration with retries and persisted context.

This package provides the core of a chat client that streams completions
from a large-language-model API:

Features:
- Conversation history persisted per conversation (in-memory or SQLite)
- Context window pruned to a token budget
- Streaming completions with a request deadline
- Failures classified into a closed error taxonomy
- Exponential backoff with jitter for transient failures
- Ordered turn events and a pure view-state reducer
"""

__version__ = "0.1.0"

from .api.client import ChatClient
from .config.settings import ChatSettings, ConfigurationError
from .context import MAX_CONTEXT_TOKENS, ContextStore, TokenEstimator
from .models import (
    ALL_PERSONALITIES,
    CODE_REVIEWER,
    CREATIVE,
    DEFAULT_PERSONALITY,
    PROFESSIONAL,
    AIError,
    AIPersonality,
    ChatEvent,
    ChunkEvent,
    CompleteEvent,
    Conversation,
    ErrorCategory,
    ErrorEvent,
    Message,
    MessageRole,
    RetryingEvent,
    get_personality,
)
from .orchestration import (
    ChatOrchestrator,
    EmptyCompletionError,
    OrchestratorError,
    TurnHandle,
    TurnInProgressError,
    TurnState,
)
from .presentation import ChatViewState, reduce
from .providers import (
    CompletionClient,
    CompletionSource,
    OpenAIChatClient,
    StreamComplete,
    StreamFailure,
    TextDelta,
)
from .reliability import BackoffPolicy, ErrorClassifier
from .storage import ChatStorage, InMemoryStorage, SQLiteStorage, StorageError

__all__ = [
    "__version__",
    "ChatClient",
    "ChatSettings",
    "ConfigurationError",
    "ContextStore",
    "TokenEstimator",
    "MAX_CONTEXT_TOKENS",
    "AIError",
    "ErrorCategory",
    "AIPersonality",
    "PROFESSIONAL",
    "CREATIVE",
    "CODE_REVIEWER",
    "DEFAULT_PERSONALITY",
    "ALL_PERSONALITIES",
    "get_personality",
    "ChatEvent",
    "ChunkEvent",
    "RetryingEvent",
    "CompleteEvent",
    "ErrorEvent",
    "Conversation",
    "Message",
    "MessageRole",
    "ChatOrchestrator",
    "TurnHandle",
    "TurnState",
    "OrchestratorError",
    "TurnInProgressError",
    "EmptyCompletionError",
    "ChatViewState",
    "reduce",
    "CompletionClient",
    "CompletionSource",
    "OpenAIChatClient",
    "TextDelta",
    "StreamComplete",
    "StreamFailure",
    "BackoffPolicy",
    "ErrorClassifier",
    "ChatStorage",
    "InMemoryStorage",
    "SQLiteStorage",
    "StorageError",
]
