"""Storage backends for conversations and messages."""

from .base import ChatStorage, StorageError
from .in_memory import InMemoryStorage
from .sqlite import SQLiteStorage

__all__ = [
    "ChatStorage",
    "StorageError",
    "InMemoryStorage",
    "SQLiteStorage",
]
