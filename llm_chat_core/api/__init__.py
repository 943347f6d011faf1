"""Public API for the chat core."""

from .client import ChatClient

__all__ = ["ChatClient"]
