"""Observability helpers for the chat core."""

from .logging import ChatLogger

__all__ = ["ChatLogger"]
