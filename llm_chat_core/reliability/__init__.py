"""Reliability layer for error handling and retries.

This layer handles:
- Classification of raw failures into the closed AIError taxonomy
- Exponential backoff with jitter
- Per-turn retry state
"""

from .backoff import BackoffPolicy, DEFAULT_RETRYABLE_CODES
from .error_classifier import ErrorClassifier
from .state import RetryState

__all__ = [
    "BackoffPolicy",
    "DEFAULT_RETRYABLE_CODES",
    "ErrorClassifier",
    "RetryState",
]
