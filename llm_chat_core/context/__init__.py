"""Context window management: token estimation and the context store."""

from .store import ContextStore
from .token_estimator import MAX_CONTEXT_TOKENS, TokenEstimator

__all__ = [
    "ContextStore",
    "MAX_CONTEXT_TOKENS",
    "TokenEstimator",
]
