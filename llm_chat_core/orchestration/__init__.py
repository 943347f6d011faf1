"""Chat turn orchestration."""

from .errors import EmptyCompletionError, OrchestratorError, TurnInProgressError
from .orchestrator import ChatOrchestrator, TurnHandle, TurnState

__all__ = [
    "ChatOrchestrator",
    "TurnHandle",
    "TurnState",
    "OrchestratorError",
    "TurnInProgressError",
    "EmptyCompletionError",
]
