"""Orchestration-specific error definitions."""

from typing import Optional


class OrchestratorError(Exception):
    """Base exception for orchestration errors."""
    pass


class TurnInProgressError(OrchestratorError):
    """Raised when a turn is started while another one is still running."""

    def __init__(self, conversation_id: str, turn_id: Optional[str] = None):
        self.conversation_id = conversation_id
        self.turn_id = turn_id

        message = f"A turn is already in progress for conversation '{conversation_id}'"
        if turn_id:
            message += f" (turn {turn_id})"
        super().__init__(message)


class EmptyCompletionError(OrchestratorError):
    """The completion stream ended cleanly without producing any text."""

    def __init__(self, attempt: int):
        self.attempt = attempt
        super().__init__(f"Completion stream ended without content on attempt {attempt}")
