"""
Structured logging utility for the chat core.

Log lines carry ``key=value`` fields (conversation id, turn id, attempt)
in front of the message so that one turn can be followed across retries.
"""

import asyncio
import logging
import time
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Optional


class ChatLogger:
    """Structured logger bound to a chat component."""

    def __init__(self, component: str):
        """
        Initialize logger for a component.

        Args:
            component: Component name (e.g., "orchestrator", "completion")
        """
        self.component = component
        self.logger = logging.getLogger(f"llm_chat_core.{component}")

    def _format_message(self, message: str, **kwargs) -> str:
        """Format message with structured fields."""
        fields = [f"component={self.component}"]

        for key, value in kwargs.items():
            if value is not None:
                fields.append(f"{key}={value}")

        return f"[{' '.join(fields)}] {message}"

    def debug(self, message: str, conversation_id: Optional[str] = None,
              turn_id: Optional[str] = None, **kwargs):
        """Log debug message with structured fields."""
        self.logger.debug(
            self._format_message(message, conversation_id=conversation_id, turn_id=turn_id, **kwargs)
        )

    def info(self, message: str, conversation_id: Optional[str] = None,
             turn_id: Optional[str] = None, **kwargs):
        """Log info message with structured fields."""
        self.logger.info(
            self._format_message(message, conversation_id=conversation_id, turn_id=turn_id, **kwargs)
        )

    def warning(self, message: str, conversation_id: Optional[str] = None,
                turn_id: Optional[str] = None, **kwargs):
        """Log warning message with structured fields."""
        self.logger.warning(
            self._format_message(message, conversation_id=conversation_id, turn_id=turn_id, **kwargs)
        )

    def error(self, message: str, conversation_id: Optional[str] = None,
              turn_id: Optional[str] = None, error: Optional[BaseException] = None, **kwargs):
        """Log error message with structured fields."""
        if error is not None:
            kwargs['error_type'] = type(error).__name__
            kwargs['error_msg'] = str(error)

        self.logger.error(
            self._format_message(message, conversation_id=conversation_id, turn_id=turn_id, **kwargs)
        )

    @contextmanager
    def track_turn(self, conversation_id: str, turn_id: Optional[str] = None):
        """
        Context manager timing one chat turn.

        Args:
            conversation_id: Conversation the turn belongs to
            turn_id: Optional turn id (generated if not provided)

        Yields:
            Dict with turn metadata; set ``outcome`` to record how it ended
        """
        if turn_id is None:
            turn_id = str(uuid.uuid4())[:8]

        start_time = time.time()
        self.debug("Starting turn", conversation_id=conversation_id, turn_id=turn_id)

        metadata: Dict[str, Any] = {
            'turn_id': turn_id,
            'conversation_id': conversation_id,
            'start_time': start_time,
            'outcome': None,
        }

        try:
            yield metadata
        except (asyncio.CancelledError, GeneratorExit):
            self.info(
                "Turn cancelled",
                conversation_id=conversation_id,
                turn_id=turn_id,
                duration_ms=int((time.time() - start_time) * 1000)
            )
            raise
        except Exception as e:
            duration = time.time() - start_time
            self.error(
                "Turn aborted",
                conversation_id=conversation_id,
                turn_id=turn_id,
                duration_ms=int(duration * 1000),
                error=e
            )
            raise
        else:
            duration = time.time() - start_time
            self.info(
                "Finished turn",
                conversation_id=conversation_id,
                turn_id=turn_id,
                outcome=metadata.get('outcome'),
                duration_ms=int(duration * 1000)
            )
