"""
View state for a chat screen.

``reduce`` folds orchestrator events into an immutable ``ChatViewState``.
Nothing here performs I/O; the functions return new states and never
mutate their input.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from ..models.errors import AIError
from ..models.events import ChatEvent, ChunkEvent, CompleteEvent, ErrorEvent, RetryingEvent
from ..models.messages import Message, MessageRole
from ..models.personality import DEFAULT_PERSONALITY, AIPersonality


class ChatViewState(BaseModel):
    """Immutable snapshot of what the chat screen shows."""

    model_config = ConfigDict(frozen=True)

    messages: List[Message] = []
    is_streaming: bool = False
    error: Optional[str] = None
    retry_status: Optional[str] = None
    input_text: str = ""
    selected_personality: AIPersonality = DEFAULT_PERSONALITY

    @property
    def streaming_message(self) -> Optional[Message]:
        """The trailing in-flight assistant message, if any."""
        if self.messages:
            last = self.messages[-1]
            if last.role == MessageRole.ASSISTANT and last.streaming:
                return last
        return None

    @property
    def can_send(self) -> bool:
        return not self.is_streaming


def add_user_message(state: ChatViewState, text: str) -> ChatViewState:
    """Append the user's message and clear the input field and any error."""
    return state.model_copy(update={
        "messages": state.messages + [Message.user(text)],
        "input_text": "",
        "error": None,
    })


def begin_assistant_message(state: ChatViewState) -> ChatViewState:
    """Append an empty streaming placeholder for the assistant's reply."""
    placeholder = Message.assistant("", streaming=True)
    return state.model_copy(update={
        "messages": state.messages + [placeholder],
        "is_streaming": True,
        "retry_status": None,
    })


def clear_error(state: ChatViewState) -> ChatViewState:
    return state.model_copy(update={"error": None})


def select_personality(state: ChatViewState, personality: AIPersonality) -> ChatViewState:
    return state.model_copy(update={"selected_personality": personality})


def with_history(state: ChatViewState, messages: List[Message]) -> ChatViewState:
    """Replace the message list with persisted history."""
    return state.model_copy(update={"messages": list(messages)})


def retry_status_text(attempt: int, delay_ms: int, error: Optional[AIError]) -> str:
    seconds = delay_ms / 1000
    status = f"Retrying (attempt {attempt}) in {seconds:.1f}s"
    if error is not None:
        status += f": {error.user_message}"
    return status


def reduce(state: ChatViewState, event: ChatEvent) -> ChatViewState:
    """
    Apply one orchestrator event.

    - Chunk: append text to the streaming placeholder (created if missing)
    - Retrying: clear the partial text and record the retry status
    - Complete: replace the placeholder with the persisted message
    - Error: drop the placeholder and show the user-facing message

    Unknown events leave the state unchanged.
    """
    placeholder = state.streaming_message
    history = state.messages[:-1] if placeholder is not None else state.messages

    if isinstance(event, ChunkEvent):
        if placeholder is None:
            placeholder = Message.assistant("", streaming=True)
        updated = placeholder.model_copy(update={"text": placeholder.text + event.text})
        return state.model_copy(update={
            "messages": history + [updated],
            "is_streaming": True,
            "retry_status": None,
        })

    if isinstance(event, RetryingEvent):
        messages = list(state.messages)
        if placeholder is not None:
            messages = history + [placeholder.model_copy(update={"text": ""})]
        return state.model_copy(update={
            "messages": messages,
            "is_streaming": True,
            "retry_status": retry_status_text(event.attempt, event.delay_ms, event.error),
        })

    if isinstance(event, CompleteEvent):
        messages = list(history)
        if event.message is not None:
            messages.append(event.message.model_copy(update={"streaming": False}))
        return state.model_copy(update={
            "messages": messages,
            "is_streaming": False,
            "retry_status": None,
            "error": None,
        })

    if isinstance(event, ErrorEvent):
        error = event.error or AIError.unknown(RuntimeError("unknown error"))
        return state.model_copy(update={
            "messages": list(history),
            "is_streaming": False,
            "retry_status": None,
            "error": error.user_message,
        })

    return state
