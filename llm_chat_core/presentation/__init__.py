"""Presentation state for chat front ends."""

from .state import (
    ChatViewState,
    add_user_message,
    begin_assistant_message,
    clear_error,
    reduce,
    select_personality,
    with_history,
)

__all__ = [
    "ChatViewState",
    "add_user_message",
    "begin_assistant_message",
    "clear_error",
    "reduce",
    "select_personality",
    "with_history",
]
