"""Tests for the chat view-state reducer."""

import pytest

from llm_chat_core.models.errors import AIError
from llm_chat_core.models.events import ChunkEvent, CompleteEvent, ErrorEvent, RetryingEvent
from llm_chat_core.models.messages import Message, MessageRole
from llm_chat_core.models.personality import CREATIVE, PROFESSIONAL
from llm_chat_core.presentation import (
    ChatViewState,
    add_user_message,
    begin_assistant_message,
    clear_error,
    reduce,
    select_personality,
    with_history,
)


def _sending(text="Hi") -> ChatViewState:
    return begin_assistant_message(add_user_message(ChatViewState(input_text=text), text))


@pytest.mark.unit
class TestHelpers:

    def test_initial_state(self):
        state = ChatViewState()
        assert state.messages == []
        assert not state.is_streaming
        assert state.error is None
        assert state.selected_personality == PROFESSIONAL
        assert state.can_send

    def test_add_user_message_clears_input_and_error(self):
        state = ChatViewState(input_text="Hi", error="old")
        state = add_user_message(state, "Hi")
        assert [(m.role, m.text) for m in state.messages] == [(MessageRole.USER, "Hi")]
        assert state.input_text == ""
        assert state.error is None

    def test_begin_assistant_message(self):
        state = _sending()
        assert state.is_streaming
        assert not state.can_send
        assert state.streaming_message is not None
        assert state.streaming_message.text == ""

    def test_helpers_do_not_mutate(self):
        original = ChatViewState()
        add_user_message(original, "Hi")
        select_personality(original, CREATIVE)
        assert original.messages == []
        assert original.selected_personality == PROFESSIONAL

    def test_select_personality_and_clear_error(self):
        state = select_personality(ChatViewState(error="boom"), CREATIVE)
        assert state.selected_personality == CREATIVE
        assert clear_error(state).error is None

    def test_with_history(self):
        history = [Message.user("a"), Message.assistant("b")]
        state = with_history(ChatViewState(), history)
        assert [m.text for m in state.messages] == ["a", "b"]


@pytest.mark.unit
class TestReduce:

    def test_chunks_append_to_placeholder(self):
        state = _sending()
        state = reduce(state, ChunkEvent("Hel"))
        state = reduce(state, ChunkEvent("lo!"))
        assert len(state.messages) == 2
        assert state.streaming_message.text == "Hello!"
        assert state.is_streaming

    def test_chunk_without_placeholder_creates_one(self):
        state = reduce(add_user_message(ChatViewState(), "Hi"), ChunkEvent("Hey"))
        assert state.messages[-1].role is MessageRole.ASSISTANT
        assert state.messages[-1].text == "Hey"

    def test_retrying_clears_partial_text(self):
        state = reduce(_sending(), ChunkEvent("Hel"))
        state = reduce(state, RetryingEvent(1, 2000, AIError.rate_limit(30)))
        assert state.streaming_message.text == ""
        assert state.is_streaming
        assert state.retry_status.startswith("Retrying (attempt 1) in 2.0s")
        assert "30 seconds" in state.retry_status

    def test_complete_replaces_placeholder(self):
        persisted = Message.assistant("Hello!")
        state = reduce(_sending(), ChunkEvent("Hello!"))
        state = reduce(state, RetryingEvent(1, 10))
        state = reduce(state, CompleteEvent(persisted))
        assert [m.text for m in state.messages] == ["Hi", "Hello!"]
        assert state.messages[-1].id == persisted.id
        assert not state.messages[-1].streaming
        assert not state.is_streaming
        assert state.retry_status is None

    def test_error_drops_placeholder(self):
        state = reduce(_sending(), ChunkEvent("Hel"))
        state = reduce(state, ErrorEvent(AIError.authentication("401")))
        assert [m.text for m in state.messages] == ["Hi"]
        assert not state.is_streaming
        assert state.error == (
            "There's an issue with the API configuration. Please contact support."
        )

    def test_error_without_placeholder_keeps_messages(self):
        state = add_user_message(ChatViewState(), "Hi")
        state = reduce(state, ErrorEvent(AIError.timeout()))
        assert [m.text for m in state.messages] == ["Hi"]
        assert state.error.startswith("The request is taking too long")

    def test_reduce_is_pure(self):
        state = _sending()
        reduce(state, ChunkEvent("x"))
        assert state.streaming_message.text == ""
