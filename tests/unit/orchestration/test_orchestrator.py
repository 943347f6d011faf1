"""Tests for the chat turn state machine."""

import asyncio

import pytest

from llm_chat_core.context.store import ContextStore
from llm_chat_core.models.errors import AIError, ErrorCategory
from llm_chat_core.models.events import ChunkEvent, CompleteEvent, ErrorEvent, RetryingEvent
from llm_chat_core.models.messages import MessageRole
from llm_chat_core.models.personality import CODE_REVIEWER
from llm_chat_core.orchestration import (
    ChatOrchestrator,
    EmptyCompletionError,
    TurnHandle,
    TurnInProgressError,
    TurnState,
)
from llm_chat_core.providers.completion_source import CompletionSource
from llm_chat_core.reliability.backoff import BackoffPolicy
from llm_chat_core.storage.in_memory import InMemoryStorage
from tests.helpers.mock_exceptions import (
    MockAuthenticationError,
    MockBadRequestError,
    MockInternalServerError,
    MockRateLimitError,
)
from tests.helpers.streaming_mocks import Hang, ScriptedCompletionClient, collect


def _types(events):
    return [event.type for event in events]


async def _history_roles(context_store):
    return [(m.role, m.text) for m in await context_store.load_all("default")]


class FailingInsertStorage(InMemoryStorage):
    """Fails the n-th message insert (1-based)."""

    def __init__(self, fail_on: int):
        super().__init__()
        self.fail_on = fail_on
        self.inserts = 0

    async def insert_message(self, message):
        self.inserts += 1
        if self.inserts == self.fail_on:
            raise OSError("database is locked")
        await super().insert_message(message)


@pytest.mark.unit
class TestSuccessfulTurns:

    @pytest.mark.asyncio
    async def test_streams_chunks_and_persists_reply(self, make_orchestrator, context_store):
        orchestrator, client = make_orchestrator(["Hel", "lo!"])

        events = await collect(orchestrator.send("Hi"))

        assert events[:2] == [ChunkEvent("Hel"), ChunkEvent("lo!")]
        assert isinstance(events[2], CompleteEvent)
        assert events[2].message.text == "Hello!"
        assert events[2].message.role is MessageRole.ASSISTANT
        assert events[2].message.token_count == 3
        assert len(events) == 3
        assert await _history_roles(context_store) == [
            (MessageRole.USER, "Hi"),
            (MessageRole.ASSISTANT, "Hello!"),
        ]
        assert orchestrator.state is TurnState.SUCCEEDED
        assert orchestrator.state.is_terminal
        assert not orchestrator.is_busy

    @pytest.mark.asyncio
    async def test_context_includes_history_and_personality(self, make_orchestrator):
        orchestrator, client = make_orchestrator(["first"], ["second"])
        await collect(orchestrator.send("one"))
        await collect(orchestrator.send("two", personality=CODE_REVIEWER))

        context = client.calls[1]
        assert context[0].role is MessageRole.SYSTEM
        assert context[0].text == CODE_REVIEWER.system_prompt
        assert [m.text for m in context[1:]] == ["one", "first", "two"]

    @pytest.mark.asyncio
    async def test_history_is_pruned_to_budget(self, context_store, recording_sleep):
        client = ScriptedCompletionClient(["ok"])
        orchestrator = ChatOrchestrator(
            context_store,
            CompletionSource(client),
            max_context_tokens=4,
            sleep=recording_sleep,
        )
        await collect(orchestrator.send("older message here"))
        await collect(orchestrator.send("Hi"))
        assert [m.text for m in client.calls[1]] == ["ok", "Hi"]

    @pytest.mark.asyncio
    async def test_load_history(self, make_orchestrator):
        orchestrator, _ = make_orchestrator(["Hello!"])
        await collect(orchestrator.send("Hi"))
        history = await orchestrator.load_history()
        assert [m.text for m in history] == ["Hi", "Hello!"]


@pytest.mark.unit
class TestRetries:

    @pytest.mark.asyncio
    async def test_rate_limits_then_success(self, make_orchestrator, context_store, recording_sleep):
        orchestrator, client = make_orchestrator(
            [MockRateLimitError(retry_after=1)],
            [MockRateLimitError(retry_after=1)],
            ["OK"],
        )

        events = await collect(orchestrator.send("Hi"))

        assert _types(events) == ["retrying", "retrying", "chunk", "complete"]
        assert [e.attempt for e in events[:2]] == [1, 2]
        assert all(e.error == AIError.rate_limit(1) for e in events[:2])
        assert 1600 <= events[0].delay_ms <= 2400
        assert 3200 <= events[1].delay_ms <= 4800
        assert recording_sleep.delays == [events[0].delay_ms / 1000, events[1].delay_ms / 1000]
        assert client.call_count == 3
        assert await _history_roles(context_store) == [
            (MessageRole.USER, "Hi"),
            (MessageRole.ASSISTANT, "OK"),
        ]

    @pytest.mark.asyncio
    async def test_partial_text_is_discarded_on_retry(self, make_orchestrator, context_store):
        orchestrator, client = make_orchestrator(
            ["Hel", MockInternalServerError(status_code=503)],
            ["Hello"],
        )

        events = await collect(orchestrator.send("Hi"))

        assert _types(events) == ["chunk", "retrying", "chunk", "complete"]
        assert events[-1].message.text == "Hello"
        assert client.calls[0] == client.calls[1]
        assert await context_store.count("default") == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, make_orchestrator, context_store):
        orchestrator, client = make_orchestrator([MockInternalServerError(status_code=503)])

        events = await collect(orchestrator.send("Hi"))

        assert _types(events) == ["retrying", "retrying", "error"]
        assert events[-1].error == AIError.service_unavailable()
        assert client.call_count == 3
        assert orchestrator.state is TurnState.FAILED
        assert await _history_roles(context_store) == [(MessageRole.USER, "Hi")]

    @pytest.mark.asyncio
    async def test_single_attempt_policy_never_retries(self, make_orchestrator):
        orchestrator, client = make_orchestrator(
            [MockInternalServerError(status_code=500)], max_attempts=1
        )
        events = await collect(orchestrator.send("Hi"))
        assert _types(events) == ["error"]
        assert client.call_count == 1

    @pytest.mark.asyncio
    async def test_timeouts_are_retried(self, make_orchestrator):
        orchestrator, client = make_orchestrator([Hang()], ["late"], timeout_seconds=0.05)
        events = await collect(orchestrator.send("Hi"))
        assert _types(events) == ["retrying", "chunk", "complete"]
        assert events[0].error == AIError.timeout()

    @pytest.mark.asyncio
    async def test_network_failures_are_retried(self, make_orchestrator):
        orchestrator, _ = make_orchestrator([ConnectionResetError("reset")], ["ok"])
        events = await collect(orchestrator.send("Hi"))
        assert _types(events) == ["retrying", "chunk", "complete"]
        assert events[0].error.category is ErrorCategory.NETWORK

    @pytest.mark.parametrize("failure,category", [
        (MockAuthenticationError(), ErrorCategory.AUTHENTICATION),
        (MockBadRequestError("context length exceeded"), ErrorCategory.INVALID_REQUEST),
    ])
    @pytest.mark.asyncio
    async def test_permanent_errors_fail_immediately(
        self, make_orchestrator, context_store, recording_sleep, failure, category
    ):
        orchestrator, client = make_orchestrator([failure], ["never"])

        events = await collect(orchestrator.send("Hi"))

        assert len(events) == 1
        assert isinstance(events[0], ErrorEvent)
        assert events[0].error.category is category
        assert client.call_count == 1
        assert recording_sleep.delays == []
        assert await _history_roles(context_store) == [(MessageRole.USER, "Hi")]


@pytest.mark.unit
class TestFailures:

    @pytest.mark.asyncio
    async def test_empty_completion_is_an_error(self, make_orchestrator, context_store):
        orchestrator, client = make_orchestrator([], ["never"])

        events = await collect(orchestrator.send("Hi"))

        assert _types(events) == ["error"]
        assert events[0].error.category is ErrorCategory.UNKNOWN
        assert isinstance(events[0].error.cause, EmptyCompletionError)
        assert client.call_count == 1
        assert await context_store.count("default") == 1

    @pytest.mark.asyncio
    async def test_user_message_persist_failure(self, recording_sleep):
        client = ScriptedCompletionClient(["never"])
        orchestrator = ChatOrchestrator(
            ContextStore(FailingInsertStorage(fail_on=1)),
            CompletionSource(client),
            sleep=recording_sleep,
        )

        events = await collect(orchestrator.send("Hi"))

        assert _types(events) == ["error"]
        assert events[0].error.category is ErrorCategory.UNKNOWN
        assert client.call_count == 0

    @pytest.mark.asyncio
    async def test_assistant_message_persist_failure(self, recording_sleep):
        client = ScriptedCompletionClient(["Hello"])
        orchestrator = ChatOrchestrator(
            ContextStore(FailingInsertStorage(fail_on=2)),
            CompletionSource(client),
            sleep=recording_sleep,
        )

        events = await collect(orchestrator.send("Hi"))

        assert _types(events) == ["chunk", "error"]
        assert events[-1].error.category is ErrorCategory.UNKNOWN
        assert client.call_count == 1


@pytest.mark.unit
class TestInputValidation:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   ", "\n\t "])
    async def test_blank_message_is_rejected(self, make_orchestrator, context_store, text):
        orchestrator, client = make_orchestrator(["reply"])

        with pytest.raises(ValueError):
            orchestrator.start(text)
        with pytest.raises(ValueError):
            await orchestrator.send(text).__anext__()

        assert client.call_count == 0
        assert await context_store.count("default") == 0
        assert orchestrator.state is None
        assert not orchestrator.is_busy

    @pytest.mark.asyncio
    async def test_oversized_message_fails_without_sending(self, context_store, recording_sleep):
        client = ScriptedCompletionClient(["reply"])
        orchestrator = ChatOrchestrator(
            context_store,
            CompletionSource(client),
            max_context_tokens=10,
            sleep=recording_sleep,
        )
        # 10 words estimate to 13 tokens
        text = " ".join(["word"] * 10)

        events = await collect(orchestrator.send(text))

        assert _types(events) == ["error"]
        assert events[0].error.category is ErrorCategory.INVALID_REQUEST
        assert client.call_count == 0
        assert await context_store.count("default") == 0
        assert orchestrator.state is TurnState.FAILED

    @pytest.mark.asyncio
    async def test_system_prompt_is_reserved_before_checking_message(
        self, context_store, recording_sleep
    ):
        system_tokens = context_store.estimator.estimate(CODE_REVIEWER.system_prompt)
        client = ScriptedCompletionClient(["reply"])
        orchestrator = ChatOrchestrator(
            context_store,
            CompletionSource(client),
            max_context_tokens=system_tokens + 5,
            sleep=recording_sleep,
        )
        # Fits the raw budget but not what is left after the system prompt
        text = " ".join(["word"] * 10)
        assert not context_store.estimator.exceeds_limit(text, system_tokens + 5)

        events = await collect(orchestrator.send(text, personality=CODE_REVIEWER))

        assert _types(events) == ["error"]
        assert events[0].error.category is ErrorCategory.INVALID_REQUEST
        assert client.call_count == 0
        assert await context_store.count("default") == 0

    @pytest.mark.asyncio
    async def test_message_at_budget_is_sent(self, context_store, recording_sleep):
        client = ScriptedCompletionClient(["reply"])
        orchestrator = ChatOrchestrator(
            context_store,
            CompletionSource(client),
            max_context_tokens=13,
            sleep=recording_sleep,
        )
        text = " ".join(["word"] * 10)

        events = await collect(orchestrator.send(text))

        assert _types(events) == ["chunk", "complete"]
        assert [(m.role, m.text) for m in client.calls[0]] == [(MessageRole.USER, text)]

    @pytest.mark.asyncio
    async def test_unstarted_handle_raises(self):
        handle = TurnHandle("t1", asyncio.Queue())
        with pytest.raises(RuntimeError):
            handle.task
        with pytest.raises(RuntimeError):
            handle.done()


@pytest.mark.unit
class TestConcurrencyAndCancellation:

    @pytest.mark.asyncio
    async def test_second_turn_is_rejected(self, make_orchestrator):
        orchestrator, _ = make_orchestrator(["Hel", Hang()])
        handle = orchestrator.start("Hi")

        with pytest.raises(TurnInProgressError):
            orchestrator.start("again")
        with pytest.raises(TurnInProgressError):
            await orchestrator.send("again").__anext__()

        assert orchestrator.cancel()
        assert await handle.wait() is None
        assert not orchestrator.is_busy

    @pytest.mark.asyncio
    async def test_cancel_mid_stream_persists_no_reply(self, make_orchestrator, context_store):
        orchestrator, client = make_orchestrator(["Hel", Hang()])
        handle = orchestrator.start("Hi")

        events = handle.events()
        assert await events.__anext__() == ChunkEvent("Hel")
        handle.cancel()
        assert [e async for e in events] == []

        assert await handle.wait() is None
        assert client.closed == 1
        assert await _history_roles(context_store) == [(MessageRole.USER, "Hi")]
        assert orchestrator.state is TurnState.FAILED

    @pytest.mark.asyncio
    async def test_cancel_during_backoff_wait(self, context_store):
        client = ScriptedCompletionClient([MockRateLimitError()], ["never"])
        orchestrator = ChatOrchestrator(
            context_store,
            CompletionSource(client),
            BackoffPolicy(base_delay_ms=10000, max_delay_ms=20000),
        )
        handle = orchestrator.start("Hi")

        event = await handle.events().__anext__()
        assert isinstance(event, RetryingEvent)

        orchestrator.cancel()
        assert await asyncio.wait_for(handle.wait(), timeout=1) is None
        assert client.call_count == 1
        assert await context_store.count("default") == 1

    @pytest.mark.asyncio
    async def test_closing_send_generator_cancels_turn(self, make_orchestrator, context_store):
        orchestrator, client = make_orchestrator(["Hel", Hang()])
        stream = orchestrator.send("Hi")

        assert await stream.__anext__() == ChunkEvent("Hel")
        await stream.aclose()

        assert not orchestrator.is_busy
        assert client.closed == 1
        assert await context_store.count("default") == 1

    @pytest.mark.asyncio
    async def test_cancelling_consumer_task_cancels_turn(self, make_orchestrator, context_store):
        orchestrator, _ = make_orchestrator(["Hel", Hang()])
        received = []

        async def consume():
            async for event in orchestrator.send("Hi"):
                received.append(event)

        task = asyncio.ensure_future(consume())
        while not received:
            await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert received == [ChunkEvent("Hel")]
        assert not orchestrator.is_busy
        assert await context_store.count("default") == 1

    @pytest.mark.asyncio
    async def test_clear_cancels_turn_and_deletes_history(self, make_orchestrator, context_store):
        orchestrator, _ = make_orchestrator(["Hel", Hang()])
        handle = orchestrator.start("Hi")
        await handle.events().__anext__()

        await orchestrator.clear()

        assert handle.done()
        assert await orchestrator.load_history() == []
        assert await context_store.get_conversation("default") is not None

    @pytest.mark.asyncio
    async def test_cancel_without_turn(self, make_orchestrator):
        orchestrator, _ = make_orchestrator(["x"])
        assert not orchestrator.cancel()

    @pytest.mark.asyncio
    async def test_next_turn_allowed_after_previous_finished(self, make_orchestrator):
        orchestrator, _ = make_orchestrator(["one"], ["two"])
        first = await orchestrator.start("a").wait()
        second = await orchestrator.start("b").wait()
        assert first.message.text == "one"
        assert second.message.text == "two"

    @pytest.mark.asyncio
    async def test_small_queue_preserves_order(self, context_store, recording_sleep):
        chunks = [str(i) for i in range(20)]
        orchestrator = ChatOrchestrator(
            context_store,
            CompletionSource(ScriptedCompletionClient(chunks)),
            sleep=recording_sleep,
            queue_size=1,
        )
        events = await collect(orchestrator.send("Hi"))
        assert [e.text for e in events[:-1]] == chunks
        assert events[-1].message.text == "".join(chunks)
