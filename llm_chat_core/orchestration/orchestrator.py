"""
Chat turn orchestration.

A turn persists the user's message, streams a completion for the pruned
context, retries transient failures with exponential backoff and finally
persists the assembled assistant reply. Each turn runs in its own task and
delivers its events, in order, through a bounded queue.
"""

import asyncio
import uuid
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, List, Optional, Tuple

from ..context.store import ContextStore
from ..models.errors import AIError
from ..models.events import ChatEvent, ChunkEvent, CompleteEvent, ErrorEvent, RetryingEvent
from ..models.messages import Message
from ..models.personality import AIPersonality
from ..observability.logging import ChatLogger
from ..providers.completion_source import CompletionSource, StreamFailure, TextDelta
from ..reliability.backoff import BackoffPolicy
from ..reliability.state import RetryState
from .errors import EmptyCompletionError, TurnInProgressError

logger = ChatLogger("orchestrator")

DEFAULT_EVENT_QUEUE_SIZE = 64

Emit = Callable[[ChatEvent], Awaitable[None]]
Sleep = Callable[[float], Awaitable[None]]


class TurnState(Enum):
    """Lifecycle of a single turn."""
    PERSISTING = "persisting"
    STREAMING = "streaming"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TurnState.SUCCEEDED, TurnState.FAILED)


class TurnHandle:
    """
    A running turn.

    Events are read with :meth:`events`. The queue is bounded, so a turn
    whose events are never read stalls once the queue is full.
    """

    def __init__(self, turn_id: str, queue: "asyncio.Queue[ChatEvent]"):
        self.turn_id = turn_id
        self._queue = queue
        self._task: Optional["asyncio.Task[Optional[ChatEvent]]"] = None

    def _attach(self, task: "asyncio.Task[Optional[ChatEvent]]") -> None:
        self._task = task

    @property
    def task(self) -> "asyncio.Task[Optional[ChatEvent]]":
        if self._task is None:
            raise RuntimeError(f"Turn {self.turn_id} has not been started")
        return self._task

    def done(self) -> bool:
        return self.task.done()

    def cancel(self) -> bool:
        """Request cancellation. Returns False if the turn already finished."""
        return self.task.cancel()

    async def wait(self) -> Optional[ChatEvent]:
        """
        Wait for the turn to end.

        Returns:
            The terminal event, or None if the turn was cancelled
        """
        await asyncio.wait({self.task})
        if self.task.cancelled():
            return None
        return self.task.result()

    async def events(self) -> AsyncIterator[ChatEvent]:
        """Yield the turn's events in emission order until the turn ends."""
        while True:
            if not self._queue.empty():
                yield self._queue.get_nowait()
                continue
            if self.task.done():
                break
            getter = asyncio.ensure_future(self._queue.get())
            try:
                done, _ = await asyncio.wait(
                    {getter, self.task},
                    return_when=asyncio.FIRST_COMPLETED
                )
            finally:
                if not getter.done():
                    getter.cancel()
            if getter in done:
                yield getter.result()

        if not self.task.cancelled() and self.task.exception() is not None:
            raise self.task.exception()


class ChatOrchestrator:
    """
    Runs chat turns against one pinned conversation.

    At most one turn runs at a time; starting another while one is in
    flight raises :class:`TurnInProgressError`.
    """

    def __init__(
        self,
        context_store: ContextStore,
        completion_source: CompletionSource,
        backoff_policy: Optional[BackoffPolicy] = None,
        conversation_id: str = "default",
        max_context_tokens: Optional[int] = None,
        sleep: Sleep = asyncio.sleep,
        queue_size: int = DEFAULT_EVENT_QUEUE_SIZE
    ):
        self.context_store = context_store
        self.completion_source = completion_source
        self.backoff_policy = backoff_policy or BackoffPolicy()
        self.conversation_id = conversation_id
        self.max_context_tokens = max_context_tokens
        self.queue_size = queue_size
        self._sleep = sleep
        self._active: Optional[TurnHandle] = None
        self._state: Optional[TurnState] = None

    @property
    def state(self) -> Optional[TurnState]:
        """State of the current turn, or of the last one; None before any turn."""
        return self._state

    @property
    def is_busy(self) -> bool:
        return self._active is not None and not self._active.done()

    def start(
        self,
        user_text: str,
        personality: Optional[AIPersonality] = None
    ) -> TurnHandle:
        """
        Start a turn in a background task.

        Args:
            user_text: The user's message
            personality: Optional personality whose system prompt is prepended

        Returns:
            TurnHandle delivering the turn's events

        Raises:
            ValueError: If ``user_text`` is empty or only whitespace
            TurnInProgressError: If another turn is still running
        """
        if not user_text or not user_text.strip():
            raise ValueError("Message text must not be blank")
        if self.is_busy:
            raise TurnInProgressError(self.conversation_id, self._active.turn_id)

        turn_id = str(uuid.uuid4())[:8]
        queue: "asyncio.Queue[ChatEvent]" = asyncio.Queue(maxsize=self.queue_size)
        handle = TurnHandle(turn_id, queue)
        task = asyncio.ensure_future(
            self._run_turn(turn_id, user_text, personality, queue.put)
        )
        handle._attach(task)
        task.add_done_callback(lambda _: self._release(handle))
        self._active = handle
        return handle

    async def send(
        self,
        user_text: str,
        personality: Optional[AIPersonality] = None
    ) -> AsyncIterator[ChatEvent]:
        """
        Run a turn and yield its events.

        Closing the generator or cancelling the consuming task cancels the
        turn; nothing is persisted for an unfinished reply.
        """
        handle = self.start(user_text, personality)
        try:
            async for event in handle.events():
                yield event
        finally:
            if not handle.done():
                handle.cancel()
                await asyncio.wait({handle.task})

    def cancel(self) -> bool:
        """Cancel the in-flight turn. Returns False if there is none."""
        if not self.is_busy:
            return False
        logger.info(
            "Cancelling turn",
            conversation_id=self.conversation_id,
            turn_id=self._active.turn_id
        )
        return self._active.cancel()

    async def load_history(self, conversation_id: Optional[str] = None) -> List[Message]:
        """Persisted messages of the conversation, oldest first."""
        return await self.context_store.load_all(conversation_id or self.conversation_id)

    async def stop(self) -> None:
        """Cancel the in-flight turn, if any, and wait for it to unwind."""
        active = self._active
        if active is not None and self.cancel():
            await active.wait()

    async def clear(self, conversation_id: Optional[str] = None) -> None:
        """Cancel any in-flight turn, then delete the conversation's messages."""
        await self.stop()
        await self.context_store.clear(conversation_id or self.conversation_id)

    def _release(self, handle: TurnHandle) -> None:
        if self._active is handle:
            self._active = None

    async def _run_turn(
        self,
        turn_id: str,
        user_text: str,
        personality: Optional[AIPersonality],
        emit: Emit
    ) -> ChatEvent:
        with logger.track_turn(self.conversation_id, turn_id) as turn:
            try:
                terminal = await self._execute_turn(turn_id, user_text, personality, emit)
            except asyncio.CancelledError:
                self._state = TurnState.FAILED
                turn['outcome'] = "cancelled"
                raise
            turn['outcome'] = terminal.type
            return terminal

    async def _execute_turn(
        self,
        turn_id: str,
        user_text: str,
        personality: Optional[AIPersonality],
        emit: Emit
    ) -> ChatEvent:
        conversation_id = self.conversation_id
        system_prompt = personality.system_prompt if personality else None

        self._state = TurnState.PERSISTING
        if not self.context_store.fits_history(user_text, self.max_context_tokens, system_prompt):
            budget = self.context_store.history_budget(self.max_context_tokens, system_prompt)
            return await self._fail(
                AIError.invalid_request(f"Message exceeds the {budget} token context budget"),
                emit,
                turn_id
            )

        try:
            await self.context_store.append(Message.user(user_text, conversation_id=conversation_id))
            context = await self.context_store.build_context(
                conversation_id,
                max_tokens=self.max_context_tokens,
                system_prompt=system_prompt,
            )
        except Exception as e:
            logger.error(
                "Failed to prepare turn",
                conversation_id=conversation_id,
                turn_id=turn_id,
                error=e
            )
            return await self._fail(AIError.unknown(e), emit, turn_id)

        logger.debug(
            f"Built context with {len(context)} messages",
            conversation_id=conversation_id,
            turn_id=turn_id
        )

        retry = RetryState()
        while True:
            self._state = TurnState.STREAMING
            text, error = await self._stream_attempt(context, emit)

            if error is None:
                if not text:
                    return await self._fail(
                        AIError.unknown(EmptyCompletionError(retry.attempt)), emit, turn_id
                    )
                return await self._complete(text, emit, turn_id)

            retry.record_failure(error)
            if (not self.backoff_policy.is_retryable(error, retry.attempt)
                    or retry.attempt + 1 >= self.backoff_policy.max_attempts):
                return await self._fail(error, emit, turn_id)

            self._state = TurnState.RETRYING
            delay_ms = self.backoff_policy.next_delay(retry.attempt + 1)
            attempt = retry.advance(delay_ms)
            logger.warning(
                f"Attempt failed with {error}, retrying in {delay_ms}ms",
                conversation_id=conversation_id,
                turn_id=turn_id,
                attempt=attempt
            )
            await emit(RetryingEvent(attempt, delay_ms, error))
            await self._sleep(delay_ms / 1000)

    async def _stream_attempt(
        self,
        context: List[Message],
        emit: Emit
    ) -> Tuple[str, Optional[AIError]]:
        """Run one stream. Returns the assembled text and the failure, if any."""
        buffer: List[str] = []
        error: Optional[AIError] = None
        stream = self.completion_source.stream(context)
        try:
            async for signal in stream:
                if isinstance(signal, TextDelta):
                    buffer.append(signal.text)
                    await emit(ChunkEvent(signal.text))
                elif isinstance(signal, StreamFailure):
                    error = signal.error
        finally:
            await stream.aclose()
        return "".join(buffer), error

    async def _complete(self, text: str, emit: Emit, turn_id: str) -> ChatEvent:
        try:
            stored = await self.context_store.append(
                Message.assistant(text, conversation_id=self.conversation_id)
            )
        except Exception as e:
            logger.error(
                "Failed to persist assistant message",
                conversation_id=self.conversation_id,
                turn_id=turn_id,
                error=e
            )
            return await self._fail(AIError.unknown(e), emit, turn_id)

        self._state = TurnState.SUCCEEDED
        event = CompleteEvent(stored)
        await emit(event)
        return event

    async def _fail(self, error: AIError, emit: Emit, turn_id: str) -> ChatEvent:
        self._state = TurnState.FAILED
        logger.error(
            f"Turn failed: {error}",
            conversation_id=self.conversation_id,
            turn_id=turn_id,
            category=error.category.value
        )
        event = ErrorEvent(error)
        await emit(event)
        return event
