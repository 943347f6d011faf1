import os
from typing import AsyncIterator, Optional, Sequence

from openai import AsyncOpenAI

from ..base import to_api_messages
from ...config.settings import (
    DEFAULT_MAX_RESPONSE_TOKENS,
    DEFAULT_MODEL,
    DEFAULT_TIMEOUT_SECONDS,
    ChatSettings,
    ConfigurationError,
)
from ...models.messages import Message
from ...observability.logging import ChatLogger

logger = ChatLogger("openai")


class OpenAIChatClient:
    """Streaming chat-completions client over the OpenAI SDK."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        max_tokens: int = DEFAULT_MAX_RESPONSE_TOKENS,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: Optional[AsyncOpenAI] = None
    ):
        self._client = client
        self._api_key = api_key if api_key is not None else os.getenv("OPENAI_API_KEY")
        self.model = model
        self.max_tokens = max_tokens
        self._timeout = timeout

    @classmethod
    def from_settings(cls, settings: ChatSettings) -> "OpenAIChatClient":
        return cls(
            api_key=settings.api_key,
            model=settings.model,
            max_tokens=settings.max_response_tokens,
            timeout=settings.timeout_seconds,
        )

    @property
    def client(self) -> AsyncOpenAI:
        """Lazy initialization of OpenAI client."""
        if self._client is None:
            if not self._api_key:
                raise ConfigurationError("OpenAI API key not found in environment variables")
            self._client = AsyncOpenAI(api_key=self._api_key, timeout=self._timeout)
        return self._client

    async def stream_chat(
        self,
        messages: Sequence[Message],
        temperature: float
    ) -> AsyncIterator[str]:
        """Yield non-empty content deltas of a streamed chat completion."""
        payload = to_api_messages(messages)
        logger.debug(
            f"Requesting completion with {len(payload)} messages",
            model=self.model
        )
        stream = await self.client.chat.completions.create(
            model=self.model,
            messages=payload,
            temperature=temperature,
            max_tokens=self.max_tokens,
            stream=True,
        )
        async for chunk in stream:
            if not chunk.choices:
                continue
            content = chunk.choices[0].delta.content
            if content:
                yield content
