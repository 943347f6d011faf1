"""
Runtime settings for the chat core.

Values come from the environment (optionally a ``.env`` file loaded with
python-dotenv). Numeric variables that fail to parse fall back to their
defaults.
"""

import logging
import os
from typing import Callable, Optional, TypeVar

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from ..context.token_estimator import MAX_CONTEXT_TOKENS

logger = logging.getLogger(__name__)

T = TypeVar("T")

ENV_PREFIX = "LLM_CHAT_"

DEFAULT_MODEL = "gpt-3.5-turbo"
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_RESPONSE_TOKENS = 500
DEFAULT_TIMEOUT_SECONDS = 60.0
DEFAULT_DB_PATH = "chat.db"
DEFAULT_CONVERSATION_ID = "default"


class ConfigurationError(Exception):
    """Raised when required configuration (such as the API key) is missing."""


class ChatSettings(BaseModel):
    """Settings for the completion client, retries, context and storage."""

    api_key: Optional[str] = Field(default=None, repr=False)
    model: str = DEFAULT_MODEL
    temperature: float = Field(default=DEFAULT_TEMPERATURE, ge=0.0, le=2.0)
    max_response_tokens: int = Field(default=DEFAULT_MAX_RESPONSE_TOKENS, gt=0)
    timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)
    max_context_tokens: int = Field(default=MAX_CONTEXT_TOKENS, gt=0)
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_base_delay_ms: int = Field(default=1000, ge=0)
    retry_max_delay_ms: int = Field(default=16000, ge=0)
    db_path: str = DEFAULT_DB_PATH
    conversation_id: str = DEFAULT_CONVERSATION_ID

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "ChatSettings":
        """
        Build settings from environment variables.

        Args:
            dotenv: Load a ``.env`` file first (existing variables win)

        Returns:
            ChatSettings instance
        """
        if dotenv:
            load_dotenv()

        return cls(
            api_key=os.getenv("OPENAI_API_KEY") or None,
            model=os.getenv(f"{ENV_PREFIX}MODEL", DEFAULT_MODEL),
            temperature=_env_number("TEMPERATURE", float, DEFAULT_TEMPERATURE),
            max_response_tokens=_env_number("MAX_RESPONSE_TOKENS", int, DEFAULT_MAX_RESPONSE_TOKENS),
            timeout_seconds=_env_number("TIMEOUT", float, DEFAULT_TIMEOUT_SECONDS),
            max_context_tokens=_env_number("MAX_CONTEXT_TOKENS", int, MAX_CONTEXT_TOKENS),
            retry_max_attempts=_env_number("RETRY_MAX_ATTEMPTS", int, 3),
            retry_base_delay_ms=_env_number("RETRY_BASE_DELAY_MS", int, 1000),
            retry_max_delay_ms=_env_number("RETRY_MAX_DELAY_MS", int, 16000),
            db_path=os.getenv(f"{ENV_PREFIX}DB_PATH", DEFAULT_DB_PATH),
            conversation_id=os.getenv(f"{ENV_PREFIX}CONVERSATION_ID", DEFAULT_CONVERSATION_ID),
        )

    def require_api_key(self) -> str:
        """Return the API key or raise ConfigurationError."""
        if not self.api_key:
            raise ConfigurationError("OpenAI API key not found in environment variables")
        return self.api_key


def _env_number(name: str, parse: Callable[[str], T], default: T) -> T:
    raw = os.getenv(f"{ENV_PREFIX}{name}")
    if raw is None or raw.strip() == "":
        return default
    try:
        return parse(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {ENV_PREFIX}{name}={raw!r}, using {default}")
        return default
