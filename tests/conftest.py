"""Shared pytest fixtures for LLM Chat Core tests."""

import pytest
import pytest_asyncio

from llm_chat_core.context.store import ContextStore
from llm_chat_core.providers.completion_source import CompletionSource
from llm_chat_core.reliability.backoff import BackoffPolicy
from llm_chat_core.orchestration.orchestrator import ChatOrchestrator
from llm_chat_core.storage.in_memory import InMemoryStorage
from llm_chat_core.storage.sqlite import SQLiteStorage
from tests.helpers.streaming_mocks import RecordingSleep, ScriptedCompletionClient


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without external services")
    config.addinivalue_line("markers", "integration: tests wiring several components together")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep developer environment variables out of the tests."""
    for key in (
        "OPENAI_API_KEY",
        "LLM_CHAT_MODEL",
        "LLM_CHAT_TEMPERATURE",
        "LLM_CHAT_MAX_RESPONSE_TOKENS",
        "LLM_CHAT_TIMEOUT",
        "LLM_CHAT_MAX_CONTEXT_TOKENS",
        "LLM_CHAT_RETRY_MAX_ATTEMPTS",
        "LLM_CHAT_RETRY_BASE_DELAY_MS",
        "LLM_CHAT_RETRY_MAX_DELAY_MS",
        "LLM_CHAT_DB_PATH",
        "LLM_CHAT_CONVERSATION_ID",
    ):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def mock_env_vars(monkeypatch):
    """Mock environment variables for testing."""
    env_vars = {"OPENAI_API_KEY": "test-openai-key"}
    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)
    return env_vars


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest_asyncio.fixture
async def sqlite_storage(tmp_path):
    storage = SQLiteStorage(str(tmp_path / "chat.db"))
    await storage.initialize()
    yield storage
    await storage.close()


@pytest.fixture
def context_store(storage):
    return ContextStore(storage)


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def make_orchestrator(context_store, recording_sleep):
    """Factory building an orchestrator around scripted completion streams."""

    def _make(*scripts, max_attempts: int = 3, timeout_seconds: float = 60.0):
        client = ScriptedCompletionClient(*scripts)
        source = CompletionSource(client, timeout_seconds=timeout_seconds)
        orchestrator = ChatOrchestrator(
            context_store,
            source,
            BackoffPolicy(max_attempts=max_attempts),
            sleep=recording_sleep,
        )
        return orchestrator, client

    return _make
