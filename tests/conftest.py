"""
Configuration for pytest tests.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

import transcripts
from ai_models import Provider
from llm_providers import LLMProvider, ProviderRegistry
from rate_limit import InMemoryRateLimitStore


def make_provider(return_value="generated text", side_effect=None):
    """Create a fake LLM provider whose generate_content is an AsyncMock."""
    provider = MagicMock(spec=LLMProvider)
    provider.generate_content = AsyncMock(
        return_value=return_value, side_effect=side_effect
    )
    return provider


class FakeClock:
    """Manually advanced timer for window-based tests."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def clear_transcript_cache():
    transcripts.transcript_cache.clear()
    yield
    transcripts.transcript_cache.clear()


@pytest.fixture
def openai_provider():
    return make_provider("OpenAI output")


@pytest.fixture
def gemini_provider():
    return make_provider("Gemini output")


@pytest.fixture
def claude_provider():
    return make_provider("Claude output")


@pytest.fixture
def registry(openai_provider, gemini_provider, claude_provider):
    return ProviderRegistry(
        {
            Provider.OPENAI: openai_provider,
            Provider.GEMINI: gemini_provider,
            Provider.CLAUDE: claude_provider,
        }
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def client(monkeypatch, registry):
    """Quart test client wired to fake providers and a fresh rate limiter."""
    import app as server

    monkeypatch.setattr(server, "llm_registry", registry)
    monkeypatch.setattr(server, "rate_limiter", InMemoryRateLimitStore())
    return server.app.test_client()
