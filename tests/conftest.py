"""Shared pytest fixtures."""

import asyncio
import os
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from dcaadvisor.agent.advisor_tools import register_advisor_tools
from dcaadvisor.agent.conversation import Conversation
from dcaadvisor.agent.providers.base import LLMProvider, ProviderResponse
from dcaadvisor.agent.tools import ToolRegistry, ToolSchema
from dcaadvisor.config import AgentSettings, Settings
from dcaadvisor.core.models import PricePoint
from dcaadvisor.market.mock import MockPriceSource


@pytest.fixture(autouse=True)
def reset_globals(monkeypatch):
    """Reset global instances and environment overrides before each test."""
    import dcaadvisor.config as config_module

    for key in [k for k in os.environ if k.startswith("DCAADVISOR_")]:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)

    config_module._settings = None
    yield
    config_module._settings = None


class ScriptedProvider(LLMProvider):
    """Provider replaying a fixed script of responses or errors.

    Every ``generate`` call records how many messages the conversation held
    and which tools were advertised.
    """

    def __init__(self, script: Sequence[ProviderResponse | Exception], native_tools: bool = True, delay: float = 0.0):
        self.script = list(script)
        self.native_tools = native_tools
        self.delay = delay
        self.calls = 0
        self.seen_lengths: list[int] = []
        self.seen_tools: list[list[str]] = []
        self.conversations: list[Conversation] = []

    @property
    def name(self) -> str:
        return "scripted"

    @property
    def supports_native_tools(self) -> bool:
        return self.native_tools

    async def generate(self, conversation: Conversation, tools: Sequence[ToolSchema]) -> ProviderResponse:
        self.calls += 1
        self.seen_lengths.append(len(conversation))
        self.seen_tools.append([t.name for t in tools])
        self.conversations.append(conversation)
        if self.delay:
            await asyncio.sleep(self.delay)
        if not self.script:
            raise AssertionError("Scripted provider ran out of responses")
        step = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(step, Exception):
            raise step
        return step

    async def health_check(self) -> bool:
        return True


@pytest.fixture
def scripted_provider():
    """Factory for scripted providers.

    The last script entry repeats once the script is exhausted.
    """
    return ScriptedProvider


@pytest.fixture
def agent_settings():
    """Agent settings with no retry backoff."""
    return AgentSettings(
        retry_initial_backoff=0.0,
        retry_max_backoff=0.0,
        provider_timeout=2.0,
        tool_timeout=2.0,
    )


@pytest.fixture
def settings():
    """Default settings, independent of the environment."""
    return Settings()


@pytest.fixture
def mock_source():
    """Mock price source with static prices."""
    return MockPriceSource()


@pytest.fixture
def advisor_registry(mock_source, settings):
    """Registry with all advisory tools on the mock source."""
    return register_advisor_tools(ToolRegistry(default_timeout=2.0), mock_source, settings)


@pytest.fixture
def make_series():
    """Build a daily price series from a list of prices."""

    def _make(prices: Sequence[float | str]) -> list[PricePoint]:
        start = datetime(2025, 1, 1, tzinfo=UTC)
        return [
            PricePoint(timestamp=start + timedelta(days=i), price=Decimal(str(p)))
            for i, p in enumerate(prices)
        ]

    return _make
