"""Providers - language-model backends behind a common contract."""

from dcaadvisor.agent.providers.anthropic import AnthropicProvider
from dcaadvisor.agent.providers.base import (
    FinalAnswer,
    LLMProvider,
    ProviderResponse,
    ToolRequest,
    parse_text_tool_calls,
)
from dcaadvisor.agent.providers.ollama import OllamaProvider

__all__ = [
    "AnthropicProvider",
    "FinalAnswer",
    "LLMProvider",
    "OllamaProvider",
    "ProviderResponse",
    "ToolRequest",
    "create_provider",
    "parse_text_tool_calls",
]


def create_provider() -> LLMProvider:
    """Build the provider selected in settings.

    Raises:
        ValueError: If the Anthropic backend is selected without an API key
    """
    from dcaadvisor.config import get_settings

    settings = get_settings()
    timeout = settings.agent.provider_timeout

    if settings.provider.backend == "anthropic":
        if not settings.has_anthropic_credentials:
            raise ValueError("ANTHROPIC_API_KEY is required for the anthropic backend")
        return AnthropicProvider(
            api_key=settings.anthropic_api_key.get_secret_value(),
            settings=settings.provider,
            timeout=timeout,
        )
    return OllamaProvider(settings=settings.provider, timeout=timeout)
