"""Anthropic Messages API provider."""

from collections.abc import Sequence
from typing import Any

import anthropic

from dcaadvisor.agent.conversation import Conversation, Role
from dcaadvisor.agent.providers.base import LLMProvider, ProviderResponse
from dcaadvisor.agent.tools import ToolCall, ToolSchema
from dcaadvisor.config import ProviderSettings
from dcaadvisor.core.errors import ProviderError, ProviderErrorKind
from dcaadvisor.core.logging import get_logger

logger = get_logger(__name__)


class AnthropicProvider(LLMProvider):
    """Provider for Claude models through the Anthropic SDK, using native tool use."""

    def __init__(
        self,
        api_key: str = "",
        settings: ProviderSettings | None = None,
        timeout: float = 60.0,
        client: Any = None,
    ):
        self.settings = settings or ProviderSettings()
        self.timeout = timeout
        self._client = client or anthropic.AsyncAnthropic(api_key=api_key or None, timeout=timeout)

    @property
    def name(self) -> str:
        return f"anthropic:{self.settings.anthropic_model}"

    @staticmethod
    def _convert_messages(conversation: Conversation) -> list[dict[str, Any]]:
        """Map the conversation to Messages API turns.

        Tool results become ``tool_result`` blocks in a user turn; consecutive
        results share one turn.
        """
        messages: list[dict[str, Any]] = []
        for message in conversation:
            if message.role == Role.SYSTEM:
                continue
            if message.role == Role.TOOL:
                block = {
                    "type": "tool_result",
                    "tool_use_id": message.tool_call_id,
                    "content": message.content,
                }
                previous = messages[-1] if messages else None
                if previous and previous["role"] == "user" and isinstance(previous["content"], list):
                    previous["content"].append(block)
                else:
                    messages.append({"role": "user", "content": [block]})
            elif message.role == Role.ASSISTANT and message.tool_calls:
                content: list[dict[str, Any]] = []
                if message.content:
                    content.append({"type": "text", "text": message.content})
                content.extend(
                    {"type": "tool_use", "id": c.call_id, "name": c.tool_name, "input": c.arguments}
                    for c in message.tool_calls
                )
                messages.append({"role": "assistant", "content": content})
            else:
                messages.append({"role": message.role.value, "content": message.content})
        return messages

    async def generate(
        self,
        conversation: Conversation,
        tools: Sequence[ToolSchema],
    ) -> ProviderResponse:
        """Call ``messages.create`` and map text and tool_use blocks."""
        request: dict[str, Any] = {
            "model": self.settings.anthropic_model,
            "max_tokens": self.settings.max_tokens,
            "temperature": self.settings.temperature,
            "messages": self._convert_messages(conversation),
        }
        if conversation.system_prompt:
            request["system"] = conversation.system_prompt
        if tools:
            request["tools"] = [schema.to_anthropic() for schema in tools]

        try:
            response = await self._client.messages.create(**request)
        except anthropic.APITimeoutError as e:
            raise ProviderError(ProviderErrorKind.TIMEOUT, "Anthropic API timed out") from e
        except anthropic.APIConnectionError as e:
            raise ProviderError(ProviderErrorKind.UNREACHABLE, f"Cannot reach Anthropic API: {e}") from e
        except anthropic.APIStatusError as e:
            kind = (
                ProviderErrorKind.UNREACHABLE
                if e.status_code >= 500 or e.status_code == 429
                else ProviderErrorKind.MALFORMED_RESPONSE
            )
            raise ProviderError(kind, f"Anthropic API returned HTTP {e.status_code}") from e

        text_parts: list[str] = []
        calls: list[ToolCall] = []
        for block in response.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                calls.append(ToolCall(tool_name=block.name, arguments=dict(block.input), call_id=block.id))

        logger.debug(
            "provider_response",
            provider=self.name,
            tool_calls=len(calls),
            stop_reason=response.stop_reason,
        )
        return ProviderResponse.from_parts(" ".join(text_parts), calls)

    async def health_check(self) -> bool:
        """Check the API key is accepted by listing models."""
        try:
            await self._client.models.list(limit=1)
            return True
        except anthropic.APIError as e:
            logger.warning("provider_health_check_failed", provider=self.name, error=str(e))
            return False

    async def close(self) -> None:
        await self._client.close()
