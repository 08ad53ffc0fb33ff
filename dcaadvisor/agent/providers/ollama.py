"""Ollama chat provider over HTTP."""

import json
from collections.abc import Sequence
from typing import Any

import httpx

from dcaadvisor.agent.conversation import Conversation, Role
from dcaadvisor.agent.providers.base import LLMProvider, ProviderResponse, parse_text_tool_calls
from dcaadvisor.agent.tools import ToolCall, ToolSchema
from dcaadvisor.config import ProviderSettings
from dcaadvisor.core.errors import ProviderError, ProviderErrorKind
from dcaadvisor.core.logging import get_logger

logger = get_logger(__name__)


class OllamaProvider(LLMProvider):
    """
    Provider for a local Ollama server (``/api/chat``).

    With ``native_tools`` the tool schemas are sent in the request and the
    model's structured ``tool_calls`` are used. Fenced ```` ```tool ```` blocks
    in the reply text are always parsed too, for models that ignore native
    tool calling.
    """

    def __init__(
        self,
        settings: ProviderSettings | None = None,
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize the provider.

        Args:
            settings: Model, host and sampling settings
            timeout: Per-request timeout in seconds
            client: HTTP client to use (created on first request otherwise)
        """
        self.settings = settings or ProviderSettings()
        self.timeout = timeout
        self._client = client

    @property
    def name(self) -> str:
        return f"ollama:{self.settings.model}"

    @property
    def supports_native_tools(self) -> bool:
        return self.settings.native_tools

    @property
    def base_url(self) -> str:
        return self.settings.host.rstrip("/")

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    def _convert_messages(self, conversation: Conversation) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = []
        for message in conversation:
            if message.role == Role.TOOL:
                if self.supports_native_tools:
                    messages.append(
                        {"role": "tool", "content": message.content, "tool_name": message.name}
                    )
                else:
                    messages.append(
                        {
                            "role": "user",
                            "content": f"Tool result for {message.name} ({message.tool_call_id}):\n"
                            f"{message.content}",
                        }
                    )
            elif message.role == Role.ASSISTANT and message.tool_calls and self.supports_native_tools:
                messages.append(
                    {
                        "role": "assistant",
                        "content": message.content,
                        "tool_calls": [
                            {"function": {"name": c.tool_name, "arguments": c.arguments}}
                            for c in message.tool_calls
                        ],
                    }
                )
            elif message.role == Role.ASSISTANT and message.tool_calls:
                # Text protocol: echo the calls the model made as fenced blocks
                blocks = [
                    "```tool\n"
                    + json.dumps({"tool": c.tool_name, "arguments": c.arguments, "id": c.call_id})
                    + "\n```"
                    for c in message.tool_calls
                ]
                content = "\n".join(filter(None, [message.content, *blocks]))
                messages.append({"role": "assistant", "content": content})
            else:
                messages.append({"role": message.role.value, "content": message.content})
        return messages

    def _build_payload(self, conversation: Conversation, tools: Sequence[ToolSchema]) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.settings.model,
            "messages": self._convert_messages(conversation),
            "stream": False,
            "options": {
                "temperature": self.settings.temperature,
                "num_predict": self.settings.max_tokens,
            },
        }
        if self.supports_native_tools and tools:
            payload["tools"] = [schema.to_openai() for schema in tools]
        return payload

    @staticmethod
    def _parse_native_calls(raw_calls: list[Any]) -> list[ToolCall]:
        calls = []
        for raw in raw_calls:
            function = raw.get("function") if isinstance(raw, dict) else None
            if not isinstance(function, dict) or not isinstance(function.get("name"), str):
                raise ProviderError(ProviderErrorKind.MALFORMED_RESPONSE, "Tool call without a function name")
            arguments = function.get("arguments") or {}
            if isinstance(arguments, str):
                try:
                    arguments = json.loads(arguments)
                except json.JSONDecodeError as e:
                    raise ProviderError(
                        ProviderErrorKind.MALFORMED_RESPONSE, f"Tool arguments are not JSON: {e}"
                    ) from e
            if not isinstance(arguments, dict):
                raise ProviderError(ProviderErrorKind.MALFORMED_RESPONSE, "Tool arguments must be an object")
            call_id = raw.get("id")
            if isinstance(call_id, str) and call_id:
                calls.append(ToolCall(tool_name=function["name"], arguments=arguments, call_id=call_id))
            else:
                calls.append(ToolCall(tool_name=function["name"], arguments=arguments))
        return calls

    async def generate(
        self,
        conversation: Conversation,
        tools: Sequence[ToolSchema],
    ) -> ProviderResponse:
        """Send the conversation to ``/api/chat``."""
        payload = self._build_payload(conversation, tools)

        try:
            response = await self._get_client().post(
                f"{self.base_url}/api/chat", json=payload, timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            raise ProviderError(ProviderErrorKind.TIMEOUT, f"Ollama timed out after {self.timeout}s") from e
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                ProviderErrorKind.UNREACHABLE, f"Ollama returned HTTP {e.response.status_code}"
            ) from e
        except httpx.TransportError as e:
            raise ProviderError(ProviderErrorKind.UNREACHABLE, f"Cannot reach Ollama: {e}") from e
        except ValueError as e:
            raise ProviderError(ProviderErrorKind.MALFORMED_RESPONSE, "Ollama response is not JSON") from e

        message = data.get("message") if isinstance(data, dict) else None
        if not isinstance(message, dict):
            raise ProviderError(ProviderErrorKind.MALFORMED_RESPONSE, "Ollama response has no message")

        content = message.get("content") or ""
        calls = self._parse_native_calls(message.get("tool_calls") or [])
        text, text_calls = parse_text_tool_calls(content)
        calls.extend(text_calls)

        logger.debug(
            "provider_response",
            provider=self.name,
            tool_calls=len(calls),
            eval_count=data.get("eval_count"),
        )
        return ProviderResponse.from_parts(text, calls)

    async def health_check(self) -> bool:
        """Check the server answers ``/api/tags``."""
        try:
            response = await self._get_client().get(f"{self.base_url}/api/tags", timeout=5.0)
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning("provider_health_check_failed", provider=self.name, error=str(e))
            return False

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
