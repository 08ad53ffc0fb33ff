"""Provider abstraction: a uniform contract over language-model backends."""

import json
import re
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from dcaadvisor.agent.conversation import Conversation
from dcaadvisor.agent.tools import ToolCall, ToolSchema, new_call_id
from dcaadvisor.core.errors import ProviderError, ProviderErrorKind
from dcaadvisor.core.logging import get_logger

logger = get_logger(__name__)

_FENCED_TOOL = re.compile(r"```tool\s*\n(.*?)```", re.DOTALL)
_INLINE_TOOL = re.compile(r'\{\s*"tool"\s*:')


class ProviderResponse:
    """What a backend returned for one query: a final answer or tool requests."""

    @staticmethod
    def from_parts(text: str, calls: Sequence[ToolCall]) -> "ProviderResponse":
        """Build a response; any tool call takes priority over the text.

        Duplicate call ids are replaced by ``ToolRequest``.
        """
        if not calls:
            return FinalAnswer(text=text.strip())
        return ToolRequest(calls=tuple(calls), text=text.strip())


@dataclass(frozen=True)
class FinalAnswer(ProviderResponse):
    """Natural-language reply ending the turn."""

    text: str


@dataclass(frozen=True)
class ToolRequest(ProviderResponse):
    """One or more tool invocations, with any text the model wrote alongside."""

    calls: tuple[ToolCall, ...]
    text: str = ""

    def __post_init__(self) -> None:
        # Results are matched to calls by id, so ids must be unique
        unique: list[ToolCall] = []
        seen: set[str] = set()
        for call in self.calls:
            if call.call_id in seen:
                call = ToolCall(tool_name=call.tool_name, arguments=call.arguments, call_id=new_call_id())
            seen.add(call.call_id)
            unique.append(call)
        object.__setattr__(self, "calls", tuple(unique))


def _call_from_json(data: Any) -> ToolCall:
    if not isinstance(data, dict) or not isinstance(data.get("tool"), str):
        raise ProviderError(ProviderErrorKind.MALFORMED_RESPONSE, "Tool block without a 'tool' name")
    arguments = data.get("arguments") or {}
    if not isinstance(arguments, dict):
        raise ProviderError(ProviderErrorKind.MALFORMED_RESPONSE, "Tool arguments must be an object")
    call_id = data.get("id")
    if isinstance(call_id, str) and call_id:
        return ToolCall(tool_name=data["tool"], arguments=arguments, call_id=call_id)
    return ToolCall(tool_name=data["tool"], arguments=arguments)


def parse_text_tool_calls(text: str) -> tuple[str, list[ToolCall]]:
    """
    Extract tool calls written as text by models without native tool calling.

    Recognizes fenced blocks::

        ```tool
        {"tool": "price_lookup", "arguments": {"symbol": "BTC"}}
        ```

    and falls back to a bare ``{"tool": ...}`` JSON object in the text.

    Returns:
        The text with tool blocks removed, and the calls found

    Raises:
        ProviderError: MalformedResponse when a fenced block is not valid JSON
    """
    calls: list[ToolCall] = []
    fenced = _FENCED_TOOL.findall(text)
    if fenced:
        for block in fenced:
            try:
                calls.append(_call_from_json(json.loads(block)))
            except json.JSONDecodeError as e:
                raise ProviderError(
                    ProviderErrorKind.MALFORMED_RESPONSE, f"Invalid JSON in tool block: {e}"
                ) from e
        return _FENCED_TOOL.sub("", text).strip(), calls

    decoder = json.JSONDecoder()
    remaining = text
    match = _INLINE_TOOL.search(remaining)
    while match:
        try:
            data, end = decoder.raw_decode(remaining, match.start())
        except json.JSONDecodeError:
            break
        calls.append(_call_from_json(data))
        remaining = (remaining[: match.start()] + remaining[end:]).strip()
        match = _INLINE_TOOL.search(remaining)
    return remaining, calls


class LLMProvider(ABC):
    """
    Abstract base class for language-model backends.

    Callers depend only on ``generate``; request and response shapes of the
    backend stay inside the implementation.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend name for logs."""
        ...

    @property
    def supports_native_tools(self) -> bool:
        """Whether tools are passed as structured definitions.

        When False, the caller describes tools in the system prompt and the
        provider parses fenced tool blocks from the reply.
        """
        return True

    @abstractmethod
    async def generate(
        self,
        conversation: Conversation,
        tools: Sequence[ToolSchema],
    ) -> ProviderResponse:
        """
        Query the backend with the conversation so far.

        Args:
            conversation: Message history
            tools: Tools the model may call this turn

        Returns:
            FinalAnswer or ToolRequest

        Raises:
            ProviderError: Timeout, Unreachable or MalformedResponse
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Check whether the backend is reachable."""
        ...

    async def close(self) -> None:
        """Release network resources."""
        return None
