"""Conversation state for a single advisory request."""

from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum

from dcaadvisor.agent.tools import ToolCall, ToolResult


class Role(str, Enum):
    """Author of a message."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass(frozen=True)
class Message:
    """A single message in the conversation."""

    role: Role
    content: str
    tool_calls: tuple[ToolCall, ...] = ()
    tool_call_id: str | None = None
    name: str | None = None  # Tool name for tool messages


class Conversation:
    """
    Ordered message history owned by one reasoning loop.

    A conversation is never shared between concurrent requests; messages
    are only ever appended.
    """

    def __init__(self, system_prompt: str | None = None):
        self._messages: list[Message] = []
        if system_prompt:
            self.add_system(system_prompt)

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(self._messages)

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    @property
    def system_prompt(self) -> str | None:
        """Combined content of all system messages."""
        parts = [m.content for m in self._messages if m.role == Role.SYSTEM]
        return "\n\n".join(parts) if parts else None

    @property
    def last(self) -> Message | None:
        return self._messages[-1] if self._messages else None

    def add_system(self, content: str) -> Message:
        return self._append(Message(role=Role.SYSTEM, content=content))

    def add_user(self, content: str) -> Message:
        return self._append(Message(role=Role.USER, content=content))

    def add_assistant(self, content: str, tool_calls: tuple[ToolCall, ...] = ()) -> Message:
        return self._append(Message(role=Role.ASSISTANT, content=content, tool_calls=tuple(tool_calls)))

    def add_tool_result(self, result: ToolResult) -> Message:
        return self._append(
            Message(
                role=Role.TOOL,
                content=result.to_content(),
                tool_call_id=result.call_id,
                name=result.tool_name,
            )
        )

    def _append(self, message: Message) -> Message:
        self._messages.append(message)
        return message

    def to_dicts(self) -> list[dict[str, str]]:
        """Plain ``{role, content}`` view for logging and simple backends."""
        return [{"role": m.role.value, "content": m.content} for m in self._messages]
