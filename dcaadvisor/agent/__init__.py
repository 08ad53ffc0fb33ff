"""Agent - reasoning loop, tools and language-model providers."""

from dcaadvisor.agent.advisor_tools import register_advisor_tools
from dcaadvisor.agent.conversation import Conversation, Message, Role
from dcaadvisor.agent.reasoning import LoopState, ReasoningLoop, TurnResult
from dcaadvisor.agent.tools import (
    BaseTool,
    ToolCall,
    ToolCategory,
    ToolParameter,
    ToolRegistry,
    ToolResult,
    ToolSchema,
    ToolStatus,
    create_tool,
)

__all__ = [
    "BaseTool",
    "Conversation",
    "LoopState",
    "Message",
    "ReasoningLoop",
    "Role",
    "ToolCall",
    "ToolCategory",
    "ToolParameter",
    "ToolRegistry",
    "ToolResult",
    "ToolSchema",
    "ToolStatus",
    "TurnResult",
    "create_tool",
    "register_advisor_tools",
]
