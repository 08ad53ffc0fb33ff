"""Agent tool framework.

Tools wrap strategy functions and market data lookups behind a uniform
contract with a declared schema. The registry resolves a requested tool by
name, validates arguments against the schema and turns every failure into a
``ToolResult`` so the reasoning loop can narrate it back to the model.
"""

import asyncio
import json
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from dcaadvisor.core.errors import AdvisorError, DuplicateToolName, ToolError, ToolErrorKind
from dcaadvisor.core.logging import get_logger

logger = get_logger(__name__)


class ToolCategory(str, Enum):
    """Categories of agent tools."""

    MARKET_DATA = "market_data"  # Read-only price lookups
    ANALYSIS = "analysis"  # Risk and portfolio computation
    PLANNING = "planning"  # DCA allocation and scheduling


_TRUE_STRINGS = {"true", "yes", "1"}
_FALSE_STRINGS = {"false", "no", "0"}


@dataclass(frozen=True)
class ToolParameter:
    """Definition of a tool parameter."""

    name: str
    type: str  # "string", "number", "integer", "boolean", "array", "object"
    description: str
    required: bool = True
    enum: list[str] | None = None
    default: Any = None
    items: dict[str, Any] | None = None  # For array types

    def _invalid(self, expected: str, value: Any) -> ToolError:
        return ToolError(
            ToolErrorKind.INVALID_ARGUMENTS,
            f"Parameter {self.name} must be {expected}, got {value!r}",
        )

    def coerce(self, value: Any) -> Any:
        """Validate a supplied value, converting lenient model output.

        Models often send numbers as strings or lists as comma separated
        text. Those are converted; anything else of the wrong type raises.

        Raises:
            ToolError: InvalidArguments on type or enum mismatch
        """
        if self.type == "string":
            if not isinstance(value, str):
                raise self._invalid("a string", value)
        elif self.type == "number":
            if isinstance(value, bool):
                raise self._invalid("a number", value)
            if isinstance(value, str):
                try:
                    value = float(value.strip().replace(",", "").lstrip("$"))
                except ValueError as e:
                    raise self._invalid("a number", value) from e
            if not isinstance(value, int | float):
                raise self._invalid("a number", value)
        elif self.type == "integer":
            if isinstance(value, bool):
                raise self._invalid("an integer", value)
            if isinstance(value, float) and value.is_integer():
                value = int(value)
            elif isinstance(value, str) and value.strip().lstrip("-").isdigit():
                value = int(value.strip())
            if not isinstance(value, int):
                raise self._invalid("an integer", value)
        elif self.type == "boolean":
            if isinstance(value, str) and value.strip().lower() in _TRUE_STRINGS | _FALSE_STRINGS:
                value = value.strip().lower() in _TRUE_STRINGS
            if not isinstance(value, bool):
                raise self._invalid("a boolean", value)
        elif self.type == "array":
            if isinstance(value, str):
                value = [part.strip() for part in value.split(",") if part.strip()]
            if not isinstance(value, list):
                raise self._invalid("an array", value)
        elif self.type == "object":
            if not isinstance(value, dict):
                raise self._invalid("an object", value)

        if self.enum and value not in self.enum:
            raise ToolError(
                ToolErrorKind.INVALID_ARGUMENTS,
                f"Parameter {self.name} must be one of: {self.enum}",
            )
        return value

    def to_json_schema(self) -> dict[str, Any]:
        prop: dict[str, Any] = {"type": self.type, "description": self.description}
        if self.enum:
            prop["enum"] = self.enum
        if self.items:
            prop["items"] = self.items
        if self.default is not None:
            prop["default"] = self.default
        return prop


@dataclass(frozen=True)
class ToolSchema:
    """Declared interface of a tool, advertised to the language model."""

    name: str
    description: str
    parameters: tuple[ToolParameter, ...] = ()
    category: ToolCategory | None = None
    has_side_effects: bool = False

    def input_schema(self) -> dict[str, Any]:
        """JSON schema of the tool arguments."""
        return {
            "type": "object",
            "properties": {p.name: p.to_json_schema() for p in self.parameters},
            "required": [p.name for p in self.parameters if p.required],
        }

    def to_anthropic(self) -> dict[str, Any]:
        """Anthropic Tool Use API format."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema(),
        }

    def to_openai(self) -> dict[str, Any]:
        """OpenAI function format, also accepted by Ollama."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.input_schema(),
            },
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "category": self.category.value if self.category else None,
            "has_side_effects": self.has_side_effects,
            "parameters": [
                {
                    "name": p.name,
                    "type": p.type,
                    "required": p.required,
                    "description": p.description,
                }
                for p in self.parameters
            ],
        }


def new_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation requested by the model."""

    tool_name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    call_id: str = field(default_factory=new_call_id)

    @property
    def fingerprint(self) -> tuple[str, str]:
        """Identity of the request ignoring the call id."""
        return self.tool_name, json.dumps(self.arguments, sort_keys=True, default=str)


class ToolStatus(str, Enum):
    """Outcome of a tool execution."""

    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class ToolResult:
    """Result of a tool execution, immutable once produced."""

    call_id: str
    tool_name: str
    status: ToolStatus
    payload: Any = None
    duration_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.status == ToolStatus.SUCCESS

    @property
    def reason(self) -> str | None:
        """Failure reason, if any."""
        if self.success or not isinstance(self.payload, dict):
            return None
        return self.payload.get("reason")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logs and traces."""
        return {
            "call_id": self.call_id,
            "tool": self.tool_name,
            "status": self.status.value,
            "payload": self.payload,
            "duration_ms": round(self.duration_ms, 2),
        }

    def to_content(self) -> str:
        """Serialize the outcome as the content of a tool message."""
        body = {"status": self.status.value}
        if self.success:
            body["data"] = self.payload
        else:
            body["error"] = self.payload
        return json.dumps(body, default=str)

    @classmethod
    def failure(cls, call: ToolCall, error: ToolError, duration_ms: float = 0.0) -> "ToolResult":
        return cls(
            call_id=call.call_id,
            tool_name=call.tool_name,
            status=ToolStatus.FAILURE,
            payload=error.to_payload(),
            duration_ms=duration_ms,
        )


class BaseTool(ABC):
    """Abstract base class for all agent tools.

    Tools must implement:
    - name: Unique identifier for the tool
    - description: What the tool does (for the model)
    - category: Tool category
    - parameters: List of ToolParameter definitions
    - execute(): Async method returning a JSON-serializable payload, or raising
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique name of the tool."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        """Description of what the tool does."""
        ...

    @property
    @abstractmethod
    def category(self) -> ToolCategory:
        """Category of the tool."""
        ...

    @property
    @abstractmethod
    def parameters(self) -> list[ToolParameter]:
        """List of parameters the tool accepts."""
        ...

    @property
    def has_side_effects(self) -> bool:
        """Whether running the tool changes anything outside the turn."""
        return False

    @property
    def timeout(self) -> float | None:
        """Per-tool timeout override in seconds (registry default when None)."""
        return None

    @property
    def schema(self) -> ToolSchema:
        return ToolSchema(
            name=self.name,
            description=self.description,
            parameters=tuple(self.parameters),
            category=self.category,
            has_side_effects=self.has_side_effects,
        )

    @abstractmethod
    async def execute(self, **kwargs: Any) -> Any:
        """Execute the tool with the given parameters.

        Args:
            **kwargs: Validated tool parameters as keyword arguments

        Returns:
            JSON-serializable payload

        Raises:
            AdvisorError: Any failure; the registry converts it to a ToolResult
        """
        ...

    def validate_arguments(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Check arguments against the declared parameters.

        Returns:
            Arguments with lenient values converted and defaults filled in

        Raises:
            ToolError: InvalidArguments on a missing, unknown or mistyped argument
        """
        declared = {p.name: p for p in self.parameters}
        unknown = sorted(set(arguments) - set(declared))
        if unknown:
            raise ToolError(
                ToolErrorKind.INVALID_ARGUMENTS,
                f"Unknown parameter(s) for {self.name}: {', '.join(unknown)}",
            )

        validated: dict[str, Any] = {}
        for param in self.parameters:
            if param.name in arguments and arguments[param.name] is not None:
                validated[param.name] = param.coerce(arguments[param.name])
            elif param.required:
                raise ToolError(
                    ToolErrorKind.INVALID_ARGUMENTS,
                    f"Missing required parameter: {param.name}",
                )
            elif param.default is not None:
                validated[param.name] = param.default
        return validated


class ToolRegistry:
    """Registry and executor for agent tools.

    Populated once at startup and read-only afterwards, so concurrent
    executions need no locking.
    """

    def __init__(self, default_timeout: float = 15.0) -> None:
        """Initialize the registry.

        Args:
            default_timeout: Per-execution timeout in seconds for tools without their own
        """
        self._tools: dict[str, BaseTool] = {}
        self.default_timeout = default_timeout
        self._stats = {"executions": 0, "failures": 0, "timeouts": 0}

    def register(self, tool: BaseTool) -> None:
        """Register a tool.

        Raises:
            DuplicateToolName: If a tool with the same name is already registered
        """
        if tool.name in self._tools:
            raise DuplicateToolName(tool.name)

        self._tools[tool.name] = tool
        logger.debug("tool_registered", name=tool.name, category=tool.category.value)

    def get_tool(self, name: str) -> BaseTool | None:
        return self._tools.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def list_schemas(self) -> list[ToolSchema]:
        """All registered tool schemas, in registration order."""
        return [tool.schema for tool in self._tools.values()]

    def list_tools(self) -> dict[str, list[str]]:
        """Tool names grouped by category."""
        grouped: dict[str, list[str]] = {}
        for tool in self._tools.values():
            grouped.setdefault(tool.category.value, []).append(tool.name)
        return grouped

    @property
    def tool_count(self) -> int:
        return len(self._tools)

    def get_stats(self) -> dict[str, int]:
        return dict(self._stats)

    async def execute(self, call: ToolCall) -> ToolResult:
        """Execute a tool call; failures are returned, never raised.

        Args:
            call: The requested invocation

        Returns:
            ToolResult with the payload or a structured error description
        """
        started = time.perf_counter()
        self._stats["executions"] += 1

        def elapsed() -> float:
            return (time.perf_counter() - started) * 1000

        tool = self.get_tool(call.tool_name)
        if tool is None:
            self._stats["failures"] += 1
            logger.warning("tool_unknown", tool=call.tool_name, call_id=call.call_id)
            return ToolResult.failure(
                call,
                ToolError(ToolErrorKind.UNKNOWN_TOOL, f"Tool '{call.tool_name}' not found"),
            )

        try:
            arguments = tool.validate_arguments(call.arguments)
        except ToolError as e:
            self._stats["failures"] += 1
            logger.warning("tool_invalid_arguments", tool=call.tool_name, error=e.message)
            return ToolResult.failure(call, e, elapsed())

        timeout = tool.timeout or self.default_timeout
        try:
            payload = await asyncio.wait_for(tool.execute(**arguments), timeout=timeout)
        except TimeoutError:
            self._stats["failures"] += 1
            self._stats["timeouts"] += 1
            logger.warning("tool_timeout", tool=call.tool_name, timeout=timeout)
            error = ToolError(
                ToolErrorKind.EXECUTION_FAILURE,
                f"Tool '{call.tool_name}' timed out after {timeout}s",
                reason="Timeout",
            )
            return ToolResult.failure(call, error, elapsed())
        except ToolError as e:
            self._stats["failures"] += 1
            logger.warning("tool_execution_failed", tool=call.tool_name, reason=e.reason)
            return ToolResult.failure(call, e, elapsed())
        except AdvisorError as e:
            self._stats["failures"] += 1
            logger.warning("tool_execution_failed", tool=call.tool_name, reason=e.reason, error=e.message)
            return ToolResult(
                call_id=call.call_id,
                tool_name=call.tool_name,
                status=ToolStatus.FAILURE,
                payload={"error": ToolErrorKind.EXECUTION_FAILURE.value, **e.to_payload()},
                duration_ms=elapsed(),
            )
        except Exception as e:
            self._stats["failures"] += 1
            logger.exception("tool_execution_crashed", tool=call.tool_name)
            error = ToolError(
                ToolErrorKind.EXECUTION_FAILURE,
                f"Tool execution failed: {e}",
                reason=type(e).__name__,
            )
            return ToolResult.failure(call, error, elapsed())

        logger.info(
            "tool_executed",
            tool=call.tool_name,
            call_id=call.call_id,
            duration_ms=round(elapsed(), 2),
        )
        return ToolResult(
            call_id=call.call_id,
            tool_name=call.tool_name,
            status=ToolStatus.SUCCESS,
            payload=payload,
            duration_ms=elapsed(),
        )

    async def execute_all(self, calls: Sequence[ToolCall]) -> list[ToolResult]:
        """Execute independent calls concurrently.

        Results are returned in request order regardless of completion order,
        one per call even when call ids repeat.
        """
        if not calls:
            return []
        return list(await asyncio.gather(*(self.execute(call) for call in calls)))

    def anthropic_schemas(self) -> list[dict[str, Any]]:
        return [schema.to_anthropic() for schema in self.list_schemas()]

    def openai_schemas(self) -> list[dict[str, Any]]:
        return [schema.to_openai() for schema in self.list_schemas()]


def render_tool_prompt(schemas: Sequence[ToolSchema]) -> str:
    """Describe tools and the fenced call format for models without native tool calls."""
    lines = ["## Available Tools", ""]
    for schema in schemas:
        lines.append(f"### {schema.name}")
        lines.append(schema.description)
        if schema.parameters:
            lines.append("Parameters:")
            for p in schema.parameters:
                flag = "required" if p.required else "optional"
                lines.append(f"- {p.name} ({p.type}, {flag}): {p.description}")
        lines.append("")

    lines.extend(
        [
            "## How to Call a Tool",
            "",
            "Reply with exactly one fenced block per call:",
            "",
            "```tool",
            '{"tool": "tool_name", "arguments": {"param": "value"}}',
            "```",
            "",
            "Call tools only when you need data. When you have what you need, answer in plain text.",
        ]
    )
    return "\n".join(lines)


def create_tool(
    name: str,
    description: str,
    category: ToolCategory,
    parameters: list[ToolParameter],
    has_side_effects: bool = False,
):
    """Decorator to create a tool from an async function.

    Example:
        @create_tool(
            name="get_price",
            description="Get current price for a symbol",
            category=ToolCategory.MARKET_DATA,
            parameters=[
                ToolParameter("symbol", "string", "Asset symbol", required=True)
            ]
        )
        async def get_price(symbol: str) -> dict:
            return {"price": float(await source.get_price(symbol))}
    """

    def decorator(func):
        class FunctionalTool(BaseTool):
            @property
            def name(self) -> str:
                return name

            @property
            def description(self) -> str:
                return description

            @property
            def category(self) -> ToolCategory:
                return category

            @property
            def parameters(self) -> list[ToolParameter]:
                return parameters

            @property
            def has_side_effects(self) -> bool:
                return has_side_effects

            async def execute(self, **kwargs: Any) -> Any:
                return await func(**kwargs)

        return FunctionalTool()

    return decorator
