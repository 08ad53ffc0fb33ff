"""Tests for the agent tool framework."""

import asyncio
import json

import pytest

from dcaadvisor.agent.tools import (
    BaseTool,
    ToolCall,
    ToolCategory,
    ToolParameter,
    ToolRegistry,
    ToolResult,
    ToolStatus,
    create_tool,
    render_tool_prompt,
)
from dcaadvisor.core.errors import DuplicateToolName, InsufficientData, ToolError


def make_echo_tool(name: str = "echo", delay: float = 0.0):
    """Build a tool that echoes its arguments after an optional delay."""

    @create_tool(
        name=name,
        description="Echo the message back",
        category=ToolCategory.ANALYSIS,
        parameters=[
            ToolParameter("message", "string", "Text to echo"),
            ToolParameter("times", "integer", "Repetitions", required=False, default=1),
        ],
    )
    async def echo(message: str, times: int = 1) -> dict:
        if delay:
            await asyncio.sleep(delay)
        return {"echo": message * times}

    return echo


class TestToolParameter:
    """Tests for ToolParameter coercion."""

    def test_number_from_string(self):
        """Test numeric strings are accepted for number parameters."""
        param = ToolParameter("amount", "number", "Amount")

        assert param.coerce("$1,000") == 1000.0
        assert param.coerce(5) == 5

    def test_number_rejects_bool(self):
        """Test booleans are not numbers."""
        with pytest.raises(ToolError):
            ToolParameter("amount", "number", "Amount").coerce(True)

    def test_integer_from_float_and_string(self):
        """Test integral floats and digit strings become integers."""
        param = ToolParameter("days", "integer", "Days")

        assert param.coerce(30.0) == 30
        assert param.coerce("30") == 30
        with pytest.raises(ToolError):
            param.coerce(30.5)

    def test_boolean_from_string(self):
        param = ToolParameter("flag", "boolean", "Flag")

        assert param.coerce("yes") is True
        assert param.coerce("false") is False
        with pytest.raises(ToolError):
            param.coerce("maybe")

    def test_array_from_comma_string(self):
        """Test comma separated text is split into a list."""
        param = ToolParameter("symbols", "array", "Symbols")

        assert param.coerce("BTC, ETH,") == ["BTC", "ETH"]

    def test_enum_enforced(self):
        param = ToolParameter("profile", "string", "Profile", enum=["a", "b"])

        with pytest.raises(ToolError) as exc_info:
            param.coerce("c")
        assert exc_info.value.reason == "InvalidArguments"

    def test_json_schema(self):
        param = ToolParameter("days", "integer", "Days", required=False, default=30)

        assert param.to_json_schema() == {"type": "integer", "description": "Days", "default": 30}


class TestToolSchema:
    """Tests for schema export."""

    def test_anthropic_format(self):
        """Test schema export for the Anthropic tool API."""
        schema = make_echo_tool().schema.to_anthropic()

        assert schema["name"] == "echo"
        assert schema["input_schema"]["required"] == ["message"]
        assert "times" in schema["input_schema"]["properties"]

    def test_openai_format(self):
        """Test schema export in function-calling format."""
        schema = make_echo_tool().schema.to_openai()

        assert schema["type"] == "function"
        assert schema["function"]["name"] == "echo"

    def test_tool_prompt(self):
        """Test the plain-text tool description lists tools and the call format."""
        prompt = render_tool_prompt([make_echo_tool().schema])

        assert "### echo" in prompt
        assert "message (string, required)" in prompt
        assert "```tool" in prompt


class TestToolResult:
    """Tests for ToolResult."""

    def test_success_content(self):
        """Test successful results serialize their data."""
        result = ToolResult("call_1", "echo", ToolStatus.SUCCESS, {"echo": "hi"})

        assert result.success
        assert result.reason is None
        assert json.loads(result.to_content()) == {"status": "success", "data": {"echo": "hi"}}

    def test_failure_reason(self):
        """Test failures expose the structured reason."""
        result = ToolResult(
            "call_1",
            "price_lookup",
            ToolStatus.FAILURE,
            {"error": "ExecutionFailure", "reason": "Unavailable", "message": "down"},
        )

        assert not result.success
        assert result.reason == "Unavailable"
        assert json.loads(result.to_content())["error"]["reason"] == "Unavailable"

    def test_call_ids_unique(self):
        assert ToolCall("echo").call_id != ToolCall("echo").call_id

    def test_fingerprint_ignores_call_id_and_key_order(self):
        first = ToolCall("echo", {"a": 1, "b": 2}, call_id="x")
        second = ToolCall("echo", {"b": 2, "a": 1}, call_id="y")

        assert first.fingerprint == second.fingerprint


class TestBaseTool:
    """Tests for BaseTool argument validation."""

    def test_defaults_filled(self):
        """Test optional parameters receive their defaults."""
        assert make_echo_tool().validate_arguments({"message": "hi"}) == {"message": "hi", "times": 1}

    def test_missing_required(self):
        with pytest.raises(ToolError, match="Missing required parameter: message"):
            make_echo_tool().validate_arguments({})

    def test_unknown_argument(self):
        with pytest.raises(ToolError, match="Unknown parameter"):
            make_echo_tool().validate_arguments({"message": "hi", "volume": 3})

    def test_none_treated_as_absent(self):
        assert make_echo_tool().validate_arguments({"message": "hi", "times": None})["times"] == 1

    def test_concrete_tool(self):
        """Test a hand-written subclass exposes its schema."""

        class StaticTool(BaseTool):
            @property
            def name(self) -> str:
                return "static"

            @property
            def description(self) -> str:
                return "Static answer"

            @property
            def category(self) -> ToolCategory:
                return ToolCategory.MARKET_DATA

            @property
            def parameters(self) -> list[ToolParameter]:
                return []

            async def execute(self, **kwargs):
                return 42

        tool = StaticTool()

        assert tool.schema.category == ToolCategory.MARKET_DATA
        assert tool.has_side_effects is False
        assert tool.timeout is None


class TestToolRegistry:
    """Tests for ToolRegistry."""

    def test_register_and_list(self):
        registry = ToolRegistry()
        registry.register(make_echo_tool())

        assert "echo" in registry
        assert registry.tool_count == 1
        assert registry.list_tools() == {"analysis": ["echo"]}
        assert [s.name for s in registry.list_schemas()] == ["echo"]
        assert registry.anthropic_schemas()[0]["name"] == "echo"

    def test_duplicate_name_rejected(self):
        """Test registering the same name twice fails."""
        registry = ToolRegistry()
        registry.register(make_echo_tool())

        with pytest.raises(DuplicateToolName):
            registry.register(make_echo_tool())

    @pytest.mark.asyncio
    async def test_execute_success(self):
        registry = ToolRegistry()
        registry.register(make_echo_tool())

        result = await registry.execute(ToolCall("echo", {"message": "ab", "times": "2"}, call_id="c1"))

        assert result.success
        assert result.call_id == "c1"
        assert result.payload == {"echo": "abab"}
        assert result.duration_ms >= 0

    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        """Test unknown tools produce a failure result instead of raising."""
        result = await ToolRegistry().execute(ToolCall("missing"))

        assert result.status == ToolStatus.FAILURE
        assert result.payload["error"] == "UnknownTool"

    @pytest.mark.asyncio
    async def test_invalid_arguments(self):
        registry = ToolRegistry()
        registry.register(make_echo_tool())

        result = await registry.execute(ToolCall("echo", {"times": 2}))

        assert result.payload["error"] == "InvalidArguments"
        assert registry.get_stats()["failures"] == 1

    @pytest.mark.asyncio
    async def test_timeout(self):
        """Test slow tools fail with a Timeout reason."""
        registry = ToolRegistry(default_timeout=0.05)
        registry.register(make_echo_tool(delay=1.0))

        result = await registry.execute(ToolCall("echo", {"message": "hi"}))

        assert result.payload == {
            "error": "ExecutionFailure",
            "reason": "Timeout",
            "message": "Tool 'echo' timed out after 0.05s",
        }
        assert registry.get_stats()["timeouts"] == 1

    @pytest.mark.asyncio
    async def test_domain_error_becomes_failure(self):
        """Test domain errors keep their reason in the payload."""

        @create_tool("thin", "Needs data", ToolCategory.ANALYSIS, [])
        async def thin() -> dict:
            raise InsufficientData("only one point")

        registry = ToolRegistry()
        registry.register(thin)

        result = await registry.execute(ToolCall("thin"))

        assert result.payload["error"] == "ExecutionFailure"
        assert result.reason == "InsufficientData"
        assert result.payload["message"] == "only one point"

    @pytest.mark.asyncio
    async def test_unexpected_exception_captured(self):
        """Test a crashing tool does not propagate the exception."""

        @create_tool("crash", "Always crashes", ToolCategory.ANALYSIS, [])
        async def crash() -> dict:
            raise KeyError("boom")

        registry = ToolRegistry()
        registry.register(crash)

        result = await registry.execute(ToolCall("crash"))

        assert result.reason == "KeyError"

    @pytest.mark.asyncio
    async def test_execute_all_keeps_request_order(self):
        """Test concurrent results come back in request order."""
        registry = ToolRegistry()
        registry.register(make_echo_tool("slow", delay=0.05))
        registry.register(make_echo_tool("fast"))

        calls = [
            ToolCall("slow", {"message": "s"}, call_id="a"),
            ToolCall("fast", {"message": "f"}, call_id="b"),
            ToolCall("missing", {}, call_id="c"),
        ]
        results = await registry.execute_all(calls)

        assert [r.call_id for r in results] == ["a", "b", "c"]
        assert [r.success for r in results] == [True, True, False]

    @pytest.mark.asyncio
    async def test_execute_all_repeated_ids(self):
        """Test calls sharing an id each get their own result."""
        registry = ToolRegistry()
        registry.register(make_echo_tool())

        results = await registry.execute_all(
            [
                ToolCall("echo", {"message": "x"}, call_id="same"),
                ToolCall("echo", {"message": "y"}, call_id="same"),
            ]
        )

        assert [r.payload["echo"] for r in results] == ["x", "y"]

    @pytest.mark.asyncio
    async def test_execute_all_runs_concurrently(self):
        registry = ToolRegistry()
        registry.register(make_echo_tool(delay=0.2))

        loop = asyncio.get_running_loop()
        started = loop.time()
        await registry.execute_all([ToolCall("echo", {"message": str(i)}) for i in range(5)])

        assert loop.time() - started < 0.8

    @pytest.mark.asyncio
    async def test_execute_all_empty(self):
        assert await ToolRegistry().execute_all([]) == []
