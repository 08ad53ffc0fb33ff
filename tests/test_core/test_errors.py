"""Tests for the error taxonomy."""

from dcaadvisor.core.errors import (
    AdvisorError,
    InsufficientData,
    InvalidInput,
    LoopError,
    LoopErrorKind,
    PriceNotFound,
    PriceUnavailable,
    ProviderError,
    ProviderErrorKind,
    ToolError,
    ToolErrorKind,
)


class TestErrorPayloads:
    """Tests for structured error payloads."""

    def test_invalid_input_is_value_error(self):
        error = InvalidInput("bad amount")

        assert isinstance(error, ValueError)
        assert error.to_payload() == {"reason": "InvalidInput", "message": "bad amount"}

    def test_default_message(self):
        assert InsufficientData().message == "InsufficientData"

    def test_price_errors_carry_symbol(self):
        payload = PriceUnavailable("BTC").to_payload()

        assert payload["reason"] == "Unavailable"
        assert payload["symbol"] == "BTC"
        assert PriceNotFound("XYZ").reason == "NotFound"

    def test_tool_error_payload(self):
        error = ToolError(ToolErrorKind.EXECUTION_FAILURE, "took too long", reason="Timeout")

        assert error.to_payload() == {
            "error": "ExecutionFailure",
            "reason": "Timeout",
            "message": "took too long",
        }

    def test_tool_error_reason_defaults_to_kind(self):
        assert ToolError(ToolErrorKind.UNKNOWN_TOOL, "nope").reason == "UnknownTool"


class TestAgentErrors:
    """Tests for provider and loop errors."""

    def test_provider_error_reason(self):
        error = ProviderError(ProviderErrorKind.TIMEOUT)

        assert error.reason == "Timeout"
        assert isinstance(error, AdvisorError)

    def test_loop_error_keeps_trace_copy(self):
        trace = ["a"]
        error = LoopError(LoopErrorKind.NO_PROGRESS, "stuck", trace=trace)
        trace.append("b")

        assert error.reason == "NoProgress"
        assert error.trace == ["a"]
