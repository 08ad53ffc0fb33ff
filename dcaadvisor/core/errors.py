"""Error taxonomy for the advisory agent.

Errors fall into three groups with different handling policies:

- Tool-local errors (``ToolError``, ``InvalidInput``, ``InsufficientData``,
  ``PriceSourceError``) are converted into failure ``ToolResult`` values and
  fed back to the model.
- Provider errors (``ProviderError``) are retried a bounded number of times.
- Loop errors (``LoopError``) are terminal for the turn and carry the partial
  trace.
"""

from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from dcaadvisor.agent.tools import ToolResult


class AdvisorError(Exception):
    """Base class for all dcaadvisor errors."""

    reason: str = "Error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.reason)
        self.message = message or self.reason

    def to_payload(self) -> dict[str, Any]:
        """Structured description used inside failure tool results."""
        return {"reason": self.reason, "message": self.message}


class InvalidInput(AdvisorError, ValueError):
    """A strategy function was called with unusable input."""

    reason = "InvalidInput"


class InsufficientData(AdvisorError):
    """Not enough data points to compute a metric."""

    reason = "InsufficientData"


class PriceSourceError(AdvisorError):
    """Base class for market data failures."""

    reason = "PriceSourceError"

    def __init__(self, symbol: str, message: str = ""):
        super().__init__(message or f"{self.reason}: {symbol}")
        self.symbol = symbol

    def to_payload(self) -> dict[str, Any]:
        return {**super().to_payload(), "symbol": self.symbol}


class PriceNotFound(PriceSourceError):
    """The price source does not know the symbol."""

    reason = "NotFound"


class PriceUnavailable(PriceSourceError):
    """The price source is unreachable or failed for this symbol."""

    reason = "Unavailable"


class DuplicateToolName(AdvisorError):
    """A tool with the same name is already registered."""

    reason = "DuplicateToolName"

    def __init__(self, name: str):
        super().__init__(f"Tool '{name}' is already registered")
        self.name = name


class ToolErrorKind(str, Enum):
    """Kinds of tool-level failures."""

    UNKNOWN_TOOL = "UnknownTool"
    INVALID_ARGUMENTS = "InvalidArguments"
    EXECUTION_FAILURE = "ExecutionFailure"


class ToolError(AdvisorError):
    """Failure resolving, validating or running a tool."""

    def __init__(self, kind: ToolErrorKind, message: str, reason: str | None = None):
        super().__init__(message)
        self.kind = kind
        self.reason = reason or kind.value

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.kind.value, "reason": self.reason, "message": self.message}


class ProviderErrorKind(str, Enum):
    """Kinds of language-model backend failures."""

    TIMEOUT = "Timeout"
    UNREACHABLE = "Unreachable"
    MALFORMED_RESPONSE = "MalformedResponse"


class ProviderError(AdvisorError):
    """The backend did not return a well-formed response in time."""

    def __init__(self, kind: ProviderErrorKind, message: str = ""):
        super().__init__(message or kind.value)
        self.kind = kind
        self.reason = kind.value


class LoopErrorKind(str, Enum):
    """Terminal reasoning loop failures."""

    MAX_ITERATIONS_EXCEEDED = "MaxIterationsExceeded"
    NO_PROGRESS = "NoProgress"
    PROVIDER_EXHAUSTED = "ProviderExhausted"


class LoopError(AdvisorError):
    """The reasoning loop stopped without a final answer."""

    def __init__(
        self,
        kind: LoopErrorKind,
        message: str,
        trace: "list[ToolResult] | None" = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.reason = kind.value
        self.trace = list(trace or [])
