"""Reasoning loop: alternates between the language model and tool execution.

One ``ReasoningLoop.run_turn`` call drives an explicit state machine::

    awaiting_user_input -> querying_provider -> executing_tools -> querying_provider ...
                                             -> done
                                             -> failed

Termination is guaranteed by three guards: the iteration cap, repeated-call
detection and the provider retry budget. When a guard trips, the turn fails
with the tool results gathered so far.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from dcaadvisor.agent.conversation import Conversation
from dcaadvisor.agent.providers.base import FinalAnswer, LLMProvider, ProviderResponse, ToolRequest
from dcaadvisor.agent.tools import ToolCall, ToolRegistry, ToolResult, ToolSchema, render_tool_prompt
from dcaadvisor.config import AgentSettings, get_settings
from dcaadvisor.core.errors import (
    LoopError,
    LoopErrorKind,
    ProviderError,
    ProviderErrorKind,
    ToolError,
    ToolErrorKind,
)
from dcaadvisor.core.logging import LogMessages, get_logger

logger = get_logger(__name__)


SYSTEM_PROMPT = """You are a cryptocurrency investment advisor focused on risk management \
and capital preservation.

Principles:
1. Diversify. Spread money across several assets instead of betting on one.
2. Dollar-cost average. Spread purchases over time instead of investing a lump sum.
3. Weight by risk. Put more into established assets (BTC, ETH) and less into speculative ones.

When someone wants to invest:
- Look up current prices with price_lookup.
- Build the allocation with dca_calculator, using the risk profile they describe.
- Use risk_analyzer to explain how volatile the assets are and what a bad drawdown looks like.
- Suggest a purchase cadence with dca_schedule.
- Always contrast the diversified plan with going all-in on a single asset.

Use portfolio_tracker to value holdings the user already has.
Base every number you quote on tool output. If a tool fails, say so and work with what you have.
You give educational analysis, not personalized financial advice, and you never execute trades."""


class LoopState(str, Enum):
    """States of one reasoning turn."""

    AWAITING_USER_INPUT = "awaiting_user_input"
    QUERYING_PROVIDER = "querying_provider"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"
    FAILED = "failed"


TRANSITIONS: dict[LoopState, frozenset[LoopState]] = {
    LoopState.AWAITING_USER_INPUT: frozenset({LoopState.QUERYING_PROVIDER}),
    LoopState.QUERYING_PROVIDER: frozenset(
        {LoopState.EXECUTING_TOOLS, LoopState.DONE, LoopState.FAILED}
    ),
    LoopState.EXECUTING_TOOLS: frozenset({LoopState.QUERYING_PROVIDER, LoopState.FAILED}),
    LoopState.DONE: frozenset(),
    LoopState.FAILED: frozenset(),
}


class InvalidTransition(RuntimeError):
    """A state change not allowed by the transition table."""

    def __init__(self, current: LoopState, target: LoopState):
        super().__init__(f"Cannot move from {current.value} to {target.value}")
        self.current = current
        self.target = target


class TurnStateMachine:
    """Tracks the state of one turn and rejects illegal transitions."""

    def __init__(self) -> None:
        self.state = LoopState.AWAITING_USER_INPUT
        self.history: list[LoopState] = [self.state]

    @property
    def is_terminal(self) -> bool:
        return not TRANSITIONS[self.state]

    def transition(self, target: LoopState) -> None:
        if target not in TRANSITIONS[self.state]:
            raise InvalidTransition(self.state, target)
        logger.debug("loop_transition", source=self.state.value, target=target.value)
        self.state = target
        self.history.append(target)


@dataclass
class TurnResult:
    """Outcome of one turn: the answer, or the error, plus every tool result."""

    final_text: str | None
    trace: list[ToolResult]
    state: LoopState
    error: LoopError | None = None
    iterations: int = 0
    states: list[LoopState] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state == LoopState.DONE

    def to_dict(self) -> dict[str, Any]:
        return {
            "final_text": self.final_text,
            "state": self.state.value,
            "iterations": self.iterations,
            "error": (
                {"reason": self.error.reason, "message": self.error.message} if self.error else None
            ),
            "trace": [r.to_dict() for r in self.trace],
        }


class ReasoningLoop:
    """
    Provider-agnostic tool-use loop.

    The registry is read-only while turns run, so one loop can serve
    concurrent turns as long as each turn has its own conversation.
    """

    def __init__(
        self,
        provider: LLMProvider,
        registry: ToolRegistry,
        settings: AgentSettings | None = None,
    ):
        """
        Initialize the loop.

        Args:
            provider: Language-model backend
            registry: Tools the model may call
            settings: Iteration, retry and timeout limits
        """
        self.provider = provider
        self.registry = registry
        self.settings = settings or get_settings().agent
        self._stats = {"turns": 0, "completed": 0, "failed": 0, "provider_retries": 0}

    def list_tools(self) -> list[ToolSchema]:
        """Tools currently advertised to the model."""
        return self.registry.list_schemas()

    def get_stats(self) -> dict[str, int]:
        return dict(self._stats)

    def build_system_prompt(self) -> str:
        """System prompt, with tool descriptions for backends without native tools."""
        prompt = self.settings.system_prompt or SYSTEM_PROMPT
        if self.settings.inject_tool_descriptions and not self.provider.supports_native_tools:
            prompt = f"{prompt}\n\n{render_tool_prompt(self.list_tools())}"
        return prompt

    async def _query_provider(
        self,
        conversation: Conversation,
        tools: list[ToolSchema],
    ) -> ProviderResponse:
        """Query the provider with a timeout, retrying provider errors.

        Raises:
            ProviderError: The last error once the retry budget is spent
        """
        timeout = self.settings.provider_timeout

        def log_retry(retry_state: Any) -> None:
            self._stats["provider_retries"] += 1
            error = retry_state.outcome.exception() if retry_state.outcome else None
            logger.warning(
                "provider_retry",
                provider=self.provider.name,
                attempt=retry_state.attempt_number,
                reason=getattr(error, "reason", None),
                error=str(error) if error else None,
            )

        @retry(
            retry=retry_if_exception_type(ProviderError),
            stop=stop_after_attempt(self.settings.max_retries + 1),
            wait=wait_exponential(
                multiplier=self.settings.retry_initial_backoff,
                max=self.settings.retry_max_backoff,
            )
            + wait_random(0, self.settings.retry_initial_backoff),
            before_sleep=log_retry,
            reraise=True,
        )
        async def _make_request() -> ProviderResponse:
            try:
                return await asyncio.wait_for(
                    self.provider.generate(conversation, tools), timeout=timeout
                )
            except TimeoutError as e:
                raise ProviderError(
                    ProviderErrorKind.TIMEOUT, f"{self.provider.name} did not answer within {timeout}s"
                ) from e

        return await _make_request()

    @staticmethod
    def _no_new_information(
        calls: tuple[ToolCall, ...],
        previous: dict[tuple[str, str], ToolResult],
        retried: set[tuple[str, str]],
    ) -> bool:
        """Whether a request repeats the previous cycle without gaining anything.

        Only (tool, arguments) fingerprints are compared, never payloads, which
        carry timestamps. A repeated success adds nothing; a repeated failure
        is allowed one retry per fingerprint.
        """
        if not previous or any(c.fingerprint not in previous for c in calls):
            return False
        return all(
            previous[c.fingerprint].success or c.fingerprint in retried for c in calls
        )

    @staticmethod
    def _skipped_result(call: ToolCall) -> ToolResult:
        """Failure result answering a call that was not executed."""
        return ToolResult.failure(
            call,
            ToolError(
                ToolErrorKind.EXECUTION_FAILURE,
                "Skipped: this call repeats an earlier one without new information",
                reason=LoopErrorKind.NO_PROGRESS.value,
            ),
        )

    async def run_turn(self, conversation: Conversation, user_message: str) -> TurnResult:
        """
        Process one user message to completion.

        Args:
            conversation: History owned by this turn's caller; messages are appended
            user_message: The new user message

        Returns:
            TurnResult; on failure ``error`` holds the reason and ``trace`` the
            tool results gathered before the failure
        """
        self._stats["turns"] += 1
        machine = TurnStateMachine()
        trace: list[ToolResult] = []
        iterations = 0
        previous_cycle: dict[tuple[str, str], ToolResult] = {}
        retried: set[tuple[str, str]] = set()

        if conversation.system_prompt is None:
            conversation.add_system(self.build_system_prompt())
        conversation.add_user(user_message)

        def fail(kind: LoopErrorKind, message: str) -> TurnResult:
            machine.transition(LoopState.FAILED)
            error = LoopError(kind, message, trace)
            self._stats["failed"] += 1
            logger.warning(LogMessages.turn_failed(kind.value, message).technical, iterations=iterations)
            return TurnResult(
                final_text=None,
                trace=list(trace),
                state=machine.state,
                error=error,
                iterations=iterations,
                states=list(machine.history),
            )

        while iterations < self.settings.max_iterations:
            machine.transition(LoopState.QUERYING_PROVIDER)
            iterations += 1

            try:
                response = await self._query_provider(conversation, self.list_tools())
            except ProviderError as e:
                return fail(
                    LoopErrorKind.PROVIDER_EXHAUSTED,
                    f"{self.provider.name} failed after {self.settings.max_retries} retries: "
                    f"{e.reason}: {e.message}",
                )

            if isinstance(response, FinalAnswer):
                conversation.add_assistant(response.text)
                machine.transition(LoopState.DONE)
                self._stats["completed"] += 1
                logger.info(
                    LogMessages.turn_completed(iterations, len(trace)).technical,
                    provider=self.provider.name,
                )
                return TurnResult(
                    final_text=response.text,
                    trace=list(trace),
                    state=machine.state,
                    iterations=iterations,
                    states=list(machine.history),
                )

            assert isinstance(response, ToolRequest)
            calls = response.calls
            conversation.add_assistant(response.text, calls)

            if self._no_new_information(calls, previous_cycle, retried):
                # Every tool call in the history needs a matching result
                for call in calls:
                    conversation.add_tool_result(self._skipped_result(call))
                return fail(
                    LoopErrorKind.NO_PROGRESS,
                    "The model repeated the same tool calls without new information: "
                    + ", ".join(c.tool_name for c in calls),
                )

            machine.transition(LoopState.EXECUTING_TOOLS)
            logger.debug(
                "executing_tools",
                iteration=iterations,
                tools=[c.tool_name for c in calls],
            )
            retried.update(
                c.fingerprint
                for c in calls
                if c.fingerprint in previous_cycle and not previous_cycle[c.fingerprint].success
            )
            results = await self.registry.execute_all(calls)
            for result in results:
                conversation.add_tool_result(result)
                trace.append(result)

            previous_cycle = {c.fingerprint: r for c, r in zip(calls, results, strict=True)}

        return fail(
            LoopErrorKind.MAX_ITERATIONS_EXCEEDED,
            f"No final answer after {self.settings.max_iterations} iterations",
        )

    async def run_turn_or_raise(self, conversation: Conversation, user_message: str) -> TurnResult:
        """Like ``run_turn`` but raise the ``LoopError`` of a failed turn."""
        result = await self.run_turn(conversation, user_message)
        if result.error is not None:
            raise result.error
        return result
