"""dcaadvisor command line entrypoint."""

import argparse
import asyncio
import json
import sys

from dcaadvisor import __version__
from dcaadvisor.agent.advisor_tools import register_advisor_tools
from dcaadvisor.agent.conversation import Conversation
from dcaadvisor.agent.providers import LLMProvider, create_provider
from dcaadvisor.agent.reasoning import ReasoningLoop, TurnResult
from dcaadvisor.agent.tools import ToolRegistry
from dcaadvisor.config import get_settings
from dcaadvisor.core.logging import LogMessages, get_logger, setup_logging
from dcaadvisor.market import PriceSource, create_price_source

logger = get_logger(__name__)


class DCAAdvisor:
    """Wires price source, tools, provider and reasoning loop together."""

    def __init__(
        self,
        provider: LLMProvider | None = None,
        source: PriceSource | None = None,
    ):
        self.settings = get_settings()
        self.source = source or create_price_source()
        self.provider = provider or create_provider()
        self.registry = register_advisor_tools(
            ToolRegistry(default_timeout=self.settings.agent.tool_timeout),
            self.source,
            self.settings,
        )
        self.loop = ReasoningLoop(self.provider, self.registry, self.settings.agent)

    async def ask(self, message: str, conversation: Conversation | None = None) -> TurnResult:
        """Run one turn on a new (or the given) conversation."""
        return await self.loop.run_turn(conversation or Conversation(), message)

    async def health(self) -> dict[str, bool]:
        provider_ok, source_ok = await asyncio.gather(
            self.provider.health_check(), self.source.health_check()
        )
        return {"provider": provider_ok, "price_source": source_ok}

    async def shutdown(self) -> None:
        await self.provider.close()
        await self.source.close()


def _print_result(result: TurnResult, show_trace: bool) -> None:
    if show_trace:
        for entry in result.trace:
            print(f"  [{entry.status.value}] {entry.tool_name} ({entry.duration_ms:.0f} ms)")
        print()

    if result.succeeded:
        print(result.final_text)
    else:
        assert result.error is not None
        print(LogMessages.turn_failed(result.error.reason, result.error.message).simple)


async def _ask(message: str, show_trace: bool, as_json: bool) -> int:
    app = DCAAdvisor()
    try:
        result = await app.ask(message)
    finally:
        await app.shutdown()

    if as_json:
        print(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        _print_result(result, show_trace)
    return 0 if result.succeeded else 1


async def _chat(show_trace: bool) -> int:
    app = DCAAdvisor()
    conversation = Conversation()
    print(f"dcaadvisor {__version__} - type 'exit' to quit")
    try:
        while True:
            try:
                message = input("\n> ").strip()
            except EOFError:
                break
            if message.lower() in {"exit", "quit"}:
                break
            if not message:
                continue
            result = await app.ask(message, conversation)
            print()
            _print_result(result, show_trace)
    finally:
        await app.shutdown()
    return 0


async def _tools(as_json: bool) -> int:
    app = DCAAdvisor()
    try:
        schemas = app.loop.list_tools()
    finally:
        await app.shutdown()

    if as_json:
        print(json.dumps([s.to_dict() for s in schemas], indent=2))
        return 0
    for schema in schemas:
        params = ", ".join(f"{p.name}{'' if p.required else '?'}" for p in schema.parameters)
        print(f"{schema.name}({params})")
        print(f"    {schema.description}")
    return 0


async def _health() -> int:
    app = DCAAdvisor()
    try:
        status = await app.health()
    finally:
        await app.shutdown()
    for component, ok in status.items():
        print(f"{component}: {'ok' if ok else 'unreachable'}")
    return 0 if all(status.values()) else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dcaadvisor",
        description="Crypto dollar-cost averaging advisor agent",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    ask = sub.add_parser("ask", help="Ask a single question")
    ask.add_argument("message", help="Question for the advisor")
    ask.add_argument("--trace", action="store_true", help="Show tool calls")
    ask.add_argument("--json", action="store_true", help="Print the full turn result as JSON")

    chat = sub.add_parser("chat", help="Interactive multi-turn session")
    chat.add_argument("--trace", action="store_true", help="Show tool calls")

    tools = sub.add_parser("tools", help="List available tools")
    tools.add_argument("--json", action="store_true", help="Print schemas as JSON")

    sub.add_parser("health", help="Check provider and price source connectivity")
    return parser


def run(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    settings = get_settings()
    setup_logging(level=settings.system.log_level, json_format=settings.system.json_logs)

    if args.command == "ask":
        coro = _ask(args.message, args.trace, args.json)
    elif args.command == "chat":
        coro = _chat(args.trace)
    elif args.command == "tools":
        coro = _tools(args.json)
    else:
        coro = _health()

    try:
        code = asyncio.run(coro)
    except KeyboardInterrupt:
        code = 130
    except ValueError as e:
        logger.error("startup_failed", error=str(e))
        code = 2
    sys.exit(code)


if __name__ == "__main__":
    run()
