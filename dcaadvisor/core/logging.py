"""Structured logging configuration using structlog."""

import logging
import sys

import structlog
from structlog.types import Processor


def get_log_level(level: str) -> int:
    """Convert string log level to logging constant."""
    levels = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
    }
    return levels.get(level.upper(), logging.INFO)


def setup_logging(level: str = "INFO", json_format: bool = False) -> None:
    """
    Configure structlog for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: Whether to use JSON format (for a hosting server)
    """
    log_level = get_log_level(level)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format:
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=True,
            exception_formatter=structlog.dev.plain_traceback,
        )

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # Standard library logging for third-party libraries
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=log_level,
    )

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("ccxt").setLevel(logging.WARNING)
    logging.getLogger("anthropic").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """
    Get a logger instance.

    Args:
        name: Optional logger name (module name)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


class LogMessages:
    """
    Centralized log messages with beginner-friendly and technical versions.

    Usage:
        msg = LogMessages.turn_completed(iterations=2, tool_calls=1)
        logger.info(msg.technical)
        print(msg.simple)
    """

    class Message:
        """A log message with simple and technical versions."""

        def __init__(self, simple: str, technical: str):
            self.simple = simple
            self.technical = technical

        def __str__(self) -> str:
            return self.simple

    @staticmethod
    def turn_completed(iterations: int, tool_calls: int) -> "LogMessages.Message":
        """Reasoning turn finished with an answer."""
        return LogMessages.Message(
            simple=f"Answer ready after consulting {tool_calls} tool(s)",
            technical=f"Turn completed: iterations={iterations} tool_calls={tool_calls}",
        )

    @staticmethod
    def turn_failed(reason: str, detail: str) -> "LogMessages.Message":
        """Reasoning turn stopped without an answer."""
        return LogMessages.Message(
            simple=f"I couldn't finish this request: {detail}",
            technical=f"Turn failed: reason={reason} detail={detail}",
        )

    @staticmethod
    def allocation_ready(amount: float, profile: str, assets: int) -> "LogMessages.Message":
        """DCA allocation computed."""
        return LogMessages.Message(
            simple=f"Spread ${amount:,.2f} across {assets} assets ({profile} plan)",
            technical=f"Allocation computed: amount={amount} profile={profile} assets={assets}",
        )

    @staticmethod
    def price_unavailable(symbol: str, source: str) -> "LogMessages.Message":
        """Price source could not serve a symbol."""
        return LogMessages.Message(
            simple=f"Couldn't get a price for {symbol} right now",
            technical=f"Price unavailable: {symbol} source={source}",
        )
