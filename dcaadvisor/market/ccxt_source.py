"""CCXT async price source for live exchange data."""

from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, TypeVar

import ccxt.async_support as ccxt
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from dcaadvisor.core.errors import InvalidInput, PriceNotFound, PriceUnavailable
from dcaadvisor.core.logging import LogMessages, get_logger
from dcaadvisor.core.models import PricePoint, Quote
from dcaadvisor.market.source import PriceSource

logger = get_logger(__name__)

T = TypeVar("T")


def _decimal_or_none(value: Any) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value))


class CcxtPriceSource(PriceSource):
    """
    Price source backed by a public ccxt exchange.

    Symbols are quoted against ``quote_currency`` (``BTC`` becomes
    ``BTC/USDT``). Network errors are retried; exhausted retries and exchange
    errors surface as ``PriceUnavailable``, unknown markets as ``PriceNotFound``.
    """

    def __init__(
        self,
        exchange_id: str = "binance",
        quote_currency: str = "USDT",
        timeframe: str = "1d",
        sandbox: bool = False,
        exchange: Any = None,
        retry_attempts: int = 3,
        retry_max_wait: float = 10.0,
    ):
        """Initialize the source.

        Args:
            exchange_id: ccxt exchange id (e.g., "binance", "kraken")
            quote_currency: Currency prices are quoted in
            timeframe: OHLCV timeframe used for history
            sandbox: Whether to use the exchange sandbox
            exchange: Pre-built ccxt exchange instance (created lazily otherwise)
            retry_attempts: Attempts per request on network errors
            retry_max_wait: Upper bound of the exponential backoff in seconds
        """
        self._exchange_id = exchange_id
        self._quote = quote_currency.upper()
        self._timeframe = timeframe
        self._sandbox = sandbox
        self._exchange = exchange
        self.retry_attempts = retry_attempts
        self.retry_max_wait = retry_max_wait

    @property
    def name(self) -> str:
        return f"ccxt:{self._exchange_id}"

    def _market_symbol(self, symbol: str) -> str:
        return f"{symbol.strip().upper()}/{self._quote}"

    def _get_exchange(self) -> Any:
        if self._exchange is None:
            try:
                exchange_class = getattr(ccxt, self._exchange_id)
            except AttributeError as e:
                raise InvalidInput(f"Unsupported exchange: '{self._exchange_id}'") from e
            self._exchange = exchange_class({"enableRateLimit": True})
            if self._sandbox:
                self._exchange.set_sandbox_mode(True)
                logger.info("exchange_sandbox_mode_enabled", exchange=self._exchange_id)
        return self._exchange

    async def _call(self, symbol: str, request: Callable[[], Awaitable[T]]) -> T:
        """Run an exchange request with retry and error mapping."""

        @retry(
            retry=retry_if_exception_type(ccxt.NetworkError),
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=1, min=0, max=self.retry_max_wait),
            before_sleep=lambda retry_state: logger.warning(
                "exchange_request_retry",
                symbol=symbol,
                attempt=retry_state.attempt_number,
                error=str(retry_state.outcome.exception()) if retry_state.outcome else None,
            ),
            reraise=True,
        )
        async def _make_request() -> T:
            return await request()

        try:
            return await _make_request()
        except ccxt.BadSymbol as e:
            raise PriceNotFound(symbol, f"{self.name} has no market {self._market_symbol(symbol)}") from e
        except ccxt.NetworkError as e:
            logger.warning(LogMessages.price_unavailable(symbol, self.name).technical, error=str(e))
            raise PriceUnavailable(symbol, f"{self.name} is unreachable: {e}") from e
        except ccxt.ExchangeError as e:
            logger.warning("exchange_error", symbol=symbol, error=str(e))
            raise PriceUnavailable(symbol, f"{self.name} error: {e}") from e

    async def get_quote(self, symbol: str) -> Quote:
        """Get the current ticker as a quote."""
        exchange = self._get_exchange()
        market_symbol = self._market_symbol(symbol)
        ticker = await self._call(symbol, lambda: exchange.fetch_ticker(market_symbol))

        last = ticker.get("last") or ticker.get("close")
        if last is None:
            raise PriceUnavailable(symbol, f"{self.name} returned no last price for {market_symbol}")

        timestamp = ticker.get("timestamp")
        return Quote(
            symbol=symbol.strip().upper(),
            price=Decimal(str(last)),
            timestamp=(
                datetime.fromtimestamp(timestamp / 1000, tz=UTC) if timestamp else datetime.now(UTC)
            ),
            source=self.name,
            change_24h=_decimal_or_none(ticker.get("percentage")),
            volume_24h=_decimal_or_none(ticker.get("quoteVolume")),
            extra={"bid": ticker.get("bid"), "ask": ticker.get("ask"), "market": market_symbol},
        )

    async def get_history(self, symbol: str, days: int) -> list[PricePoint]:
        """Get daily closes from OHLCV candles."""
        if days < 1:
            raise InvalidInput("History length must be at least 1 day")
        exchange = self._get_exchange()
        market_symbol = self._market_symbol(symbol)
        candles = await self._call(
            symbol,
            lambda: exchange.fetch_ohlcv(market_symbol, self._timeframe, limit=days),
        )
        # [timestamp, open, high, low, close, volume]
        return [
            PricePoint(
                timestamp=datetime.fromtimestamp(candle[0] / 1000, tz=UTC),
                price=Decimal(str(candle[4])),
            )
            for candle in candles
        ]

    async def health_check(self) -> bool:
        """Check connectivity by fetching the exchange time."""
        try:
            await self._get_exchange().fetch_time()
            return True
        except ccxt.BaseError as e:
            logger.warning("exchange_health_check_failed", exchange=self._exchange_id, error=str(e))
            return False

    async def close(self) -> None:
        if self._exchange is not None:
            await self._exchange.close()
            self._exchange = None
