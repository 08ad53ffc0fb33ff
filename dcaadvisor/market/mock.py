"""Mock price source with static prices and synthetic history for offline use."""

import asyncio
import zlib
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import numpy as np

from dcaadvisor.core.errors import InvalidInput, PriceNotFound, PriceUnavailable
from dcaadvisor.core.logging import get_logger
from dcaadvisor.core.models import PricePoint, Quote, RiskTier
from dcaadvisor.market.source import PriceSource

logger = get_logger(__name__)


# symbol: (price, name, 24h change %, market cap)
_MOCK_MARKET: dict[str, tuple[str, str, str, str]] = {
    "BTC": ("97500", "Bitcoin", "2.5", "1930000000000"),
    "ETH": ("3450", "Ethereum", "1.8", "415000000000"),
    "XRP": ("2.35", "Ripple", "0.9", "135000000000"),
    "SOL": ("195", "Solana", "4.2", "92000000000"),
    "DOGE": ("0.38", "Dogecoin", "12.0", "56000000000"),
    "ADA": ("0.95", "Cardano", "-1.2", "33000000000"),
    "AVAX": ("42.00", "Avalanche", "5.5", "17000000000"),
    "LINK": ("24.50", "Chainlink", "3.1", "15000000000"),
    "SHIB": ("0.000022", "Shiba Inu", "-8.0", "13000000000"),
    "DOT": ("7.20", "Polkadot", "0.8", "10500000000"),
    "BCH": ("485", "Bitcoin Cash", "0.7", "9600000000"),
    "UNI": ("14.20", "Uniswap", "2.2", "8500000000"),
    "LTC": ("105", "Litecoin", "1.5", "7900000000"),
    "MATIC": ("0.52", "Polygon", "-0.5", "5000000000"),
    "ATOM": ("9.80", "Cosmos", "1.2", "3800000000"),
    "USDC": ("1.00", "USD Coin", "0.0", "42000000000"),
}

_MOCK_VOLUME: dict[str, Decimal] = {
    "BTC": Decimal("25000000000"),
    "ETH": Decimal("15000000000"),
    "SOL": Decimal("3000000000"),
}
_DEFAULT_VOLUME = Decimal("500000000")

# Daily return std used to shape the synthetic history of each tier
_TIER_VOLATILITY: dict[RiskTier, float] = {
    RiskTier.BLUE_CHIP: 0.025,
    RiskTier.LARGE_CAP: 0.040,
    RiskTier.MID_CAP: 0.055,
    RiskTier.SPECULATIVE: 0.090,
}

_MOCK_TIERS: dict[str, RiskTier] = {
    "BTC": RiskTier.BLUE_CHIP,
    "ETH": RiskTier.BLUE_CHIP,
    "SOL": RiskTier.LARGE_CAP,
    "ADA": RiskTier.LARGE_CAP,
    "DOT": RiskTier.LARGE_CAP,
    "AVAX": RiskTier.LARGE_CAP,
    "LTC": RiskTier.LARGE_CAP,
    "BCH": RiskTier.LARGE_CAP,
    "LINK": RiskTier.MID_CAP,
    "MATIC": RiskTier.MID_CAP,
    "ATOM": RiskTier.MID_CAP,
    "XRP": RiskTier.MID_CAP,
    "UNI": RiskTier.MID_CAP,
    "DOGE": RiskTier.SPECULATIVE,
    "SHIB": RiskTier.SPECULATIVE,
}

# Stablecoins have a flat history
_STABLE = {"USDC"}


class MockPriceSource(PriceSource):
    """Price source returning static quotes and deterministic synthetic history.

    Histories are seeded per symbol, so the same symbol always yields the same
    series. Outages can be simulated per symbol or for the whole source.
    """

    def __init__(
        self,
        unavailable: set[str] | None = None,
        offline: bool = False,
        delay: float = 0.0,
    ):
        """
        Initialize the mock source.

        Args:
            unavailable: Symbols that fail with ``PriceUnavailable``
            offline: Fail every request with ``PriceUnavailable``
            delay: Artificial latency per request in seconds
        """
        self._unavailable = {s.upper() for s in unavailable or set()}
        self._offline = offline
        self._delay = delay
        self.request_count = 0

    @property
    def name(self) -> str:
        return "mock"

    @property
    def symbols(self) -> list[str]:
        """Symbols the mock knows about."""
        return list(_MOCK_MARKET)

    def set_unavailable(self, symbol: str, unavailable: bool = True) -> None:
        """Simulate an outage (or recovery) for one symbol."""
        if unavailable:
            self._unavailable.add(symbol.upper())
        else:
            self._unavailable.discard(symbol.upper())

    def set_offline(self, offline: bool = True) -> None:
        """Simulate an outage of the whole source."""
        self._offline = offline

    async def _check(self, symbol: str) -> str:
        self.request_count += 1
        if self._delay:
            await asyncio.sleep(self._delay)

        symbol = symbol.strip().upper()
        if self._offline or symbol in self._unavailable:
            raise PriceUnavailable(symbol, f"Mock source cannot serve {symbol} right now")
        if symbol not in _MOCK_MARKET:
            raise PriceNotFound(symbol, f"Unknown symbol: {symbol}")
        return symbol

    async def get_quote(self, symbol: str) -> Quote:
        """Get a static quote."""
        symbol = await self._check(symbol)
        price, name, change, market_cap = _MOCK_MARKET[symbol]
        return Quote(
            symbol=symbol,
            price=Decimal(price),
            timestamp=datetime.now(UTC),
            source=self.name,
            name=name,
            change_24h=Decimal(change),
            market_cap=Decimal(market_cap),
            volume_24h=_MOCK_VOLUME.get(symbol, _DEFAULT_VOLUME),
        )

    async def get_history(self, symbol: str, days: int) -> list[PricePoint]:
        """Generate a deterministic daily random walk ending at the current price."""
        if days < 1:
            raise InvalidInput("History length must be at least 1 day")
        symbol = await self._check(symbol)
        current = float(_MOCK_MARKET[symbol][0])

        if symbol in _STABLE:
            path = np.full(days, current)
        else:
            rng = np.random.default_rng(zlib.crc32(symbol.encode()))
            vol = _TIER_VOLATILITY[_MOCK_TIERS.get(symbol, RiskTier.SPECULATIVE)]
            returns = np.clip(rng.normal(0.0005, vol, days - 1), -0.5, 0.5)
            walk = np.concatenate(([1.0], np.cumprod(1.0 + returns)))
            path = walk / walk[-1] * current

        end = datetime.now(UTC).replace(hour=0, minute=0, second=0, microsecond=0)
        start = end - timedelta(days=days - 1)
        return [
            PricePoint(
                timestamp=start + timedelta(days=i),
                price=Decimal(str(round(float(p), 10))),
            )
            for i, p in enumerate(path)
        ]

    async def health_check(self) -> bool:
        return not self._offline
