"""Abstract base class for price sources."""

from abc import ABC, abstractmethod
from decimal import Decimal

from dcaadvisor.core.models import PricePoint, Quote


class PriceSource(ABC):
    """
    Abstract base class for market data sources.

    Implementations raise ``PriceNotFound`` for symbols they do not know and
    ``PriceUnavailable`` when the source cannot answer right now.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Source name, reported in quotes and logs."""
        ...

    @abstractmethod
    async def get_quote(self, symbol: str) -> Quote:
        """
        Get the current quote for a symbol.

        Args:
            symbol: Base asset symbol (e.g., "BTC")

        Returns:
            Quote with price and optional market statistics
        """
        ...

    async def get_price(self, symbol: str) -> Decimal:
        """Get the current price for a symbol."""
        quote = await self.get_quote(symbol)
        return quote.price

    @abstractmethod
    async def get_history(self, symbol: str, days: int) -> list[PricePoint]:
        """
        Get daily closing prices.

        Args:
            symbol: Base asset symbol
            days: Number of most recent daily points

        Returns:
            Chronological price points
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Check whether the source is reachable."""
        ...

    async def close(self) -> None:
        """Release network resources held by the source."""
        return None
