"""Market - price sources for quotes and history."""

from dcaadvisor.market.ccxt_source import CcxtPriceSource
from dcaadvisor.market.mock import MockPriceSource
from dcaadvisor.market.source import PriceSource

__all__ = [
    "CcxtPriceSource",
    "MockPriceSource",
    "PriceSource",
    "create_price_source",
]


def create_price_source() -> PriceSource:
    """Build the price source selected in settings.

    Reads ``settings.system.price_source``; ``ccxt`` uses the exchange and
    quote currency from ``settings.market``.
    """
    from dcaadvisor.config import get_settings

    settings = get_settings()

    if settings.system.price_source == "ccxt":
        return CcxtPriceSource(
            exchange_id=settings.market.exchange,
            quote_currency=settings.market.quote_currency,
            timeframe=settings.market.history_timeframe,
            sandbox=settings.market.sandbox,
        )
    return MockPriceSource()
