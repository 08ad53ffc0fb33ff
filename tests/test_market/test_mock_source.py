"""Tests for the mock price source."""

from decimal import Decimal

import pytest

from dcaadvisor.core.errors import InvalidInput, PriceNotFound, PriceUnavailable
from dcaadvisor.market.mock import MockPriceSource
from dcaadvisor.strategies.risk import analyze_series


class TestMockQuotes:
    """Tests for quotes."""

    @pytest.mark.asyncio
    async def test_quote(self, mock_source):
        quote = await mock_source.get_quote("btc")

        assert quote.symbol == "BTC"
        assert quote.price == Decimal("97500")
        assert quote.source == "mock"
        assert quote.market_cap > 0

    @pytest.mark.asyncio
    async def test_get_price(self, mock_source):
        assert await mock_source.get_price("ETH") == Decimal("3450")

    @pytest.mark.asyncio
    async def test_unknown_symbol(self, mock_source):
        with pytest.raises(PriceNotFound):
            await mock_source.get_quote("NOPE")

    @pytest.mark.asyncio
    async def test_symbol_outage_and_recovery(self):
        source = MockPriceSource(unavailable={"btc"})

        with pytest.raises(PriceUnavailable) as exc_info:
            await source.get_quote("BTC")
        assert exc_info.value.reason == "Unavailable"

        source.set_unavailable("BTC", False)
        assert (await source.get_quote("BTC")).symbol == "BTC"

    @pytest.mark.asyncio
    async def test_offline(self):
        source = MockPriceSource(offline=True)

        assert await source.health_check() is False
        with pytest.raises(PriceUnavailable):
            await source.get_quote("ETH")

    @pytest.mark.asyncio
    async def test_request_count(self, mock_source):
        await mock_source.get_quote("BTC")
        await mock_source.get_history("BTC", 5)

        assert mock_source.request_count == 2


class TestMockHistory:
    """Tests for synthetic history."""

    @pytest.mark.asyncio
    async def test_deterministic_and_ends_at_price(self, mock_source):
        first = await mock_source.get_history("SOL", 30)
        second = await MockPriceSource().get_history("SOL", 30)

        assert len(first) == 30
        assert [p.price for p in first] == [p.price for p in second]
        assert float(first[-1].price) == pytest.approx(195.0)

    @pytest.mark.asyncio
    async def test_chronological(self, mock_source):
        history = await mock_source.get_history("ETH", 10)

        timestamps = [p.timestamp for p in history]
        assert timestamps == sorted(timestamps)
        assert all(p.price > 0 for p in history)

    @pytest.mark.asyncio
    async def test_stablecoin_is_unclassified(self, mock_source):
        history = await mock_source.get_history("USDC", 30)

        assert analyze_series(history).risk_tier.value == "unknown"

    @pytest.mark.asyncio
    async def test_invalid_days(self, mock_source):
        with pytest.raises(InvalidInput):
            await mock_source.get_history("BTC", 0)
