"""Portfolio valuation and P&L tracking.

``track_portfolio`` is a pure function of a portfolio and a price map; it
never mutates the positions it is given. ``snapshot`` fetches the prices
from a price source first.
"""

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from dcaadvisor.core.errors import PriceSourceError
from dcaadvisor.core.logging import get_logger
from dcaadvisor.core.models import Portfolio, Position, to_decimal

if TYPE_CHECKING:
    from dcaadvisor.market.source import PriceSource

logger = get_logger(__name__)

ZERO = Decimal("0")


@dataclass
class PositionReport:
    """Valuation of a single position."""

    symbol: str
    quantity: Decimal
    cost_basis: Decimal
    current_price: Decimal | None
    value: Decimal
    pnl: Decimal
    pnl_pct: Decimal
    allocation: Decimal = ZERO

    @property
    def priced(self) -> bool:
        return self.current_price is not None

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "symbol": self.symbol,
            "quantity": float(self.quantity),
            "cost_basis": float(self.cost_basis),
            "current_price": float(self.current_price) if self.priced else None,
            "value": float(self.value),
            "pnl": float(self.pnl),
            "pnl_pct": float(self.pnl_pct),
            "allocation": float(self.allocation),
            "priced": self.priced,
        }


@dataclass
class PortfolioReport:
    """Valuation of a whole portfolio."""

    positions: list[PositionReport]
    total_value: Decimal
    total_cost: Decimal
    total_pnl: Decimal
    total_pnl_pct: Decimal
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def unpriced(self) -> list[str]:
        """Symbols that could not be valued."""
        return [p.symbol for p in self.positions if not p.priced]

    def position(self, symbol: str) -> PositionReport | None:
        symbol = symbol.upper()
        return next((p for p in self.positions if p.symbol == symbol), None)

    def format_summary(self) -> str:
        """Human readable summary."""
        lines = [
            f"Portfolio value: ${self.total_value:,.2f} "
            f"(P&L ${self.total_pnl:,.2f}, {self.total_pnl_pct:.2%})"
        ]
        for p in self.positions:
            if p.priced:
                lines.append(
                    f"  {p.symbol:<6} ${p.value:>12,.2f}  {p.allocation:>6.1%}  P&L {p.pnl_pct:+.2%}"
                )
            else:
                lines.append(f"  {p.symbol:<6} price unavailable")
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "positions": [p.to_dict() for p in self.positions],
            "total_value": float(self.total_value),
            "total_cost": float(self.total_cost),
            "total_pnl": float(self.total_pnl),
            "total_pnl_pct": float(self.total_pnl_pct),
            "unpriced": self.unpriced,
            "timestamp": self.timestamp.isoformat(),
        }


def _value_position(position: Position, price: Decimal | None) -> PositionReport:
    if price is None:
        value = ZERO
        pnl = ZERO
    else:
        value = position.quantity * price
        pnl = value - position.cost_basis
    pnl_pct = pnl / position.cost_basis if position.cost_basis > 0 and price is not None else ZERO
    return PositionReport(
        symbol=position.asset_symbol,
        quantity=position.quantity,
        cost_basis=position.cost_basis,
        current_price=price,
        value=value,
        pnl=pnl,
        pnl_pct=pnl_pct,
    )


def track_portfolio(portfolio: Portfolio, prices: Mapping[str, Any]) -> PortfolioReport:
    """
    Value a portfolio at the given prices.

    Args:
        portfolio: Positions to value
        prices: Current price per symbol; missing symbols are reported unpriced

    Returns:
        PortfolioReport whose allocation fractions sum to 1 when the total
        value is positive, and are all zero otherwise
    """
    normalized = {symbol.upper(): to_decimal(price) for symbol, price in prices.items()}
    reports = [_value_position(p, normalized.get(p.asset_symbol)) for p in portfolio.positions]

    total_value = sum((r.value for r in reports), ZERO)
    total_cost = sum((p.cost_basis for p in portfolio.positions), ZERO)
    total_pnl = total_value - total_cost
    total_pnl_pct = total_pnl / total_cost if total_cost > 0 else ZERO

    if total_value > 0:
        for report in reports:
            report.allocation = report.value / total_value

    return PortfolioReport(
        positions=reports,
        total_value=total_value,
        total_cost=total_cost,
        total_pnl=total_pnl,
        total_pnl_pct=total_pnl_pct,
    )


async def snapshot(portfolio: Portfolio, source: "PriceSource") -> PortfolioReport:
    """Fetch current prices concurrently and value the portfolio.

    Symbols the source cannot price are left unpriced instead of failing the
    whole snapshot.
    """
    symbols = portfolio.symbols
    results = await asyncio.gather(
        *(source.get_price(symbol) for symbol in symbols), return_exceptions=True
    )

    prices: dict[str, Decimal] = {}
    for symbol, result in zip(symbols, results, strict=True):
        if isinstance(result, PriceSourceError):
            logger.warning("snapshot_price_missing", symbol=symbol, reason=result.reason)
            continue
        if isinstance(result, BaseException):
            raise result
        prices[symbol] = result

    return track_portfolio(portfolio, prices)
