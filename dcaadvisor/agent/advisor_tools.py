"""Advisory tools: price lookups, DCA planning, risk analysis and portfolio tracking.

Every tool is read-only. Tools raise on failure; the registry turns the
exception into a failure result that the model can react to.
"""

import asyncio
from typing import Any

from dcaadvisor.agent.tools import BaseTool, ToolCategory, ToolParameter, ToolRegistry
from dcaadvisor.config import Settings, get_settings
from dcaadvisor.core.errors import (
    AdvisorError,
    InsufficientData,
    InvalidInput,
    PriceSourceError,
    ToolError,
    ToolErrorKind,
)
from dcaadvisor.core.logging import LogMessages, get_logger
from dcaadvisor.core.models import Asset, Portfolio, Position, PricePoint, Quote, RiskProfile
from dcaadvisor.market.source import PriceSource
from dcaadvisor.strategies.dca import build_schedule, calculate_allocations
from dcaadvisor.strategies.portfolio import snapshot
from dcaadvisor.strategies.profiles import DEFAULT_UNIVERSE, get_risk_profile, tier_for_symbol
from dcaadvisor.strategies.risk import analyze_series, compare_diversification

logger = get_logger(__name__)

_PROFILE_CHOICES = ["conservative", "balanced", "moderate", "aggressive"]


def _normalize_symbols(symbols: list[Any]) -> list[str]:
    """Upper-case, strip and de-duplicate while keeping order."""
    seen: list[str] = []
    for raw in symbols:
        symbol = str(raw).strip().upper()
        if symbol and symbol not in seen:
            seen.append(symbol)
    return seen


def _error_entry(symbol: str, error: AdvisorError) -> dict[str, Any]:
    return {"symbol": symbol, "reason": error.reason, "message": error.message}


async def _gather_by_symbol(symbols: list[str], fetch) -> tuple[dict[str, Any], list[PriceSourceError]]:
    """Run ``fetch(symbol)`` concurrently, splitting results from price errors.

    Raises:
        The first price error when every symbol failed
    """
    outcomes = await asyncio.gather(*(fetch(s) for s in symbols), return_exceptions=True)
    results: dict[str, Any] = {}
    errors: list[PriceSourceError] = []
    for symbol, outcome in zip(symbols, outcomes, strict=True):
        if isinstance(outcome, PriceSourceError):
            errors.append(outcome)
        elif isinstance(outcome, BaseException):
            raise outcome
        else:
            results[symbol] = outcome
    if errors and not results:
        raise errors[0]
    return results, errors


class AdvisorTool(BaseTool):
    """Base for tools that read from a price source."""

    def __init__(self, source: PriceSource, settings: Settings | None = None):
        self.source = source
        self.settings = settings or get_settings()


class PriceLookupTool(AdvisorTool):
    """Get current prices."""

    @property
    def name(self) -> str:
        return "price_lookup"

    @property
    def description(self) -> str:
        return (
            "Get the current price of one or more cryptocurrencies, with 24h change, "
            "market cap and volume when available."
        )

    @property
    def category(self) -> ToolCategory:
        return ToolCategory.MARKET_DATA

    @property
    def parameters(self) -> list[ToolParameter]:
        return [
            ToolParameter(
                name="symbol",
                type="string",
                description="Asset symbol (e.g., 'BTC')",
                required=False,
            ),
            ToolParameter(
                name="symbols",
                type="array",
                description="Several asset symbols (e.g., ['BTC', 'ETH'])",
                required=False,
                items={"type": "string"},
            ),
        ]

    async def execute(self, **kwargs: Any) -> Any:
        symbols = _normalize_symbols([kwargs["symbol"]] if "symbol" in kwargs else [])
        symbols += [s for s in _normalize_symbols(kwargs.get("symbols", [])) if s not in symbols]
        if not symbols:
            raise ToolError(ToolErrorKind.INVALID_ARGUMENTS, "Provide 'symbol' or 'symbols'")

        if len(symbols) == 1:
            quote = await self.source.get_quote(symbols[0])
            return quote.to_dict()

        quotes, errors = await _gather_by_symbol(symbols, self.source.get_quote)
        return {
            "quotes": [quotes[s].to_dict() for s in symbols if s in quotes],
            "errors": [_error_entry(e.symbol, e) for e in errors],
        }


class PriceHistoryTool(AdvisorTool):
    """Get daily price history."""

    @property
    def name(self) -> str:
        return "price_history"

    @property
    def description(self) -> str:
        return "Get daily closing prices for a cryptocurrency over the last N days."

    @property
    def category(self) -> ToolCategory:
        return ToolCategory.MARKET_DATA

    @property
    def parameters(self) -> list[ToolParameter]:
        return [
            ToolParameter(
                name="symbol",
                type="string",
                description="Asset symbol (e.g., 'ETH')",
                required=True,
            ),
            ToolParameter(
                name="days",
                type="integer",
                description="Number of days of history",
                required=False,
                default=30,
            ),
        ]

    async def execute(self, **kwargs: Any) -> Any:
        symbol = kwargs["symbol"].strip().upper()
        days = kwargs.get("days", 30)
        if not 2 <= days <= 1000:
            raise InvalidInput("days must be between 2 and 1000")

        history = await self.source.get_history(symbol, days)
        if not history:
            raise InsufficientData(f"No price history for {symbol}")
        first, last = history[0].price, history[-1].price
        return {
            "symbol": symbol,
            "days": len(history),
            "first": float(first),
            "last": float(last),
            "change_pct": float((last - first) / first * 100) if first else None,
            "points": [
                {"date": p.timestamp.date().isoformat(), "price": float(p.price)} for p in history
            ],
        }


class DCACalculatorTool(AdvisorTool):
    """Compute a diversified DCA allocation."""

    @property
    def name(self) -> str:
        return "dca_calculator"

    @property
    def description(self) -> str:
        return (
            "Split an investment amount across a diversified set of cryptocurrencies "
            "according to a risk profile. Returns per-asset amounts and quantities at "
            "current prices, the split per risk tier, and a comparison with going all-in."
        )

    @property
    def category(self) -> ToolCategory:
        return ToolCategory.PLANNING

    @property
    def parameters(self) -> list[ToolParameter]:
        return [
            ToolParameter(
                name="amount",
                type="number",
                description="Total amount to invest in USD",
                required=True,
            ),
            ToolParameter(
                name="risk_profile",
                type="string",
                description="Investor risk profile",
                required=False,
                enum=_PROFILE_CHOICES,
                default="balanced",
            ),
            ToolParameter(
                name="symbols",
                type="array",
                description="Candidate symbols (defaults to a curated list for the profile)",
                required=False,
                items={"type": "string"},
            ),
            ToolParameter(
                name="exclude",
                type="array",
                description="Symbols to leave out (e.g., ['DOGE', 'SHIB'])",
                required=False,
                items={"type": "string"},
            ),
            ToolParameter(
                name="max_assets",
                type="integer",
                description="Maximum number of assets in the plan",
                required=False,
            ),
        ]

    async def execute(self, **kwargs: Any) -> Any:
        profile = RiskProfile.parse(kwargs.get("risk_profile", "balanced"))
        strategy = self.settings.strategy

        universe = _normalize_symbols(kwargs.get("symbols") or list(DEFAULT_UNIVERSE[profile]))
        excluded = set(_normalize_symbols(kwargs.get("exclude", [])))
        candidates = [s for s in universe if s not in excluded]
        if not candidates:
            raise InvalidInput("Every candidate symbol was excluded")

        quotes, errors = await _gather_by_symbol(candidates, self.source.get_quote)
        assets = [self._to_asset(quotes[s]) for s in candidates if s in quotes]

        plan = calculate_allocations(
            kwargs["amount"],
            profile,
            assets,
            target_count=kwargs.get("max_assets", strategy.target_asset_count),
            tier_weights=strategy.tier_weights_for(profile),
            minor_unit=strategy.currency_minor_unit,
        )

        msg = LogMessages.allocation_ready(float(plan.total_investment), profile.value, plan.asset_count)
        logger.info(msg.technical)

        config = get_risk_profile(profile)
        return {
            **plan.to_dict(),
            "skipped": [_error_entry(e.symbol, e) for e in errors],
            "profile_description": config.description,
            "warning": config.warning,
            "vs_all_in": plan.vs_all_in(),
        }

    def _to_asset(self, quote: Quote) -> Asset:
        return Asset(
            symbol=quote.symbol,
            risk_tier=tier_for_symbol(quote.symbol, self.settings.strategy.asset_tiers),
            current_price=quote.price,
            name=quote.name,
            market_cap=quote.market_cap,
            volume_24h=quote.volume_24h,
            change_24h=quote.change_24h,
        )


class DCAScheduleTool(AdvisorTool):
    """Plan periodic purchases."""

    @property
    def name(self) -> str:
        return "dca_schedule"

    @property
    def description(self) -> str:
        return (
            "Spread an investment over equal periodic purchases. The cadence defaults "
            "to the risk profile (conservative buys monthly for a year)."
        )

    @property
    def category(self) -> ToolCategory:
        return ToolCategory.PLANNING

    @property
    def parameters(self) -> list[ToolParameter]:
        return [
            ToolParameter(
                name="amount",
                type="number",
                description="Total amount to invest in USD",
                required=True,
            ),
            ToolParameter(
                name="risk_profile",
                type="string",
                description="Investor risk profile",
                required=False,
                enum=_PROFILE_CHOICES,
                default="balanced",
            ),
            ToolParameter(
                name="periods",
                type="integer",
                description="Number of purchases (overrides the profile default)",
                required=False,
            ),
            ToolParameter(
                name="interval_days",
                type="integer",
                description="Days between purchases (overrides the profile default)",
                required=False,
            ),
        ]

    async def execute(self, **kwargs: Any) -> Any:
        schedule = build_schedule(
            kwargs["amount"],
            risk_profile=kwargs.get("risk_profile", "balanced"),
            periods=kwargs.get("periods"),
            interval_days=kwargs.get("interval_days"),
            minor_unit=self.settings.strategy.currency_minor_unit,
        )
        return schedule.to_dict()


class RiskAnalyzerTool(AdvisorTool):
    """Measure volatility and drawdown from price history."""

    @property
    def name(self) -> str:
        return "risk_analyzer"

    @property
    def description(self) -> str:
        return (
            "Analyze the historical risk of cryptocurrencies: volatility, maximum drawdown "
            "and a risk tier. Optionally compares an equal-weight basket against holding "
            "single assets."
        )

    @property
    def category(self) -> ToolCategory:
        return ToolCategory.ANALYSIS

    @property
    def parameters(self) -> list[ToolParameter]:
        return [
            ToolParameter(
                name="symbols",
                type="array",
                description="Symbols to analyze (e.g., ['BTC', 'SOL'])",
                required=True,
                items={"type": "string"},
            ),
            ToolParameter(
                name="days",
                type="integer",
                description="Days of history to analyze",
                required=False,
            ),
            ToolParameter(
                name="compare_diversification",
                type="boolean",
                description="Also compare an equal-weight basket with single assets",
                required=False,
                default=False,
            ),
        ]

    async def execute(self, **kwargs: Any) -> Any:
        symbols = _normalize_symbols(kwargs["symbols"])
        if not symbols:
            raise InvalidInput("No symbols to analyze")
        strategy = self.settings.strategy
        days = kwargs.get("days", strategy.history_days)
        if not 2 <= days <= 1000:
            raise InvalidInput("days must be between 2 and 1000")

        async def fetch(symbol: str) -> list[PricePoint]:
            return await self.source.get_history(symbol, days)

        histories, price_errors = await _gather_by_symbol(symbols, fetch)
        bands = strategy.bands()
        errors = [_error_entry(e.symbol, e) for e in price_errors]

        # A short or malformed series fails only its own symbol
        assets: dict[str, Any] = {}
        failed: list[AdvisorError] = []
        for symbol, series in list(histories.items()):
            try:
                assets[symbol] = analyze_series(series, bands, strategy.periods_per_year).to_dict()
            except AdvisorError as e:
                failed.append(e)
                errors.append(_error_entry(symbol, e))
                del histories[symbol]

        if not assets:
            raise failed[0]

        result: dict[str, Any] = {"assets": assets, "errors": errors}

        if kwargs.get("compare_diversification") and len(histories) >= 2:
            report = compare_diversification(histories, bands, strategy.periods_per_year)
            result["diversification"] = report.to_dict()

        return result


class PortfolioTrackerTool(AdvisorTool):
    """Value holdings at current prices."""

    @property
    def name(self) -> str:
        return "portfolio_tracker"

    @property
    def description(self) -> str:
        return (
            "Value a portfolio at current prices: per-position value, profit/loss and "
            "share of the portfolio, plus totals."
        )

    @property
    def category(self) -> ToolCategory:
        return ToolCategory.ANALYSIS

    @property
    def parameters(self) -> list[ToolParameter]:
        return [
            ToolParameter(
                name="positions",
                type="array",
                description=(
                    "Holdings, each {'symbol': 'BTC', 'quantity': 0.05, 'cost_basis': 4000} "
                    "where cost_basis is the total amount paid"
                ),
                required=True,
                items={
                    "type": "object",
                    "properties": {
                        "symbol": {"type": "string"},
                        "quantity": {"type": "number"},
                        "cost_basis": {"type": "number"},
                    },
                    "required": ["symbol", "quantity", "cost_basis"],
                },
            ),
        ]

    async def execute(self, **kwargs: Any) -> Any:
        positions = []
        for entry in kwargs["positions"]:
            if not isinstance(entry, dict) or not {"symbol", "quantity", "cost_basis"} <= set(entry):
                raise InvalidInput(
                    "Each position needs 'symbol', 'quantity' and 'cost_basis'"
                )
            positions.append(
                Position(
                    asset_symbol=str(entry["symbol"]),
                    quantity=entry["quantity"],
                    cost_basis=entry["cost_basis"],
                )
            )

        report = await snapshot(Portfolio(positions=tuple(positions)), self.source)
        return {**report.to_dict(), "summary": report.format_summary()}


def register_advisor_tools(
    registry: ToolRegistry,
    source: PriceSource,
    settings: Settings | None = None,
) -> ToolRegistry:
    """Register all advisory tools.

    Args:
        registry: Registry to populate
        source: Price source shared by the tools
        settings: Settings (global settings when None)

    Returns:
        The populated registry
    """
    tools = [
        PriceLookupTool(source, settings),
        PriceHistoryTool(source, settings),
        DCACalculatorTool(source, settings),
        DCAScheduleTool(source, settings),
        RiskAnalyzerTool(source, settings),
        PortfolioTrackerTool(source, settings),
    ]

    for tool in tools:
        registry.register(tool)

    logger.info("advisor_tools_registered", count=len(tools))
    return registry
