"""Risk analysis over historical price series."""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from dcaadvisor.core.errors import InsufficientData, InvalidInput
from dcaadvisor.core.logging import get_logger
from dcaadvisor.core.models import PricePoint, RiskTier
from dcaadvisor.strategies.profiles import DEFAULT_RISK_BANDS, RiskBand

logger = get_logger(__name__)


@dataclass
class RiskReport:
    """Volatility and drawdown of one price series."""

    volatility: float
    max_drawdown: float
    risk_tier: RiskTier
    sample_size: int
    annualized_volatility: float

    @property
    def simple_explanation(self) -> str:
        return (
            f"Typical daily swing {self.volatility:.1%}, "
            f"worst fall from a peak {self.max_drawdown:.0%} "
            f"({self.risk_tier.description})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "volatility": self.volatility,
            "annualized_volatility": self.annualized_volatility,
            "max_drawdown": self.max_drawdown,
            "risk_tier": self.risk_tier.value,
            "sample_size": self.sample_size,
            "summary": self.simple_explanation,
        }


@dataclass
class DiversificationReport:
    """Equal-weight basket risk compared with its single-asset constituents."""

    symbols: list[str]
    basket_volatility: float
    basket_max_drawdown: float
    average_asset_volatility: float
    worst_asset_volatility: float
    worst_asset_drawdown: float
    sample_size: int
    assets: dict[str, RiskReport] = field(default_factory=dict)

    @property
    def volatility_reduction(self) -> float:
        """Relative volatility saved by holding the basket instead of the average asset."""
        if self.average_asset_volatility == 0:
            return 0.0
        return 1.0 - self.basket_volatility / self.average_asset_volatility

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "symbols": self.symbols,
            "basket_volatility": self.basket_volatility,
            "basket_max_drawdown": self.basket_max_drawdown,
            "average_asset_volatility": self.average_asset_volatility,
            "worst_asset_volatility": self.worst_asset_volatility,
            "worst_asset_drawdown": self.worst_asset_drawdown,
            "volatility_reduction": self.volatility_reduction,
            "sample_size": self.sample_size,
        }


def _prices(series: Sequence[PricePoint]) -> np.ndarray:
    """Validate a series and return its prices as a float array."""
    if len(series) < 2:
        raise InsufficientData(f"Need at least 2 price points, got {len(series)}")

    for previous, current in zip(series, series[1:]):
        if current.timestamp <= previous.timestamp:
            raise InvalidInput("Price series timestamps must be strictly increasing")

    prices = np.array([float(p.price) for p in series], dtype=float)
    if np.any(prices <= 0):
        raise InvalidInput("Price series contains non-positive prices")
    return prices


def _max_drawdown(curve: np.ndarray) -> float:
    peak = np.maximum.accumulate(curve)
    drawdown = (peak - curve) / peak
    return float(np.max(drawdown))


def classify(
    volatility: float,
    max_drawdown: float,
    bands: Sequence[RiskBand] = DEFAULT_RISK_BANDS,
) -> RiskTier:
    """Map volatility and drawdown to a risk tier using ordered bands."""
    if volatility == 0:
        return RiskTier.UNKNOWN
    for band in bands:
        if volatility <= band.max_volatility and max_drawdown <= band.max_drawdown:
            return band.tier
    return RiskTier.SPECULATIVE


def analyze_series(
    series: Sequence[PricePoint],
    bands: Sequence[RiskBand] | None = None,
    periods_per_year: int = 365,
) -> RiskReport:
    """
    Compute volatility, maximum drawdown and a risk tier for a price series.

    Volatility is the population standard deviation of simple period returns.
    Maximum drawdown is the largest peak-to-trough decline as a fraction of
    the peak.

    Args:
        series: Chronological price points
        bands: Classification bands, checked in order
        periods_per_year: Periods used to annualize volatility

    Returns:
        RiskReport with metrics and tier

    Raises:
        InsufficientData: Fewer than 2 points
        InvalidInput: Non-positive price or out-of-order timestamps
    """
    prices = _prices(series)
    returns = np.diff(prices) / prices[:-1]

    volatility = float(np.std(returns))
    max_drawdown = _max_drawdown(prices)
    tier = classify(volatility, max_drawdown, bands or DEFAULT_RISK_BANDS)

    return RiskReport(
        volatility=volatility,
        max_drawdown=max_drawdown,
        risk_tier=tier,
        sample_size=len(prices),
        annualized_volatility=volatility * float(np.sqrt(periods_per_year)),
    )


def compare_diversification(
    series_by_symbol: Mapping[str, Sequence[PricePoint]],
    bands: Sequence[RiskBand] | None = None,
    periods_per_year: int = 365,
) -> DiversificationReport:
    """
    Compare an equal-weight, periodically rebalanced basket with its constituents.

    Series of different lengths are aligned on their most recent points.
    """
    if not series_by_symbol:
        raise InvalidInput("No series supplied")

    arrays = {symbol: _prices(series) for symbol, series in series_by_symbol.items()}
    length = min(len(a) for a in arrays.values())
    aligned = {symbol: a[-length:] for symbol, a in arrays.items()}

    reports = {
        symbol: analyze_series(list(series_by_symbol[symbol])[-length:], bands, periods_per_year)
        for symbol in aligned
    }

    returns = np.vstack([np.diff(a) / a[:-1] for a in aligned.values()])
    basket_returns = returns.mean(axis=0)
    basket_curve = np.concatenate(([1.0], np.cumprod(1.0 + basket_returns)))

    vols = [r.volatility for r in reports.values()]
    report = DiversificationReport(
        symbols=list(aligned),
        basket_volatility=float(np.std(basket_returns)),
        basket_max_drawdown=_max_drawdown(basket_curve),
        average_asset_volatility=float(np.mean(vols)),
        worst_asset_volatility=float(np.max(vols)),
        worst_asset_drawdown=max(r.max_drawdown for r in reports.values()),
        sample_size=length,
        assets=reports,
    )

    logger.debug(
        "diversification_compared",
        symbols=report.symbols,
        basket_volatility=report.basket_volatility,
        reduction=report.volatility_reduction,
    )
    return report
