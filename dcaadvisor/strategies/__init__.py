"""Deterministic strategy engine: DCA allocation, risk analysis and portfolio tracking."""

from dcaadvisor.strategies.dca import AllocationPlan, DCASchedule, build_schedule, calculate_allocations
from dcaadvisor.strategies.portfolio import PortfolioReport, snapshot, track_portfolio
from dcaadvisor.strategies.risk import (
    DiversificationReport,
    RiskReport,
    analyze_series,
    compare_diversification,
)

__all__ = [
    "AllocationPlan",
    "DCASchedule",
    "DiversificationReport",
    "PortfolioReport",
    "RiskReport",
    "analyze_series",
    "build_schedule",
    "calculate_allocations",
    "compare_diversification",
    "snapshot",
    "track_portfolio",
]
