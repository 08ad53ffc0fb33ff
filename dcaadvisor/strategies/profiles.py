"""Risk profile tables: tier budgets, classification bands and DCA cadence.

The numbers here are illustrative defaults. Every table can be overridden
through ``StrategySettings`` so deployments treat them as configuration.
"""

from dataclasses import dataclass
from decimal import Decimal

from dcaadvisor.core.errors import InvalidInput
from dcaadvisor.core.models import RiskProfile, RiskTier


@dataclass(frozen=True)
class RiskProfileConfig:
    """Configuration for a risk profile."""

    name: str
    tier_weights: dict[RiskTier, Decimal]
    schedule_periods: int
    schedule_interval_days: int

    # User-facing descriptions
    description: str
    warning: str | None = None


def _weights(blue_chip: str, large_cap: str, mid_cap: str, speculative: str) -> dict[RiskTier, Decimal]:
    return {
        RiskTier.BLUE_CHIP: Decimal(blue_chip),
        RiskTier.LARGE_CAP: Decimal(large_cap),
        RiskTier.MID_CAP: Decimal(mid_cap),
        RiskTier.SPECULATIVE: Decimal(speculative),
    }


RISK_PROFILES: dict[RiskProfile, RiskProfileConfig] = {
    RiskProfile.CONSERVATIVE: RiskProfileConfig(
        name="Conservative",
        tier_weights=_weights("0.40", "0.30", "0.20", "0.10"),
        schedule_periods=12,  # monthly for a year
        schedule_interval_days=30,
        description="Capital preservation first. Most of the budget goes to blue chips.",
    ),
    RiskProfile.BALANCED: RiskProfileConfig(
        name="Balanced",
        tier_weights=_weights("0.30", "0.30", "0.25", "0.15"),
        schedule_periods=6,
        schedule_interval_days=60,
        description="Blue chips and large caps share the core, with room for mid caps.",
    ),
    RiskProfile.AGGRESSIVE: RiskProfileConfig(
        name="Aggressive",
        tier_weights=_weights("0.20", "0.25", "0.30", "0.25"),
        schedule_periods=2,
        schedule_interval_days=180,
        description="Tilts toward mid caps and speculative assets for growth.",
        warning="Speculative assets can lose most or all of their value.",
    ),
}


@dataclass(frozen=True)
class RiskBand:
    """Upper bounds an asset must stay within to be classified in a tier."""

    tier: RiskTier
    max_volatility: float
    max_drawdown: float


# Checked in order; assets exceeding every band are speculative.
# Volatility is the std of per-period (daily by default) simple returns.
DEFAULT_RISK_BANDS: tuple[RiskBand, ...] = (
    RiskBand(RiskTier.BLUE_CHIP, max_volatility=0.035, max_drawdown=0.55),
    RiskBand(RiskTier.LARGE_CAP, max_volatility=0.050, max_drawdown=0.70),
    RiskBand(RiskTier.MID_CAP, max_volatility=0.070, max_drawdown=0.85),
)


ASSET_TIERS: dict[str, RiskTier] = {
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
}


# Candidate universe the DCA tool prices when the user names no symbols
DEFAULT_UNIVERSE: dict[RiskProfile, tuple[str, ...]] = {
    RiskProfile.CONSERVATIVE: (
        "BTC", "ETH", "SOL", "ADA", "DOT", "AVAX", "LINK", "MATIC", "ATOM", "XRP",
    ),
    RiskProfile.BALANCED: (
        "BTC", "ETH", "SOL", "ADA", "DOT", "AVAX", "LINK", "ATOM", "XRP", "DOGE",
    ),
    RiskProfile.AGGRESSIVE: (
        "BTC", "ETH", "SOL", "AVAX", "LINK", "UNI", "ATOM", "DOGE", "SHIB",
    ),
}


def get_risk_profile(profile: RiskProfile | str) -> RiskProfileConfig:
    """
    Get a risk profile configuration.

    Args:
        profile: The risk profile (enum or name, ``moderate`` accepted)

    Returns:
        RiskProfileConfig for the profile
    """
    return RISK_PROFILES[RiskProfile.parse(profile)]


def tier_for_symbol(symbol: str, overrides: dict[str, str] | None = None) -> RiskTier:
    """Look up the configured tier of a symbol; unknown symbols are speculative."""
    symbol = symbol.strip().upper()
    if overrides and symbol in overrides:
        return RiskTier(overrides[symbol])
    return ASSET_TIERS.get(symbol, RiskTier.SPECULATIVE)


def validate_tier_weights(weights: dict[RiskTier, Decimal]) -> dict[RiskTier, Decimal]:
    """Check a tier-weight table covers allocatable tiers and sums to 1."""
    unknown = set(weights) - set(RiskTier.ordered())
    if unknown:
        raise InvalidInput(f"Tier weights contain non-allocatable tiers: {sorted(t.value for t in unknown)}")
    if any(w < 0 for w in weights.values()):
        raise InvalidInput("Tier weights must be non-negative")
    total = sum(weights.values(), Decimal("0"))
    if abs(total - Decimal("1")) > Decimal("1e-9"):
        raise InvalidInput(f"Tier weights must sum to 1 (got {total})")
    return {tier: weights.get(tier, Decimal("0")) for tier in RiskTier.ordered()}


def format_profile_summary(profile: RiskProfile) -> str:
    """
    Format a risk profile summary for display.

    Args:
        profile: The risk profile to format

    Returns:
        Formatted string summary
    """
    config = get_risk_profile(profile)

    lines = [f"{config.name} Profile", "", f"   {config.description}", ""]
    for tier, weight in config.tier_weights.items():
        lines.append(f"   • {tier.value}: {weight:.0%}")
    lines.append(
        f"   • Schedule: {config.schedule_periods} buys every {config.schedule_interval_days} days"
    )

    if config.warning:
        lines.extend(["", f"   ! {config.warning}"])

    return "\n".join(lines)
