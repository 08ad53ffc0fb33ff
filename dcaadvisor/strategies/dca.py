"""DCA (Dollar Cost Averaging) allocation and scheduling.

The allocator spreads a lump sum over a diversified basket:

1. Each risk profile maps to a tier budget table (e.g. conservative puts
   40% in blue chips, 30% large caps, 20% mid caps, 10% speculative).
2. Asset slots are apportioned to tiers by weight and filled greedily with
   the most liquid candidates first. Slots a tier cannot fill fall through to
   the next less-conservative tier.
3. Each tier's budget is split evenly across the assets selected in it.

All money math is Decimal. Weights sum to exactly 1 and amounts sum to
exactly the invested total.
"""

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from decimal import ROUND_DOWN, Decimal
from typing import Any

from dcaadvisor.core.errors import InvalidInput
from dcaadvisor.core.logging import get_logger
from dcaadvisor.core.models import Allocation, Asset, RiskProfile, RiskTier, to_decimal
from dcaadvisor.strategies.profiles import get_risk_profile, validate_tier_weights

logger = get_logger(__name__)

DEFAULT_TARGET_COUNT = 10
CENT = Decimal("0.01")
QUANTITY_STEP = Decimal("1e-8")


@dataclass
class AllocationPlan:
    """A complete allocation plan for one investment amount."""

    total_investment: Decimal
    risk_profile: RiskProfile
    allocations: list[Allocation]
    tier_weights: dict[RiskTier, Decimal]

    @property
    def tier_totals(self) -> dict[RiskTier, Decimal]:
        """Invested amount per tier."""
        totals = {tier: Decimal("0") for tier in RiskTier.ordered()}
        for alloc in self.allocations:
            totals[alloc.risk_tier] += alloc.amount
        return totals

    @property
    def risk_distribution(self) -> dict[RiskTier, Decimal]:
        """Fraction of the investment in each tier."""
        return {
            tier: amount / self.total_investment for tier, amount in self.tier_totals.items()
        }

    @property
    def asset_count(self) -> int:
        return len(self.allocations)

    def vs_all_in(self) -> str:
        """Narrative comparison of the diversified plan against a single-asset bet."""
        distribution = self.risk_distribution
        totals = self.tier_totals

        lines = ["DIVERSIFIED vs ALL-IN", "", "Your diversified plan:"]
        for tier in RiskTier.ordered():
            lines.append(
                f"  {tier.value:<12} {distribution[tier]:>6.1%}  (${totals[tier]:,.2f})"
            )
        lines.append(f"  Across {self.asset_count} assets")
        lines.extend(
            [
                "",
                "If all-in on a single asset:",
                f"  100% in ONE asset (${self.total_investment:,.2f})",
                f"  If it 10x: you make ${self.total_investment * 9:,.0f}",
                f"  If it drops 90%: you lose ${self.total_investment * Decimal('0.9'):,.0f}",
                "  If the project fails: you lose everything",
            ]
        )
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "total_investment": float(self.total_investment),
            "risk_profile": self.risk_profile.value,
            "asset_count": self.asset_count,
            "allocations": [a.to_dict() for a in self.allocations],
            "tier_totals": {t.value: float(v) for t, v in self.tier_totals.items()},
            "risk_distribution": {t.value: float(v) for t, v in self.risk_distribution.items()},
        }


def _allocatable_tier(asset: Asset) -> RiskTier:
    # Unclassified assets are treated as the riskiest bucket
    if asset.risk_tier == RiskTier.UNKNOWN:
        return RiskTier.SPECULATIVE
    return asset.risk_tier


def _group_by_tier(assets: list[Asset]) -> dict[RiskTier, list[Asset]]:
    """Group candidates per tier, most liquid first (market cap, then volume)."""
    indexed = list(enumerate(assets))
    indexed.sort(
        key=lambda item: (
            -(item[1].market_cap or Decimal("0")),
            -(item[1].volume_24h or Decimal("0")),
            item[0],
        )
    )
    groups: dict[RiskTier, list[Asset]] = {tier: [] for tier in RiskTier.ordered()}
    seen: set[str] = set()
    for _, asset in indexed:
        if asset.symbol in seen:
            continue
        seen.add(asset.symbol)
        groups[_allocatable_tier(asset)].append(asset)
    return groups


def _apportion(count: int, weights: dict[RiskTier, Decimal]) -> dict[RiskTier, int]:
    """Split ``count`` slots over tiers by largest remainder."""
    raw = {tier: weights[tier] * count for tier in RiskTier.ordered()}
    quotas = {tier: int(value) for tier, value in raw.items()}
    remaining = count - sum(quotas.values())
    # Ties go to the more conservative tier (stable sort keeps tier order)
    by_remainder = sorted(
        (tier for tier in RiskTier.ordered() if weights[tier] > 0),
        key=lambda tier: raw[tier] - quotas[tier],
        reverse=True,
    )
    for tier in by_remainder[:remaining]:
        quotas[tier] += 1
    return quotas


def select_assets(
    assets: list[Asset],
    tier_weights: dict[RiskTier, Decimal],
    count: int,
) -> dict[RiskTier, list[Asset]]:
    """Pick up to ``count`` assets, greedily per tier, most conservative first.

    Returns:
        Selected assets per tier, in liquidity order
    """
    groups = _group_by_tier(assets)
    quotas = _apportion(count, tier_weights)
    selected: dict[RiskTier, list[Asset]] = {tier: [] for tier in RiskTier.ordered()}

    carry = 0
    for tier in RiskTier.ordered():
        if tier_weights[tier] <= 0:
            continue
        wanted = quotas[tier] + carry
        selected[tier] = groups[tier][:wanted]
        carry = wanted - len(selected[tier])

    # Speculative ran short: backfill from whatever is left, budgeted tiers first
    budgeted = [t for t in RiskTier.ordered() if tier_weights[t] > 0]
    unbudgeted = [t for t in RiskTier.ordered() if tier_weights[t] <= 0]
    for tier in budgeted:
        if carry <= 0:
            break
        extra = groups[tier][len(selected[tier]) : len(selected[tier]) + carry]
        selected[tier].extend(extra)
        carry -= len(extra)

    if not any(selected.values()):
        for tier in unbudgeted:
            if carry <= 0:
                break
            extra = groups[tier][:carry]
            selected[tier].extend(extra)
            carry -= len(extra)

    return selected


def _redistribute_budgets(
    tier_weights: dict[RiskTier, Decimal],
    selected: dict[RiskTier, list[Asset]],
) -> dict[RiskTier, Decimal]:
    """Move the budget of empty tiers to a neighbouring tier that has assets."""
    order = RiskTier.ordered()
    budgets = {tier: Decimal("0") for tier in order}
    for index, tier in enumerate(order):
        weight = tier_weights[tier]
        if weight <= 0:
            continue
        if selected[tier]:
            budgets[tier] += weight
            continue
        target = next((t for t in order[index + 1 :] if selected[t]), None)
        if target is None:
            target = next((t for t in reversed(order[:index]) if selected[t]), None)
        if target is not None:
            budgets[target] += weight
    return budgets


def _split_amounts(total: Decimal, weights: list[Decimal], minor_unit: Decimal) -> list[Decimal]:
    """Round weighted amounts to the minor unit; the pieces sum exactly to ``total``.

    Whole minor units are handed out by largest remainder. Any sub-unit residue
    of ``total`` itself lands on the last amount.
    """
    raw = [total * w / minor_unit for w in weights]
    units = [int(r) for r in raw]
    whole_total = int(total / minor_unit)
    leftover = whole_total - sum(units)
    order = sorted(range(len(raw)), key=lambda i: raw[i] - units[i], reverse=True)
    for i in order[: max(leftover, 0)]:
        units[i] += 1
    amounts = [Decimal(u) * minor_unit for u in units]
    amounts[-1] += total - sum(amounts, Decimal("0"))
    return amounts


def calculate_allocations(
    total_investment: Decimal | float | int | str,
    risk_profile: RiskProfile | str,
    assets: list[Asset],
    target_count: int = DEFAULT_TARGET_COUNT,
    tier_weights: dict[RiskTier, Decimal] | None = None,
    minor_unit: Decimal = CENT,
) -> AllocationPlan:
    """
    Compute a diversified DCA allocation.

    Args:
        total_investment: Amount to invest (must be positive)
        risk_profile: Investor risk profile
        assets: Candidate assets with tier and current price
        target_count: Desired number of assets (clipped to candidates)
        tier_weights: Optional tier budget override for the profile
        minor_unit: Currency rounding step for amounts

    Returns:
        AllocationPlan whose weights sum to 1 and amounts to the total

    Raises:
        InvalidInput: Non-positive amount, no candidates or bad target count
    """
    total = to_decimal(total_investment)
    profile = RiskProfile.parse(risk_profile)

    if total <= 0:
        raise InvalidInput("Total investment must be positive")
    if not assets:
        raise InvalidInput("No candidate assets supplied")
    if target_count < 1:
        raise InvalidInput("Target asset count must be at least 1")

    weights = validate_tier_weights(
        tier_weights if tier_weights is not None else get_risk_profile(profile).tier_weights
    )
    count = min(target_count, len({a.symbol for a in assets}))

    selected = select_assets(assets, weights, count)
    budgets = _redistribute_budgets(weights, selected)

    ordered: list[tuple[Asset, Decimal]] = []
    for tier in RiskTier.ordered():
        picks = selected[tier]
        for asset in picks:
            ordered.append((asset, budgets[tier] / len(picks)))

    asset_weights = [w for _, w in ordered]
    asset_weights[-1] = Decimal("1") - sum(asset_weights[:-1], Decimal("0"))
    amounts = _split_amounts(total, asset_weights, minor_unit)

    allocations = []
    for (asset, _), weight, amount in zip(ordered, asset_weights, amounts, strict=True):
        valid = asset.current_price > 0
        quantity = (
            (amount / asset.current_price).quantize(QUANTITY_STEP, rounding=ROUND_DOWN)
            if valid
            else Decimal("0")
        )
        allocations.append(
            Allocation(
                asset_symbol=asset.symbol,
                risk_tier=_allocatable_tier(asset),
                weight_fraction=weight,
                amount=amount,
                quantity=quantity,
                valid=valid,
                rationale=f"{weight:.1%} to {asset.symbol} - {_allocatable_tier(asset).description}",
            )
        )

    invalid = [a.asset_symbol for a in allocations if not a.valid]
    if invalid:
        logger.warning("allocation_invalid_prices", symbols=invalid)

    logger.debug(
        "allocation_calculated",
        total=str(total),
        profile=profile.value,
        assets=len(allocations),
    )

    return AllocationPlan(
        total_investment=total,
        risk_profile=profile,
        allocations=allocations,
        tier_weights=weights,
    )


@dataclass(frozen=True)
class DCAScheduleEntry:
    """A single scheduled purchase."""

    date: datetime
    amount: Decimal
    executed: bool = False
    execution_price: Decimal | None = None


@dataclass(frozen=True)
class DCASchedule:
    """Equal periodic purchases spreading an investment over time."""

    total_amount: Decimal
    interval_days: int
    entries: tuple[DCAScheduleEntry, ...] = field(default_factory=tuple)

    @property
    def periods(self) -> int:
        return len(self.entries)

    @property
    def amount_per_period(self) -> Decimal:
        return self.entries[0].amount

    def next_purchase(self) -> DCAScheduleEntry | None:
        """First entry not yet executed."""
        return next((e for e in self.entries if not e.executed), None)

    def record_purchase(self, index: int, price: Decimal | float | str) -> "DCASchedule":
        """Return a new schedule with entry ``index`` marked as executed."""
        price = to_decimal(price)
        if price <= 0:
            raise InvalidInput("Execution price must be positive")
        if not 0 <= index < len(self.entries):
            raise InvalidInput(f"No scheduled purchase at index {index}")
        entries = list(self.entries)
        entries[index] = replace(entries[index], executed=True, execution_price=price)
        return replace(self, entries=tuple(entries))

    def average_price(self) -> Decimal | None:
        """Average cost per unit over executed purchases (total spent / units)."""
        executed = [e for e in self.entries if e.executed and e.execution_price]
        if not executed:
            return None
        spent = sum((e.amount for e in executed), Decimal("0"))
        units = sum((e.amount / e.execution_price for e in executed), Decimal("0"))
        return spent / units

    def completion(self) -> Decimal:
        """Fraction of scheduled purchases executed."""
        done = sum(1 for e in self.entries if e.executed)
        return Decimal(done) / Decimal(self.periods)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        average = self.average_price()
        return {
            "total_amount": float(self.total_amount),
            "periods": self.periods,
            "interval_days": self.interval_days,
            "amount_per_period": float(self.amount_per_period),
            "entries": [
                {
                    "date": e.date.date().isoformat(),
                    "amount": float(e.amount),
                    "executed": e.executed,
                }
                for e in self.entries
            ],
            "completion": float(self.completion()),
            "average_price": float(average) if average is not None else None,
        }


def build_schedule(
    total_amount: Decimal | float | int | str,
    risk_profile: RiskProfile | str | None = None,
    periods: int | None = None,
    interval_days: int | None = None,
    start: datetime | None = None,
    minor_unit: Decimal = CENT,
) -> DCASchedule:
    """
    Build a purchase schedule.

    Cadence defaults come from the risk profile: more conservative profiles
    buy smaller amounts more often.
    """
    total = to_decimal(total_amount)
    if total <= 0:
        raise InvalidInput("Total amount must be positive")

    if periods is None or interval_days is None:
        config = get_risk_profile(risk_profile or RiskProfile.CONSERVATIVE)
        periods = config.schedule_periods if periods is None else periods
        interval_days = config.schedule_interval_days if interval_days is None else interval_days

    if periods < 1:
        raise InvalidInput("Schedule needs at least one period")
    if interval_days < 1:
        raise InvalidInput("Interval must be at least one day")

    start = start or datetime.now(UTC)
    per_period = (total / periods).quantize(minor_unit, rounding=ROUND_DOWN)
    amounts = [per_period] * (periods - 1) + [total - per_period * (periods - 1)]
    entries = tuple(
        DCAScheduleEntry(date=start + timedelta(days=i * interval_days), amount=amount)
        for i, amount in enumerate(amounts)
    )
    return DCASchedule(total_amount=total, interval_days=interval_days, entries=entries)
