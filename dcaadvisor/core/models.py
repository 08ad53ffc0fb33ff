"""Domain models for crypto portfolio advice.

Monetary values (prices, amounts, cost basis) are ``Decimal``. Allocation,
position and portfolio values are computed artifacts: they are recomputed,
never mutated in place.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from dcaadvisor.core.errors import InvalidInput


def to_decimal(value: Any) -> Decimal:
    """Convert a number (or numeric string) to Decimal without float artifacts."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise InvalidInput(f"Expected a number, got {value!r}")
    try:
        result = Decimal(str(value))
    except ArithmeticError as e:
        raise InvalidInput(f"Expected a number, got {value!r}") from e
    if not result.is_finite():
        raise InvalidInput(f"Expected a finite number, got {value!r}")
    return result


class RiskProfile(str, Enum):
    """Investor risk profile."""

    CONSERVATIVE = "conservative"
    BALANCED = "balanced"
    AGGRESSIVE = "aggressive"

    @classmethod
    def parse(cls, value: "str | RiskProfile") -> "RiskProfile":
        """Parse user/tool input, accepting ``moderate`` as balanced."""
        if isinstance(value, RiskProfile):
            return value
        normalized = str(value).strip().lower()
        if normalized == "moderate":
            return cls.BALANCED
        try:
            return cls(normalized)
        except ValueError as e:
            choices = ", ".join(p.value for p in cls)
            raise InvalidInput(f"Unknown risk profile '{value}' (expected one of: {choices})") from e


class RiskTier(str, Enum):
    """Asset risk tier, ordered from most to least conservative."""

    BLUE_CHIP = "blue_chip"
    LARGE_CAP = "large_cap"
    MID_CAP = "mid_cap"
    SPECULATIVE = "speculative"
    UNKNOWN = "unknown"

    @classmethod
    def ordered(cls) -> list["RiskTier"]:
        """Allocatable tiers, most conservative first."""
        return [cls.BLUE_CHIP, cls.LARGE_CAP, cls.MID_CAP, cls.SPECULATIVE]

    @property
    def description(self) -> str:
        return TIER_DESCRIPTIONS[self]


TIER_DESCRIPTIONS: dict[RiskTier, str] = {
    RiskTier.BLUE_CHIP: "Blue chip, lowest relative risk",
    RiskTier.LARGE_CAP: "Large cap, established project",
    RiskTier.MID_CAP: "Mid cap, higher risk",
    RiskTier.SPECULATIVE: "Speculative, high risk",
    RiskTier.UNKNOWN: "Not enough price movement to classify",
}


@dataclass(frozen=True)
class Asset:
    """A candidate asset for allocation."""

    symbol: str
    risk_tier: RiskTier
    current_price: Decimal
    name: str = ""
    market_cap: Decimal | None = None
    volume_24h: Decimal | None = None
    change_24h: Decimal | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "symbol", self.symbol.strip().upper())
        object.__setattr__(self, "current_price", to_decimal(self.current_price))


@dataclass(frozen=True)
class Allocation:
    """One line of a DCA allocation plan."""

    asset_symbol: str
    risk_tier: RiskTier
    weight_fraction: Decimal
    amount: Decimal
    quantity: Decimal
    valid: bool = True
    rationale: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "symbol": self.asset_symbol,
            "risk_tier": self.risk_tier.value,
            "weight": float(self.weight_fraction),
            "amount": float(self.amount),
            "quantity": float(self.quantity),
            "valid": self.valid,
            "rationale": self.rationale,
        }


@dataclass(frozen=True)
class Position:
    """A holding: quantity of an asset and the total amount paid for it."""

    asset_symbol: str
    quantity: Decimal
    cost_basis: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "asset_symbol", self.asset_symbol.strip().upper())
        quantity = to_decimal(self.quantity)
        cost_basis = to_decimal(self.cost_basis)
        if quantity < 0:
            raise InvalidInput(f"Position {self.asset_symbol} has negative quantity")
        if cost_basis < 0:
            raise InvalidInput(f"Position {self.asset_symbol} has negative cost basis")
        object.__setattr__(self, "quantity", quantity)
        object.__setattr__(self, "cost_basis", cost_basis)

    def pnl(self, current_price: Decimal) -> Decimal:
        """Unrealized P&L at the given price."""
        return current_price * self.quantity - self.cost_basis


@dataclass(frozen=True)
class Portfolio:
    """Ordered set of positions owned by one advisory session."""

    positions: tuple[Position, ...] = ()
    name: str = "default"

    def __post_init__(self) -> None:
        object.__setattr__(self, "positions", tuple(self.positions))
        seen: set[str] = set()
        for position in self.positions:
            if position.asset_symbol in seen:
                raise InvalidInput(f"Duplicate position for {position.asset_symbol}")
            seen.add(position.asset_symbol)

    @property
    def symbols(self) -> list[str]:
        return [p.asset_symbol for p in self.positions]


@dataclass(frozen=True)
class PricePoint:
    """A single historical price observation."""

    timestamp: datetime
    price: Decimal


@dataclass(frozen=True)
class Quote:
    """Current market quote for a symbol."""

    symbol: str
    price: Decimal
    timestamp: datetime
    source: str
    name: str = ""
    change_24h: Decimal | None = None
    market_cap: Decimal | None = None
    volume_24h: Decimal | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "symbol": self.symbol,
            "name": self.name,
            "price": float(self.price),
            "change_24h": float(self.change_24h) if self.change_24h is not None else None,
            "market_cap": float(self.market_cap) if self.market_cap is not None else None,
            "volume_24h": float(self.volume_24h) if self.volume_24h is not None else None,
            "timestamp": self.timestamp.isoformat(),
            "source": self.source,
        }
