"""Tests for the DCA allocation calculator and purchase schedules."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from dcaadvisor.core.errors import InvalidInput
from dcaadvisor.core.models import Asset, RiskProfile, RiskTier
from dcaadvisor.strategies.dca import build_schedule, calculate_allocations

BC = RiskTier.BLUE_CHIP
LC = RiskTier.LARGE_CAP
MC = RiskTier.MID_CAP
SP = RiskTier.SPECULATIVE


def asset(symbol: str, tier: RiskTier, price: str, market_cap: str | None = None) -> Asset:
    return Asset(
        symbol=symbol,
        risk_tier=tier,
        current_price=Decimal(price),
        market_cap=Decimal(market_cap) if market_cap else None,
    )


@pytest.fixture
def ten_assets():
    """Ten candidates spread over all four tiers."""
    return [
        asset("BTC", BC, "97500"),
        asset("ETH", BC, "3450"),
        asset("SOL", LC, "195"),
        asset("ADA", LC, "0.95"),
        asset("DOT", LC, "7.20"),
        asset("LINK", MC, "24.50"),
        asset("MATIC", MC, "0.52"),
        asset("ATOM", MC, "9.80"),
        asset("DOGE", SP, "0.38"),
        asset("SHIB", SP, "0.000022"),
    ]


class TestCalculateAllocations:
    """Tests for calculate_allocations."""

    def test_conservative_thousand_dollars(self, ten_assets):
        """$1000 conservative across four tiers follows the 40/30/20/10 split."""
        plan = calculate_allocations(1000, "conservative", ten_assets)

        assert plan.asset_count >= 8
        totals = plan.tier_totals
        assert float(totals[BC]) == pytest.approx(400.0, abs=0.05)
        assert float(totals[LC]) == pytest.approx(300.0, abs=0.05)
        assert float(totals[MC]) == pytest.approx(200.0, abs=0.05)
        assert float(totals[SP]) == pytest.approx(100.0, abs=0.05)

    def test_weights_sum_to_one(self, ten_assets):
        """Weight fractions sum to exactly one."""
        for profile in RiskProfile:
            plan = calculate_allocations(Decimal("1234.56"), profile, ten_assets)
            total = sum(a.weight_fraction for a in plan.allocations)
            assert abs(total - Decimal("1")) <= Decimal("1e-9")

    def test_amounts_sum_to_total(self, ten_assets):
        """Amounts sum to the invested total and are whole cents."""
        plan = calculate_allocations("777.77", "aggressive", ten_assets)

        assert sum(a.amount for a in plan.allocations) == Decimal("777.77")
        for alloc in plan.allocations:
            assert alloc.amount == alloc.amount.quantize(Decimal("0.01"))

    def test_quantity_is_amount_over_price(self, ten_assets):
        """Quantity is amount divided by the current price."""
        plan = calculate_allocations(1000, "balanced", ten_assets)
        prices = {a.symbol: a.current_price for a in ten_assets}

        for alloc in plan.allocations:
            expected = alloc.amount / prices[alloc.asset_symbol]
            assert float(alloc.quantity) == pytest.approx(float(expected), rel=1e-6)

    def test_budget_split_evenly_within_tier(self, ten_assets):
        """Assets in the same tier get the same weight."""
        plan = calculate_allocations(1000, "conservative", ten_assets)
        by_symbol = {a.asset_symbol: a for a in plan.allocations}

        assert by_symbol["BTC"].weight_fraction == by_symbol["ETH"].weight_fraction
        assert by_symbol["SOL"].weight_fraction == by_symbol["ADA"].weight_fraction

    def test_ordered_most_conservative_first(self, ten_assets):
        """Allocations are ordered by tier."""
        plan = calculate_allocations(1000, "conservative", ten_assets)
        order = RiskTier.ordered()
        ranks = [order.index(a.risk_tier) for a in plan.allocations]

        assert ranks == sorted(ranks)

    def test_target_count_clips_selection(self, ten_assets):
        """Only target_count assets are selected, budgets of empty tiers move."""
        plan = calculate_allocations(1000, "conservative", ten_assets, target_count=3)

        assert [a.asset_symbol for a in plan.allocations] == ["BTC", "SOL", "LINK"]
        weights = [a.weight_fraction for a in plan.allocations]
        assert weights[0] == Decimal("0.40")
        assert weights[1] == Decimal("0.30")
        assert float(weights[2]) == pytest.approx(0.30)

    def test_missing_tier_falls_to_less_conservative(self):
        """Without blue chips, their budget goes to large caps."""
        assets = [asset("SOL", LC, "195"), asset("ADA", LC, "0.95"), asset("LINK", MC, "24.5")]
        plan = calculate_allocations(1000, "conservative", assets)
        by_symbol = {a.asset_symbol: a for a in plan.allocations}

        assert float(by_symbol["SOL"].weight_fraction) == pytest.approx(0.35)
        assert float(by_symbol["ADA"].weight_fraction) == pytest.approx(0.35)
        # Speculative budget has no less-conservative tier and falls back to mid caps
        assert float(by_symbol["LINK"].weight_fraction) == pytest.approx(0.30)

    def test_most_liquid_selected_first(self):
        """Higher market cap wins when a tier has more candidates than slots."""
        assets = [
            asset("AAA", BC, "10", market_cap="100"),
            asset("BBB", BC, "10", market_cap="900"),
        ]
        plan = calculate_allocations(
            100,
            "conservative",
            assets,
            target_count=1,
            tier_weights={BC: Decimal("1")},
        )

        assert [a.asset_symbol for a in plan.allocations] == ["BBB"]

    def test_unknown_tier_treated_as_speculative(self):
        """Unclassified assets land in the speculative bucket."""
        assets = [asset("BTC", BC, "97500"), asset("NEW", RiskTier.UNKNOWN, "1")]
        plan = calculate_allocations(100, "aggressive", assets)
        by_symbol = {a.asset_symbol: a for a in plan.allocations}

        assert by_symbol["NEW"].risk_tier == SP

    def test_non_positive_price_flagged_invalid(self):
        """Zero price gives zero quantity and an invalid flag."""
        assets = [asset("BTC", BC, "97500"), asset("ETH", BC, "0")]
        plan = calculate_allocations(100, "conservative", assets)
        eth = next(a for a in plan.allocations if a.asset_symbol == "ETH")

        assert eth.valid is False
        assert eth.quantity == Decimal("0")
        assert eth.amount > 0

    def test_duplicate_symbols_counted_once(self):
        """Repeated candidates are not allocated twice."""
        assets = [asset("BTC", BC, "97500"), asset("BTC", BC, "97500")]
        plan = calculate_allocations(100, "conservative", assets)

        assert [a.asset_symbol for a in plan.allocations] == ["BTC"]
        assert plan.allocations[0].amount == Decimal("100")

    @pytest.mark.parametrize("total", [0, -5, "0.00"])
    def test_rejects_non_positive_total(self, ten_assets, total):
        with pytest.raises(InvalidInput):
            calculate_allocations(total, "balanced", ten_assets)

    def test_rejects_empty_candidates(self):
        with pytest.raises(InvalidInput):
            calculate_allocations(1000, "balanced", [])

    def test_rejects_zero_target_count(self, ten_assets):
        with pytest.raises(InvalidInput):
            calculate_allocations(1000, "balanced", ten_assets, target_count=0)

    def test_rejects_bad_tier_weights(self, ten_assets):
        with pytest.raises(InvalidInput):
            calculate_allocations(1000, "balanced", ten_assets, tier_weights={BC: Decimal("0.5")})

    def test_risk_distribution_and_narrative(self, ten_assets):
        """The plan reports its tier split and compares against going all-in."""
        plan = calculate_allocations(1000, "conservative", ten_assets)

        assert float(plan.risk_distribution[BC]) == pytest.approx(0.40, abs=0.001)
        text = plan.vs_all_in()
        assert "DIVERSIFIED vs ALL-IN" in text
        assert "$1,000.00" in text

        data = plan.to_dict()
        assert data["risk_profile"] == "conservative"
        assert len(data["allocations"]) == plan.asset_count


class TestBuildSchedule:
    """Tests for build_schedule and DCASchedule."""

    def test_profile_defaults(self):
        """Conservative buys monthly for a year."""
        start = datetime(2025, 1, 1, tzinfo=UTC)
        schedule = build_schedule(1000, "conservative", start=start)

        assert schedule.periods == 12
        assert schedule.interval_days == 30
        assert schedule.entries[1].date == start + timedelta(days=30)

    def test_remainder_on_last_entry(self):
        schedule = build_schedule(1000, periods=12, interval_days=30)

        assert schedule.amount_per_period == Decimal("83.33")
        assert schedule.entries[-1].amount == Decimal("83.37")
        assert sum(e.amount for e in schedule.entries) == Decimal("1000")

    def test_aggressive_is_lump_heavier(self):
        schedule = build_schedule(1000, "aggressive")

        assert schedule.periods == 2
        assert schedule.amount_per_period == Decimal("500.00")

    def test_record_purchase_returns_new_schedule(self):
        """Recording a purchase leaves the original untouched."""
        schedule = build_schedule(200, periods=2, interval_days=7)
        updated = schedule.record_purchase(0, "10")

        assert schedule.entries[0].executed is False
        assert updated.entries[0].executed is True
        assert updated.next_purchase() == updated.entries[1]
        assert updated.completion() == Decimal("0.5")

    def test_average_price_is_cost_per_unit(self):
        """$100 at 10 and $100 at 20 buys 15 units for $200."""
        schedule = build_schedule(200, periods=2, interval_days=7)
        schedule = schedule.record_purchase(0, 10).record_purchase(1, 20)

        assert float(schedule.average_price()) == pytest.approx(200 / 15)

    def test_average_price_none_before_purchases(self):
        assert build_schedule(100, periods=4, interval_days=7).average_price() is None

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"total_amount": 0, "periods": 2, "interval_days": 7},
            {"total_amount": 100, "periods": 0, "interval_days": 7},
            {"total_amount": 100, "periods": 2, "interval_days": 0},
        ],
    )
    def test_rejects_invalid(self, kwargs):
        with pytest.raises(InvalidInput):
            build_schedule(**kwargs)

    def test_record_purchase_validates(self):
        schedule = build_schedule(100, periods=2, interval_days=7)

        with pytest.raises(InvalidInput):
            schedule.record_purchase(5, 10)
        with pytest.raises(InvalidInput):
            schedule.record_purchase(0, 0)
