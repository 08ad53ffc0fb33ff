"""Tests for settings."""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from dcaadvisor.config import AgentSettings, Settings, StrategySettings, get_settings
from dcaadvisor.core.models import RiskProfile, RiskTier
from dcaadvisor.strategies.profiles import DEFAULT_RISK_BANDS


class TestSettings:
    """Tests for Settings loading."""

    def test_defaults(self):
        settings = Settings()

        assert settings.agent.max_iterations == 8
        assert settings.agent.max_retries == 2
        assert settings.provider.backend == "ollama"
        assert settings.system.price_source == "mock"
        assert not settings.has_anthropic_credentials

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("DCAADVISOR_AGENT_MAX_ITERATIONS", "3")
        monkeypatch.setenv("DCAADVISOR_PROVIDER_BACKEND", "anthropic")
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test")

        settings = Settings()

        assert settings.agent.max_iterations == 3
        assert settings.provider.backend == "anthropic"
        assert settings.has_anthropic_credentials

    def test_global_instance_cached(self):
        assert get_settings() is get_settings()

    def test_bounds_enforced(self):
        with pytest.raises(ValidationError):
            AgentSettings(max_iterations=0)


class TestStrategySettings:
    """Tests for strategy table overrides."""

    def test_default_weights(self):
        weights = StrategySettings().tier_weights_for(RiskProfile.CONSERVATIVE)

        assert weights[RiskTier.BLUE_CHIP] == Decimal("0.40")

    def test_weight_override(self):
        settings = StrategySettings(
            tier_weights={"moderate": {"blue_chip": 0.5, "large_cap": 0.5}}
        )
        weights = settings.tier_weights_for(RiskProfile.BALANCED)

        assert weights[RiskTier.BLUE_CHIP] == Decimal("0.5")
        assert weights[RiskTier.SPECULATIVE] == Decimal("0")

    def test_weight_override_must_sum_to_one(self):
        with pytest.raises(ValidationError):
            StrategySettings(tier_weights={"balanced": {"blue_chip": 0.5}})

    def test_band_override(self):
        assert StrategySettings().bands() == DEFAULT_RISK_BANDS

        bands = StrategySettings(risk_bands=[("blue_chip", 0.1, 0.9)]).bands()
        assert bands[0].tier == RiskTier.BLUE_CHIP
        assert bands[0].max_volatility == 0.1
