"""Configuration management using Pydantic Settings."""

from decimal import Decimal
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from dcaadvisor.core.models import RiskProfile, RiskTier
from dcaadvisor.strategies.profiles import (
    DEFAULT_RISK_BANDS,
    RiskBand,
    get_risk_profile,
    validate_tier_weights,
)


class SystemSettings(BaseSettings):
    """System configuration."""

    model_config = SettingsConfigDict(env_prefix="DCAADVISOR_")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    json_logs: bool = False
    price_source: Literal["mock", "ccxt"] = "mock"


class AgentSettings(BaseSettings):
    """Reasoning loop configuration."""

    model_config = SettingsConfigDict(env_prefix="DCAADVISOR_AGENT_")

    max_iterations: int = Field(default=8, ge=1, le=50)
    max_retries: int = Field(default=2, ge=0, le=10)
    retry_initial_backoff: float = Field(default=0.5, ge=0.0, le=30.0)
    retry_max_backoff: float = Field(default=8.0, ge=0.0, le=120.0)
    provider_timeout: float = Field(default=60.0, gt=0.0, le=600.0)
    tool_timeout: float = Field(default=15.0, gt=0.0, le=300.0)
    inject_tool_descriptions: bool = True
    system_prompt: str | None = None


class ProviderSettings(BaseSettings):
    """Language-model backend configuration."""

    model_config = SettingsConfigDict(env_prefix="DCAADVISOR_PROVIDER_")

    backend: Literal["ollama", "anthropic"] = "ollama"
    model: str = "llama3.1"
    anthropic_model: str = "claude-sonnet-4-20250514"
    host: str = "http://localhost:11434"
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1024, ge=64, le=8192)
    native_tools: bool = True


class StrategySettings(BaseSettings):
    """Strategy engine configuration."""

    model_config = SettingsConfigDict(env_prefix="DCAADVISOR_STRATEGY_")

    target_asset_count: int = Field(default=10, ge=1, le=50)
    currency_minor_unit: Decimal = Decimal("0.01")
    periods_per_year: int = Field(default=365, ge=1)
    history_days: int = Field(default=90, ge=2, le=1000)

    # Optional overrides: {"conservative": {"blue_chip": 0.5, ...}}
    tier_weights: dict[str, dict[str, float]] = Field(default_factory=dict)
    # Optional overrides: [["blue_chip", 0.035, 0.55], ...]
    risk_bands: list[tuple[str, float, float]] = Field(default_factory=list)
    # Optional symbol → tier overrides
    asset_tiers: dict[str, str] = Field(default_factory=dict)

    @field_validator("tier_weights")
    @classmethod
    def check_tier_weights(cls, v: dict[str, dict[str, float]]) -> dict[str, dict[str, float]]:
        """Reject override tables that do not sum to 1."""
        for profile, table in v.items():
            RiskProfile.parse(profile)
            validate_tier_weights({RiskTier(k): Decimal(str(w)) for k, w in table.items()})
        return v

    def tier_weights_for(self, profile: RiskProfile) -> dict[RiskTier, Decimal]:
        """Tier budget table for a profile, honoring overrides."""
        for name, table in self.tier_weights.items():
            if RiskProfile.parse(name) == profile:
                return validate_tier_weights(
                    {RiskTier(k): Decimal(str(w)) for k, w in table.items()}
                )
        return dict(get_risk_profile(profile).tier_weights)

    def bands(self) -> tuple[RiskBand, ...]:
        """Risk classification bands, honoring overrides."""
        if not self.risk_bands:
            return DEFAULT_RISK_BANDS
        return tuple(
            RiskBand(RiskTier(tier), max_volatility=vol, max_drawdown=dd)
            for tier, vol, dd in self.risk_bands
        )


class MarketSettings(BaseSettings):
    """Market data configuration."""

    model_config = SettingsConfigDict(env_prefix="DCAADVISOR_MARKET_")

    exchange: str = "binance"
    quote_currency: str = "USDT"
    history_timeframe: str = "1d"
    sandbox: bool = False


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # API Keys (from .env)
    anthropic_api_key: SecretStr = Field(default=SecretStr(""))

    # Sub-settings
    system: SystemSettings = Field(default_factory=SystemSettings)
    agent: AgentSettings = Field(default_factory=AgentSettings)
    provider: ProviderSettings = Field(default_factory=ProviderSettings)
    strategy: StrategySettings = Field(default_factory=StrategySettings)
    market: MarketSettings = Field(default_factory=MarketSettings)

    @property
    def has_anthropic_credentials(self) -> bool:
        """Check if Anthropic API key is configured."""
        return bool(self.anthropic_api_key.get_secret_value())


def load_settings() -> Settings:
    """Load settings from environment and config files."""
    return Settings()


# Global settings instance (lazy loaded)
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings
