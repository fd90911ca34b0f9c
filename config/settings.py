"""
Risk-Control Configuration
Quota tiers, exposure alerting, rate categories and oracle settings
"""
from decimal import Decimal
from typing import Dict

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from risk_layer.quota_enforcer import QuotaLimits
from risk_layer.rate_limiter import BucketConfig, RateCategory


class RiskSettings(BaseSettings):
    """Main configuration for the risk-control plane"""

    # Quota tiers (platform currency)
    max_single_bet: Decimal = Field(default=Decimal("10000"), validation_alias="MAX_SINGLE_BET")
    max_daily: Decimal = Field(default=Decimal("25000"), validation_alias="MAX_DAILY")
    max_weekly: Decimal = Field(default=Decimal("100000"), validation_alias="MAX_WEEKLY")
    max_monthly: Decimal = Field(default=Decimal("250000"), validation_alias="MAX_MONTHLY")

    # Exposure alerting
    exposure_alert_threshold: Decimal = Field(
        default=Decimal("1000000"),
        validation_alias="EXPOSURE_ALERT_THRESHOLD",
    )

    # Rate limiting
    betting_rate_points: int = Field(default=5, validation_alias="BETTING_RATE_POINTS")
    betting_rate_duration: float = Field(default=60.0, validation_alias="BETTING_RATE_DURATION")
    api_rate_points: int = Field(default=100, validation_alias="API_RATE_POINTS")
    api_rate_duration: float = Field(default=60.0, validation_alias="API_RATE_DURATION")

    # Oracle
    oracle_draw_threshold: float = Field(default=0.1, validation_alias="ORACLE_DRAW_THRESHOLD")
    oracle_fetch_timeout: float = Field(default=5.0, validation_alias="ORACLE_FETCH_TIMEOUT")
    oracle_max_staleness: float = Field(default=60.0, validation_alias="ORACLE_MAX_STALENESS")
    hermes_http_endpoint: str = Field(
        default="https://hermes.pyth.network",
        validation_alias="HERMES_HTTP_ENDPOINT",
    )
    hermes_ws_endpoint: str = Field(
        default="wss://hermes.pyth.network/ws",
        validation_alias="HERMES_WS_ENDPOINT",
    )
    # JSON object: {"<event id>": "<hermes feed id>"}
    oracle_feed_ids: Dict[str, str] = Field(default_factory=dict, validation_alias="ORACLE_FEED_IDS")

    # Monitoring
    discord_webhook_url: str = Field(default="", validation_alias="DISCORD_WEBHOOK_URL")
    instance_id: str = Field(default="local", validation_alias="INSTANCE_ID")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",  # Ignore unknown env vars
        "populate_by_name": True,  # Allow both field name and alias
    }

    @field_validator(
        "max_single_bet", "max_daily", "max_weekly", "max_monthly",
        "exposure_alert_threshold",
    )
    @classmethod
    def _positive_amount(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @field_validator(
        "betting_rate_points", "betting_rate_duration",
        "api_rate_points", "api_rate_duration", "oracle_fetch_timeout",
    )
    @classmethod
    def _positive_rate(cls, v):
        if v <= 0:
            raise ValueError("must be positive")
        return v

    def quota_limits(self) -> QuotaLimits:
        return QuotaLimits(
            max_single_bet=self.max_single_bet,
            max_daily=self.max_daily,
            max_weekly=self.max_weekly,
            max_monthly=self.max_monthly,
        )

    def rate_configs(self) -> Dict[RateCategory, BucketConfig]:
        return {
            RateCategory.BETTING: BucketConfig(
                capacity=self.betting_rate_points,
                duration=self.betting_rate_duration,
            ),
            RateCategory.GENERAL_API: BucketConfig(
                capacity=self.api_rate_points,
                duration=self.api_rate_duration,
            ),
        }


# Global config instance
settings = RiskSettings()
