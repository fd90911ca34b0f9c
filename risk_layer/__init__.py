"""
Wagering Risk-Control Plane

Core Components:
- RateLimiter: per-actor token buckets (betting + general API)
- QuotaEnforcer: single / daily / weekly / monthly betting limits
- ExposureAggregator: per-event exposure, alerts, platform analytics
- OracleResolver: price/confidence samples -> event outcomes
- RiskGateway: the composed bet admission and settlement surface
"""

from risk_layer.errors import RiskError, RateLimitedError, QuotaExceededError, NoFeedError
from risk_layer.rate_limiter import RateLimiter, RateCategory, BucketConfig, TokenBucket
from risk_layer.quota_enforcer import (
    QuotaEnforcer,
    QuotaLimits,
    QuotaTier,
    QuotaDecision,
    ComplianceReport,
)
from risk_layer.oracle_resolver import (
    OracleResolver,
    OracleFeed,
    OracleSample,
    Outcome,
    Score,
    Winner,
    OutcomeSubscription,
    decide_outcome,
)
from risk_layer.exposure_aggregator import ExposureAggregator, Analytics, BetRecord
from risk_layer.feeds import StaticOracleFeed, HermesOracleFeed
from risk_layer.signals import RiskSignal, SignalCategory, SignalSink, LogSink, FanoutSink
from risk_layer.gateway import RiskGateway, BetDecision

__all__ = [
    # Errors
    "RiskError",
    "RateLimitedError",
    "QuotaExceededError",
    "NoFeedError",
    # Rate Limiter
    "RateLimiter",
    "RateCategory",
    "BucketConfig",
    "TokenBucket",
    # Quota Enforcer
    "QuotaEnforcer",
    "QuotaLimits",
    "QuotaTier",
    "QuotaDecision",
    "ComplianceReport",
    # Oracle
    "OracleResolver",
    "OracleFeed",
    "OracleSample",
    "Outcome",
    "Score",
    "Winner",
    "OutcomeSubscription",
    "decide_outcome",
    "StaticOracleFeed",
    "HermesOracleFeed",
    # Analytics
    "ExposureAggregator",
    "Analytics",
    "BetRecord",
    # Signals
    "RiskSignal",
    "SignalCategory",
    "SignalSink",
    "LogSink",
    "FanoutSink",
    # Gateway
    "RiskGateway",
    "BetDecision",
]
