"""
Risk Gateway - inbound surface of the risk-control plane

Placing a bet:   RateLimiter -> QuotaEnforcer -> (caller invokes Ledger) -> record_bet
Settling:        OracleResolver -> (caller pays out via Ledger) -> record_settlement

The gateway never calls the Ledger itself; it only returns decisions and
outcomes for the Ledger integration to act on.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Union

from risk_layer.errors import NoFeedError, QuotaExceededError, RateLimitedError
from risk_layer.exposure_aggregator import ExposureAggregator
from risk_layer.oracle_resolver import OracleFeed, OracleResolver, Outcome, Winner
from risk_layer.quota_enforcer import QuotaDecision, QuotaEnforcer, QuotaLimits, to_amount, to_timestamp
from risk_layer.rate_limiter import RateCategory, RateLimiter
from risk_layer.signals import FanoutSink, LogSink, SignalSink

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BetDecision:
    """Admission decision for a bet attempt."""
    accepted: bool
    actor_id: str
    event_id: str
    amount: Decimal
    side: Winner
    timestamp: Optional[float] = None
    error: Optional[Union[RateLimitedError, QuotaExceededError]] = None

    def __bool__(self) -> bool:
        return self.accepted

    @property
    def reason(self) -> str:
        return str(self.error) if self.error else "accepted"

    def raise_for_status(self) -> None:
        """Raise the rejection error, if any."""
        if self.error is not None:
            raise self.error


class RiskGateway:
    """
    Composes the rate limiter, quota enforcer, exposure aggregator and
    oracle resolver. All state lives in the components owned here.
    """

    def __init__(
        self,
        rate_limiter: RateLimiter,
        enforcer: QuotaEnforcer,
        aggregator: ExposureAggregator,
        resolver: Optional[OracleResolver] = None,
        sink: Optional[SignalSink] = None,
    ):
        self.rate_limiter = rate_limiter
        self.enforcer = enforcer
        self.aggregator = aggregator
        self.resolver = resolver
        self.sink = sink

    @classmethod
    def from_settings(
        cls,
        settings=None,
        feed: Optional[OracleFeed] = None,
        sink: Optional[SignalSink] = None,
    ) -> "RiskGateway":
        """
        Build every component from configuration.

        Without an explicit feed, a Hermes feed is created when the settings
        map at least one event to a feed id.
        """
        if settings is None:
            from config.settings import RiskSettings
            settings = RiskSettings()

        if sink is None:
            sinks = [LogSink()]
            if settings.discord_webhook_url:
                from utils.notifier import DiscordNotifier
                sinks.append(DiscordNotifier(
                    webhook_url=settings.discord_webhook_url,
                    instance_id=settings.instance_id,
                ))
            sink = FanoutSink(sinks)

        if feed is None and settings.oracle_feed_ids:
            from risk_layer.feeds import HermesOracleFeed
            feed = HermesOracleFeed(
                feed_ids=settings.oracle_feed_ids,
                http_endpoint=settings.hermes_http_endpoint,
                ws_endpoint=settings.hermes_ws_endpoint,
                timeout=settings.oracle_fetch_timeout,
                max_staleness=settings.oracle_max_staleness,
            )

        resolver = None
        if feed is not None:
            resolver = OracleResolver(
                feed,
                draw_threshold=settings.oracle_draw_threshold,
                fetch_timeout=settings.oracle_fetch_timeout,
            )

        return cls(
            rate_limiter=RateLimiter(settings.rate_configs(), sink=sink),
            enforcer=QuotaEnforcer(settings.quota_limits()),
            aggregator=ExposureAggregator(settings.exposure_alert_threshold, sink=sink),
            resolver=resolver,
            sink=sink,
        )

    # =========================================================================
    # BET PLACEMENT
    # =========================================================================

    def submit_bet(
        self,
        actor_id: str,
        event_id: str,
        amount,
        side: Union[Winner, str],
        timestamp: Optional[float] = None,
    ) -> BetDecision:
        """
        Rate limit, then quota check. On acceptance the caller invokes the
        Ledger and then record_bet().

        Raises:
            ValueError: on a non-positive amount, a non-finite timestamp or
                an unknown side
        """
        amount = to_amount(amount)
        if not amount.is_finite() or amount <= 0:
            raise ValueError(f"Invalid bet amount: {amount}")
        if timestamp is not None:
            timestamp = to_timestamp(timestamp)
        side = Winner(side)
        decision = dict(
            actor_id=actor_id, event_id=event_id, amount=amount,
            side=side, timestamp=timestamp,
        )

        try:
            self.rate_limiter.consume(actor_id, RateCategory.BETTING)
        except RateLimitedError as e:
            return BetDecision(accepted=False, error=e, **decision)

        quota: QuotaDecision = self.enforcer.validate(actor_id, amount, timestamp)
        if not quota.accepted:
            error = QuotaExceededError(quota.tier, quota.amount, quota.current_total, quota.limit)
            return BetDecision(accepted=False, error=error, **decision)

        logger.info(f"✅ Bet admitted: {actor_id} {amount} on {event_id} ({side.value})")
        return BetDecision(accepted=True, **decision)

    def record_bet(
        self,
        actor_id: str,
        event_id: str,
        amount,
        odds,
        side: Optional[Union[Winner, str]] = None,
        timestamp: Optional[float] = None,
    ) -> None:
        """Record a bet the Ledger has accepted. Never raises."""
        self.aggregator.record_bet(actor_id, event_id, amount, odds, timestamp, side=side)

    # =========================================================================
    # SETTLEMENT
    # =========================================================================

    def resolve_event(self, event_id: str) -> Outcome:
        """
        Raises:
            NoFeedError: if the oracle has no usable sample
        """
        if self.resolver is None:
            raise NoFeedError(event_id, "no oracle feed configured")
        return self.resolver.resolve(event_id)

    def record_settlement(
        self,
        event_id: str,
        winner: Union[Winner, str],
        total_payout,
        timestamp: Optional[float] = None,
    ) -> None:
        """Record a payout the Ledger has made. Never raises."""
        self.aggregator.record_settlement(event_id, winner, total_payout, timestamp)

    # =========================================================================
    # ADMINISTRATION
    # =========================================================================

    def update_limits(self, **partial) -> QuotaLimits:
        return self.enforcer.set_limits(**partial)

    def set_alert_threshold(self, value) -> None:
        self.aggregator.set_alert_threshold(value)

    def get_status(self) -> dict:
        return {
            "rate_limiter": self.rate_limiter.get_status(),
            "quota": self.enforcer.get_status(),
            "exposure": self.aggregator.get_status(),
            "oracle": self.resolver.get_status() if self.resolver else None,
        }

    def close(self) -> None:
        """Stop background workers owned by the gateway."""
        if self.resolver is not None:
            self.resolver.close()
            self.resolver.feed.close()
        if self.sink is not None:
            try:
                self.sink.close()
            except Exception as e:
                logger.error(f"Failed to close signal sink: {e}")
