#!/usr/bin/env python3
"""
Risk Gateway Test Suite - tests/test_gateway.py

End-to-end admission: rate limit -> quota -> record -> resolve -> settle.

Run with: python -m pytest tests/test_gateway.py -v
"""

import sys
import unittest
from decimal import Decimal
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.settings import RiskSettings
from risk_layer.errors import NoFeedError, QuotaExceededError, RateLimitedError
from risk_layer.exposure_aggregator import ExposureAggregator
from risk_layer.feeds import StaticOracleFeed
from risk_layer.gateway import RiskGateway
from risk_layer.oracle_resolver import OracleResolver, OracleSample, Winner
from risk_layer.quota_enforcer import QuotaEnforcer, QuotaTier
from risk_layer.rate_limiter import RateLimiter
from risk_layer.signals import FanoutSink, SignalSink

T0 = 1_700_000_000.0


class RecordingSink(SignalSink):
    def __init__(self):
        self.signals = []
        self.closed = False

    def emit(self, signal):
        self.signals.append(signal)

    def close(self):
        self.closed = True


class TestRiskGateway(unittest.TestCase):

    def setUp(self):
        self.sink = RecordingSink()
        self.feed = StaticOracleFeed([OracleSample("m1", 5.0, 2.0)])
        self.gateway = RiskGateway(
            rate_limiter=RateLimiter(sink=self.sink, clock=lambda: 0.0),
            enforcer=QuotaEnforcer(clock=lambda: T0),
            aggregator=ExposureAggregator(sink=self.sink, clock=lambda: T0),
            resolver=OracleResolver(self.feed),
            sink=self.sink,
        )

    def tearDown(self):
        self.gateway.close()

    # =========================================================================
    # ADMISSION
    # =========================================================================

    def test_accepts_valid_bet(self):
        decision = self.gateway.submit_bet("alice", "m1", 100, "home")
        self.assertTrue(decision)
        self.assertEqual(decision.amount, Decimal("100"))
        self.assertEqual(decision.side, Winner.HOME)
        self.assertEqual(decision.reason, "accepted")
        decision.raise_for_status()

    def test_sixth_attempt_rate_limited(self):
        for _ in range(5):
            self.assertTrue(self.gateway.submit_bet("alice", "m1", 10, Winner.HOME))

        decision = self.gateway.submit_bet("alice", "m1", 10, Winner.HOME)
        self.assertFalse(decision)
        self.assertIsInstance(decision.error, RateLimitedError)
        with self.assertRaises(RateLimitedError):
            decision.raise_for_status()

    def test_rate_limited_bet_not_counted_against_quota(self):
        for _ in range(6):
            self.gateway.submit_bet("alice", "m1", 1000, Winner.HOME)
        self.assertEqual(self.gateway.enforcer.report("alice").total_bets, 5)

    def test_quota_rejection(self):
        self.assertTrue(self.gateway.submit_bet("alice", "m1", 10000, Winner.HOME, T0))
        self.assertTrue(self.gateway.submit_bet("alice", "m1", 10000, Winner.HOME, T0))

        decision = self.gateway.submit_bet("alice", "m1", 10000, Winner.HOME, T0)
        self.assertFalse(decision)
        self.assertIsInstance(decision.error, QuotaExceededError)
        self.assertEqual(decision.error.tier, QuotaTier.DAILY)
        self.assertEqual(decision.error.limit, Decimal("25000"))

    def test_single_limit_rejection(self):
        decision = self.gateway.submit_bet("alice", "m1", 20000, Winner.AWAY)
        self.assertEqual(decision.error.tier, QuotaTier.SINGLE)

    def test_invalid_amount_consumes_no_rate_point(self):
        with self.assertRaises(ValueError):
            self.gateway.submit_bet("alice", "m1", 0, Winner.HOME)
        with self.assertRaises(ValueError):
            self.gateway.submit_bet("alice", "m1", 10, "nobody")
        self.assertEqual(self.gateway.rate_limiter.get_available("alice"), 5)

    def test_non_finite_timestamp_consumes_no_rate_point(self):
        for bad in (float("nan"), float("inf")):
            with self.assertRaises(ValueError):
                self.gateway.submit_bet("alice", "m1", 10000, Winner.HOME, timestamp=bad)
        self.assertEqual(self.gateway.rate_limiter.get_available("alice"), 5)
        self.assertEqual(self.gateway.enforcer.report("alice").total_bets, 0)

    # =========================================================================
    # RECORDING + SETTLEMENT
    # =========================================================================

    def test_full_bet_lifecycle(self):
        decision = self.gateway.submit_bet("alice", "m1", 100, Winner.HOME)
        self.assertTrue(decision)
        self.gateway.record_bet("alice", "m1", decision.amount, "2.5", side=decision.side)

        outcome = self.gateway.resolve_event("m1")
        self.assertEqual(outcome.winner, Winner.HOME)

        payout = self.gateway.aggregator.get_event_exposure("m1").by_side[outcome.winner]
        self.gateway.record_settlement("m1", outcome.winner, payout)

        analytics = self.gateway.aggregator.get_analytics()
        self.assertEqual(analytics.total_bets, 1)
        self.assertEqual(analytics.settlements_count, 1)
        self.assertEqual(self.gateway.aggregator.get_platform_stats().total_payout, Decimal("250"))

    def test_resolve_unknown_event(self):
        with self.assertRaises(NoFeedError):
            self.gateway.resolve_event("m404")

    def test_resolve_without_resolver(self):
        gateway = RiskGateway(RateLimiter(), QuotaEnforcer(), ExposureAggregator())
        with self.assertRaises(NoFeedError):
            gateway.resolve_event("m1")
        self.assertIsNone(gateway.get_status()["oracle"])
        gateway.close()

    # =========================================================================
    # ADMINISTRATION
    # =========================================================================

    def test_update_limits(self):
        self.gateway.update_limits(max_single_bet=50)
        decision = self.gateway.submit_bet("alice", "m1", 51, Winner.HOME)
        self.assertEqual(decision.error.tier, QuotaTier.SINGLE)

    def test_set_alert_threshold(self):
        self.gateway.set_alert_threshold(100)
        self.gateway.record_bet("alice", "m1", 60, 2)
        self.assertEqual(len(self.sink.signals), 1)

    def test_status(self):
        self.gateway.submit_bet("alice", "m1", 100, Winner.HOME)
        status = self.gateway.get_status()
        self.assertEqual(status["rate_limiter"]["total_requests"], 1)
        self.assertEqual(status["quota"]["tracked_actors"], 1)
        self.assertEqual(status["oracle"]["feed"], "StaticOracleFeed")

    def test_close_closes_sink(self):
        self.gateway.close()
        self.assertTrue(self.sink.closed)


class TestGatewayFromSettings(unittest.TestCase):

    def test_builds_components_from_settings(self):
        settings = RiskSettings(
            _env_file=None,
            MAX_SINGLE_BET="500",
            BETTING_RATE_POINTS=2,
            EXPOSURE_ALERT_THRESHOLD="1000",
            DISCORD_WEBHOOK_URL="",
        )
        gateway = RiskGateway.from_settings(settings, feed=StaticOracleFeed())
        try:
            self.assertIsInstance(gateway.sink, FanoutSink)
            self.assertEqual(gateway.enforcer.limits.max_single_bet, Decimal("500"))
            self.assertEqual(gateway.aggregator.alert_threshold, Decimal("1000"))
            self.assertIsNotNone(gateway.resolver)

            self.assertTrue(gateway.submit_bet("alice", "m1", 10, Winner.HOME))
            self.assertTrue(gateway.submit_bet("alice", "m1", 10, Winner.HOME))
            self.assertFalse(gateway.submit_bet("alice", "m1", 10, Winner.HOME))
        finally:
            gateway.close()

    def test_no_feed_without_mapping(self):
        settings = RiskSettings(_env_file=None, ORACLE_FEED_IDS={}, DISCORD_WEBHOOK_URL="")
        gateway = RiskGateway.from_settings(settings)
        try:
            self.assertIsNone(gateway.resolver)
        finally:
            gateway.close()


if __name__ == "__main__":
    unittest.main(verbosity=2)
