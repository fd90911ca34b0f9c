#!/usr/bin/env python3
"""
Exposure Aggregator Test Suite - tests/test_exposure_aggregator.py

Proves exposure bookkeeping, high exposure alerts and analytics, and that
recording never raises into the caller.

Run with: python -m pytest tests/test_exposure_aggregator.py -v
"""

import sys
import threading
import unittest
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from risk_layer.exposure_aggregator import ExposureAggregator
from risk_layer.oracle_resolver import Winner
from risk_layer.signals import SignalCategory, SignalSink


class RecordingSink(SignalSink):
    def __init__(self):
        self.signals = []

    def emit(self, signal):
        self.signals.append(signal)


class BrokenSink(SignalSink):
    def emit(self, signal):
        raise RuntimeError("monitoring down")


class TestExposureAggregator(unittest.TestCase):

    def setUp(self):
        self.sink = RecordingSink()
        self.aggregator = ExposureAggregator(sink=self.sink, clock=lambda: 1000.0)

    # =========================================================================
    # ANALYTICS
    # =========================================================================

    def test_empty_analytics(self):
        analytics = self.aggregator.get_analytics()
        self.assertEqual(analytics.total_bets, 0)
        self.assertEqual(analytics.total_volume, Decimal("0"))
        self.assertEqual(analytics.avg_bet_size, Decimal("0"))
        self.assertEqual(analytics.settlements_count, 0)

    def test_analytics_after_bets(self):
        self.aggregator.record_bet("alice", "m1", 100, "2.0")
        self.aggregator.record_bet("bob", "m1", 300, "1.5")
        self.aggregator.record_bet("alice", "m2", 200, "3.0")

        analytics = self.aggregator.get_analytics()
        self.assertEqual(analytics.total_bets, 3)
        self.assertEqual(analytics.total_volume, Decimal("600"))
        self.assertEqual(analytics.avg_bet_size, Decimal("200"))
        self.assertEqual(analytics.to_dict()["total_volume"], "600")

    def test_actor_profile(self):
        self.aggregator.record_bet("alice", "m1", 100, 2)
        self.aggregator.record_bet("alice", "m2", 250, 2)
        profile = self.aggregator.get_actor_profile("alice")
        self.assertEqual(profile.total_bets, 2)
        self.assertEqual(profile.total_volume, Decimal("350"))
        self.assertEqual(self.aggregator.get_actor_profile("nobody").total_bets, 0)

    # =========================================================================
    # EXPOSURE
    # =========================================================================

    def test_event_exposure_is_amount_times_odds(self):
        self.aggregator.record_bet("alice", "m1", 100, "2.5", side=Winner.HOME)
        self.aggregator.record_bet("bob", "m1", 40, "3", side="away")
        self.aggregator.record_bet("carol", "m1", 10, "2")

        exposure = self.aggregator.get_event_exposure("m1")
        self.assertEqual(exposure.total, Decimal("390"))
        self.assertEqual(exposure.by_side[Winner.HOME], Decimal("250"))
        self.assertEqual(exposure.by_side[Winner.AWAY], Decimal("120"))
        self.assertNotIn(Winner.DRAW, exposure.by_side)
        self.assertEqual(exposure.bet_count, 3)

    def test_unknown_event_has_zero_exposure(self):
        exposure = self.aggregator.get_event_exposure("nothing")
        self.assertEqual(exposure.total, Decimal("0"))
        self.assertEqual(exposure.bet_count, 0)

    def test_high_exposure_alert(self):
        self.aggregator.record_bet("whale", "m1", 600000, 2)

        self.assertEqual(len(self.sink.signals), 1)
        signal = self.sink.signals[0]
        self.assertEqual(signal.category, SignalCategory.HIGH_EXPOSURE)
        self.assertEqual(signal.subject_id, "m1")
        self.assertEqual(signal.magnitude, 1200000.0)

    def test_no_alert_at_threshold(self):
        self.aggregator.record_bet("whale", "m1", 500000, 2)
        self.assertEqual(self.sink.signals, [])

    def test_alert_repeats_while_above_threshold(self):
        self.aggregator.record_bet("whale", "m1", 600000, 2)
        self.aggregator.record_bet("minnow", "m1", 1, 2)
        self.assertEqual(len(self.sink.signals), 2)

    def test_custom_threshold(self):
        self.aggregator.set_alert_threshold(100)
        self.aggregator.record_bet("alice", "m1", 60, 2)
        self.assertEqual(len(self.sink.signals), 1)
        self.assertEqual(self.aggregator.alert_threshold, Decimal("100"))

    # =========================================================================
    # FIRE-AND-CONTINUE
    # =========================================================================

    def test_broken_sink_does_not_raise(self):
        aggregator = ExposureAggregator(sink=BrokenSink())
        with self.assertLogs("risk_layer.exposure_aggregator", level="ERROR"):
            aggregator.record_bet("whale", "m1", 600000, 2)
        self.assertEqual(aggregator.get_analytics().total_bets, 1)

    def test_bad_input_is_logged_not_raised(self):
        with self.assertLogs("risk_layer.exposure_aggregator", level="ERROR"):
            self.aggregator.record_bet("alice", "m1", "not-a-number", 2)
        self.assertEqual(self.aggregator.get_analytics().total_bets, 0)

    def test_bad_settlement_is_logged_not_raised(self):
        with self.assertLogs("risk_layer.exposure_aggregator", level="ERROR"):
            self.aggregator.record_settlement("m1", "nobody-won", 100)
        self.assertEqual(self.aggregator.get_analytics().settlements_count, 0)

    # =========================================================================
    # SETTLEMENTS
    # =========================================================================

    def test_settlement_updates_platform_stats(self):
        self.aggregator.record_bet("alice", "m1", 100, 2, side=Winner.HOME)
        self.aggregator.record_settlement("m1", Winner.HOME, 200)
        self.aggregator.record_settlement("m2", "draw", "50.5")

        stats = self.aggregator.get_platform_stats()
        self.assertEqual(stats.total_settlements, 2)
        self.assertEqual(stats.total_payout, Decimal("250.5"))
        self.assertEqual(self.aggregator.get_analytics().settlements_count, 2)
        self.assertEqual(self.aggregator.get_event_exposure("m1").settled_winner, Winner.HOME)

    def test_status(self):
        self.aggregator.record_bet("alice", "m1", 100, 2)
        status = self.aggregator.get_status()
        self.assertEqual(status["total_bets"], 1)
        self.assertEqual(status["tracked_events"], 1)
        self.assertEqual(status["alert_threshold"], "1000000")

    # =========================================================================
    # CONCURRENCY
    # =========================================================================

    def test_concurrent_recording(self):
        threads = 16
        per_thread = 50
        barrier = threading.Barrier(threads)

        def record(index):
            barrier.wait()
            for _ in range(per_thread):
                self.aggregator.record_bet(f"actor-{index}", f"m{index % 4}", 10, 2)

        with ThreadPoolExecutor(max_workers=threads) as pool:
            list(pool.map(record, range(threads)))

        analytics = self.aggregator.get_analytics()
        self.assertEqual(analytics.total_bets, threads * per_thread)
        self.assertEqual(analytics.total_volume, Decimal(10 * threads * per_thread))

        total_exposure = sum(
            (self.aggregator.get_event_exposure(f"m{i}").total for i in range(4)),
            Decimal("0"),
        )
        self.assertEqual(total_exposure, Decimal(20 * threads * per_thread))


if __name__ == "__main__":
    unittest.main(verbosity=2)
