#!/usr/bin/env python3
"""
Signal Sink Test Suite - tests/test_signals.py

Run with: python -m pytest tests/test_signals.py -v
"""

import sys
import unittest
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from risk_layer.errors import NoFeedError, QuotaExceededError, RateLimitedError
from risk_layer.signals import FanoutSink, LogSink, RiskSignal, SignalCategory, SignalSink


class RecordingSink(SignalSink):
    def __init__(self):
        self.signals = []

    def emit(self, signal):
        self.signals.append(signal)


class BrokenSink(SignalSink):
    def emit(self, signal):
        raise RuntimeError("down")


class TestSignals(unittest.TestCase):

    def test_to_dict(self):
        signal = RiskSignal(SignalCategory.HIGH_EXPOSURE, "m1", 1.23456, timestamp=10.0, details={"threshold": 1.0})
        self.assertEqual(signal.to_dict(), {
            "category": "high_exposure",
            "subject_id": "m1",
            "magnitude": 1.2346,
            "timestamp": 10.0,
            "threshold": 1.0,
        })

    def test_fanout_survives_broken_sink(self):
        recorder = RecordingSink()
        fanout = FanoutSink([BrokenSink(), recorder])
        signal = RiskSignal(SignalCategory.RATE_LIMITED, "alice", 12.0)

        with self.assertLogs("risk_layer.signals", level="ERROR"):
            fanout.emit(signal)
        self.assertEqual(recorder.signals, [signal])

    def test_log_sink(self):
        LogSink().emit(RiskSignal(SignalCategory.RATE_LIMITED, "alice", 12.0))


class TestErrors(unittest.TestCase):

    def test_retryable_kinds(self):
        self.assertTrue(RateLimitedError("alice", "betting", 1.0).retryable)
        self.assertTrue(NoFeedError("m1").retryable)
        self.assertFalse(QuotaExceededError("daily", 10).retryable)

    def test_messages(self):
        self.assertIn("alice", str(RateLimitedError("alice", "betting", 12.0)))
        self.assertIn("daily", str(QuotaExceededError("daily", 10, 5, 12)))
        self.assertIn("m1", str(NoFeedError("m1", "stale")))


if __name__ == "__main__":
    unittest.main(verbosity=2)
