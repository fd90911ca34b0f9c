#!/usr/bin/env python3
"""
Entry Point Test Suite - tests/test_main.py

Runs the simulation mode end to end with Discord delivery stubbed out.

Run with: python -m pytest tests/test_main.py -v
"""

import sys
import unittest
from pathlib import Path
from unittest import mock

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import main
from utils.notifier import DiscordNotifier

WEBHOOK = "https://discord.com/api/webhooks/123/token"


class TestSimulationLifecycle(unittest.TestCase):

    def test_startup_and_shutdown_sent_with_webhook(self):
        with mock.patch.dict("os.environ", {"DISCORD_WEBHOOK_URL": WEBHOOK}), \
                mock.patch.object(DiscordNotifier, "_send", return_value=True) as send:
            self.assertTrue(main.run_simulation(actors=2, attempts=3))

        titles = [call.kwargs["embeds"][0]["title"] for call in send.call_args_list]
        self.assertEqual(titles[0], "🚀 Risk Control Plane Active")
        self.assertIn("🛑 Risk Control Plane Shutdown", titles)

    def test_no_lifecycle_messages_without_webhook(self):
        with mock.patch.dict("os.environ", {"DISCORD_WEBHOOK_URL": ""}), \
                mock.patch.object(DiscordNotifier, "on_startup") as on_startup, \
                mock.patch.object(DiscordNotifier, "on_shutdown") as on_shutdown:
            self.assertTrue(main.run_simulation(actors=2, attempts=3))

        on_startup.assert_not_called()
        on_shutdown.assert_not_called()


if __name__ == "__main__":
    unittest.main(verbosity=2)
