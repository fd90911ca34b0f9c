#!/usr/bin/env python3
"""
Discord Notification Sink for Remote Monitoring

Sends risk signals to Discord via webhook:
- High exposure alerts
- Rate limit breaches
- Service startup/shutdown

Signals are queued and posted from a background worker, so emit() never
blocks the component that raised the signal.

Usage:
    from utils.notifier import DiscordNotifier
    notifier = DiscordNotifier()
    limiter = RateLimiter(sink=notifier)
"""

import logging
import os
import queue
import threading
from datetime import datetime, timezone
from typing import Optional

import httpx

from risk_layer.signals import RiskSignal, SignalCategory, SignalSink

logger = logging.getLogger(__name__)

SIGNAL_STYLE = {
    SignalCategory.HIGH_EXPOSURE: ("⚠️ HIGH EXPOSURE", 0xFF6600, "Event"),
    SignalCategory.RATE_LIMITED: ("🚦 RATE LIMITED", 0xFFFF00, "Actor"),
}


class DiscordNotifier(SignalSink):
    """
    Discord webhook sink for remote monitoring.

    Set DISCORD_WEBHOOK_URL in your .env file.
    Get webhook URL from Discord: Server Settings > Integrations > Webhooks
    """

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        instance_id: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        max_queue: int = 1000,
    ):
        self.webhook_url = webhook_url or os.getenv("DISCORD_WEBHOOK_URL", "")
        self.enabled = bool(self.webhook_url)
        self.bot_name = "Risk Control Plane"
        self.instance_id = instance_id or os.getenv("INSTANCE_ID", "local")
        self._client = client or httpx.Client(timeout=10.0)
        self._queue: "queue.Queue[Optional[dict]]" = queue.Queue(maxsize=max_queue)
        self._worker: Optional[threading.Thread] = None
        self._worker_lock = threading.Lock()
        self.dropped = 0
        self._closed = False

        if self.enabled:
            logger.info("📣 Discord notifications enabled")
        else:
            logger.warning("📣 Discord notifications disabled (no webhook URL)")

    def _send(self, content: str, embeds: Optional[list] = None) -> bool:
        """Send message to Discord webhook."""
        if not self.enabled:
            return False

        payload = {"content": content}
        if embeds:
            payload["embeds"] = embeds

        try:
            resp = self._client.post(
                self.webhook_url,
                json=payload,
                headers={"Content-Type": "application/json"},
            )
            if resp.status_code not in (200, 204):
                logger.warning(f"Discord webhook failed: {resp.status_code}")
                return False
            return True
        except httpx.HTTPError as e:
            logger.error(f"Discord notification failed: {e}")
            return False

    def send_message(self, msg: str) -> bool:
        """
        Send a simple text message to Discord.

        Returns:
            True if sent successfully, False otherwise
        """
        if not self.enabled:
            logger.debug(f"Discord disabled, would send: {msg}")
            return False

        return self._send(msg)

    def is_configured(self) -> bool:
        """Check if Discord webhook is configured and valid."""
        if not self.webhook_url:
            return False
        return self.webhook_url.startswith("https://discord.com/api/webhooks/")

    def get_status(self) -> dict:
        """Get notifier status for diagnostics."""
        return {
            "enabled": self.enabled,
            "configured": self.is_configured(),
            "webhook_url_set": bool(self.webhook_url),
            "instance_id": self.instance_id,
            "queued": self._queue.qsize(),
            "dropped": self.dropped,
        }

    # =========================================================================
    # SIGNAL SINK
    # =========================================================================

    def emit(self, signal: RiskSignal) -> None:
        """Queue a signal for delivery. Ignored once close() has begun."""
        if not self.enabled:
            return
        embed = self._signal_embed(signal)
        with self._worker_lock:
            if self._closed:
                return
            self._ensure_worker()
            try:
                self._queue.put_nowait(embed)
            except queue.Full:
                self.dropped += 1
                logger.warning(f"📣 Discord queue full, dropped {signal.category.value} signal")

    def _signal_embed(self, signal: RiskSignal) -> dict:
        title, color, subject = SIGNAL_STYLE[signal.category]
        fields = [
            {"name": subject, "value": signal.subject_id, "inline": True},
            {"name": "Magnitude", "value": f"{signal.magnitude:,.2f}", "inline": True},
            {"name": "Instance", "value": self.instance_id, "inline": True},
        ]
        for key, value in signal.details.items():
            fields.append({"name": key, "value": str(value), "inline": True})
        return {
            "title": title,
            "color": color,
            "fields": fields,
            "timestamp": datetime.fromtimestamp(signal.timestamp, tz=timezone.utc).isoformat(),
        }

    def _ensure_worker(self) -> None:
        # Caller holds _worker_lock
        if self._worker is None or not self._worker.is_alive():
            self._worker = threading.Thread(
                target=self._run, name="discord-notifier", daemon=True
            )
            self._worker.start()

    def _run(self) -> None:
        while True:
            embed = self._queue.get()
            try:
                if embed is None:
                    return
                self._send("", embeds=[embed])
            finally:
                self._queue.task_done()

    def close(self, timeout: float = 10.0) -> None:
        """Deliver queued signals, then stop the worker."""
        with self._worker_lock:
            worker = self._worker
            self._closed = True
        if worker is not None and worker.is_alive():
            self._queue.put(None)
            worker.join(timeout=timeout)
        self._client.close()

    # =========================================================================
    # LIFECYCLE MESSAGES
    # =========================================================================

    def on_startup(self, mode: str = "live") -> bool:
        """Send notification when the service starts."""
        embed = {
            "title": "🚀 Risk Control Plane Active",
            "description": f"**{self.bot_name}** is now running",
            "color": 0x00FF00,  # Green
            "fields": [
                {"name": "Mode", "value": mode.upper(), "inline": True},
                {"name": "Instance", "value": self.instance_id, "inline": True},
                {"name": "Started", "value": datetime.now(timezone.utc).isoformat(), "inline": False},
            ],
        }
        logger.info(f"📣 Sending startup notification (mode: {mode})")
        return self._send("", embeds=[embed])

    def on_shutdown(self, reason: str = "Manual stop") -> bool:
        """Send notification when the service shuts down."""
        embed = {
            "title": "🛑 Risk Control Plane Shutdown",
            "description": f"**{self.bot_name}** has stopped",
            "color": 0xFF0000,  # Red
            "fields": [
                {"name": "Reason", "value": reason, "inline": False},
                {"name": "Instance", "value": self.instance_id, "inline": True},
            ],
        }
        logger.info(f"📣 Sending shutdown notification (reason: {reason})")
        return self._send("", embeds=[embed])
