"""
Oracle Feed Adapters

- StaticOracleFeed: in-memory samples pushed by the host process
- HermesOracleFeed: Pyth Hermes price service (REST for the latest sample,
  WebSocket stream for subscriptions)

Hermes reports price and conf as integers scaled by 10**expo. Event ids are
mapped to Hermes feed ids through configuration; an unmapped event has no
feed.
"""

import json
import threading
import time
from typing import Callable, Dict, List, Mapping, Optional

import httpx
import structlog
from websockets.exceptions import WebSocketException
from websockets.sync.client import connect

from risk_layer.errors import NoFeedError
from risk_layer.oracle_resolver import TRADING, FeedSubscription, OracleFeed, OracleSample

log = structlog.get_logger()

STALE = "stale"
UNKNOWN = "unknown"

SampleCallback = Callable[[OracleSample], None]


# =============================================================================
# In-memory feed
# =============================================================================

class _StaticSubscription(FeedSubscription):

    def __init__(self, feed: "StaticOracleFeed", event_id: str, on_sample: SampleCallback):
        self._feed = feed
        self.event_id = event_id
        self.on_sample = on_sample

    def cancel(self) -> None:
        self._feed._remove(self)


class StaticOracleFeed(OracleFeed):
    """Feed backed by samples published from the host process."""

    def __init__(self, samples: Optional[List[OracleSample]] = None):
        self._samples: Dict[str, OracleSample] = {}
        self._listeners: Dict[str, List[_StaticSubscription]] = {}
        self._lock = threading.Lock()
        for sample in samples or []:
            self._samples[sample.event_id] = sample

    def publish(self, sample: OracleSample) -> None:
        """Store a sample and push it to the event's subscribers."""
        with self._lock:
            self._samples[sample.event_id] = sample
            listeners = list(self._listeners.get(sample.event_id, []))
        for listener in listeners:
            listener.on_sample(sample)

    def fetch(self, event_id: str) -> Optional[OracleSample]:
        with self._lock:
            return self._samples.get(event_id)

    def subscribe(self, event_id: str, on_sample: SampleCallback) -> FeedSubscription:
        subscription = _StaticSubscription(self, event_id, on_sample)
        with self._lock:
            self._listeners.setdefault(event_id, []).append(subscription)
        return subscription

    def subscriber_count(self, event_id: str) -> int:
        with self._lock:
            return len(self._listeners.get(event_id, []))

    def _remove(self, subscription: _StaticSubscription) -> None:
        with self._lock:
            listeners = self._listeners.get(subscription.event_id, [])
            if subscription in listeners:
                listeners.remove(subscription)


# =============================================================================
# Pyth Hermes feed
# =============================================================================

def _normalize_id(feed_id: str) -> str:
    return feed_id.lower().removeprefix("0x")


class HermesStream(FeedSubscription):
    """Background WebSocket listener for one Hermes price feed."""

    RECV_TIMEOUT = 1.0
    RECONNECT_DELAY = 5.0

    def __init__(self, feed: "HermesOracleFeed", event_id: str, feed_id: str, on_sample: SampleCallback):
        self._feed = feed
        self.event_id = event_id
        self.feed_id = feed_id
        self._on_sample = on_sample
        self._stop = threading.Event()
        self._thread = threading.Thread(
            target=self._run, name=f"hermes-{event_id}", daemon=True
        )

    def start(self) -> "HermesStream":
        self._thread.start()
        return self

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                with connect(self._feed.ws_endpoint, open_timeout=self._feed.timeout) as ws:
                    ws.send(json.dumps({"type": "subscribe", "ids": [self.feed_id]}))
                    log.info("hermes_stream_subscribed", event_id=self.event_id, feed_id=self.feed_id)
                    while not self._stop.is_set():
                        try:
                            message = ws.recv(timeout=self.RECV_TIMEOUT)
                        except TimeoutError:
                            continue
                        self._handle(message)
            except (WebSocketException, OSError) as e:
                log.warning("hermes_stream_disconnected", event_id=self.event_id, error=str(e))
            self._stop.wait(self.RECONNECT_DELAY)

    def _handle(self, message) -> None:
        """Deliver one message; a bad message never ends the stream."""
        try:
            sample = self._feed.parse_stream_message(self.event_id, message)
            if sample is not None and not self._stop.is_set():
                self._on_sample(sample)
        except Exception:
            log.exception("hermes_message_failed", event_id=self.event_id)

    def cancel(self) -> None:
        self._stop.set()
        if self._thread.is_alive() and threading.current_thread() is not self._thread:
            self._thread.join(timeout=self.RECV_TIMEOUT + self._feed.timeout)


class HermesOracleFeed(OracleFeed):
    """
    Pyth Hermes adapter.

    A sample is "trading" when its publish_time is within max_staleness
    seconds of now, otherwise "stale".
    """

    LATEST_PATH = "/api/latest_price_feeds"

    def __init__(
        self,
        feed_ids: Mapping[str, str],
        http_endpoint: str = "https://hermes.pyth.network",
        ws_endpoint: str = "wss://hermes.pyth.network/ws",
        timeout: float = 5.0,
        max_staleness: float = 60.0,
        client: Optional[httpx.Client] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.feed_ids = dict(feed_ids)
        self.http_endpoint = http_endpoint
        self.ws_endpoint = ws_endpoint
        self.timeout = timeout
        self.max_staleness = max_staleness
        self._clock = clock
        self._client = client or httpx.Client(base_url=http_endpoint, timeout=timeout)

    def fetch(self, event_id: str) -> Optional[OracleSample]:
        feed_id = self.feed_ids.get(event_id)
        if not feed_id:
            return None

        resp = self._client.get(self.LATEST_PATH, params={"ids[]": feed_id})
        resp.raise_for_status()

        for entry in resp.json():
            if _normalize_id(entry.get("id", "")) == _normalize_id(feed_id):
                return self.parse_price_feed(event_id, entry)
        return None

    def subscribe(self, event_id: str, on_sample: SampleCallback) -> FeedSubscription:
        feed_id = self.feed_ids.get(event_id)
        if not feed_id:
            raise NoFeedError(event_id, "no Hermes feed id configured")
        return HermesStream(self, event_id, feed_id, on_sample).start()

    def parse_price_feed(self, event_id: str, entry: dict) -> OracleSample:
        """Convert a Hermes price_feed object into a sample."""
        price = entry["price"]
        scale = 10.0 ** int(price["expo"])
        publish_time = price.get("publish_time")

        if publish_time is None:
            status = UNKNOWN
        elif self._clock() - float(publish_time) <= self.max_staleness:
            status = TRADING
        else:
            status = STALE

        return OracleSample(
            event_id=event_id,
            price=int(price["price"]) * scale,
            confidence=int(price["conf"]) * scale,
            status=entry.get("status", status),
            publish_time=float(publish_time) if publish_time is not None else None,
        )

    def parse_stream_message(self, event_id: str, message) -> Optional[OracleSample]:
        """Parse a WebSocket message; None for anything but a usable price update."""
        try:
            data = json.loads(message)
        except (TypeError, ValueError):
            log.warning("hermes_message_invalid", event_id=event_id)
            return None

        if not isinstance(data, dict) or data.get("type") != "price_update":
            return None
        try:
            return self.parse_price_feed(event_id, data["price_feed"])
        except (KeyError, TypeError, ValueError) as e:
            log.warning("hermes_price_update_invalid", event_id=event_id, error=str(e))
            return None

    def close(self) -> None:
        self._client.close()
