"""
Oracle Outcome Resolver

Turns a price/confidence sample from an oracle feed into an event outcome:

    normalized = price / confidence
    |normalized| < draw_threshold  -> DRAW
    normalized > 0                 -> HOME
    otherwise                      -> AWAY

The synthetic score gives the winner round(|normalized|) (halves rounded
away from zero) and the loser one less, floored at zero. A draw reports
equal scores.

Feed fetches run on a worker pool and are bounded by fetch_timeout, so a
stalled oracle surfaces as NoFeedError instead of stalling settlement.
"""

import logging
import math
import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FetchTimeout
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Set

from risk_layer.errors import NoFeedError

logger = logging.getLogger(__name__)

TRADING = "trading"
DEFAULT_DRAW_THRESHOLD = 0.1
DEFAULT_FETCH_TIMEOUT = 5.0


class Winner(Enum):
    """Event result; also the side a bet is placed on."""
    HOME = "home"
    AWAY = "away"
    DRAW = "draw"


@dataclass(frozen=True)
class OracleSample:
    """A single oracle reading for an event."""
    event_id: str
    price: Optional[float]
    confidence: Optional[float]   # One-sigma uncertainty, > 0 when valid
    status: str = TRADING
    publish_time: Optional[float] = None


@dataclass(frozen=True)
class Score:
    home: int
    away: int


@dataclass(frozen=True)
class Outcome:
    """Resolved event outcome."""
    event_id: str
    winner: Winner
    score: Score
    confidence: float
    normalized: float

    def to_dict(self) -> dict:
        return {
            "event_id": self.event_id,
            "winner": self.winner.value,
            "score": {"home": self.score.home, "away": self.score.away},
            "confidence": self.confidence,
            "normalized": round(self.normalized, 6),
        }


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def decide_outcome(sample: OracleSample, draw_threshold: float = DEFAULT_DRAW_THRESHOLD) -> Outcome:
    """
    Apply the decision rule to a sample.

    Raises:
        NoFeedError: if the sample is not trading or has no usable confidence
    """
    if sample.status != TRADING:
        raise NoFeedError(sample.event_id, f"feed status is {sample.status!r}")
    if not _is_number(sample.confidence) or sample.confidence <= 0:
        raise NoFeedError(sample.event_id, f"invalid confidence {sample.confidence!r}")
    if not _is_number(sample.price):
        raise NoFeedError(sample.event_id, f"invalid price {sample.price!r}")

    normalized = sample.price / sample.confidence
    if not math.isfinite(normalized):
        raise NoFeedError(sample.event_id, f"normalized price {normalized!r} out of range")
    score_diff = math.floor(abs(normalized) + 0.5)

    if abs(normalized) < draw_threshold:
        winner = Winner.DRAW
        score = Score(home=score_diff, away=score_diff)
    elif normalized > 0:
        winner = Winner.HOME
        score = Score(home=score_diff, away=max(0, score_diff - 1))
    else:
        winner = Winner.AWAY
        score = Score(home=max(0, score_diff - 1), away=score_diff)

    return Outcome(
        event_id=sample.event_id,
        winner=winner,
        score=score,
        confidence=float(sample.confidence),
        normalized=normalized,
    )


class FeedSubscription(ABC):
    """Handle for a live feed subscription."""

    @abstractmethod
    def cancel(self) -> None:
        """Stop delivering samples. Idempotent."""


class OracleFeed(ABC):
    """Source of oracle samples keyed by event id."""

    @abstractmethod
    def fetch(self, event_id: str) -> Optional[OracleSample]:
        """Latest sample for the event, or None if the event has no feed."""

    @abstractmethod
    def subscribe(self, event_id: str, on_sample: Callable[[OracleSample], None]) -> FeedSubscription:
        """Call on_sample for every new sample until cancelled."""

    def close(self) -> None:
        """Release connections held by the feed."""


class OutcomeSubscription:
    """
    Streams outcomes for one event.

    Delivery and cancellation share a reentrant lock: once cancel()
    returns, no further outcome is delivered, including samples that were
    already in flight. The callback may cancel its own subscription.
    """

    def __init__(
        self,
        event_id: str,
        on_outcome: Callable[[Outcome], None],
        draw_threshold: float = DEFAULT_DRAW_THRESHOLD,
        on_release: Optional[Callable[["OutcomeSubscription"], None]] = None,
    ):
        self.event_id = event_id
        self._on_outcome = on_outcome
        self._draw_threshold = draw_threshold
        self._on_release = on_release
        self._lock = threading.RLock()
        self._active = True
        self._feed_subscription: Optional[FeedSubscription] = None
        self.delivered = 0

    @property
    def active(self) -> bool:
        return self._active

    def attach(self, feed_subscription: FeedSubscription) -> None:
        with self._lock:
            if self._active:
                self._feed_subscription = feed_subscription
                return
        feed_subscription.cancel()

    def deliver(self, sample: OracleSample) -> None:
        """Feed callback: decide and hand the outcome to the subscriber."""
        with self._lock:
            if not self._active:
                return
            if sample.event_id != self.event_id:
                return
            try:
                outcome = decide_outcome(sample, self._draw_threshold)
            except NoFeedError as e:
                logger.debug(f"Skipping oracle sample: {e}")
                return
            try:
                self._on_outcome(outcome)
                self.delivered += 1
            except Exception:
                logger.exception(f"Outcome callback failed for {self.event_id}")

    def cancel(self) -> None:
        """Stop callbacks and release the feed subscription. Idempotent."""
        with self._lock:
            if not self._active:
                return
            self._active = False
            feed_subscription = self._feed_subscription
            self._feed_subscription = None

        if feed_subscription is not None:
            feed_subscription.cancel()
        if self._on_release is not None:
            self._on_release(self)
        logger.debug(f"Outcome subscription for {self.event_id} cancelled")


class OracleResolver:
    """Resolves event outcomes from an oracle feed."""

    def __init__(
        self,
        feed: OracleFeed,
        draw_threshold: float = DEFAULT_DRAW_THRESHOLD,
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
        max_workers: int = 4,
    ):
        self.feed = feed
        self.draw_threshold = draw_threshold
        self.fetch_timeout = fetch_timeout
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="oracle-fetch"
        )
        self._subscriptions: Set[OutcomeSubscription] = set()
        self._lock = threading.Lock()

    def __enter__(self) -> "OracleResolver":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # =========================================================================
    # RESOLUTION
    # =========================================================================

    def _fetch(self, event_id: str) -> OracleSample:
        future = self._executor.submit(self.feed.fetch, event_id)
        try:
            sample = future.result(timeout=self.fetch_timeout)
        except FetchTimeout:
            future.cancel()
            logger.warning(f"⏱️ Oracle fetch for {event_id} timed out after {self.fetch_timeout}s")
            raise NoFeedError(event_id, f"oracle fetch timed out after {self.fetch_timeout}s") from None
        except NoFeedError:
            raise
        except Exception as e:
            logger.error(f"❌ Oracle fetch for {event_id} failed: {e}")
            raise NoFeedError(event_id, f"oracle fetch failed: {e}") from e

        if sample is None or sample.event_id != event_id:
            raise NoFeedError(event_id, "no valid price feed found")
        return sample

    def resolve(self, event_id: str) -> Outcome:
        """
        Resolve an event from the latest oracle sample.

        Raises:
            NoFeedError: if no usable sample is available in time
        """
        outcome = decide_outcome(self._fetch(event_id), self.draw_threshold)
        logger.info(
            f"🎯 Resolved {event_id}: {outcome.winner.value} "
            f"{outcome.score.home}-{outcome.score.away} (conf={outcome.confidence})"
        )
        return outcome

    def validate_event_data(self, event_id: str) -> bool:
        """True if the event currently has a usable oracle sample."""
        try:
            decide_outcome(self._fetch(event_id), self.draw_threshold)
            return True
        except NoFeedError:
            return False

    # =========================================================================
    # STREAMING
    # =========================================================================

    def subscribe(self, event_id: str, on_outcome: Callable[[Outcome], None]) -> OutcomeSubscription:
        """
        Deliver an outcome for every new sample of the event.

        Returns:
            OutcomeSubscription; call cancel() to stop
        """
        subscription = OutcomeSubscription(
            event_id, on_outcome, self.draw_threshold, on_release=self._release
        )
        with self._lock:
            self._subscriptions.add(subscription)
        try:
            subscription.attach(self.feed.subscribe(event_id, subscription.deliver))
        except Exception:
            subscription.cancel()
            raise
        logger.info(f"📡 Subscribed to outcomes for {event_id}")
        return subscription

    def _release(self, subscription: OutcomeSubscription) -> None:
        with self._lock:
            self._subscriptions.discard(subscription)

    def close(self) -> None:
        """Cancel live subscriptions and stop the fetch workers."""
        with self._lock:
            subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            subscription.cancel()
        self._executor.shutdown(wait=False, cancel_futures=True)

    def get_status(self) -> dict:
        with self._lock:
            active = len(self._subscriptions)
        return {
            "feed": type(self.feed).__name__,
            "draw_threshold": self.draw_threshold,
            "fetch_timeout": self.fetch_timeout,
            "active_subscriptions": active,
        }
