"""
Per-Actor Token Bucket Rate Limiter

Keeps one bucket per (actor, category) pair:
- Betting: 5 points / 60s
- General API: 100 points / 60s

Buckets refill continuously at capacity/duration points per second and are
created on first use. This gate runs before any quota check so abusive
bursts are rejected cheaply.
"""

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from risk_layer.errors import RateLimitedError
from risk_layer.signals import RiskSignal, SignalCategory, SignalSink

logger = logging.getLogger(__name__)


class RateCategory(Enum):
    """Rate limit categories."""
    BETTING = "betting"          # Bet placement attempts
    GENERAL_API = "general_api"  # Everything else


@dataclass(frozen=True)
class BucketConfig:
    """Configuration for one category of buckets."""
    capacity: int      # Max points
    duration: float    # Seconds to refill an empty bucket

    @property
    def refill_rate(self) -> float:
        """Points per second."""
        return self.capacity / self.duration


DEFAULT_CATEGORY_CONFIGS: Dict[RateCategory, BucketConfig] = {
    RateCategory.BETTING: BucketConfig(capacity=5, duration=60.0),
    RateCategory.GENERAL_API: BucketConfig(capacity=100, duration=60.0),
}


class TokenBucket:
    """A single token bucket rate limiter."""

    def __init__(
        self,
        config: BucketConfig,
        name: str,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.capacity = config.capacity
        self.refill_rate = config.refill_rate
        self.tokens = float(config.capacity)
        self._clock = clock
        self.last_refill = clock()
        self.last_used = self.last_refill
        self.lock = threading.Lock()
        self.retired = False

        # Stats
        self.total_requests = 0
        self.total_throttled = 0

    def _refill(self) -> None:
        """Refill tokens based on elapsed time."""
        now = self._clock()
        elapsed = max(0.0, now - self.last_refill)
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    def acquire(self, tokens: int = 1) -> bool:
        """
        Try to acquire tokens (non-blocking).

        Returns:
            True if tokens acquired, False if rate limited or retired
        """
        with self.lock:
            if self.retired:
                return False

            self._refill()
            self.last_used = self.last_refill

            if self.tokens >= tokens:
                self.tokens -= tokens
                self.total_requests += 1
                return True

            self.total_throttled += 1
            return False

    def retry_after(self, tokens: int = 1) -> float:
        """Seconds until `tokens` points are available."""
        with self.lock:
            self._refill()
            needed = tokens - self.tokens
            return max(0.0, needed / self.refill_rate)

    def retire_if_idle(self, idle_seconds: float) -> bool:
        """Mark the bucket retired if it is full and unused for idle_seconds."""
        with self.lock:
            self._refill()
            idle = self.last_refill - self.last_used
            if self.tokens >= self.capacity and idle >= idle_seconds:
                self.retired = True
            return self.retired

    def get_available(self) -> float:
        """Get current available tokens."""
        with self.lock:
            self._refill()
            return self.tokens

    def get_stats(self) -> dict:
        """Get bucket statistics."""
        return {
            "name": self.name,
            "available": round(self.get_available(), 1),
            "capacity": self.capacity,
            "refill_rate": round(self.refill_rate, 4),
            "total_requests": self.total_requests,
            "total_throttled": self.total_throttled,
        }


class RateLimiter:
    """
    Per-actor, per-category rate limiter.

    Each (actor, category) key owns its own bucket and lock, so actors
    never contend with each other except for the brief registry lookup
    that creates a bucket.
    """

    def __init__(
        self,
        configs: Optional[Dict[RateCategory, BucketConfig]] = None,
        sink: Optional[SignalSink] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.configs: Dict[RateCategory, BucketConfig] = dict(
            configs or DEFAULT_CATEGORY_CONFIGS
        )
        self._sink = sink
        self._clock = clock
        self._buckets: Dict[Tuple[str, RateCategory], TokenBucket] = {}
        self._registry_lock = threading.Lock()

        logger.info(
            "🚦 RateLimiter initialized: "
            + ", ".join(
                f"{category.value}={config.capacity}/{config.duration:.0f}s"
                for category, config in self.configs.items()
            )
        )

    def _get_bucket(self, actor_id: str, category: RateCategory) -> TokenBucket:
        key = (actor_id, category)
        with self._registry_lock:
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = TokenBucket(
                    self.configs[category],
                    f"{category.value}:{actor_id}",
                    clock=self._clock,
                )
                self._buckets[key] = bucket
            return bucket

    # =========================================================================
    # TOKEN ACQUISITION
    # =========================================================================

    def allow(self, actor_id: str, category: RateCategory = RateCategory.BETTING) -> bool:
        """
        Consume one point for the actor in the given category.

        Returns:
            True if a point was available, False if rate limited
        """
        category = RateCategory(category)
        while True:
            bucket = self._get_bucket(actor_id, category)
            if bucket.acquire():
                return True
            if not bucket.retired:
                break

        retry_after = bucket.retry_after()
        logger.warning(
            f"🚦 Rate limited: {actor_id} ({category.value}), "
            f"retry in {retry_after:.1f}s"
        )
        self._emit(actor_id, category, retry_after)
        return False

    def consume(self, actor_id: str, category: RateCategory = RateCategory.BETTING) -> None:
        """
        Consume one point or raise.

        Raises:
            RateLimitedError: if the bucket is empty
        """
        category = RateCategory(category)
        if not self.allow(actor_id, category):
            retry_after = self._get_bucket(actor_id, category).retry_after()
            raise RateLimitedError(actor_id, category.value, retry_after)

    def check_betting_limit(self, actor_id: str) -> None:
        """Raise RateLimitedError if the actor is placing bets too fast."""
        self.consume(actor_id, RateCategory.BETTING)

    def check_api_limit(self, actor_id: str) -> None:
        """Raise RateLimitedError if the actor is making too many requests."""
        self.consume(actor_id, RateCategory.GENERAL_API)

    def _emit(self, actor_id: str, category: RateCategory, retry_after: float) -> None:
        if self._sink is None:
            return
        try:
            self._sink.emit(RiskSignal(
                category=SignalCategory.RATE_LIMITED,
                subject_id=actor_id,
                magnitude=retry_after,
                details={"rate_category": category.value},
            ))
        except Exception as e:
            logger.error(f"Failed to emit rate limit signal: {e}")

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    def evict_idle(self, idle_seconds: float) -> int:
        """
        Drop buckets that are full and have been idle for idle_seconds.

        Returns:
            Number of buckets evicted
        """
        with self._registry_lock:
            idle_keys = [
                key for key, bucket in self._buckets.items()
                if bucket.retire_if_idle(idle_seconds)
            ]
            for key in idle_keys:
                del self._buckets[key]

        if idle_keys:
            logger.debug(f"Evicted {len(idle_keys)} idle rate buckets")
        return len(idle_keys)

    # =========================================================================
    # STATUS
    # =========================================================================

    def get_available(self, actor_id: str, category: RateCategory = RateCategory.BETTING) -> float:
        """Points currently available for the actor."""
        return self._get_bucket(actor_id, RateCategory(category)).get_available()

    def get_status(self) -> dict:
        """Get rate limiter status."""
        with self._registry_lock:
            buckets = list(self._buckets.values())
        return {
            "categories": {
                category.value: {
                    "capacity": config.capacity,
                    "duration": config.duration,
                }
                for category, config in self.configs.items()
            },
            "active_buckets": len(buckets),
            "total_requests": sum(b.total_requests for b in buckets),
            "total_throttled": sum(b.total_throttled for b in buckets),
        }

    def __repr__(self) -> str:
        status = self.get_status()
        return (
            f"RateLimiter("
            f"buckets={status['active_buckets']}, "
            f"requests={status['total_requests']}, "
            f"throttled={status['total_throttled']})"
        )
