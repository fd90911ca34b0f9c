"""
Risk-control error kinds.

- RateLimitedError: transient, retry after backoff
- QuotaExceededError: policy rejection, holds until the window rolls
- NoFeedError: oracle data unavailable or stale, retry after a delay
"""

from decimal import Decimal
from typing import Optional


class RiskError(Exception):
    """Base class for risk-control errors."""
    retryable: bool = False


class RateLimitedError(RiskError):
    """Raised when an actor has no points left in a rate bucket."""
    retryable = True

    def __init__(self, actor_id: str, category: str, retry_after: float = 0.0):
        self.actor_id = actor_id
        self.category = category
        self.retry_after = retry_after
        super().__init__(
            f"Rate limit exceeded for {actor_id} ({category}), "
            f"retry in {retry_after:.1f}s"
        )


class QuotaExceededError(RiskError):
    """Raised when a bet would breach one of the quota tiers."""
    retryable = False

    def __init__(
        self,
        tier,
        attempted: Decimal,
        current_total: Decimal = Decimal("0"),
        limit: Optional[Decimal] = None,
    ):
        self.tier = tier
        self.attempted = attempted
        self.current_total = current_total
        self.limit = limit
        tier_name = getattr(tier, "value", tier)
        super().__init__(
            f"{tier_name} limit of {limit} would be exceeded "
            f"(current {current_total} + bet {attempted})"
        )


class NoFeedError(RiskError):
    """Raised when no usable oracle sample exists for an event."""
    retryable = True

    def __init__(self, event_id: str, reason: str = "no price feed"):
        self.event_id = event_id
        self.reason = reason
        super().__init__(f"No valid oracle feed for {event_id}: {reason}")
