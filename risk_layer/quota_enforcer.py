"""
Quota Enforcer - Multi-Tier Betting Limits

Every bet passes through here after the rate limiter.

Enforces, in order:
- Single Bet Limit: reject any bet above max_single_bet
- Daily Limit: sum of the last 24h plus the bet must stay <= max_daily
- Weekly Limit: same over 168h against max_weekly
- Monthly Limit: same over 720h against max_monthly

Windows are recomputed from the full per-actor history on every call, so
out-of-order timestamps are handled exactly. The check and the append run
under one per-actor lock.
"""

import dataclasses
import logging
import math
import threading
import time
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Callable, Dict, List, Optional

from risk_layer.errors import QuotaExceededError

logger = logging.getLogger(__name__)

HOUR = 3600.0


class QuotaTier(Enum):
    """Quota limit tiers."""
    SINGLE = "single"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


# Window length in hours for each time-based tier
WINDOW_HOURS: Dict[QuotaTier, int] = {
    QuotaTier.DAILY: 24,
    QuotaTier.WEEKLY: 168,
    QuotaTier.MONTHLY: 720,
}


def to_amount(value) -> Decimal:
    """Convert an int, float, str or Decimal to a Decimal amount."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Invalid amount: {value!r}")
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValueError(f"Invalid amount: {value!r}") from None


def to_timestamp(value) -> float:
    """Convert an epoch-seconds value to a finite float."""
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise ValueError(f"Invalid timestamp: {value!r}")
    timestamp = float(value)
    if not math.isfinite(timestamp):
        raise ValueError(f"Invalid timestamp: {value!r}")
    return timestamp


@dataclass(frozen=True)
class QuotaLimits:
    """Betting limits per tier. Replaced as a whole, never mutated."""
    max_single_bet: Decimal = Decimal("10000")
    max_daily: Decimal = Decimal("25000")
    max_weekly: Decimal = Decimal("100000")
    max_monthly: Decimal = Decimal("250000")

    def __post_init__(self):
        for f in dataclasses.fields(self):
            value = to_amount(getattr(self, f.name))
            if not value.is_finite() or value <= 0:
                raise ValueError(f"{f.name} must be positive, got {value}")
            object.__setattr__(self, f.name, value)

    def limit_for(self, tier: QuotaTier) -> Decimal:
        return {
            QuotaTier.SINGLE: self.max_single_bet,
            QuotaTier.DAILY: self.max_daily,
            QuotaTier.WEEKLY: self.max_weekly,
            QuotaTier.MONTHLY: self.max_monthly,
        }[tier]

    def merge(self, **partial) -> "QuotaLimits":
        """Return new limits with the given tiers replaced."""
        return dataclasses.replace(self, **partial)

    def to_dict(self) -> dict:
        return {f.name: str(getattr(self, f.name)) for f in dataclasses.fields(self)}


@dataclass(frozen=True)
class BetEntry:
    """An admitted bet as seen by the enforcer."""
    amount: Decimal
    timestamp: float


@dataclass
class ActorActivity:
    """Per-actor bet history. Append-only."""
    actor_id: str
    bets: List[BetEntry] = field(default_factory=list)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def period_total(self, now: float, hours: int) -> Decimal:
        """Sum of amounts with timestamp >= now - hours."""
        period_start = now - hours * HOUR
        return sum(
            (bet.amount for bet in self.bets if bet.timestamp >= period_start),
            Decimal("0"),
        )


@dataclass(frozen=True)
class QuotaDecision:
    """Result of a quota validation."""
    accepted: bool
    tier: Optional[QuotaTier] = None
    reason: str = ""
    amount: Decimal = Decimal("0")
    current_total: Decimal = Decimal("0")
    limit: Optional[Decimal] = None

    def __bool__(self) -> bool:
        return self.accepted

    def raise_for_rejection(self) -> None:
        """Raise QuotaExceededError if the bet was rejected."""
        if not self.accepted:
            raise QuotaExceededError(
                self.tier, self.amount, self.current_total, self.limit
            )


@dataclass(frozen=True)
class ComplianceReport:
    """Read-only view of an actor's windowed volumes."""
    total_bets: int
    daily_volume: Decimal
    weekly_volume: Decimal
    monthly_volume: Decimal
    is_compliant: bool

    def to_dict(self) -> dict:
        return {
            "total_bets": self.total_bets,
            "daily_volume": str(self.daily_volume),
            "weekly_volume": str(self.weekly_volume),
            "monthly_volume": str(self.monthly_volume),
            "is_compliant": self.is_compliant,
        }


class QuotaEnforcer:
    """
    Multi-tier quota enforcer.

    Owns the per-actor activity registry for the lifetime of the service.
    Limits can be replaced at runtime through set_limits(); already admitted
    bets are never revisited.
    """

    def __init__(
        self,
        limits: Optional[QuotaLimits] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._limits = limits or QuotaLimits()
        self._clock = clock
        self._activities: Dict[str, ActorActivity] = {}
        self._registry_lock = threading.Lock()

        logger.info(
            f"🔒 QuotaEnforcer initialized:\n"
            f"   • MAX_SINGLE_BET: {self._limits.max_single_bet}\n"
            f"   • MAX_DAILY: {self._limits.max_daily}\n"
            f"   • MAX_WEEKLY: {self._limits.max_weekly}\n"
            f"   • MAX_MONTHLY: {self._limits.max_monthly}"
        )

    @property
    def limits(self) -> QuotaLimits:
        return self._limits

    def _activity(self, actor_id: str) -> ActorActivity:
        with self._registry_lock:
            activity = self._activities.get(actor_id)
            if activity is None:
                activity = ActorActivity(actor_id)
                self._activities[actor_id] = activity
            return activity

    # =========================================================================
    # VALIDATION
    # =========================================================================

    def validate(self, actor_id: str, amount, timestamp: Optional[float] = None) -> QuotaDecision:
        """
        Validate a bet and record it if every tier allows it.

        Args:
            actor_id: Stable bettor identifier
            amount: Positive bet amount in platform currency
            timestamp: Bet time in epoch seconds (defaults to now)

        Returns:
            QuotaDecision; rejected decisions carry the failing tier

        Raises:
            ValueError: if amount is not a positive number or timestamp is
                not a finite number
        """
        amount = to_amount(amount)
        if not amount.is_finite() or amount <= 0:
            raise ValueError(f"Invalid bet amount: {amount}")
        timestamp = to_timestamp(self._clock() if timestamp is None else timestamp)

        limits = self._limits
        if amount > limits.max_single_bet:
            return self._reject(actor_id, QuotaTier.SINGLE, amount, Decimal("0"), limits.max_single_bet)

        activity = self._activity(actor_id)
        with activity.lock:
            # Limits may have been replaced while waiting for the lock
            limits = self._limits
            if amount > limits.max_single_bet:
                return self._reject(actor_id, QuotaTier.SINGLE, amount, Decimal("0"), limits.max_single_bet)

            for tier, hours in WINDOW_HOURS.items():
                total = activity.period_total(timestamp, hours)
                limit = limits.limit_for(tier)
                if total + amount > limit:
                    return self._reject(actor_id, tier, amount, total, limit)

            activity.bets.append(BetEntry(amount, timestamp))

        logger.debug(f"✅ Bet {amount} admitted for {actor_id}")
        return QuotaDecision(accepted=True, reason="Bet within limits", amount=amount)

    def _reject(
        self,
        actor_id: str,
        tier: QuotaTier,
        amount: Decimal,
        total: Decimal,
        limit: Decimal,
    ) -> QuotaDecision:
        if tier is QuotaTier.SINGLE:
            reason = f"Bet {amount} exceeds maximum allowed amount of {limit}"
        else:
            reason = f"{tier.value.capitalize()} betting limit of {limit} would be exceeded"
        logger.warning(f"❌ {actor_id}: {reason}")
        return QuotaDecision(
            accepted=False,
            tier=tier,
            reason=reason,
            amount=amount,
            current_total=total,
            limit=limit,
        )

    # =========================================================================
    # REPORTING
    # =========================================================================

    def report(self, actor_id: str) -> ComplianceReport:
        """Windowed volumes for an actor, ending now. Does not mutate state."""
        with self._registry_lock:
            activity = self._activities.get(actor_id)
        if activity is None:
            zero = Decimal("0")
            return ComplianceReport(0, zero, zero, zero, True)

        now = self._clock()
        limits = self._limits
        with activity.lock:
            total_bets = len(activity.bets)
            daily = activity.period_total(now, WINDOW_HOURS[QuotaTier.DAILY])
            weekly = activity.period_total(now, WINDOW_HOURS[QuotaTier.WEEKLY])
            monthly = activity.period_total(now, WINDOW_HOURS[QuotaTier.MONTHLY])

        return ComplianceReport(
            total_bets=total_bets,
            daily_volume=daily,
            weekly_volume=weekly,
            monthly_volume=monthly,
            is_compliant=(
                daily <= limits.max_daily
                and weekly <= limits.max_weekly
                and monthly <= limits.max_monthly
            ),
        )

    # =========================================================================
    # ADMINISTRATION
    # =========================================================================

    def set_limits(self, **partial) -> QuotaLimits:
        """
        Merge new tier values into the current limits.

        Raises:
            TypeError: on an unknown tier name
            ValueError: on a non-positive tier value
        """
        with self._registry_lock:
            self._limits = self._limits.merge(**partial)
            limits = self._limits
        logger.info(f"🔧 Quota limits updated: {limits.to_dict()}")
        return limits

    # =========================================================================
    # STATUS
    # =========================================================================

    def get_status(self) -> dict:
        with self._registry_lock:
            actors = len(self._activities)
        return {
            "limits": self._limits.to_dict(),
            "tracked_actors": actors,
        }

    def __repr__(self) -> str:
        return (
            f"QuotaEnforcer("
            f"single={self._limits.max_single_bet}, "
            f"daily={self._limits.max_daily}, "
            f"actors={self.get_status()['tracked_actors']})"
        )
