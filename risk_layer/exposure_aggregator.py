"""
Exposure Aggregator - Betting Analytics

Tracks admitted bets and settlements:
- Per-event exposure: sum(amount x odds), total and per side
- High exposure alert above a configurable threshold (default 1,000,000)
- Per-actor lifetime profile (bet count, volume)
- Platform totals (bets, volume, settlements, payout)

Recording is fire-and-continue: a failure inside the bookkeeping is logged
and never reaches the caller, so it can never revoke an admitted bet.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, Dict, List, Optional

from risk_layer.oracle_resolver import Winner
from risk_layer.quota_enforcer import to_amount
from risk_layer.signals import RiskSignal, SignalCategory, SignalSink

logger = logging.getLogger(__name__)

DEFAULT_ALERT_THRESHOLD = Decimal("1000000")


@dataclass(frozen=True)
class BetRecord:
    """An admitted bet."""
    actor_id: str
    event_id: str
    amount: Decimal
    odds: Decimal
    timestamp: float
    side: Optional[Winner] = None

    @property
    def liability(self) -> Decimal:
        return self.amount * self.odds


@dataclass(frozen=True)
class SettlementRecord:
    event_id: str
    winner: Winner
    total_payout: Decimal
    timestamp: float


@dataclass
class EventLedger:
    """Append-only bets for one event."""
    event_id: str
    bets: List[BetRecord] = field(default_factory=list)
    exposure: Decimal = Decimal("0")
    exposure_by_side: Dict[Winner, Decimal] = field(default_factory=dict)
    settled_winner: Optional[Winner] = None
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def recompute(self) -> None:
        self.exposure = sum((bet.liability for bet in self.bets), Decimal("0"))
        by_side: Dict[Winner, Decimal] = {}
        for bet in self.bets:
            if bet.side is not None:
                by_side[bet.side] = by_side.get(bet.side, Decimal("0")) + bet.liability
        self.exposure_by_side = by_side


@dataclass(frozen=True)
class EventExposure:
    event_id: str
    total: Decimal
    by_side: Dict[Winner, Decimal]
    bet_count: int
    settled_winner: Optional[Winner] = None


@dataclass(frozen=True)
class ActorProfile:
    total_bets: int = 0
    total_volume: Decimal = Decimal("0")


@dataclass(frozen=True)
class PlatformStats:
    total_settlements: int = 0
    total_payout: Decimal = Decimal("0")


@dataclass(frozen=True)
class Analytics:
    total_bets: int
    total_volume: Decimal
    avg_bet_size: Decimal
    settlements_count: int

    def to_dict(self) -> dict:
        return {
            "total_bets": self.total_bets,
            "total_volume": str(self.total_volume),
            "avg_bet_size": str(self.avg_bet_size),
            "settlements_count": self.settlements_count,
        }


class ExposureAggregator:
    """
    Running per-event and per-platform statistics.

    Each event ledger has its own lock; bets on different events are
    recorded fully in parallel. Platform totals and actor profiles sit
    behind one short-lived stats lock.
    """

    def __init__(
        self,
        alert_threshold=DEFAULT_ALERT_THRESHOLD,
        sink: Optional[SignalSink] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._alert_threshold = to_amount(alert_threshold)
        self._sink = sink
        self._clock = clock

        self._events: Dict[str, EventLedger] = {}
        self._registry_lock = threading.Lock()

        self._profiles: Dict[str, ActorProfile] = {}
        self._settlements: List[SettlementRecord] = []
        self._platform = PlatformStats()
        self._total_bets = 0
        self._total_volume = Decimal("0")
        self._stats_lock = threading.Lock()

    @property
    def alert_threshold(self) -> Decimal:
        return self._alert_threshold

    def set_alert_threshold(self, value) -> None:
        """Replace the high exposure alert threshold."""
        self._alert_threshold = to_amount(value)
        logger.info(f"🔧 Exposure alert threshold set to {self._alert_threshold}")

    def _ledger(self, event_id: str) -> EventLedger:
        with self._registry_lock:
            ledger = self._events.get(event_id)
            if ledger is None:
                ledger = EventLedger(event_id)
                self._events[event_id] = ledger
            return ledger

    # =========================================================================
    # RECORDING
    # =========================================================================

    def record_bet(
        self,
        actor_id: str,
        event_id: str,
        amount,
        odds,
        timestamp: Optional[float] = None,
        side: Optional[Winner] = None,
    ) -> None:
        """Record an admitted bet. Never raises."""
        try:
            record = BetRecord(
                actor_id=actor_id,
                event_id=event_id,
                amount=to_amount(amount),
                odds=to_amount(odds),
                timestamp=self._clock() if timestamp is None else timestamp,
                side=Winner(side) if side is not None else None,
            )

            ledger = self._ledger(event_id)
            with ledger.lock:
                ledger.bets.append(record)
                ledger.recompute()
                exposure = ledger.exposure

            with self._stats_lock:
                self._total_bets += 1
                self._total_volume += record.amount
                profile = self._profiles.get(actor_id, ActorProfile())
                self._profiles[actor_id] = ActorProfile(
                    total_bets=profile.total_bets + 1,
                    total_volume=profile.total_volume + record.amount,
                )

            logger.debug(f"📊 Bet recorded: {event_id} exposure={exposure}")

            if exposure > self._alert_threshold:
                self._alert_high_exposure(event_id, exposure)
        except Exception:
            logger.exception(f"Error tracking bet for event {event_id}")

    def record_settlement(
        self,
        event_id: str,
        winner: Winner,
        total_payout,
        timestamp: Optional[float] = None,
    ) -> None:
        """Record a settled event. Never raises."""
        try:
            record = SettlementRecord(
                event_id=event_id,
                winner=Winner(winner),
                total_payout=to_amount(total_payout),
                timestamp=self._clock() if timestamp is None else timestamp,
            )

            ledger = self._ledger(event_id)
            with ledger.lock:
                ledger.settled_winner = record.winner

            with self._stats_lock:
                self._settlements.append(record)
                self._platform = PlatformStats(
                    total_settlements=self._platform.total_settlements + 1,
                    total_payout=self._platform.total_payout + record.total_payout,
                )
                stats = self._platform

            logger.info(
                f"🏁 Settlement {event_id}: {record.winner.value} paid "
                f"{record.total_payout} (settlements={stats.total_settlements}, "
                f"payout={stats.total_payout})"
            )
        except Exception:
            logger.exception(f"Error tracking settlement for event {event_id}")

    def _alert_high_exposure(self, event_id: str, exposure: Decimal) -> None:
        logger.warning(
            f"⚠️ High exposure alert for event {event_id}: "
            f"{exposure} > {self._alert_threshold}"
        )
        if self._sink is None:
            return
        try:
            self._sink.emit(RiskSignal(
                category=SignalCategory.HIGH_EXPOSURE,
                subject_id=event_id,
                magnitude=float(exposure),
                details={"threshold": float(self._alert_threshold)},
            ))
        except Exception as e:
            logger.error(f"Failed to emit exposure signal for {event_id}: {e}")

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_analytics(self) -> Analytics:
        """Platform-wide aggregate view."""
        with self._stats_lock:
            total_bets = self._total_bets
            total_volume = self._total_volume
            settlements = self._platform.total_settlements
        avg = total_volume / total_bets if total_bets else Decimal("0")
        return Analytics(
            total_bets=total_bets,
            total_volume=total_volume,
            avg_bet_size=avg,
            settlements_count=settlements,
        )

    def get_event_exposure(self, event_id: str) -> EventExposure:
        with self._registry_lock:
            ledger = self._events.get(event_id)
        if ledger is None:
            return EventExposure(event_id, Decimal("0"), {}, 0)
        with ledger.lock:
            return EventExposure(
                event_id=event_id,
                total=ledger.exposure,
                by_side=dict(ledger.exposure_by_side),
                bet_count=len(ledger.bets),
                settled_winner=ledger.settled_winner,
            )

    def get_actor_profile(self, actor_id: str) -> ActorProfile:
        with self._stats_lock:
            return self._profiles.get(actor_id, ActorProfile())

    def get_platform_stats(self) -> PlatformStats:
        with self._stats_lock:
            return self._platform

    def get_status(self) -> dict:
        analytics = self.get_analytics()
        stats = self.get_platform_stats()
        with self._registry_lock:
            events = len(self._events)
        return {
            **analytics.to_dict(),
            "tracked_events": events,
            "total_payout": str(stats.total_payout),
            "alert_threshold": str(self._alert_threshold),
        }
