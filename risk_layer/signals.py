"""
Observability signals for the monitoring sink.

High-exposure and rate-limit conditions are emitted as RiskSignal objects.
A sink receives them; sinks must not block the component that emits.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List

import structlog

logger = logging.getLogger(__name__)
log = structlog.get_logger()


class SignalCategory(Enum):
    """Monitoring signal categories."""
    HIGH_EXPOSURE = "high_exposure"
    RATE_LIMITED = "rate_limited"


@dataclass(frozen=True)
class RiskSignal:
    """A structured monitoring event."""
    category: SignalCategory
    subject_id: str          # actor id or event id
    magnitude: float
    timestamp: float = field(default_factory=time.time)
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "category": self.category.value,
            "subject_id": self.subject_id,
            "magnitude": round(self.magnitude, 4),
            "timestamp": self.timestamp,
            **self.details,
        }


class SignalSink(ABC):
    """Receives monitoring signals."""

    @abstractmethod
    def emit(self, signal: RiskSignal) -> None:
        """Deliver a signal. May raise; emitters catch and log."""

    def close(self) -> None:
        """Release any background resources."""


class LogSink(SignalSink):
    """Writes signals as structlog events."""

    def emit(self, signal: RiskSignal) -> None:
        log.warning(signal.category.value, **{
            k: v for k, v in signal.to_dict().items() if k != "category"
        })


class FanoutSink(SignalSink):
    """Sends each signal to several sinks; one failing sink does not stop the rest."""

    def __init__(self, sinks: Iterable[SignalSink]):
        self.sinks: List[SignalSink] = list(sinks)

    def emit(self, signal: RiskSignal) -> None:
        for sink in self.sinks:
            try:
                sink.emit(signal)
            except Exception as e:
                logger.error(f"Signal sink {type(sink).__name__} failed: {e}")

    def close(self) -> None:
        for sink in self.sinks:
            sink.close()
