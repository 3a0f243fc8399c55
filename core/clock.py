"""
Core Module - Session Clock.

============================================================
RESPONSIBILITY
============================================================
Single source of "now" for the engine.

- Event ids and capture timestamps are taken from it
- Recovery transitions are stamped with it
- The virtual scheduler moves a MockClock forward in tests
- UTC only

============================================================
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional
import threading


# ============================================================
# CLOCK PROTOCOL
# ============================================================

class ClockProtocol(ABC):
    """Source of the current UTC time."""

    @abstractmethod
    def now(self) -> datetime:
        pass


class SystemClock(ClockProtocol):
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class MockClock(ClockProtocol):
    """
    Manually driven clock.

    Time stands still until advance() is called, usually by a
    VirtualScheduler fast-forwarding recovery delays.
    """

    def __init__(self, initial_time: Optional[datetime] = None):
        """
        Args:
            initial_time: Starting time; naive values are taken as UTC
        """
        start = initial_time or datetime.now(timezone.utc)
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        self._time = start

    def now(self) -> datetime:
        return self._time

    def advance(self, seconds: float = 0, **kwargs) -> None:
        """Move forward; kwargs go to timedelta (minutes, hours, ...)."""
        self._time += timedelta(seconds=seconds, **kwargs)


# ============================================================
# DEFAULT CLOCK
# ============================================================

class ClockFactory:
    """Holds the clock used when none is injected."""

    _instance: Optional[ClockProtocol] = None
    _lock = threading.Lock()

    @classmethod
    def get_clock(cls) -> ClockProtocol:
        with cls._lock:
            if cls._instance is None:
                cls._instance = SystemClock()
            return cls._instance


__all__ = [
    "ClockProtocol",
    "SystemClock",
    "MockClock",
    "ClockFactory",
]
