"""
Core Module Package.

This package contains the infrastructure components the
account guard engine depends on.

Components:
- clock: Unified time abstraction
- scheduler: Delayed one-shot callbacks (real and virtual time)
- exceptions: Custom exception hierarchy
"""

from .clock import ClockProtocol, SystemClock, MockClock, ClockFactory
from .scheduler import Scheduler, ScheduledTask, AsyncioScheduler, VirtualScheduler
from .exceptions import (
    AccountGuardError,
    ConfigurationError,
    InvalidConfigError,
    InvalidRecoveryTransitionError,
    PersistenceError,
)


__all__ = [
    "ClockProtocol",
    "SystemClock",
    "MockClock",
    "ClockFactory",
    "Scheduler",
    "ScheduledTask",
    "AsyncioScheduler",
    "VirtualScheduler",
    "AccountGuardError",
    "ConfigurationError",
    "InvalidConfigError",
    "InvalidRecoveryTransitionError",
    "PersistenceError",
]
