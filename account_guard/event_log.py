"""
Account Guard - Event Log.

============================================================
PURPOSE
============================================================
Append-only, most-recent-first record of security events.

- record() is the only way a SecurityEvent comes into existence
- No individual deletion, no in-place mutation
- clear() empties the log in one step (recovery reset only)

============================================================
"""

import itertools
import logging
from typing import Iterator, Optional, Tuple, Union

from core.clock import ClockFactory, ClockProtocol

from .types import EventType, EventTypeLike, SecurityEvent, Severity


logger = logging.getLogger(__name__)


class EventLog:
    """
    Ordered security event log owned by a single session.
    """

    def __init__(self, clock: Optional[ClockProtocol] = None):
        """
        Initialize event log.

        Args:
            clock: Clock used for capture timestamps
        """
        self._clock = clock or ClockFactory.get_clock()
        self._events: Tuple[SecurityEvent, ...] = ()
        self._sequence = itertools.count(1)

    @property
    def events(self) -> Tuple[SecurityEvent, ...]:
        """Recorded events, most recent first."""
        return self._events

    @property
    def latest(self) -> Optional[SecurityEvent]:
        return self._events[0] if self._events else None

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[SecurityEvent]:
        return iter(self._events)

    def record(
        self,
        event_type: EventTypeLike,
        description: str,
        severity: Union[Severity, str],
    ) -> SecurityEvent:
        """
        Record a new event at the head of the log.

        Args:
            event_type: Signal type (unknown strings are accepted)
            description: Human-readable description
            severity: "high" or "critical"

        Returns:
            The recorded SecurityEvent

        Raises:
            ValueError: If severity is not a known Severity
        """
        severity = Severity(severity)
        parsed_type = EventType.parse(event_type)
        now = self._clock.now()
        seq = next(self._sequence)

        event = SecurityEvent(
            event_id=f"evt_{now.strftime('%Y%m%d_%H%M%S')}_{seq:06d}",
            event_type=parsed_type,
            description=description,
            severity=severity,
            observed_at=now,
        )
        self._events = (event,) + self._events

        if not event.is_known_type:
            logger.debug(f"Recorded unknown event type {parsed_type!r}; it carries no weight")
        logger.info(f"Security event recorded: {event.event_id} {parsed_type} ({severity.value})")
        return event

    def clear(self) -> int:
        """
        Empty the log.

        The sequence counter keeps running so ids stay unique for
        the life of the session.

        Returns:
            Number of events removed
        """
        removed = len(self._events)
        self._events = ()
        logger.info(f"Event log cleared ({removed} events)")
        return removed
