"""
Tests for the security event log.
"""

from dataclasses import FrozenInstanceError
from datetime import datetime, timezone

import pytest

from core.clock import MockClock
from account_guard.event_log import EventLog
from account_guard.types import EventType, Severity


START = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return MockClock(START)


@pytest.fixture
def log(clock):
    return EventLog(clock=clock)


class TestRecord:
    """Test EventLog.record."""

    def test_record_returns_event(self, log):
        event = log.record(EventType.SIM_SWAP, "SIM card changed to new device", "critical")

        assert event.event_type == EventType.SIM_SWAP
        assert event.severity == Severity.CRITICAL
        assert event.description == "SIM card changed to new device"
        assert event.observed_at == START
        assert len(log) == 1

    def test_most_recent_first(self, log, clock):
        first = log.record(EventType.SIM_SWAP, "a", Severity.CRITICAL)
        clock.advance(1)
        second = log.record(EventType.OTP_BURST, "b", Severity.HIGH)

        assert log.events == (second, first)
        assert log.latest is second
        assert list(log) == [second, first]

    def test_ids_unique_within_same_second(self, log):
        ids = {log.record(EventType.OTP_BURST, "x", "high").event_id for _ in range(10)}
        assert len(ids) == 10

    def test_id_format(self, log):
        event = log.record(EventType.OTP_BURST, "x", "high")
        assert event.event_id == "evt_20260115_120000_000001"

    def test_raw_string_type_is_parsed(self, log):
        event = log.record("locationAnomaly", "x", "high")
        assert event.event_type is EventType.LOCATION_ANOMALY
        assert event.is_known_type

    def test_unknown_type_kept_as_string(self, log):
        event = log.record("keyloggerDetected", "x", "high")
        assert event.event_type == "keyloggerDetected"
        assert not event.is_known_type

    def test_invalid_severity_rejected(self, log):
        with pytest.raises(ValueError):
            log.record(EventType.SIM_SWAP, "x", "medium")
        assert len(log) == 0

    def test_events_is_immutable_tuple(self, log):
        log.record(EventType.SIM_SWAP, "x", "critical")
        assert isinstance(log.events, tuple)

    def test_event_is_frozen(self, log):
        event = log.record(EventType.SIM_SWAP, "x", "critical")
        with pytest.raises(FrozenInstanceError):
            event.description = "changed"


class TestClear:
    """Test EventLog.clear."""

    def test_clear_empties_log(self, log):
        log.record(EventType.SIM_SWAP, "x", "critical")
        log.record(EventType.OTP_BURST, "y", "high")

        assert log.clear() == 2
        assert log.events == ()
        assert log.latest is None

    def test_sequence_continues_after_clear(self, log):
        first = log.record(EventType.SIM_SWAP, "x", "critical")
        log.clear()
        second = log.record(EventType.SIM_SWAP, "x", "critical")

        assert first.event_id != second.event_id
        assert second.event_id.endswith("000002")
