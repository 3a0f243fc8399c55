"""
Tests for the AccountGuardSession controller.

============================================================
PURPOSE
============================================================
End-to-end behaviour of one protected session.

TEST PRINCIPLES:
- Lockdown fires exactly once on the crossing edge
- Signals while locked are no-ops
- Recovery only while locked, one at a time
- Recovery completion restores a clean, trusted session
- Collaborator failures never break the session

============================================================
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import ValidationError

from core.clock import MockClock
from core.exceptions import PersistenceError
from core.scheduler import VirtualScheduler
from account_guard.alerting import AlertKind, AlertingService, AlertSender
from account_guard.config import get_testing_config
from account_guard.engine import AccountGuardSession, IdentityVerifier
from account_guard.types import (
    Coordinates,
    DeviceMetadata,
    DeviceProfile,
    EventType,
    LocationProfile,
    OtpRequest,
    RecoveryPhase,
    RiskTier,
    Severity,
    VerificationOutcome,
)


START = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

TRUSTED_FINGERPRINT = "a" * 64
RECOVERED_FINGERPRINT = "d" * 64

DEVICE = DeviceProfile(
    fingerprint=TRUSTED_FINGERPRINT,
    metadata=DeviceMetadata(name="Linux Desktop", platform="Linux x86_64", cores=8),
)
LONDON = LocationProfile(
    coordinates=Coordinates(51.5074, -0.1278),
    city="London, United Kingdom",
    timezone="Europe/London",
    accuracy=35.0,
)
MOSCOW = LocationProfile(
    trusted=False,
    coordinates=Coordinates(55.7558, 37.6173),
    city="Moscow, Russia",
)
FOREIGN_DEVICE = DeviceProfile(
    fingerprint="b" * 64,
    trusted=False,
    metadata=DeviceMetadata(name="Unknown Android Device"),
)


# =============================================================
# FIXTURES
# =============================================================

@pytest.fixture
def clock():
    return MockClock(START)


@pytest.fixture
def scheduler(clock):
    return VirtualScheduler(clock)


@pytest.fixture
def verifier():
    mock = MagicMock(spec=IdentityVerifier)
    mock.verify_identity = AsyncMock(return_value=VerificationOutcome.SUCCESS)
    return mock


@pytest.fixture
def config():
    return get_testing_config()


@pytest.fixture
def session(config, clock, scheduler, verifier):
    guard = AccountGuardSession(
        config=config,
        clock=clock,
        scheduler=scheduler,
        verifier=verifier,
        fingerprint_provider=lambda: RECOVERED_FINGERPRINT,
    )
    guard.capture_device_baseline(DEVICE)
    guard.capture_location_fix(LONDON)
    return guard


async def lock(session: AccountGuardSession) -> None:
    await session.report_signal(
        EventType.SIM_SWAP, "SIM card changed to new device", Severity.CRITICAL,
        device=FOREIGN_DEVICE,
    )
    await session.report_signal(
        EventType.DEVICE_MISMATCH, "Login attempt from unrecognized device fingerprint", "high",
    )
    assert session.is_locked


# =============================================================
# TEST: Initial state & baselines
# =============================================================

class TestInitialState:
    """Test a fresh session."""

    def test_clean_session(self, session):
        assert session.score == 5
        assert session.risk.tier == RiskTier.LOW
        assert session.events == ()
        assert not session.is_locked
        assert session.recovery is None
        assert session.otp_activity == ()

    def test_baselines_captured(self, session):
        assert session.device.fingerprint == TRUSTED_FINGERPRINT
        assert session.device.trusted
        assert session.trusted_location.city == "London, United Kingdom"
        assert session.location.has_fix

    def test_device_baseline_first_call_wins(self, session):
        other = DeviceProfile(fingerprint="e" * 64)

        assert session.capture_device_baseline(other) is False
        assert session.trusted_device.fingerprint == TRUSTED_FINGERPRINT

    def test_location_baseline_first_fix_wins(self, session):
        paris = LocationProfile(coordinates=Coordinates(48.8566, 2.3522), city="Paris, France")

        assert session.capture_location_fix(paris) is False
        assert session.trusted_location.city == "London, United Kingdom"
        assert session.location.city == "Paris, France"

    def test_location_fix_without_coordinates_ignored(self, config, clock, scheduler):
        guard = AccountGuardSession(config=config, clock=clock, scheduler=scheduler)

        assert guard.capture_location_fix(LocationProfile(city="Location access denied")) is False
        assert guard.trusted_location is None

    def test_all_services_available(self, session):
        assert session.snapshot().services == {
            "Banking": True,
            "Payments": True,
            "Transfers": True,
            "OTP Auth": True,
        }


# =============================================================
# TEST: Signal ingestion
# =============================================================

class TestReportSignal:
    """Test report_signal."""

    @pytest.mark.asyncio
    async def test_sim_swap_then_new_device_locks(self, session):
        await session.report_signal(
            EventType.SIM_SWAP, "SIM card changed to new device", "critical",
            device=FOREIGN_DEVICE,
        )

        assert session.score == 50
        assert session.risk.tier == RiskTier.HIGH
        assert not session.is_locked
        assert not session.device.trusted
        assert session.device.metadata.name == "Unknown Android Device"

        await session.report_signal(
            EventType.DEVICE_MISMATCH, "Login attempt from unrecognized device fingerprint", "high",
        )

        assert session.score == 75
        assert session.risk.tier == RiskTier.CRITICAL
        assert session.is_locked
        assert set(session.snapshot().services.values()) == {False}

    @pytest.mark.asyncio
    async def test_lockdown_alert_exactly_once(self, config, clock, scheduler):
        on_lockdown = AsyncMock()
        guard = AccountGuardSession(
            config=config, clock=clock, scheduler=scheduler, on_lockdown=on_lockdown,
        )

        for _ in range(6):
            await guard.report_signal(EventType.OTP_BURST, "burst", "high")

        lockdown_alerts = [a for a in guard.alerts if a.kind == AlertKind.LOCKDOWN]
        assert len(lockdown_alerts) == 1
        assert lockdown_alerts[0].message == (
            "All transaction services have been automatically disabled "
            "due to critical fraud risk."
        )
        on_lockdown.assert_awaited_once()
        (change,), _ = on_lockdown.await_args
        assert change.engaged is True
        assert change.score == 80

    @pytest.mark.asyncio
    async def test_signals_ignored_while_locked(self, session):
        await lock(session)
        events_before = session.events
        score_before = session.score
        device_before = session.device

        result = await session.report_signal(
            EventType.LOCATION_ANOMALY, "Impossible travel", "high", location=MOSCOW,
        )

        assert result is None
        assert session.events == events_before
        assert session.score == score_before
        assert session.device == device_before
        assert session.location.city == "London, United Kingdom"

    @pytest.mark.asyncio
    async def test_location_anomaly_marks_location_untrusted(self, session):
        await session.report_signal(
            EventType.LOCATION_ANOMALY, "Impossible travel", "high", location=MOSCOW,
        )

        assert session.score == 25
        assert session.risk.tier == RiskTier.MEDIUM
        assert not session.location.trusted
        assert session.location.city == "Moscow, Russia"
        assert session.trusted_location.city == "London, United Kingdom"

    @pytest.mark.asyncio
    async def test_location_anomaly_description_carries_distance(self, session):
        event = await session.report_signal(
            EventType.LOCATION_ANOMALY, "Impossible travel", "high", location=MOSCOW,
        )

        assert event.description.startswith("Impossible travel (")
        assert event.description.endswith("km from trusted location)")
        km = int(event.description.split("(")[1].split("km")[0])
        assert 2375 <= km <= 2625

    @pytest.mark.asyncio
    async def test_location_anomaly_without_baseline_keeps_description(
        self, config, clock, scheduler
    ):
        guard = AccountGuardSession(config=config, clock=clock, scheduler=scheduler)

        event = await guard.report_signal(
            EventType.LOCATION_ANOMALY, "Impossible travel", "high", location=MOSCOW,
        )

        assert event.description == "Impossible travel"

    @pytest.mark.asyncio
    async def test_later_fix_does_not_overwrite_anomaly(self, session):
        await session.report_signal(
            EventType.LOCATION_ANOMALY, "Impossible travel", "high", location=MOSCOW,
        )
        session.capture_location_fix(LONDON)

        assert session.location.city == "Moscow, Russia"

    @pytest.mark.asyncio
    async def test_otp_requests_replace_buffer(self, session, clock):
        burst = [
            OtpRequest(request_id=f"otp_{i}", service=s, code="123456", requested_at=clock.now())
            for i, s in enumerate(["Banking App", "Email"])
        ]

        await session.report_signal(EventType.OTP_BURST, "burst", "high", otp_requests=burst)

        assert session.otp_activity == tuple(burst)

    @pytest.mark.asyncio
    async def test_unknown_type_recorded_without_weight(self, session):
        event = await session.report_signal("keyloggerDetected", "Keylogger", "high")

        assert event is not None
        assert session.events == (event,)
        assert session.score == 5

    @pytest.mark.asyncio
    async def test_invalid_severity_raises(self, session):
        with pytest.raises(ValueError):
            await session.report_signal(EventType.SIM_SWAP, "x", "low")

        assert session.events == ()
        assert session.score == 5

    @pytest.mark.asyncio
    async def test_signal_alert_recorded(self, session):
        event = await session.report_signal(EventType.OTP_BURST, "burst", "high")

        latest = session.alerts[-1]
        assert latest.kind == AlertKind.SIGNAL
        assert latest.event_id == event.event_id
        assert "OTP BURST DETECTED" in latest.title


# =============================================================
# TEST: Recovery
# =============================================================

class TestRecovery:
    """Test start_recovery and the terminal reset."""

    @pytest.mark.asyncio
    async def test_rejected_while_unlocked(self, session, verifier):
        assert await session.start_recovery() is None
        assert session.recovery is None
        verifier.verify_identity.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_starts_while_locked(self, session, verifier):
        await lock(session)

        recovery = await session.start_recovery()

        assert recovery is not None
        assert recovery.phase == RecoveryPhase.VERIFYING
        assert recovery.verification_outcome == VerificationOutcome.SUCCESS
        verifier.verify_identity.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_second_start_rejected(self, session, verifier):
        await lock(session)
        first = await session.start_recovery()

        assert await session.start_recovery() is None
        assert session.recovery.session_id == first.session_id
        verifier.verify_identity.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_completion_restores_clean_session(self, session, scheduler):
        await session.report_signal(
            EventType.LOCATION_ANOMALY, "Impossible travel", "high", location=MOSCOW,
        )
        await session.report_signal(
            EventType.OTP_BURST, "burst", "high",
            otp_requests=[
                OtpRequest("otp_1", "Banking App", "123456", START),
            ],
        )
        await lock(session)

        await session.start_recovery()
        await scheduler.advance(1.0)
        assert session.recovery.phase == RecoveryPhase.IDENTITY_CONFIRMED
        assert session.is_locked

        await scheduler.run_until_idle()

        assert session.recovery is None
        assert not session.is_locked
        assert session.score == 5
        assert session.risk.tier == RiskTier.LOW
        assert session.events == ()
        assert session.otp_activity == ()
        assert session.device.trusted
        assert session.device.fingerprint == RECOVERED_FINGERPRINT
        assert session.device.metadata == DEVICE.metadata
        assert session.location == session.trusted_location
        assert set(session.snapshot().services.values()) == {True}

    @pytest.mark.asyncio
    async def test_completion_without_trusted_location_keeps_location(
        self, config, clock, scheduler
    ):
        guard = AccountGuardSession(config=config, clock=clock, scheduler=scheduler)
        guard.capture_device_baseline(DEVICE)
        await guard.report_signal(
            EventType.LOCATION_ANOMALY, "Impossible travel", "high", location=MOSCOW,
        )
        await lock(guard)

        await guard.start_recovery()
        await scheduler.run_until_idle()

        assert not guard.is_locked
        assert guard.trusted_location is None
        assert guard.location.city == "Moscow, Russia"
        assert not guard.location.trusted
        assert guard.device.trusted

    @pytest.mark.asyncio
    async def test_recovered_alert(self, session, scheduler):
        await lock(session)
        await session.start_recovery()
        await scheduler.run_until_idle()

        latest = session.alerts[-1]
        assert latest.kind == AlertKind.RECOVERY
        assert latest.message == "Biometric verification successful. All services restored."

    @pytest.mark.asyncio
    async def test_signals_accepted_again_after_recovery(self, session, scheduler):
        await lock(session)
        await session.start_recovery()
        await scheduler.run_until_idle()

        event = await session.report_signal(EventType.SIM_SWAP, "again", "critical")

        assert event is not None
        assert session.score == 50

    @pytest.mark.asyncio
    async def test_verifier_error_falls_back(self, session, scheduler, verifier):
        verifier.verify_identity.side_effect = RuntimeError("no authenticator")
        await lock(session)

        recovery = await session.start_recovery()

        assert recovery.verification_outcome == VerificationOutcome.UNAVAILABLE
        await scheduler.advance(1.5)
        assert session.recovery.phase == RecoveryPhase.VERIFYING
        await scheduler.advance(0.5)
        assert session.recovery.phase == RecoveryPhase.IDENTITY_CONFIRMED

    @pytest.mark.asyncio
    async def test_verifier_timeout_falls_back(self, config, clock, scheduler):
        class HangingVerifier(IdentityVerifier):
            async def verify_identity(self):
                await asyncio.Event().wait()

        config.recovery.verification_timeout_seconds = 0.05
        guard = AccountGuardSession(
            config=config, clock=clock, scheduler=scheduler, verifier=HangingVerifier(),
        )
        guard.capture_device_baseline(DEVICE)
        await lock(guard)

        recovery = await guard.start_recovery()

        assert recovery.verification_outcome == VerificationOutcome.UNAVAILABLE

    @pytest.mark.asyncio
    async def test_fingerprint_provider_failure_uses_baseline(self, config, clock, scheduler):
        def broken_provider():
            raise RuntimeError("canvas blocked")

        guard = AccountGuardSession(
            config=config, clock=clock, scheduler=scheduler, fingerprint_provider=broken_provider,
        )
        guard.capture_device_baseline(DEVICE)
        await lock(guard)
        await guard.start_recovery()
        await scheduler.run_until_idle()

        assert guard.device.fingerprint == TRUSTED_FINGERPRINT
        assert guard.device.trusted

    @pytest.mark.asyncio
    async def test_lockdown_lift_reported(self, config, clock, scheduler):
        on_lockdown = AsyncMock()
        guard = AccountGuardSession(
            config=config, clock=clock, scheduler=scheduler, on_lockdown=on_lockdown,
        )
        await lock(guard)
        await guard.start_recovery()
        await scheduler.run_until_idle()

        changes = [c.args[0] for c in on_lockdown.await_args_list]
        assert [c.engaged for c in changes] == [True, False]
        assert changes[1].score == 5


# =============================================================
# TEST: Observation
# =============================================================

class TestSnapshot:
    """Test snapshot()."""

    @pytest.mark.asyncio
    async def test_snapshot_reflects_state(self, session):
        await lock(session)
        await session.start_recovery()

        snapshot = session.snapshot()

        assert snapshot.risk.score == 75
        assert snapshot.risk.tier == "CRITICAL"
        assert snapshot.risk.color == "#ff3366"
        assert snapshot.lockdown is True
        assert [e.event_type for e in snapshot.events] == ["deviceMismatch", "simSwap"]
        assert snapshot.device.trusted is False
        assert snapshot.recovery.step == 0
        assert snapshot.recovery.verifying is True
        assert snapshot.latest_alert.kind == "lockdown"
        assert snapshot.location.coordinates == "51.5074° N, 0.1278° W"

    def test_snapshot_is_frozen(self, session):
        snapshot = session.snapshot()
        with pytest.raises(ValidationError):
            snapshot.lockdown = True


# =============================================================
# TEST: Collaborator failures
# =============================================================

class TestCollaboratorFailures:
    """Failures outside the engine never break the session."""

    @pytest.mark.asyncio
    async def test_persistence_failure_is_logged(self, config, clock, scheduler, caplog):
        repository = MagicMock()
        repository.save_security_event = AsyncMock(
            side_effect=PersistenceError("save_security_event")
        )
        repository.save_lockdown_change = AsyncMock()
        guard = AccountGuardSession(
            config=config, clock=clock, scheduler=scheduler, repository=repository,
        )

        event = await guard.report_signal(EventType.SIM_SWAP, "x", "critical")

        assert event is not None
        assert guard.score == 50
        assert "save_security_event" in caplog.text

    @pytest.mark.asyncio
    async def test_sender_failure_is_logged(self, config, clock, scheduler, caplog):
        sender = MagicMock(spec=AlertSender)
        sender.send = AsyncMock(side_effect=RuntimeError("network down"))
        config.alerting.enabled = True
        alerting = AlertingService(config.alerting, senders=[sender])
        guard = AccountGuardSession(
            config=config, clock=clock, scheduler=scheduler, alerting=alerting,
        )

        event = await guard.report_signal(EventType.SIM_SWAP, "x", "critical")

        assert event is not None
        sender.send.assert_awaited_once()
        assert "network down" in caplog.text

    @pytest.mark.asyncio
    async def test_repository_records_full_trail(self, config, clock, scheduler):
        repository = MagicMock()
        repository.save_security_event = AsyncMock()
        repository.save_lockdown_change = AsyncMock()
        repository.save_recovery_transition = AsyncMock()
        guard = AccountGuardSession(
            config=config, clock=clock, scheduler=scheduler, repository=repository,
        )

        await lock(guard)
        await guard.start_recovery()
        await scheduler.run_until_idle()

        assert repository.save_security_event.await_count == 2
        assert repository.save_lockdown_change.await_count == 2
        assert repository.save_recovery_transition.await_count == 5

    @pytest.mark.asyncio
    async def test_failing_lockdown_callback_on_engage(self, config, clock, scheduler, caplog):
        on_lockdown = AsyncMock(side_effect=RuntimeError("pager offline"))
        guard = AccountGuardSession(
            config=config, clock=clock, scheduler=scheduler, on_lockdown=on_lockdown,
        )

        await guard.report_signal(EventType.SIM_SWAP, "x", "critical")
        event = await guard.report_signal(EventType.DEVICE_MISMATCH, "y", "high")

        assert event is not None
        assert guard.is_locked
        assert "pager offline" in caplog.text

    @pytest.mark.asyncio
    async def test_failing_lockdown_callback_on_lift(self, config, clock, scheduler, caplog):
        async def on_lockdown(change):
            if not change.engaged:
                raise RuntimeError("lift hook broke")

        guard = AccountGuardSession(
            config=config, clock=clock, scheduler=scheduler, on_lockdown=on_lockdown,
        )
        await lock(guard)
        await guard.start_recovery()
        await scheduler.run_until_idle()

        assert not guard.is_locked
        assert guard.recovery is None
        assert "lift hook broke" in caplog.text

        await lock(guard)
        assert await guard.start_recovery() is not None
