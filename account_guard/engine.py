"""
Account Guard - Session Controller.

============================================================
PURPOSE
============================================================
This is the OWNING CONTROLLER of one protected session.

It owns the event log, trust state, OTP activity buffer,
baselines, recovery state machine and alert history, and is
the single place where signals turn into score, trust and
lockdown changes.

CRITICAL PRINCIPLE:
    "Once the score crosses the line, nothing sensitive runs
     until the user proves who they are."

============================================================
ARCHITECTURE
============================================================

                    ┌─────────────────────┐
                    │ AccountGuardSession │
                    └─────────┬───────────┘
                              │
        ┌──────────────┬──────┴───────┬──────────────┐
        ▼              ▼              ▼              ▼
   ┌─────────┐   ┌──────────┐   ┌──────────┐   ┌─────────┐
   │Event Log│   │ Scoring  │   │ Recovery │   │ Alerting│
   │         │   │ + Trust  │   │  FSM     │   │         │
   └─────────┘   └──────────┘   └──────────┘   └─────────┘

============================================================
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple, Union

from core.clock import ClockFactory, ClockProtocol
from core.exceptions import PersistenceError
from core.scheduler import AsyncioScheduler, Scheduler

from .alerting import Alert, AlertingService
from .config import AccountGuardConfig, get_default_config, validate_config
from .event_log import EventLog
from .recovery import RecoveryStateMachine
from .repository import AccountGuardRepository
from .schemas import (
    AlertView,
    DeviceView,
    LocationView,
    OtpRequestView,
    RecoveryView,
    RiskView,
    SecurityEventView,
    SessionSnapshot,
)
from .scoring import evaluate_risk
from .trust import (
    TrustGuard,
    TrustState,
    apply_event,
    describe_location_anomaly,
    evaluate_lockdown,
    restore_trust,
)
from .types import (
    DeviceProfile,
    EventType,
    EventTypeLike,
    LocationProfile,
    LockdownChange,
    OtpRequest,
    RecoverySession,
    RecoveryTransition,
    RiskState,
    SecurityEvent,
    Severity,
    VerificationOutcome,
)


logger = logging.getLogger(__name__)


# ============================================================
# COLLABORATORS
# ============================================================

class IdentityVerifier(ABC):
    """
    Strong identity proof (platform authenticator, biometric, ...).

    Any exception raised here is treated as an unavailable
    authenticator.
    """

    @abstractmethod
    async def verify_identity(self) -> VerificationOutcome:
        """Request a proof of identity from the user."""
        pass


class UnavailableVerifier(IdentityVerifier):
    """Verifier for platforms with no authenticator."""

    async def verify_identity(self) -> VerificationOutcome:
        return VerificationOutcome.UNAVAILABLE


FingerprintProvider = Callable[[], Optional[str]]
OnLockdownCallback = Callable[[LockdownChange], Awaitable[None]]


# ============================================================
# SESSION CONTROLLER
# ============================================================

class AccountGuardSession:
    """
    Risk scoring, trust state and recovery for a single session.

    Usage:
    ```python
    session = AccountGuardSession(config, verifier=my_verifier)
    session.capture_device_baseline(device)
    session.capture_location_fix(location)

    await session.report_signal("simSwap", "SIM card changed", "critical")

    if session.is_locked:
        await session.start_recovery()
    ```
    """

    def __init__(
        self,
        config: Optional[AccountGuardConfig] = None,
        clock: Optional[ClockProtocol] = None,
        scheduler: Optional[Scheduler] = None,
        verifier: Optional[IdentityVerifier] = None,
        fingerprint_provider: Optional[FingerprintProvider] = None,
        alerting: Optional[AlertingService] = None,
        repository: Optional[AccountGuardRepository] = None,
        on_lockdown: Optional[OnLockdownCallback] = None,
    ):
        """
        Initialize session.

        Args:
            config: Engine configuration (validated here)
            clock: Clock for event and transition timestamps
            scheduler: Runs the delayed recovery steps
            verifier: Identity proof collaborator
            fingerprint_provider: Re-derives the real device fingerprint
            alerting: Alert history and delivery
            repository: Optional audit persistence
            on_lockdown: Notified on lockdown engage and lift
        """
        self._config = validate_config(config or get_default_config())
        self._clock = clock or ClockFactory.get_clock()
        self._scheduler = scheduler or AsyncioScheduler()
        self._verifier = verifier or UnavailableVerifier()
        self._fingerprint_provider = fingerprint_provider
        self._alerting = alerting or AlertingService(self._config.alerting)
        self._repository = repository
        self._on_lockdown = on_lockdown

        self._event_log = EventLog(clock=self._clock)
        self._risk: RiskState = evaluate_risk((), self._config.scoring)
        self._trust = TrustState(
            device=DeviceProfile(fingerprint=""),
            location=LocationProfile(),
        )
        self._guard = TrustGuard(self._config.protected_services)
        self._otp_activity: Tuple[OtpRequest, ...] = ()

        self._trusted_device: Optional[DeviceProfile] = None
        self._trusted_location: Optional[LocationProfile] = None

        self._recovery = RecoveryStateMachine(
            config=self._config.recovery,
            scheduler=self._scheduler,
            on_reset=self._reset_after_recovery,
            on_transition=self._on_recovery_transition,
            clock=self._clock,
        )

        logger.info(
            f"AccountGuardSession initialized | "
            f"baseline={self._risk.score} "
            f"lockdown_threshold={self._config.scoring.lockdown_threshold}"
        )

    # --------------------------------------------------------
    # PROPERTIES
    # --------------------------------------------------------

    @property
    def config(self) -> AccountGuardConfig:
        return self._config

    @property
    def clock(self) -> ClockProtocol:
        return self._clock

    @property
    def risk(self) -> RiskState:
        """Current score and tier."""
        return self._risk

    @property
    def score(self) -> int:
        return self._risk.score

    @property
    def events(self) -> Tuple[SecurityEvent, ...]:
        """Recorded events, most recent first."""
        return self._event_log.events

    @property
    def trust(self) -> TrustState:
        return self._trust

    @property
    def device(self) -> DeviceProfile:
        return self._trust.device

    @property
    def location(self) -> LocationProfile:
        return self._trust.location

    @property
    def trusted_device(self) -> Optional[DeviceProfile]:
        return self._trusted_device

    @property
    def trusted_location(self) -> Optional[LocationProfile]:
        return self._trusted_location

    @property
    def is_locked(self) -> bool:
        return self._trust.lockdown

    @property
    def otp_activity(self) -> Tuple[OtpRequest, ...]:
        return self._otp_activity

    @property
    def recovery(self) -> Optional[RecoverySession]:
        """Active recovery, or None."""
        return self._recovery.session

    @property
    def recovery_machine(self) -> RecoveryStateMachine:
        return self._recovery

    @property
    def guard(self) -> TrustGuard:
        return self._guard

    @property
    def alerts(self) -> List[Alert]:
        """Alert history, oldest first."""
        return self._alerting.history

    # --------------------------------------------------------
    # BASELINE CAPTURE
    # --------------------------------------------------------

    def capture_device_baseline(self, device: DeviceProfile) -> bool:
        """
        Capture the trusted device baseline.

        Only the first call has an effect.

        Returns:
            True if the baseline was captured by this call
        """
        if self._trusted_device is not None:
            logger.debug("Device baseline already captured; ignoring")
            return False

        self._trusted_device = DeviceProfile(
            fingerprint=device.fingerprint,
            trusted=True,
            metadata=device.metadata,
        )
        if not self._trust.device.fingerprint:
            self._trust = TrustState(
                device=self._trusted_device,
                location=self._trust.location,
                lockdown=self._trust.lockdown,
            )

        logger.info(f"Device baseline captured: {device.metadata.name} ({device.fingerprint[:12]})")
        return True

    def capture_location_fix(self, location: LocationProfile) -> bool:
        """
        Accept a location fix from the geolocation collaborator.

        The first successful fix becomes the trusted snapshot. Later
        fixes update the current location only while it is trusted,
        so an anomalous location is never silently overwritten.

        Returns:
            True if this fix became the trusted snapshot
        """
        if not location.has_fix:
            logger.debug("Location update without coordinates; ignoring")
            return False

        if self._trust.location.trusted:
            self._trust = TrustState(
                device=self._trust.device,
                location=location,
                lockdown=self._trust.lockdown,
            )

        if self._trusted_location is not None:
            return False

        self._trusted_location = LocationProfile(
            trusted=True,
            coordinates=location.coordinates,
            city=location.city,
            timezone=location.timezone,
            accuracy=location.accuracy,
        )
        logger.info(f"Trusted location captured: {location.city}")
        return True

    # --------------------------------------------------------
    # SIGNAL INGESTION
    # --------------------------------------------------------

    async def report_signal(
        self,
        event_type: EventTypeLike,
        description: str,
        severity: Union[Severity, str],
        *,
        device: Optional[DeviceProfile] = None,
        location: Optional[LocationProfile] = None,
        otp_requests: Optional[Sequence[OtpRequest]] = None,
    ) -> Optional[SecurityEvent]:
        """
        Record a security signal and update score, trust and lockdown.

        Args:
            event_type: Signal type
            description: Audit description
            severity: "high" or "critical"
            device: Device now under evaluation (device signals)
            location: Anomalous location (location signals)
            otp_requests: OTP burst replacing the activity buffer

        Returns:
            The recorded event, or None if rejected (session locked)

        Raises:
            ValueError: If severity is not recognised
        """
        if not self._guard.can_report_signals():
            logger.warning(f"Signal {event_type} rejected: session is locked down")
            return None

        if event_type == EventType.LOCATION_ANOMALY and location is not None:
            description = describe_location_anomaly(description, location, self._trusted_location)

        event = self._event_log.record(event_type, description, severity)
        self._risk = evaluate_risk(self._event_log.events, self._config.scoring)
        self._trust = apply_event(self._trust, event, device=device, location=location)

        if otp_requests is not None:
            self._otp_activity = tuple(otp_requests)

        decision = evaluate_lockdown(
            self._trust, self._risk, self._config.scoring.lockdown_threshold
        )
        self._trust = decision.trust
        self._guard.update(self._trust)

        logger.info(
            f"Risk updated after {event.event_id}: "
            f"score={self._risk.score} tier={self._risk.tier.value}"
        )

        await self._persist(
            self._repository.save_security_event if self._repository else None,
            event,
            self._risk.score,
        )
        await self._alerting.alert_signal(event, location)

        if decision.triggered:
            await self._engage_lockdown(event)

        return event

    async def _engage_lockdown(self, event: SecurityEvent) -> None:
        now = self._clock.now()
        change = LockdownChange(
            engaged=True,
            score=self._risk.score,
            timestamp=now,
            reason=f"Risk score {self._risk.score} after {event.event_id}",
        )
        logger.warning(
            f"LOCKDOWN ENGAGED | score={self._risk.score} | "
            f"suspended={', '.join(self._guard.protected_services)}"
        )

        await self._alerting.alert_lockdown(self._risk, now)
        await self._persist(
            self._repository.save_lockdown_change if self._repository else None,
            change,
        )
        await self._notify_lockdown(change)

    # --------------------------------------------------------
    # RECOVERY
    # --------------------------------------------------------

    async def start_recovery(self) -> Optional[RecoverySession]:
        """
        Begin the recovery workflow.

        Requests identity proof, then leaves the remaining steps
        scheduled on the scheduler.

        Returns:
            The recovery session, or None if rejected (not locked,
            or a recovery is already in flight)
        """
        if not self._guard.can_start_recovery():
            logger.info("Recovery requested while not locked down; ignoring")
            return None

        session = await self._recovery.begin()
        if session is None:
            return None

        outcome = await self._verify_identity()
        await self._recovery.record_verification(outcome)
        return self._recovery.session

    async def _verify_identity(self) -> VerificationOutcome:
        timeout = self._config.recovery.verification_timeout_seconds
        try:
            result = await asyncio.wait_for(self._verifier.verify_identity(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Identity verification timed out after {timeout}s")
            return VerificationOutcome.UNAVAILABLE
        except Exception as e:
            logger.warning(f"Identity verification failed: {e}")
            return VerificationOutcome.UNAVAILABLE

        if result == VerificationOutcome.SUCCESS:
            logger.info("Identity verified")
            return VerificationOutcome.SUCCESS

        logger.warning(f"Identity verification unavailable (result={result!r})")
        return VerificationOutcome.UNAVAILABLE

    async def _on_recovery_transition(self, transition: RecoveryTransition) -> None:
        await self._persist(
            self._repository.save_recovery_transition if self._repository else None,
            transition,
        )

    async def _reset_after_recovery(self, session: RecoverySession) -> None:
        """Terminal reset: everything back to a clean, trusted session."""
        now = self._clock.now()

        baseline = self._trusted_device
        device = DeviceProfile(
            fingerprint=self._derive_fingerprint(),
            trusted=True,
            metadata=baseline.metadata if baseline else self._trust.device.metadata,
        )

        removed = self._event_log.clear()
        self._otp_activity = ()
        self._risk = evaluate_risk((), self._config.scoring)
        self._trust = restore_trust(self._trust, device, self._trusted_location)
        self._guard.update(self._trust)

        logger.info(
            f"Recovery {session.session_id} reset session: "
            f"{removed} events cleared, score={self._risk.score}, services restored"
        )

        change = LockdownChange(
            engaged=False,
            score=self._risk.score,
            timestamp=now,
            reason=f"Recovery {session.session_id} completed",
        )
        await self._alerting.alert_recovery(session, now)
        await self._persist(
            self._repository.save_lockdown_change if self._repository else None,
            change,
        )
        await self._notify_lockdown(change)

    def _derive_fingerprint(self) -> str:
        if self._fingerprint_provider is not None:
            try:
                fingerprint = self._fingerprint_provider()
                if fingerprint:
                    return fingerprint
            except Exception as e:
                logger.warning(f"Fingerprint provider failed, using trusted baseline: {e}")

        if self._trusted_device is not None:
            return self._trusted_device.fingerprint
        return self._trust.device.fingerprint

    # --------------------------------------------------------
    # OBSERVATION
    # --------------------------------------------------------

    def snapshot(self) -> SessionSnapshot:
        """Immutable view of the whole session."""
        latest = self._alerting.latest
        recovery = self._recovery.session

        return SessionSnapshot(
            taken_at=self._clock.now(),
            risk=RiskView.from_state(self._risk),
            events=[SecurityEventView.from_event(e) for e in self._event_log.events],
            device=DeviceView.from_profile(self._trust.device),
            trusted_location=(
                LocationView.from_profile(self._trusted_location)
                if self._trusted_location else None
            ),
            location=LocationView.from_profile(self._trust.location),
            lockdown=self._trust.lockdown,
            recovery=RecoveryView.from_session(recovery) if recovery else None,
            otp_activity=[OtpRequestView.from_request(r) for r in self._otp_activity],
            services=self._guard.service_status(),
            latest_alert=AlertView.from_alert(latest) if latest else None,
        )

    # --------------------------------------------------------
    # HELPERS
    # --------------------------------------------------------

    async def _notify_lockdown(self, change: LockdownChange) -> None:
        """Run the on_lockdown callback; failures are logged, never raised."""
        if self._on_lockdown is None:
            return
        try:
            await self._on_lockdown(change)
        except Exception as e:
            logger.error(f"on_lockdown callback failed (engaged={change.engaged}): {e}")

    async def _persist(self, operation, *args) -> None:
        """Run a repository write; failures are logged, never raised."""
        if operation is None:
            return
        try:
            await operation(*args)
        except PersistenceError as e:
            logger.error(f"{e.message}: {e.cause}")


__all__ = [
    "IdentityVerifier",
    "UnavailableVerifier",
    "FingerprintProvider",
    "OnLockdownCallback",
    "AccountGuardSession",
]
