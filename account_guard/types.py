"""
Account Guard - Type Definitions.

============================================================
PURPOSE
============================================================
Data contracts for the risk scoring, trust state and recovery
components.

============================================================
DESIGN PRINCIPLES
============================================================
- Everything a collaborator can observe is immutable
- Enums for discrete state values
- State changes produce new values (dataclasses.replace)
- Unknown event types are carried as plain strings

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union


# ============================================================
# EVENT TYPES
# ============================================================

class EventType(str, Enum):
    """
    Security signal types understood by the scorer.

    Values match the identifiers collaborators report.
    """

    SIM_SWAP = "simSwap"
    """Phone number moved to a different device."""

    DEVICE_MISMATCH = "deviceMismatch"
    """Login from an unrecognised device fingerprint."""

    LOCATION_ANOMALY = "locationAnomaly"
    """Impossible travel from the trusted location."""

    OTP_BURST = "otpBurst"
    """Rapid burst of one-time-password requests."""

    UNUSUAL_TIME = "unusualTime"
    """Activity at an unusual hour for this user."""

    VPN_DETECTED = "vpnDetected"
    """Traffic routed through a VPN or proxy."""

    TIMEZONE_MISMATCH = "timezoneMismatch"
    """Device timezone disagrees with the located region."""

    @classmethod
    def parse(cls, value: Union["EventType", str]) -> Union["EventType", str]:
        """
        Convert a reported type to an EventType when known.

        Unknown values are returned unchanged so they can still be
        logged; they carry zero weight.
        """
        if isinstance(value, EventType):
            return value
        try:
            return cls(value)
        except ValueError:
            return str(value)

    def replaces_device(self) -> bool:
        """Whether this signal puts a different device under evaluation."""
        return self in (EventType.SIM_SWAP, EventType.DEVICE_MISMATCH)


EventTypeLike = Union[EventType, str]


class Severity(str, Enum):
    """Severity attached to a recorded security event."""

    HIGH = "high"
    CRITICAL = "critical"


# ============================================================
# RISK TIERS
# ============================================================

class RiskTier(str, Enum):
    """
    Discretised risk level derived from the numeric score.

    - LOW: below 20
    - MEDIUM: 20-39
    - HIGH: 40-69
    - CRITICAL: 70 and above (lockdown)
    """

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def color(self) -> str:
        """Fixed display colour for the tier."""
        return _TIER_COLORS[self]


_TIER_COLORS: Dict[RiskTier, str] = {
    RiskTier.LOW: "#00ff88",
    RiskTier.MEDIUM: "#ffcc00",
    RiskTier.HIGH: "#ff9933",
    RiskTier.CRITICAL: "#ff3366",
}


# ============================================================
# SECURITY EVENT
# ============================================================

@dataclass(frozen=True)
class SecurityEvent:
    """
    A single observed security event.

    Immutable once created. Only the event log creates these.
    """

    event_id: str
    """Unique, monotonically distinguishable identifier."""

    event_type: EventTypeLike
    """Signal type (EventType, or raw string when unknown)."""

    description: str
    """Human-readable description for the audit trail."""

    severity: Severity
    """Event severity."""

    observed_at: datetime
    """Capture timestamp (UTC)."""

    @property
    def is_known_type(self) -> bool:
        """Whether the type belongs to the closed EventType set."""
        return isinstance(self.event_type, EventType)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "event_id": self.event_id,
            "event_type": str(getattr(self.event_type, "value", self.event_type)),
            "description": self.description,
            "severity": self.severity.value,
            "observed_at": self.observed_at.isoformat(),
        }


@dataclass(frozen=True)
class RiskState:
    """Bounded risk score and its tier."""

    score: int
    tier: RiskTier

    @property
    def is_critical(self) -> bool:
        return self.tier == RiskTier.CRITICAL


# ============================================================
# DEVICE & LOCATION
# ============================================================

@dataclass(frozen=True)
class DeviceMetadata:
    """Descriptive device attributes supplied by the fingerprinting collaborator."""

    name: str = "Unknown Device"
    platform: str = "Unknown"
    cores: Optional[int] = None
    memory: Optional[float] = None
    screen: Optional[str] = None


@dataclass(frozen=True)
class DeviceProfile:
    """
    Device under evaluation.

    `trusted` flips to False only on a device-replacing signal and
    back to True only through recovery.
    """

    fingerprint: str
    trusted: bool = True
    metadata: DeviceMetadata = field(default_factory=DeviceMetadata)


@dataclass(frozen=True)
class Coordinates:
    """Latitude/longitude pair in decimal degrees."""

    latitude: float
    longitude: float

    def format(self) -> str:
        """Format as e.g. '55.7558° N, 37.6173° E'."""
        lat_hemi = "N" if self.latitude >= 0 else "S"
        lon_hemi = "E" if self.longitude >= 0 else "W"
        return (
            f"{abs(self.latitude):.4f}° {lat_hemi}, "
            f"{abs(self.longitude):.4f}° {lon_hemi}"
        )


@dataclass(frozen=True)
class LocationProfile:
    """Current or trusted location of the session."""

    trusted: bool = True
    coordinates: Optional[Coordinates] = None
    city: str = "Unknown Location"
    timezone: Optional[str] = None
    accuracy: Optional[float] = None
    """Fix accuracy in metres."""

    @property
    def has_fix(self) -> bool:
        return self.coordinates is not None


# ============================================================
# OTP ACTIVITY
# ============================================================

@dataclass(frozen=True)
class OtpRequest:
    """One observed one-time-password request, kept for display."""

    request_id: str
    service: str
    code: str
    requested_at: datetime


# ============================================================
# RECOVERY
# ============================================================

class VerificationOutcome(str, Enum):
    """Result of a strong identity proof request."""

    SUCCESS = "success"
    """Identity verified by the platform authenticator."""

    UNAVAILABLE = "unavailable"
    """No authenticator, user cancelled, error or timeout."""


class RecoveryPhase(str, Enum):
    """
    Recovery workflow phases, in strict order.

    IDLE -> VERIFYING -> IDENTITY_CONFIRMED -> RESTORING_SERVICES
    -> COMPLETE -> IDLE
    """

    IDLE = "IDLE"
    VERIFYING = "VERIFYING"
    IDENTITY_CONFIRMED = "IDENTITY_CONFIRMED"
    RESTORING_SERVICES = "RESTORING_SERVICES"
    COMPLETE = "COMPLETE"

    @property
    def step(self) -> Optional[int]:
        """Step index shown to the user (None when idle)."""
        return _PHASE_STEPS.get(self)


_PHASE_STEPS: Dict[RecoveryPhase, int] = {
    RecoveryPhase.VERIFYING: 0,
    RecoveryPhase.IDENTITY_CONFIRMED: 1,
    RecoveryPhase.RESTORING_SERVICES: 2,
    RecoveryPhase.COMPLETE: 3,
}


@dataclass(frozen=True)
class RecoverySession:
    """
    An in-flight recovery.

    Exists only between initiation and the final reset.
    """

    session_id: str
    phase: RecoveryPhase
    started_at: datetime
    phase_entered_at: datetime
    verification_outcome: Optional[VerificationOutcome] = None

    @property
    def step(self) -> int:
        return self.phase.step or 0

    @property
    def verifying(self) -> bool:
        return self.phase == RecoveryPhase.VERIFYING


@dataclass(frozen=True)
class RecoveryTransition:
    """Record of a recovery phase change."""

    session_id: str
    from_phase: RecoveryPhase
    to_phase: RecoveryPhase
    timestamp: datetime
    reason: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "session_id": self.session_id,
            "from_phase": self.from_phase.value,
            "to_phase": self.to_phase.value,
            "timestamp": self.timestamp.isoformat(),
            "reason": self.reason,
        }


# ============================================================
# LOCKDOWN
# ============================================================

@dataclass(frozen=True)
class LockdownChange:
    """Record of lockdown being engaged or lifted."""

    engaged: bool
    score: int
    timestamp: datetime
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "engaged": self.engaged,
            "score": self.score,
            "timestamp": self.timestamp.isoformat(),
            "reason": self.reason,
        }


__all__ = [
    "EventType",
    "EventTypeLike",
    "Severity",
    "RiskTier",
    "SecurityEvent",
    "RiskState",
    "DeviceMetadata",
    "DeviceProfile",
    "Coordinates",
    "LocationProfile",
    "OtpRequest",
    "VerificationOutcome",
    "RecoveryPhase",
    "RecoverySession",
    "RecoveryTransition",
    "LockdownChange",
]
