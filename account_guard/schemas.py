"""
Pydantic schemas for observing an account guard session.

Read-only views for the presentation layer. Every model is
frozen; a new snapshot is taken after every state change.
"""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from .alerting import Alert
from .types import (
    DeviceProfile,
    LocationProfile,
    OtpRequest,
    RecoverySession,
    RiskState,
    SecurityEvent,
)


class _FrozenView(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)


# =======================
# 1. RISK
# =======================

class RiskView(_FrozenView):
    score: int
    tier: str  # LOW, MEDIUM, HIGH, CRITICAL
    color: str

    @classmethod
    def from_state(cls, risk: RiskState) -> "RiskView":
        return cls(score=risk.score, tier=risk.tier.value, color=risk.tier.color)


# =======================
# 2. EVENTS
# =======================

class SecurityEventView(_FrozenView):
    event_id: str
    event_type: str
    description: str
    severity: str  # high, critical
    observed_at: datetime

    @classmethod
    def from_event(cls, event: SecurityEvent) -> "SecurityEventView":
        return cls(**event.to_dict())


# =======================
# 3. DEVICE & LOCATION
# =======================

class DeviceView(_FrozenView):
    fingerprint: str
    trusted: bool
    name: str
    platform: str
    cores: Optional[int] = None
    memory: Optional[float] = None
    screen: Optional[str] = None

    @classmethod
    def from_profile(cls, device: DeviceProfile) -> "DeviceView":
        meta = device.metadata
        return cls(
            fingerprint=device.fingerprint,
            trusted=device.trusted,
            name=meta.name,
            platform=meta.platform,
            cores=meta.cores,
            memory=meta.memory,
            screen=meta.screen,
        )


class LocationView(_FrozenView):
    trusted: bool
    city: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    coordinates: Optional[str] = None  # formatted for display
    timezone: Optional[str] = None
    accuracy: Optional[float] = None

    @classmethod
    def from_profile(cls, location: LocationProfile) -> "LocationView":
        coords = location.coordinates
        return cls(
            trusted=location.trusted,
            city=location.city,
            latitude=coords.latitude if coords else None,
            longitude=coords.longitude if coords else None,
            coordinates=coords.format() if coords else None,
            timezone=location.timezone,
            accuracy=location.accuracy,
        )


# =======================
# 4. OTP ACTIVITY
# =======================

class OtpRequestView(_FrozenView):
    request_id: str
    service: str
    code: str
    requested_at: datetime

    @classmethod
    def from_request(cls, request: OtpRequest) -> "OtpRequestView":
        return cls.model_validate(request)


# =======================
# 5. RECOVERY
# =======================

class RecoveryView(_FrozenView):
    recovery_id: str
    phase: str
    step: int  # 0..3
    verifying: bool
    started_at: datetime
    verification_outcome: Optional[str] = None

    @classmethod
    def from_session(cls, session: RecoverySession) -> "RecoveryView":
        return cls(
            recovery_id=session.session_id,
            phase=session.phase.value,
            step=session.step,
            verifying=session.verifying,
            started_at=session.started_at,
            verification_outcome=(
                session.verification_outcome.value
                if session.verification_outcome else None
            ),
        )


# =======================
# 6. ALERTS
# =======================

class AlertView(_FrozenView):
    kind: str
    priority: str
    title: str
    message: str
    timestamp: datetime

    @classmethod
    def from_alert(cls, alert: Alert) -> "AlertView":
        return cls(
            kind=alert.kind.value,
            priority=alert.priority.value,
            title=alert.title,
            message=alert.message,
            timestamp=alert.timestamp,
        )


# =======================
# 7. SESSION SNAPSHOT
# =======================

class SessionSnapshot(_FrozenView):
    taken_at: datetime
    risk: RiskView
    events: List[SecurityEventView]  # most recent first
    device: Optional[DeviceView] = None
    trusted_location: Optional[LocationView] = None
    location: Optional[LocationView] = None
    lockdown: bool
    recovery: Optional[RecoveryView] = None
    otp_activity: List[OtpRequestView]
    services: Dict[str, bool]  # service name -> available
    latest_alert: Optional[AlertView] = None
