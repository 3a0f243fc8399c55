"""
Account Guard - Trust State & Lockdown Controller.

============================================================
PURPOSE
============================================================
Derives device trust, location trust and the lockdown flag
from recorded events and the recomputed risk score.

This is the ONLY component allowed to:
- mark a device or location untrusted
- engage lockdown

============================================================
RULES
============================================================
- deviceMismatch / simSwap: device under evaluation replaced,
  device untrusted
- locationAnomaly: current location replaced, location untrusted
- score >= lockdown threshold while unlocked: lockdown engages,
  reported once (edge-triggered)
- lockdown never clears here; only recovery clears it

============================================================
"""

import logging
from dataclasses import dataclass, replace
from typing import List, Optional

from .geo import distance_km
from .types import (
    DeviceMetadata,
    DeviceProfile,
    EventType,
    LocationProfile,
    RiskState,
    SecurityEvent,
)


logger = logging.getLogger(__name__)


# ============================================================
# TRUST STATE
# ============================================================

@dataclass(frozen=True)
class TrustState:
    """Device trust, location trust and lockdown, as one value."""

    device: DeviceProfile
    location: LocationProfile
    lockdown: bool = False

    @property
    def device_trusted(self) -> bool:
        return self.device.trusted

    @property
    def location_trusted(self) -> bool:
        return self.location.trusted


@dataclass(frozen=True)
class LockdownDecision:
    """Outcome of a lockdown evaluation."""

    trust: TrustState
    """Trust state after evaluation."""

    triggered: bool
    """True only on the unlocked -> locked edge."""


# ============================================================
# PURE UPDATE FUNCTIONS
# ============================================================

def apply_event(
    trust: TrustState,
    event: SecurityEvent,
    device: Optional[DeviceProfile] = None,
    location: Optional[LocationProfile] = None,
) -> TrustState:
    """
    Apply the trust side effects of one recorded event.

    Args:
        trust: Current trust state
        event: The event just recorded
        device: Device now under evaluation (device-replacing signals)
        location: Anomalous location (location signals)

    Returns:
        New TrustState (input is not modified)
    """
    event_type = event.event_type

    if isinstance(event_type, EventType) and event_type.replaces_device():
        new_device = device or trust.device
        return replace(trust, device=replace(new_device, trusted=False))

    if event_type == EventType.LOCATION_ANOMALY:
        new_location = location or trust.location
        return replace(trust, location=replace(new_location, trusted=False))

    return trust


def evaluate_lockdown(
    trust: TrustState,
    risk: RiskState,
    threshold: int,
) -> LockdownDecision:
    """
    Engage lockdown when the score reaches the threshold.

    Edge-triggered: an already locked state is returned unchanged
    with triggered=False, however high the score.
    """
    if trust.lockdown:
        return LockdownDecision(trust=trust, triggered=False)

    if risk.score >= threshold:
        logger.critical(
            f"Risk score {risk.score} reached lockdown threshold {threshold}; "
            f"suspending protected services"
        )
        return LockdownDecision(trust=replace(trust, lockdown=True), triggered=True)

    return LockdownDecision(trust=trust, triggered=False)


def restore_trust(
    trust: TrustState,
    device: DeviceProfile,
    trusted_location: Optional[LocationProfile] = None,
) -> TrustState:
    """
    Trust state after a completed recovery.

    The device is trusted and the lockdown lifted. The location goes
    back to the trusted snapshot; without one it is left as it was.
    """
    location = (
        replace(trusted_location, trusted=True)
        if trusted_location is not None else trust.location
    )
    return TrustState(
        device=replace(device, trusted=True),
        location=location,
        lockdown=False,
    )


def describe_location_anomaly(
    description: str,
    location: LocationProfile,
    trusted_location: Optional[LocationProfile],
) -> str:
    """
    Annotate an impossible-travel description with the distance
    from the trusted location.

    The distance is informational only. The description is returned
    unchanged when either side has no coordinates.
    """
    if (
        trusted_location is not None
        and trusted_location.coordinates is not None
        and location.coordinates is not None
    ):
        km = distance_km(
            trusted_location.coordinates.latitude,
            trusted_location.coordinates.longitude,
            location.coordinates.latitude,
            location.coordinates.longitude,
        )
        description += f" ({round(km)}km from trusted location)"

    return description


def untrusted_device(
    fingerprint: str,
    name: str,
    base: Optional[DeviceMetadata] = None,
) -> DeviceProfile:
    """Device profile for a foreign device taking over the session."""
    metadata = replace(base, name=name) if base else DeviceMetadata(name=name)
    return DeviceProfile(fingerprint=fingerprint, trusted=False, metadata=metadata)


# ============================================================
# TRUST GUARD
# ============================================================

class TrustGuard:
    """
    Admission control based on the lockdown flag.

    While locked, every threat-reporting entry point is rejected
    and protected services are suspended. Recovery is the only
    operation that requires the lock.
    """

    def __init__(self, protected_services: List[str]):
        """
        Initialize guard.

        Args:
            protected_services: Names of sensitive capabilities
        """
        self._protected_services = list(protected_services)
        self._locked = False

    def update(self, trust: TrustState) -> None:
        """Refresh from the current trust state."""
        self._locked = trust.lockdown

    @property
    def is_locked(self) -> bool:
        return self._locked

    @property
    def protected_services(self) -> List[str]:
        return list(self._protected_services)

    def can_report_signals(self) -> bool:
        """Check if new threat signals may be recorded."""
        return not self._locked

    def can_start_recovery(self) -> bool:
        """Check if recovery may be initiated."""
        return self._locked

    def can_use_service(self, service: str) -> bool:
        """Check if a capability is available."""
        if service not in self._protected_services:
            return True
        return not self._locked

    def service_status(self) -> dict:
        """Availability of every protected service."""
        return {service: not self._locked for service in self._protected_services}


__all__ = [
    "TrustState",
    "LockdownDecision",
    "apply_event",
    "evaluate_lockdown",
    "restore_trust",
    "describe_location_anomaly",
    "untrusted_device",
    "TrustGuard",
]
