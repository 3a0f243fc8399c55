"""
Account Guard - Threat Simulation.

============================================================
PURPOSE
============================================================
Demo entry points that inject realistic attack signals into a
session: SIM swap, new device login, impossible travel and an
OTP burst.

Every entry point goes through AccountGuardSession.report_signal,
so they obey the same rules as real signals (no-ops while
locked).

============================================================
"""

import hashlib
import logging
import random
from datetime import timedelta
from typing import List, Optional

from .engine import AccountGuardSession
from .trust import untrusted_device
from .types import (
    Coordinates,
    DeviceProfile,
    EventType,
    LocationProfile,
    OtpRequest,
    SecurityEvent,
    Severity,
)


logger = logging.getLogger(__name__)


# ============================================================
# CONSTANTS
# ============================================================

MOSCOW = LocationProfile(
    trusted=False,
    coordinates=Coordinates(latitude=55.7558, longitude=37.6173),
    city="Moscow, Russia",
    timezone="Europe/Moscow",
)

OTP_BURST_SERVICES: List[str] = [
    "Banking App",
    "Email",
    "Social Media",
    "Payment Gateway",
    "Crypto Wallet",
]

SIM_SWAP_DEVICE_NAME = "Unknown Android Device"


# ============================================================
# SIMULATOR
# ============================================================

class ThreatSimulator:
    """
    Injects simulated threats into a session.
    """

    def __init__(self, session: AccountGuardSession, rng: Optional[random.Random] = None):
        """
        Initialize simulator.

        Args:
            session: Session under attack
            rng: Random source for fake fingerprints and OTP codes
        """
        self._session = session
        self._rng = rng or random.Random()

    def random_fingerprint(self) -> str:
        """A fingerprint no real device will match."""
        return hashlib.sha256(str(self._rng.random()).encode()).hexdigest()

    async def simulate_sim_swap(self) -> Optional[SecurityEvent]:
        """Phone number moved to an unknown Android device."""
        device = untrusted_device(
            self.random_fingerprint(),
            SIM_SWAP_DEVICE_NAME,
            base=self._session.device.metadata,
        )
        return await self._session.report_signal(
            EventType.SIM_SWAP,
            "SIM card changed to new device",
            Severity.CRITICAL,
            device=device,
        )

    async def simulate_new_device(self) -> Optional[SecurityEvent]:
        """Login from an unrecognised device fingerprint."""
        current = self._session.device
        device = DeviceProfile(
            fingerprint=self.random_fingerprint(),
            trusted=False,
            metadata=current.metadata,
        )
        return await self._session.report_signal(
            EventType.DEVICE_MISMATCH,
            "Login attempt from unrecognized device fingerprint",
            Severity.HIGH,
            device=device,
        )

    async def simulate_location_change(
        self,
        target: LocationProfile = MOSCOW,
    ) -> Optional[SecurityEvent]:
        """
        Impossible travel to a distant city.

        Rejected when the session has no location fix yet.
        """
        if not self._session.location.has_fix:
            logger.warning("Location anomaly needs a location fix first; ignoring")
            return None

        return await self._session.report_signal(
            EventType.LOCATION_ANOMALY,
            f"Impossible travel: Location changed to {target.city}",
            Severity.HIGH,
            location=target,
        )

    async def simulate_otp_burst(self) -> Optional[SecurityEvent]:
        """Five OTP requests for different services within seconds."""
        return await self._session.report_signal(
            EventType.OTP_BURST,
            f"{len(OTP_BURST_SERVICES)} OTP requests in 30 seconds - credential stuffing detected",
            Severity.HIGH,
            otp_requests=self.build_otp_burst(),
        )

    def build_otp_burst(self) -> List[OtpRequest]:
        """One request per service, a second apart, newest first."""
        now = self._session.clock.now()
        base_id = int(now.timestamp() * 1000)

        return [
            OtpRequest(
                request_id=f"otp_{base_id + i}",
                service=service,
                code=str(self._rng.randint(100000, 999999)),
                requested_at=now - timedelta(seconds=i),
            )
            for i, service in enumerate(OTP_BURST_SERVICES)
        ]


__all__ = [
    "MOSCOW",
    "OTP_BURST_SERVICES",
    "SIM_SWAP_DEVICE_NAME",
    "ThreatSimulator",
]
