#!/usr/bin/env python3
"""
Scripts - Run Threat Simulation.

============================================================
RESPONSIBILITY
============================================================
Runs a full attack-and-recovery scenario against a live
session in real time:

1. Capture device and location baselines
2. SIM swap (score 50, HIGH)
3. New device login (score 75, CRITICAL, lockdown)
4. Signals while locked are ignored
5. Recovery with identity verification
6. Session reset to a clean, trusted state

============================================================
USAGE
============================================================
python -m scripts.run_simulation

Options:
  --verified          Simulate a successful identity proof
  --database-url URL  Persist the audit trail (e.g.
                      sqlite+aiosqlite:///account_guard.db)
  --console-alerts    Print alerts to the console

============================================================
"""

import argparse
import asyncio
import hashlib
import logging
import sys
from pathlib import Path
from typing import Optional

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from core.scheduler import AsyncioScheduler
from account_guard import (
    AccountGuardRepository,
    AccountGuardSession,
    AlertingService,
    ConsoleAlertSender,
    Coordinates,
    DeviceMetadata,
    DeviceProfile,
    IdentityVerifier,
    LocationProfile,
    LogAlertSender,
    ThreatSimulator,
    VerificationOutcome,
    create_schema,
    load_config_from_env,
)


logger = logging.getLogger("scripts.run_simulation")


DEMO_DEVICE = DeviceProfile(
    fingerprint=hashlib.sha256(b"1920x1080|24|Europe/London|en-GB|Linux x86_64|8|16").hexdigest(),
    metadata=DeviceMetadata(
        name="Linux Desktop",
        platform="Linux x86_64",
        cores=8,
        memory=16,
        screen="1920x1080",
    ),
)

DEMO_LOCATION = LocationProfile(
    coordinates=Coordinates(latitude=51.5074, longitude=-0.1278),
    city="London, United Kingdom",
    timezone="Europe/London",
    accuracy=35.0,
)


class DemoVerifier(IdentityVerifier):
    """Pretends to prompt for a biometric."""

    def __init__(self, succeed: bool):
        self._succeed = succeed

    async def verify_identity(self) -> VerificationOutcome:
        await asyncio.sleep(0.5)
        if self._succeed:
            return VerificationOutcome.SUCCESS
        return VerificationOutcome.UNAVAILABLE


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run an account takeover simulation")
    parser.add_argument("--verified", action="store_true", help="identity proof succeeds")
    parser.add_argument("--database-url", default=None, help="async SQLAlchemy URL")
    parser.add_argument("--console-alerts", action="store_true", help="print alerts")
    return parser.parse_args()


async def build_repository(database_url: Optional[str]) -> Optional[AccountGuardRepository]:
    if not database_url:
        return None

    engine = create_async_engine(database_url)
    await create_schema(engine)
    return AccountGuardRepository(async_sessionmaker(engine, expire_on_commit=False))


async def main() -> int:
    args = parse_args()
    config = load_config_from_env()

    senders = [LogAlertSender()]
    if args.console_alerts:
        senders.append(ConsoleAlertSender())

    scheduler = AsyncioScheduler()
    session = AccountGuardSession(
        config=config,
        scheduler=scheduler,
        verifier=DemoVerifier(args.verified),
        fingerprint_provider=lambda: DEMO_DEVICE.fingerprint,
        alerting=AlertingService(config.alerting, senders=senders),
        repository=await build_repository(args.database_url),
    )
    simulator = ThreatSimulator(session)

    session.capture_device_baseline(DEMO_DEVICE)
    session.capture_location_fix(DEMO_LOCATION)
    logger.info(f"Baseline score: {session.score} ({session.risk.tier.value})")

    await simulator.simulate_sim_swap()
    logger.info(f"After SIM swap: {session.score} ({session.risk.tier.value})")

    await simulator.simulate_new_device()
    logger.info(f"After new device: {session.score} ({session.risk.tier.value})")

    if await simulator.simulate_otp_burst() is None:
        logger.info("OTP burst ignored while locked down")

    recovery = await session.start_recovery()
    if recovery is None:
        logger.error("Recovery could not start")
        return 1

    await scheduler.wait_idle()

    snapshot = session.snapshot()
    logger.info(
        f"Recovered: score={snapshot.risk.score} lockdown={snapshot.lockdown} "
        f"events={len(snapshot.events)} services={snapshot.services}"
    )
    return 0


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    sys.exit(asyncio.run(main()))
