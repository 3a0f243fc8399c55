"""
Account Guard - Alerting.

============================================================
PURPOSE
============================================================
User-facing notifications for security signals, lockdown and
recovery.

Alerts are a notification mechanism, NOT an error channel:
a failing sender is logged and never interrupts the engine.

ALERT LEVELS:
- MEDIUM: a threat signal was recorded
- URGENT: lockdown engaged
- LOW: recovery completed

============================================================
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Deque, Dict, List, Optional

import aiohttp

from .config import AlertingConfig
from .types import (
    EventType,
    LocationProfile,
    RecoverySession,
    RiskState,
    SecurityEvent,
    VerificationOutcome,
)


logger = logging.getLogger(__name__)


# ============================================================
# ALERT TYPES
# ============================================================

class AlertPriority(Enum):
    """Alert priority levels."""

    LOW = "low"
    """Informational only."""

    MEDIUM = "medium"
    """Warning, requires attention."""

    HIGH = "high"
    """Critical, requires immediate attention."""

    URGENT = "urgent"
    """Account locked, requires action."""


class AlertKind(str, Enum):
    """What the alert is about."""

    SIGNAL = "signal"
    LOCKDOWN = "lockdown"
    RECOVERY = "recovery"


@dataclass
class Alert:
    """Alert to be shown or sent."""

    kind: AlertKind
    """What the alert is about."""

    priority: AlertPriority
    """Alert priority."""

    title: str
    """Alert title."""

    message: str
    """Alert message."""

    details: Dict[str, Any] = field(default_factory=dict)
    """Additional details."""

    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    """When alert was created."""

    event_id: Optional[str] = None
    """Related security event."""


# ============================================================
# ALERT FORMATTERS
# ============================================================

_SIGNAL_ALERTS: Dict[str, tuple] = {
    EventType.SIM_SWAP.value: (
        AlertPriority.HIGH,
        "⚠️ SIM SWAP DETECTED",
        "Device fingerprint changed. Your phone number may have been "
        "transferred to a new device.",
    ),
    EventType.DEVICE_MISMATCH.value: (
        AlertPriority.MEDIUM,
        "🔔 NEW DEVICE LOGIN",
        "New device login detected with different hardware fingerprint.",
    ),
    EventType.OTP_BURST.value: (
        AlertPriority.MEDIUM,
        "⚡ OTP BURST DETECTED",
        "Multiple authentication codes requested rapidly - possible "
        "credential stuffing attack.",
    ),
}


def format_signal_alert(
    event: SecurityEvent,
    location: Optional[LocationProfile] = None,
) -> Alert:
    """
    Format a recorded security event as an alert.

    Args:
        event: The recorded event
        location: Anomalous location, for location signals
    """
    type_key = str(getattr(event.event_type, "value", event.event_type))

    if type_key in _SIGNAL_ALERTS:
        priority, title, message = _SIGNAL_ALERTS[type_key]
    elif type_key == EventType.LOCATION_ANOMALY.value:
        priority = AlertPriority.MEDIUM
        title = "🌍 LOCATION ANOMALY"
        where = location.city if location else "an unfamiliar location"
        message = f"Activity detected from {where} - impossible travel pattern identified."
    else:
        priority = AlertPriority.MEDIUM
        title = "🛡️ SECURITY SIGNAL"
        message = event.description

    return Alert(
        kind=AlertKind.SIGNAL,
        priority=priority,
        title=title,
        message=message,
        details={
            "event_type": type_key,
            "severity": event.severity.value,
            "description": event.description,
        },
        timestamp=event.observed_at,
        event_id=event.event_id,
    )


def format_lockdown_alert(risk: RiskState, timestamp: Optional[datetime] = None) -> Alert:
    """Format the lockdown engagement alert."""
    return Alert(
        kind=AlertKind.LOCKDOWN,
        priority=AlertPriority.URGENT,
        title="🔒 SECURITY LOCKDOWN",
        message=(
            "All transaction services have been automatically disabled "
            "due to critical fraud risk."
        ),
        details={"score": risk.score, "tier": risk.tier.value},
        timestamp=timestamp or datetime.now(timezone.utc),
    )


def format_recovery_alert(
    session: RecoverySession,
    timestamp: Optional[datetime] = None,
) -> Alert:
    """Format the recovery completion alert."""
    verified = session.verification_outcome == VerificationOutcome.SUCCESS
    how = "Biometric verification successful" if verified else "Identity confirmed"

    return Alert(
        kind=AlertKind.RECOVERY,
        priority=AlertPriority.LOW,
        title="✅ ACCOUNT RECOVERED",
        message=f"{how}. All services restored.",
        details={
            "recovery_id": session.session_id,
            "verification": (
                session.verification_outcome.value
                if session.verification_outcome else None
            ),
        },
        timestamp=timestamp or datetime.now(timezone.utc),
    )


# ============================================================
# ALERT SENDER INTERFACE
# ============================================================

class AlertSender(ABC):
    """Abstract interface for sending alerts."""

    @abstractmethod
    async def send(self, alert: Alert) -> bool:
        """
        Send an alert.

        Args:
            alert: Alert to send

        Returns:
            True if sent successfully
        """
        pass


# ============================================================
# TELEGRAM ALERT SENDER
# ============================================================

class TelegramAlertSender(AlertSender):
    """
    Sends alerts via Telegram.

    Uses the Telegram Bot API to send messages.
    """

    MAX_MESSAGE_LENGTH = 4096

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        parse_mode: str = "Markdown",
        timeout_seconds: float = 10.0,
    ):
        """
        Initialize Telegram sender.

        Args:
            bot_token: Telegram bot token
            chat_id: Chat ID to send to
            parse_mode: Message parse mode
            timeout_seconds: Request timeout
        """
        self._chat_id = chat_id
        self._parse_mode = parse_mode
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._api_url = f"https://api.telegram.org/bot{bot_token}/sendMessage"

    def build_payload(self, alert: Alert) -> Dict[str, Any]:
        """Build the sendMessage payload for an alert."""
        text = f"*{alert.title}*\n\n{alert.message}"
        if len(text) > self.MAX_MESSAGE_LENGTH:
            text = text[:self.MAX_MESSAGE_LENGTH - 3] + "..."

        return {
            "chat_id": self._chat_id,
            "text": text,
            "parse_mode": self._parse_mode,
        }

    async def send(self, alert: Alert) -> bool:
        """Send alert via Telegram."""
        payload = self.build_payload(alert)

        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                async with session.post(self._api_url, json=payload) as response:
                    if response.status == 200:
                        logger.info(f"Telegram alert sent: {alert.title}")
                        return True
                    error = await response.text()
                    logger.error(f"Telegram send failed ({response.status}): {error}")
                    return False
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Telegram send error: {e}")
            return False


# ============================================================
# CONSOLE ALERT SENDER (for development)
# ============================================================

class ConsoleAlertSender(AlertSender):
    """
    Prints alerts to the console (for development and demos).
    """

    async def send(self, alert: Alert) -> bool:
        """Print alert to console."""
        separator = "=" * 60
        print(f"\n{separator}")
        print(f"ALERT: {alert.priority.value.upper()}")
        print(separator)
        print(f"{alert.title}: {alert.message}")
        print(f"Time: {alert.timestamp}")
        print(separator)
        return True


class LogAlertSender(AlertSender):
    """Writes alerts to a logger, at a level derived from priority."""

    _LEVELS = {
        AlertPriority.LOW: logging.INFO,
        AlertPriority.MEDIUM: logging.WARNING,
        AlertPriority.HIGH: logging.WARNING,
        AlertPriority.URGENT: logging.CRITICAL,
    }

    def __init__(self, alert_logger: Optional[logging.Logger] = None):
        self._logger = alert_logger or logging.getLogger(f"{__name__}.alerts")

    async def send(self, alert: Alert) -> bool:
        self._logger.log(
            self._LEVELS[alert.priority],
            f"[{alert.kind.value}] {alert.title}: {alert.message}",
        )
        return True


# ============================================================
# ALERTING SERVICE
# ============================================================

class AlertingService:
    """
    Alerting service for the account guard.

    Keeps a bounded history of every alert (what the presentation
    layer shows) and fans out to configured senders when enabled.
    """

    def __init__(
        self,
        config: AlertingConfig,
        senders: Optional[List[AlertSender]] = None,
    ):
        """
        Initialize alerting service.

        Args:
            config: Alerting configuration
            senders: List of alert senders
        """
        self._config = config
        self._senders: List[AlertSender] = list(senders or [])
        self._history: Deque[Alert] = deque(maxlen=max(1, config.history_size))

        if config.enabled and config.telegram_enabled:
            self._senders.append(
                TelegramAlertSender(
                    bot_token=config.telegram_bot_token,
                    chat_id=config.telegram_chat_id,
                )
            )

    @property
    def history(self) -> List[Alert]:
        """Alerts raised, oldest first."""
        return list(self._history)

    @property
    def latest(self) -> Optional[Alert]:
        return self._history[-1] if self._history else None

    def add_sender(self, sender: AlertSender) -> None:
        """Add an alert sender."""
        self._senders.append(sender)

    async def alert_signal(
        self,
        event: SecurityEvent,
        location: Optional[LocationProfile] = None,
    ) -> Alert:
        """Raise the alert for a recorded security event."""
        alert = format_signal_alert(event, location)
        await self._dispatch(alert)
        return alert

    async def alert_lockdown(self, risk: RiskState, timestamp: Optional[datetime] = None) -> Alert:
        """Raise the lockdown alert."""
        alert = format_lockdown_alert(risk, timestamp)
        await self._dispatch(alert)
        return alert

    async def alert_recovery(
        self,
        session: RecoverySession,
        timestamp: Optional[datetime] = None,
    ) -> Alert:
        """Raise the recovery completion alert."""
        alert = format_recovery_alert(session, timestamp)
        await self._dispatch(alert)
        return alert

    async def _dispatch(self, alert: Alert) -> None:
        """Record the alert and send it through all configured senders."""
        self._history.append(alert)

        if not self._config.enabled:
            return

        for sender in self._senders:
            try:
                await sender.send(alert)
            except Exception as e:
                logger.error(f"Alert sender {type(sender).__name__} failed: {e}")


__all__ = [
    "AlertPriority",
    "AlertKind",
    "Alert",
    "format_signal_alert",
    "format_lockdown_alert",
    "format_recovery_alert",
    "AlertSender",
    "TelegramAlertSender",
    "ConsoleAlertSender",
    "LogAlertSender",
    "AlertingService",
]
