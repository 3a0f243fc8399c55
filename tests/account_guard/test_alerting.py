"""
Tests for user-facing alerts.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from account_guard.alerting import (
    Alert,
    AlertingService,
    AlertKind,
    AlertPriority,
    ConsoleAlertSender,
    LogAlertSender,
    TelegramAlertSender,
    format_lockdown_alert,
    format_recovery_alert,
    format_signal_alert,
)
from account_guard.config import AlertingConfig
from account_guard.types import (
    Coordinates,
    EventType,
    LocationProfile,
    RecoveryPhase,
    RecoverySession,
    RiskState,
    RiskTier,
    SecurityEvent,
    Severity,
    VerificationOutcome,
)


NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


def make_event(event_type, description: str = "test") -> SecurityEvent:
    return SecurityEvent(
        event_id="evt_20260115_120000_000001",
        event_type=event_type,
        description=description,
        severity=Severity.HIGH,
        observed_at=NOW,
    )


def make_recovery(outcome) -> RecoverySession:
    return RecoverySession(
        session_id="rec_abc",
        phase=RecoveryPhase.COMPLETE,
        started_at=NOW,
        phase_entered_at=NOW,
        verification_outcome=outcome,
    )


def make_alert(title: str = "Test") -> Alert:
    return Alert(
        kind=AlertKind.SIGNAL,
        priority=AlertPriority.MEDIUM,
        title=title,
        message="message",
    )


# =============================================================
# TEST: Formatters
# =============================================================

class TestFormatters:
    """Test alert formatting."""

    def test_sim_swap(self):
        alert = format_signal_alert(make_event(EventType.SIM_SWAP))

        assert alert.kind == AlertKind.SIGNAL
        assert alert.priority == AlertPriority.HIGH
        assert "SIM SWAP DETECTED" in alert.title
        assert alert.message.startswith("Device fingerprint changed.")
        assert alert.event_id == "evt_20260115_120000_000001"
        assert alert.timestamp == NOW

    def test_location_anomaly_names_city(self):
        moscow = LocationProfile(
            trusted=False, coordinates=Coordinates(55.7558, 37.6173), city="Moscow, Russia",
        )
        alert = format_signal_alert(make_event(EventType.LOCATION_ANOMALY), moscow)

        assert "LOCATION ANOMALY" in alert.title
        assert alert.message == (
            "Activity detected from Moscow, Russia - impossible travel pattern identified."
        )

    def test_unknown_type_uses_description(self):
        alert = format_signal_alert(make_event("keyloggerDetected", "Keylogger found"))

        assert alert.message == "Keylogger found"
        assert alert.details["event_type"] == "keyloggerDetected"

    def test_lockdown(self):
        alert = format_lockdown_alert(RiskState(75, RiskTier.CRITICAL), NOW)

        assert alert.kind == AlertKind.LOCKDOWN
        assert alert.priority == AlertPriority.URGENT
        assert alert.details == {"score": 75, "tier": "CRITICAL"}

    def test_recovered_after_biometric(self):
        alert = format_recovery_alert(make_recovery(VerificationOutcome.SUCCESS), NOW)

        assert alert.kind == AlertKind.RECOVERY
        assert alert.message == "Biometric verification successful. All services restored."

    def test_recovered_after_fallback(self):
        alert = format_recovery_alert(make_recovery(VerificationOutcome.UNAVAILABLE), NOW)
        assert alert.message == "Identity confirmed. All services restored."


# =============================================================
# TEST: AlertingService
# =============================================================

class TestAlertingService:
    """Test alert history and fan-out."""

    @pytest.mark.asyncio
    async def test_history_bounded(self):
        service = AlertingService(AlertingConfig(enabled=False, history_size=3))

        for i in range(5):
            await service.alert_signal(make_event(EventType.OTP_BURST, f"burst {i}"))

        assert len(service.history) == 3
        assert service.latest is service.history[-1]

    @pytest.mark.asyncio
    async def test_disabled_keeps_history_without_sending(self):
        sender = AsyncMock()
        service = AlertingService(AlertingConfig(enabled=False), senders=[sender])

        await service.alert_lockdown(RiskState(75, RiskTier.CRITICAL))

        sender.send.assert_not_awaited()
        assert service.latest.kind == AlertKind.LOCKDOWN

    @pytest.mark.asyncio
    async def test_enabled_fans_out(self):
        first, second = AsyncMock(), AsyncMock()
        service = AlertingService(AlertingConfig(), senders=[first])
        service.add_sender(second)

        alert = await service.alert_signal(make_event(EventType.SIM_SWAP))

        first.send.assert_awaited_once_with(alert)
        second.send.assert_awaited_once_with(alert)

    @pytest.mark.asyncio
    async def test_failing_sender_does_not_stop_others(self, caplog):
        failing, working = AsyncMock(), AsyncMock()
        failing.send.side_effect = RuntimeError("boom")
        service = AlertingService(AlertingConfig(), senders=[failing, working])

        await service.alert_signal(make_event(EventType.SIM_SWAP))

        working.send.assert_awaited_once()
        assert "boom" in caplog.text

    def test_telegram_sender_added_from_config(self):
        service = AlertingService(AlertingConfig(
            telegram_enabled=True,
            telegram_bot_token="123:abc",
            telegram_chat_id="42",
        ))
        assert any(isinstance(s, TelegramAlertSender) for s in service._senders)


# =============================================================
# TEST: Senders
# =============================================================

class TestTelegramAlertSender:
    """Test the Telegram sender."""

    def _mock_session(self, status: int = 200):
        response = MagicMock(status=status)
        response.text = AsyncMock(return_value="error body")

        post_ctx = MagicMock()
        post_ctx.__aenter__.return_value = response

        http = MagicMock()
        http.post.return_value = post_ctx

        session_ctx = MagicMock()
        session_ctx.__aenter__.return_value = http
        return session_ctx, http

    def test_payload(self):
        sender = TelegramAlertSender(bot_token="123:abc", chat_id="42")
        payload = sender.build_payload(make_alert("Title"))

        assert payload == {
            "chat_id": "42",
            "text": "*Title*\n\nmessage",
            "parse_mode": "Markdown",
        }

    def test_long_message_truncated(self):
        sender = TelegramAlertSender(bot_token="123:abc", chat_id="42")
        alert = make_alert("x" * 5000)

        text = sender.build_payload(alert)["text"]

        assert len(text) == TelegramAlertSender.MAX_MESSAGE_LENGTH
        assert text.endswith("...")

    @pytest.mark.asyncio
    async def test_send_success(self):
        sender = TelegramAlertSender(bot_token="123:abc", chat_id="42")
        session_ctx, http = self._mock_session(200)

        with patch("account_guard.alerting.aiohttp.ClientSession", return_value=session_ctx):
            assert await sender.send(make_alert()) is True

        url = http.post.call_args.args[0]
        assert url == "https://api.telegram.org/bot123:abc/sendMessage"

    @pytest.mark.asyncio
    async def test_send_http_error(self):
        sender = TelegramAlertSender(bot_token="123:abc", chat_id="42")
        session_ctx, _ = self._mock_session(400)

        with patch("account_guard.alerting.aiohttp.ClientSession", return_value=session_ctx):
            assert await sender.send(make_alert()) is False

    @pytest.mark.asyncio
    async def test_send_client_error(self):
        sender = TelegramAlertSender(bot_token="123:abc", chat_id="42")
        session_ctx, http = self._mock_session()
        http.post.side_effect = aiohttp.ClientError("connection refused")

        with patch("account_guard.alerting.aiohttp.ClientSession", return_value=session_ctx):
            assert await sender.send(make_alert()) is False


class TestLocalSenders:
    """Test console and log senders."""

    @pytest.mark.asyncio
    async def test_console(self, capsys):
        assert await ConsoleAlertSender().send(make_alert("Console")) is True
        assert "Console: message" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_log_level_follows_priority(self, caplog):
        alert = Alert(
            kind=AlertKind.LOCKDOWN,
            priority=AlertPriority.URGENT,
            title="Locked",
            message="message",
        )

        assert await LogAlertSender().send(alert) is True

        record = caplog.records[-1]
        assert record.levelname == "CRITICAL"
        assert "[lockdown] Locked: message" in record.getMessage()
