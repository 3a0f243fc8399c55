"""
Account Guard - Configuration.

============================================================
PURPOSE
============================================================
Configuration for scoring weights, tier thresholds, the lockdown
threshold, recovery timing and alert delivery.

============================================================
CONFIGURATION PHILOSOPHY
============================================================
1. All thresholds are explicit and documented
2. Defaults reproduce the reference behaviour exactly
3. Invalid configuration fails at load time, never mid-session
4. No auto-tuning

============================================================
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from core.exceptions import InvalidConfigError

from .types import EventType


# ============================================================
# SCORING
# ============================================================

DEFAULT_EVENT_WEIGHTS: Dict[str, int] = {
    EventType.SIM_SWAP.value: 45,
    EventType.DEVICE_MISMATCH.value: 25,
    EventType.LOCATION_ANOMALY.value: 20,
    EventType.OTP_BURST.value: 15,
    EventType.VPN_DETECTED.value: 15,
    EventType.TIMEZONE_MISMATCH.value: 12,
    EventType.UNUSUAL_TIME.value: 10,
}


@dataclass
class ScoringConfig:
    """
    Risk scoring weights and thresholds.
    """

    weights: Dict[str, int] = field(
        default_factory=lambda: dict(DEFAULT_EVENT_WEIGHTS)
    )
    """Weight per event type value. Unknown types weigh 0."""

    baseline_score: int = 5
    """Score of a clean session (empty event log)."""

    max_score: int = 100
    """Upper clamp for the score."""

    critical_threshold: int = 70
    """Score at or above which the tier is CRITICAL."""

    high_threshold: int = 40
    """Score at or above which the tier is HIGH."""

    medium_threshold: int = 20
    """Score at or above which the tier is MEDIUM."""

    lockdown_threshold: int = 70
    """Score at or above which lockdown engages."""


# ============================================================
# RECOVERY
# ============================================================

@dataclass
class RecoveryConfig:
    """
    Timing of the recovery workflow.

    Delays are simulated processing latency between steps.
    """

    verified_delay_seconds: float = 1.0
    """Wait after a successful identity proof."""

    fallback_delay_seconds: float = 2.0
    """Wait after an unavailable or failed identity proof."""

    restore_delay_seconds: float = 1.5
    """IDENTITY_CONFIRMED -> RESTORING_SERVICES."""

    complete_delay_seconds: float = 1.5
    """RESTORING_SERVICES -> COMPLETE."""

    reset_delay_seconds: float = 1.5
    """COMPLETE -> IDLE (full reset)."""

    verification_timeout_seconds: float = 60.0
    """Upper bound on the identity proof request."""


# ============================================================
# ALERTING
# ============================================================

@dataclass
class AlertingConfig:
    """
    Configuration for user-facing alerts.
    """

    enabled: bool = True
    """Whether alerts are dispatched to senders."""

    telegram_enabled: bool = False
    """Whether to send Telegram alerts."""

    telegram_bot_token: Optional[str] = None
    """Telegram bot token."""

    telegram_chat_id: Optional[str] = None
    """Telegram chat to notify."""

    history_size: int = 50
    """Number of recent alerts kept for display."""


# ============================================================
# AGGREGATE CONFIG
# ============================================================

DEFAULT_PROTECTED_SERVICES: List[str] = ["Banking", "Payments", "Transfers", "OTP Auth"]


@dataclass
class AccountGuardConfig:
    """
    Complete account guard configuration.
    """

    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    """Scoring configuration."""

    recovery: RecoveryConfig = field(default_factory=RecoveryConfig)
    """Recovery timing configuration."""

    alerting: AlertingConfig = field(default_factory=AlertingConfig)
    """Alerting configuration."""

    protected_services: List[str] = field(
        default_factory=lambda: list(DEFAULT_PROTECTED_SERVICES)
    )
    """Sensitive capabilities suspended during lockdown."""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "scoring": {
                "weights": dict(self.scoring.weights),
                "baseline_score": self.scoring.baseline_score,
                "lockdown_threshold": self.scoring.lockdown_threshold,
                "tier_thresholds": {
                    "critical": self.scoring.critical_threshold,
                    "high": self.scoring.high_threshold,
                    "medium": self.scoring.medium_threshold,
                },
            },
            "recovery": {
                "verified_delay_seconds": self.recovery.verified_delay_seconds,
                "fallback_delay_seconds": self.recovery.fallback_delay_seconds,
                "restore_delay_seconds": self.recovery.restore_delay_seconds,
                "complete_delay_seconds": self.recovery.complete_delay_seconds,
                "reset_delay_seconds": self.recovery.reset_delay_seconds,
                "verification_timeout_seconds": self.recovery.verification_timeout_seconds,
            },
            "alerting": {
                "enabled": self.alerting.enabled,
                "telegram_enabled": self.alerting.telegram_enabled,
            },
            "protected_services": list(self.protected_services),
        }


# ============================================================
# VALIDATION
# ============================================================

def validate_config(config: AccountGuardConfig) -> AccountGuardConfig:
    """
    Check configuration invariants.

    Raises:
        InvalidConfigError: On the first violated invariant
    """
    scoring = config.scoring

    for event_type, weight in scoring.weights.items():
        if not isinstance(weight, int) or weight < 0:
            raise InvalidConfigError(
                f"scoring.weights.{event_type}", weight, "weight must be a non-negative integer"
            )

    if not 0 < scoring.max_score:
        raise InvalidConfigError("scoring.max_score", scoring.max_score, "must be positive")

    if not 0 <= scoring.baseline_score <= scoring.max_score:
        raise InvalidConfigError(
            "scoring.baseline_score", scoring.baseline_score, "must lie within [0, max_score]"
        )

    if not (
        0 < scoring.medium_threshold
        < scoring.high_threshold
        < scoring.critical_threshold
        <= scoring.max_score
    ):
        raise InvalidConfigError(
            "scoring.thresholds",
            (scoring.medium_threshold, scoring.high_threshold, scoring.critical_threshold),
            "tier thresholds must be strictly increasing within (0, max_score]",
        )

    if not scoring.baseline_score < scoring.lockdown_threshold <= scoring.max_score:
        raise InvalidConfigError(
            "scoring.lockdown_threshold",
            scoring.lockdown_threshold,
            "must be above the baseline and no greater than max_score",
        )

    recovery = config.recovery
    for name in (
        "verified_delay_seconds",
        "fallback_delay_seconds",
        "restore_delay_seconds",
        "complete_delay_seconds",
        "reset_delay_seconds",
    ):
        value = getattr(recovery, name)
        if value < 0:
            raise InvalidConfigError(f"recovery.{name}", value, "delay cannot be negative")

    if recovery.verification_timeout_seconds <= 0:
        raise InvalidConfigError(
            "recovery.verification_timeout_seconds",
            recovery.verification_timeout_seconds,
            "must be positive",
        )

    if config.alerting.telegram_enabled and not (
        config.alerting.telegram_bot_token and config.alerting.telegram_chat_id
    ):
        raise InvalidConfigError(
            "alerting.telegram", None, "telegram_enabled requires bot token and chat id"
        )

    return config


# ============================================================
# PRESET FACTORIES
# ============================================================

def get_default_config() -> AccountGuardConfig:
    """
    Get default configuration.

    Matches the reference weights, thresholds and timings.
    """
    return AccountGuardConfig()


def get_testing_config() -> AccountGuardConfig:
    """
    Get testing configuration.

    Same scoring as default; alert delivery disabled and a short
    verification timeout.
    NOT FOR PRODUCTION.
    """
    config = AccountGuardConfig()
    config.alerting.enabled = False
    config.recovery.verification_timeout_seconds = 1.0
    return config


def load_config_from_dict(data: Dict[str, Any]) -> AccountGuardConfig:
    """
    Load configuration from dictionary.

    Missing keys keep their defaults.

    Args:
        data: Configuration dictionary

    Returns:
        Validated AccountGuardConfig instance
    """
    config = get_default_config()

    if "scoring" in data:
        sc = data["scoring"]
        if "weights" in sc:
            config.scoring.weights.update(sc["weights"])
        for key in (
            "baseline_score",
            "max_score",
            "critical_threshold",
            "high_threshold",
            "medium_threshold",
            "lockdown_threshold",
        ):
            if key in sc:
                setattr(config.scoring, key, int(sc[key]))

    if "recovery" in data:
        rc = data["recovery"]
        for key in (
            "verified_delay_seconds",
            "fallback_delay_seconds",
            "restore_delay_seconds",
            "complete_delay_seconds",
            "reset_delay_seconds",
            "verification_timeout_seconds",
        ):
            if key in rc:
                setattr(config.recovery, key, float(rc[key]))

    if "alerting" in data:
        al = data["alerting"]
        config.alerting.enabled = al.get("enabled", config.alerting.enabled)
        config.alerting.telegram_enabled = al.get(
            "telegram_enabled", config.alerting.telegram_enabled
        )
        config.alerting.telegram_bot_token = al.get(
            "telegram_bot_token", config.alerting.telegram_bot_token
        )
        config.alerting.telegram_chat_id = al.get(
            "telegram_chat_id", config.alerting.telegram_chat_id
        )
        config.alerting.history_size = int(
            al.get("history_size", config.alerting.history_size)
        )

    if "protected_services" in data:
        config.protected_services = list(data["protected_services"])

    return validate_config(config)


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def load_config_from_env() -> AccountGuardConfig:
    """
    Load configuration from environment variables (and .env).

    Recognised variables:
        ACCOUNT_GUARD_LOCKDOWN_THRESHOLD
        ACCOUNT_GUARD_BASELINE_SCORE
        ACCOUNT_GUARD_STEP_DELAY_SECONDS
        ACCOUNT_GUARD_VERIFICATION_TIMEOUT_SECONDS
        ACCOUNT_GUARD_ALERTS_ENABLED
        TELEGRAM_BOT_TOKEN / TELEGRAM_CHAT_ID
    """
    load_dotenv()

    data: Dict[str, Any] = {"scoring": {}, "recovery": {}, "alerting": {}}

    if os.getenv("ACCOUNT_GUARD_LOCKDOWN_THRESHOLD"):
        data["scoring"]["lockdown_threshold"] = os.getenv("ACCOUNT_GUARD_LOCKDOWN_THRESHOLD")
    if os.getenv("ACCOUNT_GUARD_BASELINE_SCORE"):
        data["scoring"]["baseline_score"] = os.getenv("ACCOUNT_GUARD_BASELINE_SCORE")

    step_delay = os.getenv("ACCOUNT_GUARD_STEP_DELAY_SECONDS")
    if step_delay:
        for key in ("restore_delay_seconds", "complete_delay_seconds", "reset_delay_seconds"):
            data["recovery"][key] = step_delay
    if os.getenv("ACCOUNT_GUARD_VERIFICATION_TIMEOUT_SECONDS"):
        data["recovery"]["verification_timeout_seconds"] = os.getenv(
            "ACCOUNT_GUARD_VERIFICATION_TIMEOUT_SECONDS"
        )

    data["alerting"]["enabled"] = _env_flag("ACCOUNT_GUARD_ALERTS_ENABLED", True)
    bot_token = os.getenv("TELEGRAM_BOT_TOKEN")
    chat_id = os.getenv("TELEGRAM_CHAT_ID")
    if bot_token and chat_id:
        data["alerting"]["telegram_enabled"] = True
        data["alerting"]["telegram_bot_token"] = bot_token
        data["alerting"]["telegram_chat_id"] = chat_id

    return load_config_from_dict(data)


__all__ = [
    "DEFAULT_EVENT_WEIGHTS",
    "DEFAULT_PROTECTED_SERVICES",
    "ScoringConfig",
    "RecoveryConfig",
    "AlertingConfig",
    "AccountGuardConfig",
    "validate_config",
    "get_default_config",
    "get_testing_config",
    "load_config_from_dict",
    "load_config_from_env",
]
