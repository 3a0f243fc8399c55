"""
Account Guard - Package.

============================================================
                       PURPOSE
============================================================

Client-side fraud and account-takeover risk engine.

It ingests security signals, keeps a running threat score and
trust state for the session, suspends sensitive services when
the score crosses the lockdown threshold, and drives a
step-gated recovery workflow after identity re-verification.

============================================================
                       RISK TIERS
============================================================

LOW (< 20):
    Normal operation.

MEDIUM (20-39):
    Elevated, watch.

HIGH (40-69):
    Serious, one more signal may lock the session.

CRITICAL (>= 70):
    LOCKDOWN. Banking, Payments, Transfers and OTP Auth
    suspended. New signals are ignored until recovery.

============================================================
                     RECOVERY FLOW
============================================================

IDLE -> VERIFYING -> IDENTITY_CONFIRMED -> RESTORING_SERVICES
     -> COMPLETE -> IDLE (full reset)

Recovery can only start while locked. Only one recovery can be
in flight at a time.

============================================================
"""

from .types import (
    EventType,
    Severity,
    RiskTier,
    SecurityEvent,
    RiskState,
    DeviceMetadata,
    DeviceProfile,
    Coordinates,
    LocationProfile,
    OtpRequest,
    VerificationOutcome,
    RecoveryPhase,
    RecoverySession,
    RecoveryTransition,
    LockdownChange,
)
from .config import (
    ScoringConfig,
    RecoveryConfig,
    AlertingConfig,
    AccountGuardConfig,
    validate_config,
    get_default_config,
    get_testing_config,
    load_config_from_dict,
    load_config_from_env,
)
from .geo import distance_km
from .event_log import EventLog
from .scoring import EVENT_WEIGHTS, compute_risk_score, classify_tier, evaluate_risk
from .trust import (
    TrustState,
    LockdownDecision,
    TrustGuard,
    apply_event,
    evaluate_lockdown,
    restore_trust,
    describe_location_anomaly,
)
from .recovery import ALLOWED_TRANSITIONS, RecoveryStateMachine
from .alerting import (
    Alert,
    AlertKind,
    AlertPriority,
    AlertSender,
    AlertingService,
    ConsoleAlertSender,
    LogAlertSender,
    TelegramAlertSender,
)
from .schemas import SessionSnapshot
from .repository import AccountGuardRepository, create_schema
from .engine import AccountGuardSession, IdentityVerifier, UnavailableVerifier
from .simulation import ThreatSimulator


__all__ = [
    # Types
    "EventType",
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
    # Config
    "ScoringConfig",
    "RecoveryConfig",
    "AlertingConfig",
    "AccountGuardConfig",
    "validate_config",
    "get_default_config",
    "get_testing_config",
    "load_config_from_dict",
    "load_config_from_env",
    # Engine components
    "distance_km",
    "EventLog",
    "EVENT_WEIGHTS",
    "compute_risk_score",
    "classify_tier",
    "evaluate_risk",
    "TrustState",
    "LockdownDecision",
    "TrustGuard",
    "apply_event",
    "evaluate_lockdown",
    "restore_trust",
    "describe_location_anomaly",
    "ALLOWED_TRANSITIONS",
    "RecoveryStateMachine",
    # Alerting
    "Alert",
    "AlertKind",
    "AlertPriority",
    "AlertSender",
    "AlertingService",
    "ConsoleAlertSender",
    "LogAlertSender",
    "TelegramAlertSender",
    # Observation & persistence
    "SessionSnapshot",
    "AccountGuardRepository",
    "create_schema",
    # Session
    "AccountGuardSession",
    "IdentityVerifier",
    "UnavailableVerifier",
    "ThreatSimulator",
]
