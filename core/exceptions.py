"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines the custom exceptions for the account guard engine.

Most invalid calls in the engine are rejected as no-ops rather
than raised. Exceptions are reserved for caller bugs (bad
configuration, impossible transitions) and infrastructure
failures that the engine logs and survives.

============================================================
EXCEPTION HIERARCHY
============================================================
AccountGuardError (base)
├── ConfigurationError
│   └── InvalidConfigError
├── InvalidRecoveryTransitionError
└── PersistenceError

============================================================
"""

from enum import Enum
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# ============================================================
# SEVERITY LEVELS
# ============================================================

class ErrorSeverity(Enum):
    """Exception severity levels for logging and alerting."""

    LOW = "low"
    """Minor issue, informational."""

    MEDIUM = "medium"
    """Moderate issue, requires attention."""

    HIGH = "high"
    """Serious issue, engine behaviour may be degraded."""

    CRITICAL = "critical"
    """Critical issue, requires immediate action."""


# ============================================================
# BASE EXCEPTION
# ============================================================

class AccountGuardError(Exception):
    """
    Base exception for all account guard errors.

    All exceptions carry:
    - severity: for alerting
    - context: for debugging
    - timestamp: when the error occurred
    """

    default_severity: ErrorSeverity = ErrorSeverity.MEDIUM

    def __init__(
        self,
        message: str,
        severity: Optional[ErrorSeverity] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)

        self.message = message
        self.severity = severity or self.default_severity
        self.context = context or {}
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        if cause:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging/storage."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "severity": self.severity.value,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }


# ============================================================
# CONFIGURATION ERRORS
# ============================================================

class ConfigurationError(AccountGuardError):
    """Error in configuration."""

    default_severity = ErrorSeverity.HIGH

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        actual_value: Optional[Any] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if config_key:
            context["config_key"] = config_key
        if actual_value is not None:
            context["actual_value"] = str(actual_value)[:100]

        super().__init__(message, context=context, **kwargs)


class InvalidConfigError(ConfigurationError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, reason: str):
        super().__init__(
            message=f"Invalid configuration for {key}: {reason}",
            config_key=key,
            actual_value=value,
            context={"reason": reason},
        )
        self.key = key
        self.reason = reason


# ============================================================
# STATE ERRORS
# ============================================================

class InvalidRecoveryTransitionError(AccountGuardError):
    """Raised when the recovery state machine is asked to skip or reverse a step."""

    default_severity = ErrorSeverity.CRITICAL

    def __init__(self, from_phase: Any, to_phase: Any, reason: str = ""):
        self.from_phase = from_phase
        self.to_phase = to_phase
        super().__init__(
            f"Invalid recovery transition from {from_phase} to {to_phase}: {reason}",
            context={"from_phase": str(from_phase), "to_phase": str(to_phase)},
        )


# ============================================================
# INFRASTRUCTURE ERRORS
# ============================================================

class PersistenceError(AccountGuardError):
    """Audit persistence failed."""

    default_severity = ErrorSeverity.HIGH

    def __init__(self, operation: str, cause: Optional[Exception] = None):
        super().__init__(
            f"Persistence operation failed: {operation}",
            context={"operation": operation},
            cause=cause,
        )
        self.operation = operation


__all__ = [
    "ErrorSeverity",
    "AccountGuardError",
    "ConfigurationError",
    "InvalidConfigError",
    "InvalidRecoveryTransitionError",
    "PersistenceError",
]
