"""
Account Guard - ORM Models.

============================================================
PURPOSE
============================================================
SQLAlchemy ORM models for persisting:
- Security events (audit trail)
- Lockdown engage / lift changes
- Recovery phase transitions

The in-memory event log is cleared by recovery; these rows
are not.

============================================================
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, declarative_base, mapped_column


Base = declarative_base()


# ============================================================
# SECURITY EVENT MODEL
# ============================================================

class SecurityEventModel(Base):
    """
    Persisted security event.
    """

    __tablename__ = "account_guard_security_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    event_id: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
        index=True,
    )
    """Event identifier from the event log."""

    event_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        index=True,
    )
    """Signal type (e.g., simSwap)."""

    severity: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    description: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )

    observed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    score_after: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    """Risk score after this event was applied."""

    __table_args__ = (
        Index("ix_security_events_observed_at", "observed_at"),
    )

    def __repr__(self) -> str:
        return f"<SecurityEvent {self.event_id} {self.event_type}>"


# ============================================================
# LOCKDOWN CHANGE MODEL
# ============================================================

class LockdownChangeModel(Base):
    """
    Persisted lockdown change.

    One row when lockdown engages, one when recovery lifts it.
    """

    __tablename__ = "account_guard_lockdown_changes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    engaged: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
    )
    """True when lockdown engaged, False when lifted."""

    score: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    """Risk score at the time of the change."""

    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    reason: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )

    def __repr__(self) -> str:
        state = "ENGAGED" if self.engaged else "LIFTED"
        return f"<LockdownChange {state} score={self.score}>"


# ============================================================
# RECOVERY TRANSITION MODEL
# ============================================================

class RecoveryTransitionModel(Base):
    """
    Persisted recovery phase transition.
    """

    __tablename__ = "account_guard_recovery_transitions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    recovery_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
    )
    """Recovery session the transition belongs to."""

    from_phase: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
    )

    to_phase: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
    )

    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    reason: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    __table_args__ = (
        Index("ix_recovery_transitions_timestamp", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<RecoveryTransition {self.from_phase} -> {self.to_phase}>"


__all__ = [
    "Base",
    "SecurityEventModel",
    "LockdownChangeModel",
    "RecoveryTransitionModel",
]
