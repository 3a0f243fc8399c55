"""
Account Guard - Repository.

============================================================
PURPOSE
============================================================
Database operations for the security audit trail: recorded
events, lockdown changes and recovery transitions.

Audit writes are append-only. Failures surface as
PersistenceError; the session controller logs them and keeps
running.

============================================================
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from sqlalchemy import desc, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from core.exceptions import PersistenceError

from .models import (
    Base,
    LockdownChangeModel,
    RecoveryTransitionModel,
    SecurityEventModel,
)
from .types import LockdownChange, RecoveryTransition, SecurityEvent


logger = logging.getLogger(__name__)


async def create_schema(engine: AsyncEngine) -> None:
    """Create all account guard tables on the given engine."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# ============================================================
# REPOSITORY
# ============================================================

class AccountGuardRepository:
    """
    Repository for account guard persistence.
    """

    def __init__(self, session_factory):
        """
        Initialize repository.

        Args:
            session_factory: Async session factory
        """
        self._session_factory = session_factory

    # --------------------------------------------------------
    # SECURITY EVENTS
    # --------------------------------------------------------

    async def save_security_event(
        self,
        event: SecurityEvent,
        score_after: int,
        session: Optional[AsyncSession] = None,
    ) -> str:
        """
        Save a recorded security event.

        Args:
            event: Event to save
            score_after: Risk score once the event was applied
            session: Optional existing session

        Returns:
            Event ID
        """
        try:
            async with self._get_session(session) as sess:
                model = SecurityEventModel(
                    event_id=event.event_id,
                    event_type=str(getattr(event.event_type, "value", event.event_type)),
                    severity=event.severity.value,
                    description=event.description,
                    observed_at=event.observed_at,
                    score_after=score_after,
                )
                sess.add(model)
                await sess.commit()
        except SQLAlchemyError as e:
            raise PersistenceError("save_security_event", cause=e) from e

        logger.debug(f"Saved security event: {event.event_id}")
        return event.event_id

    async def get_security_events(
        self,
        limit: int = 100,
        session: Optional[AsyncSession] = None,
    ) -> List[SecurityEventModel]:
        """
        Get recent security events, most recent first.

        Args:
            limit: Maximum number of rows
            session: Optional existing session
        """
        try:
            async with self._get_session(session) as sess:
                stmt = (
                    select(SecurityEventModel)
                    .order_by(desc(SecurityEventModel.id))
                    .limit(limit)
                )
                result = await sess.execute(stmt)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise PersistenceError("get_security_events", cause=e) from e

    # --------------------------------------------------------
    # LOCKDOWN CHANGES
    # --------------------------------------------------------

    async def save_lockdown_change(
        self,
        change: LockdownChange,
        session: Optional[AsyncSession] = None,
    ) -> None:
        """
        Save a lockdown engage or lift.

        Args:
            change: The lockdown change
            session: Optional existing session
        """
        try:
            async with self._get_session(session) as sess:
                sess.add(
                    LockdownChangeModel(
                        engaged=change.engaged,
                        score=change.score,
                        timestamp=change.timestamp,
                        reason=change.reason,
                    )
                )
                await sess.commit()
        except SQLAlchemyError as e:
            raise PersistenceError("save_lockdown_change", cause=e) from e

        state = "engaged" if change.engaged else "lifted"
        logger.info(f"Saved lockdown change: {state} at score {change.score}")

    async def get_lockdown_changes(
        self,
        session: Optional[AsyncSession] = None,
    ) -> List[LockdownChangeModel]:
        """Get all lockdown changes, oldest first."""
        try:
            async with self._get_session(session) as sess:
                stmt = select(LockdownChangeModel).order_by(LockdownChangeModel.id)
                result = await sess.execute(stmt)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise PersistenceError("get_lockdown_changes", cause=e) from e

    # --------------------------------------------------------
    # RECOVERY TRANSITIONS
    # --------------------------------------------------------

    async def save_recovery_transition(
        self,
        transition: RecoveryTransition,
        session: Optional[AsyncSession] = None,
    ) -> None:
        """
        Save a recovery phase transition.

        Args:
            transition: Transition to save
            session: Optional existing session
        """
        try:
            async with self._get_session(session) as sess:
                sess.add(
                    RecoveryTransitionModel(
                        recovery_id=transition.session_id,
                        from_phase=transition.from_phase.value,
                        to_phase=transition.to_phase.value,
                        timestamp=transition.timestamp,
                        reason=transition.reason,
                    )
                )
                await sess.commit()
        except SQLAlchemyError as e:
            raise PersistenceError("save_recovery_transition", cause=e) from e

    async def get_recovery_transitions(
        self,
        recovery_id: Optional[str] = None,
        session: Optional[AsyncSession] = None,
    ) -> List[RecoveryTransitionModel]:
        """
        Get recovery transitions, oldest first.

        Args:
            recovery_id: Restrict to one recovery
            session: Optional existing session
        """
        try:
            async with self._get_session(session) as sess:
                stmt = select(RecoveryTransitionModel)
                if recovery_id:
                    stmt = stmt.where(RecoveryTransitionModel.recovery_id == recovery_id)
                stmt = stmt.order_by(RecoveryTransitionModel.id)
                result = await sess.execute(stmt)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise PersistenceError("get_recovery_transitions", cause=e) from e

    # --------------------------------------------------------
    # STATISTICS
    # --------------------------------------------------------

    async def get_event_statistics(
        self,
        session: Optional[AsyncSession] = None,
    ) -> Dict[str, Any]:
        """
        Summarise the persisted audit trail.

        Returns:
            Statistics dictionary
        """
        events = await self.get_security_events(limit=10_000, session=session)
        lockdowns = await self.get_lockdown_changes(session=session)

        stats: Dict[str, Any] = {
            "total_events": len(events),
            "by_type": {},
            "by_severity": {},
            "lockdowns_engaged": 0,
            "lockdowns_lifted": 0,
        }

        for event in events:
            stats["by_type"][event.event_type] = stats["by_type"].get(event.event_type, 0) + 1
            stats["by_severity"][event.severity] = stats["by_severity"].get(event.severity, 0) + 1

        for change in lockdowns:
            if change.engaged:
                stats["lockdowns_engaged"] += 1
            else:
                stats["lockdowns_lifted"] += 1

        return stats

    # --------------------------------------------------------
    # HELPERS
    # --------------------------------------------------------

    @asynccontextmanager
    async def _get_session(self, session: Optional[AsyncSession]) -> AsyncIterator[AsyncSession]:
        """Get or create a session."""
        if session:
            yield session
        else:
            async with self._session_factory() as sess:
                yield sess


__all__ = [
    "AccountGuardRepository",
    "create_schema",
]
