"""
Account Guard - Recovery State Machine.

============================================================
PURPOSE
============================================================
Sequences identity re-verification and the restoration of a
locked-down session.

STATE TRANSITION RULES:
- IDLE -> VERIFYING: operator initiates while locked
- VERIFYING -> IDENTITY_CONFIRMED: identity proof succeeded OR
  was unavailable (both advance)
- IDENTITY_CONFIRMED -> RESTORING_SERVICES: fixed delay
- RESTORING_SERVICES -> COMPLETE: fixed delay
- COMPLETE -> IDLE: fixed delay, then full reset

CRITICAL CONSTRAINT:
- No skipping, no going back, no abort
- Exactly one recovery in flight
- Every delayed step is a task on the injected Scheduler

============================================================
"""

import logging
import uuid
from typing import Awaitable, Callable, Dict, List, Optional, Set

from core.clock import ClockFactory, ClockProtocol
from core.exceptions import InvalidRecoveryTransitionError
from core.scheduler import ScheduledTask, Scheduler

from .config import RecoveryConfig
from .types import (
    RecoveryPhase,
    RecoverySession,
    RecoveryTransition,
    VerificationOutcome,
)


logger = logging.getLogger(__name__)


OnRecoveryTransition = Callable[[RecoveryTransition], Awaitable[None]]
OnRecoveryReset = Callable[[RecoverySession], Awaitable[None]]


# ============================================================
# STATE TRANSITION RULES
# ============================================================

ALLOWED_TRANSITIONS: Dict[RecoveryPhase, Set[RecoveryPhase]] = {
    RecoveryPhase.IDLE: {RecoveryPhase.VERIFYING},
    RecoveryPhase.VERIFYING: {RecoveryPhase.IDENTITY_CONFIRMED},
    RecoveryPhase.IDENTITY_CONFIRMED: {RecoveryPhase.RESTORING_SERVICES},
    RecoveryPhase.RESTORING_SERVICES: {RecoveryPhase.COMPLETE},
    RecoveryPhase.COMPLETE: {RecoveryPhase.IDLE},
}


# ============================================================
# STATE MACHINE
# ============================================================

class RecoveryStateMachine:
    """
    Recovery workflow state machine.

    The machine does not check lockdown itself; the session
    controller admits initiation through its TrustGuard. What the
    machine enforces is ordering and single occupancy.
    """

    def __init__(
        self,
        config: RecoveryConfig,
        scheduler: Scheduler,
        on_reset: OnRecoveryReset,
        on_transition: Optional[OnRecoveryTransition] = None,
        clock: Optional[ClockProtocol] = None,
        max_history_size: int = 100,
    ):
        """
        Initialize state machine.

        Args:
            config: Recovery timing
            scheduler: Runs the delayed steps
            on_reset: Performs the terminal reset (COMPLETE -> IDLE)
            on_transition: Notified after every phase change
            clock: Clock for transition timestamps
            max_history_size: Transitions kept in memory
        """
        self._config = config
        self._scheduler = scheduler
        self._on_reset = on_reset
        self._on_transition = on_transition
        self._clock = clock or ClockFactory.get_clock()
        self._max_history_size = max_history_size

        self._session: Optional[RecoverySession] = None
        self._history: List[RecoveryTransition] = []
        self._pending_task: Optional[ScheduledTask] = None

    # --------------------------------------------------------
    # PROPERTIES
    # --------------------------------------------------------

    @property
    def session(self) -> Optional[RecoverySession]:
        """Active recovery, or None when idle."""
        return self._session

    @property
    def phase(self) -> RecoveryPhase:
        return self._session.phase if self._session else RecoveryPhase.IDLE

    @property
    def is_active(self) -> bool:
        return self._session is not None

    @property
    def pending_task(self) -> Optional[ScheduledTask]:
        """The scheduled step currently waiting, if any."""
        return self._pending_task

    @property
    def transition_history(self) -> List[RecoveryTransition]:
        return list(self._history)

    # --------------------------------------------------------
    # OPERATIONS
    # --------------------------------------------------------

    async def begin(self) -> Optional[RecoverySession]:
        """
        Start a recovery (IDLE -> VERIFYING).

        Returns:
            The new RecoverySession, or None if one is already active
        """
        if self._session is not None:
            logger.warning(
                f"Recovery {self._session.session_id} already in progress "
                f"(phase={self._session.phase.value}); ignoring new request"
            )
            return None

        now = self._clock.now()
        self._session = RecoverySession(
            session_id=f"rec_{uuid.uuid4().hex[:12]}",
            phase=RecoveryPhase.IDLE,
            started_at=now,
            phase_entered_at=now,
        )
        await self._transition_to(RecoveryPhase.VERIFYING, "Recovery initiated by operator")
        return self._session

    async def record_verification(self, outcome: VerificationOutcome) -> ScheduledTask:
        """
        Accept the identity proof result and schedule IDENTITY_CONFIRMED.

        Both outcomes advance; only the wait differs.

        Raises:
            InvalidRecoveryTransitionError: If not waiting for verification
        """
        session = self._session
        if session is None or session.phase != RecoveryPhase.VERIFYING:
            raise InvalidRecoveryTransitionError(
                self.phase, RecoveryPhase.IDENTITY_CONFIRMED, "not awaiting verification"
            )
        if session.verification_outcome is not None:
            raise InvalidRecoveryTransitionError(
                self.phase, RecoveryPhase.IDENTITY_CONFIRMED, "verification already recorded"
            )

        self._session = RecoverySession(
            session_id=session.session_id,
            phase=session.phase,
            started_at=session.started_at,
            phase_entered_at=session.phase_entered_at,
            verification_outcome=outcome,
        )

        if outcome == VerificationOutcome.SUCCESS:
            delay = self._config.verified_delay_seconds
            reason = "Identity verified"
        else:
            delay = self._config.fallback_delay_seconds
            reason = "Identity verification unavailable; fallback confirmation"
            logger.warning(
                f"Recovery {session.session_id}: verification unavailable, "
                f"continuing on fallback path"
            )

        return self._schedule(delay, RecoveryPhase.IDENTITY_CONFIRMED, reason)

    # --------------------------------------------------------
    # INTERNAL - STEP CHAIN
    # --------------------------------------------------------

    def _schedule(self, delay: float, target: RecoveryPhase, reason: str) -> ScheduledTask:
        async def step() -> None:
            self._pending_task = None
            await self._advance(target, reason)

        self._pending_task = self._scheduler.call_later(
            delay, step, name=f"recovery:{target.value}"
        )
        return self._pending_task

    async def _advance(self, target: RecoveryPhase, reason: str) -> None:
        await self._transition_to(target, reason)

        if target == RecoveryPhase.IDENTITY_CONFIRMED:
            self._schedule(
                self._config.restore_delay_seconds,
                RecoveryPhase.RESTORING_SERVICES,
                "Restoring services",
            )
        elif target == RecoveryPhase.RESTORING_SERVICES:
            self._schedule(
                self._config.complete_delay_seconds,
                RecoveryPhase.COMPLETE,
                "Services restored",
            )
        elif target == RecoveryPhase.COMPLETE:
            self._schedule(
                self._config.reset_delay_seconds,
                RecoveryPhase.IDLE,
                "Recovery complete; session reset",
            )

    async def _transition_to(self, target: RecoveryPhase, reason: str) -> None:
        session = self._session
        current = session.phase if session else RecoveryPhase.IDLE

        if target not in ALLOWED_TRANSITIONS.get(current, set()):
            raise InvalidRecoveryTransitionError(current, target, reason)

        now = self._clock.now()

        if target == RecoveryPhase.IDLE:
            # Reset completes before the session is released
            try:
                await self._on_reset(session)
            except Exception as e:
                logger.error(f"Recovery {session.session_id}: reset failed: {e}")
            finally:
                self._session = None
        else:
            self._session = RecoverySession(
                session_id=session.session_id,
                phase=target,
                started_at=session.started_at,
                phase_entered_at=now,
                verification_outcome=session.verification_outcome,
            )

        transition = RecoveryTransition(
            session_id=session.session_id,
            from_phase=current,
            to_phase=target,
            timestamp=now,
            reason=reason,
        )
        self._history.append(transition)
        if len(self._history) > self._max_history_size:
            self._history = self._history[-self._max_history_size:]

        logger.info(
            f"Recovery {session.session_id}: {current.value} -> {target.value} ({reason})"
        )

        if self._on_transition:
            try:
                await self._on_transition(transition)
            except Exception as e:
                logger.error(
                    f"Recovery {session.session_id}: transition callback failed: {e}"
                )


__all__ = [
    "ALLOWED_TRANSITIONS",
    "RecoveryStateMachine",
    "OnRecoveryTransition",
    "OnRecoveryReset",
]
