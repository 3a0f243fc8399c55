"""
Core Module - Scheduler.

============================================================
RESPONSIBILITY
============================================================
Runs delayed, one-shot coroutine callbacks.

The recovery workflow is a chain of fixed delays. Each pending
step is a ScheduledTask on a Scheduler instead of a nested
sleep, so the same state machine runs against:

- AsyncioScheduler: real event-loop timers (production)
- VirtualScheduler: virtual time, fast-forwarded by tests

============================================================
GUARANTEES
============================================================
- Callbacks run one at a time, in due-time order
- Callbacks scheduled at the same due time run in FIFO order
- Tasks are not cancellable once scheduled

============================================================
"""

import asyncio
import heapq
import itertools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Set, Tuple

from .clock import MockClock


logger = logging.getLogger(__name__)


ScheduledCallback = Callable[[], Awaitable[None]]


# ============================================================
# SCHEDULED TASK
# ============================================================

@dataclass
class ScheduledTask:
    """Handle for a pending delayed callback."""

    task_id: int
    """Monotonic task identifier."""

    name: str
    """Human-readable name for logging."""

    delay_seconds: float
    """Delay requested when scheduled."""

    done: bool = False
    """Whether the callback has finished running."""


# ============================================================
# SCHEDULER PROTOCOL
# ============================================================

class Scheduler(ABC):
    """Abstract interface for delayed callbacks."""

    def __init__(self):
        self._ids = itertools.count(1)

    @abstractmethod
    def call_later(
        self,
        delay: float,
        callback: ScheduledCallback,
        name: str = "",
    ) -> ScheduledTask:
        """
        Schedule a coroutine callback to run after a delay.

        Args:
            delay: Delay in seconds (negative values run immediately)
            callback: Zero-argument coroutine function
            name: Task name for logging

        Returns:
            ScheduledTask handle
        """
        pass

    @property
    @abstractmethod
    def pending(self) -> int:
        """Number of tasks that have not finished yet."""
        pass

    def _new_task(self, delay: float, name: str) -> ScheduledTask:
        return ScheduledTask(
            task_id=next(self._ids),
            name=name or "task",
            delay_seconds=max(0.0, delay),
        )


# ============================================================
# ASYNCIO SCHEDULER (PRODUCTION)
# ============================================================

class AsyncioScheduler(Scheduler):
    """
    Scheduler backed by the running asyncio event loop.

    Must be used from inside a running loop.
    """

    def __init__(self):
        super().__init__()
        self._pending: Set[int] = set()
        self._running_tasks: Set[asyncio.Task] = set()
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def call_later(
        self,
        delay: float,
        callback: ScheduledCallback,
        name: str = "",
    ) -> ScheduledTask:
        task = self._new_task(delay, name)
        loop = asyncio.get_running_loop()

        self._pending.add(task.task_id)
        self._idle.clear()
        loop.call_later(task.delay_seconds, self._spawn, task, callback)

        logger.debug(f"Scheduled {task.name} (id={task.task_id}) in {task.delay_seconds:.2f}s")
        return task

    async def wait_idle(self) -> None:
        """Wait until every scheduled task (and any it schedules) has run."""
        await self._idle.wait()

    def _spawn(self, task: ScheduledTask, callback: ScheduledCallback) -> None:
        running = asyncio.ensure_future(self._run(task, callback))
        self._running_tasks.add(running)
        running.add_done_callback(self._running_tasks.discard)

    async def _run(self, task: ScheduledTask, callback: ScheduledCallback) -> None:
        try:
            await callback()
        except Exception:
            logger.exception(f"Scheduled task {task.name} (id={task.task_id}) failed")
        finally:
            task.done = True
            self._pending.discard(task.task_id)
            if not self._pending:
                self._idle.set()


# ============================================================
# VIRTUAL SCHEDULER (TESTING)
# ============================================================

class VirtualScheduler(Scheduler):
    """
    Scheduler driven by virtual time.

    Nothing runs until advance() or run_until_idle() is awaited.
    When a MockClock is supplied it is moved forward in lockstep,
    so timestamps taken inside callbacks match their due time.

    Exceptions raised by callbacks propagate out of advance().
    """

    def __init__(self, clock: Optional[MockClock] = None):
        super().__init__()
        self._clock = clock
        self._elapsed = 0.0
        self._seq = itertools.count()
        self._heap: List[Tuple[float, int, ScheduledTask, ScheduledCallback]] = []

    @property
    def pending(self) -> int:
        return len(self._heap)

    @property
    def elapsed(self) -> float:
        """Virtual seconds elapsed since construction."""
        return self._elapsed

    def call_later(
        self,
        delay: float,
        callback: ScheduledCallback,
        name: str = "",
    ) -> ScheduledTask:
        task = self._new_task(delay, name)
        due = self._elapsed + task.delay_seconds
        heapq.heappush(self._heap, (due, next(self._seq), task, callback))
        return task

    async def advance(self, seconds: float) -> int:
        """
        Move virtual time forward, running every callback that falls due.

        Callbacks scheduled by other callbacks also run if they fall
        due inside the window.

        Args:
            seconds: Virtual seconds to advance

        Returns:
            Number of callbacks run
        """
        target = self._elapsed + max(0.0, seconds)
        ran = 0

        while self._heap and self._heap[0][0] <= target:
            due, _, task, callback = heapq.heappop(self._heap)
            self._move_to(due)
            await callback()
            task.done = True
            ran += 1

        self._move_to(target)
        return ran

    async def run_until_idle(self, max_tasks: int = 1000) -> int:
        """
        Run pending callbacks in order until none remain.

        Args:
            max_tasks: Safety bound on callbacks run

        Returns:
            Number of callbacks run
        """
        ran = 0
        while self._heap and ran < max_tasks:
            due = self._heap[0][0]
            ran += await self.advance(due - self._elapsed)
        return ran

    def _move_to(self, when: float) -> None:
        if when <= self._elapsed:
            return
        if self._clock is not None:
            self._clock.advance(seconds=when - self._elapsed)
        self._elapsed = when


__all__ = [
    "ScheduledCallback",
    "ScheduledTask",
    "Scheduler",
    "AsyncioScheduler",
    "VirtualScheduler",
]
