"""
Polling scheduler for the dashboard sync cycle.

Drives cycle cadence as an explicit state machine:

    IDLE -> SCHEDULED -> RUNNING -> (IDLE | SCHEDULED)
    any  -> SUSPENDED  (until reset by the operator)

The delay doubles while the device reports low free heap and grows
exponentially with consecutive failures.
"""
import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from ..config import PollingSettings
from .clock import Clock, SystemClock
from .polling_state import PollingState

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    """Scheduler lifecycle state."""
    IDLE = "idle"
    SCHEDULED = "scheduled"
    RUNNING = "running"
    SUSPENDED = "suspended"


class PollingScheduler:
    """
    Schedules sync cycles for one device.

    Features:
    - One cycle runs to completion before the next is scheduled
    - Heap-aware interval doubling, immediate in both directions
    - Backoff on consecutive failures
    - Pause while the consumer is inactive, immediate run on reactivation
    - Manual trigger that short-circuits the wait
    - Cycle tokens so only the newest run commits and reschedules
    """

    def __init__(
        self,
        run_cycle: Callable[[int], Awaitable[Any]],
        polling_state: Optional[PollingState] = None,
        settings: Optional[PollingSettings] = None,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize the polling scheduler.

        Args:
            run_cycle: Async callable executing one cycle for a token.
            polling_state: Shared polling state.
            settings: Polling settings.
            clock: Time source; wall clock if omitted.
        """
        self.settings = settings or PollingSettings()
        self.polling_state = polling_state or PollingState(
            interval_ms=self.settings.refresh_interval_ms
        )
        self.clock = clock or SystemClock()
        self._run_cycle = run_cycle

        self._state = SchedulerState.IDLE
        self._started = False
        self._active = True
        self._timer_task: Optional[asyncio.Task] = None
        self._run_tasks: Set[asyncio.Task] = set()

        # Callbacks
        self._on_state_change: Optional[Callable] = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def is_suspended(self) -> bool:
        return self._state == SchedulerState.SUSPENDED

    def set_on_state_change(self, callback: Callable) -> None:
        """Set callback(old_state, new_state) for state transitions."""
        self._on_state_change = callback

    def _set_state(self, new_state: SchedulerState) -> None:
        old_state = self._state
        if old_state == new_state:
            return
        self._state = new_state
        logger.debug(f"Scheduler state {old_state.value} -> {new_state.value}")
        if self._on_state_change:
            try:
                self._on_state_change(old_state, new_state)
            except Exception as e:
                logger.error(f"Error in state_change callback: {e}")

    # ------------------------------------------------------------------
    # Delay computation
    # ------------------------------------------------------------------

    def is_heap_low(self, free_heap: Optional[int] = None) -> bool:
        """True if the heap sample is below the low-memory threshold."""
        if free_heap is None:
            free_heap = self.polling_state.last_free_heap
        if free_heap is None:
            free_heap = self.settings.default_heap_sample
        return free_heap < self.settings.low_heap_threshold

    def next_delay_ms(self) -> int:
        """
        Calculate the delay before the next cycle.

        Returns:
            Delay in milliseconds.
        """
        delay = float(self.settings.refresh_interval_ms)

        if self.is_heap_low():
            delay *= 2

        failures = self.polling_state.consecutive_failures
        if self.settings.failure_backoff and failures > 0:
            delay = min(
                delay * (self.settings.backoff_multiplier ** failures),
                float(self.settings.max_interval_ms),
            )

        return int(delay)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start polling with an immediate first cycle."""
        if self._started:
            logger.warning("Scheduler already started")
            return
        logger.info("Starting polling scheduler")
        self._started = True
        if self._active and not self.is_suspended:
            self._spawn_run("startup")

    async def stop(self) -> None:
        """Stop polling and cancel every pending timer and cycle."""
        logger.info("Stopping polling scheduler")
        self._started = False
        self._cancel_timer()

        tasks = list(self._run_tasks)
        for task in tasks:
            if not task.done():
                task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

        self._run_tasks.clear()
        if not self.is_suspended:
            self._set_state(SchedulerState.IDLE)
        logger.info("Polling scheduler stopped")

    def trigger_now(self, reason: str = "manual") -> bool:
        """
        Run a cycle immediately, then resume normal scheduling.

        A cycle already in flight is superseded by the new one.

        Returns:
            True if a cycle was started.
        """
        if not self._started:
            logger.warning("Scheduler not started, ignoring trigger")
            return False
        if self.is_suspended:
            logger.info(f"Scheduler suspended, ignoring {reason} trigger")
            return False

        self._cancel_timer()
        self._spawn_run(reason)
        return True

    def set_active(self, active: bool) -> None:
        """
        React to the consumer becoming visible or hidden.

        Hidden: cancel pending timers and go idle. Visible: run immediately.
        """
        if active == self._active:
            return
        self._active = active

        if not active:
            logger.info("Consumer inactive, pausing polling")
            self._cancel_timer()
            if not self.is_suspended:
                self._set_state(SchedulerState.IDLE)
            return

        logger.info("Consumer active, resuming polling")
        if self._started and not self.is_suspended:
            self._cancel_timer()
            self._spawn_run("reactivated")

    def suspend(self, reason: str = "suspended") -> None:
        """Halt all further cycles until reset() is called."""
        logger.warning(f"Suspending polling: {reason}")
        self._cancel_timer()
        self._set_state(SchedulerState.SUSPENDED)

    def reset(self) -> None:
        """
        Operator reset: leave SUSPENDED, clear backoff and run now.
        """
        logger.info("Resetting polling scheduler")
        self.polling_state.reset(self.settings.refresh_interval_ms)
        self._cancel_timer()
        self._set_state(SchedulerState.IDLE)
        if self._started and self._active:
            self._spawn_run("reset")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _cancel_timer(self) -> None:
        task = self._timer_task
        self._timer_task = None
        if task and not task.done():
            task.cancel()

    def _spawn_run(self, reason: str) -> asyncio.Task:
        task = asyncio.create_task(self._run(reason), name=f"sync_cycle_{reason}")
        self._run_tasks.add(task)
        task.add_done_callback(self._run_tasks.discard)
        return task

    async def _run(self, reason: str) -> None:
        token = self.polling_state.issue_token()
        self._set_state(SchedulerState.RUNNING)
        logger.debug(f"Running cycle {token} ({reason})")

        try:
            await self._run_cycle(token)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Unexpected error in sync cycle {token}: {e}")
            self.polling_state.record_failure()

        if not self.polling_state.is_current(token):
            logger.debug(f"Cycle {token} superseded, not rescheduling")
            return
        if self.is_suspended:
            return
        if self._started and self._active:
            self._schedule_next()
        else:
            self._set_state(SchedulerState.IDLE)

    def _schedule_next(self) -> None:
        delay_ms = self.next_delay_ms()
        self.polling_state.interval_ms = delay_ms

        if self.is_heap_low():
            logger.warning(
                f"Device heap low ({self.polling_state.last_free_heap} bytes), "
                f"slowing polling to {delay_ms / 1000:.0f}s"
            )

        self._cancel_timer()
        self._set_state(SchedulerState.SCHEDULED)
        self._timer_task = asyncio.create_task(
            self._sleep_then_run(delay_ms),
            name="sync_cycle_timer",
        )

    async def _sleep_then_run(self, delay_ms: int) -> None:
        await self.clock.sleep(delay_ms / 1000)
        self._timer_task = None
        self._spawn_run("scheduled")

    def get_polling_stats(self) -> Dict[str, Any]:
        """
        Get polling statistics.

        Returns:
            Dictionary of polling stats.
        """
        return {
            "state": self._state.value,
            "started": self._started,
            "active": self._active,
            "in_flight": sum(1 for task in self._run_tasks if not task.done()),
            "next_delay_ms": self.next_delay_ms(),
            "heap_low": self.is_heap_low(),
            **self.polling_state.to_dict(),
        }
