"""
Unit tests for PollingScheduler and PollingState.

Tests delay computation, heap-aware doubling, failure backoff, visibility
handling, suspension and cycle supersession.
"""
import asyncio
from typing import List, Optional

import pytest
import pytest_asyncio

from nanny_engine.config import PollingSettings
from nanny_engine.polling.polling_state import PollingState
from nanny_engine.polling.scheduler import PollingScheduler, SchedulerState

BASE = 30000


class CycleRecorder:
    """
    Stand-in for the orchestrator's run_cycle.

    Records tokens, applies scripted heap samples and outcomes, and can hold
    the first run open until released.
    """

    def __init__(self, polling_state: PollingState):
        self.polling_state = polling_state
        self.tokens: List[int] = []
        self.heaps: List[int] = []
        self.outcomes: List[str] = []
        self.gate: Optional[asyncio.Event] = None

    async def __call__(self, token: int) -> None:
        self.tokens.append(token)
        if self.gate is not None:
            gate, self.gate = self.gate, None
            await gate.wait()
        if self.heaps:
            self.polling_state.record_heap(self.heaps.pop(0))
        outcome = self.outcomes.pop(0) if self.outcomes else "ok"
        if outcome == "raise":
            raise RuntimeError("cycle exploded")
        if outcome == "fail":
            self.polling_state.record_failure()
        else:
            self.polling_state.record_success()


@pytest.fixture
def polling_settings():
    return PollingSettings(refresh_interval_ms=BASE)


@pytest.fixture
def state():
    return PollingState(interval_ms=BASE)


@pytest.fixture
def recorder(state):
    return CycleRecorder(state)


@pytest_asyncio.fixture
async def scheduler(recorder, state, polling_settings, clock):
    scheduler = PollingScheduler(
        run_cycle=recorder,
        polling_state=state,
        settings=polling_settings,
        clock=clock,
    )
    yield scheduler
    await scheduler.stop()


class TestPollingState:
    """Tests for PollingState."""

    def test_tokens_are_monotonic(self, state):
        first = state.issue_token()
        second = state.issue_token()

        assert second > first
        assert state.is_current(second)
        assert not state.is_current(first)

    def test_reset_keeps_token(self, state):
        state.issue_token()
        state.record_failure()
        state.record_heap(9000)

        state.reset(BASE)

        assert state.cycle_token == 1
        assert state.consecutive_failures == 0
        assert state.last_free_heap is None
        assert state.failed_cycles == 1

    def test_missing_heap_sample_is_ignored(self, state):
        state.record_heap(15000)
        state.record_heap(None)

        assert state.last_free_heap == 15000


class TestDelayComputation:
    """Tests for next_delay_ms."""

    def test_base_interval(self, scheduler):
        assert scheduler.next_delay_ms() == BASE

    def test_default_heap_sample_is_not_low(self, scheduler):
        assert not scheduler.is_heap_low()

    def test_low_heap_doubles(self, scheduler, state):
        state.record_heap(12999)

        assert scheduler.next_delay_ms() == 2 * BASE

    def test_threshold_is_exclusive(self, scheduler, state):
        state.record_heap(13000)

        assert scheduler.next_delay_ms() == BASE

    @pytest.mark.parametrize("failures,expected", [
        (1, 2 * BASE),
        (2, 4 * BASE),
        (3, 8 * BASE),
        (5, 300000),
    ])
    def test_failure_backoff(self, scheduler, state, failures, expected):
        for _ in range(failures):
            state.record_failure()

        assert scheduler.next_delay_ms() == expected

    def test_backoff_compounds_with_low_heap(self, scheduler, state):
        state.record_heap(9000)
        state.record_failure()

        assert scheduler.next_delay_ms() == 4 * BASE

    def test_backoff_disabled(self, recorder, state, clock):
        settings = PollingSettings(refresh_interval_ms=BASE, failure_backoff=False)
        scheduler = PollingScheduler(recorder, state, settings, clock)
        state.record_failure()

        assert scheduler.next_delay_ms() == BASE


class TestCadence:
    """Tests for the scheduling loop on a virtual clock."""

    @pytest.mark.asyncio
    async def test_heap_sequence_adjusts_delay_immediately(self, scheduler, recorder, clock, settle):
        """Test heap samples 20000, 10000, 10000, 20000 give base, 2x, 2x, base."""
        recorder.heaps = [20000, 10000, 10000, 20000]

        await scheduler.start()
        assert await settle(lambda: len(clock.sleeps) == 1)

        for expected_count in (2, 3, 4):
            clock.advance(int(clock.sleeps[-1] * 1000))
            assert await settle(lambda: len(clock.sleeps) == expected_count)

        assert clock.sleeps == [30.0, 60.0, 60.0, 30.0]
        assert recorder.tokens == [1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_start_runs_immediately(self, scheduler, recorder, settle):
        await scheduler.start()

        assert await settle(lambda: scheduler.state == SchedulerState.SCHEDULED)
        assert recorder.tokens == [1]

    @pytest.mark.asyncio
    async def test_no_cycle_before_delay_elapses(self, scheduler, recorder, clock, settle):
        await scheduler.start()
        await settle(lambda: len(clock.sleeps) == 1)

        clock.advance(BASE - 1)
        await settle()

        assert recorder.tokens == [1]

    @pytest.mark.asyncio
    async def test_failures_back_off_then_recover(self, scheduler, recorder, clock, settle):
        recorder.outcomes = ["fail", "fail", "ok"]

        await scheduler.start()
        await settle(lambda: len(clock.sleeps) == 1)
        clock.advance(int(clock.sleeps[-1] * 1000))
        await settle(lambda: len(clock.sleeps) == 2)
        clock.advance(int(clock.sleeps[-1] * 1000))
        await settle(lambda: len(clock.sleeps) == 3)

        assert clock.sleeps == [60.0, 120.0, 30.0]

    @pytest.mark.asyncio
    async def test_unexpected_error_counts_as_failure(self, scheduler, recorder, state, clock, settle):
        recorder.outcomes = ["raise"]

        await scheduler.start()
        assert await settle(lambda: len(clock.sleeps) == 1)

        assert state.consecutive_failures == 1
        assert clock.sleeps == [60.0]

    @pytest.mark.asyncio
    async def test_interval_recorded_in_state(self, scheduler, recorder, state, clock, settle):
        recorder.heaps = [5000]

        await scheduler.start()
        await settle(lambda: len(clock.sleeps) == 1)

        assert state.interval_ms == 2 * BASE
        assert scheduler.get_polling_stats()["heap_low"] is True


class TestTriggers:
    """Tests for manual triggers and supersession."""

    @pytest.mark.asyncio
    async def test_trigger_before_start_is_ignored(self, scheduler, recorder):
        assert scheduler.trigger_now() is False
        assert recorder.tokens == []

    @pytest.mark.asyncio
    async def test_trigger_short_circuits_wait(self, scheduler, recorder, clock, settle):
        await scheduler.start()
        await settle(lambda: len(clock.sleeps) == 1)

        assert scheduler.trigger_now("manual") is True
        assert await settle(lambda: len(clock.sleeps) == 2)

        assert recorder.tokens == [1, 2]
        assert clock.pending == 1

    @pytest.mark.asyncio
    async def test_superseded_run_does_not_reschedule(self, scheduler, recorder, clock, settle):
        """Test only the newest run schedules the next cycle."""
        recorder.gate = asyncio.Event()
        held = recorder.gate

        await scheduler.start()
        assert await settle(lambda: recorder.tokens == [1])

        scheduler.trigger_now("manual")
        assert await settle(lambda: len(clock.sleeps) == 1)

        held.set()
        await settle()

        assert recorder.tokens == [1, 2]
        assert len(clock.sleeps) == 1
        assert clock.pending == 1


class TestVisibility:
    """Tests for pausing while the consumer is inactive."""

    @pytest.mark.asyncio
    async def test_hidden_pauses_polling(self, scheduler, recorder, clock, settle):
        await scheduler.start()
        await settle(lambda: len(clock.sleeps) == 1)

        scheduler.set_active(False)
        await settle()
        clock.advance(10 * BASE)
        await settle()

        assert scheduler.state == SchedulerState.IDLE
        assert recorder.tokens == [1]

    @pytest.mark.asyncio
    async def test_visible_runs_immediately(self, scheduler, recorder, clock, settle):
        await scheduler.start()
        await settle(lambda: len(clock.sleeps) == 1)
        scheduler.set_active(False)

        scheduler.set_active(True)

        assert await settle(lambda: recorder.tokens == [1, 2])

    @pytest.mark.asyncio
    async def test_start_while_hidden_waits(self, scheduler, recorder, settle):
        scheduler.set_active(False)

        await scheduler.start()
        await settle()

        assert recorder.tokens == []


class TestSuspension:
    """Tests for suspend and operator reset."""

    @pytest.mark.asyncio
    async def test_suspend_halts_everything(self, scheduler, recorder, clock, settle):
        await scheduler.start()
        await settle(lambda: len(clock.sleeps) == 1)

        scheduler.suspend("device restart")
        clock.advance(10 * BASE)
        await settle()

        assert scheduler.is_suspended
        assert scheduler.trigger_now() is False
        scheduler.set_active(False)
        scheduler.set_active(True)
        await settle()
        assert recorder.tokens == [1]

    @pytest.mark.asyncio
    async def test_reset_resumes_with_clean_backoff(self, scheduler, recorder, state, clock, settle):
        recorder.outcomes = ["fail"]
        await scheduler.start()
        await settle(lambda: len(clock.sleeps) == 1)
        scheduler.suspend()

        scheduler.reset()

        assert await settle(lambda: len(clock.sleeps) == 2)
        assert recorder.tokens == [1, 2]
        assert state.consecutive_failures == 0
        assert clock.sleeps[-1] == 30.0

    @pytest.mark.asyncio
    async def test_state_change_callback(self, scheduler, clock, settle):
        transitions = []
        scheduler.set_on_state_change(lambda old, new: transitions.append((old, new)))

        await scheduler.start()
        await settle(lambda: len(clock.sleeps) == 1)
        scheduler.suspend()

        assert transitions == [
            (SchedulerState.IDLE, SchedulerState.RUNNING),
            (SchedulerState.RUNNING, SchedulerState.SCHEDULED),
            (SchedulerState.SCHEDULED, SchedulerState.SUSPENDED),
        ]
