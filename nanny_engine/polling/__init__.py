"""
Polling module.

Cycle scheduling, polling state and the clock abstraction.
"""
from .clock import Clock, SystemClock
from .polling_state import PollingState
from .scheduler import PollingScheduler, SchedulerState

__all__ = [
    "Clock",
    "SystemClock",
    "PollingState",
    "PollingScheduler",
    "SchedulerState",
]
