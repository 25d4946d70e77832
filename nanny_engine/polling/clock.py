"""
Clock abstraction for the scheduler and reconciliation.

Production code uses wall-clock time and asyncio timers; tests substitute
a virtual clock so no real time passes.
"""
import asyncio
import time
from abc import ABC, abstractmethod


class Clock(ABC):
    """Source of current time and timed waits."""

    @abstractmethod
    def now_ms(self) -> int:
        """Current epoch time in milliseconds."""

    @abstractmethod
    async def sleep(self, seconds: float) -> None:
        """Suspend for the given number of seconds."""


class SystemClock(Clock):
    """Wall-clock time and asyncio timers."""

    def now_ms(self) -> int:
        return int(time.time() * 1000)

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)
