"""
Process-wide polling state.

Holds what the scheduler needs to compute the next delay and what the
orchestrator needs to decide whether a cycle may still commit.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class PollingState:
    """
    Polling state for the dashboard session.

    The cycle token is monotonic for the life of the object; reset() clears
    the heap sample and failure counter but never rewinds the token.
    """
    interval_ms: int
    cycle_token: int = 0
    consecutive_failures: int = 0
    last_free_heap: Optional[int] = None
    total_cycles: int = 0
    failed_cycles: int = 0

    def issue_token(self) -> int:
        """Issue the token for a new cycle run."""
        self.cycle_token += 1
        self.total_cycles += 1
        return self.cycle_token

    def is_current(self, token: int) -> bool:
        """True if no newer cycle has been started since token was issued."""
        return token == self.cycle_token

    def record_heap(self, free_heap: Optional[int]) -> None:
        """Record the latest device free-heap sample."""
        if free_heap is not None:
            self.last_free_heap = free_heap

    def record_success(self) -> None:
        self.consecutive_failures = 0

    def record_failure(self) -> None:
        self.consecutive_failures += 1
        self.failed_cycles += 1

    def reset(self, interval_ms: int) -> None:
        """Reset for a manual full refresh."""
        self.interval_ms = interval_ms
        self.consecutive_failures = 0
        self.last_free_heap = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "interval_ms": self.interval_ms,
            "cycle_token": self.cycle_token,
            "consecutive_failures": self.consecutive_failures,
            "last_free_heap": self.last_free_heap,
            "total_cycles": self.total_cycles,
            "failed_cycles": self.failed_cycles,
        }
