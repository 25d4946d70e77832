"""
Pydantic schemas for dashboard and status endpoints.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class HealthResponse(BaseModel):
    """Engine health summary."""
    status: str
    version: str
    running: bool
    suspended: bool
    busy: bool
    device: str


class PollingStatsResponse(BaseModel):
    """Scheduler and polling state."""
    state: str
    started: bool
    active: bool
    in_flight: int
    next_delay_ms: int
    heap_low: bool
    interval_ms: int
    cycle_token: int
    consecutive_failures: int
    last_free_heap: Optional[int] = None
    total_cycles: int = 0
    failed_cycles: int = 0


class StageResponse(BaseModel):
    """One stage definition."""
    index: int
    name: str
    humidity_threshold: float
    watering_time_sec: int
    duration_days: int


class EventListResponse(BaseModel):
    """Recent engine events, oldest first."""
    events: List[Dict[str, Any]]
    total: int
