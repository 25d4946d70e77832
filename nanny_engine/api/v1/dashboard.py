"""
Dashboard API endpoints.
"""
from dataclasses import asdict
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..dependencies import get_engine
from ..schemas import (
    EventListResponse,
    HealthResponse,
    PollingStatsResponse,
    StageResponse,
    VisibilityRequest,
)
from ...engine import DashboardEngine

router = APIRouter(tags=["Dashboard"])


@router.get("/health", response_model=HealthResponse)
async def health_check(engine: DashboardEngine = Depends(get_engine)):
    """Check engine health."""
    view_model = engine.view_model
    degraded = engine.is_suspended or (
        view_model is not None and (view_model.status_stale or view_model.history_stale)
    )
    return HealthResponse(
        status='degraded' if degraded else 'healthy',
        version=engine.settings.app_version,
        running=engine.is_running,
        suspended=engine.is_suspended,
        busy=engine.is_busy,
        device=engine.settings.device.base_url,
    )


@router.get("/dashboard", response_model=Dict[str, Any])
async def get_dashboard(engine: DashboardEngine = Depends(get_engine)):
    """
    Get the latest committed view-model.

    Returns 503 until the first cycle has completed.
    """
    view_model = engine.view_model
    if view_model is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="No data synchronized yet",
        )
    return view_model.to_dict()


@router.get("/polling", response_model=PollingStatsResponse)
async def get_polling_stats(engine: DashboardEngine = Depends(get_engine)):
    """Get scheduler state and polling statistics."""
    return PollingStatsResponse(**engine.polling_stats())


@router.get("/stages", response_model=List[StageResponse])
async def list_stages(engine: DashboardEngine = Depends(get_engine)):
    """List cached stage definitions."""
    return [StageResponse(**asdict(stage)) for stage in engine.orchestrator.stages]


@router.get("/events", response_model=EventListResponse)
async def list_events(
    limit: int = Query(50, ge=1, le=100),
    engine: DashboardEngine = Depends(get_engine),
):
    """List recent engine events."""
    events = [event.to_dict() for event in engine.bus.recent(limit)]
    return EventListResponse(events=events, total=len(events))


@router.post("/visibility", status_code=status.HTTP_204_NO_CONTENT)
async def set_visibility(
    data: VisibilityRequest,
    engine: DashboardEngine = Depends(get_engine),
):
    """Pause polling while hidden; resume with an immediate cycle."""
    engine.set_visibility(data.active)
