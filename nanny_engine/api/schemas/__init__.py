"""
Pydantic request/response schemas for API endpoints.
"""
# Command schemas
from .command_schemas import (
    CommandErrorResponse,
    CommandResponse,
    DiscordAlertsSchema,
    DiscordConfigRequest,
    IntervalRequest,
    ManualStageRequest,
    PumpCommandRequest,
    StageUpdateRequest,
    SwitchRequest,
    ThresholdsRequest,
    VisibilityRequest,
)

# Dashboard schemas
from .dashboard_schemas import (
    EventListResponse,
    HealthResponse,
    PollingStatsResponse,
    StageResponse,
)

__all__ = [
    "CommandErrorResponse",
    "CommandResponse",
    "DiscordAlertsSchema",
    "DiscordConfigRequest",
    "IntervalRequest",
    "ManualStageRequest",
    "PumpCommandRequest",
    "StageUpdateRequest",
    "SwitchRequest",
    "ThresholdsRequest",
    "VisibilityRequest",
    "EventListResponse",
    "HealthResponse",
    "PollingStatsResponse",
    "StageResponse",
]
