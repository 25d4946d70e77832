"""
Device configuration API endpoints.

Stage definitions, fan/extractor thresholds and Discord alerts.
"""
from fastapi import APIRouter, Depends, Path

from ..dependencies import get_engine, to_command_response
from ..schemas import (
    CommandErrorResponse,
    CommandResponse,
    DiscordConfigRequest,
    StageUpdateRequest,
    ThresholdsRequest,
)
from ...domain.entities import DiscordConfig, Thresholds
from ...engine import DashboardEngine

router = APIRouter(
    tags=["Configuration"],
    responses={
        409: {"model": CommandErrorResponse, "description": "Engine suspended"},
        502: {"model": CommandErrorResponse, "description": "Device rejected or unreachable"},
        504: {"model": CommandErrorResponse, "description": "Device timed out"},
    },
)


def discord_request_to_entity(data: DiscordConfigRequest) -> DiscordConfig:
    """Convert request schema to domain entity."""
    return DiscordConfig(
        webhook_url=data.webhook_url,
        enabled=data.enabled,
        alerts=data.alerts.model_dump(by_alias=True),
    )


@router.put("/stages/{index}", response_model=CommandResponse)
async def update_stage(
    data: StageUpdateRequest,
    index: int = Path(..., ge=0),
    engine: DashboardEngine = Depends(get_engine),
):
    """Update one stage definition."""
    result = await engine.update_stage(
        index,
        duration_days=data.duration_days,
        humidity_threshold=data.humidity_threshold,
        watering_time_sec=data.watering_time_sec,
    )
    return to_command_response(result)


@router.get("/thresholds", response_model=CommandResponse)
async def get_thresholds(engine: DashboardEngine = Depends(get_engine)):
    return to_command_response(await engine.get_thresholds())


@router.put("/thresholds", response_model=CommandResponse)
async def set_thresholds(
    data: ThresholdsRequest,
    engine: DashboardEngine = Depends(get_engine),
):
    """Set fan and extractor activation thresholds."""
    thresholds = Thresholds(
        fan_temp_on=data.fan_temp_on,
        fan_hum_on=data.fan_hum_on,
        extractor_temp_on=data.extractor_temp_on,
        extractor_hum_on=data.extractor_hum_on,
    )
    return to_command_response(await engine.set_thresholds(thresholds))


@router.get("/discord", response_model=CommandResponse)
async def get_discord_config(engine: DashboardEngine = Depends(get_engine)):
    return to_command_response(await engine.get_discord_config())


@router.put("/discord", response_model=CommandResponse)
async def set_discord_config(
    data: DiscordConfigRequest,
    engine: DashboardEngine = Depends(get_engine),
):
    """Save the Discord alert configuration."""
    return to_command_response(await engine.set_discord_config(discord_request_to_entity(data)))


@router.post("/discord/test", response_model=CommandResponse)
async def send_test_discord_alert(
    data: DiscordConfigRequest,
    engine: DashboardEngine = Depends(get_engine),
):
    """Save the given configuration, then send a test alert."""
    result = await engine.send_test_discord_alert(discord_request_to_entity(data))
    return to_command_response(result)
