"""
Operator command API endpoints.
"""
from fastapi import APIRouter, Depends

from ..dependencies import get_engine, to_command_response
from ..schemas import (
    CommandErrorResponse,
    CommandResponse,
    IntervalRequest,
    ManualStageRequest,
    PumpCommandRequest,
    SwitchRequest,
)
from ...engine import DashboardEngine

router = APIRouter(
    prefix="/commands",
    tags=["Commands"],
    responses={
        409: {"model": CommandErrorResponse, "description": "Engine suspended"},
        502: {"model": CommandErrorResponse, "description": "Device rejected or unreachable"},
        504: {"model": CommandErrorResponse, "description": "Device timed out"},
    },
)


@router.post("/measurement", response_model=CommandResponse)
async def take_measurement(engine: DashboardEngine = Depends(get_engine)):
    """Trigger a measurement and refresh once it has settled."""
    return to_command_response(await engine.trigger_measurement())


@router.post("/pump", response_model=CommandResponse)
async def control_pump(
    data: PumpCommandRequest,
    engine: DashboardEngine = Depends(get_engine),
):
    """Switch the pump on for a duration, or off."""
    return to_command_response(await engine.control_pump(data.action, data.duration))


@router.post("/fan", response_model=CommandResponse)
async def control_fan(
    data: SwitchRequest,
    engine: DashboardEngine = Depends(get_engine),
):
    return to_command_response(await engine.control_fan(data.on))


@router.post("/extractor", response_model=CommandResponse)
async def control_extractor(
    data: SwitchRequest,
    engine: DashboardEngine = Depends(get_engine),
):
    return to_command_response(await engine.control_extractor(data.on))


@router.post("/stage/manual", response_model=CommandResponse)
async def set_manual_stage(
    data: ManualStageRequest,
    engine: DashboardEngine = Depends(get_engine),
):
    """Force a stage, overriding automatic progression."""
    return to_command_response(await engine.set_manual_stage(data.stage))


@router.post("/stage/auto", response_model=CommandResponse)
async def reset_manual_stage(engine: DashboardEngine = Depends(get_engine)):
    """Return stage control to automatic."""
    return to_command_response(await engine.reset_manual_stage())


@router.post("/interval", response_model=CommandResponse)
async def set_measurement_interval(
    data: IntervalRequest,
    engine: DashboardEngine = Depends(get_engine),
):
    return to_command_response(await engine.set_measurement_interval(data.interval))


@router.post("/history/clear", response_model=CommandResponse)
async def clear_history(engine: DashboardEngine = Depends(get_engine)):
    """Delete all measurement history on the device."""
    return to_command_response(await engine.clear_history())


@router.post("/test-mode", response_model=CommandResponse)
async def toggle_test_mode(engine: DashboardEngine = Depends(get_engine)):
    return to_command_response(await engine.toggle_test_mode())


@router.post("/restart", response_model=CommandResponse)
async def restart_device(engine: DashboardEngine = Depends(get_engine)):
    """Restart the device; polling stays suspended until resumed."""
    return to_command_response(await engine.restart_device())


@router.post("/resume", response_model=CommandResponse)
async def resume_polling(engine: DashboardEngine = Depends(get_engine)):
    return to_command_response(await engine.resume())


@router.post("/refresh", response_model=CommandResponse)
async def refresh(engine: DashboardEngine = Depends(get_engine)):
    """Reload reference data and run a cycle now."""
    return to_command_response(await engine.refresh())
