"""
FastAPI dependency providers and command result mapping.
"""
from dataclasses import asdict, is_dataclass

from fastapi import HTTPException, Request, status

from ..domain.exceptions import (
    DeviceApiError,
    DeviceTimeoutError,
    EngineSuspendedError,
)
from ..engine import CommandResult, DashboardEngine
from .schemas import CommandResponse


def get_engine(request: Request) -> DashboardEngine:
    """Get the engine bound to this application."""
    return request.app.state.engine


def status_for_error(error) -> int:
    """Map a command failure to an HTTP status code."""
    if isinstance(error, EngineSuspendedError):
        return status.HTTP_409_CONFLICT
    if isinstance(error, DeviceTimeoutError):
        return status.HTTP_504_GATEWAY_TIMEOUT
    if isinstance(error, DeviceApiError):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def to_command_response(result: CommandResult) -> CommandResponse:
    """
    Convert a CommandResult to a response, raising HTTPException on failure.
    """
    if not result.ok:
        raise HTTPException(
            status_code=status_for_error(result.error),
            detail=result.to_dict(),
        )

    payload = result.payload
    if is_dataclass(payload):
        payload = asdict(payload)
    return CommandResponse(
        ok=True,
        command=result.command,
        message=result.message,
        payload=payload,
    )
