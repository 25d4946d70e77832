"""
Domain layer.

Entities and the error taxonomy shared by every engine component.
"""
from .entities import (
    DeviceStatus,
    DiscordConfig,
    DiskInfo,
    DisplayMeasurement,
    Measurement,
    Stage,
    Thresholds,
)
from .exceptions import (
    DeviceApiError,
    DeviceRejectedError,
    DeviceTimeoutError,
    DeviceUnreachableError,
    DomainException,
    EngineSuspendedError,
    MalformedPayloadError,
    StaleCycleError,
)

__all__ = [
    "DeviceStatus",
    "DiscordConfig",
    "DiskInfo",
    "DisplayMeasurement",
    "Measurement",
    "Stage",
    "Thresholds",
    "DeviceApiError",
    "DeviceRejectedError",
    "DeviceTimeoutError",
    "DeviceUnreachableError",
    "DomainException",
    "EngineSuspendedError",
    "MalformedPayloadError",
    "StaleCycleError",
]
