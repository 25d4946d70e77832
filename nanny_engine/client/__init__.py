"""
Device client module.

Timed HTTP access to the grow controller endpoints.
"""
from .device_client import ApiResult, BusyTracker, DeviceApiClient

__all__ = [
    "ApiResult",
    "BusyTracker",
    "DeviceApiClient",
]
