"""
Test data factories for the sync engine.

Provides factory classes for generating test data.
"""
from .device_factory import DeviceStatusPayloadFactory, StageFactory, StagePayloadFactory
from .measurement_factory import (
    BASE_EPOCH_MS,
    HOUR_MS,
    DisplayMeasurementFactory,
    MeasurementFactory,
    MeasurementPayloadFactory,
)

__all__ = [
    "DeviceStatusPayloadFactory",
    "StageFactory",
    "StagePayloadFactory",
    "BASE_EPOCH_MS",
    "HOUR_MS",
    "DisplayMeasurementFactory",
    "MeasurementFactory",
    "MeasurementPayloadFactory",
]
