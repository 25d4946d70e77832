"""
Domain entities for the dashboard sync engine.

These entities represent the device state and measurement history as the
engine sees it after decoding the device payloads.
"""
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class Measurement:
    """
    A single historical sample recorded by the device.

    Identified by its raw timestamp and sequence position, not by an id.
    The raw timestamp is whatever the device clock said, which may be 0
    before NTP sync or reset after a restart.
    """
    raw_timestamp: int
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    pump_activated: bool = False
    fan_activated: Optional[bool] = None
    extractor_activated: Optional[bool] = None
    stage_name: Optional[str] = None
    event: Optional[str] = None


@dataclass(frozen=True)
class DisplayMeasurement(Measurement):
    """A measurement with its client-derived stabilized timestamp (epoch ms)."""
    stabilized_timestamp: int = 0

    @classmethod
    def from_measurement(
        cls,
        measurement: Measurement,
        stabilized_timestamp: int,
    ) -> "DisplayMeasurement":
        return cls(
            raw_timestamp=measurement.raw_timestamp,
            temperature=measurement.temperature,
            humidity=measurement.humidity,
            pump_activated=measurement.pump_activated,
            fan_activated=measurement.fan_activated,
            extractor_activated=measurement.extractor_activated,
            stage_name=measurement.stage_name,
            event=measurement.event,
            stabilized_timestamp=stabilized_timestamp,
        )


@dataclass(frozen=True)
class DeviceStatus:
    """
    Full snapshot of the current device state.

    Replaced wholesale every cycle; never merged field by field.
    """
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    vpd: Optional[float] = None
    pump_status: bool = False
    pump_activation_count: Optional[int] = None
    pump_remaining_sec: Optional[int] = None
    fan_status: bool = False
    extractor_status: bool = False
    test_mode_enabled: bool = False
    elapsed_time_sec: Optional[int] = None
    current_time_ms: Optional[int] = None
    last_measurement_timestamp: Optional[int] = None
    ntp_synced: bool = False
    current_stage_index: Optional[int] = None
    current_stage_name: Optional[str] = None
    current_stage_threshold: Optional[float] = None
    current_stage_watering_sec: Optional[int] = None
    manual_stage_control: bool = False
    device_ip: Optional[str] = None
    wifi_rssi: Optional[int] = None
    wifi_status: Optional[str] = None
    free_heap: Optional[int] = None
    measurement_interval_hours: Optional[float] = None


@dataclass
class Stage:
    """
    A named phase of the cultivation cycle.

    Mutated only through the update-stage command after the device
    acknowledged the change.
    """
    index: int
    name: str
    humidity_threshold: float
    watering_time_sec: int
    duration_days: int

    def with_updates(
        self,
        duration_days: Optional[int] = None,
        humidity_threshold: Optional[float] = None,
        watering_time_sec: Optional[int] = None,
    ) -> "Stage":
        """Return a copy with the given parameters replaced."""
        changes: Dict[str, Any] = {}
        if duration_days is not None:
            changes["duration_days"] = duration_days
        if humidity_threshold is not None:
            changes["humidity_threshold"] = humidity_threshold
        if watering_time_sec is not None:
            changes["watering_time_sec"] = watering_time_sec
        return replace(self, **changes)


@dataclass(frozen=True)
class DiskInfo:
    """Flash filesystem usage on the device."""
    free_bytes: Optional[int] = None
    free_percent: Optional[float] = None

    @property
    def is_critical(self) -> bool:
        return self.free_percent is not None and self.free_percent < 10

    @property
    def is_low(self) -> bool:
        return self.free_percent is not None and self.free_percent < 20


@dataclass(frozen=True)
class Thresholds:
    """Fan and extractor automatic activation thresholds."""
    fan_temp_on: float = 28.0
    fan_hum_on: float = 70.0
    extractor_temp_on: float = 32.0
    extractor_hum_on: float = 85.0


@dataclass(frozen=True)
class DiscordConfig:
    """Discord webhook alert configuration stored on the device."""
    webhook_url: str = ""
    enabled: bool = False
    alerts: Dict[str, Any] = field(default_factory=dict)
