"""
Pydantic schemas for device REST payloads.

Field aliases follow the camelCase names the firmware emits.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, RootModel

from ..domain.entities import (
    DeviceStatus,
    DiscordConfig,
    DiskInfo,
    Measurement,
    Stage,
    Thresholds,
)


class DevicePayload(BaseModel):
    """Base for device payload schemas."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class DeviceStatusPayload(DevicePayload):
    """Schema for GET /data."""
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    vpd: Optional[float] = None
    pump_status: bool = Field(default=False, alias="pumpStatus")
    pump_activation_count: Optional[int] = Field(default=None, alias="pumpActivationCount")
    pump_remaining_sec: Optional[int] = Field(default=None, alias="pumpRemainingSec")
    fan_status: bool = Field(default=False, alias="fanStatus")
    extractor_status: bool = Field(default=False, alias="extractorStatus")
    test_mode_enabled: bool = Field(default=False, alias="testModeEnabled")
    elapsed_time: Optional[int] = Field(default=None, alias="elapsedTime")
    current_time: Optional[int] = Field(default=None, alias="currentTime")
    last_measurement_timestamp: Optional[int] = Field(default=None, alias="lastMeasurementTimestamp")
    ntp_synced: bool = Field(default=False, alias="ntpSynced")
    current_stage_index: Optional[int] = Field(default=None, alias="currentStageIndex")
    current_stage_name: Optional[str] = Field(default=None, alias="currentStageName")
    current_stage_threshold: Optional[float] = Field(default=None, alias="currentStageThreshold")
    current_stage_watering_sec: Optional[int] = Field(default=None, alias="currentStageWateringSec")
    manual_stage_control: bool = Field(default=False, alias="manualStageControl")
    device_ip: Optional[str] = Field(default=None, alias="deviceIP")
    wifi_rssi: Optional[int] = Field(default=None, alias="wifiRSSI")
    wifi_status: Optional[str] = Field(default=None, alias="wifiStatus")
    free_heap: Optional[int] = Field(default=None, alias="freeHeap")
    measurement_interval: Optional[float] = Field(default=None, alias="measurementInterval")

    def to_entity(self) -> DeviceStatus:
        return DeviceStatus(
            temperature=self.temperature,
            humidity=self.humidity,
            vpd=self.vpd,
            pump_status=self.pump_status,
            pump_activation_count=self.pump_activation_count,
            pump_remaining_sec=self.pump_remaining_sec,
            fan_status=self.fan_status,
            extractor_status=self.extractor_status,
            test_mode_enabled=self.test_mode_enabled,
            elapsed_time_sec=self.elapsed_time,
            current_time_ms=self.current_time,
            last_measurement_timestamp=self.last_measurement_timestamp,
            ntp_synced=self.ntp_synced,
            current_stage_index=self.current_stage_index,
            current_stage_name=self.current_stage_name,
            current_stage_threshold=self.current_stage_threshold,
            current_stage_watering_sec=self.current_stage_watering_sec,
            manual_stage_control=self.manual_stage_control,
            device_ip=self.device_ip,
            wifi_rssi=self.wifi_rssi,
            wifi_status=self.wifi_status,
            free_heap=self.free_heap,
            measurement_interval_hours=self.measurement_interval,
        )


class MeasurementPayload(DevicePayload):
    """Schema for one entry of GET /loadMeasurement."""
    epoch_ms: Optional[int] = 0
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    pump_activated: bool = Field(default=False, alias="pumpActivated")
    fan_activated: Optional[bool] = Field(default=None, alias="fanActivated")
    extractor_activated: Optional[bool] = Field(default=None, alias="extractorActivated")
    stage: Optional[str] = None
    event: Optional[str] = None

    def to_entity(self) -> Measurement:
        return Measurement(
            raw_timestamp=self.epoch_ms or 0,
            temperature=self.temperature,
            humidity=self.humidity,
            pump_activated=self.pump_activated,
            fan_activated=self.fan_activated,
            extractor_activated=self.extractor_activated,
            stage_name=self.stage,
            event=self.event,
        )


class MeasurementListPayload(RootModel[List[MeasurementPayload]]):
    """Schema for GET /loadMeasurement."""

    def to_entities(self) -> List[Measurement]:
        return [item.to_entity() for item in self.root]


class StagePayload(DevicePayload):
    """Schema for one entry of GET /listStages."""
    index: int
    name: str
    humidity_threshold: float = Field(alias="humidityThreshold")
    watering_time_sec: int = Field(alias="wateringTimeSec")
    duration_days: int = 0

    def to_entity(self) -> Stage:
        return Stage(
            index=self.index,
            name=self.name,
            humidity_threshold=self.humidity_threshold,
            watering_time_sec=self.watering_time_sec,
            duration_days=self.duration_days,
        )


class StageListPayload(RootModel[List[StagePayload]]):
    """Schema for GET /listStages."""

    def to_entities(self) -> List[Stage]:
        return [item.to_entity() for item in self.root]


class IntervalPayload(DevicePayload):
    """Schema for GET /getMeasurementInterval (hours)."""
    interval: float


class DiskInfoPayload(DevicePayload):
    """Schema for GET /diskInfo."""
    free_bytes: Optional[int] = None
    free_percent: Optional[float] = None

    def to_entity(self) -> DiskInfo:
        return DiskInfo(free_bytes=self.free_bytes, free_percent=self.free_percent)


class ThresholdsPayload(DevicePayload):
    """Schema for GET /getThresholds."""
    fan_temp_on: float = Field(default=28.0, alias="fanTempOn")
    fan_hum_on: float = Field(default=70.0, alias="fanHumOn")
    extractor_temp_on: float = Field(default=32.0, alias="extractorTempOn")
    extractor_hum_on: float = Field(default=85.0, alias="extractorHumOn")

    def to_entity(self) -> Thresholds:
        return Thresholds(
            fan_temp_on=self.fan_temp_on,
            fan_hum_on=self.fan_hum_on,
            extractor_temp_on=self.extractor_temp_on,
            extractor_hum_on=self.extractor_hum_on,
        )


class DiscordConfigPayload(DevicePayload):
    """Schema for GET /getDiscordConfig."""
    webhook_url: str = Field(default="", alias="webhookUrl")
    enabled: bool = False
    alerts: Dict[str, Any] = Field(default_factory=dict)

    def to_entity(self) -> DiscordConfig:
        return DiscordConfig(
            webhook_url=self.webhook_url,
            enabled=self.enabled,
            alerts=dict(self.alerts),
        )
