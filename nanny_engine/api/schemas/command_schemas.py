"""
Pydantic schemas for operator command endpoints.
"""
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class PumpCommandRequest(BaseModel):
    """Schema for switching the pump."""
    action: str = Field(..., description="on or off")
    duration: Optional[int] = Field(None, ge=1, le=600, description="Run time in seconds when switching on")

    @field_validator('action')
    @classmethod
    def validate_action(cls, v: str) -> str:
        valid = ['on', 'off']
        if v not in valid:
            raise ValueError(f"Action must be one of: {', '.join(valid)}")
        return v

    @model_validator(mode='after')
    def require_duration_for_on(self) -> "PumpCommandRequest":
        if self.action == 'on' and self.duration is None:
            raise ValueError("Duration is required to activate the pump")
        return self


class SwitchRequest(BaseModel):
    """Schema for on/off actuators."""
    on: bool


class ManualStageRequest(BaseModel):
    """Schema for forcing a stage."""
    stage: int = Field(..., ge=0, description="Stage index")


class IntervalRequest(BaseModel):
    """Schema for changing the measurement interval."""
    interval: int = Field(..., ge=1, le=167, description="Measurement interval in hours")


class StageUpdateRequest(BaseModel):
    """Schema for editing a stage definition."""
    duration_days: int = Field(..., ge=1, le=365)
    humidity_threshold: float = Field(..., ge=0, le=100)
    watering_time_sec: int = Field(..., ge=1, le=600)


class ThresholdsRequest(BaseModel):
    """Schema for fan and extractor activation thresholds."""
    fan_temp_on: float = Field(..., ge=0, le=50)
    fan_hum_on: float = Field(..., ge=0, le=100)
    extractor_temp_on: float = Field(..., ge=0, le=50)
    extractor_hum_on: float = Field(..., ge=0, le=100)


class DiscordAlertsSchema(BaseModel):
    """
    Per-alert switches and thresholds.

    Accepts snake_case or the firmware's camelCase names.
    """
    model_config = ConfigDict(populate_by_name=True)

    temp_high_alert: bool = Field(default=False, alias="tempHighAlert")
    temp_high_threshold: float = Field(default=35.0, alias="tempHighThreshold")
    temp_low_alert: bool = Field(default=False, alias="tempLowAlert")
    temp_low_threshold: float = Field(default=10.0, alias="tempLowThreshold")
    hum_high_alert: bool = Field(default=False, alias="humHighAlert")
    hum_high_threshold: float = Field(default=90.0, alias="humHighThreshold")
    hum_low_alert: bool = Field(default=False, alias="humLowAlert")
    hum_low_threshold: float = Field(default=20.0, alias="humLowThreshold")
    sensor_fail_alert: bool = Field(default=False, alias="sensorFailAlert")
    device_activation_alert: bool = Field(default=False, alias="deviceActivationAlert")


class DiscordConfigRequest(BaseModel):
    """Schema for the Discord alert configuration."""
    webhook_url: str = Field(default="", max_length=512)
    enabled: bool = False
    alerts: DiscordAlertsSchema = Field(default_factory=DiscordAlertsSchema)

    @field_validator('webhook_url')
    @classmethod
    def validate_webhook_url(cls, v: str) -> str:
        v = v.strip()
        if v and not v.startswith(('http://', 'https://')):
            raise ValueError("Webhook URL must start with http:// or https://")
        return v


class VisibilityRequest(BaseModel):
    """Schema for consumer visibility changes."""
    active: bool


class CommandResponse(BaseModel):
    """Result of a successful command."""
    ok: bool
    command: str
    message: str = ""
    payload: Optional[Any] = None


class CommandErrorResponse(BaseModel):
    """Result of a failed command."""
    ok: bool = False
    command: str
    message: str
    error: Optional[Dict[str, Any]] = None
