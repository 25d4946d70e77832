"""
Configuration for the dashboard sync engine.

Provides settings for device access, polling cadence, timestamp
reconciliation, view-model limits, persistence and the HTTP surface.
"""
from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DeviceSettings(BaseSettings):
    """Device REST endpoint configuration."""

    model_config = SettingsConfigDict(
        env_prefix="NANNY_DEVICE_",
        env_file=".env",
        extra="ignore",
    )

    base_url: str = Field(default="http://greennanny.local", description="Device base URL")
    request_timeout_ms: int = Field(default=20000, description="Hard timeout per device call (ms)")
    restart_timeout_ms: int = Field(default=5000, description="Timeout for the restart command (ms)")
    measurement_settle_ms: int = Field(
        default=2000,
        description="Wait after a manual measurement before refreshing (ms)",
    )


class PollingSettings(BaseSettings):
    """Polling cadence configuration."""

    model_config = SettingsConfigDict(
        env_prefix="NANNY_POLLING_",
        env_file=".env",
        extra="ignore",
    )

    refresh_interval_ms: int = Field(default=30000, description="Base polling interval (ms)")
    low_heap_threshold: int = Field(
        default=13000,
        description="Free heap (bytes) below which the interval is doubled",
    )
    default_heap_sample: int = Field(
        default=20000,
        description="Heap value assumed before any sample was received",
    )
    failure_backoff: bool = Field(default=True, description="Enable backoff on consecutive failures")
    backoff_multiplier: float = Field(default=2.0, description="Backoff multiplier per failure")
    max_interval_ms: int = Field(default=300000, description="Upper bound for the polling delay (ms)")


class ReconciliationSettings(BaseSettings):
    """Timestamp reconciliation configuration."""

    model_config = SettingsConfigDict(
        env_prefix="NANNY_RECONCILIATION_",
        env_file=".env",
        extra="ignore",
    )

    plausible_epoch_ms: int = Field(
        default=1_000_000_000_000,
        description="Raw timestamps at or above this value are trusted as epoch ms",
    )
    storage_key: str = Field(
        default="nanny.timestamp-cache",
        description="Key of the persisted reconciliation state",
    )
    default_measurement_interval_hours: float = Field(
        default=1.0,
        description="Measurement interval assumed until the device reports one",
    )


class DisplaySettings(BaseSettings):
    """View-model limits and notification rate limiting."""

    model_config = SettingsConfigDict(
        env_prefix="NANNY_DISPLAY_",
        env_file=".env",
        extra="ignore",
    )

    chart_max_points: int = Field(default=180, description="Maximum points per chart series")
    history_max_entries: int = Field(default=150, description="Maximum measurements in the view-model")
    notification_min_interval_ms: int = Field(
        default=6000,
        description="Minimum spacing between notifications with the same key (ms)",
    )


class StorageSettings(BaseSettings):
    """Persistent store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="NANNY_STORAGE_",
        env_file=".env",
        extra="ignore",
    )

    backend: str = Field(default="file", description="memory, file or redis")
    file_path: Path = Field(
        default=Path.home() / ".nanny_engine" / "state.json",
        description="JSON file used by the file backend",
    )
    redis_url: str = Field(default="redis://localhost:6379/0", description="Redis URL for the redis backend")
    redis_prefix: str = Field(default="nanny", description="Key prefix for the redis backend")


class ApiSettings(BaseSettings):
    """HTTP surface configuration."""

    model_config = SettingsConfigDict(
        env_prefix="NANNY_API_",
        env_file=".env",
        extra="ignore",
    )

    host: str = Field(default="127.0.0.1", description="Bind address")
    port: int = Field(default=8600, description="Bind port")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])


class EngineSettings(BaseSettings):
    """Main configuration for the sync engine."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Green Nanny Sync Engine")
    app_version: str = Field(default="0.1.0")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # Sub-settings
    device: DeviceSettings = Field(default_factory=DeviceSettings)
    polling: PollingSettings = Field(default_factory=PollingSettings)
    reconciliation: ReconciliationSettings = Field(default_factory=ReconciliationSettings)
    display: DisplaySettings = Field(default_factory=DisplaySettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)

    def validate_limits(self) -> List[str]:
        """
        Validate settings that would make the engine misbehave.

        Returns:
            List of error messages.
        """
        errors = []

        if self.polling.refresh_interval_ms <= 0:
            errors.append("Polling interval must be positive")

        if self.polling.max_interval_ms < self.polling.refresh_interval_ms:
            errors.append("Maximum polling interval is below the base interval")

        if self.device.request_timeout_ms <= 0:
            errors.append("Request timeout must be positive")

        if self.display.chart_max_points <= 0 or self.display.history_max_entries <= 0:
            errors.append("Display limits must be positive")

        return errors


@lru_cache()
def get_engine_settings() -> EngineSettings:
    """
    Get cached engine settings.

    Uses LRU cache to avoid re-reading environment variables on every access.
    """
    return EngineSettings()
