"""
Dashboard sync engine.

Wires client, reconciliation cache, scheduler and orchestrator into one
explicit state object, and exposes the operator command API.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional

import httpx

from .client.device_client import ApiResult, BusyTracker, DeviceApiClient
from .config import EngineSettings, get_engine_settings
from .domain.entities import DiscordConfig, Thresholds
from .domain.exceptions import DomainException, EngineSuspendedError
from .events import (
    EngineEvent,
    EngineEventType,
    EventBus,
    NotificationSeverity,
    Notifier,
)
from .polling.clock import Clock, SystemClock
from .polling.polling_state import PollingState
from .polling.scheduler import PollingScheduler
from .reconciliation.timestamp_cache import TimestampCache
from .storage.persistent_store import PersistentStore, create_store
from .sync.orchestrator import SyncOrchestrator
from .sync.view_model import ViewModel

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Outcome of an operator command."""
    ok: bool
    command: str
    message: str = ""
    payload: Any = None
    error: Optional[DomainException] = None

    def to_dict(self) -> Dict[str, Any]:
        payload = self.payload
        if hasattr(payload, "to_dict"):
            payload = payload.to_dict()
        return {
            "ok": self.ok,
            "command": self.command,
            "message": self.message,
            "payload": payload,
            "error": self.error.to_dict() if self.error else None,
        }


class DashboardEngine:
    """
    Engine state for one device.

    All state lives on this object; there are no module-level globals.
    Commands return a CommandResult and never raise for device failures.
    """

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        store: Optional[PersistentStore] = None,
        clock: Optional[Clock] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the engine.

        Args:
            settings: Engine settings; cached environment settings if omitted.
            store: Persistent store; built from storage settings if omitted.
            clock: Time source shared by scheduler and reconciliation.
            transport: Optional httpx transport for the device client.
        """
        self.settings = settings or get_engine_settings()
        self.clock = clock or SystemClock()
        self.store = store or create_store(self.settings.storage)

        self.bus = EventBus()
        self.busy = BusyTracker()
        self.client = DeviceApiClient(
            settings=self.settings.device,
            busy=self.busy,
            transport=transport,
        )
        self.cache = TimestampCache(store=self.store, settings=self.settings.reconciliation)
        self.polling_state = PollingState(interval_ms=self.settings.polling.refresh_interval_ms)
        self.notifier = Notifier(
            self.bus,
            now_ms=self.clock.now_ms,
            min_interval_ms=self.settings.display.notification_min_interval_ms,
        )
        self.orchestrator = SyncOrchestrator(
            client=self.client,
            cache=self.cache,
            polling_state=self.polling_state,
            bus=self.bus,
            notifier=self.notifier,
            settings=self.settings,
            clock=self.clock,
        )
        self.scheduler = PollingScheduler(
            run_cycle=self.orchestrator.run_cycle,
            polling_state=self.polling_state,
            settings=self.settings.polling,
            clock=self.clock,
        )
        self._running = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Load persisted state, connect and start polling."""
        if self._running:
            logger.warning("Engine already running")
            return

        for error in self.settings.validate_limits():
            logger.warning(f"Configuration problem: {error}")

        logger.info(f"Starting engine for {self.settings.device.base_url}")
        await self.cache.load()
        await self.client.connect()
        await self.scheduler.start()
        self._running = True

    async def stop(self) -> None:
        """Stop polling, persist state and release connections."""
        if not self._running:
            return

        logger.info("Stopping engine")
        await self.scheduler.stop()
        try:
            await self.cache.save()
        except Exception as e:
            logger.error(f"Failed to persist timestamp cache on shutdown: {e}")
        await self.client.disconnect()
        await self.store.close()
        self._running = False
        logger.info("Engine stopped")

    # ------------------------------------------------------------------
    # Queries and subscriptions
    # ------------------------------------------------------------------

    @property
    def view_model(self) -> Optional[ViewModel]:
        return self.orchestrator.view_model

    @property
    def is_busy(self) -> bool:
        return self.busy.busy

    @property
    def is_suspended(self) -> bool:
        return self.scheduler.is_suspended

    def subscribe(
        self,
        handler: Callable[[EngineEvent], Any],
        event_types: Optional[Iterable[EngineEventType]] = None,
    ) -> Callable[[], None]:
        """Subscribe to engine events; returns an unsubscribe callable."""
        return self.bus.subscribe(handler, event_types)

    def polling_stats(self) -> Dict[str, Any]:
        return self.scheduler.get_polling_stats()

    def set_visibility(self, active: bool) -> None:
        """Pause polling while no consumer is looking; resume immediately."""
        self.scheduler.set_active(active)

    # ------------------------------------------------------------------
    # Scheduler control
    # ------------------------------------------------------------------

    async def refresh(self) -> CommandResult:
        """
        Manual full refresh.

        Resets polling state, forces stages and interval to reload and
        runs a cycle now.
        """
        if self.scheduler.is_suspended:
            return self._suspended("refresh")

        self.orchestrator.invalidate_reference_data()
        self.scheduler.reset()
        return CommandResult(ok=True, command="refresh", message="Refresh started")

    async def resume(self) -> CommandResult:
        """Operator reset after a restart or suspension."""
        was_suspended = self.scheduler.is_suspended
        self.orchestrator.invalidate_reference_data()
        self.scheduler.reset()

        if was_suspended:
            await self.bus.publish(EngineEvent(
                type=EngineEventType.SCHEDULER_RESUMED,
                time_ms=self.clock.now_ms(),
                reason="operator",
            ))
        return CommandResult(ok=True, command="resume", message="Polling resumed")

    async def _suspend(self, reason: str) -> None:
        self.scheduler.suspend(reason)
        await self.bus.publish(EngineEvent(
            type=EngineEventType.SCHEDULER_SUSPENDED,
            time_ms=self.clock.now_ms(),
            reason=reason,
        ))

    # ------------------------------------------------------------------
    # Command plumbing
    # ------------------------------------------------------------------

    def _suspended(self, command: str) -> CommandResult:
        error = EngineSuspendedError()
        logger.info(f"Rejected {command}: {error.message}")
        return CommandResult(ok=False, command=command, message=error.message, error=error)

    async def _send(
        self,
        command: str,
        endpoint: str,
        body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        success_message: str = "",
    ) -> CommandResult:
        if self.scheduler.is_suspended:
            return self._suspended(command)

        result = await self.client.send_command(endpoint, body=body, params=params)
        return await self._to_command_result(command, result, success_message)

    async def _to_command_result(
        self,
        command: str,
        result: ApiResult,
        success_message: str,
    ) -> CommandResult:
        if result.ok:
            return CommandResult(
                ok=True,
                command=command,
                message=success_message,
                payload=result.payload,
            )

        error = result.error
        logger.warning(f"Command {command} failed: {error.message}")
        await self.notifier.notify(
            key=f"command:{command}",
            message=f"Command {command} failed: {error.message}",
            severity=NotificationSeverity.ERROR,
        )
        return CommandResult(ok=False, command=command, message=error.message, error=error)

    def _trigger_cycle(self, reason: str) -> None:
        self.scheduler.trigger_now(reason)

    async def _save_cache(self) -> None:
        try:
            await self.cache.save()
        except Exception as e:
            logger.error(f"Failed to persist timestamp cache: {e}")

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def trigger_measurement(self) -> CommandResult:
        """
        Ask the device to measure now.

        The client time is queued before sending, so a cycle that sees the
        new sample while the command is still in flight stamps it with the
        moment the operator asked for it. The trigger is withdrawn when the
        command fails.
        """
        trigger_ms = self.clock.now_ms()
        self.cache.record_manual_trigger(trigger_ms)
        result = await self._send(
            "measurement",
            "/takeMeasurement",
            success_message="Measurement complete and data updated",
        )
        if not result.ok:
            self.cache.discard_manual_trigger(trigger_ms)
            return result

        await self._save_cache()
        await self.clock.sleep(self.settings.device.measurement_settle_ms / 1000)
        self._trigger_cycle("measurement")
        return result

    async def control_pump(self, action: str, duration_sec: Optional[int] = None) -> CommandResult:
        """Switch the pump on for duration_sec seconds, or off."""
        if action == "on":
            if duration_sec is None:
                raise ValueError("duration_sec is required to activate the pump")
            result = await self._send(
                "pump",
                "/controlPump",
                params={"action": "on", "duration": duration_sec},
                success_message=f"Pump activated for {duration_sec} seconds",
            )
        elif action == "off":
            result = await self._send(
                "pump",
                "/controlPump",
                body={"action": "off"},
                success_message="Pump deactivated",
            )
        else:
            raise ValueError(f"Unknown pump action: {action}")

        if result.ok:
            self._trigger_cycle("pump")
        return result

    async def control_fan(self, on: bool) -> CommandResult:
        result = await self._send(
            "fan",
            "/controlFan",
            params={"action": "on" if on else "off"},
            success_message=f"Fan turned {'on' if on else 'off'}",
        )
        if result.ok:
            self._trigger_cycle("fan")
        return result

    async def control_extractor(self, on: bool) -> CommandResult:
        result = await self._send(
            "extractor",
            "/controlExtractor",
            params={"action": "on" if on else "off"},
            success_message=f"Extractor turned {'on' if on else 'off'}",
        )
        if result.ok:
            self._trigger_cycle("extractor")
        return result

    async def set_manual_stage(self, index: int) -> CommandResult:
        stage = self.orchestrator.find_stage(index)
        name = stage.name if stage else str(index)
        result = await self._send(
            "stage_manual",
            "/setManualStage",
            body={"stage": index},
            success_message=f"Manual stage control enabled: {name}",
        )
        if result.ok:
            self._trigger_cycle("stage")
        return result

    async def reset_manual_stage(self) -> CommandResult:
        result = await self._send(
            "stage_auto",
            "/resetManualStage",
            success_message="Stage control returned to automatic",
        )
        if result.ok:
            self._trigger_cycle("stage")
        return result

    async def update_stage(
        self,
        index: int,
        duration_days: int,
        humidity_threshold: float,
        watering_time_sec: int,
    ) -> CommandResult:
        """Update one stage definition and patch the cached stage list."""
        result = await self._send(
            "stage_update",
            "/updateStage",
            body={
                "index": index,
                "duration_days": duration_days,
                "humidityThreshold": humidity_threshold,
                "wateringTimeSec": watering_time_sec,
            },
            success_message="Stage updated",
        )
        if not result.ok:
            return result

        stage = self.orchestrator.find_stage(index)
        if stage is not None:
            updated = stage.with_updates(
                duration_days=duration_days,
                humidity_threshold=humidity_threshold,
                watering_time_sec=watering_time_sec,
            )
            self.orchestrator.update_stage(updated)
            result.payload = updated
        else:
            logger.info(f"Stage {index} not cached, reloading stage list on next cycle")
            self.orchestrator.invalidate_reference_data()
        return result

    async def set_measurement_interval(self, hours: int) -> CommandResult:
        result = await self._send(
            "interval",
            "/setMeasurementInterval",
            body={"interval": hours},
            success_message=f"Measurement interval set to {hours} hours",
        )
        if result.ok:
            self.orchestrator.set_measurement_interval(float(hours))
        return result

    async def clear_history(self) -> CommandResult:
        """Delete the device history and start reconciliation from scratch."""
        result = await self._send(
            "clear_history",
            "/clearHistory",
            success_message="Measurement history has been cleared",
        )
        if not result.ok:
            return result

        self.cache.reset()
        await self._save_cache()
        await self.bus.publish(EngineEvent(
            type=EngineEventType.HISTORY_CLEARED,
            time_ms=self.clock.now_ms(),
            reason="operator",
        ))
        self._trigger_cycle("history_cleared")
        return result

    async def restart_device(self) -> CommandResult:
        """
        Restart the device.

        Polling is suspended first and stays suspended until resume().
        The device usually drops the connection before answering, so a
        timeout or transport error here is the expected outcome.
        """
        await self._suspend("device restart")
        result = await self.client.send_command(
            "/restartSystem",
            timeout_ms=self.settings.device.restart_timeout_ms,
        )
        if not result.ok:
            logger.info(f"Restart request ended without response as expected: {result.error.code}")
        return CommandResult(
            ok=True,
            command="restart",
            message="Restart initiated, resume polling once the device is back",
        )

    async def toggle_test_mode(self) -> CommandResult:
        """Toggle simulated sensor values on the device."""
        result = await self._send("test_mode", "/testMode")
        if not result.ok:
            return result

        payload = result.payload if isinstance(result.payload, dict) else {}
        enabled = bool(payload.get("testModeEnabled", False))
        result.message = payload.get("message") or (
            "Test mode activated" if enabled else "Test mode deactivated"
        )
        self._trigger_cycle("test_mode")
        return result

    async def get_thresholds(self) -> CommandResult:
        result = await self.client.fetch_thresholds()
        return await self._to_command_result("get_thresholds", result, "")

    async def set_thresholds(self, thresholds: Thresholds) -> CommandResult:
        return await self._send(
            "set_thresholds",
            "/setThresholds",
            body={
                "fanTempOn": thresholds.fan_temp_on,
                "fanHumOn": thresholds.fan_hum_on,
                "extractorTempOn": thresholds.extractor_temp_on,
                "extractorHumOn": thresholds.extractor_hum_on,
            },
            success_message="Thresholds saved",
        )

    async def get_discord_config(self) -> CommandResult:
        result = await self.client.fetch_discord_config()
        return await self._to_command_result("get_discord", result, "")

    async def set_discord_config(self, config: DiscordConfig) -> CommandResult:
        return await self._send(
            "set_discord",
            "/setDiscordConfig",
            body={
                "webhookUrl": config.webhook_url,
                "enabled": config.enabled,
                "alerts": dict(config.alerts),
            },
            success_message="Discord configuration saved",
        )

    async def send_test_discord_alert(self, config: Optional[DiscordConfig] = None) -> CommandResult:
        """Send a test alert, saving config first when one is given."""
        if config is not None:
            saved = await self.set_discord_config(config)
            if not saved.ok:
                return saved
        return await self._send(
            "test_discord",
            "/testDiscordAlert",
            success_message="Test alert sent",
        )
