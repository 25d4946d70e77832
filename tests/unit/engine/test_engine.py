"""
Unit tests for DashboardEngine.

Tests lifecycle, operator commands, suspension after restart and command
failure notifications.
"""
import asyncio
import json

import pytest
import pytest_asyncio

from nanny_engine.domain.entities import DiscordConfig, Thresholds
from nanny_engine.domain.exceptions import DeviceRejectedError, EngineSuspendedError
from nanny_engine.engine import CommandResult, DashboardEngine
from nanny_engine.events import EngineEventType
from nanny_engine.reconciliation.timestamp_cache import TimestampCache
from nanny_engine.storage.persistent_store import InMemoryStore

from tests.factories import HOUR_MS, MeasurementPayloadFactory


def body_of(request):
    return json.loads(request.content) if request.content else None


def events_of(engine, event_type):
    return [e for e in engine.bus.recent(100) if e.type == event_type]


class TestLifecycle:
    """Tests for start and stop."""

    @pytest.mark.asyncio
    async def test_start_runs_first_cycle(self, engine, device, settle):
        device.add_measurements(2)

        await engine.start()

        assert engine.is_running
        assert await settle(lambda: engine.view_model is not None)
        assert len(engine.view_model.reconciled_measurements) == 2

    @pytest.mark.asyncio
    async def test_start_loads_persisted_cache(self, engine, store, settings):
        await store.set(settings.reconciliation.storage_key, {
            "version": TimestampCache.STATE_VERSION,
            "timestamps": {},
            "pending_triggers": [5],
            "last_count": 0,
        })

        await engine.start()

        assert engine.cache.pending_triggers == [5]

    @pytest.mark.asyncio
    async def test_stop_persists_cache(self, engine, store, settings):
        await engine.start()
        engine.cache.record_manual_trigger(42)

        await engine.stop()

        assert not engine.is_running
        saved = await store.get(settings.reconciliation.storage_key)
        assert saved["pending_triggers"] == [42]

    @pytest.mark.asyncio
    async def test_visibility_toggles_polling(self, engine):
        engine.set_visibility(False)

        assert engine.polling_stats()["active"] is False


class TestMeasurementCommand:
    """Tests for trigger_measurement."""

    @pytest.mark.asyncio
    async def test_trigger_is_stamped_on_next_sample(self, engine, device, clock):
        trigger_ms = clock.now_ms()

        result = await engine.trigger_measurement()

        assert result.ok
        assert engine.cache.pending_triggers == [trigger_ms]
        assert len(device.calls("/takeMeasurement", "POST")) == 1

        clock.advance(60000)
        device.measurements.append(MeasurementPayloadFactory(epoch_ms=0))
        view_model = await engine.orchestrator.run_cycle(engine.polling_state.issue_token())

        assert view_model.reconciled_measurements[-1].stabilized_timestamp == trigger_ms
        assert engine.cache.pending_triggers == []

    @pytest.mark.asyncio
    async def test_trigger_is_persisted(self, engine, store, settings):
        await engine.trigger_measurement()

        saved = await store.get(settings.reconciliation.storage_key)
        assert len(saved["pending_triggers"]) == 1

    @pytest.mark.asyncio
    async def test_failed_trigger_is_not_recorded(self, engine, device):
        device.fail("/takeMeasurement", "error")

        result = await engine.trigger_measurement()

        assert not result.ok
        assert isinstance(result.error, DeviceRejectedError)
        assert engine.cache.pending_triggers == []

    @pytest.mark.asyncio
    async def test_rejected_while_suspended_leaves_no_trigger(self, engine):
        await engine.restart_device()

        result = await engine.trigger_measurement()

        assert isinstance(result.error, EngineSuspendedError)
        assert engine.cache.pending_triggers == []

    @pytest.mark.asyncio
    async def test_cycle_during_command_uses_trigger(self, engine, device, clock, settle):
        """Test a cycle that sees the sample before the command returns."""
        trigger_ms = clock.now_ms()
        release = device.hold("/takeMeasurement")
        command = asyncio.create_task(engine.trigger_measurement())
        assert await settle(lambda: len(device.calls("/takeMeasurement")) == 1)

        device.measurements.append(MeasurementPayloadFactory(epoch_ms=0))
        clock.advance(1000)
        during = await engine.orchestrator.run_cycle(engine.polling_state.issue_token())
        release.set()
        result = await command

        assert result.ok
        assert during.reconciled_measurements[-1].stabilized_timestamp == trigger_ms
        assert engine.cache.pending_triggers == []

        clock.advance(6 * HOUR_MS)
        device.measurements.append(MeasurementPayloadFactory(epoch_ms=0))
        later = await engine.orchestrator.run_cycle(engine.polling_state.issue_token())

        stamps = [m.stabilized_timestamp for m in later.reconciled_measurements]
        assert stamps == [trigger_ms, clock.now_ms()]


class TestActuatorCommands:
    """Tests for pump, fan and extractor commands."""

    @pytest.mark.asyncio
    async def test_pump_on_uses_query_params(self, engine, device):
        result = await engine.control_pump("on", 30)

        request = device.calls("/controlPump")[0]
        assert result.ok
        assert request.method == "POST"
        assert request.url.params["action"] == "on"
        assert request.url.params["duration"] == "30"
        assert result.message == "Pump activated for 30 seconds"

    @pytest.mark.asyncio
    async def test_pump_off_uses_body(self, engine, device):
        result = await engine.control_pump("off")

        assert result.ok
        assert body_of(device.calls("/controlPump")[0]) == {"action": "off"}

    @pytest.mark.asyncio
    async def test_pump_on_requires_duration(self, engine):
        with pytest.raises(ValueError):
            await engine.control_pump("on")

    @pytest.mark.asyncio
    async def test_unknown_pump_action(self, engine):
        with pytest.raises(ValueError):
            await engine.control_pump("pulse", 10)

    @pytest.mark.asyncio
    async def test_fan(self, engine, device):
        result = await engine.control_fan(True)

        assert result.ok
        assert device.calls("/controlFan")[0].url.params["action"] == "on"

    @pytest.mark.asyncio
    async def test_extractor_off(self, engine, device):
        result = await engine.control_extractor(False)

        assert result.ok
        assert device.calls("/controlExtractor")[0].url.params["action"] == "off"
        assert result.message == "Extractor turned off"


class TestStageCommands:
    """Tests for stage commands."""

    @pytest.mark.asyncio
    async def test_set_manual_stage(self, engine, device):
        await engine.orchestrator.load_stages()

        result = await engine.set_manual_stage(2)

        assert result.ok
        assert body_of(device.calls("/setManualStage")[0]) == {"stage": 2}
        assert "Flowering" in result.message

    @pytest.mark.asyncio
    async def test_reset_manual_stage(self, engine, device):
        result = await engine.reset_manual_stage()

        assert result.ok
        assert result.command == "stage_auto"
        assert len(device.calls("/resetManualStage", "POST")) == 1

    @pytest.mark.asyncio
    async def test_update_stage_patches_cache(self, engine, device):
        await engine.orchestrator.load_stages()

        result = await engine.update_stage(1, 30, 48.0, 25)

        assert result.ok
        assert body_of(device.calls("/updateStage")[0]) == {
            "index": 1,
            "duration_days": 30,
            "humidityThreshold": 48.0,
            "wateringTimeSec": 25,
        }
        stage = engine.orchestrator.find_stage(1)
        assert stage.humidity_threshold == 48.0
        assert stage.duration_days == 30
        assert result.payload == stage
        assert len(device.calls("/listStages")) == 1

    @pytest.mark.asyncio
    async def test_update_uncached_stage_reloads(self, engine, device):
        result = await engine.update_stage(1, 30, 48.0, 25)

        assert result.ok
        assert result.payload is None
        await engine.orchestrator.run_cycle(engine.polling_state.issue_token())
        assert len(device.calls("/listStages")) == 1

    @pytest.mark.asyncio
    async def test_set_measurement_interval(self, engine, device):
        result = await engine.set_measurement_interval(6)

        assert result.ok
        assert body_of(device.calls("/setMeasurementInterval")[0]) == {"interval": 6}
        assert engine.orchestrator.measurement_interval_hours == 6.0


class TestClearHistory:
    """Tests for clear_history."""

    @pytest.mark.asyncio
    async def test_resets_cache_and_publishes(self, engine, device):
        device.add_measurements(3)
        await engine.orchestrator.run_cycle(engine.polling_state.issue_token())
        engine.cache.record_manual_trigger(1)

        result = await engine.clear_history()

        assert result.ok
        assert engine.cache.size == 0
        assert engine.cache.pending_triggers == []
        assert device.measurements == []
        cleared = events_of(engine, EngineEventType.HISTORY_CLEARED)
        assert cleared[-1].reason == "operator"


class TestRestart:
    """Tests for restart suspension and resume."""

    @pytest.mark.asyncio
    async def test_restart_timeout_is_success(self, engine, device):
        device.fail("/restartSystem", "timeout")

        result = await engine.restart_device()

        assert result.ok
        assert engine.is_suspended
        assert len(events_of(engine, EngineEventType.SCHEDULER_SUSPENDED)) == 1

    @pytest.mark.asyncio
    async def test_commands_rejected_while_suspended(self, engine, device):
        await engine.restart_device()

        result = await engine.control_fan(True)

        assert not result.ok
        assert isinstance(result.error, EngineSuspendedError)
        assert device.calls("/controlFan") == []

    @pytest.mark.asyncio
    async def test_refresh_rejected_while_suspended(self, engine):
        await engine.restart_device()

        result = await engine.refresh()

        assert not result.ok
        assert isinstance(result.error, EngineSuspendedError)

    @pytest.mark.asyncio
    async def test_resume(self, engine, device, settle):
        await engine.start()
        await settle(lambda: engine.view_model is not None)
        await engine.restart_device()

        result = await engine.resume()

        assert result.ok
        assert not engine.is_suspended
        assert len(events_of(engine, EngineEventType.SCHEDULER_RESUMED)) == 1
        assert await settle(lambda: len(device.calls("/data")) == 2)

    @pytest.mark.asyncio
    async def test_resume_when_not_suspended_publishes_nothing(self, engine):
        await engine.resume()

        assert events_of(engine, EngineEventType.SCHEDULER_RESUMED) == []


class TestCommandFailures:
    """Tests for failure reporting."""

    @pytest.mark.asyncio
    async def test_failure_notifies(self, engine, device):
        device.fail("/controlFan", "unreachable")

        result = await engine.control_fan(True)

        assert not result.ok
        assert result.error.code == "DEVICE_UNREACHABLE"
        notifications = events_of(engine, EngineEventType.NOTIFICATION)
        assert len(notifications) == 1
        assert "fan" in notifications[0].payload["message"]

    @pytest.mark.asyncio
    async def test_result_to_dict(self, engine, device):
        device.fail("/controlFan", "error")

        result = await engine.control_fan(False)
        data = result.to_dict()

        assert isinstance(result, CommandResult)
        assert data["ok"] is False
        assert data["error"]["error"] == "DEVICE_REJECTED"


class TestConfigurationCommands:
    """Tests for thresholds, alerts and test mode."""

    @pytest.mark.asyncio
    async def test_get_thresholds(self, engine):
        result = await engine.get_thresholds()

        assert result.ok
        assert result.payload == Thresholds()

    @pytest.mark.asyncio
    async def test_set_thresholds(self, engine, device):
        result = await engine.set_thresholds(Thresholds(fan_temp_on=27.5))

        assert result.ok
        assert body_of(device.calls("/setThresholds")[0])["fanTempOn"] == 27.5

    @pytest.mark.asyncio
    async def test_discord_round_trip(self, engine, device):
        config = DiscordConfig(
            webhook_url="https://discord.test/hook",
            enabled=True,
            alerts={"tempHigh": True},
        )

        result = await engine.set_discord_config(config)

        assert result.ok
        assert body_of(device.calls("/setDiscordConfig")[0]) == {
            "webhookUrl": "https://discord.test/hook",
            "enabled": True,
            "alerts": {"tempHigh": True},
        }

    @pytest.mark.asyncio
    async def test_test_alert_saves_config_first(self, engine, device):
        result = await engine.send_test_discord_alert(DiscordConfig(webhook_url="https://discord.test/hook"))

        assert result.ok
        paths = [r.url.path for r in device.requests]
        assert paths == ["/setDiscordConfig", "/testDiscordAlert"]

    @pytest.mark.asyncio
    async def test_toggle_test_mode(self, engine):
        first = await engine.toggle_test_mode()
        second = await engine.toggle_test_mode()

        assert first.message == "Test mode activated"
        assert second.message == "Test mode deactivated"


class FailingStore(InMemoryStore):
    """Store whose writes always fail."""

    async def set(self, key, value):
        raise ConnectionError("store unavailable")


class TestStoreFailures:
    """Tests for commands when the cache cannot be persisted."""

    @pytest_asyncio.fixture
    async def failing_engine(self, settings, clock, transport):
        engine = DashboardEngine(settings=settings, store=FailingStore(), clock=clock, transport=transport)
        yield engine
        await engine.scheduler.stop()
        await engine.client.disconnect()

    @pytest.mark.asyncio
    async def test_clear_history_completes(self, failing_engine, device):
        device.add_measurements(2)

        result = await failing_engine.clear_history()

        assert result.ok
        assert device.measurements == []
        assert failing_engine.cache.size == 0
        assert len(events_of(failing_engine, EngineEventType.HISTORY_CLEARED)) == 1

    @pytest.mark.asyncio
    async def test_trigger_measurement_completes(self, failing_engine, clock):
        result = await failing_engine.trigger_measurement()

        assert result.ok
        assert failing_engine.cache.pending_triggers == [clock.now_ms()]
