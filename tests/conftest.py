"""
Shared pytest fixtures for sync engine tests.

Provides fixtures for:
- Virtual clock (no real time passes)
- Simulated grow controller behind httpx.MockTransport
- Persistent store, settings and engine components
"""
import asyncio
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest
import pytest_asyncio

from nanny_engine.client.device_client import DeviceApiClient
from nanny_engine.config import (
    DeviceSettings,
    DisplaySettings,
    EngineSettings,
    PollingSettings,
    StorageSettings,
)
from nanny_engine.engine import DashboardEngine
from nanny_engine.events import EventBus, Notifier
from nanny_engine.polling.clock import Clock
from nanny_engine.polling.polling_state import PollingState
from nanny_engine.reconciliation.timestamp_cache import TimestampCache
from nanny_engine.storage.persistent_store import InMemoryStore
from nanny_engine.sync.orchestrator import SyncOrchestrator

from tests.factories import (
    BASE_EPOCH_MS,
    DeviceStatusPayloadFactory,
    MeasurementPayloadFactory,
    StagePayloadFactory,
)

DEVICE_URL = "http://greennanny.test"


# ============================================================================
# Clock
# ============================================================================

class ManualClock(Clock):
    """
    Virtual clock.

    sleep() parks the caller until advance() moves time past its deadline.
    Every requested delay is recorded in `sleeps` (seconds).
    """

    def __init__(self, start_ms: int = BASE_EPOCH_MS):
        self._now = start_ms
        self.sleeps: List[float] = []
        self._waiters: List[Tuple[int, asyncio.Future]] = []

    def now_ms(self) -> int:
        return self._now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        if seconds <= 0:
            return
        future = asyncio.get_running_loop().create_future()
        self._waiters.append((self._now + int(seconds * 1000), future))
        await future

    def advance(self, ms: int) -> None:
        self._now += ms
        for waiter in list(self._waiters):
            deadline, future = waiter
            if future.done():
                self._waiters.remove(waiter)
            elif deadline <= self._now:
                self._waiters.remove(waiter)
                future.set_result(None)

    @property
    def pending(self) -> int:
        return sum(1 for _, future in self._waiters if not future.done())


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def settle() -> Callable:
    """
    Yield to the event loop until a condition holds.

    Returns an async callable: await settle(lambda: ..., max_iterations=...).
    """
    async def _settle(condition: Optional[Callable[[], bool]] = None, max_iterations: int = 1000) -> bool:
        for _ in range(max_iterations):
            if condition is not None and condition():
                return True
            await asyncio.sleep(0)
        return condition() if condition is not None else True

    return _settle


# ============================================================================
# Simulated device
# ============================================================================

class FakeDevice:
    """
    In-process grow controller.

    Failure modes per path: "timeout", "unreachable", "error" (HTTP 500),
    "malformed" (non-JSON body). hold(path) blocks the next call to that
    path until the returned event is set.
    """

    def __init__(self):
        self.status: Dict[str, Any] = DeviceStatusPayloadFactory()
        self.measurements: List[Dict[str, Any]] = []
        self.stages: List[Dict[str, Any]] = [
            StagePayloadFactory(index=0, name="Seedling", humidityThreshold=70.0),
            StagePayloadFactory(index=1, name="Vegetative", humidityThreshold=55.0),
            StagePayloadFactory(index=2, name="Flowering", humidityThreshold=45.0),
        ]
        self.interval: float = 1
        self.disk: Dict[str, Any] = {"free_bytes": 900_000, "free_percent": 80.0}
        self.thresholds: Dict[str, Any] = {
            "fanTempOn": 28.0,
            "fanHumOn": 70.0,
            "extractorTempOn": 32.0,
            "extractorHumOn": 85.0,
        }
        self.discord: Dict[str, Any] = {"webhookUrl": "", "enabled": False, "alerts": {}}
        self.failures: Dict[str, str] = {}
        self.holds: Dict[str, asyncio.Event] = {}
        self.requests: List[httpx.Request] = []

    def add_measurements(self, count: int, **overrides) -> None:
        for _ in range(count):
            self.measurements.append(MeasurementPayloadFactory(**overrides))

    def fail(self, path: str, kind: str = "error") -> None:
        self.failures[path] = kind

    def recover(self, path: Optional[str] = None) -> None:
        if path is None:
            self.failures.clear()
        else:
            self.failures.pop(path, None)

    def hold(self, path: str) -> asyncio.Event:
        event = asyncio.Event()
        self.holds[path] = event
        return event

    def calls(self, path: str, method: Optional[str] = None) -> List[httpx.Request]:
        return [
            r for r in self.requests
            if r.url.path == path and (method is None or r.method == method)
        ]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        hold = self.holds.pop(path, None)
        if hold is not None:
            await hold.wait()

        kind = self.failures.get(path)
        if kind == "timeout":
            raise httpx.ReadTimeout("timed out", request=request)
        if kind == "unreachable":
            raise httpx.ConnectError("connection refused", request=request)
        if kind == "error":
            return httpx.Response(500, text="internal error")
        if kind == "malformed":
            return httpx.Response(200, text="<html>oops</html>", headers={"content-type": "text/html"})

        if request.method == "GET":
            payload = self._read(path)
            if payload is None:
                return httpx.Response(404, text="Not found")
            return httpx.Response(200, json=payload)
        return self._command(path)

    def _read(self, path: str) -> Any:
        return {
            "/data": self.status,
            "/loadMeasurement": self.measurements,
            "/listStages": self.stages,
            "/getMeasurementInterval": {"interval": self.interval},
            "/diskInfo": self.disk,
            "/getThresholds": self.thresholds,
            "/getDiscordConfig": self.discord,
        }.get(path)

    def _command(self, path: str) -> httpx.Response:
        if path == "/clearHistory":
            self.measurements.clear()
        if path == "/testMode":
            enabled = not self.status.get("testModeEnabled", False)
            self.status["testModeEnabled"] = enabled
            return httpx.Response(200, json={"testModeEnabled": enabled})
        return httpx.Response(200, text="OK")


@pytest.fixture
def device() -> FakeDevice:
    return FakeDevice()


@pytest.fixture
def transport(device) -> httpx.MockTransport:
    return httpx.MockTransport(device.handler)


# ============================================================================
# Engine components
# ============================================================================

@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings(
        device=DeviceSettings(base_url=DEVICE_URL, measurement_settle_ms=0),
        polling=PollingSettings(refresh_interval_ms=30000),
        display=DisplaySettings(),
        storage=StorageSettings(backend="memory"),
    )


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest_asyncio.fixture
async def client(settings, transport):
    client = DeviceApiClient(settings=settings.device, transport=transport)
    yield client
    await client.disconnect()


@pytest.fixture
def polling_state(settings) -> PollingState:
    return PollingState(interval_ms=settings.polling.refresh_interval_ms)


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def cache(store, settings) -> TimestampCache:
    return TimestampCache(store=store, settings=settings.reconciliation)


@pytest.fixture
def orchestrator(client, cache, polling_state, bus, clock, settings) -> SyncOrchestrator:
    notifier = Notifier(
        bus,
        now_ms=clock.now_ms,
        min_interval_ms=settings.display.notification_min_interval_ms,
    )
    return SyncOrchestrator(
        client=client,
        cache=cache,
        polling_state=polling_state,
        bus=bus,
        notifier=notifier,
        settings=settings,
        clock=clock,
    )


@pytest_asyncio.fixture
async def engine(settings, store, clock, transport):
    engine = DashboardEngine(settings=settings, store=store, clock=clock, transport=transport)
    yield engine
    if engine.is_running:
        await engine.stop()
    else:
        await engine.scheduler.stop()
        await engine.client.disconnect()
