"""
Device REST API client.

Performs timed, cancellable HTTP calls against the grow controller and
converts every expected failure into the closed error taxonomy. Expected
failures are returned inside an ApiResult; this client never raises them.
"""
import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, List, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from ..config import DeviceSettings
from ..domain.entities import (
    DeviceStatus,
    DiscordConfig,
    DiskInfo,
    Measurement,
    Stage,
    Thresholds,
)
from ..domain.exceptions import (
    DeviceApiError,
    DeviceRejectedError,
    DeviceTimeoutError,
    DeviceUnreachableError,
    MalformedPayloadError,
)
from .schemas import (
    DeviceStatusPayload,
    DiscordConfigPayload,
    DiskInfoPayload,
    IntervalPayload,
    MeasurementListPayload,
    StageListPayload,
    ThresholdsPayload,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)


@dataclass
class ApiResult(Generic[T]):
    """Outcome of a device call: either a payload or an error, never both."""
    payload: Optional[T] = None
    error: Optional[DeviceApiError] = None
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, payload: T, duration_ms: float = 0.0) -> "ApiResult[T]":
        return cls(payload=payload, duration_ms=duration_ms)

    @classmethod
    def failure(cls, error: DeviceApiError, duration_ms: float = 0.0) -> "ApiResult[T]":
        return cls(error=error, duration_ms=duration_ms)


class BusyTracker:
    """
    Shared ref-count of in-flight device calls.

    A counter rather than a flag so overlapping calls do not make a busy
    indicator flicker when the first of them completes.
    """

    def __init__(self, on_change: Optional[Callable[[bool], None]] = None):
        self._count = 0
        self._on_change = on_change

    @property
    def count(self) -> int:
        return self._count

    @property
    def busy(self) -> bool:
        return self._count > 0

    def set_on_change(self, callback: Optional[Callable[[bool], None]]) -> None:
        """Set callback invoked when the busy flag flips."""
        self._on_change = callback

    def increment(self) -> None:
        self._count += 1
        if self._count == 1:
            self._notify(True)

    def decrement(self) -> None:
        if self._count == 0:
            logger.warning("Busy tracker decremented below zero")
            return
        self._count -= 1
        if self._count == 0:
            self._notify(False)

    def _notify(self, busy: bool) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change(busy)
        except Exception as e:
            logger.error(f"Error in busy callback: {e}")


class DeviceApiClient:
    """
    Client for the grow controller REST endpoints.

    Responsibilities:
    - Enforce a hard timeout on every call
    - Map failures to Timeout / Unreachable / DeviceRejected / MalformedPayload
    - Decode JSON or plain-text command responses
    - Track in-flight calls through a shared BusyTracker
    """

    def __init__(
        self,
        settings: Optional[DeviceSettings] = None,
        busy: Optional[BusyTracker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the device client.

        Args:
            settings: Device settings.
            busy: Shared busy tracker; a private one is created if omitted.
            transport: Optional httpx transport (used to mock the device).
        """
        self.settings = settings or DeviceSettings()
        self.busy = busy or BusyTracker()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def connect(self) -> None:
        """Initialize HTTP client."""
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            base_url=self.settings.base_url,
            headers={"Content-Type": "application/json"},
            timeout=self.settings.request_timeout_ms / 1000,
            transport=self._transport,
        )
        logger.info(f"Device client initialized: {self.settings.base_url}")

    async def disconnect(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("Device client disconnected")

    async def request(
        self,
        endpoint: str,
        method: str = "GET",
        body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        timeout_ms: Optional[int] = None,
        expect_json: bool = True,
    ) -> ApiResult[Any]:
        """
        Perform one device call.

        Args:
            endpoint: Path such as "/data".
            method: HTTP method.
            body: JSON body for commands (omitted when empty).
            params: Query parameters.
            timeout_ms: Hard timeout; defaults to the configured request timeout.
            expect_json: When True a non-JSON body is a MalformedPayloadError;
                when False plain text is returned as-is.

        Returns:
            ApiResult with the decoded payload or the mapped error.
        """
        await self.connect()
        timeout_ms = timeout_ms or self.settings.request_timeout_ms
        timeout_s = timeout_ms / 1000
        start_time = time.monotonic()

        self.busy.increment()
        try:
            response = await asyncio.wait_for(
                self._client.request(
                    method,
                    endpoint,
                    json=body if body else None,
                    params=params,
                    timeout=timeout_s,
                ),
                timeout=timeout_s,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.warning(f"Timeout calling {method} {endpoint} ({timeout_ms}ms)")
            return ApiResult.failure(
                DeviceTimeoutError(endpoint, timeout_ms),
                self._elapsed_ms(start_time),
            )
        except httpx.HTTPError as e:
            logger.warning(f"Device unreachable for {method} {endpoint}: {e}")
            return ApiResult.failure(
                DeviceUnreachableError(endpoint, str(e) or e.__class__.__name__),
                self._elapsed_ms(start_time),
            )
        finally:
            self.busy.decrement()

        duration_ms = self._elapsed_ms(start_time)

        if response.status_code >= 400:
            logger.warning(f"Device rejected {method} {endpoint}: {response.status_code}")
            return ApiResult.failure(
                DeviceRejectedError(endpoint, response.status_code, response.text),
                duration_ms,
            )

        payload, error = self._decode(endpoint, response, expect_json)
        if error is not None:
            logger.warning(str(error))
            return ApiResult.failure(error, duration_ms)

        logger.debug(f"{method} {endpoint} completed in {duration_ms:.1f}ms")
        return ApiResult.success(payload, duration_ms)

    def _decode(self, endpoint: str, response: httpx.Response, expect_json: bool):
        """Decode a response body into JSON or text."""
        content_type = response.headers.get("content-type", "")
        text = response.text

        if "application/json" in content_type or expect_json:
            try:
                return json.loads(text), None
            except ValueError as e:
                if expect_json:
                    return None, MalformedPayloadError(endpoint, f"invalid JSON: {e}")
        return text, None

    @staticmethod
    def _elapsed_ms(start_time: float) -> float:
        return (time.monotonic() - start_time) * 1000

    async def _fetch_model(
        self,
        endpoint: str,
        schema: Type[M],
    ) -> ApiResult[M]:
        result = await self.request(endpoint)
        if not result.ok:
            return result
        try:
            model = schema.model_validate(result.payload)
        except ValidationError as e:
            error = MalformedPayloadError(endpoint, f"{e.error_count()} validation errors")
            logger.warning(str(error))
            return ApiResult.failure(error, result.duration_ms)
        return ApiResult.success(model, result.duration_ms)

    # ------------------------------------------------------------------
    # Typed reads
    # ------------------------------------------------------------------

    async def fetch_status(self) -> ApiResult[DeviceStatus]:
        """GET /data."""
        result = await self._fetch_model("/data", DeviceStatusPayload)
        if not result.ok:
            return result
        return ApiResult.success(result.payload.to_entity(), result.duration_ms)

    async def fetch_measurements(self) -> ApiResult[List[Measurement]]:
        """GET /loadMeasurement, in device order."""
        result = await self._fetch_model("/loadMeasurement", MeasurementListPayload)
        if not result.ok:
            return result
        return ApiResult.success(result.payload.to_entities(), result.duration_ms)

    async def fetch_stages(self) -> ApiResult[List[Stage]]:
        """GET /listStages."""
        result = await self._fetch_model("/listStages", StageListPayload)
        if not result.ok:
            return result
        return ApiResult.success(result.payload.to_entities(), result.duration_ms)

    async def fetch_measurement_interval(self) -> ApiResult[float]:
        """GET /getMeasurementInterval, in hours."""
        result = await self._fetch_model("/getMeasurementInterval", IntervalPayload)
        if not result.ok:
            return result
        return ApiResult.success(result.payload.interval, result.duration_ms)

    async def fetch_disk_info(self) -> ApiResult[DiskInfo]:
        """GET /diskInfo."""
        result = await self._fetch_model("/diskInfo", DiskInfoPayload)
        if not result.ok:
            return result
        return ApiResult.success(result.payload.to_entity(), result.duration_ms)

    async def fetch_thresholds(self) -> ApiResult[Thresholds]:
        """GET /getThresholds."""
        result = await self._fetch_model("/getThresholds", ThresholdsPayload)
        if not result.ok:
            return result
        return ApiResult.success(result.payload.to_entity(), result.duration_ms)

    async def fetch_discord_config(self) -> ApiResult[DiscordConfig]:
        """GET /getDiscordConfig."""
        result = await self._fetch_model("/getDiscordConfig", DiscordConfigPayload)
        if not result.ok:
            return result
        return ApiResult.success(result.payload.to_entity(), result.duration_ms)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def send_command(
        self,
        endpoint: str,
        body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        timeout_ms: Optional[int] = None,
    ) -> ApiResult[Any]:
        """
        POST a command endpoint.

        The device answers with JSON or plain text; both are accepted.
        """
        logger.info(f"Sending command {endpoint}")
        return await self.request(
            endpoint,
            method="POST",
            body=body,
            params=params,
            timeout_ms=timeout_ms,
            expect_json=False,
        )
