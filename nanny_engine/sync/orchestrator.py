"""
Synchronization orchestrator.

Runs one sync cycle: fetch -> reconcile -> aggregate -> emit view-model.
A failing fetch never aborts the cycle; the data it would have refreshed
stays as previously displayed.
"""
import asyncio
import logging
from typing import List, Optional

from ..client.device_client import ApiResult, DeviceApiClient
from ..config import EngineSettings
from ..domain.entities import Stage
from ..domain.exceptions import DeviceApiError, StaleCycleError
from ..events import EngineEvent, EngineEventType, EventBus, Notifier
from ..polling.clock import Clock, SystemClock
from ..polling.polling_state import PollingState
from ..reconciliation.timestamp_cache import TimestampCache, interval_hours_to_ms
from ..stats.aggregator import aggregate
from .view_model import ChartSeries, ViewModel, build_chart_series

logger = logging.getLogger(__name__)

STATUS_FAILURE_MESSAGE = "Error fetching core device data! Check connection."
HISTORY_FAILURE_MESSAGE = "Could not load history data."


class SyncOrchestrator:
    """
    Composes client, reconciliation and aggregation into sync cycles.

    Owns the engine state the presentation layer sees: the committed
    view-model, the cached stage list and the measurement interval.
    """

    def __init__(
        self,
        client: DeviceApiClient,
        cache: TimestampCache,
        polling_state: PollingState,
        bus: EventBus,
        notifier: Notifier,
        settings: EngineSettings,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            client: Device API client.
            cache: Timestamp reconciliation cache.
            polling_state: Shared polling state.
            bus: Event bus for cycle events.
            notifier: Rate-limited notifier.
            settings: Engine settings.
            clock: Time source.
        """
        self.client = client
        self.cache = cache
        self.polling_state = polling_state
        self.bus = bus
        self.notifier = notifier
        self.settings = settings
        self.clock = clock or SystemClock()

        self._view_model: Optional[ViewModel] = None
        self._stages: List[Stage] = []
        self._measurement_interval_hours: Optional[float] = None
        self._heap_low = False

    @property
    def view_model(self) -> Optional[ViewModel]:
        return self._view_model

    @property
    def stages(self) -> List[Stage]:
        return list(self._stages)

    @property
    def measurement_interval_hours(self) -> Optional[float]:
        return self._measurement_interval_hours

    # ------------------------------------------------------------------
    # Reference data
    # ------------------------------------------------------------------

    async def load_stages(self) -> ApiResult:
        """Fetch the stage list and cache it."""
        result = await self.client.fetch_stages()
        if result.ok:
            self._stages = list(result.payload)
            logger.info(f"Loaded {len(self._stages)} stages")
        else:
            logger.warning(f"Could not load stages: {result.error}")
        return result

    async def load_measurement_interval(self) -> ApiResult:
        """Fetch the measurement interval (hours) and cache it."""
        result = await self.client.fetch_measurement_interval()
        if result.ok:
            self._measurement_interval_hours = result.payload
        else:
            logger.warning(f"Could not load measurement interval: {result.error}")
        return result

    def set_measurement_interval(self, hours: float) -> None:
        self._measurement_interval_hours = hours

    def update_stage(self, updated: Stage) -> bool:
        """
        Replace a cached stage after the device acknowledged the change.

        Returns:
            True if a cached stage with the same index existed.
        """
        for position, stage in enumerate(self._stages):
            if stage.index == updated.index:
                self._stages[position] = updated
                return True
        return False

    def find_stage(self, index: int) -> Optional[Stage]:
        for stage in self._stages:
            if stage.index == index:
                return stage
        return None

    def invalidate_reference_data(self) -> None:
        """Force stages and interval to be reloaded on the next cycle."""
        self._stages = []
        self._measurement_interval_hours = None

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    async def run_cycle(self, token: int) -> Optional[ViewModel]:
        """
        Execute one sync cycle.

        Args:
            token: Cycle token issued by the scheduler.

        Returns:
            The committed ViewModel, or None if the cycle was superseded.
        """
        await self.bus.publish(EngineEvent(
            type=EngineEventType.CYCLE_STARTED,
            time_ms=self.clock.now_ms(),
            cycle_token=token,
        ))

        if not self._stages:
            await self.load_stages()
        if self._measurement_interval_hours is None:
            await self.load_measurement_interval()

        status_result, history_result, disk_result = await asyncio.gather(
            self.client.fetch_status(),
            self.client.fetch_measurements(),
            self.client.fetch_disk_info(),
        )

        if not self.polling_state.is_current(token):
            stale = StaleCycleError(token, self.polling_state.cycle_token)
            logger.debug(f"Discarding results: {stale.message}")
            return None

        now_ms = self.clock.now_ms()
        previous = self._view_model

        # Status is replaced wholesale, or kept from the previous cycle
        status = previous.status if previous else None
        if status_result.ok:
            status = status_result.payload
            self.polling_state.record_heap(status.free_heap)
            if status.measurement_interval_hours:
                self._measurement_interval_hours = status.measurement_interval_hours

        history_cleared = False
        reconciled_changed = False
        if history_result.ok:
            interval_ms = interval_hours_to_ms(
                self._measurement_interval_hours,
                self.settings.reconciliation.default_measurement_interval_hours,
            )
            reconciled = self.cache.reconcile(history_result.payload, now_ms, interval_ms)
            history_cleared = reconciled.was_reset
            reconciled_changed = reconciled.changed

            measurements = reconciled.measurements
            stats = aggregate(measurements, self._stages, now_ms)
            chart_series = build_chart_series(measurements, self.settings.display.chart_max_points)
            displayed = measurements[-self.settings.display.history_max_entries:]
            total_measurements = len(measurements)
        elif previous is not None:
            stats = previous.stats
            chart_series = previous.chart_series
            displayed = previous.reconciled_measurements
            total_measurements = previous.total_measurements
        else:
            stats = None
            chart_series = ChartSeries()
            displayed = []
            total_measurements = 0

        disk = disk_result.payload if disk_result.ok else (previous.disk if previous else None)
        if not disk_result.ok:
            logger.warning(f"Disk info fetch failed: {disk_result.error}")

        heap_was_low = self._heap_low
        self._heap_low = (
            self.polling_state.last_free_heap is not None
            and self.polling_state.last_free_heap < self.settings.polling.low_heap_threshold
        )

        view_model = ViewModel(
            cycle_token=token,
            generated_at_ms=now_ms,
            status=status,
            reconciled_measurements=list(displayed),
            stats=stats,
            chart_series=chart_series,
            disk=disk,
            stages=self.stages,
            measurement_interval_hours=self._measurement_interval_hours,
            total_measurements=total_measurements,
            heap_low=self._heap_low,
            status_stale=not status_result.ok,
            history_stale=not history_result.ok,
        )

        # Commit
        self._view_model = view_model

        failures: List[DeviceApiError] = [
            result.error for result in (status_result, history_result)
            if not result.ok
        ]
        if failures:
            self.polling_state.record_failure()
        else:
            self.polling_state.record_success()

        if reconciled_changed:
            try:
                await self.cache.save()
            except Exception as e:
                logger.error(f"Failed to persist timestamp cache: {e}")

        await self._publish_cycle_events(
            token, now_ms, view_model, failures, history_cleared, heap_was_low
        )
        return view_model

    async def _publish_cycle_events(
        self,
        token: int,
        now_ms: int,
        view_model: ViewModel,
        failures: List[DeviceApiError],
        history_cleared: bool,
        heap_was_low: bool,
    ) -> None:
        if history_cleared:
            await self.bus.publish(EngineEvent(
                type=EngineEventType.HISTORY_CLEARED,
                time_ms=now_ms,
                cycle_token=token,
                reason="history_shrank",
            ))

        if self._heap_low and not heap_was_low:
            await self.bus.publish(EngineEvent(
                type=EngineEventType.HEAP_LOW,
                time_ms=now_ms,
                cycle_token=token,
                details={
                    "free_heap": self.polling_state.last_free_heap,
                    "threshold": self.settings.polling.low_heap_threshold,
                },
            ))

        await self.bus.publish(EngineEvent(
            type=EngineEventType.VIEW_MODEL_UPDATED,
            time_ms=now_ms,
            cycle_token=token,
            payload=view_model,
        ))

        if not failures:
            await self.bus.publish(EngineEvent(
                type=EngineEventType.CYCLE_SUCCEEDED,
                time_ms=now_ms,
                cycle_token=token,
            ))
            return

        reason = "; ".join(f"{error.endpoint}: {error.code}" for error in failures)
        logger.warning(f"Cycle {token} failed: {reason}")
        await self.bus.publish(EngineEvent(
            type=EngineEventType.CYCLE_FAILED,
            time_ms=now_ms,
            cycle_token=token,
            reason=reason,
            details={
                "partial": len(failures) < 2,
                "errors": [error.to_dict() for error in failures],
                "consecutive_failures": self.polling_state.consecutive_failures,
            },
        ))

        for error in failures:
            message = STATUS_FAILURE_MESSAGE if error.endpoint == "/data" else HISTORY_FAILURE_MESSAGE
            await self.notifier.notify(
                key=f"fetch:{error.endpoint}",
                message=f"{message} ({error.message})",
                cycle_token=token,
            )
