"""
Statistics aggregation over reconciled measurements.

A pure function of (measurements, stages, now): no hidden state, so the
same inputs always yield identical outputs. Everything is recomputed from
scratch each cycle.
"""
import logging
import math
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..domain.entities import DisplayMeasurement, Stage
from .vpd import calculate_vpd

logger = logging.getLogger(__name__)

MS_PER_HOUR = 3600 * 1000
MS_PER_DAY = 24 * MS_PER_HOUR

PERIOD_WINDOWS: Dict[str, Optional[int]] = {
    "overall": None,
    "last_24h": MS_PER_DAY,
    "last_7d": 7 * MS_PER_DAY,
}


@dataclass(frozen=True)
class FieldStats:
    """Aggregate of one numeric field over a window."""
    avg: Optional[float] = None
    min: Optional[float] = None
    max: Optional[float] = None
    count: int = 0
    valid_count: int = 0
    validity: float = 0.0


@dataclass(frozen=True)
class WindowStats:
    """Statistics for one period window or stage."""
    temperature: FieldStats = field(default_factory=FieldStats)
    humidity: FieldStats = field(default_factory=FieldStats)
    vpd: FieldStats = field(default_factory=FieldStats)
    pump_activations: int = 0
    measurement_count: int = 0
    first_timestamp: Optional[int] = None
    last_timestamp: Optional[int] = None

    @property
    def data_validity(self) -> float:
        """Share of samples with a valid temperature reading."""
        return self.temperature.validity


@dataclass(frozen=True)
class AggregatedStats:
    """Period and per-stage statistics for one cycle."""
    periods: Dict[str, WindowStats] = field(default_factory=dict)
    stages: Dict[str, WindowStats] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        def window_dict(window: WindowStats) -> Dict[str, Any]:
            data = asdict(window)
            data["data_validity"] = window.data_validity
            return data

        return {
            "periods": {name: window_dict(w) for name, w in self.periods.items()},
            "stages": {name: window_dict(w) for name, w in self.stages.items()},
        }


def _is_valid_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def calculate_field_stats(
    measurements: Sequence[DisplayMeasurement],
    extractor: Callable[[DisplayMeasurement], Optional[float]],
) -> FieldStats:
    """
    Compute avg/min/max/validity for one field.

    Args:
        measurements: Samples in the window.
        extractor: Returns the field value for a sample.

    Returns:
        FieldStats; avg/min/max are None when no valid sample exists.
    """
    total = len(measurements)
    total_sum = 0.0
    valid_count = 0
    minimum: Optional[float] = None
    maximum: Optional[float] = None

    for measurement in measurements:
        value = extractor(measurement)
        if not _is_valid_number(value):
            continue
        total_sum += value
        valid_count += 1
        if minimum is None or value < minimum:
            minimum = value
        if maximum is None or value > maximum:
            maximum = value

    return FieldStats(
        avg=total_sum / valid_count if valid_count > 0 else None,
        min=minimum,
        max=maximum,
        count=total,
        valid_count=valid_count,
        validity=valid_count / total if total > 0 else 0.0,
    )


def calculate_window_stats(measurements: Sequence[DisplayMeasurement]) -> WindowStats:
    """Compute the statistics block for a window of samples."""
    if not measurements:
        return WindowStats()

    return WindowStats(
        temperature=calculate_field_stats(measurements, lambda m: m.temperature),
        humidity=calculate_field_stats(measurements, lambda m: m.humidity),
        vpd=calculate_field_stats(
            measurements, lambda m: calculate_vpd(m.temperature, m.humidity)
        ),
        pump_activations=sum(1 for m in measurements if m.pump_activated),
        measurement_count=len(measurements),
        first_timestamp=measurements[0].stabilized_timestamp,
        last_timestamp=measurements[-1].stabilized_timestamp,
    )


def filter_by_window(
    measurements: Sequence[DisplayMeasurement],
    duration_ms: Optional[int],
    now_ms: int,
) -> List[DisplayMeasurement]:
    """Keep samples stamped within duration_ms of now (all when None)."""
    if duration_ms is None:
        return list(measurements)
    cutoff = now_ms - duration_ms
    return [m for m in measurements if m.stabilized_timestamp >= cutoff]


def aggregate(
    measurements: Sequence[DisplayMeasurement],
    stages: Sequence[Stage],
    now_ms: int,
) -> AggregatedStats:
    """
    Compute period and per-stage statistics.

    Args:
        measurements: Reconciled samples.
        stages: Configured stages; only their names are used.
        now_ms: Reference time for the rolling windows.

    Returns:
        AggregatedStats. An empty stage list yields an empty stage map.
    """
    ordered = sorted(measurements, key=lambda m: m.stabilized_timestamp)

    periods = {
        name: calculate_window_stats(filter_by_window(ordered, duration, now_ms))
        for name, duration in PERIOD_WINDOWS.items()
    }

    by_stage: Dict[str, List[DisplayMeasurement]] = {stage.name: [] for stage in stages}
    for measurement in ordered:
        if measurement.stage_name in by_stage:
            by_stage[measurement.stage_name].append(measurement)

    stage_stats = {
        name: calculate_window_stats(samples)
        for name, samples in by_stage.items()
    }

    return AggregatedStats(periods=periods, stages=stage_stats)
