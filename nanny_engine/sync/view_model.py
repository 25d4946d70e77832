"""
View-model assembled at the end of each sync cycle.

The presentation layer renders this object and nothing else.
"""
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ..domain.entities import DeviceStatus, DiskInfo, DisplayMeasurement, Stage
from ..stats.aggregator import AggregatedStats

PUMP_FALLBACK_Y = 50.0


@dataclass(frozen=True)
class ChartPoint:
    """One point of a chart series; y is None for gaps."""
    x: int
    y: Optional[float]


@dataclass(frozen=True)
class ChartSeries:
    """Time series for the measurement chart."""
    temperature: List[ChartPoint] = field(default_factory=list)
    humidity: List[ChartPoint] = field(default_factory=list)
    pump: List[ChartPoint] = field(default_factory=list)

    @property
    def point_count(self) -> int:
        return len(self.temperature)


def build_chart_series(
    measurements: Sequence[DisplayMeasurement],
    max_points: int,
) -> ChartSeries:
    """
    Build chart series from the newest measurements.

    Pump activations are plotted at the humidity of the sample so they sit
    on the humidity line.

    Args:
        measurements: Reconciled measurements, oldest first.
        max_points: Maximum points per series.

    Returns:
        ChartSeries.
    """
    limited = list(measurements)[-max_points:] if max_points > 0 else []

    return ChartSeries(
        temperature=[ChartPoint(m.stabilized_timestamp, m.temperature) for m in limited],
        humidity=[ChartPoint(m.stabilized_timestamp, m.humidity) for m in limited],
        pump=[
            ChartPoint(
                m.stabilized_timestamp,
                (m.humidity if m.humidity is not None else PUMP_FALLBACK_Y)
                if m.pump_activated else None,
            )
            for m in limited
        ],
    )


@dataclass(frozen=True)
class ViewModel:
    """
    Consolidated dashboard state for one committed cycle.

    status_stale / history_stale flag data carried over from an earlier
    cycle because this cycle's fetch failed.
    """
    cycle_token: int
    generated_at_ms: int
    status: Optional[DeviceStatus] = None
    reconciled_measurements: List[DisplayMeasurement] = field(default_factory=list)
    stats: Optional[AggregatedStats] = None
    chart_series: ChartSeries = field(default_factory=ChartSeries)
    disk: Optional[DiskInfo] = None
    stages: List[Stage] = field(default_factory=list)
    measurement_interval_hours: Optional[float] = None
    total_measurements: int = 0
    heap_low: bool = False
    status_stale: bool = False
    history_stale: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cycle_token": self.cycle_token,
            "generated_at_ms": self.generated_at_ms,
            "status": asdict(self.status) if self.status else None,
            "reconciled_measurements": [asdict(m) for m in self.reconciled_measurements],
            "stats": self.stats.to_dict() if self.stats else None,
            "chart_series": asdict(self.chart_series),
            "disk": asdict(self.disk) if self.disk else None,
            "stages": [asdict(s) for s in self.stages],
            "measurement_interval_hours": self.measurement_interval_hours,
            "total_measurements": self.total_measurements,
            "heap_low": self.heap_low,
            "status_stale": self.status_stale,
            "history_stale": self.history_stale,
        }
