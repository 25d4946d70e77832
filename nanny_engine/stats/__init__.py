"""
Statistics module.

Pure aggregation of reconciled measurements into period and stage stats.
"""
from .aggregator import (
    AggregatedStats,
    FieldStats,
    WindowStats,
    aggregate,
    calculate_field_stats,
    calculate_window_stats,
)
from .vpd import calculate_vpd

__all__ = [
    "AggregatedStats",
    "FieldStats",
    "WindowStats",
    "aggregate",
    "calculate_field_stats",
    "calculate_window_stats",
    "calculate_vpd",
]
