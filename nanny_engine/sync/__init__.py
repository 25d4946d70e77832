"""
Synchronization module.

Per-cycle orchestration and the view-model handed to the presentation layer.
"""
from .orchestrator import SyncOrchestrator
from .view_model import ChartPoint, ChartSeries, ViewModel, build_chart_series

__all__ = [
    "SyncOrchestrator",
    "ChartPoint",
    "ChartSeries",
    "ViewModel",
    "build_chart_series",
]
