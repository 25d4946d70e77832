"""
Timestamp reconciliation module.

Stabilizes unreliable device timestamps into durable display times.
"""
from .timestamp_cache import ReconcileResult, TimestampCache, interval_hours_to_ms

__all__ = [
    "ReconcileResult",
    "TimestampCache",
    "interval_hours_to_ms",
]
