"""
Green Nanny dashboard sync engine.

Keeps a dashboard view of a grow controller in sync: polls the device,
reconciles its measurement timestamps, aggregates statistics and exposes
operator commands.
"""
from .engine import CommandResult, DashboardEngine

__version__ = "0.1.0"

__all__ = ["CommandResult", "DashboardEngine", "__version__"]
