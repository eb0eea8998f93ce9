"""Telemetry components.

This package tracks billed characters and emits structured run events.
"""

from .cost_tracker import CostTracker, estimate_cost_usd
from .logger import RunLogger

__all__ = ["CostTracker", "RunLogger", "estimate_cost_usd"]
