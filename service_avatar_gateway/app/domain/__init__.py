"""
Domain utilities for the Avatar Gateway Service.

Local computations that never call the upstream: latency echo maths,
conversation descriptors and the static catalogs.
"""

from .conversation import build_conversation
from .latency import LatencyMeasurement, measure_latency

__all__ = [
    "LatencyMeasurement",
    "build_conversation",
    "measure_latency",
]
