"""
Utilities package for the cue display.
"""

from .metrics import MetricsCollector, MetricsExporter, metric_key

__all__ = [
    "MetricsCollector",
    "MetricsExporter",
    "metric_key",
]
