"""Monitoring module for estatetoken.

This module provides:
- Prometheus-format metrics for retries, circuit breakers and call outcomes
- Exporters that hook those metrics into the resilience primitives
- An event log persisting circuit transitions to the row store
"""

from .exporters import ResilienceEventLog, ResilienceMetricsExporter, RowStore
from .metrics import (
    CIRCUIT_STATE_VALUES,
    Counter,
    Gauge,
    Histogram,
    MetricsServer,
    ResilienceMetrics,
)

__all__ = [
    "Counter",
    "Gauge",
    "Histogram",
    "ResilienceMetrics",
    "MetricsServer",
    "CIRCUIT_STATE_VALUES",
    "ResilienceMetricsExporter",
    "ResilienceEventLog",
    "RowStore",
]
