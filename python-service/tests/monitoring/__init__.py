"""Tests for monitoring module."""

import pytest


def test_monitoring_imports():
    """Test that all monitoring module components can be imported."""
    from estatetoken.monitoring import (
        ResilienceMetrics,
        ResilienceMetricsExporter,
        ResilienceEventLog,
        MetricsServer,
    )

    assert ResilienceMetrics is not None
    assert ResilienceMetricsExporter is not None
    assert ResilienceEventLog is not None
    assert MetricsServer is not None
