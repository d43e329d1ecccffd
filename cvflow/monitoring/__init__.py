"""Monitoring module for flow session metrics."""

from .flow_metrics import (
    FlowMetricsCollector,
    SessionTransitionMetric,
    SessionOutcomeMetric,
    get_flow_metrics_collector
)

__all__ = [
    'FlowMetricsCollector',
    'SessionTransitionMetric',
    'SessionOutcomeMetric',
    'get_flow_metrics_collector'
]
