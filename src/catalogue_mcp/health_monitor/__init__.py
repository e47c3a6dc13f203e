"""
MCP server health monitoring.

Scheduler-driven health checks, retention-bounded history, threshold
alerts and windowed metrics.
"""

from .alert_evaluator import AlertEvaluator
from .health_monitor import HealthMonitor
from .history import HealthHistory
from .metrics import calculate_metrics, calculate_performance_trend, calculate_uptime_trend
from .monitor_types import (
    AlertSeverity,
    AlertType,
    HealthAlert,
    HealthMetrics,
    MetricsPeriod,
    MonitoredServer,
    MonitoringSummary,
    MonitorOptions,
    Trend,
)

__all__ = [
    "AlertEvaluator",
    "AlertSeverity",
    "AlertType",
    "HealthAlert",
    "HealthHistory",
    "HealthMetrics",
    "HealthMonitor",
    "MetricsPeriod",
    "MonitoredServer",
    "MonitoringSummary",
    "MonitorOptions",
    "Trend",
    "calculate_metrics",
    "calculate_performance_trend",
    "calculate_uptime_trend",
]
