"""Windowed uptime/latency metrics and trend classification."""

from datetime import datetime
from typing import Optional, Sequence

from ..health_models import HealthCheck
from .monitor_types import HealthMetrics, MetricsPeriod, Trend

# Fewer samples than this always yield a stable trend
MIN_TREND_SAMPLES = 10
UPTIME_TREND_DELTA = 0.10
PERFORMANCE_TREND_RATIO = 0.20


def _uptime(checks: Sequence[HealthCheck]) -> float:
    return sum(1 for check in checks if check.is_healthy) / len(checks)


def _avg_response_time(checks: Sequence[HealthCheck]) -> float:
    return sum(check.response_time for check in checks) / len(checks)


def _split(checks: Sequence[HealthCheck]):
    mid = len(checks) // 2
    return checks[:mid], checks[mid:]


def calculate_uptime_trend(checks: Sequence[HealthCheck]) -> Trend:
    """Compare uptime of the second half of the window against the first."""
    if len(checks) < MIN_TREND_SAMPLES:
        return Trend.STABLE

    first, second = _split(checks)
    diff = _uptime(second) - _uptime(first)
    if diff > UPTIME_TREND_DELTA:
        return Trend.IMPROVING
    if diff < -UPTIME_TREND_DELTA:
        return Trend.DEGRADING
    return Trend.STABLE


def calculate_performance_trend(checks: Sequence[HealthCheck]) -> Trend:
    """Relative change of average response time between the two halves.

    Slower is degrading. A zero first-half average counts as degrading when
    the second half is slower, stable otherwise.
    """
    if len(checks) < MIN_TREND_SAMPLES:
        return Trend.STABLE

    first, second = _split(checks)
    first_avg = _avg_response_time(first)
    second_avg = _avg_response_time(second)

    if first_avg == 0:
        return Trend.DEGRADING if second_avg > 0 else Trend.STABLE

    diff = (second_avg - first_avg) / first_avg
    if diff > PERFORMANCE_TREND_RATIO:
        return Trend.DEGRADING
    if diff < -PERFORMANCE_TREND_RATIO:
        return Trend.IMPROVING
    return Trend.STABLE


def calculate_metrics(
    server_id: str,
    history: Sequence[HealthCheck],
    period: MetricsPeriod,
    now: datetime
) -> Optional[HealthMetrics]:
    """Metrics over checks newer than ``now - period``.

    Args:
        server_id: Monitored server id
        history: The server's history, oldest first
        period: Metrics window
        now: Reference time

    Returns:
        HealthMetrics, or None when the window holds no checks
    """
    cutoff = now - period.window
    checks = [check for check in history if check.timestamp > cutoff]
    if not checks:
        return None

    failed = sum(1 for check in checks if not check.is_healthy)
    total = len(checks)

    return HealthMetrics(
        server_id=server_id,
        period=period,
        uptime=(total - failed) / total,
        avg_response_time=round(_avg_response_time(checks), 2),
        error_rate=failed / total,
        total_checks=total,
        failed_checks=failed,
        last_check=checks[-1].timestamp,
        uptime_trend=calculate_uptime_trend(checks),
        performance_trend=calculate_performance_trend(checks)
    )
