"""Health monitor records and enums."""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional, Union

from ..config import AlertThresholds, MonitorConfig
from ..exceptions import ConfigurationError
from ..health_models import HealthStatus


@dataclass
class MonitoredServer:
    """A server registered for monitoring. Status mirrors the latest check."""
    id: str
    url: str
    name: str
    enabled: bool = True
    last_check: Optional[datetime] = None
    status: HealthStatus = HealthStatus.UNKNOWN

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "name": self.name,
            "enabled": self.enabled,
            "last_check": self.last_check.isoformat() if self.last_check else None,
            "status": self.status.value,
        }


class AlertType(str, Enum):
    RESPONSE_TIME = "response_time"
    CONSECUTIVE_FAILURES = "consecutive_failures"


class AlertSeverity(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass
class HealthAlert:
    """Threshold violation for one server.

    At most one unresolved alert exists per (server_id, type).
    """
    id: str
    server_id: str
    type: AlertType
    severity: AlertSeverity
    message: str
    triggered_at: datetime
    resolved: bool = False
    resolved_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return not self.resolved

    def resolve(self, at: datetime) -> None:
        self.resolved = True
        self.resolved_at = at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "server_id": self.server_id,
            "type": self.type.value,
            "severity": self.severity.value,
            "message": self.message,
            "triggered_at": self.triggered_at.isoformat(),
            "resolved": self.resolved,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
        }


class Trend(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DEGRADING = "degrading"


class MetricsPeriod(str, Enum):
    """Metrics windows."""
    HOUR = "1h"
    DAY = "24h"
    WEEK = "7d"
    MONTH = "30d"

    @property
    def window(self) -> timedelta:
        return _PERIOD_WINDOWS[self]

    @classmethod
    def parse(cls, value: Union["MetricsPeriod", str]) -> "MetricsPeriod":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            valid = ", ".join(p.value for p in cls)
            raise ConfigurationError(f"Unknown metrics period: {value} (expected one of {valid})",
                                     "period", value) from None


_PERIOD_WINDOWS = {
    MetricsPeriod.HOUR: timedelta(hours=1),
    MetricsPeriod.DAY: timedelta(hours=24),
    MetricsPeriod.WEEK: timedelta(days=7),
    MetricsPeriod.MONTH: timedelta(days=30),
}


@dataclass
class HealthMetrics:
    """Windowed metrics derived from history. Computed on demand, never stored."""
    server_id: str
    period: MetricsPeriod
    uptime: float           # 0-1
    avg_response_time: float  # milliseconds
    error_rate: float       # 0-1
    total_checks: int
    failed_checks: int
    last_check: datetime
    uptime_trend: Trend = Trend.STABLE
    performance_trend: Trend = Trend.STABLE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "server_id": self.server_id,
            "period": self.period.value,
            "uptime": self.uptime,
            "avg_response_time": self.avg_response_time,
            "error_rate": self.error_rate,
            "total_checks": self.total_checks,
            "failed_checks": self.failed_checks,
            "last_check": self.last_check.isoformat(),
            "trends": {
                "uptime": self.uptime_trend.value,
                "performance": self.performance_trend.value,
            },
        }


@dataclass
class MonitoringSummary:
    total_servers: int = 0
    active_servers: int = 0
    healthy_servers: int = 0
    degraded_servers: int = 0
    unhealthy_servers: int = 0
    total_alerts: int = 0
    critical_alerts: int = 0
    is_running: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class MonitorOptions:
    """Options for start(). With server_id set only that server is enabled."""
    interval: float = 300.0
    timeout: float = 10.0
    retention_days: int = 30
    alert_thresholds: AlertThresholds = field(default_factory=AlertThresholds)
    server_id: Optional[str] = None

    @classmethod
    def from_config(cls, config: MonitorConfig) -> "MonitorOptions":
        return cls(
            interval=config.interval,
            timeout=config.timeout,
            retention_days=config.retention_days,
            alert_thresholds=AlertThresholds(
                response_time=config.alert_thresholds.response_time,
                consecutive_failures=config.alert_thresholds.consecutive_failures
            )
        )

    def validate(self) -> None:
        if self.interval <= 0:
            raise ConfigurationError("interval must be positive", "interval", self.interval)
        if self.timeout <= 0:
            raise ConfigurationError("timeout must be positive", "timeout", self.timeout)
        if self.retention_days < 1:
            raise ConfigurationError("retention_days must be at least 1", "retention_days", self.retention_days)
        if self.alert_thresholds.response_time <= 0:
            raise ConfigurationError("response_time threshold must be positive",
                                     "alert_thresholds.response_time", self.alert_thresholds.response_time)
        if self.alert_thresholds.consecutive_failures < 1:
            raise ConfigurationError("consecutive_failures threshold must be at least 1",
                                     "alert_thresholds.consecutive_failures",
                                     self.alert_thresholds.consecutive_failures)
