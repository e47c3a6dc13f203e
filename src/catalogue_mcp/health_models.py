"""Health check data models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class HealthStatus(str, Enum):
    """Health status levels."""
    UNKNOWN = "unknown"
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass(frozen=True)
class HealthCheckDetails:
    """Timing breakdown of a single probe (milliseconds)."""
    connection_time: float = 0.0
    tools_list_time: float = 0.0
    resources_list_time: float = 0.0
    memory_usage: Optional[float] = None
    cpu_usage: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "connection_time": self.connection_time,
            "tools_list_time": self.tools_list_time,
            "resources_list_time": self.resources_list_time,
        }
        if self.memory_usage is not None:
            data["memory_usage"] = self.memory_usage
        if self.cpu_usage is not None:
            data["cpu_usage"] = self.cpu_usage
        return data


@dataclass(frozen=True)
class HealthCheck:
    """Result of one probe. Never mutated after creation."""
    server_id: str
    timestamp: datetime
    status: HealthStatus
    response_time: float  # milliseconds
    error: Optional[str] = None
    details: HealthCheckDetails = field(default_factory=HealthCheckDetails)

    @property
    def is_healthy(self) -> bool:
        return self.status == HealthStatus.HEALTHY

    def to_dict(self) -> Dict[str, Any]:
        return {
            "server_id": self.server_id,
            "timestamp": self.timestamp.isoformat(),
            "status": self.status.value,
            "response_time": self.response_time,
            "error": self.error,
            "details": self.details.to_dict(),
        }
