"""Catalogue MCP - connectivity, discovery and health monitoring for MCP servers."""

from .config import Config
from .connection_manager import ConnectionManager, ConnectionResult, ConnectOptions
from .discovery import DiscoveryOptions, DiscoveryResult, DiscoveryService
from .endpoint import EndpointPolicy, ServerEndpoint, TransportType
from .exceptions import (
    CatalogueMCPError,
    ConfigurationError,
    ErrorCategory,
    InvalidEndpointError,
    ProtocolError,
    SecurityPolicyError,
    TransportError,
)
from .health_models import HealthCheck, HealthCheckDetails, HealthStatus
from .health_monitor import HealthMonitor, MetricsPeriod, MonitorOptions
from .models import ServerInfo

__version__ = "1.0.0"

__all__ = [
    "CatalogueMCPError",
    "Config",
    "ConfigurationError",
    "ConnectOptions",
    "ConnectionManager",
    "ConnectionResult",
    "DiscoveryOptions",
    "DiscoveryResult",
    "DiscoveryService",
    "EndpointPolicy",
    "ErrorCategory",
    "HealthCheck",
    "HealthCheckDetails",
    "HealthMonitor",
    "HealthStatus",
    "InvalidEndpointError",
    "MetricsPeriod",
    "MonitorOptions",
    "ProtocolError",
    "SecurityPolicyError",
    "ServerEndpoint",
    "ServerInfo",
    "TransportError",
    "TransportType",
]
