"""
Catalogue MCP - configuration.

Dataclass configuration for connection management, discovery, health
monitoring and logging, loadable from environment variables or a YAML/JSON file.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

USER_AGENT = "Catalogue-MCP/1.0.0"

# Common MCP server ports
DEFAULT_PORT_CANDIDATES = [
    8051,  # Archon
    8052,  # Context7
    8053,  # Serena
    8054,  # GitHub MCP
    8055,  # Jules
    3000,  # Development servers
    3001,
    8000,
    8080,
    8888,
]

DEFAULT_KNOWN_SERVERS = [
    "https://localhost:8051",  # Archon
    "https://localhost:8052",  # Context7
    "https://localhost:8053",  # Serena
    "https://localhost:8054",  # GitHub MCP
    "https://localhost:8055",  # Jules
]


@dataclass
class SecurityConfig:
    """Transport security settings."""
    # Explicit opt-in list of http:// or ws:// origins the security gate lets through
    allowed_insecure_urls: List[str] = field(default_factory=list)
    verify_tls: bool = True
    user_agent: str = USER_AGENT


@dataclass
class ConnectionConfig:
    """Connection manager settings (seconds)."""
    timeout: float = 30.0
    retries: int = 3
    retry_delay: float = 1.0
    health_check_timeout: float = 5.0
    health_path: str = "/health"
    info_paths: List[str] = field(default_factory=lambda: ["/info", "/server-info", "/mcp/info", "/"])


@dataclass
class DiscoveryConfig:
    """Discovery settings."""
    timeout: float = 10.0
    concurrency: int = 3
    include_loopback: bool = True
    port_candidates: List[int] = field(default_factory=lambda: list(DEFAULT_PORT_CANDIDATES))
    known_servers: List[str] = field(default_factory=lambda: list(DEFAULT_KNOWN_SERVERS))
    # How many of the candidate ports are also probed on 127.0.0.1
    alternate_loopback_ports: int = 5
    chunk_delay: float = 0.05

    # Continuous discovery
    continuous_interval: float = 300.0
    continuous_timeout: float = 5.0
    continuous_concurrency: int = 2


@dataclass
class AlertThresholds:
    """Alert thresholds."""
    response_time: float = 5000.0  # milliseconds
    consecutive_failures: int = 3


@dataclass
class MonitorConfig:
    """Health monitor settings."""
    interval: float = 300.0
    timeout: float = 10.0
    retention_days: int = 30
    alert_thresholds: AlertThresholds = field(default_factory=AlertThresholds)


@dataclass
class LoggingConfig:
    """Logging settings."""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file_path: Optional[str] = None
    max_file_size: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5
    console_output: bool = True


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: List[str]) -> List[str]:
    value = os.getenv(name)
    if value is None:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class Config:
    """Top-level configuration."""
    security: SecurityConfig = field(default_factory=SecurityConfig)
    connection: ConnectionConfig = field(default_factory=ConnectionConfig)
    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def load_from_env(cls) -> "Config":
        """Build a configuration from environment variables."""
        config = cls()

        # Security
        config.security.allowed_insecure_urls = _env_list(
            "MCP_ALLOWED_INSECURE_URLS", config.security.allowed_insecure_urls)
        config.security.verify_tls = _env_bool("MCP_VERIFY_TLS", config.security.verify_tls)

        # Connection
        config.connection.timeout = float(os.getenv("MCP_CONNECT_TIMEOUT", str(config.connection.timeout)))
        config.connection.retries = int(os.getenv("MCP_CONNECT_RETRIES", str(config.connection.retries)))
        config.connection.retry_delay = float(os.getenv("MCP_RETRY_DELAY", str(config.connection.retry_delay)))
        config.connection.health_check_timeout = float(
            os.getenv("MCP_HEALTH_CHECK_TIMEOUT", str(config.connection.health_check_timeout)))

        # Discovery
        config.discovery.timeout = float(os.getenv("MCP_DISCOVERY_TIMEOUT", str(config.discovery.timeout)))
        config.discovery.concurrency = int(os.getenv("MCP_DISCOVERY_CONCURRENCY", str(config.discovery.concurrency)))
        config.discovery.include_loopback = _env_bool("MCP_DISCOVERY_LOOPBACK", config.discovery.include_loopback)
        ports = os.getenv("MCP_DISCOVERY_PORTS")
        if ports:
            config.discovery.port_candidates = [int(p) for p in ports.split(",") if p.strip()]

        # Monitoring
        config.monitor.interval = float(os.getenv("MCP_MONITOR_INTERVAL", str(config.monitor.interval)))
        config.monitor.timeout = float(os.getenv("MCP_MONITOR_TIMEOUT", str(config.monitor.timeout)))
        config.monitor.retention_days = int(os.getenv("MCP_RETENTION_DAYS", str(config.monitor.retention_days)))
        thresholds = config.monitor.alert_thresholds
        thresholds.response_time = float(os.getenv("MCP_ALERT_RESPONSE_TIME", str(thresholds.response_time)))
        thresholds.consecutive_failures = int(
            os.getenv("MCP_ALERT_CONSECUTIVE_FAILURES", str(thresholds.consecutive_failures)))

        # Logging
        config.logging.level = os.getenv("LOG_LEVEL", config.logging.level)
        config.logging.file_path = os.getenv("LOG_FILE_PATH", config.logging.file_path)

        return config

    @classmethod
    def load_from_file(cls, path: Union[str, Path]) -> "Config":
        """Load configuration from a YAML or JSON file."""
        config_file = Path(path)
        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_file}", field="path", value=str(path))

        with open(config_file, "r", encoding="utf-8") as f:
            if config_file.suffix.lower() in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            elif config_file.suffix.lower() == ".json":
                data = json.load(f)
            else:
                raise ConfigurationError(
                    f"Unsupported configuration format: {config_file.suffix}",
                    field="path",
                    value=str(path)
                )

        logger.info(f"Loaded configuration from {config_file}")
        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        config = cls()
        try:
            if "security" in data:
                config.security = SecurityConfig(**data["security"])
            if "connection" in data:
                config.connection = ConnectionConfig(**data["connection"])
            if "discovery" in data:
                config.discovery = DiscoveryConfig(**data["discovery"])
            if "monitor" in data:
                monitor_data = dict(data["monitor"])
                thresholds = monitor_data.pop("alert_thresholds", None) or {}
                config.monitor = MonitorConfig(**monitor_data, alert_thresholds=AlertThresholds(**thresholds))
            if "logging" in data:
                config.logging = LoggingConfig(**data["logging"])
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration section: {e}") from e
        return config

    def validate(self) -> "Config":
        """Reject values the subsystem cannot run with."""
        if self.connection.retries < 1:
            raise ConfigurationError("retries must be at least 1", "connection.retries", self.connection.retries)
        if self.connection.retry_delay < 0:
            raise ConfigurationError("retry_delay must not be negative", "connection.retry_delay",
                                     self.connection.retry_delay)
        for name in ("timeout", "health_check_timeout"):
            value = getattr(self.connection, name)
            if value <= 0:
                raise ConfigurationError(f"{name} must be positive", f"connection.{name}", value)

        if self.discovery.concurrency < 1:
            raise ConfigurationError("concurrency must be at least 1", "discovery.concurrency",
                                     self.discovery.concurrency)
        if self.discovery.timeout <= 0:
            raise ConfigurationError("timeout must be positive", "discovery.timeout", self.discovery.timeout)
        for port in self.discovery.port_candidates:
            if not 1 <= int(port) <= 65535:
                raise ConfigurationError(f"Invalid port candidate: {port}", "discovery.port_candidates", port)

        if self.monitor.interval <= 0:
            raise ConfigurationError("interval must be positive", "monitor.interval", self.monitor.interval)
        if self.monitor.timeout <= 0:
            raise ConfigurationError("timeout must be positive", "monitor.timeout", self.monitor.timeout)
        if self.monitor.retention_days < 1:
            raise ConfigurationError("retention_days must be at least 1", "monitor.retention_days",
                                     self.monitor.retention_days)
        thresholds = self.monitor.alert_thresholds
        if thresholds.response_time <= 0:
            raise ConfigurationError("response_time threshold must be positive",
                                     "monitor.alert_thresholds.response_time", thresholds.response_time)
        if thresholds.consecutive_failures < 1:
            raise ConfigurationError("consecutive_failures threshold must be at least 1",
                                     "monitor.alert_thresholds.consecutive_failures",
                                     thresholds.consecutive_failures)
        return self
