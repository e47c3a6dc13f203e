"""
Catalogue MCP - health monitor.

Recurring multi-server health checks with bounded history, idempotent
threshold alerts and windowed metrics.
"""

import asyncio
import inspect
import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from ..config import MonitorConfig
from ..connection_manager import ConnectionManager
from ..endpoint import ServerEndpoint
from ..exceptions import describe_error
from ..health_models import HealthCheck, HealthCheckDetails, HealthStatus
from ..scheduler import TickScheduler
from .alert_evaluator import AlertEvaluator
from .history import HealthHistory
from .metrics import calculate_metrics
from .monitor_types import (
    AlertSeverity,
    HealthAlert,
    HealthMetrics,
    MetricsPeriod,
    MonitoredServer,
    MonitoringSummary,
    MonitorOptions,
)

logger = logging.getLogger(__name__)

# Extra time a probe gets beyond its own timeout before it is abandoned
PROBE_GRACE_PERIOD = 1.0

AlertListener = Callable[[HealthAlert], Any]


class HealthMonitor:
    """Health monitor for registered MCP servers.

    Each server's state (history, status, alerts) is committed under its own
    lock; different servers are checked and updated in parallel. A server
    whose previous check is still in flight is skipped, never queued.
    """

    def __init__(
        self,
        connection_manager: ConnectionManager,
        config: Optional[MonitorConfig] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        """Initialize health monitor.

        Args:
            connection_manager: Used for health probes
            config: Default monitoring options
            clock: Time source for retention and metrics windows
        """
        self.connection_manager = connection_manager
        self.config = config or MonitorConfig()
        self.options = MonitorOptions.from_config(self.config)
        self._clock = clock

        self._servers: Dict[str, MonitoredServer] = {}
        self._history = HealthHistory(self.options.retention_days)
        self._alerts: Dict[str, List[HealthAlert]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        # server id -> registration whose probe is running
        self._in_flight: Dict[str, MonitoredServer] = {}

        self._evaluator = AlertEvaluator(self.options.alert_thresholds)
        self._scheduler: Optional[TickScheduler] = None
        self._alert_listeners: List[AlertListener] = []

    # Registration

    def add_server(self, server_id: str, url: str, name: str, enabled: bool = True) -> MonitoredServer:
        """Register a server with empty history and no alerts.

        Re-registering an id discards its previous state.

        Raises:
            InvalidEndpointError: If the URL is malformed
        """
        ServerEndpoint.parse(url)

        server = MonitoredServer(id=server_id, url=url, name=name, enabled=enabled)
        self._servers[server_id] = server
        self._history.create(server_id)
        self._alerts[server_id] = []
        self._locks[server_id] = asyncio.Lock()

        logger.info(f"Added server to health monitoring: {name} ({url})")
        return replace(server)

    def remove_server(self, server_id: str) -> bool:
        """Discard all state for a server, unresolved alerts included."""
        server = self._servers.pop(server_id, None)
        if server is None:
            return False

        self._history.drop(server_id)
        self._alerts.pop(server_id, None)
        self._locks.pop(server_id, None)
        self._in_flight.pop(server_id, None)
        logger.info(f"Removed server from monitoring: {server.name}")
        return True

    def add_alert_listener(self, listener: AlertListener) -> None:
        """Register a sync or async callable for created and resolved alerts."""
        self._alert_listeners.append(listener)

    # Scheduling

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.is_running

    async def start(self, options: Optional[MonitorOptions] = None) -> None:
        """Start the global schedule, or enable one server.

        Args:
            options: Monitoring options; with ``server_id`` set only that
                server's enabled flag is switched on and the global schedule
                is left alone
        """
        if options is not None and options.server_id is not None:
            server = self._servers.get(options.server_id)
            if server is None:
                logger.warning(f"Server {options.server_id} not found for monitoring")
                return
            server.enabled = True
            logger.info(f"Started monitoring for server: {server.name}")
            return

        if self.is_running:
            logger.warning("Health monitoring already running")
            return

        options = options or MonitorOptions.from_config(self.config)
        options.validate()
        self._apply_options(options)

        logger.info(f"Starting health monitoring (interval: {options.interval}s, "
                    f"servers: {len(self._servers)})")
        self._scheduler = TickScheduler(self.run_checks, options.interval, name="health-monitor")
        self._scheduler.start()

    async def stop(self, server_id: Optional[str] = None) -> None:
        """Stop the global schedule, or disable one server.

        Checks in flight when the schedule stops complete and are recorded.
        """
        if server_id is not None:
            server = self._servers.get(server_id)
            if server is not None:
                server.enabled = False
                logger.info(f"Monitoring stopped for server: {server.name}")
            return

        if self._scheduler is not None:
            await self._scheduler.stop()
            self._scheduler = None
            logger.info("Health monitoring stopped")

    def _apply_options(self, options: MonitorOptions) -> None:
        self.options = options
        self._history.retention_days = options.retention_days
        self._evaluator.thresholds = options.alert_thresholds

    # Checks

    async def run_checks(self) -> List[HealthCheck]:
        """One tick: check every enabled server in parallel.

        Returns:
            Checks recorded during this tick (skipped servers excluded)
        """
        servers = [server for server in self._servers.values() if server.enabled]
        if not servers:
            logger.debug("No enabled servers to check")
            return []

        logger.info(f"Performing health checks on {len(servers)} servers")
        results = await asyncio.gather(*[self._check(server) for server in servers], return_exceptions=True)

        checks: List[HealthCheck] = []
        skipped = 0
        for server, result in zip(servers, results):
            if isinstance(result, HealthCheck):
                checks.append(result)
            elif result is None:
                skipped += 1
            else:
                logger.error(f"Health check for {server.name} failed: {result}")

        healthy = sum(1 for check in checks if check.is_healthy)
        logger.info(f"Health check completed: {healthy} healthy, {len(checks) - healthy} unhealthy, "
                    f"{skipped} skipped")
        return checks

    async def check_server(self, server_id: str) -> Optional[HealthCheck]:
        """Probe one server now.

        Returns:
            The recorded check, or None if a check for it was already in flight

        Raises:
            KeyError: If the server is not registered
        """
        server = self._servers.get(server_id)
        if server is None:
            raise KeyError(f"Server not registered: {server_id}")
        return await self._check(server)

    async def _check(self, server: MonitoredServer) -> Optional[HealthCheck]:
        if self._in_flight.get(server.id) is server:
            logger.warning(f"Skipping {server.name}: previous check still in flight")
            return None

        self._in_flight[server.id] = server
        try:
            check = await self._probe(server)
            await self._commit(server, check)
            return check
        finally:
            if self._in_flight.get(server.id) is server:
                del self._in_flight[server.id]

    async def _probe(self, server: MonitoredServer) -> HealthCheck:
        timeout = self.options.timeout
        try:
            check = await asyncio.wait_for(
                self.connection_manager.health_check(server.url, timeout=timeout),
                timeout=timeout + PROBE_GRACE_PERIOD
            )
            return replace(check, server_id=server.id, timestamp=self._clock())
        except asyncio.TimeoutError:
            error = f"Health check timed out after {timeout}s"
        except Exception as e:
            error = describe_error(e)

        logger.error(f"{server.name}: health check failed - {error}")
        timeout_ms = timeout * 1000
        return HealthCheck(
            server_id=server.id,
            timestamp=self._clock(),
            status=HealthStatus.UNHEALTHY,
            response_time=timeout_ms,
            error=error,
            details=HealthCheckDetails(connection_time=timeout_ms)
        )

    async def record_check(self, check: HealthCheck) -> List[HealthAlert]:
        """Commit a check: history, status, alerts, listeners.

        Returns:
            Alerts created or resolved by this check
        """
        server = self._servers.get(check.server_id)
        if server is None:
            logger.warning(f"Discarding check for unregistered server {check.server_id}")
            return []
        return await self._commit(server, check)

    async def _commit(self, server: MonitoredServer, check: HealthCheck) -> List[HealthAlert]:
        """Record ``check`` against the registration it was taken for."""
        if self._servers.get(server.id) is not server:
            logger.info(f"Discarding stale check for {server.name}: server was removed or re-registered")
            return []

        async with self._locks[server.id]:
            # The server may have been removed or re-registered while waiting
            if self._servers.get(server.id) is not server:
                return []

            now = self._clock()
            self._history.append(server.id, check, now)
            self._prune_resolved_alerts(server.id, now)

            server.status = check.status
            server.last_check = check.timestamp

            changed = self.evaluate_alerts(server.id, check)
            logger.info(f"{server.name}: {check.status.value} ({check.response_time:.0f}ms)")

            await self._notify_listeners(changed)
        return changed

    def evaluate_alerts(self, server_id: str, check: HealthCheck) -> List[HealthAlert]:
        """Run alert evaluation for ``check`` against current history.

        Safe to repeat: an open alert of a type is never duplicated.
        """
        if server_id not in self._servers:
            return []

        alerts = self._alerts.setdefault(server_id, [])
        recent = self._history.recent(server_id, self._evaluator.thresholds.consecutive_failures)
        return self._evaluator.evaluate(server_id, check, recent, alerts)

    def _prune_resolved_alerts(self, server_id: str, now: datetime) -> None:
        cutoff = self._history.cutoff(now)
        alerts = self._alerts.get(server_id, [])
        self._alerts[server_id] = [
            alert for alert in alerts
            if not alert.resolved or (alert.resolved_at is not None and alert.resolved_at > cutoff)
        ]

    async def _notify_listeners(self, alerts: List[HealthAlert]) -> None:
        for alert in alerts:
            for listener in self._alert_listeners:
                try:
                    outcome = listener(replace(alert))
                    if inspect.isawaitable(outcome):
                        await outcome
                except Exception as e:
                    logger.error(f"Error in alert listener: {e}")

    # Read-only accessors

    def calculate_metrics(self, server_id: str,
                          period: Union[MetricsPeriod, str] = MetricsPeriod.DAY) -> Optional[HealthMetrics]:
        """Windowed metrics for a server.

        Raises:
            ConfigurationError: If ``period`` is not a known period
        """
        period = MetricsPeriod.parse(period)
        history = self._history.get(server_id)
        if not history:
            return None
        return calculate_metrics(server_id, history, period, self._clock())

    def get_active_alerts(self) -> List[HealthAlert]:
        """Unresolved alerts across all servers, newest first."""
        active = [
            replace(alert)
            for alerts in self._alerts.values()
            for alert in alerts
            if not alert.resolved
        ]
        return sorted(active, key=lambda alert: alert.triggered_at, reverse=True)

    def get_health_history(self, server_id: str, limit: Optional[int] = None) -> List[HealthCheck]:
        return self._history.get(server_id, limit)

    def get_server_status(self, server_id: str) -> Optional[MonitoredServer]:
        server = self._servers.get(server_id)
        return replace(server) if server else None

    def get_servers(self) -> List[MonitoredServer]:
        return [replace(server) for server in self._servers.values()]

    def get_monitoring_summary(self) -> MonitoringSummary:
        servers = list(self._servers.values())
        active_alerts = self.get_active_alerts()

        return MonitoringSummary(
            total_servers=len(servers),
            active_servers=sum(1 for s in servers if s.enabled),
            healthy_servers=sum(1 for s in servers if s.status == HealthStatus.HEALTHY),
            degraded_servers=sum(1 for s in servers if s.status == HealthStatus.DEGRADED),
            unhealthy_servers=sum(1 for s in servers if s.status == HealthStatus.UNHEALTHY),
            total_alerts=len(active_alerts),
            critical_alerts=sum(1 for a in active_alerts if a.severity == AlertSeverity.CRITICAL),
            is_running=self.is_running
        )
