import asyncio
import time
from datetime import timedelta

import pytest

from catalogue_mcp.config import AlertThresholds, MonitorConfig
from catalogue_mcp.exceptions import ConfigurationError, InvalidEndpointError
from catalogue_mcp.health_models import HealthStatus
from catalogue_mcp.health_monitor import (
    AlertSeverity,
    AlertType,
    HealthMonitor,
    MetricsPeriod,
    MonitorOptions,
    Trend,
)
from catalogue_mcp.health_monitor import health_monitor as health_monitor_module

from conftest import FakeConnectionManager, make_check

URL = "https://localhost:8051"


@pytest.fixture
def monitor(clock):
    manager = FakeConnectionManager(clock=clock, delay=0)
    monitor = HealthMonitor(manager, MonitorConfig(timeout=1), clock=clock)
    monitor.add_server("archon", URL, "Archon")
    return monitor


def test_add_server_starts_unknown(monitor):
    status = monitor.get_server_status("archon")
    assert status.status == HealthStatus.UNKNOWN
    assert status.enabled
    assert status.last_check is None
    assert monitor.get_health_history("archon") == []
    assert monitor.get_active_alerts() == []


def test_add_server_rejects_malformed_url(monitor):
    with pytest.raises(InvalidEndpointError):
        monitor.add_server("bad", "not a url", "Bad")


def test_server_status_is_a_copy(monitor):
    status = monitor.get_server_status("archon")
    status.enabled = False
    assert monitor.get_server_status("archon").enabled


async def test_remove_server_discards_alerts(monitor, clock):
    await monitor.record_check(make_check("archon", clock(), response_time=6000))
    assert len(monitor.get_active_alerts()) == 1

    assert monitor.remove_server("archon")
    assert monitor.get_server_status("archon") is None
    assert monitor.get_active_alerts() == []
    assert monitor.get_health_history("archon") == []
    assert not monitor.remove_server("archon")


async def test_check_server_records_result(monitor, clock):
    """The check is re-keyed to the registered id and status follows it"""
    check = await monitor.check_server("archon")

    assert check.server_id == "archon"
    assert check.status == HealthStatus.HEALTHY
    status = monitor.get_server_status("archon")
    assert status.status == HealthStatus.HEALTHY
    assert status.last_check == check.timestamp
    assert monitor.get_health_history("archon") == [check]
    assert monitor.connection_manager.health_calls == [(URL, 1)]


async def test_check_server_unknown_id(monitor):
    with pytest.raises(KeyError):
        await monitor.check_server("missing")


async def test_status_follows_latest_check(monitor, clock):
    """No hysteresis: the raw check result is authoritative"""
    for status in (HealthStatus.UNHEALTHY, HealthStatus.HEALTHY, HealthStatus.DEGRADED):
        await monitor.record_check(make_check("archon", clock.advance(minutes=1), status=status))
        assert monitor.get_server_status("archon").status == status


async def test_retention_pruning(monitor, clock):
    """A check older than the retention window is gone after the next check"""
    now = clock.now
    clock.now = now - timedelta(days=31)
    old = make_check("archon", clock.now)
    await monitor.record_check(old)
    assert monitor.get_health_history("archon") == [old]

    clock.now = now
    new = make_check("archon", now)
    await monitor.record_check(new)

    assert monitor.get_health_history("archon") == [new]


async def test_history_limit(monitor, clock):
    checks = [make_check("archon", clock.advance(minutes=1)) for _ in range(5)]
    for check in checks:
        await monitor.record_check(check)

    assert monitor.get_health_history("archon", limit=2) == checks[-2:]
    assert monitor.get_health_history("archon") == checks


async def test_consecutive_failure_alert_is_idempotent(monitor, clock):
    """Re-evaluating the same failing state never duplicates the alert"""
    last = None
    for _ in range(3):
        last = make_check("archon", clock.advance(minutes=1), status=HealthStatus.UNHEALTHY)
        await monitor.record_check(last)

    assert monitor.evaluate_alerts("archon", last) == []
    assert monitor.evaluate_alerts("archon", last) == []

    alerts = monitor.get_active_alerts()
    assert len(alerts) == 1
    assert alerts[0].type == AlertType.CONSECUTIVE_FAILURES
    assert alerts[0].severity == AlertSeverity.CRITICAL
    assert alerts[0].message == "3 consecutive failures detected"

    # A fourth failure keeps the single open alert
    await monitor.record_check(make_check("archon", clock.advance(minutes=1), status=HealthStatus.UNHEALTHY))
    assert len(monitor.get_active_alerts()) == 1


async def test_consecutive_failures_below_threshold(monitor, clock):
    for _ in range(2):
        await monitor.record_check(make_check("archon", clock.advance(minutes=1), status=HealthStatus.UNHEALTHY))
    assert monitor.get_active_alerts() == []


async def test_consecutive_failure_alert_resolves_on_healthy_check(monitor, clock):
    for _ in range(3):
        await monitor.record_check(make_check("archon", clock.advance(minutes=1), status=HealthStatus.DEGRADED))
    assert len(monitor.get_active_alerts()) == 1

    healthy = make_check("archon", clock.advance(minutes=1))
    changed = await monitor.record_check(healthy)

    assert len(changed) == 1
    assert changed[0].resolved
    assert changed[0].resolved_at == healthy.timestamp
    assert monitor.get_active_alerts() == []


async def test_response_time_alert_and_resolution(monitor, clock):
    """A slow check opens a warning alert; a fast one resolves it"""
    changed = await monitor.record_check(make_check("archon", clock.advance(minutes=1), response_time=6000))
    assert len(changed) == 1
    alert = changed[0]
    assert alert.type == AlertType.RESPONSE_TIME
    assert alert.severity == AlertSeverity.WARNING
    assert alert.message == "High response time: 6000ms (threshold: 5000ms)"

    # Still slow: no second alert
    assert await monitor.record_check(make_check("archon", clock.advance(minutes=1), response_time=7000)) == []

    fast = make_check("archon", clock.advance(minutes=1), response_time=120)
    changed = await monitor.record_check(fast)

    assert len(changed) == 1
    assert changed[0].id == alert.id
    assert changed[0].resolved is True
    assert changed[0].resolved_at == fast.timestamp
    assert monitor.get_active_alerts() == []


async def test_response_time_alert_critical_above_double_threshold(monitor, clock):
    await monitor.record_check(make_check("archon", clock(), response_time=10001))
    assert monitor.get_active_alerts()[0].severity == AlertSeverity.CRITICAL


async def test_active_alerts_newest_first(monitor, clock):
    monitor.add_server("serena", "https://localhost:8053", "Serena")
    await monitor.record_check(make_check("archon", clock.advance(minutes=1), response_time=6000))
    await monitor.record_check(make_check("serena", clock.advance(minutes=1), response_time=6000))

    alerts = monitor.get_active_alerts()
    assert [alert.server_id for alert in alerts] == ["serena", "archon"]


async def test_resolved_alerts_pruned_with_history(monitor, clock):
    await monitor.record_check(make_check("archon", clock(), response_time=6000))
    await monitor.record_check(make_check("archon", clock.advance(minutes=1)))
    assert len(monitor._alerts["archon"]) == 1

    await monitor.record_check(make_check("archon", clock.advance(days=31)))
    assert monitor._alerts["archon"] == []


async def test_alert_listeners(monitor, clock):
    received = []

    async def async_listener(alert):
        received.append(("async", alert.type))

    monitor.add_alert_listener(lambda alert: received.append(("sync", alert.type)))
    monitor.add_alert_listener(async_listener)

    await monitor.record_check(make_check("archon", clock(), response_time=6000))

    assert received == [("sync", AlertType.RESPONSE_TIME), ("async", AlertType.RESPONSE_TIME)]


async def test_uptime_metrics(monitor, clock):
    """11 healthy and 1 unhealthy check in the last hour"""
    start = clock.now
    for i in range(12):
        status = HealthStatus.UNHEALTHY if i == 5 else HealthStatus.HEALTHY
        await monitor.record_check(make_check("archon", start + timedelta(minutes=4 * i), status=status))
    clock.now = start + timedelta(minutes=50)

    metrics = monitor.calculate_metrics("archon", "1h")

    assert metrics.period == MetricsPeriod.HOUR
    assert metrics.uptime == pytest.approx(11 / 12, abs=1e-4)
    assert metrics.error_rate == pytest.approx(1 / 12)
    assert metrics.total_checks == 12
    assert metrics.failed_checks == 1
    assert metrics.avg_response_time == 100.0
    assert metrics.last_check == start + timedelta(minutes=44)


async def test_metrics_window_excludes_older_checks(monitor, clock):
    await monitor.record_check(make_check("archon", clock.now - timedelta(hours=2)))
    await monitor.record_check(make_check("archon", clock.now - timedelta(minutes=10)))

    assert monitor.calculate_metrics("archon", MetricsPeriod.HOUR).total_checks == 1
    assert monitor.calculate_metrics("archon", MetricsPeriod.DAY).total_checks == 2


async def test_metrics_empty_window(monitor, clock):
    assert monitor.calculate_metrics("archon", "24h") is None
    assert monitor.calculate_metrics("missing", "24h") is None

    await monitor.record_check(make_check("archon", clock.now - timedelta(hours=3)))
    assert monitor.calculate_metrics("archon", "1h") is None


def test_metrics_invalid_period(monitor):
    with pytest.raises(ConfigurationError):
        monitor.calculate_metrics("archon", "2h")


async def test_performance_trend_degrading(monitor, clock):
    """Second half 50% slower than the first"""
    for i in range(20):
        response_time = 100 if i < 10 else 150
        await monitor.record_check(make_check("archon", clock.advance(minutes=1), response_time=response_time))

    metrics = monitor.calculate_metrics("archon", "1h")
    assert metrics.performance_trend == Trend.DEGRADING
    assert metrics.uptime_trend == Trend.STABLE


async def test_trend_stable_below_minimum_samples(monitor, clock):
    for i in range(9):
        status = HealthStatus.HEALTHY if i < 4 else HealthStatus.UNHEALTHY
        await monitor.record_check(make_check("archon", clock.advance(minutes=1), status=status,
                                              response_time=10 if i < 4 else 4000))

    metrics = monitor.calculate_metrics("archon", "1h")
    assert metrics.performance_trend == Trend.STABLE
    assert metrics.uptime_trend == Trend.STABLE


async def test_in_flight_check_is_skipped(clock):
    """A second check for a server mid-check is skipped, not queued"""
    manager = FakeConnectionManager(clock=clock, delay=0.1)
    monitor = HealthMonitor(manager, clock=clock)
    monitor.add_server("archon", URL, "Archon")

    first, second = await asyncio.gather(monitor.check_server("archon"), monitor.check_server("archon"))

    assert first is not None
    assert second is None
    assert len(manager.health_calls) == 1
    assert len(monitor.get_health_history("archon")) == 1


async def test_reregistered_server_ignores_earlier_probe(clock):
    """A probe started before remove/add neither blocks nor leaks into the new registration"""
    manager = FakeConnectionManager(clock=clock, delay=0.1, health={URL: [HealthStatus.UNHEALTHY]})
    monitor = HealthMonitor(manager, clock=clock)
    monitor.add_server("archon", URL, "Archon")

    earlier = asyncio.ensure_future(monitor.check_server("archon"))
    await asyncio.sleep(0.02)
    monitor.remove_server("archon")
    monitor.add_server("archon", URL, "Archon")

    fresh = await monitor.check_server("archon")

    assert fresh is not None
    assert (await earlier).server_id == "archon"
    assert monitor.get_health_history("archon") == [fresh]
    assert monitor.get_server_status("archon").last_check == fresh.timestamp
    assert len(manager.health_calls) == 2
    assert monitor.get_active_alerts() == []


async def test_probe_result_stamped_with_monitor_clock(clock):
    """History uses the monitor's time base, not the probe's"""
    manager = FakeConnectionManager(delay=0)
    monitor = HealthMonitor(manager, clock=clock)
    monitor.add_server("archon", URL, "Archon")

    check = await monitor.check_server("archon")

    assert check.timestamp == clock.now
    assert monitor.get_server_status("archon").last_check == clock.now
    assert monitor.calculate_metrics("archon", "1h").total_checks == 1


async def test_run_checks_parallel_and_enabled_only(clock):
    manager = FakeConnectionManager(clock=clock, delay=0.1)
    monitor = HealthMonitor(manager, clock=clock)
    monitor.add_server("a", "https://localhost:8051", "A")
    monitor.add_server("b", "https://localhost:8052", "B")
    monitor.add_server("c", "https://localhost:8053", "C")
    monitor.add_server("d", "https://localhost:8054", "D", enabled=False)

    start = time.monotonic()
    checks = await monitor.run_checks()
    elapsed = time.monotonic() - start

    assert sorted(check.server_id for check in checks) == ["a", "b", "c"]
    assert manager.max_in_flight == 3
    assert elapsed < 0.25
    assert monitor.get_server_status("d").status == HealthStatus.UNKNOWN


async def test_probe_timeout_records_unhealthy(clock, monkeypatch):
    """A probe overrunning its timeout is recorded as unhealthy at the timeout"""
    monkeypatch.setattr(health_monitor_module, "PROBE_GRACE_PERIOD", 0.01)
    manager = FakeConnectionManager(clock=clock, delay=1)
    monitor = HealthMonitor(manager, MonitorConfig(timeout=0.05), clock=clock)
    monitor.add_server("archon", URL, "Archon")

    check = await monitor.check_server("archon")

    assert check.status == HealthStatus.UNHEALTHY
    assert check.response_time == pytest.approx(50)
    assert check.details.connection_time == pytest.approx(50)
    assert "timed out" in check.error
    assert check.timestamp == clock.now


async def test_probe_exception_records_unhealthy(clock):
    manager = FakeConnectionManager(clock=clock, delay=0)

    async def broken_health_check(url, timeout=None):
        raise RuntimeError("probe crashed")

    manager.health_check = broken_health_check
    monitor = HealthMonitor(manager, clock=clock)
    monitor.add_server("archon", URL, "Archon")

    check = await monitor.check_server("archon")

    assert check.status == HealthStatus.UNHEALTHY
    assert check.error == "probe crashed"
    assert monitor.get_server_status("archon").status == HealthStatus.UNHEALTHY


async def test_start_and_stop_schedule(clock):
    manager = FakeConnectionManager(clock=clock, delay=0)
    monitor = HealthMonitor(manager, clock=clock)
    monitor.add_server("archon", URL, "Archon")

    await monitor.start(MonitorOptions(interval=0.05, timeout=1))
    assert monitor.is_running
    await asyncio.sleep(0.18)
    await monitor.stop()

    assert not monitor.is_running
    calls = len(manager.health_calls)
    assert calls >= 2

    await asyncio.sleep(0.1)
    assert len(manager.health_calls) == calls


async def test_start_applies_options(clock):
    manager = FakeConnectionManager(clock=clock, delay=0)
    monitor = HealthMonitor(manager, clock=clock)
    monitor.add_server("archon", URL, "Archon")

    await monitor.start(MonitorOptions(
        interval=60, timeout=2, retention_days=7,
        alert_thresholds=AlertThresholds(response_time=50, consecutive_failures=1)
    ))
    await monitor.stop()

    assert monitor._history.retention_days == 7
    # The immediate first tick ran with the new thresholds
    assert manager.health_calls[0] == (URL, 2)
    assert [alert.type for alert in monitor.get_active_alerts()] == [AlertType.RESPONSE_TIME]


async def test_start_rejects_invalid_options(monitor):
    with pytest.raises(ConfigurationError):
        await monitor.start(MonitorOptions(interval=0))
    assert not monitor.is_running


async def test_single_server_start_and_stop(monitor):
    """start/stop with a server id toggle that server without touching the schedule"""
    await monitor.stop("archon")
    assert not monitor.get_server_status("archon").enabled
    assert await monitor.run_checks() == []

    await monitor.start(MonitorOptions(server_id="archon"))
    assert monitor.get_server_status("archon").enabled
    assert not monitor.is_running


async def test_monitoring_summary(monitor, clock):
    monitor.add_server("serena", "https://localhost:8053", "Serena")
    monitor.add_server("jules", "https://localhost:8055", "Jules", enabled=False)

    for _ in range(3):
        await monitor.record_check(make_check("serena", clock.advance(minutes=1), status=HealthStatus.UNHEALTHY,
                                              response_time=6000))
    await monitor.record_check(make_check("archon", clock.advance(minutes=1)))

    summary = monitor.get_monitoring_summary()

    assert summary.total_servers == 3
    assert summary.active_servers == 2
    assert summary.healthy_servers == 1
    assert summary.unhealthy_servers == 1
    assert summary.degraded_servers == 0
    assert summary.total_alerts == 2
    assert summary.critical_alerts == 1
    assert summary.is_running is False
    assert summary.to_dict()["total_servers"] == 3


async def test_check_for_unregistered_server_is_discarded(monitor, clock):
    assert await monitor.record_check(make_check("ghost", clock())) == []
    assert monitor.evaluate_alerts("ghost", make_check("ghost", clock())) == []
