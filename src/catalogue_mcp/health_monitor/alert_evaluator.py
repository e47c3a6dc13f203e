"""Threshold alert evaluation.

Evaluation is idempotent: an alert is only created when no unresolved alert
of the same type exists for the server, and an open alert is resolved as
soon as its triggering condition clears.
"""

import logging
import uuid
from typing import List, Optional, Sequence

from ..config import AlertThresholds
from ..health_models import HealthCheck
from .monitor_types import AlertSeverity, AlertType, HealthAlert

logger = logging.getLogger(__name__)

# response time above threshold x factor is critical
CRITICAL_RESPONSE_TIME_FACTOR = 2

_ID_PREFIXES = {
    AlertType.RESPONSE_TIME: "rt",
    AlertType.CONSECUTIVE_FAILURES: "cf",
}


def find_open_alert(alerts: Sequence[HealthAlert], alert_type: AlertType) -> Optional[HealthAlert]:
    for alert in alerts:
        if alert.type == alert_type and not alert.resolved:
            return alert
    return None


class AlertEvaluator:
    """Creates and resolves response-time and consecutive-failure alerts."""

    def __init__(self, thresholds: Optional[AlertThresholds] = None):
        self.thresholds = thresholds or AlertThresholds()

    def evaluate(
        self,
        server_id: str,
        check: HealthCheck,
        recent_checks: Sequence[HealthCheck],
        alerts: List[HealthAlert]
    ) -> List[HealthAlert]:
        """Evaluate both alert rules against the latest check.

        Args:
            server_id: Monitored server id
            check: The check that was just recorded
            recent_checks: Newest history entries, the current check included
            alerts: The server's alert list, mutated in place

        Returns:
            Alerts created or resolved by this evaluation
        """
        changed: List[HealthAlert] = []

        alert = self._evaluate_response_time(server_id, check, alerts)
        if alert is not None:
            changed.append(alert)

        alert = self._evaluate_consecutive_failures(server_id, check, recent_checks, alerts)
        if alert is not None:
            changed.append(alert)

        return changed

    def _evaluate_response_time(
        self,
        server_id: str,
        check: HealthCheck,
        alerts: List[HealthAlert]
    ) -> Optional[HealthAlert]:
        threshold = self.thresholds.response_time
        open_alert = find_open_alert(alerts, AlertType.RESPONSE_TIME)

        if check.response_time > threshold:
            if open_alert is not None:
                return None
            severity = (AlertSeverity.CRITICAL
                        if check.response_time > threshold * CRITICAL_RESPONSE_TIME_FACTOR
                        else AlertSeverity.WARNING)
            alert = self._create_alert(
                server_id, check, AlertType.RESPONSE_TIME, severity,
                f"High response time: {check.response_time:.0f}ms (threshold: {threshold:.0f}ms)"
            )
            alerts.append(alert)
            return alert

        if open_alert is not None:
            open_alert.resolve(check.timestamp)
            logger.info(f"{server_id}: response time alert resolved")
            return open_alert
        return None

    def _evaluate_consecutive_failures(
        self,
        server_id: str,
        check: HealthCheck,
        recent_checks: Sequence[HealthCheck],
        alerts: List[HealthAlert]
    ) -> Optional[HealthAlert]:
        required = self.thresholds.consecutive_failures
        window = list(recent_checks)[-required:]
        all_failed = len(window) >= required and all(not c.is_healthy for c in window)
        open_alert = find_open_alert(alerts, AlertType.CONSECUTIVE_FAILURES)

        if all_failed:
            if open_alert is not None:
                return None
            alert = self._create_alert(
                server_id, check, AlertType.CONSECUTIVE_FAILURES, AlertSeverity.CRITICAL,
                f"{required} consecutive failures detected"
            )
            alerts.append(alert)
            return alert

        if check.is_healthy and open_alert is not None:
            open_alert.resolve(check.timestamp)
            logger.info(f"{server_id}: consecutive failures alert resolved")
            return open_alert
        return None

    def _create_alert(
        self,
        server_id: str,
        check: HealthCheck,
        alert_type: AlertType,
        severity: AlertSeverity,
        message: str
    ) -> HealthAlert:
        alert = HealthAlert(
            id=f"{server_id}-{_ID_PREFIXES[alert_type]}-{uuid.uuid4().hex[:8]}",
            server_id=server_id,
            type=alert_type,
            severity=severity,
            message=message,
            triggered_at=check.timestamp
        )
        if severity == AlertSeverity.CRITICAL:
            logger.error(f"{server_id}: {message}")
        else:
            logger.warning(f"{server_id}: {message}")
        return alert
