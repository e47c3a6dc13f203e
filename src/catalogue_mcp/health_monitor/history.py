"""Per-server health check history with a time-based retention window."""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from ..health_models import HealthCheck

logger = logging.getLogger(__name__)


class HealthHistory:
    """Ordered HealthCheck lists keyed by server id.

    Retention is measured by timestamp, not by count: after a prune no entry
    at or before ``now - retention_days`` survives.
    """

    def __init__(self, retention_days: int = 30):
        self.retention_days = retention_days
        self._checks: Dict[str, List[HealthCheck]] = {}

    def __contains__(self, server_id: str) -> bool:
        return server_id in self._checks

    def create(self, server_id: str) -> None:
        self._checks[server_id] = []

    def drop(self, server_id: str) -> None:
        self._checks.pop(server_id, None)

    def cutoff(self, now: datetime) -> datetime:
        return now - timedelta(days=self.retention_days)

    def append(self, server_id: str, check: HealthCheck, now: datetime) -> int:
        """Append a check and prune expired entries.

        Returns:
            Number of entries pruned
        """
        self._checks.setdefault(server_id, []).append(check)
        return self.prune(server_id, now)

    def prune(self, server_id: str, now: datetime) -> int:
        checks = self._checks.get(server_id)
        if not checks:
            return 0

        cutoff = self.cutoff(now)
        kept = [check for check in checks if check.timestamp > cutoff]
        pruned = len(checks) - len(kept)
        if pruned:
            self._checks[server_id] = kept
            logger.debug(f"Pruned {pruned} expired checks for {server_id}")
        return pruned

    def get(self, server_id: str, limit: Optional[int] = None) -> List[HealthCheck]:
        """Copy of the history, oldest first; with ``limit`` only the newest entries."""
        checks = self._checks.get(server_id, [])
        if limit:
            return checks[-limit:]
        return list(checks)

    def recent(self, server_id: str, count: int) -> List[HealthCheck]:
        checks = self._checks.get(server_id, [])
        return checks[-count:] if count > 0 else []

    def window(self, server_id: str, since: datetime) -> List[HealthCheck]:
        return [check for check in self._checks.get(server_id, []) if check.timestamp > since]
