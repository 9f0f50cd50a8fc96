"""
Freshness reconciliation.

Asks the collector for the newest timestamp it holds for this user. If
that is older than the threshold, the browser agent has probably stopped
reporting, so the browser is restarted on a random candidate page.
"""

import time
from typing import Callable, Optional

from .daemon_logging import BaseDaemonLogger
from .errors import FreshnessQueryError
from .monitor_core import is_stale, staleness_ms
from .protocols import CollectorInterface
from .supervisor import BrowserSupervisor


def _now_ms() -> int:
    return int(time.time() * 1000)


class FreshnessReconciler:
    """Compares remote freshness with local time and nudges the browser."""

    def __init__(
        self,
        collector: CollectorInterface,
        supervisor: BrowserSupervisor,
        user_id: str,
        log: BaseDaemonLogger,
        threshold_ms: int,
        clock_ms: Callable[[], int] = _now_ms,
    ):
        self.collector = collector
        self.supervisor = supervisor
        self.user_id = user_id
        self.log = log
        self.threshold_ms = threshold_ms
        self._clock_ms = clock_ms
        self.last_staleness_ms: Optional[int] = None

    def check(self) -> bool:
        """Run one freshness query.

        Returns:
            True if a navigation was issued
        """
        try:
            remote_ms = self.collector.query_latest_timestamp(self.user_id)
        except FreshnessQueryError as e:
            self.log.warn(str(e))
            return False

        now = self._clock_ms()
        diff = staleness_ms(now, remote_ms)
        self.last_staleness_ms = diff
        self.log.info(f"Server query successful - Current time: {now}, Received time: {remote_ms}")
        self.log.info(f"Time difference: {diff // 1000} seconds ({diff // 60000} minutes)")

        if not is_stale(now, remote_ms, self.threshold_ms):
            self.log.info("Time difference is within threshold, no action needed")
            return False

        self.log.warn(f"Time difference exceeds threshold ({self.threshold_ms // 1000} seconds)")
        url = self.supervisor.random_url()
        self.log.info(f"Selected random page: {url}")
        return self.supervisor.navigate(url)
