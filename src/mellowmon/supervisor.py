"""
Browser lifecycle supervisor.

Every mutation of the browser (start, close, navigate, scheduled
restart) runs under one exclusive, non-queuing lock. A request that
arrives while another operation is in flight is rejected and dropped,
never deferred.
"""

import random
import threading
import time
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Iterator, Optional, Sequence

from .daemon_logging import BaseDaemonLogger
from .errors import SupervisorBusyError
from .monitor_core import is_restart_due
from .monitor_state import RestartSchedule
from .protocols import ProcessController
from .settings import DAEMON, DaemonSettings


class BrowserSupervisor:
    """Keeps the browser alive and serializes its lifecycle operations."""

    def __init__(
        self,
        controller: ProcessController,
        candidate_urls: Sequence[str],
        log: BaseDaemonLogger,
        schedule: Optional[RestartSchedule] = None,
        settings: DaemonSettings = DAEMON,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ):
        if not candidate_urls:
            raise ValueError("At least one candidate URL is required")
        self.controller = controller
        self.candidate_urls = list(candidate_urls)
        self.log = log
        self.schedule = schedule or RestartSchedule()
        self.settings = settings
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._lock = threading.Lock()
        self._operation: Optional[str] = None

    @property
    def is_busy(self) -> bool:
        return self._lock.locked()

    @property
    def current_operation(self) -> Optional[str]:
        return self._operation

    def random_url(self) -> str:
        return self._rng.choice(self.candidate_urls)

    @contextmanager
    def _exclusive(self, operation: str) -> Iterator[None]:
        if not self._lock.acquire(blocking=False):
            raise SupervisorBusyError(operation, self._operation)
        self._operation = operation
        self.log.debug(f"[LOCK ACQUIRED] {operation}")
        try:
            yield
        finally:
            self._operation = None
            self._lock.release()
            self.log.debug(f"[LOCK RELEASED] {operation}")

    # -----------------------------------------------------------------
    # Steps (caller holds the lock)
    # -----------------------------------------------------------------

    def _start(self, url: Optional[str]) -> None:
        self.log.browser("Starting Chrome...")
        if not self.controller.spawn():
            self.log.error("Failed to launch Chrome")
            return
        self.log.browser("Chrome started successfully")

        if not url:
            self._sleep(self.settings.post_launch_seconds)
            return

        self._sleep(self.settings.launch_settle_seconds)
        self.log.browser(f"Navigating to: {url}")
        # Best effort: a failed open is logged, never raised
        if self.controller.open_url(url):
            self.log.browser(f"Successfully navigated to: {url}")
        else:
            self.log.warn(f"Error navigating to URL: {url}")

    def _close(self) -> None:
        self.log.browser("Closing Chrome...")
        if self.controller.terminate_all():
            self.log.browser("Chrome closed successfully")
        else:
            self.log.browser("Chrome was not running or already closed")

    # -----------------------------------------------------------------
    # Public operations
    # -----------------------------------------------------------------

    def start(self, url: Optional[str] = None) -> bool:
        """Launch the browser, optionally opening url. False if busy."""
        try:
            with self._exclusive("start"):
                self._start(url)
        except SupervisorBusyError as e:
            self.log.warn(f"{e}, skipping start request")
            return False
        return True

    def close(self) -> bool:
        """Kill all browser instances. False if busy."""
        try:
            with self._exclusive("close"):
                self._close()
        except SupervisorBusyError as e:
            self.log.warn(f"{e}, skipping close request")
            return False
        return True

    def navigate(self, url: str) -> bool:
        """Close, wait for the process to exit, then start on url.

        The lock is held across the whole sequence. False if busy.
        """
        try:
            with self._exclusive("navigate"):
                self.log.browser(f"Restarting Chrome to navigate to: {url}")
                self._close()
                self._sleep(self.settings.navigate_settle_seconds)
                self._start(url)
        except SupervisorBusyError as e:
            self.log.warn(f"{e}, skipping navigation to {url}")
            return False
        return True

    def scheduled_restart(self) -> bool:
        """Close the browser and let the liveness check bring it back.

        The next liveness check is skipped once so the browser stays
        down for at least one period. False if busy.
        """
        try:
            with self._exclusive("scheduled restart"):
                self.log.section("SCHEDULED RESTART")
                self._close()
        except SupervisorBusyError as e:
            self.log.warn(f"{e}, scheduled restart skipped")
            return False
        self.schedule.skip_next_liveness = True
        self.log.info("Chrome closed for scheduled restart, it will be relaunched by the liveness check")
        return True

    def check_scheduled_restart(self, now: Optional[datetime] = None) -> bool:
        """Fire the scheduled restart if now is in the restart hour and
        today's restart has not happened yet.

        The day is claimed before the attempt, so a restart skipped because
        the supervisor was busy is not retried until tomorrow.
        """
        now = now or datetime.now()
        if not is_restart_due(now, self.schedule.restart_hour, self.schedule.last_restart_date):
            return False
        self.schedule.last_restart_date = now.date()
        return self.scheduled_restart()

    def liveness_check(self) -> bool:
        """Relaunch the browser if it is not running.

        Returns:
            True if a relaunch was started
        """
        if self.schedule.skip_next_liveness:
            self.schedule.skip_next_liveness = False
            self.log.info("Skipping liveness check after scheduled restart")
            return False

        if self.is_busy:
            self.log.debug(f"Liveness check skipped, {self._operation} in progress")
            return False

        if self.controller.is_running():
            self.log.debug("Chrome is running")
            return False

        self.log.warn("Chrome is not running, relaunching")
        return self.start(self.random_url())
