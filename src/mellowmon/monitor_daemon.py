"""
Monitor Daemon - the browser telemetry relay.

Owns every component and drives them from one timer loop:
- ingestion server (POST /cache, GET /status) on its own thread
- browser liveness + scheduled restart (every minute)
- segment upload (every 7 minutes)
- freshness query against the collector (every 10 minutes)
- public IP change detection (every 30 minutes)
- speed test (every 6 hours)
- browser extension inventory (daily)

Each periodic job runs on a background thread so a slow upload or speed
test never delays the other timers. A job whose previous run is still
going is skipped for that period.

Usage:
    mellowmon run <USER_ID> [RESTART_HOUR] [SERVER_PORT]
    python -m mellowmon.monitor_daemon <USER_ID> [RESTART_HOUR] [SERVER_PORT]
"""

import os
import random
import signal
import sys
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from . import config
from .collector_client import CollectorClient
from .daemon_logging import BaseDaemonLogger, create_monitor_logger
from .diagnostics import ExtensionInventory, NetworkSampler, default_extensions_dir
from .freshness import FreshnessReconciler
from .implementations import RealConnectivityProbe, select_process_controller
from .ingest_server import IngestServer, start_ingest_server, stop_ingest_server
from .monitor_core import is_job_due
from .monitor_state import MonitorDaemonState, PublicIPState, RestartSchedule
from .pid_utils import acquire_daemon_lock, remove_pid_file
from .protocols import CollectorInterface, ConnectivityProbe, ProcessController
from .segment_log import SegmentLog
from .settings import DaemonSettings, PATHS
from .supervisor import BrowserSupervisor
from .uploader import Uploader


USAGE = """Usage: mellowmon run <USER_ID> [RESTART_HOUR] [SERVER_PORT]
Example: mellowmon run 1234 2 9080   (restarts at 2am, server on port 9080)
Example: mellowmon run 1234 14 3000  (restarts at 2pm, server on port 3000)
The user id may also be set as `user_id` in the config file."""


@dataclass
class PeriodicJob:
    """One timer of the daemon loop."""

    name: str
    interval: float
    action: Callable[[], Any]
    run_at_startup: bool = True
    startup_action: Optional[Callable[[], Any]] = None
    last_run: Optional[datetime] = None
    thread: Optional[threading.Thread] = None

    def is_running(self) -> bool:
        return self.thread is not None and self.thread.is_alive()


def format_restart_hour(hour: int) -> str:
    return f"{hour}:00 ({'PM' if hour >= 12 else 'AM'})"


class MonitorDaemon:
    """Wires the components together and runs the timer loop."""

    def __init__(
        self,
        user_id: str,
        restart_hour: Optional[int] = None,
        server_port: Optional[int] = None,
        *,
        settings: Optional[DaemonSettings] = None,
        controller: Optional[ProcessController] = None,
        probe: Optional[ConnectivityProbe] = None,
        collector: Optional[CollectorInterface] = None,
        candidate_urls: Optional[Sequence[str]] = None,
        cache_dir: Optional[Path] = None,
        extensions_dir: Optional[Path] = None,
        state_path: Optional[Path] = None,
        pid_path: Optional[Path] = None,
        host: Optional[str] = None,
        log: Optional[BaseDaemonLogger] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        if not user_id:
            raise ValueError("user_id is required")

        self.settings = settings or config.get_daemon_settings()
        self.user_id = str(user_id)
        self.restart_hour = (
            restart_hour if restart_hour is not None else config.get_restart_hour()
        )
        self.server_port = (
            server_port if server_port is not None else config.get_server_port()
        )
        self.host = host or self.settings.default_server_host
        self.cache_dir = Path(cache_dir) if cache_dir else PATHS.cache_dir
        self.state_path = state_path or PATHS.state_file
        self.pid_path = pid_path or PATHS.pid_file
        self.log = log or create_monitor_logger()
        self.clock = clock
        rng = rng or random.Random()

        browser_config = config.get_browser_config()
        if controller is None:
            controller = select_process_controller(
                binary=browser_config["binary"],
                process_name=browser_config["process_name"],
            )
        if probe is None:
            probe = RealConnectivityProbe()
        if collector is None:
            collector = CollectorClient.from_config(config.get_collector_config(), rng=rng)
        if candidate_urls is None:
            candidate_urls = config.get_candidate_urls()
        if extensions_dir is None:
            configured = browser_config["extensions_dir"]
            extensions_dir = Path(configured).expanduser() if configured else default_extensions_dir()

        # Shared state, one instance each, handed to the components that use it
        self.schedule = RestartSchedule(restart_hour=self.restart_hour)
        self.ip_state = PublicIPState()

        self.segment_log = SegmentLog(self.cache_dir, self.log)
        self.supervisor = BrowserSupervisor(
            controller,
            candidate_urls,
            self.log,
            schedule=self.schedule,
            settings=self.settings,
            sleep=sleep,
            rng=rng,
        )
        self.uploader = Uploader(self.segment_log, collector, self.user_id, self.log)
        self.reconciler = FreshnessReconciler(
            collector,
            self.supervisor,
            self.user_id,
            self.log,
            threshold_ms=self.settings.freshness_threshold_ms,
        )
        self.sampler = NetworkSampler(probe, self.segment_log, self.log, ip_state=self.ip_state)
        self.inventory = ExtensionInventory(self.segment_log, self.log, extensions_dir)

        self.jobs: List[PeriodicJob] = self._build_jobs()

        self.state = MonitorDaemonState(
            pid=os.getpid(),
            user_id=self.user_id,
            server_port=self.server_port,
            cache_dir=str(self.cache_dir),
            restart_hour=self.restart_hour,
        )
        self.server: Optional[IngestServer] = None
        self._stop_event = threading.Event()

    def _build_jobs(self) -> List[PeriodicJob]:
        s = self.settings
        return [
            PeriodicJob(
                "liveness",
                s.liveness_interval,
                self._liveness_job,
                # The startup check never fires the scheduled restart
                startup_action=self.supervisor.liveness_check,
            ),
            PeriodicJob("upload", s.upload_interval, self.uploader.run_cycle, run_at_startup=False),
            PeriodicJob("freshness", s.freshness_interval, self.reconciler.check),
            PeriodicJob("ip-check", s.ip_check_interval, self.sampler.check_ip_change),
            PeriodicJob(
                "speedtest",
                s.speedtest_interval,
                lambda: self.sampler.run_speedtest("scheduled"),
                startup_action=lambda: self.sampler.run_speedtest("startup"),
            ),
            PeriodicJob("extensions", s.inventory_interval, self.inventory.record),
        ]

    def job(self, name: str) -> PeriodicJob:
        for job in self.jobs:
            if job.name == name:
                return job
        raise KeyError(name)

    def _liveness_job(self) -> None:
        # Scheduled restart first, so its skip flag applies to this very check
        self.supervisor.check_scheduled_restart(self.clock())
        self.supervisor.liveness_check()

    # -----------------------------------------------------------------
    # Scheduling
    # -----------------------------------------------------------------

    def _run_job(self, job: PeriodicJob, action: Callable[[], Any]) -> None:
        try:
            action()
        except Exception as e:
            # A failing job must never take the daemon down
            self.log.error(f"{job.name} job failed: {type(e).__name__}: {e}")

    def _dispatch(self, job: PeriodicJob, action: Callable[[], Any]) -> threading.Thread:
        thread = threading.Thread(
            target=self._run_job,
            args=(job, action),
            name=f"job-{job.name}",
            daemon=True,
        )
        job.thread = thread
        thread.start()
        return thread

    def start_jobs(self, now: Optional[datetime] = None) -> List[str]:
        """Fire the startup run of every job that has one.

        Every job's timer starts counting from now.
        """
        now = now or self.clock()
        self.log.info("Performing initial checks...")
        started = []
        for job in self.jobs:
            job.last_run = now
            if not job.run_at_startup:
                continue
            self._dispatch(job, job.startup_action or job.action)
            started.append(job.name)
        return started

    def tick(self, now: Optional[datetime] = None) -> List[str]:
        """Dispatch every due job. Returns the names of jobs started."""
        now = now or self.clock()
        started = []
        for job in self.jobs:
            if not is_job_due(job.last_run, now, job.interval):
                continue
            job.last_run = now
            if job.is_running():
                self.log.warn(f"Skipping {job.name}: previous run still in progress")
                continue
            self._dispatch(job, job.action)
            started.append(job.name)

        self.state.loop_count += 1
        if "liveness" in started or self.state.loop_count == 1:
            self._publish_state(now)
        return started

    def wait_for_jobs(self, timeout: Optional[float] = None) -> None:
        """Join every job thread currently running."""
        for job in self.jobs:
            if job.thread is not None:
                job.thread.join(timeout)

    # -----------------------------------------------------------------
    # Status
    # -----------------------------------------------------------------

    def status_payload(self) -> Dict[str, Any]:
        """Body of GET /status."""
        return {
            "status": "ok",
            "userId": self.user_id,
            "currentJsonVersion": self.segment_log.current_version,
            "uploadInProgress": self.segment_log.upload_in_progress,
            "chromeOperationInProgress": self.supervisor.is_busy,
            "cacheDir": str(self.cache_dir),
        }

    def _publish_state(self, now: Optional[datetime] = None) -> None:
        now = now or self.clock()
        self.state.last_loop_time = now.isoformat()
        self.state.current_version = self.segment_log.current_version
        self.state.upload_in_progress = self.segment_log.upload_in_progress
        self.state.browser_operation_in_progress = self.supervisor.is_busy
        self.state.last_restart_date = (
            self.schedule.last_restart_date.isoformat()
            if self.schedule.last_restart_date else None
        )
        self.state.last_public_ip = self.ip_state.last_ip
        if self.uploader.last_result is not None:
            self.state.last_upload = self.uploader.last_result.to_dict()
        try:
            self.state.save(self.state_path)
        except OSError as e:
            self.log.warn(f"Could not save daemon state: {e}")

    # -----------------------------------------------------------------
    # Main loop
    # -----------------------------------------------------------------

    def stop(self) -> None:
        self._stop_event.set()

    def run(self) -> None:
        """Main daemon loop."""
        acquired, existing_pid = acquire_daemon_lock(self.pid_path)
        if not acquired:
            if existing_pid:
                self.log.error(f"Monitor daemon already running (PID {existing_pid})")
            else:
                self.log.error("Could not acquire daemon lock (another daemon may be starting)")
            sys.exit(1)

        self.log.section("Mellowmon Monitor")
        self.log.info(f"PID: {os.getpid()}")
        self.log.info(f"Starting Chrome monitor with USER_ID: {self.user_id}")
        self.log.info(f"Scheduled restart time: {format_restart_hour(self.restart_hour)}")
        self.log.info(f"Cache server port: {self.server_port}")
        self.log.info(f"Cache directory: {self.cache_dir}")

        def handle_shutdown(signum, frame):
            self.log.info("Shutdown signal received")
            self.stop()

        signal.signal(signal.SIGTERM, handle_shutdown)
        signal.signal(signal.SIGINT, handle_shutdown)

        try:
            self.server, _ = start_ingest_server(
                self.segment_log,
                self.status_payload,
                self.log,
                host=self.host,
                port=self.server_port,
            )
        except OSError as e:
            self.log.error(f"Cannot listen on port {self.server_port}: {e}")
            remove_pid_file(self.pid_path)
            sys.exit(1)

        self.state.started_at = self.clock().isoformat()
        self.state.status = "active"
        self._publish_state()

        try:
            self.start_jobs()
            self.log.success("Monitor started successfully")
            self.log.info("Press Ctrl+C to stop")
            while not self._stop_event.is_set():
                self.tick()
                self._stop_event.wait(self.settings.tick_seconds)
        except Exception as e:
            self.log.error(f"Monitor daemon error: {e}")
            raise
        finally:
            self.log.info("Monitor daemon shutting down")
            stop_ingest_server(self.server)
            self.state.status = "stopped"
            self._publish_state()
            remove_pid_file(self.pid_path)


def resolve_user_id(user_id: Optional[str]) -> Optional[str]:
    """Command-line user id, falling back to the config file."""
    if user_id:
        return str(user_id)
    return config.get_user_id()


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entrypoint for the monitor daemon."""
    import argparse

    parser = argparse.ArgumentParser(description="Mellowmon Monitor Daemon")
    parser.add_argument("user_id", nargs="?", help="User identifier")
    parser.add_argument(
        "restart_hour",
        nargs="?",
        type=int,
        help="Hour of the daily browser restart, 0-23 (default: 2)",
    )
    parser.add_argument(
        "server_port",
        nargs="?",
        type=int,
        help="Port of the local cache server (default: 9080)",
    )
    args = parser.parse_args(argv)

    user_id = resolve_user_id(args.user_id)
    if not user_id:
        print("Error: USER_ID is required", file=sys.stderr)
        print(USAGE, file=sys.stderr)
        return 1
    if args.restart_hour is not None and not 0 <= args.restart_hour <= 23:
        parser.error("RESTART_HOUR must be between 0 and 23")

    daemon = MonitorDaemon(user_id, restart_hour=args.restart_hour, server_port=args.server_port)
    daemon.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
