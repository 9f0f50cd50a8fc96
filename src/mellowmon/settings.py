"""
Settings and path management for Mellowmon.

All paths hang off a single state directory (~/.mellowmon by default).
Set MELLOWMON_STATE_DIR to relocate it, e.g. for tests or when running
several monitors on one machine.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple


@dataclass(frozen=True)
class DaemonSettings:
    """Timer periods and delays for the monitor daemon (seconds)."""

    liveness_interval: int = 60
    upload_interval: int = 7 * 60
    freshness_interval: int = 10 * 60
    ip_check_interval: int = 30 * 60
    speedtest_interval: int = 6 * 60 * 60
    inventory_interval: int = 24 * 60 * 60

    # Main loop granularity
    tick_seconds: float = 1.0

    # Browser settle delays
    launch_settle_seconds: float = 3.0
    navigate_settle_seconds: float = 5.0
    post_launch_seconds: float = 0.5

    # Staleness tolerated before forcing navigation (ms)
    freshness_threshold_ms: int = 10 * 60 * 1000

    default_restart_hour: int = 2
    default_server_port: int = 9080
    default_server_host: str = "127.0.0.1"


@dataclass(frozen=True)
class CollectorSettings:
    """Remote collector address."""

    host: str = "mobile.batterylab.dev"
    ports: Tuple[int, ...] = (9085, 9086, 9087)
    scheme: str = "https"
    timeout: float = 30.0
    upload_path: str = "/uploadCache"
    query_path: str = "/mellowquery"


DEFAULT_WEBPAGES: Tuple[str, ...] = (
    "https://example.com/",
    "https://www.youtube.com",
    "https://www.wikipedia.org",
    "https://www.github.com",
)

DAEMON = DaemonSettings()
COLLECTOR = CollectorSettings()


@dataclass
class _Paths:
    """Resolves state paths lazily so MELLOWMON_STATE_DIR is honoured at call time."""

    log_name: str = "monitor.log"
    pid_name: str = "monitor.pid"
    state_name: str = "monitor_state.json"
    config_name: str = "config.yaml"
    cache_name: str = "cache_data"

    @property
    def state_dir(self) -> Path:
        return get_state_dir()

    @property
    def cache_dir(self) -> Path:
        return self.state_dir / self.cache_name

    @property
    def log_file(self) -> Path:
        return self.state_dir / self.log_name

    @property
    def pid_file(self) -> Path:
        return self.state_dir / self.pid_name

    @property
    def state_file(self) -> Path:
        return self.state_dir / self.state_name

    @property
    def config_file(self) -> Path:
        return self.state_dir / self.config_name


PATHS = _Paths()


def get_state_dir() -> Path:
    """Return the state directory, respecting MELLOWMON_STATE_DIR."""
    override = os.environ.get("MELLOWMON_STATE_DIR")
    if override:
        return Path(override)
    return Path.home() / ".mellowmon"


def get_cache_dir() -> Path:
    return PATHS.cache_dir


def get_log_path() -> Path:
    return PATHS.log_file


def get_pid_path() -> Path:
    return PATHS.pid_file


def get_state_path() -> Path:
    return PATHS.state_file


def ensure_state_dir() -> Path:
    """Create the state directory if needed and return it."""
    state_dir = get_state_dir()
    state_dir.mkdir(parents=True, exist_ok=True)
    return state_dir
