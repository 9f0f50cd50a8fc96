"""
Shared monitor state.

The small mutable records that components coordinate through live here
instead of in module globals. The daemon owns one instance of each and
hands them to the components that need them.

MonitorDaemonState is the published snapshot the CLI reads when the
daemon's HTTP endpoint is not reachable.
"""

import json
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Optional

from .settings import PATHS


@dataclass
class UploadState:
    """Whether an upload cycle is running and the version it started from."""

    active: bool = False
    version: Optional[int] = None


@dataclass
class RestartSchedule:
    """Guarantees at most one scheduled restart per calendar day."""

    restart_hour: int = 2
    last_restart_date: Optional[date] = None
    # One-shot: the liveness check right after a scheduled restart skips itself
    skip_next_liveness: bool = False


@dataclass
class PublicIPState:
    last_ip: Optional[str] = None
    last_changed_at: Optional[datetime] = None


@dataclass
class MonitorDaemonState:
    """Snapshot of the daemon published to disk for the CLI."""

    pid: int = 0
    user_id: str = ""
    status: str = "starting"  # starting, active, stopped
    started_at: Optional[str] = None
    last_loop_time: Optional[str] = None
    loop_count: int = 0
    server_port: int = 0
    cache_dir: str = ""
    current_version: int = 1
    upload_in_progress: bool = False
    browser_operation_in_progress: bool = False
    restart_hour: int = 2
    last_restart_date: Optional[str] = None
    last_public_ip: Optional[str] = None
    last_upload: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "pid": self.pid,
            "user_id": self.user_id,
            "status": self.status,
            "started_at": self.started_at,
            "last_loop_time": self.last_loop_time,
            "loop_count": self.loop_count,
            "server_port": self.server_port,
            "cache_dir": self.cache_dir,
            "current_version": self.current_version,
            "upload_in_progress": self.upload_in_progress,
            "browser_operation_in_progress": self.browser_operation_in_progress,
            "restart_hour": self.restart_hour,
            "last_restart_date": self.last_restart_date,
            "last_public_ip": self.last_public_ip,
            "last_upload": self.last_upload,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MonitorDaemonState":
        return cls(
            pid=data.get("pid", 0),
            user_id=data.get("user_id", ""),
            status=data.get("status", "unknown"),
            started_at=data.get("started_at"),
            last_loop_time=data.get("last_loop_time"),
            loop_count=data.get("loop_count", 0),
            server_port=data.get("server_port", 0),
            cache_dir=data.get("cache_dir", ""),
            current_version=data.get("current_version", 1),
            upload_in_progress=data.get("upload_in_progress", False),
            browser_operation_in_progress=data.get("browser_operation_in_progress", False),
            restart_hour=data.get("restart_hour", 2),
            last_restart_date=data.get("last_restart_date"),
            last_public_ip=data.get("last_public_ip"),
            last_upload=data.get("last_upload") or {},
        )

    def save(self, state_file: Optional[Path] = None) -> None:
        """Save state to file for the CLI to read.

        Args:
            state_file: Optional path override (for testing)
        """
        path = state_file or PATHS.state_file
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = path.with_suffix(".tmp")
        with open(temp_path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)
        temp_path.replace(path)

    @classmethod
    def load(cls, state_file: Optional[Path] = None) -> Optional["MonitorDaemonState"]:
        """Load state from file.

        Returns:
            MonitorDaemonState if file exists and is valid, None otherwise
        """
        path = state_file or PATHS.state_file
        if not path.exists():
            return None
        try:
            with open(path) as f:
                data = json.load(f)
            if not isinstance(data, dict):
                return None
            return cls.from_dict(data)
        except (json.JSONDecodeError, OSError, ValueError):
            return None


def get_monitor_daemon_state() -> Optional[MonitorDaemonState]:
    """Convenience accessor for the CLI."""
    return MonitorDaemonState.load()
