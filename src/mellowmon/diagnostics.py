"""
Network and host diagnostics appended to the segment log.

NetworkSampler watches the public IP and runs speed tests, on a timer and
immediately after the IP changes. ExtensionInventory records which
browser extensions are installed.
"""

import json
import os
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from .daemon_logging import BaseDaemonLogger
from .errors import DiagnosticsError, StorageError
from .monitor_core import (
    build_extension_entry,
    latest_version_dir,
    normalize_speedtest,
    summarize_speedtest,
)
from .monitor_state import PublicIPState
from .protocols import ConnectivityProbe
from .segment_log import SegmentLog


def _now_ms() -> int:
    return int(time.time() * 1000)


class NetworkSampler:
    """Public IP watcher and speed-test runner."""

    def __init__(
        self,
        probe: ConnectivityProbe,
        segment_log: SegmentLog,
        log: BaseDaemonLogger,
        ip_state: Optional[PublicIPState] = None,
        clock_ms: Callable[[], int] = _now_ms,
    ):
        self.probe = probe
        self.segment_log = segment_log
        self.log = log
        self.ip_state = ip_state or PublicIPState()
        self._clock_ms = clock_ms
        self.last_speedtest_at: Optional[datetime] = None

    def check_ip_change(self) -> bool:
        """Compare the public IP with the last one seen.

        The first successful lookup only records a baseline. A change
        triggers an immediate speed test.

        Returns:
            True if the IP changed
        """
        try:
            info = self.probe.public_ip_info()
        except DiagnosticsError as e:
            self.log.warn(f"Error getting public IP: {e}")
            return False

        ip = info.get("ip")
        previous = self.ip_state.last_ip
        if previous is None:
            self.ip_state.last_ip = ip
            self.log.info(f"Initial public IP recorded: {ip}")
            return False
        if ip == previous:
            self.log.debug(f"Public IP unchanged: {ip}")
            return False

        self.log.warn(f"PUBLIC IP CHANGED: {previous} -> {ip}")
        self.ip_state.last_ip = ip
        self.ip_state.last_changed_at = datetime.now()
        self.run_speedtest("ip-change")
        return True

    def run_speedtest(self, reason: str = "scheduled") -> Optional[Dict[str, Any]]:
        """Run a speed test and append the normalized record.

        Returns:
            The appended record, or None if the test failed
        """
        self.log.section(f"SPEEDTEST ({reason})")
        self.last_speedtest_at = datetime.now()

        connection = self.probe.connection_type()
        self.log.info(f"Connection type detected: {connection}")

        ip_info: Optional[Dict[str, Any]]
        try:
            ip_info = self.probe.public_ip_info()
            self.log.info(
                f"Public IP: {ip_info.get('ip')} "
                f"({ip_info.get('city')}, {ip_info.get('region')}, {ip_info.get('country')})"
            )
        except DiagnosticsError as e:
            self.log.warn(f"Error getting public IP: {e}")
            ip_info = None

        try:
            flavor, raw = self.probe.speedtest()
            record = normalize_speedtest(raw, flavor, reason, connection, ip_info, self._clock_ms())
        except DiagnosticsError as e:
            self.log.error(f"Speedtest error: {e}")
            return None
        except (KeyError, TypeError, AttributeError) as e:
            self.log.error(f"Speedtest parse error: missing {e}")
            return None

        self.log.success(f"Speedtest complete - {summarize_speedtest(record)}")
        try:
            self.segment_log.append(record)
        except StorageError as e:
            self.log.error(f"Failed to store speedtest result: {e}")
            return None
        return record


def default_extensions_dir(
    platform: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Optional[Path]:
    """Extensions folder of the default Chrome profile for this OS."""
    platform = platform or sys.platform
    env = os.environ if env is None else env
    home = home or Path.home()

    if platform == "win32":
        local = env.get("LOCALAPPDATA")
        if not local:
            return None
        return Path(local) / "Google" / "Chrome" / "User Data" / "Default" / "Extensions"
    if platform == "darwin":
        return home / "Library" / "Application Support" / "Google" / "Chrome" / "Default" / "Extensions"
    return home / ".config" / "google-chrome" / "Default" / "Extensions"


class ExtensionInventory:
    """Lists installed browser extensions into the segment log."""

    def __init__(
        self,
        segment_log: SegmentLog,
        log: BaseDaemonLogger,
        extensions_dir: Optional[Path] = None,
        clock_ms: Callable[[], int] = _now_ms,
    ):
        self.segment_log = segment_log
        self.log = log
        self.extensions_dir = extensions_dir
        self._clock_ms = clock_ms

    def scan(self) -> List[Dict[str, Any]]:
        """Read the latest manifest of every installed extension."""
        root = self.extensions_dir
        if root is None or not root.is_dir():
            self.log.warn("Extensions directory not found")
            return []

        extensions = []
        for ext_dir in sorted(root.iterdir()):
            if not ext_dir.is_dir():
                continue
            versions = [p.name for p in ext_dir.iterdir() if p.is_dir()]
            latest = latest_version_dir(versions)
            if latest is None:
                continue
            manifest_path = ext_dir / latest / "manifest.json"
            if not manifest_path.exists():
                continue
            try:
                manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
            except (OSError, UnicodeDecodeError, ValueError) as e:
                self.log.warn(f"Error reading manifest for {ext_dir.name}: {e}")
                continue
            if not isinstance(manifest, dict):
                continue
            entry = build_extension_entry(ext_dir.name, manifest)
            self.log.debug(f"Found: {entry['name']} (v{entry['version']}) - ID: {ext_dir.name}")
            extensions.append(entry)
        return extensions

    def record(self) -> Optional[Dict[str, Any]]:
        """Scan and append an inventory record. None if nothing was written."""
        self.log.section("LISTING CHROME EXTENSIONS")
        try:
            extensions = self.scan()
        except OSError as e:
            self.log.error(f"Error listing extensions: {e}")
            return None
        if self.extensions_dir is None or not self.extensions_dir.is_dir():
            return None

        self.log.info(f"Total extensions found: {len(extensions)}")
        record = {
            "timestamp": self._clock_ms(),
            "type": "extensions",
            "count": len(extensions),
            "extensions": extensions,
        }
        try:
            self.segment_log.append(record)
        except StorageError as e:
            self.log.error(f"Failed to store extension inventory: {e}")
            return None
        return record
