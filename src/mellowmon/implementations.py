"""
Real implementations of protocol interfaces.

These are production implementations that shell out to the browser, the
OS process tools and the speed-test CLI, and make real HTTPS requests.
"""

import json
import re
import socket
import subprocess
import sys
import urllib.error
import urllib.request
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .errors import DiagnosticsError


def _run(cmd: List[str], timeout: Optional[float] = 30) -> Optional[subprocess.CompletedProcess]:
    """Run a command, returning None if it could not be executed."""
    try:
        return subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except (OSError, subprocess.SubprocessError):
        return None


def _detach_kwargs(platform: str) -> Dict[str, Any]:
    """Popen arguments that let the child outlive the daemon."""
    if platform == "win32":
        flags = getattr(subprocess, "DETACHED_PROCESS", 0x00000008)
        flags |= getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0x00000200)
        return {"creationflags": flags}
    return {"start_new_session": True}


class RealProcessController:
    """Production implementation of ProcessController.

    Subclasses supply the per-OS commands. The browser is always spawned
    detached with its output discarded.
    """

    platform = ""
    default_binary = ""
    default_process_name = ""

    def __init__(self, binary: Optional[str] = None, process_name: Optional[str] = None):
        self.binary = binary or self.default_binary
        self.process_name = process_name or self.default_process_name

    def kill_command(self) -> List[str]:
        raise NotImplementedError

    def list_command(self) -> List[str]:
        raise NotImplementedError

    def open_command(self, url: str) -> List[str]:
        raise NotImplementedError

    def spawn(self) -> bool:
        try:
            subprocess.Popen(
                [self.binary, "--new-window"],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                **_detach_kwargs(self.platform),
            )
        except (OSError, subprocess.SubprocessError):
            return False
        return True

    def open_url(self, url: str) -> bool:
        result = _run(self.open_command(url))
        return result is not None and result.returncode == 0

    def terminate_all(self) -> bool:
        result = _run(self.kill_command())
        return result is not None and result.returncode == 0

    def is_running(self) -> bool:
        result = _run(self.list_command(), timeout=10)
        if result is None or result.returncode != 0:
            return False
        return bool(result.stdout.strip())


class WindowsProcessController(RealProcessController):
    platform = "win32"
    default_binary = r"C:\Program Files\Google\Chrome\Application\chrome.exe"
    default_process_name = "chrome.exe"

    def kill_command(self) -> List[str]:
        return ["taskkill", "/F", "/IM", self.process_name]

    def list_command(self) -> List[str]:
        return ["tasklist", "/FI", f"IMAGENAME eq {self.process_name}", "/NH"]

    def open_command(self, url: str) -> List[str]:
        # Empty string is the window title argument of `start`
        return ["cmd", "/c", "start", "", "chrome", url]

    def is_running(self) -> bool:
        # tasklist exits 0 with an "INFO: No tasks" line when nothing matches
        result = _run(self.list_command(), timeout=10)
        if result is None or result.returncode != 0:
            return False
        return self.process_name.lower() in result.stdout.lower()


class MacProcessController(RealProcessController):
    platform = "darwin"
    default_binary = "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome"
    default_process_name = "Google Chrome"

    def kill_command(self) -> List[str]:
        return ["pkill", "-9", self.process_name]

    def list_command(self) -> List[str]:
        return ["pgrep", "-i", self.process_name]

    def open_command(self, url: str) -> List[str]:
        return ["open", "-a", self.process_name, url]


class LinuxProcessController(RealProcessController):
    platform = "linux"
    default_binary = "google-chrome"
    default_process_name = "chrome"

    def kill_command(self) -> List[str]:
        return ["pkill", "-9", self.process_name]

    def list_command(self) -> List[str]:
        return ["pgrep", "-i", self.process_name]

    def open_command(self, url: str) -> List[str]:
        return [self.binary, url]


def select_process_controller(
    platform: Optional[str] = None,
    binary: Optional[str] = None,
    process_name: Optional[str] = None,
) -> RealProcessController:
    """Pick the controller for the host OS (sys.platform naming)."""
    platform = platform or sys.platform
    if platform == "win32":
        cls = WindowsProcessController
    elif platform == "darwin":
        cls = MacProcessController
    else:
        cls = LinuxProcessController
    return cls(binary=binary, process_name=process_name)


class RealConnectivityProbe:
    """Production implementation of ConnectivityProbe."""

    IP_INFO_URL = "https://ipinfo.io/json"

    def __init__(
        self,
        platform: Optional[str] = None,
        ip_info_url: Optional[str] = None,
        timeout: float = 10.0,
        speedtest_timeout: float = 300.0,
        sys_class_net: Path = Path("/sys/class/net"),
    ):
        self.platform = platform or sys.platform
        self.ip_info_url = ip_info_url or self.IP_INFO_URL
        self.timeout = timeout
        self.speedtest_timeout = speedtest_timeout
        self.sys_class_net = sys_class_net

    def public_ip_info(self) -> Dict[str, Any]:
        req = urllib.request.Request(
            self.ip_info_url,
            headers={"Accept": "application/json"},
        )
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                info = json.loads(resp.read().decode("utf-8"))
        except (urllib.error.URLError, socket.timeout, json.JSONDecodeError, OSError) as e:
            raise DiagnosticsError(f"Public IP lookup failed: {e}") from e

        if not isinstance(info, dict) or not info.get("ip"):
            raise DiagnosticsError("Public IP lookup returned no address")
        return {
            "ip": info.get("ip"),
            "city": info.get("city"),
            "region": info.get("region"),
            "country": info.get("country"),
            "location": info.get("loc"),
            "org": info.get("org"),
        }

    def connection_type(self) -> str:
        if self.platform == "win32":
            return self._connection_type_windows()
        if self.platform == "darwin":
            return self._connection_type_mac()
        return self._connection_type_linux()

    def _connection_type_windows(self) -> str:
        result = _run(["netsh", "wlan", "show", "interfaces"], timeout=10)
        if result is not None and result.returncode == 0:
            if re.search(r"^\s*State\s*:\s*connected\s*$", result.stdout, re.MULTILINE | re.IGNORECASE):
                return "wifi"
        result = _run(["netsh", "interface", "show", "interface"], timeout=10)
        if result is not None and result.returncode == 0:
            for line in result.stdout.splitlines():
                if "Ethernet" in line and re.search(r"\bConnected\b", line):
                    return "ethernet"
        return "unknown"

    def _connection_type_mac(self) -> str:
        result = _run(["networksetup", "-getairportnetwork", "en0"], timeout=10)
        if result is not None and result.returncode == 0:
            out = result.stdout
            if out.strip() and "not associated" not in out and "Error" not in out:
                return "wifi"
        result = _run(["ifconfig", "en0"], timeout=10)
        if result is not None and "status: active" in result.stdout:
            return "ethernet"
        return "unknown"

    def _connection_type_linux(self) -> str:
        result = _run(["iwconfig"], timeout=10)
        if result is not None:
            # iwconfig writes "no wireless extensions" lines to stderr
            for line in result.stdout.splitlines():
                if "ESSID" in line and "off/any" not in line:
                    return "wifi"
        try:
            interfaces = list(self.sys_class_net.iterdir())
        except OSError:
            return "unknown"
        for iface in interfaces:
            if iface.name == "lo":
                continue
            try:
                state = (iface / "operstate").read_text().strip()
            except OSError:
                continue
            if state == "up":
                return "ethernet"
        return "unknown"

    def speedtest(self) -> Tuple[str, Dict[str, Any]]:
        if self.platform == "win32":
            cmd, flavor = ["speedtest.exe", "--format=json"], "ookla"
        else:
            cmd, flavor = ["speedtest-cli", "--json"], "speedtest-cli"

        result = _run(cmd, timeout=self.speedtest_timeout)
        if result is None:
            raise DiagnosticsError(f"{cmd[0]} could not be run")
        if result.returncode != 0:
            detail = (result.stderr or "").strip() or f"exit code {result.returncode}"
            raise DiagnosticsError(f"{cmd[0]} failed: {detail}")
        try:
            data = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise DiagnosticsError(f"Error parsing speedtest results: {e}") from e
        if not isinstance(data, dict):
            raise DiagnosticsError("Speedtest output is not a JSON object")
        return flavor, data
