"""
Pure business logic for the monitor daemon.

These functions contain no I/O and are fully unit-testable.
They are used by the segment log, uploader, supervisor, reconciler and
sampler but can be tested independently.
"""

import re
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional


SEGMENT_PATTERN = re.compile(r"^cache_(\d+)\.json$")


def segment_filename(version: int) -> str:
    """File name of the segment holding `version`."""
    return f"cache_{version}.json"


def parse_segment_version(filename: str) -> Optional[int]:
    """Extract the version from a segment file name.

    Pure function - no side effects, fully testable.

    Returns:
        Integer version, or None if the name is not a segment file
    """
    match = SEGMENT_PATTERN.match(filename)
    if match is None:
        return None
    return int(match.group(1))


def next_write_version(existing: Iterable[int]) -> int:
    """First version to write after a restart: max(existing) + 1, or 1."""
    versions = list(existing)
    if not versions:
        return 1
    return max(versions) + 1


def is_job_due(
    last_run: Optional[datetime],
    now: datetime,
    interval_seconds: float,
) -> bool:
    """Determine if a periodic job should run.

    Pure function - no side effects, fully testable.

    Args:
        last_run: Time of last run (None if never run)
        now: Current time
        interval_seconds: Minimum seconds between runs

    Returns:
        True if the job should run now
    """
    if last_run is None:
        return True
    return (now - last_run).total_seconds() >= interval_seconds


def is_restart_due(
    now: datetime,
    restart_hour: int,
    last_restart_date: Optional[date],
) -> bool:
    """True when `now` falls in the restart hour and today's restart hasn't fired."""
    return now.hour == restart_hour and last_restart_date != now.date()


def staleness_ms(now_ms: int, remote_ms: int) -> int:
    return now_ms - remote_ms


def is_stale(now_ms: int, remote_ms: int, threshold_ms: int) -> bool:
    """True when the remote's last-seen timestamp is older than the threshold."""
    return staleness_ms(now_ms, remote_ms) > threshold_ms


def parse_freshness_response(data: Any) -> Optional[int]:
    """Extract latest_timestamp (epoch ms) from a freshness reply.

    Pure function - no side effects, fully testable.

    Expects {"status": "ok", "latest_timestamp": <epoch-ms>}. A zero or
    missing timestamp counts as malformed.

    Returns:
        Timestamp in ms, or None if the payload is malformed
    """
    if not isinstance(data, dict) or data.get("status") != "ok":
        return None
    value = data.get("latest_timestamp")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if value <= 0:
        return None
    return int(value)


def build_upload_filename(user_id: str, version: int, timestamp_ms: int) -> str:
    """Multipart filename for an uploaded segment."""
    return f"cache_user{user_id}_v{version}_{timestamp_ms}.json"


def format_versions(versions: List[int]) -> str:
    return ", ".join(f"v{v}" for v in versions)


def _format_location(ip_info: Optional[Dict[str, Any]]) -> Optional[str]:
    if not ip_info:
        return None
    return f"{ip_info.get('city')}, {ip_info.get('region')}, {ip_info.get('country')}"


def normalize_speedtest(
    raw: Dict[str, Any],
    flavor: str,
    reason: str,
    connection_type: str,
    ip_info: Optional[Dict[str, Any]],
    timestamp_ms: int,
) -> Dict[str, Any]:
    """Turn speed-test tool output into the record appended to the log.

    Pure function - no side effects, fully testable.

    Args:
        raw: Parsed JSON output of the speed-test tool
        flavor: "speedtest-cli" (python speedtest-cli --json) or
                "ookla" (speedtest --format=json)
        reason: Why the test ran ("scheduled", "startup", "ip-change")
        connection_type: "wifi", "ethernet" or "unknown"
        ip_info: Public IP info dict, or None
        timestamp_ms: Record timestamp

    Returns:
        Normalized record; download/upload in bits per second, ping in ms

    Raises:
        KeyError, TypeError: if the tool output lacks required fields
    """
    if flavor == "ookla":
        server = raw["server"]
        # Ookla reports bandwidth in bytes per second
        download = raw["download"]["bandwidth"] * 8
        upload = raw["upload"]["bandwidth"] * 8
        ping = raw["ping"]["latency"]
        bytes_received = raw["download"]["bytes"]
        bytes_sent = raw["upload"]["bytes"]
        server_name = server.get("name")
        location = f"{server.get('location')}, {server.get('country')}"
        isp = raw.get("isp")
    else:
        server = raw["server"]
        download = raw["download"]
        upload = raw["upload"]
        ping = raw["ping"]
        bytes_received = raw.get("bytes_received")
        bytes_sent = raw.get("bytes_sent")
        server_name = server.get("name") or server.get("sponsor")
        location = f"{server.get('name')}, {server.get('country')}"
        isp = (raw.get("client") or {}).get("isp")

    return {
        "timestamp": timestamp_ms,
        "type": "speedtest",
        "reason": reason,
        "connectionType": connection_type,
        "publicIP": ip_info.get("ip") if ip_info else None,
        "publicLocation": _format_location(ip_info),
        "publicOrg": ip_info.get("org") if ip_info else None,
        "download": download,
        "upload": upload,
        "ping": ping,
        "bytesReceived": bytes_received,
        "bytesSent": bytes_sent,
        "server": server_name,
        "location": location,
        "isp": isp,
    }


def summarize_speedtest(record: Dict[str, Any]) -> str:
    """One-line human summary of a normalized speed-test record."""
    down = (record.get("download") or 0) / 1_000_000
    up = (record.get("upload") or 0) / 1_000_000
    rx_mb = (record.get("bytesReceived") or 0) / 1024 / 1024
    tx_mb = (record.get("bytesSent") or 0) / 1024 / 1024
    return (
        f"Connection: {record.get('connectionType')}, "
        f"Down: {down:.2f} Mbps, Up: {up:.2f} Mbps, "
        f"Ping: {record.get('ping')}ms, "
        f"Data: ↓{rx_mb:.2f} MB ↑{tx_mb:.2f} MB"
    )


def latest_version_dir(names: Iterable[str]) -> Optional[str]:
    """Pick the latest version directory of an extension (last in sorted order)."""
    ordered = sorted(names)
    if not ordered:
        return None
    return ordered[-1]


def build_extension_entry(ext_id: str, manifest: Dict[str, Any]) -> Dict[str, Any]:
    """Inventory entry for one installed extension."""
    return {
        "id": ext_id,
        "name": manifest.get("name"),
        "version": manifest.get("version"),
        "description": manifest.get("description") or "",
        "permissions": manifest.get("permissions") or [],
    }
