"""
User configuration loaded from ~/.mellowmon/config.yaml.

Everything here is optional. A missing, unreadable or malformed config
file behaves exactly like an empty one, so the daemon always falls back
to the defaults in settings.py.
"""

import dataclasses
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .settings import COLLECTOR, DAEMON, DEFAULT_WEBPAGES, PATHS, DaemonSettings


CONFIG_PATH: Path = PATHS.config_file


def load_config() -> Dict[str, Any]:
    """Load the config file, returning {} when absent or invalid."""
    if not CONFIG_PATH.exists():
        return {}
    try:
        with open(CONFIG_PATH) as f:
            data = yaml.safe_load(f)
    except (yaml.YAMLError, OSError):
        return {}
    if not isinstance(data, dict):
        return {}
    return data


def save_config(data: Dict[str, Any]) -> None:
    """Write the config dict back as YAML."""
    CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
    with open(CONFIG_PATH, "w") as f:
        yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)


def get_user_id() -> Optional[str]:
    """User identifier written by the settings UI, if any."""
    value = load_config().get("user_id")
    if value is None or value == "":
        return None
    return str(value)


def set_user_id(user_id: str) -> None:
    data = load_config()
    data["user_id"] = user_id
    save_config(data)


def get_restart_hour() -> int:
    value = load_config().get("restart_hour", DAEMON.default_restart_hour)
    try:
        hour = int(value)
    except (TypeError, ValueError):
        return DAEMON.default_restart_hour
    if 0 <= hour <= 23:
        return hour
    return DAEMON.default_restart_hour


def get_server_port() -> int:
    value = load_config().get("server_port", DAEMON.default_server_port)
    try:
        return int(value)
    except (TypeError, ValueError):
        return DAEMON.default_server_port


def get_collector_config() -> Dict[str, Any]:
    """Collector host/port pool, with config overrides applied.

    Config file format:
        collector:
          host: mobile.batterylab.dev
          ports: [9085, 9086, 9087]
          scheme: https
          timeout: 30
    """
    section = load_config().get("collector")
    if not isinstance(section, dict):
        section = {}

    ports = section.get("ports", COLLECTOR.ports)
    if isinstance(ports, int):
        ports = [ports]
    try:
        ports = [int(p) for p in ports]
    except (TypeError, ValueError):
        ports = list(COLLECTOR.ports)
    if not ports:
        ports = list(COLLECTOR.ports)

    try:
        timeout = float(section.get("timeout", COLLECTOR.timeout))
    except (TypeError, ValueError):
        timeout = COLLECTOR.timeout

    return {
        "host": str(section.get("host", COLLECTOR.host)),
        "ports": ports,
        "scheme": str(section.get("scheme", COLLECTOR.scheme)),
        "timeout": timeout,
    }


def get_candidate_urls() -> List[str]:
    """Pages the browser is sent to on (re)start."""
    pages = load_config().get("webpages")
    if isinstance(pages, list):
        pages = [str(p) for p in pages if p]
        if pages:
            return pages
    return list(DEFAULT_WEBPAGES)


def get_daemon_settings() -> DaemonSettings:
    """DAEMON with any `intervals:` overrides from the config file.

    Unknown keys and non-numeric values are ignored.
    """
    section = load_config().get("intervals")
    if not isinstance(section, dict):
        return DAEMON

    known = {f.name for f in dataclasses.fields(DaemonSettings)}
    overrides = {}
    for key, value in section.items():
        if key not in known or isinstance(value, bool):
            continue
        current = getattr(DAEMON, key)
        if not isinstance(current, (int, float)) or isinstance(current, bool):
            continue
        try:
            overrides[key] = type(current)(value)
        except (TypeError, ValueError):
            continue
    return dataclasses.replace(DAEMON, **overrides)


def get_browser_config() -> Dict[str, Optional[str]]:
    """Optional browser overrides (binary path, process name, extensions dir)."""
    section = load_config().get("browser")
    if not isinstance(section, dict):
        section = {}
    return {
        "binary": section.get("binary"),
        "process_name": section.get("process_name"),
        "extensions_dir": section.get("extensions_dir"),
    }
