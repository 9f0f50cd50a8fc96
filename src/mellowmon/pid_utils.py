"""
PID file helpers for the monitor daemon.
"""

import os
import signal
import subprocess
import sys
from pathlib import Path
from typing import Optional, Tuple


def _pid_alive(pid: int) -> bool:
    """Return True if a process with this PID exists."""
    if pid <= 0:
        return False
    if sys.platform == "win32":
        # os.kill(pid, 0) terminates the target on Windows
        try:
            result = subprocess.run(
                ["tasklist", "/FI", f"PID eq {pid}", "/NH"],
                capture_output=True,
                text=True,
                timeout=5,
            )
        except (OSError, subprocess.SubprocessError):
            return False
        return str(pid) in result.stdout
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but owned by someone else
        return True
    except OSError:
        return False
    return True


def get_process_pid(pid_file: Path) -> Optional[int]:
    """Return the PID recorded in pid_file if that process is alive."""
    if not pid_file.exists():
        return None
    try:
        pid = int(pid_file.read_text().strip())
    except (ValueError, OSError):
        return None
    return pid if _pid_alive(pid) else None


def is_process_running(pid_file: Path) -> bool:
    return get_process_pid(pid_file) is not None


def write_pid_file(pid_file: Path) -> None:
    pid_file.parent.mkdir(parents=True, exist_ok=True)
    pid_file.write_text(str(os.getpid()))


def remove_pid_file(pid_file: Path) -> None:
    try:
        pid_file.unlink()
    except FileNotFoundError:
        pass
    except OSError:
        pass


def acquire_daemon_lock(pid_file: Path) -> Tuple[bool, Optional[int]]:
    """Claim pid_file for this process.

    Returns:
        (True, None) when acquired, (False, pid) when another live daemon
        holds it, (False, None) when another daemon raced us to create it.
    """
    existing = get_process_pid(pid_file)
    if existing is not None and existing != os.getpid():
        return False, existing

    # Stale file from a dead daemon
    remove_pid_file(pid_file)

    pid_file.parent.mkdir(parents=True, exist_ok=True)
    try:
        fd = os.open(str(pid_file), os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
    except FileExistsError:
        return False, None
    with os.fdopen(fd, "w") as f:
        f.write(str(os.getpid()))
    return True, None


def stop_process(pid_file: Path) -> bool:
    """Send SIGTERM to the process in pid_file and remove the file.

    Returns True if a running process was signalled.
    """
    pid = get_process_pid(pid_file)
    if pid is None:
        remove_pid_file(pid_file)
        return False
    try:
        os.kill(pid, signal.SIGTERM)
    except OSError:
        remove_pid_file(pid_file)
        return False
    remove_pid_file(pid_file)
    return True
