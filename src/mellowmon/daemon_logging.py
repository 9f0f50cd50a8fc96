"""
Rich-based logging for the monitor daemon.

Every message goes to two places: a pretty, themed line on the console
and a plain-text line in the daemon log file. Debug messages only go to
the file.
"""

import threading
from datetime import datetime
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.theme import Theme


DAEMON_THEME = Theme({
    "info": "cyan",
    "warn": "yellow",
    "error": "bold red",
    "success": "bold green",
    "browser": "magenta",
    "dim": "dim white",
    "highlight": "bold white",
})


class BaseDaemonLogger:
    """Console + file logger shared by all monitor components."""

    def __init__(self, log_file: Path, theme: Optional[Theme] = None):
        self.log_file = Path(log_file)
        self.log_file.parent.mkdir(parents=True, exist_ok=True)
        self.console = Console(theme=theme or DAEMON_THEME, force_terminal=True)
        # Jobs log from several threads
        self._file_lock = threading.Lock()

    def _write_to_file(self, message: str, level: str) -> None:
        """Write plain text to log file."""
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        line = f"[{timestamp}] [{level}] {message}"
        try:
            with self._file_lock:
                with open(self.log_file, "a") as f:
                    f.write(line + "\n")
        except OSError:
            pass

    def _log(self, style: str, label: str, message: str, level: str) -> None:
        self._write_to_file(message, level)
        self.console.print(
            f"[dim]{datetime.now().strftime('%H:%M:%S')}[/dim] [{style}]{label}[/{style}] {message}",
            highlight=False,
        )

    def info(self, message: str) -> None:
        self._log("info", "INFO ", message, "INFO")

    def warn(self, message: str) -> None:
        self._log("warn", "WARN ", message, "WARN")

    def error(self, message: str) -> None:
        self._log("error", "ERROR", message, "ERROR")

    def success(self, message: str) -> None:
        self._log("success", "OK   ", message, "INFO")

    def browser(self, message: str) -> None:
        """Log a browser lifecycle event."""
        self._log("browser", "CHROME", message, "INFO")

    def debug(self, message: str) -> None:
        """Log debug message to file only."""
        self._write_to_file(message, "DEBUG")

    def section(self, title: str) -> None:
        """Print a section divider."""
        self._write_to_file(f"=== {title} ===", "INFO")
        self.console.print()
        self.console.rule(f"[bold]{title}[/bold]", style="dim")


def create_monitor_logger(log_file: Optional[Path] = None) -> BaseDaemonLogger:
    """Create the logger for the monitor daemon."""
    if log_file is None:
        from .settings import ensure_state_dir, get_log_path

        ensure_state_dir()
        log_file = get_log_path()
    return BaseDaemonLogger(log_file)
