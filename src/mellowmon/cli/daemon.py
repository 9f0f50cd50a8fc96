"""
Daemon commands: run, status, stop, watch, segments.
"""

import json
import socket
import urllib.error
import urllib.request
from pathlib import Path
from typing import Annotated, Any, Dict, List, Optional, Tuple

import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from ._shared import app, PortOption


def fetch_status(port: int, host: str = "127.0.0.1", timeout: float = 2.0) -> Optional[Dict[str, Any]]:
    """GET /status from a running daemon. None if it does not answer."""
    url = f"http://{host}:{port}/status"
    try:
        with urllib.request.urlopen(url, timeout=timeout) as resp:
            data = json.loads(resp.read().decode("utf-8"))
    except (urllib.error.URLError, socket.timeout, json.JSONDecodeError, OSError):
        return None
    return data if isinstance(data, dict) else None


def scan_segments(cache_dir: Path) -> List[Tuple[int, int, Optional[int]]]:
    """(version, size in bytes, entry count or None if unreadable) per segment."""
    from ..monitor_core import parse_segment_version

    if not cache_dir.is_dir():
        return []
    rows = []
    for path in cache_dir.iterdir():
        version = parse_segment_version(path.name)
        if version is None:
            continue
        try:
            raw = path.read_bytes()
        except OSError:
            continue
        try:
            data = json.loads(raw)
            count = len(data) if isinstance(data, list) else None
        except (UnicodeDecodeError, ValueError):
            count = None
        rows.append((version, len(raw), count))
    return sorted(rows)


@app.command("run")
def run_daemon(
    user_id: Annotated[
        Optional[str], typer.Argument(help="User identifier (default: user_id from config)")
    ] = None,
    restart_hour: Annotated[
        Optional[int], typer.Argument(min=0, max=23, help="Hour of the daily browser restart (default: 2)")
    ] = None,
    server_port: Annotated[
        Optional[int], typer.Argument(help="Local cache server port (default: 9080)")
    ] = None,
):
    """Run the monitor daemon in the foreground.

    The daemon keeps the browser alive, buffers telemetry posted to
    /cache and uploads it to the collector every few minutes.
    """
    from ..monitor_daemon import MonitorDaemon, USAGE, resolve_user_id
    from ..pid_utils import get_process_pid
    from ..settings import get_pid_path

    resolved = resolve_user_id(user_id)
    if not resolved:
        rprint("[red]Error:[/red] USER_ID is required")
        typer.echo(USAGE)
        raise typer.Exit(1)

    pid = get_process_pid(get_pid_path())
    if pid is not None:
        rprint(f"[yellow]Monitor already running[/yellow] (PID {pid})")
        raise typer.Exit(1)

    daemon = MonitorDaemon(resolved, restart_hour=restart_hour, server_port=server_port)
    daemon.run()


@app.command("status")
def status_cmd(port: PortOption = None):
    """Show monitor status."""
    from ..config import get_server_port
    from ..monitor_state import get_monitor_daemon_state
    from ..pid_utils import get_process_pid
    from ..settings import get_pid_path

    port = port or get_server_port()
    live = fetch_status(port)
    pid = get_process_pid(get_pid_path())
    state = get_monitor_daemon_state()

    if live is None and pid is None:
        rprint("[dim]Monitor:[/dim] ○ stopped")
        if state and state.last_loop_time:
            rprint(f"  [dim]Last active: {state.last_loop_time}[/dim]")
        return

    header = "[green]Monitor:[/green] ● running"
    if pid is not None:
        header += f" (PID {pid})"
    rprint(header)

    if live is not None:
        rprint(f"  User: {live.get('userId')}")
        rprint(f"  Current segment: v{live.get('currentJsonVersion')}")
        rprint(f"  Upload in progress: {live.get('uploadInProgress')}")
        rprint(f"  Browser operation in progress: {live.get('chromeOperationInProgress')}")
        rprint(f"  Cache dir: {live.get('cacheDir')}")
    else:
        rprint(f"  [yellow]Cache server not answering on port {port}[/yellow]")

    if state:
        rprint(f"  Loop count: {state.loop_count}")
        if state.last_public_ip:
            rprint(f"  Public IP: {state.last_public_ip}")
        if state.last_restart_date:
            rprint(f"  Last scheduled restart: {state.last_restart_date}")
        if state.last_upload:
            up = state.last_upload
            rprint(
                f"  Last upload: {len(up.get('uploaded', []))} uploaded, "
                f"{len(up.get('retained', []))} retained"
            )


@app.command("stop")
def stop_cmd():
    """Stop the running monitor."""
    from ..pid_utils import get_process_pid, stop_process
    from ..settings import get_pid_path

    pid_path = get_pid_path()
    pid = get_process_pid(pid_path)
    if pid is None:
        rprint("[dim]Monitor is not running[/dim]")
        return

    if stop_process(pid_path):
        rprint(f"[green]✓[/green] Monitor stopped (was PID {pid})")
    else:
        rprint("[red]Failed to stop monitor[/red]")
        raise typer.Exit(1)


@app.command("watch")
def watch_cmd():
    """Watch monitor logs in real-time."""
    import subprocess
    from ..settings import get_log_path

    log_file = get_log_path()

    if not log_file.exists():
        rprint(f"[red]Log file not found:[/red] {log_file}")
        rprint("[dim]The monitor may not have run yet.[/dim]")
        raise typer.Exit(1)

    rprint(f"[dim]Watching {log_file} (Ctrl-C to stop)[/dim]")
    print("-" * 60)

    try:
        subprocess.run(["tail", "-f", str(log_file)])
    except KeyboardInterrupt:
        print("\nStopped watching.")


@app.command("segments")
def segments_cmd():
    """List buffered segments waiting for upload."""
    from ..settings import get_cache_dir

    cache_dir = get_cache_dir()
    rows = scan_segments(cache_dir)
    if not rows:
        rprint(f"[dim]No segments in {cache_dir}[/dim]")
        return

    table = Table(title=f"Segments in {cache_dir}")
    table.add_column("Version", justify="right")
    table.add_column("Entries", justify="right")
    table.add_column("Size", justify="right")
    for version, size, count in rows:
        entries = str(count) if count is not None else "[red]corrupt[/red]"
        table.add_row(f"v{version}", entries, f"{size} B")
    Console().print(table)
