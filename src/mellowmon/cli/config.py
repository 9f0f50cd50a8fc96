"""
Config commands: init, show, path.
"""

from typing import Annotated

import typer
from rich import print as rprint
from rich.markup import escape

from ._shared import config_app


CONFIG_TEMPLATE = """\
# Mellowmon configuration
# Location: ~/.mellowmon/config.yaml

# User identifier (used when `mellowmon run` gets no USER_ID argument)
# user_id: "1234"

# Hour of the daily browser restart, 0-23
# restart_hour: 2

# Port of the local cache server the browser agent posts to
# server_port: 9080

# Remote collector
# collector:
#   host: mobile.batterylab.dev
#   ports: [9085, 9086, 9087]
#   scheme: https
#   timeout: 30  # seconds

# Pages the browser is sent to when it is (re)started
# webpages:
#   - https://example.com/
#   - https://www.wikipedia.org

# Browser overrides
# browser:
#   binary: /usr/bin/google-chrome
#   process_name: chrome
#   extensions_dir: ~/.config/google-chrome/Default/Extensions

# Timer overrides (seconds)
# intervals:
#   liveness_interval: 60
#   upload_interval: 420
#   freshness_interval: 600
#   ip_check_interval: 1800
#   speedtest_interval: 21600
#   inventory_interval: 86400
#   freshness_threshold_ms: 600000
"""


@config_app.callback(invoke_without_command=True)
def config_default(ctx: typer.Context):
    """Show current configuration (default when no subcommand given)."""
    if ctx.invoked_subcommand is None:
        _config_show()


@config_app.command("init")
def config_init(
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Overwrite existing config file")
    ] = False,
):
    """Create a config file with documented defaults.

    Creates ~/.mellowmon/config.yaml with all options commented out.
    Use --force to overwrite an existing config file.
    """
    from .. import config

    path = config.CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)

    if path.exists() and not force:
        rprint(f"[yellow]Config file already exists:[/yellow] {path}")
        rprint("[dim]Use --force to overwrite[/dim]")
        raise typer.Exit(1)

    path.write_text(CONFIG_TEMPLATE)
    rprint(f"[green]✓[/green] Created config file: [bold]{path}[/bold]")
    rprint("[dim]Edit to customize your settings[/dim]")


@config_app.command("show")
def config_show():
    """Show current configuration."""
    _config_show()


@config_app.command("path")
def config_path():
    """Print the config file location."""
    from .. import config

    typer.echo(str(config.CONFIG_PATH))


def _config_show():
    """Internal function to display current config."""
    from .. import config

    path = config.CONFIG_PATH
    if not path.exists():
        rprint(f"[dim]No config file found at {path}[/dim]")
        rprint("[dim]Run 'mellowmon config init' to create one[/dim]")
        return

    data = config.load_config()
    if not data:
        rprint(f"[dim]Config file is empty: {path}[/dim]")
        return

    rprint(f"[bold]Configuration[/bold] ({path}):\n")

    if "user_id" in data:
        rprint(f"  user_id: {escape(str(data['user_id']))}")
    rprint(f"  restart_hour: {config.get_restart_hour()}")
    rprint(f"  server_port: {config.get_server_port()}")

    if "collector" in data:
        collector = config.get_collector_config()
        ports = ", ".join(str(p) for p in collector["ports"])
        rprint(f"  collector: {collector['scheme']}://{collector['host']} ports {ports}")

    if "webpages" in data:
        rprint("  webpages:")
        for url in config.get_candidate_urls():
            rprint(f"    - {escape(url)}")

    if "browser" in data:
        browser = config.get_browser_config()
        for key, value in browser.items():
            if value:
                rprint(f"  browser.{key}: {escape(str(value))}")

    if "intervals" in data:
        settings = config.get_daemon_settings()
        section = data["intervals"] if isinstance(data["intervals"], dict) else {}
        for key in section:
            if hasattr(settings, key):
                rprint(f"  intervals.{key}: {getattr(settings, key)}")
