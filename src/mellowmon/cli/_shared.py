"""
Shared CLI state: Typer apps and common options.
"""

from typing import Annotated, Optional

import typer


# Main app
app = typer.Typer(
    name="mellowmon",
    help="Keep a browser telemetry agent alive and relay its data",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Config subcommand group
config_app = typer.Typer(
    name="config",
    help="Manage the configuration file",
    no_args_is_help=False,
    invoke_without_command=True,
)
app.add_typer(config_app, name="config")


PortOption = Annotated[
    Optional[int],
    typer.Option("--port", "-p", help="Local cache server port (default: from config, else 9080)"),
]
