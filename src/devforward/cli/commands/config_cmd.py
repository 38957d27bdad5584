"""Config inspection command."""

import os
from typing import Annotated

import typer
from rich.table import Table

from devforward.cli.output import console, print_error
from devforward.config import config
from devforward.devcontainer.config import ConfigError, load_forward_ports_config

app = typer.Typer(help="Show forwarding configuration")


@app.callback(invoke_without_command=True)
def show_config(
    workspace_folder: Annotated[
        str,
        typer.Option(
            "--workspace-folder",
            "-w",
            help="The workspace folder on which to operate",
        ),
    ] = ".",
):
    """Show the forwarding settings read from devcontainer.json."""
    workspace = os.path.abspath(os.path.expanduser(workspace_folder))
    json_path = config.get_devcontainer_json_path(workspace)

    try:
        forward_config = load_forward_ports_config(json_path)
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(1)

    table = Table(title="Forwarding Configuration", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("config file", json_path)
    table.add_row("name", forward_config.name or "[dim]-[/dim]")
    table.add_row("remote user", forward_config.remote_user or "[dim]from metadata[/dim]")
    table.add_row(
        "forward ports",
        ", ".join(str(p) for p in forward_config.forward_ports) or "[red]none[/red]",
    )
    table.add_row("listen host", config.LISTEN_HOST)
    table.add_row("grace period", f"{config.GRACE_PERIOD_SECONDS}s")

    console.print(table)
