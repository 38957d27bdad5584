"""
Port forwarding command.

Forwards every port listed in ``forwardPorts`` of the workspace's
devcontainer.json into the running devcontainer, following the container
through restarts and stopping once it is gone for good.

Example:
    # Forward the ports of the devcontainer in the current folder
    devforward forward

    # Another workspace, with debug logging
    devforward forward --workspace-folder ~/src/project --debug
"""

import asyncio
import os
import signal
from typing import Annotated

import typer

from devforward.cli.output import console, print_error
from devforward.config import config
from devforward.devcontainer.config import ConfigError
from devforward.devcontainer.forwarder import DevContainerForwarder
from devforward.docker.exceptions import DockerError
from devforward.forwarding.cancellation import CancellationSignal
from devforward.forwarding.exceptions import ForwardingError
from devforward.models.enums import LogLevel
from devforward.utils.logger import configure_logging, get_logger

logger = get_logger(__name__)

app = typer.Typer(help="Forward devcontainer ports to localhost")


@app.callback(invoke_without_command=True)
def forward(
    workspace_folder: Annotated[
        str,
        typer.Option(
            "--workspace-folder",
            "-w",
            help="The workspace folder on which to operate",
        ),
    ] = ".",
    debug: Annotated[
        bool,
        typer.Option("--debug", help="Enable debug logging"),
    ] = False,
    log_file: Annotated[
        str | None,
        typer.Option(
            "--log-file",
            help="Log file path (default: forwardports-YYYYMMDD.log)",
            envvar="DEVFORWARD_LOG_FILE",
        ),
    ] = None,
    no_log_file: Annotated[
        bool,
        typer.Option("--no-log-file", help="Only log to stderr"),
    ] = False,
    listen_host: Annotated[
        str | None,
        typer.Option(
            "--listen-host",
            "-H",
            help="Local address to bind to",
            envvar="DEVFORWARD_LISTEN_HOST",
        ),
    ] = None,
    grace_period: Annotated[
        float | None,
        typer.Option(
            "--grace-period",
            help="Seconds a stopped container has to restart before forwarding stops",
            min=0.0,
        ),
    ] = None,
):
    """
    Forward the devcontainer's ports until the container goes away.
    """
    if listen_host:
        config.LISTEN_HOST = listen_host
    if grace_period is not None:
        config.GRACE_PERIOD_SECONDS = grace_period
    if log_file:
        config.LOG_FILE = log_file
    if debug:
        config.LOG_LEVEL = LogLevel.DEBUG

    configure_logging(
        config.LOG_LEVEL,
        None if no_log_file else config.get_log_file_path(),
    )

    workspace = os.path.abspath(os.path.expanduser(workspace_folder))
    logger.info(f"Starting forwarder (debug={debug}, workspace-folder={workspace})")

    try:
        asyncio.run(_run_forwarder(workspace))
    except (ConfigError, ForwardingError, DockerError) as e:
        logger.error(f"Failed to start forwarder: {e}")
        print_error(str(e))
        raise typer.Exit(1)
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped.[/dim]")


async def _run_forwarder(workspace: str) -> None:
    """Run the forwarder until it stops on its own or a signal arrives."""
    cancellation = CancellationSignal()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, cancellation.cancel, f"received {sig.name}")
        except NotImplementedError:
            # Not supported on Windows, Ctrl+C raises KeyboardInterrupt there
            pass

    forwarder = DevContainerForwarder(workspace, cancellation)
    done = await forwarder.start()

    ports = ", ".join(str(p) for p in forwarder.forward_config.forward_ports)
    console.print(
        f"[bold green]Forwarding[/bold green] "
        f"[cyan]{forwarder.engine.listen_host}[/cyan] ports [cyan]{ports}[/cyan] "
        f"[dim]→[/dim] [yellow]devcontainer[/yellow]"
    )
    console.print("[dim]Press Ctrl+C to stop.[/dim]")

    await done
    console.print(f"[dim]Stopped: {cancellation.reason}[/dim]")
