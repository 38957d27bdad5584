"""
devforward CLI entry point.

Usage:
    devforward [OPTIONS] COMMAND [ARGS]...

Commands:
    forward   Forward devcontainer ports to localhost
    config    Show forwarding configuration
    version   Show version information
"""

import typer

from devforward.cli.commands import config_cmd, forward
from devforward.cli.output import console

app = typer.Typer(
    name="devforward",
    help="Forward local ports into a running devcontainer",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Register command groups
app.add_typer(forward.app, name="forward", help="Forward devcontainer ports to localhost")
app.add_typer(config_cmd.app, name="config", help="Show forwarding configuration")


@app.command("version")
def version():
    """Show version information."""
    from devforward import __version__

    console.print(f"devforward v{__version__}")


def main():
    app()


if __name__ == "__main__":
    main()
