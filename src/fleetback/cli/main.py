"""
Main CLI entry point.
"""

import typer

from fleetback import __version__
from fleetback.cli import daemon, info, run


def version_callback(value: bool):
    """Callback to display version and exit."""
    if value:
        typer.echo(f"fleetback version {__version__}")
        raise typer.Exit()


app = typer.Typer(
    name="fleetback",
    help="fleetback - scheduled incremental SFTP backups for a fleet of hosts",
    add_completion=True,
)

# Register subcommands
app.command(name="run", help="Back up one host now")(run.run)
app.add_typer(daemon.app, name="daemon")
app.add_typer(info.app, name="info")


@app.callback(invoke_without_command=True)
def entrypoint(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=version_callback,
        help="Show version and exit.",
    ),
):
    """
    fleetback - scheduled incremental SFTP backups.

    Run 'fleetback <command> --help' for help on a specific command.
    """
    if ctx.invoked_subcommand is None:
        if not version:
            typer.echo(ctx.get_help())
            raise typer.Exit()


def main():
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
