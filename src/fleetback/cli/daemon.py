"""
fleetback daemon - Long-running scheduler.

Evaluates every host's cron schedule once per minute and runs due backups,
at most one at a time per host. Stops on SIGINT/SIGTERM.
"""

from pathlib import Path

import typer

from fleetback.exceptions import ConfigurationError
from fleetback.service.daemon import run_daemon

app = typer.Typer(name="daemon", help="Run the backup scheduler until interrupted", invoke_without_command=True)


@app.callback()
def daemon(
    ctx: typer.Context,
    config: Path | None = typer.Option(
        None, "--config", "-c", help="Global config file (default: $FLEETBACK_CONFIG or /etc/fleetback/config.yml)"
    ),
) -> None:
    """
    Run the backup scheduler in the foreground.
    """
    if ctx.invoked_subcommand is None:
        try:
            run_daemon(config)
        except ConfigurationError as e:
            typer.echo(f"Error: {e.message}", err=True)
            raise typer.Exit(1) from e
