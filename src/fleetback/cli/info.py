"""
fleetback info - Display configured hosts.

Shows each host's schedule, next fire time and what its record currently holds.
"""

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from fleetback.cli.run import load_config_and_hosts
from fleetback.exceptions import FSError
from fleetback.records.store import load_record_or_empty, record_summary
from fleetback.service.queue import TaskQueue
from fleetback.service.scheduler import Schedule, Scheduler, parse_schedules

app = typer.Typer(name="info", help="Display configured hosts and their schedules", invoke_without_command=True)

console = Console()


def _schedule_label(schedule: Schedule) -> str:
    return schedule.cron.expr + (" (default)" if schedule.is_default else "")


@app.callback()
def info(
    ctx: typer.Context,
    config: Path | None = typer.Option(None, "--config", "-c", help="Global config file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
) -> None:
    """
    Display hosts, schedules and record sizes.
    """
    if ctx.invoked_subcommand is None:
        global_config, hosts = load_config_and_hosts(config)

        if not hosts:
            console.print("[dim]No hosts configured[/dim]")
            return

        schedules = parse_schedules(hosts, global_config.default_cron)
        scheduler = Scheduler(
            schedules, TaskQueue(), lambda host: None, tz=Scheduler.timezone_from_name(global_config.timezone)
        )
        next_runs = scheduler.next_runs()

        table = Table(title=f"Hosts ({len(hosts)})", show_header=True)
        table.add_column("Identifier", style="cyan")
        table.add_column("Hostname", style="green")
        table.add_column("Schedule", style="yellow")
        table.add_column("Next run", style="magenta")
        table.add_column("Files", justify="right")
        table.add_column("Bytes", justify="right", style="dim")

        for schedule, (host, when) in zip(schedules, next_runs):
            try:
                summary = record_summary(load_record_or_empty(host.record_path))
                files, size = str(summary["entries"]), str(summary["bytes"])
            except FSError:
                files, size = "[red]corrupt[/red]", "-"
            table.add_row(
                host.identifier,
                host.hostname,
                _schedule_label(schedule),
                when.strftime("%Y-%m-%d %H:%M %Z") if when else "[red]unknown[/red]",
                files,
                size,
            )

        console.print(table)

        if verbose:
            console.print()
            for schedule in schedules:
                host = schedule.host
                console.print(f"[bold]{host.identifier}[/bold]")
                console.print(f"  Schedule: {_schedule_label(schedule)}")
                console.print(f"  Remote root: [dim]{host.remote_root}[/dim]")
                console.print(f"  Destination: [dim]{host.backup_root}[/dim]")
                if host.excludes:
                    console.print(f"  Excludes: {', '.join(host.excludes)}")
                console.print(f"  Archive: {global_config.archive_for(host)}")
