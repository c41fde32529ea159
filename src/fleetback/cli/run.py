"""
fleetback run - One-shot backup of a single host.

Runs immediately, outside the schedule, with the same change detection and
record handling as a scheduled run.
"""

import asyncio
import dataclasses
from pathlib import Path

import typer
from rich.console import Console

from fleetback.backup.task import BackupTask
from fleetback.config.loader import load_global_config, load_hosts
from fleetback.config.types import GlobalConfig, Host
from fleetback.exceptions import ConfigurationError
from fleetback.service.executor import run_backup
from fleetback.utils.logging import get_logger, setup_logging_from_config

logger = get_logger("fleetback.cli.run")

console = Console()


def load_config_and_hosts(config_path: Path | None, *, verbose: bool = False) -> tuple[GlobalConfig, list[Host]]:
    """Load the global config and hosts file; exit with status 1 on configuration errors."""
    try:
        config = load_global_config(config_path)
        if verbose:
            config = dataclasses.replace(config, log_level="DEBUG")
        setup_logging_from_config(config)
        hosts = load_hosts(config.hosts_file)
    except ConfigurationError as e:
        typer.echo(f"Error: {e.message}", err=True)
        raise typer.Exit(1) from e
    return config, hosts


def find_host(hosts: list[Host], name: str) -> Host | None:
    """Match ``name`` against identifiers first, then hostnames."""
    for host in hosts:
        if host.identifier == name:
            return host
    for host in hosts:
        if host.hostname == name:
            return host
    return None


def run(
    host: str = typer.Argument(..., help="Host identifier (or hostname) from the hosts file"),
    full: bool = typer.Option(False, "--full", "-f", help="Transfer every file, ignoring the prior record"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Global config file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
) -> None:
    """
    Back up HOST now.
    """
    global_config, hosts = load_config_and_hosts(config, verbose=verbose)

    target = find_host(hosts, host)
    if target is None:
        logger.error(f"Unknown host '{host}' (not in {global_config.hosts_file})")
        typer.echo(f"Error: unknown host '{host}'", err=True)
        raise typer.Exit(1)

    task = BackupTask(target, global_config, incremental=not full)
    result = asyncio.run(run_backup(task, timeout=global_config.task_timeout_s))
    if result is None:
        typer.echo(f"Backup of {target.identifier} failed (see log)", err=True)
        raise typer.Exit(1)

    console.print(
        f"[bold green]{target.identifier}[/bold green]: "
        f"{len(result.transferred)} transferred, {result.unchanged} unchanged, "
        f"{len(result.removed)} removed in {result.duration_s:.2f}s"
    )
    if result.archive_path:
        console.print(f"  Archive: [dim]{result.archive_path}[/dim]")
    elif result.snapshot_path:
        console.print(f"  Snapshot: [dim]{result.snapshot_path}[/dim]")
