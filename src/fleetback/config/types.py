"""
Typed configuration objects.

Both are frozen: they are created once at startup and shared read-only by the
scheduler, the queue and every backup task.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

DEFAULT_CRON = "0 0 * * *"


@dataclass(frozen=True)
class SFTPConfig:
    host: str
    port: int = 22
    username: str | None = None
    password: str | None = None
    private_key_path: str | None = None
    private_key_passphrase: str | None = None
    known_hosts_path: str | None = None
    # Safety/perf knobs
    connect_timeout_s: float = 15.0


@dataclass(frozen=True)
class Host:
    """
    One backup source.

    ``identifier`` namespaces everything stored for the host under
    ``destination`` (snapshots, archives and the record).
    """

    hostname: str
    destination: Path
    sftp: SFTPConfig
    identifier: str = ""
    cron_schedule: str | None = None
    remote_root: str = "/"
    excludes: tuple[str, ...] = ()
    archive: bool | None = None

    def __post_init__(self) -> None:
        if not self.identifier:
            object.__setattr__(self, "identifier", self.hostname)

    @property
    def backup_root(self) -> Path:
        return self.destination / self.identifier

    @property
    def record_path(self) -> Path:
        return self.backup_root / ".records" / "record.json"


@dataclass(frozen=True)
class GlobalConfig:
    """Process-wide settings loaded from the global config file."""

    hosts_file: Path
    log_file: Path | None = None
    log_level: str = "INFO"
    # text | json (json applies to the file handler)
    log_format: str = "text"

    # Scheduler / executor
    tick_interval_s: float = 60.0
    poll_interval_s: float = 0.5
    max_concurrency: int = 4
    task_timeout_s: float | None = None
    default_cron: str = DEFAULT_CRON
    timezone: str | None = None

    # Backup policy
    archive: bool = False

    # Change detection
    window_size: int = 1024
    sample_count: int = 3
    full_hash_below: int = 0

    def archive_for(self, host: Host) -> bool:
        return self.archive if host.archive is None else host.archive
