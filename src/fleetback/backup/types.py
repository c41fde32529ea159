"""
Type definitions shared by backup tasks and the SFTP connection.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class RemoteFile:
    """A regular file found on the remote host.

    ``path`` is relative to the host's ``remote_root`` and is the key used in
    the record; ``remote_path`` is the absolute path on the remote host.
    """

    path: str
    remote_path: str
    size: int
    mtime: int
    atime: int = 0
    mode: int = 0o644


@dataclass
class BackupResult:
    """Summary of one backup run (for logs and the CLI)."""

    host: str
    incremental: bool
    transferred: list[str] = field(default_factory=list)
    unchanged: int = 0
    removed: list[str] = field(default_factory=list)
    snapshot_path: Path | None = None
    archive_path: Path | None = None
    duration_s: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "host": self.host,
            "incremental": self.incremental,
            "transferred": len(self.transferred),
            "unchanged": self.unchanged,
            "removed": len(self.removed),
            "snapshot_path": str(self.snapshot_path) if self.snapshot_path else None,
            "archive_path": str(self.archive_path) if self.archive_path else None,
            "duration_s": round(self.duration_s, 3),
        }
