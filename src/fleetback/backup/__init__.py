"""
Backup execution: per-host backup task plus metadata and archive helpers.

``BackupTask`` lives in ``fleetback.backup.task``; it is not re-exported here
because the SFTP connection imports ``fleetback.backup.types``.
"""

from fleetback.backup.archive import archive_directory
from fleetback.backup.metadata import apply_metadata
from fleetback.backup.types import BackupResult, RemoteFile

__all__ = [
    "BackupResult",
    "RemoteFile",
    "apply_metadata",
    "archive_directory",
]
