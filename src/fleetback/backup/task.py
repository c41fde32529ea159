"""
Backup task: one incremental backup run for one host.

Sequence:
    load record -> list remote tree -> classify files -> download new/changed
    files into a snapshot directory -> restore their metadata -> fingerprint the
    local copies -> archive the snapshot (optional) -> save the new record.

The record is written last. Any failure before that raises a BackupError and
leaves the on-disk record exactly as it was, so files that were not fully
transferred are picked up again by the next run.
"""

from __future__ import annotations

import asyncio
import shutil
import time
import uuid
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

import paramiko

from fleetback.backup.archive import archive_directory
from fleetback.backup.metadata import apply_metadata
from fleetback.backup.types import BackupResult, RemoteFile
from fleetback.config.types import GlobalConfig, Host, SFTPConfig
from fleetback.connections.sftp import SFTPConnection
from fleetback.detection.detector import ChangeDetector, Detection, FileState, detect_removed
from fleetback.detection.fingerprint import Fingerprint
from fleetback.exceptions import BackupError, FSError, TransferError
from fleetback.records.store import Record, RecordStore
from fleetback.utils.logging import get_logger

logger = get_logger("fleetback.backup.task")

SNAPSHOT_TIME_FORMAT = "%Y-%m-%dT%H-%M-%S"

ConnectionFactory = Callable[[SFTPConfig], SFTPConnection]


class BackupTask:
    """
    One unit of work: back up ``host`` using its record.

    Args:
        host: Host to back up (shared, read-only)
        config: Global configuration (shared, read-only)
        incremental: Compare against the prior record; when False every file is transferred
        connection_factory: Builds the SFTP connection (injectable for tests)
    """

    def __init__(
        self,
        host: Host,
        config: GlobalConfig,
        *,
        incremental: bool = True,
        connection_factory: ConnectionFactory | None = None,
    ):
        self.host = host
        self.config = config
        self.incremental = incremental
        self.task_id = f"{host.identifier}-{uuid.uuid4().hex[:8]}"
        self.detector = ChangeDetector.from_config(config)
        self.record_store = RecordStore(host.record_path)
        self._connection_factory = connection_factory or SFTPConnection

    @property
    def host_key(self) -> str:
        """Identity used for per-host mutual exclusion."""
        return self.host.identifier

    def __repr__(self) -> str:
        return f"BackupTask({self.task_id!r}, incremental={self.incremental})"

    async def run(self) -> BackupResult:
        """
        Run the backup.

        Returns:
            BackupResult summary

        Raises:
            BackupError: On any failure; the record is left unmodified
        """
        started = time.monotonic()
        result = BackupResult(host=self.host.identifier, incremental=self.incremental)

        prior: Record = await self.record_store.load_or_empty_async() if self.incremental else {}
        snapshot_dir = _unique_snapshot_dir(self.host.backup_root)

        connection = self._connection_factory(self.host.sftp)
        try:
            new_record = await self._transfer_phase(connection, prior, snapshot_dir, result)
        except BaseException:
            # Partial snapshot content is never recorded; drop it.
            shutil.rmtree(snapshot_dir, ignore_errors=True)
            raise
        finally:
            await asyncio.to_thread(connection.close)

        if result.transferred:
            result.snapshot_path = snapshot_dir
            if self.config.archive_for(self.host):
                archive_path = snapshot_dir.with_name(snapshot_dir.name + ".tar.gz")
                result.archive_path = await asyncio.to_thread(archive_directory, snapshot_dir, archive_path)
                result.snapshot_path = None

        await self.record_store.save_async(new_record)

        result.duration_s = time.monotonic() - started
        return result

    async def _transfer_phase(
        self,
        connection: SFTPConnection,
        prior: Record,
        snapshot_dir: Path,
        result: BackupResult,
    ) -> Record:
        """Walk, classify and download. Returns the record to persist."""
        remote_files = await self._remote_call(connection.walk, self.host.remote_root, self.host.excludes)
        detections: list[Detection] = await self._remote_call(
            self.detector.classify_all, remote_files, prior, connection.open
        )

        new_record: Record = {}
        for detection in detections:
            rf = detection.file
            if detection.state == FileState.UNCHANGED:
                new_record[rf.path] = detection.fingerprint or prior[rf.path]
                result.unchanged += 1
                continue

            logger.debug(f"{self.host.identifier}: {rf.path} is {detection.state} ({detection.reason})")
            new_record[rf.path] = await self._remote_call(self._transfer_file, connection, rf, snapshot_dir)
            result.transferred.append(rf.path)

        result.removed = sorted(detect_removed(prior, new_record))
        for rel_path in result.removed:
            logger.debug(f"{self.host.identifier}: {rel_path} was removed remotely")

        logger.info(
            f"{self.host.identifier}: {len(result.transferred)} transferred, "
            f"{result.unchanged} unchanged, {len(result.removed)} removed"
        )
        return new_record

    def _transfer_file(self, connection: SFTPConnection, rf: RemoteFile, snapshot_dir: Path) -> Fingerprint:
        """Download one file, restore its metadata, fingerprint the local copy."""
        local_path = snapshot_dir / rf.path
        connection.download(rf.remote_path, local_path)
        apply_metadata(local_path, rf)
        try:
            size = local_path.stat().st_size
            with open(local_path, "rb") as f:
                return self.detector.fingerprint(f, size, mtime=rf.mtime, mode=rf.mode)
        except OSError as e:
            raise FSError(f"Could not fingerprint {local_path}: {e}", host=self.host.identifier, path=rf.path) from e

    async def _remote_call(self, func, *args):
        """Run a blocking (paramiko) call in a worker thread, normalizing errors."""
        try:
            return await asyncio.to_thread(func, *args)
        except BackupError as e:
            e.host = self.host.identifier
            raise
        except (OSError, EOFError, paramiko.SSHException, ValueError) as e:
            raise TransferError(
                f"Remote operation failed for {self.host.hostname}: {e}", host=self.host.identifier
            ) from e


def _unique_snapshot_dir(backup_root: Path) -> Path:
    name = datetime.now().strftime(SNAPSHOT_TIME_FORMAT)
    candidate = backup_root / name
    suffix = 1
    while candidate.exists() or candidate.with_name(candidate.name + ".tar.gz").exists():
        candidate = backup_root / f"{name}.{suffix}"
        suffix += 1
    return candidate
