"""
fleetback - scheduled incremental SFTP backups for a fleet of hosts.

Each host is pulled over SFTP on its own cron schedule. Files are compared
with the last successful run using sampled SHA3-256 window hashes, and only
new or changed files are transferred.
"""

__version__ = "0.1.0"

from fleetback.backup.task import BackupTask
from fleetback.backup.types import BackupResult, RemoteFile
from fleetback.config.loader import load_global_config, load_hosts
from fleetback.config.types import GlobalConfig, Host, SFTPConfig
from fleetback.detection.detector import ChangeDetector, FileState
from fleetback.detection.fingerprint import Fingerprint

# Exceptions
from fleetback.exceptions import (
    BackupError,
    ConfigurationError,
    FSError,
    InvalidInputError,
    MissingError,
    SchedulerError,
    TransferError,
)
from fleetback.records.store import RecordStore
from fleetback.service.daemon import BackupService, run_daemon
from fleetback.service.executor import Executor, run_backup
from fleetback.service.queue import TaskQueue
from fleetback.service.scheduler import Scheduler

# Logging utilities
from fleetback.utils.logging import get_logger, setup_logging, setup_logging_from_config

__all__ = [
    "__version__",
    # Backup
    "BackupTask",
    "BackupResult",
    "RemoteFile",
    # Config
    "GlobalConfig",
    "Host",
    "SFTPConfig",
    "load_global_config",
    "load_hosts",
    # Change detection
    "ChangeDetector",
    "FileState",
    "Fingerprint",
    "RecordStore",
    # Service
    "BackupService",
    "Executor",
    "Scheduler",
    "TaskQueue",
    "run_backup",
    "run_daemon",
    # Exceptions
    "BackupError",
    "ConfigurationError",
    "FSError",
    "InvalidInputError",
    "MissingError",
    "SchedulerError",
    "TransferError",
    # Logging
    "get_logger",
    "setup_logging",
    "setup_logging_from_config",
]
