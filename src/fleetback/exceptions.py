"""
fleetback exception hierarchy.

All domain-specific exceptions inherit from BackupError. Each subclass carries
a ``kind`` tag so failures can be logged and filtered in a machine-parseable way
without relying on class names.

Hierarchy::

    BackupError
    ├── FSError               - local file I/O, record read/write     (kind=FS)
    ├── InvalidInputError     - malformed cron expression or value    (kind=InvalidInput)
    ├── MissingError          - absent value with a stated default    (kind=Missing)
    ├── SchedulerError        - scheduler/executor loop failures      (kind=Scheduler)
    ├── TransferError         - remote SFTP failures during a backup  (kind=Transfer)
    └── ConfigurationError    - fatal startup configuration failure   (kind=Config)
"""

from __future__ import annotations

from typing import Any


class BackupError(Exception):
    """Base exception for all fleetback errors."""

    kind = "Backup"

    def __init__(
        self,
        message: str,
        *,
        host: str | None = None,
        path: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.host = host
        self.path = path
        self.details = details or {}

    def to_log_fields(self) -> dict[str, Any]:
        """Fields attached to log records via ``extra=``."""
        fields: dict[str, Any] = {"kind": self.kind}
        if self.host is not None:
            fields["host"] = self.host
        if self.path is not None:
            fields["path"] = self.path
        if self.details:
            fields["details"] = self.details
        return fields


class FSError(BackupError):
    """Raised when a local file or record cannot be read or written."""

    kind = "FS"


class InvalidInputError(BackupError):
    """Raised when a cron expression or configuration value is malformed."""

    kind = "InvalidInput"


class MissingError(BackupError):
    """Raised (or logged) when an expected value is absent and a default applies."""

    kind = "Missing"


class SchedulerError(BackupError):
    """Raised when the scheduling or execution loop fails."""

    kind = "Scheduler"


class TransferError(BackupError):
    """Raised when a remote operation fails during a backup run."""

    kind = "Transfer"


class ConfigurationError(BackupError):
    """Raised when startup configuration cannot be loaded.

    Always fatal: the daemon must not schedule against unknown hosts.
    """

    kind = "Config"
