"""
Structured logging for fleetback.

JSON-formatted log lines with a per-task correlation id, so that failures can be
filtered by kind and host in a log aggregator.

Usage:
    from fleetback.observability import add_correlation_id, log_backup_start

    with add_correlation_id("alpha-1a2b3c4d"):
        log_backup_start("alpha")  # JSON line includes correlation_id
"""

import json
import logging
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

from fleetback.exceptions import BackupError

# Context variable for correlation ID
_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)

# LogRecord attributes that are never copied into the JSON payload
_RESERVED_ATTRS = frozenset(
    (
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "message",
        "thread",
        "threadName",
        "taskName",
    )
)


def get_correlation_id() -> str | None:
    """
    Get current correlation ID.

    Returns:
        Correlation ID or None if not set
    """
    return _correlation_id.get()


@contextmanager
def add_correlation_id(correlation_id: str | None = None) -> Any:
    """
    Context manager to add correlation ID to logs.

    Args:
        correlation_id: Correlation ID (auto-generated if not provided)

    Yields:
        The correlation ID
    """
    cid = correlation_id or str(uuid.uuid4())[:8]
    token = _correlation_id.set(cid)
    try:
        yield cid
    finally:
        _correlation_id.reset(token)


class StructuredFormatter(logging.Formatter):
    """
    JSON-formatted log formatter with structured fields.

    Includes timestamp, level, logger name, message, correlation id (if set),
    exception info (if present) and any ``extra=`` fields passed to the logger.
    """

    def __init__(self, extra_fields: dict[str, Any] | None = None):
        super().__init__()
        self.extra_fields = extra_fields or {}

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = get_correlation_id()
        if correlation_id:
            log_data["correlation_id"] = correlation_id

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                log_data[key] = value

        log_data.update(self.extra_fields)

        return json.dumps(log_data, default=str)


def log_backup_start(host: str, *, incremental: bool = True) -> None:
    """
    Log backup task start.

    Args:
        host: Host identifier
        incremental: Whether the run compares against the prior record
    """
    log = logging.getLogger("fleetback.backup")
    log.info(
        f"Starting backup of {host}",
        extra={"event": "backup.start", "host": host, "incremental": incremental},
    )


def log_backup_end(
    host: str,
    success: bool,
    duration: float,
    transferred: int | None = None,
    error: BackupError | Exception | None = None,
) -> None:
    """
    Log backup task end.

    Args:
        host: Host identifier
        success: Whether the run succeeded
        duration: Run duration in seconds
        transferred: Number of files transferred
        error: Error if the run failed
    """
    log = logging.getLogger("fleetback.backup")

    extra: dict[str, Any] = {
        "event": "backup.end",
        "host": host,
        "success": success,
        "duration_seconds": round(duration, 3),
    }
    if transferred is not None:
        extra["transferred"] = transferred

    if error is not None:
        log_error(error, host=host, extra=extra)
    else:
        log.info(f"Backup of {host} completed in {duration:.2f}s", extra=extra)


def log_error(
    error: BackupError | Exception,
    *,
    host: str | None = None,
    level: int = logging.ERROR,
    extra: dict[str, Any] | None = None,
) -> None:
    """
    Log an error with its kind/host/path fields attached.

    Non-BackupError exceptions are logged with kind ``Unexpected``.
    """
    log = logging.getLogger("fleetback.errors")
    fields: dict[str, Any] = dict(extra or {})
    exc_info: BaseException | None = None
    if isinstance(error, BackupError):
        fields.update(error.to_log_fields())
        message = error.message
    else:
        fields["kind"] = "Unexpected"
        message = f"{type(error).__name__}: {error}"
        exc_info = error
    if host is not None:
        fields.setdefault("host", host)

    prefix = f"[{fields['kind']}]"
    if fields.get("host"):
        prefix += f" {fields['host']}:"
    log.log(level, f"{prefix} {message}", extra=fields, exc_info=exc_info)
