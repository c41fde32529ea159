"""
Observability module for fleetback.

Structured (JSON) logging with correlation ids and kind-tagged error records.
"""

from fleetback.observability.structured_logging import (
    StructuredFormatter,
    add_correlation_id,
    get_correlation_id,
    log_backup_end,
    log_backup_start,
    log_error,
)

__all__ = [
    "StructuredFormatter",
    "add_correlation_id",
    "get_correlation_id",
    "log_backup_start",
    "log_backup_end",
    "log_error",
]
