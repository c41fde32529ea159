"""
Per-host record persistence (path -> Fingerprint).
"""

from fleetback.records.store import (
    Record,
    RecordStore,
    load_record,
    load_record_async,
    load_record_or_empty,
    load_record_or_empty_async,
    save_record,
    save_record_async,
)

__all__ = [
    "Record",
    "RecordStore",
    "load_record",
    "load_record_or_empty",
    "save_record",
    "load_record_async",
    "load_record_or_empty_async",
    "save_record_async",
]
