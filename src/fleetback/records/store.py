"""
Per-host record persistence.

A record maps each backed-up path (relative to the host's remote root) to its
Fingerprint. It lives at ``<destination>/<identifier>/.records/record.json`` and
is replaced atomically: the new content is written to a temp file in the same
directory, fsynced, then renamed over the old file. A crash mid-write therefore
leaves either the old record or the new one, never a truncated file.

Sync functions are used by the CLI and tests; the async variants (aiofiles) are
used by backup tasks running on the event loop.
"""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
import uuid
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os

from fleetback.detection.fingerprint import Fingerprint
from fleetback.exceptions import FSError
from fleetback.utils.logging import get_logger

logger = get_logger("fleetback.records")

RECORD_VERSION = 1

Record = dict[str, Fingerprint]


# -- (de)serialization -------------------------------------------------------


def serialize_record(record: Record) -> str:
    entries = {path: fp.to_dict() for path, fp in sorted(record.items())}
    return json.dumps({"version": RECORD_VERSION, "entries": entries}, sort_keys=True)


def deserialize_record(text: str, *, path: Path | None = None) -> Record:
    """
    Parse record JSON.

    Accepts the versioned envelope ``{"version": 1, "entries": {...}}`` as well
    as a bare ``{path: fingerprint}`` mapping.

    Raises:
        FSError: If the content is not a valid record
    """
    where = str(path) if path else "<record>"
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise FSError(f"Record {where} is not valid JSON: {e}", path=where) from e

    if not isinstance(data, dict):
        raise FSError(f"Record {where} must be a JSON object", path=where)

    if "entries" in data and "version" in data:
        version = data.get("version")
        if version != RECORD_VERSION:
            raise FSError(f"Record {where} has unsupported version {version!r}", path=where)
        entries = data["entries"]
    else:
        entries = data

    if not isinstance(entries, dict):
        raise FSError(f"Record {where} entries must be a JSON object", path=where)

    record: Record = {}
    for rel_path, entry in entries.items():
        try:
            record[rel_path] = Fingerprint.from_dict(entry)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise FSError(f"Record {where} has a malformed entry for '{rel_path}': {e}", path=where) from e
    return record


# -- sync API ----------------------------------------------------------------


def load_record(path: str | Path) -> Record:
    """
    Load a record.

    Raises:
        FSError: If the file is missing, unreadable or malformed
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise FSError(f"Could not read record {path}: {e}", path=str(path)) from e
    return deserialize_record(text, path=path)


def load_record_or_empty(path: str | Path) -> Record:
    """
    Load a record, treating a missing file as "no prior backup".

    A file that exists but cannot be parsed still raises FSError: silently
    starting from an empty record would re-transfer everything and hide the
    corruption.
    """
    path = Path(path)
    if not path.exists():
        logger.info(f"No record at {path}; treating as first backup")
        return {}
    return load_record(path)


def save_record(path: str | Path, record: Record) -> None:
    """
    Atomically write a record.

    Raises:
        FSError: If the record cannot be written; the previous file is left untouched
    """
    path = Path(path)
    payload = serialize_record(record)
    tmp_name: str | None = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", dir=path.parent, prefix=f".{path.name}.", suffix=".tmp", delete=False
        ) as tmp:
            tmp_name = tmp.name
            tmp.write(payload)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp_name, path)
        tmp_name = None
        _fsync_dir(path.parent)
    except OSError as e:
        raise FSError(f"Could not write record {path}: {e}", path=str(path)) from e
    finally:
        if tmp_name is not None:
            _remove_quietly(tmp_name)
    logger.debug(f"Wrote record {path} ({len(record)} entries)")


# -- async API ---------------------------------------------------------------


async def load_record_async(path: str | Path) -> Record:
    """Async variant of load_record (aiofiles)."""
    path = Path(path)
    try:
        async with aiofiles.open(path, encoding="utf-8") as f:
            text = await f.read()
    except OSError as e:
        raise FSError(f"Could not read record {path}: {e}", path=str(path)) from e
    return deserialize_record(text, path=path)


async def load_record_or_empty_async(path: str | Path) -> Record:
    """Async variant of load_record_or_empty (aiofiles)."""
    path = Path(path)
    if not await aiofiles.os.path.exists(path):
        logger.info(f"No record at {path}; treating as first backup")
        return {}
    return await load_record_async(path)


async def save_record_async(path: str | Path, record: Record) -> None:
    """Async variant of save_record (aiofiles); same atomicity guarantee."""
    path = Path(path)
    payload = serialize_record(record)
    tmp_path = path.parent / f".{path.name}.{uuid.uuid4().hex[:8]}.tmp"
    replaced = False
    try:
        await aiofiles.os.makedirs(path.parent, exist_ok=True)
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(payload)
            await f.flush()
            await asyncio.to_thread(os.fsync, f.fileno())
        await aiofiles.os.replace(tmp_path, path)
        replaced = True
        await asyncio.to_thread(_fsync_dir, path.parent)
    except OSError as e:
        raise FSError(f"Could not write record {path}: {e}", path=str(path)) from e
    finally:
        if not replaced:
            _remove_quietly(str(tmp_path))
    logger.debug(f"Wrote record {path} ({len(record)} entries)")


class RecordStore:
    """Record persistence bound to one host's record path."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> Record:
        return load_record(self.path)

    def load_or_empty(self) -> Record:
        return load_record_or_empty(self.path)

    def save(self, record: Record) -> None:
        save_record(self.path, record)

    async def load_or_empty_async(self) -> Record:
        return await load_record_or_empty_async(self.path)

    async def save_async(self, record: Record) -> None:
        await save_record_async(self.path, record)

    def __repr__(self) -> str:
        return f"RecordStore({str(self.path)!r})"


def _fsync_dir(directory: Path) -> None:
    # Persist the rename itself; not supported on every platform.
    try:
        fd = os.open(directory, os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError:
        pass
    finally:
        os.close(fd)


def _remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


def record_summary(record: Record) -> dict[str, Any]:
    return {"entries": len(record), "bytes": sum(fp.size for fp in record.values())}
