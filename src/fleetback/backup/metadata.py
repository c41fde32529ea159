"""
Preserve remote file metadata on transferred copies.
"""

from __future__ import annotations

import os
from pathlib import Path

from fleetback.backup.types import RemoteFile
from fleetback.exceptions import FSError


def apply_metadata(local_path: str | Path, remote: RemoteFile) -> None:
    """
    Apply the remote permissions and access/modify times to a local copy.

    Size is not touched: the copy was downloaded whole.

    Raises:
        FSError: If the local file cannot be updated
    """
    try:
        os.chmod(local_path, remote.mode & 0o7777)
        os.utime(local_path, (remote.atime or remote.mtime, remote.mtime))
    except OSError as e:
        raise FSError(f"Could not apply metadata to {local_path}: {e}", path=str(local_path)) from e
