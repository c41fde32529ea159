"""
Snapshot archiving.

Packs a finished snapshot directory into a single ``.tar.gz`` next to it and
removes the directory. Entries are stored relative to the snapshot root so the
archive extracts to the host's relative layout.
"""

from __future__ import annotations

import os
import shutil
import tarfile
from pathlib import Path

from fleetback.exceptions import FSError
from fleetback.utils.logging import get_logger

logger = get_logger("fleetback.backup.archive")


def archive_directory(source_dir: str | Path, output_path: str | Path, *, remove_source: bool = True) -> Path:
    """
    Archive ``source_dir`` into ``output_path`` (gzip-compressed tar).

    The archive is written to a ``.part`` file and renamed into place, so a
    failed run never leaves a truncated archive under the final name.

    Args:
        source_dir: Directory to archive
        output_path: Destination .tar.gz path
        remove_source: Delete ``source_dir`` after a successful archive

    Returns:
        The archive path

    Raises:
        FSError: If the archive cannot be written
    """
    source_dir = Path(source_dir)
    output_path = Path(output_path)
    if not source_dir.is_dir():
        raise FSError(f"Cannot archive {source_dir}: not a directory", path=str(source_dir))
    if output_path.resolve().is_relative_to(source_dir.resolve()):
        raise FSError(f"Archive {output_path} must not be inside {source_dir}", path=str(output_path))

    tmp_path = output_path.with_name(output_path.name + ".part")
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with tarfile.open(tmp_path, "w:gz") as tar:
            for entry in sorted(source_dir.iterdir()):
                tar.add(entry, arcname=entry.name)
        os.replace(tmp_path, output_path)
    except (OSError, tarfile.TarError) as e:
        try:
            tmp_path.unlink()
        except FileNotFoundError:
            pass
        raise FSError(f"Could not archive {source_dir} to {output_path}: {e}", path=str(output_path)) from e

    if remove_source:
        shutil.rmtree(source_dir)
    logger.debug(f"Archived {source_dir} -> {output_path}")
    return output_path
