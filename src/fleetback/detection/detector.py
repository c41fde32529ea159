"""
Change detection for deciding which remote files to transfer.

Compares each remote file against the Fingerprint recorded by the previous
successful run and classifies it as new, changed or unchanged. Paths recorded
earlier but no longer present remotely are reported as removed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import IO

from fleetback.backup.types import RemoteFile
from fleetback.detection.fingerprint import WINDOW_SIZE, Fingerprint, compute_fingerprint
from fleetback.utils.logging import get_logger

logger = get_logger("fleetback.detection")


class FileState(StrEnum):
    """Outcome of comparing a file against the prior record."""

    NEW = "new"
    CHANGED = "changed"
    UNCHANGED = "unchanged"
    REMOVED = "removed"

    @property
    def needs_transfer(self) -> bool:
        return self in (FileState.NEW, FileState.CHANGED)


@dataclass(frozen=True)
class Detection:
    """Classification of one remote file.

    ``fingerprint`` is the freshly sampled remote fingerprint when the
    comparison required reading the file, otherwise None.
    """

    file: RemoteFile
    state: FileState
    reason: str
    fingerprint: Fingerprint | None = None


class ChangeDetector:
    """
    Classifies remote files against a prior record.

    Args:
        window_size: Bytes per sampled window
        sample_count: Windows sampled per file (start, evenly spaced, end)
        full_hash_below: Hash files smaller than this many bytes in full (0 disables)
    """

    def __init__(self, window_size: int = WINDOW_SIZE, sample_count: int = 3, full_hash_below: int = 0):
        self.window_size = window_size
        self.sample_count = sample_count
        self.full_hash_below = full_hash_below

    @classmethod
    def from_config(cls, config) -> ChangeDetector:
        return cls(
            window_size=config.window_size,
            sample_count=config.sample_count,
            full_hash_below=config.full_hash_below,
        )

    def fingerprint(self, fileobj: IO[bytes], size: int, *, mtime: int = 0, mode: int = 0) -> Fingerprint:
        return compute_fingerprint(
            fileobj,
            size,
            mtime=mtime,
            mode=mode,
            window_size=self.window_size,
            sample_count=self.sample_count,
            full_hash_below=self.full_hash_below,
        )

    def classify(
        self,
        remote: RemoteFile,
        prior: Fingerprint | None,
        opener: Callable[[str], IO[bytes]],
    ) -> Detection:
        """
        Classify one remote file.

        The file is only opened (via ``opener(remote.remote_path)``) when a prior
        fingerprint exists with a matching size; new and resized files are
        classified without reading any content.
        """
        if prior is None:
            return Detection(remote, FileState.NEW, "not in record")
        if prior.size != remote.size:
            return Detection(remote, FileState.CHANGED, f"size {prior.size} -> {remote.size}")

        with opener(remote.remote_path) as fileobj:
            current = self.fingerprint(fileobj, remote.size, mtime=remote.mtime, mode=remote.mode)

        if current.same_content(prior):
            return Detection(remote, FileState.UNCHANGED, "fingerprint match", current)
        return Detection(remote, FileState.CHANGED, "sampled content differs", current)

    def classify_all(
        self,
        remote_files: Iterable[RemoteFile],
        prior_record: Mapping[str, Fingerprint],
        opener: Callable[[str], IO[bytes]],
    ) -> list[Detection]:
        detections = [self.classify(rf, prior_record.get(rf.path), opener) for rf in remote_files]
        if logger.isEnabledFor(logging.DEBUG):
            counts: dict[str, int] = {}
            for d in detections:
                counts[d.state] = counts.get(d.state, 0) + 1
            logger.debug(f"Classified {len(detections)} files: {counts}")
        return detections


def detect_removed(prior_record: Mapping[str, Fingerprint], current_paths: Iterable[str]) -> set[str]:
    """Paths present in the prior record but missing from the current listing."""
    return set(prior_record) - set(current_paths)
