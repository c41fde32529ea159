"""
Partial content hashing.

A Fingerprint holds a file's size, mtime/mode and the SHA3-256 digests of a few
fixed-size windows sampled from the file. Only the windows are read, which keeps
incremental runs cheap on large files at the cost of missing edits that fall
entirely outside the sampled windows.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import IO, Any

WINDOW_SIZE = 1024
FULL_HASH_KEY = "full"
_FULL_HASH_CHUNK = 64 * 1024


@dataclass(frozen=True)
class Fingerprint:
    """Change-detection state for one file.

    ``hashes`` maps a sampled byte offset (as a string, to match the JSON record
    layout) to the hex digest of the window starting there. Files hashed in
    full use the single key ``"full"``.
    """

    size: int
    hashes: dict[str, str] = field(default_factory=dict)
    mtime: int = 0
    mode: int = 0

    def same_content(self, other: Fingerprint) -> bool:
        """Heuristic equality: same size and same sampled digests."""
        return self.size == other.size and self.hashes == other.hashes

    def to_dict(self) -> dict[str, Any]:
        return {"size": self.size, "mtime": self.mtime, "mode": self.mode, "hashes": dict(self.hashes)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Fingerprint:
        """Build from a record entry; raises KeyError/TypeError/ValueError on bad input."""
        hashes = data.get("hashes")
        if hashes is None and "hash" in data:
            # Single-window shorthand: {"size": 10, "hash": "..."}
            hashes = {"0": data["hash"]}
        if not isinstance(hashes, dict):
            raise ValueError("fingerprint 'hashes' must be a mapping")
        return cls(
            size=int(data["size"]),
            hashes={str(k): str(v) for k, v in hashes.items()},
            mtime=int(data.get("mtime", 0)),
            mode=int(data.get("mode", 0)),
        )


def hash_window(fileobj: IO[bytes], offset: int, window_size: int = WINDOW_SIZE) -> str:
    """
    Hash ``window_size`` bytes starting at ``offset``.

    A short read near EOF hashes whatever was read, so an empty file hashes to
    the digest of ``b""``.

    Args:
        fileobj: Seekable binary file (local file or paramiko SFTPFile)
        offset: Byte offset of the window
        window_size: Number of bytes to hash

    Returns:
        SHA3-256 hex digest
    """
    digest = hashlib.sha3_256()
    fileobj.seek(offset)
    digest.update(fileobj.read(window_size))
    return digest.hexdigest()


def hash_full(fileobj: IO[bytes]) -> str:
    """SHA3-256 of the entire file content."""
    digest = hashlib.sha3_256()
    fileobj.seek(0)
    for chunk in iter(lambda: fileobj.read(_FULL_HASH_CHUNK), b""):
        digest.update(chunk)
    return digest.hexdigest()


def sample_offsets(size: int, window_size: int = WINDOW_SIZE, sample_count: int = 3) -> list[int]:
    """
    Offsets of the windows to sample for a file of ``size`` bytes.

    Always includes the first window; with two or more samples the last window
    (ending at EOF) is included and the rest are spread evenly between.
    A file no larger than one window is sampled once at offset 0.

    Examples:
        >>> sample_offsets(500)
        [0]
        >>> sample_offsets(10_000, 1024, 3)
        [0, 4488, 8976]
    """
    if size <= window_size or sample_count <= 1:
        return [0]

    last = size - window_size
    step = last / (sample_count - 1)
    offsets = {int(round(i * step)) for i in range(sample_count)}
    return sorted(offsets)


def compute_fingerprint(
    fileobj: IO[bytes],
    size: int,
    *,
    mtime: int = 0,
    mode: int = 0,
    window_size: int = WINDOW_SIZE,
    sample_count: int = 3,
    full_hash_below: int = 0,
) -> Fingerprint:
    """
    Build the Fingerprint of an open file.

    Files smaller than ``full_hash_below`` bytes are hashed in full instead of
    sampled.
    """
    if full_hash_below and size < full_hash_below:
        hashes = {FULL_HASH_KEY: hash_full(fileobj)}
    else:
        hashes = {
            str(offset): hash_window(fileobj, offset, window_size)
            for offset in sample_offsets(size, window_size, sample_count)
        }
    return Fingerprint(size=size, hashes=hashes, mtime=mtime, mode=mode)
