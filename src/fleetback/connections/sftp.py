"""
SFTP connection used by backup tasks.

Wraps a paramiko transport + SFTP client and exposes the handful of remote
operations a backup needs: tree listing, stat, random-access reads and
downloads.
"""

from __future__ import annotations

import fnmatch
import os
import stat as stat_mod
from pathlib import Path
from typing import IO, Any

import paramiko

from fleetback.backup.types import RemoteFile
from fleetback.config.types import SFTPConfig
from fleetback.exceptions import TransferError
from fleetback.utils.logging import get_logger

logger = get_logger("fleetback.connections.sftp")


class SFTPConnection:
    """
    Minimal SFTP connection wrapper.

    The connection is lazy: nothing touches the network until connect() (or the
    context manager) is used. A pre-built client can be injected for tests.
    """

    def __init__(self, config: SFTPConfig, *, client: Any | None = None):
        self.config = config
        self._transport: paramiko.Transport | None = None
        self._client: Any | None = client

    @property
    def name(self) -> str:
        return f"{self.config.username or ''}@{self.config.host}:{self.config.port}".lstrip("@")

    def connect(self) -> Any:
        """Connect (lazy) and return a live `paramiko.SFTPClient`."""
        if self._client is not None:
            return self._client

        cfg = self.config
        if not cfg.host:
            raise ValueError("SFTP connection missing host")

        transport = paramiko.Transport((cfg.host, cfg.port))
        transport.banner_timeout = cfg.connect_timeout_s
        transport.auth_timeout = cfg.connect_timeout_s

        pkey = None
        if cfg.private_key_path:
            pkey = _load_private_key(cfg.private_key_path, cfg.private_key_passphrase)

        try:
            transport.connect(
                hostkey=_lookup_host_key(cfg),
                username=cfg.username,
                password=cfg.password,
                pkey=pkey,
            )
        except Exception:
            transport.close()
            raise

        self._transport = transport
        self._client = paramiko.SFTPClient.from_transport(transport)
        logger.debug(f"Connected to {self.name}")
        return self._client

    def close(self) -> None:
        """Close SFTP client + underlying transport."""
        try:
            if self._client is not None:
                self._client.close()
        finally:
            self._client = None
        try:
            if self._transport is not None:
                self._transport.close()
        finally:
            self._transport = None

    def __enter__(self) -> SFTPConnection:
        self.connect()
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc: BaseException | None, tb: Any) -> None:
        self.close()

    # -- remote operations -------------------------------------------------

    def walk(self, root: str, excludes: tuple[str, ...] = ()) -> list[RemoteFile]:
        """
        List every regular file below ``root``.

        Paths in the result are relative to ``root`` and use '/' separators.
        Symlinks and special files are skipped. ``excludes`` are fnmatch
        patterns tested against the relative path; an excluded directory is
        not descended into.
        """
        client = self.connect()
        root = root.rstrip("/") or "/"
        results: list[RemoteFile] = []

        def walk_dir(dir_path: str, rel_dir: str) -> None:
            try:
                entries = client.listdir_attr(dir_path)
            except OSError as e:
                raise TransferError(f"Could not list {dir_path}: {e}", host=self.config.host, path=dir_path) from e

            for attr in entries:
                name = attr.filename
                rel_path = f"{rel_dir}/{name}" if rel_dir else name
                if _is_excluded(rel_path, excludes):
                    continue
                full_path = f"{dir_path.rstrip('/')}/{name}"
                mode = attr.st_mode or 0
                if stat_mod.S_ISDIR(mode):
                    walk_dir(full_path, rel_path)
                elif stat_mod.S_ISREG(mode):
                    results.append(
                        RemoteFile(
                            path=rel_path,
                            remote_path=full_path,
                            size=int(attr.st_size or 0),
                            mtime=int(attr.st_mtime or 0),
                            atime=int(attr.st_atime or 0),
                            mode=stat_mod.S_IMODE(mode),
                        )
                    )

        walk_dir(root, "")
        results.sort(key=lambda r: r.path)
        return results

    def open(self, remote_path: str) -> IO[bytes]:
        """Open a remote file for random-access binary reads."""
        client = self.connect()
        try:
            return client.open(remote_path, "rb")
        except OSError as e:
            raise TransferError(f"Could not open {remote_path}: {e}", host=self.config.host, path=remote_path) from e

    def download(self, remote_path: str, local_path: str | Path) -> None:
        """Download to ``local_path`` atomically (via a .part file)."""
        client = self.connect()
        local_path = Path(local_path)
        local_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = f"{local_path}.part"
        try:
            client.get(remote_path, tmp_path)
        except OSError as e:
            _remove_quietly(tmp_path)
            raise TransferError(
                f"Could not download {remote_path}: {e}", host=self.config.host, path=remote_path
            ) from e
        os.replace(tmp_path, local_path)


def _is_excluded(rel_path: str, excludes: tuple[str, ...]) -> bool:
    name = rel_path.rsplit("/", 1)[-1]
    return any(fnmatch.fnmatch(rel_path, pat) or fnmatch.fnmatch(name, pat) for pat in excludes)


def _load_private_key(path: str, passphrase: str | None) -> paramiko.PKey:
    # Try common key types; paramiko raises if incompatible.
    last_error: Exception | None = None
    for key_cls in (paramiko.Ed25519Key, paramiko.ECDSAKey, paramiko.RSAKey):
        try:
            return key_cls.from_private_key_file(path, password=passphrase)
        except paramiko.SSHException as e:
            last_error = e
    raise paramiko.SSHException(f"Unsupported private key {path}: {last_error}")


def _lookup_host_key(cfg: SFTPConfig) -> paramiko.PKey | None:
    """Return the pinned host key from known_hosts, or None to skip verification."""
    if not cfg.known_hosts_path:
        return None
    host_keys = paramiko.HostKeys(cfg.known_hosts_path)
    lookup_name = cfg.host if cfg.port == 22 else f"[{cfg.host}]:{cfg.port}"
    entry = host_keys.lookup(lookup_name)
    if not entry:
        raise paramiko.SSHException(f"No host key for {lookup_name} in {cfg.known_hosts_path}")
    return next(iter(entry.values()))


def _remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
