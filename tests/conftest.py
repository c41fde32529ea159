"""
Shared fixtures: an in-memory SFTP server and host/config builders.
"""

import io
import stat
from pathlib import Path

import paramiko
import pytest

from fleetback.config.types import GlobalConfig, Host, SFTPConfig
from fleetback.connections.sftp import SFTPConnection


class FakeSFTPClient:
    """
    Stand-in for paramiko.SFTPClient backed by a dict of ``remote_path -> bytes``.

    Directories are implied by the file paths. ``fail_on`` makes ``get``/``open``
    raise OSError for the listed remote paths.
    """

    def __init__(self, files: dict[str, bytes], *, mtimes=None, modes=None, fail_on=()):
        self.files = dict(files)
        self.mtimes = dict(mtimes or {})
        self.modes = dict(modes or {})
        self.fail_on = set(fail_on)
        self.opened: list[str] = []
        self.downloaded: list[str] = []
        self.closed = False

    def _children(self, dir_path: str) -> dict[str, bool]:
        prefix = dir_path.rstrip("/") + "/"
        children: dict[str, bool] = {}
        for path in self.files:
            if not path.startswith(prefix):
                continue
            head, sep, _ = path[len(prefix) :].partition("/")
            children[head] = children.get(head, False) or bool(sep)
        return children

    def listdir_attr(self, path: str) -> list[paramiko.SFTPAttributes]:
        children = self._children(path)
        if not children:
            raise FileNotFoundError(2, "No such file", path)
        result = []
        for name, is_dir in sorted(children.items()):
            full = f"{path.rstrip('/')}/{name}"
            attr = paramiko.SFTPAttributes()
            attr.filename = name
            if is_dir:
                attr.st_mode = stat.S_IFDIR | 0o755
                attr.st_size = 4096
                attr.st_mtime = 1_700_000_000
            else:
                attr.st_mode = stat.S_IFREG | self.modes.get(full, 0o640)
                attr.st_size = len(self.files[full])
                attr.st_mtime = self.mtimes.get(full, 1_700_000_000)
            attr.st_atime = attr.st_mtime
            result.append(attr)
        return result

    def open(self, path: str, mode: str = "r") -> io.BytesIO:
        if path in self.fail_on or path not in self.files:
            raise FileNotFoundError(2, "No such file", path)
        self.opened.append(path)
        return io.BytesIO(self.files[path])

    def get(self, remotepath: str, localpath: str) -> None:
        if remotepath in self.fail_on or remotepath not in self.files:
            raise OSError(f"Failure reading {remotepath}")
        with open(localpath, "wb") as f:
            f.write(self.files[remotepath])
        self.downloaded.append(remotepath)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_sftp():
    """Factory returning (client, connection_factory) for a dict of remote files."""

    def make(files: dict[str, bytes], **kwargs):
        client = FakeSFTPClient(files, **kwargs)
        return client, lambda cfg: SFTPConnection(cfg, client=client)

    return make


@pytest.fixture
def make_host(tmp_path: Path):
    def make(identifier: str = "alpha", **kwargs) -> Host:
        kwargs.setdefault("destination", tmp_path / "backups")
        kwargs.setdefault("remote_root", "/data")
        hostname = kwargs.pop("hostname", f"{identifier}.example.com")
        return Host(
            hostname=hostname,
            identifier=identifier,
            sftp=SFTPConfig(host=f"{identifier}.example.com", username="backup"),
            **kwargs,
        )

    return make


@pytest.fixture
def global_config(tmp_path: Path) -> GlobalConfig:
    return GlobalConfig(hosts_file=tmp_path / "hosts.yml")
