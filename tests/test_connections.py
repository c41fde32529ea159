"""
Tests for the SFTP connection wrapper.

Remote operations run against the in-memory client from conftest; the paramiko
transport path is covered with mocks.
"""

from unittest.mock import MagicMock, patch

import paramiko
import pytest

from fleetback.config.types import SFTPConfig
from fleetback.connections.sftp import SFTPConnection, _is_excluded, _lookup_host_key
from fleetback.exceptions import TransferError

FILES = {
    "/srv/a.txt": b"aaa",
    "/srv/logs/app.log": b"log",
    "/srv/logs/old/app.log.1": b"older",
    "/srv/cache/blob": b"cached",
}


@pytest.fixture
def connection_for(fake_sftp):
    def make(files, **kwargs):
        client, factory = fake_sftp(files, **kwargs)
        return factory(SFTPConfig(host="alpha.example.com", username="backup")), client

    return make


class TestSFTPConnection:
    """Tests for connection lifecycle."""

    def test_name(self):
        conn = SFTPConnection(SFTPConfig(host="alpha", port=2222, username="backup"))
        assert conn.name == "backup@alpha:2222"

    def test_name_without_username(self):
        assert SFTPConnection(SFTPConfig(host="alpha")).name == "alpha:22"

    def test_injected_client_skips_transport(self, connection_for):
        conn, client = connection_for(FILES)
        with patch("fleetback.connections.sftp.paramiko.Transport") as transport:
            assert conn.connect() is client
        transport.assert_not_called()

    def test_context_manager_closes(self, connection_for):
        conn, client = connection_for(FILES)
        with conn:
            pass
        assert client.closed

    def test_close_idempotent(self, connection_for):
        conn, _ = connection_for(FILES)
        conn.close()
        conn.close()

    def test_connect_uses_transport(self):
        cfg = SFTPConfig(host="alpha", username="backup", password="secret", connect_timeout_s=5)
        with (
            patch("fleetback.connections.sftp.paramiko.Transport") as transport_cls,
            patch("fleetback.connections.sftp.paramiko.SFTPClient.from_transport") as from_transport,
        ):
            conn = SFTPConnection(cfg)
            client = conn.connect()

        transport_cls.assert_called_once_with(("alpha", 22))
        transport_cls.return_value.connect.assert_called_once_with(
            hostkey=None, username="backup", password="secret", pkey=None
        )
        assert client is from_transport.return_value

    def test_connect_failure_closes_transport(self):
        with patch("fleetback.connections.sftp.paramiko.Transport") as transport_cls:
            transport_cls.return_value.connect.side_effect = paramiko.AuthenticationException("denied")
            with pytest.raises(paramiko.AuthenticationException):
                SFTPConnection(SFTPConfig(host="alpha")).connect()
        transport_cls.return_value.close.assert_called_once()


class TestWalk:
    """Tests for the recursive listing."""

    def test_lists_regular_files_relative_to_root(self, connection_for):
        conn, _ = connection_for(FILES)
        files = conn.walk("/srv")
        assert [f.path for f in files] == ["a.txt", "cache/blob", "logs/app.log", "logs/old/app.log.1"]
        assert files[0].remote_path == "/srv/a.txt"
        assert files[0].size == 3
        assert files[0].mode == 0o640

    def test_trailing_slash(self, connection_for):
        conn, _ = connection_for(FILES)
        assert [f.path for f in conn.walk("/srv/")][0] == "a.txt"

    def test_excludes_prune_directories(self, connection_for):
        conn, client = connection_for(FILES)
        files = conn.walk("/srv", excludes=("cache", "logs/old"))
        assert [f.path for f in files] == ["a.txt", "logs/app.log"]

    def test_skips_special_files(self, connection_for):
        conn, client = connection_for({"/srv/a": b"x"})
        link = paramiko.SFTPAttributes()
        link.filename = "link"
        link.st_mode = 0o120777
        original = client.listdir_attr
        client.listdir_attr = lambda path: original(path) + [link]
        assert [f.path for f in conn.walk("/srv")] == ["a"]

    def test_missing_root(self, connection_for):
        conn, _ = connection_for(FILES)
        with pytest.raises(TransferError, match="Could not list /missing"):
            conn.walk("/missing")

    @pytest.mark.parametrize(
        "rel_path,patterns,expected",
        [
            ("logs/app.log", ("*.log",), True),
            ("logs/app.log", ("logs/*",), True),
            ("logs", ("logs",), True),
            ("a.txt", ("*.log",), False),
            ("a.txt", (), False),
        ],
    )
    def test_is_excluded(self, rel_path, patterns, expected):
        assert _is_excluded(rel_path, patterns) is expected


class TestTransfer:
    """Tests for open/download."""

    def test_open(self, connection_for):
        conn, _ = connection_for(FILES)
        with conn.open("/srv/a.txt") as f:
            assert f.read() == b"aaa"

    def test_open_missing(self, connection_for):
        conn, _ = connection_for(FILES)
        with pytest.raises(TransferError):
            conn.open("/srv/nope")

    def test_download_creates_parents(self, connection_for, tmp_path):
        conn, _ = connection_for(FILES)
        target = tmp_path / "snap" / "logs" / "app.log"
        conn.download("/srv/logs/app.log", target)
        assert target.read_bytes() == b"log"
        assert not (tmp_path / "snap" / "logs" / "app.log.part").exists()

    def test_download_failure_leaves_nothing(self, connection_for, tmp_path):
        conn, _ = connection_for(FILES, fail_on={"/srv/a.txt"})
        target = tmp_path / "a.txt"
        with pytest.raises(TransferError, match="/srv/a.txt"):
            conn.download("/srv/a.txt", target)
        assert list(tmp_path.iterdir()) == []


class TestHostKeys:
    """Tests for known_hosts pinning."""

    def test_no_known_hosts_skips_verification(self):
        assert _lookup_host_key(SFTPConfig(host="alpha")) is None

    def test_lookup_uses_bracketed_name_for_custom_port(self):
        cfg = SFTPConfig(host="alpha", port=2222, known_hosts_path="/tmp/known_hosts")
        key = MagicMock()
        with patch("fleetback.connections.sftp.paramiko.HostKeys") as host_keys:
            host_keys.return_value.lookup.return_value = {"ssh-ed25519": key}
            assert _lookup_host_key(cfg) is key
        host_keys.return_value.lookup.assert_called_once_with("[alpha]:2222")

    def test_unknown_host_raises(self):
        cfg = SFTPConfig(host="alpha", known_hosts_path="/tmp/known_hosts")
        with patch("fleetback.connections.sftp.paramiko.HostKeys") as host_keys:
            host_keys.return_value.lookup.return_value = None
            with pytest.raises(paramiko.SSHException):
                _lookup_host_key(cfg)
