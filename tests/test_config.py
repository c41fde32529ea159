"""
Tests for configuration loading: global config, hosts file and path resolution.
"""

from pathlib import Path

import pytest

from fleetback.config.loader import (
    CONFIG_ENV_VAR,
    DEFAULT_CONFIG_PATH,
    load_global_config,
    load_hosts,
    resolve_config_path,
)
from fleetback.config.types import DEFAULT_CRON, GlobalConfig, Host, SFTPConfig
from fleetback.exceptions import ConfigurationError


def write(path: Path, text: str) -> Path:
    path.write_text(text)
    return path


class TestResolveConfigPath:
    """Tests for config path precedence."""

    def test_explicit_path_wins(self, monkeypatch):
        monkeypatch.setenv(CONFIG_ENV_VAR, "/from/env.yml")
        assert resolve_config_path("/explicit.yml") == Path("/explicit.yml")

    def test_env_var(self, monkeypatch):
        monkeypatch.setenv(CONFIG_ENV_VAR, "/from/env.yml")
        assert resolve_config_path() == Path("/from/env.yml")

    def test_default(self, monkeypatch):
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        assert resolve_config_path() == DEFAULT_CONFIG_PATH


class TestLoadGlobalConfig:
    """Tests for the global config file."""

    def test_minimal_config_uses_defaults(self, tmp_path):
        cfg_path = write(tmp_path / "config.yml", "hosts_file: hosts.yml\n")
        config = load_global_config(cfg_path)

        assert config.hosts_file == tmp_path / "hosts.yml"
        assert config.log_file is None
        assert config.default_cron == DEFAULT_CRON
        assert config.max_concurrency == 4
        assert config.tick_interval_s == 60.0
        assert config.task_timeout_s is None
        assert config.window_size == 1024
        assert config.sample_count == 3
        assert config.archive is False

    def test_full_config(self, tmp_path):
        cfg_path = write(
            tmp_path / "config.yml",
            """
hosts_file: /etc/fleetback/hosts.yml
log_file: logs/fleetback.log
log_level: debug
log_format: json
max_concurrency: 8
task_timeout_s: 3600
default_cron: "30 1 * * *"
timezone: Europe/Berlin
archive: true
change_detection:
  window_size: 4096
  sample_count: 5
  full_hash_below: 65536
""",
        )
        config = load_global_config(cfg_path)

        assert config.hosts_file == Path("/etc/fleetback/hosts.yml")
        assert config.log_file == tmp_path / "logs" / "fleetback.log"
        assert config.log_level == "debug"
        assert config.log_format == "json"
        assert config.max_concurrency == 8
        assert config.task_timeout_s == 3600.0
        assert config.default_cron == "30 1 * * *"
        assert config.timezone == "Europe/Berlin"
        assert config.archive is True
        assert config.window_size == 4096
        assert config.sample_count == 5
        assert config.full_hash_below == 65536

    def test_env_var_substitution(self, tmp_path, monkeypatch):
        monkeypatch.setenv("FLEETBACK_TEST_HOSTS", "/srv/hosts.yml")
        cfg_path = write(tmp_path / "config.yml", "hosts_file: ${FLEETBACK_TEST_HOSTS}\n")
        assert load_global_config(cfg_path).hosts_file == Path("/srv/hosts.yml")

    def test_path_from_env(self, tmp_path, monkeypatch):
        cfg_path = write(tmp_path / "custom.yml", "hosts_file: hosts.yml\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(cfg_path))
        assert load_global_config().hosts_file == tmp_path / "hosts.yml"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_global_config(tmp_path / "nope.yml")

    def test_invalid_yaml_reports_line(self, tmp_path):
        cfg_path = write(tmp_path / "config.yml", "hosts_file: [unclosed\n")
        with pytest.raises(ConfigurationError, match="line"):
            load_global_config(cfg_path)

    def test_missing_hosts_file(self, tmp_path):
        cfg_path = write(tmp_path / "config.yml", "log_level: INFO\n")
        with pytest.raises(ConfigurationError, match="hosts_file"):
            load_global_config(cfg_path)

    def test_not_a_mapping(self, tmp_path):
        cfg_path = write(tmp_path / "config.yml", "- a\n- b\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            load_global_config(cfg_path)

    def test_bad_log_format(self, tmp_path):
        cfg_path = write(tmp_path / "config.yml", "hosts_file: h.yml\nlog_format: xml\n")
        with pytest.raises(ConfigurationError, match="log_format"):
            load_global_config(cfg_path)

    def test_unknown_timezone(self, tmp_path):
        cfg_path = write(tmp_path / "config.yml", "hosts_file: h.yml\ntimezone: Mars/Olympus\n")
        with pytest.raises(ConfigurationError, match="timezone"):
            load_global_config(cfg_path)

    def test_out_of_range_values(self, tmp_path):
        cfg_path = write(tmp_path / "config.yml", "hosts_file: h.yml\nmax_concurrency: 0\n")
        with pytest.raises(ConfigurationError, match="max_concurrency"):
            load_global_config(cfg_path)

    def test_non_numeric_value(self, tmp_path):
        cfg_path = write(tmp_path / "config.yml", "hosts_file: h.yml\nmax_concurrency: lots\n")
        with pytest.raises(ConfigurationError, match="Invalid configuration value"):
            load_global_config(cfg_path)


class TestLoadHosts:
    """Tests for the hosts file."""

    def test_hosts_list(self, tmp_path):
        hosts_path = write(
            tmp_path / "hosts.yml",
            """
hosts:
  - hostname: 10.0.0.5
    identifier: web-1
    destination: /srv/backups
    cron_schedule: "30 2 * * *"
    remote_root: /var/www
    excludes: ["cache/*", "*.tmp"]
    archive: true
    sftp:
      port: 2222
      username: backup
      private_key_path: /etc/fleetback/id_ed25519
  - hostname: db.internal
    destination: /srv/backups
""",
        )
        hosts = load_hosts(hosts_path)

        assert len(hosts) == 2
        web = hosts[0]
        assert web.identifier == "web-1"
        assert web.hostname == "10.0.0.5"
        assert web.destination == Path("/srv/backups")
        assert web.cron_schedule == "30 2 * * *"
        assert web.remote_root == "/var/www"
        assert web.excludes == ("cache/*", "*.tmp")
        assert web.archive is True
        assert web.sftp.host == "10.0.0.5"
        assert web.sftp.port == 2222
        assert web.sftp.username == "backup"

        db = hosts[1]
        assert db.identifier == "db.internal"
        assert db.cron_schedule is None
        assert db.remote_root == "/"
        assert db.archive is None
        assert db.sftp.port == 22

    def test_bare_list(self, tmp_path):
        hosts_path = write(tmp_path / "hosts.yml", "- ip: 10.0.0.9\n  destination: /b\n")
        hosts = load_hosts(hosts_path)
        assert hosts[0].hostname == "10.0.0.9"

    def test_single_exclude_string(self, tmp_path):
        hosts_path = write(tmp_path / "hosts.yml", "hosts:\n  - hostname: a\n    destination: /b\n    excludes: '*.log'\n")
        assert load_hosts(hosts_path)[0].excludes == ("*.log",)

    def test_missing_hostname(self, tmp_path):
        hosts_path = write(tmp_path / "hosts.yml", "hosts:\n  - destination: /b\n")
        with pytest.raises(ConfigurationError, match="hostname"):
            load_hosts(hosts_path)

    def test_missing_destination(self, tmp_path):
        hosts_path = write(tmp_path / "hosts.yml", "hosts:\n  - hostname: a\n")
        with pytest.raises(ConfigurationError, match="destination"):
            load_hosts(hosts_path)

    def test_duplicate_identifier(self, tmp_path):
        hosts_path = write(
            tmp_path / "hosts.yml",
            "hosts:\n  - hostname: a\n    destination: /b\n  - hostname: a\n    destination: /c\n",
        )
        with pytest.raises(ConfigurationError, match="Duplicate"):
            load_hosts(hosts_path)

    def test_hosts_not_a_list(self, tmp_path):
        hosts_path = write(tmp_path / "hosts.yml", "hosts: nope\n")
        with pytest.raises(ConfigurationError, match="'hosts' list"):
            load_hosts(hosts_path)


class TestTypes:
    """Tests for the config dataclasses."""

    def test_identifier_defaults_to_hostname(self):
        host = Host(hostname="alpha", destination=Path("/b"), sftp=SFTPConfig(host="alpha"))
        assert host.identifier == "alpha"

    def test_record_path(self):
        host = Host(hostname="10.0.0.1", identifier="alpha", destination=Path("/b"), sftp=SFTPConfig(host="10.0.0.1"))
        assert host.backup_root == Path("/b/alpha")
        assert host.record_path == Path("/b/alpha/.records/record.json")

    def test_archive_override(self):
        config = GlobalConfig(hosts_file=Path("h.yml"), archive=False)
        sftp = SFTPConfig(host="a")
        assert config.archive_for(Host(hostname="a", destination=Path("/b"), sftp=sftp)) is False
        assert config.archive_for(Host(hostname="a", destination=Path("/b"), sftp=sftp, archive=True)) is True
