"""
Configuration file loading.

Two YAML files drive the daemon: the global config (paths, defaults, executor
limits) and the hosts file it points at. Both are loaded once at startup; any
error here is fatal and surfaces as ConfigurationError.
"""

import os
import re
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from fleetback.config.types import DEFAULT_CRON, GlobalConfig, Host, SFTPConfig
from fleetback.exceptions import ConfigurationError

DEFAULT_CONFIG_PATH = Path("/etc/fleetback/config.yml")
CONFIG_ENV_VAR = "FLEETBACK_CONFIG"

_ENV_VAR_PATTERN = re.compile(r"\${([^}]+)}")


def resolve_config_path(path: str | Path | None = None) -> Path:
    """Pick the global config path: explicit argument, then $FLEETBACK_CONFIG, then the default."""
    if path:
        return Path(path)
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    return DEFAULT_CONFIG_PATH


def load_yaml(path: Path) -> Any:
    """
    Read and parse a YAML file.

    Raises:
        ConfigurationError: If the file is missing, unreadable or not valid YAML
    """
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}", path=str(path))
    if not path.is_file():
        raise ConfigurationError(f"Configuration path is not a file: {path}", path=str(path))

    try:
        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                mark = getattr(e, "problem_mark", None)
                if mark is not None:
                    raise ConfigurationError(
                        f"Error parsing {path.name} at line {mark.line + 1}, column {mark.column + 1}:\n"
                        f"  {e}\n"
                        f"  Suggestion: Check YAML syntax, ensure proper indentation and quotes",
                        path=str(path),
                    ) from e
                raise ConfigurationError(f"Error parsing {path.name}: {e}", path=str(path)) from e
    except PermissionError as e:
        raise ConfigurationError(
            f"Permission denied reading {path}\n  Suggestion: Check file permissions", path=str(path)
        ) from e

    return _substitute_env_vars(data if data is not None else {})


def load_global_config(path: str | Path | None = None) -> GlobalConfig:
    """
    Load the global configuration.

    Args:
        path: Config file path (default: $FLEETBACK_CONFIG or /etc/fleetback/config.yml)

    Returns:
        GlobalConfig instance

    Raises:
        ConfigurationError: If the file is missing, malformed or holds invalid values
    """
    config_path = resolve_config_path(path)
    data = load_yaml(config_path)
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Configuration must be a mapping, got {type(data).__name__}", path=str(config_path)
        )

    hosts_file = data.get("hosts_file") or data.get("hosts")
    if not hosts_file:
        raise ConfigurationError("Configuration is missing 'hosts_file'", path=str(config_path))

    log_format = str(data.get("log_format", "text")).lower()
    if log_format not in ("text", "json"):
        raise ConfigurationError(
            f"log_format must be 'text' or 'json', got {log_format!r}", path=str(config_path)
        )

    timezone = data.get("timezone")
    if timezone:
        try:
            ZoneInfo(str(timezone))
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigurationError(f"Unknown timezone {timezone!r}", path=str(config_path)) from e

    change_detection = data.get("change_detection") or {}
    if not isinstance(change_detection, dict):
        raise ConfigurationError("'change_detection' must be a mapping", path=str(config_path))

    base_dir = config_path.parent
    log_file = data.get("log_file")

    try:
        config = GlobalConfig(
            hosts_file=_relative_to(base_dir, hosts_file),
            log_file=_relative_to(base_dir, log_file) if log_file else None,
            log_level=str(data.get("log_level", "INFO")),
            log_format=log_format,
            tick_interval_s=float(data.get("tick_interval_s", 60.0)),
            poll_interval_s=float(data.get("poll_interval_s", 0.5)),
            max_concurrency=int(data.get("max_concurrency", 4)),
            task_timeout_s=_optional_float(data.get("task_timeout_s")),
            default_cron=str(data.get("default_cron") or DEFAULT_CRON),
            timezone=str(timezone) if timezone else None,
            archive=bool(data.get("archive", False)),
            window_size=int(change_detection.get("window_size", 1024)),
            sample_count=int(change_detection.get("sample_count", 3)),
            full_hash_below=int(change_detection.get("full_hash_below", 0)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid configuration value: {e}", path=str(config_path)) from e

    _validate(config, config_path)
    return config


def _validate(config: GlobalConfig, config_path: Path) -> None:
    errors = []
    if config.tick_interval_s <= 0:
        errors.append("tick_interval_s must be > 0")
    if config.poll_interval_s <= 0:
        errors.append("poll_interval_s must be > 0")
    if config.max_concurrency < 1:
        errors.append("max_concurrency must be >= 1")
    if config.task_timeout_s is not None and config.task_timeout_s <= 0:
        errors.append("task_timeout_s must be > 0")
    if config.window_size < 1:
        errors.append("change_detection.window_size must be >= 1")
    if config.sample_count < 1:
        errors.append("change_detection.sample_count must be >= 1")
    if config.full_hash_below < 0:
        errors.append("change_detection.full_hash_below must be >= 0")
    if errors:
        raise ConfigurationError("\n".join(errors), path=str(config_path))


def load_hosts(path: str | Path) -> list[Host]:
    """
    Load the hosts file.

    Expected shape::

        hosts:
          - hostname: 10.0.0.5
            identifier: web-1
            destination: /srv/backups
            cron_schedule: "30 2 * * *"
            remote_root: /var/www
            excludes: ["cache/*", "*.tmp"]
            sftp:
              port: 22
              username: backup
              private_key_path: /etc/fleetback/id_ed25519

    Raises:
        ConfigurationError: If the file or any host entry is malformed
    """
    hosts_path = Path(path)
    data = load_yaml(hosts_path)
    entries = data.get("hosts") if isinstance(data, dict) else data
    if not isinstance(entries, list):
        raise ConfigurationError(f"{hosts_path.name} must contain a 'hosts' list", path=str(hosts_path))

    hosts: list[Host] = []
    seen: set[str] = set()
    for index, entry in enumerate(entries):
        host = _host_from_dict(entry, index=index, path=hosts_path)
        if host.identifier in seen:
            raise ConfigurationError(
                f"Duplicate host identifier '{host.identifier}'", host=host.identifier, path=str(hosts_path)
            )
        seen.add(host.identifier)
        hosts.append(host)
    return hosts


def _host_from_dict(entry: Any, *, index: int, path: Path) -> Host:
    if not isinstance(entry, dict):
        raise ConfigurationError(f"Host entry #{index} must be a mapping", path=str(path))

    hostname = entry.get("hostname") or entry.get("ip")
    if not hostname:
        raise ConfigurationError(f"Host entry #{index} is missing 'hostname'", path=str(path))
    destination = entry.get("destination")
    if not destination:
        raise ConfigurationError(
            f"Host '{hostname}' is missing 'destination'", host=str(hostname), path=str(path)
        )

    sftp_cfg = entry.get("sftp") or {}
    if not isinstance(sftp_cfg, dict):
        raise ConfigurationError(f"Host '{hostname}': 'sftp' must be a mapping", host=str(hostname), path=str(path))

    excludes = entry.get("excludes") or []
    if isinstance(excludes, str):
        excludes = [excludes]

    archive = entry.get("archive")
    try:
        sftp = SFTPConfig(
            host=str(hostname),
            port=int(sftp_cfg.get("port", 22)),
            username=sftp_cfg.get("username"),
            password=sftp_cfg.get("password"),
            private_key_path=sftp_cfg.get("private_key_path"),
            private_key_passphrase=sftp_cfg.get("private_key_passphrase"),
            known_hosts_path=sftp_cfg.get("known_hosts_path"),
            connect_timeout_s=float(sftp_cfg.get("connect_timeout_s", 15.0)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"Host '{hostname}': invalid sftp value: {e}", host=str(hostname), path=str(path)
        ) from e

    cron = entry.get("cron_schedule")
    return Host(
        hostname=str(hostname),
        identifier=str(entry.get("identifier") or hostname),
        destination=Path(destination).expanduser(),
        sftp=sftp,
        cron_schedule=str(cron) if cron else None,
        remote_root=str(entry.get("remote_root", "/")),
        excludes=tuple(str(p) for p in excludes),
        archive=bool(archive) if archive is not None else None,
    )


def _relative_to(base_dir: Path, value: Any) -> Path:
    p = Path(str(value)).expanduser()
    return p if p.is_absolute() else base_dir / p


def _optional_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    return float(value)


def _substitute_env_vars(data: Any) -> Any:
    """
    Substitute environment variables in config.

    Supports ${VAR_NAME} syntax; unknown variables are left as-is.
    """
    if isinstance(data, dict):
        return {k: _substitute_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_vars(item) for item in data]
    elif isinstance(data, str):

        def replace_var(match):
            var_name = match.group(1)
            return os.getenv(var_name, match.group(0))

        return _ENV_VAR_PATTERN.sub(replace_var, data)
    else:
        return data
