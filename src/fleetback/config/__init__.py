"""
Configuration management.

Global config + hosts file parsing into frozen dataclasses.
"""

from fleetback.config.loader import load_global_config, load_hosts, resolve_config_path
from fleetback.config.types import DEFAULT_CRON, GlobalConfig, Host, SFTPConfig

__all__ = [
    "load_global_config",
    "load_hosts",
    "resolve_config_path",
    "GlobalConfig",
    "Host",
    "SFTPConfig",
    "DEFAULT_CRON",
]
