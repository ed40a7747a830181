"""Configuration management: profiles, TOML loading, and config models.

Usage:
    >>> from dbporter.config import load_config, ConnectionProfile, PorterConfig
"""

from dbporter.config.loader import load_config, resolve_workspace, write_default_config
from dbporter.config.models import (
    ConnectionProfile,
    PorterConfig,
    PorterSettings,
    Workspace,
)

__all__ = [
    "load_config",
    "write_default_config",
    "resolve_workspace",
    "ConnectionProfile",
    "PorterConfig",
    "PorterSettings",
    "Workspace",
]
